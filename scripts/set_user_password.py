"""Utility to seed or update account passwords for local development."""
from __future__ import annotations

import argparse
import sys
from pathlib import Path

from werkzeug.security import generate_password_hash

# Ensure the project root is on sys.path so ``inkspace`` can be imported when the script is executed directly.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from inkspace import create_app
from inkspace.extensions import db
from inkspace.models import AuthAccount, Profile

ROLES = ["artist", "client", "shop-owner", "dual", "admin"]


def set_password(email: str, password: str, role: str = "client") -> None:
    app = create_app()

    default_names = {
        "artist": "Artist User",
        "client": "Client User",
        "shop-owner": "Shop Owner",
        "dual": "Dual User",
        "admin": "Admin User",
    }

    email = email.strip().lower()
    with app.app_context():
        account = AuthAccount.query.filter_by(email=email).first()
        if account is None:
            account = AuthAccount(email=email, password_hash=generate_password_hash(password))
            db.session.add(account)
            db.session.flush()
            print(f"Created auth account for: {email}")
        else:
            account.password_hash = generate_password_hash(password)

        profile = db.session.get(Profile, account.id)
        if profile is None:
            profile = Profile(id=account.id, username=email, full_name=default_names[role], role=role)
            if role in ("artist", "dual"):
                profile.specialty = "Not specified"
                profile.city = "Unknown"
                profile.portfolio = []
            db.session.add(profile)
            print(f"Created new {role} profile: {email}")
        elif profile.role != role:
            print(f"Updating profile role from '{profile.role}' to '{role}'")
            profile.role = role

        db.session.commit()

        print(f"Password for {role} user '{email}' has been set successfully.")


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Set a user password for local testing.")
    parser.add_argument("email", help="Account email address")
    parser.add_argument("password", help="Plain-text password to hash and store")
    parser.add_argument(
        "--role",
        choices=ROLES,
        default="client",
        help="Profile role (default: client)"
    )
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    set_password(args.email, args.password, args.role)


if __name__ == "__main__":
    main()
