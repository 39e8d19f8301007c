#!/usr/bin/env python3
"""Seed the database with a demo shop, booths and artists."""
import sys
from pathlib import Path

# Add the parent directory to the path so we can import the app
sys.path.insert(0, str(Path(__file__).parent.parent))

from werkzeug.security import generate_password_hash

from inkspace import create_app
from inkspace.extensions import db
from inkspace.models import AuthAccount, Booth, Profile, Shop

DEMO_PASSWORD = "inkspace123"

DEMO_ARTISTS = [
    {
        "email": "mara@inkspace.test",
        "full_name": "Mara Quinn",
        "specialty": "Fine Line",
        "city": "Brooklyn",
        "hourly_rate": 180,
        "services": [
            {"id": "svc-fine-small", "name": "Small Fine Line", "duration": 1, "price": 150, "deposit_amount": 50},
            {"id": "svc-fine-half", "name": "Half Day Session", "duration": 4, "price": 600, "deposit_amount": 150},
        ],
    },
    {
        "email": "theo@inkspace.test",
        "full_name": "Theo Marsh",
        "specialty": "Traditional",
        "city": "Philadelphia",
        "hourly_rate": 150,
        "services": [
            {"id": "svc-flash", "name": "Flash Piece", "duration": 1, "price": 120, "deposit_amount": 40},
        ],
    },
]

DEMO_BOOTHS = [
    {"name": "Front Window Booth", "daily_rate": 120, "amenities": ["Natural light", "Ergonomic chair"]},
    {"name": "Private Suite", "daily_rate": 200, "amenities": ["Private room", "Sound system"]},
]


def _account(email: str, full_name: str, role: str) -> Profile:
    account = AuthAccount(email=email, password_hash=generate_password_hash(DEMO_PASSWORD))
    db.session.add(account)
    db.session.flush()
    profile = Profile(id=account.id, username=email, full_name=full_name, role=role)
    db.session.add(profile)
    return profile


def seed_demo():
    """Add demo accounts, one shop and its booths."""
    app = create_app()

    with app.app_context():
        db.create_all()

        if AuthAccount.query.filter_by(email="owner@inkspace.test").first():
            print("⏭️  Demo data already present. Skipping...")
            return

        owner = _account("owner@inkspace.test", "Sam Rivera", "shop-owner")
        print(f"🏪 Created shop owner {owner.username}")

        for artist_data in DEMO_ARTISTS:
            artist = _account(artist_data["email"], artist_data["full_name"], "artist")
            artist.specialty = artist_data["specialty"]
            artist.city = artist_data["city"]
            artist.hourly_rate = artist_data["hourly_rate"]
            artist.services = artist_data["services"]
            artist.portfolio = []
            print(f"🎨 Created artist {artist.full_name} ({artist.specialty})")

        client = _account("client@inkspace.test", "Jordan Lee", "client")
        print(f"🙋 Created client {client.username}")

        shop = Shop(
            owner_id=owner.id,
            name="Iron Lotus Tattoo",
            location="Brooklyn, NY",
            address="123 Bedford Ave, Brooklyn, NY",
            lat=40.7181,
            lng=-73.9571,
            amenities=["Wi-Fi", "Autoclave", "Parking"],
            reviews=[],
            payment_methods={"email": "payments@ironlotus.test"},
        )
        db.session.add(shop)
        db.session.flush()

        for booth_data in DEMO_BOOTHS:
            db.session.add(Booth(shop_id=shop.id, photos=[], rules="", **booth_data))
            print(f"  ✓ Added booth: {booth_data['name']} (${booth_data['daily_rate']}/day)")

        db.session.commit()
        print(f"\n✅ Demo data seeded. All demo accounts use the password '{DEMO_PASSWORD}'.")


if __name__ == "__main__":
    seed_demo()
