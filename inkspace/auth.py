"""Authentication gateway: identities, session tokens and the local session cache."""
from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.security import check_password_hash, generate_password_hash

from . import adapters, models
from .domain import AuthCredentials, RegisterDetails, User, user_adapter
from .errors import AuthError, GatewayError
from .extensions import db
from .gateway import BackendGateway

logger = logging.getLogger(__name__)

TOKEN_SALT = "auth-token"
DEV_ADMIN_PASSWORD = "root"  # noqa: S105 - local development login only


class SessionCache:
    """Cached session: the signed token and the adapted user it belongs to.

    Kept in memory, and mirrored to a JSON file when ``path`` is given so a
    restarted process finds the session again.
    """

    def __init__(self, path: Optional[str] = None) -> None:
        self.path = Path(path) if path else None
        self.user: Optional[User] = None
        self.token: Optional[str] = None
        self._load()

    def _load(self) -> None:
        if self.path is None or not self.path.exists():
            return
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
            self.token = payload.get("token")
            if payload.get("user"):
                self.user = user_adapter.validate_python(payload["user"])
        except (OSError, ValueError, ValidationError) as exc:
            logger.warning("Ignoring unreadable session cache %s: %s", self.path, exc)
            self.user = None
            self.token = None

    def _save(self) -> None:
        if self.path is None:
            return
        payload = {"token": self.token, "user": self.user.to_dict() if self.user else None}
        self.path.write_text(json.dumps(payload), encoding="utf-8")

    def set(self, user: User, token: Optional[str]) -> None:
        self.user = user
        self.token = token
        self._save()

    def clear(self) -> None:
        self.user = None
        self.token = None
        if self.path is not None and self.path.exists():
            self.path.unlink()


class AuthGateway:
    def __init__(
        self,
        backend: BackendGateway,
        secret_key: str,
        *,
        max_age: int = 86400,
        dev_admin_bypass: bool = False,
        cache: Optional[SessionCache] = None,
    ) -> None:
        self.backend = backend
        self.serializer = URLSafeTimedSerializer(secret_key, salt=TOKEN_SALT)
        self.max_age = max_age
        self.dev_admin_bypass = dev_admin_bypass
        self.cache = cache or SessionCache()

    def _build_token(self, user: User) -> str:
        return self.serializer.dumps({"user_id": user.id, "role": user.type})

    def verify_token(self, token: str) -> Optional[str]:
        """Return the user id carried by a valid token, else None."""
        try:
            payload = self.serializer.loads(token, max_age=self.max_age)
        except SignatureExpired:
            logger.info("Session token expired")
            return None
        except BadSignature:
            logger.warning("Rejected session token with a bad signature")
            return None
        return payload.get("user_id")

    def get_current_user(self) -> Optional[User]:
        """Cached user first, then the user behind the cached session token."""
        if self.cache.user is not None:
            return self.cache.user
        if not self.cache.token:
            return None
        user_id = self.verify_token(self.cache.token)
        if user_id is None:
            self.cache.clear()
            return None
        user = self.backend.get_profile(user_id)
        if user is None:
            self.cache.clear()
            return None
        self.cache.set(user, self.cache.token)
        return user

    def get_user_profile(self, user_id: str) -> Optional[User]:
        return self.backend.get_profile(user_id)

    def login(self, credentials: AuthCredentials) -> User:
        email = credentials.email.strip()

        if (
            self.dev_admin_bypass
            and email == adapters.DEV_ADMIN_EMAIL
            and credentials.password == DEV_ADMIN_PASSWORD
        ):
            # Grants admin without a server-verified credential
            logger.warning("Development admin bypass used; disable DEV_ADMIN_BYPASS outside development")
            user = adapters.dev_admin_user()
            self.cache.set(user, None)
            return user

        email = email.lower()
        try:
            account = models.AuthAccount.query.filter_by(email=email).first()
        except SQLAlchemyError as exc:
            db.session.rollback()
            logger.exception("Failed to look up account", exc_info=exc)
            raise GatewayError("Failed to sign in.") from exc

        if account is None or not check_password_hash(account.password_hash, credentials.password):
            raise AuthError("Invalid email or password.")

        try:
            account.last_login_at = datetime.now(timezone.utc)
            db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            logger.exception("Failed to update last login timestamp", exc_info=exc)
            raise GatewayError("Failed to sign in.") from exc

        user = self.backend.get_profile(account.id)
        if user is None:
            raise AuthError("User profile not found.")
        self.cache.set(user, self._build_token(user))
        return user

    def register(self, details: RegisterDetails) -> User:
        """Create the identity, then its profile.

        When the profile write fails the identity is deleted again so no
        account is left without a profile.
        """
        email = details.email.strip().lower()
        try:
            if models.AuthAccount.query.filter_by(email=email).first():
                raise AuthError("Email address is already in use.")
            account = models.AuthAccount(email=email, password_hash=generate_password_hash(details.password))
            db.session.add(account)
            db.session.commit()
            account_id = account.id
        except SQLAlchemyError as exc:
            db.session.rollback()
            logger.exception("Failed to create account", exc_info=exc)
            raise GatewayError("Failed to create account.") from exc

        try:
            profile = models.Profile(
                id=account_id,
                username=email,
                full_name=details.name,
                role=details.type,
                city=details.city,
            )
            if details.type in ("artist", "dual"):
                profile.specialty = "Not specified"
                profile.city = details.city or "Unknown"
                profile.portfolio = []
            db.session.add(profile)
            db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            logger.exception("Failed to create profile for %s; removing the account", email, exc_info=exc)
            self._remove_account(account_id)
            raise GatewayError("Failed to create profile.") from exc

        user = self.backend.get_profile(account_id)
        if user is None:
            raise AuthError("User profile not found.")
        self.cache.set(user, self._build_token(user))
        return user

    @staticmethod
    def _remove_account(account_id: str) -> None:
        try:
            models.AuthAccount.query.filter_by(id=account_id).delete(synchronize_session=False)
            db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            logger.exception("Failed to remove orphaned account %s", account_id, exc_info=exc)
            raise GatewayError("Failed to create profile.") from exc

    def logout(self) -> None:
        self.cache.clear()
