"""Row tables of the InkSpace data store.

Column names follow the store's snake_case schema; they are translated to
domain records in :mod:`inkspace.adapters` and never leave the gateways.
"""
from __future__ import annotations

import uuid
from datetime import datetime, timezone

from .extensions import db


def utc_now() -> datetime:
    """Return a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


class AuthAccount(db.Model):
    """Authentication identity; the matching profile shares its id."""

    __tablename__ = "auth_accounts"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    email = db.Column(db.String(255), unique=True, nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)
    last_login_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(db.DateTime, nullable=False, default=utc_now, onupdate=utc_now)


class Profile(db.Model):
    __tablename__ = "profiles"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    username = db.Column(db.String(255), nullable=False)
    full_name = db.Column(db.String(150), nullable=False)
    role = db.Column(
        db.Enum(
            "artist",
            "client",
            "shop-owner",
            "dual",
            "admin",
            name="user_role",
            native_enum=False,
            validate_strings=True,
        ),
        nullable=False,
        server_default="client",
    )
    specialty = db.Column(db.String(150))
    city = db.Column(db.String(150))
    bio = db.Column(db.Text)
    portfolio = db.Column(db.JSON, nullable=True, default=list)
    is_verified = db.Column(db.Boolean, nullable=False, default=False)
    socials = db.Column(db.JSON, nullable=True, default=dict)
    hourly_rate = db.Column(db.Float)
    services = db.Column(db.JSON, nullable=True, default=list)
    hours = db.Column(db.JSON, nullable=True)
    intake_settings = db.Column(db.JSON, nullable=True)
    subscription_tier = db.Column(
        db.Enum("free", "pro", name="subscription_tier", native_enum=False, validate_strings=True),
        nullable=False,
        default="free",
    )
    aftercare_message = db.Column(db.Text)
    request_healed_photo = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(db.DateTime, nullable=False, default=utc_now, onupdate=utc_now)


class Shop(db.Model):
    __tablename__ = "shops"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    owner_id = db.Column(db.String(36), db.ForeignKey("profiles.id"), nullable=True)
    name = db.Column(db.String(150), nullable=False)
    location = db.Column(db.String(150))
    address = db.Column(db.String(255))
    lat = db.Column(db.Float)
    lng = db.Column(db.Float)
    amenities = db.Column(db.JSON, nullable=True, default=list)
    rating = db.Column(db.Float, nullable=False, default=0)
    image_url = db.Column(db.String(500))
    # Shop reviews are kept inline as a JSON list
    reviews = db.Column(db.JSON, nullable=True, default=list)
    payment_methods = db.Column(db.JSON, nullable=True, default=dict)
    is_verified = db.Column(db.Boolean, nullable=False, default=False)
    average_artist_rating = db.Column(db.Float, nullable=False, default=0)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(db.DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    owner = db.relationship("Profile")
    booths = db.relationship("Booth", back_populates="shop", cascade="all, delete-orphan")


class Booth(db.Model):
    __tablename__ = "booths"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    shop_id = db.Column(db.String(36), db.ForeignKey("shops.id"), nullable=False)
    name = db.Column(db.String(150), nullable=False)
    daily_rate = db.Column(db.Float, nullable=False)
    photos = db.Column(db.JSON, nullable=True, default=list)
    amenities = db.Column(db.JSON, nullable=True, default=list)
    rules = db.Column(db.Text)

    shop = db.relationship("Shop", back_populates="booths")


class Booking(db.Model):
    """An artist's guest-spot reservation of a booth."""

    __tablename__ = "bookings"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    artist_id = db.Column(db.String(36), db.ForeignKey("profiles.id"), nullable=False)
    booth_id = db.Column(db.String(36), db.ForeignKey("booths.id"), nullable=False)
    shop_id = db.Column(db.String(36), db.ForeignKey("shops.id"), nullable=False)
    start_date = db.Column(db.Date, nullable=False)
    end_date = db.Column(db.Date, nullable=False)
    payment_status = db.Column(
        db.Enum("unpaid", "paid", name="payment_status", native_enum=False, validate_strings=True),
        nullable=False,
        default="unpaid",
    )
    total_amount = db.Column(db.Float, nullable=False)
    platform_fee = db.Column(db.Float, nullable=False)
    paid_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)


class ClientBookingRequest(db.Model):
    """A client's (or guest's) request for a session with an artist."""

    __tablename__ = "client_booking_requests"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    client_id = db.Column(db.String(36), db.ForeignKey("profiles.id"), nullable=True)
    artist_id = db.Column(db.String(36), db.ForeignKey("profiles.id"), nullable=False)
    guest_name = db.Column(db.String(150))
    guest_email = db.Column(db.String(255))
    guest_phone = db.Column(db.String(30))
    start_date = db.Column(db.Date, nullable=False)
    end_date = db.Column(db.Date, nullable=False)
    preferred_time = db.Column(db.String(50))
    message = db.Column(db.Text, nullable=False, default="")
    tattoo_width = db.Column(db.Float)
    tattoo_height = db.Column(db.Float)
    body_placement = db.Column(db.String(50))
    budget = db.Column(db.Float)
    service_id = db.Column(db.String(36))
    status = db.Column(
        db.Enum(
            "pending",
            "approved",
            "declined",
            "completed",
            "rescheduled",
            name="request_status",
            native_enum=False,
            validate_strings=True,
        ),
        nullable=False,
        default="pending",
    )
    payment_status = db.Column(
        db.Enum("unpaid", "paid", name="request_payment_status", native_enum=False, validate_strings=True),
        nullable=False,
        default="unpaid",
    )
    deposit_amount = db.Column(db.Float)
    deposit_paid_at = db.Column(db.DateTime)
    platform_fee = db.Column(db.Float)
    reference_image_urls = db.Column(db.JSON, nullable=True, default=list)
    review_rating = db.Column(db.Integer)
    review_text = db.Column(db.Text)
    review_submitted_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)
    updated_at = db.Column(db.DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    client = db.relationship("Profile", foreign_keys=[client_id])
    artist = db.relationship("Profile", foreign_keys=[artist_id])


class ArtistAvailability(db.Model):
    """Per-date override of an artist's weekly hours."""

    __tablename__ = "artist_availability"
    __table_args__ = (db.UniqueConstraint("artist_id", "date", name="uq_artist_availability_date"),)

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    artist_id = db.Column(db.String(36), db.ForeignKey("profiles.id"), nullable=False)
    date = db.Column(db.Date, nullable=False)
    status = db.Column(
        db.Enum("available", "unavailable", name="availability_status", native_enum=False, validate_strings=True),
        nullable=False,
    )


class Notification(db.Model):
    __tablename__ = "notifications"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    user_id = db.Column(db.String(36), nullable=False, index=True)
    message = db.Column(db.Text, nullable=False)
    read = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)


class Conversation(db.Model):
    __tablename__ = "conversations"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    participant_one_id = db.Column(db.String(36), nullable=False, index=True)
    participant_two_id = db.Column(db.String(36), nullable=False, index=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)

    messages = db.relationship("Message", back_populates="conversation", cascade="all, delete-orphan")


class Message(db.Model):
    __tablename__ = "messages"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    conversation_id = db.Column(db.String(36), db.ForeignKey("conversations.id"), nullable=False)
    sender_id = db.Column(db.String(36), nullable=False)
    content = db.Column(db.Text)
    attachment_url = db.Column(db.String(500))
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)

    conversation = db.relationship("Conversation", back_populates="messages")


class VerificationRequest(db.Model):
    __tablename__ = "verification_requests"

    id = db.Column(db.String(36), primary_key=True, default=new_id)
    profile_id = db.Column(db.String(36), db.ForeignKey("profiles.id"), nullable=True)
    shop_id = db.Column(db.String(36), db.ForeignKey("shops.id"), nullable=True)
    type = db.Column(
        db.Enum("artist", "shop", name="verification_type", native_enum=False, validate_strings=True),
        nullable=False,
    )
    status = db.Column(
        db.Enum(
            "pending",
            "approved",
            "rejected",
            name="verification_status",
            native_enum=False,
            validate_strings=True,
        ),
        nullable=False,
        default="pending",
    )
    created_at = db.Column(db.DateTime, nullable=False, default=utc_now)

    profile = db.relationship("Profile")
    shop = db.relationship("Shop")
