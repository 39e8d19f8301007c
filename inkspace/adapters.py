"""Translation between store rows and domain records.

This is the only place that knows both naming schemes. Every ``*_from_row``
function has a ``*_to_row`` counterpart that produces the column values for
the same record, so ``x_from_row(Row(**x_to_row(record)))`` gives ``record``
back for every field the domain declares. Both gateways use the profile
mapping here; there is no second copy.
"""
from __future__ import annotations

import logging
from typing import Iterable, Mapping, Optional
from urllib.parse import quote

from . import models
from .domain import (Admin, AdminUser, Artist, ArtistAvailability, ArtistService,
                     ArtistUser, Booking, Booth, Client, ClientBookingRequest,
                     ClientUser, Conversation, ConversationPartner,
                     ConversationWithUser, DualUser, IntakeFormSettings, Message,
                     Notification, PaymentMethods, PortfolioImage, Review, Shop,
                     ShopOwner, ShopOwnerUser, Socials, TimeRange, User,
                     VerificationRequest)

logger = logging.getLogger(__name__)

DEV_ADMIN_ID = "admin-dev"
DEV_ADMIN_EMAIL = "__admin__"


def _dump_list(items: Iterable) -> list[dict]:
    return [item.model_dump(mode="json") for item in items]


def placeholder_image(name: str) -> str:
    return f"https://ui-avatars.com/api/?name={quote(name)}&background=1A1A1D&color=F04E98"


def _or_default(value, record_cls, field: str):
    """Column value, or the domain default when the column was never set."""
    return record_cls.model_fields[field].default if value is None else value


# --- Profiles / users ---

def artist_from_row(profile: models.Profile) -> Artist:
    hours = None
    if profile.hours:
        hours = {
            int(day): [TimeRange.model_validate(r) for r in ranges]
            for day, ranges in profile.hours.items()
        }
    return Artist(
        id=profile.id,
        name=profile.full_name,
        specialty=_or_default(profile.specialty, Artist, "specialty"),
        city=_or_default(profile.city, Artist, "city"),
        bio=profile.bio or "",
        portfolio=[PortfolioImage.model_validate(p) for p in profile.portfolio or []],
        is_verified=bool(profile.is_verified),
        socials=Socials.model_validate(profile.socials or {}),
        hourly_rate=profile.hourly_rate,
        services=[ArtistService.model_validate(s) for s in profile.services or []],
        hours=hours,
        intake_settings=(
            IntakeFormSettings.model_validate(profile.intake_settings) if profile.intake_settings else None
        ),
        subscription_tier=profile.subscription_tier or "free",
        aftercare_message=profile.aftercare_message or "",
        request_healed_photo=bool(profile.request_healed_photo),
    )


def artist_to_row(artist: Artist) -> dict[str, object]:
    """Column values of the artist's profile row (role/username excluded)."""
    hours = None
    if artist.hours is not None:
        hours = {str(day): _dump_list(ranges) for day, ranges in artist.hours.items()}
    return {
        "id": artist.id,
        "full_name": artist.name,
        "specialty": artist.specialty,
        "city": artist.city,
        "bio": artist.bio,
        "portfolio": _dump_list(artist.portfolio),
        "is_verified": artist.is_verified,
        "socials": artist.socials.model_dump(mode="json"),
        "hourly_rate": artist.hourly_rate,
        "services": _dump_list(artist.services),
        "hours": hours,
        "intake_settings": artist.intake_settings.model_dump(mode="json") if artist.intake_settings else None,
        "subscription_tier": artist.subscription_tier,
        "aftercare_message": artist.aftercare_message,
        "request_healed_photo": artist.request_healed_photo,
    }


# Domain field name -> profile column for an artist editing their own profile.
# The verified badge is only set by moderation.
ARTIST_COLUMNS = {
    "name": "full_name",
    "specialty": "specialty",
    "city": "city",
    "bio": "bio",
    "portfolio": "portfolio",
    "socials": "socials",
    "hourly_rate": "hourly_rate",
    "services": "services",
    "hours": "hours",
    "intake_settings": "intake_settings",
    "subscription_tier": "subscription_tier",
    "aftercare_message": "aftercare_message",
    "request_healed_photo": "request_healed_photo",
}


def _snake(key: str) -> str:
    return "".join(f"_{c.lower()}" if c.isupper() else c for c in key)


def partial_columns(record_cls, to_row, changes: Mapping[str, object], *,
                    required: Mapping[str, object], columns: Mapping[str, str]) -> dict[str, object]:
    """Translate a partial domain update to column values.

    ``changes`` may use camelCase or snake_case field names. The values are
    validated against ``record_cls`` (filled in with ``required``) so a
    partial update obeys the same shape rules as a whole record.
    """
    fields = {_snake(key): value for key, value in changes.items()}
    unknown = sorted(set(fields) - set(columns))
    if unknown:
        raise ValueError(f"Cannot set fields: {', '.join(unknown)}")
    record = record_cls.model_validate({**required, **fields})
    row = to_row(record)
    return {columns[key]: row[columns[key]] for key in fields}


def artist_update_to_columns(changes: Mapping[str, object]) -> dict[str, object]:
    return partial_columns(
        Artist, artist_to_row, changes,
        required={"id": "-", "name": "-"}, columns=ARTIST_COLUMNS,
    )


def client_from_row(profile: models.Profile) -> Client:
    return Client(id=profile.id, name=profile.full_name)


def shop_owner_from_row(profile: models.Profile, shop_id: Optional[str] = None) -> ShopOwner:
    return ShopOwner(id=profile.id, name=profile.full_name, shop_id=shop_id)


def dev_admin_user() -> AdminUser:
    return AdminUser(id=DEV_ADMIN_ID, email=DEV_ADMIN_EMAIL, data=Admin(name="Admin"))


def user_from_profile(profile: Optional[models.Profile], shop_id: Optional[str] = None) -> Optional[User]:
    """Adapt a profile row to the user variant selected by its role."""
    if profile is None:
        return None
    base = {"id": profile.id, "email": profile.username}
    if profile.role == "artist":
        return ArtistUser(**base, data=artist_from_row(profile))
    if profile.role == "dual":
        return DualUser(**base, data=artist_from_row(profile))
    if profile.role == "client":
        return ClientUser(**base, data=client_from_row(profile))
    if profile.role == "shop-owner":
        return ShopOwnerUser(**base, data=shop_owner_from_row(profile, shop_id))
    if profile.role == "admin":
        return AdminUser(**base, data=Admin(name=profile.full_name or "Admin"))
    logger.warning("Unknown user role encountered during adaptation: %s", profile.role)
    return None


# --- Shops & booths ---

def shop_from_row(shop: models.Shop) -> Shop:
    return Shop(
        id=shop.id,
        name=shop.name,
        location=shop.location or "",
        address=shop.address or "",
        lat=shop.lat,
        lng=shop.lng,
        amenities=list(shop.amenities or []),
        rating=shop.rating or 0.0,
        image_url=shop.image_url or "",
        reviews=[Review.model_validate(r) for r in shop.reviews or []],
        payment_methods=PaymentMethods.model_validate(shop.payment_methods or {}),
        is_verified=bool(shop.is_verified),
        owner_id=shop.owner_id,
        average_artist_rating=shop.average_artist_rating or 0.0,
    )


def shop_to_row(shop: Shop) -> dict[str, object]:
    return {
        "id": shop.id,
        "name": shop.name,
        "location": shop.location,
        "address": shop.address,
        "lat": shop.lat,
        "lng": shop.lng,
        "amenities": list(shop.amenities),
        "rating": shop.rating,
        "image_url": shop.image_url,
        "reviews": _dump_list(shop.reviews),
        "payment_methods": shop.payment_methods.model_dump(mode="json"),
        "is_verified": shop.is_verified,
        "owner_id": shop.owner_id,
        "average_artist_rating": shop.average_artist_rating,
    }


def booth_from_row(booth: models.Booth) -> Booth:
    return Booth(
        id=booth.id,
        shop_id=booth.shop_id,
        name=booth.name,
        daily_rate=booth.daily_rate,
        photos=list(booth.photos or []),
        amenities=list(booth.amenities or []),
        rules=booth.rules or "",
    )


def booth_to_row(booth: Booth) -> dict[str, object]:
    return {
        "id": booth.id,
        "shop_id": booth.shop_id,
        "name": booth.name,
        "daily_rate": booth.daily_rate,
        "photos": list(booth.photos),
        "amenities": list(booth.amenities),
        "rules": booth.rules,
    }


# Shop fields an owner may set. Verification, rating, reviews and ownership
# are written only by moderation and review aggregation.
SHOP_COLUMNS = {
    name: name
    for name in ("name", "location", "address", "lat", "lng", "amenities", "image_url", "payment_methods")
}
# Booth fields keep their names as columns; ids are never rewritten
BOOTH_COLUMNS = {name: name for name in Booth.model_fields if name not in ("id", "shop_id")}


def shop_update_to_columns(changes: Mapping[str, object]) -> dict[str, object]:
    return partial_columns(Shop, shop_to_row, changes, required={"id": "-", "name": "-"}, columns=SHOP_COLUMNS)


def booth_update_to_columns(changes: Mapping[str, object]) -> dict[str, object]:
    return partial_columns(
        Booth, booth_to_row, changes,
        required={"id": "-", "shopId": "-", "name": "-", "dailyRate": 0}, columns=BOOTH_COLUMNS,
    )


def booking_from_row(booking: models.Booking, shops: Iterable[Shop] = ()) -> Booking:
    city = next((s.location for s in shops if s.id == booking.shop_id and s.location), "Unknown City")
    return Booking(
        id=booking.id,
        artist_id=booking.artist_id,
        booth_id=booking.booth_id,
        shop_id=booking.shop_id,
        city=city,
        start_date=booking.start_date,
        end_date=booking.end_date,
        payment_status=booking.payment_status,
        total_amount=booking.total_amount,
        platform_fee=booking.platform_fee,
        paid_at=booking.paid_at,
    )


def booking_to_row(booking: Booking) -> dict[str, object]:
    return {
        "id": booking.id,
        "artist_id": booking.artist_id,
        "booth_id": booking.booth_id,
        "shop_id": booking.shop_id,
        "start_date": booking.start_date,
        "end_date": booking.end_date,
        "payment_status": booking.payment_status,
        "total_amount": booking.total_amount,
        "platform_fee": booking.platform_fee,
        "paid_at": booking.paid_at,
    }


# --- Client booking requests ---

REQUEST_COLUMNS = (
    "id",
    "client_id",
    "guest_name",
    "guest_email",
    "guest_phone",
    "artist_id",
    "start_date",
    "end_date",
    "preferred_time",
    "message",
    "tattoo_width",
    "tattoo_height",
    "body_placement",
    "budget",
    "service_id",
    "status",
    "payment_status",
    "deposit_amount",
    "deposit_paid_at",
    "platform_fee",
    "review_rating",
    "review_text",
    "review_submitted_at",
)


def client_booking_request_from_row(row: models.ClientBookingRequest) -> ClientBookingRequest:
    values = {column: getattr(row, column) for column in REQUEST_COLUMNS}
    artist = row.artist
    client = row.client

    service_name = "Custom Session"
    if artist is not None and row.service_id:
        for service in artist.services or []:
            if service.get("id") == row.service_id:
                service_name = service.get("name") or service_name
                break

    # Registered client's name, else the guest contact name
    client_name = (client.full_name if client is not None else None) or row.guest_name or "Unknown Client"

    values.update(
        message=row.message or "",
        reference_image_urls=list(row.reference_image_urls or []),
        service_name=service_name,
        client_name=client_name,
        artist_name=artist.full_name if artist is not None else "Unknown Artist",
    )
    return ClientBookingRequest(**values)


def client_booking_request_to_row(request: ClientBookingRequest) -> dict[str, object]:
    values = {column: getattr(request, column) for column in REQUEST_COLUMNS}
    values["reference_image_urls"] = list(request.reference_image_urls)
    return values


def review_from_request_row(row: models.ClientBookingRequest) -> Optional[Review]:
    if not row.review_rating or row.client is None:
        return None
    return Review(
        id=row.id,
        author_id=row.client.id,
        author_name=row.client.full_name or "Anonymous",
        rating=row.review_rating,
        text=row.review_text or "",
        created_at=row.review_submitted_at,
    )


# --- Availability, notifications, verification ---

def availability_from_row(row: models.ArtistAvailability) -> ArtistAvailability:
    return ArtistAvailability(id=row.id, artist_id=row.artist_id, date=row.date, status=row.status)


def availability_to_row(availability: ArtistAvailability) -> dict[str, object]:
    return {
        "id": availability.id,
        "artist_id": availability.artist_id,
        "date": availability.date,
        "status": availability.status,
    }


def notification_from_row(row: models.Notification) -> Notification:
    return Notification(
        id=row.id,
        user_id=row.user_id,
        message=row.message,
        read=bool(row.read),
        created_at=row.created_at,
    )


def notification_to_row(notification: Notification) -> dict[str, object]:
    return {
        "id": notification.id,
        "user_id": notification.user_id,
        "message": notification.message,
        "read": notification.read,
        "created_at": notification.created_at,
    }


def verification_request_from_row(row: models.VerificationRequest) -> VerificationRequest:
    requester = row.profile.full_name if row.profile is not None else None
    if row.type == "artist":
        item_name = requester
    else:
        item_name = row.shop.name if row.shop is not None else None
    return VerificationRequest(
        id=row.id,
        profile_id=row.profile_id,
        shop_id=row.shop_id,
        type=row.type,
        status=row.status,
        created_at=row.created_at,
        requester_name=requester,
        item_name=item_name,
    )


def verification_request_to_row(request: VerificationRequest) -> dict[str, object]:
    return {
        "id": request.id,
        "profile_id": request.profile_id,
        "shop_id": request.shop_id,
        "type": request.type,
        "status": request.status,
        "created_at": request.created_at,
    }


# --- Messaging ---

def conversation_from_row(row: models.Conversation) -> Conversation:
    return Conversation(
        id=row.id,
        participant_one_id=row.participant_one_id,
        participant_two_id=row.participant_two_id,
    )


def conversation_to_row(conversation: Conversation) -> dict[str, object]:
    return {
        "id": conversation.id,
        "participant_one_id": conversation.participant_one_id,
        "participant_two_id": conversation.participant_two_id,
    }


def conversation_with_user_from_row(
    row: models.Conversation, current_user_id: str, names: Mapping[str, str]
) -> ConversationWithUser:
    if row.participant_one_id == current_user_id:
        other_id = row.participant_two_id
    else:
        other_id = row.participant_one_id
    return ConversationWithUser(
        id=row.id,
        participant_one_id=row.participant_one_id,
        participant_two_id=row.participant_two_id,
        other_user=ConversationPartner(id=other_id, name=names.get(other_id, "Unknown User")),
    )


def message_from_row(row: models.Message) -> Message:
    return Message(
        id=row.id,
        conversation_id=row.conversation_id,
        sender_id=row.sender_id,
        content=row.content,
        attachment_url=row.attachment_url,
        created_at=row.created_at,
    )


def message_to_row(message: Message) -> dict[str, object]:
    return {
        "id": message.id,
        "conversation_id": message.conversation_id,
        "sender_id": message.sender_id,
        "content": message.content,
        "attachment_url": message.attachment_url,
        "created_at": message.created_at,
    }
