"""Domain records shared by the gateways, the store and the HTTP layer.

Every record serializes with camelCase keys (``model_dump(by_alias=True)``)
and accepts either camelCase or snake_case on input. The remote store uses
its own snake_case column names; translating between the two is the job of
:mod:`inkspace.adapters`.
"""
from __future__ import annotations

import datetime as dt
from datetime import date, datetime
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel

UserRole = Literal["artist", "client", "shop-owner", "dual", "admin"]
SubscriptionTier = Literal["free", "pro"]
PaymentStatus = Literal["unpaid", "paid"]
RequestStatus = Literal["pending", "approved", "declined", "completed", "rescheduled"]
AvailabilityStatus = Literal["available", "unavailable"]
VerificationType = Literal["artist", "shop"]
VerificationStatus = Literal["pending", "approved", "rejected"]
ViewMode = Literal["artist", "client"]
Theme = Literal["light", "dark"]

ARTIST_ROLES = ("artist", "dual")

BODY_PLACEMENTS = (
    ("arm_upper", "Upper Arm"),
    ("arm_lower", "Forearm / Lower Arm"),
    ("hand", "Hand"),
    ("leg_upper", "Thigh / Upper Leg"),
    ("leg_lower", "Calf / Lower Leg"),
    ("foot", "Foot"),
    ("chest", "Chest"),
    ("stomach", "Stomach"),
    ("back_upper", "Upper Back"),
    ("back_lower", "Lower Back"),
    ("neck", "Neck"),
    ("head", "Head"),
    ("other", "Other"),
)


class DomainModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_dict(self) -> dict[str, object]:
        return self.model_dump(by_alias=True, mode="json")


# --- Artist ---

class PortfolioImage(DomainModel):
    url: str
    is_ai_generated: bool = False


class Socials(DomainModel):
    instagram: Optional[str] = None
    tiktok: Optional[str] = None
    x: Optional[str] = None


class ArtistService(DomainModel):
    id: str
    name: str
    duration: float
    price: float
    deposit_amount: float = 0.0


class TimeRange(DomainModel):
    start: str
    end: str


class IntakeFormSettings(DomainModel):
    require_size: bool = True
    require_description: bool = True
    require_location: bool = True
    require_budget: bool = False


# Day of week (0 = Sunday .. 6 = Saturday) -> ordered time ranges
ArtistHours = dict[Annotated[int, Field(ge=0, le=6)], list[TimeRange]]


class Artist(DomainModel):
    id: str
    name: str
    specialty: str = "Not specified"
    city: str = "Unknown"
    bio: str = ""
    portfolio: list[PortfolioImage] = Field(default_factory=list)
    is_verified: bool = False
    socials: Socials = Field(default_factory=Socials)
    hourly_rate: Optional[float] = None
    services: list[ArtistService] = Field(default_factory=list)
    hours: Optional[ArtistHours] = None
    intake_settings: Optional[IntakeFormSettings] = None
    subscription_tier: SubscriptionTier = "free"
    aftercare_message: str = ""
    request_healed_photo: bool = False
    # Derived from reviewed requests; never written back to the store
    average_rating: float = 0.0


# --- Shops ---

class Review(DomainModel):
    id: str
    author_id: Optional[str] = None
    author_name: str = "Anonymous"
    rating: float
    text: str = ""
    created_at: Optional[datetime] = None


class PaymentMethods(DomainModel):
    email: Optional[str] = None
    paypal: Optional[str] = None
    btc: Optional[str] = None


class Shop(DomainModel):
    id: str
    name: str
    location: str = ""
    address: str = ""
    lat: Optional[float] = None
    lng: Optional[float] = None
    amenities: list[str] = Field(default_factory=list)
    rating: float = 0.0
    image_url: str = ""
    reviews: list[Review] = Field(default_factory=list)
    payment_methods: PaymentMethods = Field(default_factory=PaymentMethods)
    is_verified: bool = False
    owner_id: Optional[str] = None
    average_artist_rating: float = 0.0


class Booth(DomainModel):
    id: str
    shop_id: str
    name: str
    daily_rate: float
    photos: list[str] = Field(default_factory=list)
    amenities: list[str] = Field(default_factory=list)
    rules: str = ""


class Booking(DomainModel):
    id: str
    artist_id: str
    booth_id: str
    shop_id: str
    city: str = "Unknown City"
    start_date: date
    end_date: date
    payment_status: PaymentStatus = "unpaid"
    total_amount: float
    platform_fee: float
    paid_at: Optional[datetime] = None


# --- Client requests ---

class ClientBookingRequest(DomainModel):
    id: str
    client_id: Optional[str] = None
    guest_name: Optional[str] = None
    guest_email: Optional[str] = None
    guest_phone: Optional[str] = None
    artist_id: str
    start_date: date
    end_date: date
    preferred_time: Optional[str] = None
    message: str = ""
    tattoo_width: Optional[float] = None
    tattoo_height: Optional[float] = None
    body_placement: Optional[str] = None
    budget: Optional[float] = None
    service_id: Optional[str] = None
    service_name: str = "Custom Session"
    status: RequestStatus = "pending"
    payment_status: PaymentStatus = "unpaid"
    deposit_amount: Optional[float] = None
    deposit_paid_at: Optional[datetime] = None
    platform_fee: Optional[float] = None
    reference_image_urls: list[str] = Field(default_factory=list)
    review_rating: Optional[int] = None
    review_text: Optional[str] = None
    review_submitted_at: Optional[datetime] = None
    client_name: str = "Unknown Client"
    artist_name: str = "Unknown Artist"


class ArtistAvailability(DomainModel):
    id: str
    artist_id: str
    date: dt.date
    status: AvailabilityStatus


# --- Notifications & messaging ---

class Notification(DomainModel):
    id: str
    user_id: str
    message: str
    read: bool = False
    created_at: Optional[datetime] = None


class Conversation(DomainModel):
    id: str
    participant_one_id: str
    participant_two_id: str

    def involves(self, user_id: str, other_id: str) -> bool:
        return {self.participant_one_id, self.participant_two_id} == {user_id, other_id}


class ConversationPartner(DomainModel):
    id: str
    name: str


class ConversationWithUser(Conversation):
    other_user: ConversationPartner


class Message(DomainModel):
    id: str
    conversation_id: str
    sender_id: str
    content: Optional[str] = None
    attachment_url: Optional[str] = None
    created_at: Optional[datetime] = None


class VerificationRequest(DomainModel):
    id: str
    profile_id: Optional[str] = None
    shop_id: Optional[str] = None
    type: VerificationType
    status: VerificationStatus = "pending"
    created_at: Optional[datetime] = None
    requester_name: Optional[str] = None
    item_name: Optional[str] = None


# --- Users ---

class Client(DomainModel):
    id: str
    name: str


class ShopOwner(DomainModel):
    id: str
    name: str
    shop_id: Optional[str] = None


class Admin(DomainModel):
    name: str = "Admin"


class ArtistUser(DomainModel):
    id: str
    email: str
    type: Literal["artist"] = "artist"
    data: Artist


class DualUser(DomainModel):
    """Acts as artist and client; carries the artist profile shape."""

    id: str
    email: str
    type: Literal["dual"] = "dual"
    data: Artist


class ClientUser(DomainModel):
    id: str
    email: str
    type: Literal["client"] = "client"
    data: Client


class ShopOwnerUser(DomainModel):
    id: str
    email: str
    type: Literal["shop-owner"] = "shop-owner"
    data: ShopOwner


class AdminUser(DomainModel):
    id: str
    email: str
    type: Literal["admin"] = "admin"
    data: Admin = Field(default_factory=Admin)


User = Annotated[
    Union[ArtistUser, DualUser, ClientUser, ShopOwnerUser, AdminUser],
    Field(discriminator="type"),
]


def is_artist(user: Optional[User]) -> bool:
    return user is not None and user.type in ARTIST_ROLES


class AuthCredentials(DomainModel):
    email: str
    password: str


class RegisterDetails(DomainModel):
    email: str
    password: str
    type: Literal["artist", "client", "shop-owner", "dual"]
    name: str
    city: Optional[str] = None


class InitialData(DomainModel):
    artists: list[Artist] = Field(default_factory=list)
    shops: list[Shop] = Field(default_factory=list)
    booths: list[Booth] = Field(default_factory=list)
    bookings: list[Booking] = Field(default_factory=list)
    client_booking_requests: list[ClientBookingRequest] = Field(default_factory=list)
    artist_availability: list[ArtistAvailability] = Field(default_factory=list)
    verification_requests: list[VerificationRequest] = Field(default_factory=list)
    notifications: list[Notification] = Field(default_factory=list)
    conversations: list[ConversationWithUser] = Field(default_factory=list)
    messages: list[Message] = Field(default_factory=list)


user_adapter: TypeAdapter[User] = TypeAdapter(User)
