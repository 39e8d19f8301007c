"""Tests for row <-> domain record translation."""
from __future__ import annotations

from datetime import date, datetime

import pytest

from inkspace import adapters, models
from inkspace.domain import (Artist, ArtistAvailability, ArtistService, Booking, Booth,
                             ClientBookingRequest, Conversation, Message, Notification,
                             PaymentMethods, Review, Shop, TimeRange, VerificationRequest)


def _artist() -> Artist:
    return Artist(
        id="artist-1",
        name="Mara Quinn",
        specialty="Fine Line",
        city="Brooklyn",
        services=[ArtistService(id="svc-1", name="Flash", duration=1, price=120, deposit_amount=40)],
        hours={1: [TimeRange(start="10:00", end="14:00"), TimeRange(start="15:00", end="19:00")]},
        subscription_tier="pro",
    )


def test_artist_survives_row_translation() -> None:
    artist = _artist()

    row = models.Profile(role="artist", username="mara@example.com", **adapters.artist_to_row(artist))

    assert adapters.artist_from_row(row) == artist


def test_artist_row_keeps_hours_keyed_by_day_string() -> None:
    row = adapters.artist_to_row(_artist())

    assert row["hours"] == {"1": [{"start": "10:00", "end": "14:00"}, {"start": "15:00", "end": "19:00"}]}
    assert row["full_name"] == "Mara Quinn"


def test_partial_artist_update_accepts_camel_case() -> None:
    columns = adapters.artist_update_to_columns({"subscriptionTier": "pro", "hourlyRate": 150})

    assert columns == {"subscription_tier": "pro", "hourly_rate": 150}


def test_partial_artist_update_rejects_unknown_fields() -> None:
    with pytest.raises(ValueError, match="favourite_colour"):
        adapters.artist_update_to_columns({"favouriteColour": "red"})


def test_partial_booth_update_never_touches_ids() -> None:
    with pytest.raises(ValueError):
        adapters.booth_update_to_columns({"shopId": "other-shop"})

    assert adapters.booth_update_to_columns({"dailyRate": 99}) == {"daily_rate": 99}


def test_unset_artist_columns_read_as_domain_defaults() -> None:
    row = models.Profile(id="artist-1", username="mara@example.com", full_name="Mara Quinn", role="artist")

    artist = adapters.artist_from_row(row)

    assert (artist.specialty, artist.city) == ("Not specified", "Unknown")


def test_blank_artist_and_shop_fields_stay_blank() -> None:
    artist = _artist().model_copy(update={"specialty": "", "city": ""})
    shop = Shop(id="shop-1", name="Iron Lotus", image_url="")

    artist_row = models.Profile(role="artist", username="mara@example.com", **adapters.artist_to_row(artist))

    assert adapters.artist_from_row(artist_row) == artist
    assert adapters.shop_from_row(models.Shop(**adapters.shop_to_row(shop))) == shop


def test_shop_survives_row_translation() -> None:
    shop = Shop(
        id="shop-1",
        name="Iron Lotus",
        location="Brooklyn",
        address="12 Kent Ave",
        lat=40.72,
        lng=-73.96,
        amenities=["Parking"],
        rating=4.5,
        image_url="http://testserver/storage/shops/lotus.png",
        reviews=[Review(id="rev-1", author_id="client-1", author_name="Jordan", rating=4.5, text="Clean")],
        payment_methods=PaymentMethods(paypal="lotus@example.com"),
        is_verified=True,
        owner_id="owner-1",
        average_artist_rating=4.8,
    )

    assert adapters.shop_from_row(models.Shop(**adapters.shop_to_row(shop))) == shop


def test_shop_updates_cannot_touch_moderated_fields() -> None:
    for field in ({"isVerified": True}, {"rating": 5}, {"reviews": []}, {"ownerId": "someone-else"}):
        with pytest.raises(ValueError, match="Cannot set fields"):
            adapters.shop_update_to_columns(field)

    assert adapters.shop_update_to_columns({"imageUrl": "x.png", "lat": 1.5}) == {"image_url": "x.png", "lat": 1.5}


def test_artists_cannot_set_their_own_verified_badge() -> None:
    with pytest.raises(ValueError, match="is_verified"):
        adapters.artist_update_to_columns({"isVerified": True})


def test_booking_survives_row_translation_with_shop_city() -> None:
    booking = Booking(
        id="booking-1",
        artist_id="artist-1",
        booth_id="booth-1",
        shop_id="shop-1",
        city="Brooklyn",
        start_date=date(2024, 8, 1),
        end_date=date(2024, 8, 10),
        payment_status="paid",
        total_amount=1200,
        platform_fee=120,
        paid_at=datetime(2024, 7, 30, 12, 0),
    )
    shops = [Shop(id="shop-1", name="Iron Lotus", location="Brooklyn")]

    row = models.Booking(**adapters.booking_to_row(booking))

    assert adapters.booking_from_row(row, shops) == booking
    assert adapters.booking_from_row(row).city == "Unknown City"


def test_client_request_survives_row_translation() -> None:
    request = ClientBookingRequest(
        id="req-1",
        client_id="client-1",
        artist_id="artist-1",
        start_date=date(2024, 9, 1),
        end_date=date(2024, 9, 2),
        preferred_time="afternoon",
        message="Small rose",
        tattoo_width=5,
        tattoo_height=7,
        body_placement="Forearm",
        budget=300,
        service_id="svc-1",
        service_name="Flash",
        status="completed",
        payment_status="paid",
        deposit_amount=50,
        deposit_paid_at=datetime(2024, 8, 20, 9, 30),
        platform_fee=1.45,
        reference_image_urls=["http://testserver/storage/references/a.png"],
        review_rating=5,
        review_text="Great",
        review_submitted_at=datetime(2024, 9, 3, 18, 0),
        client_name="Jordan Lee",
        artist_name="Mara Quinn",
    )
    row = models.ClientBookingRequest(**adapters.client_booking_request_to_row(request))
    row.client = models.Profile(id="client-1", username="jordan@example.com", full_name="Jordan Lee", role="client")
    row.artist = models.Profile(
        id="artist-1",
        username="mara@example.com",
        full_name="Mara Quinn",
        role="artist",
        services=[{"id": "svc-1", "name": "Flash", "duration": 1, "price": 120}],
    )

    assert adapters.client_booking_request_from_row(row) == request


def test_availability_and_notification_survive_row_translation() -> None:
    availability = ArtistAvailability(id="av-1", artist_id="artist-1", date=date(2024, 9, 1), status="unavailable")
    notification = Notification(
        id="note-1", user_id="client-1", message="Your request was approved", read=True,
        created_at=datetime(2024, 8, 1, 10, 0),
    )

    availability_row = models.ArtistAvailability(**adapters.availability_to_row(availability))
    notification_row = models.Notification(**adapters.notification_to_row(notification))

    assert adapters.availability_from_row(availability_row) == availability
    assert adapters.notification_from_row(notification_row) == notification


@pytest.mark.parametrize("kind", ["artist", "shop"])
def test_verification_request_survives_row_translation(kind: str) -> None:
    request = VerificationRequest(
        id="ver-1",
        profile_id="owner-1",
        shop_id="shop-1" if kind == "shop" else None,
        type=kind,
        status="approved",
        created_at=datetime(2024, 8, 1, 10, 0),
        requester_name="Sam Rivera",
        item_name="Iron Lotus" if kind == "shop" else "Sam Rivera",
    )
    row = models.VerificationRequest(**adapters.verification_request_to_row(request))
    row.profile = models.Profile(id="owner-1", username="sam@example.com", full_name="Sam Rivera", role="shop-owner")
    if kind == "shop":
        row.shop = models.Shop(id="shop-1", name="Iron Lotus")

    assert adapters.verification_request_from_row(row) == request


def test_conversation_and_message_survive_row_translation() -> None:
    conversation = Conversation(id="conv-1", participant_one_id="client-1", participant_two_id="artist-1")
    message = Message(
        id="msg-1",
        conversation_id="conv-1",
        sender_id="client-1",
        content="Hi!",
        attachment_url="http://testserver/storage/message_attachments/sketch.jpg",
        created_at=datetime(2024, 8, 1, 10, 0),
    )

    conversation_row = models.Conversation(**adapters.conversation_to_row(conversation))
    message_row = models.Message(**adapters.message_to_row(message))

    assert adapters.conversation_from_row(conversation_row) == conversation
    assert adapters.message_from_row(message_row) == message


def test_booth_survives_row_translation() -> None:
    booth = Booth(id="booth-1", shop_id="shop-1", name="Window", daily_rate=120, amenities=["Light"])

    assert adapters.booth_from_row(models.Booth(**adapters.booth_to_row(booth))) == booth


def test_request_names_fall_back_to_guest_and_service_name() -> None:
    artist = models.Profile(
        id="artist-1",
        username="mara@example.com",
        full_name="Mara Quinn",
        role="artist",
        services=[{"id": "svc-1", "name": "Flash", "duration": 1, "price": 120}],
    )
    draft = ClientBookingRequest(
        id="req-1",
        guest_name="Walk In",
        artist_id="artist-1",
        start_date=date(2024, 9, 1),
        end_date=date(2024, 9, 1),
        service_id="svc-1",
    )
    row = models.ClientBookingRequest(**adapters.client_booking_request_to_row(draft))
    row.artist = artist

    adapted = adapters.client_booking_request_from_row(row)

    assert adapted.client_name == "Walk In"
    assert adapted.artist_name == "Mara Quinn"
    assert adapted.service_name == "Flash"


def test_user_variant_follows_role() -> None:
    profile = models.Profile(id="owner-1", username="owner@example.com", full_name="Sam", role="shop-owner")

    user = adapters.user_from_profile(profile, "shop-1")

    assert user.type == "shop-owner"
    assert user.data.shop_id == "shop-1"
    assert user.to_dict()["data"]["shopId"] == "shop-1"
