"""End-to-end tests for the JSON routes."""
from __future__ import annotations

import io
from unittest.mock import Mock
from urllib.parse import urlparse

import pytest

from inkspace.routes import StoreRegistry


def _register(client, name: str, type: str):
    email = f"{name.split()[0].lower()}@example.com"
    return client.post(
        "/api/auth/register",
        json={"name": name, "email": email, "password": "Secret123!", "type": type},
    )


@pytest.fixture
def booth(app):
    owner = app.test_client()
    _register(owner, "Sam Rivera", "shop-owner")
    shop = owner.post("/api/shops", json={"name": "Iron Lotus", "location": "Brooklyn"}).get_json()["shop"]
    response = owner.post(f"/api/shops/{shop['id']}/booths", json={"name": "Window", "dailyRate": 120})
    assert response.status_code == 201
    return response.get_json()["booth"]


def test_register_and_current_user(client) -> None:
    response = _register(client, "Jordan Lee", "client")

    assert response.status_code == 201
    body = response.get_json()
    assert body["user"]["type"] == "client"
    assert body["user"]["data"]["name"] == "Jordan Lee"
    assert body["toast"]["message"] == "Registration successful!"

    me = client.get("/api/auth/me").get_json()
    assert me["user"]["email"] == "jordan@example.com"


def test_register_requires_known_type(client) -> None:
    response = client.post(
        "/api/auth/register",
        json={"name": "X", "email": "x@example.com", "password": "pw", "type": "wizard"},
    )

    assert response.status_code == 400
    assert response.get_json()["error"] == "invalid_payload"


def test_login_with_bad_password(app, client) -> None:
    _register(app.test_client(), "Jordan Lee", "client")

    response = client.post("/api/auth/login", json={"email": "jordan@example.com", "password": "nope"})

    assert response.status_code == 401
    assert response.get_json() == {"error": "unauthorized", "message": "Invalid email or password."}


def test_logout_forgets_the_session(client) -> None:
    _register(client, "Jordan Lee", "client")

    response = client.post("/api/auth/logout")

    assert response.status_code == 200
    assert response.get_json()["toast"]["message"] == "Logged out successfully."
    assert client.get("/api/auth/me").get_json() == {"user": None}


def test_route_reports_access_error(client) -> None:
    body = client.get("/api/route", query_string={"path": "/admin"}).get_json()

    assert body["route"] == {"page": "admin", "params": {}, "viewMode": None}
    assert body["accessError"] == "Please log in to view this page."


def test_admin_state_after_bypass_login(app, client) -> None:
    _register(app.test_client(), "Jordan Lee", "client")

    response = client.post("/api/auth/login", json={"email": "__admin__", "password": "root"})
    state = client.get("/api/state").get_json()

    assert response.status_code == 200
    assert state["user"]["type"] == "admin"
    assert state["path"] == "/admin"
    assert state["accessError"] is None
    assert [u["email"] for u in state["allUsers"]] == ["jordan@example.com"]


def test_artist_quotes_and_books_a_booth(app, booth) -> None:
    artist = app.test_client()
    _register(artist, "Mara Quinn", "artist")
    dates = {"boothId": booth["id"], "startDate": "2024-08-01", "endDate": "2024-08-10"}

    quote = artist.post("/api/bookings/quote", json=dates).get_json()["quote"]
    response = artist.post("/api/bookings", json=dates)

    assert quote == {"days": 10, "totalAmount": 1200, "platformFee": 120}
    assert response.status_code == 201
    booking = response.get_json()["booking"]
    assert booking["totalAmount"] == 1200
    assert booking["paymentStatus"] == "unpaid"

    paid = artist.post(f"/api/bookings/{booking['id']}/pay")
    assert paid.get_json()["booking"]["paymentStatus"] == "paid"
    assert artist.post(f"/api/bookings/{booking['id']}/pay").status_code == 409


def test_clients_cannot_book_booths(app, booth) -> None:
    client = app.test_client()
    _register(client, "Jordan Lee", "client")

    response = client.post(
        "/api/bookings", json={"boothId": booth["id"], "startDate": "2024-08-01", "endDate": "2024-08-02"}
    )

    assert response.status_code == 403
    assert response.get_json()["error"] == "forbidden"


def test_booking_dates_must_be_iso(client) -> None:
    response = client.post("/api/bookings", json={"boothId": "b1", "startDate": "08/01/2024", "endDate": "2024-08-02"})

    assert response.status_code == 400
    assert "startDate" in response.get_json()["message"]


def test_guest_request_with_reference_upload(app) -> None:
    artist_id = _register(app.test_client(), "Mara Quinn", "artist").get_json()["user"]["id"]
    guest = app.test_client()

    response = guest.post(
        "/api/requests",
        data={
            "artistId": artist_id,
            "guestName": "Walk In",
            "guestEmail": "walkin@example.com",
            "startDate": "2024-09-01",
            "endDate": "2024-09-01",
            "references": (io.BytesIO(b"reference-bytes"), "ref.png"),
        },
        content_type="multipart/form-data",
    )

    assert response.status_code == 201
    created = response.get_json()["request"]
    assert created["clientName"] == "Walk In"
    [url] = created["referenceImageUrls"]

    stored = guest.get(urlparse(url).path)
    assert stored.status_code == 200
    assert stored.data == b"reference-bytes"


def test_request_lifecycle_over_http(app) -> None:
    artist = app.test_client()
    artist_id = _register(artist, "Mara Quinn", "artist").get_json()["user"]["id"]
    client = app.test_client()
    _register(client, "Jordan Lee", "client")

    created = client.post(
        "/api/requests",
        json={"artistId": artist_id, "startDate": "2024-09-01", "endDate": "2024-09-01", "depositAmount": 50},
    ).get_json()["request"]
    artist.post("/api/initialize")

    assert artist.post(f"/api/requests/{created['id']}/respond", json={"status": "maybe"}).status_code == 400
    approved = artist.post(f"/api/requests/{created['id']}/respond", json={"status": "approved"})
    assert approved.get_json()["request"]["status"] == "approved"

    quote = client.get(f"/api/requests/{created['id']}/deposit-quote").get_json()["quote"]
    assert quote == {"deposit": 50, "fee": 1.45, "total": 51.45, "subscriptionTier": "free"}
    assert client.post(f"/api/requests/{created['id']}/deposit").status_code == 200

    notifications = client.get("/api/notifications").get_json()["notifications"]
    assert ["Mara Quinn" in n["message"] for n in notifications] == [True]

    artist.post(f"/api/requests/{created['id']}/complete")
    review = client.post(f"/api/requests/{created['id']}/review", json={"rating": 5, "text": "Great"})
    assert review.get_json()["request"]["reviewRating"] == 5
    assert client.post(f"/api/requests/{created['id']}/review", json={"rating": 5}).status_code == 409

    reviews = client.get(f"/api/artists/{artist_id}/reviews").get_json()["reviews"]
    assert [r["rating"] for r in reviews] == [5]


def test_preferences_survive_a_new_store(app, client) -> None:
    client.post("/api/preferences", json={"viewMode": "artist", "toggleTheme": True})
    app.extensions["inkspace"]["stores"].close_all()

    state = client.get("/api/state").get_json()

    assert (state["viewMode"], state["theme"]) == ("artist", "light")


def test_bio_without_provider_key(app) -> None:
    artist = app.test_client()
    _register(artist, "Mara Quinn", "artist")

    response = artist.post("/api/artists/me/bio", json={})

    assert response.status_code == 503
    assert response.get_json()["error"] == "configuration_error"
    assert "GEMINI_API_KEY" in artist.get("/api/state").get_json()["featureErrors"]["ai"]


def test_maps_config(app, client) -> None:
    assert client.get("/api/config/maps").status_code == 503

    app.config["GOOGLE_MAPS_API_KEY"] = "maps-key"

    assert client.get("/api/config/maps").get_json() == {"configured": True, "apiKey": "maps-key"}


def test_messages_between_client_and_artist(app) -> None:
    artist = app.test_client()
    artist_id = _register(artist, "Mara Quinn", "artist").get_json()["user"]["id"]
    client = app.test_client()
    _register(client, "Jordan Lee", "client")

    conversation = client.post("/api/conversations", json={"userId": artist_id}).get_json()["conversation"]
    client.post("/api/conversations/select", json={"conversationId": conversation["id"]})
    sent = client.post("/api/messages", data={"content": "Hi!", "attachment": (io.BytesIO(b"img"), "sketch.jpg")})

    assert sent.status_code == 201
    message = sent.get_json()["message"]
    assert message["content"] == "Hi!"
    assert "/message_attachments/" in message["attachmentUrl"]

    artist.get("/api/conversations")
    listed = artist.post("/api/conversations/select", json={"conversationId": conversation["id"]}).get_json()
    assert [m["content"] for m in listed["messages"]] == ["Hi!"]


def test_outsider_cannot_read_or_post_into_a_conversation(app) -> None:
    artist_id = _register(app.test_client(), "Mara Quinn", "artist").get_json()["user"]["id"]
    client = app.test_client()
    _register(client, "Jordan Lee", "client")
    conversation = client.post("/api/conversations", json={"userId": artist_id}).get_json()["conversation"]
    client.post("/api/conversations/select", json={"conversationId": conversation["id"]})
    client.post("/api/messages", json={"content": "Small rose"})
    outsider = app.test_client()
    _register(outsider, "Theo Park", "client")

    selected = outsider.post("/api/conversations/select", json={"conversationId": conversation["id"]})
    sent = outsider.post("/api/messages", json={"content": "Hello"})

    assert selected.status_code == 403
    assert selected.get_json()["message"] == "You are not part of this conversation."
    assert sent.status_code == 400
    state = outsider.get("/api/state").get_json()
    assert state["activeConversationId"] is None
    assert state["data"]["messages"] == []
    listed = client.post("/api/conversations/select", json={"conversationId": conversation["id"]}).get_json()
    assert [m["content"] for m in listed["messages"]] == ["Small rose"]


def test_artist_cannot_self_verify(app) -> None:
    artist = app.test_client()
    artist_id = _register(artist, "Mara Quinn", "artist").get_json()["user"]["id"]

    response = artist.patch(f"/api/artists/{artist_id}", json={"isVerified": True, "bio": "Fine line"})

    assert response.status_code == 400
    assert response.get_json()["error"] == "invalid_payload"
    assert artist.get("/api/auth/me").get_json()["user"]["data"]["isVerified"] is False


def test_owner_cannot_set_moderated_shop_fields(app) -> None:
    owner = app.test_client()
    owner_id = _register(owner, "Sam Rivera", "shop-owner").get_json()["user"]["id"]

    rejected = owner.post("/api/shops", json={"name": "Iron Lotus", "isVerified": True, "rating": 5})
    assert rejected.status_code == 400

    shop = owner.post("/api/shops", json={"name": "Iron Lotus", "location": "Brooklyn"}).get_json()["shop"]
    hijack = owner.patch(f"/api/shops/{shop['id']}", json={"ownerId": "someone-else", "rating": 5})
    renamed = owner.patch(f"/api/shops/{shop['id']}", json={"name": "Iron Lotus II", "amenities": ["Wifi"]})

    assert hijack.status_code == 400
    updated = renamed.get_json()["shop"]
    assert (updated["name"], updated["amenities"]) == ("Iron Lotus II", ["Wifi"])
    assert (updated["ownerId"], updated["isVerified"], updated["rating"]) == (owner_id, False, 0.0)


def _admin(app):
    admin = app.test_client()
    admin.post("/api/auth/login", json={"email": "__admin__", "password": "root"})
    return admin


def test_admin_form_flag_false_unverifies_shop(app) -> None:
    owner = app.test_client()
    _register(owner, "Sam Rivera", "shop-owner")
    shop = owner.post("/api/shops", json={"name": "Iron Lotus"}).get_json()["shop"]
    admin = _admin(app)

    verified = admin.patch(f"/api/admin/shops/{shop['id']}", json={"isVerified": True})
    cleared = admin.patch(f"/api/admin/shops/{shop['id']}", data={"isVerified": "false"})
    garbled = admin.patch(f"/api/admin/shops/{shop['id']}", data={"isVerified": "nope"})

    assert verified.get_json()["shop"]["isVerified"] is True
    assert cleared.get_json()["shop"]["isVerified"] is False
    assert garbled.status_code == 400
    assert "isVerified" in garbled.get_json()["message"]


def test_admin_unknown_role_is_rejected(app) -> None:
    user_id = _register(app.test_client(), "Jordan Lee", "client").get_json()["user"]["id"]
    admin = _admin(app)

    response = admin.patch(f"/api/admin/users/{user_id}", json={"role": "wizard"})

    assert response.status_code == 400
    assert response.get_json() == {"error": "invalid_payload", "message": "Unknown role: wizard"}
    users = admin.get("/api/state").get_json()["allUsers"]
    assert [u["type"] for u in users] == ["client"]


def test_cookieless_reads_do_not_register_sessions(app) -> None:
    registry = app.extensions["inkspace"]["stores"]

    for _ in range(50):
        assert app.test_client().get("/api/state").status_code == 200

    assert len(registry) == 0


def test_idle_session_stores_are_evicted(app) -> None:
    registry = app.extensions["inkspace"]["stores"]
    now = [0.0]
    registry.clock = lambda: now[0]
    for _ in range(50):
        app.test_client().post("/api/preferences", json={"viewMode": "artist"})
    assert len(registry) == 50

    now[0] = registry.idle_seconds + 1
    app.test_client().post("/api/preferences", json={"viewMode": "client"})

    assert len(registry) == 1


def test_registry_tears_down_evicted_stores() -> None:
    now = [0.0]
    registry = StoreRegistry(Mock, idle_seconds=60, clock=lambda: now[0])
    stale, _ = registry.get("stale")
    kept, _ = registry.get("kept")

    now[0] = 45
    registry.get("kept")
    now[0] = 90
    again, created = registry.get("kept")

    assert (again, created) == (kept, False)
    stale.teardown.assert_called_once_with()
    kept.teardown.assert_not_called()
    assert registry.get("stale")[1] is True
