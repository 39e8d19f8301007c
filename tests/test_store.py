"""Tests for the application state store."""
from __future__ import annotations

import threading
import time
from datetime import date
from unittest.mock import patch

import httpx
import pytest

from inkspace.ai import BioGenerator
from inkspace.auth import AuthGateway
from inkspace.domain import Conversation, Message, RegisterDetails
from inkspace.errors import GatewayError, InitializationError
from inkspace.polling import NotificationPoller
from inkspace.store import AppStore


class FakeClock:
    def __init__(self) -> None:
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


class FakePoller:
    def __init__(self) -> None:
        self.running = False
        self.starts = 0

    @property
    def is_running(self) -> bool:
        return self.running

    def start(self) -> bool:
        if self.running:
            return False
        self.running = True
        self.starts += 1
        return True

    def stop(self, wait: bool = True) -> bool:
        was_running, self.running = self.running, False
        return was_running

    def join(self) -> None:
        pass


def _store(backend, **kwargs) -> AppStore:
    kwargs.setdefault("clock", FakeClock())
    kwargs.setdefault("polling_enabled", False)
    auth = AuthGateway(backend, "test-secret", dev_admin_bypass=True)
    return AppStore(backend, auth, kwargs.pop("bio_generator", None), **kwargs)


def _register(store: AppStore, name: str, type: str):
    return store.register(
        {"email": f"{name.split()[0].lower()}@example.com", "password": "Secret123!", "type": type, "name": name}
    )


@pytest.fixture
def shop_owner(backend):
    store = _store(backend)
    _register(store, "Sam Rivera", "shop-owner")
    shop = store.create_shop({"name": "Iron Lotus", "location": "Brooklyn"})
    store.add_booth(shop.id, {"name": "Window", "dailyRate": 120})
    return store


@pytest.fixture
def artist(backend):
    store = _store(backend)
    _register(store, "Mara Quinn", "artist")
    store.update_artist(
        store.user.id,
        {"services": [{"id": "svc-1", "name": "Flash", "duration": 1, "price": 120, "depositAmount": 50}]},
    )
    return store


@pytest.fixture
def client_store(backend, artist):
    store = _store(backend)
    _register(store, "Jordan Lee", "client")
    return store


def _request(client_store: AppStore, artist: AppStore):
    return client_store.send_client_booking_request(
        {
            "artistId": artist.user.id,
            "serviceId": "svc-1",
            "startDate": "2024-09-01",
            "endDate": "2024-09-01",
            "message": "Small rose",
        }
    )


# --- bookings ---

def test_artist_books_a_booth_and_pays(backend, shop_owner) -> None:
    booth = shop_owner.data.booths[0]
    store = _store(backend)
    _register(store, "Mara Quinn", "artist")

    booking = store.confirm_artist_booking(booth.id, date(2024, 8, 1), date(2024, 8, 10))

    assert booking.total_amount == 1200
    assert booking.platform_fee == 120
    assert booking.payment_status == "unpaid"
    assert booking.city == "Brooklyn"
    assert store.toast.message == "Booking confirmed! Payment is due."

    paid = store.pay_booking(booking.id)

    assert paid.payment_status == "paid"
    assert store.data.bookings[-1].payment_status == "paid"


def test_booking_quote() -> None:
    assert AppStore.booking_quote(120, date(2024, 8, 1), date(2024, 8, 1)) == {
        "days": 1,
        "totalAmount": 120,
        "platformFee": 12,
    }


def test_only_artists_book_booths(client_store, shop_owner) -> None:
    assert client_store.confirm_artist_booking("any-booth", date(2024, 8, 1), date(2024, 8, 2)) is None
    assert client_store.last_failure.code == "forbidden"
    assert client_store.toast.type == "error"
    assert client_store.data.bookings == []


# --- client requests & deposits ---

def test_request_takes_deposit_from_service(client_store, artist) -> None:
    created = _request(client_store, artist)

    assert created.deposit_amount == 50
    assert client_store.toast.message == "Booking request sent successfully!"
    assert [c.other_user.name for c in client_store.data.conversations] == ["Mara Quinn"]
    assert client_store.deposit_quote(created.id) == {
        "deposit": 50,
        "fee": 1.45,
        "total": 51.45,
        "subscriptionTier": "free",
    }


def test_pro_artist_absorbs_deposit_fee(client_store, artist) -> None:
    created = _request(client_store, artist)
    artist.toggle_artist_subscription(artist.user.id)
    client_store.initialize()

    quote = client_store.deposit_quote(created.id)

    assert quote["fee"] == 0
    assert quote["total"] == 50
    assert quote["subscriptionTier"] == "pro"


def test_client_pays_deposit_after_approval(backend, client_store, artist) -> None:
    created = _request(client_store, artist)

    assert client_store.pay_booking_deposit(created.id) is None
    assert client_store.last_failure.code == "invalid_transition"

    artist.initialize()
    artist.respond_to_booking_request(created.id, "approved")
    paid = client_store.pay_booking_deposit(created.id)

    assert paid.payment_status == "paid"
    assert paid.platform_fee == 1.45
    assert client_store.toast.message == "Deposit paid successfully!"


def test_artist_cannot_pay_client_deposit(client_store, artist) -> None:
    created = _request(client_store, artist)
    artist.initialize()

    assert artist.pay_booking_deposit(created.id) is None
    assert artist.last_failure.code == "forbidden"


def test_review_refreshes_artist_rating(client_store, artist) -> None:
    created = _request(client_store, artist)
    artist.initialize()
    artist.respond_to_booking_request(created.id, "approved")
    artist.update_completion_status(created.id)

    reviewed = client_store.submit_review(created.id, 4, "Lovely")

    assert reviewed.review_rating == 4
    assert client_store.data.artists[0].average_rating == 4
    assert client_store.submit_review(created.id, 5, "Again") is None
    assert client_store.last_failure.code == "duplicate_review"


def test_guest_request(backend, artist) -> None:
    guest = _store(backend)
    guest.initialize()

    created = guest.send_client_booking_request(
        {"artistId": artist.user.id, "guestName": "Walk In", "startDate": "2024-09-01", "endDate": "2024-09-01"},
        [("ref.png", b"png")],
    )

    assert created.client_id is None
    assert len(created.reference_image_urls) == 1
    assert created.reference_image_urls[0].endswith(f"/booking-references/{created.id}/0.png")
    assert guest.toast.message == "Booking request sent! The artist will contact you shortly."


def test_artists_cannot_send_client_requests(artist) -> None:
    assert artist.send_client_booking_request({"artistId": artist.user.id}) is None
    assert artist.last_failure.message == "Only clients can book artists."


# --- failures leave the cache alone ---

def test_failed_update_keeps_cached_shop(backend, shop_owner) -> None:
    shop = shop_owner.data.shops[0]

    with patch.object(backend, "update_shop_data", side_effect=GatewayError("Failed to update shop.")):
        assert shop_owner.update_shop(shop.id, {"name": "Renamed"}) is None

    assert shop_owner.data.shops[0].name == "Iron Lotus"
    assert shop_owner.toast.type == "error"
    assert shop_owner.last_failure.code == "database_error"


def test_initialize_failure_is_fatal(backend) -> None:
    store = _store(backend)

    with patch.object(backend, "fetch_initial_data", side_effect=InitializationError("Failed to fetch initial data: boom")):
        assert store.initialize() is False
    assert store.error == "Failed to fetch initial data: boom"
    assert store.is_initialized is True
    assert store.data.artists == []


# --- UI state ---

def test_toast_expires_and_is_replaced(backend) -> None:
    clock = FakeClock()
    store = _store(backend, clock=clock, toast_seconds=3.0)

    first = store.show_toast("Saved")
    second = store.show_toast("Saved again", "info")

    assert store.toast.id == second.id != first.id
    clock.now += 2.9
    assert store.toast is not None
    clock.now += 0.2
    assert store.toast is None


def test_dismiss_only_the_current_toast(backend) -> None:
    store = _store(backend)
    old = store.show_toast("old")
    store.show_toast("new")

    store.dismiss_toast(old.id)
    assert store.toast.message == "new"

    store.dismiss_toast()
    assert store.toast is None


def test_opening_a_modal_replaces_the_previous_one(backend) -> None:
    store = _store(backend)

    store.open_modal("auth")
    store.open_modal("booking", {"boothId": "b1"})

    assert store.modal.to_dict() == {"type": "booking", "data": {"boothId": "b1"}}
    store.close_modal()
    assert store.modal.type is None


def test_only_view_mode_and_theme_persist(backend) -> None:
    store = _store(backend)
    store.set_view_mode("artist")
    store.toggle_theme()
    store.open_modal("auth")

    assert store.persisted_state() == {"viewMode": "artist", "theme": "light"}

    restored = _store(backend)
    restored.restore_persisted_state({"viewMode": "bogus", "theme": "light", "modal": "auth"})
    assert (restored.view_mode, restored.theme, restored.modal.type) == ("client", "light", None)


def test_navigating_to_shop_search_switches_to_artist_view(backend) -> None:
    store = _store(backend)

    route = store.navigate("/shops")

    assert route.page == "search"
    assert store.view_mode == "artist"
    assert store.snapshot()["route"] == {"page": "search", "params": {"type": "shops"}, "viewMode": "artist"}


# --- messaging ---

def test_stale_messages_are_dropped(backend, monkeypatch) -> None:
    store = _store(backend)
    _register(store, "Jordan Lee", "client")
    message_a = Message(id="m-a", conversation_id="conv-a", sender_id="u1", content="A")
    message_b = Message(id="m-b", conversation_id="conv-b", sender_id="u1", content="B")

    def fetch(conversation_id):
        if conversation_id == "conv-a":
            # the user switches conversations while A is still loading
            store.select_conversation("conv-b")
            return [message_a]
        return [message_b]

    monkeypatch.setattr(backend, "fetch_messages_for_conversation", fetch)
    monkeypatch.setattr(
        backend, "get_conversation",
        lambda cid: Conversation(id=cid, participant_one_id=store.user.id, participant_two_id="artist-1"),
    )

    store.select_conversation("conv-a")

    assert store.active_conversation_id == "conv-b"
    assert store.data.messages == [message_b]


def test_send_message_to_active_conversation(client_store, artist) -> None:
    _request(client_store, artist)
    conversation = client_store.data.conversations[0]
    client_store.select_conversation(conversation.id)

    sent = client_store.send_message("  See you then  ")

    assert sent.content == "See you then"
    assert [m.content for m in client_store.data.messages] == ["Small rose", "See you then"]
    assert client_store.send_message("   ") is None


def test_outsider_cannot_read_or_post_into_a_conversation(backend, client_store, artist) -> None:
    _request(client_store, artist)
    conversation = client_store.data.conversations[0]
    outsider = _store(backend)
    _register(outsider, "Theo Park", "client")

    outsider.select_conversation(conversation.id)

    assert outsider.last_failure.code == "forbidden"
    assert outsider.active_conversation_id is None
    assert outsider.data.messages == []

    outsider.active_conversation_id = conversation.id
    assert outsider.send_message("let me in") is None
    assert outsider.last_failure.code == "forbidden"
    assert [m.content for m in backend.fetch_messages_for_conversation(conversation.id)] == ["Small rose"]


def test_selecting_unknown_conversation_reports_not_found(client_store) -> None:
    client_store.select_conversation("missing")

    assert client_store.last_failure.code == "not_found"
    assert client_store.active_conversation_id is None


def test_aftercare_uses_default_text(client_store, artist) -> None:
    assert artist.send_aftercare(client_store.user.id) is True

    client_store.load_conversations()
    client_store.select_conversation(client_store.data.conversations[0].id)
    assert "Keep it clean" in client_store.data.messages[-1].content
    assert client_store.data.messages[-1].sender_id == artist.user.id


# --- auth & routing ---

def test_login_routes_shop_owner_without_shop_to_onboarding(backend) -> None:
    AuthGateway(backend, "test-secret").register(
        RegisterDetails(email="sam@example.com", password="Secret123!", type="shop-owner", name="Sam")
    )
    store = _store(backend)

    user = store.login({"email": "sam@example.com", "password": "Secret123!"})

    assert user.type == "shop-owner"
    assert store.path == "/onboarding"
    assert store.toast.message == "Login successful!"


def test_admin_bypass_login_loads_users(backend, client_store) -> None:
    store = _store(backend)

    user = store.login({"email": "__admin__", "password": "root"})

    assert user.type == "admin"
    assert store.path == "/admin"
    assert {u.data.name for u in store.all_users} == {"Mara Quinn", "Jordan Lee"}


def test_failed_login_reports_reason(backend, client_store) -> None:
    store = _store(backend)

    assert store.login({"email": "jordan@example.com", "password": "wrong"}) is None
    assert store.user is None
    assert store.toast.message == "Invalid email or password."
    assert store.last_failure.code == "unauthorized"


def test_admin_only_actions(client_store) -> None:
    assert client_store.delete_user("someone") is False
    assert client_store.last_failure.message == "Access denied."


def test_polling_follows_the_session(backend) -> None:
    poller = FakePoller()
    store = _store(backend, polling_enabled=True, poller_factory=lambda callback, interval: poller)

    _register(store, "Jordan Lee", "client")
    assert store.is_polling is True
    store.start_notification_polling()
    assert poller.starts == 1

    store.logout()
    assert store.is_polling is False
    assert store.user is None


def test_logout_does_not_wait_on_a_poll_blocked_by_the_store_lock(backend) -> None:
    polling = threading.Event()
    threads = []

    def factory(callback, interval):
        def poll():
            threads.append(threading.current_thread())
            polling.set()
            callback()

        return NotificationPoller(poll, interval=0.01)

    store = _store(backend, polling_enabled=True, poller_factory=factory)
    _register(store, "Jordan Lee", "client")
    real_logout = store.auth.logout

    def logout_while_polling():
        # the next poll starts and then waits for the store lock held by logout
        polling.clear()
        assert polling.wait(timeout=2)
        real_logout()

    with patch.object(store.auth, "logout", side_effect=logout_while_polling):
        started = time.monotonic()
        store.logout()
        elapsed = time.monotonic() - started

    assert elapsed < 1
    assert threads[-1].is_alive() is False
    assert store.is_polling is False
    assert store.user is None


def test_new_notifications_raise_one_toast(backend, client_store) -> None:
    backend.create_notification(client_store.user.id, "Mara Quinn approved your booking request.")
    client_store.fetch_notifications()
    assert client_store.toast.message == "Mara Quinn approved your booking request."

    backend.create_notification(client_store.user.id, "one")
    backend.create_notification(client_store.user.id, "two")
    client_store.fetch_notifications()
    assert client_store.toast.message == "You have 2 new notifications"

    client_store.mark_notifications_as_read()
    assert all(n.read for n in client_store.data.notifications)


# --- AI ---

def test_bio_without_key_only_disables_the_feature(backend) -> None:
    store = _store(backend, bio_generator=BioGenerator(None))
    _register(store, "Mara Quinn", "artist")

    assert store.generate_artist_bio() is None
    assert store.last_failure.code == "configuration_error"
    assert "GEMINI_API_KEY" in store.feature_errors["ai"]

    assert store.update_user({"city": "Queens"}).data.city == "Queens"


def test_bio_generation(backend) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"candidates": [{"content": {"parts": [{"text": "Bold lines."}]}}]})

    generator = BioGenerator("key", client=httpx.Client(transport=httpx.MockTransport(handler)))
    store = _store(backend, bio_generator=generator)
    _register(store, "Mara Quinn", "artist")

    assert store.generate_artist_bio() == "Bold lines."
    assert "ai" not in store.feature_errors
