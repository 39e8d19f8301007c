"""Application state store.

One ``AppStore`` per signed-in browser session holds the fetched collections,
the session user and the UI state (view mode, theme, toast, modal, active
conversation). Every state change goes through an action method here; the
view layer only reads :meth:`AppStore.snapshot`.

Actions call the gateways first and touch the cache only after the call
succeeded, so a failed action shows an error toast and leaves cached state
as it was.
"""
from __future__ import annotations

import functools
import itertools
import logging
import threading
import time
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any, Callable, Iterable, Mapping, Optional

from . import fees, router
from .ai import BioGenerator
from .auth import AuthGateway
from .domain import (ARTIST_ROLES, Artist, AuthCredentials, Booking,
                     ClientBookingRequest, Conversation, InitialData,
                     RegisterDetails, Shop, User, is_artist)
from .errors import (AuthError, ConfigurationError, DuplicateReviewError,
                     InkspaceError, InvalidInputError, InvalidTransitionError,
                     NotFoundError)
from .gateway import BackendGateway, average_ratings
from .polling import NotificationPoller

logger = logging.getLogger(__name__)

DEFAULT_AFTERCARE = (
    "1. Keep it clean.\n"
    "2. Moisturize lightly.\n"
    "3. Do not scratch or pick.\n"
    "4. Avoid swimming/sun for 2 weeks."
)
AFTERCARE_HEADER = "\U0001F4CB **AFTERCARE INSTRUCTIONS** \U0001F4CB\n\n"
HEALED_PHOTO_REQUEST = (
    "\U0001F44B Hi there! I'd love to see how your tattoo settled in. "
    "Could you please send me a photo of your healed tattoo? Thanks!"
)
HEALED_PHOTO_AFTER = timedelta(days=14)

# Failures whose own message is fit to show as-is
_SHOW_OWN_MESSAGE = (AuthError, NotFoundError, InvalidTransitionError, DuplicateReviewError, InvalidInputError)


@dataclass
class ToastState:
    id: int
    message: str
    type: str
    expires_at: float

    def to_dict(self) -> dict[str, object]:
        return {"id": self.id, "message": self.message, "type": self.type}


@dataclass
class ModalState:
    type: Optional[str] = None
    data: Any = None

    def to_dict(self) -> dict[str, object]:
        data = self.data.to_dict() if hasattr(self.data, "to_dict") else self.data
        return {"type": self.type, "data": data}


@dataclass
class Failure:
    code: str
    message: str


def _action(method: Callable) -> Callable:
    """Serialize an action on the store lock; the outermost call resets ``last_failure``.

    Pollers stopped during the action are joined once the outermost call has
    released the lock, since a running poll may be waiting for that lock.
    """

    @functools.wraps(method)
    def wrapper(self: "AppStore", *args, **kwargs):
        stopped: list[NotificationPoller] = []
        try:
            with self._lock:
                if self._depth == 0:
                    self.last_failure = None
                self._depth += 1
                try:
                    return method(self, *args, **kwargs)
                finally:
                    self._depth -= 1
                    if self._depth == 0:
                        stopped, self._stopped_pollers = self._stopped_pollers, []
        finally:
            for poller in stopped:
                poller.join()

    return wrapper


def _replace(items: Iterable, new, key: str = "id") -> list:
    return [new if getattr(item, key) == getattr(new, key) else item for item in items]


def _find(items: Iterable, item_id: Optional[str]):
    return next((item for item in items if item.id == item_id), None)


class AppStore:
    def __init__(
        self,
        backend: BackendGateway,
        auth: AuthGateway,
        bio_generator: Optional[BioGenerator] = None,
        *,
        poll_interval: float = 30.0,
        toast_seconds: float = 3.0,
        clock: Callable[[], float] = time.monotonic,
        poller_factory: Optional[Callable[[Callable[[], None], float], NotificationPoller]] = None,
        polling_enabled: bool = True,
    ) -> None:
        self.backend = backend
        self.auth = auth
        self.bio_generator = bio_generator
        self.poll_interval = poll_interval
        self.polling_enabled = polling_enabled
        self.toast_seconds = toast_seconds
        self.clock = clock
        self.poller_factory = poller_factory or (lambda callback, interval: NotificationPoller(callback, interval))

        self._lock = threading.RLock()
        self._depth = 0
        self._toast_ids = itertools.count(1)
        self._poller: Optional[NotificationPoller] = None
        self._stopped_pollers: list[NotificationPoller] = []

        self.data = InitialData()
        self.all_users: list[User] = []
        self.is_initialized = False
        self.is_loading = False
        self.error: Optional[str] = None
        self.user: Optional[User] = None
        self.view_mode = "client"
        self.theme = "dark"
        self.modal = ModalState()
        self._toast: Optional[ToastState] = None
        self.active_conversation_id: Optional[str] = None
        self.path = "/"
        self.feature_errors: dict[str, str] = {}
        self.last_failure: Optional[Failure] = None

    # --- failure reporting ---

    def _fail(self, message: str, exc: InkspaceError) -> None:
        text = exc.message if isinstance(exc, _SHOW_OWN_MESSAGE) else message
        logger.warning("%s: %s", message, exc)
        self.last_failure = Failure(exc.code, text)
        self.show_toast(text, "error")

    def _deny(self, message: str, code: str = "forbidden") -> None:
        self.last_failure = Failure(code, message)
        self.show_toast(message, "error")

    # --- session user helpers ---

    def _set_user(self, user: Optional[User]) -> None:
        self.user = user
        if user is not None:
            self.auth.cache.set(user, self.auth.cache.token)

    def _artist_user(self, message: str) -> Optional[User]:
        if not is_artist(self.user):
            self._deny(message)
            return None
        return self.user

    def _merge_artist(self, artist: Artist) -> None:
        """Put a fresh artist record into the cache and the session user."""
        current = _find(self.data.artists, artist.id)
        if current is not None:
            artist = artist.model_copy(update={"average_rating": current.average_rating})
            self.data.artists = _replace(self.data.artists, artist)
        if self.user is not None and self.user.id == artist.id and is_artist(self.user):
            self._set_user(self.user.model_copy(update={"data": artist}))

    def _refresh_ratings(self) -> None:
        ratings = average_ratings(self.data.client_booking_requests)
        self.data.artists = [
            a.model_copy(update={"average_rating": ratings.get(a.id, 0.0)}) for a in self.data.artists
        ]

    def _owns_shop(self, shop_id: Optional[str]) -> bool:
        if self.user is None:
            return False
        if self.user.type == "admin":
            return True
        shop = _find(self.data.shops, shop_id)
        return shop is not None and shop.owner_id == self.user.id

    # --- UI state ---

    @property
    def toast(self) -> Optional[ToastState]:
        if self._toast is not None and self.clock() >= self._toast.expires_at:
            self._toast = None
        return self._toast

    @_action
    def show_toast(self, message: str, type: str = "success") -> ToastState:
        """Replace the current toast; it expires after ``toast_seconds``."""
        self._toast = ToastState(next(self._toast_ids), message, type, self.clock() + self.toast_seconds)
        return self._toast

    @_action
    def dismiss_toast(self, toast_id: Optional[int] = None) -> None:
        if self._toast is not None and (toast_id is None or self._toast.id == toast_id):
            self._toast = None

    @_action
    def open_modal(self, type: str, data: Any = None) -> None:
        self.modal = ModalState(type, data)

    @_action
    def close_modal(self) -> None:
        self.modal = ModalState()

    @_action
    def set_view_mode(self, mode: str) -> None:
        if mode not in ("artist", "client"):
            raise ValueError(f"Unknown view mode: {mode}")
        self.view_mode = mode

    @_action
    def toggle_theme(self) -> str:
        self.theme = "light" if self.theme == "dark" else "dark"
        return self.theme

    @_action
    def navigate(self, path: str) -> router.PageRoute:
        self.path = path or "/"
        route = router.resolve(self.path)
        if route.view_mode:
            self.view_mode = route.view_mode
        return route

    def persisted_state(self) -> dict[str, str]:
        return {"viewMode": self.view_mode, "theme": self.theme}

    @_action
    def restore_persisted_state(self, state: Optional[Mapping[str, object]]) -> None:
        if not state:
            return
        if state.get("viewMode") in ("artist", "client"):
            self.view_mode = state["viewMode"]
        if state.get("theme") in ("light", "dark"):
            self.theme = state["theme"]

    # --- lifecycle ---

    @_action
    def initialize(self) -> bool:
        """Load the session user and every shared collection.

        Failure is fatal for the session: ``error`` is set and the cache
        stays empty.
        """
        self.is_loading = True
        self.error = None
        try:
            user = self.auth.get_current_user()
            initial = self.backend.fetch_initial_data()
        except InkspaceError as exc:
            logger.error("Fatal: application initialization failed: %s", exc)
            self.error = exc.message or "Failed to initialize app."
            self.is_loading = False
            self.is_initialized = True
            return False

        self.data = initial
        self.user = user
        self.is_initialized = True
        self.is_loading = False

        if user is not None:
            if is_artist(user):
                self.view_mode = "artist"
                pending = self.pending_healed_photo_requests()
                if pending:
                    logger.info("Pending healed photo requests for %s: %d", user.id, len(pending))
            if user.type == "admin":
                self.navigate("/admin")
                self._load_all_users()
            self.fetch_notifications()
            self.load_conversations()
            self.start_notification_polling()
        return True

    def _load_all_users(self) -> None:
        try:
            self.all_users = self.backend.fetch_all_users()
        except InkspaceError as exc:
            self._fail("Failed to load users.", exc)

    @_action
    def teardown(self) -> None:
        self.stop_notification_polling()

    # --- auth ---

    @_action
    def login(self, credentials: AuthCredentials | Mapping[str, str]) -> Optional[User]:
        if not isinstance(credentials, AuthCredentials):
            credentials = AuthCredentials.model_validate(credentials)
        try:
            user = self.auth.login(credentials)
        except InkspaceError as exc:
            self._fail("Login failed.", exc)
            return None

        self.user = user
        self.initialize()
        if is_artist(user):
            self.view_mode = "artist"
        if user.type == "shop-owner" and not user.data.shop_id:
            self.navigate("/onboarding")
        elif user.type == "admin":
            self.navigate("/admin")
        else:
            self.navigate("/artists")
        self.close_modal()
        self.show_toast("Login successful!")
        return user

    @_action
    def register(self, details: RegisterDetails | Mapping[str, object]) -> Optional[User]:
        if not isinstance(details, RegisterDetails):
            details = RegisterDetails.model_validate(details)
        try:
            user = self.auth.register(details)
        except InkspaceError as exc:
            self._fail("Registration failed.", exc)
            return None

        self.user = user
        self.initialize()
        if is_artist(user):
            self.view_mode = "artist"
            self.navigate("/profile")
        elif user.type == "shop-owner":
            self.navigate("/onboarding")
        else:
            self.navigate("/artists")
        self.close_modal()
        self.show_toast("Registration successful!")
        return user

    @_action
    def logout(self) -> None:
        self.auth.logout()
        self.stop_notification_polling()
        self.user = None
        self.all_users = []
        self.view_mode = "client"
        self.data.notifications = []
        self.data.conversations = []
        self.data.messages = []
        self.active_conversation_id = None
        self.navigate("/")
        self.show_toast("Logged out successfully.")

    # --- notifications ---

    @_action
    def fetch_notifications(self) -> None:
        """Refresh notifications; toast once when unread ones arrived."""
        if self.user is None:
            return
        try:
            notifications = self.backend.fetch_notifications_for_user(self.user.id)
        except InkspaceError as exc:
            logger.warning("Failed to fetch notifications: %s", exc)
            return

        seen_unread = {n.id for n in self.data.notifications if not n.read}
        arrived = [n for n in notifications if not n.read and n.id not in seen_unread]
        self.data.notifications = notifications
        if len(arrived) == 1:
            self.show_toast(arrived[0].message)
        elif arrived:
            self.show_toast(f"You have {len(arrived)} new notifications")

    @_action
    def mark_notifications_as_read(self) -> None:
        if self.user is None:
            return
        try:
            self.backend.mark_user_notifications_as_read(self.user.id)
        except InkspaceError as exc:
            self._fail("Could not mark notifications as read.", exc)
            return
        self.data.notifications = [n.model_copy(update={"read": True}) for n in self.data.notifications]

    @_action
    def start_notification_polling(self) -> bool:
        if self.user is None or not self.polling_enabled:
            return False
        if self._poller is None:
            self._poller = self.poller_factory(self.fetch_notifications, self.poll_interval)
        return self._poller.start()

    @_action
    def stop_notification_polling(self) -> bool:
        if self._poller is None or not self._poller.stop(wait=False):
            return False
        self._stopped_pollers.append(self._poller)
        return True

    @property
    def is_polling(self) -> bool:
        return self._poller is not None and self._poller.is_running

    # --- artist guest-spot bookings ---

    @staticmethod
    def booking_quote(daily_rate: float, start_date: date, end_date: date) -> dict[str, float]:
        total = fees.booth_booking_total(start_date, end_date, daily_rate)
        return {
            "days": fees.inclusive_days(start_date, end_date),
            "totalAmount": total,
            "platformFee": fees.booth_platform_fee(total),
        }

    @_action
    def confirm_artist_booking(self, booth_id: str, start_date: date, end_date: date) -> Optional[Booking]:
        user = self._artist_user("You must be an artist to book a booth.")
        if user is None:
            return None
        booth = _find(self.data.booths, booth_id)
        if booth is None:
            self._deny("Booth not found.", "not_found")
            return None
        try:
            quote = self.booking_quote(booth.daily_rate, start_date, end_date)
        except ValueError as exc:
            self._deny(str(exc), "invalid_payload")
            return None
        try:
            booking = self.backend.create_booking_for_artist(
                user.id, booth.id, start_date, end_date, quote["totalAmount"], quote["platformFee"]
            )
        except InkspaceError as exc:
            self._fail("Booking failed. Please try again.", exc)
            return None
        self.data.bookings = [*self.data.bookings, booking]
        self.close_modal()
        self.show_toast("Booking confirmed! Payment is due.")
        return booking

    @_action
    def pay_booking(self, booking_id: str) -> Optional[Booking]:
        booking = _find(self.data.bookings, booking_id)
        if booking is None or self.user is None or booking.artist_id != self.user.id:
            self._deny("Only the booking artist can pay for this booking.")
            return None
        try:
            paid = self.backend.pay_booking(booking_id)
        except InkspaceError as exc:
            self._fail("Payment failed.", exc)
            return None
        self.data.bookings = _replace(self.data.bookings, paid)
        self.close_modal()
        self.show_toast("Payment successful!")
        return paid

    # --- client booking requests ---

    @_action
    def send_client_booking_request(
        self, request_data: Mapping[str, object], reference_files: Iterable[tuple[str, bytes]] = ()
    ) -> Optional[ClientBookingRequest]:
        """Create a request (as the signed-in client or as a guest) and upload its references."""
        if self.user is not None and self.user.type not in ("client", "dual"):
            self._deny("Only clients can book artists.")
            return None

        values = dict(request_data)
        values["clientId"] = self.user.id if self.user is not None else None
        values["referenceImageUrls"] = []
        artist = _find(self.data.artists, values.get("artistId") or values.get("artist_id"))
        service_id = values.get("serviceId") or values.get("service_id")
        if artist is not None and service_id and values.get("depositAmount") is None:
            service = _find(artist.services, service_id)
            if service is not None:
                values["depositAmount"] = service.deposit_amount

        self.is_loading = True
        try:
            created = self.backend.create_client_booking_request(values)
            urls = [
                self.backend.upload_booking_reference_image(created.id, index, filename, content)
                for index, (filename, content) in enumerate(reference_files)
            ]
            if urls:
                created = self.backend.update_client_booking_request(created.id, urls)
        except InkspaceError as exc:
            self.is_loading = False
            self._fail("Failed to send request.", exc)
            return None

        self.is_loading = False
        self.data.client_booking_requests = [*self.data.client_booking_requests, created]
        self.close_modal()
        if self.user is None:
            self.show_toast("Booking request sent! The artist will contact you shortly.")
        else:
            self.load_conversations()
            self.show_toast("Booking request sent successfully!")
        return created

    def _own_request(self, request_id: str, role: str) -> Optional[ClientBookingRequest]:
        """The cached request when the session user is its ``role`` (artist/client/either)."""
        item = _find(self.data.client_booking_requests, request_id)
        if item is None:
            self._deny("Booking request not found.", "not_found")
            return None
        user_id = self.user.id if self.user is not None else None
        allowed = {
            "artist": user_id == item.artist_id,
            "client": user_id is not None and user_id == item.client_id,
            "either": user_id is not None and user_id in (item.artist_id, item.client_id),
        }[role]
        if not allowed:
            who = {"artist": "the artist", "client": "the client", "either": "a participant"}[role]
            self._deny(f"Only {who} can do this for the request.")
            return None
        return item

    def _store_request(self, updated: ClientBookingRequest) -> None:
        self.data.client_booking_requests = _replace(self.data.client_booking_requests, updated)

    @_action
    def respond_to_booking_request(self, request_id: str, status: str) -> Optional[ClientBookingRequest]:
        if status not in ("approved", "declined"):
            raise ValueError(f"Cannot respond with status: {status}")
        if self._own_request(request_id, "artist") is None:
            return None
        try:
            updated = self.backend.update_client_booking_request_status(request_id, status)
        except InkspaceError as exc:
            self._fail("Failed to respond to request.", exc)
            return None
        self._store_request(updated)
        self.close_modal()
        if status == "approved":
            self.show_toast("Request approved. Client notified.")
        else:
            self.show_toast(f"Request has been {status}.")
        return updated

    @_action
    def update_completion_status(self, request_id: str, status: str = "completed") -> Optional[ClientBookingRequest]:
        if status not in ("completed", "rescheduled"):
            raise ValueError(f"Cannot mark a booking as {status}")
        if self._own_request(request_id, "artist") is None:
            return None
        try:
            updated = self.backend.update_client_booking_request_status(request_id, status)
        except InkspaceError as exc:
            self._fail(f"Failed to mark booking as {status}.", exc)
            return None
        self._store_request(updated)
        self.show_toast(f"Booking marked as {status}.")
        return updated

    @_action
    def reschedule_booking_request(
        self, request_id: str, start_date: date, end_date: date, preferred_time: Optional[str] = None
    ) -> Optional[ClientBookingRequest]:
        if self._own_request(request_id, "either") is None:
            return None
        try:
            updated = self.backend.reschedule_client_booking_request(request_id, start_date, end_date, preferred_time)
        except InkspaceError as exc:
            self._fail("Failed to reschedule booking.", exc)
            return None
        self._store_request(updated)
        self.close_modal()
        self.show_toast("Booking rescheduled.")
        return updated

    def deposit_quote(self, request_id: str) -> Optional[dict[str, object]]:
        """Deposit, processing fee and total for a cached request."""
        item = _find(self.data.client_booking_requests, request_id)
        if item is None:
            return None
        artist = _find(self.data.artists, item.artist_id)
        tier = artist.subscription_tier if artist is not None else "free"
        deposit = item.deposit_amount or 0.0
        return {
            "deposit": deposit,
            "fee": fees.deposit_fee(deposit, tier),
            "total": fees.deposit_total(deposit, tier),
            "subscriptionTier": tier,
        }

    @_action
    def pay_booking_deposit(self, request_id: str) -> Optional[ClientBookingRequest]:
        if self._own_request(request_id, "client") is None:
            return None
        quote = self.deposit_quote(request_id)
        try:
            updated = self.backend.pay_client_booking_deposit(request_id, quote["fee"])
        except InkspaceError as exc:
            self._fail("Failed to process deposit payment.", exc)
            return None
        self._store_request(updated)
        self.close_modal()
        self.show_toast("Deposit paid successfully!")
        return updated

    @_action
    def submit_review(self, request_id: str, rating: int, text: str) -> Optional[ClientBookingRequest]:
        if self._own_request(request_id, "client") is None:
            return None
        try:
            updated = self.backend.submit_review(request_id, rating, text)
        except InkspaceError as exc:
            self._fail("Failed to submit review.", exc)
            return None
        self._store_request(updated)
        self._refresh_ratings()
        self.close_modal()
        self.show_toast("Thank you for your review!")
        return updated

    # --- profiles & portfolio ---

    @_action
    def update_user(self, changes: Mapping[str, object]) -> Optional[User]:
        """Update the session user's own name/city."""
        if self.user is None:
            return None
        try:
            self.backend.update_user_data(self.user.id, changes)
        except InkspaceError as exc:
            self._fail("Failed to update profile.", exc)
            return None
        update = {k: v for k, v in changes.items() if k in ("name", "city") and k in type(self.user.data).model_fields}
        if update:
            self._set_user(self.user.model_copy(update={"data": self.user.data.model_copy(update=update)}))
            if is_artist(self.user):
                self._merge_artist(self.user.data)
        self.show_toast("Profile updated.")
        return self.user

    @_action
    def update_artist(self, artist_id: str, changes: Mapping[str, object]) -> Optional[Artist]:
        if self.user is None or (self.user.id != artist_id and self.user.type != "admin"):
            self._deny("You can only edit your own artist profile.")
            return None
        try:
            artist = self.backend.update_artist_data(artist_id, changes)
        except InkspaceError as exc:
            self._fail("Failed to update artist details.", exc)
            return None
        self._merge_artist(artist)
        return artist

    @_action
    def save_artist_hours(self, hours: Mapping[int, list]) -> Optional[Artist]:
        user = self._artist_user("Only artists can set working hours.")
        if user is None:
            return None
        try:
            artist = self.backend.save_artist_hours(user.id, hours)
        except InkspaceError as exc:
            self._fail(f"Failed to save: {exc.message}", exc)
            return None
        self._merge_artist(artist)
        self.show_toast("Availability saved successfully!")
        return artist

    @_action
    def upload_portfolio(self, filename: str, content: bytes) -> Optional[Artist]:
        user = self._artist_user("Only artists can upload portfolio images.")
        if user is None:
            return None
        try:
            image = self.backend.upload_portfolio_image(user.id, filename, content)
        except InkspaceError as exc:
            self._fail("Upload failed.", exc)
            return None
        artist = user.data.model_copy(update={"portfolio": [*user.data.portfolio, image]})
        self._merge_artist(artist)
        self.close_modal()
        self.show_toast("Image uploaded successfully!")
        return artist

    @_action
    def replace_portfolio_image(self, old_url: str, filename: str, content: bytes) -> Optional[Artist]:
        user = self._artist_user("Only the artist can change their portfolio images.")
        if user is None:
            return None
        try:
            artist = self.backend.replace_portfolio_image(user.id, old_url, filename, content)
        except InkspaceError as exc:
            self._fail("Failed to replace image.", exc)
            return None
        self._merge_artist(artist)
        self.close_modal()
        self.show_toast("Image replaced successfully.")
        return artist

    @_action
    def delete_portfolio_image(self, url: str) -> Optional[Artist]:
        user = self._artist_user("Only the artist can delete their portfolio images.")
        if user is None:
            return None
        remaining = [image for image in user.data.portfolio if image.url != url]
        try:
            artist = self.backend.update_artist_data(
                user.id, {"portfolio": [image.model_dump() for image in remaining]}
            )
        except InkspaceError as exc:
            self._fail("Failed to delete image.", exc)
            return None
        self.backend.delete_portfolio_image_from_storage(url)
        self._merge_artist(artist)
        self.show_toast("Image deleted successfully.")
        return artist

    @_action
    def generate_artist_bio(self, name: Optional[str] = None, specialty: Optional[str] = None) -> Optional[str]:
        """Draft a bio; a missing provider key only disables this feature."""
        if is_artist(self.user):
            name = name or self.user.data.name
            specialty = specialty or self.user.data.specialty
        if not name or not specialty:
            self._deny("Name and specialty are required to generate a bio.", "invalid_payload")
            return None
        try:
            if self.bio_generator is None:
                raise ConfigurationError("AI features are unavailable: GEMINI_API_KEY is not configured.")
            bio = self.bio_generator.generate_bio(name, specialty)
        except ConfigurationError as exc:
            logger.warning("Bio generation unavailable: %s", exc)
            self.feature_errors["ai"] = exc.message
            self.last_failure = Failure(exc.code, exc.message)
            return None
        except InkspaceError as exc:
            self._fail("Failed to generate bio with AI. Please try again.", exc)
            return None
        self.feature_errors.pop("ai", None)
        return bio

    @_action
    def toggle_artist_subscription(self, artist_id: str) -> Optional[Artist]:
        artist = _find(self.data.artists, artist_id)
        if artist is None:
            self._deny("Artist not found.", "not_found")
            return None
        tier = "free" if artist.subscription_tier == "pro" else "pro"
        updated = self.update_artist(artist_id, {"subscriptionTier": tier})
        if updated is not None:
            self.show_toast(f"Subscription switched to {tier.upper()}.")
        return updated

    # --- availability ---

    @_action
    def set_artist_availability(self, day: date, status: str):
        user = self._artist_user("Only artists can set availability.")
        if user is None:
            return None
        try:
            availability = self.backend.set_artist_availability(user.id, day, status)
        except InkspaceError as exc:
            self._fail("Failed to update availability.", exc)
            return None
        others = [
            a for a in self.data.artist_availability
            if not (a.artist_id == user.id and a.date == availability.date)
        ]
        self.data.artist_availability = [*others, availability]
        return availability

    # --- shops & booths ---

    @_action
    def create_shop(self, shop_data: Mapping[str, object]) -> Optional[Shop]:
        if self.user is None or self.user.type != "shop-owner":
            self._deny("Only shop owners can create a shop.")
            return None
        try:
            shop = self.backend.create_shop(shop_data, self.user.id)
        except InkspaceError as exc:
            self._fail("Failed to create shop.", exc)
            return None
        self.data.shops = [*self.data.shops, shop]
        self._set_user(self.user.model_copy(update={"data": self.user.data.model_copy(update={"shop_id": shop.id})}))
        self.navigate("/dashboard")
        self.show_toast("Your shop has been created!")
        return shop

    @_action
    def update_shop(self, shop_id: str, changes: Mapping[str, object]) -> Optional[Shop]:
        if not self._owns_shop(shop_id):
            self._deny("Only the shop owner can edit this shop.")
            return None
        try:
            shop = self.backend.update_shop_data(shop_id, changes)
        except InkspaceError as exc:
            self._fail("Failed to update shop.", exc)
            return None
        self.data.shops = _replace(self.data.shops, shop)
        self.show_toast("Shop details updated.")
        return shop

    @_action
    def add_booth(self, shop_id: str, booth_data: Mapping[str, object]):
        if not self._owns_shop(shop_id):
            self._deny("Only the shop owner can add booths.")
            return None
        try:
            booth = self.backend.add_booth(shop_id, booth_data)
        except InkspaceError as exc:
            self._fail("Failed to add booth.", exc)
            return None
        self.data.booths = [*self.data.booths, booth]
        return booth

    @_action
    def update_booth(self, booth_id: str, changes: Mapping[str, object]):
        booth = _find(self.data.booths, booth_id)
        if booth is None or not self._owns_shop(booth.shop_id):
            self._deny("Only the shop owner can edit this booth.")
            return None
        try:
            updated = self.backend.update_booth(booth_id, changes)
        except InkspaceError as exc:
            self._fail("Failed to update booth.", exc)
            return None
        self.data.booths = _replace(self.data.booths, updated)
        self.close_modal()
        return updated

    @_action
    def delete_booth(self, booth_id: str) -> bool:
        booth = _find(self.data.booths, booth_id)
        if booth is None or not self._owns_shop(booth.shop_id):
            self._deny("Only the shop owner can delete this booth.")
            return False
        try:
            self.backend.delete_booth(booth_id)
        except InkspaceError as exc:
            self._fail("Failed to delete booth.", exc)
            return False
        self.data.booths = [b for b in self.data.booths if b.id != booth_id]
        self.data.bookings = [b for b in self.data.bookings if b.booth_id != booth_id]
        return True

    @_action
    def submit_shop_review(self, shop_id: str, rating: float, text: str) -> Optional[Shop]:
        if self.user is None:
            self._deny("You must be logged in to review a shop.", "unauthorized")
            return None
        author = getattr(self.user.data, "name", "Anonymous")
        try:
            shop = self.backend.add_review_to_shop(
                shop_id, {"authorId": self.user.id, "authorName": author, "rating": rating, "text": text}
            )
        except InkspaceError as exc:
            self._fail("Failed to submit review.", exc)
            return None
        self.data.shops = _replace(self.data.shops, shop)
        self.close_modal()
        self.show_toast("Thank you for reviewing the shop!")
        return shop

    # --- verification ---

    @_action
    def request_verification(self, kind: str, item_id: str):
        if self.user is None:
            self._deny("You must be logged in to request verification.", "unauthorized")
            return None
        if (kind == "artist" and item_id != self.user.id) or (kind == "shop" and not self._owns_shop(item_id)):
            self._deny("You can only request verification for your own profile or shop.")
            return None
        try:
            request = self.backend.create_verification_request(kind, item_id, self.user.id)
        except InkspaceError as exc:
            self._fail("Failed to submit request.", exc)
            return None
        self.data.verification_requests = [request, *self.data.verification_requests]
        self.close_modal()
        self.show_toast("Verification request submitted.")
        return request

    @_action
    def respond_to_verification_request(self, request_id: str, status: str):
        if self.user is None or self.user.type != "admin":
            self._deny("Access denied.")
            return None
        try:
            updated = self.backend.update_verification_request(request_id, status)
        except InkspaceError as exc:
            self._fail("Failed to process request.", exc)
            return None
        self.data.verification_requests = _replace(self.data.verification_requests, updated)
        if status == "approved":
            if updated.type == "artist":
                self.data.artists = [
                    a.model_copy(update={"is_verified": True}) if a.id == updated.profile_id else a
                    for a in self.data.artists
                ]
                self.all_users = [
                    u.model_copy(update={"data": u.data.model_copy(update={"is_verified": True})})
                    if u.id == updated.profile_id and u.type in ARTIST_ROLES else u
                    for u in self.all_users
                ]
            else:
                self.data.shops = [
                    s.model_copy(update={"is_verified": True}) if s.id == updated.shop_id else s
                    for s in self.data.shops
                ]
        self.show_toast(f"Request {status}.")
        return updated

    # --- admin ---

    def _is_admin(self) -> bool:
        if self.user is None or self.user.type != "admin":
            self._deny("Access denied.")
            return False
        return True

    @_action
    def delete_user(self, user_id: str) -> bool:
        if not self._is_admin():
            return False
        try:
            self.backend.delete_user_as_admin(user_id)
        except InkspaceError as exc:
            self._fail("Failed to delete user.", exc)
            return False
        owned = {s.id for s in self.data.shops if s.owner_id == user_id}
        self.all_users = [u for u in self.all_users if u.id != user_id]
        self.data.artists = [a for a in self.data.artists if a.id != user_id]
        self.data.shops = [s for s in self.data.shops if s.id not in owned]
        self.data.booths = [b for b in self.data.booths if b.shop_id not in owned]
        self.data.bookings = [
            b for b in self.data.bookings if b.artist_id != user_id and b.shop_id not in owned
        ]
        self.data.client_booking_requests = [
            r for r in self.data.client_booking_requests if user_id not in (r.client_id, r.artist_id)
        ]
        self.show_toast("User deleted.")
        return True

    @_action
    def delete_shop(self, shop_id: str) -> bool:
        if not self._owns_shop(shop_id):
            self._deny("Access denied.")
            return False
        try:
            self.backend.delete_shop(shop_id)
        except InkspaceError as exc:
            self._fail("Failed to delete shop.", exc)
            return False
        self.data.shops = [s for s in self.data.shops if s.id != shop_id]
        self.data.booths = [b for b in self.data.booths if b.shop_id != shop_id]
        self.data.bookings = [b for b in self.data.bookings if b.shop_id != shop_id]
        self.data.verification_requests = [v for v in self.data.verification_requests if v.shop_id != shop_id]
        if self.user.type == "shop-owner" and self.user.data.shop_id == shop_id:
            self._set_user(self.user.model_copy(update={"data": self.user.data.model_copy(update={"shop_id": None})}))
        self.show_toast("Shop deleted.")
        return True

    @_action
    def admin_update_user(
        self, user_id: str, name: Optional[str] = None, role: Optional[str] = None, is_verified: Optional[bool] = None
    ) -> Optional[User]:
        if not self._is_admin():
            return None
        try:
            updated = self.backend.admin_update_user_profile(user_id, name=name, role=role, is_verified=is_verified)
            self.all_users = self.backend.fetch_all_users()
        except InkspaceError as exc:
            self._fail("Failed to update user.", exc)
            return None
        if updated is not None and is_artist(updated):
            self._merge_artist(updated.data)
        self.close_modal()
        self.show_toast("User updated successfully.")
        return updated

    @_action
    def admin_update_shop(self, shop_id: str, name: Optional[str] = None, is_verified: Optional[bool] = None):
        if not self._is_admin():
            return None
        try:
            shop = self.backend.admin_update_shop_details(shop_id, name=name, is_verified=is_verified)
        except InkspaceError as exc:
            self._fail("Failed to update shop.", exc)
            return None
        self.data.shops = _replace(self.data.shops, shop)
        self.close_modal()
        self.show_toast("Shop updated successfully.")
        return shop

    # --- messaging ---

    @_action
    def load_conversations(self) -> None:
        if self.user is None:
            return
        try:
            self.data.conversations = self.backend.fetch_user_conversations(self.user.id)
        except InkspaceError as exc:
            logger.warning("Failed to load conversations: %s", exc)

    def _conversation_for_user(self, conversation_id: str) -> Optional[Conversation]:
        """The conversation, if the session user is one of its two participants."""
        if self.user is None:
            self._deny("You must be logged in to read messages.", "unauthorized")
            return None
        try:
            conversation = self.backend.get_conversation(conversation_id)
        except InkspaceError as exc:
            self._fail("Could not load messages.", exc)
            return None
        if self.user.id not in (conversation.participant_one_id, conversation.participant_two_id):
            self._deny("You are not part of this conversation.")
            return None
        return conversation

    def select_conversation(self, conversation_id: Optional[str]) -> None:
        """Make a conversation active and load its messages.

        The fetch runs without the store lock. A result that comes back after
        another conversation became active is dropped.
        """
        with self._lock:
            self.last_failure = None
            if conversation_id is None:
                self.active_conversation_id = None
                self.data.messages = []
                return
            if self._conversation_for_user(conversation_id) is None:
                return
            self.active_conversation_id = conversation_id
            self.is_loading = True

        try:
            messages = self.backend.fetch_messages_for_conversation(conversation_id)
        except InkspaceError as exc:
            with self._lock:
                if self.active_conversation_id == conversation_id:
                    self.is_loading = False
                    self._fail("Could not load messages.", exc)
            return

        with self._lock:
            if self.active_conversation_id != conversation_id:
                logger.debug("Dropping stale messages for conversation %s", conversation_id)
                return
            self.is_loading = False
            self.data.messages = messages

    @_action
    def send_message(self, content: str = "", attachment: Optional[tuple[str, bytes]] = None):
        conversation_id = self.active_conversation_id
        if conversation_id is None or self.user is None:
            return None
        if not (content or "").strip() and attachment is None:
            return None
        if self._conversation_for_user(conversation_id) is None:
            return None
        try:
            attachment_url = None
            if attachment is not None:
                attachment_url = self.backend.upload_message_attachment(conversation_id, *attachment)
            message = self.backend.send_message(
                conversation_id, self.user.id, (content or "").strip() or None, attachment_url
            )
        except InkspaceError as exc:
            self._fail("Failed to send message.", exc)
            return None
        self.data.messages = [*self.data.messages, message]
        return message

    @_action
    def start_conversation(self, other_user_id: str) -> Optional[Conversation]:
        if self.user is None:
            self._deny("You must be logged in to send a message.", "unauthorized")
            self.open_modal("auth")
            return None
        try:
            conversation = self.backend.find_or_create_conversation(self.user.id, other_user_id)
        except InkspaceError as exc:
            self._fail("Failed to start conversation.", exc)
            return None
        self.load_conversations()
        self.close_modal()
        return conversation

    def _message_client(self, client_id: str, text: str, success: str, failure: str) -> bool:
        user = self._artist_user("Only artists can message clients this way.")
        if user is None:
            return False
        try:
            conversation = self.backend.find_or_create_conversation(user.id, client_id)
            self.backend.send_system_message(conversation.id, user.id, text)
        except InkspaceError as exc:
            self._fail(failure, exc)
            return False
        self.show_toast(success)
        return True

    @_action
    def send_aftercare(self, client_id: str) -> bool:
        body = DEFAULT_AFTERCARE
        if is_artist(self.user) and self.user.data.aftercare_message:
            body = self.user.data.aftercare_message
        return self._message_client(
            client_id, AFTERCARE_HEADER + body,
            "Aftercare instructions sent to client.", "Failed to send aftercare.",
        )

    @_action
    def request_healed_photo(self, client_id: str) -> bool:
        return self._message_client(
            client_id, HEALED_PHOTO_REQUEST, "Healed photo request sent.", "Failed to send request.",
        )

    def pending_healed_photo_requests(self, today: Optional[date] = None) -> list[ClientBookingRequest]:
        """Completed sessions of the signed-in artist that ended over two weeks ago."""
        if not is_artist(self.user):
            return []
        cutoff = (today or date.today()) - HEALED_PHOTO_AFTER
        return [
            r for r in self.data.client_booking_requests
            if r.artist_id == self.user.id and r.status == "completed" and r.end_date < cutoff
        ]

    # --- view ---

    def snapshot(self) -> dict[str, object]:
        with self._lock:
            route = router.resolve(self.path)
            toast = self.toast
            return {
                "data": self.data.to_dict(),
                "allUsers": [u.to_dict() for u in self.all_users],
                "isInitialized": self.is_initialized,
                "isLoading": self.is_loading,
                "error": self.error,
                "user": self.user.to_dict() if self.user is not None else None,
                "viewMode": self.view_mode,
                "theme": self.theme,
                "modal": self.modal.to_dict(),
                "toast": toast.to_dict() if toast is not None else None,
                "activeConversationId": self.active_conversation_id,
                "path": self.path,
                "route": route.to_dict(),
                "accessError": router.access_error(route, self.user),
                "featureErrors": dict(self.feature_errors),
            }
