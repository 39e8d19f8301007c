"""HTTP routes for the InkSpace backend.

Each browser session gets its own :class:`~inkspace.store.AppStore`, kept in
a :class:`StoreRegistry` under the ``sid`` stored in the signed session
cookie. Routes dispatch to that store and answer with its outcome: the
result plus the current toast, or ``{"error", "message"}`` when the action
failed.
"""
from __future__ import annotations

import logging
import threading
import time
import uuid
from datetime import date
from typing import Callable, Optional

from flask import (Blueprint, Flask, current_app, jsonify, request,
                   send_from_directory, session)
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from . import router
from .errors import InkspaceError
from .extensions import db
from .store import AppStore

logger = logging.getLogger(__name__)

bp = Blueprint("api", __name__)

STATUS_CODES = {
    "invalid_payload": 400,
    "unauthorized": 401,
    "forbidden": 403,
    "not_found": 404,
    "invalid_transition": 409,
    "duplicate_review": 409,
    "provider_error": 502,
    "configuration_error": 503,
    "database_error": 500,
    "initialization_failed": 500,
}


class StoreRegistry:
    """One store per browser session id.

    Stores unused for ``idle_seconds`` are evicted and torn down on the next
    lookup; a session that comes back after that starts from a fresh store
    restored from its cookie preferences.
    """

    def __init__(
        self,
        factory: Callable[[], AppStore],
        idle_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.factory = factory
        self.idle_seconds = idle_seconds
        self.clock = clock
        self._stores: dict[str, AppStore] = {}
        self._last_seen: dict[str, float] = {}
        self._lock = threading.Lock()

    def get(self, sid: str) -> tuple[AppStore, bool]:
        """Return the session's store and whether it was just created."""
        with self._lock:
            now = self.clock()
            expired = self._evict_idle(now, keep=sid)
            self._last_seen[sid] = now
            store = self._stores.get(sid)
            created = store is None
            if created:
                store = self._stores[sid] = self.factory()
        for stale in expired:
            stale.teardown()
        return store, created

    def _evict_idle(self, now: float, keep: str) -> list[AppStore]:
        if self.idle_seconds is None:
            return []
        idle = [sid for sid, seen in self._last_seen.items() if sid != keep and now - seen > self.idle_seconds]
        for sid in idle:
            del self._last_seen[sid]
        if idle:
            logger.info("Evicting %d idle session store(s)", len(idle))
        return [store for store in (self._stores.pop(sid, None) for sid in idle) if store is not None]

    def drop(self, sid: str) -> None:
        with self._lock:
            store = self._stores.pop(sid, None)
            self._last_seen.pop(sid, None)
        if store is not None:
            store.teardown()

    def close_all(self) -> None:
        with self._lock:
            stores = list(self._stores.values())
            self._stores.clear()
            self._last_seen.clear()
        for store in stores:
            store.teardown()

    def __len__(self) -> int:
        return len(self._stores)


def _registry() -> StoreRegistry:
    return current_app.extensions["inkspace"]["stores"]


def _store() -> AppStore:
    """The session's store.

    A GET from a browser with no session yet is answered from a throwaway
    store so read-only traffic does not register sessions.
    """
    sid = session.get("sid")
    if not sid and request.method == "GET":
        store = _registry().factory()
        store.restore_persisted_state(session.get("prefs"))
        return store
    if not sid:
        sid = session["sid"] = uuid.uuid4().hex
    store, created = _registry().get(sid)
    if created:
        store.restore_persisted_state(session.get("prefs"))
    return store


def _payload() -> dict:
    if request.is_json:
        return request.get_json(silent=True) or {}
    return request.form.to_dict()


def _invalid(message: str) -> tuple[object, int]:
    return jsonify({"error": "invalid_payload", "message": message}), 400


def _date(payload: dict, key: str) -> date:
    value = payload.get(key)
    if not value:
        raise ValueError(f"{key} is required")
    try:
        return date.fromisoformat(str(value))
    except ValueError as exc:
        raise ValueError(f"{key} must be an ISO date (YYYY-MM-DD)") from exc


def _flag(payload: dict, key: str) -> Optional[bool]:
    """JSON booleans as-is; form values must be "true" or "false"."""
    value = payload.get(key)
    if value is None or isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text not in ("true", "false"):
        raise ValueError(f"{key} must be true or false")
    return text == "true"


def _upload(field: str) -> Optional[tuple[str, bytes]]:
    file = request.files.get(field)
    if file is None or not file.filename:
        return None
    return file.filename, file.read()


def _dump(result):
    if result is None or isinstance(result, (bool, int, float, str)):
        return result
    if isinstance(result, dict):
        return result
    if isinstance(result, (list, tuple)):
        return [_dump(item) for item in result]
    return result.to_dict()


def _respond(store: AppStore, key: Optional[str] = None, result=None, status: int = 200):
    """Store outcome as JSON; persists the view preferences in the session cookie."""
    session["prefs"] = store.persisted_state()
    failure = store.last_failure
    if failure is not None:
        return jsonify({"error": failure.code, "message": failure.message}), STATUS_CODES.get(failure.code, 400)
    toast = store.toast
    body = {"toast": toast.to_dict() if toast is not None else None}
    if key is not None:
        body[key] = _dump(result)
    return jsonify(body), status


# --- health ---

@bp.get("/health")
def health_check() -> tuple[dict[str, str], int]:
    """
    Expose a simple uptime check endpoint.
    ---
    tags:
      - Health
    responses:
      200:
        description: Service is healthy and running.
    """
    return jsonify({"status": "ok"}), 200


@bp.get("/db-health")
def database_health() -> tuple[dict[str, str], int]:
    """Check connectivity to the configured database.
    ---
    tags:
      - Health
    responses:
      200:
        description: Database connection is ok.
      500:
        description: Database connection failed.
    """
    try:
        db.session.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        current_app.logger.exception("Database connectivity check failed", exc_info=exc)
        return jsonify({"database": "unavailable"}), 500

    return jsonify({"database": "ok"}), 200


@bp.get("/storage/<bucket>/<path:path>")
def stored_object(bucket: str, path: str):
    storage = current_app.extensions["inkspace"]["storage"]
    return send_from_directory(storage.root / bucket, path)


# --- app state & navigation ---

@bp.get("/api/route")
def resolve_route():
    """Resolve a client path to its page.
    ---
    tags:
      - Navigation
    parameters:
      - name: path
        in: query
        type: string
    responses:
      200:
        description: The page, its params and any access error for the current user.
    """
    route = router.resolve(request.args.get("path", "/"))
    store = _store()
    return jsonify({"route": route.to_dict(), "accessError": router.access_error(route, store.user)}), 200


@bp.get("/api/state")
def get_state():
    store = _store()
    session["prefs"] = store.persisted_state()
    return jsonify(store.snapshot()), 200


@bp.post("/api/initialize")
def initialize():
    """Load the session user and all shared collections.
    ---
    tags:
      - App
    responses:
      200:
        description: Store state after initialization.
      500:
        description: Initialization failed; the client shows the fatal error screen.
    """
    store = _store()
    if not store.initialize():
        return jsonify({"error": "initialization_failed", "message": store.error}), 500
    return jsonify(store.snapshot()), 200


@bp.post("/api/navigate")
def navigate():
    store = _store()
    route = store.navigate(_payload().get("path", "/"))
    return _respond(store, "route", route)


@bp.post("/api/preferences")
def update_preferences():
    payload = _payload()
    if payload.get("viewMode") not in (None, "artist", "client"):
        return _invalid("viewMode must be 'artist' or 'client'")
    try:
        toggle = _flag(payload, "toggleTheme")
    except ValueError as exc:
        return _invalid(str(exc))
    store = _store()
    if payload.get("viewMode"):
        store.set_view_mode(payload["viewMode"])
    if toggle:
        store.toggle_theme()
    return _respond(store, "preferences", store.persisted_state())


@bp.post("/api/modal")
def open_modal():
    payload = _payload()
    if not payload.get("type"):
        return _invalid("type is required")
    store = _store()
    store.open_modal(payload["type"], payload.get("data"))
    return _respond(store, "modal", store.modal.to_dict())


@bp.delete("/api/modal")
def close_modal():
    store = _store()
    store.close_modal()
    return _respond(store)


@bp.delete("/api/toast")
def dismiss_toast():
    store = _store()
    store.dismiss_toast(request.args.get("id", type=int))
    return _respond(store)


# --- auth ---

@bp.post("/api/auth/login")
def login():
    """Sign in with email and password.
    ---
    tags:
      - Authentication
    parameters:
      - name: body
        in: body
        required: true
        schema:
          type: object
          properties:
            email:
              type: string
            password:
              type: string
    responses:
      200:
        description: Signed in; returns the user.
      400:
        description: Missing email or password.
      401:
        description: Invalid email or password.
    """
    payload = _payload()
    if not payload.get("email") or not payload.get("password"):
        return _invalid("email and password are required")
    store = _store()
    user = store.login({"email": payload["email"], "password": payload["password"]})
    return _respond(store, "user", user)


@bp.post("/api/auth/register")
def register():
    """Create an account and its profile.
    ---
    tags:
      - Authentication
    responses:
      201:
        description: Registered and signed in.
      400:
        description: Invalid payload.
      401:
        description: Email already in use.
    """
    payload = _payload()
    if not payload.get("name") or not payload.get("email") or not payload.get("password"):
        return _invalid("name, email, and password are required")
    if payload.get("type") not in ("artist", "client", "shop-owner", "dual"):
        return _invalid("type must be 'artist', 'client', 'shop-owner' or 'dual'")
    store = _store()
    user = store.register(payload)
    return _respond(store, "user", user, status=201)


@bp.post("/api/auth/logout")
def logout():
    store = _store()
    store.logout()
    response = _respond(store)
    _registry().drop(session.pop("sid", ""))
    return response


@bp.get("/api/auth/me")
def current_user():
    store = _store()
    return jsonify({"user": _dump(store.user)}), 200


# --- notifications ---

@bp.get("/api/notifications")
def list_notifications():
    store = _store()
    store.fetch_notifications()
    return _respond(store, "notifications", store.data.notifications)


@bp.post("/api/notifications/read")
def mark_notifications_read():
    store = _store()
    store.mark_notifications_as_read()
    return _respond(store, "notifications", store.data.notifications)


# --- artist guest-spot bookings ---

@bp.post("/api/bookings/quote")
def booking_quote():
    payload = _payload()
    store = _store()
    booth = next((b for b in store.data.booths if b.id == payload.get("boothId")), None)
    if booth is None:
        return jsonify({"error": "not_found", "message": "Booth not found."}), 404
    try:
        quote = store.booking_quote(booth.daily_rate, _date(payload, "startDate"), _date(payload, "endDate"))
    except ValueError as exc:
        return _invalid(str(exc))
    return jsonify({"quote": quote}), 200


@bp.post("/api/bookings")
def create_booking():
    """Book a booth for a guest spot.
    ---
    tags:
      - Bookings
    responses:
      201:
        description: Booking created, payment due.
      403:
        description: Only artists can book booths.
    """
    payload = _payload()
    try:
        start, end = _date(payload, "startDate"), _date(payload, "endDate")
    except ValueError as exc:
        return _invalid(str(exc))
    store = _store()
    booking = store.confirm_artist_booking(payload.get("boothId"), start, end)
    return _respond(store, "booking", booking, status=201)


@bp.post("/api/bookings/<booking_id>/pay")
def pay_booking(booking_id: str):
    store = _store()
    return _respond(store, "booking", store.pay_booking(booking_id))


# --- client booking requests ---

@bp.post("/api/requests")
def create_request():
    """Send a booking request to an artist, as a client or a guest.
    ---
    tags:
      - Requests
    consumes:
      - application/json
      - multipart/form-data
    responses:
      201:
        description: Request created; reference images uploaded.
    """
    payload = _payload()
    if not payload.get("artistId"):
        return _invalid("artistId is required")
    try:
        _date(payload, "startDate")
        _date(payload, "endDate")
    except ValueError as exc:
        return _invalid(str(exc))
    files = [(f.filename, f.read()) for f in request.files.getlist("references") if f.filename]
    store = _store()
    created = store.send_client_booking_request(payload, files)
    return _respond(store, "request", created, status=201)


@bp.post("/api/requests/<request_id>/respond")
def respond_to_request(request_id: str):
    status = _payload().get("status")
    if status not in ("approved", "declined"):
        return _invalid("status must be 'approved' or 'declined'")
    store = _store()
    return _respond(store, "request", store.respond_to_booking_request(request_id, status))


@bp.post("/api/requests/<request_id>/complete")
def complete_request(request_id: str):
    store = _store()
    return _respond(store, "request", store.update_completion_status(request_id, "completed"))


@bp.post("/api/requests/<request_id>/reschedule")
def reschedule_request(request_id: str):
    payload = _payload()
    try:
        start, end = _date(payload, "startDate"), _date(payload, "endDate")
    except ValueError as exc:
        return _invalid(str(exc))
    store = _store()
    updated = store.reschedule_booking_request(request_id, start, end, payload.get("preferredTime"))
    return _respond(store, "request", updated)


@bp.get("/api/requests/<request_id>/deposit-quote")
def deposit_quote(request_id: str):
    quote = _store().deposit_quote(request_id)
    if quote is None:
        return jsonify({"error": "not_found", "message": "Booking request not found."}), 404
    return jsonify({"quote": quote}), 200


@bp.post("/api/requests/<request_id>/deposit")
def pay_deposit(request_id: str):
    store = _store()
    return _respond(store, "request", store.pay_booking_deposit(request_id))


@bp.post("/api/requests/<request_id>/review")
def review_request(request_id: str):
    payload = _payload()
    try:
        rating = int(payload.get("rating"))
    except (TypeError, ValueError):
        return _invalid("rating must be a number from 1 to 5")
    store = _store()
    return _respond(store, "request", store.submit_review(request_id, rating, payload.get("text") or ""))


# --- profiles, artists & portfolio ---

@bp.patch("/api/me")
def update_me():
    store = _store()
    return _respond(store, "user", store.update_user(_payload()))


@bp.patch("/api/artists/<artist_id>")
def update_artist(artist_id: str):
    store = _store()
    return _respond(store, "artist", store.update_artist(artist_id, _payload()))


@bp.get("/api/artists/<artist_id>/reviews")
def artist_reviews(artist_id: str):
    store = _store()
    try:
        reviews = store.backend.fetch_artist_reviews(artist_id)
    except InkspaceError as exc:
        return jsonify({"error": exc.code, "message": exc.message}), STATUS_CODES.get(exc.code, 500)
    return jsonify({"reviews": _dump(reviews)}), 200


@bp.post("/api/artists/<artist_id>/subscription")
def toggle_subscription(artist_id: str):
    store = _store()
    return _respond(store, "artist", store.toggle_artist_subscription(artist_id))


@bp.put("/api/artists/me/hours")
def save_hours():
    hours = _payload().get("hours")
    if not isinstance(hours, dict):
        return _invalid("hours must map day numbers to time ranges")
    store = _store()
    return _respond(store, "artist", store.save_artist_hours(hours))


@bp.put("/api/artists/me/availability")
def set_availability():
    payload = _payload()
    try:
        day = _date(payload, "date")
    except ValueError as exc:
        return _invalid(str(exc))
    if payload.get("status") not in ("available", "unavailable"):
        return _invalid("status must be 'available' or 'unavailable'")
    store = _store()
    return _respond(store, "availability", store.set_artist_availability(day, payload["status"]))


@bp.post("/api/artists/me/portfolio")
def upload_portfolio():
    upload = _upload("file")
    if upload is None:
        return _invalid("file is required")
    store = _store()
    return _respond(store, "artist", store.upload_portfolio(*upload), status=201)


@bp.put("/api/artists/me/portfolio")
def replace_portfolio_image():
    upload = _upload("file")
    old_url = request.form.get("oldUrl")
    if upload is None or not old_url:
        return _invalid("oldUrl and file are required")
    store = _store()
    return _respond(store, "artist", store.replace_portfolio_image(old_url, *upload))


@bp.delete("/api/artists/me/portfolio")
def delete_portfolio_image():
    url = _payload().get("url")
    if not url:
        return _invalid("url is required")
    store = _store()
    return _respond(store, "artist", store.delete_portfolio_image(url))


@bp.post("/api/artists/me/bio")
def generate_bio():
    """Draft an artist bio with the AI provider.
    ---
    tags:
      - AI
    responses:
      200:
        description: Generated bio text.
      503:
        description: GEMINI_API_KEY is not configured.
      502:
        description: The provider call failed.
    """
    payload = _payload()
    store = _store()
    bio = store.generate_artist_bio(payload.get("name"), payload.get("specialty"))
    return _respond(store, "bio", bio)


@bp.post("/api/artists/me/aftercare")
def send_aftercare():
    client_id = _payload().get("clientId")
    if not client_id:
        return _invalid("clientId is required")
    store = _store()
    return _respond(store, "sent", store.send_aftercare(client_id))


@bp.post("/api/artists/me/healed-photo")
def request_healed_photo():
    client_id = _payload().get("clientId")
    if not client_id:
        return _invalid("clientId is required")
    store = _store()
    return _respond(store, "sent", store.request_healed_photo(client_id))


@bp.get("/api/artists/me/healed-photo-requests")
def pending_healed_photos():
    store = _store()
    return jsonify({"requests": _dump(store.pending_healed_photo_requests())}), 200


# --- shops & booths ---

@bp.post("/api/shops")
def create_shop():
    payload = _payload()
    if not payload.get("name"):
        return _invalid("name is required")
    store = _store()
    return _respond(store, "shop", store.create_shop(payload), status=201)


@bp.patch("/api/shops/<shop_id>")
def update_shop(shop_id: str):
    store = _store()
    return _respond(store, "shop", store.update_shop(shop_id, _payload()))


@bp.delete("/api/shops/<shop_id>")
def delete_shop(shop_id: str):
    store = _store()
    return _respond(store, "deleted", store.delete_shop(shop_id))


@bp.post("/api/shops/<shop_id>/booths")
def add_booth(shop_id: str):
    payload = _payload()
    if not payload.get("name") or payload.get("dailyRate") is None:
        return _invalid("name and dailyRate are required")
    store = _store()
    return _respond(store, "booth", store.add_booth(shop_id, payload), status=201)


@bp.patch("/api/booths/<booth_id>")
def update_booth(booth_id: str):
    store = _store()
    return _respond(store, "booth", store.update_booth(booth_id, _payload()))


@bp.delete("/api/booths/<booth_id>")
def delete_booth(booth_id: str):
    store = _store()
    return _respond(store, "deleted", store.delete_booth(booth_id))


@bp.post("/api/shops/<shop_id>/reviews")
def review_shop(shop_id: str):
    payload = _payload()
    try:
        rating = float(payload.get("rating"))
    except (TypeError, ValueError):
        return _invalid("rating must be a number")
    store = _store()
    return _respond(store, "shop", store.submit_shop_review(shop_id, rating, payload.get("text") or ""), status=201)


# --- messaging ---

@bp.get("/api/conversations")
def list_conversations():
    store = _store()
    store.load_conversations()
    return _respond(store, "conversations", store.data.conversations)


@bp.post("/api/conversations")
def start_conversation():
    other = _payload().get("userId")
    if not other:
        return _invalid("userId is required")
    store = _store()
    return _respond(store, "conversation", store.start_conversation(other), status=201)


@bp.post("/api/conversations/select")
def select_conversation():
    store = _store()
    store.select_conversation(_payload().get("conversationId"))
    return _respond(store, "messages", store.data.messages)


@bp.post("/api/messages")
def send_message():
    payload = _payload()
    store = _store()
    message = store.send_message(payload.get("content") or "", _upload("attachment"))
    if message is None and store.last_failure is None:
        return _invalid("an active conversation and text or an attachment are required")
    return _respond(store, "message", message, status=201)


# --- verification ---

@bp.post("/api/verification-requests")
def request_verification():
    payload = _payload()
    if payload.get("type") not in ("artist", "shop") or not payload.get("itemId"):
        return _invalid("type ('artist' or 'shop') and itemId are required")
    store = _store()
    created = store.request_verification(payload["type"], payload["itemId"])
    return _respond(store, "verificationRequest", created, status=201)


@bp.post("/api/verification-requests/<request_id>")
def decide_verification(request_id: str):
    status = _payload().get("status")
    if status not in ("approved", "rejected"):
        return _invalid("status must be 'approved' or 'rejected'")
    store = _store()
    return _respond(store, "verificationRequest", store.respond_to_verification_request(request_id, status))


# --- admin ---

@bp.patch("/api/admin/users/<user_id>")
def admin_update_user(user_id: str):
    payload = _payload()
    try:
        is_verified = _flag(payload, "isVerified")
    except ValueError as exc:
        return _invalid(str(exc))
    store = _store()
    updated = store.admin_update_user(user_id, name=payload.get("name"), role=payload.get("role"), is_verified=is_verified)
    return _respond(store, "user", updated)


@bp.delete("/api/admin/users/<user_id>")
def admin_delete_user(user_id: str):
    store = _store()
    return _respond(store, "deleted", store.delete_user(user_id))


@bp.patch("/api/admin/shops/<shop_id>")
def admin_update_shop(shop_id: str):
    payload = _payload()
    try:
        is_verified = _flag(payload, "isVerified")
    except ValueError as exc:
        return _invalid(str(exc))
    store = _store()
    return _respond(store, "shop", store.admin_update_shop(shop_id, name=payload.get("name"), is_verified=is_verified))


# --- provider configuration ---

@bp.get("/api/config/maps")
def maps_config():
    """Report whether the maps provider is configured.
    ---
    tags:
      - Config
    responses:
      200:
        description: The maps key the client should load the maps script with.
      503:
        description: GOOGLE_MAPS_API_KEY is not configured.
    """
    key = current_app.config.get("GOOGLE_MAPS_API_KEY")
    if not key:
        return (
            jsonify({"error": "configuration_error", "message": "Google Maps API key is not configured."}),
            503,
        )
    return jsonify({"configured": True, "apiKey": key}), 200


def register_routes(app: Flask) -> None:
    app.register_blueprint(bp)
