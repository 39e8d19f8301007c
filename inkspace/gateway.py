"""Backend gateway: the only code that talks to the data store and object storage.

Every operation takes domain-shaped input and returns domain records built by
:mod:`inkspace.adapters`. Database failures are rolled back, logged and raised
as :class:`~inkspace.errors.GatewayError`; rows that belong together are
written in one transaction.
"""
from __future__ import annotations

import logging
from collections import defaultdict
from datetime import date
from typing import Iterable, Mapping, Optional, get_args

from pydantic import ValidationError
from sqlalchemy import and_, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import joinedload

from . import adapters, models, storage
from .domain import (Artist, ArtistAvailability, Booking, Booth,
                     ClientBookingRequest, Conversation, ConversationWithUser,
                     InitialData, Message, Notification, PortfolioImage, Review,
                     Shop, User, UserRole, VerificationRequest)
from .errors import (DuplicateReviewError, GatewayError, InitializationError,
                     InvalidInputError, InvalidTransitionError, NotFoundError)
from .extensions import db
from .lifecycle import (APPROVED_EQUIVALENT, check_transition,
                        status_notification_message)
from .models import new_id, utc_now

logger = logging.getLogger(__name__)


def average_ratings(requests: Iterable[ClientBookingRequest]) -> dict[str, float]:
    """Mean review rating per artist id, over reviewed requests only."""
    ratings: dict[str, list[int]] = defaultdict(list)
    for item in requests:
        if item.review_rating:
            ratings[item.artist_id].append(item.review_rating)
    return {artist_id: sum(values) / len(values) for artist_id, values in ratings.items()}


def _failed(action: str, exc: Exception) -> GatewayError:
    db.session.rollback()
    logger.exception("%s", action, exc_info=exc)
    return GatewayError(f"{action}.")


class BackendGateway:
    def __init__(self, object_storage: storage.ObjectStorage) -> None:
        self.storage = object_storage

    # --- lookups ---

    @staticmethod
    def _get(model, row_id: str, label: str):
        row = db.session.get(model, row_id) if row_id else None
        if row is None:
            raise NotFoundError(f"{label} not found.")
        return row

    @staticmethod
    def _request_row(request_id: str) -> models.ClientBookingRequest:
        row = (
            models.ClientBookingRequest.query.options(
                joinedload(models.ClientBookingRequest.client),
                joinedload(models.ClientBookingRequest.artist),
            )
            .filter_by(id=request_id)
            .first()
        )
        if row is None:
            raise NotFoundError("Booking request not found.")
        return row

    @staticmethod
    def _shop_ids_by_owner() -> dict[str, str]:
        return {
            shop.owner_id: shop.id
            for shop in models.Shop.query.filter(models.Shop.owner_id.isnot(None)).all()
        }

    # --- users & profiles ---

    def fetch_all_users(self) -> list[User]:
        try:
            shop_ids = self._shop_ids_by_owner()
            profiles = models.Profile.query.order_by(models.Profile.full_name).all()
        except SQLAlchemyError as exc:
            raise _failed("Failed to fetch users", exc) from exc
        users = (adapters.user_from_profile(p, shop_ids.get(p.id)) for p in profiles)
        return [user for user in users if user is not None]

    def get_profile(self, user_id: str) -> Optional[User]:
        try:
            profile = db.session.get(models.Profile, user_id)
            shop_id = None
            if profile is not None and profile.role == "shop-owner":
                shop = models.Shop.query.filter_by(owner_id=user_id).first()
                shop_id = shop.id if shop else None
        except SQLAlchemyError as exc:
            raise _failed("Failed to fetch profile", exc) from exc
        return adapters.user_from_profile(profile, shop_id)

    def fetch_initial_data(self) -> InitialData:
        """Load every shared collection, or fail as a whole.

        Any failing query aborts the load with one :class:`InitializationError`;
        no partially populated result is ever returned.
        """
        try:
            artist_rows = (
                models.Profile.query.filter(models.Profile.role.in_(("artist", "dual")))
                .order_by(models.Profile.full_name)
                .all()
            )
            shops = [adapters.shop_from_row(row) for row in models.Shop.query.order_by(models.Shop.name).all()]
            booths = [adapters.booth_from_row(row) for row in models.Booth.query.all()]
            bookings = [
                adapters.booking_from_row(row, shops)
                for row in models.Booking.query.order_by(models.Booking.start_date).all()
            ]
            requests = [
                adapters.client_booking_request_from_row(row)
                for row in models.ClientBookingRequest.query.options(
                    joinedload(models.ClientBookingRequest.client),
                    joinedload(models.ClientBookingRequest.artist),
                )
                .order_by(models.ClientBookingRequest.created_at.desc())
                .all()
            ]
            availability = [adapters.availability_from_row(row) for row in models.ArtistAvailability.query.all()]
            verifications = [
                adapters.verification_request_from_row(row)
                for row in models.VerificationRequest.query.options(
                    joinedload(models.VerificationRequest.profile),
                    joinedload(models.VerificationRequest.shop),
                )
                .order_by(models.VerificationRequest.created_at.desc())
                .all()
            ]
            ratings = average_ratings(requests)
            artists = [
                adapters.artist_from_row(row).model_copy(update={"average_rating": ratings.get(row.id, 0.0)})
                for row in artist_rows
            ]
        except (SQLAlchemyError, ValidationError) as exc:
            db.session.rollback()
            logger.exception("Failed to fetch initial data", exc_info=exc)
            raise InitializationError(f"Failed to fetch initial data: {exc}") from exc

        return InitialData(
            artists=artists,
            shops=shops,
            booths=booths,
            bookings=bookings,
            client_booking_requests=requests,
            artist_availability=availability,
            verification_requests=verifications,
        )

    def update_user_data(self, user_id: str, changes: Mapping[str, object]) -> None:
        """Update the basic profile fields shared by every role (name, city)."""
        try:
            profile = self._get(models.Profile, user_id, "Profile")
            if changes.get("name"):
                profile.full_name = str(changes["name"])
            if "city" in changes:
                profile.city = changes["city"]
            db.session.commit()
        except SQLAlchemyError as exc:
            raise _failed("Failed to update profile", exc) from exc

    def update_artist_data(self, artist_id: str, changes: Mapping[str, object]) -> Artist:
        try:
            columns = adapters.artist_update_to_columns(changes)
        except (ValueError, ValidationError) as exc:
            raise InvalidInputError(f"Invalid artist details: {exc}") from exc
        try:
            profile = self._get(models.Profile, artist_id, "Artist")
            for column, value in columns.items():
                setattr(profile, column, value)
            db.session.commit()
        except SQLAlchemyError as exc:
            raise _failed("Failed to update artist", exc) from exc
        return adapters.artist_from_row(profile)

    def save_artist_hours(self, artist_id: str, hours: Mapping[int, list]) -> Artist:
        return self.update_artist_data(artist_id, {"hours": hours})

    # --- portfolio ---

    def _store_portfolio_file(self, user_id: str, filename: str, content: bytes) -> str:
        path = storage.timestamped_path(user_id, filename)
        try:
            return self.storage.upload(storage.PORTFOLIOS, path, content)
        except (OSError, ValueError) as exc:
            logger.exception("Failed to upload portfolio image for %s", user_id, exc_info=exc)
            raise GatewayError("Failed to upload image.") from exc

    def upload_portfolio_image(self, user_id: str, filename: str, content: bytes) -> PortfolioImage:
        try:
            profile = self._get(models.Profile, user_id, "Artist")
        except SQLAlchemyError as exc:
            raise _failed("Failed to fetch artist", exc) from exc
        url = self._store_portfolio_file(user_id, filename, content)
        image = PortfolioImage(url=url, is_ai_generated=False)
        try:
            profile.portfolio = [*(profile.portfolio or []), image.model_dump(mode="json")]
            db.session.commit()
        except SQLAlchemyError as exc:
            raise _failed("Failed to save portfolio", exc) from exc
        return image

    def replace_portfolio_image(self, user_id: str, old_url: str, filename: str, content: bytes) -> Artist:
        """Swap one portfolio image for a new upload.

        The profile is rewritten first; removing the old file afterwards is
        best effort and only logged when it fails.
        """
        try:
            profile = self._get(models.Profile, user_id, "Artist")
        except SQLAlchemyError as exc:
            raise _failed("Failed to fetch artist", exc) from exc
        portfolio = list(profile.portfolio or [])
        if not any(item.get("url") == old_url for item in portfolio):
            raise NotFoundError("Portfolio image not found.")

        new_url = self._store_portfolio_file(user_id, filename, content)
        try:
            profile.portfolio = [
                {**item, "url": new_url, "is_ai_generated": False} if item.get("url") == old_url else item
                for item in portfolio
            ]
            db.session.commit()
        except SQLAlchemyError as exc:
            raise _failed("Failed to save portfolio", exc) from exc

        self.delete_portfolio_image_from_storage(old_url)
        return adapters.artist_from_row(profile)

    def delete_portfolio_image_from_storage(self, url: str) -> bool:
        path = self.storage.path_from_public_url(storage.PORTFOLIOS, url)
        if path is None:
            logger.warning("Not a stored portfolio image, skipping delete: %s", url)
            return False
        try:
            self.storage.remove(storage.PORTFOLIOS, [path])
        except (OSError, ValueError) as exc:
            logger.error("Failed to delete old portfolio image %s: %s", url, exc)
            return False
        return True

    # --- shops & booths ---

    def create_shop(self, shop_data: Mapping[str, object], owner_id: str) -> Shop:
        """Create a shop owned by ``owner_id``; it starts unverified and unrated."""
        if not shop_data.get("name"):
            raise InvalidInputError("Invalid shop details: name is required.")
        try:
            columns = adapters.shop_update_to_columns(shop_data)
        except (ValueError, ValidationError) as exc:
            raise InvalidInputError(f"Invalid shop details: {exc}") from exc
        if not columns.get("image_url"):
            columns["image_url"] = adapters.placeholder_image(columns["name"])
        try:
            row = models.Shop(id=new_id(), owner_id=owner_id, **columns)
            db.session.add(row)
            db.session.commit()
        except SQLAlchemyError as exc:
            raise _failed("Failed to create shop", exc) from exc
        return adapters.shop_from_row(row)

    def update_shop_data(self, shop_id: str, changes: Mapping[str, object]) -> Shop:
        try:
            columns = adapters.shop_update_to_columns(changes)
        except (ValueError, ValidationError) as exc:
            raise InvalidInputError(f"Invalid shop details: {exc}") from exc
        try:
            row = self._get(models.Shop, shop_id, "Shop")
            for column, value in columns.items():
                setattr(row, column, value)
            db.session.commit()
        except SQLAlchemyError as exc:
            raise _failed("Failed to update shop", exc) from exc
        return adapters.shop_from_row(row)

    def delete_shop(self, shop_id: str) -> None:
        """Delete a shop with its booths, their bookings and its verification requests."""
        try:
            row = self._get(models.Shop, shop_id, "Shop")
            self._delete_shop_rows(row)
            db.session.commit()
        except SQLAlchemyError as exc:
            raise _failed("Failed to delete shop", exc) from exc

    @staticmethod
    def _delete_shop_rows(row: models.Shop) -> None:
        models.Booking.query.filter_by(shop_id=row.id).delete(synchronize_session=False)
        models.VerificationRequest.query.filter_by(shop_id=row.id).delete(synchronize_session=False)
        db.session.delete(row)

    def add_booth(self, shop_id: str, booth_data: Mapping[str, object]) -> Booth:
        try:
            booth = Booth.model_validate({**booth_data, "id": new_id(), "shopId": shop_id})
        except ValidationError as exc:
            raise InvalidInputError(f"Invalid booth details: {exc}") from exc
        try:
            self._get(models.Shop, shop_id, "Shop")
            row = models.Booth(**adapters.booth_to_row(booth))
            db.session.add(row)
            db.session.commit()
        except SQLAlchemyError as exc:
            raise _failed("Failed to add booth", exc) from exc
        return adapters.booth_from_row(row)

    def update_booth(self, booth_id: str, changes: Mapping[str, object]) -> Booth:
        try:
            columns = adapters.booth_update_to_columns(changes)
        except (ValueError, ValidationError) as exc:
            raise InvalidInputError(f"Invalid booth details: {exc}") from exc
        try:
            row = self._get(models.Booth, booth_id, "Booth")
            for column, value in columns.items():
                setattr(row, column, value)
            db.session.commit()
        except SQLAlchemyError as exc:
            raise _failed("Failed to update booth", exc) from exc
        return adapters.booth_from_row(row)

    def delete_booth(self, booth_id: str) -> None:
        try:
            row = self._get(models.Booth, booth_id, "Booth")
            models.Booking.query.filter_by(booth_id=booth_id).delete(synchronize_session=False)
            db.session.delete(row)
            db.session.commit()
        except SQLAlchemyError as exc:
            raise _failed("Failed to delete booth", exc) from exc

    def add_review_to_shop(self, shop_id: str, review_data: Mapping[str, object]) -> Shop:
        """Append a review and set the shop rating to the mean of all reviews."""
        try:
            review = Review.model_validate({**review_data, "id": new_id(), "createdAt": utc_now()})
        except ValidationError as exc:
            raise InvalidInputError(f"Invalid review: {exc}") from exc
        try:
            row = self._get(models.Shop, shop_id, "Shop")
            reviews = [*(row.reviews or []), review.model_dump(mode="json")]
            row.reviews = reviews
            row.rating = sum(float(r["rating"]) for r in reviews) / len(reviews)
            db.session.commit()
        except SQLAlchemyError as exc:
            raise _failed("Failed to add review", exc) from exc
        return adapters.shop_from_row(row)

    # --- artist guest-spot bookings ---

    def create_booking_for_artist(
        self,
        artist_id: str,
        booth_id: str,
        start_date: date,
        end_date: date,
        total_amount: float,
        platform_fee: float,
    ) -> Booking:
        try:
            booth = self._get(models.Booth, booth_id, "Booth")
            row = models.Booking(
                artist_id=artist_id,
                booth_id=booth.id,
                shop_id=booth.shop_id,
                start_date=start_date,
                end_date=end_date,
                payment_status="unpaid",
                total_amount=total_amount,
                platform_fee=platform_fee,
            )
            db.session.add(row)
            db.session.commit()
        except SQLAlchemyError as exc:
            raise _failed("Failed to create booking", exc) from exc
        return adapters.booking_from_row(row, [adapters.shop_from_row(booth.shop)])

    def pay_booking(self, booking_id: str) -> Booking:
        """Mark a booking paid. Payment is one-way: paying twice is an error."""
        try:
            row = self._get(models.Booking, booking_id, "Booking")
            if row.payment_status == "paid":
                raise InvalidTransitionError("This booking is already paid.")
            row.payment_status = "paid"
            row.paid_at = utc_now()
            db.session.commit()
            shop = db.session.get(models.Shop, row.shop_id)
        except SQLAlchemyError as exc:
            raise _failed("Failed to pay booking", exc) from exc
        shops = [adapters.shop_from_row(shop)] if shop else []
        return adapters.booking_from_row(row, shops)

    # --- client booking requests ---

    def upload_booking_reference_image(self, request_id: str, index: int, filename: str, content: bytes) -> str:
        path = f"{request_id}/{index}.{storage.file_extension(filename)}"
        try:
            return self.storage.upload(storage.BOOKING_REFERENCES, path, content, upsert=True)
        except (OSError, ValueError) as exc:
            logger.exception("Failed to upload reference image for request %s", request_id, exc_info=exc)
            raise GatewayError("Failed to upload reference image.") from exc

    def create_client_booking_request(self, data: Mapping[str, object]) -> ClientBookingRequest:
        """Insert a request and open the client/artist conversation with its message.

        The request, the (possibly new) conversation and the first message are
        committed together. Guest requests have no client account and skip
        the conversation.
        """
        try:
            draft = ClientBookingRequest.model_validate(
                {**data, "id": new_id(), "status": "pending", "paymentStatus": "unpaid"}
            )
        except ValidationError as exc:
            raise InvalidInputError(f"Invalid booking request: {exc}") from exc

        try:
            self._get(models.Profile, draft.artist_id, "Artist")
            row = models.ClientBookingRequest(**adapters.client_booking_request_to_row(draft))
            db.session.add(row)
            if draft.client_id:
                conversation = self._conversation_row(draft.client_id, draft.artist_id)
                db.session.add(
                    models.Message(
                        conversation_id=conversation.id,
                        sender_id=draft.client_id,
                        content=draft.message,
                    )
                )
            db.session.commit()
            created = self._request_row(row.id)
        except SQLAlchemyError as exc:
            raise _failed("Failed to create booking request", exc) from exc
        return adapters.client_booking_request_from_row(created)

    def get_client_booking_request(self, request_id: str) -> ClientBookingRequest:
        try:
            row = self._request_row(request_id)
        except SQLAlchemyError as exc:
            raise _failed("Failed to fetch booking request", exc) from exc
        return adapters.client_booking_request_from_row(row)

    def update_client_booking_request(self, request_id: str, reference_image_urls: list[str]) -> ClientBookingRequest:
        try:
            row = self._request_row(request_id)
            row.reference_image_urls = list(reference_image_urls)
            db.session.commit()
        except SQLAlchemyError as exc:
            raise _failed("Failed to update booking request", exc) from exc
        return adapters.client_booking_request_from_row(row)

    @staticmethod
    def _notify_client(row: models.ClientBookingRequest) -> None:
        if not row.client_id:
            logger.info("Request %s belongs to a guest; no notification stored", row.id)
            return
        artist_name = row.artist.full_name if row.artist is not None else "Your artist"
        db.session.add(
            models.Notification(
                user_id=row.client_id,
                message=status_notification_message(artist_name, row.status),
            )
        )

    def update_client_booking_request_status(self, request_id: str, status: str) -> ClientBookingRequest:
        """Move a request to ``status`` and notify its client in the same commit."""
        try:
            row = self._request_row(request_id)
            check_transition(row.status, status)
            row.status = status
            self._notify_client(row)
            db.session.commit()
        except SQLAlchemyError as exc:
            raise _failed("Failed to update booking status", exc) from exc
        return adapters.client_booking_request_from_row(row)

    def reschedule_client_booking_request(
        self, request_id: str, start_date: date, end_date: date, preferred_time: Optional[str] = None
    ) -> ClientBookingRequest:
        if end_date < start_date:
            raise InvalidInputError("End date must not be before start date.")
        try:
            row = self._request_row(request_id)
            check_transition(row.status, "rescheduled")
            row.start_date = start_date
            row.end_date = end_date
            if preferred_time is not None:
                row.preferred_time = preferred_time
            row.status = "rescheduled"
            self._notify_client(row)
            db.session.commit()
        except SQLAlchemyError as exc:
            raise _failed("Failed to reschedule booking", exc) from exc
        return adapters.client_booking_request_from_row(row)

    def pay_client_booking_deposit(self, request_id: str, platform_fee: float) -> ClientBookingRequest:
        try:
            row = self._request_row(request_id)
            if row.status not in APPROVED_EQUIVALENT:
                raise InvalidTransitionError("Only approved requests can take a deposit.")
            if row.payment_status == "paid":
                raise InvalidTransitionError("This deposit is already paid.")
            row.payment_status = "paid"
            row.deposit_paid_at = utc_now()
            row.platform_fee = platform_fee
            db.session.commit()
        except SQLAlchemyError as exc:
            raise _failed("Failed to record deposit payment", exc) from exc
        return adapters.client_booking_request_from_row(row)

    def submit_review(self, request_id: str, rating: int, text: str) -> ClientBookingRequest:
        """Attach the single review a completed request may carry."""
        if not 1 <= int(rating) <= 5:
            raise InvalidInputError("Rating must be between 1 and 5.")
        try:
            row = self._request_row(request_id)
            if row.status != "completed":
                raise InvalidTransitionError("Only completed requests can be reviewed.")
            if row.review_rating is not None:
                raise DuplicateReviewError("This request has already been reviewed.")
            row.review_rating = int(rating)
            row.review_text = text
            row.review_submitted_at = utc_now()
            db.session.commit()
        except SQLAlchemyError as exc:
            raise _failed("Failed to submit review", exc) from exc
        return adapters.client_booking_request_from_row(row)

    def fetch_artist_reviews(self, artist_id: str) -> list[Review]:
        try:
            rows = (
                models.ClientBookingRequest.query.options(joinedload(models.ClientBookingRequest.client))
                .filter(
                    models.ClientBookingRequest.artist_id == artist_id,
                    models.ClientBookingRequest.review_rating.isnot(None),
                )
                .order_by(models.ClientBookingRequest.review_submitted_at.desc())
                .all()
            )
        except SQLAlchemyError as exc:
            raise _failed("Failed to fetch reviews", exc) from exc
        reviews = (adapters.review_from_request_row(row) for row in rows)
        return [review for review in reviews if review is not None]

    # --- availability ---

    def set_artist_availability(self, artist_id: str, day: date, status: str) -> ArtistAvailability:
        """Upsert the override for one artist and date."""
        if status not in ("available", "unavailable"):
            raise InvalidInputError(f"Unknown availability status: {status}")
        try:
            row = models.ArtistAvailability.query.filter_by(artist_id=artist_id, date=day).first()
            if row is None:
                row = models.ArtistAvailability(artist_id=artist_id, date=day, status=status)
                db.session.add(row)
            else:
                row.status = status
            db.session.commit()
        except SQLAlchemyError as exc:
            raise _failed("Failed to update availability", exc) from exc
        return adapters.availability_from_row(row)

    # --- notifications ---

    def fetch_notifications_for_user(self, user_id: str) -> list[Notification]:
        try:
            rows = (
                models.Notification.query.filter_by(user_id=user_id)
                .order_by(models.Notification.created_at.desc())
                .all()
            )
        except SQLAlchemyError as exc:
            raise _failed("Failed to fetch notifications", exc) from exc
        return [adapters.notification_from_row(row) for row in rows]

    def mark_user_notifications_as_read(self, user_id: str) -> int:
        try:
            updated = (
                models.Notification.query.filter_by(user_id=user_id, read=False)
                .update({"read": True}, synchronize_session=False)
            )
            db.session.commit()
        except SQLAlchemyError as exc:
            raise _failed("Failed to mark notifications as read", exc) from exc
        return updated

    def create_notification(self, user_id: str, message: str) -> Notification:
        try:
            row = models.Notification(user_id=user_id, message=message)
            db.session.add(row)
            db.session.commit()
        except SQLAlchemyError as exc:
            raise _failed("Failed to create notification", exc) from exc
        return adapters.notification_from_row(row)

    # --- messaging ---

    @staticmethod
    def _conversation_row(user_one: str, user_two: str) -> models.Conversation:
        """Find the conversation between two users in either order, or add one (uncommitted)."""
        Conv = models.Conversation
        row = Conv.query.filter(
            or_(
                and_(Conv.participant_one_id == user_one, Conv.participant_two_id == user_two),
                and_(Conv.participant_one_id == user_two, Conv.participant_two_id == user_one),
            )
        ).first()
        if row is None:
            row = Conv(participant_one_id=user_one, participant_two_id=user_two)
            db.session.add(row)
            db.session.flush()
        return row

    def find_or_create_conversation(self, user_one: str, user_two: str) -> Conversation:
        if user_one == user_two:
            raise InvalidInputError("Cannot start a conversation with yourself.")
        try:
            row = self._conversation_row(user_one, user_two)
            db.session.commit()
        except SQLAlchemyError as exc:
            raise _failed("Failed to open conversation", exc) from exc
        return adapters.conversation_from_row(row)

    def get_conversation(self, conversation_id: str) -> Conversation:
        try:
            row = self._get(models.Conversation, conversation_id, "Conversation")
        except SQLAlchemyError as exc:
            raise _failed("Failed to fetch conversation", exc) from exc
        return adapters.conversation_from_row(row)

    def fetch_user_conversations(self, user_id: str) -> list[ConversationWithUser]:
        Conv = models.Conversation
        try:
            rows = (
                Conv.query.filter(or_(Conv.participant_one_id == user_id, Conv.participant_two_id == user_id))
                .order_by(Conv.created_at.desc())
                .all()
            )
            other_ids = {r.participant_two_id if r.participant_one_id == user_id else r.participant_one_id for r in rows}
            names = {
                p.id: p.full_name
                for p in models.Profile.query.filter(models.Profile.id.in_(other_ids)).all()
            } if other_ids else {}
        except SQLAlchemyError as exc:
            raise _failed("Failed to fetch conversations", exc) from exc
        return [adapters.conversation_with_user_from_row(row, user_id, names) for row in rows]

    def fetch_messages_for_conversation(self, conversation_id: str) -> list[Message]:
        try:
            rows = (
                models.Message.query.filter_by(conversation_id=conversation_id)
                .order_by(models.Message.created_at.asc())
                .all()
            )
        except SQLAlchemyError as exc:
            raise _failed("Failed to fetch messages", exc) from exc
        return [adapters.message_from_row(row) for row in rows]

    def send_message(
        self,
        conversation_id: str,
        sender_id: str,
        content: Optional[str] = None,
        attachment_url: Optional[str] = None,
    ) -> Message:
        if not (content and content.strip()) and not attachment_url:
            raise InvalidInputError("A message needs text or an attachment.")
        try:
            self._get(models.Conversation, conversation_id, "Conversation")
            row = models.Message(
                conversation_id=conversation_id,
                sender_id=sender_id,
                content=content or None,
                attachment_url=attachment_url,
            )
            db.session.add(row)
            db.session.commit()
        except SQLAlchemyError as exc:
            raise _failed("Failed to send message", exc) from exc
        return adapters.message_from_row(row)

    def send_system_message(self, conversation_id: str, sender_id: str, content: str) -> Message:
        return self.send_message(conversation_id, sender_id, content=content)

    def upload_message_attachment(self, conversation_id: str, filename: str, content: bytes) -> str:
        path = storage.timestamped_path(conversation_id, filename)
        try:
            return self.storage.upload(storage.MESSAGE_ATTACHMENTS, path, content)
        except (OSError, ValueError) as exc:
            logger.exception("Failed to upload attachment for %s", conversation_id, exc_info=exc)
            raise GatewayError("Failed to upload attachment.") from exc

    # --- verification ---

    def create_verification_request(self, kind: str, item_id: str, profile_id: str) -> VerificationRequest:
        try:
            pending = models.VerificationRequest.query.filter_by(
                type=kind,
                status="pending",
                **({"shop_id": item_id} if kind == "shop" else {"profile_id": item_id}),
            ).first()
            if pending is not None:
                raise InvalidTransitionError("A verification request is already pending.")
            row = models.VerificationRequest(
                type=kind,
                profile_id=item_id if kind == "artist" else profile_id,
                shop_id=item_id if kind == "shop" else None,
                status="pending",
            )
            db.session.add(row)
            db.session.commit()
        except SQLAlchemyError as exc:
            raise _failed("Failed to request verification", exc) from exc
        return adapters.verification_request_from_row(row)

    def update_verification_request(self, request_id: str, status: str) -> VerificationRequest:
        """Decide a pending request; approval sets the verified flag in the same commit."""
        if status not in ("approved", "rejected"):
            raise InvalidInputError(f"Unknown verification decision: {status}")
        try:
            row = self._get(models.VerificationRequest, request_id, "Verification request")
            if row.status != "pending":
                raise InvalidTransitionError("This verification request was already decided.")
            row.status = status
            if status == "approved":
                if row.type == "artist":
                    self._get(models.Profile, row.profile_id, "Profile").is_verified = True
                else:
                    self._get(models.Shop, row.shop_id, "Shop").is_verified = True
            db.session.commit()
        except SQLAlchemyError as exc:
            raise _failed("Failed to update verification request", exc) from exc
        except NotFoundError:
            db.session.rollback()
            raise
        return adapters.verification_request_from_row(row)

    # --- admin ---

    def admin_update_user_profile(
        self, user_id: str, name: Optional[str] = None, role: Optional[str] = None, is_verified: Optional[bool] = None
    ) -> Optional[User]:
        if role and role not in get_args(UserRole):
            raise InvalidInputError(f"Unknown role: {role}")
        try:
            profile = self._get(models.Profile, user_id, "User")
            if name:
                profile.full_name = name
            if role:
                profile.role = role
            if is_verified is not None:
                profile.is_verified = bool(is_verified)
            db.session.commit()
        except SQLAlchemyError as exc:
            raise _failed("Failed to update user", exc) from exc
        return self.get_profile(user_id)

    def admin_update_shop_details(
        self, shop_id: str, name: Optional[str] = None, is_verified: Optional[bool] = None
    ) -> Shop:
        try:
            row = self._get(models.Shop, shop_id, "Shop")
            if name:
                row.name = name
            if is_verified is not None:
                row.is_verified = bool(is_verified)
            db.session.commit()
        except SQLAlchemyError as exc:
            raise _failed("Failed to update shop", exc) from exc
        return adapters.shop_from_row(row)

    def delete_user_as_admin(self, user_id: str) -> None:
        """Remove a user with every row that belongs to them."""
        Req = models.ClientBookingRequest
        Conv = models.Conversation
        try:
            profile = self._get(models.Profile, user_id, "User")
            for shop in models.Shop.query.filter_by(owner_id=user_id).all():
                self._delete_shop_rows(shop)
            Req.query.filter(or_(Req.client_id == user_id, Req.artist_id == user_id)).delete(
                synchronize_session=False
            )
            models.Booking.query.filter_by(artist_id=user_id).delete(synchronize_session=False)
            models.ArtistAvailability.query.filter_by(artist_id=user_id).delete(synchronize_session=False)
            models.VerificationRequest.query.filter_by(profile_id=user_id).delete(synchronize_session=False)
            models.Notification.query.filter_by(user_id=user_id).delete(synchronize_session=False)
            for conversation in Conv.query.filter(
                or_(Conv.participant_one_id == user_id, Conv.participant_two_id == user_id)
            ).all():
                db.session.delete(conversation)
            models.AuthAccount.query.filter_by(id=user_id).delete(synchronize_session=False)
            db.session.delete(profile)
            db.session.commit()
        except SQLAlchemyError as exc:
            raise _failed("Failed to delete user", exc) from exc
