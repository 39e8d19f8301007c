"""Status rules for client booking requests.

pending -> approved | declined; approved -> completed. Any non-terminal
request (pending, approved, rescheduled) may be rescheduled, which moves
new dates in and leaves it approved-equivalent. declined and completed
are terminal.
"""
from __future__ import annotations

from .errors import InvalidTransitionError

TERMINAL_STATUSES = frozenset({"declined", "completed"})
APPROVED_EQUIVALENT = frozenset({"approved", "rescheduled"})

ALLOWED_TRANSITIONS = {
    "pending": frozenset({"approved", "declined", "rescheduled"}),
    "approved": frozenset({"completed", "rescheduled"}),
    "rescheduled": frozenset({"completed", "rescheduled"}),
    "declined": frozenset(),
    "completed": frozenset(),
}

ARTIST_ONLY_STATUSES = frozenset({"approved", "declined", "completed"})

STATUS_MESSAGES = {
    "approved": "{artist} approved your booking request.",
    "declined": "{artist} declined your booking request.",
    "completed": "{artist} marked your session as completed.",
    "rescheduled": "Your booking with {artist} was rescheduled.",
}


def check_transition(current: str, new: str) -> None:
    if new not in ALLOWED_TRANSITIONS.get(current, frozenset()):
        raise InvalidTransitionError(f"Cannot change a {current} request to {new}.")


def can_review(status: str, review_rating: object) -> bool:
    return status == "completed" and review_rating is None


def status_notification_message(artist_name: str, status: str) -> str:
    """Client-facing text; always contains the artist name and the status."""
    template = STATUS_MESSAGES.get(status, "Your booking with {artist} is now {status}.")
    text = template.format(artist=artist_name, status=status)
    if status not in text:
        text = f"{text} (status: {status})"
    return text
