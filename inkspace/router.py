"""Path-based page selection for the single-page client."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from .domain import User, is_artist

LANDING = "landing"

# Fixed single-segment pages
PAGES = {
    "profile": "profile",
    "artist-dashboard": "artist-dashboard",
    "dashboard": "dashboard",
    "admin": "admin",
    "bookings": "bookings",
    "settings": "settings",
    "onboarding": "onboarding",
}

# Search pages pick the view mode: finding artists is the client view,
# finding shops is the artist view
SEARCH_VIEW_MODES = {"artists": "client", "shops": "artist"}


@dataclass(frozen=True)
class PageRoute:
    page: str
    params: dict[str, str] = field(default_factory=dict)
    view_mode: Optional[str] = None

    def to_dict(self) -> dict[str, object]:
        return {"page": self.page, "params": dict(self.params), "viewMode": self.view_mode}


def resolve(path: str) -> PageRoute:
    """Map a client path to its page; unknown paths land on the landing page."""
    segments = [s for s in (path or "").split("?", 1)[0].split("/") if s]
    if not segments:
        return PageRoute(LANDING)

    head, rest = segments[0], segments[1:]
    if head in SEARCH_VIEW_MODES and not rest:
        return PageRoute("search", {"type": head}, SEARCH_VIEW_MODES[head])
    if head == "messages" and len(rest) <= 1:
        return PageRoute("messages", {"conversationId": rest[0]} if rest else {})
    if head in PAGES and not rest:
        return PageRoute(PAGES[head])
    return PageRoute(LANDING)


def access_error(route: PageRoute, user: Optional[User]) -> Optional[str]:
    """Message shown instead of a page the user may not see, or None."""
    if route.page in (LANDING, "search"):
        return None
    if user is None:
        return "Please log in to view this page."
    if route.page == "profile" and not (is_artist(user) or user.type == "client"):
        return "Profile view not available for your user type."
    if route.page == "artist-dashboard" and not is_artist(user):
        return "You do not have access to the artist dashboard."
    if route.page == "dashboard" and user.type != "shop-owner":
        return "You do not have access to a dashboard."
    if route.page == "onboarding" and user.type != "shop-owner":
        return "Onboarding is only available to shop owners."
    if route.page == "admin" and user.type != "admin":
        return "Access denied."
    return None
