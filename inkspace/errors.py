"""Exception taxonomy shared by the gateways, the store and the HTTP layer."""
from __future__ import annotations


class InkspaceError(Exception):
    """Base class; ``message`` is safe to show to the user."""

    code = "error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class GatewayError(InkspaceError):
    """A remote store or storage call failed."""

    code = "database_error"


class NotFoundError(GatewayError):
    code = "not_found"


class InvalidTransitionError(GatewayError):
    code = "invalid_transition"


class DuplicateReviewError(GatewayError):
    code = "duplicate_review"


class AuthError(InkspaceError):
    code = "unauthorized"


class ConfigurationError(InkspaceError):
    """A provider key is missing; the feature is unavailable."""

    code = "configuration_error"


class InitializationError(InkspaceError):
    """Initial data hydration failed as a whole."""

    code = "initialization_failed"


class ProviderError(InkspaceError):
    """An external provider (AI text generation) call failed."""

    code = "provider_error"


class InvalidInputError(GatewayError):
    """The caller sent values the store will not accept."""

    code = "invalid_payload"
