"""Error taxonomy for the chat client.

Every failure path returns the client to its prior stable state; these
exceptions carry enough information to show the user what went wrong.
"""

from __future__ import annotations

import re
from enum import Enum

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


class LinkUpError(Exception):
    """Base class for all client errors."""

    error_code = "LINKUP_ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(LinkUpError):
    """Input rejected before any network call was made."""

    error_code = "VALIDATION_ERROR"

    def __init__(self, field: str, message: str):
        super().__init__(message)
        self.field = field


class AuthErrorKind(str, Enum):
    INVALID_CREDENTIALS = "InvalidCredentials"
    WEAK_PASSWORD = "WeakPassword"
    EMAIL_IN_USE = "EmailInUse"
    NETWORK_UNAVAILABLE = "NetworkUnavailable"
    UNKNOWN = "Unknown"


class AuthError(LinkUpError):
    """The auth collaborator refused or could not complete a request."""

    error_code = "AUTH_ERROR"

    def __init__(self, kind: AuthErrorKind, message: str):
        super().__init__(message)
        self.kind = kind


class NotAuthenticatedError(LinkUpError):
    error_code = "NOT_AUTHENTICATED"

    def __init__(self, message: str = "You are not authenticated."):
        super().__init__(message)


class NotFoundError(LinkUpError):
    error_code = "NOT_FOUND"


class UploadFailure(LinkUpError):
    error_code = "UPLOAD_FAILED"


class SubscriptionInterrupted(LinkUpError):
    """A live listener stopped delivering snapshots."""

    error_code = "SUBSCRIPTION_INTERRUPTED"


class WriteConflict(LinkUpError):
    """A transactional write gave up after exhausting its retries."""

    error_code = "WRITE_CONFLICT"


def require_fields(**fields: str | None) -> None:
    """Raise ValidationError for the first blank field.

    Args:
        **fields: Field name to submitted value.

    Raises:
        ValidationError: If any value is missing or whitespace only.
    """
    for name, value in fields.items():
        if value is None or not str(value).strip():
            raise ValidationError(name, "Please fill in all fields")


def validate_email(email: str) -> str:
    """Return the trimmed email or raise ValidationError if malformed."""
    candidate = (email or "").strip()
    if not EMAIL_PATTERN.match(candidate):
        raise ValidationError("email", "Please enter a valid email address")
    return candidate
