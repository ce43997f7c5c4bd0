"""
Domain errors raised by the shortlink services.

Every error except the fatal ones is an expected outcome: the API layer maps
it to a 4xx response and it is never logged as a server fault.
"""

from typing import Optional


class ShortlinkError(Exception):
    """Base class for all shortlink domain errors"""

    default_message = "Shortlink error"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message


class NotFoundOrExpired(ShortlinkError):
    """Link missing, inactive, expired or deleted (deliberately not distinguished)"""

    default_message = "Shortlink not found or expired"


class Unauthorized(ShortlinkError):
    """A password was supplied but matched none of the active protections"""

    default_message = "Invalid password"


class CodeTaken(ShortlinkError):
    default_message = "Short code already exists"


class ValidationFailed(ShortlinkError):
    default_message = "Validation failed"


class LinkNotFound(ShortlinkError):
    default_message = "Shortlink not found"


class ScheduleNotFound(ShortlinkError):
    default_message = "Schedule not found"


class PasswordNotFound(ShortlinkError):
    default_message = "Password protection not found"


class NotOwner(ShortlinkError):
    default_message = "Not authorized to manage this shortlink"


class CodeSpaceExhausted(ShortlinkError):
    """
    Fatal: no unique code could be drawn within the retry ceiling.

    Indicates a corrupted or near-exhausted code space, not a user error.
    """

    default_message = "Could not generate a unique short code"
