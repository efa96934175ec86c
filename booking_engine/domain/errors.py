"""Validation failures raised before any availability scan or price computation."""

from __future__ import annotations


class BookingValidationError(Exception):
    """Base class for malformed or out-of-range booking input."""

    reason_code = "INVALID_REQUEST"

    def __init__(self, message: str, reason_code: str | None = None) -> None:
        super().__init__(message)
        if reason_code is not None:
            self.reason_code = reason_code


class UnknownResourceTypeError(BookingValidationError):
    """Raised when a resource type is unrecognised or has no active units."""

    reason_code = "UNKNOWN_RESOURCE_TYPE"


class InvalidPartySizeError(BookingValidationError):
    """Raised when party size is not positive or exceeds the activity maximum."""

    reason_code = "INVALID_PARTY_SIZE"


class UnsupportedActivityError(BookingValidationError):
    """Raised when an activity variant has no configured rate table."""

    reason_code = "UNSUPPORTED_ACTIVITY"


class InvalidDurationError(BookingValidationError):
    reason_code = "INVALID_DURATION"


class InvalidAddOnError(BookingValidationError):
    reason_code = "INVALID_ADD_ON"


class InvalidWindowError(BookingValidationError):
    reason_code = "INVALID_WINDOW"


class InvalidDateKeyError(BookingValidationError):
    reason_code = "INVALID_DATE_KEY"


class InvalidStartError(BookingValidationError):
    """Raised when a start minute is not on the day's slot grid."""

    reason_code = "INVALID_START"
