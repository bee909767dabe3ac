# roombook/core/errors.py
"""
Error taxonomy shared by the scheduling core and its provider adapters.

The HTTP layer maps these onto status codes; nothing below it knows about
HTTP responses.
"""


class SchedulingError(Exception):
    """
    Base class for every error raised by the booking and aggregation core.
    """


class ValidationError(SchedulingError):
    """
    Malformed or missing input. Always the caller's fault, never retried.
    """


class ConflictError(SchedulingError):
    """
    The organizer already holds a booking overlapping the requested window.
    """


class RoomConflictError(SchedulingError):
    """
    The calendar provider rejected the booking because the room is taken.
    """


class NotFoundError(SchedulingError):
    """
    A booking or provider event could not be located.
    """


class AuthorizationError(SchedulingError):
    """
    The caller is not allowed to cancel or modify the meeting.
    """


class ProviderError(SchedulingError):
    """
    Raised when the calendar provider cannot be reached or answers with a
    non-recoverable error.
    """


class ProviderAuthError(ProviderError):
    """
    Token acquisition or credential failure. Fatal for the whole call.
    """


class ProviderIOError(ProviderError):
    """
    A single provider read or write failed.
    """


class ProviderConflictError(ProviderError):
    """
    The provider reported a scheduling conflict on a write.
    """
