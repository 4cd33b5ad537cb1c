"""Error taxonomy surfaced by lifecycle operations."""

from __future__ import annotations


class LifecycleError(Exception):
    """Base class for errors returned to callers of lifecycle operations."""

    code = "internal"
    status_code = 500


class Unauthenticated(LifecycleError):
    code = "unauthenticated"
    status_code = 401


class PermissionDenied(LifecycleError):
    code = "permission-denied"
    status_code = 403


class NotFound(LifecycleError):
    code = "not-found"
    status_code = 404


class InvalidArgument(LifecycleError):
    code = "invalid-argument"
    status_code = 400


class Internal(LifecycleError):
    code = "internal"
    status_code = 500


class DeadlineExceeded(Internal):
    code = "deadline-exceeded"
    status_code = 504


class NotificationError(Exception):
    """Raised by mail transports when a message could not be delivered."""
