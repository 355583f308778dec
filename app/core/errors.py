"""
Error taxonomy for the access-control engine.

A denied check is not an error: resolution returns ``Decision.DENY``.
Everything here signals that a request could not be evaluated or applied.
"""


class RBACError(Exception):
    """Base class for all engine errors."""

    default_message = "access control error"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message


class InvalidInput(RBACError):
    """Zero or missing id, empty name. Caller bug; never retried."""

    default_message = "invalid input"


class NotFound(RBACError):
    """Unknown role, permission, department, grant or assignment."""

    default_message = "resource not found"


class Conflict(RBACError):
    """Unique name or duplicate row violation."""

    default_message = "resource already exists"


class CycleDetected(RBACError):
    """A parent change would make a role its own ancestor."""

    default_message = "role hierarchy cycle detected"


class StoreUnavailable(RBACError):
    """The relational store failed while serving a request."""

    default_message = "store unavailable"


class CacheUnavailable(RBACError):
    """The key-value cache failed. Always absorbed by ResultCache."""

    default_message = "cache unavailable"
