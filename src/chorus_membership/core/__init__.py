"""Core configuration and error types."""

from .errors import Conflict, Forbidden, MembershipError, NotFound, PermissionDenied, StorageError
from .settings import Settings, settings

__all__ = [
    "Settings",
    "settings",
    "MembershipError",
    "NotFound",
    "PermissionDenied",
    "Conflict",
    "Forbidden",
    "StorageError",
]
