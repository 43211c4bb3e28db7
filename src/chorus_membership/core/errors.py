"""Typed failures raised across the membership and moderation core.

Callers receive one of these instead of raw storage errors. The transport
layer (whatever it is) maps them onto its own status codes.
"""

from __future__ import annotations


class MembershipError(RuntimeError):
    """Base exception for every failure surfaced by the core."""

    default_detail = "Membership operation failed"

    def __init__(self, detail: str | None = None) -> None:
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class NotFound(MembershipError):
    """A referenced community, user, request or post record is absent."""

    default_detail = "Not found"


class PermissionDenied(MembershipError):
    """The caller lacks a granted capability for the action."""

    default_detail = "Permission denied"


class Conflict(MembershipError):
    """A state-machine precondition was violated.

    Raised for duplicate joins, re-deciding a terminal join request, unbanning
    a user with no ban row, and for the losing side of a concurrent write.
    """

    default_detail = "Conflict"


class Forbidden(MembershipError):
    """The action is categorically blocked for the caller.

    Unlike `PermissionDenied`, no capability grant can lift this (ban,
    invite-only community).
    """

    default_detail = "Forbidden"


class StorageError(MembershipError):
    """The underlying database failed for a reason other than a constraint."""

    default_detail = "Storage failure"


__all__ = [
    "MembershipError",
    "NotFound",
    "PermissionDenied",
    "Conflict",
    "Forbidden",
    "StorageError",
]
