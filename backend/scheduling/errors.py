"""Error kinds raised by the scheduling services.

The API layer maps each kind to an HTTP status code through a single
exception handler; the services themselves never build HTTP responses.
"""

from typing import Optional


class SchedulingError(Exception):
    """Base exception for dependency and timeline operations."""

    status_code = 500

    def __init__(self, message: str, *, details: Optional[dict] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class NotFoundError(SchedulingError):
    """Referenced task, edge or workspace does not exist or is soft-deleted."""

    status_code = 404


class InvalidArgumentError(SchedulingError):
    """Self-dependency, cross-workspace or cross-space edge, unknown type."""

    status_code = 400


class PermissionDeniedError(SchedulingError):
    """Actor is not a member of the relevant workspace."""

    status_code = 403


class ConflictError(SchedulingError):
    """Duplicate edge, or an edge that would close a cycle."""

    status_code = 409
