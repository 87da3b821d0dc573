"""Error taxonomy shared by the catalog, availability index and booking engine."""

from __future__ import annotations


class RideshareError(Exception):
    """Base class for every error the core surfaces to callers."""

    code = "error"


class ValidationError(RideshareError):
    """Malformed or out-of-range input. Never retried automatically."""

    code = "validation_error"

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.field = field


class AuthorizationError(RideshareError):
    """The caller's account may not perform this operation."""

    code = "forbidden"


class NotFoundError(RideshareError):
    code = "not_found"

    def __init__(self, kind: str, identifier: str):
        super().__init__(f"{kind} {identifier} not found")
        self.kind = kind
        self.identifier = identifier


class RideUnavailableError(RideshareError):
    """The ride is cancelled, completed or already departed."""

    code = "ride_unavailable"


class CapacityError(RideshareError):
    """Not enough free seats left on the ride for this request."""

    code = "capacity_exceeded"

    def __init__(self, requested: int, remaining: int):
        super().__init__(
            f"Requested {requested} seat(s) but only {remaining} remaining"
        )
        self.requested = requested
        self.remaining = remaining


class DuplicateBookingError(RideshareError):
    code = "duplicate_booking"


class InvalidStateTransition(RideshareError):
    """Raised when a status change violates the ride or booking state machine."""

    code = "invalid_transition"


class StorageContentionError(RideshareError):
    """The per-ride atomic unit kept conflicting and retries were exhausted."""

    code = "storage_contention"
