"""Exception hierarchy shared by the store, the gateway and the sync services."""

from __future__ import annotations

from collections.abc import Sequence


class DonationSyncError(RuntimeError):
    """Base exception raised for donation sync failures.

    This is the base class for all sync-engine exceptions.
    """


class ValidationError(DonationSyncError, ValueError):
    """Raised when a donation fails create-time validation.

    Validation errors are surfaced synchronously to the caller and the
    offending record never reaches the sync queue.
    """

    def __init__(self, message: str, problems: Sequence[str] | None = None) -> None:
        super().__init__(message)
        self.problems: list[str] = list(problems or [])


class RecordNotFoundError(DonationSyncError, LookupError):
    """Raised when a donation id does not exist in the local store."""


class InvalidTransitionError(DonationSyncError, ValueError):
    """Raised when a mutation is not allowed by the sync state machine."""


class StoreError(DonationSyncError, OSError):
    """Raised when the local store cannot persist or read a record.

    The record is left in its last committed state.
    """


class TransportError(DonationSyncError):
    """Raised when the remote donation API cannot be reached or rejects a request."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
