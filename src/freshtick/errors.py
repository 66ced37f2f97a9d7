"""Exception taxonomy for the delivery core."""

from __future__ import annotations


class FreshtickError(Exception):
    """Base class for domain errors raised by the delivery core."""


class PreconditionViolation(FreshtickError):
    """An operation was invoked from a state that does not permit it."""

    def __init__(self, message: str, *, kind: str = "invalid transition") -> None:
        super().__init__(message)
        self.kind = kind


class ConcurrentModification(PreconditionViolation):
    """A write was based on a stale version of the record."""

    def __init__(self, message: str) -> None:
        super().__init__(message, kind="concurrent modification")


class DuplicateRecord(FreshtickError):
    """A unique constraint of the store rejected an insert."""


class RecordNotFound(FreshtickError, LookupError):
    """A referenced record does not exist."""


class NotServiceable(FreshtickError):
    """No zone delivers to the given address."""


class MalformedGeometry(FreshtickError, ValueError):
    """Zone boundary data is corrupt (too few vertices or non-numeric coordinates)."""


MalformedZoneData = MalformedGeometry


class InvalidSchedule(FreshtickError, ValueError):
    """A plan's recurrence rule cannot produce a next delivery date."""
