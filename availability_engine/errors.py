"""Error hierarchy for the scheduling engine.

Validation problems are surfaced to the caller as-is and never corrected.
Batch operations collect per-date and per-row failures instead of raising.
"""

from datetime import date
from typing import Any, Optional, Sequence


class AvailabilityError(Exception):
    """Base class for all scheduling engine errors."""


class ValidationError(AvailabilityError):
    """One or more slot, range, or request rules were violated.

    ``errors`` lists every violation found, not just the first.
    """

    def __init__(self, errors: Sequence[str]) -> None:
        self.errors = list(errors)
        super().__init__("; ".join(self.errors) or "Validation failed")


class OverlapError(AvailabilityError):
    """Two or more slots on the same date intersect."""

    def __init__(self, day: Optional[date], overlaps: Sequence[tuple[str, str]]) -> None:
        self.date = day
        self.overlaps = list(overlaps)
        pairs = ", ".join(f"{a} and {b}" for a, b in self.overlaps)
        where = f" on {day.isoformat()}" if day else ""
        super().__init__(f"Time slots overlap{where}: {pairs}")


class BookingConflictError(AvailabilityError):
    """A booking was blocked by the auto-decline policy or a concurrent write.

    ``retryable`` is True when the failure came from an optimistic
    concurrency check and the caller may re-read and try again.
    """

    def __init__(
        self,
        message: str,
        conflicts: Optional[Sequence[Any]] = None,
        retryable: bool = False,
    ) -> None:
        self.conflicts = list(conflicts or [])
        self.retryable = retryable
        super().__init__(message)


class InvalidTransitionError(AvailabilityError):
    """Raised when a booking status transition is not allowed."""


class PatternNotFoundError(AvailabilityError):
    """The referenced recurring pattern does not exist."""


class PatternApplyError(AvailabilityError):
    """Projection or write failure for a single date of a pattern application."""

    def __init__(self, day: date, reason: str) -> None:
        self.date = day
        self.reason = reason
        super().__init__(f"{day.isoformat()}: {reason}")


class BookingNotFoundError(AvailabilityError):
    """The referenced booking does not exist."""


class ConflictNotFoundError(AvailabilityError):
    """The referenced booking conflict does not exist."""


class ParseError(AvailabilityError):
    """An import file could not be parsed at all."""


class StoreError(AvailabilityError):
    """The persistence collaborator is unavailable or failed."""


class VersionConflictError(StoreError):
    """Compare-and-set failed: the stored entry changed since it was read."""

    def __init__(self, user_id: str, day: date, expected: int, actual: int) -> None:
        self.user_id = user_id
        self.date = day
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Entry {user_id}/{day.isoformat()} changed concurrently "
            f"(expected version {expected}, found {actual})"
        )
