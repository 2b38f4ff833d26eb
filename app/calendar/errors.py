"""Error types for the week timeline engine.

Reads degrade instead of raising (an inverted range yields no weeks, a missing
config falls back to the default cadence). Writes raise one of these.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from app.calendar.types import Operation


class CalendarError(RuntimeError):
    """Base exception for calendar engine errors."""

    pass


class InvalidRangeError(CalendarError, ValueError):
    """Raised when an interval ends before it starts."""

    def __init__(self, start: object, end: object) -> None:
        self.start = start
        self.end = end
        super().__init__(f"Invalid range: end {end} is before start {start}")


class InvalidDateError(CalendarError, ValueError):
    """Raised when a value cannot be normalized to a calendar day."""

    def __init__(self, value: object) -> None:
        self.value = value
        super().__init__(f"Invalid calendar day: {value!r}")


class InvalidFlexibleDateError(CalendarError, ValueError):
    """Raised when a flexible check-in date lies outside its week."""

    pass


class ConfigMissingError(CalendarError):
    """Raised when the calendar config is absent or malformed."""

    pass


class CustomizationNotFoundError(CalendarError):
    """Raised when a customization id does not exist."""

    def __init__(self, customization_id: str) -> None:
        self.customization_id = customization_id
        super().__init__(f"Week customization {customization_id} not found")


class RepositoryUnavailableError(CalendarError):
    """Raised when the customization store cannot be reached.

    The engine never retries; retry policy belongs to the caller.
    """

    pass


class OverlapResolutionPartialFailureError(CalendarError):
    """Raised when one operation of an overlap resolution fails.

    Attributes:
        failed_operation: Operation that raised
        applied: Operations applied before the failure. The surrounding
            transaction is rolled back, so callers should re-read state
            before retrying.
        original_error: Underlying exception
    """

    def __init__(
        self,
        failed_operation: Operation,
        applied: list[Operation],
        original_error: Exception,
    ) -> None:
        self.failed_operation = failed_operation
        self.applied = applied
        self.original_error = original_error
        super().__init__(
            f"Overlap resolution failed at {failed_operation.kind} operation "
            f"after {len(applied)} applied operation(s): {original_error}"
        )
