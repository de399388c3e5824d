"""Conversion between runner timings and protocol timestamps."""

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Protocol

from bdd_messages.models.messages import Duration, Timestamp

EPOCH = datetime(1970, 1, 1, tzinfo=UTC)

NANOS_PER_MILLI = 1_000_000
NANOS_PER_SECOND = 1_000_000_000


class EmptyRunError(ValueError):
    """Raised when run timing is requested without any timed items."""


class Timed(Protocol):
    """Anything with a start time and a duration in milliseconds."""

    @property
    def start_time(self) -> datetime: ...

    @property
    def duration(self) -> float: ...


@dataclass(frozen=True, kw_only=True)
class TimeMeasured:
    """Start time plus duration in milliseconds."""

    start_time: datetime
    duration: float

    @property
    def end_time(self) -> datetime:
        """Moment the measured interval finished."""
        return self.start_time + timedelta(milliseconds=self.duration)


def derive_run_timing(
    items: Sequence[Timed], explicit: TimeMeasured | None = None
) -> TimeMeasured:
    """Return the overall timing of a run.

    Explicit timing reported by the runner wins. Otherwise the run spans from
    the earliest item start to the latest item end.

    Raises:
        EmptyRunError: If there are no items and no explicit timing

    """
    if explicit is not None:
        return explicit

    if not items:
        raise EmptyRunError("Cannot derive run timing without any test results")

    start = min(item.start_time for item in items)
    end = max(
        item.start_time + timedelta(milliseconds=item.duration) for item in items
    )
    return TimeMeasured(
        start_time=start, duration=(end - start) / timedelta(milliseconds=1)
    )


def datetime_to_millis(value: datetime) -> float:
    """Convert a datetime to milliseconds since the epoch."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    micros = (value - EPOCH) // timedelta(microseconds=1)
    return micros / 1000


def _split_millis(millis: float) -> tuple[int, int]:
    seconds, remainder = divmod(millis, 1000)
    nanos = round(remainder * NANOS_PER_MILLI)
    if nanos >= NANOS_PER_SECOND:
        seconds += 1
        nanos -= NANOS_PER_SECOND
    return int(seconds), int(nanos)


def to_protocol_timestamp(epoch_millis: float) -> Timestamp:
    """Convert epoch milliseconds to a protocol timestamp."""
    seconds, nanos = _split_millis(epoch_millis)
    return Timestamp(seconds=seconds, nanos=nanos)


def from_protocol_timestamp(timestamp: Timestamp) -> float:
    """Convert a protocol timestamp back to epoch milliseconds."""
    return timestamp.seconds * 1000 + timestamp.nanos / NANOS_PER_MILLI


def to_protocol_duration(millis: float) -> Duration:
    """Convert milliseconds to a protocol duration."""
    seconds, nanos = _split_millis(millis)
    return Duration(seconds=seconds, nanos=nanos)


def datetime_to_timestamp(value: datetime, offset: float = 0.0) -> Timestamp:
    """Convert a datetime, shifted by offset milliseconds, to a timestamp."""
    return to_protocol_timestamp(datetime_to_millis(value) + offset)
