"""
Buffered time intervals.

An ``Interval`` is the half-open range ``[start, end)`` of one booking plus
the idle buffer the calendar keeps around it. Two intervals conflict when the
gap between them is smaller than the buffer; a gap of exactly ``buffer`` is
allowed, so back-to-back bookings separated by the buffer both fit.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta


@dataclass(frozen=True)
class Interval:
    start: datetime
    end: datetime
    buffer: timedelta = timedelta(0)

    def __post_init__(self):
        if self.start >= self.end:
            raise ValueError(f"Interval start must be before end, got {self.start} >= {self.end}")
        if self.buffer < timedelta(0):
            raise ValueError(f"Interval buffer must be >= 0, got {self.buffer}")

    @classmethod
    def from_duration(cls, start: datetime, minutes: int, buffer_minutes: int = 0) -> "Interval":
        return cls(start, start + timedelta(minutes=minutes), timedelta(minutes=buffer_minutes))

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    def padded(self) -> tuple[datetime, datetime]:
        """The buffered probe window ``[start - buffer, end + buffer)``."""
        return self.start - self.buffer, self.end + self.buffer

    def overlaps(self, other: "Interval") -> bool:
        # Strict on both sides: a gap equal to the buffer is not a conflict.
        buffer = max(self.buffer, other.buffer)
        return self.start - buffer < other.end and self.end + buffer > other.start
