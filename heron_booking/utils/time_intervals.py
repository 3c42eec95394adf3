"""Half-open interval arithmetic and the weekday slot grid."""

from collections.abc import Iterator
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

from heron_booking.core import config

INSTITUTION_TZ = ZoneInfo(config.INSTITUTION_TIMEZONE)
SATURDAY = 5


@dataclass(frozen=True)
class TimeSlot:
    start: datetime
    end: datetime

    def to_dict(self) -> dict:
        return {"start": self.start, "end": self.end}


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def localize(value: datetime) -> datetime:
    """Attach the institutional zone to naive datetimes; aware ones pass through."""
    if value.tzinfo is None:
        return value.replace(tzinfo=INSTITUTION_TZ)
    return value


def overlaps(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    """Return True if ``[a_start, a_end)`` and ``[b_start, b_end)`` share any instant.

    Intervals that only touch (one ends exactly when the other begins) do not
    overlap. The SQL availability query uses the same predicate.
    """
    return a_start < b_end and b_start < a_end


class SlotGrid:
    """Candidate slots for every weekday in a date range.

    Iterating the grid is lazy and can be repeated; each iteration walks the
    days from the start date to the end date (both inclusive, in the
    institutional zone) and yields consecutive slots from ``work_start_hour``
    until the next slot would end after ``work_end_hour``.

    The cut-off compares the full end timestamp, not its clock hour: with
    30 minute slots and ``work_end_hour=17`` the last slot is 16:30-17:00,
    and 17:00-17:30 is not emitted even though it ends in the 17 o'clock
    hour. No slot starts at or after ``work_end_hour``.
    """

    def __init__(
        self,
        range_start: datetime,
        range_end: datetime,
        slot_duration_minutes: int,
        work_start_hour: int,
        work_end_hour: int,
    ):
        self.first_day = localize(range_start).astimezone(INSTITUTION_TZ).date()
        self.last_day = localize(range_end).astimezone(INSTITUTION_TZ).date()
        self.slot_duration = timedelta(minutes=slot_duration_minutes)
        self.work_start_hour = work_start_hour
        self.work_end_hour = work_end_hour

    @property
    def window_start(self) -> datetime:
        """Midnight starting the first day of the grid."""
        return datetime.combine(self.first_day, time(0, 0), tzinfo=INSTITUTION_TZ)

    @property
    def window_end(self) -> datetime:
        """Midnight ending the last day of the grid."""
        return datetime.combine(self.last_day + timedelta(days=1), time(0, 0), tzinfo=INSTITUTION_TZ)

    def __iter__(self) -> Iterator[TimeSlot]:
        current_day = self.first_day
        while current_day <= self.last_day:
            if current_day.weekday() < SATURDAY:
                yield from self._day_slots(current_day)
            current_day += timedelta(days=1)

    def _day_slots(self, day: date) -> Iterator[TimeSlot]:
        day_start = datetime.combine(day, time(0, 0), tzinfo=INSTITUTION_TZ)
        slot_start = day_start + timedelta(hours=self.work_start_hour)
        # timedelta keeps work_end_hour=24 meaning midnight of the next day
        work_end = day_start + timedelta(hours=self.work_end_hour)

        while slot_start + self.slot_duration <= work_end:
            slot_end = slot_start + self.slot_duration
            yield TimeSlot(start=slot_start, end=slot_end)
            slot_start = slot_end


def generate_slot_grid(
    range_start: datetime,
    range_end: datetime,
    slot_duration_minutes: int,
    work_start_hour: int,
    work_end_hour: int,
) -> SlotGrid:
    return SlotGrid(range_start, range_end, slot_duration_minutes, work_start_hour, work_end_hour)
