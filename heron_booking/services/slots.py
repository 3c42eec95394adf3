"""Bookable slot discovery for department calendars."""

from datetime import datetime

from heron_booking.core import config
from heron_booking.core.errors import (
    InvalidDateRange,
    InvalidSlotDuration,
    InvalidWorkEndHour,
    InvalidWorkHours,
    InvalidWorkStartHour,
)
from heron_booking.services.availability import AvailabilityOracle
from heron_booking.utils.time_intervals import TimeSlot, generate_slot_grid, localize, overlaps


def validate_slot_parameters(
    range_start: datetime,
    range_end: datetime,
    slot_duration_minutes: int,
    work_start_hour: int,
    work_end_hour: int,
) -> None:
    if slot_duration_minutes <= 0:
        raise InvalidSlotDuration()
    if not 0 <= work_start_hour <= 23:
        raise InvalidWorkStartHour()
    if not 0 <= work_end_hour <= 24:
        raise InvalidWorkEndHour()
    if work_start_hour >= work_end_hour:
        raise InvalidWorkHours()
    if range_end <= range_start:
        raise InvalidDateRange()


class SlotDiscoveryService:
    def __init__(self, oracle: AvailabilityOracle):
        self.oracle = oracle

    def get_available_slots(
        self,
        department: str,
        range_start: datetime,
        range_end: datetime,
        slot_duration_minutes: int = config.DEFAULT_SLOT_DURATION_MINUTES,
        work_start_hour: int = config.DEFAULT_WORK_START_HOUR,
        work_end_hour: int = config.DEFAULT_WORK_END_HOUR,
    ) -> list[TimeSlot]:
        """Return the grid slots in the range that no department busy period touches.

        Slots come back in grid order, which is ascending by start.
        """
        range_start = localize(range_start)
        range_end = localize(range_end)
        validate_slot_parameters(range_start, range_end, slot_duration_minutes, work_start_hour, work_end_hour)

        grid = generate_slot_grid(range_start, range_end, slot_duration_minutes, work_start_hour, work_end_hour)
        # The grid covers whole days, so busy periods are fetched for whole days too.
        busy_periods = self.oracle.get_busy_periods(department, grid.window_start, grid.window_end)

        return [
            slot
            for slot in grid
            if not any(overlaps(slot.start, slot.end, busy.start, busy.end) for busy in busy_periods)
        ]
