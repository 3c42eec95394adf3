"""Availability checks against confirmed appointments and department calendars."""

import logging
from datetime import datetime

from sqlalchemy.orm import Session

from heron_booking.core.errors import (
    CalendarNotConfigured,
    ExternalCalendarQueryFailed,
    UnknownDepartment,
)
from heron_booking.integrations.department_calendar import DepartmentCalendar
from heron_booking.repositories.appointments import AppointmentRepository
from heron_booking.utils.time_intervals import TimeSlot

logger = logging.getLogger(__name__)


class AvailabilityOracle:
    """Answers whether an interval is free.

    The appointment store is the source of truth for a counselor's own
    bookings; the department calendar also catches events added by hand.
    Both are consulted on every booking decision.
    """

    def __init__(self, appointments: AppointmentRepository, calendar: DepartmentCalendar):
        self.appointments = appointments
        self.calendar = calendar

    def is_time_slot_available(
        self,
        counselor_id: str,
        start: datetime,
        end: datetime,
        exclude_appointment_id: str | None = None,
        session: Session | None = None,
    ) -> bool:
        conflicts = self.appointments.count_overlapping(
            counselor_id,
            start,
            end,
            exclude_appointment_id=exclude_appointment_id,
            session=session,
        )
        return conflicts == 0

    def check_external_availability(self, department: str, start: datetime, end: datetime) -> bool:
        """Return False only when the department calendar reports a busy period.

        A failed calendar query counts as available so that calendar outages
        do not block bookings.
        """
        try:
            return self.calendar.check_availability(department, start, end)
        except (ExternalCalendarQueryFailed, UnknownDepartment, CalendarNotConfigured) as exc:
            logger.warning(
                'Calendar availability check failed for department %s, proceeding anyway: %s',
                department,
                exc,
            )
            return True

    def get_busy_periods(self, department: str, start: datetime, end: datetime) -> list[TimeSlot]:
        return self.calendar.get_busy_periods(department, start, end)
