"""Department calendars: free/busy lookups and appointment events."""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from heron_booking.core import config
from heron_booking.core.errors import (
    CalendarNotConfigured,
    ExternalCalendarQueryFailed,
    ExternalEventCreationFailed,
    UnknownDepartment,
)
from heron_booking.integrations.google_client import CalendarAPIError, GoogleCalendarClient
from heron_booking.utils.time_intervals import TimeSlot

logger = logging.getLogger(__name__)

AGENDA_DISPLAY_NAMES = {
    'counseling': 'Counseling Session',
    'meeting': 'Meeting',
    'routine_interview': 'Routine Interview',
    'event': 'Event',
}

# Google Calendar color IDs
AGENDA_COLORS = {
    'counseling': '9',
    'meeting': '7',
    'routine_interview': '5',
    'event': '10',
}


@dataclass(frozen=True)
class CalendarEventData:
    appointment_id: str
    student_id: str
    student_email: str
    counselor_id: str
    counselor_email: str
    department: str
    agenda: str
    start_time: datetime
    end_time: datetime


def _to_rfc3339(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat().replace('+00:00', 'Z')


def _parse_rfc3339(value: str) -> datetime:
    parsed = datetime.fromisoformat(value.replace('Z', '+00:00'))
    if parsed.tzinfo is None:
        raise ValueError(f'Busy period timestamp has no offset: {value}')
    return parsed


def build_event_body(event: CalendarEventData) -> dict:
    agenda_name = AGENDA_DISPLAY_NAMES.get(event.agenda, event.agenda)
    description = '\n'.join([
        agenda_name,
        '',
        f'Student: {event.student_email}',
        f'Counselor: {event.counselor_email}',
        f'Department: {event.department}',
        '',
        f'Appointment ID: {event.appointment_id}',
    ])
    return {
        'summary': f'{agenda_name} - {event.student_email}',
        'description': description,
        'start': {'dateTime': event.start_time.isoformat(), 'timeZone': config.INSTITUTION_TIMEZONE},
        'end': {'dateTime': event.end_time.isoformat(), 'timeZone': config.INSTITUTION_TIMEZONE},
        # Participants live in extended properties; attendees would need domain-wide delegation.
        'extendedProperties': {
            'private': {
                'appointment_id': event.appointment_id,
                'student_id': event.student_id,
                'student_email': event.student_email,
                'counselor_id': event.counselor_id,
                'counselor_email': event.counselor_email,
                'department': event.department,
                'agenda': event.agenda,
            },
        },
        'colorId': AGENDA_COLORS.get(event.agenda, '9'),
    }


class DepartmentCalendar:
    """One external calendar per department, addressed by department name."""

    def __init__(self, client: GoogleCalendarClient, calendar_ids: dict[str, str] | None = None):
        self.client = client
        self.calendar_ids = calendar_ids if calendar_ids is not None else config.DEPARTMENT_CALENDAR_IDS

    def calendar_id_for(self, department: str) -> str:
        normalized = department.strip().upper()
        if normalized not in self.calendar_ids:
            raise UnknownDepartment(department)

        calendar_id = self.calendar_ids[normalized]
        if not calendar_id:
            env_key = config.DEPARTMENT_CALENDAR_ENV_KEYS.get(normalized, 'the calendar ID')
            raise CalendarNotConfigured(department, env_key)
        return calendar_id

    def get_busy_periods(self, department: str, start: datetime, end: datetime) -> list[TimeSlot]:
        calendar_id = self.calendar_id_for(department)
        try:
            busy = self.client.freebusy(calendar_id, _to_rfc3339(start), _to_rfc3339(end))
            return [
                TimeSlot(start=_parse_rfc3339(period['start']), end=_parse_rfc3339(period['end']))
                for period in busy
                if period.get('start') and period.get('end')
            ]
        except (CalendarAPIError, ValueError, TypeError, AttributeError) as exc:
            logger.error('Failed to query busy periods for department %s: %s', department, exc)
            raise ExternalCalendarQueryFailed() from exc

    def check_availability(self, department: str, start: datetime, end: datetime) -> bool:
        busy_periods = self.get_busy_periods(department, start, end)
        if busy_periods:
            logger.info('Department %s calendar has %d conflicting event(s)', department, len(busy_periods))
        return not busy_periods

    def create_event(self, event: CalendarEventData) -> dict:
        try:
            calendar_id = self.calendar_id_for(event.department)
            created = self.client.insert_event(calendar_id, build_event_body(event))
        except (CalendarAPIError, UnknownDepartment, CalendarNotConfigured) as exc:
            logger.error('Failed to create calendar event for appointment %s: %s', event.appointment_id, exc)
            raise ExternalEventCreationFailed() from exc

        if not created.get('id'):
            raise ExternalEventCreationFailed('Failed to create calendar event - no event ID returned.')

        logger.info('Calendar event created: %s for appointment %s', created['id'], event.appointment_id)
        return created
