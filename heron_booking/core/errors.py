"""Booking error taxonomy.

Every failure the booking core can report is a ``BookingError`` subclass with a
stable machine ``code``, a human-readable ``message`` and the HTTP status the
API layer answers with. Callers branch on the class (or the category base
class), never on message text.
"""


class BookingError(Exception):
    """Base class for all booking failures."""

    code = "BOOKING_ERROR"
    status_code = 400
    default_message = "The booking operation failed."

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message}


# Categories

class BookingValidationError(BookingError):
    status_code = 400


class NotFoundError(BookingError):
    status_code = 404


class StateConflictError(BookingError):
    status_code = 409


class ResourceContentionError(BookingError):
    status_code = 409


class AuthorizationError(BookingError):
    status_code = 403


class IntegrationError(BookingError):
    status_code = 502


class InternalInvariantError(BookingError):
    status_code = 500


# Validation

class InvalidTimeRange(BookingValidationError):
    code = "INVALID_TIME_RANGE"
    default_message = "Proposed end time must be after start time."


class PastAppointment(BookingValidationError):
    code = "PAST_APPOINTMENT"
    default_message = "Cannot create appointment request for a past time."


class InvalidRole(BookingValidationError):
    code = "INVALID_ROLE"
    default_message = "Role must be either 'student' or 'counselor'."


class InvalidAgenda(BookingValidationError):
    code = "INVALID_AGENDA"
    default_message = "Agenda must be one of counseling, meeting, routine_interview or event."


class InvalidDecision(BookingValidationError):
    code = "INVALID_DECISION"
    default_message = "A response must be either 'accepted' or 'declined'."


class InvalidStatusFilter(BookingValidationError):
    code = "INVALID_STATUS_FILTER"
    default_message = "Status must be one of pending, both_confirmed, declined or expired."


class InvalidDirection(BookingValidationError):
    code = "INVALID_DIRECTION"
    default_message = "Direction must be either 'created' or 'received'."


class InvalidSlotDuration(BookingValidationError):
    code = "INVALID_SLOT_DURATION"
    default_message = "Slot duration must be a positive number of minutes."


class InvalidWorkStartHour(BookingValidationError):
    code = "INVALID_WORK_START_HOUR"
    default_message = "Work start hour must be between 0 and 23."


class InvalidWorkEndHour(BookingValidationError):
    code = "INVALID_WORK_END_HOUR"
    default_message = "Work end hour must be between 0 and 24."


class InvalidWorkHours(BookingValidationError):
    code = "INVALID_WORK_HOURS"
    default_message = "Work start hour must be before work end hour."


class InvalidDateRange(BookingValidationError):
    code = "INVALID_DATE_RANGE"
    default_message = "End of the date range must be after its start."


class UnknownDepartment(BookingValidationError):
    code = "UNKNOWN_DEPARTMENT"

    def __init__(self, department: str):
        super().__init__(f"Unknown department: {department}. Please use a valid department name.")


class CalendarNotConfigured(BookingValidationError):
    code = "CALENDAR_ID_NOT_CONFIGURED"

    def __init__(self, department: str, env_key: str):
        super().__init__(f"Calendar ID not configured for department: {department}. Please set {env_key}.")


# Not found

class RequestNotFound(NotFoundError):
    code = "REQUEST_NOT_FOUND"

    def __init__(self, request_id: str):
        super().__init__(f"Appointment request with ID {request_id} not found.")


class AppointmentNotFound(NotFoundError):
    code = "APPOINTMENT_NOT_FOUND"

    def __init__(self, appointment_id: str):
        super().__init__(f"Appointment with ID {appointment_id} not found.")


class ParticipantNotFound(NotFoundError):
    """A student or counselor is missing from the directory (or inactive)."""

    def __init__(self, role: str, user_id: str):
        self.role = str(role)
        self.user_id = user_id
        self.code = f"{self.role.upper()}_NOT_FOUND"
        super().__init__(f"{self.role.capitalize()} with ID {user_id} not found.")


class InitiatorNotFound(ParticipantNotFound):
    pass


class CounterpartyNotFound(ParticipantNotFound):
    pass


class CounselorNotFound(ParticipantNotFound):
    def __init__(self, user_id: str):
        super().__init__("counselor", user_id)


# State conflicts

class DuplicateRequest(StateConflictError):
    code = "DUPLICATE_REQUEST"
    default_message = "An appointment request with the same details already exists."


class DifferentDepartment(StateConflictError):
    code = "DIFFERENT_DEPARTMENT"
    status_code = 400
    default_message = "Student and counselor are not in the same department."


class InvalidRequestStatus(StateConflictError):
    code = "INVALID_REQUEST_STATUS"
    status_code = 400
    default_message = "Only pending appointment requests can be responded to."


class InvalidResponseAlreadyGiven(StateConflictError):
    code = "INVALID_RESPONSE_ALREADY_GIVEN"
    status_code = 400

    def __init__(self, role: str):
        super().__init__(f"The {role} has already responded to this appointment request.")


class AppointmentAlreadyCancelled(StateConflictError):
    code = "APPOINTMENT_ALREADY_CANCELLED"
    default_message = "This appointment has already been cancelled."


# Contention

class TimeSlotUnavailable(ResourceContentionError):
    code = "TIME_SLOT_UNAVAILABLE"
    default_message = "The requested time slot is no longer available."


# Authorization

class UnauthorizedAction(AuthorizationError):
    code = "UNAUTHORIZED_ACTION"
    default_message = "You are not authorized to perform this action."


# Integration

class ExternalEventCreationFailed(IntegrationError):
    code = "EXTERNAL_EVENT_CREATION_FAILED"
    status_code = 500
    default_message = "Failed to create the calendar event for the appointment."


class ExternalCalendarQueryFailed(IntegrationError):
    code = "EXTERNAL_CALENDAR_QUERY_FAILED"
    status_code = 500
    default_message = "Failed to retrieve department calendar busy slots."


# Internal invariants

class RequestUpdateFailed(InternalInvariantError):
    code = "REQUEST_UPDATE_FAILED"
    default_message = "Failed to update the appointment request status."


class UserDetailsNotFound(InternalInvariantError):
    code = "USER_DETAILS_NOT_FOUND"
    default_message = "Failed to retrieve student or counselor details for calendar event creation."
