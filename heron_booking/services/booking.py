"""Booking reconciliation between students and counselors.

Either party proposes a time; the proposer's own side is accepted on
creation and the other side answers. The answer that completes mutual
acceptance finalizes the request: inside one transaction the request is
marked ``both_confirmed``, the counselor's availability is re-checked, the
appointment row is written and the department calendar event is created.
Any failure in that sequence rolls the whole transaction back, so the
request stays pending and the acceptance can be retried.

The calendar event is not covered by the rollback: an event created just
before a failed commit is left orphaned.
"""

import logging
from collections.abc import Callable
from datetime import datetime
from enum import Enum

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from heron_booking.core import config
from heron_booking.core.errors import (
    AppointmentAlreadyCancelled,
    AppointmentNotFound,
    BookingValidationError,
    CounselorNotFound,
    CounterpartyNotFound,
    DifferentDepartment,
    DuplicateRequest,
    InitiatorNotFound,
    InvalidAgenda,
    InvalidDateRange,
    InvalidDecision,
    InvalidDirection,
    InvalidRequestStatus,
    InvalidResponseAlreadyGiven,
    InvalidRole,
    InvalidStatusFilter,
    InvalidTimeRange,
    PastAppointment,
    RequestNotFound,
    RequestUpdateFailed,
    TimeSlotUnavailable,
    UnauthorizedAction,
    UserDetailsNotFound,
)
from heron_booking.database import TransactionalStore
from heron_booking.integrations.department_calendar import CalendarEventData, DepartmentCalendar
from heron_booking.models.appointment import Appointment
from heron_booking.models.appointment_request import (
    Agenda,
    AppointmentRequest,
    RequestStatus,
    ResponseStatus,
    Role,
)
from heron_booking.repositories.appointment_requests import AppointmentRequestRepository
from heron_booking.repositories.appointments import AppointmentRepository
from heron_booking.repositories.directory import DirectoryRepository
from heron_booking.services.availability import AvailabilityOracle
from heron_booking.utils.time_intervals import TimeSlot, localize, utc_now

logger = logging.getLogger(__name__)


def parse_choice(enum_cls: type[Enum], value, error_cls: type[BookingValidationError]):
    try:
        return enum_cls(value)
    except ValueError as exc:
        raise error_cls() from exc


class BookingService:
    def __init__(
        self,
        store: TransactionalStore,
        requests: AppointmentRequestRepository,
        appointments: AppointmentRepository,
        directory: DirectoryRepository,
        oracle: AvailabilityOracle,
        calendar: DepartmentCalendar,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.requests = requests
        self.appointments = appointments
        self.directory = directory
        self.oracle = oracle
        self.calendar = calendar
        self.clock = clock

    # Proposals

    def propose_appointment(
        self,
        initiator_id: str,
        initiator_role: Role | str,
        agenda: Agenda | str,
        counterparty_id: str,
        proposed_start: datetime,
        proposed_end: datetime,
    ) -> AppointmentRequest:
        """Create a pending request on behalf of ``initiator_id``.

        Checks run in a fixed order and the first failure wins: time range,
        past start, duplicate submission, directory lookups, shared
        department, then the counselor's bookings and the department
        calendar.
        """
        role = parse_choice(Role, initiator_role, InvalidRole)
        agenda = parse_choice(Agenda, agenda, InvalidAgenda)
        proposed_start = localize(proposed_start)
        proposed_end = localize(proposed_end)

        if proposed_end <= proposed_start:
            raise InvalidTimeRange()

        if proposed_start < self.clock():
            raise PastAppointment()

        duplicates = self.requests.find_duplicates(
            initiator=role,
            initiator_id=initiator_id,
            counterparty_id=counterparty_id,
            proposed_start=proposed_start,
            proposed_end=proposed_end,
            agenda=agenda,
        )
        if duplicates:
            raise DuplicateRequest()

        initiator = self.directory.get_participant(role, initiator_id)
        if initiator is None:
            raise InitiatorNotFound(role.value, initiator_id)

        counterparty = self.directory.get_participant(role.counterpart, counterparty_id)
        if counterparty is None:
            raise CounterpartyNotFound(role.counterpart.value, counterparty_id)

        if initiator.department_id != counterparty.department_id:
            raise DifferentDepartment()

        counselor = initiator if role is Role.COUNSELOR else counterparty
        student = counterparty if role is Role.COUNSELOR else initiator

        self._ensure_available(counselor.id, counselor.department_name, proposed_start, proposed_end)

        request = self.requests.create_request(
            initiator=role,
            student_id=student.id,
            counselor_id=counselor.id,
            department=counselor.department_name,
            agenda=agenda,
            proposed_start=proposed_start,
            proposed_end=proposed_end,
        )
        logger.info('Appointment request %s proposed by %s %s', request.id, role.value, initiator_id)
        return request

    def _ensure_available(self, counselor_id: str, department: str, start: datetime, end: datetime) -> None:
        if not self.oracle.is_time_slot_available(counselor_id, start, end):
            raise TimeSlotUnavailable('Counselor already has a confirmed appointment during this time.')
        if not self.oracle.check_external_availability(department, start, end):
            raise TimeSlotUnavailable('There is a conflicting event in the department calendar during this time.')

    # Responses

    def respond_to_request(
        self,
        responder_id: str,
        responder_role: Role | str,
        request_id: str,
        decision: ResponseStatus | str,
    ) -> Appointment | None:
        """Record an accept or decline from one side of a request.

        Returns the finalized appointment when this acceptance completes
        mutual agreement, otherwise None.
        """
        role = parse_choice(Role, responder_role, InvalidRole)
        decision = parse_choice(ResponseStatus, decision, InvalidDecision)
        if decision is ResponseStatus.PENDING:
            raise InvalidDecision()

        request = self.requests.get_by_id(request_id)
        if request is None:
            raise RequestNotFound(request_id)
        self._check_respondable(request, role, responder_id)

        if decision is ResponseStatus.DECLINED:
            return self._decline(request_id, role, responder_id)

        self._ensure_available(
            request.counselor_id,
            request.department,
            request.proposed_start,
            request.proposed_end,
        )
        try:
            return self._accept(request_id, role, responder_id)
        except IntegrityError as exc:
            # Another transaction finalized the same request first.
            raise TimeSlotUnavailable('Time slot was booked by another appointment during processing.') from exc

    def accept_request(self, responder_id: str, responder_role: Role | str, request_id: str) -> Appointment | None:
        return self.respond_to_request(responder_id, responder_role, request_id, ResponseStatus.ACCEPTED)

    def decline_request(self, responder_id: str, responder_role: Role | str, request_id: str) -> None:
        self.respond_to_request(responder_id, responder_role, request_id, ResponseStatus.DECLINED)

    def _check_respondable(self, request: AppointmentRequest, role: Role, responder_id: str) -> None:
        if request.participant_of(role) != responder_id:
            raise UnauthorizedAction('You are not authorized to respond to this appointment request.')
        if request.status != RequestStatus.PENDING.value:
            raise InvalidRequestStatus()
        if request.response_of(role) != ResponseStatus.PENDING.value:
            raise InvalidResponseAlreadyGiven(role.value)

    def _lock_request(self, session: Session, request_id: str, role: Role, responder_id: str) -> AppointmentRequest:
        request = self.requests.get_by_id(request_id, session=session, for_update=True)
        if request is None:
            raise RequestUpdateFailed()
        # The row may have moved on since the unlocked read.
        self._check_respondable(request, role, responder_id)
        return request

    def _decline(self, request_id: str, role: Role, responder_id: str) -> None:
        with self.store.transaction() as session:
            request = self._lock_request(session, request_id, role, responder_id)
            self.requests.record_response(request, role, ResponseStatus.DECLINED, self.clock(), session)
        logger.info('Appointment request %s declined by %s %s', request_id, role.value, responder_id)
        return None

    def _accept(self, request_id: str, role: Role, responder_id: str) -> Appointment | None:
        with self.store.transaction() as session:
            request = self._lock_request(session, request_id, role, responder_id)

            if request.response_of(role.counterpart) != ResponseStatus.ACCEPTED.value:
                self.requests.record_response(request, role, ResponseStatus.ACCEPTED, self.clock(), session)
                logger.info(
                    'Appointment request %s accepted by %s, waiting on %s',
                    request_id,
                    role.value,
                    role.counterpart.value,
                )
                return None

            appointment = self._finalize(session, request, role)

        logger.info('Appointment %s finalized from request %s', appointment.id, request_id)
        return appointment

    def _finalize(self, session: Session, request: AppointmentRequest, role: Role) -> Appointment:
        student = self.directory.get_student(request.student_id, session=session)
        counselor = self.directory.get_counselor(request.counselor_id, session=session)
        if student is None or counselor is None:
            logger.error('Participant details missing while finalizing request %s', request.id)
            raise UserDetailsNotFound()

        # Serializes finalizations for the same counselor until commit.
        self.directory.lock_user(session, request.counselor_id)

        self.requests.record_response(request, role, ResponseStatus.ACCEPTED, self.clock(), session)
        if request.status != RequestStatus.BOTH_CONFIRMED.value:
            logger.error('Request %s did not reach both_confirmed after mutual acceptance', request.id)
            raise RequestUpdateFailed()

        if not self.oracle.is_time_slot_available(
            request.counselor_id,
            request.proposed_start,
            request.proposed_end,
            session=session,
        ):
            raise TimeSlotUnavailable('Time slot was booked by another appointment during processing.')

        appointment = self.appointments.create_appointment(request, session=session)

        event = self.calendar.create_event(
            CalendarEventData(
                appointment_id=appointment.id,
                student_id=request.student_id,
                student_email=student.email,
                counselor_id=request.counselor_id,
                counselor_email=counselor.email,
                department=request.department,
                agenda=request.agenda,
                start_time=request.proposed_start,
                end_time=request.proposed_end,
            )
        )

        return self.appointments.attach_event_id(appointment, event['id'], session=session)

    # Cancellation

    def cancel_appointment(self, caller_id: str, caller_role: Role | str, appointment_id: str) -> Appointment:
        """Soft-cancel an appointment owned by the caller.

        The department calendar event is left in place.
        """
        role = parse_choice(Role, caller_role, InvalidRole)

        with self.store.transaction() as session:
            appointment = self.appointments.get_by_id(appointment_id, session=session, for_update=True)
            if appointment is None:
                raise AppointmentNotFound(appointment_id)
            if appointment.participant_of(role) != caller_id:
                raise UnauthorizedAction('Only the student or counselor of this appointment can cancel it.')
            if appointment.is_cancelled:
                raise AppointmentAlreadyCancelled()

            self.appointments.cancel(appointment, role, self.clock(), session=session)

        logger.info('Appointment %s cancelled by %s %s', appointment_id, role.value, caller_id)
        return appointment

    # Reads

    def get_request(self, caller_id: str, caller_role: Role | str, request_id: str) -> AppointmentRequest:
        role = parse_choice(Role, caller_role, InvalidRole)
        request = self.requests.get_by_id(request_id)
        if request is None:
            raise RequestNotFound(request_id)
        if request.participant_of(role) != caller_id:
            raise UnauthorizedAction('You are not authorized to view this appointment request.')
        return request

    def list_requests(
        self,
        caller_id: str,
        caller_role: Role | str,
        status: RequestStatus | str | None = None,
        direction: str | None = None,
    ) -> list[AppointmentRequest]:
        """List the caller's requests, newest first.

        ``direction`` narrows to requests the caller ``created`` or
        ``received``.
        """
        role = parse_choice(Role, caller_role, InvalidRole)
        status = parse_choice(RequestStatus, status, InvalidStatusFilter) if status is not None else None

        if direction is None:
            return self.requests.list_for_participant(role, caller_id, status=status)
        if direction == 'created':
            return self.requests.list_created_by(role, caller_id, status=status)
        if direction == 'received':
            return self.requests.list_received_by(role, caller_id, status=status)
        raise InvalidDirection()

    def count_pending_requests(self, caller_id: str, caller_role: Role | str) -> int:
        role = parse_choice(Role, caller_role, InvalidRole)
        return self.requests.count_pending(role, caller_id)

    def get_appointment(self, caller_id: str, caller_role: Role | str, appointment_id: str) -> Appointment:
        role = parse_choice(Role, caller_role, InvalidRole)
        appointment = self.appointments.get_by_id(appointment_id)
        if appointment is None:
            raise AppointmentNotFound(appointment_id)
        if appointment.participant_of(role) != caller_id:
            raise UnauthorizedAction('You are not authorized to view this appointment.')
        return appointment

    def list_appointments(
        self,
        caller_id: str,
        caller_role: Role | str,
        range_start: datetime,
        range_end: datetime,
    ) -> list[Appointment]:
        role = parse_choice(Role, caller_role, InvalidRole)
        range_start = localize(range_start)
        range_end = localize(range_end)
        if range_end <= range_start:
            raise InvalidDateRange()
        return self.appointments.list_for_participant(role, caller_id, range_start, range_end)

    def get_counselor_unavailable_slots(
        self,
        counselor_id: str,
        range_start: datetime,
        range_end: datetime,
    ) -> list[dict]:
        """Intervals the counselor is already booked for, with their agenda."""
        range_start = localize(range_start)
        range_end = localize(range_end)
        if range_end <= range_start:
            raise InvalidDateRange()
        if self.directory.get_counselor(counselor_id) is None:
            raise CounselorNotFound(counselor_id)

        appointments = self.appointments.list_active_for_counselor(counselor_id, range_start, range_end)
        return [
            {
                **TimeSlot(start=appointment.start_time, end=appointment.end_time).to_dict(),
                'agenda': appointment.agenda,
            }
            for appointment in appointments
        ]

    # Maintenance

    def expire_stale_requests(self, expiration_hours: int = config.REQUEST_EXPIRATION_HOURS) -> int:
        expired = self.requests.mark_expired_requests(expiration_hours, now=self.clock())
        logger.info('Expired %d pending appointment request(s) older than %d hours', expired, expiration_hours)
        return expired
