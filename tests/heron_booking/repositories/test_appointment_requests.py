from datetime import datetime, timedelta, timezone

import pytest

from heron_booking.core.errors import InvalidRequestStatus
from heron_booking.expire_requests import expire_requests
from heron_booking.models.appointment import Appointment
from heron_booking.models.appointment_request import Agenda, AppointmentRequest, ResponseStatus, Role

DEPARTMENT = 'COLLEGE OF COMPUTING AND INFORMATION SCIENCES'
START = datetime(2025, 11, 17, 1, 0, tzinfo=timezone.utc)
END = datetime(2025, 11, 17, 2, 0, tzinfo=timezone.utc)
NOW = datetime(2025, 11, 1, 8, 0, tzinfo=timezone.utc)


def _create(request_repository, initiator=Role.STUDENT, student_id='student-1', start=START, end=END):
    return request_repository.create_request(
        initiator=initiator,
        student_id=student_id,
        counselor_id='counselor-1',
        department=DEPARTMENT,
        agenda=Agenda.COUNSELING,
        proposed_start=start,
        proposed_end=end,
    )


def test_create_request_accepts_on_behalf_of_initiator(request_repository) -> None:
    request = _create(request_repository, initiator=Role.COUNSELOR)

    assert request.counselor_response == 'accepted'
    assert request.student_response == 'pending'
    assert request.status == 'pending'
    assert request.created_at is not None


def test_stored_times_come_back_as_utc(request_repository) -> None:
    manila_nine = datetime(2025, 11, 17, 9, 0, tzinfo=timezone(timedelta(hours=8)))
    request = _create(request_repository, start=manila_nine, end=manila_nine + timedelta(hours=1))

    stored = request_repository.get_by_id(request.id)

    assert stored.proposed_start == START
    assert stored.proposed_start.tzinfo == timezone.utc


def test_record_response_refuses_terminal_requests(store, request_repository) -> None:
    request = _create(request_repository)

    with store.transaction() as session:
        locked = request_repository.get_by_id(request.id, session=session, for_update=True)
        request_repository.record_response(locked, Role.COUNSELOR, ResponseStatus.DECLINED, NOW, session)

    with store.transaction() as session:
        locked = request_repository.get_by_id(request.id, session=session, for_update=True)
        with pytest.raises(InvalidRequestStatus):
            request_repository.record_response(locked, Role.COUNSELOR, ResponseStatus.ACCEPTED, NOW, session)

    stored = request_repository.get_by_id(request.id)
    assert stored.status == 'declined'
    assert stored.finalized_at == NOW


def test_duplicates_match_only_the_same_details(request_repository) -> None:
    _create(request_repository)

    def find(**overrides):
        arguments = {
            'initiator': Role.STUDENT,
            'initiator_id': 'student-1',
            'counterparty_id': 'counselor-1',
            'proposed_start': START,
            'proposed_end': END,
            'agenda': Agenda.COUNSELING,
        }
        arguments.update(overrides)
        return request_repository.find_duplicates(**arguments)

    assert len(find()) == 1
    assert find(agenda=Agenda.MEETING) == []
    assert find(proposed_end=END + timedelta(minutes=30)) == []
    assert find(initiator=Role.COUNSELOR, initiator_id='counselor-1', counterparty_id='student-1') == []


def test_created_and_received_listings(request_repository) -> None:
    created = _create(request_repository)
    received = _create(
        request_repository,
        initiator=Role.COUNSELOR,
        start=START + timedelta(days=1),
        end=END + timedelta(days=1),
    )

    assert [request.id for request in request_repository.list_created_by(Role.STUDENT, 'student-1')] == [created.id]
    assert [request.id for request in request_repository.list_received_by(Role.STUDENT, 'student-1')] == [received.id]
    counselor_created = request_repository.list_created_by(Role.COUNSELOR, 'counselor-1')
    assert [request.id for request in counselor_created] == [received.id]
    assert request_repository.count_pending(Role.COUNSELOR, 'counselor-1') == 2


def test_delete_request_cascades_to_appointment(store, request_repository, appointment_repository) -> None:
    request = _create(request_repository)
    appointment = appointment_repository.create_appointment(request)

    assert request_repository.delete_request(request.id) is True
    assert request_repository.get_by_id(request.id) is None
    assert appointment_repository.get_by_id(appointment.id) is None
    assert request_repository.delete_request(request.id) is False


def test_expire_requests_command_marks_only_stale_pending_rows(store, request_repository) -> None:
    stale = _create(request_repository)
    fresh = _create(request_repository, student_id='student-2')
    with store.transaction() as session:
        session.query(AppointmentRequest).filter(AppointmentRequest.id == stale.id).update(
            {AppointmentRequest.created_at: datetime.now(timezone.utc) - timedelta(hours=49)},
            synchronize_session=False,
        )

    assert expire_requests(request_repository, 48) == 1
    assert expire_requests(request_repository, 48) == 0

    stored_stale = request_repository.get_by_id(stale.id)
    assert stored_stale.status == 'expired'
    assert stored_stale.finalized_at is not None
    assert request_repository.get_by_id(fresh.id).status == 'pending'


def test_appointments_for_participant_are_ordered_by_start(request_repository, appointment_repository) -> None:
    later = _create(request_repository, start=START + timedelta(hours=3), end=END + timedelta(hours=3))
    earlier = _create(request_repository, student_id='student-2')
    appointment_repository.create_appointment(later)
    appointment_repository.create_appointment(earlier)

    listed = appointment_repository.list_for_participant(Role.COUNSELOR, 'counselor-1', START, END + timedelta(hours=3))

    assert [appointment.request_id for appointment in listed] == [earlier.id, later.id]
    assert all(isinstance(appointment, Appointment) for appointment in listed)
