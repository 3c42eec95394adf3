import os
from datetime import datetime, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault('DATABASE_URL', 'sqlite:///:memory:')

from heron_booking.core.errors import ExternalCalendarQueryFailed, ExternalEventCreationFailed  # noqa: E402
from heron_booking.database import Base, TransactionalStore  # noqa: E402
from heron_booking.models.appointment import Appointment  # noqa: E402
from heron_booking.models.appointment_request import AppointmentRequest  # noqa: E402
from heron_booking.models.user import Department, User  # noqa: E402
from heron_booking.repositories.appointment_requests import AppointmentRequestRepository  # noqa: E402
from heron_booking.repositories.appointments import AppointmentRepository  # noqa: E402
from heron_booking.repositories.directory import DirectoryRepository  # noqa: E402
from heron_booking.services.availability import AvailabilityOracle  # noqa: E402
from heron_booking.services.booking import BookingService  # noqa: E402
from heron_booking.utils.time_intervals import overlaps  # noqa: E402

NOW = datetime(2025, 11, 1, 8, 0, tzinfo=timezone.utc)
CCIS = 'COLLEGE OF COMPUTING AND INFORMATION SCIENCES'
CLAS = 'COLLEGE OF LIBERAL ARTS AND SCIENCES'

BOOKING_TABLES = [
    Department.__table__,
    User.__table__,
    AppointmentRequest.__table__,
    Appointment.__table__,
]


class FakeDepartmentCalendar:
    """In-memory stand-in for the department calendar."""

    def __init__(self):
        self.busy_periods = []
        self.fail_queries = False
        self.fail_creation = False
        self.missing_event_id = False
        self.created_events = []
        self.on_check = None

    def get_busy_periods(self, department, start, end):
        if self.fail_queries:
            raise ExternalCalendarQueryFailed()
        return [busy for busy in self.busy_periods if overlaps(busy.start, busy.end, start, end)]

    def check_availability(self, department, start, end):
        if self.on_check is not None:
            self.on_check(department, start, end)
        return not self.get_busy_periods(department, start, end)

    def create_event(self, event):
        if self.fail_creation:
            raise ExternalEventCreationFailed()
        if self.missing_event_id:
            raise ExternalEventCreationFailed('Failed to create calendar event - no event ID returned.')
        self.created_events.append(event)
        return {'id': f'evt-{len(self.created_events)}'}


@pytest.fixture
def store():
    engine = create_engine(
        'sqlite://',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine, tables=BOOKING_TABLES)
    session_factory = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)
    try:
        yield TransactionalStore(session_factory)
    finally:
        Base.metadata.drop_all(bind=engine, tables=list(reversed(BOOKING_TABLES)))
        engine.dispose()


@pytest.fixture
def directory_users(store):
    with store.transaction() as session:
        session.add_all([
            Department(id=1, name=CCIS),
            Department(id=2, name=CLAS),
        ])
        session.flush()
        session.add_all([
            User(id='student-1', email='student1@school.edu', role='student', department_id=1),
            User(id='student-2', email='student2@school.edu', role='student', department_id=1),
            User(id='student-clas', email='clas@school.edu', role='student', department_id=2),
            User(id='student-inactive', email='gone@school.edu', role='student', department_id=1, is_active=False),
            User(id='counselor-1', email='counselor1@school.edu', role='counselor', department_id=1),
            User(id='counselor-2', email='counselor2@school.edu', role='counselor', department_id=1),
        ])


@pytest.fixture
def calendar():
    return FakeDepartmentCalendar()


@pytest.fixture
def request_repository(store):
    return AppointmentRequestRepository(store)


@pytest.fixture
def appointment_repository(store):
    return AppointmentRepository(store)


@pytest.fixture
def directory(store):
    return DirectoryRepository(store)


@pytest.fixture
def oracle(appointment_repository, calendar):
    return AvailabilityOracle(appointment_repository, calendar)


@pytest.fixture
def booking_service(store, request_repository, appointment_repository, directory, oracle, calendar, directory_users):
    return BookingService(
        store,
        request_repository,
        appointment_repository,
        directory,
        oracle,
        calendar,
        clock=lambda: NOW,
    )
