import logging

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from heron_booking.core import config
from heron_booking.core.errors import BookingError, InternalInvariantError
from heron_booking.database import Base, TransactionalStore, engine, ensure_booking_schema
from heron_booking.integrations.department_calendar import DepartmentCalendar
from heron_booking.integrations.google_client import build_google_calendar_client
from heron_booking.models import appointment, appointment_request, user
from heron_booking.repositories.appointment_requests import AppointmentRequestRepository
from heron_booking.repositories.appointments import AppointmentRepository
from heron_booking.repositories.directory import DirectoryRepository
from heron_booking.routes import booking_routes
from heron_booking.services.availability import AvailabilityOracle
from heron_booking.services.booking import BookingService
from heron_booking.services.slots import SlotDiscoveryService

app = FastAPI()

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ALLOW_ORIGINS,
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)

logger = logging.getLogger(__name__)


def wire_services(target: FastAPI, store: TransactionalStore, calendar: DepartmentCalendar) -> None:
    """Build the booking services once and share them through ``app.state``."""
    requests = AppointmentRequestRepository(store)
    appointments = AppointmentRepository(store)
    directory = DirectoryRepository(store)
    oracle = AvailabilityOracle(appointments, calendar)

    target.state.calendar = calendar
    target.state.directory = directory
    target.state.booking_service = BookingService(store, requests, appointments, directory, oracle, calendar)
    target.state.slot_service = SlotDiscoveryService(oracle)


@app.on_event('startup')
def initialize_application() -> None:
    config.validate_runtime_config()
    try:
        Base.metadata.create_all(
            bind=engine,
            tables=[
                user.Department.__table__,
                user.User.__table__,
                appointment_request.AppointmentRequest.__table__,
                appointment.Appointment.__table__,
            ],
        )
        ensure_booking_schema()
    except SQLAlchemyError:
        logger.exception('Database initialization failed. Check DATABASE_URL and database credentials.')

    calendar = DepartmentCalendar(build_google_calendar_client())
    wire_services(app, TransactionalStore(), calendar)


@app.on_event('shutdown')
def close_calendar_client() -> None:
    calendar = getattr(app.state, 'calendar', None)
    if calendar is not None:
        calendar.client.close()


@app.exception_handler(BookingError)
def handle_booking_error(request: Request, exc: BookingError) -> JSONResponse:
    if isinstance(exc, InternalInvariantError):
        logger.error('Internal booking failure on %s %s: %s', request.method, request.url.path, exc.message)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={'code': 'INTERNAL_ERROR', 'message': 'An internal error occurred.'},
        )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(SQLAlchemyError)
def handle_database_error(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.exception('Database error on %s %s', request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            'code': 'DATABASE_UNAVAILABLE',
            'message': 'Database unavailable. Verify DATABASE_URL and database credentials.',
        },
    )


@app.get('/')
def root():
    return {'status': 'Counseling Booking API Running'}


app.include_router(booking_routes.router, prefix='/booking')
