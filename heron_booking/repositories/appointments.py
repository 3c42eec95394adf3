"""Appointment persistence helpers."""

from datetime import datetime

from sqlalchemy import func
from sqlalchemy.orm import Session

from heron_booking.database import TransactionalStore
from heron_booking.models.appointment import Appointment
from heron_booking.models.appointment_request import AppointmentRequest, RequestStatus, Role


def overlapping(start: datetime, end: datetime):
    """SQL form of ``overlaps(start, end, appointment.start_time, appointment.end_time)``."""
    return (Appointment.start_time < end) & (Appointment.end_time > start)


class AppointmentRepository:
    def __init__(self, store: TransactionalStore):
        self.store = store

    def create_appointment(self, request: AppointmentRequest, session: Session | None = None) -> Appointment:
        """Persist the confirmed appointment for a request that reached both_confirmed."""
        with self.store.scope(session) as db:
            appointment = Appointment(
                request_id=request.id,
                student_id=request.student_id,
                counselor_id=request.counselor_id,
                department=request.department,
                agenda=request.agenda,
                start_time=request.proposed_start,
                end_time=request.proposed_end,
                status=RequestStatus.BOTH_CONFIRMED.value,
                google_event_id=None,
            )
            db.add(appointment)
            db.flush()
            return appointment

    def get_by_id(
        self,
        appointment_id: str,
        session: Session | None = None,
        for_update: bool = False,
    ) -> Appointment | None:
        with self.store.scope(session) as db:
            query = db.query(Appointment).filter(Appointment.id == appointment_id)
            if for_update:
                query = query.with_for_update()
            return query.first()

    def list_for_participant(
        self,
        role: Role,
        user_id: str,
        range_start: datetime,
        range_end: datetime,
        session: Session | None = None,
    ) -> list[Appointment]:
        """Return appointments starting inside ``[range_start, range_end]``, ascending."""
        participant_column = getattr(Appointment, role.participant_field)
        with self.store.scope(session) as db:
            return db.query(Appointment).filter(
                participant_column == user_id,
                Appointment.start_time >= range_start,
                Appointment.start_time <= range_end,
            ).order_by(Appointment.start_time.asc()).all()

    def list_active_for_counselor(
        self,
        counselor_id: str,
        range_start: datetime,
        range_end: datetime,
        session: Session | None = None,
    ) -> list[Appointment]:
        with self.store.scope(session) as db:
            return db.query(Appointment).filter(
                Appointment.counselor_id == counselor_id,
                Appointment.cancelled_at.is_(None),
                overlapping(range_start, range_end),
            ).order_by(Appointment.start_time.asc()).all()

    def count_overlapping(
        self,
        counselor_id: str,
        start: datetime,
        end: datetime,
        exclude_appointment_id: str | None = None,
        session: Session | None = None,
    ) -> int:
        """Count the counselor's non-cancelled appointments overlapping ``[start, end)``."""
        with self.store.scope(session) as db:
            query = db.query(func.count(Appointment.id)).filter(
                Appointment.counselor_id == counselor_id,
                Appointment.cancelled_at.is_(None),
                overlapping(start, end),
            )
            if exclude_appointment_id:
                query = query.filter(Appointment.id != exclude_appointment_id)
            return query.scalar()

    def attach_event_id(
        self,
        appointment: Appointment,
        google_event_id: str,
        session: Session | None = None,
    ) -> Appointment:
        with self.store.scope(session) as db:
            appointment = db.merge(appointment) if session is None else appointment
            appointment.google_event_id = google_event_id
            db.flush()
            return appointment

    def cancel(
        self,
        appointment: Appointment,
        cancelled_by: Role,
        cancelled_at: datetime,
        session: Session | None = None,
    ) -> Appointment:
        """Soft-cancel: the row stays, but no longer occupies its interval."""
        with self.store.scope(session) as db:
            appointment = db.merge(appointment) if session is None else appointment
            appointment.cancelled_by = cancelled_by.value
            appointment.cancelled_at = cancelled_at
            appointment.status = RequestStatus.DECLINED.value
            db.flush()
            return appointment
