"""Appointment request persistence helpers."""

from datetime import datetime, timedelta

from sqlalchemy import func
from sqlalchemy.orm import Session

from heron_booking.core.errors import InvalidRequestStatus
from heron_booking.database import TransactionalStore
from heron_booking.models.appointment import Appointment  # noqa: F401 - registers the back-reference mapper
from heron_booking.models.appointment_request import (
    Agenda,
    AppointmentRequest,
    RequestStatus,
    ResponseStatus,
    Role,
)
from heron_booking.utils.time_intervals import utc_now

# Statuses that still claim the same (initiator, counterparty, interval, agenda).
DUPLICATE_BLOCKING_STATUSES = (RequestStatus.PENDING.value, RequestStatus.BOTH_CONFIRMED.value)


class AppointmentRequestRepository:
    def __init__(self, store: TransactionalStore):
        self.store = store

    def create_request(
        self,
        *,
        initiator: Role,
        student_id: str,
        counselor_id: str,
        department: str,
        agenda: Agenda,
        proposed_start: datetime,
        proposed_end: datetime,
        session: Session | None = None,
    ) -> AppointmentRequest:
        """Persist a new pending request, already accepted by its initiator."""
        with self.store.scope(session) as db:
            request = AppointmentRequest(
                student_id=student_id,
                counselor_id=counselor_id,
                department=department,
                agenda=agenda.value,
                proposed_start=proposed_start,
                proposed_end=proposed_end,
                proposed_by=initiator.value,
                created_by=initiator.value,
                student_response=ResponseStatus.PENDING.value,
                counselor_response=ResponseStatus.PENDING.value,
                status=RequestStatus.PENDING.value,
            )
            setattr(request, initiator.response_field, ResponseStatus.ACCEPTED.value)
            db.add(request)
            db.flush()
            return request

    def get_by_id(
        self,
        request_id: str,
        session: Session | None = None,
        for_update: bool = False,
    ) -> AppointmentRequest | None:
        with self.store.scope(session) as db:
            query = db.query(AppointmentRequest).filter(AppointmentRequest.id == request_id)
            if for_update:
                query = query.with_for_update()
            return query.first()

    def find_duplicates(
        self,
        *,
        initiator: Role,
        initiator_id: str,
        counterparty_id: str,
        proposed_start: datetime,
        proposed_end: datetime,
        agenda: Agenda,
        session: Session | None = None,
    ) -> list[AppointmentRequest]:
        initiator_column = getattr(AppointmentRequest, initiator.participant_field)
        counterparty_column = getattr(AppointmentRequest, initiator.counterpart.participant_field)
        with self.store.scope(session) as db:
            return db.query(AppointmentRequest).filter(
                AppointmentRequest.created_by == initiator.value,
                initiator_column == initiator_id,
                counterparty_column == counterparty_id,
                AppointmentRequest.proposed_start == proposed_start,
                AppointmentRequest.proposed_end == proposed_end,
                AppointmentRequest.agenda == agenda.value,
                AppointmentRequest.status.in_(DUPLICATE_BLOCKING_STATUSES),
            ).all()

    def record_response(
        self,
        request: AppointmentRequest,
        role: Role,
        response: ResponseStatus,
        now: datetime,
        session: Session,
    ) -> AppointmentRequest:
        """Set one side's response and re-derive the request status.

        Must run inside the caller's transaction on a row it has locked.
        Terminal requests are never mutated.
        """
        if request.status != RequestStatus.PENDING.value:
            raise InvalidRequestStatus()

        setattr(request, role.response_field, response.value)
        request.refresh_status(now)
        session.flush()
        return request

    def list_for_participant(
        self,
        role: Role,
        user_id: str,
        status: RequestStatus | None = None,
        session: Session | None = None,
    ) -> list[AppointmentRequest]:
        participant_column = getattr(AppointmentRequest, role.participant_field)
        with self.store.scope(session) as db:
            query = db.query(AppointmentRequest).filter(participant_column == user_id)
            if status is not None:
                query = query.filter(AppointmentRequest.status == status.value)
            return query.order_by(AppointmentRequest.created_at.desc()).all()

    def list_created_by(
        self,
        role: Role,
        user_id: str,
        status: RequestStatus | None = None,
        session: Session | None = None,
    ) -> list[AppointmentRequest]:
        return self._list_by_origin(role, user_id, created_by=role, status=status, session=session)

    def list_received_by(
        self,
        role: Role,
        user_id: str,
        status: RequestStatus | None = None,
        session: Session | None = None,
    ) -> list[AppointmentRequest]:
        return self._list_by_origin(role, user_id, created_by=role.counterpart, status=status, session=session)

    def _list_by_origin(
        self,
        role: Role,
        user_id: str,
        created_by: Role,
        status: RequestStatus | None,
        session: Session | None,
    ) -> list[AppointmentRequest]:
        participant_column = getattr(AppointmentRequest, role.participant_field)
        with self.store.scope(session) as db:
            query = db.query(AppointmentRequest).filter(
                participant_column == user_id,
                AppointmentRequest.created_by == created_by.value,
            )
            if status is not None:
                query = query.filter(AppointmentRequest.status == status.value)
            return query.order_by(AppointmentRequest.created_at.desc()).all()

    def count_pending(self, role: Role, user_id: str, session: Session | None = None) -> int:
        participant_column = getattr(AppointmentRequest, role.participant_field)
        with self.store.scope(session) as db:
            return db.query(func.count(AppointmentRequest.id)).filter(
                participant_column == user_id,
                AppointmentRequest.status == RequestStatus.PENDING.value,
            ).scalar()

    def mark_expired_requests(
        self,
        expiration_hours: int,
        now: datetime | None = None,
        session: Session | None = None,
    ) -> int:
        """Expire pending requests created more than ``expiration_hours`` ago.

        Only pending rows are touched, so re-running the sweep is a no-op.
        """
        now = now or utc_now()
        cutoff = now - timedelta(hours=expiration_hours)
        with self.store.scope(session) as db:
            affected = db.query(AppointmentRequest).filter(
                AppointmentRequest.status == RequestStatus.PENDING.value,
                AppointmentRequest.created_at < cutoff,
            ).update(
                {
                    AppointmentRequest.status: RequestStatus.EXPIRED.value,
                    AppointmentRequest.finalized_at: now,
                    AppointmentRequest.updated_at: now,
                },
                synchronize_session=False,
            )
            return affected

    def delete_request(self, request_id: str, session: Session | None = None) -> bool:
        """Remove a request; the storage layer cascades to its appointment."""
        with self.store.scope(session) as db:
            affected = db.query(AppointmentRequest).filter(
                AppointmentRequest.id == request_id,
            ).delete(synchronize_session=False)
            return affected > 0
