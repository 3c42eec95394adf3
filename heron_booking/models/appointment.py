"""Appointment model definitions."""

import uuid

from sqlalchemy import Column, ForeignKey, String
from sqlalchemy.orm import relationship

from heron_booking.database import Base, UTCDateTime
from heron_booking.models.appointment_request import RequestStatus, Role
from heron_booking.utils.time_intervals import utc_now


def _new_id() -> str:
    return str(uuid.uuid4())


class Appointment(Base):
    """Represents a confirmed appointment backed by a calendar event."""
    __tablename__ = "appointments"

    id = Column(String(36), primary_key=True, default=_new_id)
    request_id = Column(
        String(36),
        ForeignKey("appointment_requests.id", ondelete="CASCADE"),
        unique=True,
        nullable=False,
    )
    student_id = Column(String(36), nullable=False, index=True)
    counselor_id = Column(String(36), nullable=False, index=True)
    department = Column(String, nullable=False)
    agenda = Column(String, nullable=False)
    start_time = Column(UTCDateTime, nullable=False)
    end_time = Column(UTCDateTime, nullable=False)
    google_event_id = Column(String, nullable=True)
    status = Column(String, nullable=False, default=RequestStatus.BOTH_CONFIRMED.value)
    cancelled_by = Column(String, nullable=True)
    cancelled_at = Column(UTCDateTime, nullable=True)
    created_at = Column(UTCDateTime, nullable=False, default=utc_now)
    updated_at = Column(UTCDateTime, nullable=False, default=utc_now, onupdate=utc_now)

    request = relationship("AppointmentRequest", back_populates="appointment")

    @property
    def is_cancelled(self) -> bool:
        return self.cancelled_at is not None

    def participant_of(self, role: Role) -> str:
        return getattr(self, role.participant_field)
