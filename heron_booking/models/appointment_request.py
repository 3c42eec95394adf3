"""Appointment request model definitions."""

import enum
import uuid

from sqlalchemy import Column, String
from sqlalchemy.orm import relationship

from heron_booking.database import Base, UTCDateTime
from heron_booking.utils.time_intervals import utc_now


class Role(str, enum.Enum):
    STUDENT = "student"
    COUNSELOR = "counselor"

    @property
    def counterpart(self) -> "Role":
        return Role.COUNSELOR if self is Role.STUDENT else Role.STUDENT

    @property
    def participant_field(self) -> str:
        return PARTICIPANT_FIELDS[self]

    @property
    def response_field(self) -> str:
        return RESPONSE_FIELDS[self]


PARTICIPANT_FIELDS = {
    Role.STUDENT: "student_id",
    Role.COUNSELOR: "counselor_id",
}

RESPONSE_FIELDS = {
    Role.STUDENT: "student_response",
    Role.COUNSELOR: "counselor_response",
}


class Agenda(str, enum.Enum):
    COUNSELING = "counseling"
    MEETING = "meeting"
    ROUTINE_INTERVIEW = "routine_interview"
    EVENT = "event"


class ResponseStatus(str, enum.Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"


class RequestStatus(str, enum.Enum):
    PENDING = "pending"
    BOTH_CONFIRMED = "both_confirmed"
    DECLINED = "declined"
    EXPIRED = "expired"


def _new_id() -> str:
    return str(uuid.uuid4())


class AppointmentRequest(Base):
    """Represents a proposed appointment awaiting both parties' agreement."""
    __tablename__ = "appointment_requests"

    id = Column(String(36), primary_key=True, default=_new_id)
    student_id = Column(String(36), nullable=False, index=True)
    counselor_id = Column(String(36), nullable=False, index=True)
    department = Column(String, nullable=False)
    agenda = Column(String, nullable=False)
    proposed_start = Column(UTCDateTime, nullable=False)
    proposed_end = Column(UTCDateTime, nullable=False)
    proposed_by = Column(String, nullable=False)
    created_by = Column(String, nullable=False)
    student_response = Column(String, nullable=False, default=ResponseStatus.PENDING.value)
    counselor_response = Column(String, nullable=False, default=ResponseStatus.PENDING.value)
    status = Column(String, nullable=False, default=RequestStatus.PENDING.value)
    finalized_at = Column(UTCDateTime, nullable=True)
    created_at = Column(UTCDateTime, nullable=False, default=utc_now)
    updated_at = Column(UTCDateTime, nullable=False, default=utc_now, onupdate=utc_now)

    appointment = relationship(
        "Appointment",
        back_populates="request",
        uselist=False,
        passive_deletes=True,
    )

    def response_of(self, role: Role) -> str:
        return getattr(self, role.response_field)

    def participant_of(self, role: Role) -> str:
        return getattr(self, role.participant_field)

    def refresh_status(self, now) -> None:
        """Derive the overall status from both responses."""
        responses = (self.student_response, self.counselor_response)
        if ResponseStatus.DECLINED.value in responses:
            self.status = RequestStatus.DECLINED.value
        elif all(response == ResponseStatus.ACCEPTED.value for response in responses):
            self.status = RequestStatus.BOTH_CONFIRMED.value

        if self.status != RequestStatus.PENDING.value and self.finalized_at is None:
            self.finalized_at = now
