"""Student and counselor directory lookups."""

from dataclasses import dataclass

from sqlalchemy.orm import Session

from heron_booking.database import TransactionalStore
from heron_booking.models.appointment_request import Role
from heron_booking.models.user import Department, User


@dataclass(frozen=True)
class ParticipantDetails:
    id: str
    email: str
    role: Role
    department_id: int
    department_name: str


class DirectoryRepository:
    def __init__(self, store: TransactionalStore):
        self.store = store

    def get_participant(
        self,
        role: Role,
        user_id: str,
        session: Session | None = None,
    ) -> ParticipantDetails | None:
        """Return an active student or counselor with their department, or None."""
        with self.store.scope(session) as db:
            row = db.query(User, Department.name).join(
                Department, User.department_id == Department.id,
            ).filter(
                User.id == user_id,
                User.role == role.value,
                User.is_active.is_(True),
            ).first()

        if row is None:
            return None

        user, department_name = row
        return ParticipantDetails(
            id=user.id,
            email=user.email,
            role=role,
            department_id=user.department_id,
            department_name=department_name,
        )

    def get_student(self, user_id: str, session: Session | None = None) -> ParticipantDetails | None:
        return self.get_participant(Role.STUDENT, user_id, session=session)

    def get_counselor(self, user_id: str, session: Session | None = None) -> ParticipantDetails | None:
        return self.get_participant(Role.COUNSELOR, user_id, session=session)

    def lock_user(self, session: Session, user_id: str) -> None:
        """Take a row lock on a directory record for the rest of ``session``'s transaction."""
        session.query(User.id).filter(User.id == user_id).with_for_update().first()
