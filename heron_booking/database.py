import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import timezone
from threading import Lock

from sqlalchemy import DateTime, create_engine, event, inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.types import TypeDecorator

from heron_booking.core import config


def _connect_args(database_url: str) -> dict:
    if database_url.startswith("sqlite"):
        return {"check_same_thread": False}
    return {}


engine = create_engine(
    config.DATABASE_URL,
    echo=config.DATABASE_ECHO,
    pool_pre_ping=True,
    connect_args=_connect_args(config.DATABASE_URL),
)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    expire_on_commit=False,
    bind=engine,
)

Base = declarative_base()

_schema_lock = Lock()
_booking_schema_checked = False


@event.listens_for(Engine, "connect")
def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    if isinstance(dbapi_connection, sqlite3.Connection):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


class UTCDateTime(TypeDecorator):
    """Timezone-aware datetime stored as UTC.

    Backends without timezone support (SQLite) hand back naive values; those
    are UTC by construction and get their tzinfo restored on load.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError("Naive datetimes cannot be stored; localize them first.")
        return value.astimezone(timezone.utc)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class TransactionalStore:
    """Unit-of-work boundary shared by the repositories.

    ``transaction()`` opens a session, commits when the block finishes,
    rolls back if it raises and always closes the session. Repository methods
    take an optional session: ``scope(session)`` joins that transaction, and
    without one they run as their own auto-committed unit of work.
    """

    def __init__(self, session_factory: sessionmaker = SessionLocal):
        self.session_factory = session_factory

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        session = self.session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    @contextmanager
    def scope(self, session: Session | None = None) -> Iterator[Session]:
        if session is not None:
            yield session
            return
        with self.transaction() as own_session:
            yield own_session


def ensure_booking_schema() -> None:
    global _booking_schema_checked

    if _booking_schema_checked:
        return

    with _schema_lock:
        if _booking_schema_checked:
            return

        inspector = inspect(engine)
        table_names = inspector.get_table_names()

        with engine.begin() as connection:
            if 'appointments' in table_names:
                connection.execute(
                    text(
                        'CREATE INDEX IF NOT EXISTS idx_appointments_counselor_range '
                        'ON appointments(counselor_id, start_time, end_time)'
                    )
                )
            if 'appointment_requests' in table_names:
                connection.execute(
                    text(
                        'CREATE INDEX IF NOT EXISTS idx_appointment_requests_status_created '
                        'ON appointment_requests(status, created_at)'
                    )
                )
                connection.execute(
                    text(
                        'CREATE INDEX IF NOT EXISTS idx_appointment_requests_counselor_start '
                        'ON appointment_requests(counselor_id, proposed_start)'
                    )
                )

        _booking_schema_checked = True
