"""Expire pending appointment requests that nobody answered in time.

Usage:
    python -m heron_booking.expire_requests [--hours 48]

Meant for a cron job; running it again over already-expired requests
changes nothing.
"""
import argparse
import logging

from heron_booking.core import config
from heron_booking.database import TransactionalStore
from heron_booking.models import appointment  # noqa: F401 - registers the appointment mapper
from heron_booking.repositories.appointment_requests import AppointmentRequestRepository
from heron_booking.utils.time_intervals import utc_now

logger = logging.getLogger(__name__)


def expire_requests(repository: AppointmentRequestRepository, expiration_hours: int) -> int:
    expired = repository.mark_expired_requests(expiration_hours, now=utc_now())
    logger.info('Expired %d pending appointment request(s) older than %d hours', expired, expiration_hours)
    return expired


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument('--hours', type=int, default=config.REQUEST_EXPIRATION_HOURS)
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format='%(asctime)s %(levelname)s %(name)s: %(message)s')
    expired = expire_requests(AppointmentRequestRepository(TransactionalStore()), args.hours)
    print(expired)


if __name__ == "__main__":
    main()
