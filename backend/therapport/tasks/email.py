# backend/therapport/tasks/email.py
"""
Booking email tasks.

Enqueued by the booking service after a successful commit; a lost or failed
email never affects the booking itself.
"""

import logging
from typing import Any, Dict

from ..database import get_db_session
from ..repositories.factory import RepositoryFactory
from ..services.email import EmailService
from .celery_app import BaseTask, celery_app

logger = logging.getLogger(__name__)


def _send(kind: str, booking_id: str) -> Dict[str, Any]:
    with get_db_session() as db:
        booking = RepositoryFactory.create_booking_repository(db).get_by_id(booking_id)
        if booking is None:
            logger.error(f"Booking {booking_id} not found")
            return {"status": "error", "message": f"Booking {booking_id} not found"}

        email_service = EmailService(db)
        if kind == "confirmation":
            sent = email_service.send_booking_confirmation(booking)
        else:
            sent = email_service.send_booking_cancellation(booking)
        return {"status": "success", "booking_id": booking_id, "email_sent": sent}


@celery_app.task(
    base=BaseTask,
    name="therapport.tasks.email.send_booking_confirmation",
    bind=True,
    max_retries=3,
)
def send_booking_confirmation(self, booking_id: str) -> Dict[str, Any]:
    try:
        return _send("confirmation", booking_id)
    except Exception as exc:
        logger.error(f"Failed to send booking confirmation for booking {booking_id}: {exc}")
        raise self.retry(exc=exc, countdown=60 * (2**self.request.retries))


@celery_app.task(
    base=BaseTask,
    name="therapport.tasks.email.send_booking_cancellation",
    bind=True,
    max_retries=3,
)
def send_booking_cancellation(self, booking_id: str) -> Dict[str, Any]:
    try:
        return _send("cancellation", booking_id)
    except Exception as exc:
        logger.error(f"Failed to send cancellation email for booking {booking_id}: {exc}")
        raise self.retry(exc=exc, countdown=60 * (2**self.request.retries))
