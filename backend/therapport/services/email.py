# backend/therapport/services/email.py
"""
Booking notification emails.

Delivery goes through the Resend API. With ``EMAIL_PROVIDER=console`` (local
development and tests) messages are logged instead of sent.
"""

import logging
import re
from typing import Any, Dict, Optional

import resend
from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.constants import BRAND_NAME
from ..core.exceptions import ServiceException
from ..models.booking import Booking
from .base import BaseService
from .template_service import TemplateService

logger = logging.getLogger(__name__)

CONFIRMATION_TEMPLATE = "email/booking_confirmation.html"
CANCELLATION_TEMPLATE = "email/booking_cancellation.html"


class EmailService(BaseService):
    """Service for sending booking emails."""

    def __init__(self, db: Session, template_service: Optional[TemplateService] = None):
        super().__init__(db)
        self.template_service = template_service or TemplateService()
        self.from_email = settings.from_email
        self.console_mode = settings.email_provider == "console"

        if not self.console_mode:
            if not settings.resend_api_key:
                raise ServiceException("Resend API key not configured", code="EMAIL_NOT_CONFIGURED")
            resend.api_key = settings.resend_api_key

    @staticmethod
    def _html_to_text(html_content: str) -> str:
        """Plain-text alternative for clients that do not render HTML."""
        text = re.sub(r"<[^>]+>", "", html_content)
        return re.sub(r"\s+", " ", text).strip()

    @BaseService.measure_operation("send_email")
    def send_email(
        self,
        to_email: str,
        subject: str,
        html_content: str,
        text_content: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Send one email.

        Raises:
            ServiceException: If the provider rejects the message
        """
        if self.console_mode:
            self.logger.info(f"[console email] to={to_email} subject={subject}")
            return {"id": "console", "to": to_email}

        email_data = {
            "from": self.from_email,
            "to": to_email,
            "subject": subject,
            "html": html_content,
            "text": text_content or self._html_to_text(html_content),
        }
        try:
            response = resend.Emails.send(email_data)
        except Exception as e:
            self.logger.error(f"Failed to send email to {to_email}: {str(e)}")
            self.log_operation("email_failed", to_email=to_email, subject=subject, error=str(e))
            raise ServiceException(f"Email sending failed: {str(e)}")

        self.log_operation("email_sent", to_email=to_email, subject=subject)
        return response

    def _booking_context(self, booking: Booking) -> Dict[str, Any]:
        room = booking.room
        return {
            "user_name": booking.user.first_name,
            "booking_id": booking.id,
            "location_name": room.location.name,
            "room_name": room.name,
            "booking_date": booking.booking_date,
            "start_time": booking.start_time,
            "end_time": booking.end_time,
            "total_price_pence": booking.total_price_pence,
            "credit_used_pence": booking.credit_used_pence,
            "voucher_hours_used": booking.voucher_hours_used,
            "cancellation_notice_hours": settings.cancellation_notice_hours,
            "cancellation_reason": booking.cancellation_reason,
        }

    @BaseService.measure_operation("send_booking_confirmation")
    def send_booking_confirmation(self, booking: Booking) -> bool:
        html_content = self.template_service.render_template(
            CONFIRMATION_TEMPLATE, context=self._booking_context(booking)
        )
        subject = f"{BRAND_NAME} booking confirmed: {booking.booking_date:%d %b} {booking.start_time:%H:%M}"
        self.send_email(booking.user.email, subject, html_content)
        return True

    @BaseService.measure_operation("send_booking_cancellation")
    def send_booking_cancellation(self, booking: Booking) -> bool:
        html_content = self.template_service.render_template(
            CANCELLATION_TEMPLATE, context=self._booking_context(booking)
        )
        subject = f"{BRAND_NAME} booking cancelled: {booking.booking_date:%d %b} {booking.start_time:%H:%M}"
        self.send_email(booking.user.email, subject, html_content)
        return True
