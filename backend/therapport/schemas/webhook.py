"""Webhook acknowledgement."""

from typing import Optional

from ._strict_base import StrictModel


class WebhookAckResponse(StrictModel):
    received: bool = True
    duplicate: bool = False
    event_type: Optional[str] = None
    handled: Optional[bool] = None
