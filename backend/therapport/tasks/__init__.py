"""
Celery tasks package for Therapport.

- Booking confirmation and cancellation emails
- Webhook ledger maintenance
"""

from .celery_app import BaseTask, celery_app

__all__ = [
    "BaseTask",
    "celery_app",
]
