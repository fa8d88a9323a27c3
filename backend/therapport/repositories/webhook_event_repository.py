"""Repository helpers for the webhook event ledger."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
import logging
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from therapport.core.enums import WebhookEventStatus
from therapport.core.exceptions import RepositoryException
from therapport.models.webhook_event import WebhookEvent
from therapport.repositories.base_repository import BaseRepository

logger = logging.getLogger(__name__)


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


class WebhookEventRepository(BaseRepository[WebhookEvent]):
    """Repository for webhook ledger queries."""

    def __init__(self, db: Session) -> None:
        super().__init__(db, WebhookEvent)

    def find_by_source_and_event_id(self, source: str, event_id: str) -> Optional[WebhookEvent]:
        return self.find_one_by(source=source, event_id=event_id)

    def is_processed(self, source: str, event_id: str, *, retention_hours: int) -> bool:
        """
        True when the event was processed inside the retention window.

        Rows older than the window are treated as unseen; the purge task
        removes them.
        """
        cutoff = _now_utc() - timedelta(hours=retention_hours)
        query = self.db.query(WebhookEvent.id).filter(
            WebhookEvent.source == source,
            WebhookEvent.event_id == event_id,
            WebhookEvent.status == WebhookEventStatus.PROCESSED.value,
            WebhookEvent.received_at >= cutoff,
        )
        return self._execute_scalar(query.limit(1)) is not None

    def purge_older_than(self, *, retention_hours: int) -> int:
        """Delete ledger rows received before the retention cutoff. Returns rows removed."""
        cutoff = _now_utc() - timedelta(hours=retention_hours)
        try:
            deleted = (
                self.db.query(WebhookEvent)
                .filter(WebhookEvent.received_at < cutoff)
                .delete(synchronize_session=False)
            )
            return int(deleted or 0)
        except SQLAlchemyError as exc:
            self.logger.error("Failed to purge webhook events: %s", exc)
            raise RepositoryException("Failed to purge webhook events") from exc
