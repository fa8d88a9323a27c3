# backend/therapport/repositories/credit_repository.py
"""
Credit Repository for the Therapport platform.

Encapsulates the credit ledger queries. Every read that precedes a balance
mutation goes through a ``*_for_update`` method so the read-modify-write of
the same rows happens under one row lock.
"""

from __future__ import annotations

from datetime import date
import logging
from typing import List, Optional, Tuple

from sqlalchemy import and_, case, func
from sqlalchemy.orm import Query, Session

from therapport.models.credit import CreditTransaction

from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class CreditRepository(BaseRepository[CreditTransaction]):
    """Repository for credit ledger rows."""

    def __init__(self, db: Session):
        super().__init__(db, CreditTransaction)

    def _available_query(self, user_id: str, today: date) -> Query:
        return self.db.query(CreditTransaction).filter(
            and_(
                CreditTransaction.user_id == user_id,
                CreditTransaction.revoked.is_(False),
                CreditTransaction.expiry_date >= today,
                CreditTransaction.remaining_pence > 0,
            )
        )

    def get_available_for_update(self, *, user_id: str, today: date) -> List[CreditTransaction]:
        """Available rows in FIFO consumption order (oldest grant first), locked."""
        query = self._available_query(user_id, today).order_by(
            CreditTransaction.grant_date.asc(),
            CreditTransaction.created_at.asc(),
            CreditTransaction.id.asc(),
        )
        return self._execute_query(self._for_update(query))

    def get_available(self, *, user_id: str, today: date) -> List[CreditTransaction]:
        """Available rows ordered by expiry, for display."""
        query = self._available_query(user_id, today).order_by(
            CreditTransaction.expiry_date.asc(),
            CreditTransaction.grant_date.asc(),
        )
        return self._execute_query(query)

    def sum_available(self, *, user_id: str, today: date) -> int:
        query = self.db.query(func.coalesce(func.sum(CreditTransaction.remaining_pence), 0)).filter(
            CreditTransaction.user_id == user_id,
            CreditTransaction.revoked.is_(False),
            CreditTransaction.expiry_date >= today,
            CreditTransaction.remaining_pence > 0,
        )
        return int(self._execute_scalar(query) or 0)

    def get_consumed_for_update(self, *, user_id: str, today: date) -> List[CreditTransaction]:
        """Live rows with consumption to give back, latest expiry first, locked."""
        query = (
            self.db.query(CreditTransaction)
            .filter(
                CreditTransaction.user_id == user_id,
                CreditTransaction.used_pence > 0,
                CreditTransaction.revoked.is_(False),
                CreditTransaction.expiry_date >= today,
            )
            .order_by(
                CreditTransaction.expiry_date.desc(),
                CreditTransaction.grant_date.desc(),
                CreditTransaction.created_at.desc(),
                CreditTransaction.id.desc(),
            )
        )
        return self._execute_query(self._for_update(query))

    def get_by_source_for_update(
        self, *, user_id: str, source_type: str, source_id: str
    ) -> List[CreditTransaction]:
        query = self.db.query(CreditTransaction).filter(
            CreditTransaction.user_id == user_id,
            CreditTransaction.source_type == source_type,
            CreditTransaction.source_id == source_id,
        )
        return self._execute_query(self._for_update(query))

    def has_source(self, *, user_id: str, source_type: str, source_id: str) -> bool:
        """Revoked grants do not count, so a compensated settlement can be retried."""
        return self.exists(
            user_id=user_id, source_type=source_type, source_id=source_id, revoked=False
        )

    def get_balance_totals(self, *, user_id: str, today: date) -> Tuple[int, int, int]:
        """Return ``(total_available, total_granted, total_used)`` in pence."""
        available_case = case(
            (
                and_(
                    CreditTransaction.revoked.is_(False),
                    CreditTransaction.expiry_date >= today,
                    CreditTransaction.remaining_pence > 0,
                ),
                CreditTransaction.remaining_pence,
            ),
            else_=0,
        )
        query = self.db.query(
            func.coalesce(func.sum(available_case), 0),
            func.coalesce(func.sum(CreditTransaction.amount_pence), 0),
            func.coalesce(func.sum(CreditTransaction.used_pence), 0),
        ).filter(CreditTransaction.user_id == user_id)
        row: Optional[tuple] = query.first()
        if row is None:
            return 0, 0, 0
        return int(row[0] or 0), int(row[1] or 0), int(row[2] or 0)
