"""Repository for free booking voucher allocations."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import List

from sqlalchemy import func
from sqlalchemy.orm import Query, Session

from therapport.models.credit import FreeBookingVoucher

from .base_repository import BaseRepository


class VoucherRepository(BaseRepository[FreeBookingVoucher]):
    def __init__(self, db: Session):
        super().__init__(db, FreeBookingVoucher)

    def _available_query(self, user_id: str, today: date) -> Query:
        return self.db.query(FreeBookingVoucher).filter(
            FreeBookingVoucher.user_id == user_id,
            FreeBookingVoucher.expiry_date >= today,
            FreeBookingVoucher.hours_allocated > FreeBookingVoucher.hours_used,
        )

    def get_available(self, *, user_id: str, today: date) -> List[FreeBookingVoucher]:
        query = self._available_query(user_id, today).order_by(
            FreeBookingVoucher.expiry_date.asc(), FreeBookingVoucher.created_at.asc()
        )
        return self._execute_query(query)

    def get_available_for_update(self, *, user_id: str, today: date) -> List[FreeBookingVoucher]:
        """Available vouchers, earliest expiry first, locked for consumption."""
        query = self._available_query(user_id, today).order_by(
            FreeBookingVoucher.expiry_date.asc(),
            FreeBookingVoucher.created_at.asc(),
            FreeBookingVoucher.id.asc(),
        )
        return self._execute_query(self._for_update(query))

    def get_consumed_for_update(self, *, user_id: str, today: date) -> List[FreeBookingVoucher]:
        """Unexpired vouchers with used hours, latest expiry first, locked for release."""
        query = (
            self.db.query(FreeBookingVoucher)
            .filter(
                FreeBookingVoucher.user_id == user_id,
                FreeBookingVoucher.hours_used > 0,
                FreeBookingVoucher.expiry_date >= today,
            )
            .order_by(
                FreeBookingVoucher.expiry_date.desc(),
                FreeBookingVoucher.created_at.desc(),
                FreeBookingVoucher.id.desc(),
            )
        )
        return self._execute_query(self._for_update(query))

    def sum_available_hours(self, *, user_id: str, today: date) -> Decimal:
        query = self.db.query(
            func.coalesce(
                func.sum(FreeBookingVoucher.hours_allocated - FreeBookingVoucher.hours_used), 0
            )
        ).filter(
            FreeBookingVoucher.user_id == user_id,
            FreeBookingVoucher.expiry_date >= today,
            FreeBookingVoucher.hours_allocated > FreeBookingVoucher.hours_used,
        )
        value = self._execute_scalar(query)
        return Decimal(str(value or 0)).quantize(Decimal("0.01"))
