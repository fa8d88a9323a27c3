# backend/therapport/repositories/booking_repository.py
"""
Booking Repository for the Therapport platform.

Holds the overlap query used by the availability checker. Two spans conflict
when ``existing.start < new.end AND existing.end > new.start``, so adjacent
spans (one ending exactly when the other starts) never conflict.
"""

from datetime import date, time
import logging
from typing import List, Optional

from sqlalchemy import and_
from sqlalchemy.orm import Session

from ..core.enums import BookingStatus
from ..models.booking import Booking
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class BookingRepository(BaseRepository[Booking]):
    """Repository for booking data access."""

    def __init__(self, db: Session):
        super().__init__(db, Booking)

    def get_conflicting_bookings(
        self,
        *,
        room_id: str,
        booking_date: date,
        start_time: time,
        end_time: time,
        exclude_booking_id: Optional[str] = None,
        for_update: bool = False,
    ) -> List[Booking]:
        """
        Confirmed bookings on the same room and date whose span overlaps ``[start, end)``.

        Args:
            exclude_booking_id: Booking to ignore (the row being modified)
            for_update: Lock the conflicting rows for the enclosing transaction
        """
        query = self.db.query(Booking).filter(
            and_(
                Booking.room_id == room_id,
                Booking.booking_date == booking_date,
                Booking.status == BookingStatus.CONFIRMED.value,
                Booking.start_time < end_time,
                Booking.end_time > start_time,
            )
        )
        if exclude_booking_id:
            query = query.filter(Booking.id != exclude_booking_id)
        if for_update:
            query = self._for_update(query)
        return self._execute_query(query.order_by(Booking.start_time.asc()))

    def get_confirmed_for_room_date(self, *, room_id: str, booking_date: date) -> List[Booking]:
        query = (
            self.db.query(Booking)
            .filter(
                Booking.room_id == room_id,
                Booking.booking_date == booking_date,
                Booking.status == BookingStatus.CONFIRMED.value,
            )
            .order_by(Booking.start_time.asc())
        )
        return self._execute_query(query)

    def list_for_user(
        self,
        *,
        user_id: str,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
        status: Optional[str] = None,
        limit: int = 100,
    ) -> List[Booking]:
        query = self.db.query(Booking).filter(Booking.user_id == user_id)
        if from_date is not None:
            query = query.filter(Booking.booking_date >= from_date)
        if to_date is not None:
            query = query.filter(Booking.booking_date <= to_date)
        if status is not None:
            query = query.filter(Booking.status == status)
        query = query.order_by(Booking.booking_date.asc(), Booking.start_time.asc()).limit(limit)
        return self._execute_query(query)
