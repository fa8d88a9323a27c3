"""
Room availability.

A slot is taken when a *confirmed* booking for the same room and date overlaps
it (half-open intervals, so back-to-back bookings are fine). The booking
orchestrator calls ``ensure_available`` twice: once as a fast pre-check and
again inside its commit transaction with ``lock=True``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, time
import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from ..core.constants import SLOT_LENGTH_MINUTES
from ..core.exceptions import BookingConflictException, NotFoundException
from ..models.room import Room
from ..repositories.factory import RepositoryFactory
from .base import BaseService
from .pricing_service import CLOSING_SECONDS, OPENING_SECONDS, seconds_to_time

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TimeSlot:
    start_time: time
    end_time: time
    available: bool


class AvailabilityService(BaseService):
    def __init__(self, db: Session):
        super().__init__(db)
        self.booking_repository = RepositoryFactory.create_booking_repository(db)
        self.room_repository = RepositoryFactory.create_room_repository(db)

    def is_available(
        self,
        *,
        room_id: str,
        booking_date: date,
        start_time: time,
        end_time: time,
        exclude_booking_id: Optional[str] = None,
    ) -> bool:
        conflicts = self.booking_repository.get_conflicting_bookings(
            room_id=room_id,
            booking_date=booking_date,
            start_time=start_time,
            end_time=end_time,
            exclude_booking_id=exclude_booking_id,
        )
        return not conflicts

    @BaseService.measure_operation("ensure_available")
    def ensure_available(
        self,
        *,
        room_id: str,
        booking_date: date,
        start_time: time,
        end_time: time,
        exclude_booking_id: Optional[str] = None,
        lock: bool = False,
    ) -> None:
        """
        Raise if the span overlaps a confirmed booking.

        With ``lock=True`` the room row and any overlapping bookings are locked
        for the rest of the caller's transaction.

        Raises:
            BookingConflictException: The slot is taken
        """
        if lock:
            self.room_repository.lock(room_id)
        conflicts = self.booking_repository.get_conflicting_bookings(
            room_id=room_id,
            booking_date=booking_date,
            start_time=start_time,
            end_time=end_time,
            exclude_booking_id=exclude_booking_id,
            for_update=lock,
        )
        if conflicts:
            self.logger.info(
                "Booking conflict",
                extra={
                    "room_id": room_id,
                    "booking_date": str(booking_date),
                    "requested": f"{start_time}-{end_time}",
                    "conflicts": len(conflicts),
                },
            )
            raise BookingConflictException(
                details={
                    "room_id": room_id,
                    "date": booking_date.isoformat(),
                    "start_time": start_time.strftime("%H:%M"),
                    "end_time": end_time.strftime("%H:%M"),
                }
            )

    def list_rooms(self) -> List[Room]:
        return self.room_repository.list_active()

    @BaseService.measure_operation("get_available_slots")
    def get_available_slots(self, *, room_id: str, booking_date: date) -> List[TimeSlot]:
        """Hourly slots from opening to closing, each flagged free or taken."""
        if self.room_repository.get_by_id(room_id) is None:
            raise NotFoundException("Room not found", code="ROOM_NOT_FOUND")

        booked = self.booking_repository.get_confirmed_for_room_date(
            room_id=room_id, booking_date=booking_date
        )
        step = SLOT_LENGTH_MINUTES * 60
        slots: List[TimeSlot] = []
        for start_seconds in range(OPENING_SECONDS, CLOSING_SECONDS, step):
            slot_start = seconds_to_time(start_seconds)
            slot_end = seconds_to_time(min(start_seconds + step, CLOSING_SECONDS))
            taken = any(b.start_time < slot_end and b.end_time > slot_start for b in booked)
            slots.append(TimeSlot(start_time=slot_start, end_time=slot_end, available=not taken))
        return slots
