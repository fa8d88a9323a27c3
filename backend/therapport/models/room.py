# backend/therapport/models/room.py
"""Locations and the therapy rooms within them."""

from typing import TYPE_CHECKING, List

from sqlalchemy import Boolean, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship
import ulid

from therapport.database import Base

if TYPE_CHECKING:
    from therapport.models.booking import Booking


class Location(Base):
    __tablename__ = "locations"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    name: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)

    rooms: Mapped[List["Room"]] = relationship("Room", back_populates="location")

    def __repr__(self) -> str:
        return f"<Location(name={self.name})>"


class Room(Base):
    """
    A bookable room.

    Rooms referenced by bookings are never hard-deleted (the booking FK uses
    RESTRICT); retire them with ``active = False`` instead.
    """

    __tablename__ = "rooms"
    __table_args__ = (UniqueConstraint("location_id", "room_number", name="uq_rooms_location_number"),)

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    location_id: Mapped[str] = mapped_column(
        String(26), ForeignKey("locations.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    room_number: Mapped[int] = mapped_column(Integer, nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    location: Mapped["Location"] = relationship("Location", back_populates="rooms", lazy="joined")
    bookings: Mapped[List["Booking"]] = relationship("Booking", back_populates="room")

    def __repr__(self) -> str:
        return f"<Room(id={self.id}, name={self.name})>"
