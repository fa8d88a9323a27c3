"""Room lookups. Locking a room row serialises concurrent bookings of that room."""

from typing import List, Optional

from sqlalchemy.orm import Session

from therapport.models.room import Location, Room

from .base_repository import BaseRepository


class RoomRepository(BaseRepository[Room]):
    def __init__(self, db: Session):
        super().__init__(db, Room)

    def get_active(self, room_id: str) -> Optional[Room]:
        return self.find_one_by(id=room_id, active=True)

    def list_active(self) -> List[Room]:
        query = (
            self.db.query(Room)
            .join(Location, Room.location_id == Location.id)
            .filter(Room.active.is_(True))
            .order_by(Location.name, Room.room_number)
        )
        return self._execute_query(query)

    def lock(self, room_id: str) -> Optional[Room]:
        """
        Take a row lock on the room for the enclosing transaction.

        Row locks on existing bookings cannot stop a phantom insert into an
        empty slot; locking the parent room closes that gap.
        """
        return self.get_by_id(room_id, for_update=True)
