# backend/tests/unit/services/test_availability_service.py
from datetime import date, time

import pytest

from therapport.core.enums import BookingStatus
from therapport.core.exceptions import BookingConflictException, NotFoundException
from therapport.services.availability_service import AvailabilityService

DAY = date(2026, 3, 10)


@pytest.fixture
def service(db):
    return AvailabilityService(db)


class TestAvailability:
    @pytest.fixture(autouse=True)
    def _existing(self, user, kensington_room, add_booking):
        self.room = kensington_room
        self.booking = add_booking(user, kensington_room, DAY, "10:00", "12:00")

    @pytest.mark.parametrize(
        "start,end",
        [(time(9, 0), time(10, 0)), (time(12, 0), time(13, 0)), (time(8, 0), time(9, 30))],
    )
    def test_adjacent_or_disjoint_spans_are_free(self, service, start, end):
        assert service.is_available(
            room_id=self.room.id, booking_date=DAY, start_time=start, end_time=end
        )

    @pytest.mark.parametrize(
        "start,end",
        [
            (time(9, 0), time(10, 1)),
            (time(11, 59), time(13, 0)),
            (time(10, 30), time(11, 0)),
            (time(9, 0), time(13, 0)),
        ],
    )
    def test_overlapping_spans_conflict(self, service, start, end):
        assert not service.is_available(
            room_id=self.room.id, booking_date=DAY, start_time=start, end_time=end
        )
        with pytest.raises(BookingConflictException) as exc_info:
            service.ensure_available(
                room_id=self.room.id, booking_date=DAY, start_time=start, end_time=end
            )
        assert exc_info.value.code == "BOOKING_CONFLICT"
        assert exc_info.value.details["room_id"] == self.room.id

    def test_other_dates_and_rooms_do_not_conflict(self, service, pimlico_room):
        assert service.is_available(
            room_id=self.room.id, booking_date=date(2026, 3, 11), start_time=time(10), end_time=time(12)
        )
        assert service.is_available(
            room_id=pimlico_room.id, booking_date=DAY, start_time=time(10), end_time=time(12)
        )

    def test_excluding_the_booking_being_moved(self, service):
        service.ensure_available(
            room_id=self.room.id,
            booking_date=DAY,
            start_time=time(11, 0),
            end_time=time(13, 0),
            exclude_booking_id=self.booking.id,
            lock=True,
        )

    def test_cancelled_bookings_free_the_slot(self, service, db):
        self.booking.status = BookingStatus.CANCELLED.value
        db.commit()

        assert service.is_available(
            room_id=self.room.id, booking_date=DAY, start_time=time(10), end_time=time(12)
        )

    def test_hourly_slots(self, service):
        slots = service.get_available_slots(room_id=self.room.id, booking_date=DAY)

        assert len(slots) == 14
        assert slots[0].start_time == time(8, 0)
        assert slots[-1].end_time == time(22, 0)
        taken = [slot.start_time for slot in slots if not slot.available]
        assert taken == [time(10, 0), time(11, 0)]

    def test_slots_for_unknown_room(self, service):
        with pytest.raises(NotFoundException):
            service.get_available_slots(room_id="01HZZZZZZZZZZZZZZZZZZZZZZZ", booking_date=DAY)

    def test_list_rooms_orders_by_location(self, service, pimlico_room):
        names = [room.location.name for room in service.list_rooms()]
        assert names == ["Kensington", "Pimlico"]
