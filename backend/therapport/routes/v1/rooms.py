# backend/therapport/routes/v1/rooms.py
"""Room listing and hourly availability."""

import asyncio
from datetime import date
from typing import List, NoReturn

from fastapi import APIRouter, Depends, HTTPException, Query, status

from ...api.dependencies import Principal, get_current_principal
from ...api.dependencies.services import get_availability_service
from ...core.exceptions import DomainException
from ...schemas.booking import RoomAvailabilityResponse, RoomResponse, TimeSlotResponse
from ...services.availability_service import AvailabilityService

router = APIRouter(tags=["rooms-v1"])


def handle_domain_exception(exc: DomainException) -> NoReturn:
    """Convert domain exceptions to HTTP exceptions."""
    if hasattr(exc, "to_http_exception"):
        raise exc.to_http_exception()
    raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


@router.get("", response_model=List[RoomResponse])
async def list_rooms(
    principal: Principal = Depends(get_current_principal),
    availability_service: AvailabilityService = Depends(get_availability_service),
) -> List[RoomResponse]:
    rooms = await asyncio.to_thread(availability_service.list_rooms)
    return [
        RoomResponse(
            id=room.id,
            name=room.name,
            room_number=room.room_number,
            location_name=room.location.name,
        )
        for room in rooms
    ]


@router.get("/{room_id}/availability", response_model=RoomAvailabilityResponse)
async def get_room_availability(
    room_id: str,
    booking_date: date = Query(..., alias="date"),
    principal: Principal = Depends(get_current_principal),
    availability_service: AvailabilityService = Depends(get_availability_service),
) -> RoomAvailabilityResponse:
    try:
        slots = await asyncio.to_thread(
            availability_service.get_available_slots, room_id=room_id, booking_date=booking_date
        )
    except DomainException as exc:
        handle_domain_exception(exc)
    return RoomAvailabilityResponse(
        room_id=room_id,
        booking_date=booking_date,
        slots=[
            TimeSlotResponse(start_time=s.start_time, end_time=s.end_time, available=s.available)
            for s in slots
        ],
    )
