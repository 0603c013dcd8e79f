"""Scheduling router - counselor availability endpoints"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import get_current_user
from ...database import get_db
from ...models import User
from .schemas import AvailabilityResponse
from .service import SchedulingService

router = APIRouter(prefix="/appointments", tags=["Appointments"])


def get_scheduling_service(db: Session = Depends(get_db)) -> SchedulingService:
    """Dependency injection for SchedulingService"""
    return SchedulingService(db)


@router.get("/counselor/{counselor_id}/availability", response_model=AvailabilityResponse)
async def get_counselor_availability(
    counselor_id: int,
    date: Optional[str] = Query(None, description="YYYY-MM-DD"),
    duration: int = Query(60, description="Requested session length in minutes (30-180)"),
    current_user: User = Depends(get_current_user),
    service: SchedulingService = Depends(get_scheduling_service),
):
    """Bookable start times for a counselor on a given date"""
    return AvailabilityResponse(**service.get_available_slots(counselor_id, date, duration))
