"""Scheduling domain schemas"""

from typing import Optional

from pydantic import BaseModel


class CounselorSummary(BaseModel):
    id: int
    name: str
    username: str
    specialization: Optional[str] = None


class TimeSlot(BaseModel):
    time: str
    duration: int
    available: bool = True


class AvailabilityData(BaseModel):
    counselor: CounselorSummary
    date: str
    dayOfWeek: str
    duration: int
    availableSlots: list[TimeSlot]
    totalSlots: int


class AvailabilityResponse(BaseModel):
    success: bool = True
    message: str
    data: AvailabilityData
