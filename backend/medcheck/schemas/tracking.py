"""
MedCheck Backend - Dose Tracking Schemas
========================================
"""

import uuid
from datetime import date, datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field


class DoseLogCreate(BaseModel):
    """Manual confirmation from the medication screen."""
    status: Literal["taken", "skipped"] = "taken"
    notes: Optional[str] = Field(default=None, max_length=1000)


class NotificationAction(BaseModel):
    """Button pressed on a reminder notification."""
    action: str = Field(description="confirm_taken or skip")
    notes: Optional[str] = Field(default=None, max_length=1000)


class DoseLogResponse(BaseModel):
    id: uuid.UUID
    medication_id: uuid.UUID
    scheduled_time: datetime
    taken_at: Optional[datetime] = None
    status: str
    confirmed_via: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class CalendarDay(BaseModel):
    date: date
    status: str = Field(description="taken, missed or partial")


class CalendarResponse(BaseModel):
    medication_id: uuid.UUID
    year: int
    month: int
    days: List[CalendarDay]
    adherence_rate: Optional[float] = Field(
        default=None, description="Percentage of logged doses taken; null without logs"
    )


class MedicationTakenFlag(BaseModel):
    medication_id: uuid.UUID
    name: str
    taken: bool


class TodaySummary(BaseModel):
    date: date
    active_medications: int
    taken_today: int
    medications: List[MedicationTakenFlag]


class MarkMissedRequest(BaseModel):
    day: Optional[date] = Field(default=None, description="Local day; defaults to yesterday")


class MarkMissedResponse(BaseModel):
    day: date
    inserted: int
