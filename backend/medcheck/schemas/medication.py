"""
MedCheck Backend - Medication Schemas
=====================================

Request bodies for creating/updating medications, the AI-derived label and
dosage structures, the scan response, and the reminder views.

Reminder fields are normalised on the way in: times become sorted unique
"HH:MM" strings and days are checked against the frequency (weekly 0-6 with
Sunday = 0, monthly 1-31, none for daily).
"""

import uuid
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from medcheck.core.reminders import normalize_days, normalize_times

Category = Literal["otc", "prescription", "supplement"]
Frequency = Literal["daily", "weekly", "monthly"]


# ══════════════════════════════════════════════════════════════════════════
# AI-derived structures
# ══════════════════════════════════════════════════════════════════════════


class MedicationInfo(BaseModel):
    """
    What the AI could read from a label, or knows about a name.

    Every field is optional because the model answers null for anything it
    cannot see; an empty instance is the "nothing found" result.
    """
    name: Optional[str] = None
    generic_name: Optional[str] = None
    dosage: Optional[str] = None
    frequency: Optional[str] = None
    description: Optional[str] = None
    is_prescription: Optional[bool] = None
    category: Optional[Category] = None

    @field_validator("category", mode="before")
    @classmethod
    def lenient_category(cls, v):
        if v is None:
            return None
        value = str(v).strip().lower()
        return value if value in ("otc", "prescription", "supplement") else None


class DosageRecommendation(BaseModel):
    recommended_dosage: str
    recommended_frequency: str
    dosage_notes: str

    @classmethod
    def fallback(cls, label_dosage: Optional[str] = None) -> "DosageRecommendation":
        """Used when the AI cannot be reached or answers nonsense."""
        return cls(
            recommended_dosage=label_dosage or "See product label",
            recommended_frequency="As directed",
            dosage_notes=(
                "Please consult with your healthcare provider for personalized "
                "dosage recommendations."
            ),
        )


class ChatMedicationSuggestion(BaseModel):
    """The medication object inside an assistant add-medication action."""
    name: str
    generic_name: Optional[str] = None
    dosage: Optional[str] = None
    frequency: Optional[str] = None
    description: Optional[str] = None
    category: Optional[Category] = None

    @field_validator("category", mode="before")
    @classmethod
    def lenient_category(cls, v):
        return MedicationInfo.lenient_category(v)


# ══════════════════════════════════════════════════════════════════════════
# Request Models
# ══════════════════════════════════════════════════════════════════════════


class MedicationCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    generic_name: Optional[str] = Field(default=None, max_length=200)
    dosage: Optional[str] = Field(default=None, max_length=100)
    frequency: Optional[str] = Field(default=None, max_length=100)
    description: Optional[str] = None
    image_url: Optional[str] = Field(default=None, max_length=500)
    category: Category = "otc"
    is_prescription: bool = False
    prescribed_by: Optional[str] = Field(default=None, max_length=200)
    recommended_dosage: Optional[str] = Field(default=None, max_length=200)
    recommended_frequency: Optional[str] = Field(default=None, max_length=200)
    dosage_notes: Optional[str] = None
    reminder_enabled: bool = False
    reminder_times: List[str] = Field(default_factory=list)
    reminder_frequency: Frequency = "daily"
    reminder_days: List[int] = Field(default_factory=list)
    active: bool = True

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("name cannot be blank")
        return v

    @model_validator(mode="after")
    def normalise_reminders(self) -> "MedicationCreate":
        self.reminder_times = normalize_times(self.reminder_times)
        self.reminder_days = normalize_days(self.reminder_frequency, self.reminder_days)
        if self.reminder_enabled and not self.reminder_times:
            raise ValueError("reminder_times must contain at least one time when reminders are enabled")
        return self


class MedicationUpdate(BaseModel):
    """
    Partial update; the service merges it onto the stored row and
    re-validates the resulting reminder schedule.
    """
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    generic_name: Optional[str] = Field(default=None, max_length=200)
    dosage: Optional[str] = Field(default=None, max_length=100)
    frequency: Optional[str] = Field(default=None, max_length=100)
    description: Optional[str] = None
    image_url: Optional[str] = Field(default=None, max_length=500)
    category: Optional[Category] = None
    is_prescription: Optional[bool] = None
    prescribed_by: Optional[str] = Field(default=None, max_length=200)
    recommended_dosage: Optional[str] = Field(default=None, max_length=200)
    recommended_frequency: Optional[str] = Field(default=None, max_length=200)
    dosage_notes: Optional[str] = None
    reminder_enabled: Optional[bool] = None
    reminder_times: Optional[List[str]] = None
    reminder_frequency: Optional[Frequency] = None
    reminder_days: Optional[List[int]] = None
    active: Optional[bool] = None

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not v.strip():
            raise ValueError("name cannot be blank")
        return v


# ══════════════════════════════════════════════════════════════════════════
# Response Models
# ══════════════════════════════════════════════════════════════════════════


class MedicationResponse(BaseModel):
    id: uuid.UUID
    name: str
    generic_name: Optional[str] = None
    dosage: Optional[str] = None
    frequency: Optional[str] = None
    description: Optional[str] = None
    image_url: Optional[str] = None
    category: str
    is_prescription: bool
    prescribed_by: Optional[str] = None
    recommended_dosage: Optional[str] = None
    recommended_frequency: Optional[str] = None
    dosage_notes: Optional[str] = None
    reminder_enabled: bool
    reminder_times: List[str]
    reminder_frequency: str
    reminder_days: List[int]
    active: bool
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class ScanResponse(BaseModel):
    """
    A reviewable draft built from a label photo. Nothing is saved until the
    client posts the (possibly edited) draft to /api/medications.
    """
    medication: MedicationInfo
    recommendation: DosageRecommendation
    image_url: str = Field(description="URL of the stored label photo")


class ReminderTriggerResponse(BaseModel):
    frequency: str
    hour: int
    minute: int
    weekday: Optional[int] = Field(default=None, description="1-7, Sunday = 1")
    day: Optional[int] = Field(default=None, description="Day of month")


class ReminderScheduleResponse(BaseModel):
    medication_id: uuid.UUID
    reminder_enabled: bool
    reminder_frequency: str
    reminder_times: List[str]
    reminder_days: List[int]
    summary: str = Field(description='Human-readable days, e.g. "Mon, Wed, Fri"')
    triggers: List[ReminderTriggerResponse]


class UpcomingReminder(BaseModel):
    medication_id: uuid.UUID
    medication_name: str
    dosage: Optional[str] = None
    at: datetime
