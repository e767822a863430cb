"""
MedCheck Backend - Profile Schemas
==================================

ProfileUpdate is a partial update: only fields present in the request body
are written. PatientContext is the read-only view of a profile handed to
every AI prompt.
"""

import uuid
from datetime import date, datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from medcheck.core.formatting import calculate_age, calculate_bmi


class Lifestyle(BaseModel):
    smoking: Optional[bool] = None
    alcoholUse: Optional[Literal["none", "occasional", "regular"]] = None


class BiometricData(BaseModel):
    bloodType: Optional[Literal["A", "B", "AB", "O"]] = None
    rhFactor: Optional[Literal["+", "-"]] = None


class EmergencyContact(BaseModel):
    name: Optional[str] = None
    phone: Optional[str] = None
    relationship: Optional[str] = None


class ProfileUpdate(BaseModel):
    full_name: Optional[str] = Field(default=None, max_length=200)
    date_of_birth: Optional[date] = None
    gender: Optional[str] = Field(default=None, max_length=50)
    weight: Optional[float] = Field(default=None, gt=0, le=700, description="Kilograms")
    height: Optional[float] = Field(default=None, gt=0, le=300, description="Centimetres")
    allergies: Optional[List[str]] = None
    medical_conditions: Optional[List[str]] = None
    medication_history: Optional[List[str]] = None
    family_medical_history: Optional[List[str]] = None
    lifestyle: Optional[Lifestyle] = None
    biometric_data: Optional[BiometricData] = None
    emergency_contact: Optional[EmergencyContact] = None
    onboarding_completed: Optional[bool] = None

    @field_validator(
        "allergies", "medical_conditions", "medication_history", "family_medical_history"
    )
    @classmethod
    def strip_entries(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        """Drop blank entries left by multi-select and free-text inputs."""
        if v is None:
            return v
        return [item.strip() for item in v if item and item.strip()]

    @field_validator("date_of_birth")
    @classmethod
    def not_in_future(cls, v: Optional[date]) -> Optional[date]:
        if v is not None and v > date.today():
            raise ValueError("date_of_birth cannot be in the future")
        return v


class ProfileResponse(BaseModel):
    id: uuid.UUID
    full_name: Optional[str] = None
    date_of_birth: Optional[date] = None
    age: Optional[int] = None
    gender: Optional[str] = None
    weight: Optional[float] = None
    height: Optional[float] = None
    bmi: Optional[float] = None
    allergies: List[str] = Field(default_factory=list)
    medical_conditions: List[str] = Field(default_factory=list)
    medication_history: List[str] = Field(default_factory=list)
    family_medical_history: List[str] = Field(default_factory=list)
    lifestyle: Optional[Dict[str, Any]] = None
    biometric_data: Optional[Dict[str, Any]] = None
    emergency_contact: Optional[Dict[str, Any]] = None
    onboarding_completed: bool = False
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_model(cls, profile: Any, today: date) -> "ProfileResponse":
        return cls(
            id=profile.id,
            full_name=profile.full_name,
            date_of_birth=profile.date_of_birth,
            age=calculate_age(profile.date_of_birth, today),
            gender=profile.gender,
            weight=profile.weight,
            height=profile.height,
            bmi=calculate_bmi(profile.weight, profile.height),
            allergies=list(profile.allergies or []),
            medical_conditions=list(profile.medical_conditions or []),
            medication_history=list(profile.medication_history or []),
            family_medical_history=list(profile.family_medical_history or []),
            lifestyle=profile.lifestyle,
            biometric_data=profile.biometric_data,
            emergency_contact=profile.emergency_contact,
            onboarding_completed=profile.onboarding_completed,
            created_at=profile.created_at,
            updated_at=profile.updated_at,
        )


class PatientContext(BaseModel):
    """
    What the AI is told about the patient.

    Empty (all unknown) when the user has no profile yet; prompts then fall
    back to "not provided".
    """
    full_name: Optional[str] = None
    age: Optional[int] = None
    gender: Optional[str] = None
    weight: Optional[float] = None
    height: Optional[float] = None
    allergies: List[str] = Field(default_factory=list)
    medical_conditions: List[str] = Field(default_factory=list)
    lifestyle: Optional[Lifestyle] = None
    biometric_data: Optional[BiometricData] = None
    medication_history: List[str] = Field(default_factory=list)
    family_medical_history: List[str] = Field(default_factory=list)

    @property
    def bmi(self) -> Optional[float]:
        return calculate_bmi(self.weight, self.height)

    @classmethod
    def from_model(cls, profile: Any, today: date) -> "PatientContext":
        return cls(
            full_name=profile.full_name,
            age=calculate_age(profile.date_of_birth, today),
            gender=profile.gender,
            weight=profile.weight,
            height=profile.height,
            allergies=list(profile.allergies or []),
            medical_conditions=list(profile.medical_conditions or []),
            lifestyle=Lifestyle(**profile.lifestyle) if profile.lifestyle else None,
            biometric_data=(
                BiometricData(**profile.biometric_data) if profile.biometric_data else None
            ),
            medication_history=list(profile.medication_history or []),
            family_medical_history=list(profile.family_medical_history or []),
        )
