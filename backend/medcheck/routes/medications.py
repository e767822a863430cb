"""
MedCheck Backend - Medication & Reminder Routes
===============================================

What:  The caller's medication list, reminder schedules, label scanning and
       name lookup.
How:   Thin handlers; MedicationService does the work. /medications/scan and
       /medications/lookup are declared before /medications/{medication_id}
       so they are not read as ids.

Route Inventory:
    GET    /api/medications                              list (active, category filters)
    POST   /api/medications                              create
    POST   /api/medications/scan                         label photo → draft + dosage advice
    GET    /api/medications/lookup?name=                 AI lookup by name
    GET    /api/medications/{id}                         detail
    PATCH  /api/medications/{id}                         partial update
    DELETE /api/medications/{id}                         delete (logs cascade)
    POST   /api/medications/{id}/reminder-days/{day}     toggle one reminder day
    GET    /api/medications/{id}/reminders               device triggers
    GET    /api/reminders/upcoming                       next reminders, all medications
"""

import logging
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, File, Query, Response, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from medcheck.auth import get_current_user_id
from medcheck.database import get_db_session
from medcheck.schemas.common import ErrorResponse
from medcheck.schemas.medication import (
    Category,
    MedicationCreate,
    MedicationInfo,
    MedicationResponse,
    MedicationUpdate,
    ReminderScheduleResponse,
    ScanResponse,
    UpcomingReminder,
)
from medcheck.services.clock import resolve_timezone
from medcheck.services.medication_service import medication_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Medications"])

AUTH_ERROR = {401: {"description": "Missing or invalid access token", "model": ErrorResponse}}
NOT_FOUND = {404: {"description": "Medication not found", "model": ErrorResponse}}


@router.get(
    "/medications",
    response_model=List[MedicationResponse],
    responses=AUTH_ERROR,
    summary="List medications",
)
async def list_medications(
    active: Optional[bool] = Query(default=None, description="Only active (true) or inactive (false)"),
    category: Optional[Category] = Query(default=None),
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db_session),
) -> List[MedicationResponse]:
    return await medication_service.list(db, user_id, active=active, category=category)


@router.post(
    "/medications",
    status_code=201,
    response_model=MedicationResponse,
    responses={
        400: {"description": "Invalid medication or reminder settings", "model": ErrorResponse},
        **AUTH_ERROR,
    },
    summary="Add a medication",
)
async def create_medication(
    data: MedicationCreate,
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db_session),
) -> MedicationResponse:
    return await medication_service.create(db, user_id, data)


@router.post(
    "/medications/scan",
    response_model=ScanResponse,
    responses={
        400: {"description": "Invalid image type or size", "model": ErrorResponse},
        **AUTH_ERROR,
        503: {"description": "AI service unavailable", "model": ErrorResponse},
    },
    summary="Read a medication label photo",
    description=(
        "Upload a photo of a medication label (PNG, JPG, JPEG or WEBP). Returns the "
        "medication details read from the label and a dosage recommendation for the "
        "caller's profile. Nothing is saved to the list until the client creates it."
    ),
)
async def scan_label(
    file: UploadFile = File(..., description="Label photo"),
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db_session),
) -> ScanResponse:
    content = await file.read()
    logger.info(
        "Received label scan: filename=%s, size=%d bytes",
        file.filename or "unknown",
        len(content),
    )
    try:
        return await medication_service.scan_label(
            db, user_id, filename=file.filename or "label.jpg", content=content
        )
    finally:
        await file.close()


@router.get(
    "/medications/lookup",
    response_model=MedicationInfo,
    responses={
        400: {"description": "Empty name", "model": ErrorResponse},
        **AUTH_ERROR,
    },
    summary="Look up a medication by name",
    description="Fields the AI does not know come back empty.",
    dependencies=[Depends(get_current_user_id)],
)
async def lookup_medication(
    name: str = Query(..., max_length=200),
) -> MedicationInfo:
    return await medication_service.lookup(name)


@router.get(
    "/medications/{medication_id}",
    response_model=MedicationResponse,
    responses={**AUTH_ERROR, **NOT_FOUND},
    summary="Get a medication",
)
async def get_medication(
    medication_id: UUID,
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db_session),
) -> MedicationResponse:
    return await medication_service.get(db, user_id, medication_id)


@router.patch(
    "/medications/{medication_id}",
    response_model=MedicationResponse,
    responses={
        400: {"description": "Invalid medication or reminder settings", "model": ErrorResponse},
        **AUTH_ERROR,
        **NOT_FOUND,
    },
    summary="Update a medication",
)
async def update_medication(
    medication_id: UUID,
    data: MedicationUpdate,
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db_session),
) -> MedicationResponse:
    return await medication_service.update(db, user_id, medication_id, data)


@router.delete(
    "/medications/{medication_id}",
    status_code=204,
    response_class=Response,
    responses={**AUTH_ERROR, **NOT_FOUND},
    summary="Delete a medication and its dose history",
)
async def delete_medication(
    medication_id: UUID,
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db_session),
) -> Response:
    await medication_service.delete(db, user_id, medication_id)
    return Response(status_code=204)


@router.post(
    "/medications/{medication_id}/reminder-days/{day}",
    response_model=MedicationResponse,
    responses={
        400: {"description": "Day out of range for the reminder frequency", "model": ErrorResponse},
        **AUTH_ERROR,
        **NOT_FOUND,
    },
    summary="Toggle a reminder day",
    description="Weekly: 0-6 with Sunday = 0. Monthly: 1-31. Daily reminders have no days.",
)
async def toggle_reminder_day(
    medication_id: UUID,
    day: int,
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db_session),
) -> MedicationResponse:
    return await medication_service.toggle_reminder_day(db, user_id, medication_id, day)


@router.get(
    "/medications/{medication_id}/reminders",
    response_model=ReminderScheduleResponse,
    responses={**AUTH_ERROR, **NOT_FOUND},
    summary="Reminder triggers to register on the device",
)
async def get_reminders(
    medication_id: UUID,
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db_session),
) -> ReminderScheduleResponse:
    return await medication_service.reminder_triggers(db, user_id, medication_id)


@router.get(
    "/reminders/upcoming",
    response_model=List[UpcomingReminder],
    responses={
        400: {"description": "Unknown time zone", "model": ErrorResponse},
        **AUTH_ERROR,
    },
    summary="Next reminders across all active medications",
)
async def upcoming_reminders(
    tz: Optional[str] = Query(default=None, description="IANA time zone, e.g. Europe/Berlin"),
    limit: int = Query(default=10, ge=1, le=100),
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db_session),
) -> List[UpcomingReminder]:
    return await medication_service.upcoming_reminders(db, user_id, resolve_timezone(tz), limit=limit)
