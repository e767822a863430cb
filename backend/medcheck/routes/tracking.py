"""
MedCheck Backend - Dose Tracking Routes
=======================================

What:  Confirming doses (from the app or a reminder notification), dose
       history, the monthly calendar and adherence summaries.
How:   "Today" and calendar days are local to the `tz` query parameter
       (IANA name); DEFAULT_TIMEZONE applies when it is omitted.

Route Inventory:
    POST /api/medications/{id}/logs                  mark today's dose taken/skipped
    POST /api/medications/{id}/notification-action   confirm_taken / skip buttons
    GET  /api/medications/{id}/logs                  history, newest first
    GET  /api/medications/{id}/calendar              per-day status for a month
    GET  /api/adherence/today                        taken today vs active
    POST /api/adherence/mark-missed                  fill in missed doses for a day
"""

from datetime import datetime, timedelta
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from medcheck.auth import get_current_user_id
from medcheck.database import get_db_session
from medcheck.schemas.common import ErrorResponse
from medcheck.schemas.tracking import (
    CalendarResponse,
    DoseLogCreate,
    DoseLogResponse,
    MarkMissedRequest,
    MarkMissedResponse,
    NotificationAction,
    TodaySummary,
)
from medcheck.services.clock import local_today, resolve_timezone
from medcheck.services.tracking_service import tracking_service

router = APIRouter(prefix="/api", tags=["Tracking"])

TZ_QUERY = Query(default=None, description="IANA time zone, e.g. America/New_York")
ERRORS = {
    400: {"description": "Invalid status, action, month or time zone", "model": ErrorResponse},
    401: {"description": "Missing or invalid access token", "model": ErrorResponse},
    404: {"description": "Medication not found", "model": ErrorResponse},
}


@router.post(
    "/medications/{medication_id}/logs",
    response_model=DoseLogResponse,
    responses=ERRORS,
    summary="Mark today's dose taken or skipped",
    description="Updates today's log when one exists, otherwise creates it.",
)
async def log_dose(
    medication_id: UUID,
    data: DoseLogCreate,
    tz: Optional[str] = TZ_QUERY,
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db_session),
) -> DoseLogResponse:
    return await tracking_service.record_dose(
        db,
        user_id,
        medication_id,
        data.status,
        via="manual",
        tz=resolve_timezone(tz),
        notes=data.notes,
    )


@router.post(
    "/medications/{medication_id}/notification-action",
    response_model=DoseLogResponse,
    responses=ERRORS,
    summary="Handle a reminder notification button",
)
async def notification_action(
    medication_id: UUID,
    data: NotificationAction,
    tz: Optional[str] = TZ_QUERY,
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db_session),
) -> DoseLogResponse:
    return await tracking_service.handle_notification_action(
        db, user_id, medication_id, data.action, tz=resolve_timezone(tz), notes=data.notes
    )


@router.get(
    "/medications/{medication_id}/logs",
    response_model=List[DoseLogResponse],
    responses=ERRORS,
    summary="Dose history for a medication",
)
async def list_logs(
    medication_id: UUID,
    start: Optional[datetime] = Query(default=None, description="Inclusive lower bound"),
    end: Optional[datetime] = Query(default=None, description="Exclusive upper bound"),
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db_session),
) -> List[DoseLogResponse]:
    return await tracking_service.list_logs(db, user_id, medication_id, start=start, end=end)


@router.get(
    "/medications/{medication_id}/calendar",
    response_model=CalendarResponse,
    responses=ERRORS,
    summary="Per-day dose status for one month",
)
async def calendar(
    medication_id: UUID,
    year: int = Query(..., ge=1970, le=9999),
    month: int = Query(..., ge=1, le=12),
    tz: Optional[str] = TZ_QUERY,
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db_session),
) -> CalendarResponse:
    return await tracking_service.calendar(
        db, user_id, medication_id, year, month, resolve_timezone(tz)
    )


@router.get(
    "/adherence/today",
    response_model=TodaySummary,
    responses=ERRORS,
    summary="Medications taken today",
)
async def today(
    tz: Optional[str] = TZ_QUERY,
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db_session),
) -> TodaySummary:
    return await tracking_service.today_summary(db, user_id, resolve_timezone(tz))


@router.post(
    "/adherence/mark-missed",
    response_model=MarkMissedResponse,
    responses=ERRORS,
    summary="Record missed doses for a day",
    description=(
        "Adds a 'missed' entry for every active medication with reminders scheduled "
        "on the day and no log yet. The day defaults to yesterday."
    ),
)
async def mark_missed(
    data: Optional[MarkMissedRequest] = None,
    tz: Optional[str] = TZ_QUERY,
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db_session),
) -> MarkMissedResponse:
    zone = resolve_timezone(tz)
    day = (data.day if data else None) or local_today(zone) - timedelta(days=1)
    return await tracking_service.mark_missed(db, user_id, day, zone)
