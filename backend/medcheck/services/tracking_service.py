"""
MedCheck Backend - Dose Tracking Service
========================================

What:  Records taken/skipped doses, answers reminder notification buttons,
       and derives calendars, adherence rates and the "today" summary.
Who:   Tracking routes.

One log per medication per local day:
    Confirming a dose updates that day's log when one exists (for example
    an automatic "missed" entry, or an earlier "skipped") and inserts one
    otherwise. The log's scheduled_time is the local day at the first
    reminder time, or local midnight for medications without reminders.

Notification actions:
    confirm_taken → taken   (confirmed_via = notification)
    skip          → skipped (confirmed_via = notification)
"""

import logging
from datetime import date, datetime, time, timezone
from typing import List, Optional
from uuid import UUID

from sqlalchemy import desc
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from medcheck.core.adherence import (
    DoseStatus,
    adherence_rate,
    day_bounds,
    local_day,
    month_bounds,
    month_calendar,
    taken_today,
)
from medcheck.core.reminders import is_scheduled_on, parse_time
from medcheck.exceptions import DatabaseError, ValidationError
from medcheck.models.medication import Medication, MedicationLog
from medcheck.schemas.tracking import (
    CalendarDay,
    CalendarResponse,
    DoseLogResponse,
    MarkMissedResponse,
    MedicationTakenFlag,
    TodaySummary,
)
from medcheck.services.clock import utc_now
from medcheck.services.medication_service import medication_service, schedule_of
from medcheck.services.ownership import owned

logger = logging.getLogger(__name__)

NOTIFICATION_ACTIONS = {
    "confirm_taken": DoseStatus.TAKEN,
    "skip": DoseStatus.SKIPPED,
}


def scheduled_time_for(medication: Medication, day: date, tz) -> datetime:
    """The local day at the first reminder time, as an aware UTC datetime."""
    times = sorted(parse_time(t) for t in (medication.reminder_times or []))
    at = times[0] if times else time.min
    return datetime.combine(day, at, tzinfo=tz).astimezone(timezone.utc)


def _db_error(action: str, e: Exception) -> DatabaseError:
    logger.error("Database error while %s: %s", action, str(e), exc_info=True)
    return DatabaseError(
        message="Could not update your medication log. Please try again.",
        context={"error_type": type(e).__name__},
    )


class TrackingService:

    async def _logs_between(
        self,
        db: AsyncSession,
        user_id: UUID,
        start: Optional[datetime],
        end: Optional[datetime],
        medication_id: Optional[UUID] = None,
    ) -> List[MedicationLog]:
        """Owner's logs with start <= scheduled_time < end, newest first."""
        query = owned(MedicationLog, user_id)
        if medication_id is not None:
            query = query.where(MedicationLog.medication_id == medication_id)
        if start is not None:
            query = query.where(MedicationLog.scheduled_time >= start)
        if end is not None:
            query = query.where(MedicationLog.scheduled_time < end)
        query = query.order_by(desc(MedicationLog.scheduled_time))
        try:
            result = await db.execute(query)
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            raise _db_error("reading logs", e)

    # ── Recording ────────────────────────────────────────────────────────

    async def record_dose(
        self,
        db: AsyncSession,
        user_id: UUID,
        medication_id: UUID,
        status: str,
        via: str,
        tz,
        notes: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> DoseLogResponse:
        """
        Mark today's dose as taken or skipped.

        Raises:
            NotFoundError: unknown medication, or someone else's
            ValidationError: status other than taken/skipped
        """
        try:
            dose = DoseStatus(status)
        except ValueError:
            dose = DoseStatus.MISSED
        if dose == DoseStatus.MISSED:
            raise ValidationError(message="A dose can only be marked taken or skipped", field="status")

        medication = await medication_service.get_row(db, user_id, medication_id)
        now = now or utc_now()
        today = local_day(now, tz)
        start, end = day_bounds(today, tz)

        existing = await self._logs_between(db, user_id, start, end, medication_id=medication.id)
        try:
            if existing:
                log = existing[-1]  # earliest of the day
            else:
                log = MedicationLog(
                    user_id=user_id,
                    medication_id=medication.id,
                    scheduled_time=scheduled_time_for(medication, today, tz),
                )
                db.add(log)
            log.status = dose.value
            log.taken_at = now if dose == DoseStatus.TAKEN else None
            log.confirmed_via = via
            if notes is not None:
                log.notes = notes
            await db.flush()
            await db.refresh(log)
        except SQLAlchemyError as e:
            raise _db_error("recording a dose", e)

        logger.info(
            "Dose %s for medication %s on %s via %s (%s)",
            dose.value,
            medication.id,
            today.isoformat(),
            via,
            "updated" if existing else "new",
        )
        return DoseLogResponse.model_validate(log)

    async def handle_notification_action(
        self,
        db: AsyncSession,
        user_id: UUID,
        medication_id: UUID,
        action: str,
        tz,
        notes: Optional[str] = None,
    ) -> DoseLogResponse:
        dose = NOTIFICATION_ACTIONS.get(action)
        if dose is None:
            raise ValidationError(
                message=f"Unknown notification action '{action}'",
                field="action",
                context={"allowed": sorted(NOTIFICATION_ACTIONS)},
            )
        return await self.record_dose(
            db, user_id, medication_id, dose.value, via="notification", tz=tz, notes=notes
        )

    # ── Reading ──────────────────────────────────────────────────────────

    async def list_logs(
        self,
        db: AsyncSession,
        user_id: UUID,
        medication_id: UUID,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[DoseLogResponse]:
        medication = await medication_service.get_row(db, user_id, medication_id)
        logs = await self._logs_between(db, user_id, start, end, medication_id=medication.id)
        return [DoseLogResponse.model_validate(log) for log in logs]

    async def calendar(
        self,
        db: AsyncSession,
        user_id: UUID,
        medication_id: UUID,
        year: int,
        month: int,
        tz,
    ) -> CalendarResponse:
        if not 1 <= month <= 12:
            raise ValidationError(message="month must be between 1 and 12", field="month")

        try:
            start, end = month_bounds(year, month, tz)
        except (ValueError, OverflowError) as e:
            raise ValidationError(message=str(e), field="year")

        medication = await medication_service.get_row(db, user_id, medication_id)
        logs = await self._logs_between(db, user_id, start, end, medication_id=medication.id)

        statuses = month_calendar(logs, year, month, tz)
        in_month = [
            log.status
            for log in logs
            if local_day(log.scheduled_time, tz).month == month
        ]
        return CalendarResponse(
            medication_id=medication.id,
            year=year,
            month=month,
            days=[CalendarDay(date=d, status=s.value) for d, s in sorted(statuses.items())],
            adherence_rate=adherence_rate(in_month),
        )

    async def today_summary(
        self, db: AsyncSession, user_id: UUID, tz, today: Optional[date] = None
    ) -> TodaySummary:
        """Active medication count and how many were taken today."""
        today = today or local_day(utc_now(), tz)
        medications = await medication_service.list_active(db, user_id)
        start, end = day_bounds(today, tz)
        logs = await self._logs_between(db, user_id, start, end)

        taken = taken_today(logs, today, tz) & {m.id for m in medications}
        return TodaySummary(
            date=today,
            active_medications=len(medications),
            taken_today=len(taken),
            medications=[
                MedicationTakenFlag(medication_id=m.id, name=m.name, taken=m.id in taken)
                for m in medications
            ],
        )

    # ── Automatic misses ─────────────────────────────────────────────────

    async def mark_missed(
        self, db: AsyncSession, user_id: UUID, day: date, tz
    ) -> MarkMissedResponse:
        """
        Insert a "missed" log for every active medication whose reminders
        fire on `day` and that has no log for that day yet.
        """
        medications = await medication_service.list_active(db, user_id)
        start, end = day_bounds(day, tz)
        logged = {log.medication_id for log in await self._logs_between(db, user_id, start, end)}

        inserted = 0
        try:
            for medication in medications:
                if not medication.reminder_enabled or medication.id in logged:
                    continue
                if not is_scheduled_on(schedule_of(medication), day):
                    continue
                db.add(MedicationLog(
                    user_id=user_id,
                    medication_id=medication.id,
                    scheduled_time=scheduled_time_for(medication, day, tz),
                    status=DoseStatus.MISSED.value,
                    confirmed_via="auto",
                ))
                inserted += 1
            if inserted:
                await db.flush()
        except SQLAlchemyError as e:
            raise _db_error("marking missed doses", e)

        logger.info("Marked %d missed doses for user %s on %s", inserted, user_id, day.isoformat())
        return MarkMissedResponse(day=day, inserted=inserted)


# ── Singleton Instance ────────────────────────────────────────────────────
tracking_service = TrackingService()
