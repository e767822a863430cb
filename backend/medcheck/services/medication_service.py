"""
MedCheck Backend - Medication Service
=====================================

What:  The caller's medication list: CRUD, reminder schedules, label
       scanning and lookup by name.
How:   Every query is scoped to the owner (services/ownership.py). Text
       fields are normalised with core.formatting and reminder settings with
       core.reminders before anything is written.
Who:   Medication and reminder routes.

Label scan flow (POST /api/medications/scan):
    ┌──────────┐    ┌─────────────┐    ┌──────────────┐    ┌──────────────┐
    │  Upload  │───▶│  Validate   │───▶│  Gemini      │───▶│  Gemini      │
    │  (Route) │    │  & Store    │    │  label read  │    │  dosage      │
    └──────────┘    └─────────────┘    └──────────────┘    └──────────────┘

    The result is a draft for the user to review; nothing is inserted until
    the client posts it to /api/medications. If the label cannot be read
    the stored photo is removed again.
"""

import heapq
import logging
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy import desc
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from medcheck.core.formatting import format_dosage, format_frequency, format_medication_name
from medcheck.core.reminders import (
    ReminderSchedule,
    build_triggers,
    describe_days,
    toggle_day,
    upcoming_occurrences,
)
from medcheck.exceptions import DatabaseError, ValidationError
from medcheck.models.medication import Medication
from medcheck.schemas.medication import (
    MedicationCreate,
    MedicationInfo,
    MedicationResponse,
    MedicationUpdate,
    ReminderScheduleResponse,
    ReminderTriggerResponse,
    ScanResponse,
    UpcomingReminder,
)
from medcheck.services.clock import local_now
from medcheck.services.file_service import FileService, file_service
from medcheck.services.gemini_service import gemini_service
from medcheck.services.llm_base import LLMService
from medcheck.services.ownership import get_owned, owned
from medcheck.services.profile_service import profile_service

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = (
    "name",
    "category",
    "is_prescription",
    "reminder_enabled",
    "reminder_times",
    "reminder_frequency",
    "reminder_days",
    "active",
)


def normalise_fields(fields: Dict[str, Any]) -> Dict[str, Any]:
    """Apply display normalisation to whichever text fields are present."""
    result = dict(fields)
    if result.get("name"):
        result["name"] = format_medication_name(result["name"])
    if "generic_name" in result and result["generic_name"] is not None:
        result["generic_name"] = format_medication_name(result["generic_name"]) or None
    if "dosage" in result and result["dosage"] is not None:
        result["dosage"] = format_dosage(result["dosage"]) or None
    if "frequency" in result and result["frequency"] is not None:
        result["frequency"] = format_frequency(result["frequency"]) or None
    return result


def schedule_of(medication: Any) -> ReminderSchedule:
    return ReminderSchedule.create(
        medication.reminder_frequency,
        medication.reminder_times or [],
        medication.reminder_days or [],
    )


class MedicationService:
    """
    Business logic for the medication list.

    Error Handling Strategy:
        Database errors are wrapped in DatabaseError; application errors
        (NotFoundError, ValidationError, LLMServiceError) propagate unchanged.
    """

    def __init__(self, llm: Optional[LLMService] = None, files: Optional[FileService] = None):
        self.llm = llm or gemini_service
        self.files = files or file_service

    # ── CRUD ─────────────────────────────────────────────────────────────

    async def create(
        self, db: AsyncSession, user_id: UUID, data: MedicationCreate
    ) -> MedicationResponse:
        fields = normalise_fields(data.model_dump())
        try:
            medication = Medication(user_id=user_id, **fields)
            db.add(medication)
            await db.flush()
            await db.refresh(medication)
        except SQLAlchemyError as e:
            logger.error("Database error creating medication: %s", str(e), exc_info=True)
            raise DatabaseError(
                message="Could not save the medication. Please try again.",
                context={"error_type": type(e).__name__},
            )
        logger.info("Medication %s created for user %s", medication.id, user_id)
        return MedicationResponse.model_validate(medication)

    async def get_row(self, db: AsyncSession, user_id: UUID, medication_id: UUID) -> Medication:
        try:
            return await get_owned(db, Medication, user_id, medication_id, "Medication")
        except SQLAlchemyError as e:
            logger.error("Database error fetching medication %s: %s", medication_id, str(e))
            raise DatabaseError(
                message="Could not retrieve the medication. Please try again.",
                context={"medication_id": str(medication_id)},
            )

    async def get(self, db: AsyncSession, user_id: UUID, medication_id: UUID) -> MedicationResponse:
        return MedicationResponse.model_validate(await self.get_row(db, user_id, medication_id))

    async def _list_rows(
        self,
        db: AsyncSession,
        user_id: UUID,
        active: Optional[bool] = None,
        category: Optional[str] = None,
    ) -> List[Medication]:
        query = owned(Medication, user_id)
        if active is not None:
            query = query.where(Medication.active == active)
        if category is not None:
            query = query.where(Medication.category == category)
        query = query.order_by(desc(Medication.created_at))
        try:
            result = await db.execute(query)
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            logger.error("Database error listing medications: %s", str(e), exc_info=True)
            raise DatabaseError(
                message="Could not retrieve medications. Please try again.",
                context={"error_type": type(e).__name__},
            )

    async def list(
        self,
        db: AsyncSession,
        user_id: UUID,
        active: Optional[bool] = None,
        category: Optional[str] = None,
    ) -> List[MedicationResponse]:
        """Newest first, optionally filtered by active flag and category."""
        rows = await self._list_rows(db, user_id, active=active, category=category)
        return [MedicationResponse.model_validate(m) for m in rows]

    async def list_active(self, db: AsyncSession, user_id: UUID) -> List[Medication]:
        """Active rows, for the interaction, tracking and chat services."""
        return await self._list_rows(db, user_id, active=True)

    async def update(
        self,
        db: AsyncSession,
        user_id: UUID,
        medication_id: UUID,
        data: MedicationUpdate,
    ) -> MedicationResponse:
        """
        Partial update. The merged reminder settings are validated as a
        whole; switching frequency without sending days clears the days.
        """
        medication = await self.get_row(db, user_id, medication_id)
        changes = normalise_fields(data.model_dump(exclude_unset=True))
        # An explicit null on a required column means "leave as is"
        for field in REQUIRED_FIELDS:
            if changes.get(field, ...) is None:
                del changes[field]
        if "name" in changes and not changes["name"]:
            raise ValidationError(message="Medication name cannot be blank", field="name")

        frequency = changes.get("reminder_frequency", medication.reminder_frequency)
        times = changes.get("reminder_times", medication.reminder_times or [])
        if "reminder_days" in changes:
            days = changes["reminder_days"] or []
        elif frequency != medication.reminder_frequency:
            days = []
        else:
            days = medication.reminder_days or []
        enabled = changes.get("reminder_enabled", medication.reminder_enabled)

        try:
            schedule = ReminderSchedule.create(frequency, times or [], days)
        except ValueError as e:
            raise ValidationError(message=str(e), field="reminders")
        if enabled and not schedule.times:
            raise ValidationError(
                message="Add at least one reminder time before enabling reminders",
                field="reminder_times",
            )

        changes["reminder_frequency"] = schedule.frequency.value
        changes["reminder_times"] = list(schedule.times)
        changes["reminder_days"] = list(schedule.days)

        try:
            for field, value in changes.items():
                setattr(medication, field, value)
            await db.flush()
            await db.refresh(medication)
        except SQLAlchemyError as e:
            logger.error("Database error updating medication %s: %s", medication_id, str(e))
            raise DatabaseError(
                message="Could not update the medication. Please try again.",
                context={"medication_id": str(medication_id)},
            )
        return MedicationResponse.model_validate(medication)

    async def delete(self, db: AsyncSession, user_id: UUID, medication_id: UUID) -> None:
        """Deletes the medication and, through the foreign key, its logs."""
        medication = await self.get_row(db, user_id, medication_id)
        try:
            await db.delete(medication)
            await db.flush()
        except SQLAlchemyError as e:
            logger.error("Database error deleting medication %s: %s", medication_id, str(e))
            raise DatabaseError(
                message="Could not delete the medication. Please try again.",
                context={"medication_id": str(medication_id)},
            )
        logger.info("Medication %s deleted for user %s", medication_id, user_id)

    # ── Reminders ────────────────────────────────────────────────────────

    async def toggle_reminder_day(
        self, db: AsyncSession, user_id: UUID, medication_id: UUID, day: int
    ) -> MedicationResponse:
        medication = await self.get_row(db, user_id, medication_id)
        try:
            days = toggle_day(medication.reminder_days or [], day, medication.reminder_frequency)
        except ValueError as e:
            raise ValidationError(message=str(e), field="day", context={"day": day})

        try:
            medication.reminder_days = days
            await db.flush()
            await db.refresh(medication)
        except SQLAlchemyError as e:
            logger.error("Database error toggling day on %s: %s", medication_id, str(e))
            raise DatabaseError(
                message="Could not update reminder days. Please try again.",
                context={"medication_id": str(medication_id)},
            )
        return MedicationResponse.model_validate(medication)

    async def reminder_triggers(
        self, db: AsyncSession, user_id: UUID, medication_id: UUID
    ) -> ReminderScheduleResponse:
        """The device triggers to register; none while reminders are off."""
        medication = await self.get_row(db, user_id, medication_id)
        schedule = schedule_of(medication)
        triggers = build_triggers(schedule) if medication.reminder_enabled else []
        return ReminderScheduleResponse(
            medication_id=medication.id,
            reminder_enabled=medication.reminder_enabled,
            reminder_frequency=schedule.frequency.value,
            reminder_times=list(schedule.times),
            reminder_days=list(schedule.days),
            summary=describe_days(schedule.frequency, schedule.days),
            triggers=[
                ReminderTriggerResponse(
                    frequency=t.frequency.value,
                    hour=t.hour,
                    minute=t.minute,
                    weekday=t.weekday,
                    day=t.day,
                )
                for t in triggers
            ],
        )

    async def upcoming_reminders(
        self, db: AsyncSession, user_id: UUID, tz, limit: int = 10
    ) -> List[UpcomingReminder]:
        """Next reminders across all active medications, soonest first."""
        now = local_now(tz)
        streams = []
        for medication in await self.list_active(db, user_id):
            if not medication.reminder_enabled:
                continue
            streams.append([
                UpcomingReminder(
                    medication_id=medication.id,
                    medication_name=medication.name,
                    dosage=medication.dosage,
                    at=moment,
                )
                for moment in upcoming_occurrences(schedule_of(medication), now, limit)
            ])
        merged = heapq.merge(*streams, key=lambda r: r.at)
        return [reminder for _, reminder in zip(range(limit), merged)]

    # ── AI-assisted entry ────────────────────────────────────────────────

    async def scan_label(
        self, db: AsyncSession, user_id: UUID, filename: str, content: bytes
    ) -> ScanResponse:
        """
        Store the photo, read the label, and personalise the dosage.
        The photo is removed again whenever any later step fails.

        Raises:
            ValidationError: unsupported or oversized image
            LLMServiceError / CircuitBreakerOpenError: label could not be read
        """
        stored = await self.files.validate_and_store(user_id, filename, content)
        logger.info("Label photo stored for scan: %s", stored.relative_path)

        try:
            info = await self.llm.analyze_label_image(content, stored.mime_type)
            info = MedicationInfo.model_validate(normalise_fields(info.model_dump()))
            patient = await profile_service.patient_context(db, user_id)
            recommendation = await self.llm.recommend_dosage(info, patient)
        except Exception:
            await self.files.cleanup_file(stored.absolute_path)
            raise

        return ScanResponse(medication=info, recommendation=recommendation, image_url=stored.url)

    async def lookup(self, name: str) -> MedicationInfo:
        """What the AI knows about a name; empty when it knows nothing."""
        if not name.strip():
            raise ValidationError(message="Enter a medication name to look up", field="name")
        info = await self.llm.lookup_medication(name.strip())
        return MedicationInfo.model_validate(normalise_fields(info.model_dump()))


# ── Singleton Instance ────────────────────────────────────────────────────
medication_service = MedicationService()
