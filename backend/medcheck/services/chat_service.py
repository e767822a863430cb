"""
MedCheck Backend - Conversation Service
=======================================

What:  Conversations with the health assistant: CRUD, and the send-message
       workflow that stores both sides of every exchange.
Who:   Chat routes.

send_message() flow:
    1. Store the optional image (FileService), then the user message
    2. First user message of a "New Conversation" becomes its title
    3. Build context: patient profile, active medications, recent messages
    4. Detail mode when the user says "yes"/"tell me more" right after the
       assistant offered more detailed information
    5. Ask Gemini; lift out any add-medication action and fill its empty
       fields from a name lookup; clean the reply
    6. Store the assistant message with metadata and bump updated_at

A failed AI call does not fail the request: an apology is stored as the
assistant's reply so the conversation stays consistent.
"""

import logging
from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy import asc, desc, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from medcheck.config import settings
from medcheck.core.assistant import (
    DEFAULT_TITLE,
    clean_reply,
    conversation_title,
    extract_add_medication_action,
    wants_detail,
)
from medcheck.exceptions import (
    CircuitBreakerOpenError,
    DatabaseError,
    LLMServiceError,
    ValidationError,
)
from medcheck.models.conversation import Conversation, ConversationMessage
from medcheck.schemas.chat import (
    ChatReplyResponse,
    ConversationDetail,
    ConversationResponse,
    MessageResponse,
)
from medcheck.schemas.medication import ChatMedicationSuggestion
from medcheck.services.clock import utc_now
from medcheck.services.file_service import FileService, file_service
from medcheck.services.gemini_service import IMAGE_PROMPT, gemini_service
from medcheck.services.llm_base import ChatTurn, LLMService
from medcheck.services.medication_service import medication_service
from medcheck.services.ownership import get_owned, owned
from medcheck.services.profile_service import profile_service

logger = logging.getLogger(__name__)

APOLOGY = "I'm sorry, I couldn't get a response right now. Please try again in a moment."

# Suggestion fields a name lookup may fill when the assistant left them empty
LOOKUP_FIELDS = ("generic_name", "dosage", "frequency", "description")

# (filename, raw bytes) of an image attached to a message
ImageUpload = Tuple[str, bytes]


def _db_error(action: str, e: Exception) -> DatabaseError:
    logger.error("Database error while %s: %s", action, str(e), exc_info=True)
    return DatabaseError(
        message="Could not update the conversation. Please try again.",
        context={"error_type": type(e).__name__},
    )


def suggested_medication(raw_reply: str) -> Optional[dict]:
    """The add-medication payload of a reply, validated; None if absent or unusable."""
    medication = extract_add_medication_action(raw_reply)
    if medication is None:
        return None
    try:
        return ChatMedicationSuggestion.model_validate(medication).model_dump()
    except ValueError as e:
        logger.warning("Ignoring unusable add-medication action: %s", e)
        return None


class ChatService:

    def __init__(self, llm: Optional[LLMService] = None, files: Optional[FileService] = None):
        self.llm = llm or gemini_service
        self.files = files or file_service

    # ── Conversations ────────────────────────────────────────────────────

    async def _get(self, db: AsyncSession, user_id: UUID, conversation_id: UUID) -> Conversation:
        try:
            return await get_owned(db, Conversation, user_id, conversation_id, "Conversation")
        except SQLAlchemyError as e:
            raise _db_error("loading a conversation", e)

    async def create_conversation(
        self, db: AsyncSession, user_id: UUID, title: Optional[str] = None
    ) -> ConversationResponse:
        try:
            conversation = Conversation(
                user_id=user_id,
                title=(title or "").strip() or DEFAULT_TITLE,
                is_active=True,
            )
            db.add(conversation)
            await db.flush()
            await db.refresh(conversation)
        except SQLAlchemyError as e:
            raise _db_error("creating a conversation", e)
        return ConversationResponse.model_validate(conversation)

    async def list_conversations(self, db: AsyncSession, user_id: UUID) -> List[ConversationResponse]:
        """Active conversations, most recently updated first."""
        try:
            result = await db.execute(
                owned(Conversation, user_id)
                .where(Conversation.is_active.is_(True))
                .order_by(desc(Conversation.updated_at))
            )
            rows = list(result.scalars().all())
        except SQLAlchemyError as e:
            raise _db_error("listing conversations", e)
        return [ConversationResponse.model_validate(c) for c in rows]

    async def _messages(
        self, db: AsyncSession, conversation_id: UUID, limit: Optional[int] = None
    ) -> List[ConversationMessage]:
        """Oldest first; with a limit, the newest `limit` messages."""
        query = select(ConversationMessage).where(
            ConversationMessage.conversation_id == conversation_id
        )
        try:
            if limit is None:
                result = await db.execute(query.order_by(asc(ConversationMessage.created_at)))
                return list(result.scalars().all())
            result = await db.execute(
                query.order_by(desc(ConversationMessage.created_at)).limit(limit)
            )
            return list(reversed(result.scalars().all()))
        except SQLAlchemyError as e:
            raise _db_error("loading messages", e)

    async def get_conversation(
        self, db: AsyncSession, user_id: UUID, conversation_id: UUID
    ) -> ConversationDetail:
        conversation = await self._get(db, user_id, conversation_id)
        messages = await self._messages(db, conversation.id)
        return ConversationDetail(
            **ConversationResponse.model_validate(conversation).model_dump(),
            messages=[MessageResponse.model_validate(m) for m in messages],
        )

    async def rename_conversation(
        self, db: AsyncSession, user_id: UUID, conversation_id: UUID, title: str
    ) -> ConversationResponse:
        conversation = await self._get(db, user_id, conversation_id)
        try:
            conversation.title = title.strip()
            await db.flush()
            await db.refresh(conversation)
        except SQLAlchemyError as e:
            raise _db_error("renaming a conversation", e)
        return ConversationResponse.model_validate(conversation)

    async def archive_conversation(
        self, db: AsyncSession, user_id: UUID, conversation_id: UUID
    ) -> ConversationResponse:
        """Hide from the list; messages are kept."""
        conversation = await self._get(db, user_id, conversation_id)
        try:
            conversation.is_active = False
            await db.flush()
            await db.refresh(conversation)
        except SQLAlchemyError as e:
            raise _db_error("archiving a conversation", e)
        return ConversationResponse.model_validate(conversation)

    async def delete_conversation(
        self, db: AsyncSession, user_id: UUID, conversation_id: UUID
    ) -> None:
        conversation = await self._get(db, user_id, conversation_id)
        try:
            await db.delete(conversation)
            await db.flush()
        except SQLAlchemyError as e:
            raise _db_error("deleting a conversation", e)
        logger.info("Conversation %s deleted for user %s", conversation_id, user_id)

    # ── Messages ─────────────────────────────────────────────────────────

    async def complete_suggestion(self, medication: dict) -> dict:
        """
        Fill the empty fields of an add-medication suggestion from a name
        lookup. Fields the assistant already gave are never replaced.
        """
        if medication.get("category") and all(medication.get(f) for f in LOOKUP_FIELDS):
            return medication
        try:
            details = await self.llm.lookup_medication(medication["name"])
        except (LLMServiceError, CircuitBreakerOpenError) as e:
            logger.warning("Lookup for suggested medication %r failed: %s", medication["name"], e.message)
            return medication

        completed = dict(medication)
        for field in LOOKUP_FIELDS:
            if not completed.get(field) and getattr(details, field):
                completed[field] = getattr(details, field)
        if not completed.get("category"):
            if details.category:
                completed["category"] = details.category
            elif details.is_prescription is not None:
                completed["category"] = "prescription" if details.is_prescription else "otc"
        return completed

    async def send_message(
        self,
        db: AsyncSession,
        user_id: UUID,
        conversation_id: UUID,
        content: str,
        image: Optional[ImageUpload] = None,
    ) -> ChatReplyResponse:
        """
        Raises:
            NotFoundError: unknown conversation, or someone else's
            ValidationError: empty message without image, or a bad image
        """
        text = (content or "").strip()
        if not text and image is None:
            raise ValidationError(message="Type a message or attach an image", field="content")

        conversation = await self._get(db, user_id, conversation_id)
        history = await self._messages(db, conversation.id, limit=settings.chat_context_messages)

        stored = None
        if image is not None:
            filename, data = image
            stored = await self.files.validate_and_store(user_id, filename, data)
        text = text or IMAGE_PROMPT

        try:
            user_message = ConversationMessage(
                conversation_id=conversation.id,
                user_id=user_id,
                role="user",
                content=text,
                image_url=stored.url if stored else None,
                image_mime_type=stored.mime_type if stored else None,
                has_image=stored is not None,
                created_at=utc_now(),
            )
            db.add(user_message)
            if conversation.title == DEFAULT_TITLE and not any(m.role == "user" for m in history):
                conversation.title = conversation_title(text)
            await db.flush()
        except SQLAlchemyError as e:
            if stored:
                await self.files.cleanup_file(stored.absolute_path)
            raise _db_error("storing a message", e)

        previous_reply = history[-1].content if history and history[-1].role == "assistant" else None
        detailed = wants_detail(text, previous_reply)

        turns = [ChatTurn(role=m.role, content=m.content) for m in history]
        while turns and turns[0].role != "user":
            turns.pop(0)
        turns.append(ChatTurn(
            role="user",
            content=text,
            image=image[1] if image else None,
            image_mime_type=stored.mime_type if stored else None,
        ))

        medications = await medication_service.list_active(db, user_id)
        patient = await profile_service.patient_context(db, user_id)

        medication = None
        failed = False
        try:
            raw_reply = await self.llm.chat(turns, medications, patient, detailed=detailed)
            medication = suggested_medication(raw_reply)
            reply = clean_reply(raw_reply, medication)
        except (LLMServiceError, CircuitBreakerOpenError) as e:
            logger.warning("Assistant reply failed for conversation %s: %s", conversation.id, e.message)
            reply = APOLOGY
            failed = True
        if medication:
            medication = await self.complete_suggestion(medication)

        metadata = {
            "action": "add_medication" if medication else None,
            "medication": medication,
            "detailed": detailed,
        }
        if failed:
            metadata["error"] = True

        try:
            assistant_message = ConversationMessage(
                conversation_id=conversation.id,
                user_id=user_id,
                role="assistant",
                content=reply,
                message_metadata=metadata,
                has_image=False,
                created_at=utc_now(),
            )
            db.add(assistant_message)
            conversation.updated_at = utc_now()
            await db.flush()
            await db.refresh(user_message)
            await db.refresh(assistant_message)
            await db.refresh(conversation)
        except SQLAlchemyError as e:
            raise _db_error("storing the assistant reply", e)

        logger.info(
            "Conversation %s: reply stored (detailed=%s, action=%s, failed=%s)",
            conversation.id,
            detailed,
            metadata["action"],
            failed,
        )
        return ChatReplyResponse(
            conversation=ConversationResponse.model_validate(conversation),
            user_message=MessageResponse.model_validate(user_message),
            assistant_message=MessageResponse.model_validate(assistant_message),
        )


# ── Singleton Instance ────────────────────────────────────────────────────
chat_service = ChatService()
