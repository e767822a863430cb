"""
MedCheck Backend - Conversation Service Tests
=============================================

What we test:
    ✅ Both sides of an exchange stored; first message titles the chat
    ✅ Detail mode after an offer of more detail
    ✅ Add-medication actions lifted out of the reply into metadata
    ✅ Empty suggestion fields filled from a name lookup, given ones kept
    ✅ AI failure stores an apology instead of failing the request
    ✅ Image attachments stored and forwarded; storage rolled back on DB errors
    ✅ Empty messages rejected; other users' conversations not found
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest
from sqlalchemy.exc import OperationalError

from conftest import apply_insert_defaults, medication_row, result_with
from medcheck.core.assistant import DEFAULT_TITLE, DETAIL_OFFER
from medcheck.exceptions import (
    CircuitBreakerOpenError,
    DatabaseError,
    NotFoundError,
    ValidationError,
)
from medcheck.models.conversation import Conversation, ConversationMessage
from medcheck.schemas.medication import MedicationInfo
from medcheck.services.chat_service import APOLOGY, ChatService
from medcheck.services.file_service import StoredFile
from medcheck.services.llm_base import LLMService


def conversation_row(user_id, title=DEFAULT_TITLE):
    conversation = Conversation(user_id=user_id, title=title, is_active=True)
    apply_insert_defaults(conversation)
    return conversation


def message_row(conversation, role, content, minutes_ago=0):
    message = ConversationMessage(
        conversation_id=conversation.id,
        user_id=conversation.user_id,
        role=role,
        content=content,
        created_at=datetime.now(timezone.utc) - timedelta(minutes=minutes_ago),
    )
    apply_insert_defaults(message)
    return message


def added_messages(session):
    return [
        call.args[0]
        for call in session.add.call_args_list
        if isinstance(call.args[0], ConversationMessage)
    ]


class TestSendMessage:

    @pytest.fixture(autouse=True)
    def _setup(self, user_id):
        self.llm = AsyncMock(spec=LLMService)
        self.files = MagicMock()
        self.files.validate_and_store = AsyncMock(return_value=StoredFile(
            absolute_path="/tmp/storage/img.png",
            relative_path=f"{user_id}/2025/03/01/img.png",
            mime_type="image/png",
        ))
        self.files.cleanup_file = AsyncMock()
        self.llm.lookup_medication.return_value = MedicationInfo()
        self.service = ChatService(llm=self.llm, files=self.files)
        self.conversation = conversation_row(user_id)

    def given(self, session, history=(), medications=()):
        # conversation, recent messages, active medications
        session.execute.side_effect = [
            result_with([self.conversation]),
            result_with(list(reversed(history))),  # queried newest first
            result_with(list(medications)),
        ]

    @pytest.mark.asyncio
    async def test_first_message_stores_both_sides_and_titles(self, mock_db_session, user_id):
        self.given(mock_db_session, medications=[medication_row(user_id)])
        self.llm.chat.return_value = f"Ibuprofen eases pain. {DETAIL_OFFER}"

        reply = await self.service.send_message(
            mock_db_session, user_id, self.conversation.id, "  What is ibuprofen for?  "
        )

        user_msg, assistant_msg = added_messages(mock_db_session)
        assert user_msg.role == "user"
        assert user_msg.content == "What is ibuprofen for?"
        assert assistant_msg.role == "assistant"
        assert reply.assistant_message.content.startswith("Ibuprofen eases pain.")
        assert reply.assistant_message.metadata == {
            "action": None,
            "medication": None,
            "detailed": False,
        }
        assert reply.conversation.title == "What is ibuprofen for?"

        turns, medications, _ = self.llm.chat.call_args.args
        assert [t.role for t in turns] == ["user"]
        assert medications[0].name == "Ibuprofen"
        assert self.llm.chat.call_args.kwargs["detailed"] is False

    @pytest.mark.asyncio
    async def test_later_messages_keep_title(self, mock_db_session, user_id):
        self.conversation.title = "Ibuprofen questions"
        history = [
            message_row(self.conversation, "user", "What is ibuprofen?", minutes_ago=2),
            message_row(self.conversation, "assistant", "A pain reliever.", minutes_ago=1),
        ]
        self.given(mock_db_session, history=history)
        self.llm.chat.return_value = "Usually every 4-6 hours."

        reply = await self.service.send_message(
            mock_db_session, user_id, self.conversation.id, "How often?"
        )

        assert reply.conversation.title == "Ibuprofen questions"
        turns = self.llm.chat.call_args.args[0]
        assert [(t.role, t.content) for t in turns] == [
            ("user", "What is ibuprofen?"),
            ("assistant", "A pain reliever."),
            ("user", "How often?"),
        ]

    @pytest.mark.asyncio
    async def test_history_starts_with_a_user_turn(self, mock_db_session, user_id):
        history = [message_row(self.conversation, "assistant", "Welcome back!", minutes_ago=1)]
        self.given(mock_db_session, history=history)
        self.llm.chat.return_value = "Hello."

        await self.service.send_message(mock_db_session, user_id, self.conversation.id, "hi")

        turns = self.llm.chat.call_args.args[0]
        assert [t.role for t in turns] == ["user"]

    @pytest.mark.asyncio
    async def test_yes_after_offer_enables_detail(self, mock_db_session, user_id):
        history = [
            message_row(self.conversation, "user", "What is metformin?", minutes_ago=2),
            message_row(self.conversation, "assistant", f"A diabetes drug. {DETAIL_OFFER}", minutes_ago=1),
        ]
        self.given(mock_db_session, history=history)
        self.llm.chat.return_value = "Metformin lowers glucose production in the liver..."

        reply = await self.service.send_message(mock_db_session, user_id, self.conversation.id, "yes please")

        assert self.llm.chat.call_args.kwargs["detailed"] is True
        assert reply.assistant_message.metadata["detailed"] is True

    @pytest.mark.asyncio
    async def test_add_medication_action(self, mock_db_session, user_id):
        self.given(mock_db_session)
        self.llm.chat.return_value = (
            'Sure! {"action": "add_medication", "medication": '
            '{"name": "Vitamin D", "dosage": "1000 IU", "category": "supplement"}}'
        )

        reply = await self.service.send_message(
            mock_db_session, user_id, self.conversation.id, "Add vitamin D to my list"
        )

        metadata = reply.assistant_message.metadata
        assert metadata["action"] == "add_medication"
        assert metadata["medication"]["name"] == "Vitamin D"
        assert metadata["medication"]["category"] == "supplement"
        assert "Vitamin D" in reply.assistant_message.content
        assert "{" not in reply.assistant_message.content

    @pytest.mark.asyncio
    async def test_suggestion_gaps_filled_from_lookup(self, mock_db_session, user_id):
        self.given(mock_db_session)
        self.llm.chat.return_value = (
            '{"action": "add_medication", "medication": {"name": "Tylenol", "dosage": "500mg"}}'
        )
        self.llm.lookup_medication.return_value = MedicationInfo(
            name="Tylenol",
            generic_name="Acetaminophen",
            dosage="325mg",
            frequency="Every 6 hours",
            is_prescription=False,
        )

        reply = await self.service.send_message(
            mock_db_session, user_id, self.conversation.id, "Add tylenol"
        )

        medication = reply.assistant_message.metadata["medication"]
        assert medication["dosage"] == "500mg"
        assert medication["generic_name"] == "Acetaminophen"
        assert medication["frequency"] == "Every 6 hours"
        assert medication["category"] == "otc"
        self.llm.lookup_medication.assert_awaited_once_with("Tylenol")

    @pytest.mark.asyncio
    async def test_failed_lookup_keeps_suggestion(self, mock_db_session, user_id):
        self.given(mock_db_session)
        self.llm.chat.return_value = '{"action": "add_medication", "medication": {"name": "Zinc"}}'
        self.llm.lookup_medication.side_effect = CircuitBreakerOpenError(recovery_time=30)

        reply = await self.service.send_message(
            mock_db_session, user_id, self.conversation.id, "Add zinc"
        )

        metadata = reply.assistant_message.metadata
        assert metadata["action"] == "add_medication"
        assert metadata["medication"]["name"] == "Zinc"
        assert metadata["medication"]["dosage"] is None
        assert "error" not in metadata

    @pytest.mark.asyncio
    async def test_complete_suggestion_skips_lookup(self):
        medication = {
            "name": "Vitamin D", "generic_name": "Cholecalciferol", "dosage": "1000 IU",
            "frequency": "Daily", "description": "Supplement", "category": "supplement",
        }

        assert await self.service.complete_suggestion(medication) == medication
        self.llm.lookup_medication.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_ai_failure_stores_apology(self, mock_db_session, user_id):
        self.given(mock_db_session)
        self.llm.chat.side_effect = CircuitBreakerOpenError(recovery_time=30)

        reply = await self.service.send_message(mock_db_session, user_id, self.conversation.id, "hello")

        assert reply.assistant_message.content == APOLOGY
        assert reply.assistant_message.metadata["error"] is True
        assert len(added_messages(mock_db_session)) == 2

    @pytest.mark.asyncio
    async def test_image_only_message(self, mock_db_session, user_id, sample_png_bytes):
        self.given(mock_db_session)
        self.llm.chat.return_value = "That looks like an ibuprofen blister pack."

        reply = await self.service.send_message(
            mock_db_session, user_id, self.conversation.id, "", image=("pack.png", sample_png_bytes)
        )

        assert reply.user_message.has_image is True
        assert reply.user_message.image_url == f"/api/files/{user_id}/2025/03/01/img.png"
        assert reply.user_message.content  # a default prompt stands in for the empty text
        last_turn = self.llm.chat.call_args.args[0][-1]
        assert last_turn.image == sample_png_bytes
        assert last_turn.image_mime_type == "image/png"

    @pytest.mark.asyncio
    async def test_db_failure_removes_stored_image(self, mock_db_session, user_id, sample_png_bytes):
        self.given(mock_db_session)
        mock_db_session.flush.side_effect = OperationalError("INSERT", {}, Exception("gone"))

        with pytest.raises(DatabaseError):
            await self.service.send_message(
                mock_db_session, user_id, self.conversation.id, "look", image=("pack.png", sample_png_bytes)
            )

        self.files.cleanup_file.assert_awaited_once_with("/tmp/storage/img.png")
        self.llm.chat.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_empty_message_rejected(self, mock_db_session, user_id):
        with pytest.raises(ValidationError):
            await self.service.send_message(mock_db_session, user_id, self.conversation.id, "   ")
        mock_db_session.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_someone_elses_conversation(self, mock_db_session, user_id):
        mock_db_session.execute.return_value = result_with([])

        with pytest.raises(NotFoundError):
            await self.service.send_message(mock_db_session, user_id, uuid4(), "hello")


class TestConversations:

    def setup_method(self):
        self.service = ChatService(llm=AsyncMock(spec=LLMService), files=MagicMock())

    @pytest.mark.asyncio
    async def test_create_with_blank_title_uses_default(self, mock_db_session, user_id):
        result = await self.service.create_conversation(mock_db_session, user_id, title="   ")

        assert result.title == DEFAULT_TITLE
        assert result.is_active is True

    @pytest.mark.asyncio
    async def test_get_includes_messages_oldest_first(self, mock_db_session, user_id):
        conversation = conversation_row(user_id, title="Sleep")
        messages = [
            message_row(conversation, "user", "Can melatonin help?", minutes_ago=2),
            message_row(conversation, "assistant", "It can for some people.", minutes_ago=1),
        ]
        mock_db_session.execute.side_effect = [result_with([conversation]), result_with(messages)]

        detail = await self.service.get_conversation(mock_db_session, user_id, conversation.id)

        assert detail.title == "Sleep"
        assert [m.role for m in detail.messages] == ["user", "assistant"]

    @pytest.mark.asyncio
    async def test_archive_hides_conversation(self, mock_db_session, user_id):
        conversation = conversation_row(user_id)
        mock_db_session.execute.return_value = result_with([conversation])

        result = await self.service.archive_conversation(mock_db_session, user_id, conversation.id)

        assert result.is_active is False

    @pytest.mark.asyncio
    async def test_rename(self, mock_db_session, user_id):
        conversation = conversation_row(user_id)
        mock_db_session.execute.return_value = result_with([conversation])

        result = await self.service.rename_conversation(
            mock_db_session, user_id, conversation.id, "  Blood pressure  "
        )

        assert result.title == "Blood pressure"

    @pytest.mark.asyncio
    async def test_delete(self, mock_db_session, user_id):
        conversation = conversation_row(user_id)
        mock_db_session.execute.return_value = result_with([conversation])

        await self.service.delete_conversation(mock_db_session, user_id, conversation.id)

        mock_db_session.delete.assert_awaited_once_with(conversation)
