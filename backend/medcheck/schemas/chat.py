"""
MedCheck Backend - Conversation Schemas
=======================================

Message metadata carries what the client needs to react to an assistant
reply:

    {"action": "add_medication", "medication": {...}, "detailed": false}

`action` is null for ordinary replies.
"""

import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, Field, field_validator


class ConversationCreate(BaseModel):
    title: Optional[str] = Field(default=None, max_length=200)


class ConversationUpdate(BaseModel):
    title: str = Field(min_length=1, max_length=200)

    @field_validator("title")
    @classmethod
    def title_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("title cannot be blank")
        return v.strip()


class ConversationResponse(BaseModel):
    id: uuid.UUID
    title: str
    is_active: bool
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class MessageResponse(BaseModel):
    id: uuid.UUID
    conversation_id: uuid.UUID
    role: str
    content: str
    metadata: Optional[Dict[str, Any]] = Field(
        default=None, validation_alias=AliasChoices("message_metadata", "metadata")
    )
    image_url: Optional[str] = None
    image_mime_type: Optional[str] = None
    has_image: bool = False
    created_at: datetime

    model_config = {"from_attributes": True}


class ConversationDetail(ConversationResponse):
    messages: List[MessageResponse] = Field(default_factory=list)


class ChatReplyResponse(BaseModel):
    """Both sides of one exchange, as stored."""
    conversation: ConversationResponse
    user_message: MessageResponse
    assistant_message: MessageResponse
