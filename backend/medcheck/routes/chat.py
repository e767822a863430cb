"""
MedCheck Backend - Health Assistant Routes
==========================================

What:  Conversations with the AI health assistant.

Route Inventory:
    GET    /api/conversations                    active conversations, newest activity first
    POST   /api/conversations                    start a conversation
    GET    /api/conversations/{id}               conversation with all messages
    PATCH  /api/conversations/{id}               rename
    DELETE /api/conversations/{id}               delete with its messages
    POST   /api/conversations/{id}/archive       hide from the list
    POST   /api/conversations/{id}/messages      send a message (multipart: content, image)

Sending a message always yields an assistant reply; if the AI is down the
reply is an apology flagged with metadata.error = true.
"""

import logging
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, File, Form, Response, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from medcheck.auth import get_current_user_id
from medcheck.database import get_db_session
from medcheck.schemas.chat import (
    ChatReplyResponse,
    ConversationCreate,
    ConversationDetail,
    ConversationResponse,
    ConversationUpdate,
)
from medcheck.schemas.common import ErrorResponse
from medcheck.services.chat_service import chat_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/conversations", tags=["Assistant"])

AUTH_ERROR = {401: {"description": "Missing or invalid access token", "model": ErrorResponse}}
NOT_FOUND = {404: {"description": "Conversation not found", "model": ErrorResponse}}


@router.get(
    "",
    response_model=List[ConversationResponse],
    responses=AUTH_ERROR,
    summary="List conversations",
)
async def list_conversations(
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db_session),
) -> List[ConversationResponse]:
    return await chat_service.list_conversations(db, user_id)


@router.post(
    "",
    status_code=201,
    response_model=ConversationResponse,
    responses=AUTH_ERROR,
    summary="Start a conversation",
)
async def create_conversation(
    data: Optional[ConversationCreate] = None,
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db_session),
) -> ConversationResponse:
    return await chat_service.create_conversation(db, user_id, title=data.title if data else None)


@router.get(
    "/{conversation_id}",
    response_model=ConversationDetail,
    responses={**AUTH_ERROR, **NOT_FOUND},
    summary="Get a conversation with its messages",
)
async def get_conversation(
    conversation_id: UUID,
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db_session),
) -> ConversationDetail:
    return await chat_service.get_conversation(db, user_id, conversation_id)


@router.patch(
    "/{conversation_id}",
    response_model=ConversationResponse,
    responses={**AUTH_ERROR, **NOT_FOUND},
    summary="Rename a conversation",
)
async def rename_conversation(
    conversation_id: UUID,
    data: ConversationUpdate,
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db_session),
) -> ConversationResponse:
    return await chat_service.rename_conversation(db, user_id, conversation_id, data.title)


@router.delete(
    "/{conversation_id}",
    status_code=204,
    response_class=Response,
    responses={**AUTH_ERROR, **NOT_FOUND},
    summary="Delete a conversation",
)
async def delete_conversation(
    conversation_id: UUID,
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db_session),
) -> Response:
    await chat_service.delete_conversation(db, user_id, conversation_id)
    return Response(status_code=204)


@router.post(
    "/{conversation_id}/archive",
    response_model=ConversationResponse,
    responses={**AUTH_ERROR, **NOT_FOUND},
    summary="Archive a conversation",
)
async def archive_conversation(
    conversation_id: UUID,
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db_session),
) -> ConversationResponse:
    return await chat_service.archive_conversation(db, user_id, conversation_id)


@router.post(
    "/{conversation_id}/messages",
    status_code=201,
    response_model=ChatReplyResponse,
    responses={
        400: {"description": "Empty message or invalid image", "model": ErrorResponse},
        **AUTH_ERROR,
        **NOT_FOUND,
    },
    summary="Send a message to the assistant",
    description=(
        "Multipart form with `content` and an optional `image` (PNG, JPG, JPEG or WEBP). "
        "Returns the stored user message and the assistant's reply. When the reply "
        "suggests adding a medication, its metadata carries action=add_medication and "
        "the medication draft."
    ),
)
async def send_message(
    conversation_id: UUID,
    content: str = Form(default="", max_length=4000),
    image: Optional[UploadFile] = File(default=None),
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db_session),
) -> ChatReplyResponse:
    upload = None
    if image is not None:
        try:
            upload = (image.filename or "image.jpg", await image.read())
        finally:
            await image.close()
    return await chat_service.send_message(db, user_id, conversation_id, content, image=upload)
