"""AI-tutor chat endpoints (trial or paid access required)."""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from tutorug.auth.dependencies import require_subscription
from tutorug.database import get_session
from tutorug.db.models import User
from tutorug.dependencies import get_chat_service
from tutorug.reputation.router import award_response
from tutorug.reputation.schemas import AwardResponse
from tutorug.tutor.chat_service import MAX_MESSAGE_LENGTH, ChatService

router = APIRouter(prefix="/api/v1/chat", tags=["AI Tutor"])


class CreateSessionRequest(BaseModel):
    subject: str | None = Field(default=None, max_length=64)
    title: str | None = Field(default=None, max_length=255)


class SessionResponse(BaseModel):
    id: int
    subject: str | None = None
    title: str
    created_at: datetime
    updated_at: datetime


class MessageRequest(BaseModel):
    content: str = Field(min_length=1, max_length=MAX_MESSAGE_LENGTH)


class MessageResponse(BaseModel):
    id: int
    role: str
    content: str
    tokens_used: int
    model_id: str | None = None
    created_at: datetime


class ChatReplyResponse(BaseModel):
    reply: MessageResponse
    points_earned: int
    award: AwardResponse


@router.post("/sessions", response_model=SessionResponse)
async def create_session(
    body: CreateSessionRequest,
    user: User = Depends(require_subscription),
    service: ChatService = Depends(get_chat_service),
):
    return SessionResponse(**await service.create_session(user, body.subject, body.title))


@router.get("/sessions", response_model=list[SessionResponse])
async def list_sessions(
    user: User = Depends(require_subscription),
    db: AsyncSession = Depends(get_session),
    service: ChatService = Depends(get_chat_service),
):
    return [SessionResponse(**s) for s in await service.list_sessions(db, user)]


@router.get("/sessions/{session_id}/messages", response_model=list[MessageResponse])
async def get_messages(
    session_id: int,
    user: User = Depends(require_subscription),
    db: AsyncSession = Depends(get_session),
    service: ChatService = Depends(get_chat_service),
):
    return [MessageResponse(**m) for m in await service.get_messages(db, user, session_id)]


@router.post("/sessions/{session_id}/messages", response_model=ChatReplyResponse)
async def send_message(
    session_id: int,
    body: MessageRequest,
    user: User = Depends(require_subscription),
    service: ChatService = Depends(get_chat_service),
):
    result = await service.send_message(user, session_id, body.content)
    return ChatReplyResponse(
        reply=MessageResponse(**result["reply"]),
        points_earned=result["points_earned"],
        award=award_response(result["award"]),
    )
