"""AI-tutor chat sessions.

Points for a chat message are only awarded after the LLM has answered: a
timeout or provider error leaves no messages and no points behind.
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tutorug.auth.dependencies import ensure_owner
from tutorug.db.models import ChatMessage, ChatSession, User
from tutorug.db.types import utcnow
from tutorug.errors import InvalidInput, NotFound
from tutorug.reputation.engine import ReputationEngine
from tutorug.tutor.llm import LLMProvider
from tutorug.tutor.prompts import build_system_prompt

logger = logging.getLogger(__name__)

MAX_MESSAGE_LENGTH = 4000
HISTORY_LIMIT = 20


def _message_dict(message: ChatMessage) -> dict:
    return {
        "id": message.id,
        "role": message.role,
        "content": message.content,
        "tokens_used": message.tokens_used,
        "model_id": message.model_id,
        "created_at": message.created_at,
    }


def _session_dict(session: ChatSession) -> dict:
    return {
        "id": session.id,
        "subject": session.subject,
        "title": session.title,
        "created_at": session.created_at,
        "updated_at": session.updated_at,
    }


class ChatService:
    def __init__(self, llm: LLMProvider, reputation: ReputationEngine, history_limit: int = HISTORY_LIMIT) -> None:
        self.llm = llm
        self.reputation = reputation
        self.session_factory = reputation.session_factory
        self.history_limit = history_limit

    async def create_session(self, user: User, subject: str | None = None, title: str | None = None) -> dict:
        now = utcnow()
        async with self.session_factory() as db:
            async with db.begin():
                session = ChatSession(
                    user_id=user.id,
                    subject=subject,
                    title=title or (f"{subject} chat" if subject else "New chat"),
                    created_at=now,
                    updated_at=now,
                )
                db.add(session)
                await db.flush()
                return _session_dict(session)

    async def list_sessions(self, db: AsyncSession, user: User) -> list[dict]:
        result = await db.execute(
            select(ChatSession)
            .where(ChatSession.user_id == user.id)
            .order_by(ChatSession.updated_at.desc(), ChatSession.id.desc())
        )
        return [_session_dict(s) for s in result.scalars()]

    async def _owned_session(self, db: AsyncSession, user: User, session_id: int) -> ChatSession:
        session = await db.get(ChatSession, session_id)
        if session is None:
            raise NotFound("Chat session not found")
        ensure_owner(session.user_id, user)
        return session

    async def _history(self, db: AsyncSession, session_id: int) -> list[ChatMessage]:
        result = await db.execute(
            select(ChatMessage)
            .where(ChatMessage.session_id == session_id)
            .order_by(ChatMessage.created_at.desc(), ChatMessage.id.desc())
            .limit(self.history_limit)
        )
        return list(reversed(result.scalars().all()))

    async def get_messages(self, db: AsyncSession, user: User, session_id: int) -> list[dict]:
        await self._owned_session(db, user, session_id)
        return [_message_dict(m) for m in await self._history(db, session_id)]

    async def send_message(
        self,
        user: User,
        session_id: int,
        text: str,
        now: datetime | None = None,
    ) -> dict:
        """Moderate, ask the tutor, persist both messages, then award the chat point."""
        text = (text or "").strip()
        if not text:
            raise InvalidInput("Message cannot be empty")
        if len(text) > MAX_MESSAGE_LENGTH:
            raise InvalidInput(f"Message is longer than {MAX_MESSAGE_LENGTH} characters")

        async with self.session_factory() as db:
            session = await self._owned_session(db, user, session_id)
            subject = session.subject
            history = [{"role": m.role, "content": m.content} for m in await self._history(db, session_id)]

        if await self.llm.moderate(text):
            logger.info("Flagged chat message from user %s in session %s", user.id, session_id)
            raise InvalidInput("Message violates content guidelines")

        completion = await self.llm.complete(
            build_system_prompt(subject, user.current_class),
            [*history, {"role": "user", "content": text}],
        )

        if now is None:
            now = utcnow()
        async with self.session_factory() as db:
            async with db.begin():
                user_message = ChatMessage(session_id=session_id, role="user", content=text, created_at=now)
                reply = ChatMessage(
                    session_id=session_id,
                    role="assistant",
                    content=completion.text,
                    tokens_used=completion.tokens_used,
                    model_id=completion.model_id,
                    created_at=now,
                )
                db.add_all([user_message, reply])
                session = await db.get(ChatSession, session_id)
                if session is not None:
                    session.updated_at = now
                await db.flush()
                reply_dict = _message_dict(reply)

        await self.reputation.update_streak(user.id, now=now)
        award = await self.reputation.award_points(
            user.id, self.reputation.config.points["AI_CHAT_MESSAGE"], "AI chat message", now=now
        )
        return {"reply": reply_dict, "points_earned": award.points_added, "award": award}
