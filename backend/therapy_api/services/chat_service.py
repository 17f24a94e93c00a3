from __future__ import annotations
import logging
import uuid
from datetime import datetime, timezone
from typing import List, Dict, Any, Optional

from sqlalchemy import insert, select, func
from sqlalchemy.ext.asyncio import AsyncSession

from therapy_api.errors import ForbiddenError, NotFoundError
from therapy_api.models import ChatSession, ChatMessage, User

logger = logging.getLogger(__name__)


async def create_chat_session(db: AsyncSession, user_id: int) -> ChatSession:
    user = await db.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found")

    session = ChatSession(
        session_id=str(uuid.uuid4()),
        user_id=user.id,
        status="active",
        start_time=datetime.now(timezone.utc),
    )
    db.add(session)
    await db.commit()
    await db.refresh(session, attribute_names=["messages"])
    logger.info("Chat session created: %s", session.session_id)
    return session


async def get_chat_session(db: AsyncSession, session_id: str) -> Optional[ChatSession]:
    res = await db.execute(select(ChatSession).where(ChatSession.session_id == session_id))
    return res.scalar_one_or_none()


async def get_owned_chat_session(db: AsyncSession, session_id: str, user_id: int) -> ChatSession:
    """
    Load a session by its external id and check the caller owns it.
    Absent → 404; present but owned by someone else → 403.
    """
    session = await get_chat_session(db, session_id)
    if session is None:
        raise NotFoundError("Session not found")
    if session.user_id != user_id:
        raise ForbiddenError("Forbidden")
    return session


async def list_chat_sessions(db: AsyncSession, user_id: int) -> List[Dict[str, Any]]:
    q = (
        select(ChatSession, func.count(ChatMessage.id))
        .outerjoin(ChatMessage, ChatMessage.chat_session_id == ChatSession.id)
        .where(ChatSession.user_id == user_id)
        .group_by(ChatSession.id)
        .order_by(ChatSession.start_time.desc(), ChatSession.id.desc())
    )
    rows = (await db.execute(q)).all()
    return [
        {
            "session_id": s.session_id,
            "start_time": s.start_time,
            "status": s.status,
            "message_count": count,
        }
        for s, count in rows
    ]


def history_for_model(messages: List[ChatMessage]) -> List[Dict[str, str]]:
    return [{"role": m.role, "content": m.content} for m in messages]


async def append_messages(db: AsyncSession, chat_session_pk: int, turns: List[Dict[str, Any]]) -> None:
    """
    Append turns to a session as new rows in one commit.

    Each turn is {"role", "content", "metadata"?}. Rows are only ever
    inserted, so concurrent writers cannot overwrite each other's turns.
    """
    if not turns:
        return
    now = datetime.now(timezone.utc)
    await db.execute(
        insert(ChatMessage),
        [
            {
                "chat_session_id": chat_session_pk,
                "role": t["role"],
                "content": t["content"],
                "timestamp": t.get("timestamp") or now,
                "meta": t.get("metadata"),
            }
            for t in turns
        ],
    )
    await db.commit()
