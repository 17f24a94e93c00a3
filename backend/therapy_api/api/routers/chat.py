from __future__ import annotations
import logging
from typing import List, Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from therapy_api.db import get_db
from therapy_api.errors import BadRequestError
from therapy_api.schemas import (
    UserPublic, ChatSendReq, ChatSendResp, ChatSessionCreateResp, ChatSessionDetail,
    ChatSessionSummary, ChatMessageOut, MessageProgress,
)
from therapy_api.services.auth_service import get_current_user
from therapy_api.services.chat_service import (
    create_chat_session, get_owned_chat_session, list_chat_sessions,
    history_for_model, append_messages,
)
from therapy_api.services.events import (
    EventBus, get_event_bus, send_therapy_session_event, send_session_message_event,
)
from therapy_api.services.openai_chat import ChatModel, get_chat_model
from therapy_api.services.therapy_ai import generate_therapeutic_response

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/chat", tags=["chat"])

@router.post("/sessions", response_model=ChatSessionCreateResp, status_code=status.HTTP_201_CREATED)
async def create_session(
    db: AsyncSession = Depends(get_db),
    bus: EventBus = Depends(get_event_bus),
    current_user: UserPublic = Depends(get_current_user),
):
    session = await create_chat_session(db, current_user.id)
    await send_therapy_session_event(bus, {
        "sessionId": session.session_id,
        "userId": session.user_id,
        "startTime": session.start_time,
    })
    return ChatSessionCreateResp(session_id=session.session_id)

@router.get("/sessions", response_model=List[ChatSessionSummary])
async def get_my_sessions(
    db: AsyncSession = Depends(get_db),
    current_user: UserPublic = Depends(get_current_user),
):
    rows = await list_chat_sessions(db, current_user.id)
    return [ChatSessionSummary(**row) for row in rows]

@router.get("/sessions/{session_id}", response_model=ChatSessionDetail)
async def get_session(
    session_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: UserPublic = Depends(get_current_user),
):
    session = await get_owned_chat_session(db, session_id, current_user.id)
    return ChatSessionDetail.model_validate(session)

@router.post("/sessions/{session_id}/messages", response_model=ChatSendResp)
async def send_message(
    session_id: str,
    req: ChatSendReq,
    db: AsyncSession = Depends(get_db),
    bus: EventBus = Depends(get_event_bus),
    model: ChatModel = Depends(get_chat_model),
    current_user: UserPublic = Depends(get_current_user),
):
    # 1) 세션 확인 + 소유자 검사
    session = await get_owned_chat_session(db, session_id, current_user.id)
    if session.status != "active":
        raise BadRequestError(f"Session is {session.status}")

    # 2) 응답 생성 (이전 대화 전체를 히스토리로)
    history = history_for_model(session.messages)
    reply = await generate_therapeutic_response(model, req.message, history)

    # 3) user/assistant 두 메시지를 한 번에 저장
    await append_messages(db, session.id, [
        {"role": "user", "content": req.message},
        {"role": "assistant", "content": reply.response, "metadata": reply.message_metadata()},
    ])

    # 4) 백그라운드 처리용 이벤트; 실패해도 응답은 그대로
    try:
        await send_session_message_event(bus, {
            "sessionId": session.session_id,
            "userId": session.user_id,
            "message": req.message,
            "analysis": reply.analysis.model_dump(by_alias=True),
        })
    except Exception:
        logger.warning("Message saved but event publish failed for session %s", session.session_id)

    return ChatSendResp(
        response=reply.response,
        analysis=reply.analysis,
        metadata=MessageProgress(
            emotional_state=reply.analysis.emotional_state,
            risk_level=reply.analysis.risk_level,
        ),
    )

# list of messages, or the full projection when details=full
@router.get("/sessions/{session_id}/history", response_model=None)
async def get_chat_history(
    session_id: str,
    details: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
    current_user: UserPublic = Depends(get_current_user),
):
    session = await get_owned_chat_session(db, session_id, current_user.id)
    if details == "full":
        return ChatSessionDetail.model_validate(session)
    return [ChatMessageOut.model_validate(m) for m in session.messages]
