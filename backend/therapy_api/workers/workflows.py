"""
Background workflow functions fed by domain events.

Each function is registered for one event name; `run_event` runs every
function registered for an event and returns their results keyed by
function id. Triggered by the Kafka worker and the internal runner route.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List

from pydantic import Field
from sqlalchemy.ext.asyncio import async_sessionmaker

from therapy_api.models import Recommendation
from therapy_api.schemas import CamelModel
from therapy_api.services.chat_service import get_chat_session, history_for_model, append_messages
from therapy_api.services.events import (
    SESSION_CREATED, SESSION_MESSAGE, MOOD_UPDATED, ACTIVITY_COMPLETED,
    EventPayload, SessionCreatedData, SessionMessageData, MoodUpdatedData, ActivityCompletedData,
    parse_event,
)
from therapy_api.services.openai_chat import ChatModel
from therapy_api.services.therapy_ai import (
    generate_therapeutic_response, analyze_session, generate_recommendations,
)

logger = logging.getLogger(__name__)

CRITICAL_MOOD_THRESHOLD = 20


@dataclass
class WorkflowContext:
    model: ChatModel
    session_factory: async_sessionmaker


Handler = Callable[[Any, WorkflowContext], Awaitable[Dict[str, Any]]]


@dataclass
class WorkflowFunction:
    id: str
    event: str
    handler: Handler


# 아직 구현되지 않은 분석 결과 (implemented=False 로 표시)
class MoodTrend(CamelModel):
    trend: str = "improving"
    recommendations: List[str] = Field(
        default_factory=lambda: ["Consider scheduling a check-in therapy session"]
    )
    implemented: bool = False


class ActivityProgress(CamelModel):
    completed_activities: int = 1
    total_points: int = 10
    implemented: bool = False


class ActivityAchievements(CamelModel):
    new_achievements: List[str] = Field(default_factory=lambda: ["First Activity Completed"])
    implemented: bool = False


async def therapy_session_handler(data: SessionCreatedData, ctx: WorkflowContext) -> Dict[str, Any]:
    logger.info("Therapy session created: %s", data.session_id)
    processed = data.model_dump(mode="json", by_alias=True)
    processed["processedAt"] = datetime.now(timezone.utc).isoformat()
    if data.requires_follow_up:
        logger.info("Follow-up required for session %s", data.session_id)
    return {
        "message": "Therapy session processed successfully",
        "sessionId": data.session_id,
        "processedData": processed,
    }


async def analyze_therapy_session(data: SessionCreatedData, ctx: WorkflowContext) -> Dict[str, Any]:
    content = data.notes or data.transcript or ""
    analysis = await analyze_session(ctx.model, content)
    logger.info("Session analysis complete: %s", data.session_id)
    return {"message": "Session analysis complete", "analysis": analysis}


async def mood_tracking_handler(data: MoodUpdatedData, ctx: WorkflowContext) -> Dict[str, Any]:
    logger.info("Mood updated for user %s: %s", data.user_id, data.mood)
    if data.mood < CRITICAL_MOOD_THRESHOLD:
        logger.warning("Critical mood detected for user %s: %s", data.user_id, data.mood)
    return {"message": "Mood update processed", "analysis": MoodTrend().model_dump(by_alias=True)}


async def generate_activity_recommendations(data: MoodUpdatedData, ctx: WorkflowContext) -> Dict[str, Any]:
    items = await generate_recommendations(ctx.model, data.mood, data.context)
    async with ctx.session_factory() as db:
        db.add(Recommendation(user_id=data.user_id, items=items))
        await db.commit()
    logger.info("Stored %s recommendations for user %s", len(items), data.user_id)
    return {"message": "Recommendations generated and stored", "recommendations": items}


async def activity_completion_handler(data: ActivityCompletedData, ctx: WorkflowContext) -> Dict[str, Any]:
    logger.info("Activity completed by user %s: %s", data.user_id, data.activity_id)
    return {
        "message": "Activity completion processed",
        "progress": ActivityProgress().model_dump(by_alias=True),
        "achievements": ActivityAchievements().model_dump(by_alias=True),
    }


async def process_chat_message(data: SessionMessageData, ctx: WorkflowContext) -> Dict[str, Any]:
    """
    Generate an analysis + reply for the event's message and append the
    user/assistant pair to the session. No ownership check: the event
    comes from the trusted send path.
    """
    async with ctx.session_factory() as db:
        session = await get_chat_session(db, data.session_id)
        if session is None:
            logger.warning("Chat message event for unknown session %s", data.session_id)
            return {"message": "Session not found", "sessionId": data.session_id}

        if data.history:
            history = [turn.model_dump() for turn in data.history]
        else:
            history = history_for_model(session.messages)
        reply = await generate_therapeutic_response(
            ctx.model, data.message, history, system_prompt=data.system_prompt,
        )
        await append_messages(db, session.id, [
            {"role": "user", "content": data.message},
            {"role": "assistant", "content": reply.response, "metadata": reply.message_metadata()},
        ])
    logger.info("Chat session %s updated with background reply", data.session_id)
    return {"response": reply.response, "analysis": reply.analysis.model_dump(by_alias=True)}


FUNCTIONS: List[WorkflowFunction] = [
    WorkflowFunction("therapy-session-handler", SESSION_CREATED, therapy_session_handler),
    WorkflowFunction("analyze-therapy-session", SESSION_CREATED, analyze_therapy_session),
    WorkflowFunction("mood-tracking-handler", MOOD_UPDATED, mood_tracking_handler),
    WorkflowFunction("generate-activity-recommendations", MOOD_UPDATED, generate_activity_recommendations),
    WorkflowFunction("activity-completion-handler", ACTIVITY_COMPLETED, activity_completion_handler),
    WorkflowFunction("process-chat-message", SESSION_MESSAGE, process_chat_message),
]


def functions_for(event: str) -> List[WorkflowFunction]:
    return [f for f in FUNCTIONS if f.event == event]


async def run_event(name: str, data: Dict[str, Any], ctx: WorkflowContext) -> Dict[str, Any]:
    """
    Run every function registered for `name`, in registration order.
    Raises UnknownEventError / ValidationError for bad input; a failing
    function is logged and its error re-raised.
    """
    payload: EventPayload = parse_event(name, data)
    results: Dict[str, Any] = {}
    for fn in functions_for(name):
        try:
            results[fn.id] = await fn.handler(payload, ctx)
        except Exception:
            logger.exception("Workflow function %s failed on %s", fn.id, name)
            raise
    return results
