from typing import List
from fastapi import APIRouter, Depends
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import async_sessionmaker

from therapy_api.db import get_session_factory
from therapy_api.errors import BadRequestError
from therapy_api.schemas import EventEnvelope, WorkflowFunctionInfo, WorkflowRunResp
from therapy_api.services.events import UnknownEventError
from therapy_api.services.openai_chat import ChatModel, get_chat_model
from therapy_api.workers.workflows import FUNCTIONS, WorkflowContext, run_event

# 내부용 이벤트 러너 엔드포인트 (인증 없음, 외부 노출 금지)
router = APIRouter(prefix="/api/inngest", tags=["workflows"])

@router.get("", response_model=List[WorkflowFunctionInfo])
async def list_functions():
    return [WorkflowFunctionInfo(id=f.id, event=f.event) for f in FUNCTIONS]

@router.post("", response_model=WorkflowRunResp)
async def run_workflows(
    envelope: EventEnvelope,
    model: ChatModel = Depends(get_chat_model),
    session_factory: async_sessionmaker = Depends(get_session_factory),
):
    ctx = WorkflowContext(model=model, session_factory=session_factory)
    try:
        results = await run_event(envelope.name, envelope.data, ctx)
    except UnknownEventError as e:
        raise BadRequestError(str(e))
    except ValidationError as e:
        raise BadRequestError(f"Invalid {envelope.name} payload: {e.error_count()} error(s)")
    return WorkflowRunResp(event=envelope.name, results=results)
