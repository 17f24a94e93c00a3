import logging
from datetime import datetime, timezone
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from therapy_api.db import get_db
from therapy_api.models import Activity
from therapy_api.schemas import ActivityCreate, ActivityOut, ActivityCreateResp, UserPublic
from therapy_api.services.auth_service import get_current_user
from therapy_api.services.events import EventBus, get_event_bus, send_activity_completion_event

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/activity", tags=["activity"])

@router.post("", response_model=ActivityCreateResp, status_code=status.HTTP_201_CREATED)
async def log_activity(
    req: ActivityCreate,
    db: AsyncSession = Depends(get_db),
    bus: EventBus = Depends(get_event_bus),
    current_user: UserPublic = Depends(get_current_user),
):
    activity = Activity(
        user_id=current_user.id,
        type=req.type,
        name=req.name,
        description=req.description,
        duration=req.duration,
        difficulty=req.difficulty,
        feedback=req.feedback,
        timestamp=datetime.now(timezone.utc),
    )
    db.add(activity)
    await db.commit()
    await db.refresh(activity)
    logger.info("Activity logged for user %s", current_user.id)

    await send_activity_completion_event(bus, {
        "userId": current_user.id,
        "activityId": activity.id,
        "type": activity.type,
        "name": activity.name,
        "duration": activity.duration,
        "difficulty": activity.difficulty,
        "feedback": activity.feedback,
        "timestamp": activity.timestamp,
    })

    return ActivityCreateResp(data=ActivityOut.model_validate(activity))
