import logging
from datetime import datetime, timezone
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from therapy_api.db import get_db
from therapy_api.models import Mood
from therapy_api.schemas import MoodCreate, MoodOut, MoodCreateResp, UserPublic
from therapy_api.services.auth_service import get_current_user
from therapy_api.services.events import EventBus, get_event_bus, send_mood_update_event

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/mood", tags=["mood"])

@router.post("", response_model=MoodCreateResp, status_code=status.HTTP_201_CREATED)
async def create_mood(
    req: MoodCreate,
    db: AsyncSession = Depends(get_db),
    bus: EventBus = Depends(get_event_bus),
    current_user: UserPublic = Depends(get_current_user),
):
    """
    Record a mood entry, then publish `mood/updated`.
    A publish failure fails the request even though the entry is already stored.
    """
    mood = Mood(
        user_id=current_user.id,
        score=req.score,
        note=req.note,
        context=req.context,
        activities=req.activities,
        timestamp=datetime.now(timezone.utc),
    )
    db.add(mood)
    await db.commit()
    await db.refresh(mood)
    logger.info("Mood entry created for user %s", current_user.id)

    await send_mood_update_event(bus, {
        "userId": current_user.id,
        "mood": mood.score,
        "moodId": mood.id,
        "note": mood.note,
        "context": mood.context,
        "activities": mood.activities,
        "timestamp": mood.timestamp,
    })

    return MoodCreateResp(data=MoodOut.model_validate(mood))
