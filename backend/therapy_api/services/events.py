"""
Domain events and their publication.

Every event kind has its own payload schema. Publishing stamps the publish
instant, fills the optional fields with their defaults, lets the caller's
values win and drops fields the schema does not declare.
"""
from __future__ import annotations
import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional, Type

from aiokafka import AIOKafkaProducer
from fastapi import Request
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from therapy_api.config import KAFKA_BOOTSTRAP, KAFKA_TOPIC_EVENTS

logger = logging.getLogger(__name__)

SESSION_CREATED = "therapy/session.created"
SESSION_MESSAGE = "therapy/session.message"
MOOD_UPDATED = "mood/updated"
ACTIVITY_COMPLETED = "activity/completed"


def _now() -> datetime:
    return datetime.now(timezone.utc)


class EventPayload(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    timestamp: datetime = Field(default_factory=_now)


class SessionCreatedData(EventPayload):
    session_id: str
    user_id: int
    start_time: Optional[datetime] = None
    requires_follow_up: bool = False
    session_type: str = "standard"
    duration: Optional[float] = None
    notes: Optional[str] = None
    transcript: Optional[str] = None


class ChatTurn(BaseModel):
    """One prior turn carried in a message event's history."""
    role: Literal["user", "assistant"]
    content: str


class SessionMessageData(EventPayload):
    session_id: str
    user_id: int
    message: str
    analysis: Optional[Dict[str, Any]] = None
    history: List[ChatTurn] = Field(default_factory=list)
    system_prompt: Optional[str] = None


class MoodUpdatedData(EventPayload):
    user_id: int
    mood: float
    mood_id: Optional[int] = None
    context: Optional[str] = None
    activities: List[str] = Field(default_factory=list)
    note: Optional[str] = None


class ActivityCompletedData(EventPayload):
    user_id: int
    activity_id: int
    type: str
    name: str
    duration: Optional[float] = None
    difficulty: Optional[str] = None
    feedback: Optional[str] = None


EVENT_SCHEMAS: Dict[str, Type[EventPayload]] = {
    SESSION_CREATED: SessionCreatedData,
    SESSION_MESSAGE: SessionMessageData,
    MOOD_UPDATED: MoodUpdatedData,
    ACTIVITY_COMPLETED: ActivityCompletedData,
}


_NON_NULLABLE = ("timestamp", "activities", "history", "requiresFollowUp", "sessionType")


class UnknownEventError(ValueError):
    pass


def parse_event(name: str, data: Dict[str, Any]) -> EventPayload:
    """Validate a raw payload against the schema registered for `name`."""
    schema = EVENT_SCHEMAS.get(name)
    if schema is None:
        raise UnknownEventError(f"unknown event: {name}")
    # explicit None means "use the default" for non-nullable fields
    cleaned = {k: v for k, v in data.items() if not (v is None and k in _NON_NULLABLE)}
    return schema.model_validate(cleaned)


class EventBus:
    """Kafka-backed publisher. Value is {"name", "data"} JSON keyed by user id."""

    def __init__(self, bootstrap_servers: str = KAFKA_BOOTSTRAP, topic: str = KAFKA_TOPIC_EVENTS):
        self.bootstrap_servers = bootstrap_servers
        self.topic = topic
        self.producer: AIOKafkaProducer | None = None

    async def start(self):
        self.producer = AIOKafkaProducer(
            bootstrap_servers=self.bootstrap_servers,
            value_serializer=lambda v: json.dumps(v, default=str).encode(),
            key_serializer=lambda v: str(v).encode(),
            linger_ms=5,
            acks="all",
            enable_idempotence=True,
        )
        await self.producer.start()

    async def stop(self):
        if self.producer:
            await self.producer.stop()
            self.producer = None

    async def publish(self, name: str, data: Dict[str, Any]) -> None:
        if not self.producer:
            raise RuntimeError("event bus is not started")
        await self.producer.send_and_wait(
            self.topic,
            key=data.get("userId"),
            value={"name": name, "data": data},
        )


def get_event_bus(request: Request) -> EventBus:
    return request.app.state.event_bus


async def send_event(bus: EventBus, name: str, data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Validate, default and publish one event.
    Returns the published payload. Failures are logged and re-raised.
    """
    payload = parse_event(name, data).model_dump(mode="json", by_alias=True)
    try:
        await bus.publish(name, payload)
    except Exception:
        logger.exception("Failed to publish %s event", name)
        raise
    logger.info("Published %s event", name)
    return payload


async def send_therapy_session_event(bus: EventBus, session_data: Dict[str, Any]):
    return await send_event(bus, SESSION_CREATED, session_data)


async def send_session_message_event(bus: EventBus, message_data: Dict[str, Any]):
    return await send_event(bus, SESSION_MESSAGE, message_data)


async def send_mood_update_event(bus: EventBus, mood_data: Dict[str, Any]):
    return await send_event(bus, MOOD_UPDATED, mood_data)


async def send_activity_completion_event(bus: EventBus, activity_data: Dict[str, Any]):
    return await send_event(bus, ACTIVITY_COMPLETED, activity_data)
