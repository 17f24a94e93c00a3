# therapy_api/workers/event_worker.py
# python -m therapy_api.workers.event_worker
import asyncio
import json
import logging

from aiokafka import AIOKafkaConsumer
from pydantic import ValidationError

from therapy_api.config import KAFKA_BOOTSTRAP, KAFKA_TOPIC_EVENTS, KAFKA_GROUP_WORKFLOWS
from therapy_api.db import SessionLocal
from therapy_api.logging_setup import configure_logging
from therapy_api.services.events import UnknownEventError
from therapy_api.services.openai_chat import ChatModel
from therapy_api.workers.workflows import WorkflowContext, run_event

logger = logging.getLogger(__name__)


def decode_value(raw):
    """Kafka value bytes to a dict. None when the bytes are not JSON."""
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        logger.warning("Skipping undecodable event message: %s", e)
        return None


async def handle_message(value, ctx: WorkflowContext):
    """
    Run one consumed event. Returns the workflow results, or None when the
    message is unusable. Raw bytes are decoded here so a bad message is
    skipped instead of breaking the consumer loop.
    """
    if isinstance(value, (bytes, bytearray)):
        value = decode_value(value)
    if not isinstance(value, dict) or "name" not in value:
        logger.warning("Skipping malformed event message: %r", value)
        return None

    name = value["name"]
    data = value.get("data") or {}
    try:
        return await run_event(name, data, ctx)
    except (UnknownEventError, ValidationError) as e:
        logger.warning("Skipping %s event with invalid payload: %s", name, e)
        return None


async def main():
    configure_logging()
    logger.info(
        "Event worker starting - bootstrap=%s, topic=%s, group_id=%s",
        KAFKA_BOOTSTRAP, KAFKA_TOPIC_EVENTS, KAFKA_GROUP_WORKFLOWS,
    )
    ctx = WorkflowContext(model=ChatModel(), session_factory=SessionLocal)
    consumer = AIOKafkaConsumer(
        KAFKA_TOPIC_EVENTS,
        bootstrap_servers=KAFKA_BOOTSTRAP,
        group_id=KAFKA_GROUP_WORKFLOWS,
        key_deserializer=lambda v: v.decode(errors="replace") if v is not None else None,
        enable_auto_commit=False,
        auto_offset_reset="earliest",
    )
    await consumer.start()
    try:
        while True:
            batch = await consumer.getmany(timeout_ms=1000)
            for tp, messages in batch.items():
                for msg in messages:
                    logger.debug("Received offset=%s key=%s", msg.offset, msg.key)
                    try:
                        await handle_message(msg.value, ctx)
                    except Exception:
                        # traceback already logged by run_event; no retries
                        logger.error("Event at offset %s failed, skipping", msg.offset)
                    await consumer.commit()
    finally:
        await consumer.stop()


if __name__ == "__main__":
    asyncio.run(main())
