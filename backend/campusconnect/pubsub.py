from __future__ import annotations

import json
import os
from contextlib import suppress
from datetime import datetime
from typing import Any, AsyncIterator, Iterable
from uuid import UUID

import redis.asyncio as redis
import structlog
from fastapi import BackgroundTasks
from redis.exceptions import RedisError

from . import models, schemas

REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")
_redis = None

logger = structlog.get_logger()


async def get_redis():
    global _redis
    if _redis is None:
        if os.getenv("TESTING") == "1":
            from fakeredis import aioredis
            _redis = aioredis.FakeRedis()
        else:
            _redis = redis.from_url(REDIS_URL)
    return _redis


def user_channel(user_id: UUID | str) -> str:
    return f"user:{user_id}"


def _json_default(value: Any) -> Any:
    # purpose: convert datetime and uuid values to strings for event payloads
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, UUID):
        return str(value)
    return value


def _serialize_event(event: dict[str, Any]) -> str:
    return json.dumps(event, default=_json_default)


async def publish_user_event(user_id: UUID | str, event: dict[str, Any]) -> None:
    # purpose: push a realtime event to the recipient's channel
    r = await get_redis()
    await r.publish(user_channel(user_id), _serialize_event(event))


def notification_events(notifications: Iterable[models.Notification]) -> list[tuple[UUID, dict[str, Any]]]:
    """Serialize stored notifications while their session is still open."""

    return [
        (
            notification.recipient_id,
            {
                "type": "notification",
                "data": schemas.NotificationOut.model_validate(notification).model_dump(mode="json"),
            },
        )
        for notification in notifications
    ]


async def publish_notifications(events: Iterable[tuple[UUID, dict[str, Any]]]) -> int:
    """Push freshly stored notifications to their recipients.

    Delivery is best effort: the rows are already committed and a Redis outage
    only costs the live push.
    """

    published = 0
    for recipient_id, event in events:
        try:
            await publish_user_event(recipient_id, event)
        except (RedisError, OSError) as exc:
            logger.warning(
                "notification_push_failed",
                notification_id=event["data"].get("id"),
                error=str(exc),
            )
            continue
        published += 1
    return published


def schedule_notifications(
    background_tasks: BackgroundTasks,
    notifications: Iterable[models.Notification],
) -> None:
    # purpose: defer the live push until the response has been sent
    events = notification_events(notifications)
    if events:
        background_tasks.add_task(publish_notifications, events)


async def iter_user_events(user_id: UUID | str) -> AsyncIterator[str]:
    """Yield a user's pub/sub messages as a stream."""

    r = await get_redis()
    channel = user_channel(user_id)
    pubsub = r.pubsub()
    await pubsub.subscribe(channel)
    try:
        async for message in pubsub.listen():
            if message.get("type") != "message":
                continue
            data = message.get("data")
            if isinstance(data, bytes):
                yield data.decode()
            else:
                yield str(data)
    finally:
        with suppress(Exception):
            await pubsub.unsubscribe(channel)
        with suppress(AttributeError):
            await pubsub.close()
