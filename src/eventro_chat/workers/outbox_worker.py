"""Outbox worker: polls pending outbox records, publishes via Redis Pub/Sub."""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone

import redis.asyncio as aioredis

from eventro_chat.application.ports.bus import EventPublisher
from eventro_chat.application.uow import UnitOfWork
from eventro_chat.config import settings
from eventro_chat.infrastructure.bus.redis_pubsub import RedisPubSubPublisher
from eventro_chat.infrastructure.db.uow import open_uow
from eventro_chat.logging_config import configure_logging

logger = logging.getLogger(__name__)

BASE_DELAY_SECONDS = 5
MAX_DELAY_SECONDS = 300


def calc_backoff(attempts: int, now: datetime | None = None) -> datetime:
    delay = min(BASE_DELAY_SECONDS * (2 ** attempts), MAX_DELAY_SECONDS)
    return (now or datetime.now(timezone.utc)) + timedelta(seconds=delay)


async def run_outbox_worker() -> None:
    redis = aioredis.from_url(settings.REDIS_URL, decode_responses=True)
    publisher = RedisPubSubPublisher(redis)

    logger.info(
        "Outbox worker started (poll=%.1fs, batch=%d, max_attempts=%d)",
        settings.OUTBOX_POLL_INTERVAL,
        settings.OUTBOX_BATCH_SIZE,
        settings.OUTBOX_MAX_ATTEMPTS,
    )

    try:
        while True:
            try:
                async with open_uow() as uow:
                    await process_batch(uow, publisher)
            except Exception:
                logger.exception("Outbox worker loop error")
            await asyncio.sleep(settings.OUTBOX_POLL_INTERVAL)
    finally:
        await redis.aclose()


async def process_batch(
    uow: UnitOfWork,
    publisher: EventPublisher,
    *,
    channel: str = settings.REDIS_PUBSUB_CHANNEL,
    batch_size: int = settings.OUTBOX_BATCH_SIZE,
    max_attempts: int = settings.OUTBOX_MAX_ATTEMPTS,
) -> int:
    """Publish one batch. Returns the number of records sent."""
    batch = await uow.outbox.fetch_pending(batch_size)
    if not batch:
        return 0

    sent_ids: list[int] = []
    dead_ids: list[int] = []
    for record in batch:
        if record.attempts >= max_attempts:
            logger.warning("Outbox record %d exceeded max attempts, giving up", record.id)
            dead_ids.append(record.id)
            continue
        try:
            await publisher.publish(channel, record.event_type, record.payload)
            sent_ids.append(record.id)
        except Exception:
            logger.exception("Failed to publish outbox record %d", record.id)
            await uow.outbox.mark_failed(record.id, calc_backoff(record.attempts))

    await uow.outbox.mark_sent(sent_ids)
    await uow.outbox.mark_dead(dead_ids)
    await uow.commit()
    if sent_ids:
        logger.info("Published %d outbox records", len(sent_ids))
    return len(sent_ids)


def main() -> None:
    configure_logging(settings.LOG_LEVEL)
    asyncio.run(run_outbox_worker())


if __name__ == "__main__":
    main()
