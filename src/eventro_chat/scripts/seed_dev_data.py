"""Seed development data: two users, a conversation between them and a few messages."""
from __future__ import annotations

import asyncio
import logging

from sqlalchemy.dialects.postgresql import insert

from eventro_chat.config import settings
from eventro_chat.domain.value_objects.enums import ProfileVisibility
from eventro_chat.infrastructure.db.base import Base
from eventro_chat.infrastructure.db.models import UserModel
from eventro_chat.infrastructure.db.session import AsyncSessionLocal, engine
from eventro_chat.infrastructure.db.uow import SqlAlchemyUoW
from eventro_chat.logging_config import configure_logging
from eventro_chat.services import conversation_service, message_service

logger = logging.getLogger(__name__)

USERS = [
    (42, "Ada Organizer", ProfileVisibility.PUBLIC),
    (43, "Grace Attendee", ProfileVisibility.PUBLIC),
]


async def seed() -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with AsyncSessionLocal() as session:
        # Users normally come from the platform's user service.
        await session.execute(
            insert(UserModel)
            .values([
                {"id": uid, "fullname": name, "profile_visibility": vis.value}
                for uid, name, vis in USERS
            ])
            .on_conflict_do_nothing(index_elements=["id"])
        )
        await session.commit()

        uow = SqlAlchemyUoW(session)
        conv = await conversation_service.create_conversation(42, [43], event_id=None, uow=uow)
        users = {u.id: u for u in await uow.users.get_many([42, 43])}
        organizer, attendee = users[42], users[43]

        messages_data = [
            (attendee, "Hi! Is there parking near the venue?"),
            (organizer, "Yes, the garage on 5th street is free after 6pm."),
            (attendee, "Great, thanks!"),
        ]
        for sender, content in messages_data:
            await message_service.append(conv.id, sender, content, uow)

        logger.info("Seeded conversation %s with %d messages", conv.id, len(messages_data))


def main() -> None:
    configure_logging(settings.LOG_LEVEL)
    asyncio.run(seed())


if __name__ == "__main__":
    main()
