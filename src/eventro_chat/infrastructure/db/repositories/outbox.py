from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from eventro_chat.application.repositories.outbox import OutboxRecord
from eventro_chat.infrastructure.db.models.outbox import OutboxMessageModel

_DUE_STATUSES = ("pending", "failed")


class OutboxWriterRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def add(self, event_type: str, payload: dict[str, Any]) -> None:
        self._session.add(OutboxMessageModel(event_type=event_type, payload=payload))
        await self._session.flush()

    async def fetch_pending(self, batch_size: int) -> list[OutboxRecord]:
        """Claim up to ``batch_size`` due records by moving them to ``processing``.

        Rows locked by another worker are skipped, so parallel workers never
        publish the same record twice.
        """
        now = datetime.now(timezone.utc)
        due = (
            select(OutboxMessageModel.id)
            .where(
                OutboxMessageModel.status.in_(_DUE_STATUSES),
                OutboxMessageModel.next_retry_at.is_(None)
                | (OutboxMessageModel.next_retry_at <= now),
            )
            .order_by(OutboxMessageModel.created_at, OutboxMessageModel.id)
            .limit(batch_size)
            .with_for_update(skip_locked=True)
        )
        claim = (
            update(OutboxMessageModel)
            .where(OutboxMessageModel.id.in_(due))
            .values(status="processing")
            .returning(
                OutboxMessageModel.id,
                OutboxMessageModel.event_type,
                OutboxMessageModel.payload,
                OutboxMessageModel.attempts,
            )
            .execution_options(synchronize_session=False)
        )
        rows = (await self._session.execute(claim)).all()
        return sorted(
            (
                OutboxRecord(id=row.id, event_type=row.event_type, payload=row.payload, attempts=row.attempts)
                for row in rows
            ),
            key=lambda record: record.id,
        )

    async def mark_sent(self, ids: list[int]) -> None:
        await self._set_status(ids, "sent")

    async def mark_failed(self, record_id: int, next_retry_at: datetime) -> None:
        await self._set_status(
            [record_id],
            "failed",
            attempts=OutboxMessageModel.attempts + 1,
            next_retry_at=next_retry_at,
        )

    async def mark_dead(self, ids: list[int]) -> None:
        await self._set_status(ids, "dead")

    async def _set_status(self, ids: list[int], status: str, **values: Any) -> None:
        if not ids:
            return
        await self._session.execute(
            update(OutboxMessageModel)
            .where(OutboxMessageModel.id.in_(ids))
            .values(status=status, **values)
            .execution_options(synchronize_session=False)
        )
