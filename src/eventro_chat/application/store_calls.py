"""Upper-bounded calls into the message store."""
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from sqlalchemy.exc import InterfaceError, OperationalError

from eventro_chat.application.exceptions import StoreTimeoutError
from eventro_chat.application.uow import UnitOfWork, UoWFactory

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Errors that mean "the database connection hiccupped", not "the query is wrong".
TRANSIENT_ERRORS: tuple[type[Exception], ...] = (OperationalError, InterfaceError)


async def bounded(
    operation: Callable[[], Awaitable[T]],
    *,
    timeout: float,
    retry_once: bool = False,
) -> T:
    """Run ``operation`` under ``timeout`` seconds.

    ``retry_once`` is only for idempotent reads: a transient database error is
    retried a single time. Writes must never pass it, the caller reports the
    failure and lets the client decide whether to resend.
    """
    attempts = 2 if retry_once else 1
    for attempt in range(1, attempts + 1):
        try:
            async with asyncio.timeout(timeout):
                return await operation()
        except TimeoutError as exc:
            raise StoreTimeoutError() from exc
        except TRANSIENT_ERRORS:
            if attempt == attempts:
                raise
            logger.warning("Transient store error, retrying once", exc_info=True)
    raise AssertionError("unreachable")


class StoreRunner:
    """Runs a unit of work against a fresh session per attempt."""

    def __init__(self, uow_factory: UoWFactory, *, timeout: float) -> None:
        self._uow_factory = uow_factory
        self._timeout = timeout

    async def read(self, work: Callable[[UnitOfWork], Awaitable[T]]) -> T:
        return await bounded(lambda: self._run(work), timeout=self._timeout, retry_once=True)

    async def write(self, work: Callable[[UnitOfWork], Awaitable[T]]) -> T:
        return await bounded(lambda: self._run(work), timeout=self._timeout)

    async def _run(self, work: Callable[[UnitOfWork], Awaitable[T]]) -> T:
        async with self._uow_factory() as uow:
            return await work(uow)
