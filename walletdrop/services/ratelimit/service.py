"""Sliding-window quotas backed by the `rate_limits` table."""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Callable

from sqlalchemy import delete, func, select

from walletdrop.common.logging import logger
from walletdrop.services.ratelimit.models import RateLimitRecord

CREATE_WALLET = "CREATE_WALLET"
DIRECT_MESSAGE = "DIRECT_MESSAGE"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RateLimiter:
    """Counts rows in a trailing window; old rows are ignored, not deleted."""

    def __init__(self, session_factory, clock: Callable[[], datetime] = _utcnow) -> None:
        self.session_factory = session_factory
        self.clock = clock

    def _count(self, db, action: str, window: timedelta, actor_id: str | None = None) -> int:
        query = select(func.count()).select_from(RateLimitRecord).where(
            RateLimitRecord.action == action,
            RateLimitRecord.created_at > self.clock() - window,
        )
        if actor_id is not None:
            query = query.where(RateLimitRecord.actor_id == actor_id)
        return db.execute(query).scalar_one()

    def check_limit(self, actor_id: str, action: str, limit: int, window: timedelta) -> bool:
        """True when `actor_id` has fewer than `limit` recorded `action`s in `window`."""

        with self.session_factory() as db:
            return self._count(db, action, window, actor_id) < limit

    def check_global_limit(self, action: str, limit: int, window: timedelta) -> bool:
        """Same as `check_limit` but across every actor."""

        with self.session_factory() as db:
            return self._count(db, action, window) < limit

    def record(self, actor_id: str, action: str) -> None:
        with self.session_factory() as db:
            db.add(RateLimitRecord(actor_id=actor_id, action=action, created_at=self.clock()))
            db.commit()

    async def acquire(
        self,
        actor_id: str,
        action: str,
        limit: int,
        window: timedelta,
        poll_seconds: float = 1.0,
    ) -> None:
        """Wait until a slot is free in the window, then consume it.

        Nothing is awaited between the final check and the record, so tasks
        sharing one event loop never overshoot `limit`. Separate processes
        writing the same table can, since no lock spans the two statements.
        """

        waited = False
        while not self.check_limit(actor_id, action, limit, window):
            if not waited:
                logger.warning("rate_limit_wait actor=%s action=%s limit=%s", actor_id, action, limit)
                waited = True
            await asyncio.sleep(poll_seconds)
        self.record(actor_id, action)

    def purge(self, older_than: timedelta) -> int:
        """Delete rows that can no longer fall inside any window."""

        with self.session_factory() as db:
            result = db.execute(delete(RateLimitRecord).where(RateLimitRecord.created_at < self.clock() - older_than))
            db.commit()
            return result.rowcount or 0
