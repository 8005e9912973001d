"""Processed-event ledger: which mentions were handled and how.

The table is authoritative. The optional Redis cache only short-circuits
lookups for ids already known to be processed; a cache miss or cache failure
always falls through to the store.
"""

from datetime import datetime, timedelta, timezone
from typing import Callable

import redis
from sqlalchemy import delete, func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError

from walletdrop.common.logging import logger
from walletdrop.services.ingest.models import Outcome, ProcessedEvent


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ProcessedEventLedger:
    def __init__(
        self,
        session_factory,
        cache: redis.Redis | None = None,
        retention: timedelta = timedelta(days=7),
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.session_factory = session_factory
        self.cache = cache
        self.retention = retention
        self.clock = clock

    @staticmethod
    def _cache_key(event_id: str) -> str:
        return f"processed:{event_id}"

    def _cache_hit(self, event_id: str) -> bool:
        if self.cache is None:
            return False
        try:
            return bool(self.cache.exists(self._cache_key(event_id)))
        except redis.RedisError as exc:
            logger.warning("processed cache lookup failed event_id=%s error=%s", event_id, exc)
            return False

    def _cache_store(self, event_id: str) -> None:
        if self.cache is None:
            return
        try:
            self.cache.set(self._cache_key(event_id), "1", ex=int(self.retention.total_seconds()))
        except redis.RedisError as exc:
            logger.warning("processed cache write failed event_id=%s error=%s", event_id, exc)

    def is_processed(self, event_id: str) -> bool:
        """Fails open: a store error reports the event as not yet processed."""

        if self._cache_hit(event_id):
            return True
        try:
            with self.session_factory() as db:
                found = db.execute(
                    select(ProcessedEvent.event_id).where(ProcessedEvent.event_id == event_id)
                ).scalar_one_or_none()
        except SQLAlchemyError as exc:
            logger.error("failed to check processed event event_id=%s error=%s", event_id, exc)
            return False
        if found is not None:
            self._cache_store(event_id)
        return found is not None

    def mark_processed(
        self,
        event_id: str,
        author_id: str,
        author_handle: str,
        outcome: Outcome | str,
        raw_text: str | None = None,
    ) -> None:
        """Insert or overwrite the outcome for `event_id`; never raises on store errors."""

        outcome_value = outcome.value if isinstance(outcome, Outcome) else outcome
        try:
            with self.session_factory() as db:
                insert = pg_insert if db.get_bind().dialect.name == "postgresql" else sqlite_insert
                stmt = insert(ProcessedEvent).values(
                    event_id=event_id,
                    author_id=author_id,
                    author_handle=author_handle,
                    raw_text=raw_text,
                    outcome=outcome_value,
                    processed_at=self.clock(),
                )
                stmt = stmt.on_conflict_do_update(
                    index_elements=[ProcessedEvent.event_id],
                    set_={"outcome": stmt.excluded.outcome, "processed_at": stmt.excluded.processed_at},
                )
                db.execute(stmt)
                db.commit()
        except SQLAlchemyError as exc:
            logger.error("failed to mark event processed event_id=%s author_id=%s error=%s", event_id, author_id, exc)
            return
        self._cache_store(event_id)
        logger.debug("marked event processed event_id=%s outcome=%s", event_id, outcome_value)

    def recent_for_author(self, author_id: str, hours_back: int = 24) -> list[ProcessedEvent]:
        try:
            with self.session_factory() as db:
                return (
                    db.execute(
                        select(ProcessedEvent)
                        .where(
                            ProcessedEvent.author_id == author_id,
                            ProcessedEvent.processed_at > self.clock() - timedelta(hours=hours_back),
                        )
                        .order_by(ProcessedEvent.processed_at.desc())
                    )
                    .scalars()
                    .all()
                )
        except SQLAlchemyError as exc:
            logger.error("failed to load recent events author_id=%s error=%s", author_id, exc)
            return []

    def cleanup(self) -> int:
        """Retention sweep; returns the number of rows deleted."""

        try:
            with self.session_factory() as db:
                result = db.execute(
                    delete(ProcessedEvent).where(ProcessedEvent.processed_at < self.clock() - self.retention)
                )
                db.commit()
        except SQLAlchemyError as exc:
            logger.error("failed to clean up processed events error=%s", exc)
            return 0
        deleted = result.rowcount or 0
        logger.info("cleaned up processed events deleted=%s", deleted)
        return deleted

    def stats(self, days_back: int = 7) -> list[dict]:
        day = func.date(ProcessedEvent.processed_at)
        try:
            with self.session_factory() as db:
                rows = db.execute(
                    select(day, ProcessedEvent.outcome, func.count())
                    .where(ProcessedEvent.processed_at > self.clock() - timedelta(days=days_back))
                    .group_by(day, ProcessedEvent.outcome)
                    .order_by(day.desc(), ProcessedEvent.outcome)
                ).all()
        except SQLAlchemyError as exc:
            logger.error("failed to load processed event stats error=%s", exc)
            return []
        return [{"date": str(d), "outcome": outcome, "count": count} for d, outcome, count in rows]
