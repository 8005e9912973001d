"""Processed-event ledger: upsert semantics, fail-open lookups and retention."""

from datetime import timedelta

from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from walletdrop.services.ingest.ledger import ProcessedEventLedger
from walletdrop.services.ingest.models import Outcome, ProcessedEvent


def test_mark_then_is_processed(processed):
    assert not processed.is_processed("e1")

    processed.mark_processed("e1", "42", "alice", Outcome.WALLET_CREATED, raw_text="create wallet")

    assert processed.is_processed("e1")


def test_second_mark_overwrites_outcome(processed, session_factory, clock):
    processed.mark_processed("e1", "42", "alice", Outcome.ERROR)
    clock.advance(minutes=1)
    processed.mark_processed("e1", "42", "alice", Outcome.WALLET_CREATED)

    with session_factory() as db:
        rows = db.execute(select(ProcessedEvent)).scalars().all()

    assert len(rows) == 1
    assert rows[0].outcome == "wallet_created"


class _BrokenSession:
    def __enter__(self):
        raise OperationalError("SELECT 1", {}, Exception("database is down"))

    def __exit__(self, *exc):
        return False


def test_lookup_fails_open_when_store_is_down():
    ledger = ProcessedEventLedger(lambda: _BrokenSession())

    assert ledger.is_processed("e1") is False


def test_mark_swallows_store_errors():
    ledger = ProcessedEventLedger(lambda: _BrokenSession())

    ledger.mark_processed("e1", "42", "alice", Outcome.WALLET_CREATED)


def test_cleanup_honors_retention(processed, session_factory, clock):
    processed.mark_processed("old", "42", "alice", Outcome.IGNORED_NO_TRIGGER)
    clock.advance(days=8)
    processed.mark_processed("new", "43", "bob", Outcome.WALLET_CREATED)

    assert processed.cleanup() == 1

    with session_factory() as db:
        remaining = db.execute(select(ProcessedEvent.event_id)).scalars().all()
    assert remaining == ["new"]


def test_recent_for_author(processed, clock):
    processed.mark_processed("e1", "42", "alice", Outcome.WALLET_CREATED)
    processed.mark_processed("e2", "99", "bob", Outcome.WALLET_CREATED)
    clock.advance(hours=1)
    processed.mark_processed("e3", "42", "alice", Outcome.ALREADY_HAS_WALLET)

    recent = processed.recent_for_author("42")

    assert [event.event_id for event in recent] == ["e3", "e1"]


def test_stats_groups_by_outcome(processed, session_factory):
    processed.mark_processed("e1", "42", "alice", Outcome.WALLET_CREATED)
    processed.mark_processed("e2", "43", "bob", Outcome.WALLET_CREATED)
    processed.mark_processed("e3", "44", "carol", Outcome.DAILY_LIMIT)

    stats = processed.stats(days_back=7)

    counts = {row["outcome"]: row["count"] for row in stats}
    assert counts == {"wallet_created": 2, "daily_limit": 1}
    with session_factory() as db:
        assert db.execute(select(func.count()).select_from(ProcessedEvent)).scalar_one() == 3


class _FakeCache:
    def __init__(self):
        self.keys = {}

    def exists(self, key):
        return 1 if key in self.keys else 0

    def set(self, key, value, ex=None):
        self.keys[key] = value


def test_cache_short_circuits_known_events(session_factory, clock):
    cache = _FakeCache()
    ledger = ProcessedEventLedger(session_factory, cache=cache, retention=timedelta(days=7), clock=clock)

    ledger.mark_processed("e1", "42", "alice", Outcome.WALLET_CREATED)

    assert "processed:e1" in cache.keys
    assert ledger.is_processed("e1")
