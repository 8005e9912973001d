"""Shared fixtures: in-memory database, fake collaborators and a frozen clock."""

import asyncio
import os
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

# Settings are read at import time; point them at throwaway values first.
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("ENCRYPTION_KEY", "test-encryption-key")

from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from walletdrop.clients.messaging import Mention  # noqa: E402
from walletdrop.common.db import Base  # noqa: E402
from walletdrop.common.envelope import SecretEnvelope  # noqa: E402
from walletdrop.common.errors import LedgerTransientError, MessagingError  # noqa: E402
from walletdrop.services.delivery.service import DeliveryService  # noqa: E402
from walletdrop.services.ingest.ledger import ProcessedEventLedger  # noqa: E402
from walletdrop.services.ingest.service import MentionIngestor  # noqa: E402
from walletdrop.services.ratelimit.service import RateLimiter  # noqa: E402
from walletdrop.services.waitlist.service import WaitlistService  # noqa: E402
from walletdrop.services.wallets.service import WalletService  # noqa: E402

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


class FrozenClock:
    def __init__(self, now: datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeMessaging:
    """Records every outbound call; DMs can be made to fail on demand."""

    def __init__(self) -> None:
        self.mentions: list[Mention] = []
        self.fetch_calls: list[datetime] = []
        self.dms: list[tuple[str, str]] = []
        self.replies: list[tuple[str, str]] = []
        self.fail_dms = False
        self.fail_dm_for: set[str] = set()

    async def fetch_mentions(self, since: datetime) -> list[Mention]:
        self.fetch_calls.append(since)
        return list(self.mentions)

    async def send_direct_message(self, user_id: str, text: str) -> None:
        if self.fail_dms or user_id in self.fail_dm_for:
            raise MessagingError("direct message rejected", status_code=403)
        self.dms.append((user_id, text))

    async def reply(self, event_id: str, text: str) -> None:
        self.replies.append((event_id, text))


class FakeLedger:
    def __init__(self) -> None:
        self.created: list[str] = []
        self.balances: dict[str, Decimal] = {}
        self.fail_reason: str | None = None

    async def create_account(self, public_key: str) -> str:
        # Yield once so concurrent provisioning flows actually interleave.
        await asyncio.sleep(0)
        if self.fail_reason is not None:
            raise LedgerTransientError("gateway unavailable", reason=self.fail_reason)
        self.created.append(public_key)
        return f"0.0.{1000 + len(self.created)}"

    async def get_balance(self, account_id: str) -> Decimal:
        if account_id not in self.balances:
            raise LedgerTransientError("unknown account", reason="NOT_FOUND")
        return self.balances[account_id]


class RecordingTasks:
    """Delayed-task runner that only records submissions until `run_all`."""

    def __init__(self) -> None:
        self.submitted: list[tuple] = []

    def submit(self, task_factory, delay: float) -> None:
        self.submitted.append((task_factory, delay))

    async def run_all(self) -> None:
        pending, self.submitted = self.submitted, []
        for task_factory, _ in pending:
            await task_factory()


def make_mention(event_id: str, author_id: str, text: str = "@walletbot create wallet please", age_seconds: int = 5):
    return Mention(
        event_id=event_id,
        author_id=author_id,
        author_handle=f"user{author_id}",
        text=text,
        created_at=NOW - timedelta(seconds=age_seconds),
    )


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(engine)
    yield sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)
    engine.dispose()


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def messaging():
    return FakeMessaging()


@pytest.fixture
def ledger():
    return FakeLedger()


@pytest.fixture
def tasks():
    return RecordingTasks()


@pytest.fixture
def envelope(clock):
    return SecretEnvelope("test-claim-secret", clock=clock)


@pytest.fixture
def rate_limiter(session_factory, clock):
    return RateLimiter(session_factory, clock=clock)


@pytest.fixture
def wallets(session_factory, ledger):
    return WalletService(session_factory, ledger=ledger, ledger_timeout=1.0)


@pytest.fixture
def processed(session_factory, clock):
    return ProcessedEventLedger(session_factory, clock=clock)


@pytest.fixture
def waitlist(session_factory):
    return WaitlistService(session_factory)


@pytest.fixture
def delivery(session_factory, messaging, envelope, rate_limiter, tasks):
    return DeliveryService(
        session_factory,
        messaging,
        envelope,
        rate_limiter,
        tasks,
        "claim.test",
        token_ttl=timedelta(hours=1),
        follow_up_delay=300.0,
        send_timeout=1.0,
        dm_per_minute=1000,
    )


@pytest.fixture
def ingestor(messaging, processed, wallets, delivery, rate_limiter, waitlist, clock):
    return MentionIngestor(
        messaging,
        processed,
        wallets,
        delivery,
        rate_limiter,
        waitlist,
        max_wallets_per_user=1,
        max_wallets_per_day=1000,
        poll_interval=0.0,
        clock=clock,
    )
