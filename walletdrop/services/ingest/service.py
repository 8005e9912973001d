"""Mention polling loop and per-mention handling.

Each poll fetches recent mentions, drops stale and already-processed ones, and
dispatches every remaining mention as its own task. The loop does not wait
for those tasks; several provisioning flows can be in flight at once.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable
from uuid import uuid4

from sqlalchemy.exc import SQLAlchemyError

from walletdrop.clients.messaging import Mention, MessagingClient
from walletdrop.common.errors import LedgerTransientError, QuotaExceededError, WalletAlreadyExistsError
from walletdrop.common.logging import event_id_ctx, logger, trace_id_ctx, user_id_ctx
from walletdrop.common.metrics import (
    duplicate_events_skipped_total,
    mention_outcomes_total,
    mentions_received_total,
    provisioning_latency_seconds,
    stale_mentions_skipped_total,
)
from walletdrop.common.notifications import (
    AlreadyHasWalletReply,
    ProvisioningUnavailableReply,
    QuotaReply,
    WaitlistReply,
    WalletReadyReply,
)
from walletdrop.services.delivery.service import DeliveryService
from walletdrop.services.ingest.ledger import ProcessedEventLedger
from walletdrop.services.ingest.models import Outcome
from walletdrop.services.ratelimit.service import CREATE_WALLET, RateLimiter
from walletdrop.services.waitlist.service import WaitlistService
from walletdrop.services.wallets.service import WalletService


class Intent(str, Enum):
    CREATE_WALLET = "create_wallet"
    JOIN_WAITLIST = "join_waitlist"
    NONE = "none"


def classify(text: str) -> Intent:
    lowered = text.lower()
    if "create" in lowered and "wallet" in lowered:
        return Intent.CREATE_WALLET
    if "add" in lowered and "waitlist" in lowered:
        return Intent.JOIN_WAITLIST
    return Intent.NONE


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MentionIngestor:
    """Owns the poll loop and the mention → wallet → claim link flow."""

    def __init__(
        self,
        messaging: MessagingClient,
        processed: ProcessedEventLedger,
        wallets: WalletService,
        delivery: DeliveryService,
        rate_limiter: RateLimiter,
        waitlist: WaitlistService,
        max_wallets_per_user: int = 1,
        max_wallets_per_day: int = 1000,
        quota_window: timedelta = timedelta(days=1),
        poll_interval: float = 30.0,
        lookback: timedelta = timedelta(seconds=120),
        freshness_window: timedelta = timedelta(minutes=10),
        clock: Callable[[], datetime] = _utcnow,
        service_name: str = "walletdrop",
    ) -> None:
        self.messaging = messaging
        self.processed = processed
        self.wallets = wallets
        self.delivery = delivery
        self.rate_limiter = rate_limiter
        self.waitlist = waitlist
        self.max_wallets_per_user = max_wallets_per_user
        self.max_wallets_per_day = max_wallets_per_day
        self.quota_window = quota_window
        self.poll_interval = poll_interval
        self.lookback = lookback
        self.freshness_window = freshness_window
        self.clock = clock
        self.service_name = service_name
        self.in_flight: set[asyncio.Task] = set()
        # Ids dispatched but not yet recorded; the ledger stays authoritative.
        self._in_flight_ids: set[str] = set()
        self._stopped = False

    async def run(self) -> None:
        """Poll until `stop()` is called."""

        logger.info("mention polling started interval_s=%s", self.poll_interval)
        while not self._stopped:
            try:
                await self.poll_once()
            except Exception as exc:
                logger.error("mention poll failed error=%s", exc)
            await asyncio.sleep(self.poll_interval)
        logger.info("mention polling stopped")

    def stop(self) -> None:
        self._stopped = True

    async def drain(self) -> None:
        """Wait for every dispatched mention task to finish."""

        if self.in_flight:
            await asyncio.gather(*list(self.in_flight), return_exceptions=True)

    async def poll_once(self) -> int:
        """Fetch and dispatch one batch; returns how many mentions were dispatched."""

        now = self.clock()
        mentions = await self.messaging.fetch_mentions(now - self.lookback)
        dispatched = 0
        for mention in mentions:
            mentions_received_total.labels(service=self.service_name).inc()
            created_at = mention.created_at
            if created_at.tzinfo is None:
                created_at = created_at.replace(tzinfo=timezone.utc)
            if now - created_at > self.freshness_window:
                stale_mentions_skipped_total.labels(service=self.service_name).inc()
                logger.debug("stale mention skipped event_id=%s", mention.event_id)
                continue
            if mention.event_id in self._in_flight_ids or self.processed.is_processed(mention.event_id):
                duplicate_events_skipped_total.labels(service=self.service_name).inc()
                logger.debug("duplicate mention skipped event_id=%s", mention.event_id)
                continue
            self._dispatch(mention)
            dispatched += 1
        return dispatched

    def _dispatch(self, mention: Mention) -> None:
        self._in_flight_ids.add(mention.event_id)
        task = asyncio.create_task(self.handle_mention(mention))
        self.in_flight.add(task)

        def _done(finished: asyncio.Task) -> None:
            self.in_flight.discard(finished)
            self._in_flight_ids.discard(mention.event_id)

        task.add_done_callback(_done)

    async def handle_mention(self, mention: Mention) -> Outcome:
        """Handle one mention end to end and record its outcome."""

        trace_id_ctx.set(str(uuid4()))
        event_id_ctx.set(mention.event_id)
        user_id_ctx.set(mention.author_id)
        intent = classify(mention.text)
        logger.info("mention received handle=%s intent=%s", mention.author_handle, intent.value)
        try:
            if intent is Intent.CREATE_WALLET:
                outcome = await self._provision(mention)
            elif intent is Intent.JOIN_WAITLIST:
                outcome = await self._join_waitlist(mention)
            else:
                outcome = Outcome.IGNORED_NO_TRIGGER
        except Exception as exc:
            logger.exception("mention handling failed error=%s", exc)
            outcome = Outcome.ERROR
        self.processed.mark_processed(
            mention.event_id,
            mention.author_id,
            mention.author_handle,
            outcome,
            raw_text=mention.text,
        )
        mention_outcomes_total.labels(service=self.service_name, outcome=outcome.value).inc()
        return outcome

    def _check_quotas(self, user_id: str) -> None:
        if not self.rate_limiter.check_limit(user_id, CREATE_WALLET, self.max_wallets_per_user, self.quota_window):
            raise QuotaExceededError("per_actor", self.max_wallets_per_user)
        if not self.rate_limiter.check_global_limit(CREATE_WALLET, self.max_wallets_per_day, timedelta(days=1)):
            raise QuotaExceededError("daily", self.max_wallets_per_day)

    async def _provision(self, mention: Mention) -> Outcome:
        user_id = mention.author_id
        handle = mention.author_handle
        if self.wallets.has_wallet(user_id):
            await self.delivery.post_reply(mention.event_id, AlreadyHasWalletReply(handle=handle))
            return Outcome.ALREADY_HAS_WALLET

        try:
            self._check_quotas(user_id)
        except QuotaExceededError as exc:
            daily = exc.scope == "daily"
            logger.info("quota exceeded scope=%s limit=%s", exc.scope, exc.limit)
            await self.delivery.post_reply(mention.event_id, QuotaReply(handle=handle, daily=daily))
            return Outcome.DAILY_LIMIT if daily else Outcome.RATE_LIMITED

        started = self.clock()
        try:
            provisioned = await self.wallets.create_wallet(user_id, handle)
        except WalletAlreadyExistsError:
            await self.delivery.post_reply(mention.event_id, AlreadyHasWalletReply(handle=handle))
            return Outcome.ALREADY_HAS_WALLET
        except LedgerTransientError as exc:
            logger.error("ledger account creation failed reason=%s error=%s", exc.reason, exc)
            await self.delivery.post_reply(mention.event_id, ProvisioningUnavailableReply(handle=handle))
            return Outcome.ERROR
        # The raw secret exists only in memory from here on; store hiccups must not stop delivery.
        try:
            self.rate_limiter.record(user_id, CREATE_WALLET)
        except SQLAlchemyError as exc:
            logger.error("failed to record wallet quota user_id=%s error=%s", user_id, exc)
        try:
            wallet_number = self.wallets.wallet_count()
        except SQLAlchemyError as exc:
            logger.error("failed to count wallets user_id=%s error=%s", user_id, exc)
            wallet_number = 0

        delivered = await self.delivery.deliver_credentials(provisioned, wallet_number)
        provisioning_latency_seconds.labels(service=self.service_name).observe(
            max(0.0, (self.clock() - started).total_seconds())
        )
        if not delivered:
            return Outcome.WALLET_CREATED_DM_FAILED

        await self.delivery.post_reply(mention.event_id, WalletReadyReply(handle=handle, wallet_number=wallet_number))
        return Outcome.WALLET_CREATED

    async def _join_waitlist(self, mention: Mention) -> Outcome:
        added = self.waitlist.add(mention.author_id, mention.author_handle, source_event_id=mention.event_id)
        await self.delivery.post_reply(
            mention.event_id,
            WaitlistReply(handle=mention.author_handle, already_joined=not added),
        )
        return Outcome.WAITLIST_ADDED if added else Outcome.ALREADY_ON_WAITLIST
