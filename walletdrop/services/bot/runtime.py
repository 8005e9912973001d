"""Object graph shared by the bot process and the admin scripts."""

from dataclasses import dataclass
from datetime import timedelta

import redis

from walletdrop.clients.ledger import HttpLedgerClient
from walletdrop.clients.messaging import TwitterMessagingClient
from walletdrop.common.config import CommonSettings
from walletdrop.common.db import SessionLocal
from walletdrop.common.envelope import SecretEnvelope
from walletdrop.common.logging import logger
from walletdrop.common.tasks import InProcessDelayedTasks
from walletdrop.services.campaigns.service import CampaignService
from walletdrop.services.delivery.service import DeliveryService
from walletdrop.services.ingest.ledger import ProcessedEventLedger
from walletdrop.services.ingest.service import MentionIngestor
from walletdrop.services.ratelimit.service import RateLimiter
from walletdrop.services.waitlist.service import WaitlistService
from walletdrop.services.wallets.funding import FundingTracker
from walletdrop.services.wallets.service import WalletService


@dataclass
class Runtime:
    messaging: TwitterMessagingClient
    ledger: HttpLedgerClient | None
    cache: redis.Redis | None
    tasks: InProcessDelayedTasks
    rate_limiter: RateLimiter
    processed: ProcessedEventLedger
    wallets: WalletService
    delivery: DeliveryService
    waitlist: WaitlistService
    ingestor: MentionIngestor
    campaigns: CampaignService
    funding: FundingTracker | None

    async def close(self) -> None:
        self.tasks.cancel_all()
        await self.messaging.close()
        if self.ledger is not None:
            await self.ledger.close()
        if self.cache is not None:
            self.cache.close()


def build_runtime(settings: CommonSettings, session_factory=SessionLocal) -> Runtime:
    if not settings.twitter_bearer_token or not settings.twitter_bot_user_id:
        raise SystemExit("TWITTER_BEARER_TOKEN and TWITTER_BOT_USER_ID are required")

    messaging = TwitterMessagingClient(
        settings.twitter_api_base_url,
        settings.twitter_bearer_token,
        settings.twitter_bot_user_id,
        timeout=settings.messaging_timeout_seconds,
    )
    ledger = None
    if settings.ledger_gateway_url:
        ledger = HttpLedgerClient(
            settings.ledger_gateway_url,
            settings.ledger_api_key,
            settings.mirror_node_url,
            timeout=settings.ledger_timeout_seconds,
        )
    else:
        logger.warning("ledger gateway not configured; wallets will be created in keys-only mode")
    cache = redis.Redis.from_url(settings.redis_url, decode_responses=True) if settings.redis_url else None

    tasks = InProcessDelayedTasks()
    rate_limiter = RateLimiter(session_factory)
    processed = ProcessedEventLedger(
        session_factory, cache=cache, retention=timedelta(days=settings.processed_retention_days)
    )
    wallets = WalletService(
        session_factory,
        ledger=ledger,
        ledger_timeout=settings.ledger_timeout_seconds,
        service_name=settings.service_name,
    )
    delivery = DeliveryService(
        session_factory,
        messaging,
        SecretEnvelope(settings.envelope_secret),
        rate_limiter,
        tasks,
        settings.claim_domain,
        token_ttl=timedelta(seconds=settings.claim_token_ttl_seconds),
        follow_up_delay=settings.follow_up_delay_seconds,
        send_timeout=settings.messaging_timeout_seconds,
        dm_per_minute=settings.dm_per_minute,
        service_name=settings.service_name,
    )
    waitlist = WaitlistService(session_factory)
    ingestor = MentionIngestor(
        messaging,
        processed,
        wallets,
        delivery,
        rate_limiter,
        waitlist,
        max_wallets_per_user=settings.max_wallets_per_user,
        max_wallets_per_day=settings.max_wallets_per_day,
        quota_window=timedelta(seconds=settings.rate_limit_window_seconds),
        poll_interval=settings.poll_interval_seconds,
        lookback=timedelta(seconds=settings.lookback_seconds),
        freshness_window=timedelta(seconds=settings.freshness_window_seconds),
        service_name=settings.service_name,
    )
    campaigns = CampaignService(
        session_factory,
        delivery,
        batch_size=settings.campaign_batch_size,
        message_delay=settings.campaign_message_delay_seconds,
        batch_pause=settings.campaign_batch_pause_seconds,
        service_name=settings.service_name,
    )
    funding = FundingTracker(session_factory, ledger) if ledger is not None else None
    return Runtime(
        messaging=messaging,
        ledger=ledger,
        cache=cache,
        tasks=tasks,
        rate_limiter=rate_limiter,
        processed=processed,
        wallets=wallets,
        delivery=delivery,
        waitlist=waitlist,
        ingestor=ingestor,
        campaigns=campaigns,
        funding=funding,
    )
