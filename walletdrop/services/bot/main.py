"""Bot process: mention polling, delayed follow-ups and scheduled campaigns.

Run with `python -m walletdrop.services.bot.main`. Metrics are exposed on
`METRICS_PORT` through the Prometheus client's built-in HTTP server.
"""

import asyncio
import signal
from datetime import timedelta

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from prometheus_client import start_http_server

from walletdrop.common.config import settings
from walletdrop.common.logging import configure_logging, logger
from walletdrop.common.startup import log_startup_config
from walletdrop.services.bot.runtime import build_runtime
from walletdrop.services.campaigns.service import register_jobs

configure_logging()
log_startup_config(
    settings.service_name,
    [
        "SERVICE_NAME",
        "DATABASE_URL",
        "REDIS_URL",
        "TWITTER_BOT_USER_ID",
        "TWITTER_BEARER_TOKEN",
        "LEDGER_GATEWAY_URL",
        "LEDGER_API_KEY",
        "CLAIM_DOMAIN",
        "MAX_WALLETS_PER_DAY",
        "POLL_INTERVAL_SECONDS",
        "EVENT_TIME",
    ],
)


async def main() -> int:
    runtime = build_runtime(settings)
    start_http_server(settings.metrics_port)

    def _sweep() -> int:
        runtime.rate_limiter.purge(timedelta(days=2))
        return runtime.processed.cleanup()

    scheduler = AsyncIOScheduler(timezone="UTC")
    if settings.event_time is not None:
        register_jobs(
            scheduler,
            runtime.campaigns,
            settings.event_time,
            settings.airdrop_amount,
            cleanup=_sweep,
            refresh_balances=runtime.funding.update_balances if runtime.funding else None,
            balance_refresh_minutes=settings.balance_refresh_minutes,
        )
    else:
        logger.info("EVENT_TIME not set; campaign jobs disabled")
        scheduler.add_job(
            _sweep,
            trigger=CronTrigger(hour=3, minute=0, timezone="UTC"),
            id="processed_cleanup",
            replace_existing=True,
        )
    scheduler.start()

    stop_event = asyncio.Event()

    def _signal_handler(*_):
        stop_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _signal_handler)
        except NotImplementedError:
            signal.signal(sig, lambda *_: stop_event.set())

    poll_task = asyncio.create_task(runtime.ingestor.run())
    logger.info("bot started metrics_port=%s", settings.metrics_port)

    await stop_event.wait()

    logger.info("shutting down")
    runtime.ingestor.stop()
    scheduler.shutdown(wait=False)
    poll_task.cancel()
    try:
        await poll_task
    except asyncio.CancelledError:
        pass
    await runtime.ingestor.drain()
    await runtime.close()
    return 0


if __name__ == "__main__":
    raise SystemExit(asyncio.run(main()))
