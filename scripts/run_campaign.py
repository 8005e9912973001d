"""Trigger a DM campaign, record airdrops or print monitoring stats.

Campaign sends reuse the bot's throttling and stamp each recipient as they go,
so re-running after a partial failure only messages people not yet reached.
"""

import argparse
import asyncio
import json
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from walletdrop.common.config import settings
from walletdrop.common.db import SessionLocal
from walletdrop.common.logging import configure_logging
from walletdrop.services.bot.runtime import build_runtime
from walletdrop.services.ingest.ledger import ProcessedEventLedger
from walletdrop.services.waitlist.service import WaitlistService
from walletdrop.services.wallets.funding import FundingTracker
from walletdrop.services.wallets.service import WalletService


def _parse_event_time(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


async def run_campaign(campaign: str, event_time: datetime | None, airdrop_amount: int) -> int:
    """Run one campaign pass and print how many people were messaged."""

    runtime = build_runtime(settings)
    try:
        if campaign == "reminders":
            sent = await runtime.campaigns.send_pre_event_reminders(event_time)
        elif campaign == "confirmations":
            sent = await runtime.campaigns.send_post_event_confirmations(event_time, airdrop_amount)
        else:
            sent = await runtime.campaigns.notify_waitlist(runtime.waitlist)
    finally:
        await runtime.close()
    print(f"{campaign}: sent={sent}")
    return 0


def record_airdrops(min_balance: Decimal, dry_run: bool) -> int:
    """List, or mark as sent, every wallet eligible for the airdrop."""

    tracker = FundingTracker(SessionLocal)
    if dry_run:
        wallets = tracker.funded_for_airdrop(min_balance)
    else:
        wallets = tracker.mark_airdrops_sent(min_balance)
    for wallet in wallets:
        print(f"{wallet.account_id}\t@{wallet.handle}\t{wallet.current_balance}")
    print(f"airdrops: {'eligible' if dry_run else 'recorded'}={len(wallets)}")
    return 0


def print_stats(days_back: int) -> int:
    wallets = WalletService(SessionLocal)
    report = {
        "wallets": wallets.stats(),
        "wallets_created_last_24h": wallets.wallets_created_since(datetime.now(timezone.utc) - timedelta(days=1)),
        "waitlist": WaitlistService(SessionLocal).stats(),
        "processed_events": ProcessedEventLedger(SessionLocal).stats(days_back),
    }
    print(json.dumps(report, indent=2, default=str))
    return 0


def main() -> None:
    """CLI entrypoint for administrative campaign runs."""

    parser = argparse.ArgumentParser(description="Run a wallet DM campaign, record airdrops or print stats.")
    parser.add_argument("command", choices=["reminders", "confirmations", "waitlist", "airdrops", "stats"])
    parser.add_argument("--event-time", default=None, help="ISO-8601 launch time, UTC if no offset")
    parser.add_argument("--airdrop-amount", type=int, default=settings.airdrop_amount)
    parser.add_argument("--min-balance", type=Decimal, default=Decimal("1"))
    parser.add_argument("--dry-run", action="store_true", help="airdrops: list eligible wallets without marking them")
    parser.add_argument("--days-back", type=int, default=7)
    args = parser.parse_args()

    configure_logging()
    if args.command == "stats":
        raise SystemExit(print_stats(args.days_back))
    if args.command == "airdrops":
        raise SystemExit(record_airdrops(args.min_balance, args.dry_run))

    event_time = None
    if args.command != "waitlist":
        if args.event_time:
            event_time = _parse_event_time(args.event_time)
        elif settings.event_time is not None:
            event_time = settings.event_time
        else:
            parser.error("--event-time is required when EVENT_TIME is not set")

    rc = asyncio.run(run_campaign(args.command, event_time, args.airdrop_amount))
    raise SystemExit(rc)


if __name__ == "__main__":
    main()
