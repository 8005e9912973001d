"""Scheduled direct-message campaigns around the launch event."""

import asyncio
from datetime import datetime, timezone
from typing import Any, Callable

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy import select, update

from walletdrop.common.logging import logger
from walletdrop.common.metrics import campaign_messages_total
from walletdrop.common.notifications import DirectMessage, PostEventConfirmation, PreEventReminder, WaitlistOpenNotice
from walletdrop.services.delivery.service import DeliveryService
from walletdrop.services.waitlist.service import WaitlistService
from walletdrop.services.wallets.models import Wallet

PRE_EVENT = "pre_event_reminder"
POST_EVENT = "post_event_confirmation"
WAITLIST_OPEN = "waitlist_open"
REMINDER_DAYS_BEFORE = (7, 3)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CampaignService:
    def __init__(
        self,
        session_factory,
        delivery: DeliveryService,
        batch_size: int = 50,
        message_delay: float = 1.0,
        batch_pause: float = 30.0,
        clock: Callable[[], datetime] = _utcnow,
        service_name: str = "walletdrop",
    ) -> None:
        self.session_factory = session_factory
        self.delivery = delivery
        self.batch_size = batch_size
        self.message_delay = message_delay
        self.batch_pause = batch_pause
        self.clock = clock
        self.service_name = service_name

    def pre_event_recipients(self) -> list[Wallet]:
        with self.session_factory() as db:
            return (
                db.execute(
                    select(Wallet)
                    .where(
                        Wallet.pre_event_reminder_sent_at.is_(None),
                        Wallet.is_funded.is_(False),
                        Wallet.first_message_failed_at.is_(None),
                    )
                    .order_by(Wallet.created_at.asc())
                )
                .scalars()
                .all()
            )

    def post_event_recipients(self) -> list[Wallet]:
        with self.session_factory() as db:
            return (
                db.execute(
                    select(Wallet)
                    .where(Wallet.is_funded.is_(True), Wallet.post_event_confirmation_sent_at.is_(None))
                    .order_by(Wallet.created_at.asc())
                )
                .scalars()
                .all()
            )

    async def send_pre_event_reminders(self, event_time: datetime) -> int:
        recipients = self.pre_event_recipients()
        logger.info("pre-event reminders starting recipients=%s event_time=%s", len(recipients), event_time.isoformat())
        return await self._run(
            PRE_EVENT,
            recipients,
            lambda wallet: PreEventReminder(handle=wallet.handle, event_time=event_time),
            lambda wallet: self._stamp(wallet.wallet_id, "pre_event_reminder_sent_at"),
        )

    async def send_post_event_confirmations(self, event_time: datetime, airdrop_amount: int) -> int:
        recipients = self.post_event_recipients()
        logger.info(
            "post-event confirmations starting recipients=%s event_time=%s amount=%s",
            len(recipients),
            event_time.isoformat(),
            airdrop_amount,
        )
        return await self._run(
            POST_EVENT,
            recipients,
            lambda wallet: PostEventConfirmation(
                handle=wallet.handle, account_ref=wallet.account_ref, airdrop_amount=airdrop_amount
            ),
            lambda wallet: self._stamp(wallet.wallet_id, "post_event_confirmation_sent_at"),
        )

    async def notify_waitlist(self, waitlist: WaitlistService) -> int:
        """DM everyone still waiting that wallets are open, marking each as notified."""

        recipients = waitlist.pending()
        logger.info("waitlist notices starting recipients=%s", len(recipients))
        return await self._run(
            WAITLIST_OPEN,
            recipients,
            lambda entry: WaitlistOpenNotice(handle=entry.handle),
            lambda entry: waitlist.mark_notified(entry.external_user_id),
        )

    async def _run(
        self,
        campaign: str,
        recipients: list,
        build: Callable[[Any], DirectMessage],
        mark: Callable[[Any], None],
    ) -> int:
        sent = 0
        for start in range(0, len(recipients), self.batch_size):
            if start:
                await asyncio.sleep(self.batch_pause)
            for recipient in recipients[start : start + self.batch_size]:
                try:
                    await self.delivery.send_dm(recipient.external_user_id, build(recipient))
                except Exception as exc:
                    campaign_messages_total.labels(service=self.service_name, campaign=campaign, result="failed").inc()
                    logger.error("%s failed handle=%s error=%s", campaign, recipient.handle, exc)
                    continue
                mark(recipient)
                campaign_messages_total.labels(service=self.service_name, campaign=campaign, result="sent").inc()
                sent += 1
                await asyncio.sleep(self.message_delay)
        logger.info("%s finished sent=%s total=%s", campaign, sent, len(recipients))
        return sent

    def _stamp(self, wallet_id: str, column: str) -> None:
        with self.session_factory() as db:
            db.execute(
                update(Wallet)
                .where(Wallet.wallet_id == wallet_id, getattr(Wallet, column).is_(None))
                .values({column: self.clock()})
            )
            db.commit()

    async def daily_tick(self, event_time: datetime, airdrop_amount: int) -> str | None:
        """Run whichever campaign is due today; returns its name or None."""

        days_until = (event_time.date() - self.clock().date()).days
        if days_until in REMINDER_DAYS_BEFORE:
            await self.send_pre_event_reminders(event_time)
            return PRE_EVENT
        if days_until <= 0:
            await self.send_post_event_confirmations(event_time, airdrop_amount)
            return POST_EVENT
        logger.debug("no campaign due days_until=%s", days_until)
        return None


def register_jobs(
    scheduler: AsyncIOScheduler,
    campaigns: CampaignService,
    event_time: datetime,
    airdrop_amount: int,
    cleanup: Callable[[], int] | None = None,
    refresh_balances: Callable | None = None,
    balance_refresh_minutes: int = 15,
) -> None:
    """Attach the campaign, retention and balance jobs to `scheduler`."""

    scheduler.add_job(
        campaigns.daily_tick,
        trigger=CronTrigger(hour=10, minute=0, timezone="UTC"),
        id="campaign_daily",
        name="Daily campaign check",
        kwargs={"event_time": event_time, "airdrop_amount": airdrop_amount},
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    if cleanup is not None:
        scheduler.add_job(
            cleanup,
            trigger=CronTrigger(hour=3, minute=0, timezone="UTC"),
            id="processed_cleanup",
            name="Processed event retention sweep",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
    if refresh_balances is not None:
        scheduler.add_job(
            refresh_balances,
            trigger=IntervalTrigger(minutes=balance_refresh_minutes),
            id="balance_refresh",
            name="Wallet balance refresh",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
    logger.info(
        "campaign jobs registered event_time=%s balance_refresh=%s",
        event_time.isoformat(),
        refresh_balances is not None,
    )
