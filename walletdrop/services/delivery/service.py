"""Outbound delivery state machine for wallet notifications.

Drives the secret-bearing first message and the follow-up guidance message,
recording every step on the wallet row. Transition writes are guarded by
`(wallet_id, delivery_state, state_version)` so a stale writer cannot move a
wallet backwards.
"""

import asyncio
from datetime import datetime, timedelta, timezone

from sqlalchemy import select, update

from walletdrop.clients.messaging import MessagingClient
from walletdrop.common.envelope import ClaimPayload, SecretEnvelope
from walletdrop.common.errors import MessagingError
from walletdrop.common.logging import logger
from walletdrop.common.metrics import direct_messages_total
from walletdrop.common.notifications import (
    ClaimLinkNotice,
    DirectMessage,
    PublicReply,
    SetupGuide,
    message_kind,
    render_dm,
    render_reply,
)
from walletdrop.common.state_machine import (
    CLAIM_LINK_ISSUED,
    FIRST_FAILED,
    FIRST_SENT,
    SECOND_FAILED,
    SECOND_SCHEDULED,
    SECOND_SENT,
    validate_transition,
)
from walletdrop.common.tasks import DelayedTaskRunner
from walletdrop.services.ratelimit.service import DIRECT_MESSAGE, RateLimiter
from walletdrop.services.wallets.models import AuditEntry, Wallet
from walletdrop.services.wallets.service import ProvisionedWallet

BOT_ACTOR = "bot"


class DeliveryService:
    """Sends wallet notifications and records their outcome."""

    def __init__(
        self,
        session_factory,
        messaging: MessagingClient,
        envelope: SecretEnvelope,
        rate_limiter: RateLimiter,
        tasks: DelayedTaskRunner,
        claim_domain: str,
        token_ttl: timedelta = timedelta(hours=1),
        follow_up_delay: float = 300.0,
        send_timeout: float = 15.0,
        dm_per_minute: int = 30,
        service_name: str = "walletdrop",
    ) -> None:
        self.session_factory = session_factory
        self.messaging = messaging
        self.envelope = envelope
        self.rate_limiter = rate_limiter
        self.tasks = tasks
        self.claim_domain = claim_domain
        self.token_ttl = token_ttl
        self.follow_up_delay = follow_up_delay
        self.send_timeout = send_timeout
        self.dm_per_minute = dm_per_minute
        self.service_name = service_name

    def claim_url(self, token: str) -> str:
        return f"https://{self.claim_domain}/claim/{token}"

    def _transition(self, db, wallet: Wallet, new_state: str, reason: str, **values) -> None:
        """Apply one validated state transition with optimistic concurrency."""

        validate_transition(wallet.delivery_state, new_state)
        from_state = wallet.delivery_state
        current_version = wallet.state_version

        result = db.execute(
            update(Wallet)
            .where(
                Wallet.wallet_id == wallet.wallet_id,
                Wallet.delivery_state == from_state,
                Wallet.state_version == current_version,
            )
            .values(delivery_state=new_state, state_version=current_version + 1, **values)
        )
        if result.rowcount != 1:
            raise RuntimeError(
                f"optimistic concurrency conflict for wallet {wallet.wallet_id} (expected version {current_version})"
            )

        wallet.delivery_state = new_state
        wallet.state_version = current_version + 1
        for key, value in values.items():
            setattr(wallet, key, value)
        db.add(
            AuditEntry(
                external_user_id=wallet.external_user_id,
                action=f"DELIVERY_{new_state}",
                details={"from_state": from_state, "reason": reason},
            )
        )

    def _advance(self, wallet_id: str, new_state: str, reason: str, **values) -> Wallet:
        with self.session_factory() as db:
            wallet = db.get(Wallet, wallet_id)
            if wallet is None:
                raise ValueError(f"wallet {wallet_id} not found")
            self._transition(db, wallet, new_state, reason, **values)
            db.commit()
            return wallet

    async def send_dm(self, user_id: str, message: DirectMessage) -> None:
        """Throttled, time-bounded direct message; raises `MessagingError`."""

        kind = message_kind(message)
        await self.rate_limiter.acquire(BOT_ACTOR, DIRECT_MESSAGE, self.dm_per_minute, timedelta(minutes=1))
        try:
            await asyncio.wait_for(
                self.messaging.send_direct_message(user_id, render_dm(message)),
                timeout=self.send_timeout,
            )
        except asyncio.TimeoutError as exc:
            direct_messages_total.labels(service=self.service_name, kind=kind, result="failed").inc()
            raise MessagingError(f"{kind} direct message timed out") from exc
        except Exception:
            direct_messages_total.labels(service=self.service_name, kind=kind, result="failed").inc()
            raise
        direct_messages_total.labels(service=self.service_name, kind=kind, result="sent").inc()

    async def deliver_credentials(self, provisioned: ProvisionedWallet, wallet_number: int) -> bool:
        """Mint the claim link and send it; True only when the first message went out.

        A failed first message is terminal. Retrying would put a second live
        claim link for the same wallet into circulation.
        """

        wallet = provisioned.wallet
        token = self.envelope.mint(
            ClaimPayload(
                external_user_id=wallet.external_user_id,
                handle=wallet.handle,
                account_id=wallet.account_id,
                account_alias=wallet.account_alias,
                public_key=wallet.public_key,
                private_key=provisioned.secret_material,
                recovery_password=provisioned.recovery_password,
            ),
            self.token_ttl,
        )
        self._advance(wallet.wallet_id, CLAIM_LINK_ISSUED, "claim_token_minted", claim_link_generated=True)

        notice = ClaimLinkNotice(
            handle=wallet.handle,
            claim_url=self.claim_url(token),
            account_ref=wallet.account_ref,
            wallet_number=wallet_number,
            ttl_minutes=int(self.token_ttl.total_seconds() // 60),
        )
        try:
            await self.send_dm(wallet.external_user_id, notice)
        except Exception as exc:
            logger.error("first message failed user_id=%s error=%s", wallet.external_user_id, exc)
            self._advance(
                wallet.wallet_id,
                FIRST_FAILED,
                "first_message_failed",
                first_message_failed_at=datetime.now(timezone.utc),
            )
            return False

        self._advance(wallet.wallet_id, FIRST_SENT, "first_message_sent", first_message_sent=True)
        self._advance(wallet.wallet_id, SECOND_SCHEDULED, "follow_up_scheduled")
        external_user_id = wallet.external_user_id
        self.tasks.submit(lambda: self.send_follow_up(external_user_id), self.follow_up_delay)
        logger.info("claim link delivered user_id=%s", external_user_id)
        return True

    async def send_follow_up(self, external_user_id: str) -> None:
        """Send the setup guide; failures are recorded and logged, never raised."""

        with self.session_factory() as db:
            wallet = db.execute(
                select(Wallet).where(Wallet.external_user_id == external_user_id)
            ).scalar_one_or_none()
        if wallet is None or wallet.delivery_state != SECOND_SCHEDULED:
            logger.info("follow-up skipped user_id=%s", external_user_id)
            return
        try:
            await self.send_dm(external_user_id, SetupGuide(handle=wallet.handle))
        except Exception as exc:
            logger.warning("follow-up message failed user_id=%s error=%s", external_user_id, exc)
            self._advance(
                wallet.wallet_id,
                SECOND_FAILED,
                "second_message_failed",
                second_message_failed_at=datetime.now(timezone.utc),
            )
            return
        self._advance(wallet.wallet_id, SECOND_SENT, "second_message_sent", second_message_sent=True)
        logger.info("follow-up sent user_id=%s", external_user_id)

    async def post_reply(self, event_id: str, reply: PublicReply) -> bool:
        """Public reply to the triggering event; never carries credentials."""

        try:
            await asyncio.wait_for(self.messaging.reply(event_id, render_reply(reply)), timeout=self.send_timeout)
        except Exception as exc:
            logger.error("public reply failed event_id=%s error=%s", event_id, exc)
            return False
        return True
