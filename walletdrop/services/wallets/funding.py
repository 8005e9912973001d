"""Balance tracking for on-chain wallets feeding the airdrop campaign."""

from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import select, update

from walletdrop.clients.ledger import LedgerClient
from walletdrop.common.logging import logger
from walletdrop.services.wallets.models import Wallet


class FundingTracker:
    """Refreshes balances and flips `is_funded` / `airdrop_sent` forward."""

    def __init__(self, session_factory, ledger: LedgerClient | None = None) -> None:
        self.session_factory = session_factory
        self.ledger = ledger

    async def update_balances(self) -> int:
        """Check every unfunded on-chain wallet; return how many became funded."""

        if self.ledger is None:
            logger.warning("balance refresh skipped: no ledger configured")
            return 0
        with self.session_factory() as db:
            rows = db.execute(
                select(Wallet.wallet_id, Wallet.account_id, Wallet.handle).where(
                    Wallet.account_id.is_not(None),
                    Wallet.is_funded.is_(False),
                )
            ).all()

        newly_funded = 0
        for row in rows:
            try:
                balance = await self.ledger.get_balance(row.account_id)
            except Exception as exc:
                logger.error("balance check failed account=%s error=%s", row.account_id, exc)
                continue
            values = {"current_balance": balance, "last_balance_check": datetime.now(timezone.utc)}
            if balance > 0:
                values["is_funded"] = True
                newly_funded += 1
                logger.info("wallet funded account=%s handle=%s balance=%s", row.account_id, row.handle, balance)
            with self.session_factory() as db:
                db.execute(update(Wallet).where(Wallet.wallet_id == row.wallet_id).values(**values))
                db.commit()
        return newly_funded

    def funded_for_airdrop(self, min_balance: Decimal = Decimal("1")) -> list[Wallet]:
        with self.session_factory() as db:
            return (
                db.execute(
                    select(Wallet)
                    .where(
                        Wallet.is_funded.is_(True),
                        Wallet.airdrop_sent.is_(False),
                        Wallet.current_balance >= min_balance,
                    )
                    .order_by(Wallet.created_at.asc())
                )
                .scalars()
                .all()
            )

    def mark_airdrop_sent(self, wallet_id: str) -> None:
        with self.session_factory() as db:
            db.execute(
                update(Wallet)
                .where(Wallet.wallet_id == wallet_id, Wallet.airdrop_sent.is_(False))
                .values(airdrop_sent=True, airdrop_sent_at=datetime.now(timezone.utc))
            )
            db.commit()

    def mark_airdrops_sent(self, min_balance: Decimal = Decimal("1")) -> list[Wallet]:
        """Record the airdrop as sent for every eligible wallet; returns those wallets.

        The token transfer itself happens outside this process. Run this once
        the transfers for the listed accounts have gone out.
        """

        wallets = self.funded_for_airdrop(min_balance)
        for wallet in wallets:
            self.mark_airdrop_sent(wallet.wallet_id)
            logger.info("airdrop recorded account=%s handle=%s", wallet.account_id, wallet.handle)
        return wallets
