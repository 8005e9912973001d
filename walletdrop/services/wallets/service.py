"""Wallet provisioning.

Generates key material, optionally opens an on-chain account, and records one
wallet row per external user. The unique constraint on `external_user_id` is
the only guard against concurrent duplicate creation.
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from walletdrop.clients.ledger import LedgerClient
from walletdrop.common.crypto import encrypt_secret, generate_keypair, generate_password, hash_password
from walletdrop.common.errors import LedgerTransientError, WalletAlreadyExistsError
from walletdrop.common.logging import logger
from walletdrop.common.metrics import ledger_failures_total, wallets_created_total
from walletdrop.services.wallets.models import AuditEntry, KeysOnly, OnChain, Wallet


@dataclass(frozen=True)
class ProvisionedWallet:
    """Result of `create_wallet`; the only place the raw secret lives."""

    wallet: Wallet
    secret_material: str
    recovery_password: str


class WalletService:
    """Creates and looks up wallet records."""

    def __init__(
        self,
        session_factory,
        ledger: LedgerClient | None = None,
        ledger_timeout: float = 15.0,
        service_name: str = "walletdrop",
    ) -> None:
        self.session_factory = session_factory
        self.ledger = ledger
        self.ledger_timeout = ledger_timeout
        self.service_name = service_name

    async def _open_account(self, public_key: str) -> OnChain | KeysOnly:
        if self.ledger is None:
            return KeysOnly()
        try:
            account_id = await asyncio.wait_for(self.ledger.create_account(public_key), timeout=self.ledger_timeout)
        except asyncio.TimeoutError as exc:
            ledger_failures_total.labels(service=self.service_name).inc()
            raise LedgerTransientError("account creation timed out", reason="TIMEOUT") from exc
        except LedgerTransientError:
            ledger_failures_total.labels(service=self.service_name).inc()
            raise
        return OnChain(account_id)

    async def create_wallet(self, external_user_id: str, handle: str) -> ProvisionedWallet:
        """Provision a wallet; raises `WalletAlreadyExistsError` or `LedgerTransientError`."""

        logger.info("creating wallet user_id=%s handle=%s", external_user_id, handle)
        keypair = generate_keypair()
        account = await self._open_account(keypair.public_key_der)
        if isinstance(account, KeysOnly):
            logger.warning("keys_only_wallet user_id=%s alias=%s", external_user_id, keypair.account_alias)

        password = generate_password(12)
        wallet = Wallet(
            external_user_id=external_user_id,
            handle=handle,
            secret_encrypted=encrypt_secret(keypair.private_key, password),
            password_hash=hash_password(password),
            public_key=keypair.public_key,
            account_alias=keypair.account_alias,
            account_id=account.account_id if isinstance(account, OnChain) else None,
        )
        with self.session_factory() as db:
            db.add(wallet)
            try:
                db.flush()
            except IntegrityError as exc:
                db.rollback()
                logger.info("wallet_conflict user_id=%s", external_user_id)
                raise WalletAlreadyExistsError(external_user_id) from exc
            db.add(
                AuditEntry(
                    external_user_id=external_user_id,
                    action="WALLET_CREATED",
                    details={
                        "handle": handle,
                        "account_id": wallet.account_id,
                        "account_alias": wallet.account_alias,
                        "on_chain": wallet.account_id is not None,
                    },
                )
            )
            db.commit()

        mode = "on_chain" if isinstance(account, OnChain) else "keys_only"
        wallets_created_total.labels(service=self.service_name, mode=mode).inc()
        logger.info("wallet created user_id=%s account=%s mode=%s", external_user_id, wallet.account_ref, mode)
        return ProvisionedWallet(wallet=wallet, secret_material=keypair.private_key, recovery_password=password)

    def has_wallet(self, external_user_id: str) -> bool:
        return self.get_wallet(external_user_id) is not None

    def get_wallet(self, external_user_id: str) -> Wallet | None:
        with self.session_factory() as db:
            return db.execute(select(Wallet).where(Wallet.external_user_id == external_user_id)).scalar_one_or_none()

    def wallet_count(self) -> int:
        with self.session_factory() as db:
            return db.execute(select(func.count()).select_from(Wallet)).scalar_one()

    def wallets_created_since(self, since: datetime) -> int:
        with self.session_factory() as db:
            return db.execute(
                select(func.count()).select_from(Wallet).where(Wallet.created_at >= since)
            ).scalar_one()

    def mark_claim_accessed(self, external_user_id: str) -> None:
        """Stamp the first claim-link access; best effort, never raises."""

        try:
            with self.session_factory() as db:
                db.execute(
                    update(Wallet)
                    .where(Wallet.external_user_id == external_user_id, Wallet.claim_accessed_at.is_(None))
                    .values(claim_accessed_at=datetime.now(timezone.utc))
                )
                db.commit()
        except SQLAlchemyError as exc:
            logger.error("failed to track claim link access user_id=%s error=%s", external_user_id, exc)

    def stats(self) -> dict:
        """Aggregate counts for wallet and delivery monitoring."""

        with self.session_factory() as db:
            row = db.execute(
                select(
                    func.count(),
                    func.count().filter(Wallet.account_id.is_not(None)),
                    func.count().filter(Wallet.is_funded.is_(True)),
                    func.count().filter(Wallet.airdrop_sent.is_(True)),
                    func.count().filter(Wallet.claim_link_generated.is_(True)),
                    func.count().filter(Wallet.first_message_sent.is_(True)),
                    func.count().filter(Wallet.first_message_failed_at.is_not(None)),
                    func.count().filter(Wallet.second_message_sent.is_(True)),
                    func.count().filter(Wallet.claim_accessed_at.is_not(None)),
                )
            ).one()
        keys = [
            "total_wallets",
            "on_chain_wallets",
            "funded_wallets",
            "airdropped_wallets",
            "claim_links_generated",
            "first_messages_sent",
            "first_message_failures",
            "second_messages_sent",
            "claim_links_accessed",
        ]
        return dict(zip(keys, row))
