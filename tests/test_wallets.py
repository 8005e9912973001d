"""Wallet provisioning: on-chain, keys-only, conflicts and secret handling."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy import select

from walletdrop.common.crypto import decrypt_secret, hash_password
from walletdrop.common.errors import LedgerTransientError, WalletAlreadyExistsError
from walletdrop.services.wallets.funding import FundingTracker
from walletdrop.services.wallets.models import AuditEntry, KeysOnly, OnChain, Wallet
from walletdrop.services.wallets.service import WalletService


@pytest.mark.asyncio
async def test_create_wallet_on_chain(wallets, session_factory):
    provisioned = await wallets.create_wallet("42", "alice")

    wallet = wallets.get_wallet("42")
    assert wallet is not None
    assert wallet.ledger_account == OnChain("0.0.1001")
    assert wallet.account_ref == "0.0.1001"
    assert wallet.delivery_state == "CREATED"
    assert wallet.account_alias.startswith("0.0.302a300506032b6570032100")
    assert provisioned.wallet.wallet_id == wallet.wallet_id

    with session_factory() as db:
        actions = db.execute(select(AuditEntry.action).where(AuditEntry.external_user_id == "42")).scalars().all()
    assert actions == ["WALLET_CREATED"]


@pytest.mark.asyncio
async def test_secret_is_only_stored_encrypted(wallets, session_factory):
    provisioned = await wallets.create_wallet("42", "alice")

    with session_factory() as db:
        wallet = db.execute(select(Wallet).where(Wallet.external_user_id == "42")).scalar_one()

    assert provisioned.secret_material not in wallet.secret_encrypted
    assert wallet.password_hash == hash_password(provisioned.recovery_password)
    assert provisioned.recovery_password not in wallet.password_hash
    assert decrypt_secret(wallet.secret_encrypted, provisioned.recovery_password) == provisioned.secret_material


@pytest.mark.asyncio
async def test_keys_only_when_ledger_not_configured(session_factory):
    service = WalletService(session_factory, ledger=None)

    provisioned = await service.create_wallet("42", "alice")

    assert provisioned.wallet.account_id is None
    assert provisioned.wallet.ledger_account == KeysOnly()
    assert provisioned.wallet.account_ref == provisioned.wallet.account_alias


@pytest.mark.asyncio
async def test_second_wallet_for_same_user_conflicts(wallets):
    await wallets.create_wallet("42", "alice")

    with pytest.raises(WalletAlreadyExistsError) as exc_info:
        await wallets.create_wallet("42", "alice")

    assert exc_info.value.code == "WALLET_ALREADY_EXISTS"
    assert wallets.wallet_count() == 1


@pytest.mark.asyncio
async def test_ledger_failure_creates_no_row(wallets, ledger):
    ledger.fail_reason = "INSUFFICIENT_PAYER_BALANCE"

    with pytest.raises(LedgerTransientError) as exc_info:
        await wallets.create_wallet("42", "alice")

    assert exc_info.value.reason == "INSUFFICIENT_PAYER_BALANCE"
    assert not wallets.has_wallet("42")


@pytest.mark.asyncio
async def test_mark_claim_accessed_keeps_first_timestamp(wallets):
    await wallets.create_wallet("42", "alice")

    wallets.mark_claim_accessed("42")
    first = wallets.get_wallet("42").claim_accessed_at
    wallets.mark_claim_accessed("42")

    assert first is not None
    assert wallets.get_wallet("42").claim_accessed_at == first


@pytest.mark.asyncio
async def test_stats_counts(wallets, session_factory):
    await wallets.create_wallet("42", "alice")
    await wallets.create_wallet("43", "bob")

    stats = wallets.stats()

    assert stats["total_wallets"] == 2
    assert stats["on_chain_wallets"] == 2
    assert stats["funded_wallets"] == 0
    assert stats["first_message_failures"] == 0


@pytest.mark.asyncio
async def test_funding_tracker_marks_funded_wallets(wallets, ledger, session_factory):
    await wallets.create_wallet("42", "alice")
    await wallets.create_wallet("43", "bob")
    ledger.balances = {"0.0.1001": Decimal("5"), "0.0.1002": Decimal("0")}
    tracker = FundingTracker(session_factory, ledger)

    assert await tracker.update_balances() == 1

    funded = tracker.funded_for_airdrop()
    assert [wallet.external_user_id for wallet in funded] == ["42"]
    tracker.mark_airdrop_sent(funded[0].wallet_id)
    assert tracker.funded_for_airdrop() == []
    assert wallets.get_wallet("42").airdrop_sent


@pytest.mark.asyncio
async def test_wallets_created_since(wallets):
    await wallets.create_wallet("42", "alice")
    await wallets.create_wallet("43", "bob")
    now = datetime.now(timezone.utc)

    assert wallets.wallets_created_since(now - timedelta(days=1)) == 2
    assert wallets.wallets_created_since(now + timedelta(days=1)) == 0


@pytest.mark.asyncio
async def test_mark_airdrops_sent_respects_min_balance(wallets, ledger, session_factory):
    await wallets.create_wallet("42", "alice")
    await wallets.create_wallet("43", "bob")
    ledger.balances = {"0.0.1001": Decimal("5"), "0.0.1002": Decimal("0.5")}
    tracker = FundingTracker(session_factory, ledger)
    await tracker.update_balances()

    marked = tracker.mark_airdrops_sent(min_balance=Decimal("1"))

    assert [wallet.external_user_id for wallet in marked] == ["42"]
    assert wallets.get_wallet("42").airdrop_sent
    assert wallets.get_wallet("42").airdrop_sent_at is not None
    assert not wallets.get_wallet("43").airdrop_sent
    assert tracker.mark_airdrops_sent(min_balance=Decimal("1")) == []
    assert wallets.stats()["airdropped_wallets"] == 1


@pytest.mark.asyncio
async def test_balance_refresh_without_ledger_is_a_no_op(session_factory):
    assert await FundingTracker(session_factory).update_balances() == 0
