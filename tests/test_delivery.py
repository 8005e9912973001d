"""Delivery state machine: first message, terminal failure and follow-up."""

import pytest
from sqlalchemy import select

from walletdrop.services.wallets.models import AuditEntry


@pytest.mark.asyncio
async def test_successful_delivery_schedules_follow_up(wallets, delivery, messaging, tasks, envelope):
    provisioned = await wallets.create_wallet("42", "alice")

    assert await delivery.deliver_credentials(provisioned, wallet_number=7)

    wallet = wallets.get_wallet("42")
    assert wallet.delivery_state == "SECOND_SCHEDULED"
    assert wallet.claim_link_generated
    assert wallet.first_message_sent
    assert len(tasks.submitted) == 1
    assert tasks.submitted[0][1] == 300.0

    user_id, text = messaging.dms[0]
    assert user_id == "42"
    assert "https://claim.test/claim/" in text
    assert provisioned.secret_material not in text
    token = text.split("https://claim.test/claim/")[1].split()[0]
    assert envelope.open(token).private_key == provisioned.secret_material


@pytest.mark.asyncio
async def test_first_message_failure_is_terminal(wallets, delivery, messaging, tasks):
    provisioned = await wallets.create_wallet("42", "alice")
    messaging.fail_dms = True

    assert not await delivery.deliver_credentials(provisioned, wallet_number=1)

    wallet = wallets.get_wallet("42")
    assert wallet.delivery_state == "FIRST_FAILED"
    assert wallet.first_message_failed_at is not None
    assert not wallet.first_message_sent
    assert tasks.submitted == []


@pytest.mark.asyncio
async def test_follow_up_sent(wallets, delivery, messaging, tasks):
    provisioned = await wallets.create_wallet("42", "alice")
    await delivery.deliver_credentials(provisioned, wallet_number=1)

    await tasks.run_all()

    wallet = wallets.get_wallet("42")
    assert wallet.delivery_state == "SECOND_SENT"
    assert wallet.second_message_sent
    assert len(messaging.dms) == 2
    assert "next steps" in messaging.dms[1][1]


@pytest.mark.asyncio
async def test_follow_up_failure_is_recorded_not_raised(wallets, delivery, messaging, tasks):
    provisioned = await wallets.create_wallet("42", "alice")
    await delivery.deliver_credentials(provisioned, wallet_number=1)
    messaging.fail_dms = True

    await tasks.run_all()

    wallet = wallets.get_wallet("42")
    assert wallet.delivery_state == "SECOND_FAILED"
    assert wallet.second_message_failed_at is not None
    assert not wallet.second_message_sent


@pytest.mark.asyncio
async def test_follow_up_runs_at_most_once(wallets, delivery, messaging):
    provisioned = await wallets.create_wallet("42", "alice")
    await delivery.deliver_credentials(provisioned, wallet_number=1)

    await delivery.send_follow_up("42")
    await delivery.send_follow_up("42")

    assert len(messaging.dms) == 2


@pytest.mark.asyncio
async def test_every_transition_is_audited(wallets, delivery, session_factory):
    provisioned = await wallets.create_wallet("42", "alice")
    await delivery.deliver_credentials(provisioned, wallet_number=1)

    with session_factory() as db:
        actions = (
            db.execute(select(AuditEntry.action).where(AuditEntry.external_user_id == "42")).scalars().all()
        )

    assert set(actions) == {
        "WALLET_CREATED",
        "DELIVERY_CLAIM_LINK_ISSUED",
        "DELIVERY_FIRST_SENT",
        "DELIVERY_SECOND_SCHEDULED",
    }
