"""HTTP adapters exercised against httpx.MockTransport."""

import json
from datetime import datetime, timezone
from decimal import Decimal

import httpx
import pytest

from walletdrop.clients.ledger import HttpLedgerClient
from walletdrop.clients.messaging import TwitterMessagingClient
from walletdrop.common.errors import LedgerTransientError, MessagingError


def _ledger(handler) -> HttpLedgerClient:
    return HttpLedgerClient(
        "https://gateway.test",
        "secret-key",
        "https://mirror.test",
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.asyncio
async def test_create_account_returns_account_id():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["api_key"] = request.headers.get("x-api-key")
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"account_id": "0.0.5005"})

    client = _ledger(handler)
    assert await client.create_account("302a") == "0.0.5005"
    await client.close()

    assert seen == {"path": "/accounts", "api_key": "secret-key", "body": {"public_key": "302a"}}


@pytest.mark.asyncio
async def test_create_account_maps_gateway_error_code():
    client = _ledger(lambda request: httpx.Response(503, json={"error": "INSUFFICIENT_PAYER_BALANCE"}))

    with pytest.raises(LedgerTransientError) as exc_info:
        await client.create_account("302a")

    assert exc_info.value.reason == "INSUFFICIENT_PAYER_BALANCE"


@pytest.mark.asyncio
async def test_create_account_timeout():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    client = _ledger(handler)
    with pytest.raises(LedgerTransientError) as exc_info:
        await client.create_account("302a")

    assert exc_info.value.reason == "TIMEOUT"


@pytest.mark.asyncio
async def test_create_account_malformed_response():
    client = _ledger(lambda request: httpx.Response(200, json={"status": "ok"}))

    with pytest.raises(LedgerTransientError) as exc_info:
        await client.create_account("302a")

    assert exc_info.value.reason == "MALFORMED"


@pytest.mark.asyncio
async def test_get_balance_converts_tinybars():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/api/v1/accounts/0.0.5005"
        return httpx.Response(200, json={"balance": {"balance": 250_000_000}})

    client = _ledger(handler)
    assert await client.get_balance("0.0.5005") == Decimal("2.5")


def _twitter(handler) -> TwitterMessagingClient:
    return TwitterMessagingClient(
        "https://api.test",
        "bearer",
        "999",
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.asyncio
async def test_fetch_mentions_parses_and_skips_own_posts():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/2/users/999/mentions"
        assert request.url.params["start_time"] == "2026-10-19T11:58:00Z"
        assert request.headers["authorization"] == "Bearer bearer"
        return httpx.Response(
            200,
            json={
                "data": [
                    {"id": "1", "author_id": "42", "text": "create wallet", "created_at": "2026-10-19T11:59:00.000Z"},
                    {"id": "2", "author_id": "999", "text": "self", "created_at": "2026-10-19T11:59:30.000Z"},
                ],
                "includes": {"users": [{"id": "42", "username": "alice"}]},
            },
        )

    client = _twitter(handler)
    mentions = await client.fetch_mentions(datetime(2026, 10, 19, 11, 58, tzinfo=timezone.utc))

    assert len(mentions) == 1
    assert mentions[0].event_id == "1"
    assert mentions[0].author_handle == "alice"
    assert mentions[0].created_at == datetime(2026, 10, 19, 11, 59, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_fetch_mentions_handles_empty_feed():
    client = _twitter(lambda request: httpx.Response(200, json={"meta": {"result_count": 0}}))

    assert await client.fetch_mentions(datetime(2026, 10, 19, tzinfo=timezone.utc)) == []


@pytest.mark.asyncio
async def test_direct_message_and_reply_requests():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append((request.method, request.url.path, json.loads(request.content)))
        return httpx.Response(201, json={"data": {}})

    client = _twitter(handler)
    await client.send_direct_message("42", "hello")
    await client.reply("77", "hi there")

    assert calls == [
        ("POST", "/2/dm_conversations/with/42/messages", {"text": "hello"}),
        ("POST", "/2/tweets", {"text": "hi there", "reply": {"in_reply_to_tweet_id": "77"}}),
    ]


@pytest.mark.asyncio
async def test_rejected_direct_message_raises():
    client = _twitter(lambda request: httpx.Response(403, json={"title": "Forbidden"}))

    with pytest.raises(MessagingError) as exc_info:
        await client.send_direct_message("42", "hello")

    assert exc_info.value.status_code == 403
