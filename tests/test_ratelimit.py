"""Sliding-window quota behavior."""

import asyncio
from datetime import timedelta

import pytest

from walletdrop.services.ratelimit.service import CREATE_WALLET, DIRECT_MESSAGE


def test_limit_reached_after_n_records(rate_limiter):
    window = timedelta(hours=24)
    for _ in range(3):
        assert rate_limiter.check_limit("alice", CREATE_WALLET, 3, window)
        rate_limiter.record("alice", CREATE_WALLET)

    assert not rate_limiter.check_limit("alice", CREATE_WALLET, 3, window)


def test_window_slides(rate_limiter, clock):
    window = timedelta(hours=24)
    rate_limiter.record("alice", CREATE_WALLET)
    assert not rate_limiter.check_limit("alice", CREATE_WALLET, 1, window)

    clock.advance(hours=24, seconds=1)

    assert rate_limiter.check_limit("alice", CREATE_WALLET, 1, window)


def test_actors_and_actions_are_independent(rate_limiter):
    window = timedelta(hours=24)
    rate_limiter.record("alice", CREATE_WALLET)

    assert rate_limiter.check_limit("bob", CREATE_WALLET, 1, window)
    assert rate_limiter.check_limit("alice", DIRECT_MESSAGE, 1, window)


def test_global_limit_counts_every_actor(rate_limiter):
    window = timedelta(days=1)
    rate_limiter.record("alice", CREATE_WALLET)
    assert rate_limiter.check_global_limit(CREATE_WALLET, 2, window)

    rate_limiter.record("bob", CREATE_WALLET)

    assert not rate_limiter.check_global_limit(CREATE_WALLET, 2, window)


@pytest.mark.asyncio
async def test_acquire_consumes_a_slot(rate_limiter):
    window = timedelta(minutes=1)

    await rate_limiter.acquire("bot", DIRECT_MESSAGE, 2, window)
    await rate_limiter.acquire("bot", DIRECT_MESSAGE, 2, window)

    assert not rate_limiter.check_limit("bot", DIRECT_MESSAGE, 2, window)


@pytest.mark.asyncio
async def test_concurrent_acquires_never_exceed_limit(rate_limiter, clock):
    window = timedelta(minutes=1)
    waiters = [
        asyncio.create_task(rate_limiter.acquire("bot", DIRECT_MESSAGE, 2, window, poll_seconds=0.01))
        for _ in range(3)
    ]

    await asyncio.sleep(0.05)
    assert sum(task.done() for task in waiters) == 2

    clock.advance(minutes=1, seconds=1)
    await asyncio.wait_for(asyncio.gather(*waiters), timeout=1.0)

    assert not rate_limiter.check_limit("bot", DIRECT_MESSAGE, 1, window)


def test_purge_removes_only_old_rows(rate_limiter, clock):
    rate_limiter.record("alice", CREATE_WALLET)
    clock.advance(days=3)
    rate_limiter.record("bob", CREATE_WALLET)

    assert rate_limiter.purge(timedelta(days=2)) == 1
    assert not rate_limiter.check_global_limit(CREATE_WALLET, 1, timedelta(days=30))
