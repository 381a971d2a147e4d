"""Tests for HeartbeatScheduler."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from mini_discord.gateway.heartbeat import SAFETY_FACTOR, HeartbeatScheduler


@pytest.mark.parametrize("server_interval", [41250, 45000, 1000, 1])
def test_interval_is_scaled_by_safety_factor(server_interval):
    assert HeartbeatScheduler.compute_interval(server_interval) == pytest.approx(0.9 * server_interval)
    assert SAFETY_FACTOR == 0.9


@pytest.mark.asyncio
async def test_arm_sets_interval_and_starts_timer():
    scheduler = HeartbeatScheduler(send_heartbeat=AsyncMock())
    interval = scheduler.arm(41250)
    try:
        assert interval == pytest.approx(37125)
        assert scheduler.interval_ms == pytest.approx(37125)
        assert scheduler.is_running
    finally:
        scheduler.stop()


@pytest.mark.asyncio
async def test_rearm_cancels_previous_timer():
    scheduler = HeartbeatScheduler(send_heartbeat=AsyncMock())
    scheduler.arm(41250)
    first = scheduler._task

    scheduler.arm(20000)
    await asyncio.sleep(0)

    assert first.cancelled()
    assert scheduler.interval_ms == pytest.approx(18000)
    scheduler.stop()


@pytest.mark.asyncio
async def test_timer_sends_heartbeats(wait_until):
    send = AsyncMock()
    scheduler = HeartbeatScheduler(send_heartbeat=send)
    scheduler.arm(10)
    try:
        await wait_until(lambda: send.await_count >= 3)
    finally:
        scheduler.stop()


@pytest.mark.asyncio
async def test_stop_prevents_further_beats():
    send = AsyncMock()
    scheduler = HeartbeatScheduler(send_heartbeat=send)
    scheduler.arm(10)
    await asyncio.sleep(0.03)

    scheduler.stop()
    count = send.await_count
    await asyncio.sleep(0.05)

    assert send.await_count == count
    assert not scheduler.is_running


@pytest.mark.asyncio
async def test_missed_ack_triggers_callback_instead_of_beat(wait_until):
    send = AsyncMock()
    missed = AsyncMock()
    scheduler = HeartbeatScheduler(send_heartbeat=send, on_missed_ack=missed, track_acks=True)

    await scheduler.beat()
    scheduler.arm(10)
    await wait_until(lambda: missed.await_count == 1)

    assert send.await_count == 1
    assert not scheduler.is_running


@pytest.mark.asyncio
async def test_ack_keeps_heartbeats_going(wait_until):
    missed = AsyncMock()
    scheduler = HeartbeatScheduler(send_heartbeat=AsyncMock(), on_missed_ack=missed, track_acks=True)

    async def send_and_ack():
        scheduler.ack()

    scheduler._send_heartbeat = send_and_ack
    scheduler.arm(10)
    try:
        await wait_until(lambda: scheduler.beats_sent >= 3)
        missed.assert_not_awaited()
    finally:
        scheduler.stop()


@pytest.mark.asyncio
async def test_ack_records_latency():
    scheduler = HeartbeatScheduler(send_heartbeat=AsyncMock())
    assert scheduler.latency is None

    await scheduler.beat()
    assert scheduler.awaiting_ack is True
    scheduler.ack()

    assert scheduler.awaiting_ack is False
    assert scheduler.latency is not None and scheduler.latency >= 0
