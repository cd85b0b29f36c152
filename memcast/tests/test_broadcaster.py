import asyncio
import json
import time

import pytest

from memcast.broadcaster import Broadcaster
from memcast.channel import create_channel
from memcast.registry import Connection, ConnectionRegistry
from memcast.tests.fakes import FakeWebSocket, make_snapshot


async def _registered(registry: ConnectionRegistry, count: int, send_timeout_s: float | None = None, **kwargs) -> list[Connection]:
    conns = []
    for _ in range(count):
        ws = FakeWebSocket(**kwargs)
        await ws.accept()
        conn = Connection(ws, send_timeout_s=send_timeout_s)
        await registry.register(conn)
        conns.append(conn)
    return conns


@pytest.mark.asyncio
async def test_round_payload_is_identical_for_every_viewer():
    registry = ConnectionRegistry()
    conns = await _registered(registry, 4)
    delivered = await Broadcaster(create_channel(), registry).broadcast(make_snapshot())

    payloads = [conn._websocket.sent for conn in conns]
    assert delivered == 4
    assert all(sent == payloads[0] for sent in payloads)
    assert json.loads(payloads[0][0]) == {
        "TotalMemory": "16384",
        "FreeMemory": "4210",
        "UsedMemory": "6909",
        "PercentageUsedMemory": "42.17",
        "Time": "05-03-2024 07:08:09",
    }


@pytest.mark.asyncio
async def test_closed_viewer_is_evicted_without_affecting_others():
    registry = ConnectionRegistry()
    a, b, c = await _registered(registry, 3)
    await b._websocket.close()

    delivered = await Broadcaster(create_channel(), registry).broadcast(make_snapshot())

    assert delivered == 2
    assert len(a._websocket.sent) == 1
    assert len(c._websocket.sent) == 1
    assert b._websocket.sent == []
    assert b.closed
    assert set(await registry.members()) == {a, c}


@pytest.mark.asyncio
async def test_failed_viewer_gets_no_retry_and_stays_evicted():
    registry = ConnectionRegistry()
    (good,) = await _registered(registry, 1)
    (bad,) = await _registered(registry, 1, fail_send=True)
    broadcaster = Broadcaster(create_channel(), registry)

    await broadcaster.broadcast(make_snapshot(0))
    await broadcaster.broadcast(make_snapshot(1))

    assert len(good._websocket.sent) == 2
    assert bad._websocket.sent == []
    assert bad._websocket.close_calls == 1
    assert await registry.count() == 1


@pytest.mark.asyncio
async def test_stalled_viewer_is_evicted_after_send_timeout():
    registry = ConnectionRegistry()
    (fast,) = await _registered(registry, 1)
    (slow,) = await _registered(registry, 1, send_timeout_s=0.05, send_delay_s=1.0)

    delivered = await Broadcaster(create_channel(), registry).broadcast(make_snapshot())

    assert delivered == 1
    assert len(fast._websocket.sent) == 1
    assert slow.closed
    assert await registry.count() == 1


@pytest.mark.asyncio
async def test_viewer_stalled_on_send_and_close_does_not_hold_the_round():
    registry = ConnectionRegistry()
    (stuck,) = await _registered(registry, 1, send_timeout_s=0.05, send_delay_s=5.0, close_delay_s=5.0)
    (after,) = await _registered(registry, 1)

    started = time.monotonic()
    delivered = await Broadcaster(create_channel(), registry).broadcast(make_snapshot())

    assert time.monotonic() - started < 1.0
    assert delivered == 1
    assert len(after._websocket.sent) == 1
    assert stuck.closed


@pytest.mark.asyncio
async def test_run_delivers_snapshots_in_sampling_order():
    registry = ConnectionRegistry()
    conns = await _registered(registry, 2)
    channel = create_channel(2)
    task = asyncio.create_task(Broadcaster(channel, registry).run())

    for second in range(5):
        await channel.put(make_snapshot(second))
    await asyncio.wait_for(channel.join(), timeout=2)
    task.cancel()

    for conn in conns:
        times = [json.loads(payload)["Time"] for payload in conn._websocket.sent]
        assert times == [f"05-03-2024 07:08:{9 + second:02d}" for second in range(5)]


@pytest.mark.asyncio
async def test_run_survives_a_failing_round():
    registry = ConnectionRegistry()
    (conn,) = await _registered(registry, 1)
    channel = create_channel()
    broadcaster = Broadcaster(channel, registry)
    original = registry.for_each
    calls = {"n": 0}

    async def flaky_for_each(fn):
        calls["n"] += 1
        if calls["n"] == 1:
            raise RuntimeError("boom")
        await original(fn)

    registry.for_each = flaky_for_each
    task = asyncio.create_task(broadcaster.run())
    await channel.put(make_snapshot(0))
    await channel.put(make_snapshot(1))
    await asyncio.wait_for(channel.join(), timeout=2)
    task.cancel()

    assert [json.loads(p)["Time"] for p in conn._websocket.sent] == ["05-03-2024 07:08:10"]
