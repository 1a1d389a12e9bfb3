from __future__ import annotations

import asyncio

import pytest

from kube_log_mux.core.models import RawLine, StreamClosed
from kube_log_mux.core.multiplexer import END_OF_STREAMS, StreamMultiplexer


@pytest.mark.asyncio
async def test_lines_come_out_in_ready_order_until_all_closed() -> None:
    mux = StreamMultiplexer(["a", "b"], poll_interval=0.01)
    for item in [
        RawLine("a", "1"),
        RawLine("b", "x"),
        StreamClosed("a"),
        RawLine("b", "y"),
        StreamClosed("b"),
    ]:
        mux.queue.put_nowait(item)

    lines = [raw async for raw in mux]

    assert [(r.context, r.text) for r in lines] == [("a", "1"), ("b", "x"), ("b", "y")]
    assert mux.active_contexts == frozenset()
    assert await mux.next() is END_OF_STREAMS


@pytest.mark.asyncio
async def test_waits_for_slow_context() -> None:
    mux = StreamMultiplexer(["fast", "slow"], poll_interval=0.01)

    async def producer() -> None:
        for i in range(3):
            await mux.queue.put(RawLine("fast", str(i)))
        await mux.queue.put(StreamClosed("fast"))
        await asyncio.sleep(0.1)
        await mux.queue.put(RawLine("slow", "late"))
        await mux.queue.put(StreamClosed("slow"))

    task = asyncio.create_task(producer())
    lines = [raw async for raw in mux]
    await task

    assert [r.text for r in lines] == ["0", "1", "2", "late"]


@pytest.mark.asyncio
async def test_follow_keeps_waiting_until_closed() -> None:
    mux = StreamMultiplexer(["a"], follow=True, poll_interval=0.01)
    mux.queue.put_nowait(StreamClosed("a"))

    with pytest.raises(asyncio.TimeoutError):
        await asyncio.wait_for(mux.next(), timeout=0.1)

    mux.close()
    assert mux.closed
    assert await mux.next() is END_OF_STREAMS


@pytest.mark.asyncio
async def test_no_contexts_ends_immediately() -> None:
    mux = StreamMultiplexer([], poll_interval=0.01)
    assert await mux.next() is END_OF_STREAMS


@pytest.mark.asyncio
async def test_drain_returns_buffered_lines_after_close() -> None:
    mux = StreamMultiplexer(["a", "b"], poll_interval=0.01)
    mux.queue.put_nowait(RawLine("a", "1"))
    mux.queue.put_nowait(StreamClosed("a"))
    mux.queue.put_nowait(RawLine("b", "2"))
    mux.close()

    assert await mux.next() is END_OF_STREAMS
    assert mux.drain(1.0) == [RawLine("a", "1"), RawLine("b", "2")]
    assert mux.active_contexts == frozenset({"b"})
    assert mux.drain(1.0) == []


@pytest.mark.parametrize("kwargs", [{"queue_size": 0}, {"poll_interval": 0}])
def test_rejects_bad_settings(kwargs) -> None:
    with pytest.raises(ValueError):
        StreamMultiplexer(["a"], **kwargs)
