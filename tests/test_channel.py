import asyncio

import pytest

from proxy_bench.channel import LatencyChannel


@pytest.mark.asyncio
async def test_drain_after_all_senders_released():
    channel = LatencyChannel()
    root = channel.sender()
    a, b = root.clone(), root.clone()
    await a.put(1)
    await b.put(2)
    await a.put(3)
    a.release()
    b.release()
    assert not channel.closed
    root.release()
    assert channel.closed
    assert sorted(await channel.drain()) == [1, 2, 3]


@pytest.mark.asyncio
async def test_consumer_waits_for_last_sender():
    channel = LatencyChannel()
    root = channel.sender()
    worker = root.clone()
    consumer = asyncio.create_task(channel.drain())

    await worker.put(7)
    worker.release()
    await asyncio.sleep(0.05)
    assert not consumer.done()

    root.release()
    assert await asyncio.wait_for(consumer, timeout=1) == [7]


@pytest.mark.asyncio
async def test_released_sender_rejects_put():
    channel = LatencyChannel()
    with channel.sender() as sender:
        await sender.put(1)
    assert sender.released
    sender.release()
    with pytest.raises(RuntimeError):
        await sender.put(2)
    with pytest.raises(RuntimeError):
        channel.sender()
    assert await channel.drain() == [1]
