import asyncio

import pytest

from regpoll.common.scheduler import ScheduledLoop


def test_rejects_non_positive_interval():
    with pytest.raises(ValueError):
        ScheduledLoop(0, lambda: None)


async def test_first_run_is_immediate():
    calls = []

    async def tick():
        calls.append(asyncio.get_running_loop().time())

    loop = ScheduledLoop(10, tick, name="test")
    await loop.start()
    await asyncio.sleep(0.02)
    loop.stop()
    await loop.join()

    assert len(calls) == 1
    assert loop.execution_count == 1
    assert not loop.is_running


async def test_stop_interrupts_pending_sleep():
    async def tick():
        pass

    loop = ScheduledLoop(60, tick)
    await loop.start()
    await asyncio.sleep(0.01)

    loop.stop()
    await asyncio.wait_for(loop.join(), timeout=0.5)


async def test_callback_errors_do_not_stop_the_loop():
    calls = 0

    async def tick():
        nonlocal calls
        calls += 1
        raise RuntimeError("device table corrupt")

    loop = ScheduledLoop(0.02, tick)
    await loop.start()
    await asyncio.sleep(0.09)
    loop.stop()
    await loop.join()

    assert calls >= 3
    assert loop.execution_count == 0


async def test_overrunning_callback_skips_intervals():
    async def slow():
        await asyncio.sleep(0.05)

    loop = ScheduledLoop(0.01, slow)
    await loop.start()
    await asyncio.sleep(0.12)
    loop.stop()
    await loop.join()

    stats = loop.get_stats()
    assert stats["skipped_count"] >= 1
    assert stats["running"] is False
    assert stats["execution_count"] == loop.execution_count


async def test_start_is_idempotent():
    calls = 0

    async def tick():
        nonlocal calls
        calls += 1

    loop = ScheduledLoop(10, tick)
    await loop.start()
    await loop.start()
    await asyncio.sleep(0.02)
    loop.stop()
    loop.stop()
    await loop.join()

    assert calls == 1
