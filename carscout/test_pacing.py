"""
Tests for the pacing primitive.
"""
import asyncio
import random

import pytest

from carscout.pacing import Pacer, random_sleep


class RecordingSleep:
    def __init__(self):
        self.calls = []

    async def __call__(self, seconds):
        self.calls.append(seconds)


def test_pause_stays_within_bounds():
    sleep = RecordingSleep()
    pacer = Pacer(2, 8, sleep=sleep, rng=random.Random(7))

    async def run():
        return [await pacer.pause() for _ in range(50)]

    delays = asyncio.run(run())
    assert all(2 <= d <= 8 for d in delays)
    assert sleep.calls == delays
    assert pacer.total_slept == pytest.approx(sum(delays))


def test_pause_accepts_per_call_bounds():
    sleep = RecordingSleep()
    pacer = Pacer(sleep=sleep, rng=random.Random(1))
    delay = asyncio.run(pacer.pause(0.2, 0.4))
    assert 0.2 <= delay <= 0.4


def test_disabled_pacer_never_sleeps():
    sleep = RecordingSleep()
    pacer = Pacer(enabled=False, sleep=sleep)

    async def run():
        await pacer.pause()
        await pacer.wait(5)

    asyncio.run(run())
    assert sleep.calls == []
    assert pacer.total_slept == 0


def test_wait_sleeps_fixed_amount():
    sleep = RecordingSleep()
    pacer = Pacer(sleep=sleep)
    asyncio.run(pacer.wait(4))
    asyncio.run(pacer.wait(0))
    assert sleep.calls == [4]


@pytest.mark.parametrize("lo,hi", [(-1, 2), (5, 2)])
def test_invalid_bounds_are_rejected(lo, hi):
    with pytest.raises(ValueError):
        Pacer(lo, hi)


def test_random_sleep_returns_delay_in_range():
    delay = asyncio.run(random_sleep(0.02, 0.01))
    assert 0.01 <= delay <= 0.02
