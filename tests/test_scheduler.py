# tests/test_scheduler.py - in-process job timing

import asyncio
from datetime import datetime, timedelta, timezone

from scheduler import Scheduler

UTC = timezone.utc
T0 = datetime(2025, 3, 1, 0, 0, 30, tzinfo=UTC)


class TestEvery:
    async def test_aligned_and_anchored(self):
        calls = []

        async def job():
            calls.append(1)

        sched = Scheduler()
        j = sched.every(60, job, align=True, now=T0)
        assert j.next_run == datetime(2025, 3, 1, 0, 1, tzinfo=UTC)

        assert sched.tick(T0 + timedelta(seconds=29)) == []
        await asyncio.gather(*sched.tick(datetime(2025, 3, 1, 0, 1, 0, 500000, tzinfo=UTC)))
        assert calls == [1]
        assert j.next_run == datetime(2025, 3, 1, 0, 2, tzinfo=UTC)

        # missed slots collapse into one run, schedule stays on the minute
        await asyncio.gather(*sched.tick(datetime(2025, 3, 1, 0, 5, 10, tzinfo=UTC)))
        assert calls == [1, 1]
        assert j.next_run == datetime(2025, 3, 1, 0, 6, tzinfo=UTC)

    async def test_overlapping_run_skipped(self):
        gate = asyncio.Event()
        started = []

        async def slow():
            started.append(1)
            await gate.wait()

        sched = Scheduler()
        sched.every(1, slow, now=T0)
        first = sched.tick(T0)
        await asyncio.sleep(0)
        assert sched.tick(T0 + timedelta(seconds=5)) == []
        gate.set()
        await asyncio.gather(*first)
        assert started == [1]

    async def test_failure_is_contained(self):
        async def broken():
            raise ValueError("nope")

        sched = Scheduler()
        sched.every(60, broken, now=T0)
        results = await asyncio.gather(*sched.tick(T0))
        assert results == [None]

    async def test_args_passed(self):
        seen = []

        async def job(a, b=None):
            seen.append((a, b))

        sched = Scheduler()
        sched.every(60, job, 1, b=2, now=T0)
        await asyncio.gather(*sched.tick(T0))
        assert seen == [(1, 2)]


class TestDaily:
    async def test_local_time(self):
        calls = []

        async def sweep():
            calls.append(1)

        sched = Scheduler()
        # 07:00 in Bangkok, so the first 00:15 is the next local day
        j = sched.daily(0, 15, "Asia/Bangkok", sweep, now=datetime(2025, 3, 1, 0, 0, tzinfo=UTC))
        assert j.next_run == datetime(2025, 3, 1, 17, 15, tzinfo=UTC)

        await asyncio.gather(*sched.tick(datetime(2025, 3, 1, 17, 15, 0, 400000, tzinfo=UTC)))
        assert calls == [1]
        assert j.next_run == datetime(2025, 3, 2, 17, 15, tzinfo=UTC)
