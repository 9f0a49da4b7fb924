import asyncio
import logging
from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

UTC = timezone.utc
logger = logging.getLogger("uvicorn")


class Job:
    def __init__(self, name, coro, args, kwargs, next_run, interval=None, daily=None):
        self.name = name
        self.coro = coro
        self.args = args
        self.kwargs = kwargs
        self.next_run = next_run
        self.interval = interval    # seconds, for every()
        self.daily = daily          # (hour, minute, ZoneInfo), for daily()
        self.last_run = None
        self.task = None

    def running(self) -> bool:
        return self.task is not None and not self.task.done()


def _next_daily(after: datetime, hour: int, minute: int, tz: ZoneInfo) -> datetime:
    local = after.astimezone(tz)
    target = local.replace(hour=hour, minute=minute, second=0, microsecond=0)
    if target <= local:
        target = (local + timedelta(days=1)).replace(hour=hour, minute=minute, second=0, microsecond=0)
    return target.astimezone(UTC)


class Scheduler:
    """
    Minimal in-process scheduler (cron-like).
    Usage:
        sched = Scheduler()
        sched.every(60, coro, arg1, arg2=..., align=True)
        sched.daily(0, 15, "Asia/Bangkok", coro)
        await sched.run_forever()

    A job whose previous run is still in flight is skipped for that slot.
    Failures are logged; the loop never stops on a job error.
    """
    def __init__(self):
        self.jobs = []

    def every(self, seconds: int, coro, *args, name=None, align=False, now=None, **kwargs):
        """align=True fires on multiples of `seconds` since the epoch (e.g. on the minute)."""
        now = now or datetime.now(tz=UTC)
        if align:
            ts = now.timestamp()
            first = datetime.fromtimestamp(ts - ts % seconds + seconds, tz=UTC)
        else:
            first = now
        job = Job(name or coro.__name__, coro, args, kwargs, first, interval=seconds)
        self.jobs.append(job)
        return job

    def daily(self, hour: int, minute: int, tz: str, coro, *args, name=None, now=None, **kwargs):
        """Once per local day at hour:minute in tz."""
        zone = ZoneInfo(tz)
        now = now or datetime.now(tz=UTC)
        first = _next_daily(now, hour, minute, zone)
        job = Job(name or coro.__name__, coro, args, kwargs, first, daily=(hour, minute, zone))
        self.jobs.append(job)
        return job

    async def run_job(self, job: Job):
        try:
            await job.coro(*job.args, **job.kwargs)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"[scheduler] job {job.name} failed: {e!r}")

    def _advance(self, job: Job, now: datetime):
        if job.interval:
            # anchored on the schedule, not on when the tick happened
            while job.next_run <= now:
                job.next_run += timedelta(seconds=job.interval)
        else:
            hour, minute, zone = job.daily
            job.next_run = _next_daily(now, hour, minute, zone)

    def tick(self, now=None):
        """Start every due job; returns the tasks created."""
        now = now or datetime.now(tz=UTC)
        started = []
        for job in self.jobs:
            if job.next_run > now:
                continue
            if job.running():
                logger.warning(f"[scheduler] job {job.name} still running, skipping this slot")
            else:
                job.task = asyncio.create_task(self.run_job(job))
                job.last_run = now
                started.append(job.task)
            self._advance(job, now)
        return started

    async def shutdown(self):
        tasks = [j.task for j in self.jobs if j.running()]
        for t in tasks:
            t.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    async def run_forever(self):
        try:
            while True:
                self.tick()
                await asyncio.sleep(1)
        finally:
            await self.shutdown()
