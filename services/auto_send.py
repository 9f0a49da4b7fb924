# services/auto_send.py: monthly auto-send schedule and its guarded run
from __future__ import annotations
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from models import AutoSendConfig
from services import activity, config
from services.dorm_config import get_effective_config
from services.errors import InvalidInput
from services.invoice_lifecycle import send_pending

logger = logging.getLogger("uvicorn")
UTC = timezone.utc


def _zone(name: Optional[str]) -> ZoneInfo:
    try:
        return ZoneInfo(name or config.DEFAULT_TIMEZONE)
    except (ZoneInfoNotFoundError, ValueError):
        raise InvalidInput(f"Unknown timezone {name!r}")


def _clamp(v: Any, lo: int, hi: int, what: str) -> int:
    try:
        n = int(v)
    except (TypeError, ValueError):
        raise InvalidInput(f"Invalid {what}: {v!r}")
    return max(lo, min(hi, n))


async def get_auto_send_config() -> AutoSendConfig:
    cfg = await AutoSendConfig.all().order_by("id").first()
    if cfg is None:
        cfg = await AutoSendConfig.create(timezone=config.DEFAULT_TIMEZONE)
    return cfg


async def set_auto_send_config(data: Dict[str, Any]) -> AutoSendConfig:
    cfg = await get_auto_send_config()
    if data.get("enabled") is not None:
        cfg.enabled = bool(data["enabled"])
    if data.get("day_of_month") is not None:
        cfg.day_of_month = _clamp(data["day_of_month"], 1, 28, "day_of_month")
    if data.get("hour") is not None:
        cfg.hour = _clamp(data["hour"], 0, 23, "hour")
    if data.get("minute") is not None:
        cfg.minute = _clamp(data["minute"], 0, 59, "minute")
    if data.get("timezone"):
        _zone(data["timezone"])
        cfg.timezone = data["timezone"]
    await cfg.save()
    await activity.record("UPDATE", "AutoSendConfig", cfg.id, {
        "enabled": cfg.enabled, "day_of_month": cfg.day_of_month,
        "hour": cfg.hour, "minute": cfg.minute, "timezone": cfg.timezone,
    })
    return cfg


async def effective_day(cfg: AutoSendConfig, remote: Optional[Dict[str, Any]] = None) -> int:
    """
    The dorm monthly_due_day (clamped to 1..28) wins over the configured day.
    Read from the effective config, so a remote override moves the send day
    together with the due dates it produces.
    """
    due_day = (await get_effective_config(remote)).monthly_due_day
    if due_day:
        return max(1, min(28, int(due_day)))
    return cfg.day_of_month


def _aware(dt: Optional[datetime]) -> Optional[datetime]:
    if dt is not None and dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt


async def run_auto_send(now: Optional[datetime] = None, *, force: bool = False) -> Dict[str, Any]:
    """
    One scheduler tick. Fires when the local wall clock matches the schedule,
    unless a run was recorded less than the replay window ago.

    force=True (manual run) skips the enabled flag and the schedule match but
    still honours the replay guard.
    """
    cfg = await get_auto_send_config()
    now = _aware(now) or datetime.now(tz=UTC)

    if not cfg.enabled and not force:
        return {"ran": False, "reason": "disabled"}

    local = now.astimezone(_zone(cfg.timezone))
    if not force:
        day = await effective_day(cfg)
        if local.day != day:
            return {"ran": False, "reason": "not scheduled day"}
        if local.hour != cfg.hour:
            return {"ran": False, "reason": "not scheduled hour"}
        if local.minute != cfg.minute:
            return {"ran": False, "reason": "not scheduled minute"}

    last = _aware(cfg.last_run_at)
    window = timedelta(seconds=config.AUTO_SEND_REPLAY_WINDOW_SECONDS)
    if last is not None and abs(now - last) < window:
        return {"ran": False, "reason": "already ran recently"}

    # claim the run; a concurrent tick that read the same run_seq updates nothing
    claimed = await AutoSendConfig.filter(id=cfg.id, run_seq=cfg.run_seq).update(
        run_seq=cfg.run_seq + 1, last_run_at=now
    )
    if not claimed:
        return {"ran": False, "reason": "already ran recently"}

    try:
        stats = await send_pending(local.month, local.year)
    except Exception:
        await AutoSendConfig.filter(id=cfg.id, run_seq=cfg.run_seq + 1).update(last_run_at=cfg.last_run_at)
        raise

    logger.info(
        f"[auto-send] {local.month}/{local.year}: {stats['count']} invoice(s), "
        f"{stats['notified']} notified, {stats['failed']} failed"
    )
    return {"ran": True, "month": local.month, "year": local.year, **stats}
