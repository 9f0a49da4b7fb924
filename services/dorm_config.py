# services/dorm_config.py: local DormConfig + optional remote override -> typed config
from __future__ import annotations
import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

from models import DormConfig, FeeMethod, Room
from services import activity, config
from services.errors import NotFound
from services.rates import UtilityPricing, parse_tiers

logger = logging.getLogger("uvicorn")


@dataclass(frozen=True)
class EffectiveDormConfig:
    water_method: FeeMethod
    water: UtilityPricing
    electric_method: FeeMethod
    electric: UtilityPricing
    common_fee: float
    monthly_due_day: Optional[int]
    bank_account: Optional[str]


# numeric fields a remote document may supersede, with built-in defaults
NUMERIC_DEFAULTS: Dict[str, Optional[float]] = {
    "water_unit_price": config.DEFAULT_WATER_UNIT_PRICE,
    "water_flat_monthly_fee": 0.0,
    "water_flat_per_person_fee": 0.0,
    "water_min_amount": 0.0,
    "water_min_units": 0.0,
    "electric_unit_price": config.DEFAULT_ELECTRIC_UNIT_PRICE,
    "electric_flat_monthly_fee": 0.0,
    "electric_min_amount": 0.0,
    "electric_min_units": 0.0,
    "common_fee": config.DEFAULT_COMMON_FEE,
    "monthly_due_day": None,
}


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(p.capitalize() for p in rest)


def _finite(v: Any) -> Optional[float]:
    if v is None or isinstance(v, bool):
        return None
    try:
        f = float(v)
    except (TypeError, ValueError):
        return None
    return f if math.isfinite(f) else None


def _remote_value(remote: Dict[str, Any], name: str) -> Any:
    for key in (name, _camel(name)):
        if remote.get(key) is not None:
            return remote[key]
    return None


def _coalesce_num(remote: Dict[str, Any], local: Optional[DormConfig], name: str) -> Optional[float]:
    for candidate in (_remote_value(remote, name), getattr(local, name, None) if local else None):
        v = _finite(candidate)
        if v is not None:
            return v
    return NUMERIC_DEFAULTS[name]


def _method(local: Optional[DormConfig], name: str) -> FeeMethod:
    raw = getattr(local, name, None) if local else None
    try:
        return FeeMethod(raw) if raw is not None else FeeMethod.METER_USAGE
    except ValueError:
        return FeeMethod.METER_USAGE


def merge_config(local: Optional[DormConfig], remote: Optional[Dict[str, Any]] = None) -> EffectiveDormConfig:
    """Field-level coalesce(remote, local, default) into a typed config."""
    remote = remote or {}
    n = {name: _coalesce_num(remote, local, name) for name in NUMERIC_DEFAULTS}
    due_day = n["monthly_due_day"]
    return EffectiveDormConfig(
        water_method=_method(local, "water_fee_method"),
        water=UtilityPricing(
            unit_price=n["water_unit_price"],
            flat_monthly_fee=n["water_flat_monthly_fee"],
            flat_per_person_fee=n["water_flat_per_person_fee"],
            min_amount=n["water_min_amount"],
            min_units=n["water_min_units"],
            tiers=parse_tiers(getattr(local, "water_tiered_rates", None) if local else None),
        ),
        electric_method=_method(local, "electric_fee_method"),
        electric=UtilityPricing(
            unit_price=n["electric_unit_price"],
            flat_monthly_fee=n["electric_flat_monthly_fee"],
            min_amount=n["electric_min_amount"],
            min_units=n["electric_min_units"],
            tiers=parse_tiers(getattr(local, "electric_tiered_rates", None) if local else None),
        ),
        common_fee=n["common_fee"],
        monthly_due_day=int(due_day) if due_day is not None else None,
        bank_account=local.bank_account if local else None,
    )


async def fetch_remote_override(
    url: Optional[str] = None,
    *,
    timeout: Optional[float] = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> Dict[str, Any]:
    """Best effort: any failure means 'no override'."""
    url = config.RATE_OVERRIDE_URL if url is None else url
    if not url:
        return {}
    try:
        async with httpx.AsyncClient(timeout=timeout or config.RATE_OVERRIDE_TIMEOUT, transport=transport) as client:
            resp = await client.get(url)
            resp.raise_for_status()
            data = resp.json()
    except (httpx.HTTPError, ValueError) as e:
        logger.warning(f"[rates] remote override unavailable, using local config: {e}")
        return {}
    if not isinstance(data, dict):
        logger.warning(f"[rates] remote override ignored: expected an object, got {type(data).__name__}")
        return {}
    return data


async def get_dorm_config() -> Optional[DormConfig]:
    return await DormConfig.all().order_by("-updated_at").first()


async def get_effective_config(remote: Optional[Dict[str, Any]] = None) -> EffectiveDormConfig:
    local = await get_dorm_config()
    if remote is None:
        remote = await fetch_remote_override()
    return merge_config(local, remote)


async def ensure_dorm_config() -> DormConfig:
    cfg = await get_dorm_config()
    if cfg:
        return cfg
    return await DormConfig.create(
        water_unit_price=config.DEFAULT_WATER_UNIT_PRICE,
        electric_unit_price=config.DEFAULT_ELECTRIC_UNIT_PRICE,
        common_fee=config.DEFAULT_COMMON_FEE,
    )


async def update_dorm_config(data: Dict[str, Any]) -> DormConfig:
    cfg = await ensure_dorm_config()
    for k, v in data.items():
        setattr(cfg, k, v)
    await cfg.save()
    await activity.record("UPDATE", "DormConfig", cfg.id, data)
    return cfg


async def set_room_override(room_id: int, *, water: Optional[float], electric: Optional[float]) -> Room:
    room = await Room.get_or_none(id=room_id)
    if not room:
        raise NotFound("Room not found")
    room.water_override_amount = water
    room.electric_override_amount = electric
    await room.save()
    await activity.record("UPDATE", "Room", room.id, {"water_override_amount": water, "electric_override_amount": electric})
    return room
