# services/rates.py: utility fee policies (pure, no DB access)
from __future__ import annotations
import math
import sys
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Iterable, List, Optional, Tuple

from models import FeeMethod
from services.config import WATER_FLOOR_AMOUNT, WATER_FLOOR_UNITS

PER_UNIT = "PER_UNIT"
FLAT = "FLAT"

METER_METHODS = frozenset({
    FeeMethod.METER_USAGE,
    FeeMethod.METER_USAGE_MIN_AMOUNT,
    FeeMethod.METER_USAGE_MIN_UNITS,
    FeeMethod.METER_USAGE_PLUS_BASE,
    FeeMethod.METER_USAGE_TIERED,
})

_CENT = Decimal("0.01")
_EPSILON = sys.float_info.epsilon


def round_money(value: Any) -> float:
    """2 dp, half away from zero, nudged by epsilon so 1.005 does not land on 1.00."""
    v = float(value or 0.0)
    v = v + _EPSILON if v >= 0 else v - _EPSILON
    return float(Decimal(repr(v)).quantize(_CENT, rounding=ROUND_HALF_UP))


def _num(x: Any, default: float = 0.0) -> float:
    try:
        v = float(x)
    except (TypeError, ValueError):
        return default
    return v if math.isfinite(v) else default


# ---------------- pricing inputs ----------------
@dataclass(frozen=True)
class TierRate:
    upto_unit: Optional[float]  # None = unbounded
    unit_price: float
    charge_type: str = PER_UNIT


@dataclass(frozen=True)
class UtilityPricing:
    unit_price: float = 0.0
    flat_monthly_fee: float = 0.0
    flat_per_person_fee: float = 0.0
    min_amount: float = 0.0
    min_units: float = 0.0
    tiers: Tuple[TierRate, ...] = field(default_factory=tuple)


def parse_tiers(raw: Any) -> Tuple[TierRate, ...]:
    """
    Accepts the JSON stored on DormConfig (snake_case or camelCase keys).
    Entries that are not objects are dropped; prices are validated later.
    """
    if not isinstance(raw, (list, tuple)):
        return ()
    out: List[TierRate] = []
    for t in raw:
        if isinstance(t, TierRate):
            out.append(t)
            continue
        if not isinstance(t, dict):
            continue
        upto = t.get("upto_unit", t.get("uptoUnit"))
        price = t.get("unit_price", t.get("unitPrice"))
        ctype = t.get("charge_type", t.get("chargeType")) or PER_UNIT
        out.append(TierRate(
            upto_unit=None if upto is None else _num(upto, default=math.nan),
            unit_price=_num(price),
            charge_type=FLAT if str(ctype).upper() == FLAT else PER_UNIT,
        ))
    return tuple(out)


# ---------------- tiered evaluation ----------------
def _ordered_tiers(tiers: Iterable[TierRate]) -> List[TierRate]:
    normalized: List[TierRate] = []
    for t in tiers:
        price = max(0.0, _num(t.unit_price))
        if price <= 0:
            continue
        upto = t.upto_unit
        if upto is None or not math.isfinite(upto) or upto <= 0:
            upto = None
        normalized.append(TierRate(upto, price, FLAT if t.charge_type == FLAT else PER_UNIT))
    finite = sorted((t for t in normalized if t.upto_unit is not None), key=lambda t: t.upto_unit)
    unbounded = [t for t in normalized if t.upto_unit is None]
    return finite + unbounded


def tiered_bands(usage: float, tiers: Iterable[TierRate]) -> List[Tuple[TierRate, float, float]]:
    """Per-band allocation: [(tier, units_in_band, charge)]."""
    remaining = max(0.0, _num(usage))
    previous_upto = 0.0
    bands: List[Tuple[TierRate, float, float]] = []
    for tier in _ordered_tiers(tiers):
        if remaining <= 0:
            break
        if tier.upto_unit is None:
            units = remaining
        else:
            units = min(remaining, max(0.0, tier.upto_unit - previous_upto))
        if tier.charge_type == FLAT:
            charge = tier.unit_price if units > 0 else 0.0
        else:
            charge = units * tier.unit_price
        bands.append((tier, units, charge))
        remaining -= units
        if tier.upto_unit is not None:
            previous_upto = tier.upto_unit
    return bands


def tiered_amount(usage: float, tiers: Tuple[TierRate, ...], fallback_unit_price: float) -> float:
    if not tiers:
        return max(0.0, _num(usage)) * fallback_unit_price
    return sum(charge for _, _, charge in tiered_bands(usage, tiers))


# ---------------- policies ----------------
def compute_fee(
    method: FeeMethod | str,
    usage: float,
    pricing: UtilityPricing,
    override: Optional[float] = None,
    occupant_count: int = 1,
) -> float:
    method = FeeMethod(method)
    usage = max(0.0, _num(usage))
    override_price = max(0.0, _num(override))
    unit = override_price if override_price > 0 else max(0.0, _num(pricing.unit_price))
    min_amount = max(0.0, _num(pricing.min_amount))
    min_units = max(0.0, _num(pricing.min_units))

    if method is FeeMethod.FLAT_MONTHLY:
        amount = override_price if override_price > 0 else _num(pricing.flat_monthly_fee)
    elif method is FeeMethod.FLAT_PER_PERSON:
        amount = _num(pricing.flat_per_person_fee) * max(1, int(_num(occupant_count, 1)))
    elif method is FeeMethod.METER_USAGE_MIN_AMOUNT:
        amount = max(usage * unit, min_amount)
    elif method is FeeMethod.METER_USAGE_MIN_UNITS:
        amount = min_amount if usage <= min_units else usage * unit
    elif method is FeeMethod.METER_USAGE_PLUS_BASE:
        amount = min_amount if usage <= min_units else min_amount + (usage - min_units) * unit
    elif method is FeeMethod.METER_USAGE_TIERED:
        amount = tiered_amount(usage, pricing.tiers, unit)
    else:
        amount = usage * unit
    return round_money(max(0.0, amount))


def compute_water_fee(
    method: FeeMethod | str,
    usage: float,
    pricing: UtilityPricing,
    override: Optional[float] = None,
    occupant_count: int = 1,
) -> float:
    method = FeeMethod(method)
    amount = compute_fee(method, usage, pricing, override, occupant_count)
    if method in METER_METHODS and max(0.0, _num(usage)) < WATER_FLOOR_UNITS:
        amount = WATER_FLOOR_AMOUNT
    return round_money(amount)


def compute_electric_fee(
    method: FeeMethod | str,
    usage: float,
    pricing: UtilityPricing,
    override: Optional[float] = None,
) -> float:
    method = FeeMethod(method)
    # per-person pricing only exists for water
    if method is FeeMethod.FLAT_PER_PERSON:
        method = FeeMethod.METER_USAGE
    return compute_fee(method, usage, pricing, override)
