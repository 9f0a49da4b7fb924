# services/invoice_generator.py: monthly invoice from contract + meter delta + dorm config
from __future__ import annotations
import calendar
from datetime import date
from typing import Any, Dict, Optional, Tuple

from tortoise.exceptions import IntegrityError

from models import Invoice, InvoiceStatus, MeterReading, Room
from services import activity, config
from services.contracts import active_contract_for_room
from services.dorm_config import get_effective_config
from services.errors import Conflict, InvalidInput, NotFound
from services.rates import compute_electric_fee, compute_water_fee, round_money


def validate_period(month: Any, year: Any) -> Tuple[int, int]:
    try:
        m, y = int(month), int(year)
    except (TypeError, ValueError):
        raise InvalidInput(f"Invalid billing period {month}/{year}")
    if not 1 <= m <= 12 or not 1900 <= y <= 9999:
        raise InvalidInput(f"Invalid billing period {month}/{year}")
    return m, y


def previous_period(month: int, year: int) -> Tuple[int, int]:
    if month == 1:
        return 12, year - 1
    return month - 1, year


def due_date_for(year: int, month: int, due_day: Optional[int]) -> date:
    day = config.DEFAULT_DUE_DAY if due_day is None else int(due_day)
    day = max(1, min(31, day))
    last = calendar.monthrange(year, month)[1]
    return date(year, month, min(day, last))


async def _reading(room_id: int, month: int, year: int) -> Optional[MeterReading]:
    return await MeterReading.get_or_none(room_id=room_id, month=month, year=year, is_deleted=False)


async def generate_invoice(room_id: int, month: int, year: int, *, remote: Optional[Dict[str, Any]] = None) -> Invoice:
    """
    Create the DRAFT invoice for (room's active contract, month, year).

    `remote` short-circuits the remote override fetch (tests, batch runs that
    fetched once).
    """
    month, year = validate_period(month, year)

    contract = await active_contract_for_room(room_id)
    if not contract:
        raise NotFound("Active contract not found for this room")

    current = await _reading(room_id, month, year)
    if not current:
        raise InvalidInput(f"Meter reading for {month}/{year} not found")

    prev = await _reading(room_id, *previous_period(month, year))
    water_usage = max(0.0, current.water_reading - prev.water_reading) if prev else 0.0
    electric_usage = max(0.0, current.electric_reading - prev.electric_reading) if prev else 0.0

    if await Invoice.exists(contract_id=contract.id, month=month, year=year):
        raise Conflict("Invoice already exists for this period")

    cfg = await get_effective_config(remote)
    room = await Room.get(id=room_id)

    water_amount = compute_water_fee(
        cfg.water_method, water_usage, cfg.water,
        override=room.water_override_amount, occupant_count=contract.occupant_count,
    )
    electric_amount = compute_electric_fee(
        cfg.electric_method, electric_usage, cfg.electric, override=room.electric_override_amount,
    )
    rent_amount = round_money(contract.current_rent)
    other_fees = round_money(cfg.common_fee)
    total_amount = round_money(rent_amount + water_amount + electric_amount + other_fees)

    try:
        invoice = await Invoice.create(
            contract_id=contract.id,
            month=month,
            year=year,
            rent_amount=rent_amount,
            water_amount=water_amount,
            electric_amount=electric_amount,
            other_fees=other_fees,
            discount=0.0,
            total_amount=total_amount,
            water_usage=water_usage,
            electric_usage=electric_usage,
            status=InvoiceStatus.DRAFT,
            due_date=due_date_for(year, month, cfg.monthly_due_day),
        )
    except IntegrityError:
        # lost a race with a concurrent generate for the same period
        raise Conflict("Invoice already exists for this period")

    await activity.record("GENERATE", "Invoice", invoice.id, {
        "contract_id": contract.id, "room_id": room_id, "month": month, "year": year,
        "water_usage": water_usage, "electric_usage": electric_usage, "total_amount": total_amount,
    })
    return invoice
