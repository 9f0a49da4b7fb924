# services/notifications.py: build tenant notices and record delivery outcomes
from __future__ import annotations
import logging
from datetime import datetime
from typing import Awaitable, Callable, Optional

from integration.notifier import BillingNotice, PaymentRejectedNotice, SettlementNotice, get_dispatcher
from models import Invoice, InvoiceItem, NotificationLog
from services.dorm_config import get_dorm_config
from services.rates import round_money

logger = logging.getLogger("uvicorn")


async def bank_instruction() -> Optional[str]:
    cfg = await get_dorm_config()
    if cfg and cfg.bank_account:
        return f"Transfer to account {cfg.bank_account} only"
    return None


def _building_label(room) -> Optional[str]:
    building = getattr(room, "building", None)
    if building is None:
        return None
    return getattr(building, "name", None) or getattr(building, "code", None)


async def _items_total(invoice_id) -> float:
    amounts = await InvoiceItem.filter(invoice_id=invoice_id, is_deleted=False).values_list("amount", flat=True)
    return round_money(sum(amounts))


async def _dispatch(kind: str, channel_id: str, invoice: Invoice, send: Callable[[], Awaitable[bool]]) -> bool:
    error = None
    try:
        delivered = bool(await send())
        if not delivered:
            error = "delivery rejected by channel"
    except Exception as e:
        delivered = False
        error = str(e)[:1024] or e.__class__.__name__
    if not delivered:
        logger.warning(f"[notify] {kind} for invoice {invoice.id} -> {channel_id} failed: {error}")
    try:
        await NotificationLog.create(
            kind=kind, channel_id=channel_id, invoice_id=invoice.id, delivered=delivered, error=error
        )
    except Exception as e:
        logger.warning(f"[notify] could not record {kind} outcome for invoice {invoice.id}: {e}")
    return delivered


async def notify_billing(invoice: Invoice, bank_note: Optional[str]) -> Optional[bool]:
    """
    Push the bill for an invoice loaded with contract__tenant and contract__room__building.
    Returns None when the tenant has no linked channel.
    """
    contract = invoice.contract
    tenant = contract.tenant
    room = contract.room
    if not tenant or not tenant.channel_id or not room or not room.number:
        return None
    notice = BillingNotice(
        room=room.number,
        month=invoice.month,
        year=invoice.year,
        rent_amount=invoice.rent_amount,
        water_amount=invoice.water_amount,
        electric_amount=invoice.electric_amount,
        other_fees=invoice.other_fees or 0.0,
        items_total=await _items_total(invoice.id),
        discount=invoice.discount or 0.0,
        total_amount=invoice.total_amount,
        due_date=invoice.due_date,
        building_label=_building_label(room),
        bank_instruction=bank_note,
    )
    dispatcher = get_dispatcher()
    return await _dispatch("BILLING", tenant.channel_id, invoice,
                           lambda: dispatcher.send_billing_notice(tenant.channel_id, notice))


async def notify_settlement(
    invoice: Invoice,
    *,
    method: str,
    amount: float,
    paid_at: datetime,
    remaining_deposit: Optional[float] = None,
) -> Optional[bool]:
    contract = invoice.contract
    tenant = contract.tenant
    room = contract.room
    if not tenant or not tenant.channel_id:
        return None
    notice = SettlementNotice(
        room=room.number if room else "",
        month=invoice.month,
        year=invoice.year,
        amount=amount,
        method=method,
        paid_at=paid_at,
        remaining_deposit=remaining_deposit,
    )
    dispatcher = get_dispatcher()
    return await _dispatch("SETTLEMENT", tenant.channel_id, invoice,
                           lambda: dispatcher.send_settlement_notice(tenant.channel_id, notice))


async def notify_payment_rejected(invoice: Invoice, *, amount: float, reference: str) -> Optional[bool]:
    contract = invoice.contract
    tenant = contract.tenant
    room = contract.room
    if not tenant or not tenant.channel_id:
        return None
    notice = PaymentRejectedNotice(
        room=room.number if room else "",
        month=invoice.month,
        year=invoice.year,
        amount=amount,
        reference=reference,
    )
    dispatcher = get_dispatcher()
    return await _dispatch("REJECTED", tenant.channel_id, invoice,
                           lambda: dispatcher.send_payment_rejected_notice(tenant.channel_id, notice))
