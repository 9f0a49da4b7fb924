# services/invoice_lifecycle.py: status transitions, settlement, line items, totals
from __future__ import annotations
import logging
import uuid
from datetime import date, datetime, timezone
from typing import Any, Dict, Iterable, List, Optional
from zoneinfo import ZoneInfo

from tortoise.exceptions import IntegrityError
from tortoise.transactions import in_transaction

from models import Contract, Invoice, InvoiceItem, InvoiceStatus, Payment, PaymentStatus
from services import activity, config
from services.errors import Conflict, InsufficientFunds, InvalidInput, InvalidTransition, NotFound
from services.invoice_generator import validate_period
from services.locks import contract_lock, invoice_lock
from services.notifications import bank_instruction, notify_billing, notify_payment_rejected, notify_settlement
from services.rates import round_money

logger = logging.getLogger("uvicorn")
UTC = timezone.utc

TERMINAL = {InvoiceStatus.PAID, InvoiceStatus.CANCELLED}
SENDABLE = [InvoiceStatus.DRAFT, InvoiceStatus.SENT, InvoiceStatus.OVERDUE]
SETTLE_METHODS = ("DEPOSIT", "CASH")
DELETED_PREFIX = "[DELETED] "
DESCRIPTION_MAX = 200
EDITABLE_FIELDS = ("rent_amount", "water_amount", "electric_amount", "other_fees", "discount", "due_date")
RELATIONS = ("contract__tenant", "contract__room__building")


def _as_uuid(value: Any) -> Optional[uuid.UUID]:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError):
        return None


def _require_uuid(value: Any, what: str = "Invoice") -> uuid.UUID:
    parsed = _as_uuid(value)
    if parsed is None:
        raise NotFound(f"{what} not found")
    return parsed


def compute_total(
    rent_amount: float,
    water_amount: float,
    electric_amount: float,
    other_fees: float,
    items_total: float,
    discount: float,
) -> float:
    total = round_money(
        (rent_amount or 0) + (water_amount or 0) + (electric_amount or 0)
        + (other_fees or 0) + (items_total or 0) - (discount or 0)
    )
    return max(0.0, total)


async def _recompute_total(invoice: Invoice) -> float:
    """Caller holds the invoice lock and an open transaction."""
    amounts = await InvoiceItem.filter(invoice_id=invoice.id, is_deleted=False).values_list("amount", flat=True)
    invoice.total_amount = compute_total(
        invoice.rent_amount, invoice.water_amount, invoice.electric_amount,
        invoice.other_fees, sum(amounts), invoice.discount,
    )
    await invoice.save(update_fields=["total_amount", "updated_at"])
    return invoice.total_amount


async def _locked(invoice_id: uuid.UUID) -> Optional[Invoice]:
    return await Invoice.filter(id=invoice_id).select_for_update().first()


def _ensure_mutable(invoice: Invoice) -> None:
    if invoice.status in TERMINAL:
        raise InvalidTransition(f"Invoice is {invoice.status.value}; amounts can no longer change")


def _clean_description(text: Any) -> str:
    return str(text or "").strip()[:DESCRIPTION_MAX]


# ---------------- read ----------------
async def get_invoice(invoice_id: Any) -> Invoice:
    iid = _require_uuid(invoice_id)
    invoice = await Invoice.filter(id=iid).prefetch_related(*RELATIONS, "items", "payments").first()
    if not invoice:
        raise NotFound("Invoice not found")
    return invoice


# ---------------- create / update ----------------
async def create_invoice(data: Dict[str, Any]) -> Invoice:
    month, year = validate_period(data.get("month"), data.get("year"))
    contract = await Contract.get_or_none(id=data.get("contract_id"))
    if not contract:
        raise NotFound("Contract not found")
    amounts = {k: round_money(data.get(k) or 0) for k in ("rent_amount", "water_amount", "electric_amount", "other_fees", "discount")}
    total = compute_total(items_total=0.0, **amounts)
    try:
        invoice = await Invoice.create(
            contract_id=contract.id,
            month=month,
            year=year,
            due_date=data.get("due_date"),
            total_amount=total,
            status=InvoiceStatus.DRAFT,
            **amounts,
        )
    except IntegrityError:
        raise Conflict("Invoice already exists for this period")
    await activity.record("CREATE", "Invoice", invoice.id, {"contract_id": contract.id, "month": month, "year": year})
    return invoice


async def update_invoice(invoice_id: Any, data: Dict[str, Any]) -> Invoice:
    iid = _require_uuid(invoice_id)
    changes = {k: v for k, v in data.items() if k in EDITABLE_FIELDS}
    async with invoice_lock(iid):
        async with in_transaction():
            invoice = await _locked(iid)
            if not invoice:
                raise NotFound("Invoice not found")
            _ensure_mutable(invoice)
            for k, v in changes.items():
                if k == "due_date":
                    invoice.due_date = v
                else:
                    setattr(invoice, k, round_money(v or 0))
            await invoice.save()
            await _recompute_total(invoice)
    await activity.record("UPDATE", "Invoice", iid, changes)
    return invoice


# ---------------- cancel / remove ----------------
async def _cancel(invoice_id: Any, action: str) -> Optional[Invoice]:
    iid = _as_uuid(invoice_id)
    if iid is None:
        return None
    async with invoice_lock(iid):
        async with in_transaction():
            invoice = await _locked(iid)
            if not invoice or invoice.status is InvoiceStatus.CANCELLED:
                return invoice
            if invoice.status is InvoiceStatus.PAID:
                raise InvalidTransition("Paid invoices cannot be cancelled")
            prev_status = invoice.status
            invoice.status = InvoiceStatus.CANCELLED
            await invoice.save(update_fields=["status", "updated_at"])
    await activity.record(action, "Invoice", iid, {"prev_status": prev_status.value})
    return invoice


async def cancel_invoice(invoice_id: Any) -> Optional[Invoice]:
    """Idempotent: missing or already cancelled invoices are a no-op."""
    return await _cancel(invoice_id, "CANCEL")


async def remove_invoice(invoice_id: Any) -> Optional[Invoice]:
    """Soft delete; same transition as cancel, logged as a deletion."""
    return await _cancel(invoice_id, "DELETE")


# ---------------- settlement ----------------
async def settle_invoice(invoice_id: Any, method: str, paid_at: Optional[datetime] = None) -> Invoice:
    method = str(method or "").upper()
    if method not in SETTLE_METHODS:
        raise InvalidInput(f"Unsupported settlement method {method!r}")
    iid = _require_uuid(invoice_id)

    async with invoice_lock(iid):
        contract_id = await Invoice.filter(id=iid).first().values_list("contract_id", flat=True)
        if contract_id is None:
            raise NotFound("Invoice not found")
        async with contract_lock(contract_id):
            async with in_transaction():
                invoice = await _locked(iid)
                if invoice.status in TERMINAL:
                    raise InvalidTransition(f"Invoice is already {invoice.status.value}")
                amount = max(0.0, round_money(invoice.total_amount))
                remaining_deposit = None
                when = paid_at or datetime.now(tz=UTC)

                if amount > 0:
                    contract = await Contract.filter(id=invoice.contract_id).select_for_update().first()
                    if method == "DEPOSIT":
                        balance = max(0.0, contract.deposit or 0.0)
                        if balance < amount:
                            raise InsufficientFunds("Insufficient deposit to settle invoice")
                        contract.deposit = round_money(max(0.0, balance - amount))
                        await contract.save(update_fields=["deposit", "updated_at"])
                        remaining_deposit = contract.deposit
                    await Payment.create(
                        invoice_id=invoice.id,
                        amount=amount,
                        source=method,
                        status=PaymentStatus.VERIFIED,
                        paid_at=when,
                    )
                invoice.status = InvoiceStatus.PAID
                await invoice.save(update_fields=["status", "updated_at"])

    await activity.record("SETTLE", "Invoice", iid, {"method": method, "amount": amount, "remaining_deposit": remaining_deposit})
    if amount > 0:
        await invoice.fetch_related(*RELATIONS)
        await notify_settlement(invoice, method=method, amount=amount, paid_at=when, remaining_deposit=remaining_deposit)
    return invoice


# ---------------- transfer payments ----------------
async def _payment(payment_id: Any, invoice_id: Any = None) -> Payment:
    pid = _require_uuid(payment_id, "Payment")
    payment = await Payment.get_or_none(id=pid)
    if not payment or (invoice_id is not None and _as_uuid(invoice_id) != payment.invoice_id):
        raise NotFound("Payment not found")
    return payment


async def record_payment(invoice_id: Any, amount: float, reference: str, paid_at: Optional[datetime] = None) -> Payment:
    """A tenant-reported transfer; stays PENDING until staff verify or reject it."""
    iid = _require_uuid(invoice_id)
    reference = str(reference or "").strip()[:128]
    if not reference:
        raise InvalidInput("Payment reference is required")
    amount = round_money(amount or 0)
    if amount <= 0:
        raise InvalidInput("Payment amount must be positive")
    async with invoice_lock(iid):
        async with in_transaction():
            invoice = await _locked(iid)
            if not invoice:
                raise NotFound("Invoice not found")
            if invoice.status in TERMINAL:
                raise InvalidTransition(f"Invoice is {invoice.status.value}; no payment expected")
            payment = await Payment.create(
                invoice_id=iid,
                amount=amount,
                source=reference,
                status=PaymentStatus.PENDING,
                paid_at=paid_at,
            )
    await activity.record("CREATE", "Payment", payment.id, {"invoice_id": str(iid), "amount": amount, "reference": reference})
    return payment


async def verify_payment(
    payment_id: Any,
    *,
    invoice_id: Any = None,
    amount: Optional[float] = None,
    paid_at: Optional[datetime] = None,
) -> Payment:
    """
    Confirm a PENDING payment and settle its invoice. When `amount` is given and
    does not match the recorded amount the payment stays PENDING and nothing else
    changes. Verifying twice is a no-op; a rejected payment cannot be verified.
    """
    head = await _payment(payment_id, invoice_id)
    iid = head.invoice_id
    async with invoice_lock(iid):
        async with in_transaction():
            invoice = await _locked(iid)
            payment = await Payment.filter(id=head.id).select_for_update().first()
            if payment.status is PaymentStatus.VERIFIED:
                return payment
            if payment.status is PaymentStatus.REJECTED:
                raise InvalidTransition("Rejected payments cannot be verified")
            mismatch = amount is not None and round_money(amount) != round_money(payment.amount)
            if not mismatch:
                if invoice.status in TERMINAL:
                    raise InvalidTransition(f"Invoice is already {invoice.status.value}")
                payment.status = PaymentStatus.VERIFIED
                payment.paid_at = paid_at or payment.paid_at or datetime.now(tz=UTC)
                await payment.save(update_fields=["status", "paid_at"])
                invoice.status = InvoiceStatus.PAID
                await invoice.save(update_fields=["status", "updated_at"])

    if mismatch:
        await activity.record("VERIFY_MISMATCH", "Payment", payment.id, {"expected": payment.amount, "got": round_money(amount)})
        logger.info(f"[payments] {payment.id}: slip amount {amount} != {payment.amount}, left PENDING")
        return payment
    await activity.record("VERIFY", "Payment", payment.id, {"invoice_id": str(iid), "amount": payment.amount})
    await invoice.fetch_related(*RELATIONS)
    await notify_settlement(invoice, method=payment.source, amount=payment.amount, paid_at=payment.paid_at)
    return payment


async def reject_payment(payment_id: Any, *, invoice_id: Any = None) -> Payment:
    """PENDING -> REJECTED with a notice to the tenant. Repeating it is a no-op."""
    head = await _payment(payment_id, invoice_id)
    async with invoice_lock(head.invoice_id):
        async with in_transaction():
            payment = await Payment.filter(id=head.id).select_for_update().first()
            if payment.status is PaymentStatus.REJECTED:
                return payment
            if payment.status is PaymentStatus.VERIFIED:
                raise InvalidTransition("Verified payments cannot be rejected")
            payment.status = PaymentStatus.REJECTED
            await payment.save(update_fields=["status"])
    await activity.record("REJECT", "Payment", payment.id, {"invoice_id": str(payment.invoice_id), "amount": payment.amount})
    invoice = await Invoice.filter(id=payment.invoice_id).prefetch_related(*RELATIONS).first()
    await notify_payment_rejected(invoice, amount=payment.amount, reference=payment.source)
    return payment


# ---------------- line items ----------------
async def add_item(invoice_id: Any, description: str, amount: float) -> InvoiceItem:
    iid = _require_uuid(invoice_id)
    async with invoice_lock(iid):
        async with in_transaction():
            invoice = await _locked(iid)
            if not invoice:
                raise NotFound("Invoice not found")
            _ensure_mutable(invoice)
            item = await InvoiceItem.create(
                invoice_id=invoice.id,
                description=_clean_description(description),
                amount=round_money(amount),
            )
            await _recompute_total(invoice)
    await activity.record("CREATE", "InvoiceItem", item.id, {"invoice_id": str(iid), "description": item.description, "amount": item.amount})
    return item


async def _item(item_id: Any, invoice_id: Any = None) -> InvoiceItem:
    item_uuid = _require_uuid(item_id, "Invoice item")
    item = await InvoiceItem.get_or_none(id=item_uuid)
    if not item or (invoice_id is not None and _as_uuid(invoice_id) != item.invoice_id):
        raise NotFound("Invoice item not found")
    return item


async def update_item(
    item_id: Any,
    *,
    description: Optional[str] = None,
    amount: Optional[float] = None,
    invoice_id: Any = None,
) -> InvoiceItem:
    head = await _item(item_id, invoice_id)
    async with invoice_lock(head.invoice_id):
        async with in_transaction():
            invoice = await _locked(head.invoice_id)
            item = await InvoiceItem.filter(id=head.id).select_for_update().first()
            if item.is_deleted:
                raise NotFound("Invoice item not found")
            _ensure_mutable(invoice)
            if description is not None:
                item.description = _clean_description(description)
            if amount is not None:
                item.amount = round_money(amount)
            await item.save()
            await _recompute_total(invoice)
    await activity.record("UPDATE", "InvoiceItem", item.id, {"description": description, "amount": amount})
    return item


async def remove_item(item_id: Any, invoice_id: Any = None) -> InvoiceItem:
    """Soft delete: amount zeroed, description tagged. Repeating it is a no-op."""
    head = await _item(item_id, invoice_id)
    if head.is_deleted:
        return head
    async with invoice_lock(head.invoice_id):
        async with in_transaction():
            invoice = await _locked(head.invoice_id)
            item = await InvoiceItem.filter(id=head.id).select_for_update().first()
            if item.is_deleted:
                return item
            _ensure_mutable(invoice)
            item.amount = 0.0
            item.description = (DELETED_PREFIX + item.description)[:255]
            item.is_deleted = True
            await item.save()
            await _recompute_total(invoice)
    await activity.record("DELETE", "InvoiceItem", item.id, {"invoice_id": str(item.invoice_id)})
    return item


# ---------------- sending ----------------
async def _mark_sent(ids: Iterable[uuid.UUID]) -> int:
    ids = list(ids)
    if not ids:
        return 0
    # SENT rows are rewritten too; OVERDUE / terminal rows are left alone
    return await Invoice.filter(
        id__in=ids, status__in=[InvoiceStatus.DRAFT, InvoiceStatus.SENT]
    ).update(status=InvoiceStatus.SENT)


async def _send_batch(invoices: List[Invoice]) -> Dict[str, int]:
    bank_note = await bank_instruction()
    notified = failed = skipped = 0
    handled: List[uuid.UUID] = []
    try:
        for inv in invoices:
            outcome = await notify_billing(inv, bank_note)
            handled.append(inv.id)
            if outcome is None:
                skipped += 1
            elif outcome:
                notified += 1
            else:
                failed += 1
    finally:
        # whatever was already pushed must not be pushed again on the next run
        updated = await _mark_sent(handled)
    return {"count": len(invoices), "notified": notified, "failed": failed, "no_channel": skipped, "updated": updated}


async def send_invoice(invoice_id: Any) -> Invoice:
    iid = _require_uuid(invoice_id)
    invoice = await Invoice.filter(id=iid).prefetch_related(*RELATIONS).first()
    if not invoice:
        raise NotFound("Invoice not found")
    if invoice.status in TERMINAL:
        raise InvalidTransition(f"Invoice is {invoice.status.value}; nothing to send")
    stats = await _send_batch([invoice])
    await activity.record("SEND", "Invoice", iid, stats)
    await invoice.refresh_from_db(fields=["status", "updated_at"])
    return invoice


async def send_all(month: int, year: int) -> Dict[str, Any]:
    month, year = validate_period(month, year)
    invoices = await Invoice.filter(month=month, year=year, status__in=SENDABLE).prefetch_related(*RELATIONS)
    stats = await _send_batch(invoices)
    await activity.record("SEND_ALL", "Invoice", None, {"month": month, "year": year, **stats})
    return {"ok": True, "month": month, "year": year, **stats}


async def send_for_room(month: int, year: int, room_id: int) -> Dict[str, Any]:
    month, year = validate_period(month, year)
    invoice = await (
        Invoice.filter(month=month, year=year, contract__room__id=room_id)
        .exclude(status=InvoiceStatus.CANCELLED)
        .order_by("-created_at")
        .first()
    )
    if not invoice:
        raise NotFound("Invoice not found for this room and period")
    sent = await send_invoice(invoice.id)
    return {"ok": True, "id": str(sent.id), "status": sent.status.value}


async def send_pending(month: int, year: int) -> Dict[str, Any]:
    """DRAFT invoices of the period only; used by the auto-send run."""
    invoices = await Invoice.filter(month=month, year=year, status=InvoiceStatus.DRAFT).prefetch_related(*RELATIONS)
    stats = await _send_batch(invoices)
    await activity.record("AUTO_SEND", "Invoice", None, {"month": month, "year": year, **stats})
    return stats


# ---------------- overdue ----------------
def _today(now: Optional[datetime], tz_name: Optional[str]) -> date:
    now = now or datetime.now(tz=UTC)
    if now.tzinfo is None:
        now = now.replace(tzinfo=UTC)
    return now.astimezone(ZoneInfo(tz_name or config.DEFAULT_TIMEZONE)).date()


async def mark_overdue(now: Optional[datetime] = None, tz_name: Optional[str] = None) -> Dict[str, Any]:
    """
    SENT invoices become OVERDUE once the due date has begun in property time
    (due date at local midnight < now).
    """
    today = _today(now, tz_name)
    ids = await Invoice.filter(status=InvoiceStatus.SENT, due_date__lte=today).values_list("id", flat=True)
    if not ids:
        return {"ok": True, "count": 0}
    # status guard in the WHERE clause keeps concurrent settlements/cancels intact
    count = await Invoice.filter(id__in=ids, status=InvoiceStatus.SENT).update(status=InvoiceStatus.OVERDUE)
    await activity.record("OVERDUE", "Invoice", None, {"count": count, "as_of": today.isoformat()})
    logger.info(f"[overdue] {count} invoice(s) marked overdue as of {today}")
    return {"ok": True, "count": count}
