# routers/invoices.py
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from tortoise.queryset import QuerySet

from api_utils import RAListParams, as_int, as_status_list, parse_sort, apply_filter_map, paginate_and_respond, respond_item
from models import Invoice, InvoiceItem, Payment
from schemas import (
    GenerateRequest, InvoiceCreate, InvoiceDetail, InvoiceItemCreate, InvoiceItemRead, InvoiceItemUpdate,
    InvoiceRead, InvoiceUpdate, PaymentCreate, PaymentRead, PaymentVerify, PeriodRequest, RoomPeriodRequest, SettleRequest,
)
from services import invoice_lifecycle as lifecycle
from services.invoice_generator import generate_invoice

router = APIRouter(prefix="/invoices", tags=["invoices"])
ALLOWED_SORTS = {"id", "month", "year", "status", "due_date", "total_amount", "created_at", "updated_at"}


def _detail(inv: Invoice) -> InvoiceDetail:
    contract = inv.contract
    room = getattr(contract, "room", None)
    tenant = getattr(contract, "tenant", None)
    return InvoiceDetail(
        **InvoiceRead.model_validate(inv).model_dump(),
        room_id=contract.room_id,
        room_number=getattr(room, "number", None),
        tenant_name=getattr(tenant, "name", None),
        items=[InvoiceItemRead.model_validate(i) for i in inv.items if not i.is_deleted],
        payments=[PaymentRead.model_validate(p) for p in inv.payments],
    )


@router.get("", response_model=list[InvoiceRead])
async def list_invoices(params: RAListParams = Depends()):
    qs: QuerySet[Invoice] = Invoice.all()
    fmap = {
        "room_id":     lambda q, v: q.filter(contract__room__id=as_int(v)) if as_int(v) is not None else q,
        "contract_id": lambda q, v: q.filter(contract_id=as_int(v)) if as_int(v) is not None else q,
        "month":       lambda q, v: q.filter(month=as_int(v)) if as_int(v) is not None else q,
        "year":        lambda q, v: q.filter(year=as_int(v)) if as_int(v) is not None else q,
        "status":      lambda q, v: q.filter(status__in=as_status_list(v)) if as_status_list(v) else q,
    }
    qs = apply_filter_map(qs, params.filters or {}, fmap)
    order = parse_sort(params.sort, ALLOWED_SORTS)
    return await paginate_and_respond(
        qs=qs,
        skip=params.skip,
        limit=params.limit,
        order=order,
        to_pydantic=lambda m: InvoiceRead.model_validate(m),
    )


@router.post("", response_model=InvoiceRead, status_code=201)
async def create_invoice(payload: InvoiceCreate):
    inv = await lifecycle.create_invoice(payload.model_dump())
    return respond_item(inv, lambda m: InvoiceRead.model_validate(m), status_code=201)


@router.post("/generate", response_model=InvoiceRead, status_code=201)
async def generate(payload: GenerateRequest):
    inv = await generate_invoice(payload.room_id, payload.month, payload.year)
    return respond_item(inv, lambda m: InvoiceRead.model_validate(m), status_code=201)


@router.post("/send-all")
async def send_all(payload: PeriodRequest):
    return await lifecycle.send_all(payload.month, payload.year)


@router.post("/send-room")
async def send_room(payload: RoomPeriodRequest):
    return await lifecycle.send_for_room(payload.month, payload.year, payload.room_id)


@router.post("/mark-overdue")
async def mark_overdue():
    return await lifecycle.mark_overdue()


@router.get("/{invoice_id}", response_model=InvoiceDetail)
async def get_invoice(invoice_id: str):
    inv = await lifecycle.get_invoice(invoice_id)
    return respond_item(inv, _detail)


@router.patch("/{invoice_id}", response_model=InvoiceRead)
async def update_invoice(invoice_id: str, payload: InvoiceUpdate):
    inv = await lifecycle.update_invoice(invoice_id, payload.model_dump(exclude_unset=True))
    return respond_item(inv, lambda m: InvoiceRead.model_validate(m))


@router.delete("/{invoice_id}")
async def delete_invoice(invoice_id: str):
    await lifecycle.remove_invoice(invoice_id)
    return {"ok": True}


@router.post("/{invoice_id}/cancel")
async def cancel_invoice(invoice_id: str):
    inv = await lifecycle.cancel_invoice(invoice_id)
    return {"ok": True, "status": inv.status.value if inv else None}


@router.post("/{invoice_id}/settle", response_model=InvoiceRead)
async def settle_invoice(invoice_id: str, payload: SettleRequest):
    inv = await lifecycle.settle_invoice(invoice_id, payload.method, payload.paid_at)
    return respond_item(inv, lambda m: InvoiceRead.model_validate(m))


@router.post("/{invoice_id}/send", response_model=InvoiceRead)
async def send_invoice(invoice_id: str):
    inv = await lifecycle.send_invoice(invoice_id)
    return respond_item(inv, lambda m: InvoiceRead.model_validate(m))


# ---------- line items ----------
@router.get("/{invoice_id}/items", response_model=list[InvoiceItemRead])
async def list_items(invoice_id: str):
    inv = await lifecycle.get_invoice(invoice_id)
    items = await InvoiceItem.filter(invoice_id=inv.id, is_deleted=False).order_by("created_at")
    return JSONResponse(content=[InvoiceItemRead.model_validate(i).model_dump(mode="json") for i in items])


@router.post("/{invoice_id}/items", response_model=InvoiceItemRead, status_code=201)
async def add_item(invoice_id: str, payload: InvoiceItemCreate):
    item = await lifecycle.add_item(invoice_id, payload.description, payload.amount)
    return respond_item(item, lambda m: InvoiceItemRead.model_validate(m), status_code=201)


@router.patch("/{invoice_id}/items/{item_id}", response_model=InvoiceItemRead)
async def update_item(invoice_id: str, item_id: str, payload: InvoiceItemUpdate):
    data = payload.model_dump(exclude_unset=True)
    item = await lifecycle.update_item(item_id, invoice_id=invoice_id, **data)
    return respond_item(item, lambda m: InvoiceItemRead.model_validate(m))


@router.delete("/{invoice_id}/items/{item_id}")
async def remove_item(invoice_id: str, item_id: str):
    await lifecycle.remove_item(item_id, invoice_id=invoice_id)
    return {"ok": True}


@router.get("/{invoice_id}/payments", response_model=list[PaymentRead])
async def list_payments(invoice_id: str):
    inv = await lifecycle.get_invoice(invoice_id)
    payments = await Payment.filter(invoice_id=inv.id).order_by("paid_at")
    return JSONResponse(content=[PaymentRead.model_validate(p).model_dump(mode="json") for p in payments])


@router.post("/{invoice_id}/payments", response_model=PaymentRead, status_code=201)
async def record_payment(invoice_id: str, payload: PaymentCreate):
    payment = await lifecycle.record_payment(invoice_id, payload.amount, payload.reference, payload.paid_at)
    return respond_item(payment, lambda m: PaymentRead.model_validate(m), status_code=201)


@router.post("/{invoice_id}/payments/{payment_id}/verify", response_model=PaymentRead)
async def verify_payment(invoice_id: str, payment_id: str, payload: PaymentVerify | None = None):
    payload = payload or PaymentVerify()
    payment = await lifecycle.verify_payment(
        payment_id, invoice_id=invoice_id, amount=payload.amount, paid_at=payload.paid_at
    )
    return respond_item(payment, lambda m: PaymentRead.model_validate(m))


@router.post("/{invoice_id}/payments/{payment_id}/reject", response_model=PaymentRead)
async def reject_payment(invoice_id: str, payment_id: str):
    payment = await lifecycle.reject_payment(payment_id, invoice_id=invoice_id)
    return respond_item(payment, lambda m: PaymentRead.model_validate(m))


@router.delete("/{invoice_id}/payments/{payment_id}")
async def delete_payment(invoice_id: str, payment_id: str):
    # payments are never removed; withdrawing one rejects it
    await lifecycle.reject_payment(payment_id, invoice_id=invoice_id)
    return {"ok": True}
