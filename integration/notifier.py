# integration/notifier.py: outbound tenant notices (delivery channel is pluggable)
from __future__ import annotations
import logging
from dataclasses import asdict, dataclass
from datetime import date, datetime
from typing import Optional

import httpx
from fastapi.encoders import jsonable_encoder

logger = logging.getLogger("uvicorn")


@dataclass
class BillingNotice:
    room: str
    month: int
    year: int
    rent_amount: float
    water_amount: float
    electric_amount: float
    other_fees: float
    items_total: float
    discount: float
    total_amount: float
    due_date: Optional[date] = None
    building_label: Optional[str] = None
    bank_instruction: Optional[str] = None


@dataclass
class SettlementNotice:
    room: str
    month: int
    year: int
    amount: float
    method: str
    paid_at: datetime
    remaining_deposit: Optional[float] = None  # DEPOSIT settlements only


@dataclass
class PaymentRejectedNotice:
    room: str
    month: int
    year: int
    amount: float
    reference: str


class NotificationDispatcher:
    """
    Sink for tenant notices. Implementations report delivery as a bool and may
    raise; callers record failures and carry on.
    """

    async def send_billing_notice(self, channel_id: str, payload: BillingNotice) -> bool:
        raise NotImplementedError

    async def send_settlement_notice(self, channel_id: str, payload: SettlementNotice) -> bool:
        raise NotImplementedError

    async def send_payment_rejected_notice(self, channel_id: str, payload: PaymentRejectedNotice) -> bool:
        raise NotImplementedError


class LoggingDispatcher(NotificationDispatcher):
    """Default when no delivery channel is configured."""

    async def send_billing_notice(self, channel_id: str, payload: BillingNotice) -> bool:
        logger.info(f"[notify] bill -> {channel_id}: room {payload.room} {payload.month}/{payload.year} total={payload.total_amount}")
        return True

    async def send_settlement_notice(self, channel_id: str, payload: SettlementNotice) -> bool:
        logger.info(f"[notify] settled -> {channel_id}: room {payload.room} amount={payload.amount} via {payload.method}")
        return True

    async def send_payment_rejected_notice(self, channel_id: str, payload: PaymentRejectedNotice) -> bool:
        logger.info(f"[notify] payment rejected -> {channel_id}: room {payload.room} ref={payload.reference}")
        return True


class WebhookDispatcher(NotificationDispatcher):
    """POSTs {kind, channel_id, payload} as JSON to a relay that owns the chat protocol."""

    def __init__(self, url: str, *, timeout: float = 5.0, transport: httpx.AsyncBaseTransport | None = None):
        self.url = url
        self.timeout = timeout
        self.transport = transport

    async def _post(self, kind: str, channel_id: str, payload) -> bool:
        body = {"kind": kind, "channel_id": channel_id, "payload": jsonable_encoder(asdict(payload))}
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            resp = await client.post(self.url, json=body)
        if resp.is_success:
            return True
        logger.warning(f"[notify] webhook {kind} -> {channel_id} HTTP {resp.status_code}")
        return False

    async def send_billing_notice(self, channel_id: str, payload: BillingNotice) -> bool:
        return await self._post("BILLING", channel_id, payload)

    async def send_settlement_notice(self, channel_id: str, payload: SettlementNotice) -> bool:
        return await self._post("SETTLEMENT", channel_id, payload)

    async def send_payment_rejected_notice(self, channel_id: str, payload: PaymentRejectedNotice) -> bool:
        return await self._post("REJECTED", channel_id, payload)


_dispatcher: NotificationDispatcher = LoggingDispatcher()


def get_dispatcher() -> NotificationDispatcher:
    return _dispatcher


def set_dispatcher(dispatcher: NotificationDispatcher) -> None:
    global _dispatcher
    _dispatcher = dispatcher


def dispatcher_from_config(webhook_url: str, timeout: float = 5.0) -> NotificationDispatcher:
    if webhook_url:
        return WebhookDispatcher(webhook_url, timeout=timeout)
    return LoggingDispatcher()
