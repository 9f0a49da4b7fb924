# services/contracts.py
from __future__ import annotations
from typing import Optional

from tortoise.transactions import in_transaction

from models import Contract
from services import activity
from services.errors import InvalidInput, NotFound
from services.locks import contract_lock
from services.rates import round_money


async def active_contract_for_room(room_id: int) -> Optional[Contract]:
    return await Contract.filter(room_id=room_id, is_active=True).order_by("-start_date").first()


async def activate_contract(contract_id: int) -> Contract:
    """Make this the room's only active contract."""
    async with in_transaction():
        contract = await Contract.filter(id=contract_id).select_for_update().first()
        if not contract:
            raise NotFound("Contract not found")
        await Contract.filter(room_id=contract.room_id, is_active=True).exclude(id=contract.id).update(is_active=False)
        if not contract.is_active:
            contract.is_active = True
            await contract.save(update_fields=["is_active"])
    await activity.record("ACTIVATE", "Contract", contract.id, {"room_id": contract.room_id})
    return contract


async def adjust_deposit(contract_id: int, delta: float, reason: str = "") -> Contract:
    async with contract_lock(contract_id):
        async with in_transaction():
            contract = await Contract.filter(id=contract_id).select_for_update().first()
            if not contract:
                raise NotFound("Contract not found")
            balance = round_money(contract.deposit + delta)
            if balance < 0:
                raise InvalidInput("Deposit balance cannot go below zero")
            contract.deposit = balance
            await contract.save(update_fields=["deposit"])
    await activity.record("DEPOSIT", "Contract", contract.id, {"delta": delta, "balance": balance, "reason": reason})
    return contract
