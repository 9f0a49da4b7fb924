# routers/contracts.py
from fastapi import APIRouter, HTTPException

from api_utils import respond_item
from models import Contract
from schemas import ContractRead, DepositAdjust
from services.contracts import activate_contract, adjust_deposit

router = APIRouter(prefix="/contracts", tags=["contracts"])


@router.get("/{contract_id}", response_model=ContractRead)
async def get_contract(contract_id: int):
    obj = await Contract.get_or_none(id=contract_id)
    if not obj:
        raise HTTPException(404, "Contract not found")
    return respond_item(obj, lambda m: ContractRead.model_validate(m))


@router.post("/{contract_id}/activate", response_model=ContractRead)
async def activate(contract_id: int):
    obj = await activate_contract(contract_id)
    return respond_item(obj, lambda m: ContractRead.model_validate(m))


@router.post("/{contract_id}/deposit", response_model=ContractRead)
async def deposit(contract_id: int, payload: DepositAdjust):
    obj = await adjust_deposit(contract_id, payload.delta, payload.reason)
    return respond_item(obj, lambda m: ContractRead.model_validate(m))
