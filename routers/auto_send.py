# routers/auto_send.py
from fastapi import APIRouter

from api_utils import respond_item
from schemas import AutoSendConfigRead, AutoSendConfigUpdate, AutoSendRunRequest
from services.auto_send import get_auto_send_config, run_auto_send, set_auto_send_config

router = APIRouter(prefix="/invoices/auto-send", tags=["auto-send"])


@router.get("/config", response_model=AutoSendConfigRead)
async def get_config():
    cfg = await get_auto_send_config()
    return respond_item(cfg, lambda m: AutoSendConfigRead.model_validate(m))


@router.post("/config", response_model=AutoSendConfigRead)
async def set_config(payload: AutoSendConfigUpdate):
    cfg = await set_auto_send_config(payload.model_dump(exclude_unset=True))
    return respond_item(cfg, lambda m: AutoSendConfigRead.model_validate(m))


@router.post("/run")
async def run_now(payload: AutoSendRunRequest | None = None):
    force = payload.force if payload else True
    return await run_auto_send(force=force)
