# routers/settings.py
from dataclasses import asdict

from fastapi import APIRouter
from fastapi.encoders import jsonable_encoder

from api_utils import respond_item
from schemas import DormConfigRead, DormConfigUpdate, RoomOverrideUpdate, RoomRead
from services.dorm_config import ensure_dorm_config, get_effective_config, set_room_override, update_dorm_config

router = APIRouter(prefix="/settings", tags=["settings"])


@router.get("/dorm-config", response_model=DormConfigRead)
async def get_dorm_config():
    cfg = await ensure_dorm_config()
    return respond_item(cfg, lambda m: DormConfigRead.model_validate(m))


@router.put("/dorm-config", response_model=DormConfigRead)
async def put_dorm_config(payload: DormConfigUpdate):
    cfg = await update_dorm_config(payload.model_dump(exclude_unset=True))
    return respond_item(cfg, lambda m: DormConfigRead.model_validate(m))


@router.get("/dorm-config/effective")
async def get_effective():
    """Local config merged with the remote override, as the generator sees it."""
    cfg = await get_effective_config()
    return jsonable_encoder(asdict(cfg))


@router.put("/rooms/{room_id}/rates", response_model=RoomRead)
async def put_room_rates(room_id: int, payload: RoomOverrideUpdate):
    room = await set_room_override(
        room_id, water=payload.water_override_amount, electric=payload.electric_override_amount
    )
    return respond_item(room, lambda m: RoomRead.model_validate(m))
