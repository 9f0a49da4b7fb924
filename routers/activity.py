# routers/activity.py
from typing import Optional

from fastapi import APIRouter, Depends, Query

from api_utils import RAListParams, respond_plain_list
from services import activity

router = APIRouter(prefix="/activity", tags=["activity"])


@router.get("")
async def list_activity(
    params: RAListParams = Depends(),
    entity_type: Optional[str] = Query(None),
):
    entity_type = entity_type or (params.filters or {}).get("entity_type")
    rows = await activity.recent(limit=500, entity_type=entity_type)
    return respond_plain_list(rows, params.skip, params.limit)
