# routers/meter_readings.py
from fastapi import APIRouter, Depends, HTTPException
from tortoise.queryset import QuerySet

from api_utils import RAListParams, as_int, parse_sort, apply_filter_map, paginate_and_respond, respond_item
from models import MeterReading
from schemas import MeterReadingRead, MeterReadingUpsert
from services.meter_readings import delete_reading, upsert_reading

router = APIRouter(prefix="/meter-readings", tags=["meter-readings"])
ALLOWED_SORTS = {"id", "room_id", "month", "year", "updated_at"}


@router.get("", response_model=list[MeterReadingRead])
async def list_readings(params: RAListParams = Depends()):
    qs: QuerySet[MeterReading] = MeterReading.filter(is_deleted=False)
    fmap = {
        "room_id": lambda q, v: q.filter(room_id=as_int(v)) if as_int(v) is not None else q,
        "month":   lambda q, v: q.filter(month=as_int(v)) if as_int(v) is not None else q,
        "year":    lambda q, v: q.filter(year=as_int(v)) if as_int(v) is not None else q,
    }
    qs = apply_filter_map(qs, params.filters or {}, fmap)
    order = parse_sort(params.sort, ALLOWED_SORTS)
    return await paginate_and_respond(
        qs=qs,
        skip=params.skip,
        limit=params.limit,
        order=order,
        to_pydantic=lambda m: MeterReadingRead.model_validate(m),
    )


@router.get("/{reading_id}", response_model=MeterReadingRead)
async def get_reading(reading_id: int):
    obj = await MeterReading.get_or_none(id=reading_id, is_deleted=False)
    if not obj:
        raise HTTPException(404, "Meter reading not found")
    return respond_item(obj, lambda m: MeterReadingRead.model_validate(m))


@router.put("", response_model=MeterReadingRead)
async def upsert(payload: MeterReadingUpsert):
    obj = await upsert_reading(
        payload.room_id, payload.month, payload.year, payload.water_reading, payload.electric_reading
    )
    return respond_item(obj, lambda m: MeterReadingRead.model_validate(m))


@router.delete("/{reading_id}")
async def delete(reading_id: int):
    await delete_reading(reading_id)
    return {"ok": True}
