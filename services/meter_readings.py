# services/meter_readings.py: cumulative counters per room and period
from __future__ import annotations
from typing import Optional

from tortoise.transactions import in_transaction

from models import MeterReading, Room
from services import activity
from services.errors import InvalidInput, NotFound
from services.invoice_generator import validate_period


async def upsert_reading(room_id: int, month: int, year: int, water: float, electric: float) -> MeterReading:
    """Insert or overwrite the reading for (room, month, year); revives a tombstoned row."""
    month, year = validate_period(month, year)
    if water is None or electric is None or water < 0 or electric < 0:
        raise InvalidInput("Meter readings must be non-negative numbers")
    if not await Room.exists(id=room_id):
        raise NotFound("Room not found")
    async with in_transaction():
        reading = await MeterReading.filter(room_id=room_id, month=month, year=year).select_for_update().first()
        created = reading is None
        if created:
            reading = await MeterReading.create(
                room_id=room_id, month=month, year=year, water_reading=water, electric_reading=electric
            )
        else:
            reading.water_reading = water
            reading.electric_reading = electric
            reading.is_deleted = False
            await reading.save()
    await activity.record("CREATE" if created else "UPDATE", "MeterReading", reading.id, {
        "room_id": room_id, "month": month, "year": year, "water": water, "electric": electric,
    })
    return reading


async def delete_reading(reading_id: int) -> Optional[MeterReading]:
    """Tombstone; repeating it is a no-op."""
    reading = await MeterReading.get_or_none(id=reading_id)
    if not reading or reading.is_deleted:
        return reading
    reading.is_deleted = True
    await reading.save(update_fields=["is_deleted", "updated_at"])
    await activity.record("DELETE", "MeterReading", reading.id, {"room_id": reading.room_id, "month": reading.month, "year": reading.year})
    return reading
