# tests/conftest.py - shared fixtures: in-memory DB, recording dispatcher, data factory

from datetime import date

import pytest
from tortoise import Tortoise

from integration.notifier import LoggingDispatcher, NotificationDispatcher, set_dispatcher
from models import Building, Contract, DormConfig, FeeMethod, MeterReading, Room, Tenant


class RecordingDispatcher(NotificationDispatcher):
    """Keeps every notice; `fail_with` makes each send raise."""

    def __init__(self):
        self.billing = []
        self.settlement = []
        self.rejected = []
        self.fail_with = None

    async def send_billing_notice(self, channel_id, payload):
        if self.fail_with:
            raise self.fail_with
        self.billing.append((channel_id, payload))
        return True

    async def send_settlement_notice(self, channel_id, payload):
        if self.fail_with:
            raise self.fail_with
        self.settlement.append((channel_id, payload))
        return True

    async def send_payment_rejected_notice(self, channel_id, payload):
        if self.fail_with:
            raise self.fail_with
        self.rejected.append((channel_id, payload))
        return True


@pytest.fixture
async def db():
    await Tortoise.init(db_url="sqlite://:memory:", modules={"models": ["models"]})
    await Tortoise.generate_schemas()
    yield
    await Tortoise.close_connections()


@pytest.fixture
def dispatcher():
    rec = RecordingDispatcher()
    set_dispatcher(rec)
    yield rec
    set_dispatcher(LoggingDispatcher())


class Factory:
    async def dorm_config(self, **overrides):
        data = dict(
            water_unit_price=18.0,
            water_fee_method=FeeMethod.METER_USAGE,
            electric_unit_price=7.0,
            electric_fee_method=FeeMethod.METER_USAGE,
            common_fee=300.0,
            bank_account="123-4-56789",
        )
        data.update(overrides)
        return await DormConfig.create(**data)

    async def room(self, number="101", building_name="A", **kwargs):
        building = await Building.create(code=f"{building_name}-{number}", name=f"Building {building_name}")
        return await Room.create(building=building, number=number, **kwargs)

    async def contract(self, room, channel_id="U-tenant", deposit=5000.0, rent=3000.0, occupants=1):
        tenant = await Tenant.create(name=f"Tenant {room.number}", channel_id=channel_id)
        return await Contract.create(
            tenant=tenant,
            room=room,
            start_date=date(2024, 1, 1),
            deposit=deposit,
            current_rent=rent,
            occupant_count=occupants,
            is_active=True,
        )

    async def reading(self, room, month, year, water, electric):
        return await MeterReading.create(
            room=room, month=month, year=year, water_reading=water, electric_reading=electric
        )

    async def billable_room(self, number="101", **contract_kwargs):
        """Room with an active contract and readings for 2/2025 (prev) and 3/2025."""
        room = await self.room(number=number)
        contract = await self.contract(room, **contract_kwargs)
        await self.reading(room, 2, 2025, water=100, electric=1000)
        await self.reading(room, 3, 2025, water=110, electric=1100)
        return room, contract


@pytest.fixture
def factory(db):
    return Factory()
