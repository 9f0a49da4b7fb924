# tests/test_contracts.py - active contract switching, deposit ledger, meter readings

import pytest

from models import Contract, MeterReading
from services.contracts import activate_contract, active_contract_for_room, adjust_deposit
from services.errors import InvalidInput, NotFound
from services.meter_readings import delete_reading, upsert_reading


class TestContracts:
    async def test_activate_closes_other_contracts(self, factory):
        room = await factory.room()
        old = await factory.contract(room)
        new = await factory.contract(room, channel_id="U-new")
        await Contract.filter(id=new.id).update(is_active=False)

        await activate_contract(new.id)

        assert not (await Contract.get(id=old.id)).is_active
        assert (await active_contract_for_room(room.id)).id == new.id

    async def test_activate_missing(self, db):
        with pytest.raises(NotFound):
            await activate_contract(404)

    async def test_deposit_ledger(self, factory):
        room = await factory.room()
        contract = await factory.contract(room, deposit=1000)
        assert (await adjust_deposit(contract.id, 500, "top-up")).deposit == 1500
        with pytest.raises(InvalidInput):
            await adjust_deposit(contract.id, -2000, "refund")
        assert (await Contract.get(id=contract.id)).deposit == 1500


class TestMeterReadings:
    async def test_upsert_revives_tombstone(self, factory):
        room = await factory.room()
        first = await upsert_reading(room.id, 5, 2025, 10, 100)
        await delete_reading(first.id)
        await delete_reading(first.id)
        again = await upsert_reading(room.id, 5, 2025, 12, 110)

        assert again.id == first.id
        assert not again.is_deleted
        assert await MeterReading.filter(room_id=room.id).count() == 1

    async def test_rejects_bad_input(self, factory):
        room = await factory.room()
        with pytest.raises(InvalidInput):
            await upsert_reading(room.id, 5, 2025, -1, 100)
        with pytest.raises(InvalidInput):
            await upsert_reading(room.id, 0, 2025, 1, 1)
        with pytest.raises(NotFound):
            await upsert_reading(9999, 5, 2025, 1, 1)
