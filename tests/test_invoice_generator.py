# tests/test_invoice_generator.py - monthly generation from readings and config

from datetime import date

import pytest

from models import ActivityLog, FeeMethod, InvoiceStatus
from services.errors import Conflict, InvalidInput, NotFound
from services.invoice_generator import due_date_for, generate_invoice, previous_period, validate_period


class TestPeriods:
    def test_previous_period_rolls_year(self):
        assert previous_period(1, 2025) == (12, 2024)
        assert previous_period(7, 2025) == (6, 2025)

    @pytest.mark.parametrize("month, year", [(0, 2025), (13, 2025), ("x", 2025), (None, None)])
    def test_invalid_period(self, month, year):
        with pytest.raises(InvalidInput):
            validate_period(month, year)

    def test_due_date_clamped_to_month_length(self):
        assert due_date_for(2025, 2, 31) == date(2025, 2, 28)
        assert due_date_for(2024, 2, 31) == date(2024, 2, 29)
        assert due_date_for(2025, 3, None) == date(2025, 3, 5)
        assert due_date_for(2025, 3, 0) == date(2025, 3, 1)


class TestGenerateInvoice:
    async def test_generates_draft_with_computed_amounts(self, factory):
        await factory.dorm_config()
        room, contract = await factory.billable_room()

        inv = await generate_invoice(room.id, 3, 2025, remote={})

        assert inv.status == InvoiceStatus.DRAFT
        assert inv.contract_id == contract.id
        assert inv.water_usage == 10 and inv.electric_usage == 100
        assert inv.water_amount == 180
        assert inv.electric_amount == 700
        assert inv.rent_amount == 3000
        assert inv.other_fees == 300
        assert inv.total_amount == 4180
        assert inv.due_date == date(2025, 3, 5)
        assert await ActivityLog.filter(action="GENERATE", entity_id=str(inv.id)).exists()

    async def test_second_generate_conflicts(self, factory):
        await factory.dorm_config()
        room, _ = await factory.billable_room()
        await generate_invoice(room.id, 3, 2025, remote={})
        with pytest.raises(Conflict):
            await generate_invoice(room.id, 3, 2025, remote={})

    async def test_no_active_contract(self, factory):
        room = await factory.room()
        with pytest.raises(NotFound):
            await generate_invoice(room.id, 3, 2025, remote={})

    async def test_missing_reading(self, factory):
        room = await factory.room()
        await factory.contract(room)
        with pytest.raises(InvalidInput):
            await generate_invoice(room.id, 3, 2025, remote={})

    async def test_tombstoned_reading_counts_as_missing(self, factory):
        room, _ = await factory.billable_room()
        from models import MeterReading
        await MeterReading.filter(room_id=room.id, month=3, year=2025).update(is_deleted=True)
        with pytest.raises(InvalidInput):
            await generate_invoice(room.id, 3, 2025, remote={})

    async def test_first_month_has_zero_usage_and_water_floor(self, factory):
        await factory.dorm_config()
        room = await factory.room()
        await factory.contract(room)
        await factory.reading(room, 1, 2025, water=50, electric=500)

        inv = await generate_invoice(room.id, 1, 2025, remote={})

        assert inv.water_usage == 0 and inv.electric_usage == 0
        assert inv.water_amount == 35
        assert inv.electric_amount == 0
        assert inv.total_amount == 3335

    async def test_counter_rollback_clamps_usage(self, factory):
        await factory.dorm_config()
        room = await factory.room()
        await factory.contract(room)
        await factory.reading(room, 12, 2024, water=100, electric=900)
        await factory.reading(room, 1, 2025, water=90, electric=1000)

        inv = await generate_invoice(room.id, 1, 2025, remote={})

        assert inv.water_usage == 0
        assert inv.electric_usage == 100

    async def test_room_override_and_remote_supersede(self, factory):
        await factory.dorm_config(monthly_due_day=31)
        room, _ = await factory.billable_room()
        room.electric_override_amount = 9
        await room.save()

        inv = await generate_invoice(room.id, 3, 2025, remote={"waterUnitPrice": 20, "common_fee": 0})

        assert inv.water_amount == 200
        assert inv.electric_amount == 900
        assert inv.other_fees == 0
        assert inv.due_date == date(2025, 3, 31)

    async def test_tiered_water(self, factory):
        await factory.dorm_config(
            water_fee_method=FeeMethod.METER_USAGE_TIERED,
            water_tiered_rates=[{"upto_unit": 5, "unit_price": 10}, {"upto_unit": None, "unit_price": 30}],
        )
        room, _ = await factory.billable_room()
        inv = await generate_invoice(room.id, 3, 2025, remote={})
        assert inv.water_amount == 5 * 10 + 5 * 30
