# tests/test_dorm_config.py - local/remote config merge and the remote fetch

import httpx
import pytest

from models import FeeMethod
from services.dorm_config import (
    ensure_dorm_config, fetch_remote_override, get_effective_config, merge_config, set_room_override,
    update_dorm_config,
)
from services.errors import NotFound
from services.rates import TierRate


def _transport(handler):
    return httpx.MockTransport(handler)


class TestMerge:
    def test_defaults_without_any_config(self):
        cfg = merge_config(None, {})
        assert cfg.water_method == FeeMethod.METER_USAGE
        assert cfg.water.unit_price == 18
        assert cfg.electric.unit_price == 7
        assert cfg.common_fee == 300
        assert cfg.monthly_due_day is None

    async def test_remote_supersedes_field_by_field(self, factory):
        local = await factory.dorm_config(
            water_unit_price=20,
            electric_unit_price=8,
            water_fee_method=FeeMethod.METER_USAGE_TIERED,
            water_tiered_rates=[{"upto_unit": 10, "unit_price": 5}],
        )
        cfg = merge_config(local, {
            "electricUnitPrice": 9,
            "common_fee": None,
            "water_min_amount": "nan",
            "monthlyDueDay": 10,
            "water_fee_method": "FLAT_MONTHLY",
        })
        assert cfg.water.unit_price == 20
        assert cfg.electric.unit_price == 9
        assert cfg.common_fee == 300
        assert cfg.water.min_amount == 0
        assert cfg.monthly_due_day == 10
        # methods and tier tables stay local
        assert cfg.water_method == FeeMethod.METER_USAGE_TIERED
        assert cfg.water.tiers == (TierRate(10, 5.0),)


class TestFetchRemote:
    async def test_ok(self):
        t = _transport(lambda req: httpx.Response(200, json={"waterUnitPrice": 25}))
        assert await fetch_remote_override("http://rates.test/cfg", transport=t) == {"waterUnitPrice": 25}

    @pytest.mark.parametrize("response", [
        httpx.Response(500, json={"error": "x"}),
        httpx.Response(200, text="<html>"),
        httpx.Response(200, json=[1, 2, 3]),
    ])
    async def test_bad_responses_mean_no_override(self, response):
        t = _transport(lambda req: response)
        assert await fetch_remote_override("http://rates.test/cfg", transport=t) == {}

    async def test_unreachable(self):
        def handler(req):
            raise httpx.ConnectTimeout("slow", request=req)

        assert await fetch_remote_override("http://rates.test/cfg", transport=_transport(handler)) == {}

    async def test_disabled_without_url(self):
        assert await fetch_remote_override("") == {}


class TestPersistence:
    async def test_ensure_is_singleton(self, db):
        a = await ensure_dorm_config()
        b = await ensure_dorm_config()
        assert a.id == b.id
        assert a.common_fee == 300

    async def test_update_and_effective(self, db):
        await update_dorm_config({"common_fee": 150, "bank_account": "999"})
        cfg = await get_effective_config(remote={})
        assert cfg.common_fee == 150
        assert cfg.bank_account == "999"

    async def test_room_override(self, factory):
        room = await factory.room()
        updated = await set_room_override(room.id, water=22, electric=None)
        assert updated.water_override_amount == 22
        with pytest.raises(NotFound):
            await set_room_override(9999, water=1, electric=1)
