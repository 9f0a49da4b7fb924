# tests/test_api.py - HTTP surface over ASGITransport (lifespan not started; db fixture owns Tortoise)

import httpx
import pytest

from main import app


@pytest.fixture
async def client(db, dispatcher):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


@pytest.fixture
async def room(factory):
    await factory.dorm_config()
    room, _ = await factory.billable_room()
    return room


class TestInvoicesApi:
    async def test_generate_then_conflict(self, client, room):
        r = await client.post("/invoices/generate", json={"room_id": room.id, "month": 3, "year": 2025})
        assert r.status_code == 201
        body = r.json()
        assert body["status"] == "DRAFT"
        assert body["total_amount"] == 4180

        r = await client.post("/invoices/generate", json={"room_id": room.id, "month": 3, "year": 2025})
        assert r.status_code == 409
        assert r.json()["detail"] == "Invoice already exists for this period"

    async def test_generate_errors(self, client, room):
        r = await client.post("/invoices/generate", json={"room_id": room.id, "month": 13, "year": 2025})
        assert r.status_code == 422
        r = await client.post("/invoices/generate", json={"room_id": 9999, "month": 3, "year": 2025})
        assert r.status_code == 404

    async def test_items_and_detail(self, client, room):
        inv = (await client.post("/invoices/generate", json={"room_id": room.id, "month": 3, "year": 2025})).json()

        r = await client.post(f"/invoices/{inv['id']}/items", json={"description": "Key copy", "amount": 120})
        assert r.status_code == 201
        item_id = r.json()["id"]

        detail = (await client.get(f"/invoices/{inv['id']}")).json()
        assert detail["total_amount"] == 4300
        assert detail["room_number"] == "101"
        assert [i["description"] for i in detail["items"]] == ["Key copy"]

        r = await client.delete(f"/invoices/{inv['id']}/items/{item_id}")
        assert r.status_code == 200
        r = await client.delete(f"/invoices/{inv['id']}/items/{item_id}")
        assert r.status_code == 200
        assert (await client.get(f"/invoices/{inv['id']}")).json()["total_amount"] == 4180

    async def test_list_with_filters(self, client, room):
        await client.post("/invoices/generate", json={"room_id": room.id, "month": 3, "year": 2025})
        r = await client.get("/invoices", params={"filter": '{"status": "DRAFT", "month": 3}', "range": "[0,9]"})
        assert r.status_code == 206
        assert r.headers["Content-Range"] == "items 0-0/1"
        assert len(r.json()) == 1

        r = await client.get("/invoices", params={"filter": '{"status": ["PAID"]}'})
        assert r.json() == []

    async def test_settle_insufficient_deposit(self, client, factory):
        await factory.dorm_config()
        room, _ = await factory.billable_room(deposit=10)
        inv = (await client.post("/invoices/generate", json={"room_id": room.id, "month": 3, "year": 2025})).json()

        r = await client.post(f"/invoices/{inv['id']}/settle", json={"method": "DEPOSIT"})
        assert r.status_code == 402

        r = await client.post(f"/invoices/{inv['id']}/settle", json={"method": "CASH"})
        assert r.status_code == 200
        assert r.json()["status"] == "PAID"

        r = await client.post(f"/invoices/{inv['id']}/cancel")
        assert r.status_code == 409

    async def test_send_and_cancel(self, client, room, dispatcher):
        inv = (await client.post("/invoices/generate", json={"room_id": room.id, "month": 3, "year": 2025})).json()
        r = await client.post("/invoices/send-all", json={"month": 3, "year": 2025})
        assert r.json()["notified"] == 1
        assert len(dispatcher.billing) == 1

        r = await client.delete(f"/invoices/{inv['id']}")
        assert r.status_code == 200
        assert (await client.get(f"/invoices/{inv['id']}")).json()["status"] == "CANCELLED"

    async def test_unknown_invoice(self, client):
        assert (await client.get("/invoices/not-a-uuid")).status_code == 404
        assert (await client.post("/invoices/not-a-uuid/cancel")).json() == {"ok": True, "status": None}

    async def test_malformed_range_falls_back(self, client, room):
        await client.post("/invoices/generate", json={"room_id": room.id, "month": 3, "year": 2025})
        r = await client.get("/invoices", params={"range": "[0,", "sort": "nope"})
        assert r.status_code == 206
        assert r.headers["Content-Range"] == "items 0-0/1"


class TestPaymentsApi:
    async def test_record_verify_flow(self, client, room, dispatcher):
        inv = (await client.post("/invoices/generate", json={"room_id": room.id, "month": 3, "year": 2025})).json()

        r = await client.post(f"/invoices/{inv['id']}/payments", json={"amount": 4180, "reference": "TX-778"})
        assert r.status_code == 201
        payment = r.json()
        assert payment["status"] == "PENDING" and payment["source"] == "TX-778"

        r = await client.post(f"/invoices/{inv['id']}/payments/{payment['id']}/verify", json={"amount": 100})
        assert r.json()["status"] == "PENDING"

        r = await client.post(f"/invoices/{inv['id']}/payments/{payment['id']}/verify")
        assert r.status_code == 200
        assert r.json()["status"] == "VERIFIED" and r.json()["paid_at"] is not None
        assert (await client.get(f"/invoices/{inv['id']}")).json()["status"] == "PAID"
        assert len(dispatcher.settlement) == 1

        r = await client.post(f"/invoices/{inv['id']}/payments/{payment['id']}/reject")
        assert r.status_code == 409

    async def test_reject_and_delete(self, client, room, dispatcher):
        inv = (await client.post("/invoices/generate", json={"room_id": room.id, "month": 3, "year": 2025})).json()
        first = (await client.post(f"/invoices/{inv['id']}/payments", json={"amount": 50, "reference": "TX-1"})).json()
        second = (await client.post(f"/invoices/{inv['id']}/payments", json={"amount": 60, "reference": "TX-2"})).json()

        r = await client.post(f"/invoices/{inv['id']}/payments/{first['id']}/reject")
        assert r.json()["status"] == "REJECTED"
        r = await client.delete(f"/invoices/{inv['id']}/payments/{second['id']}")
        assert r.json() == {"ok": True}

        listed = (await client.get(f"/invoices/{inv['id']}/payments")).json()
        assert {p["status"] for p in listed} == {"REJECTED"}
        assert len(dispatcher.rejected) == 2
        assert (await client.get(f"/invoices/{inv['id']}")).json()["status"] == "DRAFT"

    async def test_payment_validation(self, client, room):
        inv = (await client.post("/invoices/generate", json={"room_id": room.id, "month": 3, "year": 2025})).json()
        r = await client.post(f"/invoices/{inv['id']}/payments", json={"amount": 0, "reference": "TX"})
        assert r.status_code == 422
        r = await client.post(f"/invoices/{inv['id']}/payments/not-a-uuid/verify")
        assert r.status_code == 404


class TestSettingsApi:
    async def test_auto_send_config(self, client):
        r = await client.get("/invoices/auto-send/config")
        assert r.status_code == 200
        assert r.json()["enabled"] is False

        r = await client.post("/invoices/auto-send/config", json={"enabled": True, "hour": 30})
        assert r.json()["enabled"] is True
        assert r.json()["hour"] == 23

    async def test_dorm_config_roundtrip(self, client):
        r = await client.put("/settings/dorm-config", json={
            "water_fee_method": "METER_USAGE_TIERED",
            "water_tiered_rates": [{"upto_unit": 10, "unit_price": 5}, {"unit_price": 8}],
            "monthly_due_day": 10,
        })
        assert r.status_code == 200
        assert r.json()["water_fee_method"] == "METER_USAGE_TIERED"

        eff = (await client.get("/settings/dorm-config/effective")).json()
        assert eff["monthly_due_day"] == 10
        assert len(eff["water"]["tiers"]) == 2

    async def test_meter_reading_upsert_and_delete(self, client, factory):
        room = await factory.room()
        payload = {"room_id": room.id, "month": 4, "year": 2025, "water_reading": 5, "electric_reading": 50}
        first = (await client.put("/meter-readings", json=payload)).json()
        second = (await client.put("/meter-readings", json={**payload, "water_reading": 7})).json()
        assert first["id"] == second["id"]
        assert second["water_reading"] == 7

        assert (await client.delete(f"/meter-readings/{first['id']}")).status_code == 200
        assert (await client.get(f"/meter-readings/{first['id']}")).status_code == 404

    async def test_activity_log(self, client, room):
        await client.post("/invoices/generate", json={"room_id": room.id, "month": 3, "year": 2025})
        r = await client.get("/activity", params={"range": "[0,49]"})
        assert r.status_code == 206
        assert any(row["action"] == "GENERATE" for row in r.json())
