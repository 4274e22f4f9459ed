import json, pathlib
import pytest, respx, httpx
from clinic_scheduler.errors import StorageConflict
from clinic_scheduler.models import Appointment
from clinic_scheduler import client as cl


# inject dummy credentials so httpx.BasicAuth doesn't choke during mocked calls
cl._CLIENT_ID = "dummy"
cl._CLIENT_SECRET = "dummy"

FIX = pathlib.Path(__file__).parent / "fixtures"
TOKEN_RESP = {"access_token": "fake", "expires_in": 3600}
COLLECTION_URL = f"{cl._BASE_URL}/collections/appointments"


def _reset_token():
    cl._TOKEN_CACHE.update(token=None, exp=0)


@pytest.mark.asyncio
async def test_read_collection():
    _reset_token()
    payload = json.loads((FIX / "appointments_get.json").read_text())
    with respx.mock() as m:
        m.post(cl._TOKEN_URL).respond(200, json=TOKEN_RESP)
        m.get(COLLECTION_URL).respond(200, json=payload, headers={"ETag": '"v7"'})

        records = await cl.HttpStorage().read("appointments")
        appt = Appointment.model_validate(records[0])
        assert appt.id == "APT100"
        assert appt.appointment_date.isoformat() == "2026-10-26"
        assert str(appt.appointment_time) == "09:00 AM"


@pytest.mark.asyncio
async def test_read_missing_collection_is_empty():
    _reset_token()
    with respx.mock() as m:
        m.post(cl._TOKEN_URL).respond(200, json=TOKEN_RESP)
        m.get(f"{cl._BASE_URL}/collections/blockedDates").respond(404)

        assert await cl.HttpStorage().read("blockedDates") == []


@pytest.mark.asyncio
async def test_write_sends_version_from_read():
    _reset_token()
    payload = json.loads((FIX / "appointments_get.json").read_text())
    with respx.mock() as m:
        m.post(cl._TOKEN_URL).respond(200, json=TOKEN_RESP)
        m.get(COLLECTION_URL).respond(200, json=payload, headers={"ETag": '"v7"'})
        put = m.put(COLLECTION_URL).respond(200, json={}, headers={"ETag": '"v8"'})

        storage = cl.HttpStorage()
        records = await storage.read("appointments")
        records[0]["status"] = "cancelled"
        await storage.write("appointments", records)

        request = put.calls.last.request
        assert request.headers["If-Match"] == '"v7"'
        assert request.headers["Authorization"] == "Bearer fake"
        assert json.loads(request.content)["records"][0]["status"] == "cancelled"
        # token fetched once and reused
        assert sum(1 for call in m.calls if call.request.method == "POST") == 1


@pytest.mark.asyncio
async def test_stale_write_raises_conflict():
    _reset_token()
    payload = json.loads((FIX / "appointments_get.json").read_text())
    with respx.mock() as m:
        m.post(cl._TOKEN_URL).respond(200, json=TOKEN_RESP)
        m.get(COLLECTION_URL).respond(200, json=payload, headers={"ETag": '"v7"'})
        m.put(COLLECTION_URL).respond(412)

        storage = cl.HttpStorage()
        records = await storage.read("appointments")
        with pytest.raises(StorageConflict):
            await storage.write("appointments", records)


@pytest.mark.asyncio
async def test_server_errors_propagate():
    _reset_token()
    with respx.mock() as m:
        m.post(cl._TOKEN_URL).respond(200, json=TOKEN_RESP)
        m.get(COLLECTION_URL).respond(503)

        with pytest.raises(httpx.HTTPStatusError):
            await cl.HttpStorage().read("appointments")


@pytest.mark.asyncio
async def test_short_lived_token_is_fetched_again():
    _reset_token()
    with respx.mock() as m:
        token = m.post(cl._TOKEN_URL).respond(200, json={"access_token": "brief", "expires_in": 30})
        m.get(COLLECTION_URL).respond(200, json={"records": []})

        storage = cl.HttpStorage()
        await storage.read("appointments")
        await storage.read("appointments")
        # a lifetime inside the refresh margin is never reused
        assert token.call_count == 2
