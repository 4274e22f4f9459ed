from datetime import timedelta
import pytest
from fastapi.testclient import TestClient
from clinic_scheduler.api import app, get_service
from clinic_scheduler.service import SchedulingService
from clinic_scheduler.storage import Collection, InMemoryStorage
from factories import NOW, TODAY, make_appointment, make_schedule

NEXT_MONDAY = (TODAY + timedelta(days=7)).isoformat()


@pytest.fixture
def client():
    storage = InMemoryStorage({
        Collection.SCHEDULES: [
            make_schedule().to_record(),
            make_schedule(id="SCH2", max_patients=2, reserved_slots=[1], current_bookings=1).to_record(),
            make_schedule(id="SCH3", time_start="08:15 AM").to_record(),
        ],
        Collection.APPOINTMENTS: [make_appointment(id="A1", patient_id="P7").to_record()],
    })
    service = SchedulingService(storage, clock=lambda: NOW)
    app.dependency_overrides[get_service] = lambda: service
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_book_and_list(client):
    resp = client.post("/book", json={"patient_id": "P1", "schedule_id": "SCH1", "appointment_date": NEXT_MONDAY})
    assert resp.status_code == 201
    body = resp.json()
    assert body["status"] == "pending"
    assert body["appointmentTime"] == "09:00 AM"

    resp = client.get("/appointments", params={"patient_id": "P1"})
    assert [a["id"] for a in resp.json()] == [body["id"]]


def test_full_schedule_returns_409(client):
    resp = client.post("/book", json={"patient_id": "P1", "schedule_id": "SCH2", "appointment_date": NEXT_MONDAY})
    assert resp.status_code == 409
    assert resp.json()["detail"]["code"] == "full"


def test_same_day_closed_includes_contact(client):
    resp = client.post("/book", json={"patient_id": "P1", "schedule_id": "SCH3", "appointment_date": TODAY.isoformat()})
    assert resp.status_code == 409
    assert resp.json()["detail"]["emergency_contact"] == "0771234567"


def test_unknown_schedule_is_404(client):
    assert client.get("/schedules/NOPE/capacity").status_code == 404


def test_capacity_and_availability(client):
    cap = client.get("/schedules/SCH2/capacity").json()
    assert cap == {"total": 2, "reserved": 1, "bookable": 1, "booked": 1, "available": 0}

    offered = client.get("/availability", params={"date": NEXT_MONDAY}).json()
    assert {o["schedule"]["id"] for o in offered} == {"SCH1", "SCH2", "SCH3"}
    assert all(o["verdict"]["bookable"] for o in offered)


def test_timing_edit_needs_confirmation(client):
    assert client.get("/schedules/SCH1/affected").json()["affected"] == 1

    resp = client.put("/schedules/SCH1", json={"consultationDay": "Friday"})
    assert resp.status_code == 409

    resp = client.put("/schedules/SCH1", params={"confirm": "true"}, json={"consultationDay": "Friday"})
    assert resp.status_code == 200
    assert resp.json() == {"schedule_id": "SCH1", "cancelled": 1, "notifications": 1}

    notes = client.get("/notifications", params={"patient_id": "P7"}).json()
    assert notes[0]["type"] == "schedule_change"


def test_capacity_edit_needs_no_confirmation(client):
    resp = client.put("/schedules/SCH1", json={"maxPatients": 20})
    assert resp.status_code == 200
    assert resp.json()["cancelled"] == 0


def test_cancel_twice_conflicts(client):
    assert client.post("/cancel", json={"appointment_id": "A1"}).json()["status"] == "cancelled"
    assert client.post("/cancel", json={"appointment_id": "A1"}).status_code == 409


def test_create_schedule_rejects_bad_times(client):
    payload = {
        "doctorId": "DOC1", "hospitalName": "City Hospital", "consultationDays": ["Wednesday"],
        "timeStart": "04:00 PM", "timeEnd": "07:00 PM", "maxPatients": 25,
    }
    resp = client.post("/schedules", json=payload)
    assert resp.status_code == 201
    assert [s["consultationDay"] for s in resp.json()] == ["Wednesday"]
    assert client.post("/schedules", json={**payload, "timeEnd": "03:00 PM"}).status_code == 422
    assert client.post("/schedules", json={**payload, "timeStart": "16:00"}).status_code == 422


def test_block_date_and_delete(client):
    resp = client.post("/block-date", json={"doctor_id": "DOC1", "blocked_date": TODAY.isoformat(), "reason": "Leave"})
    assert resp.json()["cancelled"] == 1
    resp = client.delete("/schedules/SCH1")
    assert resp.json() == {"schedule_id": "SCH1", "cancelled": 0, "notifications": 0}


def test_create_schedule_for_several_days(client):
    payload = {
        "doctorId": "DOC2", "hospitalName": "Lake Hospital", "consultationDays": ["Tuesday", "Saturday"],
        "timeStart": "02:00 PM", "timeEnd": "04:00 PM", "maxPatients": 12, "reservedSlots": [1],
    }
    resp = client.post("/schedules", json=payload)
    assert resp.status_code == 201
    created = resp.json()
    assert [s["consultationDay"] for s in created] == ["Tuesday", "Saturday"]

    fetched = client.get(f"/schedules/{created[1]['id']}").json()
    assert fetched["consultationDay"] == "Saturday"
    assert fetched["reservedSlots"] == [1]
    assert client.post("/schedules", json={**payload, "consultationDays": []}).status_code == 422
