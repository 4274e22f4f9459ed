from datetime import timedelta
import pytest
from clinic_scheduler import cascade
from clinic_scheduler.errors import ValidationError
from clinic_scheduler.models import AppointmentStatus as S, ScheduleUpdate, Weekday
from factories import NOW, TODAY, make_appointment, make_schedule


def booked_schedule():
    schedule = make_schedule(current_bookings=3, reserved_slots=[1, 8, 9])
    apts = [
        make_appointment(id="A1", patient_id="P1"),
        make_appointment(id="A2", patient_id="P2", appointment_date=TODAY + timedelta(days=7)),
        make_appointment(id="A3", patient_id="P3", status=S.COMPLETED),
        make_appointment(id="A4", patient_id="P4", schedule_id="SCH2"),
    ]
    return schedule, apts


def test_timing_edit_cancels_pending_and_notifies_each():
    schedule, apts = booked_schedule()
    changes = ScheduleUpdate(consultation_day=Weekday.TUESDAY)
    assert len(cascade.affected_appointments(apts, "SCH1")) == 2

    result = cascade.apply_edit(schedule, changes, apts, NOW)

    assert {a.id for a in result.cancelled} == {"A1", "A2"}
    assert [a.status for a in apts] == [S.CANCELLED, S.CANCELLED, S.COMPLETED, S.PENDING]
    assert all(a.cancel_reason == "schedule_changed" for a in result.cancelled)
    assert [n.patient_id for n in result.notifications] == ["P1", "P2"]
    assert all(n.type == "schedule_change" and not n.read for n in result.notifications)
    assert "Oct 19, 2026" in result.notifications[0].message
    assert "Dr. Perera" in result.notifications[0].message
    assert result.schedule.consultation_day == Weekday.TUESDAY
    assert result.schedule.current_bookings == 1


def test_edit_without_timing_change_has_no_side_effects():
    schedule, apts = booked_schedule()
    result = cascade.apply_edit(schedule, ScheduleUpdate(hospital_name="Lake Hospital", time_start="09:00 AM"), apts, NOW)
    assert result.cancelled == [] and result.notifications == []
    assert all(a.status != S.CANCELLED for a in apts)
    assert result.schedule.hospital_name == "Lake Hospital"
    assert result.schedule.updated_at == NOW


def test_capacity_edit_drops_reserved_slots_beyond_total():
    schedule, apts = booked_schedule()
    result = cascade.apply_edit(schedule, ScheduleUpdate(max_patients=6), apts, NOW)
    assert result.schedule.reserved_slots == [1]
    assert result.cancelled == []
    # original left untouched
    assert schedule.reserved_slots == [1, 8, 9]


def test_edit_rejects_end_before_start():
    schedule, apts = booked_schedule()
    with pytest.raises(ValidationError):
        cascade.apply_edit(schedule, ScheduleUpdate(time_end="08:00 AM"), apts, NOW)
    assert all(a.status != S.CANCELLED for a in apts)


def test_delete_cascades_unconditionally():
    schedule, apts = booked_schedule()
    result = cascade.apply_delete(schedule, apts, NOW)
    assert {a.id for a in result.cancelled} == {"A1", "A2"}
    assert len(result.notifications) == 2


def test_block_date_cancels_doctor_appointments_that_day():
    _, apts = booked_schedule()
    apts.append(make_appointment(id="A5", patient_id="P5", doctor_id="DOC2"))
    result = cascade.apply_block_date("DOC1", TODAY, "Conference", apts, NOW)
    assert {a.id for a in result.cancelled} == {"A1", "A4"}
    assert all(a.cancel_reason == "date_blocked" for a in result.cancelled)
    assert "Reason: Conference" in result.notifications[0].message


def test_block_date_needs_reason():
    with pytest.raises(ValidationError):
        cascade.apply_block_date("DOC1", TODAY, "  ", [], NOW)


def test_validate_schedule_reserved_range():
    with pytest.raises(ValidationError):
        cascade.validate_schedule(make_schedule(max_patients=5, reserved_slots=[0, 2]))
    assert cascade.validate_schedule(make_schedule(max_patients=5, reserved_slots=[5]))


def test_edit_can_clear_emergency_contact():
    schedule, apts = booked_schedule()
    result = cascade.apply_edit(schedule, ScheduleUpdate(emergency_contact=None), apts, NOW)
    assert result.schedule.emergency_contact is None

    # fields left out, or sent as null where a value is required, stay as they were
    result = cascade.apply_edit(schedule, ScheduleUpdate(hospital_name=None, max_patients=None), apts, NOW)
    assert result.schedule.emergency_contact == "0771234567"
    assert result.schedule.hospital_name == schedule.hospital_name
    assert result.schedule.max_patients == 10


def test_edit_with_stray_reserved_slots_is_rejected():
    schedule, apts = booked_schedule()
    with pytest.raises(ValidationError):
        cascade.apply_edit(schedule, ScheduleUpdate(reserved_slots=[3, 40]), apts, NOW)
    with pytest.raises(ValidationError):
        cascade.apply_edit(schedule, ScheduleUpdate(max_patients=6, reserved_slots=[2, 8]), apts, NOW)

    result = cascade.apply_edit(schedule, ScheduleUpdate(reserved_slots=[4, 2, 4]), apts, NOW)
    assert result.schedule.reserved_slots == [2, 4]


def test_edit_keeping_total_leaves_reserved_slots_alone():
    schedule, apts = booked_schedule()
    result = cascade.apply_edit(schedule, ScheduleUpdate(hospital_name="Lake Hospital", max_patients=10), apts, NOW)
    assert result.schedule.reserved_slots == [1, 8, 9]
