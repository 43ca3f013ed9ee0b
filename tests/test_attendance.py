from datetime import timedelta

import pytest

from conftest import WORK_DAY, at
from staffhub.errors import ConflictError, ForbiddenError, NotFoundError, PreconditionError
from staffhub.models.models import Attendance, SystemConfig
from staffhub.services import attendance as svc
from staffhub.services.time_rules import ensure_utc


def _open_record(db, staff, day=WORK_DAY, clock_in=None, **fields):
    att = Attendance(
        staff_id=staff.id,
        attendance_date=day,
        clock_in=clock_in or at(9, 0, day),
        **fields,
    )
    db.add(att)
    db.commit()
    db.refresh(att)
    return att


def test_clock_in_opens_record_with_assignment_defaults(db, staff, supervisor, zone, assignment):
    att = svc.clock_in(db, staff, lat=zone.center_lat, lng=zone.center_lng, photo_url="s3://in.jpg", now=at(9, 0))
    assert att.clock_out is None
    assert att.attendance_date == WORK_DAY
    assert att.approval_status == "pending"
    assert att.status == "Present"
    assert att.supervisor_id == supervisor.id
    assert att.zone_id == zone.id
    assert att.location_id == zone.location_id
    assert att.clocked_in_by == staff.id
    assert att.clock_in_inside_geofence is True
    assert not att.is_override


def test_clock_in_after_grace_period_is_late(db, staff):
    att = svc.clock_in(db, staff, now=at(9, 16))
    assert att.status == "Late"


def test_grace_period_comes_from_system_config(db, staff):
    db.add(SystemConfig(config_key="default", grace_period_minutes=30, min_clock_interval_hours=6))
    db.commit()
    assert svc.clock_in(db, staff, now=at(9, 25)).status == "Present"


def test_clock_in_outside_geofence_is_accepted_but_flagged(db, staff, zone, assignment):
    att = svc.clock_in(db, staff, lat=zone.center_lat + 0.05, lng=zone.center_lng, now=at(9, 0))
    assert att.clock_in_inside_geofence is False


def test_clock_in_without_coordinates_leaves_geofence_unknown(db, staff, assignment):
    assert svc.clock_in(db, staff, now=at(9, 0)).clock_in_inside_geofence is None


def test_second_clock_in_same_day_conflicts(db, staff):
    svc.clock_in(db, staff, now=at(9, 0))
    with pytest.raises(ConflictError) as exc:
        svc.clock_in(db, staff, now=at(18, 0))
    assert exc.value.code == ConflictError.ALREADY_CLOCKED_IN


def test_open_record_from_yesterday_blocks_clock_in(db, staff):
    yesterday = WORK_DAY - timedelta(days=1)
    _open_record(db, staff, day=yesterday, clock_in=at(21, 0, yesterday))
    with pytest.raises(ConflictError) as exc:
        svc.clock_in(db, staff, now=at(9, 0))
    assert exc.value.code == ConflictError.ALREADY_CLOCKED_IN


def test_minimum_interval_between_clock_ins(db, staff):
    svc.clock_in(db, staff, now=at(9, 0))
    svc.clock_out(db, staff, now=at(10, 0))
    with pytest.raises(ConflictError) as exc:
        svc.clock_in(db, staff, now=at(14, 59))
    assert exc.value.code == ConflictError.CLOCK_INTERVAL
    assert "already closed" in exc.value.message
    assert svc.clock_in(db, staff, now=at(15, 0)).clock_out is None


def test_staff_cannot_clock_in_someone_else(db, staff, make_user):
    other = make_user("other.staff")
    with pytest.raises(ForbiddenError):
        svc.clock_in(db, staff, staff_id=str(other.id), now=at(9, 0))


def test_supervisor_override_clock_in_and_out(db, staff, supervisor):
    att = svc.clock_in(db, supervisor, staff_id=str(staff.id), now=at(9, 0))
    assert att.staff_id == staff.id
    assert att.is_override
    assert att.clocked_in_by == supervisor.id
    assert att.supervisor_id == supervisor.id

    closed = svc.clock_out(db, supervisor, staff_id=str(staff.id), now=at(17, 0))
    assert closed.clocked_out_by == supervisor.id


def test_override_for_unknown_staff(db, supervisor):
    with pytest.raises(NotFoundError):
        svc.clock_in(db, supervisor, staff_id="6f0c9a8e-8d0b-4c47-9d0c-1f1f1f1f1f1f", now=at(9, 0))


def test_clock_out_closes_open_record(db, staff, zone, assignment):
    svc.clock_in(db, staff, now=at(9, 0))
    att = svc.clock_out(db, staff, lat=zone.center_lat, lng=zone.center_lng, photo_url="s3://out.jpg", now=at(17, 5))
    assert ensure_utc(att.clock_out) == at(17, 5)
    assert att.clocked_out_by == staff.id
    assert att.clock_out_photo_url == "s3://out.jpg"
    assert att.clock_out_inside_geofence is True


def test_clock_out_without_open_record(db, staff):
    with pytest.raises(PreconditionError) as exc:
        svc.clock_out(db, staff, now=at(17, 0))
    assert exc.value.code == PreconditionError.NO_ACTIVE_CLOCK_IN


def test_clock_out_covers_overnight_record(db, staff):
    yesterday = WORK_DAY - timedelta(days=1)
    _open_record(db, staff, day=yesterday, clock_in=at(22, 0, yesterday))
    att = svc.clock_out(db, staff, now=at(6, 0))
    assert att.attendance_date == yesterday
    assert att.clock_out is not None


def test_clock_out_losing_the_race_reports_already_clocked_out(db, staff, monkeypatch):
    att = _open_record(db, staff)
    stale = db.get(Attendance, att.id)
    assert svc.close_attendance(db, att.id, at(17, 30))
    monkeypatch.setattr(svc, "find_open_attendance", lambda *a, **k: stale)
    with pytest.raises(PreconditionError) as exc:
        svc.clock_out(db, staff, now=at(18, 0))
    assert exc.value.code == PreconditionError.ALREADY_CLOCKED_OUT


def test_concurrent_clock_outs_only_one_writes(session_factory, db, staff):
    att = _open_record(db, staff)
    manual = session_factory()
    sweep = session_factory()
    try:
        # Both writers saw the record open
        assert manual.get(Attendance, att.id).clock_out is None
        assert sweep.get(Attendance, att.id).clock_out is None

        assert svc.close_attendance(sweep, att.id, at(17, 30), clocked_out_by=None, require_unflagged=True)
        assert not svc.close_attendance(manual, att.id, at(17, 45), clocked_out_by=staff.id)
    finally:
        manual.close()
        sweep.close()

    db.expire_all()
    final = db.get(Attendance, att.id)
    assert ensure_utc(final.clock_out) == at(17, 30)
    assert final.clocked_out_by is None


def test_flagged_records_are_not_closed_by_unflagged_cas(db, staff):
    att = _open_record(db, staff, double_duty=True)
    assert not svc.close_attendance(db, att.id, at(17, 30), require_unflagged=True)
    assert svc.close_attendance(db, att.id, at(19, 0), clocked_out_by=staff.id)


def test_overtime_full_cycle(db, staff, supervisor, manager):
    att = _open_record(db, staff)

    att = svc.mark_extra_duty(db, supervisor, att.id, "overtime")
    assert att.overtime is True
    assert att.overtime_approval_status == "pending"
    assert att.marked_by_supervisor == supervisor.id
    assert att.clock_out is None

    att = svc.approve_extra_duty(db, manager, att.id, "overtime")
    assert att.overtime_approval_status == "manager_approved"
    assert att.approved_by_manager == manager.id

    att = svc.reject_extra_duty(db, manager, att.id, "overtime", reason="Not needed")
    assert att.overtime is False
    assert att.overtime_approval_status == "rejected"
    assert att.rejected_by == manager.id
    assert att.rejection_reason == "Not needed"


def test_remarking_after_rejection_is_allowed(db, staff, supervisor, manager):
    att = _open_record(db, staff)
    svc.mark_extra_duty(db, supervisor, att.id, "double_duty")
    svc.reject_extra_duty(db, manager, att.id, "double_duty")
    att = svc.mark_extra_duty(db, supervisor, att.id, "double_duty")
    assert att.double_duty is True
    assert att.double_duty_approval_status == "pending"


def test_overtime_and_double_duty_are_independent(db, staff, supervisor):
    att = _open_record(db, staff)
    svc.mark_extra_duty(db, supervisor, att.id, "overtime")
    att = svc.mark_extra_duty(db, supervisor, att.id, "double_duty")
    assert att.overtime and att.double_duty

    pending = svc.list_pending_extra_duty(db)
    assert [row["id"] for row in pending] == [str(att.id)]


def test_record_approval_can_be_overwritten(db, staff, manager):
    att = _open_record(db, staff)
    att = svc.set_approval_status(db, manager, att.id, "rejected", reason="Outside geofence")
    assert att.approval_status == "rejected"
    assert att.rejection_reason == "Outside geofence"
    att = svc.set_approval_status(db, manager, att.id, "approved")
    assert att.approval_status == "approved"
    assert att.approved_by == manager.id


def test_unknown_record(db, manager):
    with pytest.raises(NotFoundError):
        svc.set_approval_status(db, manager, "not-a-uuid", "approved")


def test_pending_list_is_joined(db, staff, supervisor, zone, assignment):
    svc.clock_in(db, staff, now=at(9, 0))
    rows = svc.list_pending_approvals(db)
    assert len(rows) == 1
    assert rows[0]["staff_name"] == staff.full_name
    assert rows[0]["supervisor_name"] == supervisor.full_name
    assert rows[0]["zone_name"] == zone.name
    assert rows[0]["location_name"] == "Head Office"


def test_attendance_with_photos_filters_out_photo_less_records(db, staff, make_user):
    other = make_user("other.staff")
    _open_record(db, staff, clock_in_photo_url="s3://a.jpg")
    _open_record(db, other)
    rows = svc.list_attendance_with_photos(db)
    assert [r["staff_id"] for r in rows] == [str(staff.id)]


def test_delete_is_hard(db, staff):
    att = _open_record(db, staff)
    svc.delete_attendance(db, att.id)
    assert db.query(Attendance).count() == 0
