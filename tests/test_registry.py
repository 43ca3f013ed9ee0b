from types import SimpleNamespace

import pytest

from staffhub.errors import ConflictError, NotFoundError, ValidationError
from staffhub.models.models import StaffAssignment, SystemConfig
from staffhub.services import registry
from staffhub.services.system_config import get_system_config, update_system_config


RING = [[74.0, 31.0], [74.01, 31.0], [74.01, 31.01], [74.0, 31.01]]


def test_location_boundaries_are_closed_on_save(db):
    loc = registry.create_location(db, {"name": "Depot", "boundaries": RING, "radius_meters": 50})
    assert loc.boundaries[0] == loc.boundaries[-1]
    assert len(loc.boundaries) == 5


def test_location_needs_three_boundary_points(db):
    with pytest.raises(ValidationError):
        registry.create_location(db, {"name": "Depot", "boundaries": RING[:2]})


@pytest.mark.parametrize("value", ["24:00", "9", "aa:bb", "12:60"])
def test_location_shift_times_must_be_hh_mm(db, value):
    with pytest.raises(ValidationError):
        registry.create_location(db, {"name": "Depot", "morning_shift_start": value})


def test_location_update_and_soft_delete(db, location):
    registry.update_location(db, location.id, {"night_shift_start": "22:00", "is_office": True})
    assert location.night_shift_start == "22:00"
    assert location.is_office

    registry.delete_location(db, location.id)
    assert registry.list_locations(db) == []
    with pytest.raises(NotFoundError):
        registry.get_location(db, location.id)
    assert registry.get_location(db, location.id, include_inactive=True).is_active is False


def test_check_point_prefers_polygon(db):
    loc = registry.create_location(db, {
        "name": "Depot", "boundaries": RING, "center_lat": 31.005, "center_lng": 74.005, "radius_meters": 50000,
    })
    outside = registry.check_point(loc, 31.2, 74.005)
    assert outside["inside"] is False
    assert outside["uses_polygon"] is True
    assert outside["distance_meters"] > 0
    assert registry.check_point(loc, 31.005, 74.005)["inside"] is True


def test_zone_requires_existing_location(db):
    with pytest.raises(NotFoundError):
        registry.create_zone(db, {
            "name": "Gate", "location_id": "00000000-0000-0000-0000-000000000000",
            "center_lat": 31.0, "center_lng": 74.0, "radius_meters": 50,
        })
    with pytest.raises(ValidationError):
        registry.create_zone(db, {"name": "Gate"})


def test_zone_listing_includes_location_name(db, zone):
    rows = registry.list_zones(db)
    assert rows[0]["location_name"] == "Head Office"
    assert registry.list_zones(db, location_id=str(zone.location_id))[0]["id"] == str(zone.id)


def test_zone_with_active_assignment_cannot_be_deleted(db, zone, assignment):
    with pytest.raises(ConflictError) as exc:
        registry.delete_zone(db, zone.id)
    assert exc.value.code == ConflictError.ZONE_HAS_ASSIGNMENTS

    registry.deactivate_assignment(db, assignment.id)
    registry.delete_zone(db, zone.id)
    assert registry.list_zones(db) == []


def test_new_assignment_replaces_the_active_one(db, staff, supervisor, manager, zone, assignment):
    newer = registry.create_assignment(db, str(staff.id), str(manager.id), str(zone.id))
    db.expire_all()
    active = db.query(StaffAssignment).filter(
        StaffAssignment.staff_id == staff.id,
        StaffAssignment.is_active.is_(True),
    ).all()
    assert [a.id for a in active] == [newer.id]
    assert newer.location_id == zone.location_id

    rows = registry.list_assignments(db)
    assert len(rows) == 1
    assert rows[0]["supervisor_name"] == manager.full_name
    assert rows[0]["zone_name"] == "Main Gate"


def test_assignment_for_unknown_supervisor(db, staff, zone):
    with pytest.raises(NotFoundError):
        registry.create_assignment(db, str(staff.id), "00000000-0000-0000-0000-000000000000", str(zone.id))


def test_system_config_defaults_then_persists(db):
    config = get_system_config(db)
    assert config.grace_period_minutes == 15
    assert config.min_clock_interval_hours == 6
    assert db.query(SystemConfig).count() == 0

    update_system_config(db, grace_period_minutes=10, other_settings={"theme": "dark"})
    update_system_config(db, other_settings={"lang": "ur"})
    stored = db.query(SystemConfig).one()
    assert stored.grace_period_minutes == 10
    assert stored.min_clock_interval_hours == 6
    assert stored.other_settings == {"theme": "dark", "lang": "ur"}


def test_system_config_rejects_negative_values(db):
    with pytest.raises(ValidationError):
        update_system_config(db, min_clock_interval_hours=-1)


def test_location_ring_with_two_distinct_vertices_is_rejected(db):
    with pytest.raises(ValidationError):
        registry.create_location(db, {
            "name": "Depot", "boundaries": [[74.0, 31.0], [74.01, 31.0], [74.0, 31.0]], "radius_meters": 5000,
        })


def test_check_point_ignores_degenerate_ring():
    site = SimpleNamespace(
        boundaries=[[74.0, 31.0], [74.01, 31.0], [74.0, 31.0]],
        center_lat=31.0, center_lng=74.0, radius_meters=5000,
    )
    result = registry.check_point(site, 31.0, 74.0)
    assert result["uses_polygon"] is False
    assert result["inside"] is True
