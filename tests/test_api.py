import io
import zipfile

from fastapi.testclient import TestClient

from conftest import auth_headers
from staffhub.routes import system as system_routes


KML = """<?xml version="1.0" encoding="UTF-8"?>
<kml xmlns="http://www.opengis.net/kml/2.2"><Document>
  <Placemark><name>Yard</name><Point><coordinates>74.36,31.52,0</coordinates></Point></Placemark>
</Document></kml>
"""


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["data"]["status"] == "ok"


def test_login_and_me(client, staff):
    resp = client.post("/api/auth/login", json={"identifier": "staff.one", "password": "secret123"})
    assert resp.status_code == 200
    token = resp.json()["data"]["access_token"]

    me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.status_code == 200
    assert me.json()["data"]["username"] == "staff.one"
    assert me.json()["data"]["roles"] == ["staff"]


def test_login_with_bad_password(client, staff):
    resp = client.post("/api/auth/login", json={"identifier": "staff.one", "password": "wrong"})
    assert resp.status_code == 401
    assert resp.json() == {"success": False, "error": "Invalid credentials"}


def test_requests_without_token_are_rejected(client):
    resp = client.get("/api/attendance")
    assert resp.status_code == 401
    assert resp.json()["success"] is False


def test_clock_in_and_out_over_http(client, staff, zone, assignment):
    headers = auth_headers(staff)
    resp = client.post(
        "/api/attendance/clock-in",
        json={"latitude": zone.center_lat, "longitude": zone.center_lng},
        headers=headers,
    )
    assert resp.status_code == 201
    body = resp.json()
    assert body["success"] is True
    assert body["data"]["clock_out"] is None
    assert body["data"]["zone_name"] == "Main Gate"

    again = client.post("/api/attendance/clock-in", json={}, headers=headers)
    assert again.status_code == 409
    assert again.json()["code"] == "already_clocked_in"

    current = client.get("/api/attendance/current", headers=headers)
    assert current.json()["data"]["id"] == body["data"]["id"]

    out = client.post("/api/attendance/clock-out", json={}, headers=headers)
    assert out.status_code == 200
    assert out.json()["data"]["clock_out"] is not None

    twice = client.post("/api/attendance/clock-out", json={}, headers=headers)
    assert twice.status_code == 412
    assert twice.json()["code"] == "no_active_clock_in"


def test_staff_only_sees_own_attendance(client, staff, make_user):
    other = make_user("other.staff")
    client.post("/api/attendance/clock-in", json={}, headers=auth_headers(other))

    resp = client.get("/api/attendance", params={"staffId": str(other.id)}, headers=auth_headers(staff))
    assert resp.status_code == 200
    assert resp.json()["data"] == []


def test_staff_cannot_reach_approvals(client, staff):
    resp = client.get("/api/approvals/pending", headers=auth_headers(staff))
    assert resp.status_code == 403
    assert resp.json()["success"] is False


def test_supervisor_cannot_approve_records(client, staff, supervisor, manager):
    created = client.post("/api/attendance/clock-in", json={}, headers=auth_headers(staff)).json()["data"]
    path = f"/api/approvals/attendance/{created['id']}/approve"

    assert client.put(path, headers=auth_headers(supervisor)).status_code == 403
    resp = client.put(path, headers=auth_headers(manager))
    assert resp.status_code == 200
    assert resp.json()["data"]["approval_status"] == "approved"


def test_unknown_record_uses_error_envelope(client, manager):
    resp = client.put("/api/approvals/attendance/not-a-real-id/approve", headers=auth_headers(manager))
    assert resp.status_code == 404
    assert resp.json()["success"] is False
    assert resp.json()["code"] == "not_found"


def test_update_location_requires_numbers(client, staff):
    resp = client.post(
        "/api/live-tracking/update-location",
        json={"latitude": "31.5", "longitude": 74.3},
        headers=auth_headers(staff),
    )
    assert resp.status_code == 422
    assert resp.json()["code"] == "invalid_field"


def test_update_location_without_clock_in(client, staff):
    resp = client.post(
        "/api/live-tracking/update-location",
        json={"latitude": 31.5, "longitude": 74.3},
        headers=auth_headers(staff),
    )
    assert resp.status_code == 412
    assert resp.json()["code"] == "no_active_clock_in"


def test_leave_request_flow(client, staff, supervisor, manager):
    resp = client.post(
        "/api/leave",
        json={"leave_type": "sick", "start_date": "2024-05-06", "end_date": "2024-05-06",
              "supervisor_id": str(supervisor.id)},
        headers=auth_headers(staff),
    )
    assert resp.status_code == 201
    request_id = resp.json()["data"]["id"]
    assert resp.json()["data"]["staff_name"] == staff.full_name

    for not_allowed in (staff, supervisor):
        assert client.put(f"/api/leave/{request_id}/status", json={"status": "approved"},
                          headers=auth_headers(not_allowed)).status_code == 403

    decided = client.put(f"/api/leave/{request_id}/status", json={"status": "approved"},
                         headers=auth_headers(manager))
    assert decided.status_code == 200
    assert decided.json()["data"]["status"] == "approved"
    assert decided.json()["data"]["staff_name"] == staff.full_name
    assert decided.json()["data"]["approved_by_name"] == manager.full_name

    again = client.put(f"/api/leave/{request_id}/status", json={"status": "rejected"},
                       headers=auth_headers(manager))
    assert again.status_code == 409
    assert again.json()["code"] == "leave_already_decided"


def test_kmz_upload_imports_locations(client, admin):
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w") as zf:
        zf.writestr("doc.kml", KML)

    resp = client.post(
        "/api/kmz/upload",
        files={"kmzFile": ("site.kmz", buf.getvalue(), "application/vnd.google-earth.kmz")},
        data={"importAs": "locations"},
        headers=auth_headers(admin),
    )
    assert resp.status_code == 200
    body = resp.json()
    assert len(body["data"]["imported"]) == 1

    listed = client.get("/api/locations", headers=auth_headers(admin)).json()["data"]
    assert [loc["name"] for loc in listed] == ["Yard"]


def test_kmz_upload_rejects_other_files(client, admin):
    resp = client.post(
        "/api/kmz/upload",
        files={"kmzFile": ("site.gpx", b"<gpx/>", "application/xml")},
        headers=auth_headers(admin),
    )
    assert resp.status_code == 400
    assert resp.json()["code"] == "unsupported_file_type"


def test_system_config_roundtrip(client, staff, admin):
    assert client.put("/api/system/config", json={"grace_period_minutes": 5},
                      headers=auth_headers(staff)).status_code == 403

    resp = client.put("/api/system/config", json={"grace_period_minutes": 5}, headers=auth_headers(admin))
    assert resp.status_code == 200
    read = client.get("/api/system/config", headers=auth_headers(staff)).json()["data"]
    assert read["grace_period_minutes"] == 5
    assert read["min_clock_interval_hours"] == 6


def test_kmz_upload_with_infinite_coordinate_imports_the_rest(client, admin):
    kml = """<kml xmlns="http://www.opengis.net/kml/2.2"><Document><Placemark>
      <name>Yard</name>
      <Polygon><outerBoundaryIs><LinearRing><coordinates>
        74.0,31.0 inf,31.0 74.01,31.01 74.0,31.01
      </coordinates></LinearRing></outerBoundaryIs></Polygon>
    </Placemark></Document></kml>"""
    resp = client.post(
        "/api/kmz/upload",
        files={"kmzFile": ("site.kml", kml.encode(), "application/vnd.google-earth.kml+xml")},
        data={"importAs": "locations"},
        headers=auth_headers(admin),
    )
    assert resp.status_code == 200
    assert len(resp.json()["data"]["imported"]) == 1


def test_location_with_degenerate_ring_is_rejected(client, admin):
    resp = client.post(
        "/api/locations",
        json={"name": "Depot", "boundaries": [[74.0, 31.0], [74.01, 31.0], [74.0, 31.0]], "radius_meters": 5000},
        headers=auth_headers(admin),
    )
    assert resp.status_code == 422
    assert resp.json()["success"] is False


def test_unexpected_errors_use_the_envelope(client, staff, monkeypatch):
    def boom(db):
        raise RuntimeError("config table corrupted")

    monkeypatch.setattr(system_routes, "get_system_config", boom)
    # Starlette re-raises after the handler responds unless told not to
    safe_client = TestClient(client.app, raise_server_exceptions=False)
    resp = safe_client.get("/api/system/config", headers=auth_headers(staff))
    assert resp.status_code == 500
    assert resp.json() == {"success": False, "error": "Internal server error", "code": "internal_error"}
