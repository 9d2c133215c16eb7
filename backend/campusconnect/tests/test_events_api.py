import inspect

from campusconnect.main import app
from campusconnect.auth import get_current_user

from .conftest import future_date, headers_for


def _event_payload(**overrides):
    payload = {
        "title": "Spring Hackathon",
        "description": "Twenty-four hours of building and pizza.",
        "category": "technical",
        "date": future_date().isoformat(),
        "time": "09:00",
        "location": "Innovation Lab",
        "capacity": 2,
    }
    payload.update(overrides)
    return payload


def test_all_api_routes_require_a_principal():
    for route in app.routes:
        path = getattr(route, "path", "")
        if not path.startswith("/api") or not hasattr(route, "dependant"):
            continue
        deps = [d.call for d in route.dependant.dependencies]
        assert get_current_user in deps, f"{path} missing authentication"


def test_api_handlers_run_in_the_threadpool():
    # handlers block on item locks and the entity store
    for route in app.routes:
        path = getattr(route, "path", "")
        if path.startswith("/api") and hasattr(route, "endpoint"):
            assert not inspect.iscoroutinefunction(route.endpoint), f"{path} runs on the event loop"


def test_missing_or_unknown_principal_is_unauthorized(client, make_user):
    assert client.get("/api/events").status_code == 401
    assert client.get("/api/events", headers={"X-User-Id": "nope"}).status_code == 401
    hidden = make_user(active=False)
    resp = client.get("/api/events", headers=headers_for(hidden))
    assert resp.status_code == 401


def test_student_event_lifecycle(client, make_user):
    student = make_user(department="CS")
    admin = make_user(admin=True, department="CS")
    other = make_user()

    resp = client.post("/api/events", json=_event_payload(), headers=headers_for(student))
    assert resp.status_code == 201
    event = resp.json()
    assert event["approval"] == "pending"
    assert event["spots_remaining"] == 2

    # pending events are hidden from everyone but the owner and scoped admins
    assert client.get(f"/api/events/{event['id']}", headers=headers_for(other)).status_code == 404
    assert client.get(f"/api/events/{event['id']}", headers=headers_for(student)).status_code == 200
    listing = client.get("/api/events", headers=headers_for(other)).json()
    assert listing == []

    join = client.post(f"/api/events/{event['id']}/join", headers=headers_for(other))
    assert join.status_code == 400
    assert join.json()["code"] == "not_approved"

    approve = client.post(f"/api/admin/event/{event['id']}/approve", headers=headers_for(admin))
    assert approve.status_code == 200
    assert approve.json()["approval"] == "approved"
    assert approve.json()["title"] == "Spring Hackathon"

    join = client.post(f"/api/events/{event['id']}/join", headers=headers_for(other))
    assert join.status_code == 201
    assert join.json()["user_id"] == str(other.id)

    again = client.post(f"/api/events/{event['id']}/join", headers=headers_for(other))
    assert again.status_code == 409
    assert again.json() == {"detail": "Already joined this event", "code": "already_joined"}

    count = client.get(f"/api/events/{event['id']}/participants/count", headers=headers_for(other))
    assert count.json() == {"participant_count": 1, "capacity": 2, "spots_remaining": 1}

    participants = client.get(f"/api/events/{event['id']}/participants", headers=headers_for(other))
    assert participants.status_code == 403
    participants = client.get(f"/api/events/{event['id']}/participants", headers=headers_for(student))
    assert [p["user_id"] for p in participants.json()] == [str(other.id)]

    leave = client.post(f"/api/events/{event['id']}/leave", headers=headers_for(other))
    assert leave.status_code == 200
    leave = client.post(f"/api/events/{event['id']}/leave", headers=headers_for(other))
    assert leave.status_code == 404
    assert leave.json()["code"] == "not_participant"


def test_full_event_returns_conflict(client, make_user):
    admin = make_user(admin=True)
    event = client.post("/api/events", json=_event_payload(capacity=1), headers=headers_for(admin)).json()
    assert event["approval"] == "approved"

    first = client.post(f"/api/events/{event['id']}/join", headers=headers_for(make_user()))
    assert first.status_code == 201
    second = client.post(f"/api/events/{event['id']}/join", headers=headers_for(make_user()))
    assert second.status_code == 409
    assert second.json()["code"] == "full"


def test_invalid_payload_is_rejected(client, make_user):
    student = make_user()
    resp = client.post("/api/events", json=_event_payload(title="Hi"), headers=headers_for(student))
    assert resp.status_code == 422

    resp = client.post(
        "/api/events",
        json=_event_payload(date="2001-01-01T10:00:00"),
        headers=headers_for(student),
    )
    assert resp.status_code == 400
    assert resp.json()["code"] == "validation"


def test_owner_updates_and_deletes_event(client, make_user):
    admin = make_user(admin=True, department="CS")
    attendee = make_user()
    event = client.post("/api/events", json=_event_payload(capacity=5), headers=headers_for(admin)).json()
    client.post(f"/api/events/{event['id']}/join", headers=headers_for(attendee))

    resp = client.put(
        f"/api/events/{event['id']}",
        json={"location": "Gym"},
        headers=headers_for(attendee),
    )
    assert resp.status_code == 403

    resp = client.put(f"/api/events/{event['id']}", json={"location": "Gym"}, headers=headers_for(admin))
    assert resp.status_code == 200
    assert resp.json()["location"] == "Gym"

    status = client.patch(
        f"/api/events/{event['id']}/status",
        json={"status": "ongoing"},
        headers=headers_for(admin),
    )
    assert status.json()["status"] == "ongoing"

    resp = client.delete(f"/api/events/{event['id']}", headers=headers_for(admin))
    assert resp.status_code == 200
    assert client.get(f"/api/events/{event['id']}", headers=headers_for(admin)).status_code == 404

    inbox = client.get("/api/notifications", headers=headers_for(attendee)).json()
    assert [n["type"] for n in inbox["notifications"]] == ["item_cancelled", "item_updated"]


def test_reporting_an_event(client, make_user):
    admin = make_user(admin=True)
    event = client.post("/api/events", json=_event_payload(), headers=headers_for(admin)).json()
    resp = client.post(f"/api/events/{event['id']}/report", headers=headers_for(make_user()))
    assert resp.status_code == 200
    assert resp.json()["report_count"] == 1
