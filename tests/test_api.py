"""HTTP-level tests: identity, error envelopes and the main workflows."""

import os
import sys
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("DB_URL", "sqlite://")

from portal.main import app
from portal.db.session import Base, build_engine, get_db
from portal.core.security import encode_identity_token
from portal.services.notifications import get_notifier


class RecordingNotifier:
    def __init__(self):
        self.events = []

    async def ticket_created(self, notice):
        self.events.append(("created", notice.ticket_id))

    async def ticket_assigned(self, notice):
        self.events.append(("assigned", notice.assigned_to))

    async def ticket_resolved(self, notice):
        self.events.append(("resolved", notice.resolution))

    async def ticket_reply(self, notice, author_role, content, is_internal):
        self.events.append(("reply", author_role, is_internal))

    async def phase_status_changed(self, notice):
        self.events.append(("phase", notice.old_status, notice.new_status))


@pytest.fixture()
def notifier():
    return RecordingNotifier()


@pytest.fixture()
def api(notifier):
    engine = build_engine("sqlite://")
    TestingSessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    Base.metadata.create_all(bind=engine)

    def override_get_db():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notifier] = lambda: notifier
    try:
        with TestClient(app) as client:
            yield client
    finally:
        app.dependency_overrides.clear()


def _auth(subject, role, client_id=None):
    token = encode_identity_token(subject, role=role, client_id=client_id)
    return {"Authorization": f"Bearer {token}"}


ADMIN = _auth("admin_1", "admin")
OTHER_ADMIN = _auth("admin_2", "admin")


def _create_client(api, hours=None):
    resp = api.post(
        "/api/v1/clients",
        json={"company_name": "Bayside Law", "contact_email": "office@bayside.test"},
        headers=ADMIN,
    )
    assert resp.status_code == 201, resp.text
    client_id = resp.json()["id"]
    if hours is not None:
        resp = api.patch(f"/api/v1/clients/{client_id}/support-hours", json={"hours_per_month": hours}, headers=ADMIN)
        assert resp.status_code == 200, resp.text
    return client_id


def test_health(api):
    resp = api.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"ok": True}


def test_missing_token_is_unauthorized_envelope(api):
    resp = api.get("/api/v1/tickets")
    assert resp.status_code == 401
    assert resp.json()["code"] == "unauthorized"
    assert resp.headers["WWW-Authenticate"] == "Bearer"
    assert resp.headers["X-Request-ID"]


def test_garbage_token_is_unauthorized(api):
    resp = api.get("/api/v1/tickets", headers={"Authorization": "Bearer not-a-jwt"})
    assert resp.status_code == 401


def test_ticket_workflow_over_http(api, notifier):
    client_id = _create_client(api, hours=20)
    customer = _auth("user_c", "client", client_id)

    resp = api.post("/api/v1/tickets", json={"title": "Laptop slow", "description": "Takes 10 minutes to boot"}, headers=customer)
    assert resp.status_code == 201, resp.text
    ticket = resp.json()
    assert ticket["status"] == "open"
    assert ticket["client_id"] == client_id

    assert api.post(f"/api/v1/tickets/{ticket['id']}/claim", headers=customer).status_code == 403

    resp = api.post(f"/api/v1/tickets/{ticket['id']}/claim", headers=ADMIN)
    assert resp.status_code == 200
    assert resp.json()["assigned_to"] == "admin_1"

    resp = api.post(f"/api/v1/tickets/{ticket['id']}/claim", headers=OTHER_ADMIN)
    assert resp.status_code == 409
    assert resp.json()["code"] == "conflict"

    resp = api.post(f"/api/v1/tickets/{ticket['id']}/time", json={"minutes": 90, "description": "Reimaged"}, headers=ADMIN)
    assert resp.status_code == 201, resp.text
    entry_id = resp.json()["id"]

    resp = api.put(f"/api/v1/tickets/{ticket['id']}/time/{entry_id}", json={"minutes": 60}, headers=ADMIN)
    assert resp.status_code == 200

    resp = api.get(f"/api/v1/tickets/{ticket['id']}/time", headers=customer)
    assert resp.json()["total_minutes"] == 60
    assert resp.json()["total_hours"] == 1.0

    summary = api.get(f"/api/v1/clients/{client_id}/support-hours", headers=customer).json()
    assert summary["allocated_minutes"] == 1200
    assert summary["used_minutes"] == 60
    assert summary["remaining_hours"] == 19.0
    assert summary["percentage_used"] == 5

    resp = api.post(f"/api/v1/tickets/{ticket['id']}/resolve", json={"resolution": "New SSD"}, headers=ADMIN)
    assert resp.status_code == 200
    assert resp.json()["status"] == "resolved"

    assert ("created", ticket["id"]) in notifier.events
    assert ("assigned", "admin_1") in notifier.events
    assert ("resolved", "New SSD") in notifier.events


def test_invalid_minutes_is_a_400(api):
    client_id = _create_client(api)
    resp = api.post("/api/v1/tickets", json={"title": "T", "description": "D", "client_id": client_id}, headers=ADMIN)
    ticket_id = resp.json()["id"]

    resp = api.post(f"/api/v1/tickets/{ticket_id}/time", json={"minutes": 0}, headers=ADMIN)
    assert resp.status_code == 400
    assert resp.json()["code"] == "validation_error"


def test_schema_errors_are_422(api):
    resp = api.put("/api/v1/tickets/1/status", json={"status": "bogus"}, headers=ADMIN)
    assert resp.status_code == 422
    assert resp.json()["code"] == "validation_error"


def test_comments_hide_internal_notes_for_clients(api, notifier):
    client_id = _create_client(api)
    customer = _auth("user_c", "client", client_id)
    ticket_id = api.post("/api/v1/tickets", json={"title": "T", "description": "D"}, headers=customer).json()["id"]

    api.post(f"/api/v1/tickets/{ticket_id}/comments", json={"content": "internal", "is_internal": True}, headers=ADMIN)
    api.post(f"/api/v1/tickets/{ticket_id}/comments", json={"content": "public"}, headers=ADMIN)
    resp = api.post(f"/api/v1/tickets/{ticket_id}/comments", json={"content": "nope", "is_internal": True}, headers=customer)
    assert resp.status_code == 403

    client_view = api.get(f"/api/v1/tickets/{ticket_id}/comments", headers=customer).json()
    admin_view = api.get(f"/api/v1/tickets/{ticket_id}/comments", headers=ADMIN).json()
    assert [c["content"] for c in client_view] == ["public"]
    assert len(admin_view) == 2
    assert ("reply", "admin", True) in notifier.events


def test_other_tenant_gets_403(api):
    client_id = _create_client(api)
    ticket_id = api.post(
        "/api/v1/tickets", json={"title": "T", "description": "D", "client_id": client_id}, headers=ADMIN
    ).json()["id"]
    outsider = _auth("user_x", "client", client_id + 1)

    assert api.get(f"/api/v1/tickets/{ticket_id}", headers=outsider).status_code == 403
    assert api.get(f"/api/v1/clients/{client_id}/support-hours", headers=outsider).status_code == 403
    assert api.get("/api/v1/tickets/999", headers=ADMIN).status_code == 404


def test_project_roadmap_over_http(api, notifier):
    client_id = _create_client(api)
    project = api.post("/api/v1/projects", json={"client_id": client_id, "name": "Office move"}, headers=ADMIN).json()

    template = api.post(
        "/api/v1/phase-templates",
        json={"name": "Move", "is_default": True, "phases": [{"name": "Survey"}, {"name": "Cabling"}, {"name": "Cutover"}]},
        headers=ADMIN,
    )
    assert template.status_code == 201, template.text

    resp = api.post(
        f"/api/v1/projects/{project['id']}/phases/apply-template",
        json={"template_id": template.json()["id"]},
        headers=ADMIN,
    )
    assert resp.status_code == 201
    phase_ids = [p["id"] for p in resp.json()]

    resp = api.put(
        f"/api/v1/projects/{project['id']}/phases/reorder",
        json={"phase_ids": list(reversed(phase_ids))},
        headers=ADMIN,
    )
    assert resp.status_code == 200
    assert [p["name"] for p in resp.json()] == ["Cutover", "Cabling", "Survey"]

    resp = api.put(
        f"/api/v1/projects/{project['id']}/phases/{phase_ids[0]}",
        json={"status": "completed"},
        headers=ADMIN,
    )
    assert resp.status_code == 200
    assert resp.json()["completed_at"] is not None
    assert ("phase", "pending", "completed") in notifier.events

    customer = _auth("user_c", "client", client_id)
    detail = api.get(f"/api/v1/projects/{project['id']}", headers=customer).json()
    assert detail["progress"] == 33
    assert len(detail["phases"]) == 3
    assert detail["phase_template_id"] == template.json()["id"]

    assert api.get("/api/v1/phase-templates", headers=customer).status_code == 403


def test_rollover_endpoint_and_logs(api):
    client_id = _create_client(api, hours=2)
    ticket_id = api.post(
        "/api/v1/tickets", json={"title": "T", "description": "D", "client_id": client_id}, headers=ADMIN
    ).json()["id"]
    api.post(f"/api/v1/tickets/{ticket_id}/time", json={"minutes": 30}, headers=ADMIN)

    resp = api.post(f"/api/v1/clients/{client_id}/support-hours/rollover", json={"notes": "Manual"}, headers=ADMIN)
    assert resp.status_code == 201, resp.text
    assert resp.json()["used_minutes"] == 30
    assert resp.json()["percentage_used"] == 25

    summary = api.get(f"/api/v1/clients/{client_id}/support-hours", headers=ADMIN).json()
    assert summary["used_minutes"] == 0

    logs = api.get(f"/api/v1/clients/{client_id}/support-hours/logs", headers=ADMIN).json()
    assert [log["notes"] for log in logs] == ["Manual"]


def test_allocation_out_of_range_is_a_400(api):
    client_id = _create_client(api)
    resp = api.patch(f"/api/v1/clients/{client_id}/support-hours", json={"hours_per_month": 20000}, headers=ADMIN)
    assert resp.status_code == 400
