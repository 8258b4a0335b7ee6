"""
Hubo
Tests: Project API.

Covers:
    - create (defaults, validation, non-object bodies)
    - list with status/backlog filters and pagination
    - get (includes progression)
    - update (backlog read-only, strict status, completion only via progression)
    - delete cascades tasks
"""

import pytest

from hubo.models import db
from hubo.models.audit import AuditLog
from hubo.models.task import Task

BASE = "/api/v1/projects"


def _create(client, **overrides):
    payload = {"title": "Churn predictor", "project_brief": "Reduce churn"}
    payload.update(overrides)
    res = client.post(BASE, json=payload)
    assert res.status_code == 201, res.get_json()
    return res.get_json()


class TestProjectCreate:

    def test_defaults(self, client):
        data = _create(client)
        assert data["backlog"] == "business_innovation"
        assert data["status"] == "recent"
        assert data["desired_outcomes"] == ""
        assert AuditLog.query.filter_by(action="project.create", entity_id=data["id"]).count() == 1

    def test_client_cannot_choose_stage(self, client):
        data = _create(client, backlog="outcomes_adoption")
        assert data["backlog"] == "business_innovation"

    def test_title_required(self, client):
        res = client.post(BASE, json={"title": "  "})
        assert res.status_code == 422
        assert res.get_json()["details"] == {"title": "required"}

    def test_invalid_status(self, client):
        assert client.post(BASE, json={"title": "X", "status": "paused"}).status_code == 422

    def test_non_string_title(self, client):
        res = client.post(BASE, json={"title": 123})
        assert res.status_code == 422
        assert res.get_json()["details"] == {"title": "invalid"}

    def test_non_string_text_field(self, client):
        res = client.post(BASE, json={"title": "X", "project_number": 42})
        assert res.status_code == 422
        assert res.get_json()["details"] == {"project_number": "invalid"}

    def test_array_body(self, client):
        res = client.post(BASE, json=[{"title": "X"}])
        assert res.status_code == 422
        assert res.get_json()["details"] == {"body": "invalid"}

    def test_cannot_start_completed(self, client):
        assert client.post(BASE, json={"title": "X", "status": "completed"}).status_code == 422

    def test_invalid_due_date(self, client):
        res = client.post(BASE, json={"title": "X", "due_date": "next friday"})
        assert res.status_code == 422
        assert res.get_json()["details"] == {"due_date": "invalid_date"}

    def test_due_date_parsed(self, client):
        data = _create(client, due_date="31.12.2026")
        assert data["due_date"] == "2026-12-31"


class TestProjectList:

    def test_filters(self, client, make_project):
        make_project(title="A", status="live")
        make_project(title="B", status="live", backlog="engineering")
        make_project(title="C", status="archived")

        live = client.get(f"{BASE}?status=live").get_json()
        assert live["total"] == 2
        eng = client.get(f"{BASE}?backlog=engineering").get_json()
        assert [p["title"] for p in eng["items"]] == ["B"]

    def test_pagination(self, client, make_project):
        for i in range(5):
            make_project(title=f"P{i}")
        data = client.get(f"{BASE}?limit=2&offset=1").get_json()
        assert data["total"] == 5
        assert len(data["items"]) == 2

    def test_invalid_filter(self, client):
        assert client.get(f"{BASE}?backlog=completed").status_code == 422


class TestProjectDetailUpdateDelete:

    def test_get_includes_progression(self, client, make_project, make_task):
        project = make_project()
        make_task(project, status="done")
        data = client.get(f"{BASE}/{project.id}").get_json()
        assert data["progression"]["eligible"] is True

    def test_get_missing(self, client):
        assert client.get(f"{BASE}/missing").status_code == 404

    def test_update_fields(self, client, make_project):
        project = make_project()
        res = client.put(f"{BASE}/{project.id}", json={"title": "Renamed", "status": "live"})
        assert res.status_code == 200
        assert res.get_json()["title"] == "Renamed"
        log = AuditLog.query.filter_by(action="project.update").one()
        assert log.diff["status"] == {"old": "recent", "new": "live"}

    @pytest.mark.parametrize("status", [None, "", 5, "paused"])
    def test_update_rejects_bad_status(self, client, make_project, status):
        project = make_project(status="live")
        res = client.put(f"{BASE}/{project.id}", json={"status": status, "title": "Changed"})
        assert res.status_code == 422
        assert res.get_json()["details"] == {"status": "invalid"}
        data = client.get(f"{BASE}/{project.id}").get_json()
        assert data["status"] == "live"
        assert data["title"] == "Customer churn predictor"

    def test_update_rejects_non_string_title(self, client, make_project):
        project = make_project()
        res = client.patch(f"{BASE}/{project.id}", json={"title": 123})
        assert res.status_code == 422
        assert client.get(f"{BASE}/{project.id}").get_json()["title"] == "Customer churn predictor"

    def test_update_array_body(self, client, make_project):
        project = make_project()
        assert client.put(f"{BASE}/{project.id}", json=["title"]).status_code == 422

    def test_backlog_is_read_only(self, client, make_project):
        project = make_project()
        res = client.put(f"{BASE}/{project.id}", json={"backlog": "engineering"})
        assert res.status_code == 422
        assert client.get(f"{BASE}/{project.id}").get_json()["backlog"] == "business_innovation"

    def test_cannot_complete_via_update(self, client, make_project):
        project = make_project(backlog="outcomes_adoption")
        res = client.put(f"{BASE}/{project.id}", json={"status": "completed", "title": "Changed"})
        assert res.status_code == 422
        data = client.get(f"{BASE}/{project.id}").get_json()
        assert data["status"] == "recent"
        assert data["title"] == "Customer churn predictor"

    def test_delete_cascades(self, client, make_project, make_task):
        project = make_project()
        make_task(project)
        project_id = project.id
        res = client.delete(f"{BASE}/{project_id}")
        assert res.status_code == 200
        assert Task.query.filter_by(project_id=project_id).count() == 0
        assert client.get(f"{BASE}/{project_id}").status_code == 404
        assert db.session.query(AuditLog).filter_by(action="project.delete").count() == 1
