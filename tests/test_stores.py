"""
Hubo
Tests: SQLAlchemy project/task stores.

Covers:
    - get_project / list_tasks projections
    - update_project compare-and-swap (stale backlog, completed guard)
    - insert_tasks with activities and audit rows
    - audit trail diff serialisation and action guard
"""

from datetime import date

import pytest

from hubo.models import db
from hubo.models.audit import AuditLog, write_audit
from hubo.models.project import Project
from hubo.models.task import Task
from hubo.services.stores import SqlProjectStore, SqlTaskStore


class TestSqlProjectStore:

    def test_get_project(self, make_project):
        project = make_project(backlog="engineering", status="live")
        state = SqlProjectStore().get_project(project.id)
        assert (state.id, state.backlog, state.status) == (project.id, "engineering", "live")

    def test_get_missing(self):
        assert SqlProjectStore().get_project("missing") is None

    def test_cas_success(self, make_project):
        project = make_project()
        ok = SqlProjectStore(actor="alice").update_project(
            project.id, {"backlog": "engineering"}, expected_backlog="business_innovation",
        )
        assert ok is True
        assert db.session.get(Project, project.id).backlog == "engineering"
        log = AuditLog.query.filter_by(action="project.advance").one()
        assert log.actor == "alice"

    def test_cas_stale_backlog(self, make_project):
        project = make_project(backlog="engineering")
        ok = SqlProjectStore().update_project(
            project.id, {"backlog": "engineering"}, expected_backlog="business_innovation",
        )
        assert ok is False
        assert AuditLog.query.count() == 0

    def test_cas_refuses_completed_project(self, make_project):
        project = make_project(backlog="outcomes_adoption", status="completed")
        ok = SqlProjectStore().update_project(
            project.id, {"status": "completed"}, expected_backlog="outcomes_adoption",
        )
        assert ok is False

    def test_complete_keeps_backlog(self, make_project):
        project = make_project(backlog="outcomes_adoption")
        SqlProjectStore().update_project(
            project.id, {"status": "completed"}, expected_backlog="outcomes_adoption",
        )
        reloaded = db.session.get(Project, project.id)
        assert (reloaded.backlog, reloaded.status) == ("outcomes_adoption", "completed")
        assert AuditLog.query.filter_by(action="project.complete").count() == 1

    def test_rejects_other_fields(self, make_project):
        project = make_project()
        with pytest.raises(ValueError):
            SqlProjectStore().update_project(project.id, {"title": "x"}, expected_backlog="business_innovation")


class TestSqlTaskStore:

    def test_list_tasks_filters_stage(self, make_project, make_task):
        project = make_project()
        make_task(project, status="done")
        make_task(project, backlog="engineering")
        states = SqlTaskStore().list_tasks(project.id, "business_innovation")
        assert [s.status for s in states] == ["done"]

    def test_insert_tasks_with_activities(self, make_project):
        project = make_project(backlog="engineering")
        ids = SqlTaskStore().insert_tasks([
            {"project_id": project.id, "title": "Build API", "backlog": "engineering",
             "status": "in_progress", "accountable_role": "Architect",
             "activities": ["Design", "Implement", "Test"]},
            {"project_id": project.id, "title": "Write docs", "backlog": "engineering",
             "status": "in_progress"},
        ])

        assert len(ids) == 2
        first = db.session.get(Task, ids[0])
        assert first.status == "in_progress"
        assert [a.title for a in first.activities] == ["Design", "Implement", "Test"]
        assert db.session.get(Task, ids[1]).activities == []
        assert AuditLog.query.filter_by(action="task.generate").count() == 2


class TestAuditTrail:

    def test_diff_dates_stored_as_strings(self, make_project):
        project = make_project()
        write_audit(entity_type="project", entity_id=project.id, action="project.update",
                    project_id=project.id,
                    diff={"due_date": {"old": None, "new": date(2026, 12, 31)}})
        db.session.commit()
        log = AuditLog.query.filter_by(action="project.update").one()
        assert log.diff == {"due_date": {"old": None, "new": "2026-12-31"}}

    def test_unknown_action_rejected(self, make_project):
        project = make_project()
        with pytest.raises(ValueError):
            write_audit(entity_type="project", entity_id=project.id, action="project.teleport")
