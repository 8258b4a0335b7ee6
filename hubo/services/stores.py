"""
Persistence seams for the backlog progression engine.

The engine only talks to ``ProjectStore`` and ``TaskStore``. The SQLAlchemy
implementations below are what the app wires in; tests substitute in-memory
fakes.

Write semantics of the SQL stores:
  - every write is committed before the method returns, so a later failure
    (e.g. task generation) never rolls back an earlier stage transition;
  - ``update_project`` is a compare-and-swap on ``backlog``.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError

from hubo.models import db
from hubo.models.audit import write_audit
from hubo.models.project import COMPLETED, Project
from hubo.models.task import Task, TaskActivity

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProjectState:
    """The two fields the engine reads from a project."""

    id: str
    backlog: str | None
    status: str


@dataclass(frozen=True)
class TaskState:
    id: str
    status: str


# ── Abstract interfaces ───────────────────────────────────────────────────────

class ProjectStore(ABC):
    """Read/update access to a project's ``backlog`` and ``status``."""

    @abstractmethod
    def get_project(self, project_id: str) -> ProjectState | None:
        """Return the project's state, or None if it does not exist."""

    @abstractmethod
    def update_project(self, project_id: str, changes: dict, *, expected_backlog: str) -> bool:
        """
        Apply ``changes`` (``backlog`` and/or ``status``) to the project.

        The write only happens while the project still has
        ``backlog == expected_backlog`` and is not completed.

        Returns:
            True if the row was updated, False if another writer got there first.
        """


class TaskStore(ABC):
    """Query/insert access to tasks."""

    @abstractmethod
    def list_tasks(self, project_id: str, backlog_stage: str) -> list[TaskState]:
        """Return every task of the project tagged with ``backlog_stage``."""

    @abstractmethod
    def insert_tasks(self, tasks: list[dict]) -> list[str]:
        """
        Insert task rows.

        Each dict carries project_id, title, description, backlog, status,
        accountable_role, responsible_role and an optional ``activities``
        list of checklist titles.

        Returns:
            Ids of the inserted tasks, in input order.
        """


# ── SQLAlchemy implementations ────────────────────────────────────────────────

class SqlProjectStore(ProjectStore):
    """ProjectStore over the ``projects`` table."""

    def __init__(self, actor: str = "system"):
        self.actor = actor

    def get_project(self, project_id: str) -> ProjectState | None:
        row = db.session.execute(
            select(Project.id, Project.backlog, Project.status).where(Project.id == project_id)
        ).first()
        if row is None:
            return None
        return ProjectState(id=row.id, backlog=row.backlog, status=row.status)

    def update_project(self, project_id: str, changes: dict, *, expected_backlog: str) -> bool:
        allowed = {k: v for k, v in changes.items() if k in ("backlog", "status")}
        if not allowed:
            raise ValueError("update_project requires backlog and/or status")

        try:
            return self._guarded_update(project_id, allowed, expected_backlog)
        except SQLAlchemyError:
            db.session.rollback()
            raise

    def _guarded_update(self, project_id: str, allowed: dict, expected_backlog: str) -> bool:
        result = db.session.execute(
            update(Project)
            .where(
                Project.id == project_id,
                Project.backlog == expected_backlog,
                Project.status != COMPLETED,
            )
            .values(**allowed)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            db.session.rollback()
            return False

        action = "project.complete" if allowed.get("status") == COMPLETED else "project.advance"
        diff = {"backlog": {"old": expected_backlog, "new": allowed.get("backlog", expected_backlog)}}
        if "status" in allowed:
            diff["status"] = {"new": allowed["status"]}
        write_audit(
            entity_type="project",
            entity_id=project_id,
            action=action,
            actor=self.actor,
            project_id=project_id,
            diff=diff,
        )
        db.session.commit()
        return True


class SqlTaskStore(TaskStore):
    """TaskStore over the ``tasks`` / ``task_activities`` tables."""

    def __init__(self, actor: str = "system"):
        self.actor = actor

    def list_tasks(self, project_id: str, backlog_stage: str) -> list[TaskState]:
        rows = db.session.execute(
            select(Task.id, Task.status).where(
                Task.project_id == project_id,
                Task.backlog == backlog_stage,
            )
        ).all()
        return [TaskState(id=r.id, status=r.status) for r in rows]

    def insert_tasks(self, tasks: list[dict]) -> list[str]:
        try:
            task_ids = [t.id for t in self._insert(tasks)]
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            raise
        logger.debug("Inserted %d tasks", len(task_ids))
        return task_ids

    def _insert(self, tasks: list[dict]) -> list[Task]:
        created = []
        for data in tasks:
            task = Task(
                project_id=data["project_id"],
                title=data["title"],
                description=data.get("description"),
                backlog=data.get("backlog"),
                status=data.get("status", "unassigned"),
                accountable_role=data.get("accountable_role"),
                responsible_role=data.get("responsible_role"),
            )
            for position, title in enumerate(data.get("activities") or []):
                task.activities.append(TaskActivity(title=title, position=position))
            db.session.add(task)
            created.append(task)

        db.session.flush()
        for task in created:
            write_audit(
                entity_type="task",
                entity_id=task.id,
                action="task.generate",
                actor=self.actor,
                project_id=task.project_id,
                diff={"backlog": {"old": None, "new": task.backlog},
                      "status": {"old": None, "new": task.status}},
            )
        return created
