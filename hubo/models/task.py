"""
Hubo
Task domain models.

Models:
    - Task: unit of work tagged with the backlog stage it was created for
    - TaskActivity: checklist item under a task
"""

import uuid
from datetime import datetime, timezone

from hubo.models import db

TASK_STATUSES = {"unassigned", "in_progress", "done"}

DONE = "done"


def _uuid():
    return str(uuid.uuid4())


def _utcnow():
    return datetime.now(timezone.utc)


class Task(db.Model):
    """
    Task under a project.

    ``backlog`` records the stage the task belongs to, which may differ from
    the project's current stage once the project has moved on.
    """

    __tablename__ = "tasks"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    project_id = db.Column(
        db.String(36),
        db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    title = db.Column(db.String(300), nullable=False)
    description = db.Column(db.Text, nullable=True)
    backlog = db.Column(db.String(30), nullable=True)
    status = db.Column(
        db.String(20), nullable=False, default="unassigned",
        comment="unassigned | in_progress | done",
    )
    accountable_role = db.Column(db.String(100), nullable=True)
    responsible_role = db.Column(db.String(100), nullable=True)
    assigned_to = db.Column(db.String(36), nullable=True)
    start_date = db.Column(db.Date, nullable=True)
    due_date = db.Column(db.Date, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=_utcnow, onupdate=_utcnow,
    )

    activities = db.relationship(
        "TaskActivity", backref="task", lazy="select",
        cascade="all, delete-orphan",
        order_by="TaskActivity.position",
    )

    __table_args__ = (
        db.Index("ix_tasks_project_backlog", "project_id", "backlog"),
    )

    def to_dict(self, include_activities=False) -> dict:
        result = {
            "id": self.id,
            "project_id": self.project_id,
            "title": self.title,
            "description": self.description,
            "backlog": self.backlog,
            "status": self.status,
            "accountable_role": self.accountable_role,
            "responsible_role": self.responsible_role,
            "assigned_to": self.assigned_to,
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "due_date": self.due_date.isoformat() if self.due_date else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_activities:
            result["activities"] = [a.to_dict() for a in self.activities]
        return result

    def __repr__(self) -> str:
        return f"<Task {self.id}: {self.title[:40]}>"


class TaskActivity(db.Model):
    """Checklist item under a task."""

    __tablename__ = "task_activities"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    task_id = db.Column(
        db.String(36),
        db.ForeignKey("tasks.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    title = db.Column(db.String(300), nullable=False)
    completed = db.Column(db.Boolean, nullable=False, default=False)
    position = db.Column(db.Integer, nullable=False, default=0, comment="Sort order within task")
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=_utcnow, onupdate=_utcnow,
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "task_id": self.task_id,
            "title": self.title,
            "completed": self.completed,
            "position": self.position,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self) -> str:
        return f"<TaskActivity {self.id}: {self.title[:40]}>"
