"""Project domain model, the unit that moves through the backlog stages."""

import uuid
from datetime import datetime, timezone

from hubo.models import db

# ── Shared constants ─────────────────────────────────────────────────────

# Ordered work phases. A project's backlog only ever moves forward.
BACKLOG_STAGES = ("business_innovation", "engineering", "outcomes_adoption")

# Terminal marker reached after outcomes_adoption. Stored on status, not backlog.
COMPLETED = "completed"

PROJECT_STATUSES = {"recent", "live", "completed", "archived"}

STAGE_LABELS = {
    "business_innovation": "Business Innovation",
    "engineering": "Engineering",
    "outcomes_adoption": "Outcomes & Adoption",
    COMPLETED: "Completed",
}


def _uuid():
    return str(uuid.uuid4())


def _utcnow():
    return datetime.now(timezone.utc)


class Project(db.Model):
    """
    A project tracked on the dashboard.

    ``backlog`` is the workflow stage and ``status`` the lifecycle state;
    the two are orthogonal. Completing the last stage sets
    ``status = completed`` and leaves ``backlog`` at ``outcomes_adoption``.
    """

    __tablename__ = "projects"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    project_number = db.Column(db.String(30), nullable=True, comment="e.g. PRJ-0042")
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    project_brief = db.Column(db.Text, nullable=False, default="")
    desired_outcomes = db.Column(db.Text, nullable=False, default="")
    backlog = db.Column(
        db.String(30), nullable=True, default="business_innovation",
        comment="business_innovation | engineering | outcomes_adoption",
    )
    status = db.Column(
        db.String(20), nullable=False, default="recent",
        comment="recent | live | completed | archived",
    )
    owner_id = db.Column(db.String(36), nullable=True)
    due_date = db.Column(db.Date, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=_utcnow, onupdate=_utcnow,
    )

    tasks = db.relationship(
        "Task", backref="project", lazy="dynamic",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        db.Index("ix_projects_status_backlog", "status", "backlog"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "project_number": self.project_number,
            "title": self.title,
            "description": self.description,
            "project_brief": self.project_brief,
            "desired_outcomes": self.desired_outcomes,
            "backlog": self.backlog,
            "status": self.status,
            "owner_id": self.owner_id,
            "due_date": self.due_date.isoformat() if self.due_date else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self) -> str:
        return f"<Project {self.id}: {self.title}>"
