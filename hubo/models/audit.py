"""
Hubo
Audit trail.

One append-only ``audit_logs`` row per project or task mutation, including
the stage moves made by the progression engine (``project.advance`` /
``project.complete``) and the rows it inserts from the task generator
(``task.generate``).
"""

import json
from datetime import UTC, datetime

from hubo.models import db

AUDIT_ACTIONS = frozenset({
    "project.create",
    "project.update",
    "project.delete",
    "project.advance",
    "project.complete",
    "task.create",
    "task.update",
    "task.delete",
    "task.generate",
})


class AuditLog(db.Model):
    """A single audited event.

    ``diff`` maps each changed field to ``{"old": ..., "new": ...}``; for
    creates and generated tasks it holds a snapshot of the new values.
    ``project_id`` survives project deletion as a plain string so the
    ``project.delete`` row stays queryable.
    """

    __tablename__ = "audit_logs"
    __table_args__ = (
        db.Index("idx_audit_entity", "entity_type", "entity_id"),
        db.Index("idx_audit_project_ts", "project_id", "timestamp"),
    )

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(db.String(36), nullable=True)
    entity_type = db.Column(db.String(20), nullable=False, comment="project | task")
    entity_id = db.Column(db.String(36), nullable=False)
    action = db.Column(db.String(40), nullable=False)
    actor = db.Column(db.String(150), nullable=False, default="system")
    diff = db.Column(db.JSON, nullable=False, default=dict)
    timestamp = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(UTC),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "action": self.action,
            "actor": self.actor,
            "diff": self.diff or {},
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
        }

    def __repr__(self):
        return f"<AuditLog {self.action} {self.entity_type}/{self.entity_id}>"


def write_audit(
    *,
    entity_type: str,
    entity_id: str,
    action: str,
    actor: str = "system",
    project_id: str | None = None,
    diff: dict | None = None,
) -> AuditLog:
    """Add an audit row to the current session and flush it.

    The caller owns the transaction: the row commits or rolls back with the
    change it describes. Dates and other non-JSON values in ``diff`` are
    stored as strings.
    """
    if action not in AUDIT_ACTIONS:
        raise ValueError(f"Unknown audit action {action!r}")
    log = AuditLog(
        project_id=project_id,
        entity_type=entity_type,
        entity_id=str(entity_id),
        action=action,
        actor=actor,
        diff=json.loads(json.dumps(diff or {}, default=str)),
    )
    db.session.add(log)
    db.session.flush()
    return log
