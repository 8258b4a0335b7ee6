"""Project service layer: project CRUD.

Transaction policy: public functions call db.session.commit() on success.

The ``backlog`` stage is not writable here; it only moves through
BacklogProgressionEngine.
"""
import logging
from typing import Any

from hubo.core.exceptions import NotFoundError, ValidationError
from hubo.models import db
from hubo.models.audit import write_audit
from hubo.models.project import BACKLOG_STAGES, COMPLETED, PROJECT_STATUSES, Project
from hubo.utils.helpers import parse_date

logger = logging.getLogger(__name__)

_TEXT_FIELDS = ("title", "description", "project_brief", "desired_outcomes", "owner_id", "project_number")

_FIELD_LIMITS = {"title": 200, "project_number": 30, "owner_id": 36}


def _validate_enum(value: str, allowed, field_name: str) -> None:
    if value and value not in allowed:
        raise ValidationError(
            f"Invalid {field_name}: '{value}'. Allowed: {sorted(allowed)}",
            details={field_name: "invalid"},
        )


def _check_status(value) -> str:
    """Unlike the list filter, a blank or null status is rejected here."""
    if not isinstance(value, str) or value not in PROJECT_STATUSES:
        raise ValidationError(
            f"Invalid status: {value!r}. Allowed: {sorted(PROJECT_STATUSES)}",
            details={"status": "invalid"},
        )
    return value


def _clean_text(value, field: str):
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string", details={field: "invalid"})
    return value.strip()


def _validate_lengths(project: Project) -> None:
    for field, max_len in _FIELD_LIMITS.items():
        value = getattr(project, field)
        if value and len(value) > max_len:
            raise ValidationError(
                f"{field} exceeds maximum length of {max_len} characters",
                details={field: "too_long"},
            )


def get_project(project_id: str) -> Project:
    project = db.session.get(Project, project_id)
    if project is None:
        raise NotFoundError(resource="Project", resource_id=project_id)
    return project


def list_projects(*, status: str | None = None, backlog: str | None = None):
    """Build the project list query, newest first. Caller paginates."""
    query = Project.query
    if status:
        _validate_enum(status, PROJECT_STATUSES, "status")
        query = query.filter(Project.status == status)
    if backlog:
        _validate_enum(backlog, BACKLOG_STAGES, "backlog")
        query = query.filter(Project.backlog == backlog)
    return query.order_by(Project.created_at.desc())


def create_project(data: dict[str, Any], *, actor: str = "system") -> Project:
    """Create a project at the first backlog stage.

    Raises:
        ValidationError: missing title or invalid status.
    """
    title = _clean_text(data.get("title"), "title")
    if not title:
        raise ValidationError("Project title is required", details={"title": "required"})

    status = _check_status(data.get("status") or "recent")
    if status == COMPLETED:
        raise ValidationError("A new project cannot start completed", details={"status": "invalid"})

    project = Project(
        title=title,
        project_number=_clean_text(data.get("project_number"), "project_number"),
        description=_clean_text(data.get("description"), "description"),
        project_brief=_clean_text(data.get("project_brief"), "project_brief") or "",
        desired_outcomes=_clean_text(data.get("desired_outcomes"), "desired_outcomes") or "",
        owner_id=_clean_text(data.get("owner_id"), "owner_id"),
        due_date=parse_date(data.get("due_date"), "due_date"),
        status=status,
        backlog=BACKLOG_STAGES[0],
    )
    _validate_lengths(project)
    db.session.add(project)
    db.session.flush()

    write_audit(
        entity_type="project",
        entity_id=project.id,
        action="project.create",
        actor=actor,
        project_id=project.id,
        diff={"title": {"old": None, "new": title}},
    )
    db.session.commit()
    logger.info("Project created id=%s", project.id, extra={"project_id": project.id})
    return project


def update_project(project: Project, data: dict[str, Any], *, actor: str = "system") -> Project:
    """Update a project's descriptive fields and lifecycle status.

    Raises:
        ValidationError: ``backlog`` in payload, empty title, or invalid status.
    """
    if "backlog" in data:
        raise ValidationError(
            "backlog cannot be edited directly; use the progression endpoint",
            details={"backlog": "read_only"},
        )

    changes: dict[str, dict] = {}
    for field in _TEXT_FIELDS:
        if field in data:
            value = _clean_text(data[field], field)
            if field in ("project_brief", "desired_outcomes"):
                value = value or ""
            old_value = getattr(project, field)
            if old_value != value:
                changes[field] = {"old": old_value, "new": value}
            setattr(project, field, value)

    if "status" in data:
        _check_status(data["status"])
        if data["status"] == COMPLETED and project.status != COMPLETED:
            raise ValidationError(
                "Projects are completed through the progression endpoint",
                details={"status": "read_only"},
            )
        if data["status"] != project.status:
            changes["status"] = {"old": project.status, "new": data["status"]}
        project.status = data["status"]

    if "due_date" in data:
        new_due = parse_date(data["due_date"], "due_date")
        if new_due != project.due_date:
            changes["due_date"] = {"old": project.due_date, "new": new_due}
        project.due_date = new_due

    if not project.title:
        raise ValidationError("Project title cannot be empty", details={"title": "required"})
    _validate_lengths(project)

    if changes:
        write_audit(
            entity_type="project",
            entity_id=project.id,
            action="project.update",
            actor=actor,
            project_id=project.id,
            diff=changes,
        )
    db.session.commit()
    return project


def delete_project(project: Project, *, actor: str = "system") -> None:
    """Delete a project with its tasks and activities (cascade)."""
    project_id = project.id
    write_audit(
        entity_type="project",
        entity_id=project_id,
        action="project.delete",
        actor=actor,
        diff={"title": {"old": project.title, "new": None}},
    )
    db.session.delete(project)
    db.session.commit()
    logger.info("Project deleted id=%s", project_id, extra={"project_id": project_id})
