"""Task service layer: task and checklist CRUD.

Transaction policy: public functions call db.session.commit() on success.

Provides:
- Task CRUD under a project (backlog defaults to the project's stage)
- Activity (checklist item) add / toggle / delete
- project_progression(): eligibility recompute after every task mutation
"""
import logging
from typing import Any

from sqlalchemy import func

from hubo.core.exceptions import NotFoundError, ValidationError
from hubo.models import db
from hubo.models.audit import write_audit
from hubo.models.project import BACKLOG_STAGES
from hubo.models.task import TASK_STATUSES, Task, TaskActivity
from hubo.services.backlog_progression import BacklogProgressionEngine
from hubo.services.project_service import get_project
from hubo.services.stores import SqlProjectStore, SqlTaskStore
from hubo.utils.helpers import parse_date

logger = logging.getLogger(__name__)

_TEXT_FIELDS = ("title", "description", "accountable_role", "responsible_role", "assigned_to")


def _validate_enum(value, allowed, field_name: str) -> None:
    if value not in allowed:
        raise ValidationError(
            f"Invalid {field_name}: '{value}'. Allowed: {sorted(allowed)}",
            details={field_name: "invalid"},
        )


def _clean_title(value, label: str = "Task title") -> str:
    title = (value or "").strip() if isinstance(value, str) else ""
    if not title:
        raise ValidationError(f"{label} is required", details={"title": "required"})
    if len(title) > 300:
        raise ValidationError(f"{label} exceeds maximum length of 300 characters",
                              details={"title": "too_long"})
    return title


def project_progression(project_id: str) -> dict:
    """Eligibility of the project after its task set changed."""
    engine = BacklogProgressionEngine(SqlProjectStore(), SqlTaskStore())
    return engine.evaluate_progression(project_id).to_dict()


# ═════════════════════════════════════════════════════════════════════════════
# TASK CRUD
# ═════════════════════════════════════════════════════════════════════════════


def get_task(task_id: str) -> Task:
    task = db.session.get(Task, task_id)
    if task is None:
        raise NotFoundError(resource="Task", resource_id=task_id)
    return task


def list_tasks(project_id: str, *, backlog: str | None = None, status: str | None = None):
    """Build the task list query for a project. Caller paginates."""
    get_project(project_id)
    query = Task.query.filter(Task.project_id == project_id)
    if backlog:
        query = query.filter(Task.backlog == backlog)
    if status:
        _validate_enum(status, TASK_STATUSES, "status")
        query = query.filter(Task.status == status)
    return query.order_by(Task.created_at.asc())


def create_task(project_id: str, data: dict[str, Any], *, actor: str = "system") -> Task:
    """Create a task under a project.

    ``backlog`` defaults to the project's current stage. An optional
    ``activities`` list of strings seeds the checklist.

    Raises:
        NotFoundError: project does not exist.
        ValidationError: bad title, status, backlog or activities.
    """
    project = get_project(project_id)
    title = _clean_title(data.get("title"))

    status = data.get("status") or "unassigned"
    _validate_enum(status, TASK_STATUSES, "status")
    backlog = data.get("backlog") or project.backlog
    if backlog is not None:
        _validate_enum(backlog, BACKLOG_STAGES, "backlog")

    activities = data.get("activities") or []
    if not isinstance(activities, list):
        raise ValidationError("activities must be a list", details={"activities": "invalid"})

    task = Task(
        project_id=project.id,
        title=title,
        description=data.get("description"),
        backlog=backlog,
        status=status,
        accountable_role=data.get("accountable_role"),
        responsible_role=data.get("responsible_role"),
        assigned_to=data.get("assigned_to"),
        start_date=parse_date(data.get("start_date"), "start_date"),
        due_date=parse_date(data.get("due_date"), "due_date"),
    )
    for position, item in enumerate(activities):
        task.activities.append(
            TaskActivity(title=_clean_title(item, "Activity title"), position=position)
        )
    db.session.add(task)
    db.session.flush()

    write_audit(
        entity_type="task",
        entity_id=task.id,
        action="task.create",
        actor=actor,
        project_id=project.id,
        diff={"title": {"old": None, "new": title}, "status": {"old": None, "new": status}},
    )
    db.session.commit()
    logger.info("Task created id=%s", task.id,
                extra={"project_id": project.id, "task_id": task.id})
    return task


def update_task(task: Task, data: dict[str, Any], *, actor: str = "system") -> Task:
    """Update a task's fields. Status changes are audited.

    Raises:
        ValidationError: empty title, invalid status or backlog.
    """
    changes: dict[str, dict] = {}

    for field in _TEXT_FIELDS:
        if field in data:
            value = data[field].strip() if isinstance(data[field], str) else data[field]
            if field == "title":
                value = _clean_title(value)
            old_value = getattr(task, field)
            if old_value != value:
                changes[field] = {"old": old_value, "new": value}
            setattr(task, field, value)

    if "status" in data:
        _validate_enum(data["status"], TASK_STATUSES, "status")
    if "backlog" in data:
        _validate_enum(data["backlog"], BACKLOG_STAGES, "backlog")
    for field in ("status", "backlog"):
        if field in data and data[field] != getattr(task, field):
            changes[field] = {"old": getattr(task, field), "new": data[field]}
            setattr(task, field, data[field])

    for date_field in ("start_date", "due_date"):
        if date_field in data:
            setattr(task, date_field, parse_date(data[date_field], date_field))

    if changes:
        write_audit(
            entity_type="task",
            entity_id=task.id,
            action="task.update",
            actor=actor,
            project_id=task.project_id,
            diff=changes,
        )
    db.session.commit()
    return task


def delete_task(task: Task, *, actor: str = "system") -> str:
    """Delete a task and its checklist. Returns the owning project id."""
    project_id = task.project_id
    task_id = task.id
    write_audit(
        entity_type="task",
        entity_id=task_id,
        action="task.delete",
        actor=actor,
        project_id=project_id,
        diff={"title": {"old": task.title, "new": None}},
    )
    db.session.delete(task)
    db.session.commit()
    logger.info("Task deleted id=%s", task_id, extra={"project_id": project_id})
    return project_id


# ═════════════════════════════════════════════════════════════════════════════
# ACTIVITIES
# ═════════════════════════════════════════════════════════════════════════════


def get_activity(task: Task, activity_id: str) -> TaskActivity:
    activity = db.session.get(TaskActivity, activity_id)
    if activity is None or activity.task_id != task.id:
        raise NotFoundError(resource="TaskActivity", resource_id=activity_id)
    return activity


def add_activity(task: Task, data: dict[str, Any]) -> TaskActivity:
    """Append a checklist item at the end of the task's list."""
    title = _clean_title(data.get("title"), "Activity title")
    last = db.session.query(func.max(TaskActivity.position)).filter(
        TaskActivity.task_id == task.id
    ).scalar()
    activity = TaskActivity(
        task_id=task.id,
        title=title,
        position=0 if last is None else last + 1,
    )
    db.session.add(activity)
    db.session.commit()
    return activity


def toggle_activity(activity: TaskActivity, completed: bool | None = None) -> TaskActivity:
    """Set ``completed`` explicitly, or flip it when not given."""
    if completed is not None and not isinstance(completed, bool):
        raise ValidationError("completed must be a boolean", details={"completed": "invalid"})
    activity.completed = (not activity.completed) if completed is None else completed
    db.session.commit()
    return activity


def delete_activity(activity: TaskActivity) -> None:
    db.session.delete(activity)
    db.session.commit()
