"""Backlog progression blueprint.

Endpoints:
    GET  /api/v1/projects/<id>/progression                 stage eligibility
    POST /api/v1/projects/<id>/progression/advance         advance (+ generate tasks)
    POST /api/v1/projects/<id>/backlog/generate-tasks      preview next-stage tasks
    POST /api/v1/projects/<id>/backlog/advance-with-tasks  advance with reviewed tasks
    POST /api/v1/projects/<id>/tasks/generate              generate current-stage tasks

Not-eligible advances answer 409 with the reason in ``details``; a corrupt
backlog value answers 422 ``ERR_UNRECOGNIZED_STAGE``.
"""

from __future__ import annotations

from flask import Blueprint, current_app, jsonify

from hubo.ai.gateway import LLMGateway
from hubo.ai.prompt_registry import PromptRegistry
from hubo.ai.task_generator import build_task_generator
from hubo.blueprints import json_body, register_error_handlers
from hubo.services.backlog_progression import BacklogProgressionEngine
from hubo.services.project_service import get_project
from hubo.services.stores import SqlProjectStore, SqlTaskStore
from hubo.utils.errors import E, api_error

progression_bp = Blueprint("progression", __name__, url_prefix="/api/v1")
register_error_handlers(progression_bp)


# ── Lazy singletons stored on Flask app (test-isolation safe) ───────────────

def _get_gateway():
    if not hasattr(current_app, "_ai_gateway"):
        current_app._ai_gateway = LLMGateway()
    return current_app._ai_gateway


def _get_prompt_registry():
    if not hasattr(current_app, "_ai_prompt_registry"):
        current_app._ai_prompt_registry = PromptRegistry()
    return current_app._ai_prompt_registry


def _get_task_generator():
    if not hasattr(current_app, "_task_generator"):
        current_app._task_generator = build_task_generator(
            current_app.config, _get_gateway, _get_prompt_registry,
        )
    return current_app._task_generator


def _engine() -> BacklogProgressionEngine:
    return BacklogProgressionEngine(SqlProjectStore(), SqlTaskStore(), _get_task_generator())


def _context_arg(data: dict) -> str | None:
    value = data.get("additional_context")
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


# ═════════════════════════════════════════════════════════════════════════
# Progression
# ═════════════════════════════════════════════════════════════════════════


@progression_bp.route("/projects/<project_id>/progression", methods=["GET"])
def get_progression(project_id):
    engine = BacklogProgressionEngine(SqlProjectStore(), SqlTaskStore())
    return jsonify(engine.evaluate_progression(project_id).to_dict())


@progression_bp.route("/projects/<project_id>/progression/advance", methods=["POST"])
def advance(project_id):
    """Advance to the next stage; generated tasks are best-effort."""
    data = json_body()
    result = _engine().advance_project(project_id, additional_context=_context_arg(data))
    if not result.success:
        return api_error(E.CONFLICT_STATE, "Project cannot progress", details=result.to_dict())

    body = result.to_dict()
    body["project"] = get_project(project_id).to_dict()
    return jsonify(body)


# ═════════════════════════════════════════════════════════════════════════
# Review flow: preview generated tasks, then advance with the chosen set
# ═════════════════════════════════════════════════════════════════════════


@progression_bp.route("/projects/<project_id>/backlog/generate-tasks", methods=["POST"])
def generate_tasks(project_id):
    """Propose next-stage tasks without changing anything."""
    data = json_body()
    tasks = _engine().preview_tasks(project_id, additional_context=_context_arg(data))
    return jsonify({"tasks": tasks, "count": len(tasks)})


@progression_bp.route("/projects/<project_id>/backlog/advance-with-tasks", methods=["POST"])
def advance_with_tasks(project_id):
    data = json_body()
    result = _engine().advance_with_tasks(project_id, data.get("tasks"))
    if not result.success:
        return api_error(E.CONFLICT_STATE, "Project cannot progress", details=result.to_dict())

    body = result.to_dict()
    body["project"] = get_project(project_id).to_dict()
    return jsonify(body)


# ═════════════════════════════════════════════════════════════════════════
# Current-stage generation
# ═════════════════════════════════════════════════════════════════════════


@progression_bp.route("/projects/<project_id>/tasks/generate", methods=["POST"])
def generate_stage_tasks(project_id):
    """Generate tasks for the current stage; ``preview: true`` returns them unsaved."""
    data = json_body()
    preview = data.get("preview") is True
    engine = _engine()
    tasks, task_ids = engine.generate_stage_tasks(
        project_id, additional_context=_context_arg(data), insert=not preview,
    )
    body = {"tasks": tasks, "count": len(tasks), "task_ids": task_ids}
    if preview:
        return jsonify(body)

    body["project"] = get_project(project_id).to_dict()
    body["progression"] = engine.evaluate_progression(project_id).to_dict()
    return jsonify(body), 201
