"""Task blueprint.

Endpoints:
    GET    /api/v1/projects/<id>/tasks                   list (?backlog=&status=)
    POST   /api/v1/projects/<id>/tasks                   create
    GET    /api/v1/tasks/<id>                            detail with activities
    PUT    /api/v1/tasks/<id>                            update
    DELETE /api/v1/tasks/<id>                            delete
    POST   /api/v1/tasks/<id>/activities                 add checklist item
    PATCH  /api/v1/tasks/<id>/activities/<activity_id>   toggle completed
    DELETE /api/v1/tasks/<id>/activities/<activity_id>   delete checklist item

Every task create/update/delete response carries ``progression``: the
project's recomputed stage eligibility.
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request

import hubo.services.task_service as task_service
from hubo.blueprints import json_body, paginate_query, register_error_handlers

logger = logging.getLogger(__name__)

task_bp = Blueprint("tasks", __name__, url_prefix="/api/v1")
register_error_handlers(task_bp)


def _task_response(task, status=200):
    result = task.to_dict(include_activities=True)
    result["progression"] = task_service.project_progression(task.project_id)
    return jsonify(result), status


# ═════════════════════════════════════════════════════════════════════════
# Tasks
# ═════════════════════════════════════════════════════════════════════════


@task_bp.route("/projects/<project_id>/tasks", methods=["GET"])
def list_tasks(project_id):
    query = task_service.list_tasks(
        project_id,
        backlog=request.args.get("backlog"),
        status=request.args.get("status"),
    )
    items, total = paginate_query(query)
    return jsonify({"items": [t.to_dict() for t in items], "total": total})


@task_bp.route("/projects/<project_id>/tasks", methods=["POST"])
def create_task(project_id):
    data = json_body()
    task = task_service.create_task(project_id, data)
    return _task_response(task, 201)


@task_bp.route("/tasks/<task_id>", methods=["GET"])
def get_task(task_id):
    task = task_service.get_task(task_id)
    return jsonify(task.to_dict(include_activities=True))


@task_bp.route("/tasks/<task_id>", methods=["PUT", "PATCH"])
def update_task(task_id):
    task = task_service.get_task(task_id)
    data = json_body()
    task = task_service.update_task(task, data)
    return _task_response(task)


@task_bp.route("/tasks/<task_id>", methods=["DELETE"])
def delete_task(task_id):
    task = task_service.get_task(task_id)
    project_id = task_service.delete_task(task)
    return jsonify({
        "message": "Task deleted",
        "id": task_id,
        "progression": task_service.project_progression(project_id),
    })


# ═════════════════════════════════════════════════════════════════════════
# Activities
# ═════════════════════════════════════════════════════════════════════════


@task_bp.route("/tasks/<task_id>/activities", methods=["POST"])
def add_activity(task_id):
    task = task_service.get_task(task_id)
    data = json_body()
    activity = task_service.add_activity(task, data)
    return jsonify(activity.to_dict()), 201


@task_bp.route("/tasks/<task_id>/activities/<activity_id>", methods=["PATCH"])
def toggle_activity(task_id, activity_id):
    task = task_service.get_task(task_id)
    activity = task_service.get_activity(task, activity_id)
    data = json_body()
    activity = task_service.toggle_activity(activity, data.get("completed"))
    return jsonify(activity.to_dict())


@task_bp.route("/tasks/<task_id>/activities/<activity_id>", methods=["DELETE"])
def delete_activity(task_id, activity_id):
    task = task_service.get_task(task_id)
    activity = task_service.get_activity(task, activity_id)
    task_service.delete_activity(activity)
    return jsonify({"message": "Activity deleted", "id": activity_id})
