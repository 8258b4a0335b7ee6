"""Project blueprint.

Endpoints:
    GET    /api/v1/projects              list (?status=&backlog=&limit=&offset=)
    POST   /api/v1/projects              create
    GET    /api/v1/projects/<id>         detail (+ progression)
    PUT    /api/v1/projects/<id>         update (backlog is read-only)
    DELETE /api/v1/projects/<id>         delete with tasks

Service layer owns all business logic and commits.
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request

import hubo.services.project_service as project_service
from hubo.blueprints import json_body, paginate_query, register_error_handlers
from hubo.services.task_service import project_progression

logger = logging.getLogger(__name__)

project_bp = Blueprint("projects", __name__, url_prefix="/api/v1")
register_error_handlers(project_bp)


@project_bp.route("/projects", methods=["GET"])
def list_projects():
    query = project_service.list_projects(
        status=request.args.get("status"),
        backlog=request.args.get("backlog"),
    )
    items, total = paginate_query(query)
    return jsonify({"items": [p.to_dict() for p in items], "total": total})


@project_bp.route("/projects", methods=["POST"])
def create_project():
    data = json_body()
    project = project_service.create_project(data)
    return jsonify(project.to_dict()), 201


@project_bp.route("/projects/<project_id>", methods=["GET"])
def get_project(project_id):
    project = project_service.get_project(project_id)
    result = project.to_dict()
    result["progression"] = project_progression(project.id)
    return jsonify(result)


@project_bp.route("/projects/<project_id>", methods=["PUT", "PATCH"])
def update_project(project_id):
    project = project_service.get_project(project_id)
    data = json_body()
    project = project_service.update_project(project, data)
    return jsonify(project.to_dict())


@project_bp.route("/projects/<project_id>", methods=["DELETE"])
def delete_project(project_id):
    project = project_service.get_project(project_id)
    project_service.delete_project(project)
    return jsonify({"message": "Project deleted", "id": project_id})
