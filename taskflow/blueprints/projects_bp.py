"""
Projects Blueprint — CRUD and membership.

  GET    /api/projects                          — caller's projects (paginated)
  POST   /api/projects                          — create, caller is owner
  GET    /api/projects/<id>                     — detail with task stats
  PUT    /api/projects/<id>                     — update (owner / member-admin / admin)
  DELETE /api/projects/<id>                     — delete with its tasks
  POST   /api/projects/<id>/members             — add member
  DELETE /api/projects/<id>/members/<user_id>   — remove member
"""

from flask import Blueprint, request

from taskflow.blueprints import json_body
from taskflow.middleware.jwt_auth import current_identity, require_auth
from taskflow.services import project_service
from taskflow.utils.errors import api_success

projects_bp = Blueprint("projects", __name__, url_prefix="/api/projects")


@projects_bp.route("", methods=["GET"])
@require_auth
def list_projects():
    projects, pagination = project_service.list_projects(current_identity(), request.args)
    return api_success({"projects": projects, "pagination": pagination})


@projects_bp.route("", methods=["POST"])
@require_auth
def create_project():
    project = project_service.create_project(current_identity(), json_body())
    return api_success({"project": project_service.serialize(project)},
                       status=201, message="Project created successfully")


@projects_bp.route("/<project_id>", methods=["GET"])
@require_auth
def get_project(project_id):
    return api_success({"project": project_service.get_project(project_id, current_identity())})


@projects_bp.route("/<project_id>", methods=["PUT"])
@require_auth
def update_project(project_id):
    project = project_service.update_project(project_id, current_identity(), json_body())
    return api_success({"project": project_service.serialize(project)},
                       message="Project updated successfully")


@projects_bp.route("/<project_id>", methods=["DELETE"])
@require_auth
def delete_project(project_id):
    removed = project_service.delete_project(project_id, current_identity())
    return api_success({"deletedTasks": removed},
                       message="Project and associated tasks deleted successfully")


# ── Membership ──────────────────────────────────────────────────────────

@projects_bp.route("/<project_id>/members", methods=["POST"])
@require_auth
def add_member(project_id):
    members = project_service.add_member(project_id, current_identity(), json_body())
    return api_success({"members": members}, message="Member added successfully")


@projects_bp.route("/<project_id>/members/<user_id>", methods=["DELETE"])
@require_auth
def remove_member(project_id, user_id):
    members = project_service.remove_member(project_id, user_id, current_identity())
    return api_success({"members": members}, message="Member removed successfully")
