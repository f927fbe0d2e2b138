"""
Tasks Blueprint — task CRUD, Kanban moves, subtasks and watchers.

  GET    /api/tasks/my-tasks                       — caller's open assignments
  GET    /api/tasks                                — filtered, paginated list
  POST   /api/tasks                                — create
  GET    /api/tasks/project/<project_id>           — Kanban buckets
  GET    /api/tasks/<id>                           — detail
  PUT    /api/tasks/<id>                           — update
  DELETE /api/tasks/<id>                           — delete
  PATCH  /api/tasks/<id>/status                    — status + order
  POST   /api/tasks/<id>/subtasks                  — add subtask
  PATCH  /api/tasks/<id>/subtasks/<subtask_id>     — toggle subtask
  DELETE /api/tasks/<id>/subtasks/<subtask_id>     — delete subtask
  POST   /api/tasks/<id>/watch                     — watch
  DELETE /api/tasks/<id>/watch                     — unwatch
"""

from flask import Blueprint, request

from taskflow.blueprints import json_body
from taskflow.middleware.jwt_auth import current_identity, require_auth
from taskflow.services import task_service
from taskflow.utils.errors import api_success

tasks_bp = Blueprint("tasks", __name__, url_prefix="/api/tasks")


def _subtasks(task):
    return {"subtasks": [st.to_dict() for st in task.subtasks]}


@tasks_bp.route("/my-tasks", methods=["GET"])
@require_auth
def my_tasks():
    return api_success({"tasks": task_service.get_my_tasks(current_identity(), request.args)})


@tasks_bp.route("", methods=["GET"])
@require_auth
def list_tasks():
    tasks, pagination = task_service.list_tasks(current_identity(), request.args)
    return api_success({"tasks": tasks, "pagination": pagination})


@tasks_bp.route("", methods=["POST"])
@require_auth
def create_task():
    task = task_service.create_task(current_identity(), json_body())
    return api_success({"task": task_service.serialize(task)},
                       status=201, message="Task created successfully")


@tasks_bp.route("/project/<project_id>", methods=["GET"])
@require_auth
def tasks_by_project(project_id):
    return api_success(task_service.get_tasks_by_project(project_id, current_identity()))


@tasks_bp.route("/<task_id>", methods=["GET"])
@require_auth
def get_task(task_id):
    return api_success({"task": task_service.get_task(task_id, current_identity())})


@tasks_bp.route("/<task_id>", methods=["PUT"])
@require_auth
def update_task(task_id):
    task = task_service.update_task(task_id, current_identity(), json_body())
    return api_success({"task": task_service.serialize(task)}, message="Task updated successfully")


@tasks_bp.route("/<task_id>", methods=["DELETE"])
@require_auth
def delete_task(task_id):
    task_service.delete_task(task_id, current_identity())
    return api_success(message="Task deleted successfully")


@tasks_bp.route("/<task_id>/status", methods=["PATCH"])
@require_auth
def update_status(task_id):
    task = task_service.update_task_status(task_id, current_identity(), json_body())
    return api_success({"task": task_service.serialize(task)}, message="Task status updated")


# ── Subtasks ────────────────────────────────────────────────────────────

@tasks_bp.route("/<task_id>/subtasks", methods=["POST"])
@require_auth
def add_subtask(task_id):
    task = task_service.add_subtask(task_id, current_identity(), json_body())
    return api_success(_subtasks(task), status=201, message="Subtask added successfully")


@tasks_bp.route("/<task_id>/subtasks/<subtask_id>", methods=["PATCH"])
@require_auth
def toggle_subtask(task_id, subtask_id):
    task = task_service.toggle_subtask(task_id, subtask_id, current_identity())
    return api_success(_subtasks(task))


@tasks_bp.route("/<task_id>/subtasks/<subtask_id>", methods=["DELETE"])
@require_auth
def delete_subtask(task_id, subtask_id):
    task = task_service.delete_subtask(task_id, subtask_id, current_identity())
    return api_success(_subtasks(task), message="Subtask deleted successfully")


# ── Watchers ────────────────────────────────────────────────────────────

@tasks_bp.route("/<task_id>/watch", methods=["POST"])
@require_auth
def watch(task_id):
    task = task_service.watch_task(task_id, current_identity())
    return api_success({"watchers": [u.id for u in task.watchers]}, message="Now watching task")


@tasks_bp.route("/<task_id>/watch", methods=["DELETE"])
@require_auth
def unwatch(task_id):
    task = task_service.unwatch_task(task_id, current_identity())
    return api_success({"watchers": [u.id for u in task.watchers]}, message="Stopped watching task")
