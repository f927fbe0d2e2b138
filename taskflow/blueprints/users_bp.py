"""
Users Blueprint — user directory and admin account management.

  GET    /api/users/team/members  — active users for pickers
  GET    /api/users               — filtered, paginated list
  GET    /api/users/<id>          — detail
  PUT    /api/users/<id>          — admin edit
  DELETE /api/users/<id>          — admin deactivate
"""

from flask import Blueprint, request

from taskflow.blueprints import json_body
from taskflow.middleware.jwt_auth import authorize, current_identity, require_auth
from taskflow.services import user_service
from taskflow.utils.errors import api_success

users_bp = Blueprint("users", __name__, url_prefix="/api/users")


@users_bp.route("/team/members", methods=["GET"])
@require_auth
def team_members():
    return api_success({"users": user_service.team_members(request.args)})


@users_bp.route("", methods=["GET"])
@require_auth
def list_users():
    users, pagination = user_service.list_users(request.args)
    return api_success({"users": users, "pagination": pagination})


@users_bp.route("/<user_id>", methods=["GET"])
@require_auth
def get_user(user_id):
    return api_success({"user": user_service.get_user(user_id).to_dict()})


@users_bp.route("/<user_id>", methods=["PUT"])
@require_auth
@authorize("admin")
def update_user(user_id):
    user = user_service.update_user(user_id, json_body())
    return api_success({"user": user.to_dict()}, message="User updated successfully")


@users_bp.route("/<user_id>", methods=["DELETE"])
@require_auth
@authorize("admin")
def delete_user(user_id):
    user_service.deactivate_user(user_id, current_identity())
    return api_success(message="User deactivated successfully")
