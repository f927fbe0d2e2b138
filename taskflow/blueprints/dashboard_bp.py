"""
Dashboard Blueprint.

  GET /api/dashboard/stats             — counts for the caller's projects and tasks
  GET /api/dashboard/activity          — recently updated tasks
  GET /api/dashboard/deadlines         — caller's upcoming due dates
  GET /api/dashboard/team-performance  — manager / admin only
"""

from flask import Blueprint, request

from taskflow.middleware.jwt_auth import authorize, current_identity, require_auth
from taskflow.services import dashboard_service
from taskflow.utils.errors import api_success

dashboard_bp = Blueprint("dashboard", __name__, url_prefix="/api/dashboard")


@dashboard_bp.route("/stats", methods=["GET"])
@require_auth
def stats():
    return api_success(dashboard_service.stats(current_identity()))


@dashboard_bp.route("/activity", methods=["GET"])
@require_auth
def activity():
    return api_success({"activity": dashboard_service.activity(current_identity(), request.args)})


@dashboard_bp.route("/deadlines", methods=["GET"])
@require_auth
def deadlines():
    return api_success({"tasks": dashboard_service.deadlines(current_identity(), request.args)})


@dashboard_bp.route("/team-performance", methods=["GET"])
@require_auth
@authorize("manager", "admin")
def team_performance():
    return api_success({"performance": dashboard_service.team_performance()})
