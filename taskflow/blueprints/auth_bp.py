"""
Auth Blueprint — registration, login and the caller's own profile.

  POST /api/auth/register   — create account → {user, token}
  POST /api/auth/login      — email + password → {user, token}
  GET  /api/auth/me         — current user
  PUT  /api/auth/profile    — update name/phone/bio/department/avatar
  PUT  /api/auth/password   — change password → fresh token
"""

from flask import Blueprint

from taskflow.blueprints import json_body
from taskflow.middleware.jwt_auth import current_identity, require_auth
from taskflow.services import identity_service
from taskflow.utils.errors import api_success

auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


# ═══════════════════════════════════════════════════════════════
# POST /api/auth/register
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/register", methods=["POST"])
def register():
    user, token = identity_service.register(json_body())
    return api_success({"user": user.to_dict(), "token": token},
                       status=201, message="User registered successfully")


# ═══════════════════════════════════════════════════════════════
# POST /api/auth/login
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/login", methods=["POST"])
def login():
    user, token = identity_service.login(json_body())
    return api_success({"user": user.to_dict(), "token": token}, message="Login successful")


# ═══════════════════════════════════════════════════════════════
# Profile
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/me", methods=["GET"])
@require_auth
def me():
    user = identity_service.me(current_identity())
    return api_success({"user": user.to_dict()})


@auth_bp.route("/profile", methods=["PUT"])
@require_auth
def update_profile():
    user = identity_service.update_profile(current_identity(), json_body())
    return api_success({"user": user.to_dict()}, message="Profile updated successfully")


@auth_bp.route("/password", methods=["PUT"])
@require_auth
def change_password():
    token = identity_service.change_password(current_identity(), json_body())
    return api_success({"token": token}, message="Password changed successfully")
