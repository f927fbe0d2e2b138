"""
Comments Blueprint — task discussion threads.

  GET    /api/comments/task/<task_id>     — top-level comments with live replies
  GET    /api/comments/<id>/replies       — every reply, tombstones included
  POST   /api/comments                    — create / reply
  PUT    /api/comments/<id>               — edit (author)
  DELETE /api/comments/<id>               — soft delete (author / admin)
  POST   /api/comments/<id>/reactions     — add or change reaction
  DELETE /api/comments/<id>/reactions     — remove reaction
"""

from flask import Blueprint, request

from taskflow.blueprints import json_body
from taskflow.middleware.jwt_auth import current_identity, require_auth
from taskflow.services import comment_service
from taskflow.utils.errors import api_success

comments_bp = Blueprint("comments", __name__, url_prefix="/api/comments")


@comments_bp.route("/task/<task_id>", methods=["GET"])
@require_auth
def list_comments(task_id):
    comments, pagination = comment_service.list_comments(task_id, request.args)
    return api_success({"comments": comments, "pagination": pagination})


@comments_bp.route("/<comment_id>/replies", methods=["GET"])
@require_auth
def list_replies(comment_id):
    return api_success({"replies": comment_service.list_replies(comment_id)})


@comments_bp.route("", methods=["POST"])
@require_auth
def create_comment():
    comment = comment_service.create_comment(current_identity(), json_body())
    return api_success({"comment": comment_service.serialize(comment)},
                       status=201, message="Comment added successfully")


@comments_bp.route("/<comment_id>", methods=["PUT"])
@require_auth
def update_comment(comment_id):
    comment = comment_service.update_comment(comment_id, current_identity(), json_body())
    return api_success({"comment": comment_service.serialize(comment)},
                       message="Comment updated successfully")


@comments_bp.route("/<comment_id>", methods=["DELETE"])
@require_auth
def delete_comment(comment_id):
    comment_service.delete_comment(comment_id, current_identity())
    return api_success(message="Comment deleted successfully")


@comments_bp.route("/<comment_id>/reactions", methods=["POST"])
@require_auth
def add_reaction(comment_id):
    comment = comment_service.add_reaction(comment_id, current_identity(), json_body())
    return api_success({"reactions": [r.to_dict() for r in comment.reactions]})


@comments_bp.route("/<comment_id>/reactions", methods=["DELETE"])
@require_auth
def remove_reaction(comment_id):
    comment = comment_service.remove_reaction(comment_id, current_identity())
    return api_success({"reactions": [r.to_dict() for r in comment.reactions]})
