"""Comment Thread Manager — threads, edits, soft delete and reactions.

A deleted comment keeps its row so replies stay attached; its content is
replaced by ``DELETED_COMMENT_TEXT`` and it drops out of thread listings.
"""

from __future__ import annotations

import logging

from flask import current_app

from taskflow.core.exceptions import AuthorizationError, InvalidOperationError, ValidationError
from taskflow.core.references import resolve_id, same_entity
from taskflow.models import db, utcnow
from taskflow.models.comment import (
    DELETED_COMMENT_TEXT,
    MAX_COMMENT_LENGTH,
    REACTION_TYPES,
    Comment,
    CommentReaction,
)
from taskflow.models.task import Task
from taskflow.models.user import User
from taskflow.services.query import paginate, parse_pagination, parse_sort_order
from taskflow.services.resolver import COMMENT_FIELDS, resolver
from taskflow.utils.helpers import FieldErrors, commit_or_raise, get_or_404

logger = logging.getLogger(__name__)


def serialize(comment: Comment) -> dict:
    return resolver.expand(comment, COMMENT_FIELDS)


def load(comment_id) -> Comment:
    return get_or_404(Comment, comment_id, "Comment")


def _content(data: dict) -> str | None:
    errors = FieldErrors()
    content = errors.string(data, "content", label="Comment content", required=True,
                            max_len=MAX_COMMENT_LENGTH)
    errors.raise_if_any()
    return content


def _mentioned_users(raw) -> list[User]:
    """Existing users among ``raw``; unknown or malformed ids are dropped."""
    if not isinstance(raw, list):
        return []
    ids = []
    for ref in raw:
        try:
            user_id = resolve_id(ref)
        except TypeError:
            continue
        if user_id is not None and user_id not in ids:
            ids.append(user_id)
    if not ids:
        return []
    return User.query.filter(User.id.in_(ids)).order_by(User.id).all()


def _wire_key(data, name, alias):
    return alias if alias in data and name not in data else name


def create_comment(identity, data: dict) -> Comment:
    content = _content(data)
    task_key = _wire_key(data, "taskId", "task")
    parent_key = _wire_key(data, "parentCommentId", "parentComment")
    errors = FieldErrors()
    task_id = errors.identifier(data, task_key, label="task ID", required=True)
    parent_id = errors.identifier(data, parent_key, label="parent comment ID")
    errors.raise_if_any()

    task = get_or_404(Task, task_id, "Task")
    parent = None
    if parent_id is not None:
        parent = get_or_404(Comment, parent_id, "Parent comment")
        if parent.task_id != task.id:
            raise ValidationError("Validation failed", errors=[{
                "field": parent_key,
                "message": "Parent comment belongs to a different task",
                "value": parent_id,
            }])
        nested = parent.parent_comment_id is not None
        if nested and not current_app.config.get("COMMENT_ALLOW_NESTED_REPLIES", False):
            raise ValidationError("Validation failed", errors=[{
                "field": parent_key,
                "message": "Replies can only be made to top-level comments",
                "value": parent_id,
            }])

    comment = Comment(
        content=content,
        task_id=task.id,
        author_id=identity.id,
        parent=parent,
        mentions=_mentioned_users(data.get("mentions")),
    )
    db.session.add(comment)
    commit_or_raise("Comment")
    logger.info("Comment %s added to task %s", comment.id, task.id,
                extra={"comment_id": comment.id, "task_id": task.id, "user_id": identity.id})
    return comment


def update_comment(comment_id, identity, data: dict) -> Comment:
    comment = load(comment_id)
    content = _content(data)
    if not same_entity(comment.author_id, identity):
        raise AuthorizationError("Not authorized to update this comment")
    if comment.is_deleted:
        raise InvalidOperationError("Cannot edit a deleted comment")

    comment.content = content
    comment.is_edited = True
    comment.edited_at = utcnow()
    commit_or_raise("Comment")
    return comment


def delete_comment(comment_id, identity) -> Comment:
    """Soft delete by the author or a global admin."""
    comment = load(comment_id)
    if not (same_entity(comment.author_id, identity) or identity.is_admin):
        raise AuthorizationError("Not authorized to delete this comment")

    comment.is_deleted = True
    comment.content = DELETED_COMMENT_TEXT
    commit_or_raise("Comment")
    logger.info("Comment %s deleted by user %s", comment.id, identity.id,
                extra={"comment_id": comment.id, "user_id": identity.id})
    return comment


def add_reaction(comment_id, identity, data: dict) -> Comment:
    """One reaction per user; reacting again replaces the type."""
    errors = FieldErrors()
    kind = errors.choice(data, "type", REACTION_TYPES, label="reaction type") or "like"
    errors.raise_if_any()

    comment = load(comment_id)
    existing = next((r for r in comment.reactions if r.user_id == identity.id), None)
    if existing is not None:
        existing.type = kind
    else:
        comment.reactions.append(CommentReaction(user_id=identity.id, type=kind))
    commit_or_raise("CommentReaction")
    return comment


def remove_reaction(comment_id, identity) -> Comment:
    comment = load(comment_id)
    existing = next((r for r in comment.reactions if r.user_id == identity.id), None)
    if existing is not None:
        comment.reactions.remove(existing)
        commit_or_raise("CommentReaction")
    return comment


def _visible_replies(parent_ids: list[int]) -> dict[int, list[Comment]]:
    grouped = {pid: [] for pid in parent_ids}
    if not parent_ids:
        return grouped
    replies = (
        Comment.query.filter(
            Comment.parent_comment_id.in_(parent_ids),
            Comment.is_deleted.is_(False),
        )
        .order_by(Comment.created_at.asc(), Comment.id.asc())
        .all()
    )
    for reply in replies:
        grouped[reply.parent_comment_id].append(reply)
    return grouped


def list_comments(task_id, args) -> tuple[list[dict], dict]:
    """Top-level, non-deleted comments of a task, each with its live replies."""
    task = get_or_404(Task, task_id, "Task")
    page, limit = parse_pagination(args, default_limit=20, max_limit=100)
    order = parse_sort_order(args, "desc")

    query = Comment.query.filter(
        Comment.task_id == task.id,
        Comment.parent_comment_id.is_(None),
        Comment.is_deleted.is_(False),
    )
    if order == "asc":
        query = query.order_by(Comment.created_at.asc(), Comment.id.asc())
    else:
        query = query.order_by(Comment.created_at.desc(), Comment.id.desc())
    comments, pagination = paginate(query, page, limit)

    replies = _visible_replies([c.id for c in comments])
    payload = []
    for comment in comments:
        data = serialize(comment)
        data["replies"] = resolver.expand_many(replies[comment.id], COMMENT_FIELDS)
        payload.append(data)
    return payload, pagination


def list_replies(comment_id) -> list[dict]:
    """Every reply of a comment, tombstones included, oldest first."""
    comment = load(comment_id)
    return resolver.expand_many(comment.replies, COMMENT_FIELDS)
