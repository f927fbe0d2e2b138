"""Admin user management and the team directory."""

import logging

from taskflow.core.exceptions import ConflictError, InvalidOperationError
from taskflow.core.references import same_entity
from taskflow.models.user import USER_ROLES, User
from taskflow.services.identity_service import email_taken, normalize_email
from taskflow.services.query import (
    USER_SORT_FIELDS,
    paginate,
    parse_pagination,
    parse_sort,
    user_filters,
)
from taskflow.utils.helpers import FieldErrors, commit_or_raise, get_or_404

logger = logging.getLogger(__name__)


def list_users(args):
    page, limit = parse_pagination(args, default_limit=20, max_limit=100)
    query = user_filters(User.query, args)
    query = query.order_by(*parse_sort(User, args, "createdAt", "desc", USER_SORT_FIELDS))
    users, pagination = paginate(query, page, limit)
    return [u.to_dict() for u in users], pagination


def get_user(user_id) -> User:
    return get_or_404(User, user_id, "User")


def update_user(user_id, data: dict) -> User:
    """Admin edit of any account, including role and active flag."""
    user = get_user(user_id)
    errors = FieldErrors()
    values = {
        "name": errors.string(data, "name", label="Name", min_len=2, max_len=50),
        "role": errors.choice(data, "role", USER_ROLES, label="role"),
        "department": errors.string(data, "department", label="Department", max_len=100),
        "phone": errors.string(data, "phone", label="Phone", max_len=50),
        "bio": errors.string(data, "bio", label="Bio", max_len=500),
        "is_active": errors.boolean(data, "isActive", label="isActive"),
    }
    email = normalize_email(errors, data.get("email")) if "email" in data else None
    errors.raise_if_any()

    if email is not None and email != user.email:
        if email_taken(email, exclude_user_id=user.id):
            raise ConflictError("Email is already in use",
                                resource="User", field="email", value=email)
        user.email = email

    for attr, wire in (("name", "name"), ("role", "role"), ("department", "department"),
                       ("phone", "phone"), ("bio", "bio"), ("is_active", "isActive")):
        if wire not in data:
            continue
        if values[attr] is None and attr in ("name", "role", "department", "is_active"):
            continue
        setattr(user, attr, values[attr])

    commit_or_raise("User")
    logger.info("User %s updated", user.id, extra={"user_id": user.id})
    return user


def deactivate_user(user_id, identity) -> User:
    """Soft delete: the account stays, ``is_active`` goes false."""
    user = get_user(user_id)
    if same_entity(user, identity):
        raise InvalidOperationError("You cannot delete your own account")
    user.is_active = False
    commit_or_raise("User")
    logger.info("User %s deactivated by %s", user.id, identity.id,
                extra={"user_id": identity.id})
    return user


def team_members(args) -> list[dict]:
    """Active users by name, for assignee and member pickers."""
    errors = FieldErrors()
    limit = errors.integer(args, "limit", label="limit", minimum=1)
    errors.raise_if_any()

    query = User.query.filter(User.is_active.is_(True))
    search = (args.get("search") or "").strip()
    if search:
        query = user_filters(query, {"search": search})
    users = query.order_by(User.name.asc(), User.id.asc()).limit(min(limit or 50, 100)).all()
    return [
        {**u.summary(), "role": u.role, "department": u.department}
        for u in users
    ]
