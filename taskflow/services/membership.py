"""
Project Membership Authority.

Decides whether a user may view or act on a project, and owns the two
mutations of ``project.members``. The owner is implicitly a full member
and never has a ``project_members`` row.

Every comparison goes through ``resolve_id`` so the checks accept ORM
users, ``Identity`` objects, bare ids and expanded dicts interchangeably:

    is_member(project, 7)
    is_member(project, identity)
    is_member({"owner": {"id": 1, ...}, "members": [...]}, Ref(7))
"""

import logging

from taskflow.core.exceptions import (
    AuthorizationError,
    ConflictError,
    InvalidOperationError,
    NotFoundError,
)
from taskflow.core.references import Expanded, Ref, Reference, resolve_id, same_entity
from taskflow.models import db
from taskflow.models.project import MEMBER_ROLES, Project, ProjectMember
from taskflow.models.user import User
from taskflow.utils.helpers import FieldErrors, commit_or_raise

logger = logging.getLogger(__name__)


# ── Accessors over ORM projects and expanded dicts ──────────────────────

def _as_reference(value) -> Reference:
    if isinstance(value, dict):
        return Expanded(value)
    return value


def _owner_ref(project) -> Reference:
    if isinstance(project, dict):
        return _as_reference(project.get("owner"))
    return Ref(project.owner_id)


def _member_entries(project) -> list:
    if isinstance(project, dict):
        return project.get("members") or []
    return project.members


def _entry_user(entry) -> Reference:
    if isinstance(entry, dict):
        return _as_reference(entry.get("user"))
    return Ref(entry.user_id)


def _entry_role(entry) -> str | None:
    if isinstance(entry, dict):
        return entry.get("role")
    return entry.role


def _flag(project, attr, key) -> bool:
    if isinstance(project, dict):
        return bool(project.get(key))
    return bool(getattr(project, attr))


def _is_global_admin(user) -> bool:
    return getattr(user, "role", None) == "admin" or (
        isinstance(user, dict) and user.get("role") == "admin"
    )


# ── Predicates ──────────────────────────────────────────────────────────

def is_owner(project, user: Reference) -> bool:
    return same_entity(_owner_ref(project), user)


def find_member(project, user: Reference):
    """Return the member entry for ``user`` or None. Never matches the owner."""
    for entry in _member_entries(project):
        if same_entity(_entry_user(entry), user):
            return entry
    return None


def is_member(project, user: Reference) -> bool:
    """True iff ``user`` is the owner or appears in the member list."""
    return is_owner(project, user) or find_member(project, user) is not None


def member_role(project, user: Reference) -> str | None:
    """``"owner"``, the stored member role, or None for outsiders."""
    if is_owner(project, user):
        return "owner"
    entry = find_member(project, user)
    return _entry_role(entry) if entry is not None else None


def can_view_project(project, identity) -> bool:
    return (
        _flag(project, "is_public", "isPublic")
        or is_member(project, identity)
        or _is_global_admin(identity)
    )


def can_manage_project(project, identity) -> bool:
    """Owner, member with role ``admin``, or global admin."""
    return member_role(project, identity) in ("owner", "admin") or _is_global_admin(identity)


# ── Guards ──────────────────────────────────────────────────────────────

def ensure_can_view(project, identity, message="You do not have access to this project"):
    if not can_view_project(project, identity):
        raise AuthorizationError(message)


def ensure_can_manage(project, identity, message="Not authorized to modify this project"):
    if not can_manage_project(project, identity):
        logger.info("Manage denied on project=%s for user=%s",
                    resolve_id(project), resolve_id(identity),
                    extra={"project_id": resolve_id(project), "user_id": resolve_id(identity)})
        raise AuthorizationError(message)


def ensure_member(project, identity, message="Not authorized to create tasks in this project"):
    """Task creation gate: membership of any role. Public projects do not qualify."""
    if not is_member(project, identity):
        raise AuthorizationError(message)


# ── Mutations ───────────────────────────────────────────────────────────

def add_member(project: Project, data: dict, requester) -> Project:
    """Add ``data["userId"]`` with ``data["role"]`` (default ``member``).

    Raises:
        ValidationError: missing/invalid userId or role.
        AuthorizationError: requester cannot manage the project.
        NotFoundError: target user does not exist.
        ConflictError: target is the owner or already a member.
    """
    errors = FieldErrors()
    user_id = errors.identifier(data, "userId", label="user ID", required=True)
    role = errors.choice(data, "role", MEMBER_ROLES, label="role") or "member"
    errors.raise_if_any()

    ensure_can_manage(project, requester, "Not authorized to add members")

    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError("User", user_id)

    if is_member(project, user_id):
        raise ConflictError("User is already a member of this project",
                            resource="ProjectMember", field="userId", value=user_id)

    project.members.append(ProjectMember(user_id=user_id, role=role))
    commit_or_raise("ProjectMember")
    logger.info("Member %s added to project %s as %s", user_id, project.id, role,
                extra={"project_id": project.id, "user_id": resolve_id(requester)})
    return project


def remove_member(project: Project, user_id, requester) -> Project:
    """Remove a member row. Removing a non-member is a successful no-op."""
    ensure_can_manage(project, requester, "Not authorized to remove members")

    try:
        target = resolve_id(user_id)
    except TypeError:
        raise NotFoundError("User", user_id) from None

    if is_owner(project, target):
        raise InvalidOperationError("Cannot remove the project owner")

    entry = find_member(project, target)
    if entry is not None:
        project.members.remove(entry)
        commit_or_raise("ProjectMember")
        logger.info("Member %s removed from project %s", target, project.id,
                    extra={"project_id": project.id, "user_id": resolve_id(requester)})
    return project
