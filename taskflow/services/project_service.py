"""Project CRUD service with membership-gated mutations and cascade delete.

Blueprints call these functions and serialize the result; every query,
authorization decision and commit happens here.
"""

from __future__ import annotations

import logging

from sqlalchemy import func

from taskflow.core.references import resolve_id
from taskflow.models import db, utcnow
from taskflow.models.project import (
    DEFAULT_PROJECT_COLOR,
    MEMBER_ROLES,
    PRIORITIES,
    PROJECT_STATUSES,
    Project,
    ProjectMember,
)
from taskflow.models.task import TASK_STATUSES, Task
from taskflow.models.user import User
from taskflow.services import membership
from taskflow.services.query import (
    PROJECT_SORT_FIELDS,
    paginate,
    parse_pagination,
    parse_sort,
    project_filters,
)
from taskflow.services.resolver import PROJECT_FIELDS, resolver
from taskflow.utils.helpers import HEX_COLOR_RE, FieldErrors, commit_or_raise, get_or_404

logger = logging.getLogger(__name__)


# ── Statistics ──────────────────────────────────────────────────────────

def _empty_stats() -> dict:
    stats = {"total": 0}
    stats.update({status: 0 for status in TASK_STATUSES})
    return stats


def task_stats(project_ids: list[int]) -> dict[int, dict]:
    """Count non-archived tasks per status for each project in one query."""
    result = {pid: _empty_stats() for pid in project_ids}
    if not project_ids:
        return result
    rows = (
        db.session.query(Task.project_id, Task.status, func.count(Task.id))
        .filter(Task.project_id.in_(project_ids), Task.is_archived.is_(False))
        .group_by(Task.project_id, Task.status)
        .all()
    )
    for project_id, status, count in rows:
        stats = result[project_id]
        stats[status] = stats.get(status, 0) + count
        stats["total"] += count
    return result


def progress(stats: dict) -> int:
    if not stats["total"]:
        return 0
    return round(stats["completed"] / stats["total"] * 100)


def serialize(project: Project, stats: dict | None = None) -> dict:
    """Expanded project, annotated with ``taskStats`` and ``progress``."""
    data = resolver.expand(project, PROJECT_FIELDS)
    if stats is not None:
        data["taskStats"] = stats
        data["progress"] = progress(stats)
    return data


# ── Validation ──────────────────────────────────────────────────────────

def _validate(data: dict, *, creating: bool) -> tuple[dict, FieldErrors]:
    errors = FieldErrors()
    values = {
        "name": errors.string(data, "name", label="Project name", required=creating, max_len=100),
        "description": errors.string(data, "description", label="Description", max_len=2000),
        "status": errors.choice(data, "status", PROJECT_STATUSES, label="status"),
        "priority": errors.choice(data, "priority", PRIORITIES, label="priority"),
        "start_date": errors.when(data, "startDate", label="start date"),
        "due_date": errors.when(data, "dueDate", label="due date"),
        "tags": errors.string_list(data, "tags", label="tags", max_len=50),
        "is_public": errors.boolean(data, "isPublic", label="isPublic"),
        "is_archived": errors.boolean(data, "isArchived", label="isArchived"),
    }
    if not creating and "name" in data and values["name"] is None:
        errors.add("name", "Project name cannot be empty", data.get("name"))

    color = data.get("color")
    if color is not None and (not isinstance(color, str) or not HEX_COLOR_RE.match(color)):
        errors.add("color", "Invalid color format", color)
    values["color"] = color

    budget = data.get("budget")
    if budget is not None:
        if not isinstance(budget, dict):
            errors.add("budget", "budget must be an object", budget)
        else:
            values["budget_estimated"] = errors.number(budget, "estimated", label="budget.estimated")
            values["budget_spent"] = errors.number(budget, "spent", label="budget.spent")
            values["budget_currency"] = errors.string(budget, "currency", label="budget.currency", max_len=10)
    return values, errors


def _initial_members(raw, owner_id: int, errors: FieldErrors) -> list[ProjectMember]:
    """Parse ``members`` on create; owner and duplicate entries are skipped."""
    if raw is None:
        return []
    if not isinstance(raw, list):
        errors.add("members", "members must be an array", raw)
        return []

    rows, seen = [], {owner_id}
    for entry in raw:
        if isinstance(entry, dict):
            user_ref, role = entry.get("user"), entry.get("role") or "member"
        else:
            user_ref, role = entry, "member"
        try:
            user_id = resolve_id(user_ref)
        except TypeError:
            user_id = None
        if user_id is None:
            errors.add("members", "Invalid member user ID", user_ref)
            continue
        if role not in MEMBER_ROLES:
            errors.add("members", "Invalid member role", role)
            continue
        if user_id in seen:
            continue
        if db.session.get(User, user_id) is None:
            errors.add("members", "Member user not found", user_id)
            continue
        seen.add(user_id)
        rows.append(ProjectMember(user_id=user_id, role=role))
    return rows


# ── Reads ───────────────────────────────────────────────────────────────

def load(project_id) -> Project:
    return get_or_404(Project, project_id, "Project")


def list_projects(identity, args) -> tuple[list[dict], dict]:
    """Projects the caller owns or belongs to, annotated with task statistics."""
    page, limit = parse_pagination(args, default_limit=10, max_limit=50)
    query = project_filters(Project.query, args, identity)
    query = query.order_by(*parse_sort(Project, args, "updatedAt", "desc", PROJECT_SORT_FIELDS))
    projects, pagination = paginate(query, page, limit)

    stats = task_stats([p.id for p in projects])
    return [serialize(p, stats[p.id]) for p in projects], pagination


def get_project(project_id, identity) -> dict:
    project = load(project_id)
    membership.ensure_can_view(project, identity)
    return serialize(project, task_stats([project.id])[project.id])


# ── Mutations ───────────────────────────────────────────────────────────

def create_project(identity, data: dict) -> Project:
    """Any authenticated user may create; the caller becomes the owner."""
    values, errors = _validate(data, creating=True)
    members = _initial_members(data.get("members"), identity.id, errors)
    errors.raise_if_any()

    project = Project(
        name=values["name"],
        description=values["description"],
        priority=values["priority"] or "medium",
        owner_id=identity.id,
        start_date=values["start_date"] or utcnow(),
        due_date=values["due_date"],
        tags=values["tags"] or [],
        color=values["color"] or DEFAULT_PROJECT_COLOR,
        is_public=bool(values["is_public"]),
        budget_estimated=values.get("budget_estimated") or 0,
        budget_spent=values.get("budget_spent") or 0,
        budget_currency=values.get("budget_currency") or "USD",
        members=members,
    )
    project.set_status(values["status"] or "planning")
    db.session.add(project)
    commit_or_raise("Project")
    logger.info("Project %s created by user %s", project.id, identity.id,
                extra={"project_id": project.id, "user_id": identity.id})
    return project


_UPDATABLE = {
    "name": "name",
    "description": "description",
    "priority": "priority",
    "start_date": "startDate",
    "due_date": "dueDate",
    "tags": "tags",
    "color": "color",
    "is_public": "isPublic",
    "is_archived": "isArchived",
}
_NOT_NULL = frozenset({"name", "priority", "tags", "color", "is_public", "is_archived"})
_BUDGET_KEYS = {"budget_estimated": "estimated", "budget_spent": "spent", "budget_currency": "currency"}


def update_project(project_id, identity, data: dict) -> Project:
    """Owner, member-admin or global admin. ``owner`` cannot be changed."""
    project = load(project_id)
    values, errors = _validate(data, creating=False)
    errors.raise_if_any()
    membership.ensure_can_manage(project, identity, "Not authorized to update this project")

    for attr, wire in _UPDATABLE.items():
        if wire not in data:
            continue
        if values[attr] is None and attr in _NOT_NULL:
            continue
        setattr(project, attr, values[attr])

    budget = data.get("budget")
    if isinstance(budget, dict):
        for attr, key in _BUDGET_KEYS.items():
            if key in budget and values.get(attr) is not None:
                setattr(project, attr, values[attr])

    if values["status"] is not None:
        project.set_status(values["status"])

    commit_or_raise("Project")
    return project


def delete_project(project_id, identity) -> int:
    """Delete the project and every task referencing it in one commit.

    Returns the number of tasks removed. Comments on those tasks are kept.
    """
    project = load(project_id)
    membership.ensure_can_manage(project, identity, "Not authorized to delete this project")
    pid = project.id

    removed = (
        Task.query.filter(Task.project_id == pid)
        .delete(synchronize_session=False)
    )
    db.session.delete(project)
    commit_or_raise("Project")
    logger.info("Project %s deleted with %d tasks by user %s", pid, removed, identity.id,
                extra={"project_id": pid, "user_id": identity.id})
    return removed


def add_member(project_id, identity, data: dict) -> list[dict]:
    project = load(project_id)
    membership.add_member(project, data, identity)
    return serialize(project)["members"]


def remove_member(project_id, user_id, identity) -> list[dict]:
    project = load(project_id)
    membership.remove_member(project, user_id, identity)
    return serialize(project)["members"]
