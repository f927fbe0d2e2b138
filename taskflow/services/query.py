"""
Query/Filter layer — pagination, sorting and per-entity filter builders.

Stateless helpers shared by the project, task, user and comment listings:

    page, limit = parse_pagination(args, default_limit=20, max_limit=100)
    query = task_filters(Task.query, args, identity)
    query = query.order_by(*parse_sort(Task, args, "createdAt", "desc", TASK_SORT_FIELDS))
    items, pagination = paginate(query, page, limit)

Every sort ends with the primary key so page boundaries are stable and
concatenating all pages yields each row exactly once.
"""

import math
from datetime import timedelta

from sqlalchemy import String, cast, or_, select

from taskflow.core.exceptions import ValidationError
from taskflow.models import utcnow
from taskflow.models.project import PRIORITIES, PROJECT_STATUSES, Project, ProjectMember
from taskflow.models.task import TASK_STATUSES, Task
from taskflow.models.user import USER_ROLES, User
from taskflow.utils.helpers import parse_bool, parse_datetime

PROJECT_SORT_FIELDS = {
    "name": "name",
    "status": "status",
    "priority": "priority",
    "createdAt": "created_at",
    "updatedAt": "updated_at",
    "startDate": "start_date",
    "dueDate": "due_date",
}

TASK_SORT_FIELDS = {
    "title": "title",
    "status": "status",
    "priority": "priority",
    "order": "order",
    "createdAt": "created_at",
    "updatedAt": "updated_at",
    "dueDate": "due_date",
    "startDate": "start_date",
}

USER_SORT_FIELDS = {
    "name": "name",
    "email": "email",
    "role": "role",
    "department": "department",
    "createdAt": "created_at",
    "lastLogin": "last_login",
}

COMMENT_SORT_FIELDS = {
    "createdAt": "created_at",
    "updatedAt": "updated_at",
}


def _field_error(field, message, value):
    return ValidationError("Validation failed", errors=[
        {"field": field, "message": message, "value": value},
    ])


def _int_arg(args, name, default, minimum, maximum=None):
    raw = args.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except (TypeError, ValueError):
        raise _field_error(name, f"{name} must be an integer", raw) from None
    if value < minimum or (maximum is not None and value > maximum):
        bound = f"between {minimum} and {maximum}" if maximum is not None else f"at least {minimum}"
        raise _field_error(name, f"{name} must be {bound}", raw)
    return value


def parse_pagination(args, default_limit=20, max_limit=100) -> tuple[int, int]:
    """Read ``page`` (≥1) and ``limit`` (1..max_limit) from query args."""
    page = _int_arg(args, "page", 1, 1)
    limit = _int_arg(args, "limit", default_limit, 1, max_limit)
    return page, limit


def parse_sort_order(args, default="desc", name="sortOrder") -> str:
    order = (args.get(name) or default).lower()
    if order not in ("asc", "desc"):
        raise _field_error(name, "sortOrder must be 'asc' or 'desc'", args.get(name))
    return order


def parse_sort(model, args, default_field, default_order="desc", allowed=None) -> list:
    """Build ``ORDER BY`` clauses from ``sortBy`` / ``sortOrder``.

    ``allowed`` maps camelCase wire names to model attributes. The model's
    primary key is appended as a tie breaker in the same direction.
    """
    allowed = allowed or {}
    field = args.get("sortBy") or default_field
    if field not in allowed:
        raise _field_error("sortBy", f"Cannot sort by '{field}'", field)
    order = parse_sort_order(args, default_order)

    column = getattr(model, allowed[field])
    pk = model.id
    if order == "asc":
        return [column.asc(), pk.asc()]
    return [column.desc(), pk.desc()]


def pagination_meta(page: int, limit: int, total: int) -> dict:
    return {
        "current": page,
        "pages": math.ceil(total / limit) if limit else 0,
        "total": total,
        "limit": limit,
        "hasNext": page * limit < total,
        "hasPrev": page > 1,
    }


def paginate(query, page: int, limit: int) -> tuple[list, dict]:
    """Apply offset/limit to an ordered query; returns ``(items, pagination)``."""
    total = query.order_by(None).count()
    items = query.offset((page - 1) * limit).limit(limit).all()
    return items, pagination_meta(page, limit, total)


def _like(term: str) -> str:
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped.lower()}%"


def _icontains(column, term):
    return column.ilike(_like(term), escape="\\")


def _tags_contain(column, term):
    # JSON list stored as text; substring match over its serialized form
    return cast(column, String).ilike(_like(term), escape="\\")


# ── Projects ────────────────────────────────────────────────────────────

def _member_project_ids(user_id: int):
    return select(ProjectMember.project_id).where(ProjectMember.user_id == user_id)


def accessible_project_ids(user_id: int):
    """SELECT of project ids the user owns or is a member of."""
    return select(Project.id).where(
        or_(Project.owner_id == user_id, Project.id.in_(_member_project_ids(user_id)))
    ).correlate(None)


def viewable_project_ids(user_id: int):
    """Accessible projects plus every public one."""
    return select(Project.id).where(
        or_(
            Project.owner_id == user_id,
            Project.id.in_(_member_project_ids(user_id)),
            Project.is_public.is_(True),
        )
    ).correlate(None)


def project_filters(query, args, identity):
    """Owner-or-member scope, archived flag, search, status, priority."""
    query = query.filter(Project.id.in_(accessible_project_ids(identity.id)))

    archived = parse_bool(args.get("archived"), default=False)
    query = query.filter(Project.is_archived.is_(archived))

    search = (args.get("search") or "").strip()
    if search:
        query = query.filter(or_(
            _icontains(Project.name, search),
            _icontains(Project.description, search),
            _tags_contain(Project.tags, search),
        ))

    status = args.get("status")
    if status:
        if status not in PROJECT_STATUSES:
            raise _field_error("status", "Invalid status", status)
        query = query.filter(Project.status == status)

    priority = args.get("priority")
    if priority:
        if priority not in PRIORITIES:
            raise _field_error("priority", "Invalid priority", priority)
        query = query.filter(Project.priority == priority)
    return query


# ── Tasks ───────────────────────────────────────────────────────────────

def task_filters(query, args, identity):
    """Filters for the task list.

    ``overdue=true`` replaces any ``dueDate`` / ``status`` filter with
    ``dueDate < now AND status != completed``.
    """
    query = query.filter(Task.is_archived.is_(False))
    if getattr(identity, "role", None) != "admin":
        query = query.filter(Task.project_id.in_(viewable_project_ids(identity.id)))

    project = args.get("project")
    if project:
        try:
            query = query.filter(Task.project_id == int(project))
        except (TypeError, ValueError):
            raise _field_error("project", "Invalid project ID", project) from None

    status = args.get("status")
    status_values = [s.strip() for s in status.split(",") if s.strip()] if status else []

    priority = args.get("priority")
    if priority:
        if priority not in PRIORITIES:
            raise _field_error("priority", "Invalid priority", priority)
        query = query.filter(Task.priority == priority)

    assignee = args.get("assignee")
    if assignee:
        if assignee == "me":
            query = query.filter(Task.assignee_id == identity.id)
        elif assignee == "unassigned":
            query = query.filter(Task.assignee_id.is_(None))
        else:
            try:
                query = query.filter(Task.assignee_id == int(assignee))
            except (TypeError, ValueError):
                raise _field_error("assignee", "Invalid assignee ID", assignee) from None

    search = (args.get("search") or "").strip()
    if search:
        query = query.filter(or_(
            _icontains(Task.title, search),
            _icontains(Task.description, search),
            _tags_contain(Task.tags, search),
        ))

    due_range = None
    due_date = args.get("dueDate")
    if due_date:
        try:
            day = parse_datetime(due_date).replace(hour=0, minute=0, second=0, microsecond=0)
        except (TypeError, ValueError):
            raise _field_error("dueDate", "Invalid date format", due_date) from None
        due_range = (day, day + timedelta(days=1))

    if parse_bool(args.get("overdue"), default=False):
        query = query.filter(Task.due_date < utcnow(), Task.status != "completed")
    else:
        if status_values:
            unknown = [s for s in status_values if s not in TASK_STATUSES]
            if unknown:
                raise _field_error("status", "Invalid status", status)
            query = query.filter(Task.status.in_(status_values))
        if due_range:
            query = query.filter(Task.due_date >= due_range[0], Task.due_date < due_range[1])
    return query


# ── Users ───────────────────────────────────────────────────────────────

def user_filters(query, args):
    search = (args.get("search") or "").strip()
    if search:
        query = query.filter(or_(_icontains(User.name, search), _icontains(User.email, search)))

    role = args.get("role")
    if role:
        if role not in USER_ROLES:
            raise _field_error("role", "Invalid role", role)
        query = query.filter(User.role == role)

    department = (args.get("department") or "").strip()
    if department:
        query = query.filter(_icontains(User.department, department))

    is_active = parse_bool(args.get("isActive"))
    if is_active is not None:
        query = query.filter(User.is_active.is_(is_active))
    return query
