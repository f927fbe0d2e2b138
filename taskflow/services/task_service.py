"""Task State Manager — lifecycle, column ordering, subtasks, watchers, Kanban view.

Rules kept here:
    - a new task goes to the end of its ``(project, status)`` column
    - ``completed_at`` follows the task in and out of the completed column
    - status patches need only authentication unless
      TASK_STATUS_REQUIRES_MEMBERSHIP is enabled
    - deleting a task leaves its comments in place
"""

from __future__ import annotations

import logging

from flask import current_app
from sqlalchemy import case, func

from taskflow.core.exceptions import AuthorizationError, NotFoundError
from taskflow.core.references import resolve_id
from taskflow.models import db
from taskflow.models.project import PRIORITIES, Project
from taskflow.models.task import TASK_STATUSES, Subtask, Task
from taskflow.models.user import User
from taskflow.services import membership
from taskflow.services.query import (
    TASK_SORT_FIELDS,
    paginate,
    parse_pagination,
    parse_sort,
    task_filters,
)
from taskflow.services.resolver import TASK_DETAIL_FIELDS, TASK_LIST_FIELDS, resolver
from taskflow.utils.helpers import FieldErrors, commit_or_raise, get_or_404

logger = logging.getLogger(__name__)

MAX_SUBTASK_TITLE = 200

_PRIORITY_RANK = case(
    {p: rank for rank, p in enumerate(PRIORITIES)},
    value=Task.priority,
    else_=-1,
)


def serialize(task: Task, detail: bool = False) -> dict:
    return resolver.expand(task, TASK_DETAIL_FIELDS if detail else TASK_LIST_FIELDS)


def load(task_id) -> Task:
    return get_or_404(Task, task_id, "Task")


def next_order(project_id: int, status: str) -> int:
    """``max(order) + 1`` within the column, or 0 when the column is empty."""
    highest = (
        db.session.query(func.max(Task.order))
        .filter(Task.project_id == project_id, Task.status == status)
        .scalar()
    )
    return 0 if highest is None else highest + 1


def _ensure_task_member(task: Task, identity, message="Not authorized to modify this task"):
    if not (membership.is_member(task.project, identity) or identity.is_admin):
        raise AuthorizationError(message)


# ── Validation ──────────────────────────────────────────────────────────

def _validate(data: dict, *, creating: bool) -> tuple[dict, FieldErrors]:
    errors = FieldErrors()
    values = {
        "title": errors.string(data, "title", label="Task title", required=creating, max_len=200),
        "description": errors.string(data, "description", label="Description", max_len=5000),
        "status": errors.choice(data, "status", TASK_STATUSES, label="status"),
        "priority": errors.choice(data, "priority", PRIORITIES, label="priority"),
        "assignee_id": errors.identifier(data, "assignee", label="assignee ID"),
        "start_date": errors.when(data, "startDate", label="start date"),
        "due_date": errors.when(data, "dueDate", label="due date"),
        "estimated_hours": errors.number(data, "estimatedHours", label="Estimated hours"),
        "actual_hours": errors.number(data, "actualHours", label="Actual hours"),
        "tags": errors.string_list(data, "tags", label="tags", max_len=50),
        "order": errors.integer(data, "order", label="order", minimum=0),
        "is_archived": errors.boolean(data, "isArchived", label="isArchived"),
    }
    if not creating and "title" in data and values["title"] is None:
        errors.add("title", "Task title cannot be empty", data.get("title"))

    if values["assignee_id"] is not None and db.session.get(User, values["assignee_id"]) is None:
        errors.add("assignee", "Assignee not found", data.get("assignee"))
    return values, errors


def _subtask_titles(raw, errors: FieldErrors) -> list[str]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        errors.add("subtasks", "subtasks must be an array", raw)
        return []
    titles = []
    for entry in raw:
        title = entry.get("title") if isinstance(entry, dict) else entry
        if not isinstance(title, str) or not title.strip():
            errors.add("subtasks", "Subtask title is required", entry)
        elif len(title.strip()) > MAX_SUBTASK_TITLE:
            errors.add("subtasks", f"Subtask title cannot exceed {MAX_SUBTASK_TITLE} characters", entry)
        else:
            titles.append(title.strip())
    return titles


def _dependencies(raw, project_id: int, errors: FieldErrors, self_id: int | None = None) -> list[Task]:
    """Resolve dependency ids; each must be another task of the same project."""
    if raw is None:
        return []
    if not isinstance(raw, list):
        errors.add("dependencies", "dependencies must be an array", raw)
        return []
    tasks = []
    for ref in raw:
        try:
            dep_id = resolve_id(ref)
        except TypeError:
            dep_id = None
        dep = db.session.get(Task, dep_id) if dep_id else None
        if dep is None or dep.project_id != project_id or dep.id == self_id:
            errors.add("dependencies", "Dependency must be another task in the same project", ref)
            continue
        if dep not in tasks:
            tasks.append(dep)
    return tasks


# ── Reads ───────────────────────────────────────────────────────────────

def get_task(task_id, identity) -> dict:
    task = load(task_id)
    membership.ensure_can_view(task.project, identity, "You do not have access to this task")
    return serialize(task, detail=True)


def list_tasks(identity, args) -> tuple[list[dict], dict]:
    page, limit = parse_pagination(args, default_limit=20, max_limit=100)
    query = task_filters(Task.query, args, identity)
    query = query.order_by(*parse_sort(Task, args, "createdAt", "desc", TASK_SORT_FIELDS))
    tasks, pagination = paginate(query, page, limit)
    return [serialize(t) for t in tasks], pagination


def get_tasks_by_project(project_id, identity) -> dict:
    """Kanban view: non-archived tasks bucketed by status, ``order`` ascending.

    Tasks whose status is not one of the four columns are left out of the
    buckets but still counted in ``total``.
    """
    project = get_or_404(Project, project_id, "Project")
    membership.ensure_can_view(project, identity, "Not authorized to view this project")

    tasks = (
        Task.query.filter(Task.project_id == project.id, Task.is_archived.is_(False))
        .order_by(Task.order.asc(), Task.created_at.desc(), Task.id.desc())
        .all()
    )
    grouped = {status: [] for status in TASK_STATUSES}
    for task in tasks:
        bucket = grouped.get(task.status)
        if bucket is not None:
            bucket.append(resolver.expand(task, ("assignee", "creator")))
    return {"tasks": grouped, "total": len(tasks)}


def get_my_tasks(identity, args) -> list[dict]:
    """Open work assigned to the caller: earliest due date first, then highest priority."""
    errors = FieldErrors()
    status = errors.choice(args, "status", TASK_STATUSES, label="status")
    priority = errors.choice(args, "priority", PRIORITIES, label="priority")
    limit = errors.integer(args, "limit", label="limit", minimum=1)
    errors.raise_if_any()

    query = Task.query.filter(Task.assignee_id == identity.id, Task.is_archived.is_(False))
    if status:
        query = query.filter(Task.status == status)
    if priority:
        query = query.filter(Task.priority == priority)
    tasks = (
        query.order_by(
            Task.due_date.is_(None), Task.due_date.asc(), _PRIORITY_RANK.desc(), Task.id.asc(),
        )
        .limit(min(limit or 10, 100))
        .all()
    )
    return [resolver.expand(t, ("project",)) for t in tasks]


# ── Mutations ───────────────────────────────────────────────────────────

def create_task(identity, data: dict) -> Task:
    """Create a task at the end of its column. Caller must be a project member."""
    values, errors = _validate(data, creating=True)
    project_id = errors.identifier(data, "project", label="project ID", required=True)
    titles = _subtask_titles(data.get("subtasks"), errors)
    errors.raise_if_any()

    project = get_or_404(Project, project_id, "Project")
    membership.ensure_member(project, identity)

    dep_errors = FieldErrors()
    dependencies = _dependencies(data.get("dependencies"), project.id, dep_errors)
    dep_errors.raise_if_any()

    status = values["status"] or "todo"
    creator = db.session.get(User, identity.id)
    task = Task(
        title=values["title"],
        description=values["description"],
        project_id=project.id,
        creator_id=identity.id,
        priority=values["priority"] or "medium",
        assignee_id=values["assignee_id"],
        start_date=values["start_date"],
        due_date=values["due_date"],
        estimated_hours=values["estimated_hours"] or 0,
        actual_hours=values["actual_hours"] or 0,
        tags=values["tags"] or [],
        order=next_order(project.id, status),
        is_archived=bool(values["is_archived"]),
        subtasks=[Subtask(title=t, position=i) for i, t in enumerate(titles)],
        watchers=[creator],
        dependencies=dependencies,
    )
    task.set_status(status)
    db.session.add(task)
    commit_or_raise("Task")
    logger.info("Task %s created in project %s (status=%s order=%s)",
                task.id, project.id, status, task.order,
                extra={"project_id": project.id, "task_id": task.id, "user_id": identity.id})
    return task


_UPDATABLE = {
    "title": "title",
    "description": "description",
    "priority": "priority",
    "assignee_id": "assignee",
    "start_date": "startDate",
    "due_date": "dueDate",
    "estimated_hours": "estimatedHours",
    "actual_hours": "actualHours",
    "tags": "tags",
    "order": "order",
    "is_archived": "isArchived",
}
_NOT_NULL = frozenset({"title", "priority", "estimated_hours", "actual_hours", "tags", "order", "is_archived"})


def update_task(task_id, identity, data: dict) -> Task:
    """Partial update. Project and creator are fixed at creation."""
    task = load(task_id)
    values, errors = _validate(data, creating=False)
    errors.raise_if_any()
    _ensure_task_member(task, identity, "Not authorized to update this task")

    if "dependencies" in data:
        dep_errors = FieldErrors()
        task.dependencies = _dependencies(data["dependencies"], task.project_id, dep_errors, task.id)
        dep_errors.raise_if_any()

    for attr, wire in _UPDATABLE.items():
        if wire not in data:
            continue
        if values[attr] is None and attr in _NOT_NULL:
            continue
        setattr(task, attr, values[attr])

    if values["status"] is not None:
        task.set_status(values["status"])

    commit_or_raise("Task")
    return task


def _check_status_policy(task: Task, identity) -> None:
    if membership.is_member(task.project, identity) or identity.is_admin:
        return
    if current_app.config.get("TASK_STATUS_REQUIRES_MEMBERSHIP", False):
        raise AuthorizationError("Not authorized to update this task")
    logger.warning("Status of task %s changed by non-member user %s",
                   task.id, identity.id,
                   extra={"task_id": task.id, "project_id": task.project_id, "user_id": identity.id})


def update_task_status(task_id, identity, data: dict) -> Task:
    """Drag-and-drop move: assign ``status`` and optionally ``order``."""
    errors = FieldErrors()
    status = errors.choice(data, "status", TASK_STATUSES, label="status", required=True)
    order = errors.integer(data, "order", label="order", minimum=0)
    errors.raise_if_any()

    task = load(task_id)
    _check_status_policy(task, identity)

    task.set_status(status)
    if order is not None:
        task.order = order
    commit_or_raise("Task")
    return task


def delete_task(task_id, identity) -> None:
    """Remove the task with its subtasks and links. Comments stay behind."""
    task = load(task_id)
    _ensure_task_member(task, identity, "Not authorized to delete this task")
    db.session.delete(task)
    commit_or_raise("Task")
    logger.info("Task %s deleted by user %s", task_id, identity.id,
                extra={"task_id": task_id, "user_id": identity.id})


# ── Subtasks ────────────────────────────────────────────────────────────

def add_subtask(task_id, identity, data: dict) -> Task:
    errors = FieldErrors()
    title = errors.string(data, "title", label="Subtask title", required=True, max_len=MAX_SUBTASK_TITLE)
    errors.raise_if_any()

    task = load(task_id)
    _ensure_task_member(task, identity)
    position = (max((st.position for st in task.subtasks), default=-1)) + 1
    task.subtasks.append(Subtask(title=title, position=position))
    commit_or_raise("Subtask")
    return task


def _find_subtask(task: Task, subtask_id) -> Subtask | None:
    try:
        subtask_id = int(subtask_id)
    except (TypeError, ValueError):
        return None
    return next((st for st in task.subtasks if st.id == subtask_id), None)


def toggle_subtask(task_id, subtask_id, identity) -> Task:
    task = load(task_id)
    _ensure_task_member(task, identity)
    subtask = _find_subtask(task, subtask_id)
    if subtask is None:
        raise NotFoundError("Subtask", subtask_id)
    subtask.toggle()
    commit_or_raise("Subtask")
    return task


def delete_subtask(task_id, subtask_id, identity) -> Task:
    """Unknown subtask ids leave the list unchanged."""
    task = load(task_id)
    _ensure_task_member(task, identity)
    subtask = _find_subtask(task, subtask_id)
    if subtask is not None:
        task.subtasks.remove(subtask)
        commit_or_raise("Subtask")
    return task


# ── Watchers ────────────────────────────────────────────────────────────

def watch_task(task_id, identity) -> Task:
    task = load(task_id)
    membership.ensure_can_view(task.project, identity, "You do not have access to this task")
    user = db.session.get(User, identity.id)
    if user not in task.watchers:
        task.watchers.append(user)
        commit_or_raise("Task")
    return task


def unwatch_task(task_id, identity) -> Task:
    task = load(task_id)
    membership.ensure_can_view(task.project, identity, "You do not have access to this task")
    remaining = [u for u in task.watchers if u.id != identity.id]
    if len(remaining) != len(task.watchers):
        task.watchers = remaining
        commit_or_raise("Task")
    return task
