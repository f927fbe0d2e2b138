"""
Dashboard aggregates — per-user counts, activity feed, deadlines, team table.

All project-scoped figures cover projects the caller owns or belongs to.
Counts are returned with every known key present (zero-filled) plus ``total``.
"""

import logging
from datetime import timedelta

from sqlalchemy import case, func

from taskflow.models import db, isoformat, utcnow
from taskflow.models.project import PRIORITIES, PROJECT_STATUSES, Project
from taskflow.models.task import TASK_STATUSES, Task
from taskflow.models.user import User
from taskflow.services.query import accessible_project_ids
from taskflow.services.resolver import resolver
from taskflow.utils.helpers import FieldErrors

logger = logging.getLogger(__name__)

MAX_DEADLINE_ROWS = 10
TEAM_PERFORMANCE_ROWS = 10


def _counts(rows, keys) -> dict:
    result = {key: 0 for key in keys}
    for key, count in rows:
        result[key] = count
    result["total"] = sum(result.values())
    return result


def _grouped(column, *criteria):
    return (
        db.session.query(column, func.count())
        .filter(*criteria)
        .group_by(column)
        .all()
    )


def _active_project_ids(user_id: int):
    return accessible_project_ids(user_id).where(Project.is_archived.is_(False))


def stats(identity) -> dict:
    project_ids = _active_project_ids(identity.id)
    in_scope = (Task.project_id.in_(project_ids), Task.is_archived.is_(False))
    open_tasks = in_scope + (Task.status != "completed",)
    now = utcnow()

    return {
        "projects": _counts(
            _grouped(Project.status, Project.id.in_(project_ids)), PROJECT_STATUSES,
        ),
        "tasks": _counts(_grouped(Task.status, *in_scope), TASK_STATUSES),
        "myTasks": _counts(
            _grouped(Task.status, Task.assignee_id == identity.id, Task.is_archived.is_(False)),
            TASK_STATUSES,
        ),
        "priority": _counts(_grouped(Task.priority, *open_tasks), PRIORITIES),
        "overdue": Task.query.filter(*open_tasks, Task.due_date < now).count(),
        "dueThisWeek": Task.query.filter(
            *open_tasks, Task.due_date >= now, Task.due_date <= now + timedelta(days=7),
        ).count(),
    }


def activity(identity, args) -> list[dict]:
    """Most recently updated tasks across the caller's projects."""
    errors = FieldErrors()
    limit = errors.integer(args, "limit", label="limit", minimum=1)
    errors.raise_if_any()

    tasks = (
        Task.query.filter(Task.project_id.in_(accessible_project_ids(identity.id)))
        .order_by(Task.updated_at.desc(), Task.id.desc())
        .limit(min(limit or 10, 50))
        .all()
    )
    feed = []
    for task in tasks:
        data = resolver.expand(task, ("project", "creator", "assignee"))
        feed.append({
            "id": task.id,
            "type": "task",
            "title": task.title,
            "status": task.status,
            "project": data["project"],
            "user": data["creator"],
            "assignee": data["assignee"],
            "timestamp": isoformat(task.updated_at),
        })
    return feed


def deadlines(identity, args) -> list[dict]:
    """Caller's open tasks due within ``days`` (default 7), soonest first.

    Already-overdue tasks are included.
    """
    errors = FieldErrors()
    days = errors.integer(args, "days", label="days", minimum=0)
    errors.raise_if_any()

    horizon = utcnow() + timedelta(days=7 if days is None else days)
    tasks = (
        Task.query.filter(
            Task.assignee_id == identity.id,
            Task.is_archived.is_(False),
            Task.status != "completed",
            Task.due_date.isnot(None),
            Task.due_date <= horizon,
        )
        .order_by(Task.due_date.asc(), Task.id.asc())
        .limit(MAX_DEADLINE_ROWS)
        .all()
    )
    return [resolver.expand(t, ("project",)) for t in tasks]


def team_performance() -> list[dict]:
    """Top active users by completed assigned tasks."""
    completed = func.coalesce(func.sum(case((Task.status == "completed", 1), else_=0)), 0)
    in_progress = func.coalesce(func.sum(case((Task.status == "in-progress", 1), else_=0)), 0)
    rows = (
        db.session.query(
            User,
            func.count(Task.id).label("total"),
            completed.label("completed"),
            in_progress.label("in_progress"),
        )
        .outerjoin(Task, Task.assignee_id == User.id)
        .filter(User.is_active.is_(True))
        .group_by(User.id)
        .order_by(completed.desc(), User.id.asc())
        .limit(TEAM_PERFORMANCE_ROWS)
        .all()
    )
    return [
        {
            **user.summary(),
            "department": user.department,
            "totalTasks": total,
            "completedTasks": int(done),
            "inProgressTasks": int(active),
            "completionRate": round(done / total * 100, 2) if total else 0,
        }
        for user, total, done, active in rows
    ]
