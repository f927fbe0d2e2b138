"""Dashboard aggregate tests."""

from datetime import timedelta

import pytest

from taskflow.models import db, utcnow
from taskflow.models.project import Project, ProjectMember
from taskflow.models.task import Task
from taskflow.services import dashboard_service


@pytest.fixture()
def board(alice, bob, carol):
    now = utcnow()
    mine = Project(name="Mine", owner_id=alice.id, status="in-progress")
    joined = Project(name="Joined", owner_id=carol.id, members=[ProjectMember(user_id=alice.id)])
    foreign = Project(name="Foreign", owner_id=carol.id)
    shelved = Project(name="Shelved", owner_id=alice.id, is_archived=True)
    db.session.add_all([mine, joined, foreign, shelved])
    db.session.commit()

    def task(project, **kw):
        kw.setdefault("title", "t")
        return Task(project_id=project.id, creator_id=alice.id, **kw)

    db.session.add_all([
        task(mine, status="todo", priority="high", due_date=now - timedelta(days=1), assignee_id=alice.id),
        task(mine, status="completed", priority="low", assignee_id=alice.id),
        task(joined, status="in-progress", priority="critical", due_date=now + timedelta(days=3),
             assignee_id=alice.id),
        task(foreign, status="todo", assignee_id=bob.id),
        task(shelved, status="todo"),
    ])
    db.session.commit()
    return {"mine": mine, "joined": joined}


def test_stats(board, alice, identity_of):
    stats = dashboard_service.stats(identity_of(alice))
    assert stats["projects"]["total"] == 2
    assert stats["projects"]["in-progress"] == 1
    assert stats["projects"]["planning"] == 1
    assert stats["tasks"] == {"todo": 1, "in-progress": 1, "in-review": 0, "completed": 1, "total": 3}
    assert stats["myTasks"]["total"] == 3
    assert stats["priority"] == {"low": 0, "medium": 0, "high": 1, "critical": 1, "total": 2}
    assert stats["overdue"] == 1
    assert stats["dueThisWeek"] == 1


def test_activity_scope(board, alice, identity_of):
    feed = dashboard_service.activity(identity_of(alice), {"limit": "10"})
    assert {item["project"]["name"] for item in feed} == {"Mine", "Joined"}
    assert all(item["type"] == "task" for item in feed)


def test_deadlines(board, alice, identity_of):
    tasks = dashboard_service.deadlines(identity_of(alice), {"days": "7"})
    assert [t["priority"] for t in tasks] == ["high", "critical"]
    assert dashboard_service.deadlines(identity_of(alice), {"days": "1"})[0]["priority"] == "high"


def test_team_performance_requires_manager(client, board, alice, admin, auth_header):
    assert client.get("/api/dashboard/team-performance", headers=auth_header(alice)).status_code == 403
    res = client.get("/api/dashboard/team-performance", headers=auth_header(admin))
    rows = res.get_json()["data"]["performance"]
    top = rows[0]
    assert top["id"] == alice.id
    assert (top["totalTasks"], top["completedTasks"], top["inProgressTasks"]) == (3, 1, 1)
    assert top["completionRate"] == pytest.approx(33.33, abs=0.01)
