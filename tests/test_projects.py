"""
Project API & service tests.

Covers:
  - create: owner assignment, defaults, initial members, validation
  - list: owner-or-member scope, search, pagination, task statistics
  - get: view rule, 404 before 403
  - update: manage rule, one-way completedAt
  - delete: cascade to tasks, comments survive
  - members endpoints
"""

import pytest

from taskflow.core.exceptions import AuthorizationError, NotFoundError
from taskflow.models import db
from taskflow.models.comment import Comment
from taskflow.models.project import Project, ProjectMember
from taskflow.models.task import Task
from taskflow.services import project_service


def _create(client, headers, **body):
    body.setdefault("name", "Alpha")
    return client.post("/api/projects", json=body, headers=headers)


# ═══════════════════════════════════════════════════════════════
# Create
# ═══════════════════════════════════════════════════════════════

class TestCreateProject:
    def test_creates_with_caller_as_owner(self, client, alice, auth_header):
        res = _create(client, auth_header(alice), description="First project")
        assert res.status_code == 201
        body = res.get_json()
        assert body["success"] is True
        project = body["data"]["project"]
        assert project["owner"]["id"] == alice.id
        assert project["status"] == "planning"
        assert project["priority"] == "medium"
        assert project["color"] == "#3B82F6"
        assert project["budget"] == {"estimated": 0, "spent": 0, "currency": "USD"}
        assert project["members"] == []

    def test_initial_members_skip_owner_and_duplicates(self, client, alice, bob, auth_header):
        res = _create(client, auth_header(alice), members=[
            {"user": bob.id, "role": "admin"}, bob.id, alice.id,
        ])
        assert res.status_code == 201
        members = res.get_json()["data"]["project"]["members"]
        assert [(m["user"]["id"], m["role"]) for m in members] == [(bob.id, "admin")]

    def test_name_required(self, client, alice, auth_header):
        res = client.post("/api/projects", json={"description": "x"}, headers=auth_header(alice))
        assert res.status_code == 400
        body = res.get_json()
        assert body["code"] == "ERR_VALIDATION_INVALID"
        assert body["errors"][0]["field"] == "name"

    def test_rejects_bad_color_and_long_name(self, client, alice, auth_header):
        res = _create(client, auth_header(alice), name="x" * 101, color="blue")
        fields = {e["field"] for e in res.get_json()["errors"]}
        assert fields == {"name", "color"}

    def test_requires_authentication(self, client):
        res = _create(client, {})
        assert res.status_code == 401
        assert res.get_json()["code"] == "ERR_UNAUTHENTICATED"

    def test_completed_on_create_stamps_completed_at(self, alice, identity_of):
        project = project_service.create_project(identity_of(alice), {"name": "Done", "status": "completed"})
        assert project.completed_at is not None


# ═══════════════════════════════════════════════════════════════
# List / get
# ═══════════════════════════════════════════════════════════════

class TestListProjects:
    @pytest.fixture()
    def projects(self, alice, bob, carol):
        mine = Project(name="Apollo launch", owner_id=alice.id, tags=["space"])
        shared = Project(name="Shared board", owner_id=carol.id,
                         members=[ProjectMember(user_id=alice.id, role="viewer")])
        other = Project(name="Private", owner_id=bob.id)
        public = Project(name="Open source", owner_id=bob.id, is_public=True)
        archived = Project(name="Old", owner_id=alice.id, is_archived=True)
        db.session.add_all([mine, shared, other, public, archived])
        db.session.commit()
        db.session.add_all([
            Task(title="t1", project_id=mine.id, creator_id=alice.id, status="completed"),
            Task(title="t2", project_id=mine.id, creator_id=alice.id, status="todo"),
            Task(title="t3", project_id=mine.id, creator_id=alice.id, status="todo", is_archived=True),
        ])
        db.session.commit()
        return {"mine": mine, "shared": shared, "other": other, "public": public, "archived": archived}

    def test_scope_is_owner_or_member(self, client, alice, auth_header, projects):
        res = client.get("/api/projects", headers=auth_header(alice))
        names = {p["name"] for p in res.get_json()["data"]["projects"]}
        assert names == {"Apollo launch", "Shared board"}

    def test_archived_flag(self, client, alice, auth_header, projects):
        res = client.get("/api/projects?archived=true", headers=auth_header(alice))
        assert [p["name"] for p in res.get_json()["data"]["projects"]] == ["Old"]

    def test_search_matches_tags_case_insensitive(self, client, alice, auth_header, projects):
        res = client.get("/api/projects?search=SPACE", headers=auth_header(alice))
        assert [p["name"] for p in res.get_json()["data"]["projects"]] == ["Apollo launch"]

    def test_task_stats_and_progress(self, client, alice, auth_header, projects):
        res = client.get("/api/projects?search=apollo", headers=auth_header(alice))
        project = res.get_json()["data"]["projects"][0]
        assert project["taskStats"]["total"] == 2
        assert project["taskStats"]["completed"] == 1
        assert project["progress"] == 50

    def test_pagination(self, client, alice, auth_header, projects):
        res = client.get("/api/projects?limit=1&page=2&sortBy=name&sortOrder=asc",
                         headers=auth_header(alice))
        data = res.get_json()["data"]
        assert [p["name"] for p in data["projects"]] == ["Shared board"]
        assert data["pagination"] == {
            "current": 2, "pages": 2, "total": 2, "limit": 1, "hasNext": False, "hasPrev": True,
        }

    def test_limit_capped_at_fifty(self, client, alice, auth_header, projects):
        res = client.get("/api/projects?limit=51", headers=auth_header(alice))
        assert res.status_code == 400
        assert res.get_json()["errors"][0]["field"] == "limit"


class TestGetProject:
    def test_private_project_forbidden(self, alice, carol, identity_of):
        project = project_service.create_project(identity_of(alice), {"name": "Secret"})
        with pytest.raises(AuthorizationError):
            project_service.get_project(project.id, identity_of(carol))

    def test_public_project_visible(self, alice, carol, identity_of):
        project = project_service.create_project(identity_of(alice), {"name": "Open", "isPublic": True})
        data = project_service.get_project(project.id, identity_of(carol))
        assert data["name"] == "Open"
        assert data["progress"] == 0

    def test_missing_project_is_404_for_anyone(self, client, carol, auth_header):
        res = client.get("/api/projects/424242", headers=auth_header(carol))
        assert res.status_code == 404
        assert res.get_json()["message"] == "Project not found"


# ═══════════════════════════════════════════════════════════════
# Update / delete
# ═══════════════════════════════════════════════════════════════

class TestUpdateProject:
    @pytest.fixture()
    def project(self, alice, bob, identity_of):
        return project_service.create_project(
            identity_of(alice), {"name": "Alpha", "members": [{"user": bob.id, "role": "member"}]},
        )

    def test_plain_member_cannot_update(self, client, project, bob, auth_header):
        res = client.put(f"/api/projects/{project.id}", json={"name": "Beta"}, headers=auth_header(bob))
        assert res.status_code == 403

    def test_member_admin_can_update(self, project, bob, identity_of):
        project.members[0].role = "admin"
        db.session.commit()
        updated = project_service.update_project(project.id, identity_of(bob), {"name": "Beta"})
        assert updated.name == "Beta"

    def test_owner_cannot_be_reassigned(self, project, alice, bob, identity_of):
        project_service.update_project(project.id, identity_of(alice), {"owner": bob.id})
        assert project.owner_id == alice.id

    def test_completed_at_is_one_way(self, project, alice, identity_of):
        me = identity_of(alice)
        project_service.update_project(project.id, me, {"status": "completed"})
        stamped = project.completed_at
        assert stamped is not None

        project_service.update_project(project.id, me, {"status": "in-progress"})
        assert project.completed_at == stamped
        project_service.update_project(project.id, me, {"status": "completed"})
        assert project.completed_at == stamped

    def test_budget_partial_update(self, project, alice, identity_of):
        project_service.update_project(project.id, identity_of(alice), {"budget": {"spent": 250}})
        assert project.budget == {"estimated": 0, "spent": 250, "currency": "USD"}


class TestDeleteProject:
    def test_cascade_removes_tasks_but_keeps_comments(self, client, alice, auth_header, identity_of):
        project = project_service.create_project(identity_of(alice), {"name": "Doomed"})
        keep = project_service.create_project(identity_of(alice), {"name": "Keeper"})
        doomed_task = Task(title="a", project_id=project.id, creator_id=alice.id)
        db.session.add_all([
            doomed_task,
            Task(title="b", project_id=project.id, creator_id=alice.id),
            Task(title="c", project_id=keep.id, creator_id=alice.id),
        ])
        db.session.commit()
        db.session.add(Comment(content="note", task_id=doomed_task.id, author_id=alice.id))
        db.session.commit()
        project_id = project.id

        res = client.delete(f"/api/projects/{project_id}", headers=auth_header(alice))
        assert res.status_code == 200
        assert res.get_json()["data"]["deletedTasks"] == 2

        db.session.expire_all()
        assert db.session.get(Project, project_id) is None
        assert Task.query.filter_by(project_id=project_id).count() == 0
        assert Task.query.filter_by(project_id=keep.id).count() == 1
        assert Comment.query.count() == 1

    def test_member_cannot_delete(self, bob, alice, identity_of):
        project = project_service.create_project(
            identity_of(alice), {"name": "Alpha", "members": [bob.id]},
        )
        with pytest.raises(AuthorizationError):
            project_service.delete_project(project.id, identity_of(bob))

    def test_missing(self, alice, identity_of):
        with pytest.raises(NotFoundError):
            project_service.delete_project(999, identity_of(alice))


# ═══════════════════════════════════════════════════════════════
# Members endpoints
# ═══════════════════════════════════════════════════════════════

class TestMembersApi:
    def test_add_and_remove(self, client, alice, bob, auth_header, identity_of):
        project = project_service.create_project(identity_of(alice), {"name": "Alpha"})
        headers = auth_header(alice)

        res = client.post(f"/api/projects/{project.id}/members",
                          json={"userId": bob.id, "role": "viewer"}, headers=headers)
        assert res.status_code == 200
        members = res.get_json()["data"]["members"]
        assert members[0]["user"]["email"] == "bob@acme.io"
        assert members[0]["role"] == "viewer"

        res = client.post(f"/api/projects/{project.id}/members", json={"userId": bob.id}, headers=headers)
        assert res.status_code == 400
        assert res.get_json()["message"] == "User is already a member of this project"

        res = client.delete(f"/api/projects/{project.id}/members/{bob.id}", headers=headers)
        assert res.status_code == 200
        assert res.get_json()["data"]["members"] == []

    def test_removing_owner_rejected(self, client, alice, auth_header, identity_of):
        project = project_service.create_project(identity_of(alice), {"name": "Alpha"})
        res = client.delete(f"/api/projects/{project.id}/members/{alice.id}", headers=auth_header(alice))
        assert res.status_code == 400
        assert res.get_json()["code"] == "ERR_INVALID_OPERATION"
