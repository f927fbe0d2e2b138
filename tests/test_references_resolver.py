"""Reference resolution and Resolver expansion tests."""

import pytest

from taskflow.core.references import Expanded, Ref, resolve_id, same_entity
from taskflow.models import db
from taskflow.models.comment import Comment, CommentReaction
from taskflow.models.project import Project, ProjectMember
from taskflow.models.task import Task
from taskflow.services.resolver import PROJECT_FIELDS, resolver


class TestResolveId:
    @pytest.mark.parametrize("ref,expected", [
        (7, 7),
        ("7", 7),
        (" 7 ", 7),
        (Ref(7), 7),
        ({"id": 7, "name": "x"}, 7),
        ({"id": "7"}, 7),
        (None, None),
    ])
    def test_forms(self, ref, expected):
        assert resolve_id(ref) == expected

    def test_expanded_orm_entity(self, alice):
        assert resolve_id(Expanded(alice)) == alice.id
        assert resolve_id(alice) == alice.id

    @pytest.mark.parametrize("ref", [True, "abc", 3.5])
    def test_rejects_non_identifiers(self, ref):
        with pytest.raises(TypeError):
            resolve_id(ref)

    def test_same_entity(self, alice):
        assert same_entity(Ref(alice.id), {"id": alice.id})
        assert same_entity(alice, str(alice.id))
        assert not same_entity(None, None)
        assert not same_entity(alice.id, alice.id + 1)


class TestResolver:
    @pytest.fixture()
    def project(self, alice, bob):
        p = Project(name="Alpha", owner_id=alice.id, members=[ProjectMember(user_id=bob.id, role="admin")])
        db.session.add(p)
        db.session.commit()
        return p

    def test_bare_ids_without_fields(self, project, alice, bob):
        data = resolver.expand(project)
        assert data["owner"] == alice.id
        assert data["members"][0]["user"] == bob.id

    def test_project_expansion(self, project, alice, bob):
        data = resolver.expand(project, PROJECT_FIELDS)
        assert data["owner"] == {"id": alice.id, "name": alice.name, "email": alice.email,
                                 "avatar": "default-avatar.png"}
        assert data["members"][0]["user"]["id"] == bob.id
        assert data["members"][0]["role"] == "admin"

    def test_unknown_field(self, project):
        with pytest.raises(KeyError):
            resolver.expand(project, ["budget"])

    def test_unassigned_task(self, project, alice):
        task = Task(title="t", project_id=project.id, creator_id=alice.id)
        db.session.add(task)
        db.session.commit()
        data = resolver.expand(task, ("assignee", "dependencies"))
        assert data["assignee"] is None
        assert data["dependencies"] == []

    def test_comment_reactions(self, project, alice, bob):
        task = Task(title="t", project_id=project.id, creator_id=alice.id)
        db.session.add(task)
        db.session.commit()
        comment = Comment(content="hi", task_id=task.id, author_id=alice.id,
                          reactions=[CommentReaction(user_id=bob.id, type="heart")])
        db.session.add(comment)
        db.session.commit()
        data = resolver.expand(comment, ("author", "reactions.user"))
        assert data["author"]["id"] == alice.id
        assert data["reactions"] == [{"user": bob.summary(), "type": "heart"}]
        assert data["reactionCount"] == 1

    def test_unregistered_type(self):
        with pytest.raises(TypeError):
            resolver.expand(object())
