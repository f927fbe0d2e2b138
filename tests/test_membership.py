"""
Project Membership Authority tests.

Covers:
  - is_member / member_role / can_view / can_manage over every reference form
  - add_member: authorization, unknown user, duplicate, owner
  - remove_member: owner protection, non-member no-op
"""

import pytest

from taskflow.core.exceptions import (
    AuthorizationError,
    ConflictError,
    InvalidOperationError,
    NotFoundError,
    ValidationError,
)
from taskflow.core.references import Expanded, Ref
from taskflow.models import db
from taskflow.models.project import Project, ProjectMember
from taskflow.services import membership
from taskflow.services.resolver import PROJECT_FIELDS, resolver


@pytest.fixture()
def project(alice, bob):
    p = Project(name="Alpha", owner_id=alice.id, members=[ProjectMember(user_id=bob.id, role="member")])
    db.session.add(p)
    db.session.commit()
    return p


# ═══════════════════════════════════════════════════════════════
# Predicates
# ═══════════════════════════════════════════════════════════════

class TestIsMember:
    def test_owner_is_member_without_member_row(self, project, alice):
        assert membership.is_member(project, alice)
        assert membership.find_member(project, alice) is None

    def test_member_row_counts(self, project, bob):
        assert membership.is_member(project, bob.id)

    def test_outsider(self, project, carol):
        assert not membership.is_member(project, carol)

    @pytest.mark.parametrize("wrap", [int, str, Ref, lambda i: {"id": i}])
    def test_reference_forms_agree(self, project, bob, wrap):
        assert membership.is_member(project, wrap(bob.id))

    def test_expanded_entity(self, project, bob):
        assert membership.is_member(project, Expanded(bob))

    def test_expanded_project_dict(self, alice, bob, carol):
        expanded = {
            "owner": {"id": alice.id, "name": alice.name},
            "members": [{"user": {"id": bob.id, "name": bob.name}, "role": "viewer"}],
        }
        assert membership.is_member(expanded, alice.id)
        assert membership.is_member(expanded, Ref(bob.id))
        assert not membership.is_member(expanded, carol)

    def test_resolver_payload_matches_orm(self, project, alice, bob, carol):
        payload = resolver.expand(project, PROJECT_FIELDS)
        for user in (alice, bob, carol):
            assert membership.member_role(payload, user) == membership.member_role(project, user)

    def test_accessors_yield_typed_references(self, project, alice):
        assert membership._owner_ref(project) == Ref(alice.id)
        assert isinstance(membership._owner_ref({"owner": {"id": alice.id}}), Expanded)

    def test_none_is_never_a_member(self, project):
        assert not membership.is_member(project, None)


class TestRoles:
    def test_member_role(self, project, alice, bob, carol):
        assert membership.member_role(project, alice) == "owner"
        assert membership.member_role(project, bob) == "member"
        assert membership.member_role(project, carol) is None

    def test_view_rule(self, project, carol, admin, identity_of):
        assert not membership.can_view_project(project, identity_of(carol))
        assert membership.can_view_project(project, identity_of(admin))
        project.is_public = True
        assert membership.can_view_project(project, identity_of(carol))

    def test_manage_rule(self, project, alice, bob, admin, identity_of):
        assert membership.can_manage_project(project, identity_of(alice))
        assert membership.can_manage_project(project, identity_of(admin))
        assert not membership.can_manage_project(project, identity_of(bob))
        project.members[0].role = "admin"
        assert membership.can_manage_project(project, identity_of(bob))

    def test_public_project_does_not_grant_task_creation(self, project, carol, identity_of):
        project.is_public = True
        with pytest.raises(AuthorizationError, match="create tasks"):
            membership.ensure_member(project, identity_of(carol))


# ═══════════════════════════════════════════════════════════════
# add_member / remove_member
# ═══════════════════════════════════════════════════════════════

class TestAddMember:
    def test_owner_adds_member(self, project, alice, carol, identity_of):
        membership.add_member(project, {"userId": carol.id, "role": "viewer"}, identity_of(alice))
        assert membership.member_role(project, carol) == "viewer"

    def test_role_defaults_to_member(self, project, alice, carol, identity_of):
        membership.add_member(project, {"userId": carol.id}, identity_of(alice))
        assert membership.member_role(project, carol) == "member"

    def test_plain_member_cannot_add(self, project, bob, carol, identity_of):
        with pytest.raises(AuthorizationError, match="Not authorized to add members"):
            membership.add_member(project, {"userId": carol.id}, identity_of(bob))

    def test_unknown_user(self, project, alice, identity_of):
        with pytest.raises(NotFoundError):
            membership.add_member(project, {"userId": 9999}, identity_of(alice))

    def test_duplicate_member(self, project, alice, bob, identity_of):
        with pytest.raises(ConflictError, match="already a member"):
            membership.add_member(project, {"userId": bob.id}, identity_of(alice))

    def test_owner_cannot_be_added(self, project, alice, identity_of):
        with pytest.raises(ConflictError):
            membership.add_member(project, {"userId": alice.id}, identity_of(alice))

    def test_invalid_role(self, project, alice, carol, identity_of):
        with pytest.raises(ValidationError) as exc:
            membership.add_member(project, {"userId": carol.id, "role": "owner"}, identity_of(alice))
        assert exc.value.errors[0]["field"] == "role"


class TestRemoveMember:
    def test_remove(self, project, alice, bob, identity_of):
        membership.remove_member(project, bob.id, identity_of(alice))
        assert not membership.is_member(project, bob)
        assert ProjectMember.query.count() == 0

    def test_owner_cannot_be_removed(self, project, alice, admin, identity_of):
        with pytest.raises(InvalidOperationError, match="Cannot remove the project owner"):
            membership.remove_member(project, alice.id, identity_of(admin))
        assert project.owner_id == alice.id

    def test_non_member_is_noop(self, project, alice, carol, identity_of):
        membership.remove_member(project, carol.id, identity_of(alice))
        assert len(project.members) == 1

    def test_plain_member_cannot_remove(self, project, bob, identity_of):
        with pytest.raises(AuthorizationError, match="Not authorized to remove members"):
            membership.remove_member(project, bob.id, identity_of(bob))
