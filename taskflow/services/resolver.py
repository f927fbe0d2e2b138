"""
Reference expansion for API payloads.

Models serialize references as bare ids (``"owner": 3``). Endpoints that
need the referenced entity ask the resolver to expand named fields:

    resolver.expand(project, ["owner", "members.user"])
    resolver.expand(task, ["assignee", "creator", "project"])
    resolver.expand_many(comments, ["author", "mentions"])

Each entity type registers the fields it can expand; asking for an
unknown field raises ``KeyError`` so typos fail loudly in tests.
"""

from taskflow.models import db
from taskflow.models.comment import Comment
from taskflow.models.project import Project
from taskflow.models.task import Task
from taskflow.models.user import User


def _user(user):
    return user.summary() if user is not None else None


def _project_brief(project):
    if project is None:
        return None
    return {"id": project.id, "name": project.name, "color": project.color}


def _project_access(project):
    """Enough of the project for a client to evaluate membership itself."""
    if project is None:
        return None
    data = _project_brief(project)
    data["owner"] = project.owner_id
    data["members"] = [m.to_dict() for m in project.members]
    return data


def _members_with_users(project, data):
    expanded = []
    for member, entry in zip(project.members, data["members"]):
        entry = dict(entry)
        entry["user"] = _user(member.user)
        expanded.append(entry)
    return expanded


def _reactions_with_users(comment, data):
    expanded = []
    for reaction, entry in zip(comment.reactions, data["reactions"]):
        entry = dict(entry)
        entry["user"] = _user(db.session.get(User, reaction.user_id))
        expanded.append(entry)
    return expanded


class Resolver:
    """Per-entity-type expansion of reference fields into summaries."""

    def __init__(self):
        self._expanders = {
            Project: {
                "owner": lambda p, d: _user(p.owner),
                "members.user": _members_with_users,
            },
            Task: {
                "assignee": lambda t, d: _user(t.assignee),
                "creator": lambda t, d: _user(t.creator),
                "project": lambda t, d: _project_brief(t.project),
                "project.access": lambda t, d: _project_access(t.project),
                "watchers": lambda t, d: [_user(u) for u in t.watchers],
                "dependencies": lambda t, d: [
                    {"id": dep.id, "title": dep.title, "status": dep.status}
                    for dep in t.dependencies
                ],
            },
            Comment: {
                "author": lambda c, d: _user(c.author),
                "mentions": lambda c, d: [_user(u) for u in c.mentions],
                "reactions.user": _reactions_with_users,
            },
        }

    def expand(self, entity, fields=()) -> dict:
        """Serialize ``entity`` with each named reference expanded."""
        expanders = self._expanders.get(type(entity))
        if expanders is None:
            raise TypeError(f"No expanders registered for {type(entity).__name__}")

        data = entity.to_dict()
        for field in fields:
            if field not in expanders:
                raise KeyError(f"{type(entity).__name__} cannot expand '{field}'")
            key = field.split(".", 1)[0]
            data[key] = expanders[field](entity, data)
        return data

    def expand_many(self, entities, fields=()) -> list[dict]:
        return [self.expand(e, fields) for e in entities]


resolver = Resolver()

PROJECT_FIELDS = ("owner", "members.user")
TASK_LIST_FIELDS = ("assignee", "creator", "project")
TASK_DETAIL_FIELDS = ("assignee", "creator", "project.access", "watchers", "dependencies")
COMMENT_FIELDS = ("author", "mentions", "reactions.user")
