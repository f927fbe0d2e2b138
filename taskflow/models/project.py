"""
Project domain model and its membership rows.

Models:
    - Project: owner-scoped container for tasks
    - ProjectMember: (project, user, role) row; the owner never has one
"""

from taskflow.models import db, isoformat, utcnow

PROJECT_STATUSES = ("planning", "in-progress", "on-hold", "completed", "cancelled")
PRIORITIES = ("low", "medium", "high", "critical")
MEMBER_ROLES = ("viewer", "member", "admin")

DEFAULT_PROJECT_COLOR = "#3B82F6"


class Project(db.Model):
    __tablename__ = "projects"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.Text)
    status = db.Column(db.String(20), nullable=False, default="planning")
    priority = db.Column(db.String(20), nullable=False, default="medium")
    owner_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    start_date = db.Column(db.DateTime(timezone=True), default=utcnow)
    due_date = db.Column(db.DateTime(timezone=True))
    completed_at = db.Column(db.DateTime(timezone=True))
    tags = db.Column(db.JSON, nullable=False, default=list)
    color = db.Column(db.String(7), nullable=False, default=DEFAULT_PROJECT_COLOR)

    budget_estimated = db.Column(db.Float, nullable=False, default=0)
    budget_spent = db.Column(db.Float, nullable=False, default=0)
    budget_currency = db.Column(db.String(10), nullable=False, default="USD")

    is_public = db.Column(db.Boolean, nullable=False, default=False)
    is_archived = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(
        db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow,
    )

    owner = db.relationship("User", foreign_keys=[owner_id])
    members = db.relationship(
        "ProjectMember",
        back_populates="project",
        cascade="all, delete-orphan",
        order_by="ProjectMember.joined_at",
    )

    __table_args__ = (
        db.Index("ix_projects_status", "status"),
        db.Index("ix_projects_created_at", "created_at"),
    )

    def set_status(self, status: str) -> None:
        """Assign status; the first transition to ``completed`` stamps ``completed_at`` for good."""
        self.status = status
        if status == "completed" and self.completed_at is None:
            self.completed_at = utcnow()

    @property
    def budget(self) -> dict:
        return {
            "estimated": self.budget_estimated,
            "spent": self.budget_spent,
            "currency": self.budget_currency,
        }

    def to_dict(self) -> dict:
        """Serialize with bare user ids; see services.resolver for expansion."""
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "status": self.status,
            "priority": self.priority,
            "owner": self.owner_id,
            "members": [m.to_dict() for m in self.members],
            "startDate": isoformat(self.start_date),
            "dueDate": isoformat(self.due_date),
            "completedAt": isoformat(self.completed_at),
            "tags": list(self.tags or []),
            "color": self.color,
            "budget": self.budget,
            "isPublic": self.is_public,
            "isArchived": self.is_archived,
            "createdAt": isoformat(self.created_at),
            "updatedAt": isoformat(self.updated_at),
        }

    def __repr__(self) -> str:
        return f"<Project {self.id}: {self.name}>"


class ProjectMember(db.Model):
    __tablename__ = "project_members"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    role = db.Column(db.String(20), nullable=False, default="member")  # viewer | member | admin
    joined_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    project = db.relationship("Project", back_populates="members")
    user = db.relationship("User")

    __table_args__ = (
        db.UniqueConstraint("project_id", "user_id", name="uq_project_members_project_user"),
    )

    def to_dict(self) -> dict:
        return {
            "user": self.user_id,
            "role": self.role,
            "joinedAt": isoformat(self.joined_at),
        }

    def __repr__(self) -> str:
        return f"<ProjectMember project={self.project_id} user={self.user_id} role={self.role}>"
