"""
Task domain model — Kanban card with subtasks, watchers and dependencies.

Models:
    - Task: unit of work inside a project
    - Subtask: ordered checklist item owned by a task
    - task_watchers / task_dependencies: association tables
"""

from taskflow.models import as_utc, db, isoformat, utcnow

TASK_STATUSES = ("todo", "in-progress", "in-review", "completed")
ATTACHMENT_FIELDS = ("filename", "originalName", "mimetype", "size", "path", "uploadedBy")

task_watchers = db.Table(
    "task_watchers",
    db.Column("task_id", db.Integer, db.ForeignKey("tasks.id", ondelete="CASCADE"), primary_key=True),
    db.Column("user_id", db.Integer, db.ForeignKey("users.id"), primary_key=True),
)

task_dependencies = db.Table(
    "task_dependencies",
    db.Column("task_id", db.Integer, db.ForeignKey("tasks.id", ondelete="CASCADE"), primary_key=True),
    db.Column("depends_on_id", db.Integer, db.ForeignKey("tasks.id", ondelete="CASCADE"), primary_key=True),
)


class Task(db.Model):
    __tablename__ = "tasks"

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text)
    status = db.Column(db.String(20), nullable=False, default="todo")
    priority = db.Column(db.String(20), nullable=False, default="medium")

    # No ondelete cascade: project deletion removes tasks explicitly first.
    project_id = db.Column(db.Integer, db.ForeignKey("projects.id"), nullable=False)
    creator_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    assignee_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)

    attachments = db.Column(db.JSON, nullable=False, default=list)
    start_date = db.Column(db.DateTime(timezone=True))
    due_date = db.Column(db.DateTime(timezone=True), index=True)
    completed_at = db.Column(db.DateTime(timezone=True))
    estimated_hours = db.Column(db.Float, nullable=False, default=0)
    actual_hours = db.Column(db.Float, nullable=False, default=0)
    tags = db.Column(db.JSON, nullable=False, default=list)
    order = db.Column("sort_order", db.Integer, nullable=False, default=0)
    is_archived = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(
        db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow,
    )

    project = db.relationship("Project")
    creator = db.relationship("User", foreign_keys=[creator_id])
    assignee = db.relationship("User", foreign_keys=[assignee_id])
    subtasks = db.relationship(
        "Subtask",
        back_populates="task",
        cascade="all, delete-orphan",
        order_by="Subtask.position",
        passive_deletes=True,
    )
    watchers = db.relationship("User", secondary=task_watchers, order_by="User.id")
    dependencies = db.relationship(
        "Task",
        secondary=task_dependencies,
        primaryjoin=lambda: Task.id == task_dependencies.c.task_id,
        secondaryjoin=lambda: Task.id == task_dependencies.c.depends_on_id,
        back_populates="dependents",
    )
    dependents = db.relationship(
        "Task",
        secondary=task_dependencies,
        primaryjoin=lambda: Task.id == task_dependencies.c.depends_on_id,
        secondaryjoin=lambda: Task.id == task_dependencies.c.task_id,
        back_populates="dependencies",
    )

    __table_args__ = (
        db.Index("ix_tasks_project_status", "project_id", "status"),
        db.Index("ix_tasks_status_priority", "status", "priority"),
    )

    def set_status(self, status: str) -> None:
        """Assign status; ``completed_at`` tracks membership of the completed column."""
        self.status = status
        if status == "completed":
            if self.completed_at is None:
                self.completed_at = utcnow()
        else:
            self.completed_at = None

    @property
    def subtask_progress(self) -> int:
        if not self.subtasks:
            return 100
        done = sum(1 for st in self.subtasks if st.is_completed)
        return round(done / len(self.subtasks) * 100)

    @property
    def is_overdue(self) -> bool:
        if not self.due_date or self.status == "completed":
            return False
        return utcnow() > as_utc(self.due_date)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "status": self.status,
            "priority": self.priority,
            "project": self.project_id,
            "creator": self.creator_id,
            "assignee": self.assignee_id,
            "subtasks": [st.to_dict() for st in self.subtasks],
            "attachments": list(self.attachments or []),
            "startDate": isoformat(self.start_date),
            "dueDate": isoformat(self.due_date),
            "completedAt": isoformat(self.completed_at),
            "estimatedHours": self.estimated_hours,
            "actualHours": self.actual_hours,
            "tags": list(self.tags or []),
            "order": self.order,
            "watchers": [u.id for u in self.watchers],
            "dependencies": [t.id for t in self.dependencies],
            "isArchived": self.is_archived,
            "subtaskProgress": self.subtask_progress,
            "isOverdue": self.is_overdue,
            "createdAt": isoformat(self.created_at),
            "updatedAt": isoformat(self.updated_at),
        }

    def __repr__(self) -> str:
        return f"<Task {self.id}: {self.title[:40]} [{self.status}]>"


class Subtask(db.Model):
    __tablename__ = "subtasks"

    id = db.Column(db.Integer, primary_key=True)
    task_id = db.Column(
        db.Integer, db.ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    title = db.Column(db.String(200), nullable=False)
    is_completed = db.Column(db.Boolean, nullable=False, default=False)
    completed_at = db.Column(db.DateTime(timezone=True))
    position = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(
        db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow,
    )

    task = db.relationship("Task", back_populates="subtasks")

    def toggle(self) -> None:
        self.is_completed = not self.is_completed
        self.completed_at = utcnow() if self.is_completed else None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "isCompleted": self.is_completed,
            "completedAt": isoformat(self.completed_at),
        }

    def __repr__(self) -> str:
        return f"<Subtask {self.id} task={self.task_id} done={self.is_completed}>"
