"""
Comment domain model — threaded, soft-deletable task discussion.

Models:
    - Comment: message on a task, optionally replying to another comment
    - CommentReaction: one reaction per (comment, user)
    - comment_mentions: association of mentioned users
"""

from taskflow.models import db, isoformat, utcnow

REACTION_TYPES = ("like", "heart", "thumbsup", "thumbsdown", "celebrate")
DELETED_COMMENT_TEXT = "[This comment has been deleted]"
MAX_COMMENT_LENGTH = 2000

comment_mentions = db.Table(
    "comment_mentions",
    db.Column("comment_id", db.Integer, db.ForeignKey("comments.id", ondelete="CASCADE"), primary_key=True),
    db.Column("user_id", db.Integer, db.ForeignKey("users.id"), primary_key=True),
)


class Comment(db.Model):
    __tablename__ = "comments"

    id = db.Column(db.Integer, primary_key=True)
    content = db.Column(db.String(MAX_COMMENT_LENGTH), nullable=False)
    # Plain column: comments outlive their task when the task is deleted.
    task_id = db.Column(db.Integer, nullable=False)
    author_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    parent_comment_id = db.Column(db.Integer, db.ForeignKey("comments.id"), nullable=True, index=True)
    attachments = db.Column(db.JSON, nullable=False, default=list)
    is_edited = db.Column(db.Boolean, nullable=False, default=False)
    edited_at = db.Column(db.DateTime(timezone=True))
    is_deleted = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(
        db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow,
    )

    author = db.relationship("User", foreign_keys=[author_id])
    parent = db.relationship("Comment", remote_side=[id], back_populates="replies")
    replies = db.relationship(
        "Comment",
        back_populates="parent",
        order_by=lambda: [Comment.created_at, Comment.id],
    )
    mentions = db.relationship("User", secondary=comment_mentions, order_by="User.id")
    reactions = db.relationship(
        "CommentReaction",
        back_populates="comment",
        cascade="all, delete-orphan",
        order_by="CommentReaction.id",
    )

    __table_args__ = (
        db.Index("ix_comments_task_created", "task_id", "created_at"),
    )

    @property
    def reaction_count(self) -> int:
        return len(self.reactions)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "content": self.content,
            "task": self.task_id,
            "author": self.author_id,
            "parentComment": self.parent_comment_id,
            "mentions": [u.id for u in self.mentions],
            "attachments": list(self.attachments or []),
            "reactions": [r.to_dict() for r in self.reactions],
            "reactionCount": self.reaction_count,
            "isEdited": self.is_edited,
            "editedAt": isoformat(self.edited_at),
            "isDeleted": self.is_deleted,
            "createdAt": isoformat(self.created_at),
            "updatedAt": isoformat(self.updated_at),
        }

    def __repr__(self) -> str:
        return f"<Comment {self.id} task={self.task_id} author={self.author_id}>"


class CommentReaction(db.Model):
    __tablename__ = "comment_reactions"

    id = db.Column(db.Integer, primary_key=True)
    comment_id = db.Column(
        db.Integer, db.ForeignKey("comments.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    type = db.Column(db.String(20), nullable=False, default="like")

    comment = db.relationship("Comment", back_populates="reactions")

    __table_args__ = (
        db.UniqueConstraint("comment_id", "user_id", name="uq_comment_reactions_comment_user"),
    )

    def to_dict(self) -> dict:
        return {"user": self.user_id, "type": self.type}
