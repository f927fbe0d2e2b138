"""
User model — identity, global role, profile and activity timestamps.

Users are never hard-deleted: an admin delete flips ``is_active`` off so
references from projects, tasks and comments stay valid.
"""

from taskflow.models import db, isoformat, utcnow

USER_ROLES = ("user", "manager", "admin")


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(50), nullable=False)
    email = db.Column(db.String(254), nullable=False, unique=True)
    password_hash = db.Column(db.String(256), nullable=False)
    avatar = db.Column(db.String(500), nullable=False, default="default-avatar.png")
    role = db.Column(db.String(20), nullable=False, default="user")  # user | manager | admin
    department = db.Column(db.String(100), nullable=False, default="General")
    phone = db.Column(db.String(50))
    bio = db.Column(db.String(500))
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    last_login = db.Column(db.DateTime(timezone=True))
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(
        db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow,
    )

    __table_args__ = (
        db.Index("ix_users_role", "role"),
        db.Index("ix_users_department", "department"),
    )

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    def summary(self) -> dict:
        """Compact form used when a user is expanded inside another entity."""
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "avatar": self.avatar,
        }

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "avatar": self.avatar,
            "role": self.role,
            "department": self.department,
            "phone": self.phone,
            "bio": self.bio,
            "isActive": self.is_active,
            "lastLogin": isoformat(self.last_login),
            "createdAt": isoformat(self.created_at),
            "updatedAt": isoformat(self.updated_at),
        }

    def __repr__(self) -> str:
        return f"<User {self.id}: {self.email}>"
