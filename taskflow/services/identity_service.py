"""
Identity & Access service — registration, login, token verification, profile.

``verify(token)`` is the single entry point the request guard uses: it
decodes the bearer token, loads the user and returns an ``Identity``.
Every failure (missing, malformed, expired, unknown user, deactivated
account) is an ``AuthenticationError``.
"""

import logging
from dataclasses import dataclass

import jwt
from email_validator import EmailNotValidError, validate_email
from flask import current_app

from taskflow.core.exceptions import AuthenticationError, ConflictError
from taskflow.models import db, utcnow
from taskflow.models.user import USER_ROLES, User
from taskflow.services.jwt_service import decode_access_token, generate_access_token
from taskflow.utils.crypto import hash_password, verify_password
from taskflow.utils.helpers import FieldErrors, commit_or_raise

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6
PROFILE_FIELDS = ("name", "phone", "bio", "department", "avatar")


@dataclass(frozen=True)
class Identity:
    """Authenticated caller. ``id`` works anywhere a user reference is accepted."""

    id: int
    role: str
    is_active: bool = True

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    @classmethod
    def from_user(cls, user: User) -> "Identity":
        return cls(id=user.id, role=user.role, is_active=user.is_active)


def _rounds() -> int:
    return current_app.config.get("BCRYPT_ROUNDS", 12)


def normalize_email(errors: FieldErrors, email, field="email"):
    """Validate with email-validator and lower-case the whole address."""
    if not email or not isinstance(email, str) or not email.strip():
        errors.add(field, "Email is required", email)
        return None
    try:
        return validate_email(email.strip(), check_deliverability=False).normalized.lower()
    except EmailNotValidError:
        errors.add(field, "Please provide a valid email", email)
        return None


def email_taken(email: str, exclude_user_id: int | None = None) -> bool:
    query = User.query.filter(db.func.lower(User.email) == email.lower())
    if exclude_user_id is not None:
        query = query.filter(User.id != exclude_user_id)
    return db.session.query(query.exists()).scalar()


# ═══════════════════════════════════════════════════════════════
# Token verification
# ═══════════════════════════════════════════════════════════════
def verify(token: str | None) -> Identity:
    """Resolve a bearer token to the active user it names."""
    if not token:
        raise AuthenticationError("Not authorized to access this route. Please login.")
    try:
        payload = decode_access_token(token)
        user_id = int(payload["sub"])
    except (jwt.InvalidTokenError, KeyError, TypeError, ValueError):
        raise AuthenticationError("Token is invalid or has expired. Please login again.") from None

    user = db.session.get(User, user_id)
    if user is None:
        raise AuthenticationError("User not found. Token may be invalid.")
    if not user.is_active:
        raise AuthenticationError("User account is deactivated. Please contact support.")
    return Identity.from_user(user)


def issue_token(user: User) -> str:
    return generate_access_token(user.id, user.role)


# ═══════════════════════════════════════════════════════════════
# Register / login
# ═══════════════════════════════════════════════════════════════
def register(data: dict) -> tuple[User, str]:
    """Create an account and return ``(user, token)``.

    A requested ``admin`` role is downgraded to ``user``; admins are only
    made by other admins through the user service.
    """
    errors = FieldErrors()
    name = errors.string(data, "name", label="Name", required=True, min_len=2, max_len=50)
    email = normalize_email(errors, data.get("email"))
    password = data.get("password")
    if not password or not isinstance(password, str):
        errors.add("password", "Password is required", None)
    elif len(password) < MIN_PASSWORD_LENGTH:
        errors.add("password", f"Password must be at least {MIN_PASSWORD_LENGTH} characters", None)
    department = errors.string(data, "department", label="Department", max_len=100)
    phone = errors.string(data, "phone", label="Phone", max_len=50)
    role = data.get("role") or "user"
    if role not in USER_ROLES:
        errors.add("role", "Invalid role", role)
    errors.raise_if_any()

    if email_taken(email):
        raise ConflictError("An account with this email already exists",
                            resource="User", field="email", value=email)

    user = User(
        name=name,
        email=email,
        password_hash=hash_password(password, _rounds()),
        department=department or "General",
        phone=phone,
        role="user" if role == "admin" else role,
    )
    db.session.add(user)
    commit_or_raise("User")
    logger.info("User registered id=%s role=%s", user.id, user.role, extra={"user_id": user.id})
    return user, issue_token(user)


def login(data: dict) -> tuple[User, str]:
    """Check credentials, stamp ``last_login`` and return ``(user, token)``."""
    errors = FieldErrors()
    email = normalize_email(errors, data.get("email"))
    password = data.get("password")
    if not password:
        errors.add("password", "Password is required", None)
    errors.raise_if_any()

    user = User.query.filter(db.func.lower(User.email) == email).first()
    if user is None:
        raise AuthenticationError("Invalid email or password")
    if not user.is_active:
        raise AuthenticationError("Your account has been deactivated. Please contact support.")
    if not verify_password(password, user.password_hash):
        logger.info("Failed login for user id=%s", user.id, extra={"user_id": user.id})
        raise AuthenticationError("Invalid email or password")

    user.last_login = utcnow()
    commit_or_raise("User")
    return user, issue_token(user)


# ═══════════════════════════════════════════════════════════════
# Profile
# ═══════════════════════════════════════════════════════════════
def me(identity: Identity) -> User:
    user = db.session.get(User, identity.id)
    if user is None:
        raise AuthenticationError("User not found. Token may be invalid.")
    return user


def update_profile(identity: Identity, data: dict) -> User:
    """Update name, phone, bio, department, avatar. Other keys are ignored."""
    user = me(identity)
    errors = FieldErrors()
    values = {
        "name": errors.string(data, "name", label="Name", min_len=2, max_len=50),
        "phone": errors.string(data, "phone", label="Phone", max_len=50),
        "bio": errors.string(data, "bio", label="Bio", max_len=500),
        "department": errors.string(data, "department", label="Department", max_len=100),
        "avatar": errors.string(data, "avatar", label="Avatar", max_len=500),
    }
    errors.raise_if_any()

    for field in PROFILE_FIELDS:
        if field not in data:
            continue
        if field in ("name", "department", "avatar") and values[field] is None:
            continue
        setattr(user, field, values[field])
    commit_or_raise("User")
    return user


def change_password(identity: Identity, data: dict) -> str:
    """Replace the password after checking the current one; returns a fresh token."""
    errors = FieldErrors()
    current = data.get("currentPassword")
    new = data.get("newPassword")
    if not current:
        errors.add("currentPassword", "Current password is required", None)
    if not new:
        errors.add("newPassword", "New password is required", None)
    elif not isinstance(new, str) or len(new) < MIN_PASSWORD_LENGTH:
        errors.add("newPassword", f"New password must be at least {MIN_PASSWORD_LENGTH} characters", None)
    errors.raise_if_any()

    user = me(identity)
    if not verify_password(current, user.password_hash):
        raise AuthenticationError("Current password is incorrect")

    user.password_hash = hash_password(new, _rounds())
    commit_or_raise("User")
    logger.info("Password changed for user id=%s", user.id, extra={"user_id": user.id})
    return issue_token(user)
