"""
Shared pytest fixtures for the TaskFlow test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - make_user / auth_header / identity_of: user and credential factories
    - admin, alice, bob, carol: pre-created users
"""

import pytest

from taskflow import create_app
from taskflow.models import db as _db
from taskflow.models.user import User
from taskflow.services.identity_service import Identity, issue_token
from taskflow.utils.crypto import hash_password

DEFAULT_PASSWORD = "Secret123"


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    return create_app("testing")


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Users & credentials ──────────────────────────────────────────────────


@pytest.fixture()
def make_user():
    """Factory: persist a user and return it."""
    counter = {"n": 0}

    def _make(name=None, email=None, role="user", password=DEFAULT_PASSWORD, **fields):
        counter["n"] += 1
        user = User(
            name=name or f"User {counter['n']}",
            email=email or f"user{counter['n']}@acme.io",
            password_hash=hash_password(password, rounds=4),
            role=role,
            **fields,
        )
        _db.session.add(user)
        _db.session.commit()
        return user

    return _make


@pytest.fixture()
def auth_header():
    """Factory: Authorization header carrying a fresh token for ``user``."""

    def _header(user):
        return {"Authorization": f"Bearer {issue_token(user)}"}

    return _header


@pytest.fixture()
def identity_of():
    return Identity.from_user


@pytest.fixture()
def admin(make_user):
    return make_user(name="Ada Admin", email="ada@acme.io", role="admin")


@pytest.fixture()
def alice(make_user):
    return make_user(name="Alice Owner", email="alice@acme.io")


@pytest.fixture()
def bob(make_user):
    return make_user(name="Bob Member", email="bob@acme.io")


@pytest.fixture()
def carol(make_user):
    return make_user(name="Carol Outsider", email="carol@acme.io")
