"""
Shared pytest fixtures for the AgileTrack Pro test suite.

Provides:
    - app: Flask application (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - org / admin / admin_headers: an organization with one ORG_ADMIN
    - member_factory: add a user with a given role to ``org``
    - project: a project in ``org`` created directly on the model

Factory helpers (make_user, make_org, add_member, make_project, make_task,
auth_headers) are plain functions so individual tests can seed extra
tenants without going through the API.
"""

import functools
import itertools
from datetime import datetime, timezone

import pytest

from agiletrack import create_app
from agiletrack.models import db as _db
from agiletrack.models.auth import User
from agiletrack.models.finance import ProjectBudget
from agiletrack.models.organization import ORG_ADMIN, Organization, OrganizationMember
from agiletrack.models.project import Project
from agiletrack.models.task import Task
from agiletrack.services.jwt_service import generate_token_pair
from agiletrack.utils.crypto import hash_password

DEFAULT_PASSWORD = "SecurePass123!"

_seq = itertools.count(1)


@functools.lru_cache(maxsize=1)
def _default_password_hash():
    # bcrypt at 12 rounds is slow; hash the shared test password once
    return hash_password(DEFAULT_PASSWORD)


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    return create_app("testing")


@pytest.fixture(autouse=True)
def session(app):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        _db.create_all()
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Factory helpers ──────────────────────────────────────────────────────


def make_user(email=None, name="Test User", status="active"):
    user = User(
        email=email or f"user{next(_seq)}@example.com",
        name=name,
        password_hash=_default_password_hash(),
        status=status,
    )
    _db.session.add(user)
    _db.session.commit()
    return user


def make_org(slug=None, name="Acme Delivery"):
    org = Organization(name=name, slug=slug or f"org-{next(_seq)}", settings={})
    _db.session.add(org)
    _db.session.commit()
    return org


def add_member(org, role, user=None, email=None):
    """Create (or reuse) a user and give them *role* in *org*. Returns the user."""
    user = user or make_user(email=email)
    _db.session.add(OrganizationMember(organization_id=org.id, user_id=user.id, role=role))
    _db.session.commit()
    return user


def membership_of(org, user):
    return OrganizationMember.query.filter_by(organization_id=org.id, user_id=user.id).one()


def auth_headers(user):
    tokens = generate_token_pair(user.id)
    return {"Authorization": f"Bearer {tokens['access_token']}"}


def make_project(org, user=None, **kwargs):
    fields = {
        "name": f"Project {next(_seq)}",
        "status": "ACTIVE",
        "methodology": "AGILE",
        "priority": "MEDIUM",
        "currency": "USD",
        "meta": {},
        "settings": {},
    }
    fields.update(kwargs)
    project = Project(organization_id=org.id, created_by_id=user.id if user else None, **fields)
    _db.session.add(project)
    _db.session.commit()
    return project


def make_task(project, **kwargs):
    fields = {"title": f"Task {next(_seq)}", "status": "TODO", "priority": "MEDIUM", "meta": {}}
    fields.update(kwargs)
    if fields["status"] == "DONE" and "completed_at" not in kwargs:
        fields["completed_at"] = datetime.now(timezone.utc)
    task = Task(project_id=project.id, **fields)
    _db.session.add(task)
    _db.session.commit()
    return task


def make_budget(project, category="Equipment", allocated=1000, spent=0):
    budget = ProjectBudget(
        project_id=project.id,
        category=category,
        allocated_amount=allocated,
        spent_amount=spent,
        approved_amount=0,
        meta={},
    )
    _db.session.add(budget)
    _db.session.commit()
    return budget


# ── Convenience fixtures ─────────────────────────────────────────────────


@pytest.fixture()
def org():
    return make_org(slug="acme")


@pytest.fixture()
def admin(org):
    return add_member(org, ORG_ADMIN, email="admin@example.com")


@pytest.fixture()
def admin_headers(admin):
    return auth_headers(admin)


@pytest.fixture()
def member_factory(org):
    """``member_factory("VIEWER")`` → a new user holding that role in ``org``."""
    def _make(role, email=None):
        return add_member(org, role, email=email)
    return _make


@pytest.fixture()
def project(org, admin):
    return make_project(org, admin, name="Website Relaunch")
