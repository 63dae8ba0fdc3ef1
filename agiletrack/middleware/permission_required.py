"""
Permission Decorators — JWT-aware RBAC decorators for route protection.

Usage:
    @bp.route("/organizations/<org_slug>/budgets", methods=["POST"])
    @require_operation("budget.create")
    def create_budget(org_slug):
        membership = g.membership
        ...

    @bp.route("/organizations", methods=["GET"])
    @login_required
    def list_organizations():
        ...

Failure modes (all rendered by the app-wide error handlers):
    no/invalid token or inactive user  → AuthenticationError → 401
    not a member / unknown slug        → NotFoundError       → 404
    role not in the allow-list         → AccessDeniedError   → 403
"""

import functools
import logging

from flask import g

from agiletrack.core.exceptions import AuthenticationError
from agiletrack.models import db
from agiletrack.models.auth import User
from agiletrack.services.permission_service import authorize, resolve_membership

logger = logging.getLogger(__name__)


def _current_user() -> User:
    user_id = getattr(g, "jwt_user_id", None)
    if user_id is None:
        raise AuthenticationError()
    user = db.session.get(User, user_id)
    if user is None or user.status != "active":
        logger.info("Token for unknown or inactive user %s", user_id)
        raise AuthenticationError("User inactive or not found")
    g.current_user = user
    return user


def login_required(f):
    """Decorator: require an authenticated, active user."""
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        _current_user()
        return f(*args, **kwargs)
    return decorated


def require_operation(operation: str, slug_arg: str = "org_slug"):
    """
    Decorator: resolve the caller's membership in the route's organization
    and check *operation* against the policy table.

    Sets ``g.membership`` and ``g.organization_id`` for the view.
    """
    def decorator(f):
        @functools.wraps(f)
        def decorated(*args, **kwargs):
            user = _current_user()
            membership = resolve_membership(user.id, kwargs[slug_arg])
            authorize(membership, operation)
            g.membership = membership
            g.organization_id = membership.organization_id
            return f(*args, **kwargs)
        return decorated
    return decorator
