"""
Membership resolution and role-based authorization.

Every organization-scoped request goes through two steps:

    1. ``resolve_membership(user_id, org_slug)``: the single membership row
       proving the caller belongs to the organization. Non-members get
       NotFoundError (404), exactly like a slug that does not exist.
    2. ``authorize(membership, operation)``: a static lookup in ``POLICY``.
       A member whose role is not listed gets AccessDeniedError (403).

Each operation declares its own allow-list. There is no role hierarchy
and no wildcard matching: changing one entry never changes another.

Usage:
    from agiletrack.services.permission_service import authorize, resolve_membership

    membership = resolve_membership(user_id, "acme")
    authorize(membership, "budget.create")
"""

from __future__ import annotations

import logging

from sqlalchemy import select

from agiletrack.core.exceptions import AccessDeniedError, NotFoundError
from agiletrack.models import db
from agiletrack.models.organization import (
    DONOR_SPONSOR,
    MEMBER_ROLES,
    MONITOR,
    ORG_ADMIN,
    PROJECT_MANAGER,
    SUPER_ADMIN,
    TEAM_MEMBER,
    Organization,
    OrganizationMember,
)

logger = logging.getLogger(__name__)

_ALL_ROLES = frozenset(MEMBER_ROLES)
_ADMINS = frozenset({ORG_ADMIN, SUPER_ADMIN})
_MANAGERS = frozenset({ORG_ADMIN, SUPER_ADMIN, PROJECT_MANAGER})
_FINANCE_VIEWERS = frozenset({ORG_ADMIN, SUPER_ADMIN, PROJECT_MANAGER, DONOR_SPONSOR})
_FINANCE_APPROVERS = frozenset({ORG_ADMIN, SUPER_ADMIN, DONOR_SPONSOR})
_CONTRIBUTORS = frozenset({ORG_ADMIN, SUPER_ADMIN, PROJECT_MANAGER, TEAM_MEMBER})


# ═══════════════════════════════════════════════════════════════
# Policy table: operation → roles allowed to perform it
# ═══════════════════════════════════════════════════════════════
POLICY: dict[str, frozenset[str]] = {
    # Organization & membership
    "organization.view": _ALL_ROLES,
    "organization.update": _ADMINS,
    "member.view": _ALL_ROLES,
    "member.invite": _ADMINS,
    "member.update": _ADMINS,
    "member.remove": _ADMINS,
    # Projects & phases
    "project.view": _ALL_ROLES,
    "project.create": _MANAGERS,
    "project.update": _MANAGERS,
    "project.delete": _ADMINS,
    "phase.view": _ALL_ROLES,
    "phase.manage": _MANAGERS,
    # Tasks (task.edit is the role clause; creator/assignee are checked separately)
    "task.view": _ALL_ROLES,
    "task.create": _CONTRIBUTORS,
    "task.comment": _ALL_ROLES,
    "task.edit": _MANAGERS,
    "task.delete": _MANAGERS,
    # Budgets & expenses
    "budget.view": _FINANCE_VIEWERS,
    "budget.create": _MANAGERS,
    "budget.update": _MANAGERS,
    "budget.delete": _ADMINS,
    "expense.view": _FINANCE_VIEWERS,
    "expense.submit": _ALL_ROLES,
    "expense.approve": _FINANCE_APPROVERS,
    # Reporting
    "report.view": _ALL_ROLES,
    "report.create": frozenset({ORG_ADMIN, SUPER_ADMIN, PROJECT_MANAGER, MONITOR}),
    "report.approve": _FINANCE_APPROVERS,
    "report.export": frozenset({ORG_ADMIN, SUPER_ADMIN, PROJECT_MANAGER, MONITOR, DONOR_SPONSOR}),
    "dashboard.view": _ALL_ROLES,
}


# ═══════════════════════════════════════════════════════════════
# Membership resolution
# ═══════════════════════════════════════════════════════════════
def resolve_membership(user_id: int, organization_slug: str) -> OrganizationMember:
    """Return the caller's membership in the organization named by *organization_slug*.

    Raises:
        NotFoundError: If the organization does not exist or the user is
            not a member of it. Both cases look the same to the caller.
    """
    stmt = (
        select(OrganizationMember)
        .join(Organization, OrganizationMember.organization_id == Organization.id)
        .where(
            Organization.slug == organization_slug,
            OrganizationMember.user_id == user_id,
        )
    )
    membership = db.session.execute(stmt).scalar_one_or_none()
    if membership is None:
        logger.info("No membership: user=%s organization=%s", user_id, organization_slug)
        raise NotFoundError(resource="Organization", resource_id=organization_slug)
    return membership


# ═══════════════════════════════════════════════════════════════
# Authorization
# ═══════════════════════════════════════════════════════════════
def is_allowed(role: str, operation: str) -> bool:
    """Pure policy lookup.

    Raises:
        KeyError: For an operation missing from ``POLICY``. Unknown
            operations are programming errors and never fall through to
            an allow.
    """
    return role in POLICY[operation]


def authorize(membership: OrganizationMember, operation: str) -> None:
    """Assert the member's role may perform *operation*.

    Raises:
        AccessDeniedError: If the role is not in the operation's allow-list.
    """
    if not is_allowed(membership.role, operation):
        logger.warning(
            "User %s denied '%s' in organization %s (role=%s)",
            membership.user_id, operation, membership.organization_id, membership.role,
        )
        raise AccessDeniedError(operation, membership.role)


def can_edit_task(membership: OrganizationMember, task) -> bool:
    """Creator OR assignee OR a role in the ``task.edit`` allow-list."""
    if task.creator_id is not None and task.creator_id == membership.user_id:
        return True
    if task.assignee_id is not None and task.assignee_id == membership.user_id:
        return True
    return is_allowed(membership.role, "task.edit")


def authorize_task_edit(membership: OrganizationMember, task) -> None:
    if not can_edit_task(membership, task):
        logger.warning(
            "User %s denied edit on task %s (role=%s)",
            membership.user_id, task.id, membership.role,
        )
        raise AccessDeniedError("task.edit", membership.role)


def get_role_operations(role: str) -> list[str]:
    """All operations a role may perform, sorted (used by /auth/me and the UI)."""
    return sorted(op for op, roles in POLICY.items() if role in roles)
