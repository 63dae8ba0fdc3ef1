"""
Organization & membership service.

Covers tenant creation, profile updates, member listing, invitations,
role changes and removals. ``db.session.commit()`` happens only in this
file for these entities; blueprints never commit.

Last-administrator rule:
    An organization always keeps at least one ORG_ADMIN. Demotion and
    removal are issued as a single conditional UPDATE / DELETE whose WHERE
    clause requires another ORG_ADMIN row to exist, after locking the
    organization's admin rows. Two concurrent demotions therefore cannot
    both succeed.
"""

from __future__ import annotations

import logging
import re

from sqlalchemy import delete, func, select, update
from sqlalchemy.orm import aliased

from agiletrack.core.exceptions import BusinessRuleError, NotFoundError, ValidationError
from agiletrack.models import db
from agiletrack.models.audit import write_audit
from agiletrack.models.organization import (
    ASSIGNABLE_ROLES,
    ORG_ADMIN,
    Organization,
    OrganizationMember,
)
from agiletrack.models.project import Project
from agiletrack.services.helpers.validation import (
    choice,
    optional_object,
    optional_text,
    raise_if_errors,
    require_text,
)
from agiletrack.services.user_service import (
    UserServiceError,
    create_invited_user,
    get_user_by_email,
    normalize_email,
)
from agiletrack.utils.helpers import db_commit_or_error

logger = logging.getLogger(__name__)

SLUG_RE = re.compile(r"^[a-z0-9-]+$")
LAST_ADMIN_MESSAGE = "Cannot remove the last administrator"


# ═══════════════════════════════════════════════════════════════
# Organizations
# ═══════════════════════════════════════════════════════════════
def create_organization(*, user_id: int, data: dict) -> tuple[Organization, OrganizationMember]:
    """Create an organization; the creator becomes its first ORG_ADMIN.

    Raises:
        ValidationError: name/slug missing or malformed.
        BusinessRuleError: slug already taken.
    """
    errors: dict[str, str] = {}
    name = require_text(data, "name", errors, min_len=2, max_len=200)
    slug = require_text(data, "slug", errors, min_len=2, max_len=100)
    if slug and not SLUG_RE.match(slug):
        errors["slug"] = "Slug can only contain lowercase letters, numbers, and hyphens"
    description = optional_text(data, "description", errors)
    website = optional_text(data, "website", errors, max_len=500)
    raise_if_errors(errors)

    duplicate = BusinessRuleError("Organization slug already exists", details={"slug": slug})
    if db.session.execute(select(Organization.id).where(Organization.slug == slug)).first():
        raise duplicate

    org = Organization(name=name, slug=slug, description=description, website=website, settings={})
    db.session.add(org)
    db.session.flush()
    membership = OrganizationMember(organization_id=org.id, user_id=user_id, role=ORG_ADMIN)
    db.session.add(membership)
    db_commit_or_error(integrity_error=duplicate)

    logger.info("Organization created: id=%s slug=%s by user=%s", org.id, org.slug, user_id)
    return org, membership


def list_user_organizations(user_id: int) -> list[dict]:
    """Organizations the user belongs to, with their role and headline counts."""
    rows = db.session.execute(
        select(Organization, OrganizationMember.role)
        .join(OrganizationMember, OrganizationMember.organization_id == Organization.id)
        .where(OrganizationMember.user_id == user_id)
        .order_by(Organization.name)
    ).all()
    result = []
    for org, role in rows:
        d = org.to_dict()
        d["role"] = role
        d.update(_organization_counts(org.id))
        result.append(d)
    return result


def _organization_counts(organization_id: int) -> dict:
    member_count = db.session.scalar(
        select(func.count(OrganizationMember.id)).where(OrganizationMember.organization_id == organization_id)
    )
    project_count = db.session.scalar(
        select(func.count(Project.id)).where(Project.organization_id == organization_id)
    )
    return {"member_count": member_count or 0, "project_count": project_count or 0}


def get_organization_detail(organization_id: int) -> dict:
    org = db.session.get(Organization, organization_id)
    if org is None:
        raise NotFoundError("Organization", organization_id)
    d = org.to_dict()
    d.update(_organization_counts(organization_id))
    return d


def update_organization(*, organization_id: int, data: dict) -> Organization:
    """Update profile fields. The slug is immutable once created."""
    org = db.session.get(Organization, organization_id)
    if org is None:
        raise NotFoundError("Organization", organization_id)

    errors: dict[str, str] = {}
    if "slug" in data and data["slug"] != org.slug:
        errors["slug"] = "slug cannot be changed"
    if "name" in data:
        org.name = require_text(data, "name", errors, min_len=2, max_len=200)
    if "description" in data:
        org.description = optional_text(data, "description", errors)
    if "website" in data:
        org.website = optional_text(data, "website", errors, max_len=500)
    if "logo_url" in data:
        org.logo_url = optional_text(data, "logo_url", errors, max_len=500)
    if "settings" in data:
        settings = optional_object(data, "settings", errors)
        if settings is not None:
            org.settings = {**(org.settings or {}), **settings}
    if errors:
        db.session.rollback()
        raise ValidationError("Invalid input", details=errors)

    db_commit_or_error()
    logger.info("Organization updated: id=%s", org.id)
    return org


# ═══════════════════════════════════════════════════════════════
# Members
# ═══════════════════════════════════════════════════════════════
def list_members(organization_id: int) -> list[OrganizationMember]:
    return (
        OrganizationMember.query
        .filter_by(organization_id=organization_id)
        .order_by(OrganizationMember.joined_at.asc())
        .all()
    )


def _get_member(organization_id: int, member_id: int) -> OrganizationMember:
    member = db.session.execute(
        select(OrganizationMember).where(
            OrganizationMember.id == member_id,
            OrganizationMember.organization_id == organization_id,
        )
    ).scalar_one_or_none()
    if member is None:
        raise NotFoundError("Member", member_id, organization_id)
    return member


def _lock_admin_rows(organization_id: int) -> None:
    """Row-lock the organization's admins (no-op on SQLite)."""
    db.session.execute(
        select(OrganizationMember.id)
        .where(
            OrganizationMember.organization_id == organization_id,
            OrganizationMember.role == ORG_ADMIN,
        )
        .with_for_update()
    ).all()


def _another_admin_exists(organization_id: int, member_id: int):
    other = aliased(OrganizationMember)
    return (
        select(other.id)
        .where(
            other.organization_id == organization_id,
            other.role == ORG_ADMIN,
            other.id != member_id,
        )
        .exists()
    )


def update_member_role(
    *, organization_id: int, member_id: int, data: dict, actor_user_id: int
) -> OrganizationMember:
    """Change a member's role.

    Raises:
        ValidationError: role missing or not assignable (SUPER_ADMIN is never
            assignable through this endpoint).
        NotFoundError: member not in this organization.
        BusinessRuleError: the change would leave the organization without
            an ORG_ADMIN.
    """
    errors: dict[str, str] = {}
    role = choice(data, "role", ASSIGNABLE_ROLES, errors, required=True)
    raise_if_errors(errors)

    member = _get_member(organization_id, member_id)
    old_role = member.role
    if old_role == role:
        return member

    stmt = update(OrganizationMember).where(
        OrganizationMember.id == member_id,
        OrganizationMember.organization_id == organization_id,
        OrganizationMember.role == old_role,
    )
    if old_role == ORG_ADMIN:
        _lock_admin_rows(organization_id)
        stmt = stmt.where(_another_admin_exists(organization_id, member_id))

    result = db.session.execute(
        stmt.values(role=role).execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.session.rollback()
        logger.warning(
            "Role change rejected: member=%s org=%s %s→%s (last admin or concurrent change)",
            member_id, organization_id, old_role, role,
        )
        raise BusinessRuleError(LAST_ADMIN_MESSAGE)

    write_audit(
        organization_id=organization_id,
        entity_type="member",
        entity_id=member_id,
        action="member.role_change",
        actor_user_id=actor_user_id,
        diff={"role": {"old": old_role, "new": role}},
    )
    db_commit_or_error()
    logger.info("Member role changed: member=%s org=%s %s→%s", member_id, organization_id, old_role, role)
    return _get_member(organization_id, member_id)


def remove_member(*, organization_id: int, member_id: int, actor_user_id: int) -> None:
    """Remove a member from the organization.

    Raises:
        NotFoundError: member not in this organization.
        BusinessRuleError: the member is the last ORG_ADMIN.
    """
    member = _get_member(organization_id, member_id)
    role, user_id = member.role, member.user_id

    stmt = delete(OrganizationMember).where(
        OrganizationMember.id == member_id,
        OrganizationMember.organization_id == organization_id,
    )
    if role == ORG_ADMIN:
        _lock_admin_rows(organization_id)
        stmt = stmt.where(_another_admin_exists(organization_id, member_id))

    result = db.session.execute(stmt.execution_options(synchronize_session=False))
    if result.rowcount != 1:
        db.session.rollback()
        logger.warning("Member removal rejected: member=%s org=%s (last admin)", member_id, organization_id)
        raise BusinessRuleError(LAST_ADMIN_MESSAGE)

    db.session.expunge(member)
    write_audit(
        organization_id=organization_id,
        entity_type="member",
        entity_id=member_id,
        action="member.remove",
        actor_user_id=actor_user_id,
        diff={"user_id": user_id, "role": role},
    )
    db_commit_or_error()
    logger.info("Member removed: member=%s org=%s", member_id, organization_id)


def invite_member(*, organization_id: int, inviter_id: int, data: dict) -> dict:
    """Add a user to the organization by email.

    Existing accounts get a membership straight away. Unknown addresses get
    an ``invited`` placeholder account whose invite token is returned to
    the inviter; delivering it by email is not implemented (logged only).

    Raises:
        ValidationError: bad email or role.
        BusinessRuleError: the user is already a member.
    """
    errors: dict[str, str] = {}
    role = choice(data, "role", ASSIGNABLE_ROLES, errors, required=True)
    message = optional_text(data, "message", errors, max_len=2000)
    email = None
    try:
        email = normalize_email(data.get("email") or "")
    except UserServiceError as e:
        errors["email"] = e.message
    raise_if_errors(errors)

    user = get_user_by_email(email)
    created = False
    if user is not None:
        already = db.session.execute(
            select(OrganizationMember.id).where(
                OrganizationMember.organization_id == organization_id,
                OrganizationMember.user_id == user.id,
            )
        ).first()
        if already:
            raise BusinessRuleError("User is already a member of this organization")
    else:
        user = create_invited_user(email, name=(data.get("name") or None))
        created = True

    member = OrganizationMember(organization_id=organization_id, user_id=user.id, role=role)
    db.session.add(member)
    db.session.flush()
    write_audit(
        organization_id=organization_id,
        entity_type="member",
        entity_id=member.id,
        action="member.invite",
        actor_user_id=inviter_id,
        diff={"email": email, "role": role, "new_account": created},
    )
    db_commit_or_error(
        integrity_error=BusinessRuleError("User is already a member of this organization")
    )

    # Email delivery is not wired up; the token is handed back to the inviter.
    logger.info(
        "Invitation recorded (email delivery stubbed): org=%s member=%s new_account=%s message=%s",
        organization_id, member.id, created, bool(message),
    )
    result = {"member": member.to_dict(), "new_account": created}
    if created:
        result["invite_token"] = user.invite_token
    return result
