"""
AgileTrack Pro
Tenant models.

Tables:
    1. organizations         Tenant root, addressed by a unique slug
    2. organization_members  User ↔ Organization join carrying the role
"""

from datetime import datetime, timezone

from agiletrack.models import db

# ── Roles ─────────────────────────────────────────────────────────
ORG_ADMIN = "ORG_ADMIN"
SUPER_ADMIN = "SUPER_ADMIN"
PROJECT_MANAGER = "PROJECT_MANAGER"
MONITOR = "MONITOR"
DONOR_SPONSOR = "DONOR_SPONSOR"
TEAM_MEMBER = "TEAM_MEMBER"
VIEWER = "VIEWER"

MEMBER_ROLES = (
    ORG_ADMIN,
    SUPER_ADMIN,
    PROJECT_MANAGER,
    MONITOR,
    DONOR_SPONSOR,
    TEAM_MEMBER,
    VIEWER,
)

# Roles that can be handed out through invites and role changes.
# SUPER_ADMIN is provisioned out of band.
ASSIGNABLE_ROLES = tuple(r for r in MEMBER_ROLES if r != SUPER_ADMIN)


# ═══════════════════════════════════════════════════════════════
# 1. ORGANIZATIONS
# ═══════════════════════════════════════════════════════════════
class Organization(db.Model):
    __tablename__ = "organizations"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    slug = db.Column(db.String(100), nullable=False, unique=True, index=True)
    description = db.Column(db.Text)
    website = db.Column(db.String(500))
    logo_url = db.Column(db.String(500))
    settings = db.Column(db.JSON, default=dict)
    created_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    members = db.relationship(
        "OrganizationMember", back_populates="organization", lazy="dynamic",
        cascade="all, delete-orphan", passive_deletes=True,
    )
    projects = db.relationship(
        "Project", back_populates="organization", lazy="dynamic",
        cascade="all, delete-orphan", passive_deletes=True,
    )

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "description": self.description,
            "website": self.website,
            "logo_url": self.logo_url,
            "settings": self.settings or {},
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<Organization {self.id}: {self.slug}>"


# ═══════════════════════════════════════════════════════════════
# 2. ORGANIZATION_MEMBERS
# ═══════════════════════════════════════════════════════════════
class OrganizationMember(db.Model):
    __tablename__ = "organization_members"

    id = db.Column(db.Integer, primary_key=True)
    organization_id = db.Column(
        db.Integer, db.ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False
    )
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    role = db.Column(
        db.String(30), nullable=False, default=VIEWER,
        comment="ORG_ADMIN | SUPER_ADMIN | PROJECT_MANAGER | MONITOR | DONOR_SPONSOR | TEAM_MEMBER | VIEWER",
    )
    joined_at = db.Column(db.DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.UniqueConstraint("organization_id", "user_id", name="uq_org_member_user"),
        db.Index("ix_org_members_org_role", "organization_id", "role"),
    )

    organization = db.relationship("Organization", back_populates="members")
    user = db.relationship("User", back_populates="memberships")

    def to_dict(self):
        return {
            "id": self.id,
            "organization_id": self.organization_id,
            "user_id": self.user_id,
            "role": self.role,
            "user": self.user.to_summary() if self.user else None,
            "joined_at": self.joined_at.isoformat() if self.joined_at else None,
        }

    def __repr__(self):
        return f"<OrganizationMember org={self.organization_id} user={self.user_id} {self.role}>"
