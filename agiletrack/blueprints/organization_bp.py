"""
Organization Blueprint — tenant and membership management.

  GET    /api/v1/organizations                                — Caller's organizations
  POST   /api/v1/organizations                                — Create (caller becomes ORG_ADMIN)
  GET    /api/v1/organizations/<org_slug>                     — Detail with counts
  PATCH  /api/v1/organizations/<org_slug>                     — Update profile/settings
  GET    /api/v1/organizations/<org_slug>/members             — Members
  PATCH  /api/v1/organizations/<org_slug>/members/<id>        — Change role
  DELETE /api/v1/organizations/<org_slug>/members/<id>        — Remove member
  POST   /api/v1/organizations/<org_slug>/invites             — Invite by email
"""

from flask import Blueprint, g, jsonify

from agiletrack.blueprints import json_body
from agiletrack.middleware.permission_required import login_required, require_operation
from agiletrack.services import organization_service

organization_bp = Blueprint("organizations", __name__, url_prefix="/api/v1/organizations")


# ═══════════════════════════════════════════════════════════════
# Organizations
# ═══════════════════════════════════════════════════════════════
@organization_bp.route("", methods=["GET"])
@login_required
def list_organizations():
    items = organization_service.list_user_organizations(g.current_user.id)
    return jsonify({"items": items, "total": len(items)}), 200


@organization_bp.route("", methods=["POST"])
@login_required
def create_organization():
    org, membership = organization_service.create_organization(user_id=g.current_user.id, data=json_body())
    d = org.to_dict()
    d["role"] = membership.role
    return jsonify(d), 201


@organization_bp.route("/<org_slug>", methods=["GET"])
@require_operation("organization.view")
def get_organization(org_slug):
    d = organization_service.get_organization_detail(g.organization_id)
    d["role"] = g.membership.role
    return jsonify(d), 200


@organization_bp.route("/<org_slug>", methods=["PATCH"])
@require_operation("organization.update")
def update_organization(org_slug):
    org = organization_service.update_organization(organization_id=g.organization_id, data=json_body())
    return jsonify(org.to_dict()), 200


# ═══════════════════════════════════════════════════════════════
# Members
# ═══════════════════════════════════════════════════════════════
@organization_bp.route("/<org_slug>/members", methods=["GET"])
@require_operation("member.view")
def list_members(org_slug):
    members = organization_service.list_members(g.organization_id)
    return jsonify({"items": [m.to_dict() for m in members], "total": len(members)}), 200


@organization_bp.route("/<org_slug>/members/<int:member_id>", methods=["PATCH"])
@require_operation("member.update")
def update_member(org_slug, member_id):
    member = organization_service.update_member_role(
        organization_id=g.organization_id,
        member_id=member_id,
        data=json_body(),
        actor_user_id=g.current_user.id,
    )
    return jsonify(member.to_dict()), 200


@organization_bp.route("/<org_slug>/members/<int:member_id>", methods=["DELETE"])
@require_operation("member.remove")
def remove_member(org_slug, member_id):
    organization_service.remove_member(
        organization_id=g.organization_id,
        member_id=member_id,
        actor_user_id=g.current_user.id,
    )
    return jsonify({"message": "Member removed"}), 200


@organization_bp.route("/<org_slug>/invites", methods=["POST"])
@require_operation("member.invite")
def invite_member(org_slug):
    result = organization_service.invite_member(
        organization_id=g.organization_id,
        inviter_id=g.current_user.id,
        data=json_body(),
    )
    return jsonify(result), 201
