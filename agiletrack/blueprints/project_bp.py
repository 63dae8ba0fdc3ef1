"""
Project Blueprint — projects, phases and project metrics.

All routes live under /api/v1/organizations/<org_slug>/projects.
"""

from flask import Blueprint, g, jsonify, request

from agiletrack.blueprints import json_body
from agiletrack.middleware.permission_required import require_operation
from agiletrack.services import project_service

project_bp = Blueprint("projects", __name__, url_prefix="/api/v1/organizations/<org_slug>/projects")


# ═══════════════════════════════════════════════════════════════
# Projects
# ═══════════════════════════════════════════════════════════════
@project_bp.route("", methods=["GET"])
@require_operation("project.view")
def list_projects(org_slug):
    """Query params: status, priority, search."""
    items = project_service.list_projects(
        organization_id=g.organization_id,
        status=request.args.get("status"),
        priority=request.args.get("priority"),
        search=request.args.get("search"),
    )
    return jsonify({"items": items, "total": len(items)}), 200


@project_bp.route("", methods=["POST"])
@require_operation("project.create")
def create_project(org_slug):
    project = project_service.create_project(
        organization_id=g.organization_id,
        user_id=g.current_user.id,
        data=json_body(),
    )
    return jsonify(project.to_dict()), 201


@project_bp.route("/<int:project_id>", methods=["GET"])
@require_operation("project.view")
def get_project(org_slug, project_id):
    return jsonify(project_service.get_project_detail(organization_id=g.organization_id, project_id=project_id)), 200


@project_bp.route("/<int:project_id>", methods=["PATCH"])
@require_operation("project.update")
def update_project(org_slug, project_id):
    project = project_service.update_project(
        organization_id=g.organization_id,
        project_id=project_id,
        data=json_body(),
    )
    return jsonify(project.to_dict()), 200


@project_bp.route("/<int:project_id>", methods=["DELETE"])
@require_operation("project.delete")
def delete_project(org_slug, project_id):
    project_service.delete_project(
        organization_id=g.organization_id,
        project_id=project_id,
        user_id=g.current_user.id,
    )
    return jsonify({"message": "Project deleted"}), 200


@project_bp.route("/<int:project_id>/metrics", methods=["GET"])
@require_operation("project.view")
def project_metrics(org_slug, project_id):
    return jsonify(project_service.get_project_metrics(organization_id=g.organization_id, project_id=project_id)), 200


# ═══════════════════════════════════════════════════════════════
# Phases
# ═══════════════════════════════════════════════════════════════
@project_bp.route("/<int:project_id>/phases", methods=["GET"])
@require_operation("phase.view")
def list_phases(org_slug, project_id):
    phases = project_service.list_phases(organization_id=g.organization_id, project_id=project_id)
    return jsonify({"items": [ph.to_dict() for ph in phases], "total": len(phases)}), 200


@project_bp.route("/<int:project_id>/phases", methods=["POST"])
@require_operation("phase.manage")
def create_phase(org_slug, project_id):
    phase = project_service.create_phase(
        organization_id=g.organization_id,
        project_id=project_id,
        data=json_body(),
    )
    return jsonify(phase.to_dict()), 201


@project_bp.route("/<int:project_id>/phases/<int:phase_id>", methods=["PATCH"])
@require_operation("phase.manage")
def update_phase(org_slug, project_id, phase_id):
    phase = project_service.update_phase(
        organization_id=g.organization_id,
        project_id=project_id,
        phase_id=phase_id,
        data=json_body(),
    )
    return jsonify(phase.to_dict()), 200
