"""
Dashboard Blueprint — organization home screen.

  GET /api/v1/organizations/<org_slug>/dashboard
"""

from flask import Blueprint, g, jsonify

from agiletrack.middleware.permission_required import require_operation
from agiletrack.services import dashboard_service

dashboard_bp = Blueprint("dashboard", __name__, url_prefix="/api/v1/organizations/<org_slug>")


@dashboard_bp.route("/dashboard", methods=["GET"])
@require_operation("dashboard.view")
def dashboard(org_slug):
    return jsonify(dashboard_service.get_dashboard(
        organization_id=g.organization_id,
        user_id=g.current_user.id,
        role=g.membership.role,
    )), 200
