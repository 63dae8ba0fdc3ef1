"""
Report Blueprint — progress reports and the organization portfolio.

  GET|POST  /api/v1/organizations/<org_slug>/projects/<id>/progress-reports
  POST      /api/v1/organizations/<org_slug>/progress-reports/<id>/submit
  POST      /api/v1/organizations/<org_slug>/progress-reports/<id>/approve
  POST      /api/v1/organizations/<org_slug>/progress-reports/<id>/reject
  GET       /api/v1/organizations/<org_slug>/reports/portfolio
  GET       /api/v1/organizations/<org_slug>/reports/portfolio/export
"""

import logging
from datetime import datetime, timezone

from flask import Blueprint, Response, g, jsonify, request

from agiletrack.blueprints import json_body
from agiletrack.middleware.permission_required import require_operation
from agiletrack.services import report_service
from agiletrack.services.export_service import export_portfolio_csv, export_portfolio_xlsx
from agiletrack.utils.errors import E, api_error

logger = logging.getLogger(__name__)

report_bp = Blueprint("reports", __name__, url_prefix="/api/v1/organizations/<org_slug>")

XLSX_MIMETYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


# ═══════════════════════════════════════════════════════════════
# Progress reports
# ═══════════════════════════════════════════════════════════════
@report_bp.route("/projects/<int:project_id>/progress-reports", methods=["GET"])
@require_operation("report.view")
def list_progress_reports(org_slug, project_id):
    reports = report_service.list_progress_reports(
        organization_id=g.organization_id,
        project_id=project_id,
        status=request.args.get("status"),
    )
    return jsonify({"items": [r.to_dict() for r in reports], "total": len(reports)}), 200


@report_bp.route("/projects/<int:project_id>/progress-reports", methods=["POST"])
@require_operation("report.create")
def create_progress_report(org_slug, project_id):
    report = report_service.create_progress_report(
        organization_id=g.organization_id,
        project_id=project_id,
        user_id=g.current_user.id,
        data=json_body(),
    )
    return jsonify(report.to_dict()), 201


@report_bp.route("/progress-reports/<int:report_id>/submit", methods=["POST"])
@require_operation("report.create")
def submit_progress_report(org_slug, report_id):
    report = report_service.submit_progress_report(
        organization_id=g.organization_id,
        report_id=report_id,
        user_id=g.current_user.id,
    )
    return jsonify(report.to_dict()), 200


@report_bp.route("/progress-reports/<int:report_id>/approve", methods=["POST"])
@require_operation("report.approve")
def approve_progress_report(org_slug, report_id):
    report = report_service.approve_progress_report(
        organization_id=g.organization_id,
        report_id=report_id,
        user_id=g.current_user.id,
        data=json_body(),
    )
    return jsonify(report.to_dict()), 200


@report_bp.route("/progress-reports/<int:report_id>/reject", methods=["POST"])
@require_operation("report.approve")
def reject_progress_report(org_slug, report_id):
    report = report_service.reject_progress_report(
        organization_id=g.organization_id,
        report_id=report_id,
        user_id=g.current_user.id,
        data=json_body(),
    )
    return jsonify(report.to_dict()), 200


# ═══════════════════════════════════════════════════════════════
# Portfolio
# ═══════════════════════════════════════════════════════════════
@report_bp.route("/reports/portfolio", methods=["GET"])
@require_operation("report.view")
def portfolio(org_slug):
    """Query params: status (project status filter)."""
    return jsonify(report_service.portfolio_report(
        organization_id=g.organization_id,
        status=request.args.get("status"),
    )), 200


@report_bp.route("/reports/portfolio/export", methods=["GET"])
@require_operation("report.export")
def export_portfolio(org_slug):
    """Download the portfolio report.

    Query params:
        format: excel | csv (default: excel)
        status: project status filter (optional)

    Returns:
        Binary file download (xlsx or csv) with Content-Disposition.
    """
    fmt = request.args.get("format", "excel").lower()
    if fmt not in ("excel", "csv"):
        return api_error(E.VALIDATION_INVALID, "Unsupported format. Supported values: excel, csv.")

    data = report_service.portfolio_report(
        organization_id=g.organization_id,
        status=request.args.get("status"),
    )
    date_str = datetime.now(timezone.utc).strftime("%Y%m%d")
    org = g.membership.organization

    if fmt == "csv":
        content = export_portfolio_csv(data)
        filename = f"portfolio_{org.slug}_{date_str}.csv"
        mimetype = "text/csv"
    else:
        content = export_portfolio_xlsx(data, org.name)
        filename = f"portfolio_{org.slug}_{date_str}.xlsx"
        mimetype = XLSX_MIMETYPE

    logger.info(
        "Portfolio exported: format=%s projects=%d organization_id=%s",
        fmt, len(data["projects"]), g.organization_id,
    )
    return Response(
        content,
        mimetype=mimetype,
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )
