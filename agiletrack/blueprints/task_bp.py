"""
Task Blueprint — project tasks, org-level task access, comments and analytics.

  GET|POST          /api/v1/organizations/<org_slug>/projects/<id>/tasks
  GET               /api/v1/organizations/<org_slug>/tasks/report
  GET|PATCH|DELETE  /api/v1/organizations/<org_slug>/tasks/<task_id>
  GET|POST          /api/v1/organizations/<org_slug>/tasks/<task_id>/comments
"""

from flask import Blueprint, g, jsonify, request

from agiletrack.blueprints import json_body, paginate_query
from agiletrack.middleware.permission_required import require_operation
from agiletrack.services import dashboard_service, task_service

task_bp = Blueprint("tasks", __name__, url_prefix="/api/v1/organizations/<org_slug>")


# ═══════════════════════════════════════════════════════════════
# Project tasks
# ═══════════════════════════════════════════════════════════════
@task_bp.route("/projects/<int:project_id>/tasks", methods=["GET"])
@require_operation("task.view")
def list_tasks(org_slug, project_id):
    """
    Query params: status, priority, assignee_id, phase_id, top_level,
    limit, offset.
    """
    filters = {
        "status": request.args.get("status"),
        "priority": request.args.get("priority"),
        "assignee_id": request.args.get("assignee_id"),
        "phase_id": request.args.get("phase_id"),
        "top_level": request.args.get("top_level", "").lower() in ("1", "true", "yes"),
    }
    query = task_service.task_query(organization_id=g.organization_id, project_id=project_id, filters=filters)
    items, total = paginate_query(query)
    return jsonify({"items": [t.to_dict() for t in items], "total": total}), 200


@task_bp.route("/projects/<int:project_id>/tasks", methods=["POST"])
@require_operation("task.create")
def create_task(org_slug, project_id):
    task = task_service.create_task(
        organization_id=g.organization_id,
        project_id=project_id,
        user_id=g.current_user.id,
        data=json_body(),
    )
    return jsonify(task.to_dict()), 201


# ═══════════════════════════════════════════════════════════════
# Analytics
# ═══════════════════════════════════════════════════════════════
@task_bp.route("/tasks/report", methods=["GET"])
@require_operation("task.view")
def task_report(org_slug):
    """Query params: project_id, assignee_id, start_date, end_date."""
    filters = {
        key: request.args.get(key)
        for key in ("project_id", "assignee_id", "start_date", "end_date")
    }
    return jsonify(dashboard_service.get_task_report(organization_id=g.organization_id, filters=filters)), 200


# ═══════════════════════════════════════════════════════════════
# Single task
# ═══════════════════════════════════════════════════════════════
@task_bp.route("/tasks/<int:task_id>", methods=["GET"])
@require_operation("task.view")
def get_task(org_slug, task_id):
    task = task_service.get_task(organization_id=g.organization_id, task_id=task_id)
    return jsonify(task.to_dict(include_subtasks=True)), 200


@task_bp.route("/tasks/<int:task_id>", methods=["PATCH"])
@require_operation("task.view")
def update_task(org_slug, task_id):
    # creator/assignee/manager check happens in the service
    task = task_service.update_task(
        organization_id=g.organization_id,
        task_id=task_id,
        membership=g.membership,
        data=json_body(),
    )
    return jsonify(task.to_dict()), 200


@task_bp.route("/tasks/<int:task_id>", methods=["DELETE"])
@require_operation("task.delete")
def delete_task(org_slug, task_id):
    task_service.delete_task(organization_id=g.organization_id, task_id=task_id)
    return jsonify({"message": "Task deleted"}), 200


# ═══════════════════════════════════════════════════════════════
# Comments
# ═══════════════════════════════════════════════════════════════
@task_bp.route("/tasks/<int:task_id>/comments", methods=["GET"])
@require_operation("task.view")
def list_comments(org_slug, task_id):
    comments = task_service.list_comments(organization_id=g.organization_id, task_id=task_id)
    return jsonify({"items": [c.to_dict() for c in comments], "total": len(comments)}), 200


@task_bp.route("/tasks/<int:task_id>/comments", methods=["POST"])
@require_operation("task.comment")
def add_comment(org_slug, task_id):
    comment = task_service.add_comment(
        organization_id=g.organization_id,
        task_id=task_id,
        user_id=g.current_user.id,
        data=json_body(),
    )
    return jsonify(comment.to_dict()), 201
