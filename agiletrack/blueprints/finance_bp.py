"""
Finance Blueprint — budget categories and the expense ledger.

  GET|POST      /api/v1/organizations/<org_slug>/budgets
  PATCH|DELETE  /api/v1/organizations/<org_slug>/budgets/<budget_id>
  GET|POST      /api/v1/organizations/<org_slug>/expenses
  POST          /api/v1/organizations/<org_slug>/expenses/<expense_ref>/approve
  POST          /api/v1/organizations/<org_slug>/expenses/<expense_ref>/reject

``expense_ref`` is either the expense id or a legacy
``<budget_id>_<reported_at ISO>`` reference.
"""

from flask import Blueprint, g, jsonify, request

from agiletrack.blueprints import json_body
from agiletrack.core.exceptions import ValidationError
from agiletrack.middleware.permission_required import require_operation
from agiletrack.services import budget_service, expense_service

finance_bp = Blueprint("finance", __name__, url_prefix="/api/v1/organizations/<org_slug>")


def _project_id_arg():
    value = request.args.get("project_id")
    if value in (None, ""):
        return None
    try:
        return int(value)
    except ValueError as exc:
        raise ValidationError("Invalid filter", details={"project_id": "project_id must be an integer"}) from exc


# ═══════════════════════════════════════════════════════════════
# Budgets
# ═══════════════════════════════════════════════════════════════
@finance_bp.route("/budgets", methods=["GET"])
@require_operation("budget.view")
def list_budgets(org_slug):
    budgets = budget_service.list_budgets(organization_id=g.organization_id, project_id=_project_id_arg())
    return jsonify({"items": [b.to_dict() for b in budgets], "total": len(budgets)}), 200


@finance_bp.route("/budgets", methods=["POST"])
@require_operation("budget.create")
def create_budget(org_slug):
    budget = budget_service.create_budget(
        organization_id=g.organization_id,
        user_id=g.current_user.id,
        data=json_body(),
    )
    return jsonify(budget.to_dict()), 201


@finance_bp.route("/budgets/<int:budget_id>", methods=["PATCH"])
@require_operation("budget.update")
def update_budget(org_slug, budget_id):
    budget = budget_service.update_budget(
        organization_id=g.organization_id,
        budget_id=budget_id,
        user_id=g.current_user.id,
        data=json_body(),
    )
    return jsonify(budget.to_dict()), 200


@finance_bp.route("/budgets/<int:budget_id>", methods=["DELETE"])
@require_operation("budget.delete")
def delete_budget(org_slug, budget_id):
    budget_service.delete_budget(
        organization_id=g.organization_id,
        budget_id=budget_id,
        user_id=g.current_user.id,
    )
    return jsonify({"message": "Budget deleted"}), 200


# ═══════════════════════════════════════════════════════════════
# Expenses
# ═══════════════════════════════════════════════════════════════
@finance_bp.route("/expenses", methods=["GET"])
@require_operation("expense.view")
def list_expenses(org_slug):
    """Query params: project_id, status."""
    expenses = expense_service.list_expenses(
        organization_id=g.organization_id,
        project_id=_project_id_arg(),
        status=request.args.get("status"),
    )
    return jsonify({"items": [e.to_dict() for e in expenses], "total": len(expenses)}), 200


@finance_bp.route("/expenses", methods=["POST"])
@require_operation("expense.submit")
def submit_expense(org_slug):
    expense = expense_service.submit_expense(
        organization_id=g.organization_id,
        user_id=g.current_user.id,
        data=json_body(),
    )
    return jsonify(expense.to_dict()), 201


@finance_bp.route("/expenses/<expense_ref>/approve", methods=["POST"])
@require_operation("expense.approve")
def approve_expense(org_slug, expense_ref):
    expense = expense_service.approve_expense(
        organization_id=g.organization_id,
        expense_ref=expense_ref,
        user_id=g.current_user.id,
    )
    return jsonify(expense.to_dict()), 200


@finance_bp.route("/expenses/<expense_ref>/reject", methods=["POST"])
@require_operation("expense.approve")
def reject_expense(org_slug, expense_ref):
    expense = expense_service.reject_expense(
        organization_id=g.organization_id,
        expense_ref=expense_ref,
        user_id=g.current_user.id,
    )
    return jsonify(expense.to_dict()), 200
