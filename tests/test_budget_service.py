"""
Budget categories: create / update / delete rules.
"""

import pytest

from agiletrack.core.exceptions import BusinessRuleError, NotFoundError, ValidationError
from agiletrack.models import db
from agiletrack.models.audit import AuditLog
from agiletrack.models.finance import Expense, ProjectBudget
from agiletrack.services import budget_service, expense_service
from conftest import make_budget, make_org, make_project


def _create(org, user, project, **overrides):
    data = {"project_id": project.id, "category": "Equipment", "allocated_amount": 5000}
    data.update(overrides)
    return budget_service.create_budget(organization_id=org.id, user_id=user.id, data=data)


# ── create ───────────────────────────────────────────────────────────────


def test_create_budget(org, admin, project):
    budget = _create(org, admin, project, description="Hardware")
    assert budget.allocated_amount == 5000
    assert budget.spent_amount == 0
    assert budget.meta["description"] == "Hardware"
    assert budget.meta["created_by"] == admin.id
    assert AuditLog.query.filter_by(action="budget.create").count() == 1


def test_duplicate_category_is_rejected(org, admin, project):
    _create(org, admin, project)
    with pytest.raises(BusinessRuleError):
        _create(org, admin, project, allocated_amount=10)
    assert ProjectBudget.query.filter_by(project_id=project.id).count() == 1


def test_same_category_in_another_project_is_fine(org, admin, project):
    _create(org, admin, project)
    _create(org, admin, make_project(org, admin))
    assert ProjectBudget.query.filter_by(category="Equipment").count() == 2


@pytest.mark.parametrize("amount", [0, -1, "lots"])
def test_create_requires_positive_allocation(org, admin, project, amount):
    with pytest.raises(ValidationError) as exc:
        _create(org, admin, project, allocated_amount=amount)
    assert "allocated_amount" in exc.value.details


def test_create_requires_project_and_category(org, admin):
    with pytest.raises(ValidationError) as exc:
        budget_service.create_budget(organization_id=org.id, user_id=admin.id, data={"allocated_amount": 10})
    assert set(exc.value.details) == {"project_id", "category"}


def test_create_for_foreign_project_is_not_found(org, admin):
    with pytest.raises(NotFoundError):
        _create(org, admin, make_project(make_org()))


# ── update ───────────────────────────────────────────────────────────────


def test_update_allocation_and_description(org, admin, project):
    budget = make_budget(project, allocated=1000, spent=200)
    updated = budget_service.update_budget(
        organization_id=org.id, budget_id=budget.id, user_id=admin.id,
        data={"allocated_amount": 800, "description": "Trimmed"},
    )
    assert updated.allocated_amount == 800
    assert updated.meta["description"] == "Trimmed"
    assert updated.meta["last_modified_by"] == admin.id
    assert "last_modified_at" in updated.meta


def test_update_below_spent_is_rejected(org, admin, project):
    budget = make_budget(project, allocated=1000, spent=600)
    with pytest.raises(BusinessRuleError) as exc:
        budget_service.update_budget(
            organization_id=org.id, budget_id=budget.id, user_id=admin.id,
            data={"allocated_amount": 500},
        )
    assert exc.value.details["spent_amount"] == 600
    db.session.expire_all()
    assert db.session.get(ProjectBudget, budget.id).allocated_amount == 1000


def test_update_down_to_exactly_spent_is_allowed(org, admin, project):
    budget = make_budget(project, allocated=1000, spent=600)
    updated = budget_service.update_budget(
        organization_id=org.id, budget_id=budget.id, user_id=admin.id,
        data={"allocated_amount": 600},
    )
    assert updated.allocated_amount == 600


# ── delete ───────────────────────────────────────────────────────────────


def test_delete_without_spend(org, admin, project):
    budget = make_budget(project, allocated=1000)
    budget_id = budget.id
    budget_service.delete_budget(organization_id=org.id, budget_id=budget_id, user_id=admin.id)
    assert db.session.get(ProjectBudget, budget_id) is None
    assert AuditLog.query.filter_by(action="budget.delete", entity_id=str(budget_id)).count() == 1


def test_delete_with_approved_spend_is_rejected(org, admin, project):
    budget = make_budget(project, "Equipment", allocated=1000)
    expense = expense_service.submit_expense(
        organization_id=org.id, user_id=admin.id,
        data={"project_id": project.id, "category": "Equipment", "amount": 50,
              "description": "Cable", "expense_date": "2024-01-10"},
    )
    expense_service.approve_expense(organization_id=org.id, expense_ref=expense.id, user_id=admin.id)

    with pytest.raises(BusinessRuleError):
        budget_service.delete_budget(organization_id=org.id, budget_id=budget.id, user_id=admin.id)
    db.session.expire_all()
    assert db.session.get(ProjectBudget, budget.id) is not None
    assert db.session.get(Expense, expense.id) is not None


def test_delete_in_other_org_is_not_found(org, admin, project):
    budget = make_budget(project)
    with pytest.raises(NotFoundError):
        budget_service.delete_budget(organization_id=make_org().id, budget_id=budget.id, user_id=admin.id)


def test_list_budgets_is_scoped(org, admin, project):
    make_budget(project, "A")
    make_budget(project, "B")
    make_budget(make_project(make_org()), "C")
    assert [b.category for b in budget_service.list_budgets(organization_id=org.id)] == ["A", "B"]
