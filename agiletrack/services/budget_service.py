"""
Budget service: per-project budget categories.

Each (project, category) pair is one ``ProjectBudget`` row. Spend only
grows through expense approval (see expense_service); this module owns
allocation changes and deletion.

Guards are enforced in the UPDATE / DELETE statement itself:
    - allocation edits carry ``WHERE spent_amount <= :new_allocation``
    - deletion carries ``WHERE spent_amount = 0``
so a concurrent approval can never slip between the check and the write.
"""

from __future__ import annotations

import logging

from sqlalchemy import delete, select, update

from agiletrack.core.exceptions import BusinessRuleError
from agiletrack.models import db
from agiletrack.models.audit import write_audit
from agiletrack.models.finance import ProjectBudget
from agiletrack.models.project import Project
from agiletrack.services.helpers.scoped_queries import get_scoped
from agiletrack.services.helpers.validation import (
    optional_int,
    optional_text,
    positive_number,
    raise_if_errors,
    require_text,
)
from agiletrack.utils.helpers import db_commit_or_error, utcnow

logger = logging.getLogger(__name__)

DUPLICATE_CATEGORY_MESSAGE = "Budget category already exists for this project"


def list_budgets(*, organization_id: int, project_id: int | None = None) -> list[ProjectBudget]:
    stmt = (
        select(ProjectBudget)
        .join(Project, ProjectBudget.project_id == Project.id)
        .where(Project.organization_id == organization_id)
        .order_by(ProjectBudget.project_id, ProjectBudget.category)
    )
    if project_id is not None:
        stmt = stmt.where(ProjectBudget.project_id == project_id)
    return list(db.session.execute(stmt).scalars())


def create_budget(*, organization_id: int, user_id: int, data: dict) -> ProjectBudget:
    """Create a budget category for a project in this organization.

    Raises:
        ValidationError: missing project_id/category or non-positive allocation.
        NotFoundError: project outside the organization.
        BusinessRuleError: category already exists for the project.
    """
    errors: dict[str, str] = {}
    project_id = optional_int(data, "project_id", errors, required=True)
    category = require_text(data, "category", errors, max_len=100)
    allocated = positive_number(data, "allocated_amount", errors, places=2)
    description = optional_text(data, "description", errors, max_len=2000)
    raise_if_errors(errors)

    project = get_scoped(Project, project_id, organization_id=organization_id)

    duplicate = BusinessRuleError(DUPLICATE_CATEGORY_MESSAGE, details={"category": category})
    exists = db.session.execute(
        select(ProjectBudget.id).where(
            ProjectBudget.project_id == project.id,
            ProjectBudget.category == category,
        )
    ).first()
    if exists:
        raise duplicate

    budget = ProjectBudget(
        project_id=project.id,
        category=category,
        allocated_amount=allocated,
        spent_amount=0,
        approved_amount=0,
        meta={"description": description, "created_by": user_id},
    )
    db.session.add(budget)
    db.session.flush()
    write_audit(
        organization_id=organization_id,
        entity_type="budget",
        entity_id=budget.id,
        action="budget.create",
        actor_user_id=user_id,
        diff={"project_id": project.id, "category": category, "allocated_amount": allocated},
    )
    db_commit_or_error(integrity_error=duplicate)

    logger.info(
        "Budget created: id=%s project=%s category=%s organization_id=%s",
        budget.id, project.id, category, organization_id,
    )
    return budget


def update_budget(*, organization_id: int, budget_id: int, user_id: int, data: dict) -> ProjectBudget:
    """Change a category's allocation and/or description.

    Raises:
        ValidationError: allocation not a positive number.
        NotFoundError: budget outside the organization.
        BusinessRuleError: new allocation below the amount already spent.
    """
    budget = get_scoped(ProjectBudget, budget_id, organization_id=organization_id)

    errors: dict[str, str] = {}
    allocated = None
    if "allocated_amount" in data:
        allocated = positive_number(data, "allocated_amount", errors, places=2)
    description = optional_text(data, "description", errors, max_len=2000)
    raise_if_errors(errors)

    old_allocated = budget.allocated_amount
    meta = dict(budget.meta or {})
    if "description" in data:
        meta["description"] = description
    meta["last_modified_by"] = user_id
    meta["last_modified_at"] = utcnow().isoformat()

    if allocated is not None:
        result = db.session.execute(
            update(ProjectBudget)
            .where(
                ProjectBudget.id == budget.id,
                ProjectBudget.spent_amount <= allocated,
            )
            .values({ProjectBudget.allocated_amount: allocated, ProjectBudget.meta: meta})
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            db.session.rollback()
            spent = db.session.scalar(select(ProjectBudget.spent_amount).where(ProjectBudget.id == budget_id))
            raise BusinessRuleError(
                "Allocated amount cannot be less than spent amount",
                details={"spent_amount": spent, "allocated_amount": allocated},
            )
    else:
        budget.meta = meta

    write_audit(
        organization_id=organization_id,
        entity_type="budget",
        entity_id=budget.id,
        action="budget.update",
        actor_user_id=user_id,
        diff={"allocated_amount": {"old": old_allocated, "new": allocated if allocated is not None else old_allocated}},
    )
    db_commit_or_error()
    db.session.refresh(budget)

    logger.info("Budget updated: id=%s organization_id=%s", budget.id, organization_id)
    return budget


def delete_budget(*, organization_id: int, budget_id: int, user_id: int) -> None:
    """Delete a category that has never had an approved expense.

    Raises:
        NotFoundError: budget outside the organization.
        BusinessRuleError: the category has recorded spend.
    """
    budget = get_scoped(ProjectBudget, budget_id, organization_id=organization_id)
    snapshot = {
        "project_id": budget.project_id,
        "category": budget.category,
        "allocated_amount": budget.allocated_amount,
    }

    result = db.session.execute(
        delete(ProjectBudget)
        .where(ProjectBudget.id == budget.id, ProjectBudget.spent_amount == 0)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.session.rollback()
        raise BusinessRuleError("Cannot delete budget category with recorded expenses")

    db.session.expunge(budget)
    write_audit(
        organization_id=organization_id,
        entity_type="budget",
        entity_id=budget_id,
        action="budget.delete",
        actor_user_id=user_id,
        diff=snapshot,
    )
    db_commit_or_error()
    logger.info("Budget deleted: id=%s organization_id=%s", budget_id, organization_id)
