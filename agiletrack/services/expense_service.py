"""
Expense service: submission, listing and the approve / reject decision.

An expense is created PENDING against the (project, category) budget row,
which is created on the fly with zero allocation when missing. Only
approval moves money: the expense status flip and the budget's
``spent_amount`` increment are two statements in one transaction, and
the status flip carries ``WHERE status = 'PENDING'`` so exactly one
decision can ever win.

References:
    New expenses are addressed by their UUID. Entries carried over from
    the old metadata ledger are also reachable by their composite
    reference ``"<budget_id>_<reported_at ISO-8601>"``.
"""

from __future__ import annotations

import logging
import uuid

from sqlalchemy import select, update

from agiletrack.core.exceptions import BusinessRuleError, ConflictError, NotFoundError, ValidationError
from agiletrack.models import db
from agiletrack.models.audit import write_audit
from agiletrack.models.finance import (
    DEFAULT_EXPENSE_CATEGORY,
    EXPENSE_APPROVED,
    EXPENSE_PENDING,
    EXPENSE_REJECTED,
    EXPENSE_STATUSES,
    Expense,
    ProjectBudget,
)
from agiletrack.models.project import Project
from agiletrack.services.helpers.scoped_queries import get_scoped, scope_to_organization
from agiletrack.services.helpers.validation import (
    optional_date,
    optional_int,
    optional_text,
    positive_number,
    raise_if_errors,
    require_text,
)
from agiletrack.utils.helpers import as_utc, db_commit_or_error, parse_datetime_input, utcnow

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════
# Submission & listing
# ═══════════════════════════════════════════════════════════════
def _budget_for_category(project_id: int, category: str) -> ProjectBudget:
    budget = db.session.execute(
        select(ProjectBudget).where(
            ProjectBudget.project_id == project_id,
            ProjectBudget.category == category,
        )
    ).scalar_one_or_none()
    if budget is not None:
        return budget
    budget = ProjectBudget(
        project_id=project_id,
        category=category,
        allocated_amount=0,
        spent_amount=0,
        approved_amount=0,
        meta={"created_by_expense": True},
    )
    db.session.add(budget)
    db.session.flush()
    logger.info("Budget category auto-created: project=%s category=%s", project_id, category)
    return budget


def submit_expense(*, organization_id: int, user_id: int, data: dict) -> Expense:
    """Record a PENDING expense. ``spent_amount`` is not touched.

    Raises:
        ValidationError: bad project_id, amount, description or expense_date.
        NotFoundError: project outside the organization.
    """
    errors: dict[str, str] = {}
    project_id = optional_int(data, "project_id", errors, required=True)
    category = optional_text(data, "category", errors, max_len=100, default=DEFAULT_EXPENSE_CATEGORY)
    amount = positive_number(data, "amount", errors, places=2)
    description = require_text(data, "description", errors)
    expense_date = optional_date(data, "expense_date", errors, required=True)
    raise_if_errors(errors)

    project = get_scoped(Project, project_id, organization_id=organization_id)
    budget = _budget_for_category(project.id, category)

    expense = Expense(
        budget_id=budget.id,
        amount=amount,
        description=description,
        expense_date=expense_date,
        status=EXPENSE_PENDING,
        reported_by_id=user_id,
        reported_at=utcnow(),
    )
    db.session.add(expense)
    db_commit_or_error(
        integrity_error=BusinessRuleError(
            "Budget category was created concurrently, please retry",
            details={"category": category},
        )
    )

    logger.info(
        "Expense submitted: id=%s budget=%s amount=%s organization_id=%s",
        expense.id, budget.id, amount, organization_id,
    )
    return expense


def list_expenses(
    *,
    organization_id: int,
    project_id: int | None = None,
    status: str | None = None,
) -> list[Expense]:
    """All expenses in the organization, newest first."""
    stmt = scope_to_organization(select(Expense), Expense, organization_id)
    if project_id is not None:
        stmt = stmt.where(ProjectBudget.project_id == project_id)
    if status:
        status = status.upper()
        if status not in EXPENSE_STATUSES:
            raise ValidationError("Invalid input", details={"status": f"Must be one of: {', '.join(EXPENSE_STATUSES)}"})
        stmt = stmt.where(Expense.status == status)
    stmt = stmt.order_by(Expense.reported_at.desc())
    return list(db.session.execute(stmt).scalars())


# ═══════════════════════════════════════════════════════════════
# Reference resolution
# ═══════════════════════════════════════════════════════════════
def parse_expense_ref(expense_ref: str):
    """Split a composite reference into ``(budget_id, reported_at)``.

    Returns None for a plain UUID. Raises ValidationError when the
    reference is neither a UUID nor a usable composite.
    """
    if "_" not in expense_ref:
        try:
            uuid.UUID(expense_ref)
        except ValueError as exc:
            raise ValidationError(
                "Malformed expense reference", details={"expense_id": "expected a UUID or <budget_id>_<timestamp>"}
            ) from exc
        return None
    budget_part, _, timestamp_part = expense_ref.partition("_")
    if not budget_part or not timestamp_part:
        raise ValidationError("Malformed expense reference", details={"expense_id": expense_ref})
    try:
        budget_id = int(budget_part)
    except ValueError as exc:
        raise ValidationError(
            "Malformed expense reference", details={"expense_id": "budget id must be an integer"}
        ) from exc
    try:
        reported_at = parse_datetime_input(timestamp_part)
    except ValueError as exc:
        raise ValidationError(
            "Malformed expense reference", details={"expense_id": "invalid timestamp"}
        ) from exc
    return budget_id, reported_at


def resolve_expense(*, organization_id: int, expense_ref: str) -> Expense:
    """Find an expense by UUID or composite reference within the organization.

    Raises:
        ValidationError: malformed composite reference.
        NotFoundError: no such expense in this organization.
    """
    parsed = parse_expense_ref(expense_ref)
    if parsed is None:
        return get_scoped(Expense, expense_ref, organization_id=organization_id)

    budget_id, reported_at = parsed
    budget = get_scoped(ProjectBudget, budget_id, organization_id=organization_id)

    expense = db.session.execute(
        select(Expense).where(Expense.legacy_ref == expense_ref, Expense.budget_id == budget.id)
    ).scalar_one_or_none()
    if expense is not None:
        return expense

    for candidate in budget.expenses:
        if as_utc(candidate.reported_at) == reported_at:
            return candidate
    raise NotFoundError("Expense", expense_ref, organization_id)


# ═══════════════════════════════════════════════════════════════
# Decisions
# ═══════════════════════════════════════════════════════════════
def _decide(*, organization_id: int, expense_ref: str, user_id: int, new_status: str) -> Expense:
    expense = resolve_expense(organization_id=organization_id, expense_ref=expense_ref)
    expense_id, budget_id, amount = expense.id, expense.budget_id, expense.amount

    result = db.session.execute(
        update(Expense)
        .where(Expense.id == expense_id, Expense.status == EXPENSE_PENDING)
        .values(status=new_status, approved_by_id=user_id, approved_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.session.rollback()
        current = db.session.scalar(select(Expense.status).where(Expense.id == expense_id))
        logger.warning(
            "Expense %s already processed (status=%s); %s ignored organization_id=%s",
            expense_id, current, new_status, organization_id,
        )
        raise ConflictError("Expense", "status", current)

    if new_status == EXPENSE_APPROVED:
        db.session.execute(
            update(ProjectBudget)
            .where(ProjectBudget.id == budget_id)
            .values(spent_amount=ProjectBudget.spent_amount + amount)
            .execution_options(synchronize_session=False)
        )

    write_audit(
        organization_id=organization_id,
        entity_type="expense",
        entity_id=expense_id,
        action="expense.approve" if new_status == EXPENSE_APPROVED else "expense.reject",
        actor_user_id=user_id,
        diff={"status": {"old": EXPENSE_PENDING, "new": new_status}, "amount": amount, "budget_id": budget_id},
    )
    db_commit_or_error()

    logger.info(
        "Expense %s: id=%s amount=%s budget=%s organization_id=%s",
        new_status.lower(), expense_id, amount, budget_id, organization_id,
    )
    db.session.refresh(expense)
    return expense


def approve_expense(*, organization_id: int, expense_ref: str, user_id: int) -> Expense:
    """PENDING → APPROVED and add the amount to the budget's spend.

    Raises:
        ValidationError: malformed reference.
        NotFoundError: expense outside the organization.
        ConflictError: the expense was already approved or rejected.
    """
    return _decide(
        organization_id=organization_id, expense_ref=expense_ref,
        user_id=user_id, new_status=EXPENSE_APPROVED,
    )


def reject_expense(*, organization_id: int, expense_ref: str, user_id: int) -> Expense:
    """PENDING → REJECTED. Spend is never touched."""
    return _decide(
        organization_id=organization_id, expense_ref=expense_ref,
        user_id=user_id, new_status=EXPENSE_REJECTED,
    )
