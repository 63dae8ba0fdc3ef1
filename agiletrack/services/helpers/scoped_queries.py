"""
Organization-scoped query helpers.

Every get-by-id in the platform MUST use these helpers instead of
Model.query.get(pk) or db.session.get(Model, pk). Direct .get() calls
bypass tenant isolation.

Rows that carry no ``organization_id`` column are scoped through their
parent chain (Task → Project, Expense → ProjectBudget → Project), so a
row from another organization is indistinguishable from a missing one.

Usage:
    project = get_scoped(Project, project_id, organization_id=org_id)
    task = get_scoped(Task, task_id, organization_id=org_id)
    phase = get_scoped(ProjectPhase, phase_id, project_id=project.id)
    budget = get_scoped_or_none(ProjectBudget, budget_id, organization_id=org_id)
"""

import logging

from sqlalchemy import select

from agiletrack.core.exceptions import NotFoundError
from agiletrack.models import db
from agiletrack.models.finance import Expense, ProjectBudget
from agiletrack.models.project import Project
from agiletrack.models.task import Task, TaskComment

logger = logging.getLogger(__name__)

# Human-readable names used in 404 messages
_RESOURCE_NAMES = {
    "ProjectBudget": "Budget",
    "ProjectPhase": "Phase",
    "ProgressReport": "Progress report",
    "TaskComment": "Comment",
}


def resource_name(model) -> str:
    return _RESOURCE_NAMES.get(model.__name__, model.__name__)


def scope_to_organization(stmt, model, organization_id: int):
    """Add the joins/filters that pin *model* rows to one organization."""
    if hasattr(model, "organization_id"):
        return stmt.where(model.organization_id == organization_id)
    if model is Expense:
        return (
            stmt.join(ProjectBudget, Expense.budget_id == ProjectBudget.id)
            .join(Project, ProjectBudget.project_id == Project.id)
            .where(Project.organization_id == organization_id)
        )
    if model is TaskComment:
        return (
            stmt.join(Task, TaskComment.task_id == Task.id)
            .join(Project, Task.project_id == Project.id)
            .where(Project.organization_id == organization_id)
        )
    if hasattr(model, "project_id"):
        return (
            stmt.join(Project, model.project_id == Project.id)
            .where(Project.organization_id == organization_id)
        )
    raise ValueError(
        f"{model.__name__} has no path to an organization. "
        "Refusing to perform an unscoped lookup."
    )


def get_scoped(
    model,
    pk,
    *,
    organization_id: int | None = None,
    project_id: int | None = None,
):
    """Fetch a single entity by PK with a mandatory scope filter.

    Args:
        model: SQLAlchemy model class with an ``id`` PK column.
        pk: Primary key value to look up.
        organization_id: Scope by owning organization (directly or through
            the parent chain).
        project_id: Scope by ``project_id`` column.

    Returns:
        The model instance if found within the given scope.

    Raises:
        ValueError: If no scope is provided, or the model cannot be scoped
                    the way the caller asked.
        NotFoundError: If the entity does not exist OR belongs to a different
                       scope. The two cases are intentionally indistinguishable.
    """
    if organization_id is None and project_id is None:
        raise ValueError(
            f"{model.__name__} id={pk} requires organization_id or project_id. "
            "Unscoped lookups are forbidden."
        )

    stmt = select(model).where(model.id == pk)
    if organization_id is not None:
        stmt = scope_to_organization(stmt, model, organization_id)
    if project_id is not None:
        if not hasattr(model, "project_id"):
            raise ValueError(f"{model.__name__} has no project_id column")
        stmt = stmt.where(model.project_id == project_id)

    result = db.session.execute(stmt).scalar_one_or_none()

    if result is None:
        logger.debug(
            "get_scoped: %s id=%s not found (organization_id=%s project_id=%s)",
            model.__name__, pk, organization_id, project_id,
        )
        raise NotFoundError(resource=resource_name(model), resource_id=pk, organization_id=organization_id)

    return result


def get_scoped_or_none(
    model,
    pk,
    *,
    organization_id: int | None = None,
    project_id: int | None = None,
):
    """Same as get_scoped but returns None instead of raising NotFoundError."""
    try:
        return get_scoped(model, pk, organization_id=organization_id, project_id=project_id)
    except NotFoundError:
        return None
