"""
Task service: task CRUD, subtasks and comments.

Tasks belong to one project and may sit in one of that project's phases.
Subtasks nest exactly one level deep: a task whose parent already has a
parent is rejected. Edits go through ``authorize_task_edit`` (creator,
assignee, or a manager role); create/delete/comment are role-gated at
the route.
"""

from __future__ import annotations

import logging

from agiletrack.core.exceptions import BusinessRuleError, ValidationError
from agiletrack.models import db
from agiletrack.models.organization import OrganizationMember
from agiletrack.models.project import PRIORITIES, Project, ProjectPhase
from agiletrack.models.task import TASK_STATUSES, Task, TaskComment
from agiletrack.services.helpers.scoped_queries import get_scoped, get_scoped_or_none
from agiletrack.services.helpers.validation import (
    choice,
    optional_datetime,
    optional_int,
    optional_object,
    optional_text,
    positive_number,
    raise_if_errors,
    require_text,
)
from agiletrack.services.permission_service import authorize_task_edit
from agiletrack.utils.helpers import db_commit_or_error, utcnow

logger = logging.getLogger(__name__)

DONE = "DONE"


def _validate_links(
    *,
    organization_id: int,
    project_id: int,
    data: dict,
    errors: dict[str, str],
    task_id: int | None = None,
) -> dict:
    """Check phase/parent/assignee references and return the resolved ids."""
    resolved: dict = {}

    if "phase_id" in data:
        phase_id = optional_int(data, "phase_id", errors)
        if phase_id is not None and get_scoped_or_none(ProjectPhase, phase_id, project_id=project_id) is None:
            errors["phase_id"] = "Phase not found in this project"
        resolved["phase_id"] = phase_id

    if "parent_id" in data:
        parent_id = optional_int(data, "parent_id", errors)
        if parent_id is not None:
            parent = get_scoped_or_none(Task, parent_id, project_id=project_id)
            if parent is None:
                errors["parent_id"] = "Parent task not found in this project"
            elif task_id is not None and parent.id == task_id:
                errors["parent_id"] = "A task cannot be its own parent"
            elif parent.parent_id is not None:
                errors["parent_id"] = "Subtasks cannot have subtasks"
        resolved["parent_id"] = parent_id

    if "assignee_id" in data:
        assignee_id = optional_int(data, "assignee_id", errors)
        if assignee_id is not None:
            is_member = OrganizationMember.query.filter_by(
                organization_id=organization_id, user_id=assignee_id
            ).first()
            if is_member is None:
                errors["assignee_id"] = "Assignee is not a member of this organization"
        resolved["assignee_id"] = assignee_id

    return resolved


# ═══════════════════════════════════════════════════════════════
# Queries
# ═══════════════════════════════════════════════════════════════
def task_query(*, organization_id: int, project_id: int, filters: dict | None = None):
    """Filtered task query for one project (newest first), ready for pagination."""
    project = get_scoped(Project, project_id, organization_id=organization_id)
    filters = filters or {}
    q = Task.query.filter(Task.project_id == project.id)
    if filters.get("status"):
        q = q.filter(Task.status == filters["status"].upper())
    if filters.get("priority"):
        q = q.filter(Task.priority == filters["priority"].upper())
    for key in ("assignee_id", "phase_id"):
        value = filters.get(key)
        if value in (None, ""):
            continue
        try:
            q = q.filter(getattr(Task, key) == int(value))
        except (TypeError, ValueError) as exc:
            raise ValidationError("Invalid filter", details={key: f"{key} must be an integer"}) from exc
    if filters.get("top_level"):
        q = q.filter(Task.parent_id.is_(None))
    return q.order_by(Task.created_at.desc(), Task.id.desc())


def get_task(*, organization_id: int, task_id: int) -> Task:
    return get_scoped(Task, task_id, organization_id=organization_id)


# ═══════════════════════════════════════════════════════════════
# Mutations
# ═══════════════════════════════════════════════════════════════
def create_task(*, organization_id: int, project_id: int, user_id: int, data: dict) -> Task:
    """Create a task (or subtask) in a project.

    Raises:
        ValidationError: bad title/enum/hours/dates, or a phase, parent or
            assignee that does not belong to this project/organization.
        NotFoundError: project outside the organization.
    """
    project = get_scoped(Project, project_id, organization_id=organization_id)

    errors: dict[str, str] = {}
    title = require_text(data, "title", errors, max_len=200)
    description = optional_text(data, "description", errors)
    status = choice(data, "status", TASK_STATUSES, errors, default="TODO")
    priority = choice(data, "priority", PRIORITIES, errors, default="MEDIUM")
    estimated = positive_number(data, "estimated_hours", errors, required=False, allow_zero=True)
    actual = positive_number(data, "actual_hours", errors, required=False, allow_zero=True)
    due_date = optional_datetime(data, "due_date", errors)
    meta = optional_object(data, "metadata", errors) or {}
    links = _validate_links(organization_id=organization_id, project_id=project.id, data=data, errors=errors)
    raise_if_errors(errors)

    if data.get("wbs_code"):
        meta = {**meta, "wbs_code": str(data["wbs_code"])}

    task = Task(
        project_id=project.id,
        phase_id=links.get("phase_id"),
        parent_id=links.get("parent_id"),
        assignee_id=links.get("assignee_id"),
        creator_id=user_id,
        title=title,
        description=description,
        status=status,
        priority=priority,
        estimated_hours=estimated,
        actual_hours=actual,
        due_date=due_date,
        completed_at=utcnow() if status == DONE else None,
        meta=meta,
    )
    db.session.add(task)
    db_commit_or_error()
    logger.info("Task created: id=%s project=%s organization_id=%s", task.id, project.id, organization_id)
    return task


def update_task(*, organization_id: int, task_id: int, membership, data: dict) -> Task:
    """Partial update by the creator, the assignee or a manager.

    Moving to DONE stamps ``completed_at``; leaving DONE clears it.

    Raises:
        AccessDeniedError: caller is neither creator, assignee nor manager.
        ValidationError: bad field values or cross-project references.
        BusinessRuleError: giving subtasks to a task that becomes a subtask.
    """
    task = get_task(organization_id=organization_id, task_id=task_id)
    authorize_task_edit(membership, task)

    errors: dict[str, str] = {}
    changes: dict = {}
    if "title" in data:
        changes["title"] = require_text(data, "title", errors, max_len=200)
    if "description" in data:
        changes["description"] = optional_text(data, "description", errors)
    if "status" in data:
        changes["status"] = choice(data, "status", TASK_STATUSES, errors, required=True)
    if "priority" in data:
        changes["priority"] = choice(data, "priority", PRIORITIES, errors, required=True)
    if "estimated_hours" in data:
        changes["estimated_hours"] = positive_number(data, "estimated_hours", errors, required=False, allow_zero=True)
    if "actual_hours" in data:
        changes["actual_hours"] = positive_number(data, "actual_hours", errors, required=False, allow_zero=True)
    if "due_date" in data:
        changes["due_date"] = optional_datetime(data, "due_date", errors)
    meta = optional_object(data, "metadata", errors)
    changes.update(_validate_links(
        organization_id=organization_id, project_id=task.project_id, data=data, errors=errors, task_id=task.id,
    ))
    raise_if_errors(errors)

    if changes.get("parent_id") is not None and task.subtasks:
        raise BusinessRuleError("A task with subtasks cannot become a subtask")

    old_status = task.status
    for key, value in changes.items():
        setattr(task, key, value)
    if meta is not None:
        task.meta = {**(task.meta or {}), **meta}
    if task.status == DONE and old_status != DONE:
        task.completed_at = utcnow()
    elif task.status != DONE:
        task.completed_at = None

    db_commit_or_error()
    logger.info(
        "Task updated: id=%s fields=%s organization_id=%s",
        task.id, sorted(changes), organization_id,
    )
    return task


def delete_task(*, organization_id: int, task_id: int) -> None:
    """Delete a task; its subtasks and comments cascade."""
    task = get_task(organization_id=organization_id, task_id=task_id)
    db.session.delete(task)
    db_commit_or_error()
    logger.info("Task deleted: id=%s organization_id=%s", task_id, organization_id)


# ═══════════════════════════════════════════════════════════════
# Comments
# ═══════════════════════════════════════════════════════════════
def list_comments(*, organization_id: int, task_id: int) -> list[TaskComment]:
    task = get_task(organization_id=organization_id, task_id=task_id)
    return task.comments.all()


def add_comment(*, organization_id: int, task_id: int, user_id: int, data: dict) -> TaskComment:
    task = get_task(organization_id=organization_id, task_id=task_id)
    errors: dict[str, str] = {}
    content = require_text(data, "content", errors, max_len=10000)
    if "content" in errors and not data.get("content"):
        errors["content"] = "Comment cannot be empty"
    raise_if_errors(errors)

    comment = TaskComment(task_id=task.id, author_id=user_id, content=content)
    db.session.add(comment)
    db_commit_or_error()
    logger.info("Comment added: task=%s organization_id=%s", task.id, organization_id)
    return comment
