"""
Project service: project lifecycle, phases and the per-project metrics view.

Creation follows the project wizard:
    - template phases are seeded in template order (status PLANNED)
    - each charter deliverable becomes a TODO task flagged ``is_deliverable``
    - a ``TOTAL`` budget row is opened when an estimated budget is given
All rows are written in one commit.
"""

from __future__ import annotations

import logging

from sqlalchemy import case, func, or_, select

from agiletrack.models import db
from agiletrack.models.audit import write_audit
from agiletrack.models.finance import TOTAL_CATEGORY, ProjectBudget
from agiletrack.models.project import (
    PHASE_STATUSES,
    PRIORITIES,
    PROJECT_METHODOLOGIES,
    PROJECT_STATUSES,
    PROJECT_TEMPLATES,
    TEMPLATE_PHASES,
    Project,
    ProjectPhase,
)
from agiletrack.models.reporting import ProgressReport
from agiletrack.models.task import Task
from agiletrack.services import metrics_service
from agiletrack.services.helpers.scoped_queries import get_scoped
from agiletrack.services.helpers.validation import (
    choice,
    optional_date,
    optional_int,
    optional_object,
    optional_text,
    positive_number,
    raise_if_errors,
    require_text,
)
from agiletrack.utils.helpers import as_utc, db_commit_or_error

logger = logging.getLogger(__name__)

WIZARD_VERSION = "1.0"


def template_phases(template: str | None) -> list[str]:
    """Phase names for a template; unknown templates fall back to CUSTOM."""
    return list(TEMPLATE_PHASES.get((template or "").upper(), TEMPLATE_PHASES["CUSTOM"]))


def _check_dates(start, end, errors: dict[str, str]) -> None:
    if start and end and end < start:
        errors["end_date"] = "end_date must be on or after start_date"


def _currency(data: dict, errors: dict[str, str], default: str | None = "USD") -> str | None:
    value = optional_text(data, "currency", errors, default=default)
    if value is not None and len(value) != 3:
        errors["currency"] = "currency must be a 3-letter code"
        return None
    return value.upper() if value else value


def _deliverables(charter: dict | None, errors: dict[str, str]) -> list[dict]:
    if not charter:
        return []
    items = charter.get("deliverables") or []
    if not isinstance(items, list):
        errors["charter.deliverables"] = "deliverables must be a list"
        return []
    cleaned = []
    for i, item in enumerate(items):
        if not isinstance(item, dict):
            errors[f"charter.deliverables[{i}]"] = "deliverable must be an object"
            continue
        item_errors: dict[str, str] = {}
        name = require_text(item, "name", item_errors, max_len=200)
        due = optional_date(item, "due_date", item_errors)
        for key, msg in item_errors.items():
            errors[f"charter.deliverables[{i}].{key}"] = msg
        if name:
            cleaned.append({
                "name": name,
                "description": item.get("description"),
                "due_date": as_utc(due),
                "criteria": item.get("criteria") or item.get("acceptance_criteria"),
            })
    return cleaned


# ═══════════════════════════════════════════════════════════════
# Projects
# ═══════════════════════════════════════════════════════════════
def create_project(*, organization_id: int, user_id: int, data: dict) -> Project:
    """Create a project with its template phases, deliverable tasks and TOTAL budget.

    Raises:
        ValidationError: name under 3 characters, bad enum, bad currency,
            negative budget, or end date before start date.
    """
    errors: dict[str, str] = {}
    name = require_text(data, "name", errors, min_len=3, max_len=200)
    description = optional_text(data, "description", errors)
    methodology = choice(data, "methodology", PROJECT_METHODOLOGIES, errors, default="AGILE")
    priority = choice(data, "priority", PRIORITIES, errors, default="MEDIUM")
    template = choice(data, "template", PROJECT_TEMPLATES, errors, default="CUSTOM")
    start_date = optional_date(data, "start_date", errors)
    end_date = optional_date(data, "end_date", errors)
    budget = positive_number(data, "budget", errors, required=False, allow_zero=True)
    currency = _currency(data, errors)
    charter = optional_object(data, "charter", errors)
    extra_meta = optional_object(data, "metadata", errors) or {}
    deliverables = _deliverables(charter, errors)
    tags = data.get("tags") or []
    if not isinstance(tags, list):
        errors["tags"] = "tags must be a list"
    _check_dates(start_date, end_date, errors)
    raise_if_errors(errors)

    meta = {
        **extra_meta,
        "charter": charter or {},
        "stakeholders": data.get("stakeholders") or [],
        "risks": data.get("risks") or [],
        "tags": tags,
        "created_by": user_id,
        "wizard_version": WIZARD_VERSION,
    }

    project = Project(
        organization_id=organization_id,
        name=name,
        description=description,
        methodology=methodology,
        status="PLANNING",
        priority=priority,
        template=template,
        start_date=start_date,
        end_date=end_date,
        budget=budget,
        currency=currency,
        meta=meta,
        settings={},
        created_by_id=user_id,
    )
    db.session.add(project)
    db.session.flush()

    phase_names = template_phases(template)
    for index, phase_name in enumerate(phase_names):
        db.session.add(ProjectPhase(
            project_id=project.id,
            name=phase_name,
            description=f"{phase_name} phase",
            order=index,
            status="PLANNED",
        ))

    for item in deliverables:
        db.session.add(Task(
            project_id=project.id,
            creator_id=user_id,
            title=item["name"],
            description=item["description"],
            status="TODO",
            priority="MEDIUM",
            estimated_hours=0,
            actual_hours=0,
            due_date=item["due_date"],
            meta={
                "is_deliverable": True,
                "acceptance_criteria": item["criteria"],
                "source": "wizard",
            },
        ))

    if budget and budget > 0:
        db.session.add(ProjectBudget(
            project_id=project.id,
            category=TOTAL_CATEGORY,
            allocated_amount=budget,
            spent_amount=0,
            approved_amount=0,
            meta={"created_by": user_id},
        ))

    db_commit_or_error()
    logger.info(
        "Project created: id=%s template=%s phases=%d deliverables=%d organization_id=%s",
        project.id, template, len(phase_names), len(deliverables), organization_id,
    )
    return project


def list_projects(
    *,
    organization_id: int,
    status: str | None = None,
    priority: str | None = None,
    search: str | None = None,
) -> list[dict]:
    """Projects with headline task counts, newest first."""
    stmt = select(Project).where(Project.organization_id == organization_id)
    if status:
        stmt = stmt.where(Project.status == status.upper())
    if priority:
        stmt = stmt.where(Project.priority == priority.upper())
    if search:
        like = f"%{search.strip()}%"
        stmt = stmt.where(or_(Project.name.ilike(like), Project.description.ilike(like)))
    projects = list(db.session.execute(stmt.order_by(Project.created_at.desc())).scalars())
    if not projects:
        return []

    counts = {
        row.project_id: (row.total, row.done or 0)
        for row in db.session.execute(
            select(
                Task.project_id,
                func.count(Task.id).label("total"),
                func.sum(case((Task.status == metrics_service.DONE, 1), else_=0)).label("done"),
            )
            .where(Task.project_id.in_([p.id for p in projects]))
            .group_by(Task.project_id)
        )
    }
    result = []
    for p in projects:
        total, done = counts.get(p.id, (0, 0))
        d = p.to_dict()
        d["task_count"] = total
        d["completed_tasks"] = done
        d["progress"] = round(done / total * 100, 1) if total else 0.0
        result.append(d)
    return result


def get_project(*, organization_id: int, project_id: int) -> Project:
    return get_scoped(Project, project_id, organization_id=organization_id)


def get_project_detail(*, organization_id: int, project_id: int) -> dict:
    """Project with phases, recent tasks, budgets and recent progress reports."""
    project = get_project(organization_id=organization_id, project_id=project_id)
    d = project.to_dict()
    d["phases"] = [ph.to_dict() for ph in project.phases]
    d["recent_tasks"] = [
        t.to_dict() for t in project.tasks.order_by(Task.created_at.desc()).limit(10)
    ]
    d["budgets"] = [b.to_dict() for b in project.budgets.order_by(ProjectBudget.category)]
    d["recent_reports"] = [
        r.to_dict() for r in project.progress_reports.order_by(ProgressReport.created_at.desc()).limit(5)
    ]
    return d


def update_project(*, organization_id: int, project_id: int, data: dict) -> Project:
    """Partial update; only keys present in *data* change.

    ``metadata`` and ``settings`` are merged into the existing objects.
    """
    project = get_project(organization_id=organization_id, project_id=project_id)

    errors: dict[str, str] = {}
    changes: dict = {}
    if "name" in data:
        changes["name"] = require_text(data, "name", errors, min_len=3, max_len=200)
    if "description" in data:
        changes["description"] = optional_text(data, "description", errors)
    if "methodology" in data:
        changes["methodology"] = choice(data, "methodology", PROJECT_METHODOLOGIES, errors, required=True)
    if "status" in data:
        changes["status"] = choice(data, "status", PROJECT_STATUSES, errors, required=True)
    if "priority" in data:
        changes["priority"] = choice(data, "priority", PRIORITIES, errors, required=True)
    if "start_date" in data:
        changes["start_date"] = optional_date(data, "start_date", errors)
    if "end_date" in data:
        changes["end_date"] = optional_date(data, "end_date", errors)
    if "budget" in data:
        changes["budget"] = positive_number(data, "budget", errors, required=False, allow_zero=True)
    if "currency" in data:
        changes["currency"] = _currency(data, errors, default=None)
    meta = optional_object(data, "metadata", errors)
    settings = optional_object(data, "settings", errors)
    _check_dates(
        changes.get("start_date", project.start_date),
        changes.get("end_date", project.end_date),
        errors,
    )
    raise_if_errors(errors)

    for key, value in changes.items():
        if key == "currency" and value is None:
            continue
        setattr(project, key, value)
    if meta is not None:
        project.meta = {**(project.meta or {}), **meta}
    if settings is not None:
        project.settings = {**(project.settings or {}), **settings}

    db_commit_or_error()
    logger.info(
        "Project updated: id=%s fields=%s organization_id=%s",
        project.id, sorted(changes) + (["metadata"] if meta else []), organization_id,
    )
    return project


def delete_project(*, organization_id: int, project_id: int, user_id: int) -> None:
    """Delete a project; phases, tasks, budgets, expenses and reports cascade."""
    project = get_project(organization_id=organization_id, project_id=project_id)
    write_audit(
        organization_id=organization_id,
        entity_type="project",
        entity_id=project.id,
        action="project.delete",
        actor_user_id=user_id,
        diff={"name": project.name, "status": project.status},
    )
    db.session.delete(project)
    db_commit_or_error()
    logger.info("Project deleted: id=%s organization_id=%s", project_id, organization_id)


# ═══════════════════════════════════════════════════════════════
# Phases
# ═══════════════════════════════════════════════════════════════
def list_phases(*, organization_id: int, project_id: int) -> list[ProjectPhase]:
    project = get_project(organization_id=organization_id, project_id=project_id)
    return list(project.phases)


def create_phase(*, organization_id: int, project_id: int, data: dict) -> ProjectPhase:
    """Append a phase. Without an explicit ``order`` it goes last."""
    project = get_project(organization_id=organization_id, project_id=project_id)

    errors: dict[str, str] = {}
    name = require_text(data, "name", errors, max_len=200)
    description = optional_text(data, "description", errors)
    order = optional_int(data, "order", errors)
    status = choice(data, "status", PHASE_STATUSES, errors, default="PLANNED")
    start_date = optional_date(data, "start_date", errors)
    end_date = optional_date(data, "end_date", errors)
    _check_dates(start_date, end_date, errors)
    raise_if_errors(errors)

    if order is None:
        last = db.session.scalar(
            select(func.max(ProjectPhase.order)).where(ProjectPhase.project_id == project.id)
        )
        order = 0 if last is None else last + 1

    phase = ProjectPhase(
        project_id=project.id,
        name=name,
        description=description,
        order=order,
        status=status,
        start_date=start_date,
        end_date=end_date,
    )
    db.session.add(phase)
    db_commit_or_error()
    logger.info("Phase created: id=%s project=%s organization_id=%s", phase.id, project.id, organization_id)
    return phase


def update_phase(*, organization_id: int, project_id: int, phase_id: int, data: dict) -> ProjectPhase:
    project = get_project(organization_id=organization_id, project_id=project_id)
    phase = get_scoped(ProjectPhase, phase_id, project_id=project.id)

    errors: dict[str, str] = {}
    if "name" in data:
        phase.name = require_text(data, "name", errors, max_len=200)
    if "description" in data:
        phase.description = optional_text(data, "description", errors)
    if "order" in data:
        phase.order = optional_int(data, "order", errors, required=True)
    if "status" in data:
        phase.status = choice(data, "status", PHASE_STATUSES, errors, required=True)
    if "start_date" in data:
        phase.start_date = optional_date(data, "start_date", errors)
    if "end_date" in data:
        phase.end_date = optional_date(data, "end_date", errors)
    _check_dates(phase.start_date, phase.end_date, errors)
    if errors:
        db.session.rollback()
        raise_if_errors(errors)

    db_commit_or_error()
    logger.info("Phase updated: id=%s project=%s organization_id=%s", phase.id, project.id, organization_id)
    return phase


# ═══════════════════════════════════════════════════════════════
# Metrics
# ═══════════════════════════════════════════════════════════════
def get_project_metrics(*, organization_id: int, project_id: int) -> dict:
    project = get_project(organization_id=organization_id, project_id=project_id)
    return metrics_service.compute_project_metrics(
        project,
        project.tasks.all(),
        project.budgets.all(),
        phases=project.phases.all(),
    )
