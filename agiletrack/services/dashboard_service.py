"""
Dashboard & task analytics aggregation.

Read-only; both views are computed from a handful of organization-scoped
queries plus the metrics helpers.
"""

from __future__ import annotations

import logging
import math
from collections import Counter
from datetime import timedelta

from sqlalchemy import func, select

from agiletrack.core.exceptions import ValidationError
from agiletrack.models import db
from agiletrack.models.finance import ProjectBudget
from agiletrack.models.organization import Organization, OrganizationMember
from agiletrack.models.project import PROJECT_STATUSES, Project
from agiletrack.models.task import Task
from agiletrack.services import metrics_service
from agiletrack.services.permission_service import is_allowed
from agiletrack.utils.helpers import as_utc, isoformat, parse_datetime_input, parse_date_input, utcnow

logger = logging.getLogger(__name__)

UPCOMING_LIMIT = 10
RECENT_PROJECTS_LIMIT = 6


def _org_tasks(organization_id: int):
    return (
        select(Task)
        .join(Project, Task.project_id == Project.id)
        .where(Project.organization_id == organization_id)
    )


# ═══════════════════════════════════════════════════════════════
# Dashboard
# ═══════════════════════════════════════════════════════════════
def get_dashboard(*, organization_id: int, user_id: int, role: str) -> dict:
    """Organization home screen.

    Budget totals are only included for roles that may view budgets.
    """
    now = utcnow()
    org = db.session.get(Organization, organization_id)

    by_status = dict(
        db.session.execute(
            select(Project.status, func.count(Project.id))
            .where(Project.organization_id == organization_id)
            .group_by(Project.status)
        ).all()
    )
    projects = {s.lower(): by_status.get(s, 0) for s in PROJECT_STATUSES}
    projects["total"] = sum(by_status.values())

    tasks = list(db.session.execute(_org_tasks(organization_id)).scalars())
    mine = [t for t in tasks if t.assignee_id == user_id]
    task_metrics = {
        "total": len(tasks),
        "completed": sum(1 for t in tasks if t.status == metrics_service.DONE),
        "in_progress": sum(1 for t in tasks if t.status == "IN_PROGRESS"),
        "overdue": metrics_service.count_overdue(tasks, now),
        "mine": {
            "total": len(mine),
            "completed": sum(1 for t in mine if t.status == metrics_service.DONE),
            "in_progress": sum(1 for t in mine if t.status == "IN_PROGRESS"),
            "overdue": metrics_service.count_overdue(mine, now),
        },
    }

    member_count = db.session.scalar(
        select(func.count(OrganizationMember.id)).where(OrganizationMember.organization_id == organization_id)
    )

    budget = None
    if is_allowed(role, "budget.view"):
        allocated, spent = db.session.execute(
            select(
                func.coalesce(func.sum(ProjectBudget.allocated_amount), 0),
                func.coalesce(func.sum(ProjectBudget.spent_amount), 0),
            )
            .join(Project, ProjectBudget.project_id == Project.id)
            .where(Project.organization_id == organization_id)
        ).one()
        allocated, spent = float(allocated or 0), float(spent or 0)
        budget = {
            "total_allocated": allocated,
            "total_spent": spent,
            "utilization_rate": round(spent / allocated * 100, 1) if allocated else 0.0,
        }

    upcoming = sorted(
        (t for t in tasks if t.due_date is not None and t.status != metrics_service.DONE and as_utc(t.due_date) >= now),
        key=lambda t: as_utc(t.due_date),
    )[:UPCOMING_LIMIT]
    deadlines = []
    for t in upcoming:
        delta = as_utc(t.due_date) - now
        deadlines.append({
            "id": t.id,
            "title": t.title,
            "project_id": t.project_id,
            "project_name": t.project.name if t.project else None,
            "priority": t.priority,
            "status": t.status,
            "due_date": isoformat(t.due_date),
            "days_until_due": math.ceil(delta.total_seconds() / 86400),
            "is_my_task": t.assignee_id == user_id,
        })

    recent = db.session.execute(
        select(Project)
        .where(Project.organization_id == organization_id)
        .order_by(Project.updated_at.desc())
        .limit(RECENT_PROJECTS_LIMIT)
    ).scalars()

    return {
        "organization": org.to_dict() if org else None,
        "user_role": role,
        "metrics": {
            "projects": projects,
            "tasks": task_metrics,
            "budget": budget,
            "members": member_count or 0,
        },
        "recent_projects": [
            {"id": p.id, "name": p.name, "status": p.status, "updated_at": isoformat(p.updated_at)}
            for p in recent
        ],
        "upcoming_deadlines": deadlines,
        "last_updated": now.isoformat(),
    }


# ═══════════════════════════════════════════════════════════════
# Task analytics
# ═══════════════════════════════════════════════════════════════
def _parse_bound(value, field):
    if not value:
        return None
    try:
        return parse_datetime_input(value)
    except ValueError:
        try:
            return as_utc(parse_date_input(value))
        except ValueError as exc:
            raise ValidationError("Invalid filter", details={field: "Invalid date"}) from exc


def _bucket(tasks) -> dict:
    counts = Counter(t.status for t in tasks)
    return {
        "total": len(tasks),
        "completed": counts.get("DONE", 0),
        "in_progress": counts.get("IN_PROGRESS", 0),
        "blocked": counts.get("BLOCKED", 0),
        "todo": counts.get("TODO", 0),
    }


def get_task_report(*, organization_id: int, filters: dict | None = None) -> dict:
    """Task analytics across the organization.

    Filters: project_id, assignee_id, start_date / end_date (on created_at).
    """
    filters = filters or {}
    stmt = _org_tasks(organization_id)
    for key in ("project_id", "assignee_id"):
        value = filters.get(key)
        if value in (None, ""):
            continue
        try:
            stmt = stmt.where(getattr(Task, key) == int(value))
        except (TypeError, ValueError) as exc:
            raise ValidationError("Invalid filter", details={key: f"{key} must be an integer"}) from exc
    start = _parse_bound(filters.get("start_date"), "start_date")
    end = _parse_bound(filters.get("end_date"), "end_date")
    if start is not None:
        stmt = stmt.where(Task.created_at >= start)
    if end is not None:
        stmt = stmt.where(Task.created_at <= end)

    tasks = list(db.session.execute(stmt).scalars())
    now = utcnow()

    summary = _bucket(tasks)
    summary["overdue"] = metrics_service.count_overdue(tasks, now)
    summary["completion_rate"] = round(metrics_service.task_completion_rate(tasks), 1)

    priorities = Counter(t.priority for t in tasks)

    per_project: dict[int, list] = {}
    per_assignee: dict[int, list] = {}
    for t in tasks:
        per_project.setdefault(t.project_id, []).append(t)
        if t.assignee_id is not None:
            per_assignee.setdefault(t.assignee_id, []).append(t)

    projects = []
    for project_id, rows in per_project.items():
        entry = _bucket(rows)
        entry.update({"id": project_id, "name": rows[0].project.name if rows[0].project else None})
        projects.append(entry)

    assignees = []
    for assignee_id, rows in per_assignee.items():
        user = rows[0].assignee
        entry = _bucket(rows)
        entry.update({
            "id": assignee_id,
            "name": (user.name or user.email) if user else None,
            "email": user.email if user else None,
            "estimated_hours": sum(r.estimated_hours or 0 for r in rows),
            "actual_hours": sum(r.actual_hours or 0 for r in rows),
        })
        assignees.append(entry)

    weekly = []
    for i in range(3, -1, -1):
        week_start = now - timedelta(days=(i + 1) * 7)
        week_end = now - timedelta(days=i * 7)
        created = [t for t in tasks if t.created_at and week_start <= as_utc(t.created_at) < week_end]
        completed = [
            t for t in tasks
            if t.status == metrics_service.DONE
            and t.completed_at and week_start <= as_utc(t.completed_at) < week_end
        ]
        weekly.append({
            "week": f"Week {4 - i}",
            "week_start": week_start.isoformat(),
            "week_end": week_end.isoformat(),
            "created": len(created),
            "completed": len(completed),
            "completion_rate": round(len(completed) / len(created) * 100) if created else 0,
        })

    thirty_days_ago = now - timedelta(days=30)
    return {
        "summary": summary,
        "priorities": {p.lower(): priorities.get(p, 0) for p in ("CRITICAL", "HIGH", "MEDIUM", "LOW")},
        "projects": sorted(projects, key=lambda p: p["id"]),
        "assignees": sorted(assignees, key=lambda a: a["id"]),
        "trends": {
            "recent_tasks_created": sum(
                1 for t in tasks if t.created_at and as_utc(t.created_at) >= thirty_days_ago
            ),
            "recent_tasks_completed": sum(
                1 for t in tasks
                if t.status == metrics_service.DONE and t.completed_at and as_utc(t.completed_at) >= thirty_days_ago
            ),
            "weekly": weekly,
        },
        "filters": {
            "project_id": filters.get("project_id") or None,
            "assignee_id": filters.get("assignee_id") or None,
            "start_date": filters.get("start_date") or None,
            "end_date": filters.get("end_date") or None,
        },
    }
