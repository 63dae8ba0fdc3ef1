"""
Reporting service: progress reports and the organization portfolio.

Progress report lifecycle:
    DRAFT ──submit──► SUBMITTED ──► APPROVED | REJECTED

Submission is a conditional UPDATE on ``status = 'DRAFT'`` and the review
decision one on ``status = 'SUBMITTED'``, so each step happens at most once.
"""

from __future__ import annotations

import logging

from sqlalchemy import select, update

from agiletrack.core.exceptions import ConflictError, ValidationError
from agiletrack.models import db
from agiletrack.models.audit import write_audit
from agiletrack.models.finance import ProjectBudget
from agiletrack.models.project import Project, ProjectPhase
from agiletrack.models.reporting import REPORT_STATUSES, REPORT_TYPES, ProgressReport
from agiletrack.models.task import Task
from agiletrack.services import metrics_service
from agiletrack.services.helpers.scoped_queries import get_scoped
from agiletrack.services.helpers.validation import (
    choice,
    optional_date,
    optional_object,
    optional_text,
    raise_if_errors,
    require_text,
)
from agiletrack.utils.helpers import db_commit_or_error, utcnow

logger = logging.getLogger(__name__)

DRAFT = "DRAFT"
SUBMITTED = "SUBMITTED"
# Metric keys frozen into a report at submission time
SNAPSHOT_KEYS = (
    "total_tasks",
    "completed_tasks",
    "task_completion_rate",
    "budget_utilization",
    "schedule_performance",
    "overdue_tasks",
    "health",
)


# ═══════════════════════════════════════════════════════════════
# Progress reports
# ═══════════════════════════════════════════════════════════════
def list_progress_reports(*, organization_id: int, project_id: int, status: str | None = None) -> list[ProgressReport]:
    project = get_scoped(Project, project_id, organization_id=organization_id)
    q = project.progress_reports
    if status:
        if status.upper() not in REPORT_STATUSES:
            raise ValidationError("Invalid filter", details={"status": f"Must be one of: {', '.join(REPORT_STATUSES)}"})
        q = q.filter(ProgressReport.status == status.upper())
    return q.order_by(ProgressReport.created_at.desc()).all()


def _metrics_snapshot(project: Project) -> dict:
    metrics = metrics_service.compute_project_metrics(project, project.tasks.all(), project.budgets.all())
    return {k: metrics[k] for k in SNAPSHOT_KEYS}


def create_progress_report(*, organization_id: int, project_id: int, user_id: int, data: dict) -> ProgressReport:
    """File a progress report; ``{"draft": true}`` keeps it in DRAFT.

    The project's current metrics are stored in ``content.metrics_snapshot``.
    """
    project = get_scoped(Project, project_id, organization_id=organization_id)

    errors: dict[str, str] = {}
    title = require_text(data, "title", errors, max_len=300)
    report_type = choice(data, "report_type", REPORT_TYPES, errors, default="WEEKLY")
    content = optional_object(data, "content", errors) or {}
    period_start = optional_date(data, "period_start", errors)
    period_end = optional_date(data, "period_end", errors)
    if period_start and period_end and period_end < period_start:
        errors["period_end"] = "period_end must be on or after period_start"
    raise_if_errors(errors)

    content = {**content, "metrics_snapshot": _metrics_snapshot(project)}

    draft = bool(data.get("draft"))
    report = ProgressReport(
        project_id=project.id,
        reporter_id=user_id,
        report_type=report_type,
        status=DRAFT if draft else SUBMITTED,
        title=title,
        content=content,
        period_start=period_start,
        period_end=period_end,
        submitted_at=None if draft else utcnow(),
    )
    db.session.add(report)
    db_commit_or_error()
    logger.info(
        "Progress report created: id=%s project=%s status=%s organization_id=%s",
        report.id, project.id, report.status, organization_id,
    )
    return report


def submit_progress_report(*, organization_id: int, report_id: int, user_id: int) -> ProgressReport:
    """Move a DRAFT report to SUBMITTED, re-freezing its metrics snapshot.

    A report is submitted at most once; anything but DRAFT is a conflict.
    """
    report = get_scoped(ProgressReport, report_id, organization_id=organization_id)
    content = {**(report.content or {}), "metrics_snapshot": _metrics_snapshot(report.project)}
    result = db.session.execute(
        update(ProgressReport)
        .where(ProgressReport.id == report.id, ProgressReport.status == DRAFT)
        .values(status=SUBMITTED, submitted_at=utcnow(), content=content)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.session.rollback()
        current = db.session.scalar(select(ProgressReport.status).where(ProgressReport.id == report_id))
        raise ConflictError("Progress report", "status", current)

    write_audit(
        organization_id=organization_id,
        entity_type="report",
        entity_id=report_id,
        action="report.submit",
        actor_user_id=user_id,
        diff={"status": {"old": DRAFT, "new": SUBMITTED}},
    )
    db_commit_or_error()
    db.session.refresh(report)
    logger.info("Progress report submitted: id=%s organization_id=%s", report_id, organization_id)
    return report


def _review(*, organization_id: int, report_id: int, user_id: int, data: dict, new_status: str) -> ProgressReport:
    report = get_scoped(ProgressReport, report_id, organization_id=organization_id)
    errors: dict[str, str] = {}
    comment = optional_text(data, "comment", errors, max_len=5000)
    raise_if_errors(errors)

    result = db.session.execute(
        update(ProgressReport)
        .where(ProgressReport.id == report.id, ProgressReport.status == SUBMITTED)
        .values(status=new_status, approver_id=user_id, approved_at=utcnow(), review_comment=comment)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.session.rollback()
        current = db.session.scalar(select(ProgressReport.status).where(ProgressReport.id == report_id))
        raise ConflictError("Progress report", "status", current)

    write_audit(
        organization_id=organization_id,
        entity_type="report",
        entity_id=report_id,
        action="report.approve" if new_status == "APPROVED" else "report.reject",
        actor_user_id=user_id,
        diff={"status": {"old": SUBMITTED, "new": new_status}},
    )
    db_commit_or_error()
    db.session.refresh(report)
    logger.info("Progress report %s: id=%s organization_id=%s", new_status.lower(), report_id, organization_id)
    return report


def approve_progress_report(*, organization_id: int, report_id: int, user_id: int, data: dict) -> ProgressReport:
    return _review(organization_id=organization_id, report_id=report_id, user_id=user_id, data=data, new_status="APPROVED")


def reject_progress_report(*, organization_id: int, report_id: int, user_id: int, data: dict) -> ProgressReport:
    return _review(organization_id=organization_id, report_id=report_id, user_id=user_id, data=data, new_status="REJECTED")


# ═══════════════════════════════════════════════════════════════
# Portfolio
# ═══════════════════════════════════════════════════════════════
def portfolio_report(*, organization_id: int, status: str | None = None) -> dict:
    """Per-project metrics plus an organization roll-up.

    Tasks, budgets and phases are each loaded with one query for the
    whole organization and grouped in memory.
    """
    stmt = select(Project).where(Project.organization_id == organization_id)
    if status:
        stmt = stmt.where(Project.status == status.upper())
    projects = list(db.session.execute(stmt.order_by(Project.name)).scalars())
    ids = [p.id for p in projects]

    tasks: dict[int, list] = {pid: [] for pid in ids}
    budgets: dict[int, list] = {pid: [] for pid in ids}
    phases: dict[int, list] = {pid: [] for pid in ids}
    if ids:
        for t in db.session.execute(select(Task).where(Task.project_id.in_(ids))).scalars():
            tasks[t.project_id].append(t)
        for b in db.session.execute(select(ProjectBudget).where(ProjectBudget.project_id.in_(ids))).scalars():
            budgets[b.project_id].append(b)
        for ph in db.session.execute(select(ProjectPhase).where(ProjectPhase.project_id.in_(ids))).scalars():
            phases[ph.project_id].append(ph)

    now = utcnow()
    rows = []
    for p in projects:
        m = metrics_service.compute_project_metrics(p, tasks[p.id], budgets[p.id], phases=phases[p.id], now=now)
        m.update({
            "priority": p.priority,
            "methodology": p.methodology,
            "currency": p.currency,
            "start_date": p.start_date.isoformat() if p.start_date else None,
            "end_date": p.end_date.isoformat() if p.end_date else None,
        })
        rows.append(m)

    return {
        "projects": rows,
        "summary": metrics_service.summarize_portfolio(rows),
        "generated_at": now.isoformat(),
    }

