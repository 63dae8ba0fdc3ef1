"""
Project health metrics — pure functions over already-loaded rows.

Nothing in this module touches the database. Callers pass tasks, budget
rows and phases (ORM instances or any object exposing the same
attributes) and get plain numbers / dicts back.

Formulas:
    task_completion_rate  = DONE / total * 100                 (0 with no tasks)
    budget_utilization    = Σ spent / Σ allocated * 100        (0 with nothing allocated)
    schedule_performance  = Σ est / (Σ act or Σ est) * 100     (100 with no estimates)
    overdue               = due date strictly before now and status != DONE
    overdue_rate          = overdue / total * 100              (0 with no tasks)

Health (first match wins, all comparisons strict):
    RED     completion < 50  or utilization > 120 or overdue_rate > 25
    YELLOW  completion < 75  or utilization > 90  or overdue_rate > 10
    GREEN   otherwise
"""

from __future__ import annotations

from collections import Counter
from datetime import datetime, timezone

from agiletrack.utils.helpers import as_utc

DONE = "DONE"

HEALTH_GREEN = "GREEN"
HEALTH_YELLOW = "YELLOW"
HEALTH_RED = "RED"

# (completion below, utilization above, overdue rate above)
RED_THRESHOLDS = (50.0, 120.0, 25.0)
YELLOW_THRESHOLDS = (75.0, 90.0, 10.0)

# Free-form project metadata key → output field
PQG_FIELDS = {
    "pqgPriority": "priority",
    "pqgProgram": "program",
    "pqgIndicators": "indicators",
    "ugb": "implementing_unit",
    "interventionArea": "intervention_area",
    "location": "location",
}


def _sum(values) -> float:
    return float(sum(v or 0 for v in values))


def _pct(part: float, whole: float) -> float:
    return part / whole * 100 if whole else 0.0


# ═══════════════════════════════════════════════════════════════
# Individual metrics
# ═══════════════════════════════════════════════════════════════
def task_completion_rate(tasks) -> float:
    tasks = list(tasks)
    done = sum(1 for t in tasks if t.status == DONE)
    return _pct(done, len(tasks))


def budget_utilization(budgets) -> float:
    budgets = list(budgets)
    allocated = _sum(b.allocated_amount for b in budgets)
    spent = _sum(b.spent_amount for b in budgets)
    return _pct(spent, allocated)


def schedule_performance(tasks) -> float:
    tasks = list(tasks)
    estimated = _sum(t.estimated_hours for t in tasks)
    actual = _sum(t.actual_hours for t in tasks)
    if estimated <= 0:
        return 100.0
    return estimated / (actual or estimated) * 100


def is_overdue(task, now: datetime | None = None) -> bool:
    if task.due_date is None or task.status == DONE:
        return False
    now = as_utc(now) if now is not None else datetime.now(timezone.utc)
    return as_utc(task.due_date) < now


def count_overdue(tasks, now: datetime | None = None) -> int:
    now = as_utc(now) if now is not None else datetime.now(timezone.utc)
    return sum(1 for t in tasks if is_overdue(t, now))


def overdue_rate(tasks, now: datetime | None = None) -> float:
    tasks = list(tasks)
    return _pct(count_overdue(tasks, now), len(tasks))


def classify_health(completion_rate: float, utilization: float, overdue_pct: float) -> str:
    """Traffic-light classification; see module docstring for thresholds."""
    red_completion, red_utilization, red_overdue = RED_THRESHOLDS
    if completion_rate < red_completion or utilization > red_utilization or overdue_pct > red_overdue:
        return HEALTH_RED
    yellow_completion, yellow_utilization, yellow_overdue = YELLOW_THRESHOLDS
    if completion_rate < yellow_completion or utilization > yellow_utilization or overdue_pct > yellow_overdue:
        return HEALTH_YELLOW
    return HEALTH_GREEN


def extract_pqg_data(meta: dict | None) -> dict | None:
    """Government-programme (PQG) fields carried in a project's metadata.

    Returns None when the project has no metadata; otherwise every field
    is present and individually nullable (``indicators`` defaults to []).
    """
    if not meta:
        return None
    data = {out: meta.get(key) for key, out in PQG_FIELDS.items()}
    indicators = data["indicators"]
    if indicators is None:
        data["indicators"] = []
    elif not isinstance(indicators, list):
        data["indicators"] = [indicators]
    return data


# ═══════════════════════════════════════════════════════════════
# Aggregates
# ═══════════════════════════════════════════════════════════════
def phase_progress(phases, tasks) -> list[dict]:
    """Per-phase task completion, in phase order."""
    by_phase: dict[int, list] = {}
    for t in tasks:
        if t.phase_id is not None:
            by_phase.setdefault(t.phase_id, []).append(t)
    rows = []
    for phase in sorted(phases, key=lambda p: (p.order or 0, p.id or 0)):
        phase_tasks = by_phase.get(phase.id, [])
        done = sum(1 for t in phase_tasks if t.status == DONE)
        rows.append({
            "id": phase.id,
            "name": phase.name,
            "order": phase.order,
            "status": phase.status,
            "total_tasks": len(phase_tasks),
            "completed_tasks": done,
            "progress": round(_pct(done, len(phase_tasks)), 1),
        })
    return rows


def compute_project_metrics(project, tasks, budgets, phases=None, now: datetime | None = None) -> dict:
    """Full metrics bundle for one project.

    Rates are classified unrounded and reported rounded to one decimal.
    """
    tasks = list(tasks)
    budgets = list(budgets)
    now = as_utc(now) if now is not None else datetime.now(timezone.utc)

    status_counts = Counter(t.status for t in tasks)
    completion = task_completion_rate(tasks)
    utilization = budget_utilization(budgets)
    schedule = schedule_performance(tasks)
    overdue = count_overdue(tasks, now)
    overdue_pct = _pct(overdue, len(tasks))

    result = {
        "project_id": getattr(project, "id", None),
        "project_name": getattr(project, "name", None),
        "status": getattr(project, "status", None),
        "total_tasks": len(tasks),
        "completed_tasks": status_counts.get(DONE, 0),
        "in_progress_tasks": status_counts.get("IN_PROGRESS", 0),
        "blocked_tasks": status_counts.get("BLOCKED", 0),
        "overdue_tasks": overdue,
        "tasks_by_status": dict(status_counts),
        "task_completion_rate": round(completion, 1),
        "total_budget": _sum(b.allocated_amount for b in budgets),
        "spent_budget": _sum(b.spent_amount for b in budgets),
        "budget_utilization": round(utilization, 1),
        "total_estimated_hours": _sum(t.estimated_hours for t in tasks),
        "total_actual_hours": _sum(t.actual_hours for t in tasks),
        "schedule_performance": round(schedule, 1),
        "overdue_rate": round(overdue_pct, 1),
        "health": classify_health(completion, utilization, overdue_pct),
        "pqg": extract_pqg_data(getattr(project, "meta", None)),
    }
    if phases is not None:
        result["phases"] = phase_progress(phases, tasks)
    return result


def summarize_portfolio(project_metrics: list[dict]) -> dict:
    """Organization-wide roll-up of per-project metric bundles."""
    health = Counter(m["health"] for m in project_metrics)
    total_tasks = sum(m["total_tasks"] for m in project_metrics)
    completed = sum(m["completed_tasks"] for m in project_metrics)
    total_budget = sum(m["total_budget"] for m in project_metrics)
    spent = sum(m["spent_budget"] for m in project_metrics)
    count = len(project_metrics)
    return {
        "total_projects": count,
        "active_projects": sum(1 for m in project_metrics if m.get("status") == "ACTIVE"),
        "completed_projects": sum(1 for m in project_metrics if m.get("status") == "COMPLETED"),
        "total_tasks": total_tasks,
        "completed_tasks": completed,
        "overdue_tasks": sum(m["overdue_tasks"] for m in project_metrics),
        "task_completion_rate": round(_pct(completed, total_tasks), 1),
        "average_completion_rate": round(
            sum(m["task_completion_rate"] for m in project_metrics) / count, 1
        ) if count else 0.0,
        "total_budget": total_budget,
        "spent_budget": spent,
        "budget_utilization": round(_pct(spent, total_budget), 1),
        "health_distribution": {
            HEALTH_GREEN: health.get(HEALTH_GREEN, 0),
            HEALTH_YELLOW: health.get(HEALTH_YELLOW, 0),
            HEALTH_RED: health.get(HEALTH_RED, 0),
        },
    }
