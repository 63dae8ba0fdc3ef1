"""
Metrics formulas and health classification.

Pure functions: rows are SimpleNamespace stand-ins, no database needed.
"""

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from agiletrack.services import metrics_service as m

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


def task(status="TODO", due=None, est=None, act=None, phase_id=None):
    return SimpleNamespace(status=status, due_date=due, estimated_hours=est, actual_hours=act, phase_id=phase_id)


def budget(allocated, spent):
    return SimpleNamespace(allocated_amount=allocated, spent_amount=spent)


# ── individual formulas ──────────────────────────────────────────────────


def test_completion_rate_empty_is_zero():
    assert m.task_completion_rate([]) == 0


def test_completion_rate():
    assert m.task_completion_rate([task("DONE"), task("DONE"), task(), task("IN_PROGRESS")]) == 50.0


def test_budget_utilization_no_allocation_is_zero():
    assert m.budget_utilization([]) == 0
    assert m.budget_utilization([budget(0, 0)]) == 0


def test_budget_utilization_sums_categories():
    assert m.budget_utilization([budget(1000, 500), budget(1000, 1000)]) == 75.0


def test_budget_utilization_can_exceed_100():
    assert m.budget_utilization([budget(100, 150)]) == 150.0


def test_schedule_performance_without_estimates_is_100():
    assert m.schedule_performance([task(), task()]) == 100.0


def test_schedule_performance_without_actuals_is_100():
    assert m.schedule_performance([task(est=10)]) == 100.0


def test_schedule_performance_ratio():
    assert m.schedule_performance([task(est=10, act=20), task(est=10, act=20)]) == 50.0


def test_overdue_requires_past_due_and_not_done():
    past = NOW - timedelta(days=1)
    future = NOW + timedelta(days=1)
    assert m.is_overdue(task(due=past), NOW)
    assert not m.is_overdue(task("DONE", due=past), NOW)
    assert not m.is_overdue(task(due=future), NOW)
    assert not m.is_overdue(task(), NOW)


def test_overdue_accepts_naive_due_dates():
    naive_past = (NOW - timedelta(hours=1)).replace(tzinfo=None)
    assert m.is_overdue(task(due=naive_past), NOW)


def test_overdue_rate():
    past = NOW - timedelta(days=3)
    tasks = [task(due=past), task(), task(), task()]
    assert m.overdue_rate(tasks, NOW) == 25.0
    assert m.overdue_rate([], NOW) == 0


# ── health classification ────────────────────────────────────────────────


@pytest.mark.parametrize(
    "completion,utilization,overdue,expected",
    [
        (75.0, 0.0, 0.0, "GREEN"),
        (74.9, 0.0, 0.0, "YELLOW"),
        (50.0, 0.0, 0.0, "YELLOW"),
        (49.9, 0.0, 0.0, "RED"),
        (100.0, 90.0, 0.0, "GREEN"),
        (100.0, 90.1, 0.0, "YELLOW"),
        (100.0, 120.0, 0.0, "YELLOW"),
        (100.0, 120.1, 0.0, "RED"),
        (100.0, 0.0, 10.0, "GREEN"),
        (100.0, 0.0, 10.1, "YELLOW"),
        (100.0, 0.0, 25.0, "YELLOW"),
        (100.0, 0.0, 25.1, "RED"),
    ],
)
def test_classify_health_boundaries(completion, utilization, overdue, expected):
    assert m.classify_health(completion, utilization, overdue) == expected


def test_red_wins_over_yellow():
    assert m.classify_health(60.0, 130.0, 0.0) == "RED"


# ── PQG extraction ───────────────────────────────────────────────────────


def test_pqg_absent_without_metadata():
    assert m.extract_pqg_data(None) is None
    assert m.extract_pqg_data({}) is None


def test_pqg_fields_are_individually_nullable():
    data = m.extract_pqg_data({"pqgProgram": "Water", "location": "North"})
    assert data["program"] == "Water"
    assert data["location"] == "North"
    assert data["priority"] is None
    assert data["indicators"] == []


def test_pqg_scalar_indicator_becomes_list():
    assert m.extract_pqg_data({"pqgIndicators": "IND-1"})["indicators"] == ["IND-1"]


# ── bundles ──────────────────────────────────────────────────────────────


def test_compute_project_metrics_bundle():
    project = SimpleNamespace(id=7, name="Bridge", status="ACTIVE", meta={"pqgPriority": "High"})
    past = NOW - timedelta(days=2)
    tasks = [
        task("DONE", est=5, act=5, phase_id=1),
        task("DONE", est=5, act=5, phase_id=1),
        task("DONE", est=5, act=5, phase_id=2),
        task("IN_PROGRESS", due=past, est=5, act=5, phase_id=2),
    ]
    phases = [SimpleNamespace(id=2, name="Build", order=1, status="IN_PROGRESS"),
              SimpleNamespace(id=1, name="Plan", order=0, status="COMPLETED")]
    result = m.compute_project_metrics(project, tasks, [budget(1000, 800)], phases=phases, now=NOW)

    assert result["project_id"] == 7
    assert result["total_tasks"] == 4
    assert result["completed_tasks"] == 3
    assert result["task_completion_rate"] == 75.0
    assert result["budget_utilization"] == 80.0
    assert result["schedule_performance"] == 100.0
    assert result["overdue_tasks"] == 1
    # 25% overdue is not strictly above 25 → YELLOW on the overdue clause only
    assert result["health"] == "YELLOW"
    assert result["pqg"]["priority"] == "High"
    assert [p["name"] for p in result["phases"]] == ["Plan", "Build"]
    assert result["phases"][0]["progress"] == 100.0
    assert result["phases"][1]["progress"] == 50.0


def test_compute_project_metrics_empty_project_is_red():
    project = SimpleNamespace(id=1, name="Empty", status="PLANNING", meta={})
    result = m.compute_project_metrics(project, [], [], now=NOW)
    assert result["task_completion_rate"] == 0
    assert result["schedule_performance"] == 100.0
    assert result["health"] == "RED"
    assert result["pqg"] is None
    assert "phases" not in result


def test_summarize_portfolio():
    rows = [
        {"health": "GREEN", "status": "ACTIVE", "total_tasks": 4, "completed_tasks": 4, "overdue_tasks": 0,
         "task_completion_rate": 100.0, "total_budget": 100.0, "spent_budget": 50.0},
        {"health": "RED", "status": "COMPLETED", "total_tasks": 4, "completed_tasks": 0, "overdue_tasks": 2,
         "task_completion_rate": 0.0, "total_budget": 100.0, "spent_budget": 0.0},
    ]
    summary = m.summarize_portfolio(rows)
    assert summary["total_projects"] == 2
    assert summary["active_projects"] == 1
    assert summary["completed_projects"] == 1
    assert summary["task_completion_rate"] == 50.0
    assert summary["average_completion_rate"] == 50.0
    assert summary["budget_utilization"] == 25.0
    assert summary["overdue_tasks"] == 2
    assert summary["health_distribution"] == {"GREEN": 1, "YELLOW": 0, "RED": 1}


def test_summarize_empty_portfolio():
    summary = m.summarize_portfolio([])
    assert summary["total_projects"] == 0
    assert summary["average_completion_rate"] == 0.0
