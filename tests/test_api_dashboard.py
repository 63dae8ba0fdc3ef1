"""
Organization dashboard.
"""

from datetime import datetime, timedelta, timezone

from agiletrack.models.organization import VIEWER
from conftest import auth_headers, make_budget, make_project, make_task


def _dashboard(client, org, headers):
    res = client.get(f"/api/v1/organizations/{org.slug}/dashboard", headers=headers)
    assert res.status_code == 200
    return res.get_json()


def test_counts(client, org, admin, admin_headers, project):
    make_project(org, admin, status="COMPLETED")
    make_task(project, status="DONE", assignee_id=admin.id)
    make_task(project, status="IN_PROGRESS")
    make_task(project, due_date=datetime.now(timezone.utc) - timedelta(days=1), assignee_id=admin.id)

    data = _dashboard(client, org, admin_headers)
    assert data["user_role"] == "ORG_ADMIN"
    assert data["organization"]["slug"] == "acme"

    projects = data["metrics"]["projects"]
    assert projects["total"] == 2
    assert projects["active"] == 1
    assert projects["completed"] == 1

    tasks = data["metrics"]["tasks"]
    assert tasks["total"] == 3
    assert tasks["completed"] == 1
    assert tasks["in_progress"] == 1
    assert tasks["overdue"] == 1
    assert tasks["mine"] == {"total": 2, "completed": 1, "in_progress": 0, "overdue": 1}
    assert data["metrics"]["members"] == 1
    assert len(data["recent_projects"]) == 2


def test_budget_totals_for_finance_roles(client, org, admin_headers, project):
    make_budget(project, allocated=2000, spent=500)
    budget = _dashboard(client, org, admin_headers)["metrics"]["budget"]
    assert budget == {"total_allocated": 2000.0, "total_spent": 500.0, "utilization_rate": 25.0}


def test_budget_hidden_from_viewer(client, org, member_factory, project):
    make_budget(project, allocated=2000, spent=500)
    viewer = member_factory(VIEWER)
    data = _dashboard(client, org, auth_headers(viewer))
    assert data["metrics"]["budget"] is None
    assert data["user_role"] == VIEWER


def test_upcoming_deadlines(client, org, admin, admin_headers, project):
    now = datetime.now(timezone.utc)
    soon = make_task(project, title="Soon", due_date=now + timedelta(days=2, hours=1), assignee_id=admin.id)
    make_task(project, title="Later", due_date=now + timedelta(days=9))
    make_task(project, title="Finished", status="DONE", due_date=now + timedelta(days=1))
    make_task(project, title="Missed", due_date=now - timedelta(days=1))

    deadlines = _dashboard(client, org, admin_headers)["upcoming_deadlines"]
    assert [d["title"] for d in deadlines] == ["Soon", "Later"]
    first = deadlines[0]
    assert first["id"] == soon.id
    assert first["days_until_due"] == 3
    assert first["is_my_task"] is True
    assert first["project_name"] == "Website Relaunch"
    assert deadlines[1]["is_my_task"] is False


def test_empty_organization(client, org, admin_headers):
    data = _dashboard(client, org, admin_headers)
    assert data["metrics"]["projects"]["total"] == 0
    assert data["metrics"]["tasks"]["total"] == 0
    assert data["metrics"]["budget"]["utilization_rate"] == 0.0
    assert data["upcoming_deadlines"] == []
