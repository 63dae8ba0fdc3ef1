"""
Projects & phases API, including the creation wizard seeding.
"""

from agiletrack.models import db
from agiletrack.models.audit import AuditLog
from agiletrack.models.finance import ProjectBudget
from agiletrack.models.organization import PROJECT_MANAGER
from agiletrack.models.project import Project, ProjectPhase
from agiletrack.models.task import Task
from conftest import auth_headers, make_budget, make_project, make_task


def _base(org):
    return f"/api/v1/organizations/{org.slug}/projects"


def _create(client, org, headers, **overrides):
    body = {"name": "Clinic Rollout", "template": "NGO", "budget": 10000, "currency": "eur"}
    body.update(overrides)
    return client.post(_base(org), json=body, headers=headers)


# ── create ───────────────────────────────────────────────────────────────


def test_create_seeds_phases_and_total_budget(client, org, admin, admin_headers):
    res = _create(client, org, admin_headers)
    assert res.status_code == 201
    data = res.get_json()
    assert data["status"] == "PLANNING"
    assert data["currency"] == "EUR"
    assert data["created_by_id"] == admin.id
    assert data["metadata"]["wizard_version"] == "1.0"

    phases = ProjectPhase.query.filter_by(project_id=data["id"]).order_by(ProjectPhase.order).all()
    assert [p.name for p in phases] == [
        "Planning", "Community Engagement", "Implementation", "Monitoring", "Evaluation",
    ]
    assert all(p.status == "PLANNED" for p in phases)

    [budget] = ProjectBudget.query.filter_by(project_id=data["id"]).all()
    assert budget.category == "TOTAL"
    assert budget.allocated_amount == 10000


def test_create_without_budget_opens_no_budget(client, org, admin_headers):
    data = _create(client, org, admin_headers, budget=0).get_json()
    assert ProjectBudget.query.filter_by(project_id=data["id"]).count() == 0


def test_create_turns_deliverables_into_tasks(client, org, admin_headers):
    charter = {"deliverables": [
        {"name": "Needs assessment", "due_date": "2024-09-01", "criteria": "Signed off"},
        {"name": "Training plan"},
    ]}
    data = _create(client, org, admin_headers, charter=charter).get_json()
    tasks = Task.query.filter_by(project_id=data["id"]).order_by(Task.id).all()
    assert [t.title for t in tasks] == ["Needs assessment", "Training plan"]
    assert all(t.meta["is_deliverable"] for t in tasks)
    assert tasks[0].meta["acceptance_criteria"] == "Signed off"
    assert tasks[0].due_date is not None
    assert tasks[1].status == "TODO"


def test_create_validation(client, org, admin_headers):
    res = _create(client, org, admin_headers, name="ab", methodology="CHAOS",
                  start_date="2024-05-01", end_date="2024-04-01")
    assert res.status_code == 400
    details = res.get_json()["details"]
    assert {"name", "methodology", "end_date"} <= set(details)


def test_project_manager_can_create(client, org, member_factory):
    pm = member_factory(PROJECT_MANAGER)
    assert _create(client, org, auth_headers(pm)).status_code == 201


# ── read ─────────────────────────────────────────────────────────────────


def test_list_with_progress_and_filters(client, org, admin, admin_headers):
    p1 = make_project(org, admin, name="Alpha Bridge", priority="HIGH")
    make_project(org, admin, name="Beta Road", status="ON_HOLD")
    make_task(p1, status="DONE")
    make_task(p1)

    data = client.get(_base(org), headers=admin_headers).get_json()
    assert data["total"] == 2
    alpha = next(p for p in data["items"] if p["id"] == p1.id)
    assert alpha["task_count"] == 2
    assert alpha["completed_tasks"] == 1
    assert alpha["progress"] == 50.0

    assert client.get(_base(org) + "?status=on_hold", headers=admin_headers).get_json()["total"] == 1
    assert client.get(_base(org) + "?priority=HIGH", headers=admin_headers).get_json()["total"] == 1
    assert client.get(_base(org) + "?search=bridge", headers=admin_headers).get_json()["total"] == 1


def test_detail_includes_phases_tasks_budgets(client, org, admin_headers, project):
    make_budget(project, "Design", allocated=500)
    make_task(project, title="Wireframes")
    data = client.get(f"{_base(org)}/{project.id}", headers=admin_headers).get_json()
    assert data["name"] == "Website Relaunch"
    assert [t["title"] for t in data["recent_tasks"]] == ["Wireframes"]
    assert [b["category"] for b in data["budgets"]] == ["Design"]
    assert data["phases"] == []
    assert data["recent_reports"] == []


def test_metrics_endpoint(client, org, admin_headers, project):
    make_task(project, status="DONE")
    make_task(project, status="DONE")
    make_task(project, status="DONE")
    make_task(project)
    make_budget(project, allocated=1000, spent=500)
    data = client.get(f"{_base(org)}/{project.id}/metrics", headers=admin_headers).get_json()
    assert data["task_completion_rate"] == 75.0
    assert data["budget_utilization"] == 50.0
    assert data["health"] == "GREEN"
    assert data["phases"] == []


# ── update / delete ──────────────────────────────────────────────────────


def test_patch_merges_metadata(client, org, admin_headers, project):
    project.meta = {"tags": ["web"]}
    db.session.commit()

    res = client.patch(
        f"{_base(org)}/{project.id}",
        json={"status": "active", "metadata": {"pqgProgram": "Digital"}},
        headers=admin_headers,
    )
    assert res.status_code == 200
    data = res.get_json()
    assert data["status"] == "ACTIVE"
    assert data["metadata"] == {"tags": ["web"], "pqgProgram": "Digital"}


def test_patch_rejects_bad_status(client, org, admin_headers, project):
    res = client.patch(f"{_base(org)}/{project.id}", json={"status": "FINISHED"}, headers=admin_headers)
    assert res.status_code == 400


def test_delete_cascades_and_audits(client, org, admin_headers, project):
    make_task(project)
    make_budget(project)
    project_id = project.id
    res = client.delete(f"{_base(org)}/{project_id}", headers=admin_headers)
    assert res.status_code == 200
    assert db.session.get(Project, project_id) is None
    assert Task.query.filter_by(project_id=project_id).count() == 0
    assert ProjectBudget.query.filter_by(project_id=project_id).count() == 0
    assert AuditLog.query.filter_by(action="project.delete").count() == 1


def test_project_manager_cannot_delete(client, org, member_factory, project):
    pm = member_factory(PROJECT_MANAGER)
    res = client.delete(f"{_base(org)}/{project.id}", headers=auth_headers(pm))
    assert res.status_code == 403


# ── phases ───────────────────────────────────────────────────────────────


def test_phase_create_appends_and_update(client, org, admin_headers, project):
    url = f"{_base(org)}/{project.id}/phases"
    first = client.post(url, json={"name": "Discovery"}, headers=admin_headers).get_json()
    second = client.post(url, json={"name": "Build"}, headers=admin_headers).get_json()
    assert (first["order"], second["order"]) == (0, 1)

    res = client.patch(f"{url}/{second['id']}", json={"status": "in_progress"}, headers=admin_headers)
    assert res.status_code == 200
    assert res.get_json()["status"] == "IN_PROGRESS"

    listed = client.get(url, headers=admin_headers).get_json()
    assert [p["name"] for p in listed["items"]] == ["Discovery", "Build"]


def test_phase_dates_validated(client, org, admin_headers, project):
    res = client.post(
        f"{_base(org)}/{project.id}/phases",
        json={"name": "Bad", "start_date": "2024-05-02", "end_date": "2024-05-01"},
        headers=admin_headers,
    )
    assert res.status_code == 400
