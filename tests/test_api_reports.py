"""
Progress reports, the portfolio roll-up and its Excel/CSV export.
"""

import csv
import io

from openpyxl import load_workbook

from agiletrack.models.organization import MONITOR, TEAM_MEMBER
from conftest import auth_headers, make_budget, make_project, make_task

XLSX = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def _url(org, path):
    return f"/api/v1/organizations/{org.slug}{path}"


def _file_report(client, org, project, headers, **overrides):
    body = {"title": "Week 23", "report_type": "weekly", "content": {"summary": "On track"}}
    body.update(overrides)
    return client.post(_url(org, f"/projects/{project.id}/progress-reports"), json=body, headers=headers)


# ── progress reports ─────────────────────────────────────────────────────


def test_report_freezes_metrics_snapshot(client, org, admin_headers, project):
    make_task(project, status="DONE")
    make_task(project)
    res = _file_report(client, org, project, admin_headers)
    assert res.status_code == 201
    data = res.get_json()
    assert data["status"] == "SUBMITTED"
    assert data["submitted_at"] is not None
    assert data["content"]["summary"] == "On track"
    snapshot = data["content"]["metrics_snapshot"]
    assert snapshot["total_tasks"] == 2
    assert snapshot["task_completion_rate"] == 50.0
    assert snapshot["health"] == "YELLOW"


def test_draft_report_is_not_submitted(client, org, admin_headers, project):
    data = _file_report(client, org, project, admin_headers, draft=True).get_json()
    assert data["status"] == "DRAFT"
    assert data["submitted_at"] is None


def test_monitor_can_file_team_member_cannot(client, org, member_factory, project):
    monitor = member_factory(MONITOR)
    assert _file_report(client, org, project, auth_headers(monitor)).status_code == 201
    tm = member_factory(TEAM_MEMBER)
    assert _file_report(client, org, project, auth_headers(tm)).status_code == 403


def test_report_period_validated(client, org, admin_headers, project):
    res = _file_report(client, org, project, admin_headers, period_start="2024-06-10", period_end="2024-06-01")
    assert res.status_code == 400


def test_approve_once(client, org, admin, admin_headers, project):
    report = _file_report(client, org, project, admin_headers).get_json()
    url = _url(org, f"/progress-reports/{report['id']}/approve")

    res = client.post(url, json={"comment": "Thanks"}, headers=admin_headers)
    assert res.status_code == 200
    data = res.get_json()
    assert data["status"] == "APPROVED"
    assert data["approver"]["id"] == admin.id
    assert data["review_comment"] == "Thanks"

    assert client.post(url, json={}, headers=admin_headers).status_code == 409
    reject = client.post(_url(org, f"/progress-reports/{report['id']}/reject"), json={}, headers=admin_headers)
    assert reject.status_code == 409


def test_draft_cannot_be_approved(client, org, admin_headers, project):
    report = _file_report(client, org, project, admin_headers, draft=True).get_json()
    res = client.post(_url(org, f"/progress-reports/{report['id']}/approve"), json={}, headers=admin_headers)
    assert res.status_code == 409


def test_draft_submit_then_approve(client, org, admin_headers, project):
    report = _file_report(client, org, project, admin_headers, draft=True).get_json()
    assert report["content"]["metrics_snapshot"]["total_tasks"] == 0
    make_task(project, status="DONE")

    res = client.post(_url(org, f"/progress-reports/{report['id']}/submit"), headers=admin_headers)
    assert res.status_code == 200
    data = res.get_json()
    assert data["status"] == "SUBMITTED"
    assert data["submitted_at"] is not None
    assert data["content"]["summary"] == "On track"
    assert data["content"]["metrics_snapshot"]["total_tasks"] == 1

    approve = client.post(_url(org, f"/progress-reports/{report['id']}/approve"), json={}, headers=admin_headers)
    assert approve.status_code == 200
    assert approve.get_json()["status"] == "APPROVED"


def test_submit_only_once(client, org, admin_headers, project):
    report = _file_report(client, org, project, admin_headers, draft=True).get_json()
    url = _url(org, f"/progress-reports/{report['id']}/submit")
    assert client.post(url, headers=admin_headers).status_code == 200
    again = client.post(url, headers=admin_headers)
    assert again.status_code == 409
    assert again.get_json()["code"] == "ERR_CONFLICT_STATE"


def test_team_member_cannot_submit(client, org, admin_headers, member_factory, project):
    report = _file_report(client, org, project, admin_headers, draft=True).get_json()
    tm = member_factory(TEAM_MEMBER)
    res = client.post(_url(org, f"/progress-reports/{report['id']}/submit"), headers=auth_headers(tm))
    assert res.status_code == 403


def test_list_reports_by_status(client, org, admin_headers, project):
    _file_report(client, org, project, admin_headers)
    _file_report(client, org, project, admin_headers, draft=True)
    url = _url(org, f"/projects/{project.id}/progress-reports")
    assert client.get(url, headers=admin_headers).get_json()["total"] == 2
    assert client.get(url + "?status=draft", headers=admin_headers).get_json()["total"] == 1
    assert client.get(url + "?status=bogus", headers=admin_headers).status_code == 400


# ── portfolio ────────────────────────────────────────────────────────────


def _seed_portfolio(org, admin):
    green = make_project(org, admin, name="Green Field", meta={"pqgProgram": "Health"})
    for _ in range(4):
        make_task(green, status="DONE")
    make_budget(green, allocated=1000, spent=100)

    red = make_project(org, admin, name="Red Zone", status="ON_HOLD")
    make_task(red)
    return green, red


def test_portfolio_summary(client, org, admin, admin_headers):
    _seed_portfolio(org, admin)
    data = client.get(_url(org, "/reports/portfolio"), headers=admin_headers).get_json()

    assert [p["project_name"] for p in data["projects"]] == ["Green Field", "Red Zone"]
    green, red = data["projects"]
    assert green["health"] == "GREEN"
    assert green["pqg"]["program"] == "Health"
    assert red["health"] == "RED"
    assert red["pqg"] is None

    summary = data["summary"]
    assert summary["total_projects"] == 2
    assert summary["active_projects"] == 1
    assert summary["total_tasks"] == 5
    assert summary["health_distribution"] == {"GREEN": 1, "YELLOW": 0, "RED": 1}


def test_portfolio_status_filter(client, org, admin, admin_headers):
    _seed_portfolio(org, admin)
    data = client.get(_url(org, "/reports/portfolio?status=on_hold"), headers=admin_headers).get_json()
    assert [p["project_name"] for p in data["projects"]] == ["Red Zone"]


def test_export_excel(client, org, admin, admin_headers):
    _seed_portfolio(org, admin)
    res = client.get(_url(org, "/reports/portfolio/export"), headers=admin_headers)
    assert res.status_code == 200
    assert res.mimetype == XLSX
    disposition = res.headers["Content-Disposition"]
    assert disposition.startswith("attachment; filename=portfolio_acme_")
    assert disposition.endswith(".xlsx")

    wb = load_workbook(io.BytesIO(res.data))
    assert wb.sheetnames == ["Summary", "Projects"]
    rows = list(wb["Projects"].iter_rows(values_only=True))
    assert rows[0][0] == "Project"
    assert [r[0] for r in rows[1:]] == ["Green Field", "Red Zone"]
    assert wb["Summary"]["A1"].value == "Portfolio Report: Acme Delivery"


def test_export_csv(client, org, admin, admin_headers):
    _seed_portfolio(org, admin)
    res = client.get(_url(org, "/reports/portfolio/export?format=CSV"), headers=admin_headers)
    assert res.status_code == 200
    assert res.mimetype == "text/csv"
    assert res.headers["Content-Disposition"].endswith(".csv")

    rows = list(csv.reader(io.StringIO(res.get_data(as_text=True))))
    assert rows[0][:4] == ["Project", "Status", "Priority", "Health"]
    assert rows[1][0] == "Green Field"
    assert len(rows) == 3


def test_export_unsupported_format(client, org, admin_headers):
    res = client.get(_url(org, "/reports/portfolio/export?format=pdf"), headers=admin_headers)
    assert res.status_code == 400
    assert "Unsupported format" in res.get_json()["error"]


def test_export_empty_portfolio(client, org, admin_headers):
    res = client.get(_url(org, "/reports/portfolio/export?format=csv"), headers=admin_headers)
    rows = list(csv.reader(io.StringIO(res.get_data(as_text=True))))
    assert len(rows) == 1
