"""
Tenant isolation + role enforcement at the HTTP layer.

    no token                      → 401
    not a member / unknown slug   → 404 (indistinguishable)
    member, role not allowed      → 403
    resource of another tenant    → 404
"""

import pytest

from agiletrack.models.organization import (
    DONOR_SPONSOR,
    MONITOR,
    ORG_ADMIN,
    PROJECT_MANAGER,
    TEAM_MEMBER,
    VIEWER,
)
from conftest import add_member, auth_headers, make_budget, make_org, make_project, make_task, make_user


def test_no_token_is_401(client, org):
    res = client.get(f"/api/v1/organizations/{org.slug}/projects")
    assert res.status_code == 401
    assert res.get_json()["code"] == "ERR_UNAUTHENTICATED"


def test_non_member_is_404(client, org, admin):
    outsider = make_user()
    res = client.get(f"/api/v1/organizations/{org.slug}/projects", headers=auth_headers(outsider))
    assert res.status_code == 404


def test_unknown_org_is_404(client, admin_headers):
    res = client.get("/api/v1/organizations/no-such-org/projects", headers=admin_headers)
    assert res.status_code == 404


def test_non_member_and_unknown_org_look_the_same(client, org, admin):
    headers = auth_headers(make_user())
    a = client.get(f"/api/v1/organizations/{org.slug}", headers=headers)
    b = client.get("/api/v1/organizations/no-such-org", headers=headers)
    assert a.status_code == b.status_code == 404
    assert a.get_json() == b.get_json()


def test_inactive_user_token_is_401(client, org):
    user = add_member(org, ORG_ADMIN, user=make_user(status="inactive"))
    res = client.get(f"/api/v1/organizations/{org.slug}", headers=auth_headers(user))
    assert res.status_code == 401


@pytest.mark.parametrize(
    "role,method,path_tpl,expected",
    [
        (VIEWER, "post", "/projects", 403),
        (TEAM_MEMBER, "post", "/projects", 403),
        (MONITOR, "get", "/budgets", 403),
        (TEAM_MEMBER, "get", "/expenses", 403),
        (DONOR_SPONSOR, "get", "/budgets", 200),
        (PROJECT_MANAGER, "get", "/budgets", 200),
        (VIEWER, "get", "/reports/portfolio/export", 403),
        (MONITOR, "get", "/reports/portfolio/export", 200),
        (VIEWER, "get", "/dashboard", 200),
        (PROJECT_MANAGER, "post", "/invites", 403),
        (VIEWER, "patch", "", 403),
    ],
)
def test_role_gates(client, org, admin, role, method, path_tpl, expected):
    user = add_member(org, role)
    res = getattr(client, method)(
        f"/api/v1/organizations/{org.slug}{path_tpl}",
        json={} if method != "get" else None,
        headers=auth_headers(user),
    )
    assert res.status_code == expected
    if expected == 403:
        assert res.get_json()["code"] == "ERR_FORBIDDEN"


def test_project_of_other_tenant_is_404(client, org, admin_headers):
    foreign = make_project(make_org())
    res = client.get(f"/api/v1/organizations/{org.slug}/projects/{foreign.id}", headers=admin_headers)
    assert res.status_code == 404


def test_task_of_other_tenant_is_404(client, org, admin_headers):
    foreign_task = make_task(make_project(make_org()))
    base = f"/api/v1/organizations/{org.slug}/tasks/{foreign_task.id}"
    assert client.get(base, headers=admin_headers).status_code == 404
    assert client.patch(base, json={"title": "hijack"}, headers=admin_headers).status_code == 404
    assert client.delete(base, headers=admin_headers).status_code == 404


def test_budget_of_other_tenant_is_404(client, org, admin_headers):
    foreign_budget = make_budget(make_project(make_org()))
    res = client.patch(
        f"/api/v1/organizations/{org.slug}/budgets/{foreign_budget.id}",
        json={"allocated_amount": 1},
        headers=admin_headers,
    )
    assert res.status_code == 404


def test_member_of_one_org_cannot_reach_another(client, org, admin, admin_headers):
    other = make_org(slug="other-co")
    add_member(other, ORG_ADMIN)
    res = client.get(f"/api/v1/organizations/{other.slug}/dashboard", headers=admin_headers)
    assert res.status_code == 404


def test_health_needs_no_token(client):
    res = client.get("/api/v1/health")
    assert res.status_code == 200
    assert res.get_json()["checks"]["database"]["status"] == "ok"


def test_security_headers_present(client):
    res = client.get("/api/v1/health")
    assert res.headers.get("X-Content-Type-Options") == "nosniff"
    assert res.headers.get("X-Request-ID")
