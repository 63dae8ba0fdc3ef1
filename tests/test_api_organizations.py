"""
Organizations & members over HTTP.
"""

from agiletrack.models.organization import ORG_ADMIN, PROJECT_MANAGER, VIEWER
from conftest import add_member, auth_headers, make_user, membership_of

BASE = "/api/v1/organizations"


def test_create_and_list(client):
    user = make_user()
    headers = auth_headers(user)
    res = client.post(BASE, json={"name": "Helios Labs", "slug": "helios"}, headers=headers)
    assert res.status_code == 201
    assert res.get_json()["role"] == ORG_ADMIN

    listed = client.get(BASE, headers=headers).get_json()
    assert listed["total"] == 1
    assert listed["items"][0]["slug"] == "helios"


def test_create_duplicate_slug_is_400(client, org, admin_headers):
    res = client.post(BASE, json={"name": "Copycat", "slug": org.slug}, headers=admin_headers)
    assert res.status_code == 400


def test_detail_includes_role_and_counts(client, org, admin_headers):
    data = client.get(f"{BASE}/{org.slug}", headers=admin_headers).get_json()
    assert data["role"] == ORG_ADMIN
    assert data["member_count"] == 1


def test_patch_merges_settings_and_keeps_slug(client, org, admin_headers):
    res = client.patch(
        f"{BASE}/{org.slug}", json={"name": "Acme Global", "settings": {"theme": "dark"}}, headers=admin_headers,
    )
    assert res.status_code == 200
    assert res.get_json()["settings"] == {"theme": "dark"}

    res = client.patch(f"{BASE}/{org.slug}", json={"slug": "renamed"}, headers=admin_headers)
    assert res.status_code == 400


def test_members_listing(client, org, admin_headers, member_factory):
    member_factory(VIEWER)
    data = client.get(f"{BASE}/{org.slug}/members", headers=admin_headers).get_json()
    assert data["total"] == 2
    assert {m["role"] for m in data["items"]} == {ORG_ADMIN, VIEWER}


def test_role_change_and_removal(client, org, admin_headers, member_factory):
    user = member_factory(VIEWER)
    member_id = membership_of(org, user).id

    res = client.patch(f"{BASE}/{org.slug}/members/{member_id}", json={"role": PROJECT_MANAGER},
                       headers=admin_headers)
    assert res.status_code == 200
    assert res.get_json()["role"] == PROJECT_MANAGER

    assert client.delete(f"{BASE}/{org.slug}/members/{member_id}", headers=admin_headers).status_code == 200
    assert client.get(f"{BASE}/{org.slug}", headers=auth_headers(user)).status_code == 404


def test_last_admin_protected_over_http(client, org, admin, admin_headers):
    member_id = membership_of(org, admin).id
    res = client.patch(f"{BASE}/{org.slug}/members/{member_id}", json={"role": VIEWER}, headers=admin_headers)
    assert res.status_code == 400
    assert client.delete(f"{BASE}/{org.slug}/members/{member_id}", headers=admin_headers).status_code == 400


def test_invite_returns_token_for_new_account(client, org, admin_headers):
    res = client.post(f"{BASE}/{org.slug}/invites", json={"email": "fresh@example.com", "role": "VIEWER"},
                      headers=admin_headers)
    assert res.status_code == 201
    data = res.get_json()
    assert data["new_account"] is True
    assert len(data["invite_token"]) == 64


def test_second_admin_can_demote_first(client, org, admin):
    second = add_member(org, ORG_ADMIN)
    res = client.patch(
        f"{BASE}/{org.slug}/members/{membership_of(org, admin).id}",
        json={"role": VIEWER},
        headers=auth_headers(second),
    )
    assert res.status_code == 200
