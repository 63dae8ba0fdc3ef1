"""
Auth API: register, login, refresh rotation, logout, me.
"""

from agiletrack.models.auth import Session
from agiletrack.models.organization import VIEWER
from agiletrack.services import organization_service
from conftest import DEFAULT_PASSWORD, add_member, make_user

PASSWORD = "CorrectHorse9"


def _register(client, **overrides):
    body = {"email": "new.user@example.com", "password": PASSWORD, "name": "New User"}
    body.update(overrides)
    return client.post("/api/v1/auth/register", json=body)


def _login(client, email, password=DEFAULT_PASSWORD):
    return client.post("/api/v1/auth/login", json={"email": email, "password": password})


# ── register ─────────────────────────────────────────────────────────────


def test_register_returns_token_pair(client):
    res = _register(client)
    assert res.status_code == 201
    data = res.get_json()
    assert data["token_type"] == "Bearer"
    assert data["access_token"] and data["refresh_token"]
    assert data["user"]["email"] == "new.user@example.com"
    assert data["user"]["memberships"] == []


def test_register_duplicate_email_conflicts(client):
    _register(client)
    res = _register(client, email="New.User@example.com")
    assert res.status_code == 409


def test_register_short_password_rejected(client):
    res = _register(client, password="short")
    assert res.status_code == 400
    assert "Password" in res.get_json()["error"]


def test_register_invalid_email_rejected(client):
    assert _register(client, email="not-an-email").status_code == 400


def test_register_with_invite_token_activates_account(client, org, admin):
    invite = organization_service.invite_member(
        organization_id=org.id, inviter_id=admin.id, data={"email": "invitee@example.com", "role": VIEWER},
    )
    res = client.post("/api/v1/auth/register", json={
        "invite_token": invite["invite_token"], "password": PASSWORD, "name": "Invitee",
    })
    assert res.status_code == 201
    user = res.get_json()["user"]
    assert user["status"] == "active"
    assert user["memberships"][0]["organization_slug"] == org.slug


def test_register_with_unknown_invite_token(client):
    res = client.post("/api/v1/auth/register", json={"invite_token": "nope", "password": PASSWORD})
    assert res.status_code == 404


def test_non_json_body_is_415(client):
    res = client.post("/api/v1/auth/register", data="email=x", content_type="text/plain")
    assert res.status_code == 415


# ── login ────────────────────────────────────────────────────────────────


def test_login_success(client):
    user = make_user(email="login@example.com")
    res = _login(client, "LOGIN@example.com")
    assert res.status_code == 200
    assert res.get_json()["user"]["id"] == user.id
    assert Session.query.filter_by(user_id=user.id, is_active=True).count() == 1


def test_login_wrong_password(client):
    make_user(email="login@example.com")
    assert _login(client, "login@example.com", "WrongPass1!").status_code == 401


def test_login_unknown_user(client):
    assert _login(client, "ghost@example.com").status_code == 401


def test_login_missing_fields(client):
    assert client.post("/api/v1/auth/login", json={}).status_code == 400


def test_login_inactive_account(client):
    make_user(email="off@example.com", status="inactive")
    assert _login(client, "off@example.com").status_code == 403


# ── refresh / logout ─────────────────────────────────────────────────────


def test_refresh_rotates_session(client):
    make_user(email="rot@example.com")
    refresh_token = _login(client, "rot@example.com").get_json()["refresh_token"]

    res = client.post("/api/v1/auth/refresh", json={"refresh_token": refresh_token})
    assert res.status_code == 200
    assert res.get_json()["access_token"]

    # the old refresh token was revoked by rotation
    again = client.post("/api/v1/auth/refresh", json={"refresh_token": refresh_token})
    assert again.status_code == 401


def test_refresh_rejects_access_token(client):
    make_user(email="rot@example.com")
    access = _login(client, "rot@example.com").get_json()["access_token"]
    res = client.post("/api/v1/auth/refresh", json={"refresh_token": access})
    assert res.status_code == 401


def test_refresh_requires_token(client):
    assert client.post("/api/v1/auth/refresh", json={}).status_code == 400


def test_logout_revokes_refresh_token(client):
    make_user(email="bye@example.com")
    tokens = _login(client, "bye@example.com").get_json()
    res = client.post(
        "/api/v1/auth/logout",
        json={"refresh_token": tokens["refresh_token"]},
        headers={"Authorization": f"Bearer {tokens['access_token']}"},
    )
    assert res.status_code == 200
    assert client.post("/api/v1/auth/refresh", json={"refresh_token": tokens["refresh_token"]}).status_code == 401


# ── me ───────────────────────────────────────────────────────────────────


def test_me_requires_token(client):
    assert client.get("/api/v1/auth/me").status_code == 401


def test_me_rejects_garbage_token(client):
    res = client.get("/api/v1/auth/me", headers={"Authorization": "Bearer not.a.jwt"})
    assert res.status_code == 401


def test_me_lists_memberships_and_operations(client, org, admin_headers):
    res = client.get("/api/v1/auth/me", headers=admin_headers)
    assert res.status_code == 200
    data = res.get_json()
    assert data["user"]["memberships"][0]["role"] == "ORG_ADMIN"
    assert "budget.delete" in data["permissions"][org.slug]


def test_me_for_viewer_has_no_write_operations(client, org):
    viewer = add_member(org, VIEWER)
    tokens = _login(client, viewer.email).get_json()
    res = client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {tokens['access_token']}"})
    ops = res.get_json()["permissions"][org.slug]
    assert "project.create" not in ops
    assert "project.view" in ops
