"""
Account sign-up, sign-in and token lifecycle under /api/v1/auth.

    POST /register   new account, or activation of an invited one
    POST /login      email + password
    POST /refresh    rotate a refresh token into a fresh pair
    POST /logout     revoke one refresh token, or every session of the bearer
    GET  /me         caller, memberships and the operations each role grants

register/login/refresh answer with {access_token, refresh_token, token_type,
expires_in}; register and login also embed the user.
"""

import jwt as pyjwt
from flask import Blueprint, g, jsonify, request

from agiletrack.blueprints import json_body
from agiletrack.core.exceptions import AuthenticationError, ValidationError
from agiletrack.middleware.permission_required import login_required
from agiletrack.services import jwt_service
from agiletrack.services.permission_service import get_role_operations
from agiletrack.services.user_service import (
    UserServiceError,
    accept_invite,
    authenticate_user,
    get_user_by_id,
    register_user,
)

auth_bp = Blueprint("auth", __name__, url_prefix="/api/v1/auth")


def _client_info():
    return request.remote_addr, request.headers.get("User-Agent", "")


def _token_body(tokens, user=None):
    body = {key: tokens[key] for key in ("access_token", "refresh_token", "token_type", "expires_in")}
    if user is not None:
        body["user"] = user.to_dict(include_memberships=True)
    return body


def _sign_in(user, status_code=200):
    tokens = jwt_service.generate_token_pair(user.id)
    ip, agent = _client_info()
    jwt_service.create_session(user.id, tokens["token_hash"], ip, agent, tokens["expires_at"])
    return jsonify(_token_body(tokens, user)), status_code


def _user_error(exc: UserServiceError):
    return jsonify({"error": exc.message}), exc.status_code


@auth_bp.route("/register", methods=["POST"])
def register():
    """
    Body: {"email", "password", "name"} for a fresh account, or
          {"invite_token", "password", "name"} to activate an invitation.
    """
    data = json_body()
    try:
        if data.get("invite_token"):
            user = accept_invite(data["invite_token"], data.get("password", ""), data.get("name", ""))
        else:
            user = register_user(data.get("email", ""), data.get("password", ""), data.get("name", ""))
    except UserServiceError as e:
        return _user_error(e)
    return _sign_in(user, 201)


@auth_bp.route("/login", methods=["POST"])
def login():
    data = json_body()
    email = (data.get("email") or "").strip().lower()
    password = data.get("password") or ""
    if not (email and password):
        raise ValidationError("Email and password are required")

    try:
        user = authenticate_user(email, password)
    except UserServiceError as e:
        return _user_error(e)
    return _sign_in(user)


def _claim_session(refresh_token):
    """Resolve a presented refresh token to its live session and active user."""
    try:
        user_id = jwt_service.decode_refresh_token(refresh_token)["sub"]
    except pyjwt.PyJWTError as e:
        raise AuthenticationError("Invalid or expired refresh token") from e

    session = jwt_service.get_active_session_by_token(user_id, jwt_service.hash_token(refresh_token))
    if session is None:
        raise AuthenticationError("Session not found or revoked")

    user = get_user_by_id(user_id)
    if session.is_expired or user is None or user.status != "active":
        jwt_service.revoke_session(session)
        raise AuthenticationError("Session expired" if session.is_expired else "User inactive or not found")
    return session, user


@auth_bp.route("/refresh", methods=["POST"])
def refresh():
    refresh_token = json_body().get("refresh_token")
    if not refresh_token:
        raise ValidationError("Refresh token is required")

    session, user = _claim_session(refresh_token)
    tokens = jwt_service.generate_token_pair(user.id)
    ip, agent = _client_info()
    # the presented token is dead from here on; replaying it fails the session lookup
    jwt_service.rotate_session(session, user.id, tokens["token_hash"], tokens["expires_at"], ip, agent)
    return jsonify(_token_body(tokens)), 200


@auth_bp.route("/logout", methods=["POST"])
def logout():
    refresh_token = json_body().get("refresh_token")
    if refresh_token:
        jwt_service.revoke_session_by_token(jwt_service.hash_token(refresh_token))
    elif getattr(g, "jwt_user_id", None):
        jwt_service.revoke_all_user_sessions(g.jwt_user_id)
    return jsonify({"message": "Logged out successfully"}), 200


@auth_bp.route("/me", methods=["GET"])
@login_required
def me():
    user = g.current_user
    return jsonify({
        "user": user.to_dict(include_memberships=True),
        "permissions": {m.organization.slug: get_role_operations(m.role) for m in user.memberships},
    }), 200
