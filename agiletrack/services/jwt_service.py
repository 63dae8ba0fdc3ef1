"""
Bearer tokens and the refresh sessions behind them.

Two HS256 tokens are issued at sign-in:

    access   short lived (JWT_ACCESS_EXPIRES, 15 min default), sent on every call
    refresh  long lived (JWT_REFRESH_EXPIRES, 7 days default), traded for a new pair

Both carry {"sub": "<user id>", "type": ..., "iat", "exp", "jti"}.  Roles are
never embedded: membership is per organization and is looked up on each
request, so a demotion bites on the very next call.

Refresh tokens are only ever persisted as their SHA-256 digest.
"""

import hashlib
import uuid
from datetime import datetime, timedelta, timezone

import jwt
from flask import current_app

from agiletrack.models import db
from agiletrack.models.auth import Session

ALGORITHM = "HS256"
ACCESS = "access"
REFRESH = "refresh"

_LIFETIMES = {
    ACCESS: ("JWT_ACCESS_EXPIRES", 900),
    REFRESH: ("JWT_REFRESH_EXPIRES", 604800),
}


def _signing_key():
    return current_app.config.get("JWT_SECRET_KEY") or current_app.config["SECRET_KEY"]


def token_lifetime(kind: str) -> int:
    """Seconds a token of ``kind`` stays valid."""
    key, fallback = _LIFETIMES[kind]
    return int(current_app.config.get(key, fallback))


def _encode(user_id: int, kind: str) -> tuple[str, datetime]:
    issued = datetime.now(timezone.utc)
    expires = issued + timedelta(seconds=token_lifetime(kind))
    claims = {
        "sub": str(user_id),
        "type": kind,
        "iat": issued,
        "exp": expires,
        "jti": uuid.uuid4().hex,
    }
    return jwt.encode(claims, _signing_key(), algorithm=ALGORITHM), expires


# ── issuing ──────────────────────────────────────────────────────────────


def generate_access_token(user_id: int) -> str:
    token, _ = _encode(user_id, ACCESS)
    return token


def generate_token_pair(user_id: int) -> dict:
    """
    Access + refresh token for ``user_id``.

    ``token_hash`` and ``expires_at`` describe the refresh token and are what
    the caller hands to :func:`create_session`; they never go to the client.
    """
    refresh, refresh_expires = _encode(user_id, REFRESH)
    return {
        "access_token": generate_access_token(user_id),
        "refresh_token": refresh,
        "token_type": "Bearer",
        "expires_in": token_lifetime(ACCESS),
        "token_hash": hash_token(refresh),
        "expires_at": refresh_expires,
    }


# ── verification ─────────────────────────────────────────────────────────


def decode_token(token: str, expected_type: str = ACCESS) -> dict:
    """
    Verify signature, expiry and token kind; return the claims with an int ``sub``.

    Every failure surfaces as a ``jwt.InvalidTokenError`` subclass.
    """
    claims = jwt.decode(token, _signing_key(), algorithms=[ALGORITHM])
    kind = claims.get("type")
    if kind != expected_type:
        raise jwt.InvalidTokenError(f"Expected {expected_type} token, got {kind}")

    subject = claims.get("sub")
    if not isinstance(subject, str) or not subject.isdigit():
        raise jwt.InvalidTokenError("Token subject is not a user id")
    claims["sub"] = int(subject)
    return claims


def decode_access_token(token: str) -> dict:
    return decode_token(token, ACCESS)


def decode_refresh_token(token: str) -> dict:
    return decode_token(token, REFRESH)


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


# ── refresh sessions ─────────────────────────────────────────────────────


def _new_session(user_id, token_hash, expires_at, ip_address, user_agent) -> Session:
    record = Session(
        user_id=user_id,
        token_hash=token_hash,
        expires_at=expires_at,
        ip_address=ip_address,
        user_agent=(user_agent or "")[:500],
    )
    db.session.add(record)
    return record


def create_session(user_id, token_hash, ip_address, user_agent, expires_at) -> Session:
    record = _new_session(user_id, token_hash, expires_at, ip_address, user_agent)
    db.session.commit()
    return record


def get_active_session_by_token(user_id: int, token_hash: str) -> Session | None:
    return Session.query.filter_by(user_id=user_id, token_hash=token_hash, is_active=True).first()


def revoke_session(session: Session) -> None:
    session.is_active = False
    db.session.commit()


def revoke_session_by_token(token_hash: str) -> bool:
    """Deactivate the live session holding ``token_hash``; False when there is none."""
    revoked = (
        Session.query
        .filter_by(token_hash=token_hash, is_active=True)
        .update({"is_active": False}, synchronize_session=False)
    )
    db.session.commit()
    return revoked > 0


def revoke_all_user_sessions(user_id: int) -> None:
    Session.query.filter_by(user_id=user_id, is_active=True).update(
        {"is_active": False}, synchronize_session=False
    )
    db.session.commit()


def rotate_session(old_session, user_id, new_token_hash, new_expires_at, ip_address, user_agent) -> Session:
    """Retire ``old_session`` and open its successor in the same commit."""
    old_session.is_active = False
    old_session.last_used_at = datetime.now(timezone.utc)
    successor = _new_session(user_id, new_token_hash, new_expires_at, ip_address, user_agent)
    db.session.commit()
    return successor
