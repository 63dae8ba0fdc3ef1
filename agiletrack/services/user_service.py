"""
User Service — account creation, authentication and invitation acceptance.

Users are global: one account can belong to several organizations
through ``OrganizationMember`` rows (see organization_service).
"""

import logging
from datetime import datetime, timedelta, timezone

from email_validator import EmailNotValidError, validate_email
from flask import current_app

from agiletrack.models import db
from agiletrack.models.auth import User
from agiletrack.utils.crypto import generate_invite_token, hash_password, verify_password

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 8


class UserServiceError(Exception):
    """Custom exception for user service errors."""
    def __init__(self, message, status_code=400):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


def normalize_email(email: str) -> str:
    """Validate syntax (no DNS lookups) and return the lower-cased address."""
    try:
        valid = validate_email(email or "", check_deliverability=False)
    except EmailNotValidError as e:
        raise UserServiceError(f"Invalid email: {e}") from e
    return valid.normalized.lower()


def _check_password(password: str) -> None:
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        raise UserServiceError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")


# ═══════════════════════════════════════════════════════════════
# Lookup
# ═══════════════════════════════════════════════════════════════
def get_user_by_id(user_id: int) -> User | None:
    return db.session.get(User, user_id)


def get_user_by_email(email: str) -> User | None:
    return User.query.filter_by(email=email.strip().lower()).first()


# ═══════════════════════════════════════════════════════════════
# Registration & invites
# ═══════════════════════════════════════════════════════════════
def register_user(email: str, password: str, name: str | None = None) -> User:
    """Self-service sign-up. The new user belongs to no organization yet."""
    email = normalize_email(email)
    _check_password(password)

    existing = get_user_by_email(email)
    if existing and existing.status == "invited":
        raise UserServiceError("This email has a pending invitation. Use the invite link to register.", 409)
    if existing:
        raise UserServiceError("An account with this email already exists", 409)

    user = User(
        email=email,
        name=(name or "").strip() or None,
        password_hash=hash_password(password),
        status="active",
    )
    db.session.add(user)
    db.session.commit()
    logger.info("User registered: id=%s", user.id)
    return user


def create_invited_user(email: str, name: str | None = None) -> User:
    """Create a placeholder account for an invitee. Flushes; caller commits."""
    days = current_app.config.get("INVITE_EXPIRES_DAYS", 7)
    user = User(
        email=email,
        name=name,
        status="invited",
        invite_token=generate_invite_token(),
        invite_expires_at=datetime.now(timezone.utc) + timedelta(days=days),
    )
    db.session.add(user)
    db.session.flush()
    return user


def accept_invite(invite_token: str, password: str, name: str | None = None) -> User:
    """Accept an invitation — set password, activate user."""
    _check_password(password)
    user = User.query.filter_by(invite_token=invite_token, status="invited").first()
    if not user:
        raise UserServiceError("Invalid or expired invite token", 404)

    if user.invite_expires_at and datetime.now(timezone.utc) > user.invite_expires_at.replace(tzinfo=timezone.utc):
        raise UserServiceError("Invite token has expired", 400)

    user.password_hash = hash_password(password)
    user.status = "active"
    user.invite_token = None
    user.invite_expires_at = None
    if name:
        user.name = name.strip()
    db.session.commit()
    logger.info("Invite accepted: user_id=%s", user.id)
    return user


# ═══════════════════════════════════════════════════════════════
# Authentication
# ═══════════════════════════════════════════════════════════════
def authenticate_user(email: str, password: str) -> User:
    """Authenticate a user with email + password. Returns User on success."""
    user = get_user_by_email(email or "")
    if not user:
        raise UserServiceError("Invalid email or password", 401)

    if user.status != "active":
        raise UserServiceError(f"Account is {user.status}", 403)

    if not verify_password(password or "", user.password_hash):
        raise UserServiceError("Invalid email or password", 401)

    user.last_login_at = datetime.now(timezone.utc)
    db.session.commit()
    return user
