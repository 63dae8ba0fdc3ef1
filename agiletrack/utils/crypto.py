"""
Crypto utilities: bcrypt password hashing and random secrets.

Stored hashes use the ``$2a$`` / ``$2b$`` bcrypt formats, which are also
what bcryptjs-based clients produce, so imported user records verify as-is.
"""

import secrets

import bcrypt


def hash_password(plain_password: str) -> str:
    """Hash a plain-text password with bcrypt (12 rounds)."""
    salt = bcrypt.gensalt(rounds=12)
    return bcrypt.hashpw(plain_password.encode("utf-8"), salt).decode("utf-8")


def verify_password(plain_password: str, password_hash: str | None) -> bool:
    """Verify a plain-text password against its bcrypt hash."""
    if not password_hash or not password_hash.startswith(("$2a$", "$2b$", "$2y$")):
        return False
    return bcrypt.checkpw(
        plain_password.encode("utf-8"),
        password_hash.encode("utf-8"),
    )


def generate_invite_token() -> str:
    """64 hex chars, single-use, stored on the invited user row."""
    return secrets.token_hex(32)
