# Overview: Bearer session tokens and the authenticated principal handed to every core call.

"""
Session Token Management

Tokens are 32 random bytes (hex), returned to the client once and stored
only as a SHA-256 digest. Each session belongs to one principal, either an
Admin (role ADMIN / SUPERADMIN) or a User (role USER), and expires after
SESSION_TTL_HOURS. Logout revokes it.
"""

import hashlib
import secrets
from dataclasses import dataclass
from datetime import timedelta

from flask import current_app

from ..extensions import db
from ..models import Admin, SessionToken, User, ROLE_USER, ADMIN_ROLES, ROLE_SUPERADMIN
from ..time_utils import utcnow

PRINCIPAL_ADMIN = "ADMIN"
PRINCIPAL_USER = "USER"


@dataclass(frozen=True)
class Principal:
    """Authenticated caller: id in the admins or users table, plus role."""
    id: int
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role in ADMIN_ROLES

    @property
    def is_superadmin(self) -> bool:
        return self.role == ROLE_SUPERADMIN


def generate_token() -> str:
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def principal_for(account) -> Principal:
    if isinstance(account, Admin):
        return Principal(id=account.id, role=account.role)
    return Principal(id=account.id, role=ROLE_USER)


def create_session(account) -> tuple[SessionToken, str]:
    """
    Open a session for an Admin or User. Returns (record, plaintext_token);
    only the hash is persisted.
    """
    if not account.is_active:
        raise ValueError("Account is deactivated")

    plaintext_token = generate_token()
    now = utcnow()
    ttl = timedelta(hours=current_app.config.get("SESSION_TTL_HOURS", 24))

    session = SessionToken(
        principal_type=PRINCIPAL_ADMIN if isinstance(account, Admin) else PRINCIPAL_USER,
        principal_id=account.id,
        token_hash=hash_token(plaintext_token),
        created_at=now,
        last_used_at=now,
        expires_at=now + ttl,
        is_revoked=False,
    )
    db.session.add(session)
    db.session.commit()
    return session, plaintext_token


def validate_session(token: str) -> Principal | None:
    """
    Resolve a bearer token to its Principal.

    Returns None if the token is unknown, revoked, expired, or its account
    is gone or deactivated.
    """
    session = db.session.query(SessionToken).filter_by(token_hash=hash_token(token)).first()
    if session is None or session.is_revoked:
        return None

    now = utcnow()
    if session.expires_at <= now:
        return None

    model = Admin if session.principal_type == PRINCIPAL_ADMIN else User
    account = db.session.get(model, session.principal_id)
    if account is None or not account.is_active:
        return None

    session.last_used_at = now
    db.session.commit()
    return principal_for(account)


def revoke_session(token: str) -> bool:
    session = db.session.query(SessionToken).filter_by(token_hash=hash_token(token)).first()
    if session is None or session.is_revoked:
        return False
    session.is_revoked = True
    session.revoked_at = utcnow()
    db.session.commit()
    return True


def revoke_all_sessions(account, *, commit: bool = True) -> int:
    """
    Revoke every active session of an Admin or User; returns how many.

    Used when an account is deactivated so it is signed out everywhere.
    """
    now = utcnow()
    sessions = db.session.query(SessionToken).filter_by(
        principal_type=PRINCIPAL_ADMIN if isinstance(account, Admin) else PRINCIPAL_USER,
        principal_id=account.id,
        is_revoked=False,
    ).all()

    for session in sessions:
        session.is_revoked = True
        session.revoked_at = now

    if commit:
        db.session.commit()
    return len(sessions)
