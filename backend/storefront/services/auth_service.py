# Overview: Account creation and password verification (bcrypt).

"""
Authentication Service

Passwords are hashed with bcrypt (cost factor 12) and must be at least
8 characters with a letter and a digit. Email addresses are unique per
account table and compared case-insensitively.
"""

import re

import bcrypt

from ..extensions import db
from ..errors import ConflictError, ValidationError
from ..models import Admin, User, ADMIN_ROLES, ROLE_ADMIN


class PasswordValidationError(ValidationError):
    """Raised when password doesn't meet strength requirements."""


def validate_password_strength(password: str) -> None:
    if not password or len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")
    if not re.search(r"[A-Za-z]", password):
        raise PasswordValidationError("Password must contain at least one letter")
    if not re.search(r"\d", password):
        raise PasswordValidationError("Password must contain at least one digit")


def hash_password(password: str, *, rounds: int = 12) -> str:
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=rounds)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # Malformed hash in the database
        return False


def _normalize_email(email: str) -> str:
    email = (email or "").strip().lower()
    if "@" not in email:
        raise ValidationError("A valid email is required", details={"field": "email"})
    return email


def create_admin(*, name: str, email: str, password: str, role: str = ROLE_ADMIN, rounds: int = 12) -> Admin:
    if role not in ADMIN_ROLES:
        raise ValidationError(f"role must be one of: {', '.join(ADMIN_ROLES)}", details={"field": "role"})
    email = _normalize_email(email)
    if db.session.query(Admin).filter_by(email=email).first():
        raise ConflictError("An admin with this email already exists")

    admin = Admin(name=name, email=email, password_hash=hash_password(password, rounds=rounds), role=role)
    db.session.add(admin)
    db.session.commit()
    return admin


def create_user(*, name: str, email: str, password: str, admin_id: int | None = None, rounds: int = 12) -> User:
    email = _normalize_email(email)
    if db.session.query(User).filter_by(email=email).first():
        raise ConflictError("A user with this email already exists")

    user = User(name=name, email=email, password_hash=hash_password(password, rounds=rounds), admin_id=admin_id)
    db.session.add(user)
    db.session.commit()
    return user


def authenticate(email: str, password: str, *, as_admin: bool = False):
    """Return the active Admin/User matching the credentials, or None."""
    model = Admin if as_admin else User
    account = db.session.query(model).filter_by(email=(email or "").strip().lower()).first()
    if account is None or not account.is_active:
        return None
    if not verify_password(password or "", account.password_hash):
        return None
    return account
