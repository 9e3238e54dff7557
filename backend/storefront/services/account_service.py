# Overview: Back-office management of admin and shopper accounts.

"""
Account Management Service

Account creation itself lives in auth_service (password policy, bcrypt).
This module lists, edits and retires accounts.

Retiring is a soft delete: the account is deactivated and its sessions
revoked. Orders, reviews and inventory log entries keep pointing at it, so
order history and the stock ledger stay intact. Retiring a shopper also
empties their cart and wishlist.
"""

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..errors import ConflictError, NotFoundError, PermissionDeniedError, ValidationError
from ..models import (
    ADMIN_ROLES,
    Admin,
    Cart,
    CartItem,
    User,
    WishlistItem,
)
from . import session_service
from .concurrency import run_with_retry
from .paging import paginate
from .session_service import Principal

ADMIN_EDITABLE = ("name", "email", "role", "is_active")
USER_EDITABLE = ("name", "email", "admin_id", "is_active")


def _check_fields(data: dict, allowed: tuple[str, ...]) -> None:
    unknown = sorted(set(data) - set(allowed))
    if unknown:
        raise ValidationError(f"Unknown fields: {', '.join(unknown)}", details={"fields": unknown})


def _clean_email(model, email, account_id: int) -> str:
    if not isinstance(email, str) or "@" not in email:
        raise ValidationError("A valid email is required", details={"field": "email"})
    email = email.strip().lower()
    taken = db.session.query(model.id).filter(model.email == email, model.id != account_id).first()
    if taken is not None:
        raise ConflictError("Email already exists", details={"field": "email"})
    return email


def _clean_name(name) -> str:
    if not isinstance(name, str) or not name.strip():
        raise ValidationError("name must be a non-empty string", details={"field": "name"})
    return name.strip()


# =============================================================================
# ADMINS
# =============================================================================

def get_admin(admin_id: int) -> Admin:
    admin = db.session.get(Admin, admin_id)
    if admin is None:
        raise NotFoundError("Admin", admin_id, message="Admin not found")
    return admin


def list_admins(*, page: int = 1, limit: int = 10, include_inactive: bool = False) -> dict:
    q = db.session.query(Admin)
    if not include_inactive:
        q = q.filter(Admin.is_active.is_(True))
    return paginate(q.order_by(Admin.created_at.desc(), Admin.id.desc()), page=page, limit=limit)


def update_admin(admin_id: int, data: dict, *, principal: Principal) -> Admin:
    """
    Admins may edit their own name and email. Changing role or is_active,
    or editing another admin, takes a superadmin.
    """
    _check_fields(data, ADMIN_EDITABLE)
    if not principal.is_superadmin:
        if admin_id != principal.id:
            raise PermissionDeniedError("Only a superadmin can edit other admins")
        if "role" in data or "is_active" in data:
            raise PermissionDeniedError("Only a superadmin can change role or status")

    def _op():
        admin = get_admin(admin_id)
        if "name" in data:
            admin.name = _clean_name(data["name"])
        if "email" in data:
            admin.email = _clean_email(Admin, data["email"], admin.id)
        if "role" in data:
            if data["role"] not in ADMIN_ROLES:
                raise ValidationError(f"role must be one of: {', '.join(ADMIN_ROLES)}", details={"field": "role"})
            admin.role = data["role"]
        if "is_active" in data:
            if not isinstance(data["is_active"], bool):
                raise ValidationError("is_active must be a boolean", details={"field": "is_active"})
            admin.is_active = data["is_active"]
            if not admin.is_active:
                session_service.revoke_all_sessions(admin, commit=False)
        db.session.commit()
        return admin

    return run_with_retry(_op)


def deactivate_admin(admin_id: int, *, principal: Principal) -> Admin:
    if not principal.is_superadmin:
        raise PermissionDeniedError("Only a superadmin can delete admins")
    if admin_id == principal.id:
        raise ValidationError("You cannot delete your own account")

    def _op():
        admin = get_admin(admin_id)
        if not admin.is_active:
            raise NotFoundError("Admin", admin_id, message="Admin not found or already deleted")
        admin.is_active = False
        session_service.revoke_all_sessions(admin, commit=False)
        db.session.commit()
        return admin

    admin = run_with_retry(_op)
    current_app.logger.info("Admin %s deactivated by %s", admin_id, principal.id)
    return admin


# =============================================================================
# SHOPPERS
# =============================================================================

def get_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError("User", user_id, message="User not found")
    return user


def list_users(*, page: int = 1, limit: int = 10, admin_id: int | None = None) -> dict:
    """All shoppers, or only those registered with admin_id."""
    q = db.session.query(User)
    if admin_id is not None:
        q = q.filter(User.admin_id == admin_id)
    return paginate(q.order_by(User.created_at.desc(), User.id.desc()), page=page, limit=limit)


def update_user(user_id: int, data: dict, *, principal: Principal) -> User:
    """Shoppers edit their own name and email; admin_id and is_active are admin-only."""
    _check_fields(data, USER_EDITABLE)
    if not principal.is_admin:
        if user_id != principal.id:
            raise PermissionDeniedError("Not authorized to edit this user")
        if "admin_id" in data or "is_active" in data:
            raise PermissionDeniedError("Only admins can change admin_id or status")

    def _op():
        user = get_user(user_id)
        if "name" in data:
            user.name = _clean_name(data["name"])
        if "email" in data:
            user.email = _clean_email(User, data["email"], user.id)
        if "admin_id" in data:
            if data["admin_id"] is not None:
                get_admin(data["admin_id"])
            user.admin_id = data["admin_id"]
        if "is_active" in data:
            if not isinstance(data["is_active"], bool):
                raise ValidationError("is_active must be a boolean", details={"field": "is_active"})
            user.is_active = data["is_active"]
            if not user.is_active:
                session_service.revoke_all_sessions(user, commit=False)
        db.session.commit()
        return user

    return run_with_retry(_op)


def deactivate_user(user_id: int) -> User:
    """Retire a shopper: deactivate, revoke sessions, empty cart and wishlist."""
    def _op():
        user = get_user(user_id)
        if not user.is_active:
            raise NotFoundError("User", user_id, message="User not found or already deleted")
        user.is_active = False
        session_service.revoke_all_sessions(user, commit=False)

        cart = db.session.query(Cart).filter_by(user_id=user.id).first()
        if cart is not None:
            db.session.query(CartItem).filter_by(cart_id=cart.id).delete(synchronize_session=False)
            db.session.expire(cart, ["items"])
            cart.discount_id = None
        db.session.query(WishlistItem).filter_by(user_id=user.id).delete(synchronize_session=False)
        db.session.commit()
        return user

    user = run_with_retry(_op)
    current_app.logger.info("User %s deactivated", user_id)
    return user
