# Overview: Flask API routes for managing admin and shopper accounts.

# backend/storefront/routes/accounts.py
"""
Account management routes.

SECURITY:
- Creating or deleting admins takes a superadmin session.
- Any admin may list accounts and manage shoppers.
- Shoppers may read and edit (name, email) only their own profile.
"""

from flask import Blueprint, g, request

from ..decorators import require_auth, require_role, require_self_or_admin
from ..errors import StorefrontError, ValidationError
from ..models import ADMIN_ROLES, ROLE_ADMIN, ROLE_SUPERADMIN
from ..responses import domain_error_response, internal_error_response, success_response
from ..services import account_service, auth_service
from ..validation import coerce_int, optional_id, paging_args, require_json_object


admins_bp = Blueprint("admins", __name__, url_prefix="/api/admins")
users_bp = Blueprint("users", __name__, url_prefix="/api/users")


def _required_text(payload: dict, name: str) -> str:
    value = payload.get(name)
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{name} is required", details={"field": name})
    return value.strip()


def _paged(key: str, result: dict) -> dict:
    return {key: [row.to_dict() for row in result["data"]], "pagination": result["pagination"]}


# =============================================================================
# ADMINS
# =============================================================================

@admins_bp.get("/")
@require_auth
@require_role(*ADMIN_ROLES)
def list_admins_route():
    """Query: page, limit, include_inactive."""
    try:
        page, limit = paging_args(request.args)
        include_inactive = request.args.get("include_inactive", "false").lower() in ("1", "true", "yes")
        result = account_service.list_admins(page=page, limit=limit, include_inactive=include_inactive)
        return success_response(_paged("admins", result), "Admins fetched successfully")
    except StorefrontError as e:
        return domain_error_response(e)
    except Exception as e:
        return internal_error_response(e, "Failed to list admins")


@admins_bp.post("/")
@require_auth
@require_role(ROLE_SUPERADMIN)
def create_admin_route():
    """Body: {name, email, password, role?}"""
    try:
        payload = require_json_object(request.get_json(silent=True))
        admin = auth_service.create_admin(
            name=_required_text(payload, "name"),
            email=payload.get("email"),
            password=payload.get("password"),
            role=payload.get("role") or ROLE_ADMIN,
        )
        return success_response(admin.to_dict(), "Admin created", 201)
    except StorefrontError as e:
        return domain_error_response(e)
    except Exception as e:
        return internal_error_response(e, "Failed to create admin")


@admins_bp.get("/me")
@require_auth
@require_role(*ADMIN_ROLES)
def admin_profile_route():
    try:
        admin = account_service.get_admin(g.principal.id)
        return success_response(admin.to_dict(), "Admin profile fetched")
    except StorefrontError as e:
        return domain_error_response(e)
    except Exception as e:
        return internal_error_response(e, "Failed to fetch admin profile")


@admins_bp.get("/<int:admin_id>")
@require_auth
@require_role(*ADMIN_ROLES)
def get_admin_route(admin_id: int):
    try:
        admin = account_service.get_admin(admin_id)
        return success_response(admin.to_dict(), "Admin found")
    except StorefrontError as e:
        return domain_error_response(e)
    except Exception as e:
        return internal_error_response(e, "Failed to fetch admin")


@admins_bp.patch("/<int:admin_id>")
@require_auth
@require_role(*ADMIN_ROLES)
def update_admin_route(admin_id: int):
    """Body: {name?, email?, role?, is_active?}; role and is_active need a superadmin."""
    try:
        payload = require_json_object(request.get_json(silent=True))
        admin = account_service.update_admin(admin_id, payload, principal=g.principal)
        return success_response(admin.to_dict(), "Admin updated")
    except StorefrontError as e:
        return domain_error_response(e)
    except Exception as e:
        return internal_error_response(e, "Failed to update admin")


@admins_bp.delete("/<int:admin_id>")
@require_auth
@require_role(*ADMIN_ROLES)
def delete_admin_route(admin_id: int):
    try:
        admin = account_service.deactivate_admin(admin_id, principal=g.principal)
        return success_response(admin.to_dict(), "Admin deleted successfully")
    except StorefrontError as e:
        return domain_error_response(e)
    except Exception as e:
        return internal_error_response(e, "Failed to delete admin")


@admins_bp.get("/<int:admin_id>/users")
@require_auth
@require_role(*ADMIN_ROLES)
def admin_users_route(admin_id: int):
    try:
        page, limit = paging_args(request.args)
        account_service.get_admin(admin_id)
        result = account_service.list_users(page=page, limit=limit, admin_id=admin_id)
        return success_response(_paged("users", result), "Users fetched successfully")
    except StorefrontError as e:
        return domain_error_response(e)
    except Exception as e:
        return internal_error_response(e, "Failed to list admin users")


# =============================================================================
# SHOPPERS
# =============================================================================

@users_bp.get("/")
@require_auth
@require_role(*ADMIN_ROLES)
def list_users_route():
    """Query: page, limit, admin_id."""
    try:
        page, limit = paging_args(request.args)
        admin_id = request.args.get("admin_id")
        result = account_service.list_users(
            page=page,
            limit=limit,
            admin_id=coerce_int(admin_id, "admin_id") if admin_id is not None else None,
        )
        return success_response(_paged("users", result), "Users fetched successfully")
    except StorefrontError as e:
        return domain_error_response(e)
    except Exception as e:
        return internal_error_response(e, "Failed to list users")


@users_bp.post("/")
@require_auth
@require_role(*ADMIN_ROLES)
def create_user_route():
    """Body: {name, email, password, admin_id?}; admin_id defaults to the calling admin."""
    try:
        payload = require_json_object(request.get_json(silent=True))
        admin_id = optional_id(payload, "admin_id") or g.principal.id
        account_service.get_admin(admin_id)
        user = auth_service.create_user(
            name=_required_text(payload, "name"),
            email=payload.get("email"),
            password=payload.get("password"),
            admin_id=admin_id,
        )
        return success_response(user.to_dict(), "User created successfully", 201)
    except StorefrontError as e:
        return domain_error_response(e)
    except Exception as e:
        return internal_error_response(e, "Failed to create user")


@users_bp.get("/<int:user_id>")
@require_auth
@require_self_or_admin("user_id")
def get_user_route(user_id: int):
    try:
        user = account_service.get_user(user_id)
        return success_response(user.to_dict(), "User retrieved successfully")
    except StorefrontError as e:
        return domain_error_response(e)
    except Exception as e:
        return internal_error_response(e, "Failed to fetch user")


@users_bp.patch("/<int:user_id>")
@require_auth
@require_self_or_admin("user_id")
def update_user_route(user_id: int):
    """Body: {name?, email?, admin_id?, is_active?}; the last two are admin-only."""
    try:
        payload = dict(require_json_object(request.get_json(silent=True)))
        if payload.get("admin_id") is not None:
            payload["admin_id"] = coerce_int(payload["admin_id"], "admin_id")
        user = account_service.update_user(user_id, payload, principal=g.principal)
        return success_response(user.to_dict(), "User updated successfully")
    except StorefrontError as e:
        return domain_error_response(e)
    except Exception as e:
        return internal_error_response(e, "Failed to update user")


@users_bp.delete("/<int:user_id>")
@require_auth
@require_role(*ADMIN_ROLES)
def delete_user_route(user_id: int):
    try:
        user = account_service.deactivate_user(user_id)
        return success_response(user.to_dict(), "User deleted successfully")
    except StorefrontError as e:
        return domain_error_response(e)
    except Exception as e:
        return internal_error_response(e, "Failed to delete user")
