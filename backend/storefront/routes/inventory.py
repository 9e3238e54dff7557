# Overview: Flask API routes for inventory; stock lookups, manual adjustments and the change log.

# backend/storefront/routes/inventory.py

from flask import Blueprint, g, request

from ..decorators import require_auth, require_role
from ..errors import StorefrontError, ValidationError
from ..models import ADMIN_ROLES
from ..responses import domain_error_response, internal_error_response, success_response
from ..services import inventory_service, order_service
from ..validation import coerce_int, coerce_positive_int, optional_text, paging_args, require_json_object


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


def _sort_arg() -> str:
    sort = request.args.get("sort", "newest")
    if sort not in ("newest", "oldest"):
        raise ValidationError("sort must be 'newest' or 'oldest'", details={"field": "sort"})
    return sort


def _paged_logs(result: dict) -> dict:
    return {
        "logs": [entry.to_dict() for entry in result["data"]],
        "pagination": result["pagination"],
    }


@inventory_bp.get("/<int:product_id>")
def get_inventory_route(product_id: int):
    try:
        inventory = inventory_service.get_inventory(product_id)
        return success_response(inventory.to_dict(), "Inventory retrieved successfully")
    except StorefrontError as e:
        return domain_error_response(e)
    except Exception as e:
        return internal_error_response(e, "Failed to fetch inventory")


@inventory_bp.post("/adjust")
@require_auth
@require_role(*ADMIN_ROLES)
def adjust_inventory_route():
    """
    Manual stock correction.

    Body: {product_id, change (signed, non-zero), reason}
    A negative change larger than the stock on hand is rejected with 409.
    """
    try:
        payload = require_json_object(request.get_json(silent=True))
        product_id = coerce_positive_int(payload.get("product_id"), "product_id")
        change = coerce_int(payload.get("change"), "change")
        reason = optional_text(payload, "reason", max_length=255)
        if reason is None:
            raise ValidationError("reason is required", details={"field": "reason"})

        inventory, entry = inventory_service.adjust_inventory(
            product_id=product_id,
            change=change,
            admin_id=g.principal.id,
            reason=reason,
        )
        return success_response(
            {"inventory": inventory.to_dict(), "log": entry.to_dict()},
            "Inventory adjusted successfully",
        )
    except StorefrontError as e:
        return domain_error_response(e)
    except Exception as e:
        return internal_error_response(e, "Failed to adjust inventory")


@inventory_bp.get("/low-stock")
@require_auth
@require_role(*ADMIN_ROLES)
def low_stock_route():
    """Query: threshold (defaults to LOW_STOCK_THRESHOLD)."""
    try:
        raw = request.args.get("threshold")
        threshold = coerce_int(raw, "threshold") if raw is not None else None
        rows = inventory_service.list_low_stock(threshold)
        return success_response([row.to_dict() for row in rows], "Low stock products retrieved successfully")
    except StorefrontError as e:
        return domain_error_response(e)
    except Exception as e:
        return internal_error_response(e, "Failed to list low stock products")


@inventory_bp.get("/<int:product_id>/logs")
@require_auth
@require_role(*ADMIN_ROLES)
def product_logs_route(product_id: int):
    """Query: page, limit, sort (newest|oldest)."""
    try:
        page, limit = paging_args(request.args)
        inventory_service.get_inventory(product_id)
        result = inventory_service.list_log_entries(product_id, page=page, limit=limit, sort=_sort_arg())
        return success_response(_paged_logs(result), "Inventory logs retrieved successfully")
    except StorefrontError as e:
        return domain_error_response(e)
    except Exception as e:
        return internal_error_response(e, "Failed to list inventory logs")


@inventory_bp.get("/logs/<int:log_id>")
@require_auth
@require_role(*ADMIN_ROLES)
def log_entry_route(log_id: int):
    try:
        entry = inventory_service.get_log_entry(log_id)
        return success_response(entry.to_dict(), "Inventory log retrieved successfully")
    except StorefrontError as e:
        return domain_error_response(e)
    except Exception as e:
        return internal_error_response(e, "Failed to fetch inventory log")


@inventory_bp.get("/admin/<int:admin_id>/logs")
@require_auth
@require_role(*ADMIN_ROLES)
def admin_logs_route(admin_id: int):
    try:
        page, limit = paging_args(request.args)
        result = inventory_service.list_admin_log_entries(admin_id, page=page, limit=limit, sort=_sort_arg())
        return success_response(_paged_logs(result), "Inventory logs retrieved successfully")
    except StorefrontError as e:
        return domain_error_response(e)
    except Exception as e:
        return internal_error_response(e, "Failed to list admin inventory logs")


@inventory_bp.get("/orders/<int:order_id>/logs")
@require_auth
@require_role(*ADMIN_ROLES)
def order_logs_route(order_id: int):
    """Every reservation and release written for one order, oldest first."""
    try:
        order_service.get_order(order_id)
        entries = inventory_service.list_order_log_entries(order_id)
        return success_response([entry.to_dict() for entry in entries], "Inventory logs retrieved successfully")
    except StorefrontError as e:
        return domain_error_response(e)
    except Exception as e:
        return internal_error_response(e, "Failed to list order inventory logs")
