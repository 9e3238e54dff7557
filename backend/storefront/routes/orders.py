# Overview: Flask API routes for orders; checkout, lookups, status changes, cancellation and returns.

# backend/storefront/routes/orders.py
"""
Order routes.

SECURITY: All routes require a bearer session.
- Shoppers create, read, cancel and return their own orders.
- Admins may act on any order and are the only ones who move orders
  along the fulfilment path (PATCH /status, PATCH /note).
"""

from flask import Blueprint, current_app, g, request

from ..decorators import require_auth, require_role, require_self_or_admin
from ..errors import StorefrontError, ValidationError
from ..models import ADMIN_ROLES
from ..responses import domain_error_response, internal_error_response, success_response
from ..services import order_service
from ..services import order_lifecycle_service as lifecycle
from ..validation import (
    coerce_positive_int,
    optional_id,
    optional_text,
    paging_args,
    parse_item_list,
    require_json_object,
)


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


def _paged_orders(result: dict) -> dict:
    return {
        "orders": [o.to_dict(include_items=False) for o in result["data"]],
        "pagination": result["pagination"],
    }


@orders_bp.post("/")
@require_auth
def create_order_route():
    """
    Place an order.

    Body:
    - items: [{product_id, quantity, price_cents?}] (required, non-empty;
      price_cents is honored for admins only, shoppers pay catalog price)
    - discount_id: int (optional)
    - user_id: int (admins only; shoppers always order for themselves)
    - admin_id: int (optional; defaults to the calling admin)
    """
    principal = g.principal
    try:
        payload = require_json_object(request.get_json(silent=True))
        items = parse_item_list(payload, with_price=principal.is_admin)
        discount_id = optional_id(payload, "discount_id")

        if principal.is_admin:
            user_id = optional_id(payload, "user_id")
            if user_id is None:
                raise ValidationError("user_id is required", details={"field": "user_id"})
            admin_id = optional_id(payload, "admin_id") or principal.id
        else:
            user_id = principal.id
            admin_id = optional_id(payload, "admin_id")

        order = order_service.create_order(
            user_id=user_id,
            items=items,
            admin_id=admin_id,
            discount_id=discount_id,
        )
        return success_response(order.to_dict(), "Order created successfully", 201)
    except StorefrontError as e:
        current_app.logger.info("Order rejected: %s", e.message)
        return domain_error_response(e)
    except Exception as e:
        return internal_error_response(e, "Failed to create order")


@orders_bp.get("/<int:order_id>")
@require_auth
def get_order_route(order_id: int):
    try:
        order = order_service.get_order(order_id, g.principal)
        data = order.to_dict()
        data["allowed_transitions"] = lifecycle.allowed_transitions(order.status)
        data["return_requests"] = [r.to_dict() for r in order.return_requests]
        return success_response(data, "Order retrieved successfully")
    except StorefrontError as e:
        return domain_error_response(e)
    except Exception as e:
        return internal_error_response(e, "Failed to fetch order")


@orders_bp.get("/user/<int:user_id>")
@require_auth
@require_self_or_admin("user_id")
def list_user_orders_route(user_id: int):
    """Order history for one shopper. Query: page, limit, status."""
    try:
        page, limit = paging_args(request.args)
        result = order_service.list_user_orders(
            user_id, page=page, limit=limit, status=request.args.get("status")
        )
        return success_response(_paged_orders(result), "Orders retrieved successfully")
    except StorefrontError as e:
        return domain_error_response(e)
    except Exception as e:
        return internal_error_response(e, "Failed to list user orders")


@orders_bp.get("/admin/<int:admin_id>")
@require_auth
@require_role(*ADMIN_ROLES)
def list_admin_orders_route(admin_id: int):
    try:
        page, limit = paging_args(request.args)
        result = order_service.list_admin_orders(
            admin_id, page=page, limit=limit, status=request.args.get("status")
        )
        return success_response(_paged_orders(result), "Orders retrieved successfully")
    except StorefrontError as e:
        return domain_error_response(e)
    except Exception as e:
        return internal_error_response(e, "Failed to list admin orders")


@orders_bp.patch("/<int:order_id>/status")
@require_auth
@require_role(*ADMIN_ROLES)
def update_status_route(order_id: int):
    """
    Move an order along the lifecycle graph.

    Body: {status, admin_note?}. Illegal edges return 400 with
    {"from", "to"} in data and leave the order untouched.
    """
    try:
        payload = require_json_object(request.get_json(silent=True))
        status = payload.get("status")
        if not isinstance(status, str) or not status.strip():
            raise ValidationError("status is required", details={"field": "status"})

        order = order_service.update_order_status(
            order_id,
            status.strip().upper(),
            principal=g.principal,
            admin_note=optional_text(payload, "admin_note", max_length=2000),
        )
        return success_response(order.to_dict(), "Order status updated successfully")
    except StorefrontError as e:
        return domain_error_response(e)
    except Exception as e:
        return internal_error_response(e, "Failed to update order status")


@orders_bp.patch("/<int:order_id>/note")
@require_auth
@require_role(*ADMIN_ROLES)
def update_note_route(order_id: int):
    try:
        payload = require_json_object(request.get_json(silent=True))
        note = optional_text(payload, "admin_note", max_length=2000)
        if note is None:
            raise ValidationError("admin_note is required", details={"field": "admin_note"})
        order = order_service.update_admin_note(order_id, note)
        return success_response(order.to_dict(include_items=False), "Admin note updated successfully")
    except StorefrontError as e:
        return domain_error_response(e)
    except Exception as e:
        return internal_error_response(e, "Failed to update admin note")


@orders_bp.patch("/<int:order_id>/cancel")
@require_auth
def cancel_order_route(order_id: int):
    """Cancel a PENDING/PROCESSING order; reserved stock goes back on hand. Body: {reason?}."""
    try:
        payload = request.get_json(silent=True) or {}
        reason = optional_text(require_json_object(payload), "reason", max_length=1000)
        order = order_service.cancel_order(order_id, principal=g.principal, reason=reason)
        return success_response(order.to_dict(), "Order cancelled successfully")
    except StorefrontError as e:
        return domain_error_response(e)
    except Exception as e:
        return internal_error_response(e, "Failed to cancel order")


@orders_bp.post("/<int:order_id>/return")
@require_auth
def request_return_route(order_id: int):
    """
    Ask to return a SHIPPED/DELIVERED order.

    Body: {reason, items?: [{product_id, quantity, reason?}]}
    """
    try:
        payload = require_json_object(request.get_json(silent=True))
        lines = []
        for index, raw in enumerate(payload.get("items") or []):
            if not isinstance(raw, dict):
                raise ValidationError(f"items[{index}] must be an object", details={"field": "items"})
            lines.append(order_service.ReturnLineRequest(
                product_id=coerce_positive_int(raw.get("product_id"), f"items[{index}].product_id"),
                quantity=coerce_positive_int(raw.get("quantity"), f"items[{index}].quantity"),
                reason=optional_text(raw, "reason", max_length=1000),
            ))

        order, return_request = order_service.request_return(
            order_id,
            principal=g.principal,
            reason=optional_text(payload, "reason", max_length=1000) or "",
            items=lines,
        )
        return success_response(
            {"order": order.to_dict(), "return_request": return_request.to_dict()},
            "Return request submitted successfully",
            201,
        )
    except StorefrontError as e:
        return domain_error_response(e)
    except Exception as e:
        return internal_error_response(e, "Failed to request return")
