# Overview: Flask API routes for shopper carts and cart checkout.

# backend/storefront/routes/carts.py

from flask import Blueprint, g, request

from ..decorators import require_auth, require_self_or_admin
from ..errors import StorefrontError, ValidationError
from ..responses import domain_error_response, internal_error_response, success_response
from ..services import cart_service
from ..validation import coerce_positive_int, parse_item_list, require_json_object


carts_bp = Blueprint("carts", __name__, url_prefix="/api/carts")


@carts_bp.get("/<int:user_id>")
@require_auth
@require_self_or_admin("user_id")
def get_cart_route(user_id: int):
    try:
        cart = cart_service.get_or_create_cart(user_id)
        return success_response(cart_service.cart_to_dict(cart), "Cart retrieved successfully")
    except StorefrontError as e:
        return domain_error_response(e)
    except Exception as e:
        return internal_error_response(e, "Failed to fetch cart")


@carts_bp.put("/<int:user_id>")
@require_auth
@require_self_or_admin("user_id")
def replace_cart_route(user_id: int):
    """Body: {items: [{product_id, quantity}]}; an empty list empties the cart."""
    try:
        payload = require_json_object(request.get_json(silent=True))
        items = parse_item_list(payload, allow_empty=True)
        cart = cart_service.replace_cart(user_id, items)
        return success_response(cart_service.cart_to_dict(cart), "Cart updated successfully")
    except StorefrontError as e:
        return domain_error_response(e)
    except Exception as e:
        return internal_error_response(e, "Failed to update cart")


@carts_bp.post("/<int:user_id>/items")
@require_auth
@require_self_or_admin("user_id")
def add_item_route(user_id: int):
    try:
        payload = require_json_object(request.get_json(silent=True))
        cart = cart_service.add_item(
            user_id,
            coerce_positive_int(payload.get("product_id"), "product_id"),
            coerce_positive_int(payload.get("quantity", 1), "quantity"),
        )
        return success_response(cart_service.cart_to_dict(cart), "Item added to cart")
    except StorefrontError as e:
        return domain_error_response(e)
    except Exception as e:
        return internal_error_response(e, "Failed to add cart item")


@carts_bp.delete("/<int:user_id>/items/<int:product_id>")
@require_auth
@require_self_or_admin("user_id")
def remove_item_route(user_id: int, product_id: int):
    try:
        cart = cart_service.remove_item(user_id, product_id)
        return success_response(cart_service.cart_to_dict(cart), "Item removed from cart")
    except StorefrontError as e:
        return domain_error_response(e)
    except Exception as e:
        return internal_error_response(e, "Failed to remove cart item")


@carts_bp.delete("/<int:user_id>")
@require_auth
@require_self_or_admin("user_id")
def clear_cart_route(user_id: int):
    try:
        cart_service.clear_cart(user_id)
        return success_response(None, "Cart cleared successfully")
    except StorefrontError as e:
        return domain_error_response(e)
    except Exception as e:
        return internal_error_response(e, "Failed to clear cart")


@carts_bp.get("/<int:user_id>/count")
@require_auth
@require_self_or_admin("user_id")
def item_count_route(user_id: int):
    try:
        return success_response({"count": cart_service.item_count(user_id)}, "Cart count retrieved successfully")
    except Exception as e:
        return internal_error_response(e, "Failed to count cart items")


@carts_bp.post("/<int:user_id>/discount")
@require_auth
@require_self_or_admin("user_id")
def apply_discount_route(user_id: int):
    """Body: {code}. The code is validated now and again at checkout."""
    try:
        payload = require_json_object(request.get_json(silent=True))
        code = payload.get("code")
        if not isinstance(code, str):
            raise ValidationError("code is required", details={"field": "code"})
        cart = cart_service.apply_discount_code(user_id, code)
        return success_response(cart_service.cart_to_dict(cart), "Discount applied successfully")
    except StorefrontError as e:
        return domain_error_response(e)
    except Exception as e:
        return internal_error_response(e, "Failed to apply discount")


@carts_bp.post("/<int:user_id>/checkout")
@require_auth
@require_self_or_admin("user_id")
def checkout_route(user_id: int):
    """Place an order from the cart at current catalog prices."""
    principal = g.principal
    try:
        order = cart_service.checkout(user_id, admin_id=principal.id if principal.is_admin else None)
        return success_response(order.to_dict(), "Order created successfully", 201)
    except StorefrontError as e:
        return domain_error_response(e)
    except Exception as e:
        return internal_error_response(e, "Failed to check out cart")
