# Overview: Flask API routes for shopper wishlists.

# backend/storefront/routes/wishlist.py

from flask import Blueprint, request

from ..decorators import require_auth, require_self_or_admin
from ..errors import StorefrontError, ValidationError
from ..responses import domain_error_response, internal_error_response, success_response
from ..services import wishlist_service
from ..validation import coerce_positive_int, require_json_object


wishlist_bp = Blueprint("wishlist", __name__, url_prefix="/api/users/<int:user_id>/wishlist")


def _wishlist_dict(user_id: int, items) -> dict:
    return {"user_id": user_id, "items": [i.to_dict() for i in items], "count": len(items)}


@wishlist_bp.get("")
@require_auth
@require_self_or_admin("user_id")
def get_wishlist_route(user_id: int):
    try:
        items = wishlist_service.get_wishlist(user_id)
        return success_response(_wishlist_dict(user_id, items), "Wishlist retrieved successfully")
    except StorefrontError as e:
        return domain_error_response(e)
    except Exception as e:
        return internal_error_response(e, "Failed to fetch wishlist")


@wishlist_bp.post("")
@require_auth
@require_self_or_admin("user_id")
def update_wishlist_route(user_id: int):
    """Body: {product_id, action: "add" | "remove"}"""
    try:
        payload = require_json_object(request.get_json(silent=True))
        action = payload.get("action", "add")
        if not isinstance(action, str):
            raise ValidationError("action must be 'add' or 'remove'", details={"field": "action"})
        items = wishlist_service.update_wishlist(
            user_id,
            coerce_positive_int(payload.get("product_id"), "product_id"),
            action.lower(),
        )
        message = "Product added to wishlist" if action.lower() == "add" else "Product removed from wishlist"
        return success_response(_wishlist_dict(user_id, items), message)
    except StorefrontError as e:
        return domain_error_response(e)
    except Exception as e:
        return internal_error_response(e, "Failed to update wishlist")


@wishlist_bp.delete("")
@require_auth
@require_self_or_admin("user_id")
def clear_wishlist_route(user_id: int):
    try:
        count = wishlist_service.clear_wishlist(user_id)
        return success_response({"count": count}, "Wishlist cleared successfully")
    except StorefrontError as e:
        return domain_error_response(e)
    except Exception as e:
        return internal_error_response(e, "Failed to clear wishlist")


@wishlist_bp.get("/contains/<int:product_id>")
@require_auth
@require_self_or_admin("user_id")
def contains_route(user_id: int, product_id: int):
    try:
        return success_response(
            {"is_in_wishlist": wishlist_service.contains(user_id, product_id)},
            "Wishlist checked successfully",
        )
    except Exception as e:
        return internal_error_response(e, "Failed to check wishlist")


@wishlist_bp.post("/move-to-cart")
@require_auth
@require_self_or_admin("user_id")
def move_to_cart_route(user_id: int):
    """Body: {clear_after_move?: bool}"""
    try:
        payload = require_json_object(request.get_json(silent=True) or {})
        clear_after_move = payload.get("clear_after_move", False)
        if not isinstance(clear_after_move, bool):
            raise ValidationError("clear_after_move must be a boolean", details={"field": "clear_after_move"})
        result = wishlist_service.move_to_cart(user_id, clear_after_move=clear_after_move)
        message = f"{result.moved_count} items moved to cart" + (" and wishlist cleared" if result.cleared else "")
        return success_response(result.to_dict(), message)
    except StorefrontError as e:
        return domain_error_response(e)
    except Exception as e:
        return internal_error_response(e, "Failed to move wishlist to cart")
