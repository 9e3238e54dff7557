# Overview: Flask API routes for discount codes and their product links.

# backend/storefront/routes/discounts.py

from flask import Blueprint, g, request

from ..decorators import require_auth, require_role
from ..errors import StorefrontError
from ..models import ADMIN_ROLES
from ..responses import domain_error_response, internal_error_response, success_response
from ..services import discount_service
from ..validation import coerce_int, coerce_positive_int, require_json_object


discounts_bp = Blueprint("discounts", __name__, url_prefix="/api/discounts")


def _id_list(payload: dict, name: str) -> list[int]:
    return [coerce_positive_int(v, name) for v in payload.get(name) or []]


def _discount_dict(discount) -> dict:
    data = discount.to_dict()
    data["usage_count"] = discount_service.usage_count(discount.id)
    return data


@discounts_bp.get("/")
@require_auth
@require_role(*ADMIN_ROLES)
def list_discounts_route():
    try:
        discounts = discount_service.list_discounts()
        return success_response([_discount_dict(d) for d in discounts], "Discounts retrieved successfully")
    except Exception as e:
        return internal_error_response(e, "Failed to list discounts")


@discounts_bp.post("/")
@require_auth
@require_role(*ADMIN_ROLES)
def create_discount_route():
    """Body: {code, percentage (1-100), valid_till (ISO-8601), product_ids?, user_ids?}"""
    try:
        payload = require_json_object(request.get_json(silent=True))
        discount = discount_service.create_discount(
            code=payload.get("code"),
            percentage=coerce_int(payload.get("percentage"), "percentage"),
            valid_till=payload.get("valid_till"),
            admin_id=g.principal.id,
            product_ids=_id_list(payload, "product_ids"),
            user_ids=_id_list(payload, "user_ids"),
        )
        return success_response(_discount_dict(discount), "Discount created successfully", 201)
    except StorefrontError as e:
        return domain_error_response(e)
    except Exception as e:
        return internal_error_response(e, "Failed to create discount")


@discounts_bp.get("/<int:discount_id>")
@require_auth
@require_role(*ADMIN_ROLES)
def get_discount_route(discount_id: int):
    try:
        discount = discount_service.get_discount(discount_id)
        return success_response(_discount_dict(discount), "Discount retrieved successfully")
    except StorefrontError as e:
        return domain_error_response(e)
    except Exception as e:
        return internal_error_response(e, "Failed to fetch discount")


@discounts_bp.patch("/<int:discount_id>")
@require_auth
@require_role(*ADMIN_ROLES)
def update_discount_route(discount_id: int):
    try:
        payload = require_json_object(request.get_json(silent=True))
        if "percentage" in payload:
            payload["percentage"] = coerce_int(payload["percentage"], "percentage")
        discount = discount_service.update_discount(discount_id, payload)
        return success_response(_discount_dict(discount), "Discount updated successfully")
    except StorefrontError as e:
        return domain_error_response(e)
    except Exception as e:
        return internal_error_response(e, "Failed to update discount")


@discounts_bp.delete("/<int:discount_id>")
@require_auth
@require_role(*ADMIN_ROLES)
def delete_discount_route(discount_id: int):
    try:
        discount_service.delete_discount(discount_id)
        return success_response(None, "Discount deleted successfully")
    except StorefrontError as e:
        return domain_error_response(e)
    except Exception as e:
        return internal_error_response(e, "Failed to delete discount")


@discounts_bp.post("/<int:discount_id>/products/<int:product_id>")
@require_auth
@require_role(*ADMIN_ROLES)
def attach_product_route(discount_id: int, product_id: int):
    try:
        discount = discount_service.attach_product(discount_id, product_id)
        return success_response(_discount_dict(discount), "Product added to discount")
    except StorefrontError as e:
        return domain_error_response(e)
    except Exception as e:
        return internal_error_response(e, "Failed to attach product to discount")


@discounts_bp.delete("/<int:discount_id>/products/<int:product_id>")
@require_auth
@require_role(*ADMIN_ROLES)
def detach_product_route(discount_id: int, product_id: int):
    try:
        discount = discount_service.detach_product(discount_id, product_id)
        return success_response(_discount_dict(discount), "Product removed from discount")
    except StorefrontError as e:
        return domain_error_response(e)
    except Exception as e:
        return internal_error_response(e, "Failed to detach product from discount")


@discounts_bp.get("/product/<int:product_id>")
def product_discounts_route(product_id: int):
    """Discounts linked to a product. Query: valid_only=true hides expired codes."""
    try:
        valid_only = request.args.get("valid_only", "false").lower() in ("1", "true", "yes")
        discounts = discount_service.product_discounts(product_id, valid_only=valid_only)
        return success_response([d.to_dict() for d in discounts], "Discounts retrieved successfully")
    except StorefrontError as e:
        return domain_error_response(e)
    except Exception as e:
        return internal_error_response(e, "Failed to list product discounts")
