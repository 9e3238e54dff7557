# Overview: Flask API routes for the product catalog.

# backend/storefront/routes/products.py
"""
Product catalog routes.

Reads are public. Writes require an admin session; only the owning admin
(or a superadmin) may edit a product. Stock is never edited here, see
POST /api/inventory/adjust.
"""

from flask import Blueprint, g, request

from ..decorators import require_auth, require_role
from ..errors import StorefrontError
from ..models import ADMIN_ROLES, Product
from ..responses import domain_error_response, internal_error_response, success_response
from ..services import product_service
from ..validation import ModelValidationPolicy, coerce_int, paging_args, require_json_object, validate_payload

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={"name", "description", "image_url", "price_cents"},
    required_on_create={"name", "price_cents"},
)

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("/")
def list_products_route():
    """Query: page, limit, admin_id."""
    try:
        page, limit = paging_args(request.args)
        admin_id = request.args.get("admin_id")
        result = product_service.list_products(
            page=page,
            limit=limit,
            admin_id=coerce_int(admin_id, "admin_id") if admin_id is not None else None,
        )
        return success_response(
            {"products": [p.to_dict() for p in result["data"]], "pagination": result["pagination"]},
            "Products retrieved successfully",
        )
    except StorefrontError as e:
        return domain_error_response(e)
    except Exception as e:
        return internal_error_response(e, "Failed to list products")


@products_bp.get("/<int:product_id>")
def get_product_route(product_id: int):
    try:
        product = product_service.get_product(product_id)
        return success_response(product.to_dict(), "Product retrieved successfully")
    except StorefrontError as e:
        return domain_error_response(e)
    except Exception as e:
        return internal_error_response(e, "Failed to fetch product")


@products_bp.post("/")
@require_auth
@require_role(*ADMIN_ROLES)
def create_product_route():
    """Body: {name, price_cents, description?, image_url?, quantity?}"""
    try:
        payload = dict(require_json_object(request.get_json(silent=True)))
        quantity = coerce_int(payload.pop("quantity", 0), "quantity")
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
        product = product_service.create_product(
            admin_id=g.principal.id,
            initial_quantity=quantity,
            **patch,
        )
        return success_response(product.to_dict(), "Product created successfully", 201)
    except StorefrontError as e:
        return domain_error_response(e)
    except Exception as e:
        return internal_error_response(e, "Failed to create product")


@products_bp.patch("/<int:product_id>")
@require_auth
@require_role(*ADMIN_ROLES)
def update_product_route(product_id: int):
    try:
        payload = require_json_object(request.get_json(silent=True))
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
        product = product_service.update_product(product_id, patch, principal=g.principal)
        return success_response(product.to_dict(), "Product updated successfully")
    except StorefrontError as e:
        return domain_error_response(e)
    except Exception as e:
        return internal_error_response(e, "Failed to update product")
