# Overview: Flask API routes for product reviews.

# backend/storefront/routes/reviews.py
"""
Review routes.

Listing and reading are public. Writing needs a shopper session and a
SHIPPED or DELIVERED order of that shopper containing the product. Owners
and admins may edit or delete a review.
"""

from flask import Blueprint, g, request

from ..decorators import require_auth, require_role
from ..errors import StorefrontError
from ..models import ADMIN_ROLES
from ..responses import domain_error_response, internal_error_response, success_response
from ..services import review_service
from ..validation import coerce_int, coerce_positive_int, optional_text, paging_args, require_json_object


reviews_bp = Blueprint("reviews", __name__, url_prefix="/api/reviews")


def _query_int(name: str) -> int | None:
    value = request.args.get(name)
    return coerce_int(value, name) if value is not None else None


@reviews_bp.post("/")
@require_auth
def create_review_route():
    """Body: {product_id, rating (1-5), comment?}"""
    try:
        payload = require_json_object(request.get_json(silent=True))
        review = review_service.create_review(
            principal=g.principal,
            product_id=coerce_positive_int(payload.get("product_id"), "product_id"),
            rating=coerce_int(payload.get("rating"), "rating"),
            comment=optional_text(payload, "comment", max_length=2000),
        )
        return success_response(review.to_dict(), "Review created successfully", 201)
    except StorefrontError as e:
        return domain_error_response(e)
    except Exception as e:
        return internal_error_response(e, "Failed to create review")


@reviews_bp.get("/")
def list_reviews_route():
    """Query: page, limit, product_id, user_id, min_rating, max_rating, sort."""
    try:
        page, limit = paging_args(request.args)
        result = review_service.list_reviews(
            page=page,
            limit=limit,
            product_id=_query_int("product_id"),
            user_id=_query_int("user_id"),
            min_rating=_query_int("min_rating"),
            max_rating=_query_int("max_rating"),
            sort=request.args.get("sort", "newest"),
        )
        data = {"reviews": [r.to_dict() for r in result["data"]], "pagination": result["pagination"]}
        if "average_rating" in result:
            data["average_rating"] = result["average_rating"]
        return success_response(data, "Reviews retrieved successfully")
    except StorefrontError as e:
        return domain_error_response(e)
    except Exception as e:
        return internal_error_response(e, "Failed to list reviews")


@reviews_bp.get("/recent")
@require_auth
@require_role(*ADMIN_ROLES)
def recent_reviews_route():
    try:
        limit = coerce_positive_int(request.args.get("limit", 10), "limit")
        reviews = review_service.recent_reviews(min(limit, 100))
        return success_response([r.to_dict() for r in reviews], "Recent reviews retrieved")
    except StorefrontError as e:
        return domain_error_response(e)
    except Exception as e:
        return internal_error_response(e, "Failed to list recent reviews")


@reviews_bp.get("/<int:review_id>")
def get_review_route(review_id: int):
    try:
        review = review_service.get_review(review_id)
        return success_response(review.to_dict(), "Review retrieved successfully")
    except StorefrontError as e:
        return domain_error_response(e)
    except Exception as e:
        return internal_error_response(e, "Failed to fetch review")


@reviews_bp.patch("/<int:review_id>")
@require_auth
def update_review_route(review_id: int):
    """Body: {rating?, comment?}"""
    try:
        payload = dict(require_json_object(request.get_json(silent=True)))
        if "rating" in payload:
            payload["rating"] = coerce_int(payload["rating"], "rating")
        if "comment" in payload:
            payload["comment"] = optional_text(payload, "comment", max_length=2000)
        review = review_service.update_review(review_id, payload, principal=g.principal)
        return success_response(review.to_dict(), "Review updated successfully")
    except StorefrontError as e:
        return domain_error_response(e)
    except Exception as e:
        return internal_error_response(e, "Failed to update review")


@reviews_bp.delete("/<int:review_id>")
@require_auth
def delete_review_route(review_id: int):
    try:
        review_service.delete_review(review_id, principal=g.principal)
        return success_response(None, "Review deleted successfully")
    except StorefrontError as e:
        return domain_error_response(e)
    except Exception as e:
        return internal_error_response(e, "Failed to delete review")


@reviews_bp.post("/<int:review_id>/helpful")
@require_auth
def mark_helpful_route(review_id: int):
    try:
        review = review_service.mark_helpful(review_id, principal=g.principal)
        return success_response(review.to_dict(), "Review marked as helpful")
    except StorefrontError as e:
        return domain_error_response(e)
    except Exception as e:
        return internal_error_response(e, "Failed to mark review as helpful")
