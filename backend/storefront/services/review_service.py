# Overview: Product reviews, limited to shoppers who received the product.

"""
Review Service

A shopper may review a product only after one of their own orders that
contains it reached SHIPPED or DELIVERED, and only once per product. The
purchase check and the insert run in one write transaction; the unique
(user_id, product_id) constraint backs the "once" rule under races.

Owners edit and delete their own reviews; admins may moderate any review,
which records the admin on the row.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..errors import ConflictError, NotFoundError, PermissionDeniedError, ReviewAlreadyExists, ValidationError
from ..models import Order, OrderItem, Product, Review, ReviewVote
from . import order_lifecycle_service as lifecycle
from .concurrency import begin_write_transaction, run_with_retry
from .paging import paginate
from .session_service import Principal

REVIEWABLE_STATUSES = (lifecycle.SHIPPED, lifecycle.DELIVERED)

SORTS = {
    "newest": (Review.created_at.desc(), Review.id.desc()),
    "oldest": (Review.created_at.asc(), Review.id.asc()),
    "highest": (Review.rating.desc(), Review.id.desc()),
    "lowest": (Review.rating.asc(), Review.id.asc()),
    "most_helpful": (Review.helpful_count.desc(), Review.id.desc()),
}


def validate_rating(rating) -> int:
    if isinstance(rating, bool) or not isinstance(rating, int) or not 1 <= rating <= 5:
        raise ValidationError("rating must be an integer from 1 to 5", details={"field": "rating"})
    return rating


def _purchase_order_id(user_id: int, product_id: int) -> int | None:
    row = (
        db.session.query(Order.id)
        .join(OrderItem, OrderItem.order_id == Order.id)
        .filter(
            Order.user_id == user_id,
            OrderItem.product_id == product_id,
            Order.status.in_(REVIEWABLE_STATUSES),
        )
        .order_by(Order.id.asc())
        .first()
    )
    return row[0] if row is not None else None


def get_review(review_id: int) -> Review:
    review = db.session.get(Review, review_id)
    if review is None:
        raise NotFoundError("Review", review_id, message="Review not found")
    return review


def _require_owner_or_admin(review: Review, principal: Principal, action: str) -> None:
    if principal.is_admin:
        return
    if review.user_id != principal.id:
        raise PermissionDeniedError(f"Not authorized to {action} this review")


def create_review(*, principal: Principal, product_id: int, rating, comment: str | None = None) -> Review:
    """Raises NotFoundError, PermissionDeniedError (no qualifying order) or ReviewAlreadyExists."""
    if principal.is_admin:
        raise PermissionDeniedError("Only shoppers can write reviews")
    rating = validate_rating(rating)

    def _op():
        begin_write_transaction()
        if db.session.get(Product, product_id) is None:
            raise NotFoundError("Product", product_id, message="Product not found")

        order_id = _purchase_order_id(principal.id, product_id)
        if order_id is None:
            raise PermissionDeniedError(
                "You can only review purchased products",
                details={"product_id": product_id},
            )

        existing = db.session.query(Review.id).filter_by(user_id=principal.id, product_id=product_id).first()
        if existing is not None:
            raise ReviewAlreadyExists(principal.id, product_id)

        review = Review(
            user_id=principal.id,
            product_id=product_id,
            order_id=order_id,
            rating=rating,
            comment=comment,
        )
        db.session.add(review)
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise ReviewAlreadyExists(principal.id, product_id)
        return review

    review = run_with_retry(_op)
    current_app.logger.info("Review %s created by user %s for product %s", review.id, principal.id, product_id)
    return review


def list_reviews(
    *,
    page: int = 1,
    limit: int = 10,
    product_id: int | None = None,
    user_id: int | None = None,
    min_rating: int | None = None,
    max_rating: int | None = None,
    sort: str = "newest",
) -> dict:
    """
    Paginated reviews. When filtered by product the result also carries
    average_rating (one decimal, None without reviews) over all of that
    product's reviews.
    """
    if sort not in SORTS:
        raise ValidationError(f"sort must be one of: {', '.join(SORTS)}", details={"field": "sort"})

    q = db.session.query(Review)
    if product_id is not None:
        q = q.filter(Review.product_id == product_id)
    if user_id is not None:
        q = q.filter(Review.user_id == user_id)
    if min_rating is not None:
        q = q.filter(Review.rating >= validate_rating(min_rating))
    if max_rating is not None:
        q = q.filter(Review.rating <= validate_rating(max_rating))

    result = paginate(q.order_by(*SORTS[sort]), page=page, limit=limit)
    if product_id is not None:
        average = db.session.query(func.avg(Review.rating)).filter(Review.product_id == product_id).scalar()
        result["average_rating"] = round(float(average), 1) if average is not None else None
    return result


def recent_reviews(limit: int = 10) -> list[Review]:
    return (
        db.session.query(Review)
        .order_by(Review.created_at.desc(), Review.id.desc())
        .limit(limit)
        .all()
    )


def update_review(review_id: int, data: dict, *, principal: Principal) -> Review:
    """data may carry rating and/or comment."""
    unknown = sorted(set(data) - {"rating", "comment"})
    if unknown:
        raise ValidationError(f"Unknown fields: {', '.join(unknown)}", details={"fields": unknown})

    def _op():
        review = get_review(review_id)
        _require_owner_or_admin(review, principal, "update")
        if "rating" in data:
            review.rating = validate_rating(data["rating"])
        if "comment" in data:
            review.comment = data["comment"]
        if principal.is_admin:
            review.edited_by_admin_id = principal.id
        db.session.commit()
        return review

    return run_with_retry(_op)


def delete_review(review_id: int, *, principal: Principal) -> None:
    def _op():
        review = get_review(review_id)
        _require_owner_or_admin(review, principal, "delete")
        db.session.delete(review)
        db.session.commit()

    run_with_retry(_op)


def mark_helpful(review_id: int, *, principal: Principal) -> Review:
    """One helpful vote per shopper per review; the counter moves with the vote row."""
    if principal.is_admin:
        raise PermissionDeniedError("Only shoppers can vote on reviews")

    def _op():
        begin_write_transaction()
        review = get_review(review_id)
        voted = db.session.query(ReviewVote.id).filter_by(user_id=principal.id, review_id=review.id).first()
        if voted is not None:
            raise ConflictError("You've already marked this review", details={"review_id": review.id})
        db.session.add(ReviewVote(user_id=principal.id, review_id=review.id))
        review.helpful_count = (review.helpful_count or 0) + 1
        db.session.commit()
        return review

    return run_with_retry(_op)
