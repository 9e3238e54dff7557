"""
Review tests.

Verifies:
- only a shopper with a SHIPPED/DELIVERED order of the product may review it
- one review per shopper per product
- owner/admin edit and delete rules
- listing filters, sorting and the product average
"""

import pytest

from storefront.errors import (
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ReviewAlreadyExists,
    ValidationError,
)
from storefront.extensions import db
from storefront.models import Review
from storefront.services import order_service, review_service
from storefront.services import order_lifecycle_service as lifecycle
from storefront.services.session_service import principal_for


class TestCreateReview:

    def test_shipped_order_allows_review(self, shopper, product, shipped_order):
        review = review_service.create_review(
            principal=principal_for(shopper), product_id=product.id, rating=4, comment="Sturdy"
        )
        assert review.order_id == shipped_order.id
        assert review.rating == 4
        assert review.helpful_count == 0

    def test_delivered_order_allows_review(self, shopper, admin, product, shipped_order):
        lifecycle.transition_order(shipped_order.id, "DELIVERED", acting_principal_id=admin.id)
        review = review_service.create_review(principal=principal_for(shopper), product_id=product.id, rating=5)
        assert review.product_id == product.id

    def test_pending_order_is_not_enough(self, shopper, product):
        order_service.create_order(
            user_id=shopper.id,
            items=[order_service.OrderLineRequest(product_id=product.id, quantity=1)],
        )
        with pytest.raises(PermissionDeniedError):
            review_service.create_review(principal=principal_for(shopper), product_id=product.id, rating=5)

    def test_someone_elses_order_is_not_enough(self, other_shopper, product, shipped_order):
        with pytest.raises(PermissionDeniedError):
            review_service.create_review(principal=principal_for(other_shopper), product_id=product.id, rating=5)

    def test_second_review_is_conflict(self, shopper, product, shipped_order):
        principal = principal_for(shopper)
        review_service.create_review(principal=principal, product_id=product.id, rating=4)

        with pytest.raises(ReviewAlreadyExists) as exc_info:
            review_service.create_review(principal=principal, product_id=product.id, rating=1)

        assert exc_info.value.http_status == 409
        assert db.session.query(Review).count() == 1

    def test_unknown_product(self, shopper):
        with pytest.raises(NotFoundError):
            review_service.create_review(principal=principal_for(shopper), product_id=999, rating=3)

    @pytest.mark.parametrize("rating", [0, 6, True, "5"])
    def test_rating_range(self, shopper, product, shipped_order, rating):
        with pytest.raises(ValidationError):
            review_service.create_review(principal=principal_for(shopper), product_id=product.id, rating=rating)

    def test_admins_cannot_review(self, admin, product):
        with pytest.raises(PermissionDeniedError):
            review_service.create_review(principal=principal_for(admin), product_id=product.id, rating=5)


@pytest.fixture
def review(shopper, product, shipped_order):
    return review_service.create_review(principal=principal_for(shopper), product_id=product.id, rating=4)


class TestEditReview:

    def test_owner_updates(self, shopper, review):
        updated = review_service.update_review(
            review.id, {"rating": 2, "comment": "Strap broke"}, principal=principal_for(shopper)
        )
        assert updated.rating == 2
        assert updated.comment == "Strap broke"
        assert updated.edited_by_admin_id is None

    def test_admin_edit_is_recorded(self, admin, review):
        updated = review_service.update_review(review.id, {"comment": "[removed]"}, principal=principal_for(admin))
        assert updated.edited_by_admin_id == admin.id

    def test_stranger_cannot_edit_or_delete(self, other_shopper, review):
        with pytest.raises(PermissionDeniedError):
            review_service.update_review(review.id, {"rating": 1}, principal=principal_for(other_shopper))
        with pytest.raises(PermissionDeniedError):
            review_service.delete_review(review.id, principal=principal_for(other_shopper))

    def test_unknown_field(self, shopper, review):
        with pytest.raises(ValidationError):
            review_service.update_review(review.id, {"product_id": 2}, principal=principal_for(shopper))

    def test_delete(self, shopper, review):
        review_service.delete_review(review.id, principal=principal_for(shopper))
        assert db.session.query(Review).count() == 0

    def test_helpful_vote_once(self, other_shopper, review):
        principal = principal_for(other_shopper)
        assert review_service.mark_helpful(review.id, principal=principal).helpful_count == 1
        with pytest.raises(ConflictError):
            review_service.mark_helpful(review.id, principal=principal)
        assert db.session.get(Review, review.id).helpful_count == 1


class TestListReviews:

    def test_product_average_and_sort(self, shopper, other_shopper, admin, product, shipped_order):
        order = order_service.create_order(
            user_id=other_shopper.id,
            items=[order_service.OrderLineRequest(product_id=product.id, quantity=1)],
        )
        lifecycle.transition_order(order.id, "PROCESSING", acting_principal_id=admin.id)
        lifecycle.transition_order(order.id, "SHIPPED", acting_principal_id=admin.id)

        review_service.create_review(principal=principal_for(shopper), product_id=product.id, rating=5)
        review_service.create_review(principal=principal_for(other_shopper), product_id=product.id, rating=2)

        result = review_service.list_reviews(product_id=product.id, sort="lowest")
        assert [r.rating for r in result["data"]] == [2, 5]
        assert result["average_rating"] == 3.5
        assert result["pagination"]["total"] == 2

        high = review_service.list_reviews(product_id=product.id, min_rating=4)
        assert [r.rating for r in high["data"]] == [5]

    def test_no_average_without_product_filter(self, review):
        assert "average_rating" not in review_service.list_reviews()

    def test_bad_sort(self):
        with pytest.raises(ValidationError):
            review_service.list_reviews(sort="random")
