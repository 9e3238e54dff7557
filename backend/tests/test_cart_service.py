"""
Cart tests.

Verifies:
- replace/add/remove/clear keep one row per product
- cart totals mirror order pricing (current catalog prices, one discount)
- discount codes are checked when applied and again at checkout
- checkout creates the order and empties the cart
"""

from datetime import timedelta

import pytest
from sqlalchemy import text

from storefront.errors import (
    DiscountAlreadyUsed,
    DiscountExpired,
    InsufficientStock,
    InvalidOrderInput,
    NotFoundError,
    ProductNotFound,
    ValidationError,
)
from storefront.extensions import db
from storefront.models import Cart, Order
from storefront.services import cart_service, inventory_service, order_service
from storefront.time_utils import utcnow


class TestCartContents:

    def test_get_or_create_is_stable(self, shopper):
        first = cart_service.get_or_create_cart(shopper.id)
        second = cart_service.get_or_create_cart(shopper.id)
        assert first.id == second.id
        assert db.session.query(Cart).count() == 1

    def test_unknown_user(self):
        with pytest.raises(NotFoundError):
            cart_service.get_or_create_cart(5150)

    def test_replace_keeps_overlapping_products(self, shopper, product, second_product):
        cart_service.replace_cart(shopper.id, [{"product_id": product.id, "quantity": 1}])
        cart = cart_service.replace_cart(
            shopper.id,
            [{"product_id": product.id, "quantity": 3}, {"product_id": second_product.id, "quantity": 1}],
        )
        assert sorted((i.product_id, i.quantity) for i in cart.items) == sorted(
            [(product.id, 3), (second_product.id, 1)]
        )

    def test_replace_with_empty_list_empties(self, shopper, product):
        cart_service.replace_cart(shopper.id, [{"product_id": product.id, "quantity": 1}])
        cart = cart_service.replace_cart(shopper.id, [])
        assert cart.items == []

    def test_replace_rejects_duplicates(self, shopper, product):
        with pytest.raises(ValidationError):
            cart_service.replace_cart(
                shopper.id,
                [{"product_id": product.id, "quantity": 1}, {"product_id": product.id, "quantity": 2}],
            )

    def test_replace_rejects_unknown_products(self, shopper):
        with pytest.raises(ProductNotFound):
            cart_service.replace_cart(shopper.id, [{"product_id": 8080, "quantity": 1}])

    def test_add_increments_existing_line(self, shopper, product):
        cart_service.add_item(shopper.id, product.id, 1)
        cart = cart_service.add_item(shopper.id, product.id, 2)
        assert [(i.product_id, i.quantity) for i in cart.items] == [(product.id, 3)]
        assert cart_service.item_count(shopper.id) == 3

    def test_add_does_not_reserve_stock(self, shopper, product):
        cart_service.add_item(shopper.id, product.id, 50)
        assert inventory_service.get_quantity_on_hand(product.id) == 5

    def test_remove_item(self, shopper, product, second_product):
        cart_service.add_item(shopper.id, product.id, 1)
        cart_service.add_item(shopper.id, second_product.id, 1)
        cart = cart_service.remove_item(shopper.id, product.id)
        assert [i.product_id for i in cart.items] == [second_product.id]

    def test_remove_missing_item(self, shopper, product):
        cart_service.get_or_create_cart(shopper.id)
        with pytest.raises(NotFoundError):
            cart_service.remove_item(shopper.id, product.id)

    def test_clear_drops_items_and_discount(self, shopper, product, discount):
        cart_service.add_item(shopper.id, product.id, 1)
        cart_service.apply_discount_code(shopper.id, discount.code)
        cart_service.clear_cart(shopper.id)

        cart = cart_service.get_or_create_cart(shopper.id)
        assert cart.items == []
        assert cart.discount_id is None

    def test_item_count_without_cart(self, shopper):
        assert cart_service.item_count(shopper.id) == 0


class TestCartTotals:

    def test_totals_with_discount(self, shopper, product, discount):
        cart_service.replace_cart(shopper.id, [{"product_id": product.id, "quantity": 1}])
        cart = cart_service.apply_discount_code(shopper.id, "SAVE10")
        meta = cart_service.cart_to_dict(cart)["meta"]
        assert meta == {"subtotal_cents": 1000, "discount_cents": 100, "total_cents": 900, "item_count": 1}

    def test_expired_discount_is_ignored_in_totals(self, shopper, product, discount):
        cart_service.replace_cart(shopper.id, [{"product_id": product.id, "quantity": 2}])
        cart_service.apply_discount_code(shopper.id, discount.code)
        discount.valid_till = utcnow() - timedelta(minutes=1)
        db.session.commit()

        cart = cart_service.get_or_create_cart(shopper.id)
        assert cart_service.cart_totals(cart)["discount_cents"] == 0


class TestApplyDiscount:

    def test_unknown_code(self, shopper):
        with pytest.raises(NotFoundError):
            cart_service.apply_discount_code(shopper.id, "NOPE")

    def test_blank_code(self, shopper):
        with pytest.raises(ValidationError):
            cart_service.apply_discount_code(shopper.id, "   ")

    def test_expired_code(self, shopper, make_discount):
        make_discount(code="GONE", valid_till=utcnow() - timedelta(days=2))
        with pytest.raises(DiscountExpired):
            cart_service.apply_discount_code(shopper.id, "GONE")

    def test_code_used_on_an_earlier_order(self, shopper, product, discount):
        order_service.create_order(
            user_id=shopper.id,
            items=[order_service.OrderLineRequest(product_id=product.id, quantity=1)],
            discount_id=discount.id,
        )
        with pytest.raises(DiscountAlreadyUsed):
            cart_service.apply_discount_code(shopper.id, discount.code)


class TestCheckout:

    def test_checkout_creates_order_and_empties_cart(self, shopper, product, second_product, discount):
        cart_service.replace_cart(
            shopper.id,
            [{"product_id": product.id, "quantity": 2}, {"product_id": second_product.id, "quantity": 4}],
        )
        cart_service.apply_discount_code(shopper.id, discount.code)

        order = cart_service.checkout(shopper.id)

        assert order.subtotal_cents == 3000
        assert order.discount_cents == 300
        assert order.total_amount_cents == 2700
        assert order.discount_id == discount.id
        assert inventory_service.get_quantity_on_hand(product.id) == 3
        assert inventory_service.get_quantity_on_hand(second_product.id) == 16

        cart = cart_service.get_or_create_cart(shopper.id)
        assert cart.items == []
        assert cart.discount_id is None

    def test_checkout_uses_current_catalog_price(self, shopper, product):
        cart_service.add_item(shopper.id, product.id, 1)
        product.price_cents = 1500
        db.session.commit()
        order = cart_service.checkout(shopper.id)
        assert order.items[0].price_cents == 1500

    def test_empty_cart(self, shopper):
        with pytest.raises(InvalidOrderInput):
            cart_service.checkout(shopper.id)

    def test_failed_checkout_keeps_cart(self, shopper, product):
        cart_service.add_item(shopper.id, product.id, 9)
        with pytest.raises(InsufficientStock):
            cart_service.checkout(shopper.id)
        assert cart_service.item_count(shopper.id) == 9
        assert db.session.query(Order).count() == 0

    def test_checkout_orders_cart_lines_as_stored(self, shopper, product):
        cart = cart_service.add_item(shopper.id, product.id, 1)
        assert cart.items[0].quantity == 1

        # Written behind the session's back after the cart was loaded
        db.session.execute(text("UPDATE cart_items SET quantity = 3"))

        order = cart_service.checkout(shopper.id)
        assert [(i.product_id, i.quantity) for i in order.items] == [(product.id, 3)]
        assert inventory_service.get_quantity_on_hand(product.id) == 2

    def test_checkout_only_removes_ordered_lines(self, shopper, product, second_product, monkeypatch):
        cart_service.add_item(shopper.id, product.id, 1)
        original = order_service._place_order

        def place_then_add_line(user, lines, **kwargs):
            order = original(user, lines, **kwargs)
            cart = db.session.query(Cart).filter_by(user_id=user.id).one()
            db.session.execute(
                text("INSERT INTO cart_items (cart_id, product_id, quantity) VALUES (:c, :p, 2)"),
                {"c": cart.id, "p": second_product.id},
            )
            return order

        monkeypatch.setattr(order_service, "_place_order", place_then_add_line)
        order = cart_service.checkout(shopper.id)

        assert [i.product_id for i in order.items] == [product.id]
        cart = cart_service.get_or_create_cart(shopper.id)
        assert [(i.product_id, i.quantity) for i in cart.items] == [(second_product.id, 2)]
