"""
Order service tests.

Verifies:
- checkout prices, persists and reserves in one transaction
- every failure leaves no order, no stock movement and an untouched cart
- discount rules (expired, restricted, already used)
- cancellation and return-request permissions
- order queries
"""

from datetime import timedelta

import pytest

from storefront.errors import (
    DiscountAlreadyUsed,
    DiscountExpired,
    DiscountNotApplicable,
    InsufficientStock,
    InvalidOrderInput,
    InvalidStatusTransition,
    NotFoundError,
    PermissionDeniedError,
    ProductNotFound,
    ValidationError,
)
from storefront.extensions import db
from storefront.models import CartItem, InventoryLogEntry, Order, ROLE_ADMIN
from storefront.services import cart_service, inventory_service, order_service
from storefront.services import order_lifecycle_service as lifecycle
from storefront.services.session_service import Principal
from storefront.time_utils import utcnow


def _line(product, quantity, price_cents=None):
    return order_service.OrderLineRequest(product_id=product.id, quantity=quantity, price_cents=price_cents)


def _order_count():
    return db.session.query(Order).count()


def _log_count():
    return db.session.query(InventoryLogEntry).count()


class TestCreateOrder:

    def test_stock_five_order_three_then_three_again(self, shopper, product):
        order = order_service.create_order(user_id=shopper.id, items=[_line(product, 3)])

        assert order.status == "PENDING"
        assert inventory_service.get_quantity_on_hand(product.id) == 2
        entries = inventory_service.list_order_log_entries(order.id)
        assert [e.change for e in entries] == [-3]
        assert entries[0].reason == f"Order {order.id}"

        with pytest.raises(InsufficientStock) as exc_info:
            order_service.create_order(user_id=shopper.id, items=[_line(product, 3)])

        assert exc_info.value.available == 2
        assert inventory_service.get_quantity_on_hand(product.id) == 2
        assert _order_count() == 1

    def test_price_snapshot_and_totals(self, shopper, product, second_product):
        order = order_service.create_order(
            user_id=shopper.id,
            items=[_line(product, 2), _line(second_product, 3)],
        )
        assert order.subtotal_cents == 2 * 1000 + 3 * 250
        assert order.discount_cents == 0
        assert order.total_amount_cents == order.subtotal_cents
        assert {i.product_id: i.price_cents for i in order.items} == {product.id: 1000, second_product.id: 250}

    def test_explicit_line_price_is_used(self, shopper, product):
        order = order_service.create_order(user_id=shopper.id, items=[_line(product, 1, price_cents=800)])
        assert order.items[0].price_cents == 800
        assert order.total_amount_cents == 800

    def test_accepts_plain_dict_items(self, shopper, product):
        order = order_service.create_order(user_id=shopper.id, items=[{"product_id": product.id, "quantity": 1}])
        assert order.items[0].quantity == 1

    def test_one_reservation_entry_per_item(self, shopper, product, second_product):
        order = order_service.create_order(
            user_id=shopper.id,
            items=[_line(product, 1), _line(second_product, 2)],
        )
        entries = inventory_service.list_order_log_entries(order.id)
        assert sorted((e.product_id, e.change) for e in entries) == sorted(
            [(product.id, -1), (second_product.id, -2)]
        )

    def test_ten_percent_discount_on_one_thousand(self, shopper, product, discount):
        order = order_service.create_order(user_id=shopper.id, items=[_line(product, 1)], discount_id=discount.id)
        assert order.subtotal_cents == 1000
        assert order.discount_cents == 100
        assert order.total_amount_cents == 900
        assert order.to_dict()["discount"]["code"] == "SAVE10"

    def test_admin_attribution(self, shopper, product, admin):
        order = order_service.create_order(user_id=shopper.id, items=[_line(product, 1)], admin_id=admin.id)
        assert order.admin_id == admin.id
        assert order.to_dict()["admin"] == {"id": admin.id, "name": admin.name}
        entry = inventory_service.list_order_log_entries(order.id)[0]
        assert entry.acting_admin_id == admin.id

    def test_without_admin_the_user_is_recorded_as_actor(self, shopper, product):
        order = order_service.create_order(user_id=shopper.id, items=[_line(product, 1)])
        entry = inventory_service.list_order_log_entries(order.id)[0]
        assert entry.acting_admin_id == shopper.id

    def test_cart_is_emptied(self, shopper, product, second_product):
        cart_service.replace_cart(shopper.id, [{"product_id": second_product.id, "quantity": 2}])
        order_service.create_order(user_id=shopper.id, items=[_line(product, 1)])
        assert cart_service.item_count(shopper.id) == 0


class TestCreateOrderRollback:

    def test_insufficient_stock_on_second_line_rolls_back_everything(self, shopper, product, second_product):
        cart_service.replace_cart(shopper.id, [{"product_id": product.id, "quantity": 1}])
        logs_before = _log_count()

        with pytest.raises(InsufficientStock) as exc_info:
            order_service.create_order(
                user_id=shopper.id,
                items=[_line(product, 1), _line(second_product, 21)],
            )

        assert exc_info.value.items == [{"product_id": second_product.id, "requested": 21, "available": 20}]
        assert _order_count() == 0
        assert _log_count() == logs_before
        assert inventory_service.get_quantity_on_hand(product.id) == 5
        assert cart_service.item_count(shopper.id) == 1

    def test_duplicate_lines_count_against_the_same_stock(self, shopper, product):
        with pytest.raises(InsufficientStock) as exc_info:
            order_service.create_order(user_id=shopper.id, items=[_line(product, 3), _line(product, 3)])
        assert exc_info.value.items[0]["requested"] == 6
        assert inventory_service.get_quantity_on_hand(product.id) == 5

    def test_unknown_product(self, shopper, product):
        with pytest.raises(ProductNotFound) as exc_info:
            order_service.create_order(
                user_id=shopper.id,
                items=[_line(product, 1), order_service.OrderLineRequest(product_id=9999, quantity=1)],
            )
        assert exc_info.value.product_ids == [9999]
        assert _order_count() == 0

    def test_unknown_user(self, product):
        with pytest.raises(NotFoundError):
            order_service.create_order(user_id=9999, items=[_line(product, 1)])

    def test_unknown_admin(self, shopper, product):
        with pytest.raises(NotFoundError):
            order_service.create_order(user_id=shopper.id, items=[_line(product, 1)], admin_id=9999)
        assert inventory_service.get_quantity_on_hand(product.id) == 5

    def test_empty_items(self, shopper):
        with pytest.raises(InvalidOrderInput):
            order_service.create_order(user_id=shopper.id, items=[])

    @pytest.mark.parametrize("quantity", [0, -1])
    def test_non_positive_quantity(self, shopper, product, quantity):
        with pytest.raises(InvalidOrderInput):
            order_service.create_order(user_id=shopper.id, items=[_line(product, quantity)])

    def test_non_positive_price(self, shopper, product):
        with pytest.raises(InvalidOrderInput):
            order_service.create_order(user_id=shopper.id, items=[_line(product, 1, price_cents=0)])
        assert _order_count() == 0
        assert inventory_service.get_quantity_on_hand(product.id) == 5


class TestDiscountRules:

    def test_discount_already_used(self, shopper, product, discount):
        order_service.create_order(user_id=shopper.id, items=[_line(product, 1)], discount_id=discount.id)
        stock_before = inventory_service.get_quantity_on_hand(product.id)

        with pytest.raises(DiscountAlreadyUsed):
            order_service.create_order(user_id=shopper.id, items=[_line(product, 1)], discount_id=discount.id)

        assert _order_count() == 1
        assert inventory_service.get_quantity_on_hand(product.id) == stock_before

    def test_other_user_may_use_the_same_code(self, shopper, other_shopper, product, discount):
        order_service.create_order(user_id=shopper.id, items=[_line(product, 1)], discount_id=discount.id)
        order = order_service.create_order(user_id=other_shopper.id, items=[_line(product, 1)], discount_id=discount.id)
        assert order.discount_cents == 100

    def test_expired_discount(self, shopper, product, make_discount):
        expired = make_discount(code="OLD", valid_till=utcnow() - timedelta(days=1))
        with pytest.raises(DiscountExpired):
            order_service.create_order(user_id=shopper.id, items=[_line(product, 1)], discount_id=expired.id)
        assert _order_count() == 0

    def test_restricted_to_other_users(self, shopper, other_shopper, product, make_discount):
        vip = make_discount(code="VIP", user_ids=[other_shopper.id])
        with pytest.raises(DiscountNotApplicable):
            order_service.create_order(user_id=shopper.id, items=[_line(product, 1)], discount_id=vip.id)

    def test_unknown_discount(self, shopper, product):
        with pytest.raises(NotFoundError):
            order_service.create_order(user_id=shopper.id, items=[_line(product, 1)], discount_id=4040)


class TestCancelOrder:

    def test_owner_cancels_pending(self, shopper, shopper_principal, product):
        order = order_service.create_order(user_id=shopper.id, items=[_line(product, 2)])
        cancelled = order_service.cancel_order(order.id, principal=shopper_principal, reason="Ordered twice")

        assert cancelled.status == "CANCELLED"
        assert cancelled.cancellation_reason == "Ordered twice"
        assert inventory_service.get_quantity_on_hand(product.id) == 5
        entries = inventory_service.list_order_log_entries(order.id)
        assert [e.change for e in entries] == [-2, 2]
        assert entries[1].reason.startswith(f"Order {order.id}")

    def test_other_shopper_cannot_cancel(self, shopper, other_shopper, product):
        order = order_service.create_order(user_id=shopper.id, items=[_line(product, 1)])
        intruder = Principal(id=other_shopper.id, role="USER")
        with pytest.raises(PermissionDeniedError):
            order_service.cancel_order(order.id, principal=intruder)
        assert db.session.get(Order, order.id).status == "PENDING"

    def test_admin_can_cancel_processing(self, shopper, admin_principal, product):
        order = order_service.create_order(user_id=shopper.id, items=[_line(product, 1)])
        lifecycle.transition_order(order.id, "PROCESSING", acting_principal_id=admin_principal.id)
        assert order_service.cancel_order(order.id, principal=admin_principal).status == "CANCELLED"

    def test_shipped_order_cannot_be_cancelled(self, shopper, shopper_principal, admin, product):
        order = order_service.create_order(user_id=shopper.id, items=[_line(product, 1)])
        for status in ("PROCESSING", "SHIPPED"):
            lifecycle.transition_order(order.id, status, acting_principal_id=admin.id)
        with pytest.raises(InvalidStatusTransition):
            order_service.cancel_order(order.id, principal=shopper_principal)
        assert inventory_service.get_quantity_on_hand(product.id) == 4


class TestReturnRequest:

    def _delivered(self, shopper, product, admin, quantity=2):
        order = order_service.create_order(user_id=shopper.id, items=[_line(product, quantity)])
        for status in ("PROCESSING", "SHIPPED", "DELIVERED"):
            lifecycle.transition_order(order.id, status, acting_principal_id=admin.id)
        return order

    def test_owner_requests_return_with_items(self, shopper, shopper_principal, admin, product):
        order = self._delivered(shopper, product, admin)
        order, return_request = order_service.request_return(
            order.id,
            principal=shopper_principal,
            reason="Damaged",
            items=[order_service.ReturnLineRequest(product_id=product.id, quantity=1, reason="Torn strap")],
        )
        assert order.status == "RETURN_REQUESTED"
        assert return_request.status == "PENDING"
        assert [(i.product_id, i.quantity) for i in return_request.items] == [(product.id, 1)]
        # Stock only comes back on approval
        assert inventory_service.get_quantity_on_hand(product.id) == 3

    def test_reason_required(self, shopper, shopper_principal, admin, product):
        order = self._delivered(shopper, product, admin)
        with pytest.raises(ValidationError):
            order_service.request_return(order.id, principal=shopper_principal, reason="  ")

    def test_only_owner(self, shopper, admin_principal, admin, product):
        order = self._delivered(shopper, product, admin)
        with pytest.raises(PermissionDeniedError):
            order_service.request_return(order.id, principal=admin_principal, reason="Damaged")

    def test_pending_order_cannot_be_returned(self, shopper, shopper_principal, product):
        order = order_service.create_order(user_id=shopper.id, items=[_line(product, 1)])
        with pytest.raises(InvalidStatusTransition):
            order_service.request_return(order.id, principal=shopper_principal, reason="Damaged")

    def test_cannot_return_more_than_ordered(self, shopper, shopper_principal, admin, product):
        order = self._delivered(shopper, product, admin, quantity=2)
        with pytest.raises(ValidationError):
            order_service.request_return(
                order.id,
                principal=shopper_principal,
                reason="Damaged",
                items=[order_service.ReturnLineRequest(product_id=product.id, quantity=3)],
            )
        assert db.session.get(Order, order.id).status == "DELIVERED"

    def test_cannot_return_product_not_in_order(self, shopper, shopper_principal, admin, product, second_product):
        order = self._delivered(shopper, product, admin)
        with pytest.raises(ValidationError):
            order_service.request_return(
                order.id,
                principal=shopper_principal,
                reason="Damaged",
                items=[order_service.ReturnLineRequest(product_id=second_product.id, quantity=1)],
            )


class TestQueries:

    def test_owner_and_admin_can_read(self, shopper, shopper_principal, admin_principal, product):
        order = order_service.create_order(user_id=shopper.id, items=[_line(product, 1)])
        assert order_service.get_order(order.id, shopper_principal).id == order.id
        assert order_service.get_order(order.id, admin_principal).id == order.id

    def test_other_shopper_cannot_read(self, shopper, other_shopper, product):
        order = order_service.create_order(user_id=shopper.id, items=[_line(product, 1)])
        with pytest.raises(PermissionDeniedError):
            order_service.get_order(order.id, Principal(id=other_shopper.id, role="USER"))

    def test_missing_order(self):
        with pytest.raises(NotFoundError):
            order_service.get_order(777)

    def test_user_history_newest_first_with_status_filter(self, shopper, admin, product):
        first = order_service.create_order(user_id=shopper.id, items=[_line(product, 1)])
        second = order_service.create_order(user_id=shopper.id, items=[_line(product, 1)])
        lifecycle.transition_order(first.id, "CANCELLED", acting_principal_id=admin.id)

        history = order_service.list_user_orders(shopper.id)
        assert [o.id for o in history["data"]] == [second.id, first.id]
        assert history["pagination"]["total"] == 2

        cancelled = order_service.list_user_orders(shopper.id, status="CANCELLED")
        assert [o.id for o in cancelled["data"]] == [first.id]

    def test_admin_orders(self, shopper, admin, other_admin, product):
        mine = order_service.create_order(user_id=shopper.id, items=[_line(product, 1)], admin_id=admin.id)
        order_service.create_order(user_id=shopper.id, items=[_line(product, 1)], admin_id=other_admin.id)
        result = order_service.list_admin_orders(admin.id)
        assert [o.id for o in result["data"]] == [mine.id]

    def test_bad_status_filter(self, shopper):
        with pytest.raises(ValidationError):
            order_service.list_user_orders(shopper.id, status="LOST")

    def test_update_status_and_note(self, shopper, product, admin):
        order = order_service.create_order(user_id=shopper.id, items=[_line(product, 1)])
        principal = Principal(id=admin.id, role=ROLE_ADMIN)
        updated = order_service.update_order_status(order.id, "PROCESSING", principal=principal, admin_note="Picked")
        assert updated.status == "PROCESSING"
        assert updated.admin_note == "Picked"

        noted = order_service.update_admin_note(order.id, "Gift wrap")
        assert noted.admin_note == "Gift wrap"
        assert noted.status == "PROCESSING"

    def test_note_update_takes_the_write_lock(self, shopper, product, monkeypatch):
        order = order_service.create_order(user_id=shopper.id, items=[_line(product, 1)])
        calls = []
        original = order_service.begin_write_transaction

        def counting_begin():
            calls.append(True)
            original()

        monkeypatch.setattr(order_service, "begin_write_transaction", counting_begin)
        order_service.update_admin_note(order.id, "Leave at the door")

        assert calls == [True]
        db.session.expire_all()
        assert db.session.get(Order, order.id).admin_note == "Leave at the door"


class TestCartLines:

    def test_cart_items_removed_by_checkout(self, shopper, product):
        cart_service.replace_cart(shopper.id, [{"product_id": product.id, "quantity": 2}])
        order_service.create_order(user_id=shopper.id, items=[_line(product, 2)])
        assert db.session.query(CartItem).count() == 0
