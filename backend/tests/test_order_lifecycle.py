"""
Order lifecycle tests.

Verifies:
- the transition graph (legal edges pass, everything else is rejected)
- rejected transitions change nothing
- stock is released on CANCELLED / RETURN_APPROVED and never twice
- return requests follow the order's RETURN_* states
"""

import pytest

from storefront.errors import InvalidStatusTransition, NotFoundError, ValidationError
from storefront.extensions import db
from storefront.models import InventoryLogEntry, Order, ReturnRequest
from storefront.services import inventory_service, order_service
from storefront.services import order_lifecycle_service as lifecycle


def _place(shopper, product, quantity=2):
    return order_service.create_order(
        user_id=shopper.id,
        items=[order_service.OrderLineRequest(product_id=product.id, quantity=quantity)],
    )


def _walk(order_id, statuses, actor_id):
    for status in statuses:
        lifecycle.transition_order(order_id, status, acting_principal_id=actor_id)
    return db.session.get(Order, order_id)


class TestGraph:

    @pytest.mark.parametrize(
        "from_status,to_status",
        [
            ("PENDING", "PROCESSING"),
            ("PENDING", "CANCELLED"),
            ("PROCESSING", "SHIPPED"),
            ("PROCESSING", "CANCELLED"),
            ("SHIPPED", "DELIVERED"),
            ("SHIPPED", "RETURN_REQUESTED"),
            ("DELIVERED", "RETURN_REQUESTED"),
            ("RETURN_REQUESTED", "RETURN_APPROVED"),
            ("RETURN_REQUESTED", "RETURN_REJECTED"),
            ("RETURN_APPROVED", "REFUNDED"),
        ],
    )
    def test_legal_edges(self, from_status, to_status):
        assert lifecycle.can_transition(from_status, to_status)

    @pytest.mark.parametrize(
        "from_status,to_status",
        [
            ("DELIVERED", "CANCELLED"),
            ("PENDING", "SHIPPED"),
            ("PENDING", "PENDING"),
            ("SHIPPED", "CANCELLED"),
            ("PENDING", "REFUNDED"),
            ("RETURN_REJECTED", "RETURN_APPROVED"),
            ("REFUNDED", "REFUNDED"),
            ("CANCELLED", "PROCESSING"),
        ],
    )
    def test_illegal_edges(self, from_status, to_status):
        assert not lifecycle.can_transition(from_status, to_status)

    def test_terminal_states(self):
        assert lifecycle.TERMINAL_STATUSES == {"CANCELLED", "RETURN_REJECTED", "REFUNDED"}
        assert not lifecycle.is_terminal("DELIVERED")
        assert lifecycle.allowed_transitions("REFUNDED") == []

    def test_allowed_transitions_in_declaration_order(self):
        assert lifecycle.allowed_transitions("PENDING") == ["PROCESSING", "CANCELLED"]

    def test_unknown_status(self):
        with pytest.raises(ValidationError):
            lifecycle.validate_status("LOST")

    def test_refunded_only_reachable_through_a_return(self):
        # Breadth-first search over the graph from PENDING
        frontier = [("PENDING", ["PENDING"])]
        paths = []
        while frontier:
            status, path = frontier.pop(0)
            if status == "REFUNDED":
                paths.append(path)
                continue
            for nxt in lifecycle.allowed_transitions(status):
                frontier.append((nxt, path + [nxt]))
        assert paths
        assert min(len(p) - 1 for p in paths) == 5
        assert all("RETURN_APPROVED" in p for p in paths)


class TestTransitions:

    def test_delivered_to_cancelled_is_rejected_and_nothing_changes(self, shopper, product, admin):
        order = _place(shopper, product)
        _walk(order.id, ["PROCESSING", "SHIPPED", "DELIVERED"], admin.id)
        entries_before = db.session.query(InventoryLogEntry).count()

        with pytest.raises(InvalidStatusTransition) as exc_info:
            lifecycle.transition_order(order.id, "CANCELLED", acting_principal_id=admin.id)

        assert exc_info.value.details == {"from": "DELIVERED", "to": "CANCELLED"}
        assert db.session.get(Order, order.id).status == "DELIVERED"
        assert db.session.query(InventoryLogEntry).count() == entries_before
        assert inventory_service.get_quantity_on_hand(product.id) == 3

    def test_unknown_order(self, admin):
        with pytest.raises(NotFoundError):
            lifecycle.transition_order(31337, "PROCESSING", acting_principal_id=admin.id)

    def test_note_is_recorded(self, shopper, product, admin):
        order = _place(shopper, product)
        lifecycle.transition_order(order.id, "PROCESSING", acting_principal_id=admin.id, note="Packed")
        assert db.session.get(Order, order.id).admin_note == "Packed"

    def test_forward_path_does_not_touch_stock(self, shopper, product, admin):
        order = _place(shopper, product)
        _walk(order.id, ["PROCESSING", "SHIPPED", "DELIVERED"], admin.id)
        assert inventory_service.get_quantity_on_hand(product.id) == 3
        assert len(inventory_service.list_order_log_entries(order.id)) == 1


class TestStockRelease:

    def test_cancel_from_pending_releases(self, shopper, product, admin):
        order = _place(shopper, product, quantity=2)
        lifecycle.transition_order(order.id, "CANCELLED", acting_principal_id=admin.id)

        assert inventory_service.get_quantity_on_hand(product.id) == 5
        entries = inventory_service.list_order_log_entries(order.id)
        assert [e.change for e in entries] == [-2, 2]
        assert entries[1].reason == f"Order {order.id} cancelled"

    def test_cancel_from_processing_releases(self, shopper, product, admin):
        order = _place(shopper, product, quantity=2)
        _walk(order.id, ["PROCESSING", "CANCELLED"], admin.id)
        assert inventory_service.get_quantity_on_hand(product.id) == 5

    def test_return_approved_then_refunded_releases_once(self, shopper, product, admin):
        order = _place(shopper, product, quantity=2)
        _walk(order.id, ["PROCESSING", "SHIPPED", "DELIVERED", "RETURN_REQUESTED"], admin.id)

        lifecycle.transition_order(order.id, "RETURN_APPROVED", acting_principal_id=admin.id)
        assert inventory_service.get_quantity_on_hand(product.id) == 5

        lifecycle.transition_order(order.id, "REFUNDED", acting_principal_id=admin.id)
        assert inventory_service.get_quantity_on_hand(product.id) == 5

        entries = inventory_service.list_order_log_entries(order.id)
        assert [e.change for e in entries] == [-2, 2]
        assert entries[1].reason == f"Order {order.id} return/refund"

    def test_second_refund_is_rejected_without_stock_change(self, shopper, product, admin):
        order = _place(shopper, product, quantity=2)
        _walk(order.id, ["PROCESSING", "SHIPPED", "RETURN_REQUESTED", "RETURN_APPROVED", "REFUNDED"], admin.id)

        with pytest.raises(InvalidStatusTransition):
            lifecycle.transition_order(order.id, "REFUNDED", acting_principal_id=admin.id)
        assert inventory_service.get_quantity_on_hand(product.id) == 5

    def test_return_rejected_keeps_stock_out(self, shopper, product, admin):
        order = _place(shopper, product, quantity=2)
        _walk(order.id, ["PROCESSING", "SHIPPED", "RETURN_REQUESTED", "RETURN_REJECTED"], admin.id)
        assert inventory_service.get_quantity_on_hand(product.id) == 3

    def test_multi_item_order_releases_every_line(self, shopper, product, second_product, admin):
        order = order_service.create_order(
            user_id=shopper.id,
            items=[
                order_service.OrderLineRequest(product_id=product.id, quantity=1),
                order_service.OrderLineRequest(product_id=second_product.id, quantity=4),
            ],
        )
        lifecycle.transition_order(order.id, "CANCELLED", acting_principal_id=admin.id)
        assert inventory_service.get_quantity_on_hand(product.id) == 5
        assert inventory_service.get_quantity_on_hand(second_product.id) == 20


class TestReturnRequestSync:

    def test_request_follows_approval_and_refund(self, shopper, shopper_principal, product, admin):
        order = _place(shopper, product)
        _walk(order.id, ["PROCESSING", "SHIPPED", "DELIVERED"], admin.id)
        _, return_request = order_service.request_return(order.id, principal=shopper_principal, reason="Too small")
        request_id = return_request.id

        lifecycle.transition_order(order.id, "RETURN_APPROVED", acting_principal_id=admin.id)
        assert db.session.get(ReturnRequest, request_id).status == "APPROVED"

        lifecycle.transition_order(order.id, "REFUNDED", acting_principal_id=admin.id)
        request_doc = db.session.get(ReturnRequest, request_id)
        assert request_doc.status == "COMPLETED"
        assert request_doc.resolved_at is not None

    def test_request_rejected(self, shopper, shopper_principal, product, admin):
        order = _place(shopper, product)
        _walk(order.id, ["PROCESSING", "SHIPPED"], admin.id)
        _, return_request = order_service.request_return(order.id, principal=shopper_principal, reason="Changed mind")

        lifecycle.transition_order(order.id, "RETURN_REJECTED", acting_principal_id=admin.id)
        assert db.session.get(ReturnRequest, return_request.id).status == "REJECTED"
