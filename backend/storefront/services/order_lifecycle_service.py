# Overview: Order status state machine; owns Order.status and releases reserved stock on the way out.

"""
Order Lifecycle Service

================================================================================
STATE MACHINE
================================================================================

    PENDING ----------> PROCESSING ------> SHIPPED ------> DELIVERED
       |                    |                 |                |
       v                    v                 v                v
    CANCELLED           CANCELLED       RETURN_REQUESTED <-----+
                                          |          |
                                          v          v
                                  RETURN_APPROVED  RETURN_REJECTED
                                          |
                                          v
                                       REFUNDED

Terminal: CANCELLED, RETURN_REJECTED, REFUNDED.

RULES:
1. Any edge not drawn above is rejected with InvalidStatusTransition
   before anything is written (same-state requests included).
2. Stock is reserved when the order is created. Entering CANCELLED,
   RETURN_APPROVED or REFUNDED releases every order item's reservation.
3. A reservation is released at most once. RETURN_APPROVED -> REFUNDED
   reaches the release step a second time; the ledger's idempotency key
   turns that into a no-op.
4. The order row is locked for the whole transition, so two concurrent
   requests for the same order serialize and the loser sees the new status.
5. Who may ask for a transition is decided by the caller; this module only
   enforces the graph and its inventory side effect.

================================================================================
"""

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..errors import InvalidStatusTransition, NotFoundError, ValidationError
from ..models import Order, ReturnRequest
from ..time_utils import utcnow
from . import inventory_service
from .concurrency import begin_write_transaction, lock_for_update, run_with_retry


PENDING = "PENDING"
PROCESSING = "PROCESSING"
SHIPPED = "SHIPPED"
DELIVERED = "DELIVERED"
CANCELLED = "CANCELLED"
RETURN_REQUESTED = "RETURN_REQUESTED"
RETURN_APPROVED = "RETURN_APPROVED"
RETURN_REJECTED = "RETURN_REJECTED"
REFUNDED = "REFUNDED"

VALID_STATUSES = (
    PENDING, PROCESSING, SHIPPED, DELIVERED, CANCELLED,
    RETURN_REQUESTED, RETURN_APPROVED, RETURN_REJECTED, REFUNDED,
)

TRANSITIONS: dict[str, frozenset[str]] = {
    PENDING: frozenset({PROCESSING, CANCELLED}),
    PROCESSING: frozenset({SHIPPED, CANCELLED}),
    SHIPPED: frozenset({DELIVERED, RETURN_REQUESTED}),
    DELIVERED: frozenset({RETURN_REQUESTED}),
    RETURN_REQUESTED: frozenset({RETURN_APPROVED, RETURN_REJECTED}),
    RETURN_APPROVED: frozenset({REFUNDED}),
    CANCELLED: frozenset(),
    RETURN_REJECTED: frozenset(),
    REFUNDED: frozenset(),
}

TERMINAL_STATUSES = frozenset(s for s, targets in TRANSITIONS.items() if not targets)

# Entering one of these gives the order's stock back
RELEASING_STATUSES = frozenset({CANCELLED, RETURN_APPROVED, REFUNDED})

CANCELLABLE_STATUSES = frozenset({PENDING, PROCESSING})
RETURNABLE_STATUSES = frozenset({SHIPPED, DELIVERED})

# ReturnRequest.status that follows each order status
_RETURN_REQUEST_STATUS = {
    RETURN_APPROVED: "APPROVED",
    RETURN_REJECTED: "REJECTED",
    REFUNDED: "COMPLETED",
}


def validate_status(status: str) -> None:
    if status not in VALID_STATUSES:
        raise ValidationError(
            f"Invalid status '{status}'. Must be one of: {', '.join(VALID_STATUSES)}",
            details={"field": "status"},
        )


def can_transition(from_status: str, to_status: str) -> bool:
    validate_status(from_status)
    validate_status(to_status)
    return to_status in TRANSITIONS[from_status]


def allowed_transitions(status: str) -> list[str]:
    validate_status(status)
    return [s for s in VALID_STATUSES if s in TRANSITIONS[status]]


def is_terminal(status: str) -> bool:
    validate_status(status)
    return status in TERMINAL_STATUSES


def lock_order(order_id: int) -> Order:
    order = lock_for_update(db.session.query(Order).filter_by(id=order_id)).first()
    if order is None:
        raise NotFoundError("Order", order_id, message="Order not found")
    return order


def _release_order_stock(order: Order, acting_admin_id: int | None) -> int:
    """Release every item's reservation; returns how many entries were actually written."""
    applied = 0
    for item in order.items:
        result = inventory_service.release(
            item.product_id,
            item.quantity,
            acting_admin_id=acting_admin_id,
            reason=f"Order {order.id} return/refund" if order.status != CANCELLED else f"Order {order.id} cancelled",
            order_id=order.id,
            idempotency_key=inventory_service.release_key(order.id, item.id),
        )
        if result.applied:
            applied += 1
    return applied


def _sync_return_request(order: Order) -> None:
    target = _RETURN_REQUEST_STATUS.get(order.status)
    if target is None:
        return
    request_doc = (
        db.session.query(ReturnRequest)
        .filter_by(order_id=order.id)
        .order_by(ReturnRequest.id.desc())
        .first()
    )
    if request_doc is None:
        return
    request_doc.status = target
    request_doc.resolved_at = utcnow()


def apply_transition(
    order: Order,
    requested_status: str,
    *,
    acting_principal_id: int | None,
    note: str | None = None,
    cancellation_reason: str | None = None,
) -> Order:
    """
    Move a locked order to requested_status inside the caller's transaction.

    Legality is checked before any write. Does not commit.
    """
    validate_status(requested_status)
    if requested_status not in TRANSITIONS[order.status]:
        raise InvalidStatusTransition(order.status, requested_status)

    previous = order.status
    order.status = requested_status
    if note:
        order.admin_note = note
    if requested_status == CANCELLED and cancellation_reason:
        order.cancellation_reason = cancellation_reason

    released = 0
    if requested_status in RELEASING_STATUSES:
        released = _release_order_stock(order, acting_principal_id)

    _sync_return_request(order)
    db.session.flush()

    current_app.logger.info(
        "Order %s moved %s -> %s (released %d item reservation(s))",
        order.id, previous, requested_status, released,
    )
    return order


def transition_order(
    order_id: int,
    requested_status: str,
    *,
    acting_principal_id: int | None,
    note: str | None = None,
    cancellation_reason: str | None = None,
) -> Order:
    """
    Transition an order as one unit of work.

    Raises NotFoundError, ValidationError (unknown status) or
    InvalidStatusTransition; on any failure nothing is changed.
    """
    validate_status(requested_status)

    def _op():
        begin_write_transaction()
        order = lock_order(order_id)
        apply_transition(
            order,
            requested_status,
            acting_principal_id=acting_principal_id,
            note=note,
            cancellation_reason=cancellation_reason,
        )
        db.session.commit()
        return order

    return run_with_retry(_op)
