# Overview: Order creation orchestrator plus order queries, cancellation and return requests.

"""
Order Service

create_order() is the checkout transaction. In one database transaction it:

1. validates the user, the optional admin and discount, every product and
   the stock for every product (reading the inventory rows FOR UPDATE),
2. prices the lines with the pricing engine,
3. inserts the Order (PENDING) and its OrderItems with price snapshots,
4. reserves stock for each item through the inventory ledger,
5. empties the user's cart,

and commits. Any failure rolls all of it back: no order row, no stock
movement, no emptied cart.

The discount "already used" check runs inside that same transaction with
the user row locked, so two checkouts by the same user with the same code
cannot both pass it.
"""

from __future__ import annotations

from dataclasses import dataclass

from flask import current_app

from ..extensions import db
from ..errors import (
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
from ..models import Admin, Cart, CartItem, Discount, Inventory, Order, OrderItem, Product, ReturnRequest, ReturnRequestItem, User
from ..time_utils import is_expired, to_utc_z
from . import inventory_service, order_lifecycle_service as lifecycle
from .concurrency import begin_write_transaction, lock_for_update, run_with_retry
from .paging import paginate
from .pricing_service import PricedLine, compute_totals
from .session_service import Principal


@dataclass(frozen=True)
class OrderLineRequest:
    product_id: int
    quantity: int
    price_cents: int | None = None  # None -> current catalog price


@dataclass(frozen=True)
class ReturnLineRequest:
    product_id: int
    quantity: int
    reason: str | None = None


# =============================================================================
# VALIDATION (runs inside the checkout transaction)
# =============================================================================

def _lock_user(user_id: int) -> User:
    user = lock_for_update(db.session.query(User).filter_by(id=user_id)).first()
    if user is None:
        raise NotFoundError("User", user_id, message="User not found")
    return user


def check_discount_usable(discount: Discount, user: User) -> None:
    """Unexpired, open to this user, and never used on one of this user's orders."""
    if is_expired(discount.valid_till):
        raise DiscountExpired(discount.id, to_utc_z(discount.valid_till))

    if discount.users and all(u.id != user.id for u in discount.users):
        raise DiscountNotApplicable(discount.id, user.id)

    used = (
        db.session.query(Order.id)
        .filter_by(user_id=user.id, discount_id=discount.id)
        .first()
    )
    if used is not None:
        raise DiscountAlreadyUsed(discount.id, user.id)


def _load_discount(discount_id: int | None, user: User) -> Discount | None:
    if discount_id is None:
        return None
    discount = db.session.get(Discount, discount_id)
    if discount is None:
        raise NotFoundError("Discount", discount_id, message="Discount not found")
    check_discount_usable(discount, user)
    return discount


def _load_products(lines: list[OrderLineRequest]) -> dict[int, Product]:
    product_ids = sorted({line.product_id for line in lines})
    products = db.session.query(Product).filter(Product.id.in_(product_ids)).all()
    by_id = {p.id: p for p in products}
    missing = [pid for pid in product_ids if pid not in by_id]
    if missing:
        raise ProductNotFound(missing)
    return by_id


def _check_stock(lines: list[OrderLineRequest]) -> None:
    requested: dict[int, int] = {}
    for line in lines:
        requested[line.product_id] = requested.get(line.product_id, 0) + line.quantity

    # Lock in product order so concurrent multi-product checkouts cannot deadlock
    rows = lock_for_update(
        db.session.query(Inventory)
        .filter(Inventory.product_id.in_(sorted(requested)))
        .order_by(Inventory.product_id)
    ).all()
    on_hand = {row.product_id: row.quantity for row in rows}

    insufficient = []
    for product_id in sorted(requested):
        available = on_hand.get(product_id, 0)
        if available < requested[product_id]:
            insufficient.append({
                "product_id": product_id,
                "requested": requested[product_id],
                "available": available,
            })
    if insufficient:
        raise InsufficientStock(insufficient)


def _normalize_lines(items) -> list[OrderLineRequest]:
    if not items:
        raise InvalidOrderInput("Order must contain at least one item", details={"field": "items"})
    lines = []
    for item in items:
        if isinstance(item, OrderLineRequest):
            lines.append(item)
        else:
            lines.append(OrderLineRequest(
                product_id=item["product_id"],
                quantity=item["quantity"],
                price_cents=item.get("price_cents"),
            ))
    for line in lines:
        if isinstance(line.quantity, bool) or not isinstance(line.quantity, int) or line.quantity <= 0:
            raise InvalidOrderInput(
                f"quantity must be positive (product {line.product_id})",
                details={"field": "quantity", "product_id": line.product_id},
            )
    return lines


# =============================================================================
# ORDER CREATION
# =============================================================================

def _clear_cart(cart: Cart | None, ordered_item_ids: list[int] | None = None) -> None:
    """Drop the ordered cart lines (all of them when ordered_item_ids is None) and the discount."""
    if cart is None:
        return
    q = db.session.query(CartItem).filter_by(cart_id=cart.id)
    if ordered_item_ids is not None:
        q = q.filter(CartItem.id.in_(ordered_item_ids))
    q.delete(synchronize_session="fetch")
    db.session.expire(cart, ["items"])
    cart.discount_id = None


def _place_order(user: User, lines: list[OrderLineRequest], *, admin_id: int | None, discount_id: int | None) -> Order:
    """Validate, price, persist and reserve. Runs inside an open write transaction."""
    if admin_id is not None and db.session.get(Admin, admin_id) is None:
        raise NotFoundError("Admin", admin_id, message="Admin not found")
    discount = _load_discount(discount_id, user)
    products = _load_products(lines)
    _check_stock(lines)

    priced = [
        PricedLine(
            product_id=line.product_id,
            price_cents=line.price_cents if line.price_cents is not None else products[line.product_id].price_cents,
            quantity=line.quantity,
        )
        for line in lines
    ]
    totals = compute_totals(priced, discount.percentage if discount else None)

    order = Order(
        user_id=user.id,
        admin_id=admin_id,
        discount_id=discount.id if discount else None,
        subtotal_cents=totals.subtotal_cents,
        discount_cents=totals.discount_cents,
        total_amount_cents=totals.total_cents,
        status=lifecycle.PENDING,
    )
    order.items = [
        OrderItem(product_id=p.product_id, quantity=p.quantity, price_cents=p.price_cents)
        for p in priced
    ]
    db.session.add(order)
    db.session.flush()

    acting_id = admin_id if admin_id is not None else user.id
    for item in order.items:
        inventory_service.reserve(
            item.product_id,
            item.quantity,
            acting_admin_id=acting_id,
            reason=f"Order {order.id}",
            order_id=order.id,
            idempotency_key=inventory_service.reservation_key(order.id, item.id),
        )
    return order


def create_order(
    *,
    user_id: int,
    items,
    admin_id: int | None = None,
    discount_id: int | None = None,
) -> Order:
    """
    Checkout. items is a list of OrderLineRequest (or dicts with
    product_id, quantity and optional price_cents).

    Raises NotFoundError / ProductNotFound, DiscountExpired,
    DiscountNotApplicable, DiscountAlreadyUsed, InsufficientStock or
    InvalidOrderInput. On any of them nothing is persisted.
    """
    lines = _normalize_lines(items)

    def _op():
        begin_write_transaction()
        user = _lock_user(user_id)
        order = _place_order(user, lines, admin_id=admin_id, discount_id=discount_id)
        _clear_cart(db.session.query(Cart).filter_by(user_id=user.id).first())
        db.session.commit()
        return order

    order = run_with_retry(_op)
    current_app.logger.info(
        "Order %s created for user %s: %d item(s), total %s cents",
        order.id, user_id, len(order.items), order.total_amount_cents,
    )
    return order


def checkout_cart(user_id: int, *, admin_id: int | None = None) -> Order:
    """
    Order exactly what the cart holds at current catalog prices.

    The cart lines and its discount are read after the write lock is taken,
    and only those lines are removed afterwards, so an item added to the
    cart concurrently is never dropped without being ordered.
    """
    def _op():
        begin_write_transaction()
        user = _lock_user(user_id)
        cart = lock_for_update(
            db.session.query(Cart).filter_by(user_id=user.id).populate_existing()
        ).first()
        cart_items = []
        if cart is not None:
            cart_items = (
                db.session.query(CartItem)
                .filter_by(cart_id=cart.id)
                .order_by(CartItem.id)
                .populate_existing()
                .all()
            )
        if not cart_items:
            raise InvalidOrderInput("Cart is empty", details={"field": "items"})

        lines = _normalize_lines([
            OrderLineRequest(product_id=i.product_id, quantity=i.quantity) for i in cart_items
        ])
        order = _place_order(user, lines, admin_id=admin_id, discount_id=cart.discount_id)
        _clear_cart(cart, [i.id for i in cart_items])
        db.session.commit()
        return order

    order = run_with_retry(_op)
    current_app.logger.info(
        "Cart of user %s checked out as order %s, total %s cents",
        user_id, order.id, order.total_amount_cents,
    )
    return order


# =============================================================================
# QUERIES
# =============================================================================

def get_order(order_id: int, principal: Principal | None = None) -> Order:
    order = db.session.get(Order, order_id)
    if order is None:
        raise NotFoundError("Order", order_id, message="Order not found")
    if principal is not None and not principal.is_admin and order.user_id != principal.id:
        raise PermissionDeniedError("Not authorized to view this order")
    return order


def list_user_orders(user_id: int, *, page: int = 1, limit: int = 10, status: str | None = None) -> dict:
    q = db.session.query(Order).filter_by(user_id=user_id)
    if status:
        lifecycle.validate_status(status)
        q = q.filter_by(status=status)
    return paginate(q.order_by(Order.created_at.desc(), Order.id.desc()), page=page, limit=limit)


def list_admin_orders(admin_id: int, *, page: int = 1, limit: int = 10, status: str | None = None) -> dict:
    q = db.session.query(Order).filter_by(admin_id=admin_id)
    if status:
        lifecycle.validate_status(status)
        q = q.filter_by(status=status)
    return paginate(q.order_by(Order.created_at.desc(), Order.id.desc()), page=page, limit=limit)


# =============================================================================
# STATUS CHANGES
# =============================================================================

def update_order_status(
    order_id: int,
    status: str,
    *,
    principal: Principal,
    admin_note: str | None = None,
) -> Order:
    """Admin status change along the lifecycle graph."""
    return lifecycle.transition_order(
        order_id,
        status,
        acting_principal_id=principal.id,
        note=admin_note,
    )


def update_admin_note(order_id: int, note: str) -> Order:
    def _op():
        begin_write_transaction()
        order = lifecycle.lock_order(order_id)
        order.admin_note = note
        db.session.commit()
        return order

    return run_with_retry(_op)


def cancel_order(order_id: int, *, principal: Principal, reason: str | None = None) -> Order:
    """
    Cancel a PENDING or PROCESSING order. Shoppers may only cancel their own
    orders; admins may cancel any. Reserved stock is released.
    """
    def _op():
        begin_write_transaction()
        order = lifecycle.lock_order(order_id)
        if not principal.is_admin and order.user_id != principal.id:
            raise PermissionDeniedError("Not authorized to cancel this order")
        if order.status not in lifecycle.CANCELLABLE_STATUSES:
            raise InvalidStatusTransition(order.status, lifecycle.CANCELLED)

        lifecycle.apply_transition(
            order,
            lifecycle.CANCELLED,
            acting_principal_id=principal.id,
            cancellation_reason=reason,
        )
        db.session.commit()
        return order

    return run_with_retry(_op)


def _validate_return_lines(order: Order, lines: list[ReturnLineRequest]) -> None:
    ordered: dict[int, int] = {}
    for item in order.items:
        ordered[item.product_id] = ordered.get(item.product_id, 0) + item.quantity

    invalid = [line.product_id for line in lines if line.product_id not in ordered]
    if invalid:
        raise ValidationError(
            f"Invalid product IDs: {', '.join(str(pid) for pid in invalid)}",
            details={"product_ids": invalid},
        )

    requested: dict[int, int] = {}
    for line in lines:
        if isinstance(line.quantity, bool) or not isinstance(line.quantity, int) or line.quantity <= 0:
            raise ValidationError("Return quantity must be positive", details={"product_id": line.product_id})
        requested[line.product_id] = requested.get(line.product_id, 0) + line.quantity
    for product_id, qty in requested.items():
        if qty > ordered[product_id]:
            raise ValidationError(
                f"Cannot return {qty} units of product {product_id}; only {ordered[product_id]} were ordered",
                details={"product_id": product_id, "requested": qty, "ordered": ordered[product_id]},
            )


def request_return(
    order_id: int,
    *,
    principal: Principal,
    reason: str,
    items: list[ReturnLineRequest] | None = None,
) -> tuple[Order, ReturnRequest]:
    """
    Shopper asks to return a SHIPPED or DELIVERED order of their own.

    Creates a ReturnRequest (PENDING) and moves the order to
    RETURN_REQUESTED. Stock is only released once an admin approves.
    """
    if not reason or not reason.strip():
        raise ValidationError("reason is required", details={"field": "reason"})
    lines = list(items or [])

    def _op():
        begin_write_transaction()
        order = lifecycle.lock_order(order_id)
        if principal.is_admin or order.user_id != principal.id:
            raise PermissionDeniedError("Not authorized to return this order")
        if order.status not in lifecycle.RETURNABLE_STATUSES:
            raise InvalidStatusTransition(order.status, lifecycle.RETURN_REQUESTED)
        _validate_return_lines(order, lines)

        return_request = ReturnRequest(
            order_id=order.id,
            user_id=principal.id,
            reason=reason.strip(),
            status="PENDING",
            items=[
                ReturnRequestItem(product_id=line.product_id, quantity=line.quantity, reason=line.reason)
                for line in lines
            ],
        )
        db.session.add(return_request)

        lifecycle.apply_transition(
            order,
            lifecycle.RETURN_REQUESTED,
            acting_principal_id=principal.id,
        )
        db.session.commit()
        return order, return_request

    return run_with_retry(_op)
