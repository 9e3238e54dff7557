# Overview: Inventory ledger; the only writer of Inventory.quantity, pairing every change with a log entry.

# backend/storefront/services/inventory_service.py

from __future__ import annotations

from dataclasses import dataclass

from flask import current_app

from ..extensions import db
from ..errors import InsufficientStock, NotFoundError, ValidationError
from ..models import Inventory, InventoryLogEntry, Product
from .concurrency import begin_write_transaction, lock_for_update, run_with_retry
from .paging import paginate
"""
Inventory Ledger Invariants (authoritative)

- Inventory.quantity is written here and nowhere else.
- quantity never goes below zero; the check and the write happen on a row
  read with FOR UPDATE inside the caller's transaction, so two concurrent
  reservations of the same product serialize instead of double-spending.
- Every change appends exactly one InventoryLogEntry with
  change == new_quantity - previous_quantity. Entries are never updated
  or deleted.
- reserve()/release() do not commit: they run inside the transaction of
  the order operation that calls them. adjust_inventory() is a complete
  unit of work and commits.
- Entries tied to an order item carry an idempotency key. Replaying a key
  returns the original entry and changes nothing, so a reservation can be
  released at most once no matter how the caller is driven.
"""


@dataclass(frozen=True)
class LedgerResult:
    new_quantity: int
    log_entry_id: int
    applied: bool = True

    def to_dict(self) -> dict:
        return {
            "new_quantity": self.new_quantity,
            "log_entry_id": self.log_entry_id,
            "applied": self.applied,
        }


def reservation_key(order_id: int, order_item_id: int) -> str:
    return f"order:{order_id}:item:{order_item_id}:reserve"


def release_key(order_id: int, order_item_id: int) -> str:
    return f"order:{order_id}:item:{order_item_id}:release"


def _require_positive_quantity(quantity) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise ValidationError("quantity must be a positive integer", details={"field": "quantity"})
    return quantity


def _lock_inventory(product_id: int) -> Inventory:
    inventory = lock_for_update(
        db.session.query(Inventory).filter_by(product_id=product_id)
    ).first()
    if inventory is None:
        raise NotFoundError("Inventory", product_id, message=f"Inventory not found for product {product_id}")
    return inventory


def _find_by_key(idempotency_key: str | None) -> InventoryLogEntry | None:
    if not idempotency_key:
        return None
    return db.session.query(InventoryLogEntry).filter_by(idempotency_key=idempotency_key).first()


def _apply_change(
    inventory: Inventory,
    change: int,
    *,
    reason: str,
    acting_admin_id: int | None,
    order_id: int | None = None,
    idempotency_key: str | None = None,
) -> InventoryLogEntry:
    previous = inventory.quantity
    new_quantity = previous + change
    if new_quantity < 0:
        raise InsufficientStock([{
            "product_id": inventory.product_id,
            "requested": -change,
            "available": previous,
        }])

    inventory.quantity = new_quantity
    entry = InventoryLogEntry(
        product_id=inventory.product_id,
        change=change,
        reason=reason,
        previous_quantity=previous,
        new_quantity=new_quantity,
        acting_admin_id=acting_admin_id,
        order_id=order_id,
        idempotency_key=idempotency_key,
    )
    db.session.add(entry)
    db.session.flush()  # assigns entry.id and pushes the versioned inventory UPDATE
    return entry


def reserve(
    product_id: int,
    quantity: int,
    *,
    acting_admin_id: int | None,
    reason: str,
    order_id: int | None = None,
    idempotency_key: str | None = None,
) -> LedgerResult:
    """
    Decrement stock for product_id by quantity and log it (change = -quantity).

    Raises InsufficientStock (details carry requested/available) when the
    decrement would go below zero; nothing is written in that case.
    Caller owns the transaction.
    """
    quantity = _require_positive_quantity(quantity)

    existing = _find_by_key(idempotency_key)
    if existing is not None:
        return LedgerResult(existing.new_quantity, existing.id, applied=False)

    inventory = _lock_inventory(product_id)
    entry = _apply_change(
        inventory,
        -quantity,
        reason=reason,
        acting_admin_id=acting_admin_id,
        order_id=order_id,
        idempotency_key=idempotency_key,
    )
    return LedgerResult(entry.new_quantity, entry.id)


def release(
    product_id: int,
    quantity: int,
    *,
    acting_admin_id: int | None,
    reason: str,
    order_id: int | None = None,
    idempotency_key: str | None = None,
) -> LedgerResult:
    """
    Increment stock for product_id by quantity and log it (change = +quantity).

    No upper bound is enforced. With an idempotency_key that was already
    used, returns the earlier entry with applied=False and leaves stock
    untouched. Caller owns the transaction.
    """
    quantity = _require_positive_quantity(quantity)

    existing = _find_by_key(idempotency_key)
    if existing is not None:
        current_app.logger.warning(
            "Ignoring repeated inventory release %s (entry %s)", idempotency_key, existing.id
        )
        return LedgerResult(existing.new_quantity, existing.id, applied=False)

    inventory = _lock_inventory(product_id)
    entry = _apply_change(
        inventory,
        quantity,
        reason=reason,
        acting_admin_id=acting_admin_id,
        order_id=order_id,
        idempotency_key=idempotency_key,
    )
    return LedgerResult(entry.new_quantity, entry.id)


def initialize_inventory(product: Product, quantity: int, *, admin_id: int | None) -> Inventory:
    """Create the 1:1 inventory row for a new product; opening stock goes through the ledger."""
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 0:
        raise ValidationError("quantity must be a non-negative integer", details={"field": "quantity"})

    inventory = Inventory(product_id=product.id, quantity=0)
    db.session.add(inventory)
    db.session.flush()
    if quantity > 0:
        _apply_change(inventory, quantity, reason="Initial stock", acting_admin_id=admin_id)
    return inventory


def adjust_inventory(
    *,
    product_id: int,
    change: int,
    admin_id: int,
    reason: str,
) -> tuple[Inventory, InventoryLogEntry]:
    """
    Manual correction (restock, shrink, damage). change is signed and nonzero.

    Raises InsufficientStock when a negative change exceeds what is on hand.
    """
    if isinstance(change, bool) or not isinstance(change, int) or change == 0:
        raise ValidationError("change must be a non-zero integer", details={"field": "change"})
    if not reason or not reason.strip():
        raise ValidationError("reason is required", details={"field": "reason"})

    def _op():
        begin_write_transaction()
        inventory = _lock_inventory(product_id)
        entry = _apply_change(inventory, change, reason=reason.strip(), acting_admin_id=admin_id)
        db.session.commit()
        return inventory, entry

    inventory, entry = run_with_retry(_op)
    current_app.logger.info(
        "Inventory for product %s adjusted by %+d to %s (admin %s)",
        product_id, change, entry.new_quantity, admin_id,
    )
    return inventory, entry


def get_inventory(product_id: int) -> Inventory:
    inventory = db.session.query(Inventory).filter_by(product_id=product_id).first()
    if inventory is None:
        raise NotFoundError("Inventory", product_id, message="Inventory not found for this product")
    return inventory


def get_quantity_on_hand(product_id: int) -> int:
    return get_inventory(product_id).quantity


def _log_ordering(query, sort: str):
    if sort == "oldest":
        return query.order_by(InventoryLogEntry.created_at.asc(), InventoryLogEntry.id.asc())
    return query.order_by(InventoryLogEntry.created_at.desc(), InventoryLogEntry.id.desc())


def list_log_entries(product_id: int, *, page: int = 1, limit: int = 10, sort: str = "newest") -> dict:
    q = db.session.query(InventoryLogEntry).filter_by(product_id=product_id)
    return paginate(_log_ordering(q, sort), page=page, limit=limit)


def list_admin_log_entries(admin_id: int, *, page: int = 1, limit: int = 10, sort: str = "newest") -> dict:
    q = db.session.query(InventoryLogEntry).filter_by(acting_admin_id=admin_id)
    return paginate(_log_ordering(q, sort), page=page, limit=limit)


def list_order_log_entries(order_id: int) -> list[InventoryLogEntry]:
    return (
        db.session.query(InventoryLogEntry)
        .filter_by(order_id=order_id)
        .order_by(InventoryLogEntry.id.asc())
        .all()
    )


def get_log_entry(entry_id: int) -> InventoryLogEntry:
    entry = db.session.get(InventoryLogEntry, entry_id)
    if entry is None:
        raise NotFoundError("InventoryLogEntry", entry_id, message="Inventory log not found")
    return entry


def list_low_stock(threshold: int | None = None) -> list[Inventory]:
    if threshold is None:
        threshold = current_app.config.get("LOW_STOCK_THRESHOLD", 10)
    return (
        db.session.query(Inventory)
        .filter(Inventory.quantity <= threshold)
        .order_by(Inventory.quantity.asc(), Inventory.product_id.asc())
        .all()
    )
