# Overview: Shopper wishlists and moving saved products into the cart.

from __future__ import annotations

from dataclasses import dataclass

from flask import current_app

from ..extensions import db
from ..errors import NotFoundError, ValidationError
from ..models import Cart, CartItem, Product, User, WishlistItem
from .concurrency import begin_write_transaction, lock_for_update, run_with_retry

ACTIONS = ("add", "remove")


@dataclass(frozen=True)
class MoveResult:
    moved_count: int
    cleared: bool
    cart_id: int | None

    def to_dict(self) -> dict:
        return {"moved_count": self.moved_count, "cleared": self.cleared, "cart_id": self.cart_id}


def _require_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError("User", user_id, message="User not found")
    return user


def get_wishlist(user_id: int) -> list[WishlistItem]:
    """Newest first. A shopper who never saved anything has an empty list."""
    _require_user(user_id)
    return (
        db.session.query(WishlistItem)
        .filter_by(user_id=user_id)
        .order_by(WishlistItem.added_at.desc(), WishlistItem.id.desc())
        .all()
    )


def contains(user_id: int, product_id: int) -> bool:
    return db.session.query(WishlistItem.id).filter_by(user_id=user_id, product_id=product_id).first() is not None


def update_wishlist(user_id: int, product_id: int, action: str) -> list[WishlistItem]:
    """add is idempotent; remove of a product that is not saved is a no-op."""
    if action not in ACTIONS:
        raise ValidationError("action must be 'add' or 'remove'", details={"field": "action"})
    if db.session.get(Product, product_id) is None:
        raise NotFoundError("Product", product_id, message="Product not found")

    def _op():
        begin_write_transaction()
        _require_user(user_id)
        existing = db.session.query(WishlistItem).filter_by(user_id=user_id, product_id=product_id).first()
        if action == "add" and existing is None:
            db.session.add(WishlistItem(user_id=user_id, product_id=product_id))
        elif action == "remove" and existing is not None:
            db.session.delete(existing)
        db.session.commit()

    run_with_retry(_op)
    return get_wishlist(user_id)


def clear_wishlist(user_id: int) -> int:
    """Remove every saved product; returns how many were removed."""
    def _op():
        count = db.session.query(WishlistItem).filter_by(user_id=user_id).delete(synchronize_session=False)
        db.session.commit()
        return count

    return run_with_retry(_op)


def move_to_cart(user_id: int, *, clear_after_move: bool = False) -> MoveResult:
    """
    Put every wishlist product into the cart in one transaction.

    A product already in the cart gets its quantity raised by one; others
    are added with quantity 1. Stock is not checked here, checkout does that.
    """
    def _op():
        begin_write_transaction()
        _require_user(user_id)
        saved = (
            db.session.query(WishlistItem)
            .filter_by(user_id=user_id)
            .order_by(WishlistItem.id)
            .all()
        )
        if not saved:
            return MoveResult(moved_count=0, cleared=False, cart_id=None)

        cart = lock_for_update(db.session.query(Cart).filter_by(user_id=user_id)).first()
        if cart is None:
            cart = Cart(user_id=user_id)
            db.session.add(cart)
            db.session.flush()

        in_cart = {
            item.product_id: item
            for item in db.session.query(CartItem).filter_by(cart_id=cart.id).populate_existing().all()
        }
        for entry in saved:
            existing = in_cart.get(entry.product_id)
            if existing is not None:
                existing.quantity += 1
            else:
                db.session.add(CartItem(cart_id=cart.id, product_id=entry.product_id, quantity=1))

        if clear_after_move:
            db.session.query(WishlistItem).filter_by(user_id=user_id).delete(synchronize_session=False)
        db.session.expire(cart, ["items"])
        db.session.commit()
        return MoveResult(moved_count=len(saved), cleared=clear_after_move, cart_id=cart.id)

    result = run_with_retry(_op)
    current_app.logger.info("Moved %d wishlist item(s) to cart for user %s", result.moved_count, user_id)
    return result
