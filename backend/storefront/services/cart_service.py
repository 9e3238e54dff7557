# Overview: Shopper cart operations and cart checkout.

from __future__ import annotations

from ..extensions import db
from ..errors import NotFoundError, ProductNotFound, ValidationError
from ..models import Cart, CartItem, Discount, Product, User
from ..time_utils import is_expired
from . import order_service
from .concurrency import run_with_retry
from .pricing_service import PricedLine, compute_totals


def _require_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError("User", user_id, message="User not found")
    return user


def _require_quantity(quantity) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise ValidationError("quantity must be a positive integer", details={"field": "quantity"})
    return quantity


def get_or_create_cart(user_id: int) -> Cart:
    cart = db.session.query(Cart).filter_by(user_id=user_id).first()
    if cart is not None:
        return cart
    _require_user(user_id)
    cart = Cart(user_id=user_id)
    db.session.add(cart)
    db.session.commit()
    return cart


def cart_totals(cart: Cart) -> dict:
    """
    Priced at current catalog prices. An expired discount on the cart is
    ignored here and rejected again at checkout.
    """
    lines = [PricedLine(i.product_id, i.product.price_cents, i.quantity) for i in cart.items]
    percentage = None
    if cart.discount is not None and not is_expired(cart.discount.valid_till):
        percentage = cart.discount.percentage
    totals = compute_totals(lines, percentage)
    return {
        **totals.to_dict(),
        "item_count": sum(i.quantity for i in cart.items),
    }


def cart_to_dict(cart: Cart) -> dict:
    return {
        "id": cart.id,
        "user_id": cart.user_id,
        "items": [item.to_dict() for item in cart.items],
        "discount": (
            {"id": cart.discount.id, "code": cart.discount.code, "percentage": cart.discount.percentage}
            if cart.discount is not None else None
        ),
        "meta": cart_totals(cart),
    }


def replace_cart(user_id: int, items: list[dict]) -> Cart:
    """Replace the whole cart with items ([{product_id, quantity}]); an empty list empties it."""
    wanted: dict[int, int] = {}
    for item in items:
        product_id = item["product_id"]
        if product_id in wanted:
            raise ValidationError(f"Duplicate product {product_id} in cart", details={"product_id": product_id})
        wanted[product_id] = _require_quantity(item["quantity"])

    if wanted:
        found = {pid for (pid,) in db.session.query(Product.id).filter(Product.id.in_(list(wanted))).all()}
        missing = sorted(pid for pid in wanted if pid not in found)
        if missing:
            raise ProductNotFound(missing)

    def _op():
        cart = get_or_create_cart(user_id)
        # Delete first: the unit of work would otherwise INSERT before DELETE
        # and trip uq_cart_items_cart_product for products kept in the cart.
        db.session.query(CartItem).filter_by(cart_id=cart.id).delete(synchronize_session=False)
        db.session.expire(cart, ["items"])
        for pid, qty in wanted.items():
            db.session.add(CartItem(cart_id=cart.id, product_id=pid, quantity=qty))
        db.session.commit()
        return cart

    return run_with_retry(_op)


def add_item(user_id: int, product_id: int, quantity: int) -> Cart:
    """Add a product, or increase its quantity if it is already in the cart."""
    quantity = _require_quantity(quantity)
    if db.session.get(Product, product_id) is None:
        raise NotFoundError("Product", product_id, message="Product not found")

    def _op():
        cart = get_or_create_cart(user_id)
        existing = next((i for i in cart.items if i.product_id == product_id), None)
        if existing is not None:
            existing.quantity += quantity
        else:
            cart.items.append(CartItem(product_id=product_id, quantity=quantity))
        db.session.commit()
        return cart

    return run_with_retry(_op)


def remove_item(user_id: int, product_id: int) -> Cart:
    def _op():
        cart = db.session.query(Cart).filter_by(user_id=user_id).first()
        if cart is None:
            raise NotFoundError("Cart", user_id, message="Cart not found")
        item = next((i for i in cart.items if i.product_id == product_id), None)
        if item is None:
            raise NotFoundError("CartItem", product_id, message="Product is not in the cart")
        cart.items.remove(item)
        db.session.commit()
        return cart

    return run_with_retry(_op)


def clear_cart(user_id: int) -> None:
    """Empty the cart and drop any applied discount."""
    def _op():
        cart = db.session.query(Cart).filter_by(user_id=user_id).first()
        if cart is None:
            return
        db.session.query(CartItem).filter_by(cart_id=cart.id).delete(synchronize_session=False)
        db.session.expire(cart, ["items"])
        cart.discount_id = None
        db.session.commit()

    run_with_retry(_op)


def item_count(user_id: int) -> int:
    cart = db.session.query(Cart).filter_by(user_id=user_id).first()
    if cart is None:
        return 0
    return sum(i.quantity for i in cart.items)


def apply_discount_code(user_id: int, code: str) -> Cart:
    """
    Attach a discount code to the cart. The same rules as checkout apply
    (unexpired, open to the user, not used on an earlier order) and are
    checked again when the order is created.
    """
    code = (code or "").strip()
    if not code:
        raise ValidationError("code is required", details={"field": "code"})

    def _op():
        user = _require_user(user_id)
        discount = db.session.query(Discount).filter_by(code=code).first()
        if discount is None:
            raise NotFoundError("Discount", code, message="Invalid or expired discount code")
        order_service.check_discount_usable(discount, user)

        cart = get_or_create_cart(user_id)
        cart.discount_id = discount.id
        db.session.commit()
        return cart

    return run_with_retry(_op)


def checkout(user_id: int, *, admin_id: int | None = None):
    """Turn the cart into an order at current catalog prices; the ordered lines leave the cart on success."""
    return order_service.checkout_cart(user_id, admin_id=admin_id)
