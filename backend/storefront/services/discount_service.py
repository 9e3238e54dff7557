# Overview: Discount code management and product eligibility links.

from __future__ import annotations

from datetime import datetime

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..errors import ConflictError, NotFoundError, ValidationError
from ..models import Discount, Order, Product, User
from ..time_utils import parse_iso_datetime, utcnow


def _parse_valid_till(value) -> datetime:
    if isinstance(value, datetime):
        return value
    try:
        parsed = parse_iso_datetime(value)
    except (TypeError, ValueError):
        parsed = None
    if parsed is None:
        raise ValidationError("valid_till must be an ISO-8601 datetime", details={"field": "valid_till"})
    return parsed


def _validate_percentage(value) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or not 1 <= value <= 100:
        raise ValidationError("percentage must be an integer between 1 and 100", details={"field": "percentage"})
    return value


def get_discount(discount_id: int) -> Discount:
    discount = db.session.get(Discount, discount_id)
    if discount is None:
        raise NotFoundError("Discount", discount_id, message="Discount not found")
    return discount


def usage_count(discount_id: int) -> int:
    return db.session.query(func.count(Order.id)).filter(Order.discount_id == discount_id).scalar() or 0


def list_discounts() -> list[Discount]:
    return db.session.query(Discount).order_by(Discount.created_at.desc(), Discount.id.desc()).all()


def create_discount(
    *,
    code: str,
    percentage: int,
    valid_till,
    admin_id: int | None,
    product_ids: list[int] | None = None,
    user_ids: list[int] | None = None,
) -> Discount:
    code = (code or "").strip()
    if not code:
        raise ValidationError("code is required", details={"field": "code"})

    discount = Discount(
        code=code,
        percentage=_validate_percentage(percentage),
        valid_till=_parse_valid_till(valid_till),
        admin_id=admin_id,
    )
    if product_ids:
        discount.products = _load_all(Product, product_ids)
    if user_ids:
        discount.users = _load_all(User, user_ids)

    db.session.add(discount)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError(f"Discount code '{code}' already exists")
    return discount


def update_discount(discount_id: int, data: dict) -> Discount:
    """Patch code, percentage and/or valid_till."""
    discount = get_discount(discount_id)
    if "code" in data:
        code = (data["code"] or "").strip()
        if not code:
            raise ValidationError("code cannot be blank", details={"field": "code"})
        discount.code = code
    if "percentage" in data:
        discount.percentage = _validate_percentage(data["percentage"])
    if "valid_till" in data:
        discount.valid_till = _parse_valid_till(data["valid_till"])

    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Discount code already exists")
    return discount


def delete_discount(discount_id: int) -> None:
    """Discounts already referenced by orders cannot be deleted (order history keeps them)."""
    discount = get_discount(discount_id)
    if usage_count(discount_id):
        raise ConflictError("Discount has been used by orders and cannot be deleted")
    db.session.delete(discount)
    db.session.commit()


def _load_all(model, ids: list[int]) -> list:
    rows = db.session.query(model).filter(model.id.in_(ids)).all()
    found = {r.id for r in rows}
    missing = [i for i in ids if i not in found]
    if missing:
        raise NotFoundError(model.__name__, missing, message=f"{model.__name__}s not found: {', '.join(map(str, missing))}")
    return rows


def attach_product(discount_id: int, product_id: int) -> Discount:
    discount = get_discount(discount_id)
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFoundError("Product", product_id, message="Product not found")
    if product not in discount.products:
        discount.products.append(product)
    db.session.commit()
    return discount


def detach_product(discount_id: int, product_id: int) -> Discount:
    discount = get_discount(discount_id)
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFoundError("Product", product_id, message="Product not found")
    if product in discount.products:
        discount.products.remove(product)
    db.session.commit()
    return discount


def product_discounts(product_id: int, *, valid_only: bool = False) -> list[Discount]:
    q = db.session.query(Discount).filter(Discount.products.any(Product.id == product_id))
    if valid_only:
        q = q.filter(Discount.valid_till >= utcnow())
    return q.order_by(Discount.valid_till.asc()).all()
