# Overview: Product catalog operations; new products get their inventory row through the ledger.

from __future__ import annotations

from ..extensions import db
from ..errors import NotFoundError, PermissionDeniedError, ValidationError
from ..models import Product
from . import inventory_service
from .paging import paginate
from .session_service import Principal

# Maximum price: 9,999,999.99 (999,999,999 cents)
MAX_PRICE_CENTS = 999_999_999

EDITABLE_FIELDS = ("name", "description", "image_url", "price_cents")


def _validate_price(price_cents) -> int:
    if isinstance(price_cents, bool) or not isinstance(price_cents, int):
        raise ValidationError("price_cents must be an integer", details={"field": "price_cents"})
    if price_cents <= 0:
        raise ValidationError("price_cents must be > 0", details={"field": "price_cents"})
    if price_cents > MAX_PRICE_CENTS:
        raise ValidationError(f"price_cents cannot exceed {MAX_PRICE_CENTS}", details={"field": "price_cents"})
    return price_cents


def get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFoundError("Product", product_id, message="Product not found")
    return product


def list_products(*, page: int = 1, limit: int = 10, admin_id: int | None = None) -> dict:
    q = db.session.query(Product)
    if admin_id is not None:
        q = q.filter_by(admin_id=admin_id)
    return paginate(q.order_by(Product.created_at.desc(), Product.id.desc()), page=page, limit=limit)


def create_product(
    *,
    admin_id: int,
    name: str,
    price_cents: int,
    description: str | None = None,
    image_url: str | None = None,
    initial_quantity: int = 0,
) -> Product:
    """Create a product and its inventory row in one transaction."""
    name = (name or "").strip()
    if not name:
        raise ValidationError("name is required", details={"field": "name"})

    product = Product(
        admin_id=admin_id,
        name=name,
        price_cents=_validate_price(price_cents),
        description=description,
        image_url=image_url,
    )
    try:
        db.session.add(product)
        db.session.flush()
        inventory_service.initialize_inventory(product, initial_quantity, admin_id=admin_id)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return product


def update_product(product_id: int, data: dict, *, principal: Principal) -> Product:
    """Owning admin or a superadmin may edit; price changes never touch existing orders."""
    product = get_product(product_id)
    if not principal.is_superadmin and product.admin_id != principal.id:
        raise PermissionDeniedError("Not authorized to modify this product")

    for key in EDITABLE_FIELDS:
        if key not in data:
            continue
        value = data[key]
        if key == "price_cents":
            value = _validate_price(value)
        elif key == "name":
            value = (value or "").strip()
            if not value:
                raise ValidationError("name cannot be blank", details={"field": "name"})
        setattr(product, key, value)

    db.session.commit()
    return product
