from __future__ import annotations

from ..extensions import db
from storefront.time_utils import to_utc_z


# Discount eligibility (many-to-many)
discount_products = db.Table(
    "discount_products",
    db.Column("discount_id", db.Integer, db.ForeignKey("discounts.id", ondelete="CASCADE"), primary_key=True),
    db.Column("product_id", db.Integer, db.ForeignKey("products.id", ondelete="CASCADE"), primary_key=True),
)

discount_users = db.Table(
    "discount_users",
    db.Column("discount_id", db.Integer, db.ForeignKey("discounts.id", ondelete="CASCADE"), primary_key=True),
    db.Column("user_id", db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
)


class Product(db.Model):
    """
    Catalog entry, owned by the admin who created it.

    Authoritative price storage is in cents. Order lines copy the price at
    order time, so editing price_cents never rewrites order history.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("price_cents > 0", name="ck_products_price_positive"),
        db.Index("ix_products_admin_name", "admin_id", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    admin_id = db.Column(db.Integer, db.ForeignKey("admins.id"), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    image_url = db.Column(db.String(512), nullable=True)
    price_cents = db.Column(db.Integer, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    admin = db.relationship("Admin", backref=db.backref("products", lazy=True))
    inventory = db.relationship("Inventory", back_populates="product", uselist=False)

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} price_cents={self.price_cents}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "admin_id": self.admin_id,
            "name": self.name,
            "description": self.description,
            "image_url": self.image_url,
            "price_cents": self.price_cents,
            "quantity": self.inventory.quantity if self.inventory is not None else None,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Inventory(db.Model):
    """
    On-hand stock for one product (1:1).

    Written ONLY by services/inventory_service.py. quantity never goes
    negative and every change has exactly one InventoryLogEntry whose
    change equals the delta.
    """
    __tablename__ = "inventory"
    __table_args__ = (
        db.CheckConstraint("quantity >= 0", name="ck_inventory_quantity_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, unique=True)
    quantity = db.Column(db.Integer, nullable=False, default=0)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    product = db.relationship("Product", back_populates="inventory")
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "version_id": self.version_id,
            "updated_at": to_utc_z(self.updated_at),
            "product": {
                "id": self.product.id,
                "name": self.product.name,
                "price_cents": self.product.price_cents,
                "image_url": self.product.image_url,
            } if self.product is not None else None,
        }


class InventoryLogEntry(db.Model):
    """
    Append-only audit record of one inventory change.

    acting_admin_id is the admin responsible, or the ordering user's id
    when an order without an assigned admin reserves stock.

    idempotency_key is set for entries written on behalf of an order item
    (reserve/release) and makes a repeated release a no-op.
    """
    __tablename__ = "inventory_log_entries"
    __table_args__ = (
        db.CheckConstraint("change <> 0", name="ck_inventory_log_change_nonzero"),
        db.CheckConstraint("new_quantity >= 0", name="ck_inventory_log_new_quantity_non_negative"),
        db.Index("ix_inventory_log_product_created", "product_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    change = db.Column(db.Integer, nullable=False)
    reason = db.Column(db.String(255), nullable=False)
    previous_quantity = db.Column(db.Integer, nullable=False)
    new_quantity = db.Column(db.Integer, nullable=False)

    acting_admin_id = db.Column(db.Integer, nullable=True, index=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True, index=True)
    idempotency_key = db.Column(db.String(128), nullable=True, unique=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "change": self.change,
            "reason": self.reason,
            "previous_quantity": self.previous_quantity,
            "new_quantity": self.new_quantity,
            "acting_admin_id": self.acting_admin_id,
            "order_id": self.order_id,
            "created_at": to_utc_z(self.created_at),
        }


class Discount(db.Model):
    """
    Percentage discount code (1-100). An order carries at most one, and a
    user may apply a given code to at most one order.

    Empty products/users lists mean "no restriction".
    """
    __tablename__ = "discounts"
    __table_args__ = (
        db.CheckConstraint("percentage >= 1 AND percentage <= 100", name="ck_discounts_percentage_range"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(64), nullable=False, unique=True)
    percentage = db.Column(db.Integer, nullable=False)
    valid_till = db.Column(db.DateTime(timezone=True), nullable=False)

    admin_id = db.Column(db.Integer, db.ForeignKey("admins.id"), nullable=True, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    products = db.relationship("Product", secondary=discount_products, backref=db.backref("discounts", lazy=True))
    users = db.relationship("User", secondary=discount_users, backref=db.backref("discounts", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "percentage": self.percentage,
            "valid_till": to_utc_z(self.valid_till),
            "admin_id": self.admin_id,
            "created_at": to_utc_z(self.created_at),
            "products": [{"id": p.id, "name": p.name} for p in self.products],
            "users": [{"id": u.id, "name": u.name} for u in self.users],
        }
