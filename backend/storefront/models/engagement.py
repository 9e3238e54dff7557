from __future__ import annotations

from ..extensions import db
from storefront.time_utils import to_utc_z


class Review(db.Model):
    """
    A shopper's rating of a product they bought.

    One review per (user, product). order_id is the SHIPPED or DELIVERED
    order that qualified the shopper to write it. edited_by_admin_id is set
    when an admin moderates the text.
    """
    __tablename__ = "reviews"
    __table_args__ = (
        db.UniqueConstraint("user_id", "product_id", name="uq_reviews_user_product"),
        db.CheckConstraint("rating >= 1 AND rating <= 5", name="ck_reviews_rating_range"),
        db.Index("ix_reviews_product_created", "product_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True)
    edited_by_admin_id = db.Column(db.Integer, db.ForeignKey("admins.id"), nullable=True)

    rating = db.Column(db.Integer, nullable=False)
    comment = db.Column(db.Text, nullable=True)
    helpful_count = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    user = db.relationship("User", backref=db.backref("reviews", lazy=True))
    product = db.relationship("Product", backref=db.backref("reviews", lazy=True))
    votes = db.relationship("ReviewVote", back_populates="review", cascade="all, delete-orphan")

    def __repr__(self) -> str:
        return f"<Review id={self.id} product_id={self.product_id} rating={self.rating}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "product_id": self.product_id,
            "order_id": self.order_id,
            "rating": self.rating,
            "comment": self.comment,
            "helpful_count": self.helpful_count,
            "edited_by_admin_id": self.edited_by_admin_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "user": {"id": self.user.id, "name": self.user.name} if self.user is not None else None,
            "product": {"id": self.product.id, "name": self.product.name} if self.product is not None else None,
        }


class ReviewVote(db.Model):
    """A shopper marking a review helpful; at most once per review."""
    __tablename__ = "review_votes"
    __table_args__ = (
        db.UniqueConstraint("user_id", "review_id", name="uq_review_votes_user_review"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    review_id = db.Column(db.Integer, db.ForeignKey("reviews.id", ondelete="CASCADE"), nullable=False, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    review = db.relationship("Review", back_populates="votes")


class WishlistItem(db.Model):
    """Saved product on a shopper's wishlist; one row per (user, product)."""
    __tablename__ = "wishlist_items"
    __table_args__ = (
        db.UniqueConstraint("user_id", "product_id", name="uq_wishlist_items_user_product"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    added_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "added_at": to_utc_z(self.added_at),
            "product": {
                "id": self.product.id,
                "name": self.product.name,
                "price_cents": self.product.price_cents,
                "image_url": self.product.image_url,
            } if self.product is not None else None,
        }
