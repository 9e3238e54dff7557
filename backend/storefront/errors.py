# Overview: Domain error taxonomy shared by services and routes.

"""
Storefront error taxonomy.

Services raise these; routes translate them into the response envelope
(see responses.py). Each class carries the HTTP status it maps to so the
translation lives in one place.

Nothing in the order/inventory core raises a bare Exception for a business
failure: a caller can always tell "not enough stock" from "discount already
used" from "illegal status change" by type alone.
"""

from __future__ import annotations


class StorefrontError(Exception):
    """Base class for all expected (non-infrastructure) failures."""

    http_status = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationError(StorefrontError):
    """400-level input problem."""


class InvalidOrderInput(ValidationError):
    """Order items with non-positive price or quantity, or an empty item list."""


class PermissionDeniedError(StorefrontError):
    http_status = 403


class NotFoundError(StorefrontError):
    http_status = 404

    def __init__(self, entity: str, entity_id=None, message: str | None = None):
        if message is None:
            message = f"{entity} not found" if entity_id is None else f"{entity} {entity_id} not found"
        super().__init__(message, details={"entity": entity, "id": entity_id})
        self.entity = entity
        self.entity_id = entity_id


class ProductNotFound(NotFoundError):
    def __init__(self, product_ids: list[int]):
        ids = ", ".join(str(pid) for pid in product_ids)
        super().__init__("Product", product_ids, message=f"Products not found: {ids}")
        self.product_ids = list(product_ids)


class InsufficientStock(StorefrontError):
    """
    Requested quantity exceeds what is on hand.

    details["items"] lists every offending product as
    {"product_id", "requested", "available"}.
    """

    http_status = 409

    def __init__(self, items: list[dict]):
        names = ", ".join(str(i["product_id"]) for i in items)
        super().__init__(f"Insufficient inventory for product(s): {names}", details={"items": items})
        self.items = items

    @property
    def available(self) -> int | None:
        return self.items[0]["available"] if len(self.items) == 1 else None


class DiscountExpired(StorefrontError):
    def __init__(self, discount_id: int, valid_till: str | None):
        super().__init__(
            "Discount has expired",
            details={"discount_id": discount_id, "valid_till": valid_till},
        )


class DiscountAlreadyUsed(StorefrontError):
    http_status = 409

    def __init__(self, discount_id: int, user_id: int):
        super().__init__(
            "Discount code already used",
            details={"discount_id": discount_id, "user_id": user_id},
        )


class DiscountNotApplicable(StorefrontError):
    def __init__(self, discount_id: int, user_id: int):
        super().__init__(
            "Discount is not available to this user",
            details={"discount_id": discount_id, "user_id": user_id},
        )


class InvalidStatusTransition(StorefrontError):
    def __init__(self, from_status: str, to_status: str):
        super().__init__(
            f"Invalid status transition from {from_status} to {to_status}",
            details={"from": from_status, "to": to_status},
        )
        self.from_status = from_status
        self.to_status = to_status


class ConflictError(StorefrontError):
    """409-level conflict (duplicate unique key, concurrent modification)."""

    http_status = 409


class ReviewAlreadyExists(ConflictError):
    def __init__(self, user_id: int, product_id: int):
        super().__init__(
            "You've already reviewed this product",
            details={"user_id": user_id, "product_id": product_id},
        )


class InvoiceAlreadyExists(ConflictError):
    def __init__(self, order_id: int, invoice_id: int):
        super().__init__(
            "Invoice already exists for this order",
            details={"order_id": order_id, "invoice_id": invoice_id},
        )


class InternalError(StorefrontError):
    http_status = 500
