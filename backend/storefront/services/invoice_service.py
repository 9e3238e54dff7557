# Overview: Invoices for orders, priced from the order's snapshots.

from __future__ import annotations

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..errors import InvoiceAlreadyExists, NotFoundError, PermissionDeniedError, ValidationError
from ..models import Admin, Invoice, Order, User
from . import order_lifecycle_service as lifecycle
from .concurrency import begin_write_transaction, run_with_retry
from .paging import paginate
from .session_service import Principal


def invoice_amounts(order: Order) -> dict:
    """Subtotal from the OrderItem price snapshots, less the discount fixed on the order."""
    subtotal = sum(item.price_cents * item.quantity for item in order.items)
    discount = order.discount_cents or 0
    return {
        "subtotal_cents": subtotal,
        "discount_cents": discount,
        "total_amount_cents": subtotal - discount,
    }


def _existing_invoice_id(order_id: int) -> int | None:
    row = db.session.query(Invoice.id).filter_by(order_id=order_id).first()
    return row[0] if row is not None else None


def generate_invoice(order_id: int, *, admin_id: int, pdf_url: str | None = None) -> Invoice:
    """
    Issue the invoice for an order. At most one invoice exists per order;
    a second request raises InvoiceAlreadyExists.
    """
    def _op():
        begin_write_transaction()
        order = lifecycle.lock_order(order_id)
        if db.session.get(Admin, admin_id) is None:
            raise NotFoundError("Admin", admin_id, message="Admin not found")

        existing_id = _existing_invoice_id(order.id)
        if existing_id is not None:
            raise InvoiceAlreadyExists(order.id, existing_id)

        invoice = Invoice(order_id=order.id, admin_id=admin_id, pdf_url=pdf_url, **invoice_amounts(order))
        db.session.add(invoice)
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise InvoiceAlreadyExists(order_id, _existing_invoice_id(order_id))
        return invoice

    invoice = run_with_retry(_op)
    current_app.logger.info(
        "Invoice %s issued for order %s by admin %s: %s cents",
        invoice.id, order_id, admin_id, invoice.total_amount_cents,
    )
    return invoice


def get_invoice(invoice_id: int, principal: Principal | None = None) -> Invoice:
    invoice = db.session.get(Invoice, invoice_id)
    if invoice is None:
        raise NotFoundError("Invoice", invoice_id, message="Invoice not found")
    if principal is not None and not principal.is_admin and invoice.order.user_id != principal.id:
        raise PermissionDeniedError("Not authorized to view this invoice")
    return invoice


def get_order_invoice(order_id: int, principal: Principal | None = None) -> Invoice:
    order = db.session.get(Order, order_id)
    if order is None:
        raise NotFoundError("Order", order_id, message="Order not found")
    if principal is not None and not principal.is_admin and order.user_id != principal.id:
        raise PermissionDeniedError("Not authorized to view this invoice")
    if order.invoice is None:
        raise NotFoundError("Invoice", None, message="No invoice for this order")
    return order.invoice


def update_invoice(invoice_id: int, *, pdf_url) -> Invoice:
    """Only the document link is editable; amounts are fixed at issue."""
    if pdf_url is not None and not isinstance(pdf_url, str):
        raise ValidationError("pdf_url must be a string", details={"field": "pdf_url"})

    def _op():
        invoice = get_invoice(invoice_id)
        invoice.pdf_url = pdf_url
        db.session.commit()
        return invoice

    return run_with_retry(_op)


def list_admin_invoices(admin_id: int, *, page: int = 1, limit: int = 10, status: str | None = None) -> dict:
    if db.session.get(Admin, admin_id) is None:
        raise NotFoundError("Admin", admin_id, message="Admin not found")
    q = db.session.query(Invoice).filter(Invoice.admin_id == admin_id)
    if status:
        lifecycle.validate_status(status)
        q = q.join(Order, Order.id == Invoice.order_id).filter(Order.status == status)
    return paginate(q.order_by(Invoice.created_at.desc(), Invoice.id.desc()), page=page, limit=limit)


def list_user_invoices(user_id: int, *, page: int = 1, limit: int = 10) -> dict:
    if db.session.get(User, user_id) is None:
        raise NotFoundError("User", user_id, message="User not found")
    q = (
        db.session.query(Invoice)
        .join(Order, Order.id == Invoice.order_id)
        .filter(Order.user_id == user_id)
    )
    return paginate(q.order_by(Invoice.created_at.desc(), Invoice.id.desc()), page=page, limit=limit)
