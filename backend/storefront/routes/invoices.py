# Overview: Flask API routes for order invoices.

# backend/storefront/routes/invoices.py
"""
Invoice routes.

Admins issue and edit invoices. Shoppers may read the invoices of their
own orders.
"""

from flask import Blueprint, g, request

from ..decorators import require_auth, require_role, require_self_or_admin
from ..errors import StorefrontError
from ..models import ADMIN_ROLES
from ..responses import domain_error_response, internal_error_response, success_response
from ..services import invoice_service
from ..validation import coerce_positive_int, optional_text, paging_args, require_json_object


invoices_bp = Blueprint("invoices", __name__, url_prefix="/api/invoices")


def _paged_invoices(result: dict) -> dict:
    return {
        "invoices": [i.to_dict() for i in result["data"]],
        "pagination": result["pagination"],
    }


@invoices_bp.post("/")
@require_auth
@require_role(*ADMIN_ROLES)
def generate_invoice_route():
    """Body: {order_id, pdf_url?}. A second invoice for the same order is a 409."""
    try:
        payload = require_json_object(request.get_json(silent=True))
        invoice = invoice_service.generate_invoice(
            coerce_positive_int(payload.get("order_id"), "order_id"),
            admin_id=g.principal.id,
            pdf_url=optional_text(payload, "pdf_url", max_length=512),
        )
        return success_response(invoice.to_dict(), "Invoice generated successfully", 201)
    except StorefrontError as e:
        return domain_error_response(e)
    except Exception as e:
        return internal_error_response(e, "Failed to generate invoice")


@invoices_bp.get("/<int:invoice_id>")
@require_auth
def get_invoice_route(invoice_id: int):
    try:
        invoice = invoice_service.get_invoice(invoice_id, g.principal)
        data = invoice.to_dict()
        data["items"] = [item.to_dict() for item in invoice.order.items]
        return success_response(data, "Invoice retrieved successfully")
    except StorefrontError as e:
        return domain_error_response(e)
    except Exception as e:
        return internal_error_response(e, "Failed to fetch invoice")


@invoices_bp.patch("/<int:invoice_id>")
@require_auth
@require_role(*ADMIN_ROLES)
def update_invoice_route(invoice_id: int):
    """Body: {pdf_url}"""
    try:
        payload = require_json_object(request.get_json(silent=True))
        invoice = invoice_service.update_invoice(
            invoice_id, pdf_url=optional_text(payload, "pdf_url", max_length=512)
        )
        return success_response(invoice.to_dict(), "Invoice updated successfully")
    except StorefrontError as e:
        return domain_error_response(e)
    except Exception as e:
        return internal_error_response(e, "Failed to update invoice")


@invoices_bp.get("/order/<int:order_id>")
@require_auth
def order_invoice_route(order_id: int):
    try:
        invoice = invoice_service.get_order_invoice(order_id, g.principal)
        return success_response(invoice.to_dict(), "Invoice retrieved successfully")
    except StorefrontError as e:
        return domain_error_response(e)
    except Exception as e:
        return internal_error_response(e, "Failed to fetch order invoice")


@invoices_bp.get("/admin/<int:admin_id>")
@require_auth
@require_role(*ADMIN_ROLES)
def admin_invoices_route(admin_id: int):
    """Query: page, limit, status (order status)."""
    try:
        page, limit = paging_args(request.args)
        result = invoice_service.list_admin_invoices(
            admin_id, page=page, limit=limit, status=request.args.get("status")
        )
        return success_response(_paged_invoices(result), "Invoices retrieved successfully")
    except StorefrontError as e:
        return domain_error_response(e)
    except Exception as e:
        return internal_error_response(e, "Failed to list admin invoices")


@invoices_bp.get("/user/<int:user_id>")
@require_auth
@require_self_or_admin("user_id")
def user_invoices_route(user_id: int):
    try:
        page, limit = paging_args(request.args)
        result = invoice_service.list_user_invoices(user_id, page=page, limit=limit)
        return success_response(_paged_invoices(result), "Invoices retrieved successfully")
    except StorefrontError as e:
        return domain_error_response(e)
    except Exception as e:
        return internal_error_response(e, "Failed to list user invoices")
