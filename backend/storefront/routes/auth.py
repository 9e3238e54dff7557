# Overview: Flask API routes for login and logout.

# backend/storefront/routes/auth.py
"""
Authentication routes.

Admins and shoppers live in separate tables, so login takes an
"account" selector ("user" by default, or "admin"). The returned token
goes in the Authorization header as "Bearer <token>".
"""

from flask import Blueprint, current_app, g, request

from ..decorators import require_auth
from ..responses import error_response, internal_error_response, success_response
from ..services import auth_service, session_service
from ..time_utils import to_utc_z


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/login")
def login_route():
    """Body: {email, password, account?: "user" | "admin"}"""
    try:
        data = request.get_json(silent=True) or {}
        email = data.get("email")
        password = data.get("password")
        if not email or not password:
            return error_response("email and password required", 400)

        account_type = (data.get("account") or "user").lower()
        if account_type not in ("user", "admin"):
            return error_response("account must be 'user' or 'admin'", 400)

        account = auth_service.authenticate(email, password, as_admin=account_type == "admin")
        if account is None:
            current_app.logger.info("Failed %s login for %s", account_type, email)
            return error_response("Invalid credentials", 401)

        record, token = session_service.create_session(account)
        principal = session_service.principal_for(account)
        return success_response(
            {
                "token": token,
                "expires_at": to_utc_z(record.expires_at),
                "principal": {"id": principal.id, "role": principal.role},
                "account": account.to_dict(),
            },
            "Login successful",
        )
    except Exception as e:
        return internal_error_response(e, "Login failed")


@auth_bp.post("/logout")
@require_auth
def logout_route():
    try:
        session_service.revoke_session(g.session_token)
        return success_response(None, "Logged out successfully")
    except Exception as e:
        return internal_error_response(e, "Logout failed")


@auth_bp.get("/me")
@require_auth
def me_route():
    principal = g.principal
    return success_response({"id": principal.id, "role": principal.role}, "Session is valid")
