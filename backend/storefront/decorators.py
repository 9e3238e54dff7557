# Overview: Request authentication and role decorators for API routes.

from functools import wraps

from flask import g, request

from .responses import error_response
from .services import session_service


def _bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    return auth_header.split(" ", 1)[1].strip() or None


def require_auth(f):
    """
    Require a valid bearer session and expose the caller as g.principal
    (storefront.services.session_service.Principal).

    Returns 401 if the header is missing, or the token is unknown,
    expired, revoked, or belongs to a deactivated account.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = _bearer_token()
        if token is None:
            return error_response("Authentication required", 401)

        principal = session_service.validate_session(token)
        if principal is None:
            return error_response("Invalid or expired token", 401)

        g.principal = principal
        g.session_token = token
        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles: str):
    """Require the authenticated principal to hold one of roles. Use after @require_auth."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            principal = getattr(g, "principal", None)
            if principal is None:
                return error_response("Authentication required", 401)
            if principal.role not in roles:
                return error_response("Permission denied", 403, data={"required_roles": list(roles)})
            return f(*args, **kwargs)

        return decorated_function
    return decorator


def require_self_or_admin(param: str = "user_id"):
    """Shoppers may only address their own user_id in the URL; admins may address any."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            principal = getattr(g, "principal", None)
            if principal is None:
                return error_response("Authentication required", 401)
            if not principal.is_admin and kwargs.get(param) != principal.id:
                return error_response("Permission denied", 403)
            return f(*args, **kwargs)

        return decorated_function
    return decorator
