# Overview: Request and permission decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .services import credential_service, session_service, permission_service
from .services.credential_service import CredentialError, CredentialExpired
from .services.permission_service import PermissionDeniedError


def bearer_token() -> str | None:
    """Plaintext token from 'Authorization: Bearer <token>', or None."""
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    token = auth_header.split(" ", 1)[1].strip()
    return token or None


def _is_authenticated() -> bool:
    return hasattr(g, 'current_user')


def require_auth(f):
    """
    Require an administrative session.

    Sets the following Flask g attributes:
    - g.current_user: The authenticated User object
    - g.session_context: The full SessionContext object

    Every accepted request counts as activity and refreshes the session's
    idle timer.

    SECURITY: Returns 401 if:
    - No Authorization header
    - Unknown or revoked token
    - Session idle for 10 minutes or more (clients treat this as a logout)
    - User account deactivated
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = bearer_token()
        if not token:
            return jsonify({"error": "Authentication required"}), 401

        context = session_service.validate_session(token)

        if not context:
            return jsonify({"error": "Invalid or expired token", "logout": True}), 401

        g.current_user = context.user
        g.session_context = context

        return f(*args, **kwargs)

    return decorated_function


def check_permission(permission_code: str):
    """
    Check g.current_user for permission_code inside a view.

    Returns None when allowed, or a (response, 403) tuple the view should
    return. Used where the required permission depends on the request body.
    """
    try:
        permission_service.require_permission(
            user_id=g.current_user.id,
            permission_code=permission_code,
            resource=request.path,
            ip_address=request.remote_addr,
            user_agent=request.headers.get("User-Agent"),
        )
    except PermissionDeniedError as e:
        return jsonify({
            "error": "Permission denied",
            "required_permission": permission_code,
            "message": str(e)
        }), 403
    return None


def require_permission(permission_code: str):
    """Require a specific permission. Denials are logged to security_events."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            # Ensure @require_auth was called first
            if not _is_authenticated():
                return jsonify({"error": "Authentication required"}), 401

            denied = check_permission(permission_code)
            if denied is not None:
                return denied

            return f(*args, **kwargs)

        return decorated_function
    return decorator


def spa_scope_denied(spa_id: int):
    """
    Spa-scoped administrators (User.spa_id set) may only touch their own spa.

    Returns None when allowed, or a (response, 403) tuple.
    """
    user = g.current_user
    if user.spa_id is None or user.spa_id == spa_id:
        return None

    permission_service.log_security_event(
        user_id=user.id,
        event_type="SPA_SCOPE_DENIED",
        success=False,
        resource=request.path,
        action=request.method,
        reason=f"User scoped to spa {user.spa_id} attempted spa {spa_id}",
        ip_address=request.remote_addr,
        user_agent=request.headers.get("User-Agent"),
    )
    return jsonify({"error": "Permission denied", "message": "Outside your spa"}), 403


def require_third_party(f):
    """
    Require a third-party bearer token.

    Sets g.third_party_principal. Returns 401 for unknown, revoked or
    expired grants.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = bearer_token()
        if not token:
            return jsonify({"error": "Authentication required"}), 401

        try:
            principal = credential_service.authenticate_token(token)
        except CredentialExpired:
            return jsonify({"error": "Access has expired", "expired": True}), 401
        except CredentialError:
            return jsonify({"error": "Invalid or expired token"}), 401

        g.third_party_principal = principal
        return f(*args, **kwargs)

    return decorated_function
