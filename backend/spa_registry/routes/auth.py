# Overview: Administrative login, logout and idle-session endpoints.

"""
Administrative session endpoints

- POST /api/auth/login      username or email + password -> bearer token
- POST /api/auth/logout     revoke the presented token
- POST /api/auth/activity   client-side interaction ping (resets the idle timer)
- GET  /api/auth/session    is the token still live? (not counted as activity)

After 10 idle minutes every endpoint answers 401 with "logout": true.
"""

from flask import Blueprint, request, jsonify, current_app

from ..services import auth_service
from ..services import session_service
from ..services import permission_service
from ..services.session_service import SessionExpired
from ..decorators import bearer_token
from ..validation import ValidationError, require_json_object


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/login")
def login_route():
    """
    Authenticate user and create session token.

    Returns user info and session token on success. A previous live session
    of the same user is revoked.
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        username = data.get("username") or data.get("email")
        password = data.get("password")

        if not username or not password:
            return jsonify({"error": "username/email and password required"}), 400

        user_agent = request.headers.get("User-Agent")
        ip_address = request.remote_addr

        user = auth_service.authenticate(username, password)

        if not user:
            permission_service.log_security_event(
                user_id=None,
                event_type="LOGIN_FAILED",
                success=False,
                resource="/api/auth/login",
                action=str(username),
                reason="Invalid credentials",
                ip_address=ip_address,
                user_agent=user_agent,
            )
            return jsonify({"error": "Invalid credentials"}), 401

        session, token = session_service.create_session(
            user_id=user.id,
            user_agent=user_agent,
            ip_address=ip_address
        )
        permissions = sorted(permission_service.get_user_permissions(user.id))

        return jsonify({
            "user": user.to_dict(),
            "roles": permission_service.get_user_role_names(user.id),
            "permissions": permissions,
            "token": token,
            "session": session.to_dict(),
            "message": "Login successful"
        }), 200

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to login user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/logout")
def logout_route():
    """
    Revoke session token (logout).

    Expects Authorization header: Bearer <token>
    """
    try:
        token = bearer_token()
        if not token:
            return jsonify({"error": "Authorization header required"}), 401

        revoked = session_service.revoke_session(token, reason=session_service.REASON_LOGOUT)

        if not revoked:
            return jsonify({"error": "Invalid or expired token"}), 401

        return jsonify({"message": "Logout successful"}), 200

    except Exception:
        current_app.logger.exception("Failed to logout user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/activity")
def activity_route():
    """
    Report user activity (keystrokes, clicks) for the session idle timer.

    401 once the session has gone idle; the session is not revived.
    """
    try:
        token = bearer_token()
        if not token:
            return jsonify({"error": "Authorization header required"}), 401

        context = session_service.validate_session(token, touch=False)
        if not context:
            return jsonify({"error": "Invalid or expired token", "logout": True}), 401

        try:
            session = session_service.touch(context.user.id)
        except SessionExpired as e:
            return jsonify({"error": str(e), "logout": True}), 401

        return jsonify({
            "session": session.to_dict(),
            "idle_seconds_remaining": session_service.idle_seconds_remaining(session),
        }), 200

    except Exception:
        current_app.logger.exception("Failed to record session activity")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.get("/session")
def session_route():
    """
    Report whether the session is still valid without counting as activity.

    Used by clients returning after being closed: a session that went idle
    in the meantime is reported (and expired) here.
    """
    try:
        token = bearer_token()
        if not token:
            return jsonify({"error": "Authorization header required"}), 401

        context = session_service.validate_session(token, touch=False)
        if not context:
            return jsonify({"valid": False, "error": "Invalid or expired token", "logout": True}), 401

        return jsonify({
            "valid": True,
            "user": context.user.to_dict(),
            "permissions": sorted(permission_service.get_user_permissions(context.user.id)),
            "session": context.session.to_dict(),
            "idle_seconds_remaining": session_service.idle_seconds_remaining(context.session),
        }), 200

    except Exception:
        current_app.logger.exception("Failed to check session")
        return jsonify({"error": "Internal server error"}), 500
