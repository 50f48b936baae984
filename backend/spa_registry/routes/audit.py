# Overview: Flask API routes for the audit trail; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, current_app

from ..decorators import require_auth, require_permission
from ..services import audit_service, permission_service
from ..validation import ValidationError, parse_int


audit_bp = Blueprint("audit", __name__, url_prefix="/api/audit")


@audit_bp.get("")
@require_auth
@require_permission("VIEW_AUDIT")
def audit_feed_route():
    """
    Unified spa and therapist status history, newest first.

    Query params: type (spa|therapist), status (resulting status), limit.
    The summary block is recomputed from current entity statuses.
    """
    try:
        limit = request.args.get("limit")
        limit = parse_int(limit, "limit", minimum=1) if limit else None
        feed = audit_service.query(
            entity_type=request.args.get("type") or None,
            status=request.args.get("status") or None,
            limit=limit,
        )
        return jsonify({
            "events": feed.to_list(),
            "summary": audit_service.status_summary(),
        }), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to load audit feed")
        return jsonify({"error": "Internal server error"}), 500


@audit_bp.get("/security-events")
@require_auth
@require_permission("VIEW_SECURITY_EVENTS")
def security_events_route():
    """Denials, failed logins and expiries, newest first. Query params: type, limit."""
    try:
        limit = request.args.get("limit")
        limit = parse_int(limit, "limit", minimum=1, maximum=500) if limit else 100
        events = permission_service.recent_security_events(
            event_type=request.args.get("type") or None,
            limit=limit,
        )
        return jsonify({"events": events}), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to load security events")
        return jsonify({"error": "Internal server error"}), 500
