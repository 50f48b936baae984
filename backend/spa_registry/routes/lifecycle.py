# Overview: Flask API routes for spa and therapist lifecycle transitions; parses input and returns JSON responses.

"""
Lifecycle API Routes

- POST /api/entities/<type>/<id>/transition   operator action on a spa or therapist
- POST /api/spas/<id>/payment                 payment-state signal for a spa
- GET  /api/entities/<type>/<id>/history      one entity's audit trail

Transition responses always carry an explicit outcome:

    200 {"status": "ok",       "record": {...}}
    409 {"status": "conflict", "error": "...", "record": {...latest...}}
    400 {"status": "invalid",  "error": "..."}
    404 {"status": "invalid",  "error": "... not found"}

SECURITY:
- The permission is chosen per action (see lifecycle_service.ACTION_PERMISSIONS)
- The actor is taken from the authenticated session, never from the body
- Spa administrators may only act on therapists of their own spa
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import check_permission, require_auth, require_permission, spa_scope_denied
from ..services import audit_service, lifecycle_service, status_store
from ..services.lifecycle_service import StatusConflict
from ..services.status_store import EntityNotFound
from ..services.transition_engine import TransitionError
from ..statuses import EntityType
from ..validation import ValidationError, optional_text, require_json_object, require_text


lifecycle_bp = Blueprint("lifecycle", __name__, url_prefix="/api")

REASON_MAX_LENGTH = 2000


def _actor() -> str:
    return f"user:{g.current_user.username}"


def _invalid(message: str, code: int = 400):
    return jsonify({"status": "invalid", "error": message}), code


@lifecycle_bp.post("/entities/<entity_type>/<int:entity_id>/transition")
@require_auth
def transition_route(entity_type: str, entity_id: int):
    """
    Apply an operator action.

    Request body:
    {
        "action": "approve" | "reject" | "blacklist" | "remove-blacklist"
                  | "resign" | "terminate" | "remove-termination",
        "reason": "...",              // required for reject / blacklist / terminate
        "expected_status": "pending"  // optional; the status the operator saw
    }
    """
    try:
        entity = lifecycle_service.parse_entity_type(entity_type)
        data = require_json_object(request.get_json(silent=True))
        action = require_text(data, "action", max_length=64)
        reason = optional_text(data, "reason", max_length=REASON_MAX_LENGTH)
        expected_status = optional_text(data, "expected_status", max_length=32)

        permission = lifecycle_service.required_permission(entity, action)
        if permission is None:
            return _invalid(f"'{action}' is not an operator action for {entity.value}")

        denied = check_permission(permission)
        if denied is not None:
            return denied

        if entity == EntityType.THERAPIST:
            current = status_store.read(entity, entity_id)
            denied = spa_scope_denied(current.spa_id)
            if denied is not None:
                return denied

        record = lifecycle_service.transition(
            entity,
            entity_id,
            action,
            actor=_actor(),
            reason=reason,
            expected_status=expected_status,
        )
        return jsonify({"status": "ok", "record": record.to_dict()}), 200

    except StatusConflict as e:
        latest = status_store.read(e.entity_type, e.entity_id)
        return jsonify({"status": "conflict", "error": str(e), "record": latest.to_dict()}), 409
    except EntityNotFound as e:
        return _invalid(str(e), 404)
    except (TransitionError, ValidationError) as e:
        return _invalid(str(e))
    except Exception:
        current_app.logger.exception("Failed to apply %s transition", entity_type)
        return jsonify({"error": "Internal server error"}), 500


@lifecycle_bp.post("/spas/<int:spa_id>/payment")
@require_auth
@require_permission("RECORD_PAYMENTS")
def payment_route(spa_id: int):
    """
    Record the spa's annual fee payment state.

    Request body: {"payment_state": "unpaid" | "pending" | "paid" | "overdue"}

    Approved, verified and unverified spas move to verified (paid) or
    unverified (anything else). Other statuses only record the fact.
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        payment_state = require_text(data, "payment_state", max_length=16)
        record = lifecycle_service.apply_payment_signal(spa_id, payment_state, actor=_actor())
        return jsonify({"status": "ok", "record": record.to_dict()}), 200
    except StatusConflict as e:
        latest = status_store.read(e.entity_type, e.entity_id)
        return jsonify({"status": "conflict", "error": str(e), "record": latest.to_dict()}), 409
    except EntityNotFound as e:
        return _invalid(str(e), 404)
    except (TransitionError, ValidationError) as e:
        return _invalid(str(e))
    except Exception:
        current_app.logger.exception("Failed to record payment for spa %s", spa_id)
        return jsonify({"error": "Internal server error"}), 500


@lifecycle_bp.get("/entities/<entity_type>/<int:entity_id>/history")
@require_auth
@require_permission("VIEW_AUDIT")
def history_route(entity_type: str, entity_id: int):
    try:
        entity = lifecycle_service.parse_entity_type(entity_type)
        return jsonify({"events": audit_service.entity_history(entity, entity_id)}), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except EntityNotFound as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to load history")
        return jsonify({"error": "Internal server error"}), 500
