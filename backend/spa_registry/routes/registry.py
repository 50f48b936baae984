# Overview: Flask API routes for spa and therapist registration; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth, require_permission, spa_scope_denied
from ..services import registry_service
from ..services.registry_service import NAME_MAX_LENGTH, NIC_MAX_LENGTH
from ..services.status_store import EntityNotFound
from ..validation import ValidationError, parse_int, require_json_object, require_text


registry_bp = Blueprint("registry", __name__, url_prefix="/api")

LIST_MAX_LIMIT = 500


def _list_args():
    status = request.args.get("status") or None
    limit = parse_int(request.args.get("limit", "200"), "limit", minimum=1, maximum=LIST_MAX_LIMIT)
    return status, limit


@registry_bp.post("/spas")
@require_auth
@require_permission("REGISTER_SPAS")
def create_spa_route():
    """Register a spa. It starts pending with payment_state unpaid."""
    try:
        data = require_json_object(request.get_json(silent=True))
        spa = registry_service.register_spa(
            name=require_text(data, "name", max_length=NAME_MAX_LENGTH),
            owner_contact=require_text(data, "owner_contact", max_length=NAME_MAX_LENGTH),
        )
        return jsonify({"spa": spa.to_dict()}), 201
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to register spa")
        return jsonify({"error": "Internal server error"}), 500


@registry_bp.get("/spas")
@require_auth
@require_permission("VIEW_SPAS")
def list_spas_route():
    try:
        status, limit = _list_args()
        spas = registry_service.list_spas(status=status, limit=limit)
        return jsonify({"spas": [spa.to_dict() for spa in spas]}), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ValueError:
        return jsonify({"error": f"Invalid status filter '{request.args.get('status')}'"}), 400
    except Exception:
        current_app.logger.exception("Failed to list spas")
        return jsonify({"error": "Internal server error"}), 500


@registry_bp.get("/spas/<int:spa_id>")
@require_auth
@require_permission("VIEW_SPAS")
def get_spa_route(spa_id: int):
    try:
        return jsonify({"spa": registry_service.get_spa(spa_id).to_dict()}), 200
    except EntityNotFound as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to load spa")
        return jsonify({"error": "Internal server error"}), 500


@registry_bp.post("/therapists")
@require_auth
@require_permission("REGISTER_THERAPISTS")
def create_therapist_route():
    """
    Register a therapist under a spa. Spa administrators may omit spa_id;
    it defaults to (and must equal) their own spa.
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        raw_spa_id = data.get("spa_id", g.current_user.spa_id)
        if raw_spa_id is None:
            raise ValidationError("spa_id is required")
        spa_id = parse_int(raw_spa_id, "spa_id", minimum=1)

        denied = spa_scope_denied(spa_id)
        if denied is not None:
            return denied

        therapist = registry_service.register_therapist(
            spa_id=spa_id,
            name=require_text(data, "name", max_length=NAME_MAX_LENGTH),
            nic=require_text(data, "nic", max_length=NIC_MAX_LENGTH),
        )
        return jsonify({"therapist": therapist.to_dict()}), 201
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except EntityNotFound as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to register therapist")
        return jsonify({"error": "Internal server error"}), 500


@registry_bp.get("/therapists")
@require_auth
@require_permission("VIEW_THERAPISTS")
def list_therapists_route():
    """Spa administrators only ever see their own spa's staff."""
    try:
        status, limit = _list_args()
        spa_id = request.args.get("spa_id")
        spa_id = parse_int(spa_id, "spa_id", minimum=1) if spa_id else None

        if g.current_user.spa_id is not None:
            if spa_id is not None:
                denied = spa_scope_denied(spa_id)
                if denied is not None:
                    return denied
            spa_id = g.current_user.spa_id

        therapists = registry_service.list_therapists(status=status, spa_id=spa_id, limit=limit)
        return jsonify({"therapists": [t.to_dict() for t in therapists]}), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ValueError:
        return jsonify({"error": f"Invalid status filter '{request.args.get('status')}'"}), 400
    except Exception:
        current_app.logger.exception("Failed to list therapists")
        return jsonify({"error": "Internal server error"}), 500


@registry_bp.get("/therapists/<int:therapist_id>")
@require_auth
@require_permission("VIEW_THERAPISTS")
def get_therapist_route(therapist_id: int):
    try:
        therapist = registry_service.get_therapist(therapist_id)
        denied = spa_scope_denied(therapist.spa_id)
        if denied is not None:
            return denied
        return jsonify({"therapist": therapist.to_dict()}), 200
    except EntityNotFound as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to load therapist")
        return jsonify({"error": "Internal server error"}), 500
