# Overview: Flask API routes for third-party (government officer) access; parses input and returns JSON responses.

"""
Third-Party Access Routes

Administration (MANAGE_THIRD_PARTY):
- POST   /api/third-party/accounts        issue a temporary credential
- GET    /api/third-party/accounts        list credentials with derived status
- DELETE /api/third-party/accounts/<id>   revoke (delete) a credential

Officer side (no admin session):
- POST /api/third-party/login             username/password -> bearer token
- GET  /api/third-party/therapists?q=     read-only therapist lookup
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth, require_permission, require_third_party
from ..services import credential_service, registry_service
from ..services.auth_service import PasswordValidationError
from ..services.credential_service import CredentialExpired, CredentialError, DuplicateUsername
from ..time_utils import to_utc_z
from ..validation import ValidationError, optional_text, parse_int, require_json_object, require_text


third_party_bp = Blueprint("third_party", __name__, url_prefix="/api/third-party")


@third_party_bp.post("/accounts")
@require_auth
@require_permission("MANAGE_THIRD_PARTY")
def issue_account_route():
    """
    Issue a temporary officer account.

    Request body:
    {
        "username": "officer.perera",
        "password": "...",          // optional; generated and returned once if omitted
        "duration_hours": 8,        // optional
        "department": "..."         // optional
    }
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        username = require_text(data, "username", max_length=64)
        password = optional_text(data, "password", max_length=128)
        department = optional_text(data, "department", max_length=128)
        duration = data.get("duration_hours")
        if duration is not None:
            duration = parse_int(duration, "duration_hours")

        issued = credential_service.issue(
            username,
            password,
            duration,
            department=department,
            created_by_user_id=g.current_user.id,
        )

        credential = issued.credential
        body = {
            "id": credential.id,
            "username": credential.username,
            "department": credential.department,
            "issued_at": to_utc_z(credential.issued_at),
            "expires_at": to_utc_z(credential.expires_at),
        }
        if issued.generated_password is not None:
            body["password"] = issued.generated_password
        return jsonify(body), 201

    except DuplicateUsername as e:
        return jsonify({"error": str(e)}), 409
    except (ValidationError, PasswordValidationError) as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to issue third-party credential")
        return jsonify({"error": "Internal server error"}), 500


@third_party_bp.get("/accounts")
@require_auth
@require_permission("MANAGE_THIRD_PARTY")
def list_accounts_route():
    try:
        return jsonify({"accounts": credential_service.list_credentials()}), 200
    except Exception:
        current_app.logger.exception("Failed to list third-party credentials")
        return jsonify({"error": "Internal server error"}), 500


@third_party_bp.delete("/accounts/<int:credential_id>")
@require_auth
@require_permission("MANAGE_THIRD_PARTY")
def revoke_account_route(credential_id: int):
    try:
        if not credential_service.revoke(credential_id):
            return jsonify({"error": f"Credential {credential_id} not found"}), 404
        return jsonify({"message": "Credential revoked"}), 200
    except Exception:
        current_app.logger.exception("Failed to revoke third-party credential")
        return jsonify({"error": "Internal server error"}), 500


@third_party_bp.post("/login")
def login_route():
    try:
        data = require_json_object(request.get_json(silent=True))
        username = data.get("username")
        password = data.get("password")
        if not isinstance(username, str) or not isinstance(password, str) or not username or not password:
            return jsonify({"error": "username and password required"}), 400

        principal, token = credential_service.login(
            username,
            password,
            ip_address=request.remote_addr,
            user_agent=request.headers.get("User-Agent"),
        )
        return jsonify({
            "token": token,
            "username": principal.username,
            "expires_at": to_utc_z(principal.expires_at),
        }), 200

    except CredentialExpired:
        return jsonify({"error": "Access has expired", "expired": True}), 401
    except CredentialError:
        return jsonify({"error": "Invalid credentials"}), 401
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed third-party login")
        return jsonify({"error": "Internal server error"}), 500


@third_party_bp.get("/therapists")
@require_third_party
def therapist_lookup_route():
    """Look up therapists by NIC or name fragment (?q=)."""
    try:
        term = request.args.get("q", "")
        results = registry_service.search_therapists(term)
        return jsonify({
            "therapists": results,
            "expires_at": to_utc_z(g.third_party_principal.expires_at),
        }), 200
    except Exception:
        current_app.logger.exception("Failed third-party therapist lookup")
        return jsonify({"error": "Internal server error"}), 500
