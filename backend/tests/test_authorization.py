"""
Authorization tests for the spa registry API.

Verifies:
- Unauthenticated requests return 401
- Officers cannot blacklist, record payments or manage third parties (403)
- Spa administrators are confined to their own spa
- Denials are written to security_events
"""

import pytest

from spa_registry.extensions import db
from spa_registry.models import SecurityEvent
from spa_registry.permissions import DEFAULT_ROLE_PERMISSIONS, PERMISSION_DEFINITIONS, get_all_permission_codes
from spa_registry.services import lifecycle_service, permission_service, registry_service


def _events(event_type: str) -> int:
    return db.session.query(SecurityEvent).filter_by(event_type=event_type).count()


# =============================================================================
# UNAUTHENTICATED ACCESS: 401
# =============================================================================


class TestUnauthenticatedAccess:
    """All protected endpoints return 401 without a token."""

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/spas"),
            ("POST", "/api/spas"),
            ("GET", "/api/spas/1"),
            ("GET", "/api/therapists"),
            ("POST", "/api/therapists"),
            ("POST", "/api/entities/spa/1/transition"),
            ("POST", "/api/spas/1/payment"),
            ("GET", "/api/entities/spa/1/history"),
            ("GET", "/api/audit"),
            ("GET", "/api/third-party/accounts"),
            ("POST", "/api/third-party/accounts"),
            ("GET", "/api/third-party/therapists"),
        ],
    )
    def test_requires_auth(self, client, users, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"

    def test_garbage_token(self, client, users):
        resp = client.get("/api/spas", headers={"Authorization": "Bearer not-a-token"})
        assert resp.status_code == 401
        assert resp.get_json()["logout"] is True

    def test_admin_token_is_not_a_third_party_token(self, client, login):
        headers = login("admin")
        resp = client.get("/api/third-party/therapists?q=x", headers=headers)
        assert resp.status_code == 401


# =============================================================================
# OFFICER: 403 ON PRIVILEGED OPERATIONS
# =============================================================================


class TestOfficerDenied:

    def test_cannot_blacklist(self, client, login, spa):
        lifecycle_service.transition("spa", spa.id, "approve", actor="user:admin")
        headers = login("officer")

        resp = client.post(
            f"/api/entities/spa/{spa.id}/transition",
            json={"action": "blacklist", "reason": "unlicensed premises"},
            headers=headers,
        )

        assert resp.status_code == 403
        assert resp.get_json()["required_permission"] == "BLACKLIST_SPAS"
        assert _events("PERMISSION_DENIED") == 1
        assert registry_service.get_spa(spa.id).status.value == "unverified"

    def test_cannot_record_payment(self, client, login, spa):
        resp = client.post(f"/api/spas/{spa.id}/payment", json={"payment_state": "paid"}, headers=login("officer"))
        assert resp.status_code == 403

    def test_cannot_register_spa(self, client, login):
        resp = client.post("/api/spas", json={"name": "X", "owner_contact": "x"}, headers=login("officer"))
        assert resp.status_code == 403

    def test_cannot_manage_third_party(self, client, login):
        resp = client.post("/api/third-party/accounts", json={"username": "p"}, headers=login("officer"))
        assert resp.status_code == 403

    def test_can_approve(self, client, login, spa):
        resp = client.post(
            f"/api/entities/spa/{spa.id}/transition",
            json={"action": "approve"},
            headers=login("officer"),
        )
        assert resp.status_code == 200
        assert resp.get_json()["record"]["status"] == "unverified"

    def test_can_read_audit(self, client, login):
        resp = client.get("/api/audit", headers=login("officer"))
        assert resp.status_code == 200


# =============================================================================
# SPA ADMINISTRATOR: OWN SPA ONLY
# =============================================================================


class TestSpaAdminScope:

    def test_registers_therapist_at_own_spa_by_default(self, client, login, spa):
        resp = client.post(
            "/api/therapists",
            json={"name": "Kamal Silva", "nic": "198811112222"},
            headers=login("spaadmin"),
        )
        assert resp.status_code == 201
        body = resp.get_json()["therapist"]
        assert body["spa_id"] == spa.id
        assert body["status"] == "pending"

    def test_cannot_register_at_other_spa(self, client, login, other_spa):
        resp = client.post(
            "/api/therapists",
            json={"spa_id": other_spa.id, "name": "Kamal Silva", "nic": "198811112222"},
            headers=login("spaadmin"),
        )
        assert resp.status_code == 403
        assert _events("SPA_SCOPE_DENIED") == 1

    def test_terminates_own_staff(self, client, login, therapist):
        lifecycle_service.transition("therapist", therapist.id, "approve", actor="user:officer")

        resp = client.post(
            f"/api/entities/therapist/{therapist.id}/transition",
            json={"action": "terminate", "reason": "misconduct"},
            headers=login("spaadmin"),
        )

        assert resp.status_code == 200
        record = resp.get_json()["record"]
        assert record["status"] == "terminated"
        assert record["termination_reason"] == "misconduct"

    def test_cannot_terminate_other_spas_staff(self, client, login, other_spa):
        outsider = registry_service.register_therapist(other_spa.id, "Ruwan Jayasuriya", "197755554444")
        lifecycle_service.transition("therapist", outsider.id, "approve", actor="user:officer")

        resp = client.post(
            f"/api/entities/therapist/{outsider.id}/transition",
            json={"action": "terminate", "reason": "misconduct"},
            headers=login("spaadmin"),
        )

        assert resp.status_code == 403
        assert registry_service.get_therapist(outsider.id).status.value == "approved"

    def test_cannot_approve_spa(self, client, login, spa):
        resp = client.post(
            f"/api/entities/spa/{spa.id}/transition",
            json={"action": "approve"},
            headers=login("spaadmin"),
        )
        assert resp.status_code == 403

    def test_cannot_approve_own_therapist(self, client, login, therapist):
        resp = client.post(
            f"/api/entities/therapist/{therapist.id}/transition",
            json={"action": "approve"},
            headers=login("spaadmin"),
        )
        assert resp.status_code == 403

    def test_lists_only_own_staff(self, client, login, therapist, other_spa):
        registry_service.register_therapist(other_spa.id, "Ruwan Jayasuriya", "197755554444")

        resp = client.get("/api/therapists", headers=login("spaadmin"))

        assert resp.status_code == 200
        assert [t["id"] for t in resp.get_json()["therapists"]] == [therapist.id]

    def test_cannot_view_other_spas_therapist(self, client, login, other_spa):
        outsider = registry_service.register_therapist(other_spa.id, "Ruwan Jayasuriya", "197755554444")
        resp = client.get(f"/api/therapists/{outsider.id}", headers=login("spaadmin"))
        assert resp.status_code == 403


# =============================================================================
# PERMISSION SERVICE
# =============================================================================


class TestPermissionService:

    def test_admin_holds_every_permission(self, users):
        codes = {perm[0] for perm in PERMISSION_DEFINITIONS}
        assert permission_service.get_user_permissions(users["admin"]) == codes

    def test_officer_permissions(self, users):
        assert permission_service.get_user_permissions(users["officer"]) == set(DEFAULT_ROLE_PERMISSIONS["lsa_officer"])

    def test_require_permission_logs_denial(self, users):
        with pytest.raises(permission_service.PermissionDeniedError):
            permission_service.require_permission(users["spaadmin"], "REVIEW_SPAS")
        assert _events("PERMISSION_DENIED") == 1

    def test_unknown_permission_code(self, users):
        with pytest.raises(ValueError):
            permission_service.require_permission(users["admin"], "LAUNCH_ROCKETS")

    def test_every_operator_action_maps_to_a_defined_permission(self):
        assert set(lifecycle_service.ACTION_PERMISSIONS.values()) <= set(get_all_permission_codes())
