"""Third-party credential issue, expiry, tokens and revocation."""

from datetime import timedelta

import pytest

from spa_registry.extensions import db
from spa_registry.models import SecurityEvent, ThirdPartyCredential, ThirdPartyToken
from spa_registry.services import credential_service
from spa_registry.services.auth_service import PasswordValidationError, validate_password_strength
from spa_registry.services.credential_service import (
    CredentialExpired,
    DuplicateUsername,
    InvalidCredentials,
)
from spa_registry.validation import ValidationError


OFFICER_PASSWORD = "Officer#2026"


def _issue(username="officer.perera", password=OFFICER_PASSWORD, hours=8):
    return credential_service.issue(username, password, hours, department="Ministry of Health").credential


def test_valid_before_expiry_expired_after(app, clock):
    _issue()

    clock.advance(hours=7, minutes=59)
    principal = credential_service.validate("officer.perera", OFFICER_PASSWORD)
    assert principal.username == "officer.perera"

    clock.advance(minutes=2)  # T + 8h01m
    with pytest.raises(CredentialExpired):
        credential_service.validate("officer.perera", OFFICER_PASSWORD)


def test_expired_at_exact_expiry(app, clock):
    credential = _issue(hours=1)
    clock.set(credential.expires_at)

    with pytest.raises(CredentialExpired):
        credential_service.validate("officer.perera", OFFICER_PASSWORD)


def test_expires_at_is_issued_at_plus_duration(app, clock):
    credential = _issue(hours=24)
    assert credential.issued_at == clock.now()
    assert credential.expires_at == clock.now() + timedelta(hours=24)


def test_default_duration(app, clock):
    issued = credential_service.issue("officer.silva", OFFICER_PASSWORD)
    assert issued.credential.expires_at - issued.credential.issued_at == timedelta(hours=8)


@pytest.mark.parametrize("hours", [0, -1, 73])
def test_duration_out_of_range(app, hours):
    with pytest.raises(ValidationError):
        credential_service.issue("officer.perera", OFFICER_PASSWORD, hours)


def test_validation_updates_last_login_not_expiry(app, clock):
    credential = _issue()
    expires_at = credential.expires_at

    clock.advance(hours=2)
    credential_service.validate("officer.perera", OFFICER_PASSWORD)

    stored = db.session.get(ThirdPartyCredential, credential.id)
    assert stored.last_login_at == clock.now()
    assert stored.expires_at == expires_at


def test_wrong_password_and_unknown_user(app):
    _issue()
    with pytest.raises(InvalidCredentials):
        credential_service.validate("officer.perera", "Wrong#Pass1")
    with pytest.raises(InvalidCredentials):
        credential_service.validate("nobody", OFFICER_PASSWORD)


def test_expired_credential_with_wrong_password_is_invalid(app, clock):
    _issue(hours=1)
    clock.advance(hours=2)
    with pytest.raises(InvalidCredentials):
        credential_service.validate("officer.perera", "Wrong#Pass1")


def test_duplicate_active_username(app, clock):
    _issue()
    with pytest.raises(DuplicateUsername):
        _issue()


def test_duplicate_with_stale_active_check(app, monkeypatch):
    first = _issue()
    # The second issuer read the table before the first one committed
    monkeypatch.setattr(credential_service, "_active_with_username", lambda username, now: None)

    with pytest.raises(DuplicateUsername):
        _issue(password="Second#2026")

    assert db.session.query(ThirdPartyCredential).count() == 1
    assert credential_service.validate("officer.perera", OFFICER_PASSWORD).credential_id == first.id
    with pytest.raises(InvalidCredentials):
        credential_service.validate("officer.perera", "Second#2026")


def test_expired_username_reissued_with_stale_active_check(app, clock, monkeypatch):
    _issue(hours=1)
    clock.advance(hours=1)
    monkeypatch.setattr(credential_service, "_active_with_username", lambda username, now: None)

    renewed = _issue(password="Renewed#2026")

    assert credential_service.validate("officer.perera", "Renewed#2026").credential_id == renewed.id


def test_revoked_username_can_be_reissued(app):
    credential = _issue()
    credential_service.revoke(credential.id)

    _issue(password="Renewed#2026")

    assert credential_service.validate("officer.perera", "Renewed#2026").username == "officer.perera"


def test_expired_username_can_be_reissued(app, clock):
    _issue(hours=1)
    clock.advance(hours=1)

    _issue(password="Renewed#2026", hours=4)

    assert credential_service.validate("officer.perera", "Renewed#2026").username == "officer.perera"
    assert db.session.query(ThirdPartyCredential).count() == 2


def test_generated_password(app):
    issued = credential_service.issue("officer.fernando", None, 8)

    assert issued.generated_password is not None
    validate_password_strength(issued.generated_password)
    assert credential_service.validate("officer.fernando", issued.generated_password)


def test_generate_password_meets_policy():
    for _ in range(20):
        validate_password_strength(credential_service.generate_password())


def test_weak_password_rejected(app):
    with pytest.raises(PasswordValidationError):
        credential_service.issue("officer.perera", "weak", 8)


def test_expired_credential_is_kept_until_revoked(app, clock):
    credential = _issue(hours=1)
    clock.advance(hours=3)

    listed = credential_service.list_credentials()
    assert [(c["id"], c["status"]) for c in listed] == [(credential.id, "expired")]

    assert credential_service.revoke(credential.id)
    assert credential_service.list_credentials() == []
    assert not credential_service.revoke(credential.id)


def test_list_shows_active_status(app):
    _issue()
    assert credential_service.list_credentials()[0]["status"] == "active"


def test_login_token_dies_with_credential(app, clock):
    _issue()
    principal, token = credential_service.login("officer.perera", OFFICER_PASSWORD)

    assert credential_service.authenticate_token(token).credential_id == principal.credential_id
    assert "THERAPIST_LOOKUP" in principal.capabilities

    clock.advance(hours=8)
    with pytest.raises(CredentialExpired):
        credential_service.authenticate_token(token)


def test_failed_login_is_logged(app):
    _issue()
    with pytest.raises(InvalidCredentials):
        credential_service.login("officer.perera", "Wrong#Pass1")

    event = db.session.query(SecurityEvent).filter_by(event_type="THIRD_PARTY_LOGIN_FAILED").one()
    assert event.action == "officer.perera"
    assert not event.success


def test_grant_sweep_revokes_once(app, clock):
    _issue(hours=1)
    _, token = credential_service.login("officer.perera", OFFICER_PASSWORD)
    credential_service.issue("officer.silva", OFFICER_PASSWORD, 8)
    _, other_token = credential_service.login("officer.silva", OFFICER_PASSWORD)

    assert credential_service.sweep_expired_grants() == 0

    clock.advance(hours=1)
    assert credential_service.sweep_expired_grants() == 1
    assert credential_service.sweep_expired_grants() == 0

    events = db.session.query(SecurityEvent).filter_by(event_type="THIRD_PARTY_GRANT_EXPIRED").all()
    assert len(events) == 1
    assert events[0].action == "officer.perera"

    with pytest.raises(InvalidCredentials):
        credential_service.authenticate_token(token)
    assert credential_service.authenticate_token(other_token).username == "officer.silva"


def test_revoke_deletes_tokens(app):
    credential = _issue()
    _, token = credential_service.login("officer.perera", OFFICER_PASSWORD)

    credential_service.revoke(credential.id)

    assert db.session.query(ThirdPartyToken).count() == 0
    with pytest.raises(InvalidCredentials):
        credential_service.authenticate_token(token)
