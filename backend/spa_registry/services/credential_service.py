# Overview: Service-layer operations for third-party credentials; encapsulates business logic and database work.

"""
Third-Party Credential Lifecycle Service

WHY: Government officers need short-lived, read-only access to the therapist
register without an administrative account.

RULES:
1. expires_at = issued_at + duration, fixed at issue time. Logging in never
   extends it.
2. Expiry is one predicate, now >= expires_at, checked on every validation
   and by the periodic grant sweep.
3. An expired credential stays in the table (status "expired") until an
   administrator revokes it. Revocation is the only physical deletion.
4. Only one *active* credential per username. Expired usernames can be
   issued again. The per-username claim row is the arbiter when two
   issuers race.
5. Bearer tokens minted at login die with the credential: the lazy check in
   authenticate_token refuses them, and the sweep revokes them once each.
"""

import hashlib
import secrets
import string
from dataclasses import dataclass
from datetime import datetime, timedelta

from flask import current_app
from sqlalchemy import insert, update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import ThirdPartyCredential, ThirdPartyToken, ThirdPartyUsernameClaim
from ..time_utils import utcnow
from ..validation import ConflictError, ValidationError
from .auth_service import SPECIAL_CHARACTERS, hash_password, verify_password
from .permission_service import log_security_event


GRANT_SWEEP_INTERVAL = timedelta(seconds=60)

# Fixed capability set of every third-party principal
THIRD_PARTY_CAPABILITIES = frozenset({"THERAPIST_LOOKUP"})


class DuplicateUsername(ConflictError):
    """An active credential with this username already exists."""
    pass


class CredentialError(Exception):
    """Base class for third-party authentication failures."""
    pass


class InvalidCredentials(CredentialError):
    pass


class CredentialExpired(CredentialError):
    pass


@dataclass(frozen=True)
class AuthenticatedPrincipal:
    credential_id: int
    username: str
    department: str | None
    expires_at: datetime
    capabilities: frozenset = THIRD_PARTY_CAPABILITIES


@dataclass(frozen=True)
class IssuedCredential:
    credential: ThirdPartyCredential
    # Plaintext, only when generated by issue(); shown to the issuer once
    generated_password: str | None = None


def _hash_token(token: str) -> str:
    return hashlib.sha256(token.encode('utf-8')).hexdigest()


def generate_password(length: int = 16) -> str:
    """Random password that satisfies the password strength policy."""
    pools = [string.ascii_uppercase, string.ascii_lowercase, string.digits, SPECIAL_CHARACTERS]
    alphabet = "".join(pools)
    chars = [secrets.choice(pool) for pool in pools]
    chars += [secrets.choice(alphabet) for _ in range(length - len(chars))]
    secrets.SystemRandom().shuffle(chars)
    return "".join(chars)


def _resolve_duration(duration_hours) -> int:
    max_hours = current_app.config["THIRD_PARTY_MAX_DURATION_HOURS"]
    if duration_hours is None:
        return current_app.config["THIRD_PARTY_DEFAULT_DURATION_HOURS"]
    if isinstance(duration_hours, bool) or not isinstance(duration_hours, int):
        raise ValidationError("duration_hours must be an integer")
    if duration_hours < 1 or duration_hours > max_hours:
        raise ValidationError(f"duration_hours must be between 1 and {max_hours}")
    return duration_hours


def _active_with_username(username: str, now) -> ThirdPartyCredential | None:
    return db.session.query(ThirdPartyCredential).filter(
        ThirdPartyCredential.username == username,
        ThirdPartyCredential.expires_at > now,
    ).first()


def _claim_username(credential: ThirdPartyCredential, now) -> None:
    """
    Make credential the holder of its username, or roll back and raise DuplicateUsername.

    An existing claim is taken over only if it has lapsed. A new username is
    inserted, and a concurrent insert of the same username fails on the
    primary key.
    """
    taken_over = db.session.execute(
        update(ThirdPartyUsernameClaim)
        .where(
            ThirdPartyUsernameClaim.username == credential.username,
            ThirdPartyUsernameClaim.expires_at <= now,
        )
        .values(credential_id=credential.id, expires_at=credential.expires_at)
        .execution_options(synchronize_session=False)
    )
    if taken_over.rowcount == 1:
        return

    try:
        db.session.execute(insert(ThirdPartyUsernameClaim).values(
            username=credential.username,
            credential_id=credential.id,
            expires_at=credential.expires_at,
        ))
    except IntegrityError:
        db.session.rollback()
        current_app.logger.warning("Lost username claim race for third-party username %s", credential.username)
        raise DuplicateUsername(f"An active credential for '{credential.username}' already exists")


def issue(
    username: str,
    password: str | None = None,
    duration_hours: int | None = None,
    *,
    department: str | None = None,
    created_by_user_id: int | None = None,
) -> IssuedCredential:
    """
    Issue a temporary third-party credential.

    Args:
        username: login name; must not collide with an active credential
        password: optional; generated when omitted
        duration_hours: lifetime in hours (default THIRD_PARTY_DEFAULT_DURATION_HOURS)

    Raises:
        DuplicateUsername: an active credential already uses username
        ValidationError: bad duration
        PasswordValidationError: supplied password is too weak
    """
    hours = _resolve_duration(duration_hours)
    now = utcnow()

    if _active_with_username(username, now) is not None:
        raise DuplicateUsername(f"An active credential for '{username}' already exists")

    generated = None
    if password is None:
        password = generated = generate_password()

    credential = ThirdPartyCredential(
        username=username,
        password_hash=hash_password(password),
        department=department,
        issued_at=now,
        expires_at=now + timedelta(hours=hours),
        created_by_user_id=created_by_user_id,
    )
    db.session.add(credential)
    db.session.flush()
    # The check above can be stale; the claim is what decides
    _claim_username(credential, now)
    db.session.commit()

    current_app.logger.info(
        "Issued third-party credential %s (%s) valid until %s",
        credential.id, username, credential.expires_at.isoformat(),
    )
    return IssuedCredential(credential=credential, generated_password=generated)


def validate(username: str, password: str) -> AuthenticatedPrincipal:
    """
    Check a username/password pair.

    The most recently issued credential for username is the one checked.
    Password first, then expiry, so an expired credential is only reported
    as expired to someone who knows its password.

    Raises:
        InvalidCredentials: unknown username or wrong password
        CredentialExpired: correct password, now >= expires_at
    """
    credential = db.session.query(ThirdPartyCredential).filter_by(
        username=username,
    ).order_by(ThirdPartyCredential.issued_at.desc(), ThirdPartyCredential.id.desc()).first()

    if credential is None or not verify_password(password, credential.password_hash):
        raise InvalidCredentials("Invalid username or password")

    now = utcnow()
    if credential.is_expired(now):
        raise CredentialExpired(f"Credential '{username}' expired at {credential.expires_at.isoformat()}")

    credential.last_login_at = now
    db.session.commit()

    return AuthenticatedPrincipal(
        credential_id=credential.id,
        username=credential.username,
        department=credential.department,
        expires_at=credential.expires_at,
    )


def login(
    username: str,
    password: str,
    *,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> tuple[AuthenticatedPrincipal, str]:
    """
    Validate and mint a bearer token. Returns (principal, plaintext_token).

    Failures are logged as THIRD_PARTY_LOGIN_FAILED and re-raised.
    """
    try:
        principal = validate(username, password)
    except CredentialError as exc:
        log_security_event(
            user_id=None,
            event_type="THIRD_PARTY_LOGIN_FAILED",
            success=False,
            resource="/api/third-party/login",
            action=username,
            reason=str(exc),
            ip_address=ip_address,
            user_agent=user_agent,
        )
        raise

    token = secrets.token_hex(32)
    db.session.add(ThirdPartyToken(
        credential_id=principal.credential_id,
        token_hash=_hash_token(token),
        created_at=utcnow(),
        is_revoked=False,
    ))
    db.session.commit()
    return principal, token


def authenticate_token(token: str) -> AuthenticatedPrincipal:
    """
    Resolve a bearer token to its principal.

    Raises:
        InvalidCredentials: unknown or revoked token
        CredentialExpired: the credential behind the token has expired
    """
    grant = db.session.query(ThirdPartyToken).filter_by(
        token_hash=_hash_token(token),
        is_revoked=False,
    ).first()
    if grant is None:
        raise InvalidCredentials("Invalid or revoked token")

    credential = grant.credential
    if credential.is_expired(utcnow()):
        raise CredentialExpired(f"Credential '{credential.username}' has expired")

    return AuthenticatedPrincipal(
        credential_id=credential.id,
        username=credential.username,
        department=credential.department,
        expires_at=credential.expires_at,
    )


def revoke(credential_id: int) -> bool:
    """
    Delete a credential and its tokens.

    Returns True if the credential existed.
    """
    credential = db.session.get(ThirdPartyCredential, credential_id)
    if credential is None:
        return False

    username = credential.username
    # Free the username for reissue if this credential holds it
    db.session.execute(
        update(ThirdPartyUsernameClaim)
        .where(ThirdPartyUsernameClaim.credential_id == credential_id)
        .values(credential_id=None, expires_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    db.session.delete(credential)
    db.session.commit()
    current_app.logger.info("Revoked third-party credential %s (%s)", credential_id, username)
    return True


def list_credentials() -> list[dict]:
    """Every credential, newest first, with its derived status."""
    now = utcnow()
    credentials = db.session.query(ThirdPartyCredential).order_by(
        ThirdPartyCredential.issued_at.desc(), ThirdPartyCredential.id.desc()
    ).all()
    return [credential.to_dict(now=now) for credential in credentials]


def sweep_expired_grants() -> int:
    """
    Revoke live tokens whose credential has expired (run every GRANT_SWEEP_INTERVAL).

    Each token is revoked by a conditional UPDATE, so the
    THIRD_PARTY_GRANT_EXPIRED event is written once per token even if two
    sweeps overlap. Returns the number of tokens this sweep revoked.
    """
    now = utcnow()
    stale = (
        db.session.query(ThirdPartyToken.id, ThirdPartyCredential.id, ThirdPartyCredential.username)
        .join(ThirdPartyCredential, ThirdPartyToken.credential_id == ThirdPartyCredential.id)
        .filter(
            ThirdPartyToken.is_revoked.is_(False),
            ThirdPartyCredential.expires_at <= now,
        )
        .order_by(ThirdPartyToken.id)
        .all()
    )

    revoked = 0
    for token_id, credential_id, username in stale:
        result = db.session.execute(
            update(ThirdPartyToken)
            .where(ThirdPartyToken.id == token_id, ThirdPartyToken.is_revoked.is_(False))
            .values(is_revoked=True, revoked_at=now, revoked_reason="Credential expired")
            .execution_options(synchronize_session=False)
        )
        db.session.commit()
        if result.rowcount != 1:
            continue

        revoked += 1
        log_security_event(
            user_id=None,
            event_type="THIRD_PARTY_GRANT_EXPIRED",
            success=True,
            resource=f"third_party_credential:{credential_id}",
            action=username,
            reason="Credential expired",
        )

    if revoked:
        current_app.logger.info("Grant sweep revoked %d expired third-party token(s)", revoked)
    return revoked
