# Overview: Service-layer operations for session; encapsulates business logic and database work.

"""
Administrative Session Management Service

WHY: An unattended admin console is an open door. Sessions end after a fixed
period of inactivity no matter how fresh the token is.

SECURITY:
- 32-byte random bearer tokens, stored as SHA-256 digests
- 10-minute idle timeout (SESSION_IDLE_TIMEOUT), not configurable
- One live session per user: a new login supersedes the previous one
- Revocable on logout; revocation is recorded, never deleted
- Client IP and user agent recorded per session

EXPIRY:
One predicate (_is_idle) is shared by the lazy path (validate_session /
touch / is_valid) and the periodic sweep (sweep_idle_sessions). Whichever
notices first revokes the row with a conditional UPDATE; the SESSION_EXPIRED
event is written only by the caller whose UPDATE matched, so it happens once.
"""

import hashlib
import secrets
from dataclasses import dataclass
from datetime import timedelta

from flask import current_app
from sqlalchemy import update

from ..extensions import db
from ..models import SessionToken, User
from ..time_utils import utcnow
from .permission_service import log_security_event


# Configuration constants
SESSION_IDLE_TIMEOUT = timedelta(minutes=10)     # Inactivity limit
SESSION_SWEEP_INTERVAL = timedelta(seconds=60)   # Background sweep period

REASON_IDLE = "Idle timeout"
REASON_LOGOUT = "User logout"
REASON_SUPERSEDED = "Superseded by new login"
REASON_DEACTIVATED = "User account deactivated"


class SessionExpired(Exception):
    """Raised when activity is reported on a session that has already gone idle."""
    pass


@dataclass
class SessionContext:
    """Session context returned by validate_session."""
    user: User
    session: SessionToken


def generate_token() -> str:
    """64 hex chars. Handed to the client once; only its hash is stored."""
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    """SHA-256 hex digest stored in session_tokens.token_hash."""
    return hashlib.sha256(token.encode('utf-8')).hexdigest()


def _is_idle(session: SessionToken, now) -> bool:
    return now - session.last_activity_at >= SESSION_IDLE_TIMEOUT


def _live_session_for(user_id: int) -> SessionToken | None:
    return db.session.query(SessionToken).filter_by(
        user_id=user_id,
        is_revoked=False,
    ).order_by(SessionToken.login_at.desc(), SessionToken.id.desc()).first()


def _revoke_once(session_id: int, reason: str, now) -> bool:
    """Conditionally revoke one session. True only for the caller that flipped it."""
    result = db.session.execute(
        update(SessionToken)
        .where(SessionToken.id == session_id, SessionToken.is_revoked.is_(False))
        .values(is_revoked=True, revoked_at=now, revoked_reason=reason)
        .execution_options(synchronize_session=False)
    )
    db.session.commit()
    return result.rowcount == 1


def _expire_once(session: SessionToken, now) -> bool:
    """
    Idle-expire a session and run the logout side effect if this call won.

    Returns True if this call performed the expiry.
    """
    user_id, session_id, last_activity = session.user_id, session.id, session.last_activity_at
    if not _revoke_once(session_id, REASON_IDLE, now):
        return False

    log_security_event(
        user_id=user_id,
        event_type="SESSION_EXPIRED",
        success=True,
        resource="session",
        action="logout",
        reason=f"No activity since {last_activity.isoformat()}",
        ip_address=session.ip_address,
        user_agent=session.user_agent,
    )
    current_app.logger.info("Session %s of user %s expired after inactivity", session_id, user_id)
    return True


def create_session(
    user_id: int,
    user_agent: str | None = None,
    ip_address: str | None = None
) -> tuple[SessionToken, str]:
    """
    Create new session token for user.

    Any live session the user already holds is revoked first.

    Returns (session, plaintext_token).

    Raises ValueError if the user does not exist or is inactive.
    """
    user = db.session.get(User, user_id)
    if not user:
        raise ValueError("User not found")
    if not user.is_active:
        raise ValueError("User account is not active")

    now = utcnow()
    revoke_all_user_sessions(user_id, reason=REASON_SUPERSEDED)

    plaintext_token = generate_token()
    session = SessionToken(
        user_id=user_id,
        token_hash=hash_token(plaintext_token),
        login_at=now,
        last_activity_at=now,
        user_agent=user_agent,
        ip_address=ip_address,
        is_revoked=False,
    )

    db.session.add(session)
    db.session.commit()

    return session, plaintext_token


def validate_session(token: str, *, touch: bool = True) -> SessionContext | None:
    """
    Validate session token and return SessionContext if valid.

    Returns None if:
    - Token is unknown or revoked
    - The session has been idle for SESSION_IDLE_TIMEOUT or longer
      (the session is expired on the spot)
    - User account is deactivated

    An accepted request is an interaction: last_activity_at is refreshed
    unless touch=False.
    """
    session = db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False,
    ).populate_existing().first()

    if not session:
        return None

    now = utcnow()
    if _is_idle(session, now):
        _expire_once(session, now)
        return None

    user = session.user
    if not user or not user.is_active:
        _revoke_once(session.id, REASON_DEACTIVATED, now)
        return None

    if touch:
        session.last_activity_at = now
        db.session.commit()

    return SessionContext(user=user, session=session)


def touch(user_id: int) -> SessionToken:
    """
    Record activity for the user's live session.

    Never resurrects an idle session: if the session has already gone idle it
    is expired here and SessionExpired is raised.
    """
    session = _live_session_for(user_id)
    if session is None:
        raise SessionExpired(f"No live session for user {user_id}")

    now = utcnow()
    if _is_idle(session, now):
        _expire_once(session, now)
        raise SessionExpired(f"Session for user {user_id} expired after inactivity")

    session.last_activity_at = now
    db.session.commit()
    return session


def is_valid(user_id: int) -> bool:
    """True if the user holds a session with activity inside the idle window. Read-only."""
    session = _live_session_for(user_id)
    return session is not None and not _is_idle(session, utcnow())


def idle_seconds_remaining(session: SessionToken) -> int:
    remaining = SESSION_IDLE_TIMEOUT - (utcnow() - session.last_activity_at)
    return max(0, int(remaining.total_seconds()))


def expire(user_id: int) -> bool:
    """
    Expire the user's live session if it is idle.

    Returns True if this call expired it; False if there was nothing to
    expire or the session is still active.
    """
    session = _live_session_for(user_id)
    if session is None:
        return False
    now = utcnow()
    if not _is_idle(session, now):
        return False
    return _expire_once(session, now)


def sweep_idle_sessions() -> int:
    """
    Expire every idle session (run every SESSION_SWEEP_INTERVAL).

    Returns the number of sessions this sweep expired.
    """
    now = utcnow()
    cutoff = now - SESSION_IDLE_TIMEOUT
    candidates = db.session.query(SessionToken).filter(
        SessionToken.is_revoked.is_(False),
        SessionToken.last_activity_at <= cutoff,
    ).order_by(SessionToken.id).all()

    expired = sum(1 for session in candidates if _expire_once(session, now))
    if expired:
        current_app.logger.info("Session sweep expired %d idle session(s)", expired)
    return expired


def revoke_session(token: str, reason: str = REASON_LOGOUT) -> bool:
    """
    Revoke session token.

    Returns True if session was revoked, False if not found.
    """
    session = db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False
    ).first()

    if not session:
        return False

    return _revoke_once(session.id, reason, utcnow())


def revoke_all_user_sessions(user_id: int, reason: str = "Revoke all sessions") -> int:
    """
    Revoke all live sessions for a user.

    Returns count of sessions revoked.
    """
    result = db.session.execute(
        update(SessionToken)
        .where(SessionToken.user_id == user_id, SessionToken.is_revoked.is_(False))
        .values(is_revoked=True, revoked_at=utcnow(), revoked_reason=reason)
        .execution_options(synchronize_session=False)
    )
    db.session.commit()
    return result.rowcount
