# Overview: Role-based permission checks and the security event log.

"""
Permission Checking and Security Event Logging

RULES:
- Fail closed: a user holds exactly the union of their roles' permissions.
- Only denials are logged; granted checks leave no trace.
- Spa scoping (User.spa_id) is layered on top by the routes.

security_events is append-only. Event types written by this package:

    LOGIN_FAILED               bad username/password on /api/auth/login
    PERMISSION_DENIED          require_permission refused a user
    SPA_SCOPE_DENIED           spa administrator reached for another spa
    SESSION_EXPIRED            idle timeout (once per session)
    THIRD_PARTY_LOGIN_FAILED   bad or expired third-party credential
    THIRD_PARTY_GRANT_EXPIRED  grant sweep revoked a token (once per token)
"""

from ..extensions import db
from ..models import UserRole, Role, RolePermission, Permission, SecurityEvent
from ..permissions import PERMISSION_DEFINITIONS, DEFAULT_ROLE_PERMISSIONS, validate_permission_code
from ..time_utils import utcnow


class PermissionDeniedError(Exception):
    """Raised when user lacks required permission."""
    pass


def log_security_event(
    user_id: int | None,
    event_type: str,
    success: bool,
    resource: str | None = None,
    action: str | None = None,
    reason: str | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> SecurityEvent:
    """Append one row to security_events and commit it."""
    event = SecurityEvent(
        user_id=user_id,
        event_type=event_type,
        resource=resource,
        action=action,
        success=success,
        reason=reason,
        ip_address=ip_address,
        user_agent=user_agent,
        occurred_at=utcnow(),
    )
    db.session.add(event)
    db.session.commit()
    return event


def recent_security_events(event_type: str | None = None, limit: int = 100) -> list[dict]:
    """Newest security events first, optionally of a single type."""
    q = db.session.query(SecurityEvent)
    if event_type:
        q = q.filter(SecurityEvent.event_type == event_type)
    rows = q.order_by(SecurityEvent.occurred_at.desc(), SecurityEvent.id.desc()).limit(limit).all()
    return [row.to_dict() for row in rows]


def get_user_permissions(user_id: int) -> set[str]:
    """Permission codes granted to user_id through any of its roles."""
    rows = (
        db.session.query(Permission.code)
        .join(RolePermission, RolePermission.permission_id == Permission.id)
        .join(UserRole, UserRole.role_id == RolePermission.role_id)
        .filter(UserRole.user_id == user_id)
        .distinct()
        .all()
    )
    return {code for (code,) in rows}


def require_permission(
    user_id: int,
    permission_code: str,
    resource: str | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> None:
    """
    Raise PermissionDeniedError unless user_id holds permission_code.

    Raises ValueError for a code that is not in the permission catalogue, so a
    misspelt decorator argument fails loudly instead of denying everyone.
    """
    if not validate_permission_code(permission_code):
        raise ValueError(f"Unknown permission code: {permission_code}")

    if permission_code in get_user_permissions(user_id):
        return

    log_security_event(
        user_id=user_id,
        event_type="PERMISSION_DENIED",
        success=False,
        resource=resource,
        action=permission_code,
        reason=f"Missing permission: {permission_code}",
        ip_address=ip_address,
        user_agent=user_agent,
    )
    raise PermissionDeniedError(f"Permission denied: {permission_code}")


def get_user_role_names(user_id: int) -> list[str]:
    rows = (
        db.session.query(Role.name)
        .join(UserRole, UserRole.role_id == Role.id)
        .filter(UserRole.user_id == user_id)
        .order_by(Role.name)
        .all()
    )
    return [name for (name,) in rows]


def initialize_permissions() -> int:
    """Insert any catalogue permission missing from the table. Returns how many were added."""
    existing = {code for (code,) in db.session.query(Permission.code).all()}
    added = 0
    for code, name, description, category in PERMISSION_DEFINITIONS:
        if code in existing:
            continue
        db.session.add(Permission(code=code, name=name, description=description, category=category))
        added += 1
    db.session.commit()
    return added


def assign_default_role_permissions() -> int:
    """
    Grant every role its DEFAULT_ROLE_PERMISSIONS. Idempotent.

    Roles or permissions that have not been created yet are skipped.
    Returns the number of grants added.
    """
    roles = {role.name: role.id for role in db.session.query(Role).all()}
    permissions = {perm.code: perm.id for perm in db.session.query(Permission).all()}
    granted = {(r, p) for r, p in db.session.query(RolePermission.role_id, RolePermission.permission_id).all()}

    added = 0
    for role_name, codes in DEFAULT_ROLE_PERMISSIONS.items():
        role_id = roles.get(role_name)
        if role_id is None:
            continue
        for code in codes:
            permission_id = permissions.get(code)
            if permission_id is None or (role_id, permission_id) in granted:
                continue
            db.session.add(RolePermission(role_id=role_id, permission_id=permission_id))
            granted.add((role_id, permission_id))
            added += 1

    db.session.commit()
    return added
