# Overview: Administrative accounts: bcrypt passwords, users and role assignment.

"""
Authentication Service

Passwords (administrators and third-party officers alike) are bcrypt hashed
with cost BCRYPT_ROUNDS and must pass PASSWORD_RULES. Session tokens are
handled by session_service; third-party credentials by credential_service.
"""

import re

import bcrypt
from flask import current_app

from ..extensions import db
from ..models import Spa, User, Role, UserRole
from ..permissions import DEFAULT_ROLES
from ..time_utils import utcnow


SPECIAL_CHARACTERS = "!@#$%^&*(),.'\":{}|<>"
PASSWORD_MIN_LENGTH = 8

PASSWORD_RULES = [
    (re.compile(r"[A-Z]"), "an uppercase letter"),
    (re.compile(r"[a-z]"), "a lowercase letter"),
    (re.compile(r"\d"), "a digit"),
    (re.compile("[" + re.escape(SPECIAL_CHARACTERS) + "]"), f"a special character ({SPECIAL_CHARACTERS})"),
]


class PasswordValidationError(Exception):
    """Raised when password doesn't meet strength requirements."""
    pass


def validate_password_strength(password: str) -> None:
    """Raise PasswordValidationError naming the first rule password breaks."""
    if len(password) < PASSWORD_MIN_LENGTH:
        raise PasswordValidationError(f"Password must be at least {PASSWORD_MIN_LENGTH} characters long")
    for pattern, requirement in PASSWORD_RULES:
        if not pattern.search(password):
            raise PasswordValidationError(f"Password must contain at least {requirement}")


def hash_password(password: str) -> str:
    """Validate strength, then bcrypt with BCRYPT_ROUNDS (tests lower it)."""
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=current_app.config.get("BCRYPT_ROUNDS", 12))
    return bcrypt.hashpw(password.encode('utf-8'), salt).decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        # Malformed stored hash
        return False


def create_user(username: str, email: str, password: str, spa_id: int | None = None) -> User:
    """
    Create an administrative user.

    spa_id makes the user a spa-scoped staff administrator.

    Raises:
        ValueError: username or email taken, or unknown spa_id
        PasswordValidationError: weak password
    """
    taken = db.session.query(User.id).filter(
        db.or_(User.username == username, User.email == email)
    ).first()
    if taken:
        raise ValueError("Username or email already exists")
    if spa_id is not None and db.session.get(Spa, spa_id) is None:
        raise ValueError(f"Spa {spa_id} not found")

    user = User(
        username=username,
        email=email,
        password_hash=hash_password(password),
        spa_id=spa_id,
        created_at=utcnow(),
    )
    db.session.add(user)
    db.session.commit()
    return user


def authenticate(username: str, password: str) -> User | None:
    """
    Active user matching username (or email) and password, else None.

    Records last_login_at on success.
    """
    user = db.session.query(User).filter(
        db.or_(User.username == username, User.email == username),
        User.is_active.is_(True),
    ).first()
    if user is None or not verify_password(password, user.password_hash):
        return None

    user.last_login_at = utcnow()
    db.session.commit()
    return user


def assign_role(user_id: int, role_name: str) -> UserRole:
    """Give user_id the named role. Assigning a role twice is a no-op."""
    role = db.session.query(Role).filter_by(name=role_name).first()
    if role is None:
        raise ValueError(f"Role {role_name} not found")

    link = db.session.query(UserRole).filter_by(user_id=user_id, role_id=role.id).first()
    if link is None:
        link = UserRole(user_id=user_id, role_id=role.id)
        db.session.add(link)
        db.session.commit()
    return link


def create_default_roles() -> None:
    existing = {name for (name,) in db.session.query(Role.name).all()}
    for name, description in DEFAULT_ROLES:
        if name not in existing:
            db.session.add(Role(name=name, description=description))
    db.session.commit()
