# backend/spa_registry/config.py
from __future__ import annotations
import os


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/spa_registry.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///spa_registry.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # bcrypt cost factor; tests lower this to keep hashing fast
    BCRYPT_ROUNDS = _env_int("BCRYPT_ROUNDS", 12)

    # Temporary government officer accounts
    THIRD_PARTY_DEFAULT_DURATION_HOURS = _env_int("THIRD_PARTY_DEFAULT_DURATION_HOURS", 8)
    THIRD_PARTY_MAX_DURATION_HOURS = _env_int("THIRD_PARTY_MAX_DURATION_HOURS", 72)

    # Days after next_payment_date before a verified spa is marked overdue
    PAYMENT_GRACE_DAYS = _env_int("PAYMENT_GRACE_DAYS", 5)

    # Background sweeps (sessions, third-party grants, payments)
    SCHEDULER_ENABLED = _env_bool("SCHEDULER_ENABLED", False)

    AUDIT_DEFAULT_LIMIT = _env_int("AUDIT_DEFAULT_LIMIT", 50)
    AUDIT_MAX_LIMIT = _env_int("AUDIT_MAX_LIMIT", 500)
