# Overview: Service-layer operations for spa and therapist registration and lookup.

"""
Registry Service

New spas and therapists always enter the lifecycle as pending; every later
status change goes through lifecycle_service. A therapist's spa_id is a
lookup reference only: the spa's own lifecycle never cascades to its staff.
"""

from __future__ import annotations

from sqlalchemy import or_

from ..extensions import db
from ..models import Therapist
from ..statuses import EntityType
from . import status_store
from .status_store import SpaRecord, TherapistRecord


NAME_MAX_LENGTH = 200
NIC_MAX_LENGTH = 20
SEARCH_LIMIT = 50


def register_spa(name: str, owner_contact: str) -> SpaRecord:
    return status_store.create_spa(name=name, owner_contact=owner_contact)


def register_therapist(spa_id: int, name: str, nic: str) -> TherapistRecord:
    """Raises EntityNotFound if the spa does not exist."""
    status_store.read(EntityType.SPA, spa_id)
    return status_store.create_therapist(spa_id=spa_id, name=name, nic=nic)


def get_spa(spa_id: int) -> SpaRecord:
    return status_store.read(EntityType.SPA, spa_id)


def get_therapist(therapist_id: int) -> TherapistRecord:
    return status_store.read(EntityType.THERAPIST, therapist_id)


def list_spas(*, status=None, limit: int = 200) -> list[SpaRecord]:
    return status_store.list_records(EntityType.SPA, status=status, limit=limit)


def list_therapists(*, status=None, spa_id: int | None = None, limit: int = 200) -> list[TherapistRecord]:
    return status_store.list_records(EntityType.THERAPIST, status=status, spa_id=spa_id, limit=limit)


def search_therapists(term: str) -> list[dict]:
    """
    Read-only therapist lookup for third-party officers.

    Exact NIC match or case-insensitive name fragment. Returns only what an
    officer needs to confirm a therapist's standing.
    """
    term = (term or "").strip()
    if not term:
        return []

    # % and _ in the term are literal characters
    escaped = term.lower().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    pattern = f"%{escaped}%"
    rows = db.session.query(Therapist).filter(
        or_(Therapist.nic == term, db.func.lower(Therapist.name).like(pattern, escape="\\"))
    ).order_by(Therapist.name, Therapist.id).limit(SEARCH_LIMIT).all()

    results = []
    for row in rows:
        record = TherapistRecord.from_row(row)
        results.append({
            "id": record.id,
            "name": record.name,
            "nic": record.nic,
            "status": record.status.value,
            "spa_id": record.spa_id,
            "spa_name": row.spa.name if row.spa else None,
        })
    return results
