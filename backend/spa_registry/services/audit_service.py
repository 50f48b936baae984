# Overview: Service-layer operations for the audit trail; read-only projection over the status change log.

"""
Audit / History Projector

The feed is never stored separately: it is a view over status_changes, the
append-only log that status_store writes in the same transaction as each
status update. Nothing here writes.

ORDERING: occurred_at descending; events sharing a timestamp are ordered by
insertion (newest insert first).
"""

from __future__ import annotations

from typing import Iterator

from flask import current_app

from ..extensions import db
from ..models import StatusChange
from ..statuses import EntityType, coerce_status
from ..validation import ValidationError
from . import status_store


class AuditFeed:
    """
    Lazy, finite, restartable view of status change events.

    Building a feed runs no query. Every iteration issues a fresh query, so
    iterating twice reflects events written in between.
    """

    def __init__(self, entity_type: EntityType | None = None, status=None, limit: int = 50,
                 entity_id: int | None = None):
        self.entity_type = EntityType(entity_type) if entity_type is not None else None
        self.status = status
        self.limit = limit
        self.entity_id = entity_id

    def _query(self):
        q = db.session.query(StatusChange)
        if self.entity_type is not None:
            q = q.filter(StatusChange.entity_type == self.entity_type.value)
        if self.entity_id is not None:
            q = q.filter(StatusChange.entity_id == self.entity_id)
        if self.status is not None:
            q = q.filter(StatusChange.to_status == self.status)
        return q.order_by(StatusChange.occurred_at.desc(), StatusChange.id.desc()).limit(self.limit)

    def __iter__(self) -> Iterator[dict]:
        for row in self._query().all():
            yield row.to_dict()

    def to_list(self) -> list[dict]:
        return list(self)


def _status_filter(entity_type: EntityType | None, status) -> str | None:
    if status is None:
        return None
    types = [entity_type] if entity_type is not None else list(EntityType)
    for candidate in types:
        try:
            return coerce_status(candidate, status).value
        except ValueError:
            continue
    raise ValidationError(f"Invalid status filter '{status}'")


def query(entity_type=None, status=None, limit: int | None = None) -> AuditFeed:
    """
    Build an audit feed, optionally filtered by entity type and resulting status.

    limit defaults to AUDIT_DEFAULT_LIMIT and is capped at AUDIT_MAX_LIMIT.
    """
    if entity_type is not None:
        try:
            entity_type = EntityType(entity_type)
        except ValueError:
            raise ValidationError(f"Invalid entity type '{entity_type}'")

    max_limit = current_app.config["AUDIT_MAX_LIMIT"]
    if limit is None:
        limit = current_app.config["AUDIT_DEFAULT_LIMIT"]
    limit = max(1, min(limit, max_limit))

    return AuditFeed(entity_type=entity_type, status=_status_filter(entity_type, status), limit=limit)


def entity_history(entity_type, entity_id: int) -> list[dict]:
    """Full trail of one entity, newest first. Raises EntityNotFound for an unknown id."""
    entity_type = EntityType(entity_type)
    status_store.read(entity_type, entity_id)
    feed = AuditFeed(entity_type=entity_type, entity_id=entity_id, limit=current_app.config["AUDIT_MAX_LIMIT"])
    return feed.to_list()


def status_summary() -> dict:
    """Current count of spas and therapists per status, recomputed on every call."""
    return {entity_type.value: status_store.count_by_status(entity_type) for entity_type in EntityType}
