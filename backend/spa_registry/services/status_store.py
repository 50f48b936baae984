# Overview: Service-layer operations for entity status storage; the only writer of status fields.

"""
Entity Status Store

WHY: Two operators can act on the same spa at the same moment. Every status
write is a compare-and-swap keyed on the status the decision was made from:

    UPDATE spas SET ... WHERE id = :id AND status = :expected

If another writer got there first the UPDATE matches no row, the transaction
is rolled back and compare_and_swap returns False. The change-log row
(StatusChange) is inserted in the same transaction as the UPDATE, so a status
change without its audit row (or the reverse) is never visible.

Records handed out by read() are frozen snapshots; nothing mutates them in
place. Callers build the next record with dataclasses.replace().
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import ClassVar, Union

from sqlalchemy import func, update

from ..extensions import db
from ..models import Spa, Therapist, StatusChange
from ..statuses import EntityType, PaymentState, SpaStatus, TherapistStatus, coerce_status, status_enum_for
from ..time_utils import to_utc_z, utcnow
from .transition_engine import AuditRequest


class EntityNotFound(LookupError):
    """Raised when a spa or therapist id does not exist."""

    def __init__(self, entity_type: EntityType, entity_id: int):
        self.entity_type = EntityType(entity_type)
        self.entity_id = entity_id
        super().__init__(f"{self.entity_type.value.capitalize()} {entity_id} not found")


@dataclass(frozen=True)
class SpaRecord:
    entity_type: ClassVar[EntityType] = EntityType.SPA
    # Columns copied back on compare-and-swap
    mutable_fields: ClassVar[tuple[str, ...]] = (
        "status", "payment_state", "rejection_reason", "blacklist_reason", "next_payment_date",
    )

    id: int
    name: str
    owner_contact: str
    status: SpaStatus
    payment_state: PaymentState
    rejection_reason: str | None
    blacklist_reason: str | None
    next_payment_date: date | None
    status_changed_at: datetime
    created_at: datetime

    @classmethod
    def from_row(cls, row: Spa) -> "SpaRecord":
        return cls(
            id=row.id,
            name=row.name,
            owner_contact=row.owner_contact,
            status=SpaStatus(row.status),
            payment_state=PaymentState(row.payment_state),
            rejection_reason=row.rejection_reason,
            blacklist_reason=row.blacklist_reason,
            next_payment_date=row.next_payment_date,
            status_changed_at=row.status_changed_at,
            created_at=row.created_at,
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "entity_type": self.entity_type.value,
            "name": self.name,
            "owner_contact": self.owner_contact,
            "status": self.status.value,
            "payment_state": self.payment_state.value,
            "rejection_reason": self.rejection_reason,
            "blacklist_reason": self.blacklist_reason,
            "next_payment_date": self.next_payment_date.isoformat() if self.next_payment_date else None,
            "status_changed_at": to_utc_z(self.status_changed_at),
            "created_at": to_utc_z(self.created_at),
        }


@dataclass(frozen=True)
class TherapistRecord:
    entity_type: ClassVar[EntityType] = EntityType.THERAPIST
    mutable_fields: ClassVar[tuple[str, ...]] = ("status", "rejection_reason", "termination_reason")

    id: int
    spa_id: int
    name: str
    nic: str
    status: TherapistStatus
    rejection_reason: str | None
    termination_reason: str | None
    status_changed_at: datetime
    created_at: datetime

    @classmethod
    def from_row(cls, row: Therapist) -> "TherapistRecord":
        return cls(
            id=row.id,
            spa_id=row.spa_id,
            name=row.name,
            nic=row.nic,
            status=TherapistStatus(row.status),
            rejection_reason=row.rejection_reason,
            termination_reason=row.termination_reason,
            status_changed_at=row.status_changed_at,
            created_at=row.created_at,
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "entity_type": self.entity_type.value,
            "spa_id": self.spa_id,
            "name": self.name,
            "nic": self.nic,
            "status": self.status.value,
            "rejection_reason": self.rejection_reason,
            "termination_reason": self.termination_reason,
            "status_changed_at": to_utc_z(self.status_changed_at),
            "created_at": to_utc_z(self.created_at),
        }


Record = Union[SpaRecord, TherapistRecord]

_MODELS = {
    EntityType.SPA: (Spa, SpaRecord),
    EntityType.THERAPIST: (Therapist, TherapistRecord),
}


def _model_for(entity_type: EntityType):
    return _MODELS[EntityType(entity_type)]


def _column_value(value):
    return value.value if isinstance(value, (SpaStatus, TherapistStatus, PaymentState)) else value


def read(entity_type: EntityType, entity_id: int) -> Record:
    """
    Fresh snapshot of one entity, straight from the database.

    Raises:
        EntityNotFound: unknown id
    """
    model, record_cls = _model_for(entity_type)
    # populate_existing: never answer from a stale identity map entry
    row = db.session.get(model, entity_id, populate_existing=True)
    if row is None:
        raise EntityNotFound(entity_type, entity_id)
    return record_cls.from_row(row)


def compare_and_swap(
    entity_type: EntityType,
    entity_id: int,
    expected_status,
    new_record: Record,
    event: AuditRequest | None = None,
) -> bool:
    """
    Write new_record's mutable fields iff the stored status still equals expected_status.

    The StatusChange row for event (if any) is inserted in the same
    transaction. Returns False (and writes nothing) when the status moved.
    """
    entity_type = EntityType(entity_type)
    model, record_cls = _model_for(entity_type)
    if not isinstance(new_record, record_cls) or new_record.id != entity_id:
        raise ValueError("new_record does not describe the entity being swapped")

    expected = coerce_status(entity_type, expected_status)
    new_status = coerce_status(entity_type, new_record.status)
    now = utcnow()

    values = {name: _column_value(getattr(new_record, name)) for name in record_cls.mutable_fields}
    if new_status != expected:
        values["status_changed_at"] = now

    try:
        result = db.session.execute(
            update(model)
            .where(model.id == entity_id, model.status == expected.value)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            db.session.rollback()
            return False

        if event is not None:
            db.session.add(StatusChange(
                entity_type=entity_type.value,
                entity_id=entity_id,
                action=event.action.value,
                from_status=_column_value(event.from_status),
                to_status=_column_value(event.to_status),
                actor=event.actor,
                reason=event.reason,
                occurred_at=now,
            ))

        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return True


def create_spa(*, name: str, owner_contact: str) -> SpaRecord:
    now = utcnow()
    row = Spa(
        name=name,
        owner_contact=owner_contact,
        status=SpaStatus.PENDING.value,
        payment_state=PaymentState.UNPAID.value,
        status_changed_at=now,
        created_at=now,
    )
    db.session.add(row)
    db.session.commit()
    return SpaRecord.from_row(row)


def create_therapist(*, spa_id: int, name: str, nic: str) -> TherapistRecord:
    now = utcnow()
    row = Therapist(
        spa_id=spa_id,
        name=name,
        nic=nic,
        status=TherapistStatus.PENDING.value,
        status_changed_at=now,
        created_at=now,
    )
    db.session.add(row)
    db.session.commit()
    return TherapistRecord.from_row(row)


def list_records(
    entity_type: EntityType,
    *,
    status=None,
    spa_id: int | None = None,
    limit: int = 200,
) -> list[Record]:
    entity_type = EntityType(entity_type)
    model, record_cls = _model_for(entity_type)
    q = db.session.query(model)
    if status is not None:
        q = q.filter(model.status == coerce_status(entity_type, status).value)
    if spa_id is not None and entity_type == EntityType.THERAPIST:
        q = q.filter(model.spa_id == spa_id)
    q = q.order_by(model.created_at.desc(), model.id.desc()).limit(limit)
    return [record_cls.from_row(row) for row in q.all()]


def count_by_status(entity_type: EntityType) -> dict[str, int]:
    """Current number of entities per status (every status present, zeros included)."""
    entity_type = EntityType(entity_type)
    model, _ = _model_for(entity_type)
    counts = {member.value: 0 for member in status_enum_for(entity_type)}
    rows = db.session.query(model.status, func.count(model.id)).group_by(model.status).all()
    for status, count in rows:
        counts[status] = count
    return counts
