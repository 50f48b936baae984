from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class StatusChange(db.Model):
    """
    Append-only change log of accepted status transitions.

    One row per successful compare-and-swap, written in the same database
    transaction as the status update. The audit feed is a projection over
    this table; nothing else reads it for decisions.

    IMMUTABLE: Never update or delete. id is the insertion order and breaks
    ties between events sharing an occurred_at.
    """
    __tablename__ = "status_changes"
    __table_args__ = (
        db.Index("ix_status_changes_entity", "entity_type", "entity_id"),
        db.Index("ix_status_changes_occurred", "occurred_at", "id"),
        db.Index("ix_status_changes_to_status", "to_status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    entity_type = db.Column(db.String(16), nullable=False)
    entity_id = db.Column(db.Integer, nullable=False)

    action = db.Column(db.String(32), nullable=False)
    from_status = db.Column(db.String(16), nullable=False)
    to_status = db.Column(db.String(16), nullable=False)

    actor = db.Column(db.String(128), nullable=False)
    reason = db.Column(db.Text, nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False)

    def to_dict(self) -> dict:
        return {
            "sequence": self.id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "action": self.action,
            "from_status": self.from_status,
            "to_status": self.to_status,
            "actor": self.actor,
            "reason": self.reason,
            "occurred_at": to_utc_z(self.occurred_at),
        }
