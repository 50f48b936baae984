from __future__ import annotations

from ..extensions import db
from ..statuses import SpaStatus, TherapistStatus, PaymentState


def _in_clause(column: str, enum_cls) -> str:
    values = ", ".join(f"'{member.value}'" for member in enum_cls)
    return f"{column} IN ({values})"


class Spa(db.Model):
    """
    Registered spa (business entity) and its trust status.

    LIFECYCLE:
        pending -> approved -> verified / unverified (payment driven)
        pending -> rejected
        approved | verified | unverified -> blacklisted -> (admin reversal)

    status is written only by status_store.compare_and_swap (conditional
    UPDATE). Do not assign spa.status directly.
    """
    __tablename__ = "spas"
    __table_args__ = (
        db.CheckConstraint(_in_clause("status", SpaStatus), name="ck_spas_status"),
        db.CheckConstraint(_in_clause("payment_state", PaymentState), name="ck_spas_payment_state"),
        db.Index("ix_spas_status", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    owner_contact = db.Column(db.String(255), nullable=False)

    status = db.Column(db.String(16), nullable=False, default=SpaStatus.PENDING.value)
    payment_state = db.Column(db.String(16), nullable=False, default=PaymentState.UNPAID.value)

    rejection_reason = db.Column(db.Text, nullable=True)
    blacklist_reason = db.Column(db.Text, nullable=True)

    # Annual fee due date; the overdue sweep compares against it
    next_payment_date = db.Column(db.Date, nullable=True)

    status_changed_at = db.Column(db.DateTime(timezone=True), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False)


class Therapist(db.Model):
    """
    Therapist (worker) registered under a spa and vetted independently.

    spa_id is a lookup reference only: the spa does not own the therapist,
    nothing cascades from spa changes, and a blacklisted spa's therapists keep
    their own status.
    """
    __tablename__ = "therapists"
    __table_args__ = (
        db.CheckConstraint(_in_clause("status", TherapistStatus), name="ck_therapists_status"),
        db.Index("ix_therapists_spa_status", "spa_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    spa_id = db.Column(db.Integer, db.ForeignKey("spas.id"), nullable=False, index=True)

    name = db.Column(db.String(200), nullable=False)
    nic = db.Column(db.String(20), nullable=False, index=True)

    status = db.Column(db.String(16), nullable=False, default=TherapistStatus.PENDING.value)

    rejection_reason = db.Column(db.Text, nullable=True)
    termination_reason = db.Column(db.Text, nullable=True)

    status_changed_at = db.Column(db.DateTime(timezone=True), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False)

    spa = db.relationship("Spa", viewonly=True)
