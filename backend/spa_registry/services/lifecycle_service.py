# Overview: Service-layer operations for lifecycle; read, decide, compare-and-swap.

"""
Spa / Therapist Lifecycle Service

================================================================================
PURPOSE: Apply operator actions and payment signals to entity status
================================================================================

Every mutation follows the same three steps:

    1. read      status_store.read()              fresh snapshot
    2. decide    transition_engine.attempt_transition()   pure, may raise
    3. swap      status_store.compare_and_swap()  keyed on the status from step 1

A failed swap means someone else changed the entity between 1 and 3. That is
surfaced as StatusConflict and never retried. Callers re-fetch and decide
again.

PAYMENT SIGNALS:
- The payment fact is always recorded on the spa.
- Only approved-family spas (approved / verified / unverified) move status.
  A blacklisted, rejected or pending spa keeps its status whatever is paid.
- Re-applying the same fact writes nothing and adds no audit event.
================================================================================
"""

from __future__ import annotations

from dataclasses import replace
from datetime import date, timedelta

from flask import current_app

from ..extensions import db
from ..models import Spa
from ..statuses import (
    APPROVED_FAMILY,
    Action,
    EntityType,
    PaymentState,
    SpaStatus,
    coerce_status,
)
from ..time_utils import utcnow
from ..validation import ConflictError, ValidationError, parse_enum
from . import status_store
from .status_store import Record, SpaRecord
from .transition_engine import (
    InvalidTransition,
    TransitionContext,
    attempt_transition,
)


SYSTEM_ACTOR = "system"
OVERDUE_CHECK_ACTOR = "system:payment-overdue-check"


class StatusConflict(ConflictError):
    """Lost a concurrent update: the entity's status is no longer what the caller acted on."""

    def __init__(self, entity_type: EntityType, entity_id: int, expected, actual):
        self.entity_type = EntityType(entity_type)
        self.entity_id = entity_id
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"{self.entity_type.value.capitalize()} {entity_id} changed concurrently: "
            f"expected status '{getattr(expected, 'value', expected)}', "
            f"found '{getattr(actual, 'value', actual)}'. Re-fetch before retrying."
        )


# Operator action -> permission code. verify-by-payment is absent on purpose:
# it is only reachable through apply_payment_signal.
ACTION_PERMISSIONS = {
    (EntityType.SPA, Action.APPROVE): "REVIEW_SPAS",
    (EntityType.SPA, Action.REJECT): "REVIEW_SPAS",
    (EntityType.SPA, Action.BLACKLIST): "BLACKLIST_SPAS",
    (EntityType.SPA, Action.REMOVE_BLACKLIST): "BLACKLIST_SPAS",
    (EntityType.THERAPIST, Action.APPROVE): "REVIEW_THERAPISTS",
    (EntityType.THERAPIST, Action.REJECT): "REVIEW_THERAPISTS",
    (EntityType.THERAPIST, Action.REMOVE_TERMINATION): "REVIEW_THERAPISTS",
    (EntityType.THERAPIST, Action.RESIGN): "MANAGE_STAFF",
    (EntityType.THERAPIST, Action.TERMINATE): "MANAGE_STAFF",
}


def parse_entity_type(value) -> EntityType:
    return parse_enum(EntityType, value, "entity type")


def required_permission(entity_type: EntityType, action) -> str | None:
    """Permission code gating an operator action, or None if the action is not an operator action."""
    try:
        action = Action(action)
    except ValueError:
        return None
    return ACTION_PERMISSIONS.get((EntityType(entity_type), action))


def transition(
    entity_type,
    entity_id: int,
    action,
    *,
    actor: str,
    reason: str | None = None,
    expected_status=None,
) -> Record:
    """
    Apply an operator action to a spa or therapist.

    Args:
        entity_type: "spa" or "therapist"
        entity_id: entity id
        action: Action value (approve, reject, blacklist, ...)
        actor: who is acting (recorded on the audit event)
        reason: required for reject / blacklist / terminate
        expected_status: status the operator was looking at; a mismatch is a conflict

    Returns:
        The record as stored after the transition

    Raises:
        EntityNotFound: unknown id
        ValidationError: unknown entity type or expected_status value
        InvalidTransition / MissingReason: rejected by the transition engine
        StatusConflict: the entity changed underneath the caller
    """
    entity_type = parse_entity_type(entity_type)
    current = status_store.read(entity_type, entity_id)

    if expected_status is not None:
        try:
            expected = coerce_status(entity_type, expected_status)
        except ValueError:
            raise ValidationError(f"Invalid expected_status '{expected_status}' for {entity_type.value}")
        if expected != current.status:
            raise StatusConflict(entity_type, entity_id, expected, current.status)

    if action == Action.VERIFY_BY_PAYMENT or action == Action.VERIFY_BY_PAYMENT.value:
        raise InvalidTransition(
            entity_type, current.status, Action.VERIFY_BY_PAYMENT,
            message="verify-by-payment is driven by payment signals, not by operators",
        )

    context = TransitionContext(
        reason=reason,
        payment_state=current.payment_state if isinstance(current, SpaRecord) else None,
        actor=actor,
    )
    decision = attempt_transition(entity_type, current.status, action, context)

    new_record = replace(current, status=decision.to_status, **decision.updates)
    if not status_store.compare_and_swap(entity_type, entity_id, current.status, new_record, decision.audit):
        latest = status_store.read(entity_type, entity_id)
        current_app.logger.warning(
            "Lost status race on %s %s (%s): expected %s, found %s",
            entity_type.value, entity_id, decision.action.value, current.status.value, latest.status.value,
        )
        raise StatusConflict(entity_type, entity_id, current.status, latest.status)

    return status_store.read(entity_type, entity_id)


def _add_one_year(day: date) -> date:
    try:
        return day.replace(year=day.year + 1)
    except ValueError:
        # Feb 29 -> Feb 28
        return day.replace(year=day.year + 1, day=28)


def next_due_date(previous_due: date | None, today: date) -> date:
    """A payment covers one year from the later of today and the previous due date."""
    base = previous_due if previous_due is not None and previous_due > today else today
    return _add_one_year(base)


def apply_payment_signal(spa_id: int, payment_state, *, actor: str = SYSTEM_ACTOR) -> SpaRecord:
    """
    Record a payment-state change on a spa and run verify-by-payment when applicable.

    Idempotent: applying the same payment_state twice leaves the spa as the
    first call left it and produces at most one audit event.

    Raises:
        EntityNotFound: unknown spa
        ValidationError: unknown payment_state
        StatusConflict: the spa's status changed concurrently
    """
    state = parse_enum(PaymentState, payment_state, "payment_state")
    current = status_store.read(EntityType.SPA, spa_id)

    updates = {"payment_state": state}
    if state == PaymentState.PAID and current.payment_state != PaymentState.PAID:
        updates["next_payment_date"] = next_due_date(current.next_payment_date, utcnow().date())

    audit = None
    new_status = current.status
    if current.status in APPROVED_FAMILY:
        decision = attempt_transition(
            EntityType.SPA,
            current.status,
            Action.VERIFY_BY_PAYMENT,
            TransitionContext(payment_state=state, actor=actor),
        )
        new_status = decision.to_status
        audit = decision.audit

    new_record = replace(current, status=new_status, **updates)
    if new_record == current:
        return current

    if not status_store.compare_and_swap(EntityType.SPA, spa_id, current.status, new_record, audit):
        latest = status_store.read(EntityType.SPA, spa_id)
        raise StatusConflict(EntityType.SPA, spa_id, current.status, latest.status)

    return status_store.read(EntityType.SPA, spa_id)


def check_overdue_payments(*, grace_days: int | None = None) -> list[int]:
    """
    Mark verified spas whose annual fee is more than grace_days overdue.

    The overdue fact moves them to unverified through the engine. A spa that
    changes concurrently is skipped (logged) and picked up by the next run.

    Returns ids of the spas that were marked overdue.
    """
    if grace_days is None:
        grace_days = current_app.config.get("PAYMENT_GRACE_DAYS", 5)
    cutoff = utcnow().date() - timedelta(days=grace_days)

    candidates = [
        spa_id for (spa_id,) in db.session.query(Spa.id).filter(
            Spa.status == SpaStatus.VERIFIED.value,
            Spa.next_payment_date.isnot(None),
            Spa.next_payment_date < cutoff,
        ).order_by(Spa.id).all()
    ]

    marked = []
    for spa_id in candidates:
        try:
            apply_payment_signal(spa_id, PaymentState.OVERDUE, actor=OVERDUE_CHECK_ACTOR)
        except StatusConflict as exc:
            current_app.logger.warning("Skipped overdue check for spa %s: %s", spa_id, exc)
            continue
        marked.append(spa_id)

    if marked:
        current_app.logger.info("Marked %d spa(s) overdue: %s", len(marked), marked)
    return marked
