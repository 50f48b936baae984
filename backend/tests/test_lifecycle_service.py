"""Operator transitions, payment signals and the overdue sweep."""

from datetime import date, timedelta

import pytest

from spa_registry.extensions import db
from spa_registry.models import Spa, StatusChange
from spa_registry.services import lifecycle_service, status_store
from spa_registry.services.lifecycle_service import StatusConflict
from spa_registry.services.transition_engine import InvalidTransition, MissingReason
from spa_registry.statuses import Action, EntityType, PaymentState, SpaStatus, TherapistStatus
from spa_registry.validation import ValidationError


def _events(entity_type=None, action=None):
    q = db.session.query(StatusChange)
    if entity_type is not None:
        q = q.filter(StatusChange.entity_type == entity_type)
    if action is not None:
        q = q.filter(StatusChange.action == action)
    return q.order_by(StatusChange.id).all()


def _approve_spa(spa):
    return lifecycle_service.transition("spa", spa.id, "approve", actor="user:officer")


def test_approve_unpaid_spa_is_unverified(spa):
    record = _approve_spa(spa)

    assert record.status == SpaStatus.UNVERIFIED
    assert record.payment_state == PaymentState.UNPAID
    events = _events()
    assert len(events) == 1
    assert events[0].action == "approve"
    assert events[0].actor == "user:officer"
    assert (events[0].from_status, events[0].to_status) == ("pending", "unverified")


def test_approve_paid_spa_is_verified(spa):
    lifecycle_service.apply_payment_signal(spa.id, "paid")

    record = _approve_spa(spa)

    assert record.status == SpaStatus.VERIFIED
    assert record.payment_state == PaymentState.PAID
    events = _events()
    assert len(events) == 1
    assert (events[0].action, events[0].to_status) == ("approve", "verified")

    # Already reflects the payment: a repeat signal writes nothing
    lifecycle_service.apply_payment_signal(spa.id, "paid")
    assert len(_events()) == 1


def test_reject_spa_records_reason(spa):
    record = lifecycle_service.transition("spa", spa.id, "reject", actor="user:officer", reason="  Missing licence  ")

    assert record.status == SpaStatus.REJECTED
    assert record.rejection_reason == "  Missing licence  "
    assert _events()[0].reason == "  Missing licence  "


def test_same_paid_signal_twice_audits_once(spa):
    _approve_spa(spa)

    first = lifecycle_service.apply_payment_signal(spa.id, "paid")
    second = lifecycle_service.apply_payment_signal(spa.id, PaymentState.PAID)

    assert first.status == SpaStatus.VERIFIED
    assert second.status == SpaStatus.VERIFIED
    assert second == first
    assert len(_events(action=Action.VERIFY_BY_PAYMENT.value)) == 1


def test_paid_signal_verifies_spa_resting_in_approved(spa):
    # Rows carried over from before approval folded in the payment fact
    db.session.query(Spa).filter_by(id=spa.id).update({"status": SpaStatus.APPROVED.value})
    db.session.commit()

    lifecycle_service.apply_payment_signal(spa.id, "paid")
    record = lifecycle_service.apply_payment_signal(spa.id, "paid")

    assert record.status == SpaStatus.VERIFIED
    events = _events(action=Action.VERIFY_BY_PAYMENT.value)
    assert [(e.from_status, e.to_status) for e in events] == [("approved", "verified")]


def test_paid_signal_sets_next_payment_date(spa, clock):
    _approve_spa(spa)
    record = lifecycle_service.apply_payment_signal(spa.id, "paid")
    assert record.next_payment_date == date(2027, 3, 2)


def test_early_renewal_extends_from_previous_due_date(spa, clock):
    _approve_spa(spa)
    lifecycle_service.apply_payment_signal(spa.id, "paid")
    clock.advance(days=300)
    lifecycle_service.apply_payment_signal(spa.id, "pending")
    record = lifecycle_service.apply_payment_signal(spa.id, "paid")
    assert record.next_payment_date == date(2028, 3, 2)


def test_next_due_date_handles_leap_day():
    assert lifecycle_service.next_due_date(None, date(2028, 2, 29)) == date(2029, 2, 28)


@pytest.mark.parametrize("payment_state", ["unpaid", "pending", "overdue"])
def test_non_paid_signal_leaves_spa_unverified(spa, payment_state):
    _approve_spa(spa)
    lifecycle_service.apply_payment_signal(spa.id, "paid")

    record = lifecycle_service.apply_payment_signal(spa.id, payment_state)

    assert record.status == SpaStatus.UNVERIFIED
    assert record.payment_state == PaymentState(payment_state)


def test_payment_on_pending_spa_only_records_fact(spa):
    record = lifecycle_service.apply_payment_signal(spa.id, "paid")

    assert record.status == SpaStatus.PENDING
    assert record.payment_state == PaymentState.PAID
    assert _events() == []

    # Approval picks up the fee paid while pending
    assert _approve_spa(spa).status == SpaStatus.VERIFIED


def test_blacklist_wins_over_payment(spa):
    _approve_spa(spa)
    lifecycle_service.transition("spa", spa.id, "blacklist", actor="user:admin", reason="Unlicensed premises")

    record = lifecycle_service.apply_payment_signal(spa.id, "paid")

    assert record.status == SpaStatus.BLACKLISTED
    assert record.payment_state == PaymentState.PAID
    assert record.blacklist_reason == "Unlicensed premises"


def test_remove_blacklist_restores_by_payment_state(spa):
    _approve_spa(spa)
    lifecycle_service.apply_payment_signal(spa.id, "paid")
    lifecycle_service.transition("spa", spa.id, "blacklist", actor="user:admin", reason="Complaint")

    record = lifecycle_service.transition("spa", spa.id, "remove-blacklist", actor="user:admin")

    assert record.status == SpaStatus.VERIFIED
    assert record.blacklist_reason is None


def test_blacklist_without_reason_leaves_state_untouched(spa):
    _approve_spa(spa)

    with pytest.raises(MissingReason):
        lifecycle_service.transition("spa", spa.id, "blacklist", actor="user:admin", reason="   ")

    assert status_store.read(EntityType.SPA, spa.id).status == SpaStatus.UNVERIFIED
    assert len(_events()) == 1


def test_invalid_transition_leaves_state_untouched(spa):
    lifecycle_service.transition("spa", spa.id, "reject", actor="user:officer", reason="Duplicate")

    with pytest.raises(InvalidTransition):
        lifecycle_service.transition("spa", spa.id, "approve", actor="user:officer")

    assert status_store.read(EntityType.SPA, spa.id).status == SpaStatus.REJECTED


def test_operators_cannot_verify_by_payment(spa):
    _approve_spa(spa)
    with pytest.raises(InvalidTransition):
        lifecycle_service.transition("spa", spa.id, "verify-by-payment", actor="user:admin")


def test_expected_status_mismatch_is_conflict(spa):
    _approve_spa(spa)

    with pytest.raises(StatusConflict) as exc_info:
        lifecycle_service.transition(
            "spa", spa.id, "reject", actor="user:officer", reason="late", expected_status="pending",
        )

    assert exc_info.value.expected == SpaStatus.PENDING
    assert exc_info.value.actual == SpaStatus.UNVERIFIED


def test_invalid_expected_status_is_validation_error(spa):
    with pytest.raises(ValidationError):
        lifecycle_service.transition("spa", spa.id, "approve", actor="user:officer", expected_status="terminated")


def test_concurrent_approvals_exactly_one_wins(spa, monkeypatch):
    # Both operators load the spa while it is pending
    stale = status_store.read(EntityType.SPA, spa.id)

    winner = lifecycle_service.transition("spa", spa.id, "approve", actor="user:first")
    assert winner.status == SpaStatus.UNVERIFIED

    real_read = status_store.read
    calls = []

    def read_stale_first(entity_type, entity_id):
        calls.append(entity_id)
        return stale if len(calls) == 1 else real_read(entity_type, entity_id)

    monkeypatch.setattr(status_store, "read", read_stale_first)

    with pytest.raises(StatusConflict) as exc_info:
        lifecycle_service.transition("spa", spa.id, "approve", actor="user:second")

    assert exc_info.value.actual == SpaStatus.UNVERIFIED
    approvals = _events(action="approve")
    assert len(approvals) == 1
    assert approvals[0].actor == "user:first"


def test_unknown_entity_type(spa):
    with pytest.raises(ValidationError):
        lifecycle_service.transition("hotel", spa.id, "approve", actor="user:officer")


def test_reject_therapist_needs_reason(therapist):
    with pytest.raises(MissingReason):
        lifecycle_service.transition("therapist", therapist.id, "reject", actor="user:officer", reason="")

    record = lifecycle_service.transition(
        "therapist", therapist.id, "reject", actor="user:officer", reason="no certification",
    )

    assert record.status == TherapistStatus.REJECTED
    assert record.rejection_reason == "no certification"
    assert _events("therapist")[0].reason == "no certification"


def test_remove_termination_once(therapist):
    lifecycle_service.transition("therapist", therapist.id, "approve", actor="user:officer")
    lifecycle_service.transition("therapist", therapist.id, "terminate", actor="user:spaadmin", reason="Misconduct")

    record = lifecycle_service.transition("therapist", therapist.id, "remove-termination", actor="user:officer")

    assert record.status == TherapistStatus.RESIGNED
    assert record.termination_reason is None
    with pytest.raises(InvalidTransition):
        lifecycle_service.transition("therapist", therapist.id, "remove-termination", actor="user:officer")


def test_therapist_unaffected_by_spa_blacklist(spa, therapist):
    lifecycle_service.transition("therapist", therapist.id, "approve", actor="user:officer")
    _approve_spa(spa)
    lifecycle_service.transition("spa", spa.id, "blacklist", actor="user:admin", reason="Fraud")

    assert status_store.read(EntityType.THERAPIST, therapist.id).status == TherapistStatus.APPROVED


def test_required_permission_mapping():
    assert lifecycle_service.required_permission("spa", "approve") == "REVIEW_SPAS"
    assert lifecycle_service.required_permission("spa", "remove-blacklist") == "BLACKLIST_SPAS"
    assert lifecycle_service.required_permission("therapist", "terminate") == "MANAGE_STAFF"
    assert lifecycle_service.required_permission("therapist", "remove-termination") == "REVIEW_THERAPISTS"
    assert lifecycle_service.required_permission("spa", "verify-by-payment") is None
    assert lifecycle_service.required_permission("spa", "terminate") is None
    assert lifecycle_service.required_permission("spa", "explode") is None


def test_overdue_check_respects_grace_period(spa, clock):
    _approve_spa(spa)
    lifecycle_service.apply_payment_signal(spa.id, "paid")  # due 2027-03-02

    clock.set(clock.now().replace(year=2027, month=3, day=7))
    assert lifecycle_service.check_overdue_payments() == []
    assert status_store.read(EntityType.SPA, spa.id).status == SpaStatus.VERIFIED

    clock.advance(days=1)
    assert lifecycle_service.check_overdue_payments() == [spa.id]

    record = status_store.read(EntityType.SPA, spa.id)
    assert record.status == SpaStatus.UNVERIFIED
    assert record.payment_state == PaymentState.OVERDUE
    event = _events(action=Action.VERIFY_BY_PAYMENT.value)[-1]
    assert event.actor == lifecycle_service.OVERDUE_CHECK_ACTOR

    # Already overdue: nothing more to do
    assert lifecycle_service.check_overdue_payments() == []


def test_overdue_check_ignores_blacklisted(spa, clock):
    _approve_spa(spa)
    lifecycle_service.apply_payment_signal(spa.id, "paid")
    lifecycle_service.transition("spa", spa.id, "blacklist", actor="user:admin", reason="Fraud")

    clock.advance(timedelta(days=400))

    assert lifecycle_service.check_overdue_payments() == []
    assert status_store.read(EntityType.SPA, spa.id).payment_state == PaymentState.PAID
