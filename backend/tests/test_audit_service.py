"""Audit feed ordering, filtering, restartability and the status summary."""

import pytest

from spa_registry.services import audit_service, lifecycle_service
from spa_registry.services.status_store import EntityNotFound
from spa_registry.validation import ValidationError


def test_feed_is_newest_first(spa, therapist, clock):
    lifecycle_service.transition("spa", spa.id, "approve", actor="user:officer")
    clock.advance(minutes=1)
    lifecycle_service.transition("therapist", therapist.id, "approve", actor="user:officer")

    events = audit_service.query().to_list()

    assert [(e["entity_type"], e["to_status"]) for e in events] == [
        ("therapist", "approved"),
        ("spa", "unverified"),
    ]


def test_same_timestamp_ties_broken_by_insertion(spa, other_spa):
    lifecycle_service.transition("spa", spa.id, "approve", actor="user:officer")
    lifecycle_service.transition("spa", other_spa.id, "approve", actor="user:officer")

    events = list(audit_service.query())

    assert events[0]["occurred_at"] == events[1]["occurred_at"]
    assert [e["entity_id"] for e in events] == [other_spa.id, spa.id]
    assert events[0]["sequence"] > events[1]["sequence"]


def test_feed_is_restartable_and_reflects_new_events(spa, therapist):
    feed = audit_service.query()
    assert list(feed) == []

    lifecycle_service.transition("spa", spa.id, "approve", actor="user:officer")
    assert len(list(feed)) == 1

    lifecycle_service.transition("therapist", therapist.id, "approve", actor="user:officer")
    first_pass = list(feed)
    second_pass = list(feed)
    assert len(first_pass) == 2
    assert first_pass == second_pass


def test_filters(spa, therapist):
    lifecycle_service.transition("spa", spa.id, "approve", actor="user:officer")
    lifecycle_service.transition("therapist", therapist.id, "reject", actor="user:officer", reason="no certification")

    spa_events = audit_service.query(entity_type="spa").to_list()
    assert [e["entity_type"] for e in spa_events] == ["spa"]

    rejected = audit_service.query(status="rejected").to_list()
    assert len(rejected) == 1
    assert rejected[0]["reason"] == "no certification"

    assert audit_service.query(entity_type="spa", status="rejected").to_list() == []


def test_status_filter_must_belong_to_type(app):
    with pytest.raises(ValidationError):
        audit_service.query(entity_type="spa", status="resigned")
    with pytest.raises(ValidationError):
        audit_service.query(status="sleeping")
    with pytest.raises(ValidationError):
        audit_service.query(entity_type="hotel")


def test_limit_is_capped(app):
    assert audit_service.query(limit=10_000).limit == app.config["AUDIT_MAX_LIMIT"]
    assert audit_service.query().limit == app.config["AUDIT_DEFAULT_LIMIT"]


def test_limit_applies(spa, other_spa):
    lifecycle_service.transition("spa", spa.id, "approve", actor="user:officer")
    lifecycle_service.transition("spa", other_spa.id, "approve", actor="user:officer")
    assert len(audit_service.query(limit=1).to_list()) == 1


def test_summary_recomputed_on_every_call(spa, other_spa, therapist):
    summary = audit_service.status_summary()
    assert summary["spa"]["pending"] == 2
    assert summary["therapist"]["pending"] == 1

    lifecycle_service.transition("spa", spa.id, "approve", actor="user:officer")
    lifecycle_service.apply_payment_signal(spa.id, "paid")

    summary = audit_service.status_summary()
    assert summary["spa"]["pending"] == 1
    assert summary["spa"]["verified"] == 1
    assert summary["spa"]["approved"] == 0


def test_entity_history(spa, other_spa):
    lifecycle_service.transition("spa", spa.id, "approve", actor="user:officer")
    lifecycle_service.apply_payment_signal(spa.id, "paid")
    lifecycle_service.transition("spa", other_spa.id, "approve", actor="user:officer")

    history = audit_service.entity_history("spa", spa.id)

    assert [e["action"] for e in history] == ["verify-by-payment", "approve"]
    with pytest.raises(EntityNotFound):
        audit_service.entity_history("spa", 999)
