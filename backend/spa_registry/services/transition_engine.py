# Overview: Pure decision logic for spa and therapist status transitions; no database access.

"""
Spa / Therapist Transition Engine

================================================================================
PURPOSE: Decide whether an action is legal from a status, and what it produces
================================================================================

The engine never reads or writes storage. Given the current status, the
requested action and a context (reason text, payment fact, actor), it either
returns a TransitionDecision or raises a TransitionError. The caller
(lifecycle_service) applies the decision through status_store.compare_and_swap,
which writes the status and the audit row in one transaction.

SPA TABLE:
    pending                         --approve-->            verified if paid, else unverified
    pending                         --reject(reason)-->     rejected
    approved|verified|unverified    --blacklist(reason)-->  blacklisted
    approved|verified|unverified    --verify-by-payment-->  verified if paid, else unverified
    blacklisted                     --remove-blacklist-->   verified if paid, else unverified

THERAPIST TABLE:
    pending     --approve-->            approved
    pending     --reject(reason)-->     rejected
    approved    --resign-->             resigned
    approved    --terminate(reason)-->  terminated
    terminated  --remove-termination--> resigned (clears termination_reason)

RULES:
1. Anything not in the table is InvalidTransition; state is never touched.
2. reject / blacklist / terminate need a non-blank reason (MissingReason).
3. verify-by-payment is idempotent: when the target equals the current status
   the decision is "unchanged" and carries no audit request.
4. Approving a spa folds in its payment fact: a fee paid while the spa was
   pending verifies it on approval. approved remains a legal status (blacklist
   and verify-by-payment accept it) but no spa action produces it.
================================================================================
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable

from ..statuses import (
    APPROVED_FAMILY,
    Action,
    EntityType,
    PaymentState,
    SpaStatus,
    TherapistStatus,
    coerce_status,
)


class TransitionError(ValueError):
    """Base class for rejected lifecycle actions. Always surfaced to the caller."""


class InvalidTransition(TransitionError):
    """The action is not legal from the current status."""

    def __init__(self, entity_type: EntityType, current_status, action, message: str | None = None):
        self.entity_type = EntityType(entity_type)
        self.current_status = current_status
        self.action = action
        status_value = getattr(current_status, "value", current_status)
        action_value = getattr(action, "value", action)
        super().__init__(message or (
            f"Cannot {action_value} {self.entity_type.value}: "
            f"action is not allowed from status '{status_value}'"
        ))


class MissingReason(TransitionError):
    """The action requires a non-empty reason."""

    def __init__(self, action: Action):
        self.action = action
        super().__init__(f"A reason is required to {action.value}")


@dataclass(frozen=True)
class TransitionContext:
    reason: str | None = None
    payment_state: PaymentState | None = None
    actor: str = "system"


@dataclass(frozen=True)
class AuditRequest:
    """Side-effect request: append this event together with the status write."""
    entity_type: EntityType
    action: Action
    from_status: Enum
    to_status: Enum
    actor: str
    reason: str | None = None


@dataclass(frozen=True)
class TransitionDecision:
    entity_type: EntityType
    action: Action
    from_status: Enum
    to_status: Enum
    # Field name -> new value (None clears the field)
    updates: dict = field(default_factory=dict)
    audit: AuditRequest | None = None

    @property
    def changed(self) -> bool:
        return self.from_status != self.to_status


REASON_REQUIRED = frozenset({Action.REJECT, Action.BLACKLIST, Action.TERMINATE})


def _clean_reason(action: Action, reason: str | None) -> str | None:
    if action not in REASON_REQUIRED:
        return reason
    if reason is None or not str(reason).strip():
        raise MissingReason(action)
    # Recorded verbatim
    return reason


def _payment_target(context: TransitionContext) -> SpaStatus:
    return SpaStatus.VERIFIED if context.payment_state == PaymentState.PAID else SpaStatus.UNVERIFIED


# (from_status, action) -> function(context) -> (to_status, updates)
Rule = Callable[[TransitionContext], tuple]

_SPA_RULES: dict[tuple[SpaStatus, Action], Rule] = {
    (SpaStatus.PENDING, Action.APPROVE): lambda ctx: (_payment_target(ctx), {}),
    (SpaStatus.PENDING, Action.REJECT): lambda ctx: (SpaStatus.REJECTED, {"rejection_reason": ctx.reason}),
    (SpaStatus.BLACKLISTED, Action.REMOVE_BLACKLIST): lambda ctx: (_payment_target(ctx), {"blacklist_reason": None}),
}
for _status in APPROVED_FAMILY:
    _SPA_RULES[(_status, Action.BLACKLIST)] = lambda ctx: (SpaStatus.BLACKLISTED, {"blacklist_reason": ctx.reason})
    _SPA_RULES[(_status, Action.VERIFY_BY_PAYMENT)] = lambda ctx: (_payment_target(ctx), {})

_THERAPIST_RULES: dict[tuple[TherapistStatus, Action], Rule] = {
    (TherapistStatus.PENDING, Action.APPROVE): lambda ctx: (TherapistStatus.APPROVED, {}),
    (TherapistStatus.PENDING, Action.REJECT): lambda ctx: (TherapistStatus.REJECTED, {"rejection_reason": ctx.reason}),
    (TherapistStatus.APPROVED, Action.RESIGN): lambda ctx: (TherapistStatus.RESIGNED, {}),
    (TherapistStatus.APPROVED, Action.TERMINATE): lambda ctx: (TherapistStatus.TERMINATED, {"termination_reason": ctx.reason}),
    (TherapistStatus.TERMINATED, Action.REMOVE_TERMINATION): lambda ctx: (TherapistStatus.RESIGNED, {"termination_reason": None}),
}

TRANSITION_TABLES = {
    EntityType.SPA: _SPA_RULES,
    EntityType.THERAPIST: _THERAPIST_RULES,
}


def _coerce_action(action) -> Action | None:
    if isinstance(action, Action):
        return action
    try:
        return Action(action)
    except ValueError:
        return None


def allowed_actions(entity_type: EntityType, current_status) -> list[Action]:
    """Actions the table accepts from current_status (reason checks aside)."""
    entity_type = EntityType(entity_type)
    status = coerce_status(entity_type, current_status)
    table = TRANSITION_TABLES[entity_type]
    return [action for action in Action if (status, action) in table]


def is_terminal(entity_type: EntityType, current_status) -> bool:
    """
    Terminal statuses accept no forward transitions. Administrative reversals
    (remove-termination, remove-blacklist) are the only way out.
    """
    reversals = {Action.REMOVE_TERMINATION, Action.REMOVE_BLACKLIST}
    return all(action in reversals for action in allowed_actions(entity_type, current_status))


def attempt_transition(
    entity_type: EntityType,
    current_status,
    action,
    context: TransitionContext | None = None,
) -> TransitionDecision:
    """
    Decide the outcome of applying action to an entity in current_status.

    Raises:
        InvalidTransition: action unknown or not allowed from current_status
        MissingReason: reject/blacklist/terminate without a non-blank reason
    """
    context = context or TransitionContext()
    entity_type = EntityType(entity_type)
    status = coerce_status(entity_type, current_status)

    resolved = _coerce_action(action)
    rule = TRANSITION_TABLES[entity_type].get((status, resolved)) if resolved else None
    if rule is None:
        raise InvalidTransition(entity_type, status, resolved or action)

    if resolved == Action.VERIFY_BY_PAYMENT and context.payment_state is None:
        raise InvalidTransition(entity_type, status, resolved)

    reason = _clean_reason(resolved, context.reason)
    to_status, updates = rule(TransitionContext(
        reason=reason,
        payment_state=context.payment_state,
        actor=context.actor,
    ))

    if to_status == status:
        # Payment fact already reflected; nothing to write, nothing to audit
        return TransitionDecision(
            entity_type=entity_type,
            action=resolved,
            from_status=status,
            to_status=to_status,
        )

    audit = AuditRequest(
        entity_type=entity_type,
        action=resolved,
        from_status=status,
        to_status=to_status,
        actor=context.actor,
        reason=reason if resolved in REASON_REQUIRED else None,
    )
    return TransitionDecision(
        entity_type=entity_type,
        action=resolved,
        from_status=status,
        to_status=to_status,
        updates=dict(updates),
        audit=audit,
    )
