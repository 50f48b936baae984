# Overview: Closed status sets for every lifecycle-managed entity.

"""
Each entity type owns its own status enum. A spa can never hold a therapist
status (and vice versa) because the two sets are distinct types; the
transition engine and the status store only accept the enum belonging to the
entity type they are working on.

Values are the lowercase strings stored in the database and sent over the API.
"""

from __future__ import annotations

from enum import Enum


class EntityType(str, Enum):
    SPA = "spa"
    THERAPIST = "therapist"


class SpaStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    VERIFIED = "verified"
    UNVERIFIED = "unverified"
    REJECTED = "rejected"
    BLACKLISTED = "blacklisted"


# Statuses a spa can only hold after administrative approval
APPROVED_FAMILY = frozenset({SpaStatus.APPROVED, SpaStatus.VERIFIED, SpaStatus.UNVERIFIED})


class PaymentState(str, Enum):
    UNPAID = "unpaid"
    PENDING = "pending"
    PAID = "paid"
    OVERDUE = "overdue"


class TherapistStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    RESIGNED = "resigned"
    TERMINATED = "terminated"


class Action(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"
    VERIFY_BY_PAYMENT = "verify-by-payment"
    BLACKLIST = "blacklist"
    REMOVE_BLACKLIST = "remove-blacklist"
    TERMINATE = "terminate"
    RESIGN = "resign"
    REMOVE_TERMINATION = "remove-termination"


STATUS_TYPES = {
    EntityType.SPA: SpaStatus,
    EntityType.THERAPIST: TherapistStatus,
}


def status_enum_for(entity_type: EntityType) -> type[Enum]:
    return STATUS_TYPES[EntityType(entity_type)]


def coerce_status(entity_type: EntityType, value) -> Enum:
    """Convert a raw string (or enum) into the status enum of entity_type. Raises ValueError on foreign values."""
    enum_cls = status_enum_for(entity_type)
    if isinstance(value, enum_cls):
        return value
    if isinstance(value, Enum):
        raise ValueError(f"{value!r} is not a {EntityType(entity_type).value} status")
    return enum_cls(value)
