# Overview: Permission category constants for grouping related permissions.


class PermissionCategory:
    """Permission categories for organization and UI display."""
    REGISTRY = "REGISTRY"
    REVIEW = "REVIEW"
    STAFF = "STAFF"
    PAYMENTS = "PAYMENTS"
    THIRD_PARTY = "THIRD_PARTY"
    AUDIT = "AUDIT"
    SYSTEM = "SYSTEM"
