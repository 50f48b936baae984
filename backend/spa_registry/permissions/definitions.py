# Overview: All permission definitions organized by category.
# Each permission is defined as: (code, name, description, category)

from .categories import PermissionCategory


# -- REGISTRY --

REGISTRY_PERMISSIONS = [
    (
        "VIEW_SPAS",
        "View Spas",
        "View registered spas and their status",
        PermissionCategory.REGISTRY,
    ),
    (
        "REGISTER_SPAS",
        "Register Spas",
        "Register a new spa (starts pending)",
        PermissionCategory.REGISTRY,
    ),
    (
        "VIEW_THERAPISTS",
        "View Therapists",
        "View therapists and their status",
        PermissionCategory.REGISTRY,
    ),
    (
        "REGISTER_THERAPISTS",
        "Register Therapists",
        "Register a therapist under a spa (starts pending)",
        PermissionCategory.REGISTRY,
    ),
]

# -- REVIEW --

REVIEW_PERMISSIONS = [
    (
        "REVIEW_SPAS",
        "Review Spas",
        "Approve or reject pending spas",
        PermissionCategory.REVIEW,
    ),
    (
        "BLACKLIST_SPAS",
        "Blacklist Spas",
        "Blacklist a spa or lift a blacklist",
        PermissionCategory.REVIEW,
    ),
    (
        "REVIEW_THERAPISTS",
        "Review Therapists",
        "Approve or reject pending therapists; correct terminations",
        PermissionCategory.REVIEW,
    ),
]

# -- STAFF --

STAFF_PERMISSIONS = [
    (
        "MANAGE_STAFF",
        "Manage Staff",
        "Record therapist resignations and terminations",
        PermissionCategory.STAFF,
    ),
]

# -- PAYMENTS --

PAYMENT_PERMISSIONS = [
    (
        "RECORD_PAYMENTS",
        "Record Payments",
        "Record annual fee payment state for a spa",
        PermissionCategory.PAYMENTS,
    ),
]

# -- THIRD PARTY --

THIRD_PARTY_PERMISSIONS = [
    (
        "MANAGE_THIRD_PARTY",
        "Manage Third-Party Accounts",
        "Issue, list and revoke temporary government officer accounts",
        PermissionCategory.THIRD_PARTY,
    ),
]

# -- AUDIT --

AUDIT_PERMISSIONS = [
    (
        "VIEW_AUDIT",
        "View Audit Trail",
        "View the status change history of spas and therapists",
        PermissionCategory.AUDIT,
    ),
]

# -- SYSTEM --

SYSTEM_PERMISSIONS = [
    (
        "VIEW_SECURITY_EVENTS",
        "View Security Events",
        "View denials, failed logins and session or grant expiries",
        PermissionCategory.SYSTEM,
    ),
]


PERMISSION_DEFINITIONS = (
    REGISTRY_PERMISSIONS
    + REVIEW_PERMISSIONS
    + STAFF_PERMISSIONS
    + PAYMENT_PERMISSIONS
    + THIRD_PARTY_PERMISSIONS
    + AUDIT_PERMISSIONS
    + SYSTEM_PERMISSIONS
)
