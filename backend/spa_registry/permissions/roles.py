# Overview: Default role -> permission sets.

from .definitions import PERMISSION_DEFINITIONS


DEFAULT_ROLES = [
    ("lsa_admin", "Association administrator; full system access"),
    ("lsa_officer", "Association officer; reviews spas and therapists"),
    ("spa_admin", "Spa administrator; manages the staff of one spa"),
]

DEFAULT_ROLE_PERMISSIONS = {
    "lsa_admin": [perm[0] for perm in PERMISSION_DEFINITIONS],
    "lsa_officer": [
        "VIEW_SPAS",
        "VIEW_THERAPISTS",
        "REVIEW_SPAS",
        "REVIEW_THERAPISTS",
        "VIEW_AUDIT",
    ],
    # Scoped to User.spa_id by the routes
    "spa_admin": [
        "VIEW_THERAPISTS",
        "REGISTER_THERAPISTS",
        "MANAGE_STAFF",
    ],
}
