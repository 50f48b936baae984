# Overview: Permission system package.

from .categories import PermissionCategory
from .definitions import (
    PERMISSION_DEFINITIONS,
    REGISTRY_PERMISSIONS,
    REVIEW_PERMISSIONS,
    STAFF_PERMISSIONS,
    PAYMENT_PERMISSIONS,
    THIRD_PARTY_PERMISSIONS,
    AUDIT_PERMISSIONS,
    SYSTEM_PERMISSIONS,
)
from .roles import DEFAULT_ROLES, DEFAULT_ROLE_PERMISSIONS
from .helpers import (
    get_all_permission_codes,
    validate_permission_code,
)

__all__ = [
    "PermissionCategory",
    "PERMISSION_DEFINITIONS",
    "REGISTRY_PERMISSIONS",
    "REVIEW_PERMISSIONS",
    "STAFF_PERMISSIONS",
    "PAYMENT_PERMISSIONS",
    "THIRD_PARTY_PERMISSIONS",
    "AUDIT_PERMISSIONS",
    "SYSTEM_PERMISSIONS",
    "DEFAULT_ROLES",
    "DEFAULT_ROLE_PERMISSIONS",
    "get_all_permission_codes",
    "validate_permission_code",
]
