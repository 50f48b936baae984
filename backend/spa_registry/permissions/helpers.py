# Overview: Lookups over the permission catalogue.

from .definitions import PERMISSION_DEFINITIONS


def get_all_permission_codes() -> list[str]:
    return [perm[0] for perm in PERMISSION_DEFINITIONS]


def validate_permission_code(code) -> bool:
    """True if code names a defined permission. Guards against typos in route decorators."""
    return code in get_all_permission_codes()
