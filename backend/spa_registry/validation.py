from __future__ import annotations

from typing import Any


class ValidationError(ValueError):
    """400-level input problem."""


class ConflictError(ValueError):
    """409-level business rule conflict (lost race, duplicate active username)."""


def require_json_object(data: Any) -> dict:
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def require_text(data: dict, key: str, *, max_length: int | None = None) -> str:
    """Required non-blank string field. Surrounding whitespace is stripped."""
    value = data.get(key)
    if value is None:
        raise ValidationError(f"{key} is required")
    if not isinstance(value, str):
        raise ValidationError(f"{key} must be a string")
    stripped = value.strip()
    if not stripped:
        raise ValidationError(f"{key} is required")
    if max_length is not None and len(stripped) > max_length:
        raise ValidationError(f"{key} must be at most {max_length} characters")
    return stripped


def optional_text(data: dict, key: str, *, max_length: int | None = None) -> str | None:
    """
    Optional string field, returned verbatim (reasons are recorded exactly as
    typed). Blank values are passed through so the caller can decide whether
    blank is acceptable.
    """
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{key} must be a string")
    if max_length is not None and len(value) > max_length:
        raise ValidationError(f"{key} must be at most {max_length} characters")
    return value


def parse_int(value: Any, key: str, *, minimum: int | None = None, maximum: int | None = None) -> int:
    """Strict integer parsing: rejects bools, floats, decimals and scientific notation."""
    if isinstance(value, bool):
        raise ValidationError(f"{key} must be an integer")
    if isinstance(value, int):
        parsed = value
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped or "e" in stripped.lower() or "." in stripped:
            raise ValidationError(f"{key} must be an integer")
        try:
            parsed = int(stripped)
        except ValueError:
            raise ValidationError(f"{key} must be an integer")
    else:
        raise ValidationError(f"{key} must be an integer")

    if minimum is not None and parsed < minimum:
        raise ValidationError(f"{key} must be at least {minimum}")
    if maximum is not None and parsed > maximum:
        raise ValidationError(f"{key} must be at most {maximum}")
    return parsed


def parse_enum(enum_cls, value: Any, key: str):
    """Member of enum_cls for value, or ValidationError listing the accepted values."""
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(member.value for member in enum_cls)
        raise ValidationError(f"Invalid {key} '{value}'. Must be one of: {allowed}")
