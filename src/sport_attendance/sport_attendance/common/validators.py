from __future__ import annotations

from ..core.constants import CODE_DIGITS
from ..core.exceptions import InvalidCodeError, ValidationError


def require_positive_int(value, field_name: str) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field_name} must be an integer")
    if number <= 0:
        raise ValidationError(f"{field_name} must be positive")
    return number


def require_code(value) -> str:
    code = (value or "").strip() if isinstance(value, str) else ""
    if len(code) != CODE_DIGITS or not (code.isascii() and code.isdigit()):
        raise InvalidCodeError(f"Enter the {CODE_DIGITS}-digit code")
    return code


def require_id_list(values, field_name: str) -> list[int]:
    if values is None:
        return []
    if not isinstance(values, (list, tuple, set, frozenset)):
        raise ValidationError(f"{field_name} must be a list")
    return [require_positive_int(v, field_name) for v in values]
