from __future__ import annotations

from typing import Any

from .errors import ValidationError


def to_flag(value: Any, field: str, default: bool | None = None) -> bool:
    """
    Strict boolean for request options.

    JSON true/false only; the string "false" or the number 0 are refused
    rather than read by truthiness. ``None`` falls back to ``default`` when
    one is given.
    """
    if value is None and default is not None:
        return default
    if isinstance(value, bool):
        return value
    raise ValidationError(
        f"{field} must be true or false",
        details={"field": field, "value": repr(value)},
    )
