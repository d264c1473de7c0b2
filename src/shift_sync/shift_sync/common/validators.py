from __future__ import annotations

import re
from datetime import datetime
from typing import Optional

from ..core.constants import MAX_NOTES_LENGTH
from ..core.exceptions import ValidationError

_HEX_COLOR = re.compile(r"^#([A-Fa-f0-9]{6}|[A-Fa-f0-9]{3})$")


def require_non_empty(value: Optional[str], field_name: str) -> str:
    if not value or not str(value).strip():
        raise ValidationError(f"{field_name} is required", field=field_name)
    return str(value).strip()


def require_max_length(value: Optional[str], field_name: str, max_len: int = MAX_NOTES_LENGTH) -> Optional[str]:
    if value is not None and len(value) > max_len:
        raise ValidationError(f"{field_name} cannot exceed {max_len} characters", field=field_name)
    return value


def require_not_future(value: datetime, now: datetime, field_name: str) -> datetime:
    if value > now:
        raise ValidationError(f"{field_name} cannot be in the future", field=field_name)
    return value


def require_in_range(value: float, field_name: str, *, low: float, high: float) -> float:
    if value is None:
        raise ValidationError(f"{field_name} is required", field=field_name)
    if value < low:
        raise ValidationError(f"{field_name} cannot be less than {low}", field=field_name)
    if value > high:
        raise ValidationError(f"{field_name} cannot exceed {high}", field=field_name)
    return value


def is_hex_color(value: str) -> bool:
    return bool(_HEX_COLOR.match(value or ""))
