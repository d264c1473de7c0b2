from __future__ import annotations

from dataclasses import asdict, dataclass, replace
from datetime import datetime
from typing import Optional

from ..common.datetime_utils import parse_iso_datetime, to_iso
from ..core.constants import DEFAULT_CATEGORY_COLOR


@dataclass(frozen=True)
class TimeCategory:
    """A named [min_hours, max_hours] band mapped to a pay multiplier.

    `max_hours` is inclusive; None means unbounded.
    """

    id: str
    name: str
    min_hours: float
    max_hours: Optional[float] = None
    pay_multiplier: float = 1.0
    color: str = DEFAULT_CATEGORY_COLOR
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def with_changes(self, **changes) -> "TimeCategory":
        return replace(self, **changes)

    def to_payload(self) -> dict:
        data = asdict(self)
        data["created_at"] = to_iso(self.created_at)
        data["updated_at"] = to_iso(self.updated_at)
        return data

    @classmethod
    def from_payload(cls, data: dict) -> "TimeCategory":
        max_hours = data.get("max_hours")
        return cls(
            id=str(data["id"]),
            name=str(data["name"]),
            min_hours=float(data["min_hours"]),
            max_hours=float(max_hours) if max_hours is not None else None,
            pay_multiplier=float(data.get("pay_multiplier", 1.0)),
            color=str(data.get("color") or DEFAULT_CATEGORY_COLOR),
            is_active=bool(data.get("is_active", True)),
            created_at=parse_iso_datetime(data.get("created_at")),
            updated_at=parse_iso_datetime(data.get("updated_at")),
        )


@dataclass(frozen=True)
class NewTimeCategory:
    """Input for creating a category."""

    name: str
    min_hours: float
    max_hours: Optional[float] = None
    pay_multiplier: float = 1.0
    color: str = DEFAULT_CATEGORY_COLOR


@dataclass(frozen=True)
class CategoryOverlap:
    category1: TimeCategory
    category2: TimeCategory
    reason: str


@dataclass(frozen=True)
class PayPreview:
    hours: float
    base_rate: float
    assigned_category: Optional[TimeCategory]
    calculated_pay: float
