"""Pure pay-category logic: assignment, overlap detection and pay calculation.

Ranges are compared on closed intervals for assignment (a worker with exactly
`max_hours` still belongs to the band) but two bands that merely touch
(`a.max_hours == b.min_hours`) are not reported as overlapping. When a value sits on
such a boundary the band with the higher `min_hours` wins.
"""

from __future__ import annotations

import math
from typing import Iterable, List, Optional, Sequence

from ..common.validators import is_hex_color, require_in_range, require_non_empty
from ..core.constants import CATEGORY_NAME_MAX_LENGTH, CATEGORY_NAME_MIN_LENGTH, MAX_CATEGORY_HOURS, MAX_PAY_MULTIPLIER
from ..core.exceptions import TimeCategoryConflictError, ValidationError
from .model import CategoryOverlap, NewTimeCategory, TimeCategory

OVERLAP_REASON = "Overlapping hour ranges"


def _upper(max_hours: Optional[float]) -> float:
    return math.inf if max_hours is None else float(max_hours)


def has_overlap(a, b) -> bool:
    """True when the two hour ranges share more than a single boundary point."""
    return float(a.min_hours) < _upper(b.max_hours) and float(b.min_hours) < _upper(a.max_hours)


def assign_category(hours: float, categories: Iterable[TimeCategory]) -> Optional[TimeCategory]:
    active = sorted((c for c in categories if c.is_active), key=lambda c: c.min_hours, reverse=True)
    for category in active:
        if hours >= category.min_hours and (category.max_hours is None or hours <= category.max_hours):
            return category
    return None


def detect_conflicts(categories: Sequence[TimeCategory]) -> List[CategoryOverlap]:
    active = [c for c in categories if c.is_active]
    conflicts: List[CategoryOverlap] = []
    for i, first in enumerate(active):
        for second in active[i + 1:]:
            if has_overlap(first, second):
                conflicts.append(CategoryOverlap(category1=first, category2=second, reason=OVERLAP_REASON))
    return conflicts


def validate_no_conflicts(
    candidate: TimeCategory | NewTimeCategory,
    existing: Iterable[TimeCategory],
    exclude_id: Optional[str] = None,
) -> None:
    for other in existing:
        if not other.is_active or other.id == exclude_id:
            continue
        if has_overlap(candidate, other):
            raise TimeCategoryConflictError(
                f'Category conflicts with existing category "{other.name}". Hour ranges overlap.'
            )


def validate_category(category: TimeCategory) -> None:
    """Shape and range checks shared by local admin writes and replicated writes."""
    name = require_non_empty(category.name, "name")
    if not CATEGORY_NAME_MIN_LENGTH <= len(name) <= CATEGORY_NAME_MAX_LENGTH:
        raise ValidationError(
            f"Category name must be {CATEGORY_NAME_MIN_LENGTH}-{CATEGORY_NAME_MAX_LENGTH} characters", field="name"
        )
    require_in_range(category.min_hours, "min_hours", low=0, high=MAX_CATEGORY_HOURS)
    if category.max_hours is not None:
        require_in_range(category.max_hours, "max_hours", low=0, high=MAX_CATEGORY_HOURS)
        if category.max_hours <= category.min_hours:
            raise ValidationError("Maximum hours must be greater than minimum hours", field="max_hours")
    if category.pay_multiplier is None or category.pay_multiplier <= 0:
        raise ValidationError("Pay multiplier must be greater than 0", field="pay_multiplier")
    if category.pay_multiplier > MAX_PAY_MULTIPLIER:
        raise ValidationError(f"Pay multiplier cannot exceed {MAX_PAY_MULTIPLIER}", field="pay_multiplier")
    if not is_hex_color(category.color):
        raise ValidationError("Invalid color format. Use hex format like #FF0000", field="color")


def calculate_pay(hours: float, base_rate: float, categories: Iterable[TimeCategory]) -> float:
    category = assign_category(hours, categories)
    multiplier = category.pay_multiplier if category else 1.0
    return round(hours * base_rate * multiplier, 2)


def suggested_categories() -> List[NewTimeCategory]:
    """Common work patterns offered when an admin sets up bands for the first time."""
    return [
        NewTimeCategory(name="Quarter Day", min_hours=2, max_hours=3.99, pay_multiplier=1.0, color="#28a745"),
        NewTimeCategory(name="Half Day", min_hours=4, max_hours=7.99, pay_multiplier=1.0, color="#17a2b8"),
        NewTimeCategory(name="Full Day", min_hours=8, max_hours=9.99, pay_multiplier=1.0, color="#007bff"),
        NewTimeCategory(name="Overtime", min_hours=10, max_hours=11.99, pay_multiplier=1.5, color="#fd7e14"),
        NewTimeCategory(name="Double Time", min_hours=12, max_hours=None, pay_multiplier=2.0, color="#dc3545"),
    ]


def coverage_gaps(categories: Sequence[TimeCategory], *, tolerance: float = 0.01) -> List[str]:
    """Describe holes between consecutive active bands (e.g. 3.99 -> 4 is not a hole)."""
    active = sorted((c for c in categories if c.is_active), key=lambda c: c.min_hours)
    gaps: List[str] = []
    for current, following in zip(active, active[1:]):
        if current.max_hours is None:
            continue
        if round(following.min_hours - current.max_hours, 2) > tolerance:
            gaps.append(
                f'Gap in coverage between "{current.name}" (max: {current.max_hours}h) '
                f'and "{following.name}" (min: {following.min_hours}h)'
            )
    return gaps


def configuration_errors(categories: Sequence[TimeCategory]) -> List[str]:
    errors = [
        f'Conflict between "{c.category1.name}" and "{c.category2.name}": {c.reason}'
        for c in detect_conflicts(categories)
    ]
    errors.extend(coverage_gaps(categories))
    return errors
