from __future__ import annotations

import threading
import uuid
from typing import Any, List, Mapping, Optional, Sequence

import structlog

from ..auth.context import AuthContext, require_admin
from ..common.clock import Clock
from ..core.enums import SyncOperation
from ..core.exceptions import DuplicateError, NotFoundError, ValidationError
from ..sync.coordinator import SyncCoordinator
from ..sync.handlers import TIME_CATEGORY
from . import classifier
from .model import CategoryOverlap, NewTimeCategory, PayPreview, TimeCategory
from .repository import TimeCategoryRepository

logger = structlog.get_logger(__name__)

_UPDATABLE = ("name", "min_hours", "max_hours", "pay_multiplier", "color", "is_active")


def _number(value: Any, field_name: str) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"{field_name} must be a number", field=field_name) from exc


class TimeCategoryService:
    """Administration of pay categories plus the read-only classifier operations.

    Writes are admin-only and serialized so two concurrent edits cannot each pass the
    overlap check against a stale category set.
    """

    def __init__(
        self,
        categories: TimeCategoryRepository,
        *,
        clock: Clock,
        sync: Optional[SyncCoordinator] = None,
        write_lock: Optional[threading.Lock] = None,
    ):
        self._categories = categories
        self._clock = clock
        self._sync = sync
        self._write_lock = write_lock or threading.Lock()

    def list_categories(self, *, active_only: bool = False) -> Sequence[TimeCategory]:
        return self._categories.list_all(active_only=active_only)

    def get(self, category_id: str) -> TimeCategory:
        category = self._categories.get_by_id(category_id)
        if not category:
            raise NotFoundError(f"Time category {category_id} not found")
        return category

    def _require_unique_name(self, name: str, *, exclude_id: Optional[str] = None) -> None:
        other = self._categories.get_by_name(name)
        if other is not None and other.id != exclude_id:
            raise DuplicateError(f"Time category with name '{name}' already exists", field="name")

    def _publish(self, operation: SyncOperation, category: TimeCategory, base: Optional[TimeCategory] = None) -> None:
        if self._sync is None:
            return
        self._sync.publish(
            operation,
            TIME_CATEGORY,
            category.id,
            category.to_payload(),
            base_data=base.to_payload() if base else None,
        )

    def create(self, data: NewTimeCategory, *, actor: AuthContext) -> TimeCategory:
        require_admin(actor, "manage time categories")
        now = self._clock.now()
        category = TimeCategory(
            id=str(uuid.uuid4()),
            name=(data.name or "").strip(),
            min_hours=_number(data.min_hours, "min_hours"),
            max_hours=_number(data.max_hours, "max_hours"),
            pay_multiplier=_number(data.pay_multiplier, "pay_multiplier"),
            color=data.color,
            is_active=True,
            created_at=now,
            updated_at=now,
        )
        classifier.validate_category(category)

        with self._write_lock:
            self._require_unique_name(category.name)
            classifier.validate_no_conflicts(category, self._categories.list_all(active_only=True))
            self._categories.save(category)

        logger.info("time_category_created", category_id=category.id, name=category.name, actor=actor.employee_id)
        self._publish(SyncOperation.CREATE, category)
        return category

    def update(self, category_id: str, changes: Mapping[str, Any], *, actor: AuthContext) -> TimeCategory:
        require_admin(actor, "manage time categories")
        unknown = sorted(set(changes) - set(_UPDATABLE))
        if unknown:
            raise ValidationError(f"Unknown category fields: {', '.join(unknown)}", field=unknown[0])

        with self._write_lock:
            existing = self.get(category_id)
            values = {}
            for key, raw in changes.items():
                if key in ("min_hours", "max_hours", "pay_multiplier"):
                    values[key] = _number(raw, key)
                elif key == "name":
                    values[key] = (raw or "").strip()
                elif key == "is_active":
                    values[key] = bool(raw)
                else:
                    values[key] = raw
            updated = existing.with_changes(**values, updated_at=self._clock.now())
            classifier.validate_category(updated)

            if updated.name.lower() != existing.name.lower():
                self._require_unique_name(updated.name, exclude_id=category_id)
            if updated.is_active:
                classifier.validate_no_conflicts(
                    updated, self._categories.list_all(active_only=True), exclude_id=category_id
                )
            self._categories.save(updated)

        logger.info("time_category_updated", category_id=category_id, fields=sorted(values), actor=actor.employee_id)
        self._publish(SyncOperation.UPDATE, updated, base=existing)
        return updated

    def deactivate(self, category_id: str, *, actor: AuthContext) -> TimeCategory:
        """Soft delete: past records keep pointing at the category."""
        return self.update(category_id, {"is_active": False}, actor=actor)

    def suggested(self) -> List[NewTimeCategory]:
        return classifier.suggested_categories()

    def create_suggested(self, *, actor: AuthContext) -> List[TimeCategory]:
        """Create the suggested bands, skipping names that already exist."""
        created: List[TimeCategory] = []
        for suggestion in classifier.suggested_categories():
            if self._categories.get_by_name(suggestion.name):
                logger.info("suggested_category_skipped", name=suggestion.name)
                continue
            created.append(self.create(suggestion, actor=actor))
        return created

    def preview(self, hours: float, base_rate: float) -> PayPreview:
        hours = _number(hours, "hours")
        base_rate = _number(base_rate, "base_rate")
        if hours is None or base_rate is None:
            raise ValidationError("hours and base_rate are required")
        if base_rate < 0:
            raise ValidationError("base_rate cannot be negative", field="base_rate")
        active = self._categories.list_all(active_only=True)
        return PayPreview(
            hours=hours,
            base_rate=base_rate,
            assigned_category=classifier.assign_category(hours, active),
            calculated_pay=classifier.calculate_pay(hours, base_rate, active),
        )

    def calculate_pay(self, hours: float, base_rate: float) -> float:
        return self.preview(hours, base_rate).calculated_pay

    def detect_conflicts(self) -> List[CategoryOverlap]:
        return classifier.detect_conflicts(self._categories.list_all(active_only=True))

    def configuration_errors(self) -> List[str]:
        return classifier.configuration_errors(self._categories.list_all(active_only=True))
