from __future__ import annotations

from typing import Optional, Sequence

from ..database.store import TransactionalStore
from .model import TimeCategory
from .repository import TimeCategoryRepository

_COLUMNS = "id, name, min_hours, max_hours, pay_multiplier, color, is_active, created_at, updated_at"


class MySQLTimeCategoryRepository(TimeCategoryRepository):
    def __init__(self, store: TransactionalStore):
        self._store = store

    @staticmethod
    def _to_model(r: dict) -> TimeCategory:
        return TimeCategory(
            id=str(r["id"]),
            name=r["name"],
            min_hours=float(r["min_hours"]),
            max_hours=float(r["max_hours"]) if r.get("max_hours") is not None else None,
            pay_multiplier=float(r["pay_multiplier"]),
            color=r["color"],
            is_active=bool(r["is_active"]),
            created_at=r.get("created_at"),
            updated_at=r.get("updated_at"),
        )

    def get_by_id(self, category_id: str) -> Optional[TimeCategory]:
        r = self._store.get(f"SELECT {_COLUMNS} FROM time_categories WHERE id=%s", (category_id,))
        return self._to_model(r) if r else None

    def get_by_name(self, name: str) -> Optional[TimeCategory]:
        r = self._store.get(f"SELECT {_COLUMNS} FROM time_categories WHERE LOWER(name)=LOWER(%s)", (name.strip(),))
        return self._to_model(r) if r else None

    def list_all(self, *, active_only: bool = False) -> Sequence[TimeCategory]:
        where = "WHERE is_active=1" if active_only else ""
        rows = self._store.all(f"SELECT {_COLUMNS} FROM time_categories {where} ORDER BY min_hours ASC")
        return [self._to_model(r) for r in rows]

    def save(self, category: TimeCategory) -> None:
        self._store.run(
            """
            INSERT INTO time_categories(id, name, min_hours, max_hours, pay_multiplier, color, is_active, created_at, updated_at)
            VALUES(%s,%s,%s,%s,%s,%s,%s,%s,%s)
            ON DUPLICATE KEY UPDATE
                name=VALUES(name), min_hours=VALUES(min_hours), max_hours=VALUES(max_hours),
                pay_multiplier=VALUES(pay_multiplier), color=VALUES(color), is_active=VALUES(is_active),
                updated_at=VALUES(updated_at)
            """,
            (
                category.id,
                category.name,
                category.min_hours,
                category.max_hours,
                category.pay_multiplier,
                category.color,
                1 if category.is_active else 0,
                category.created_at,
                category.updated_at,
            ),
        )
