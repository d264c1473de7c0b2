from __future__ import annotations

from typing import Optional, Protocol, Sequence

from .model import TimeCategory


class TimeCategoryRepository(Protocol):
    def get_by_id(self, category_id: str) -> Optional[TimeCategory]:
        raise NotImplementedError

    def get_by_name(self, name: str) -> Optional[TimeCategory]:
        """Case-insensitive lookup."""
        raise NotImplementedError

    def list_all(self, *, active_only: bool = False) -> Sequence[TimeCategory]:
        raise NotImplementedError

    def save(self, category: TimeCategory) -> None:
        """Insert or replace the category row."""

        raise NotImplementedError
