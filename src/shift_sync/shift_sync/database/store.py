from __future__ import annotations

import threading
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional, Protocol, Sequence

from .connection import DatabaseConnection
from .mysql_base import db_cursor, fetchall, fetchone


@dataclass(frozen=True)
class RunResult:
    lastrowid: Optional[int]
    rowcount: int


class TransactionalStore(Protocol):
    """Abstract row store consumed by every MySQL repository."""

    def get(self, sql: str, params: Sequence[Any] = ()) -> Optional[Dict[str, Any]]:
        raise NotImplementedError

    def all(self, sql: str, params: Sequence[Any] = ()) -> List[Dict[str, Any]]:
        raise NotImplementedError

    def run(self, sql: str, params: Sequence[Any] = ()) -> RunResult:
        raise NotImplementedError

    def transaction(self):
        """Context manager; statements issued inside commit or roll back together."""
        raise NotImplementedError


class MySQLStore(TransactionalStore):
    """mysql-connector backed store.

    Outside a transaction each statement gets its own short-lived connection. Inside
    `transaction()` the calling thread reuses one connection until the block exits.
    """

    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory
        self._local = threading.local()

    @contextmanager
    def _cursor(self) -> Iterator[Any]:
        conn = getattr(self._local, "conn", None)
        if conn is not None:
            with db_cursor(conn, commit=False) as cur:
                yield cur
            return

        conn = self._conn_factory.connect()
        try:
            with db_cursor(conn) as cur:
                yield cur
        finally:
            conn.close()

    def get(self, sql: str, params: Sequence[Any] = ()) -> Optional[Dict[str, Any]]:
        with self._cursor() as cur:
            cur.execute(sql, tuple(params))
            return fetchone(cur)

    def all(self, sql: str, params: Sequence[Any] = ()) -> List[Dict[str, Any]]:
        with self._cursor() as cur:
            cur.execute(sql, tuple(params))
            return fetchall(cur)

    def run(self, sql: str, params: Sequence[Any] = ()) -> RunResult:
        with self._cursor() as cur:
            cur.execute(sql, tuple(params))
            return RunResult(lastrowid=cur.lastrowid, rowcount=cur.rowcount)

    @contextmanager
    def transaction(self) -> Iterator[None]:
        if getattr(self._local, "conn", None) is not None:
            # Nested blocks join the outer transaction.
            yield
            return

        conn = self._conn_factory.connect()
        self._local.conn = conn
        try:
            conn.start_transaction()
            yield
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            self._local.conn = None
            conn.close()
