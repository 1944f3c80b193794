"""Database backends: a local SQLite file or Turso (libSQL) over its HTTP API.

Both backends speak the same SQL dialect and expose the same transaction
handle, so repositories never know which one they are talking to.
"""
import logging
import sqlite3
from contextlib import contextmanager
from functools import lru_cache
from typing import Any, Iterator, Optional, Protocol

import httpx

from plateada_server.config import get_settings


logger = logging.getLogger(__name__)


class DatabaseError(Exception):
    """Storage failure."""


class IntegrityError(DatabaseError):
    """A UNIQUE, CHECK or FOREIGN KEY constraint was violated."""


class Transaction(Protocol):
    changes: int

    def execute(self, sql: str, args: Optional[list] = None) -> list[dict]:
        ...


# ============= SQLite =============

class SQLiteTransaction:
    """Transaction handle over a sqlite3 connection."""

    def __init__(self, conn: sqlite3.Connection):
        self._conn = conn
        self.changes = 0

    def execute(self, sql: str, args: Optional[list] = None) -> list[dict]:
        try:
            cursor = self._conn.execute(sql, args or [])
        except sqlite3.IntegrityError as e:
            raise IntegrityError(str(e)) from e
        except sqlite3.Error as e:
            raise DatabaseError(str(e)) from e

        rows = [dict(row) for row in cursor.fetchall()]
        self.changes = cursor.rowcount if cursor.rowcount > 0 else 0
        return rows


class SQLiteDatabase:
    """Local SQLite file. One connection per transaction."""

    def __init__(self, path: str, timeout: float = 30.0):
        self.path = path
        self.timeout = timeout

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.path, timeout=self.timeout, isolation_level=None)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    @contextmanager
    def transaction(self) -> Iterator[SQLiteTransaction]:
        """Open a write transaction.

        BEGIN IMMEDIATE takes the writer lock up-front, so concurrent
        read-check-write sequences on the same rows are serialised.
        """
        conn = self._connect()
        try:
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield SQLiteTransaction(conn)
            except BaseException:
                try:
                    conn.execute("ROLLBACK")
                except sqlite3.Error as e:
                    logger.warning(f"Rollback failed: {e}")
                raise
            conn.execute("COMMIT")
        except sqlite3.Error as e:
            raise DatabaseError(str(e)) from e
        finally:
            conn.close()


# ============= Turso (HTTP pipeline) =============

def _encode_value(value: Any) -> dict:
    """Encode a Python value as a Hrana typed value."""
    if value is None:
        return {"type": "null"}
    if isinstance(value, bool):
        return {"type": "integer", "value": str(int(value))}
    if isinstance(value, int):
        return {"type": "integer", "value": str(value)}
    if isinstance(value, float):
        return {"type": "float", "value": value}
    return {"type": "text", "value": str(value)}


def _decode_value(value: Any) -> Any:
    if not isinstance(value, dict):
        return value
    value_type = value.get("type")
    if value_type == "null":
        return None
    if value_type == "integer":
        return int(value["value"])
    if value_type == "float":
        return float(value["value"])
    return value.get("value")


def _extract_rows(result: dict) -> list[dict]:
    """Extract rows from a Turso execute result."""
    cols = [c["name"] for c in result.get("cols", [])]
    return [
        {cols[i]: _decode_value(val) for i, val in enumerate(row)}
        for row in result.get("rows", [])
    ]


class TursoTransaction:
    """Transaction bound to one Turso stream via its baton."""

    def __init__(self, db: "TursoDatabase"):
        self._db = db
        self._baton: Optional[str] = None
        self.changes = 0

    def _pipeline(self, requests: list[dict]) -> list[dict]:
        payload: dict[str, Any] = {"requests": requests}
        if self._baton:
            payload["baton"] = self._baton

        try:
            response = self._db.client.post(
                f"{self._db.base_url}/v2/pipeline",
                headers=self._db.headers,
                json=payload,
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise DatabaseError(f"Turso request failed: {e}") from e

        data = response.json()
        self._baton = data.get("baton")
        return data.get("results", [])

    def execute(self, sql: str, args: Optional[list] = None) -> list[dict]:
        stmt = {"sql": sql, "args": [_encode_value(a) for a in (args or [])]}
        results = self._pipeline([{"type": "execute", "stmt": stmt}])

        res = results[0] if results else {"type": "error", "error": {"message": "empty response"}}
        if res.get("type") != "ok":
            message = res.get("error", {}).get("message", "unknown error")
            if "constraint failed" in message.lower():
                raise IntegrityError(message)
            raise DatabaseError(message)

        result = res["response"]["result"]
        self.changes = int(result.get("affected_row_count", 0))
        return _extract_rows(result)

    def close(self) -> None:
        if self._baton is None:
            return
        try:
            self._pipeline([{"type": "close"}])
        except DatabaseError as e:
            logger.warning(f"Could not close Turso stream: {e}")


class TursoDatabase:
    """Turso database accessed through the v2 pipeline HTTP API."""

    def __init__(
        self,
        url: str,
        auth_token: str,
        timeout: float = 30.0,
        client: Optional[httpx.Client] = None,
    ):
        self.base_url = url.replace("libsql://", "https://").rstrip("/")
        self.headers = {
            "Authorization": f"Bearer {auth_token}",
            "Content-Type": "application/json",
        }
        self.client = client or httpx.Client(timeout=timeout)

    @contextmanager
    def transaction(self) -> Iterator[TursoTransaction]:
        tx = TursoTransaction(self)
        try:
            tx.execute("BEGIN IMMEDIATE")
            try:
                yield tx
            except BaseException:
                try:
                    tx.execute("ROLLBACK")
                except DatabaseError as e:
                    logger.warning(f"Rollback failed: {e}")
                raise
            tx.execute("COMMIT")
        finally:
            tx.close()


# ============= Accessors =============

def create_database(database_url: str, auth_token: str = "", timeout: float = 30.0):
    """Build a backend from a database URL."""
    if database_url.startswith("sqlite:///"):
        return SQLiteDatabase(database_url[len("sqlite:///"):], timeout=timeout)
    if database_url.startswith(("libsql://", "https://", "http://")):
        return TursoDatabase(database_url, auth_token, timeout=timeout)
    raise ValueError(f"Unsupported database URL: {database_url}")


@lru_cache
def get_db():
    """Get the configured database backend."""
    settings = get_settings()
    return create_database(
        settings.database_url,
        settings.turso_auth_token,
        timeout=settings.database_timeout,
    )


@contextmanager
def atomic(tx: Optional[Transaction] = None) -> Iterator[Transaction]:
    """Join the caller's transaction, or open a new one."""
    if tx is not None:
        yield tx
    else:
        with get_db().transaction() as new_tx:
            yield new_tx
