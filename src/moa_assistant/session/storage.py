from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Protocol, runtime_checkable

from moa_assistant.constants import DEFAULT_STORAGE_QUOTA_BYTES
from moa_assistant.errors import StorageFailure, StorageQuotaExceeded


@runtime_checkable
class KeyValueStorage(Protocol):
    """A string-to-string slot store with a total byte quota, like browser localStorage."""

    def get_item(self, key: str) -> str | None: ...

    def set_item(self, key: str, value: str) -> None: ...

    def remove_item(self, key: str) -> None: ...


def _entry_size(key: str, value: str) -> int:
    return len(key.encode("utf-8")) + len(value.encode("utf-8"))


class InMemoryKeyValueStorage:
    def __init__(self, quota_bytes: int = DEFAULT_STORAGE_QUOTA_BYTES):
        self._quota_bytes = quota_bytes
        self._items: dict[str, str] = {}

    @property
    def quota_bytes(self) -> int:
        return self._quota_bytes

    def get_item(self, key: str) -> str | None:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        others = sum(_entry_size(k, v) for k, v in self._items.items() if k != key)
        required = others + _entry_size(key, value)
        if self._quota_bytes > 0 and required > self._quota_bytes:
            raise StorageQuotaExceeded(key, required, self._quota_bytes)
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)

    def used_bytes(self) -> int:
        return sum(_entry_size(k, v) for k, v in self._items.items())


class SqliteKeyValueStorage:
    def __init__(self, db_path: str, *, quota_bytes: int = DEFAULT_STORAGE_QUOTA_BYTES):
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._quota_bytes = quota_bytes
        self._conn = sqlite3.connect(self._db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._initialize_schema()

    @property
    def quota_bytes(self) -> int:
        return self._quota_bytes

    def close(self) -> None:
        self._conn.close()

    def get_item(self, key: str) -> str | None:
        try:
            row = self._conn.execute("SELECT value FROM kv_items WHERE key = ? LIMIT 1", (key,)).fetchone()
        except sqlite3.Error as ex:
            raise StorageFailure(f"Failed to read {key!r}: {ex}") from ex
        if row is None:
            return None
        return str(row["value"])

    def set_item(self, key: str, value: str) -> None:
        required = self._used_bytes(excluding=key) + _entry_size(key, value)
        if self._quota_bytes > 0 and required > self._quota_bytes:
            raise StorageQuotaExceeded(key, required, self._quota_bytes)
        try:
            self._conn.execute(
                """
                INSERT INTO kv_items (key, value) VALUES (?, ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value
                """,
                (key, value),
            )
            self._conn.commit()
        except sqlite3.Error as ex:
            self._conn.rollback()
            raise StorageFailure(f"Failed to write {key!r}: {ex}") from ex

    def remove_item(self, key: str) -> None:
        try:
            self._conn.execute("DELETE FROM kv_items WHERE key = ?", (key,))
            self._conn.commit()
        except sqlite3.Error as ex:
            self._conn.rollback()
            raise StorageFailure(f"Failed to remove {key!r}: {ex}") from ex

    def used_bytes(self) -> int:
        return self._used_bytes(excluding=None)

    def _used_bytes(self, *, excluding: str | None) -> int:
        try:
            row = self._conn.execute(
                """
                SELECT COALESCE(SUM(LENGTH(CAST(key AS BLOB)) + LENGTH(CAST(value AS BLOB))), 0) AS used
                FROM kv_items
                WHERE key IS NOT ?
                """,
                (excluding,),
            ).fetchone()
        except sqlite3.Error as ex:
            raise StorageFailure(f"Failed to measure storage usage: {ex}") from ex
        return int(row["used"])

    def _initialize_schema(self) -> None:
        self._conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS kv_items (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL
            );
            """
        )
        self._conn.commit()
