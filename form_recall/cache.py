from __future__ import annotations

import copy
import json
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from threading import Lock
from typing import Any, Iterator, Optional, Protocol

from .models import CacheStorageError, InstanceType

BUCKETS = (
    InstanceType.ATOMIC_SINGLE.value,
    InstanceType.ATOMIC_MULTI.value,
    InstanceType.SECTION_REPEATER.value,
)


class CacheRepository(Protocol):
    """Key-value persistence for cache entries, grouped in buckets."""

    def get(self, bucket: str, key: str) -> Optional[dict]: ...

    def set(self, bucket: str, key: str, record: dict) -> None: ...

    def delete(self, bucket: str, key: str) -> bool: ...

    def items(self, bucket: str) -> dict[str, dict]: ...

    def sweep_expired(self, cutoff: float) -> int: ...

    def get_metadata(self) -> dict: ...

    def set_metadata(self, metadata: dict) -> None: ...

    def counts(self) -> dict[str, int]: ...

    def clear(self) -> None: ...

    def close(self) -> None: ...


@contextmanager
def _storage_errors(action: str) -> Iterator[None]:
    try:
        yield
    except sqlite3.Error as exc:
        raise CacheStorageError(f"Cache {action} failed: {exc}") from exc


def _last_used(record: dict) -> float:
    try:
        return float(record.get("lastUsed") or 0.0)
    except (TypeError, ValueError):
        return 0.0


class SqliteCacheRepository:
    """SQLite-backed store for cache entries and cache metadata."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = Lock()
        with _storage_errors("open"):
            self._conn = sqlite3.connect(self.path, check_same_thread=False)
            self._conn.execute(
                """
                CREATE TABLE IF NOT EXISTS entries (
                    bucket TEXT NOT NULL,
                    key TEXT NOT NULL,
                    value TEXT NOT NULL,
                    last_used REAL NOT NULL DEFAULT 0,
                    PRIMARY KEY(bucket, key)
                )
                """
            )
            self._conn.execute(
                """
                CREATE TABLE IF NOT EXISTS metadata (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                )
                """
            )
            self._conn.commit()

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def get(self, bucket: str, key: str) -> Optional[dict]:
        with self._lock, _storage_errors("read"):
            row = self._conn.execute(
                "SELECT value FROM entries WHERE bucket = ? AND key = ?", (bucket, key)
            ).fetchone()
        if not row:
            return None
        try:
            return json.loads(row[0])
        except json.JSONDecodeError:
            return None

    def set(self, bucket: str, key: str, record: dict) -> None:
        payload = json.dumps(record)
        with self._lock, _storage_errors("write"):
            self._conn.execute(
                """
                INSERT INTO entries(bucket, key, value, last_used)
                VALUES(?, ?, ?, ?)
                ON CONFLICT(bucket, key) DO UPDATE SET value=excluded.value, last_used=excluded.last_used
                """,
                (bucket, key, payload, _last_used(record)),
            )
            self._conn.commit()

    def delete(self, bucket: str, key: str) -> bool:
        with self._lock, _storage_errors("delete"):
            cursor = self._conn.execute("DELETE FROM entries WHERE bucket = ? AND key = ?", (bucket, key))
            self._conn.commit()
        return cursor.rowcount > 0

    def items(self, bucket: str) -> dict[str, dict]:
        with self._lock, _storage_errors("read"):
            rows = self._conn.execute(
                "SELECT key, value FROM entries WHERE bucket = ? ORDER BY rowid", (bucket,)
            ).fetchall()
        result: dict[str, dict] = {}
        for key, value in rows:
            try:
                result[key] = json.loads(value)
            except json.JSONDecodeError:
                continue
        return result

    def sweep_expired(self, cutoff: float) -> int:
        with self._lock, _storage_errors("sweep"):
            cursor = self._conn.execute("DELETE FROM entries WHERE last_used < ?", (cutoff,))
            self._conn.commit()
        return cursor.rowcount

    def get_metadata(self) -> dict:
        with self._lock, _storage_errors("read"):
            rows = self._conn.execute("SELECT key, value FROM metadata").fetchall()
        metadata: dict[str, Any] = {}
        for key, value in rows:
            try:
                metadata[key] = json.loads(value)
            except json.JSONDecodeError:
                continue
        return metadata

    def set_metadata(self, metadata: dict) -> None:
        with self._lock, _storage_errors("write"):
            self._conn.executemany(
                """
                INSERT INTO metadata(key, value)
                VALUES(?, ?)
                ON CONFLICT(key) DO UPDATE SET value=excluded.value
                """,
                [(key, json.dumps(value)) for key, value in metadata.items()],
            )
            self._conn.commit()

    def counts(self) -> dict[str, int]:
        with self._lock, _storage_errors("read"):
            rows = self._conn.execute("SELECT bucket, COUNT(*) FROM entries GROUP BY bucket").fetchall()
        counts = {bucket: 0 for bucket in BUCKETS}
        counts.update({bucket: int(count) for bucket, count in rows})
        return counts

    def clear(self) -> None:
        with self._lock, _storage_errors("clear"):
            self._conn.execute("DELETE FROM entries")
            self._conn.execute("DELETE FROM metadata")
            self._conn.commit()


class InMemoryCacheRepository:
    """Dict-backed repository for tests and throwaway sessions."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._buckets: dict[str, dict[str, dict]] = {bucket: {} for bucket in BUCKETS}
        self._metadata: dict[str, Any] = {}

    def close(self) -> None:
        return None

    def get(self, bucket: str, key: str) -> Optional[dict]:
        with self._lock:
            record = self._buckets.get(bucket, {}).get(key)
            return copy.deepcopy(record) if record is not None else None

    def set(self, bucket: str, key: str, record: dict) -> None:
        with self._lock:
            self._buckets.setdefault(bucket, {})[key] = copy.deepcopy(record)

    def delete(self, bucket: str, key: str) -> bool:
        with self._lock:
            return self._buckets.get(bucket, {}).pop(key, None) is not None

    def items(self, bucket: str) -> dict[str, dict]:
        with self._lock:
            return copy.deepcopy(self._buckets.get(bucket, {}))

    def sweep_expired(self, cutoff: float) -> int:
        removed = 0
        with self._lock:
            for entries in self._buckets.values():
                for key in [k for k, record in entries.items() if _last_used(record) < cutoff]:
                    del entries[key]
                    removed += 1
        return removed

    def get_metadata(self) -> dict:
        with self._lock:
            return dict(self._metadata)

    def set_metadata(self, metadata: dict) -> None:
        with self._lock:
            self._metadata.update(metadata)

    def counts(self) -> dict[str, int]:
        with self._lock:
            return {bucket: len(self._buckets.get(bucket, {})) for bucket in BUCKETS}

    def clear(self) -> None:
        with self._lock:
            for entries in self._buckets.values():
                entries.clear()
            self._metadata.clear()
