# src/stakeledger/runtime/sqlite_db.py
from __future__ import annotations

import os
import json
import sqlite3
import time
import random
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, Optional, Tuple

Json = Dict[str, Any]


def _now_ms() -> int:
    return int(time.time() * 1000)


def _canon_json(obj: Any) -> str:
    """Canonical JSON encoding for stored values.

    Unknown types are not coerced; a non-JSON value reaching the store is a bug.
    """
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def _env_int(name: str, default: int) -> int:
    try:
        raw = str(os.environ.get(name, "")).strip()
        return int(raw) if raw else int(default)
    except ValueError:
        return int(default)


class SqliteDB:
    """SQLite manager for the ledger host.

    One durable DB file holds the ledger key space. Connections are never
    shared between threads.

    SQLite allows only one writer at a time, so BEGIN IMMEDIATE can fail
    transiently with "database is locked" when another process is writing.
    write_tx() retries with bounded exponential backoff.
    """

    SCHEMA_VERSION = 1

    def __init__(self, *, path: str) -> None:
        self.path = str(path)

    @staticmethod
    def _sqlite_synchronous_pragma() -> str:
        """Return the PRAGMA synchronous value.

        Defaults:
          - prod -> FULL
          - dev  -> NORMAL

        Override with STAKELEDGER_SQLITE_SYNCHRONOUS in {OFF,NORMAL,FULL,EXTRA}.
        """
        mode = (os.environ.get("STAKELEDGER_MODE") or "prod").strip().lower()
        default = "FULL" if mode == "prod" else "NORMAL"
        raw = (os.environ.get("STAKELEDGER_SQLITE_SYNCHRONOUS") or default).strip().upper()

        if raw not in {"OFF", "NORMAL", "FULL", "EXTRA"}:
            raw = default
        return raw

    def ensure_parent_dir(self) -> None:
        Path(self.path).parent.mkdir(parents=True, exist_ok=True)

    def _connect(self) -> sqlite3.Connection:
        self.ensure_parent_dir()

        connect_timeout_s = float(_env_int("STAKELEDGER_SQLITE_CONNECT_TIMEOUT_MS", 30_000)) / 1000.0

        con = sqlite3.connect(
            self.path,
            timeout=connect_timeout_s,
            isolation_level=None,  # BEGIN/COMMIT are issued explicitly
            check_same_thread=False,
        )
        con.row_factory = sqlite3.Row

        # Rollback-journal mode is refused unless explicitly allowed.
        allow_non_wal = (os.environ.get("STAKELEDGER_SQLITE_ALLOW_NON_WAL") or "").strip() in {"1", "true", "TRUE"}
        row = con.execute("PRAGMA journal_mode=WAL;").fetchone()
        mode = str(row[0]).strip().lower() if row is not None else ""
        if mode and mode != "wal" and not allow_non_wal:
            con.close()
            raise RuntimeError(f"sqlite journal_mode is '{mode}', expected 'wal'")

        con.execute(f"PRAGMA synchronous={self._sqlite_synchronous_pragma()};")
        con.execute("PRAGMA temp_store=MEMORY;")

        wal_ckpt = max(1, _env_int("STAKELEDGER_SQLITE_WAL_AUTOCHECKPOINT", 1000))
        con.execute(f"PRAGMA wal_autocheckpoint={wal_ckpt};")

        cache_kib = max(0, _env_int("STAKELEDGER_SQLITE_CACHE_SIZE_KIB", 16 * 1024))
        con.execute(f"PRAGMA cache_size={-cache_kib};")

        busy_ms = max(0, _env_int("STAKELEDGER_SQLITE_BUSY_TIMEOUT_MS", int(connect_timeout_s * 1000)))
        con.execute(f"PRAGMA busy_timeout={busy_ms};")

        return con

    def init_schema(self) -> None:
        with self.write_tx() as con:
            con.execute(
                """
                CREATE TABLE IF NOT EXISTS meta (
                  key TEXT PRIMARY KEY,
                  value TEXT NOT NULL
                );
                """
            )
            con.execute(
                """
                CREATE TABLE IF NOT EXISTS kv (
                  key TEXT PRIMARY KEY,
                  value TEXT NOT NULL
                );
                """
            )

            row = con.execute("SELECT value FROM meta WHERE key='schema_version' LIMIT 1;").fetchone()
            if row is None:
                con.execute("INSERT INTO meta(key, value) VALUES('schema_version', ?);", (str(self.SCHEMA_VERSION),))
            else:
                try:
                    v = int(str(row["value"]))
                except ValueError:
                    v = 0
                if v != self.SCHEMA_VERSION:
                    raise RuntimeError(
                        f"sqlite schema_version mismatch: have={v} want={self.SCHEMA_VERSION}. "
                        "Refuse to start to avoid corrupting data."
                    )

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        con = self._connect()
        try:
            yield con
        finally:
            con.close()

    @staticmethod
    def _is_locked_error(e: Exception) -> bool:
        msg = str(e).lower()
        return ("database is locked" in msg) or ("database is busy" in msg) or ("locked" in msg and "database" in msg)

    @staticmethod
    def _backoff(attempt: int, base_sleep: float, max_sleep: float) -> None:
        sleep_s = min(max_sleep, base_sleep * (2.0 ** min(attempt, 8)))
        time.sleep(sleep_s * (0.5 + random.random()))

    @contextmanager
    def write_tx(self) -> Iterator[sqlite3.Connection]:
        """Open a write transaction with bounded retry on writer-lock contention.

        Policy:
          - retry BEGIN IMMEDIATE until a deadline
          - exponential backoff with jitter
          - COMMIT gets the same treatment
          - any exception inside the block rolls back and re-raises
        """
        deadline_ms = max(250, _env_int("STAKELEDGER_SQLITE_WRITE_DEADLINE_MS", 30_000))
        deadline_ts = _now_ms() + deadline_ms

        base_sleep = max(0.001, float(_env_int("STAKELEDGER_SQLITE_WRITE_BACKOFF_BASE_MS", 5)) / 1000.0)
        max_sleep = max(base_sleep, float(_env_int("STAKELEDGER_SQLITE_WRITE_BACKOFF_MAX_MS", 250)) / 1000.0)

        with self.connection() as con:
            attempt = 0
            while True:
                try:
                    con.execute("BEGIN IMMEDIATE;")
                    break
                except sqlite3.OperationalError as e:
                    if not self._is_locked_error(e) or _now_ms() >= deadline_ts:
                        raise
                    self._backoff(attempt, base_sleep, max_sleep)
                    attempt += 1

            try:
                yield con

                c_attempt = 0
                while True:
                    try:
                        con.execute("COMMIT;")
                        break
                    except sqlite3.OperationalError as e:
                        if not self._is_locked_error(e) or _now_ms() >= deadline_ts:
                            raise
                        self._backoff(c_attempt, base_sleep, max_sleep)
                        c_attempt += 1
            except BaseException:
                if con.in_transaction:
                    con.execute("ROLLBACK;")
                raise


class _SqliteView:
    """Key-value access bound to one open connection."""

    def __init__(self, con: sqlite3.Connection) -> None:
        self._con = con

    def get(self, key: str) -> Optional[Any]:
        row = self._con.execute("SELECT value FROM kv WHERE key=?;", (key,)).fetchone()
        if row is None:
            return None
        return json.loads(str(row["value"]))

    def set(self, key: str, value: Any) -> None:
        self._con.execute(
            "INSERT INTO kv(key, value) VALUES(?, ?) ON CONFLICT(key) DO UPDATE SET value=excluded.value;",
            (key, _canon_json(value)),
        )

    def delete(self, key: str) -> None:
        self._con.execute("DELETE FROM kv WHERE key=?;", (key,))

    def range_prefix(self, prefix: str) -> Iterator[Tuple[str, Any]]:
        # keys are ASCII; every key starting with prefix sorts below prefix + U+FFFF
        rows = self._con.execute(
            "SELECT key, value FROM kv WHERE key >= ? AND key < ? ORDER BY key ASC;",
            (prefix, prefix + "\uffff"),
        ).fetchall()
        for row in rows:
            yield str(row["key"]), json.loads(str(row["value"]))


class SqliteKVStore:
    """Ordered key-value store persisted in the `kv` table.

    Reads outside a transaction open a short-lived connection each. transaction()
    yields a view whose writes commit together or not at all.
    """

    def __init__(self, *, db: SqliteDB) -> None:
        self._db = db
        self._db.init_schema()

    def get(self, key: str) -> Optional[Any]:
        with self._db.connection() as con:
            return _SqliteView(con).get(key)

    def range_prefix(self, prefix: str) -> Iterator[Tuple[str, Any]]:
        with self._db.connection() as con:
            items = list(_SqliteView(con).range_prefix(prefix))
        return iter(items)

    def set(self, key: str, value: Any) -> None:
        with self.transaction() as tx:
            tx.set(key, value)

    def delete(self, key: str) -> None:
        with self.transaction() as tx:
            tx.delete(key)

    @contextmanager
    def transaction(self) -> Iterator[_SqliteView]:
        with self._db.write_tx() as con:
            yield _SqliteView(con)
