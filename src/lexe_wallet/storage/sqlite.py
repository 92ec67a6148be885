"""SQLite implementation of the PaymentsStore protocol."""

from __future__ import annotations

import contextlib
import json
import logging
import os
import sqlite3
from datetime import datetime, timezone
from pathlib import Path

import aiosqlite

from lexe_wallet.errors import StoreCorruptedError, StoreError
from lexe_wallet.models.payments import BasicPayment

log = logging.getLogger(__name__)

SCHEMA_VERSION = 1
DB_FILENAME = "payments.sqlite3"

SCHEMA = """
-- Store metadata
CREATE TABLE IF NOT EXISTS meta (
    id INTEGER PRIMARY KEY CHECK (id = 1),
    schema_version INTEGER NOT NULL,
    created_at TEXT NOT NULL DEFAULT (datetime('now'))
);

-- Payment records, keyed by created index
CREATE TABLE IF NOT EXISTS payments (
    created_index TEXT PRIMARY KEY,
    updated_index TEXT NOT NULL,
    status TEXT NOT NULL,
    is_junk INTEGER NOT NULL DEFAULT 0,
    record TEXT NOT NULL,
    written_at TEXT NOT NULL DEFAULT (datetime('now'))
);
CREATE INDEX IF NOT EXISTS idx_payments_updated ON payments(updated_index);
"""


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _unlink_db_files(path: Path) -> None:
    for suffix in ("", "-journal", "-wal", "-shm"):
        Path(f"{path}{suffix}").unlink(missing_ok=True)


class SQLitePaymentsStore:
    """SQLite-backed implementation of the PaymentsStore protocol.

    One file per payments db. Every batch is written in a single
    transaction, so a crash between batches never leaves a partial batch
    visible on the next open.
    """

    def __init__(self, db_path: str | Path) -> None:
        self._db_path = str(db_path)
        self._db: aiosqlite.Connection | None = None

    @staticmethod
    def exists(db_path: str | Path) -> bool:
        return Path(db_path).is_file()

    @property
    def path(self) -> str:
        return self._db_path

    @property
    def _in_memory(self) -> bool:
        return self._db_path == ":memory:"

    async def initialize(self) -> None:
        existed = not self._in_memory and self.exists(self._db_path)
        try:
            if not self._in_memory:
                Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)
                if not existed:
                    await self._create_file()
            self._db = await aiosqlite.connect(self._db_path)
            self._db.row_factory = aiosqlite.Row
            if existed:
                await self._check_existing()
            elif self._in_memory:
                await self._create_schema(self._db)
        except StoreError:
            await self.close()
            raise
        except sqlite3.DatabaseError as exc:
            await self.close()
            if existed:
                raise StoreCorruptedError(f"payments db at {self._db_path} is corrupt: {exc}") from exc
            raise StoreError(f"failed to create payments db at {self._db_path}: {exc}") from exc
        except OSError as exc:
            await self.close()
            raise StoreError(f"failed to open payments db at {self._db_path}: {exc}") from exc
        except BaseException:
            await self.close()
            raise

    async def _create_file(self) -> None:
        """Build a complete empty db beside the target, then move it into place.

        An interrupted creation leaves at most a stale temp file, never a
        half-built db at the real path.
        """
        tmp = Path(self._db_path + ".tmp")
        _unlink_db_files(tmp)
        try:
            async with aiosqlite.connect(tmp) as db:
                await self._create_schema(db)
            os.replace(tmp, self._db_path)
        except BaseException:
            _unlink_db_files(tmp)
            raise

    @staticmethod
    async def _create_schema(db: aiosqlite.Connection) -> None:
        await db.executescript(SCHEMA)
        await db.execute(
            "INSERT INTO meta (id, schema_version, created_at) VALUES (1, ?, ?)",
            (SCHEMA_VERSION, _now()),
        )
        await db.commit()

    async def _check_existing(self) -> None:
        async with self.db.execute("PRAGMA quick_check") as cur:
            row = await cur.fetchone()
            if row is None or row[0] != "ok":
                raise StoreCorruptedError(f"integrity check failed for {self._db_path}")

        async with self.db.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name IN ('meta', 'payments')"
        ) as cur:
            tables = {r["name"] async for r in cur}
        if tables != {"meta", "payments"}:
            raise StoreCorruptedError(f"payments db at {self._db_path} is missing tables")

        async with self.db.execute("SELECT schema_version FROM meta WHERE id=1") as cur:
            row = await cur.fetchone()
        if row is None or row["schema_version"] != SCHEMA_VERSION:
            raise StoreCorruptedError(
                f"unsupported schema version in {self._db_path}: "
                f"{row['schema_version'] if row else None}"
            )

    async def close(self) -> None:
        if self._db:
            await self._db.close()
            self._db = None

    async def destroy(self) -> None:
        """Remove the db file and its journals; the directory goes only if left empty."""
        await self.close()
        if self._in_memory:
            return
        path = Path(self._db_path)
        try:
            _unlink_db_files(path)
            with contextlib.suppress(OSError):
                path.parent.rmdir()
        except OSError as exc:
            raise StoreError(f"failed to delete payments db at {path}: {exc}") from exc
        log.info("Deleted payments db at %s", path)

    @property
    def db(self) -> aiosqlite.Connection:
        if self._db is None:
            raise StoreError("Store not initialized. Call initialize() first.")
        return self._db

    # ── Records ────────────────────────────────────────────

    async def load_all(self) -> list[BasicPayment]:
        try:
            async with self.db.execute(
                "SELECT created_index, record FROM payments ORDER BY created_index"
            ) as cur:
                rows = await cur.fetchall()
        except sqlite3.DatabaseError as exc:
            raise StoreCorruptedError(f"failed to read payments: {exc}") from exc

        payments = []
        for row in rows:
            try:
                payments.append(BasicPayment.from_dict(json.loads(row["record"])))
            except (KeyError, ValueError, TypeError) as exc:
                raise StoreCorruptedError(
                    f"undecodable payment record {row['created_index']}: {exc}"
                ) from exc
        return payments

    async def upsert_batch(self, payments: list[BasicPayment]) -> None:
        if not payments:
            return
        now = _now()
        rows = [
            (
                str(p.index), str(p.updated_index), p.status.value,
                int(p.is_junk), json.dumps(p.to_dict()), now,
            )
            for p in payments
        ]
        try:
            await self.db.executemany(
                "INSERT INTO payments"
                " (created_index, updated_index, status, is_junk, record, written_at)"
                " VALUES (?, ?, ?, ?, ?, ?)"
                " ON CONFLICT(created_index) DO UPDATE SET"
                " updated_index=excluded.updated_index, status=excluded.status,"
                " is_junk=excluded.is_junk, record=excluded.record,"
                " written_at=excluded.written_at",
                rows,
            )
            await self.db.commit()
        except sqlite3.Error as exc:
            await self._rollback_quietly()
            raise StoreError(f"failed to write {len(rows)} payments: {exc}") from exc

    async def _rollback_quietly(self) -> None:
        try:
            await self.db.rollback()
        except sqlite3.Error as exc:
            log.error("Rollback failed for %s: %s", self._db_path, exc)
