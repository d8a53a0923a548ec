"""SQLite persistence for saved commands."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Iterable

import aiosqlite

from dotcommand.errors import PersistenceError
from dotcommand.storage.models import CommandRecord

logger = logging.getLogger(__name__)

_COLUMNS = (
    "id",
    "command",
    "name",
    "category",
    "created_at",
    "last_used",
    "usage_count",
    "is_favorite",
    "deleted_at",
    "source",
)


class CommandDatabase:
    """aiosqlite-backed table of CommandRecord rows."""

    def __init__(self, db_path: str) -> None:
        self.db_path = db_path
        self._db: aiosqlite.Connection | None = None

    async def __aenter__(self) -> CommandDatabase:
        await self.init()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def init(self) -> None:
        """Open the database and create tables."""
        resolved = Path(self.db_path).expanduser().resolve()
        resolved.parent.mkdir(parents=True, exist_ok=True)

        try:
            self._db = await aiosqlite.connect(str(resolved))
            self._db.row_factory = aiosqlite.Row
            await self._db.execute("PRAGMA journal_mode = WAL")

            await self._db.execute("""
                CREATE TABLE IF NOT EXISTS commands (
                    id TEXT PRIMARY KEY,
                    command TEXT NOT NULL,
                    name TEXT,
                    category TEXT,
                    created_at REAL NOT NULL,
                    last_used REAL,
                    usage_count INTEGER NOT NULL DEFAULT 0,
                    is_favorite INTEGER NOT NULL DEFAULT 0,
                    deleted_at REAL,
                    source TEXT NOT NULL DEFAULT 'manual'
                        CHECK(source IN ('manual', 'auto-capture', 'imported-history', 'prepared-template'))
                )
            """)
            await self._db.execute("CREATE INDEX IF NOT EXISTS idx_commands_created_at ON commands(created_at)")
            await self._db.execute("CREATE INDEX IF NOT EXISTS idx_commands_deleted_at ON commands(deleted_at)")
            await self._db.commit()
        except aiosqlite.Error as e:
            raise PersistenceError(f"Failed to open database {resolved}: {e}") from e
        logger.info("Database initialized: %s", resolved)

    async def close(self) -> None:
        if self._db is not None:
            await self._db.close()
            self._db = None
            logger.info("Database closed")

    def _conn(self) -> aiosqlite.Connection:
        if self._db is None:
            raise RuntimeError("Database not initialized. Call init() first.")
        return self._db

    async def fetch_records(self) -> list[CommandRecord]:
        """Every row, trashed ones included, oldest first."""
        try:
            cursor = await self._conn().execute(
                f"SELECT {', '.join(_COLUMNS)} FROM commands ORDER BY created_at, rowid"
            )
            rows = await cursor.fetchall()
        except aiosqlite.Error as e:
            raise PersistenceError(f"Failed to read commands: {e}") from e
        return [CommandRecord.from_row(row) for row in rows]

    async def fetch_record(self, record_id: str) -> CommandRecord | None:
        try:
            cursor = await self._conn().execute(
                f"SELECT {', '.join(_COLUMNS)} FROM commands WHERE id = ?",
                (record_id,),
            )
            row = await cursor.fetchone()
        except aiosqlite.Error as e:
            raise PersistenceError(f"Failed to read command {record_id}: {e}") from e
        return CommandRecord.from_row(row) if row is not None else None

    async def insert_record(self, record: CommandRecord) -> None:
        placeholders = ", ".join(f":{column}" for column in _COLUMNS)
        await self._write(
            f"INSERT INTO commands ({', '.join(_COLUMNS)}) VALUES ({placeholders})",
            [record.to_row()],
        )

    async def update_record(self, record: CommandRecord) -> None:
        assignments = ", ".join(f"{column} = :{column}" for column in _COLUMNS if column != "id")
        await self._write(f"UPDATE commands SET {assignments} WHERE id = :id", [record.to_row()])

    async def mark_deleted(self, record_ids: Iterable[str], deleted_at: float | None) -> None:
        await self._write(
            "UPDATE commands SET deleted_at = ? WHERE id = ?",
            [(deleted_at, record_id) for record_id in record_ids],
        )

    async def delete_records(self, record_ids: Iterable[str]) -> int:
        params = [(record_id,) for record_id in record_ids]
        await self._write("DELETE FROM commands WHERE id = ?", params)
        return len(params)

    async def _write(self, sql: str, params: list[Any]) -> None:
        if not params:
            return
        db = self._conn()
        try:
            await db.executemany(sql, params)
            await db.commit()
        except aiosqlite.Error as e:
            await db.rollback()
            raise PersistenceError(f"Failed to write commands: {e}") from e
