"""Command store with capacity enforcement and a recoverable trash."""

from __future__ import annotations

import asyncio
import logging
import math
import time
import uuid
from dataclasses import replace
from typing import Any, Callable

from dotcommand.config import RetentionConfig
from dotcommand.errors import NotFoundError, ValidationError
from dotcommand.storage.database import CommandDatabase
from dotcommand.storage.models import (
    MUTABLE_FIELDS,
    SOURCES,
    CleanupResult,
    CommandRecord,
    TrashStats,
)
from dotcommand.storage.retention import RetentionManager, days_between

logger = logging.getLogger(__name__)


def _generate_id(now: float) -> str:
    return f"cmd_{int(now * 1000)}_{uuid.uuid4().hex[:9]}"


class CommandStore:
    """Saved commands, partitioned into active and trashed by ``deleted_at``.

    Mutations run under one lock so that a read-modify-write sequence such as
    save-then-evict is never interleaved with another mutation.
    """

    def __init__(
        self,
        database: CommandDatabase,
        config: RetentionConfig | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.database = database
        self.retention = RetentionManager(config or RetentionConfig())
        self._clock = clock
        self._lock = asyncio.Lock()

    # -- mutations ---------------------------------------------------------

    async def save(
        self,
        command: str,
        category: str | None = None,
        name: str | None = None,
        source: str = "manual",
    ) -> CommandRecord:
        """Save a new command, trashing low-value records first if the store is full."""
        text = command.strip()
        if not text:
            raise ValidationError("Command cannot be empty")
        if source not in SOURCES:
            raise ValidationError(f"Unknown command source: {source}")

        async with self._lock:
            records = await self.database.fetch_records()
            active = [record for record in records if not record.is_deleted]
            if any(record.command.strip() == text for record in active):
                logger.debug("Saving duplicate of an active command: %s", text)
            if self.retention.is_over_capacity(len(active)):
                await self._enforce_capacity(records, reserve=1)

            now = self._clock()
            record = CommandRecord(
                id=_generate_id(now),
                command=text,
                created_at=now,
                name=(name or "").strip() or None,
                category=(category or "").strip() or None,
                source=source,
            )
            await self.database.insert_record(record)

        logger.info("Saved command %s (%s): %s", record.id, record.category or "-", text)
        return record

    async def enforce_capacity(self) -> CleanupResult:
        async with self._lock:
            records = await self.database.fetch_records()
            return await self._enforce_capacity(records)

    async def _enforce_capacity(self, records: list[CommandRecord], reserve: int = 0) -> CleanupResult:
        now = self._clock()
        expired = self.retention.expired_trash(records, now)
        purged = await self.database.delete_records(record.id for record in expired)

        expired_ids = {record.id for record in expired}
        active = [record for record in records if record.id not in expired_ids and not record.is_deleted]
        victims = self.retention.select_for_eviction(active, now, reserve)
        await self.database.mark_deleted([record.id for record in victims], now)
        for record in victims:
            record.deleted_at = now
            logger.debug("Moved to trash: %s", record.command)

        logger.info(
            "Capacity enforcement: purged %d expired, trashed %d, %d active",
            purged,
            len(victims),
            len(active) - len(victims),
        )
        return CleanupResult(purged=purged, trashed=len(victims))

    async def update_command(self, record_id: str, **fields: Any) -> CommandRecord | None:
        """Merge ``fields`` into an active record. Returns None if there is no such record."""
        unknown = set(fields) - MUTABLE_FIELDS
        if unknown:
            raise ValidationError(f"Unknown command fields: {', '.join(sorted(unknown))}")

        async with self._lock:
            record = await self._fetch_active(record_id)
            if record is None:
                return None
            if set(fields) == {"deleted_at"}:
                await self.database.mark_deleted([record_id], fields["deleted_at"])
                return replace(record, deleted_at=fields["deleted_at"])
            return await self._update(record, fields)

    async def record_usage(self, record_id: str) -> CommandRecord | None:
        async with self._lock:
            record = await self._fetch_active(record_id)
            if record is None:
                return None
            return await self._update(
                record, {"usage_count": record.usage_count + 1, "last_used": self._clock()}, touch=False
            )

    async def toggle_favorite(self, record_id: str) -> CommandRecord | None:
        async with self._lock:
            record = await self._fetch_active(record_id)
            if record is None:
                return None
            return await self._update(record, {"is_favorite": not record.is_favorite}, touch=False)

    async def _fetch_active(self, record_id: str) -> CommandRecord | None:
        record = await self.database.fetch_record(record_id)
        if record is None or record.is_deleted:
            return None
        return record

    async def _update(self, record: CommandRecord, fields: dict[str, Any], touch: bool = True) -> CommandRecord:
        """Merge and persist. ``touch`` refreshes ``created_at``, which doubles as last-modified."""
        updated = replace(record, **fields)
        if touch:
            updated.created_at = self._clock()
        if not (updated.command or "").strip():
            raise ValidationError("Command cannot be empty")
        if updated.usage_count < 0:
            raise ValidationError("Usage count cannot be negative")
        if updated.source not in SOURCES:
            raise ValidationError(f"Unknown command source: {updated.source}")
        updated.command = updated.command.strip()
        updated.name = (updated.name or "").strip() or None
        updated.category = (updated.category or "").strip() or None
        await self.database.update_record(updated)
        return updated

    async def move_to_trash(self, record_id: str) -> bool:
        async with self._lock:
            record = await self._fetch_active(record_id)
            if record is None:
                return False
            await self.database.mark_deleted([record_id], self._clock())
        logger.info("Moved to trash: %s", record.command)
        return True

    async def restore(self, record_id: str) -> bool:
        """Bring a trashed record back. False if it is missing or not in the trash."""
        async with self._lock:
            record = await self.database.fetch_record(record_id)
            if record is None or not record.is_deleted:
                return False
            await self.database.mark_deleted([record_id], None)
        logger.info("Restored from trash: %s", record.command)
        return True

    async def permanent_delete(self, record_id: str) -> bool:
        """Remove a trashed record for good. Active records are left alone."""
        async with self._lock:
            record = await self.database.fetch_record(record_id)
            if record is None or not record.is_deleted:
                return False
            await self.database.delete_records([record_id])
        logger.info("Permanently deleted: %s", record.command)
        return True

    async def empty_expired_trash(self) -> int:
        """Purge trash older than the retention window."""
        async with self._lock:
            records = await self.database.fetch_records()
            expired = self.retention.expired_trash(records, self._clock())
            purged = await self.database.delete_records(record.id for record in expired)
        if purged:
            logger.info("Purged %d expired command(s) from trash", purged)
        return purged

    async def empty_trash(self) -> int:
        async with self._lock:
            records = await self.database.fetch_records()
            purged = await self.database.delete_records(record.id for record in records if record.is_deleted)
        logger.info("Emptied trash: %d command(s)", purged)
        return purged

    # -- queries -----------------------------------------------------------

    async def get_command(self, record_id: str) -> CommandRecord:
        record = await self.database.fetch_record(record_id)
        if record is None:
            raise NotFoundError(f"Command not found: {record_id}")
        return record

    async def get_all_commands(self) -> list[CommandRecord]:
        """Active commands, most recent first."""
        records = await self.database.fetch_records()
        return [record for record in reversed(records) if not record.is_deleted]

    async def get_deleted_commands(self) -> list[CommandRecord]:
        """Trashed commands, most recently deleted first."""
        records = await self.database.fetch_records()
        trashed = [record for record in reversed(records) if record.is_deleted]
        return sorted(trashed, key=lambda record: record.deleted_at or 0.0, reverse=True)

    async def get_all_commands_including_deleted(self) -> list[CommandRecord]:
        records = await self.database.fetch_records()
        return list(reversed(records))

    async def command_exists(self, command: str) -> bool:
        text = command.strip()
        return any(record.command.strip() == text for record in await self.get_all_commands())

    async def get_command_count(self) -> int:
        return len(await self.get_all_commands())

    async def get_trash_stats(self) -> TrashStats:
        trashed = await self.get_deleted_commands()
        if not trashed:
            return TrashStats()
        oldest = min(record.deleted_at or 0.0 for record in trashed)
        return TrashStats(count=len(trashed), oldest_days=math.floor(days_between(oldest, self._clock())))

    async def search_commands(self, query: str) -> list[CommandRecord]:
        needle = query.lower()
        return [
            record
            for record in await self.get_all_commands()
            if needle in record.command.lower()
            or needle in (record.name or "").lower()
            or needle in (record.category or "").lower()
        ]

    async def get_commands_by_category(self, category: str | None) -> list[CommandRecord]:
        commands = await self.get_all_commands()
        if not category:
            return commands
        return [record for record in commands if record.category == category]

    async def get_most_used(self) -> list[CommandRecord]:
        threshold = self.retention.config.most_used_threshold
        used = [record for record in await self.get_all_commands() if record.usage_count >= threshold]
        return sorted(used, key=lambda record: record.usage_count, reverse=True)

    async def get_recent(self, limit: int = 10) -> list[CommandRecord]:
        used = [record for record in await self.get_all_commands() if record.last_used is not None]
        used.sort(key=lambda record: record.last_used or 0.0, reverse=True)
        return used[:limit]
