"""Capacity and trash retention policy for the command store."""

from __future__ import annotations

import math

from dotcommand.config import RetentionConfig
from dotcommand.storage.models import CommandRecord

DAY_SECONDS = 24 * 60 * 60


def days_between(earlier: float, later: float) -> float:
    return (later - earlier) / DAY_SECONDS


class RetentionManager:
    """Decide which records get trashed and which trash gets purged.

    Pure policy: it never touches storage, the store applies its decisions.
    """

    def __init__(self, config: RetentionConfig) -> None:
        self.config = config

    def is_expired(self, record: CommandRecord, now: float) -> bool:
        return (
            record.deleted_at is not None
            and now - record.deleted_at > self.config.trash_retention_days * DAY_SECONDS
        )

    def expired_trash(self, records: list[CommandRecord], now: float) -> list[CommandRecord]:
        return [record for record in records if self.is_expired(record, now)]

    def is_over_capacity(self, active_count: int) -> bool:
        return active_count >= self.config.max_commands

    def is_preserved(self, record: CommandRecord, now: float) -> bool:
        """Favorites, recently used and heavily used records are never evicted."""
        if record.is_favorite:
            return True
        if record.last_used is not None and now - record.last_used < self.config.recent_days * DAY_SECONDS:
            return True
        return record.usage_count > 0 and record.usage_count >= self.config.most_used_threshold

    def value_score(self, record: CommandRecord, now: float) -> float:
        # Never-used records get an infinite recency term.
        recency = days_between(record.last_used, now) if record.last_used is not None else math.inf
        return record.usage_count + recency

    def select_for_eviction(
        self, active: list[CommandRecord], now: float, reserve: int = 0
    ) -> list[CommandRecord]:
        """Pick the active records to soft-delete, lowest score first.

        ``reserve`` counts records about to be added, so the batch also makes
        room for them.

        ``active`` is expected oldest first; the sort is stable, so equal
        scores evict older records before newer ones.
        """
        if not self.is_over_capacity(len(active)):
            return []
        candidates = [record for record in active if not self.is_preserved(record, now)]
        candidates.sort(key=lambda record: self.value_score(record, now))
        batch = len(active) + reserve - self.config.max_commands + self.config.eviction_buffer
        return candidates[: max(batch, 0)]
