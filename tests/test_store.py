"""Tests for the command store."""

from __future__ import annotations

import pytest

from dotcommand.errors import NotFoundError, PersistenceError, ValidationError
from dotcommand.storage.models import CommandRecord
from dotcommand.storage.retention import DAY_SECONDS as DAY

# Matches the starting time of the clock fixture.
NOW = 1_700_000_000.0


class TestSave:
    @pytest.mark.asyncio
    async def test_save_and_get(self, store):
        record = await store.save("  git status  ", category="git", name="status")
        assert record.id.startswith("cmd_")
        assert record.command == "git status"
        assert record.created_at == NOW
        assert record.source == "manual"

        loaded = await store.get_command(record.id)
        assert loaded == record

    @pytest.mark.asyncio
    async def test_empty_command_rejected(self, store):
        with pytest.raises(ValidationError):
            await store.save("   ")

    @pytest.mark.asyncio
    async def test_unknown_source_rejected(self, store):
        with pytest.raises(ValidationError):
            await store.save("ls", source="clipboard")

    @pytest.mark.asyncio
    async def test_duplicates_allowed(self, store):
        await store.save("make")
        await store.save("make")
        assert await store.get_command_count() == 2

    @pytest.mark.asyncio
    async def test_most_recent_first(self, store, clock):
        for i in range(3):
            await store.save(f"echo {i}")
            clock.advance(1)
        commands = await store.get_all_commands()
        assert [c.command for c in commands] == ["echo 2", "echo 1", "echo 0"]

    @pytest.mark.asyncio
    async def test_get_missing_command(self, store):
        with pytest.raises(NotFoundError):
            await store.get_command("cmd_missing")


class TestTrash:
    @pytest.mark.asyncio
    async def test_trash_and_restore_round_trip(self, store, clock):
        record = await store.save("docker ps", category="docker")
        clock.advance(10)

        assert await store.move_to_trash(record.id)
        assert await store.get_all_commands() == []
        trashed = await store.get_deleted_commands()
        assert [r.id for r in trashed] == [record.id]
        assert trashed[0].deleted_at == NOW + 10

        assert await store.restore(record.id)
        assert await store.get_command(record.id) == record
        assert await store.get_deleted_commands() == []

    @pytest.mark.asyncio
    async def test_restore_active_record_fails(self, store):
        record = await store.save("ls")
        assert not await store.restore(record.id)
        assert not await store.restore("cmd_missing")

    @pytest.mark.asyncio
    async def test_trash_twice_fails(self, store):
        record = await store.save("ls")
        assert await store.move_to_trash(record.id)
        assert not await store.move_to_trash(record.id)

    @pytest.mark.asyncio
    async def test_permanent_delete_only_from_trash(self, store):
        record = await store.save("ls")
        assert not await store.permanent_delete(record.id)
        await store.move_to_trash(record.id)
        assert await store.permanent_delete(record.id)
        assert await store.get_all_commands_including_deleted() == []

    @pytest.mark.asyncio
    async def test_deleted_sorted_by_deletion_time(self, store, clock):
        first = await store.save("a1")
        second = await store.save("a2")
        await store.move_to_trash(second.id)
        clock.advance(5)
        await store.move_to_trash(first.id)
        trashed = await store.get_deleted_commands()
        assert [r.id for r in trashed] == [first.id, second.id]

    @pytest.mark.asyncio
    async def test_expired_trash_purged(self, store, clock):
        old = await store.save("old")
        await store.move_to_trash(old.id)
        clock.advance(91 * DAY)
        recent = await store.save("recent")
        await store.move_to_trash(recent.id)

        assert await store.empty_expired_trash() == 1
        assert [r.id for r in await store.get_deleted_commands()] == [recent.id]

    @pytest.mark.asyncio
    async def test_trash_stats(self, store, clock):
        assert (await store.get_trash_stats()).count == 0
        record = await store.save("ls")
        await store.move_to_trash(record.id)
        clock.advance(3.5 * DAY)
        stats = await store.get_trash_stats()
        assert stats.count == 1
        assert stats.oldest_days == 3

    @pytest.mark.asyncio
    async def test_empty_trash(self, store):
        for text in ("a1", "a2"):
            record = await store.save(text)
            await store.move_to_trash(record.id)
        await store.save("kept")
        assert await store.empty_trash() == 2
        assert await store.get_command_count() == 1


class TestUpdate:
    @pytest.mark.asyncio
    async def test_update_fields(self, store, clock):
        record = await store.save("npm test")
        clock.advance(60)
        updated = await store.update_command(record.id, name="tests", category="npm")
        assert updated is not None
        assert updated.name == "tests"
        assert updated.category == "npm"
        assert updated.created_at == NOW + 60
        assert await store.get_command(record.id) == updated

    @pytest.mark.asyncio
    async def test_unknown_field_rejected(self, store):
        record = await store.save("npm test")
        with pytest.raises(ValidationError):
            await store.update_command(record.id, id="cmd_other")

    @pytest.mark.asyncio
    async def test_missing_or_trashed_returns_none(self, store):
        assert await store.update_command("cmd_missing", name="x") is None
        record = await store.save("npm test")
        await store.move_to_trash(record.id)
        assert await store.update_command(record.id, name="x") is None

    @pytest.mark.asyncio
    async def test_empty_command_rejected(self, store):
        record = await store.save("npm test")
        with pytest.raises(ValidationError):
            await store.update_command(record.id, command="  ")

    @pytest.mark.asyncio
    async def test_negative_usage_rejected(self, store):
        record = await store.save("npm test")
        with pytest.raises(ValidationError):
            await store.update_command(record.id, usage_count=-5)
        assert (await store.get_command(record.id)).usage_count == 0

    @pytest.mark.asyncio
    async def test_blank_name_and_category_cleared(self, store):
        record = await store.save("npm test", category="npm", name="tests")
        updated = await store.update_command(record.id, name="", category="  ")
        assert updated.name is None
        assert updated.category is None
        assert await store.get_command(record.id) == updated

    @pytest.mark.asyncio
    async def test_soft_delete_through_update_then_restore(self, store, clock):
        record = await store.save("npm test")
        clock.advance(60)
        trashed = await store.update_command(record.id, deleted_at=clock())
        assert trashed.deleted_at == NOW + 60
        assert trashed.created_at == NOW
        assert [r.id for r in await store.get_deleted_commands()] == [record.id]

        assert await store.restore(record.id)
        assert await store.get_command(record.id) == record

    @pytest.mark.asyncio
    async def test_record_usage_and_favorite(self, store, clock):
        record = await store.save("make")
        clock.advance(30)
        used = await store.record_usage(record.id)
        assert used.usage_count == 1
        assert used.last_used == NOW + 30
        assert used.created_at == NOW

        favorite = await store.toggle_favorite(record.id)
        assert favorite.is_favorite
        assert favorite.created_at == NOW
        assert not (await store.toggle_favorite(record.id)).is_favorite


class TestQueries:
    @pytest.mark.asyncio
    async def test_exists_ignores_trash(self, store):
        record = await store.save("git status")
        assert await store.command_exists(" git status ")
        await store.move_to_trash(record.id)
        assert not await store.command_exists("git status")

    @pytest.mark.asyncio
    async def test_search_and_category(self, store):
        await store.save("git log --oneline", category="git", name="history")
        await store.save("docker ps", category="docker")
        assert [r.command for r in await store.search_commands("HISTORY")] == ["git log --oneline"]
        assert [r.command for r in await store.search_commands("docker")] == ["docker ps"]
        assert [r.command for r in await store.get_commands_by_category("git")] == ["git log --oneline"]
        assert len(await store.get_commands_by_category(None)) == 2

    @pytest.mark.asyncio
    async def test_most_used_and_recent(self, store, clock):
        busy = await store.save("make")
        idle = await store.save("make clean")
        await store.update_command(busy.id, usage_count=12)
        await store.record_usage(idle.id)

        assert [r.id for r in await store.get_most_used()] == [busy.id]
        recent = await store.get_recent(limit=5)
        assert [r.id for r in recent] == [idle.id]


class TestCapacity:
    @pytest.mark.asyncio
    async def test_save_evicts_lowest_value(self, store, clock):
        records = []
        for i in range(5):
            records.append(await store.save(f"echo {i}"))
            clock.advance(1)
        await store.toggle_favorite(records[0].id)
        await store.record_usage(records[1].id)

        await store.save("echo 5")

        active = {r.command for r in await store.get_all_commands()}
        assert len(active) == 5
        assert "echo 2" not in active
        assert {"echo 0", "echo 1", "echo 5"} <= active
        assert [r.command for r in await store.get_deleted_commands()] == ["echo 2"]

    @pytest.mark.asyncio
    async def test_enforce_capacity(self, store, clock):
        database = store.database

        def make(record_id, **kwargs):
            return CommandRecord(
                id=record_id, command=f"run {record_id}", created_at=NOW - 200 * DAY, **kwargs
            )

        seeded = [
            make("expired", deleted_at=NOW - 100 * DAY),
            make("fav", is_favorite=True),
            make("recent", usage_count=1, last_used=NOW - DAY),
            make("heavy", usage_count=12, last_used=NOW - 100 * DAY),
        ] + [make(f"stale{i}") for i in range(5)]
        for index, record in enumerate(seeded):
            record.created_at += index
            await database.insert_record(record)

        result = await store.enforce_capacity()
        assert result.purged == 1
        assert result.trashed == 3

        active = {r.id for r in await store.get_all_commands()}
        assert len(active) <= store.retention.config.max_commands
        assert {"fav", "recent", "heavy"} <= active
        assert {r.id for r in await store.get_deleted_commands()} == {"stale0", "stale1", "stale2"}

    @pytest.mark.asyncio
    async def test_under_capacity_is_noop(self, store):
        await store.save("ls")
        result = await store.enforce_capacity()
        assert result.purged == 0
        assert result.trashed == 0


class TestPersistenceErrors:
    @pytest.mark.asyncio
    async def test_duplicate_id(self, store):
        record = await store.save("ls")
        with pytest.raises(PersistenceError):
            await store.database.insert_record(record)

    @pytest.mark.asyncio
    async def test_uninitialized_database(self, tmp_path):
        from dotcommand.storage.database import CommandDatabase

        database = CommandDatabase(str(tmp_path / "x.db"))
        with pytest.raises(RuntimeError):
            await database.fetch_records()
