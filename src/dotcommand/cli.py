"""CLI entry point using typer."""

from __future__ import annotations

import asyncio
import logging
import sys
import time
from pathlib import Path
from typing import Awaitable, Callable, TypeVar

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from dotcommand import __version__
from dotcommand.config import CONFIG_FILE, AppConfig, load_config, save_config
from dotcommand.errors import DotCommandError
from dotcommand.services.capture import CaptureService
from dotcommand.services.classifier import category_classifier
from dotcommand.services.cleaning import DIALECTS, UNKNOWN, ShellPromptCleaner, run_self_test
from dotcommand.storage.database import CommandDatabase
from dotcommand.storage.models import CommandRecord
from dotcommand.storage.store import CommandStore
from dotcommand.utils.formatting import (
    format_age,
    format_analytics,
    format_capture_result,
    format_flags,
    truncate,
)

T = TypeVar("T")

app = typer.Typer(
    name="dotcommand",
    help="Capture, clean and keep the shell commands you type.",
    add_completion=False,
)
console = Console()


def _setup_logging(config: AppConfig) -> None:
    log_path = Path(config.logging.file).expanduser().resolve()
    log_path.parent.mkdir(parents=True, exist_ok=True)
    logging.basicConfig(
        level=getattr(logging, config.logging.level.upper(), logging.WARNING),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[logging.FileHandler(str(log_path))],
    )


def _cleaner(config: AppConfig) -> ShellPromptCleaner:
    return ShellPromptCleaner(overrides=config.cleaning.prompt_regex)


def _run(config: AppConfig, operation: Callable[[CommandStore], Awaitable[T]]) -> T:
    """Open the store, run one operation against it and close it again."""

    async def runner() -> T:
        async with CommandDatabase(config.storage.db_path) as database:
            return await operation(CommandStore(database, config.retention))

    try:
        return asyncio.run(runner())
    except DotCommandError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        raise typer.Exit(1)


def _load() -> AppConfig:
    config = load_config()
    _setup_logging(config)
    return config


def _check_shell(shell: str | None) -> None:
    if shell is not None and shell not in DIALECTS and shell != UNKNOWN:
        console.print(f"[red]Unknown shell: {shell}. Use one of: {', '.join(DIALECTS)}, {UNKNOWN}[/red]")
        raise typer.Exit(1)


def _commands_table(title: str, records: list[CommandRecord], trash: bool = False) -> Table:
    now = time.time()
    table = Table(title=title)
    table.add_column("ID", style="dim")
    table.add_column("Command", style="cyan")
    table.add_column("Category", style="green")
    table.add_column("Uses", justify="right")
    table.add_column("Deleted" if trash else "Saved")
    table.add_column("Flags", style="yellow")
    for record in records:
        stamp = record.deleted_at if trash and record.deleted_at is not None else record.created_at
        table.add_row(
            record.id,
            escape(truncate(record.label)),
            escape(record.category or "-"),
            str(record.usage_count),
            format_age(now - stamp),
            format_flags(record),
        )
    return table


@app.command()
def clean(
    line: str = typer.Argument(..., help="Raw terminal line, prompt included"),
    shell: str = typer.Option(None, "--shell", "-s", help="Shell dialect (detected if omitted)"),
) -> None:
    """Strip the prompt from a terminal line and show its category."""
    _check_shell(shell)
    config = _load()
    cleaner = _cleaner(config)
    dialect = shell or config.capture.shell or cleaner.detect_shell_dialect()
    command = cleaner.clean(line, dialect)
    category = category_classifier.classify(command)
    console.print(command, markup=False)
    console.print(f"[dim]shell: {dialect} | category: {escape(category or config.capture.default_category)}[/dim]")


@app.command()
def capture(
    line: str = typer.Argument(..., help="Raw terminal line, prompt included"),
    shell: str = typer.Option(None, "--shell", "-s", help="Shell dialect (detected if omitted)"),
) -> None:
    """Clean, classify and save a terminal line."""
    _check_shell(shell)
    config = _load()
    cleaner = _cleaner(config)
    result = _run(config, lambda store: CaptureService(config, store, cleaner).capture(line, shell))
    style = "green" if result.saved else "yellow"
    console.print(f"[{style}]{escape(format_capture_result(result))}[/{style}]")


@app.command()
def save(
    command: str = typer.Argument(..., help="Command text"),
    name: str = typer.Option(None, "--name", "-n", help="Display name"),
    category: str = typer.Option(None, "--category", "-c", help="Category (detected if omitted)"),
) -> None:
    """Save a command manually."""
    config = _load()

    async def operation(store: CommandStore) -> CommandRecord:
        if await store.command_exists(command):
            console.print("[yellow]This command is already saved.[/yellow]")
            raise typer.Exit(1)
        tag = category or category_classifier.classify(command) or config.capture.default_category
        return await store.save(command, category=tag, name=name)

    record = _run(config, operation)
    console.print(f"[green]Saved[/green] {record.id} {escape(f'[{record.category}] {record.command}')}")


@app.command(name="list")
def list_commands(
    trash: bool = typer.Option(False, "--trash", "-t", help="Show the trash instead"),
    category: str = typer.Option(None, "--category", "-c", help="Only this category"),
    search: str = typer.Option(None, "--search", "-q", help="Filter by name, command or category"),
) -> None:
    """List saved commands."""
    config = _load()

    async def operation(store: CommandStore) -> list[CommandRecord]:
        if trash:
            return await store.get_deleted_commands()
        if search:
            records = await store.search_commands(search)
            return [record for record in records if not category or record.category == category]
        return await store.get_commands_by_category(category)

    records = _run(config, operation)
    if not records:
        console.print("[dim]Trash is empty.[/dim]" if trash else "[dim]No saved commands.[/dim]")
        return
    console.print(_commands_table("Trash" if trash else "Commands", records, trash=trash))


def _report(found: object, ok: str, missing: str) -> None:
    if found:
        console.print(f"[green]{ok}[/green]")
    else:
        console.print(f"[red]{missing}[/red]")
        raise typer.Exit(1)


@app.command()
def favorite(record_id: str = typer.Argument(..., help="Command ID")) -> None:
    """Toggle the favorite flag of a command."""
    config = _load()
    record = _run(config, lambda store: store.toggle_favorite(record_id))
    if record is None:
        console.print("[red]Command not found.[/red]")
        raise typer.Exit(1)
    state = "added to" if record.is_favorite else "removed from"
    console.print(f"[green]Command {state} favorites: {escape(truncate(record.label))}[/green]")


@app.command()
def use(record_id: str = typer.Argument(..., help="Command ID")) -> None:
    """Record a use of a command and print it."""
    config = _load()
    record = _run(config, lambda store: store.record_usage(record_id))
    if record is None:
        console.print("[red]Command not found.[/red]")
        raise typer.Exit(1)
    console.print(record.command, markup=False)


@app.command(name="trash")
def trash_command(record_id: str = typer.Argument(..., help="Command ID")) -> None:
    """Move a command to the trash."""
    config = _load()
    days = config.retention.trash_retention_days
    moved = _run(config, lambda store: store.move_to_trash(record_id))
    _report(moved, f"Moved to trash. It can be restored within {days} days.", "Command not found.")


@app.command()
def restore(record_id: str = typer.Argument(..., help="Command ID")) -> None:
    """Restore a command from the trash."""
    config = _load()
    restored = _run(config, lambda store: store.restore(record_id))
    _report(restored, "Command restored.", "Command not found in trash.")


@app.command()
def purge(
    record_id: str = typer.Argument(..., help="Command ID"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
) -> None:
    """Permanently delete a command from the trash."""
    config = _load()
    if not yes and not typer.confirm("This action cannot be undone. Delete forever?", default=False):
        raise typer.Exit(1)
    deleted = _run(config, lambda store: store.permanent_delete(record_id))
    _report(deleted, "Command permanently deleted.", "Command not found in trash.")


@app.command(name="empty-trash")
def empty_trash(
    all_items: bool = typer.Option(False, "--all", help="Delete everything in the trash, not only expired items"),
) -> None:
    """Permanently delete expired (or all) trashed commands."""
    config = _load()
    if all_items:
        removed = _run(config, lambda store: store.empty_trash())
    else:
        removed = _run(config, lambda store: store.empty_expired_trash())
    console.print(f"[green]Permanently deleted {removed} command(s).[/green]")


@app.command()
def cleanup() -> None:
    """Purge expired trash and trash low-value commands if over capacity."""
    config = _load()
    result = _run(config, lambda store: store.enforce_capacity())
    console.print(f"[green]Purged {result.purged}, moved {result.trashed} to trash.[/green]")


@app.command()
def stats() -> None:
    """Show store and trash statistics."""
    config = _load()

    async def operation(store: CommandStore) -> tuple[int, int, int, int]:
        trash_stats = await store.get_trash_stats()
        most_used = await store.get_most_used()
        return await store.get_command_count(), trash_stats.count, trash_stats.oldest_days, len(most_used)

    count, trash_count, oldest_days, most_used = _run(config, operation)
    table = Table(title="Statistics")
    table.add_column("Key", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("active", f"{count} / {config.retention.max_commands}")
    table.add_row("most used", str(most_used))
    table.add_row("trash", str(trash_count))
    table.add_row("oldest in trash", f"{oldest_days} days")
    table.add_row("trash retention", f"{config.retention.trash_retention_days} days")
    console.print(table)


@app.command(name="import-history")
def import_history(
    file: Path = typer.Argument(..., help="File holding `history` output, or - for stdin"),
) -> None:
    """Import commands from shell history output."""
    config = _load()
    if str(file) == "-":
        text = sys.stdin.read()
    elif not file.exists():
        console.print(f"[red]File not found: {file}[/red]")
        raise typer.Exit(1)
    else:
        text = file.read_text(errors="replace")
    cleaner = _cleaner(config)
    saved = _run(config, lambda store: CaptureService(config, store, cleaner).import_history(text))
    console.print(f"[green]Imported {saved} command(s).[/green]")


@app.command(name="self-test")
def self_test() -> None:
    """Run the built-in prompt cleaning checks."""
    config = _load()
    cleaner = _cleaner(config)
    report = run_self_test(cleaner)

    table = Table(title="Prompt cleaning")
    table.add_column("Case", style="cyan")
    table.add_column("Shell")
    table.add_column("Result")
    for case in report.results:
        result = "[green]PASS[/green]" if case.passed else f"[red]FAIL[/red] got {escape(repr(case.actual))}"
        table.add_row(case.description, case.shell, result)
    console.print(table)
    console.print(f"{report.passed} passed, {report.failed} failed")
    console.print(f"[dim]{format_analytics(cleaner.analytics.snapshot())}[/dim]")
    if report.failed:
        raise typer.Exit(1)


@app.command()
def config(
    key: str = typer.Argument(None, help="Config key (e.g., retention.max_commands)"),
    value: str = typer.Argument(None, help="New value"),
) -> None:
    """View or modify configuration."""
    cfg = load_config()

    if key is None:
        table = Table(title="Configuration")
        table.add_column("Key", style="cyan")
        table.add_column("Value", style="green")

        table.add_row("capture.enabled", str(cfg.capture.enabled))
        table.add_row("capture.min_length", str(cfg.capture.min_length))
        table.add_row("capture.default_category", cfg.capture.default_category)
        table.add_row("capture.shell", cfg.capture.shell or "(detect)")
        for dialect, pattern in sorted(cfg.cleaning.prompt_regex.items()):
            table.add_row(f"cleaning.prompt_regex.{dialect}", escape(pattern))
        table.add_row("retention.max_commands", str(cfg.retention.max_commands))
        table.add_row("retention.trash_retention_days", str(cfg.retention.trash_retention_days))
        table.add_row("retention.most_used_threshold", str(cfg.retention.most_used_threshold))
        table.add_row("retention.recent_days", str(cfg.retention.recent_days))
        table.add_row("retention.eviction_buffer", str(cfg.retention.eviction_buffer))
        table.add_row("storage.db_path", cfg.storage.db_path)
        table.add_row("logging.level", cfg.logging.level)

        console.print(table)
        return

    if value is None:
        console.print("[red]Usage: dotcommand config <key> <value>[/red]")
        raise typer.Exit(1)

    parts = key.split(".")
    if len(parts) == 3 and parts[:2] == ["cleaning", "prompt_regex"]:
        dialect = parts[2]
        if dialect not in DIALECTS:
            console.print(f"[red]Unknown shell: {dialect}[/red]")
            raise typer.Exit(1)
        if value:
            try:
                ShellPromptCleaner().configure_override(dialect, value)
            except DotCommandError as e:
                console.print(f"[red]{escape(str(e))}[/red]")
                raise typer.Exit(1)
            cfg.cleaning.prompt_regex[dialect] = value.strip()
        else:
            cfg.cleaning.prompt_regex.pop(dialect, None)
        save_config(cfg)
        console.print(f"[green]{key} = {escape(value or '(default)')}[/green]")
        return

    if len(parts) != 2:
        console.print("[red]Key format: section.key (e.g., retention.max_commands)[/red]")
        raise typer.Exit(1)

    section, attr = parts
    section_map = {"capture": cfg.capture, "retention": cfg.retention, "storage": cfg.storage, "logging": cfg.logging}

    if section not in section_map:
        console.print(f"[red]Unknown section: {section}[/red]")
        raise typer.Exit(1)

    obj = section_map[section]
    if not hasattr(obj, attr):
        console.print(f"[red]Unknown key: {key}[/red]")
        raise typer.Exit(1)

    # Type coercion
    current = getattr(obj, attr)
    try:
        if isinstance(current, bool):
            typed_value = value.lower() in ("true", "1", "yes")
        elif isinstance(current, int):
            typed_value = int(value)
        else:
            typed_value = value
    except ValueError:
        console.print(f"[red]Invalid value type for {key}[/red]")
        raise typer.Exit(1)

    if key == "capture.shell" and typed_value and typed_value not in DIALECTS and typed_value != UNKNOWN:
        console.print(f"[red]Unknown shell: {typed_value}[/red]")
        raise typer.Exit(1)

    setattr(obj, attr, typed_value)
    save_config(cfg)
    console.print(f"[green]{key} = {escape(str(typed_value))}[/green]")


@app.command()
def logs(
    lines: int = typer.Option(50, "--lines", "-n", help="Number of lines"),
) -> None:
    """View the log file."""
    log_path = Path(load_config().logging.file).expanduser().resolve()
    if not log_path.exists():
        console.print("[dim]No log file found.[/dim]")
        return

    content = log_path.read_text()
    for line in content.strip().split("\n")[-lines:]:
        console.print(line, markup=False)


@app.command()
def version() -> None:
    """Show version information."""
    console.print(f"dotcommand v{__version__}")
    console.print(f"Python: {sys.version.split()[0]}")
    console.print(f"Config: {CONFIG_FILE}")


if __name__ == "__main__":
    app()
