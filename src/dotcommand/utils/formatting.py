"""Text formatting helpers for the command line front end."""

from __future__ import annotations

from dotcommand.services.cleaning import CleaningAnalytics
from dotcommand.storage.models import CaptureResult, CommandRecord

MAX_LABEL_LENGTH = 40


def truncate(text: str, max_len: int = MAX_LABEL_LENGTH) -> str:
    """Shorten text to ``max_len`` characters, marking the cut with '...'."""
    if len(text) <= max_len:
        return text
    return text[:max_len] + "..."


def format_age(seconds: float) -> str:
    """Format an elapsed time in seconds as a short human-readable age."""
    seconds = max(seconds, 0)
    if seconds < 60:
        return "just now"
    elif seconds < 3600:
        return f"{int(seconds // 60)}m ago"
    elif seconds < 86400:
        return f"{int(seconds // 3600)}h ago"
    else:
        return f"{int(seconds // 86400)}d ago"


def format_flags(record: CommandRecord) -> str:
    flags = []
    if record.is_favorite:
        flags.append("fav")
    if record.is_deleted:
        flags.append("trash")
    if record.source != "manual":
        flags.append(record.source)
    return ",".join(flags)


def format_capture_result(result: CaptureResult) -> str:
    if result.saved and result.record is not None:
        return f"Saved [{result.category}] {result.command} ({result.record.id})"
    if result.command:
        return f"Skipped: {result.reason} ({result.command})"
    return f"Skipped: {result.reason}"


def format_analytics(analytics: CleaningAnalytics) -> str:
    total = analytics.total_commands
    rate = f"{analytics.successful_cleanings / total:.0%}" if total else "n/a"
    shells = ", ".join(f"{name}={count}" for name, count in sorted(analytics.shell_type_stats.items()))
    return (
        f"Cleaned {total} | ok {analytics.successful_cleanings} | failed {analytics.failed_cleanings} "
        f"| success rate {rate}\n"
        f"Recovery used {analytics.recovery_used} | corrections applied {analytics.corrections_applied}\n"
        f"Shells: {shells or '(none)'}"
    )
