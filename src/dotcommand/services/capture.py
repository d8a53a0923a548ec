"""Terminal capture pipeline: raw line -> clean -> classify -> save."""

from __future__ import annotations

import logging
import re

from dotcommand.config import AppConfig
from dotcommand.services.classifier import CategoryClassifier, category_classifier
from dotcommand.services.cleaning import ShellPromptCleaner
from dotcommand.storage.models import CaptureResult
from dotcommand.storage.store import CommandStore

logger = logging.getLogger(__name__)

HISTORY_SKIP_COMMANDS: frozenset[str] = frozenset({
    "pwd", "ls", "cd", "which", "clear", "history",
    "echo", "exit", "vi", "vim", "nano", "cat", "less",
    "grep", "find", "chmod", "chown", "ps", "top",
    "df", "du", "whoami", "id", "date", "who",
})

_NUMBERED_ENTRY = re.compile(r"^\s*\d+:?\s*(.+)$")


def parse_history_output(history_text: str) -> list[str]:
    """Extract commands from pasted ``history`` output.

    Handles `` 1234  ls -la``, ``1234: ls -la`` and bare command lines.
    """
    commands: list[str] = []
    for line in history_text.splitlines():
        stripped = line.strip()
        if not stripped:
            continue
        match = _NUMBERED_ENTRY.match(stripped)
        command = match.group(1).strip() if match else stripped
        if not command or command.split()[0] in HISTORY_SKIP_COMMANDS:
            continue
        commands.append(command)
    return commands


class CaptureService:
    """Turn terminal lines into saved commands."""

    def __init__(
        self,
        config: AppConfig,
        store: CommandStore,
        cleaner: ShellPromptCleaner,
        classifier: CategoryClassifier = category_classifier,
    ) -> None:
        self.config = config
        self.store = store
        self.cleaner = cleaner
        self.classifier = classifier

    def resolve_dialect(self, dialect: str | None = None) -> str:
        return dialect or self.config.capture.shell or self.cleaner.detect_shell_dialect()

    async def capture(self, raw_line: str, dialect: str | None = None) -> CaptureResult:
        """Clean, classify and save one terminal line."""
        if not self.config.capture.enabled:
            return CaptureResult(reason="Capture is disabled in configuration.")
        if not raw_line.strip():
            return CaptureResult(reason="Empty input")

        shell = self.resolve_dialect(dialect)
        cleaned = self.cleaner.clean(raw_line, shell)

        if len(cleaned) < self.config.capture.min_length:
            logger.debug("Command too short or empty, skipping: %r", cleaned)
            return CaptureResult(command=cleaned, dialect=shell, reason="Command too short")

        category = self.classifier.classify(cleaned)

        if await self.store.command_exists(cleaned):
            return CaptureResult(command=cleaned, category=category, dialect=shell, reason="Already saved")

        category = category or self.config.capture.default_category
        record = await self.store.save(cleaned, category=category, source="auto-capture")
        return CaptureResult(saved=True, command=cleaned, category=category, dialect=shell, record=record)

    async def import_history(self, history_text: str) -> int:
        """Save commands from ``history`` output that are not already saved."""
        saved = 0
        for command in parse_history_output(history_text):
            if await self.store.command_exists(command):
                continue
            category = self.classifier.classify(command) or self.config.capture.default_category
            await self.store.save(command, category=category, source="imported-history")
            saved += 1
        logger.info("Imported %d command(s) from history", saved)
        return saved
