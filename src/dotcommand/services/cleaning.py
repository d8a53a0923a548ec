"""Shell prompt stripping for captured terminal lines.

A raw line such as ``user@host:~$ ls -la`` goes through these stages:

1. learned corrections (user-confirmed substring fixes, newest first)
2. backslash line-continuation joining
3. a per-dialect override pattern from configuration, if one is set
4. the dialect's built-in prompt pattern
5. whitespace collapsing and validation
6. recovery strategies, tried in order until one yields a valid command

Cleaning never raises. When nothing validates, the best-effort text is
returned and the attempt is counted as a failure in ``CleaningAnalytics``.
"""

from __future__ import annotations

import logging
import os
import re
import time
from dataclasses import dataclass, field, replace
from typing import Callable, Iterator, cast

from dotcommand.errors import ValidationError
from dotcommand.storage.models import CleaningCaseResult, SelfTestReport

logger = logging.getLogger(__name__)

DIALECTS: tuple[str, ...] = ("powershell", "cmd", "zsh", "bash", "fish")
UNKNOWN = "unknown"

CACHE_SECONDS = 30.0
MAX_CORRECTIONS = 100
MAX_COMMAND_LENGTH = 1000

SHELL_PATTERNS: dict[str, re.Pattern[str]] = {
    "powershell": re.compile(r"^.*(PS\s+.*?>\s*)"),
    "cmd": re.compile(r"^.*(>\s*)"),
    "zsh": re.compile(r"^.*%\s+"),
    "bash": re.compile(r"^.*\$\s+"),
    "fish": re.compile(r"^.*(>\s*)"),
    "boxed": re.compile(r"^.*\s*└─+\$\s*"),
    "fallback": re.compile(r"^.*[#$%>]+\s*"),
}

# Two-line prompts drawn with box glyphs, e.g. ``┌──(user㉿kali)-[~] └─$ cmd``.
BOXED_OPENER = "┌──"
BOXED_CLOSER = "└─$"

RECOVERY_PATTERN_ORDER: tuple[str, ...] = ("powershell", "cmd", "zsh", "bash", "fish", "boxed", "fallback")

COMMAND_STARTERS: tuple[str, ...] = (
    "npm", "yarn", "pnpm", "git", "docker", "docker-compose",
    "python", "python3", "pip", "pip3", "node", "npx",
    "ls", "cd", "mkdir", "rm", "cp", "mv", "cat", "grep",
    "curl", "wget", "ssh", "scp", "rsync",
)

PROMPT_SHAPES: tuple[re.Pattern[str], ...] = (
    re.compile(r"\b[A-Za-z0-9_]+@[A-Za-z0-9_.-]+:[^$]*\$ "),  # user@host:~/path$
    re.compile(r"\b[A-Za-z0-9_]+@[A-Za-z0-9_.-]+:[^$]*% "),  # user@host:~/path%
    re.compile(r"PS [A-Za-z]:[^>]*> "),  # PS C:\path>
    re.compile(r"[A-Za-z]:[^>]*> "),  # C:\path>
    re.compile(r"> "),
    re.compile(r"└─+\$ "),
)

_WHITESPACE = re.compile(r"\s+")
_TRAILING_PROMPT = re.compile(r"[#$%>]$")
_LEADING_PROMPT = re.compile(r"^\s*[#$%>]")
_ALPHANUMERIC = re.compile(r"[a-zA-Z0-9]")


def collapse_whitespace(text: str) -> str:
    return _WHITESPACE.sub(" ", text).strip()


def is_valid_command(command: str) -> bool:
    """Check that a cleaned command looks like a command and not a prompt."""
    return (
        0 < len(command) < MAX_COMMAND_LENGTH
        and not _TRAILING_PROMPT.search(command.strip())
        and not _LEADING_PROMPT.search(command)
    )


def join_continuations(text: str) -> str:
    """Join backslash-continued lines and return the final line."""
    lines = text.split("\n")
    for i in range(len(lines) - 2, -1, -1):
        current = lines[i].rstrip()
        if current.endswith("\\"):
            lines[i] = current[:-1] + " " + lines[i + 1]
            del lines[i + 1]
    return lines[-1].strip()


def dialect_from_name(name: str, executable: bool = False) -> str | None:
    """Map a shell name or executable path to a dialect id."""
    lowered = name.lower()
    if "pwsh" in lowered or "powershell" in lowered:
        return "powershell"
    if ("cmd.exe" if executable else "cmd") in lowered:
        return "cmd"
    for dialect in ("zsh", "bash", "fish"):
        if dialect in lowered:
            return dialect
    return None


def _default_launch_path() -> str | None:
    return os.environ.get("SHELL") or os.environ.get("COMSPEC")


class ShellContext:
    """Cached shell dialect for the current session.

    ``integration`` asks the host which shell is running and may return None.
    ``launch_path`` supplies the shell executable the terminal was started with.
    """

    def __init__(
        self,
        integration: Callable[[], str | None] | None = None,
        launch_path: Callable[[], str | None] = _default_launch_path,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._integration = integration
        self._launch_path = launch_path
        self._clock = clock
        self._dialect: str | None = None
        self._resolved_at = 0.0

    def detect(self) -> str:
        now = self._clock()
        if self._dialect is not None and now - self._resolved_at < CACHE_SECONDS:
            return self._dialect
        self._dialect = self._resolve()
        self._resolved_at = now
        return self._dialect

    def override(self, dialect: str) -> None:
        if dialect not in DIALECTS and dialect != UNKNOWN:
            raise ValidationError(f"Unknown shell dialect: {dialect}")
        self._dialect = dialect
        self._resolved_at = self._clock()

    def invalidate(self) -> None:
        self._dialect = None

    def _resolve(self) -> str:
        if self._integration is not None:
            try:
                name = self._integration()
            except Exception:
                logger.warning("Shell integration lookup failed", exc_info=True)
                name = None
            if name:
                dialect = dialect_from_name(name)
                if dialect:
                    logger.debug("Detected shell via integration: %s", dialect)
                    return dialect

        path = self._launch_path()
        if not path:
            return UNKNOWN
        return dialect_from_name(path, executable=True) or UNKNOWN


@dataclass(frozen=True)
class CorrectionRecord:
    original: str
    corrected: str
    dialect: str
    timestamp: float


class CorrectionBuffer:
    """Fixed-capacity FIFO of learned corrections; the oldest entry is overwritten first."""

    def __init__(self, capacity: int = MAX_CORRECTIONS) -> None:
        if capacity < 1:
            raise ValueError("capacity must be positive")
        self._slots: list[CorrectionRecord | None] = [None] * capacity
        self._head = 0
        self._size = 0

    @property
    def capacity(self) -> int:
        return len(self._slots)

    def __len__(self) -> int:
        return self._size

    def __iter__(self) -> Iterator[CorrectionRecord]:
        start = (self._head - self._size) % self.capacity
        for offset in range(self._size):
            yield cast(CorrectionRecord, self._slots[(start + offset) % self.capacity])

    def append(self, record: CorrectionRecord) -> None:
        self._slots[self._head] = record
        self._head = (self._head + 1) % self.capacity
        if self._size < self.capacity:
            self._size += 1

    def newest_first(self) -> Iterator[CorrectionRecord]:
        for offset in range(1, self._size + 1):
            yield cast(CorrectionRecord, self._slots[(self._head - offset) % self.capacity])

    def clear(self) -> None:
        self._slots = [None] * self.capacity
        self._head = 0
        self._size = 0


@dataclass
class CleaningAnalytics:
    """Process-lifetime cleaning counters. Never persisted."""

    total_commands: int = 0
    successful_cleanings: int = 0
    failed_cleanings: int = 0
    recovery_used: int = 0
    corrections_applied: int = 0
    shell_type_stats: dict[str, int] = field(default_factory=dict)
    last_reset: float = field(default_factory=time.time)

    def record(self, success: bool, dialect: str, used_recovery: bool = False, used_correction: bool = False) -> None:
        self.total_commands += 1
        if success:
            self.successful_cleanings += 1
        else:
            self.failed_cleanings += 1
        if used_recovery:
            self.recovery_used += 1
        if used_correction:
            self.corrections_applied += 1
        self.shell_type_stats[dialect] = self.shell_type_stats.get(dialect, 0) + 1

    def snapshot(self) -> CleaningAnalytics:
        return replace(self, shell_type_stats=dict(self.shell_type_stats))

    def reset(self) -> None:
        self.total_commands = 0
        self.successful_cleanings = 0
        self.failed_cleanings = 0
        self.recovery_used = 0
        self.corrections_applied = 0
        self.shell_type_stats = {}
        self.last_reset = time.time()


# Recovery strategies. Each takes the uncollapsed working line and returns a
# valid candidate or None.


def _validated(candidate: str) -> str | None:
    candidate = collapse_whitespace(candidate)
    return candidate if is_valid_command(candidate) else None


def recover_with_any_dialect(line: str) -> str | None:
    for name in RECOVERY_PATTERN_ORDER:
        result = _validated(SHELL_PATTERNS[name].sub("", line, count=1))
        if result is not None:
            logger.debug("Recovered with %s pattern", name)
            return result
    return None


def recover_from_command_starter(line: str) -> str | None:
    for starter in COMMAND_STARTERS:
        index = line.rfind(starter)
        if index > 0:
            result = _validated(line[index:])
            if result is not None:
                logger.debug("Recovered from command starter %r", starter)
                return result
    return None


def recover_with_prompt_shapes(line: str) -> str | None:
    original = line.strip()
    for pattern in PROMPT_SHAPES:
        stripped = pattern.sub("", line, count=1).strip()
        if stripped == original:
            continue
        result = _validated(stripped)
        if result is not None:
            return result
    return None


def recover_from_first_alphanumeric(line: str) -> str | None:
    match = _ALPHANUMERIC.search(line)
    if match and match.start() > 0:
        return _validated(line[match.start():])
    return None


RECOVERY_STRATEGIES: tuple[Callable[[str], str | None], ...] = (
    recover_with_any_dialect,
    recover_from_command_starter,
    recover_with_prompt_shapes,
    recover_from_first_alphanumeric,
)


class ShellPromptCleaner:
    """Turn raw terminal lines into normalized command strings."""

    def __init__(
        self,
        overrides: dict[str, str] | None = None,
        corrections: CorrectionBuffer | None = None,
        analytics: CleaningAnalytics | None = None,
        shell_context: ShellContext | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.corrections = corrections if corrections is not None else CorrectionBuffer()
        self.analytics = analytics if analytics is not None else CleaningAnalytics()
        self.shell_context = shell_context if shell_context is not None else ShellContext()
        self._clock = clock
        self._overrides: dict[str, re.Pattern[str]] = {}
        for dialect, pattern in (overrides or {}).items():
            try:
                self.configure_override(dialect, pattern)
            except ValidationError:
                logger.error("Invalid custom prompt regex for %s, using defaults: %s", dialect, pattern)

    @property
    def overrides(self) -> dict[str, str]:
        return {dialect: compiled.pattern for dialect, compiled in self._overrides.items()}

    def detect_shell_dialect(self) -> str:
        return self.shell_context.detect()

    def configure_override(self, dialect: str, pattern: str) -> None:
        """Install a custom prompt pattern for a dialect. Persisting it is the caller's job."""
        if not pattern or not pattern.strip():
            raise ValidationError("Pattern cannot be empty")
        try:
            compiled = re.compile(pattern.strip())
        except re.error as e:
            raise ValidationError(f"Invalid regex pattern: {e}") from e
        self._overrides[dialect] = compiled

    def clear_override(self, dialect: str) -> None:
        self._overrides.pop(dialect, None)

    def learn_correction(self, original: str, corrected: str, dialect: str) -> CorrectionRecord:
        original = original.strip()
        if not original:
            raise ValidationError("Correction source text cannot be empty")
        record = CorrectionRecord(original, corrected.strip(), dialect, self._clock())
        self.corrections.append(record)
        logger.info("Learned correction for %s: %r -> %r", dialect, record.original, record.corrected)
        return record

    def clean(self, raw_line: str, dialect: str = UNKNOWN) -> str:
        text = raw_line.strip()

        corrected = self._apply_corrections(text, dialect)
        used_correction = corrected is not None
        if corrected is not None:
            text = corrected

        line = join_continuations(text)
        logger.debug("Cleaning %r as %s", line, dialect)

        override = self._overrides.get(dialect)
        if override is not None:
            cleaned = override.sub("", line, count=1).strip()
            self.analytics.record(True, dialect, used_correction=used_correction)
            return cleaned

        command = collapse_whitespace(self._strip_prompt(text, line, dialect))
        if is_valid_command(command):
            self.analytics.record(True, dialect, used_correction=used_correction)
            return command

        logger.info("Cleaned command failed validation, attempting recovery: %r", line)
        for strategy in RECOVERY_STRATEGIES:
            candidate = strategy(line)
            if candidate is not None and is_valid_command(candidate):
                logger.info("Recovery succeeded with %s: %r", strategy.__name__, candidate)
                self.analytics.record(True, dialect, used_recovery=True, used_correction=used_correction)
                return candidate

        logger.warning("All cleaning and recovery strategies failed for: %r", raw_line)
        self.analytics.record(False, dialect, used_recovery=True, used_correction=used_correction)
        return command

    def _apply_corrections(self, text: str, dialect: str) -> str | None:
        for correction in self.corrections.newest_first():
            if correction.dialect == dialect and correction.original in text:
                logger.debug("Applied learned correction %r -> %r", correction.original, correction.corrected)
                return text.replace(correction.original, correction.corrected, 1)
        return None

    @staticmethod
    def _strip_prompt(text: str, line: str, dialect: str) -> str:
        if dialect in ("bash", "zsh"):
            if BOXED_OPENER in text and BOXED_CLOSER in line:
                return SHELL_PATTERNS["boxed"].sub("", line, count=1)
            return SHELL_PATTERNS[dialect].sub("", line, count=1)
        if dialect in DIALECTS:
            return SHELL_PATTERNS[dialect].sub("", line, count=1)
        return SHELL_PATTERNS["fallback"].sub("", line, count=1)


SELF_TEST_CASES: tuple[tuple[str, str, str, str], ...] = (
    ("user@host:~$ ls -la", "bash", "ls -la", "Basic bash prompt"),
    ("user@mac % git status", "zsh", "git status", "Basic zsh prompt"),
    ("PS C:\\Users\\user> dir", "powershell", "dir", "Basic PowerShell prompt"),
    ("C:\\>cd temp", "cmd", "cd temp", "Basic CMD prompt"),
    ("┌──(user㉿kali)-[~] └─$ npm install", "bash", "npm install", "Boxed two-line prompt"),
    ("user@host:/very/long/path/that/goes/on$ docker ps", "bash", "docker ps", "Long path bash prompt"),
    ("PS C:\\Program Files\\PowerShell> Get-Process", "powershell", "Get-Process", "PowerShell with path"),
    ("user@host:~$ npm install \\\n  lodash \\\n  express", "bash", "npm install lodash express", "Multi-line npm install"),
    (">>> python3", UNKNOWN, "python3", "Fallback pattern"),
    ("$ ls", "bash", "ls", "Simple dollar prompt"),
    ("% pwd", "zsh", "pwd", "Simple percent prompt"),
    ("🚀 custom> git commit", UNKNOWN, "git commit", "Custom emoji prompt"),
)


def run_self_test(cleaner: ShellPromptCleaner | None = None) -> SelfTestReport:
    """Run the built-in prompt table through ``clean()`` and count passes."""
    cleaner = cleaner if cleaner is not None else ShellPromptCleaner()
    report = SelfTestReport()
    for raw, shell, expected, description in SELF_TEST_CASES:
        actual = cleaner.clean(raw, shell)
        passed = actual == expected
        if passed:
            report.passed += 1
        else:
            report.failed += 1
            logger.warning("Self-test failed: %s (expected %r, got %r)", description, expected, actual)
        report.results.append(CleaningCaseResult(description, raw, shell, expected, actual, passed))
    return report
