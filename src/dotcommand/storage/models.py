"""Data models for dotcommand."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any

SOURCES: tuple[str, ...] = ("manual", "auto-capture", "imported-history", "prepared-template")

# Fields a caller may change through CommandStore.update_command().
MUTABLE_FIELDS: frozenset[str] = frozenset(
    {"command", "name", "category", "is_favorite", "usage_count", "last_used", "deleted_at", "source"}
)


@dataclass
class CommandRecord:
    """A stored command.

    ``deleted_at`` set means the record sits in the trash.
    """

    id: str
    command: str
    created_at: float
    name: str | None = None
    category: str | None = None
    last_used: float | None = None
    usage_count: int = 0
    is_favorite: bool = False
    deleted_at: float | None = None
    source: str = "manual"

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    @property
    def label(self) -> str:
        return self.name or self.command

    def to_row(self) -> dict[str, Any]:
        row = asdict(self)
        row["is_favorite"] = int(self.is_favorite)
        return row

    @classmethod
    def from_row(cls, row: Any) -> CommandRecord:
        return cls(
            id=row["id"],
            command=row["command"],
            created_at=row["created_at"],
            name=row["name"],
            category=row["category"],
            last_used=row["last_used"],
            usage_count=row["usage_count"] or 0,
            is_favorite=bool(row["is_favorite"]),
            deleted_at=row["deleted_at"],
            source=row["source"],
        )


@dataclass
class TrashStats:
    """Trash size and the age of its oldest entry."""

    count: int = 0
    oldest_days: int = 0


@dataclass
class CleanupResult:
    """Outcome of one capacity-enforcement run."""

    purged: int = 0
    trashed: int = 0


@dataclass
class CaptureResult:
    """Result of pushing one raw terminal line through the capture pipeline."""

    saved: bool = False
    command: str = ""
    category: str | None = None
    dialect: str = "unknown"
    record: CommandRecord | None = None
    reason: str = ""


@dataclass
class CleaningCaseResult:
    description: str
    input: str
    shell: str
    expected: str
    actual: str
    passed: bool


@dataclass
class SelfTestReport:
    passed: int = 0
    failed: int = 0
    results: list[CleaningCaseResult] = field(default_factory=list)
