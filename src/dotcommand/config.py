"""Configuration management using TOML + environment variables."""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from pathlib import Path

if sys.version_info >= (3, 11):
    import tomllib
else:
    try:
        import tomllib
    except ModuleNotFoundError:
        import tomli as tomllib  # type: ignore[no-redef]

import tomli_w

CONFIG_DIR = Path.home() / ".dotcommand"
CONFIG_FILE = CONFIG_DIR / "config.toml"


@dataclass
class CaptureConfig:
    enabled: bool = True
    min_length: int = 2
    default_category: str = "uncategorized"
    # Empty means detect from the environment.
    shell: str = ""


@dataclass
class CleaningConfig:
    prompt_regex: dict[str, str] = field(default_factory=dict)


@dataclass
class RetentionConfig:
    max_commands: int = 1000
    trash_retention_days: int = 90
    most_used_threshold: int = 10
    recent_days: int = 30
    eviction_buffer: int = 100


@dataclass
class StorageConfig:
    db_path: str = "~/.dotcommand/commands.db"


@dataclass
class LoggingConfig:
    level: str = "WARNING"
    file: str = "~/.dotcommand/dotcommand.log"


@dataclass
class AppConfig:
    capture: CaptureConfig = field(default_factory=CaptureConfig)
    cleaning: CleaningConfig = field(default_factory=CleaningConfig)
    retention: RetentionConfig = field(default_factory=RetentionConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def ensure_config_dir() -> None:
    """Create config directory with secure permissions."""
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)
    os.chmod(CONFIG_DIR, 0o700)


def load_config() -> AppConfig:
    """Load configuration from TOML file with env var overrides."""
    config = AppConfig()

    if CONFIG_FILE.exists():
        with open(CONFIG_FILE, "rb") as f:
            data = tomllib.load(f)

        capture = data.get("capture", {})
        config.capture.enabled = capture.get("enabled", config.capture.enabled)
        config.capture.min_length = capture.get("min_length", config.capture.min_length)
        config.capture.default_category = capture.get("default_category", config.capture.default_category)
        config.capture.shell = capture.get("shell", config.capture.shell)

        cleaning = data.get("cleaning", {})
        config.cleaning.prompt_regex = dict(cleaning.get("prompt_regex", {}))

        retention = data.get("retention", {})
        config.retention.max_commands = retention.get("max_commands", config.retention.max_commands)
        config.retention.trash_retention_days = retention.get(
            "trash_retention_days", config.retention.trash_retention_days
        )
        config.retention.most_used_threshold = retention.get(
            "most_used_threshold", config.retention.most_used_threshold
        )
        config.retention.recent_days = retention.get("recent_days", config.retention.recent_days)
        config.retention.eviction_buffer = retention.get("eviction_buffer", config.retention.eviction_buffer)

        storage = data.get("storage", {})
        config.storage.db_path = storage.get("db_path", config.storage.db_path)

        logging_cfg = data.get("logging", {})
        config.logging.level = logging_cfg.get("level", config.logging.level)
        config.logging.file = logging_cfg.get("file", config.logging.file)

    # Environment variable overrides
    if env_shell := os.environ.get("DOTCOMMAND_SHELL"):
        config.capture.shell = env_shell
    if env_min_length := os.environ.get("DOTCOMMAND_MIN_LENGTH"):
        config.capture.min_length = int(env_min_length)
    if env_max := os.environ.get("DOTCOMMAND_MAX_COMMANDS"):
        config.retention.max_commands = int(env_max)
    if env_retention := os.environ.get("DOTCOMMAND_TRASH_RETENTION_DAYS"):
        config.retention.trash_retention_days = int(env_retention)
    if env_db := os.environ.get("DOTCOMMAND_DB_PATH"):
        config.storage.db_path = env_db
    if env_log_level := os.environ.get("DOTCOMMAND_LOG_LEVEL"):
        config.logging.level = env_log_level

    return config


def save_config(config: AppConfig) -> None:
    """Save configuration to TOML file."""
    ensure_config_dir()

    data = {
        "capture": {
            "enabled": config.capture.enabled,
            "min_length": config.capture.min_length,
            "default_category": config.capture.default_category,
            "shell": config.capture.shell,
        },
        "cleaning": {
            "prompt_regex": dict(config.cleaning.prompt_regex),
        },
        "retention": {
            "max_commands": config.retention.max_commands,
            "trash_retention_days": config.retention.trash_retention_days,
            "most_used_threshold": config.retention.most_used_threshold,
            "recent_days": config.retention.recent_days,
            "eviction_buffer": config.retention.eviction_buffer,
        },
        "storage": {
            "db_path": config.storage.db_path,
        },
        "logging": {
            "level": config.logging.level,
            "file": config.logging.file,
        },
    }

    with open(CONFIG_FILE, "wb") as f:
        tomli_w.dump(data, f)

    os.chmod(CONFIG_FILE, 0o600)
