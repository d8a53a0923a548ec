"""Tests for configuration module."""

from __future__ import annotations

import pytest

from dotcommand.config import (
    AppConfig,
    CaptureConfig,
    CleaningConfig,
    RetentionConfig,
    save_config,
    load_config,
)

ENV_VARS = (
    "DOTCOMMAND_SHELL",
    "DOTCOMMAND_MIN_LENGTH",
    "DOTCOMMAND_MAX_COMMANDS",
    "DOTCOMMAND_TRASH_RETENTION_DAYS",
    "DOTCOMMAND_DB_PATH",
    "DOTCOMMAND_LOG_LEVEL",
)


@pytest.fixture
def config_paths(tmp_path, monkeypatch):
    import dotcommand.config as cfg_module

    config_file = tmp_path / "config.toml"
    monkeypatch.setattr(cfg_module, "CONFIG_FILE", config_file)
    monkeypatch.setattr(cfg_module, "CONFIG_DIR", tmp_path)
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return config_file


class TestAppConfig:
    def test_defaults(self):
        config = AppConfig()
        assert config.capture.enabled is True
        assert config.capture.min_length == 2
        assert config.capture.default_category == "uncategorized"
        assert config.cleaning.prompt_regex == {}
        assert config.retention.max_commands == 1000
        assert config.retention.trash_retention_days == 90
        assert config.retention.most_used_threshold == 10
        assert config.retention.recent_days == 30
        assert config.retention.eviction_buffer == 100

    def test_missing_file_gives_defaults(self, config_paths):
        assert load_config() == AppConfig()

    def test_save_and_load(self, config_paths):
        config = AppConfig(
            capture=CaptureConfig(enabled=False, min_length=4, default_category="misc", shell="zsh"),
            cleaning=CleaningConfig(prompt_regex={"bash": r"^\[.*?\]\s*"}),
            retention=RetentionConfig(max_commands=50, eviction_buffer=5),
        )

        save_config(config)
        assert config_paths.exists()
        assert oct(config_paths.stat().st_mode & 0o777) == oct(0o600)

        loaded = load_config()
        assert loaded.capture.enabled is False
        assert loaded.capture.min_length == 4
        assert loaded.capture.default_category == "misc"
        assert loaded.capture.shell == "zsh"
        assert loaded.cleaning.prompt_regex == {"bash": r"^\[.*?\]\s*"}
        assert loaded.retention.max_commands == 50
        assert loaded.retention.eviction_buffer == 5
        assert loaded.retention.trash_retention_days == 90

    def test_env_overrides(self, config_paths, monkeypatch):
        save_config(AppConfig(retention=RetentionConfig(max_commands=50)))
        monkeypatch.setenv("DOTCOMMAND_MAX_COMMANDS", "20")
        monkeypatch.setenv("DOTCOMMAND_SHELL", "fish")
        monkeypatch.setenv("DOTCOMMAND_DB_PATH", "/tmp/other.db")
        monkeypatch.setenv("DOTCOMMAND_LOG_LEVEL", "DEBUG")

        loaded = load_config()
        assert loaded.retention.max_commands == 20
        assert loaded.capture.shell == "fish"
        assert loaded.storage.db_path == "/tmp/other.db"
        assert loaded.logging.level == "DEBUG"

    def test_partial_file(self, config_paths):
        config_paths.write_text('[retention]\nmax_commands = 7\n')
        loaded = load_config()
        assert loaded.retention.max_commands == 7
        assert loaded.retention.recent_days == 30
        assert loaded.capture.enabled is True
