"""Tests for engine configuration loading."""

from __future__ import annotations

from pathlib import Path

import pytest

from rzmanager.config import (
    CONFIG_FILENAME,
    DEFAULT_APPLY_TIMEOUT,
    DEFAULT_DB_PATH,
    ConfigError,
    EngineConfig,
    load_config,
)
from rzmanager.tracking.models import EntityType


def _write(project: Path, text: str) -> None:
    (project / CONFIG_FILENAME).write_text(text, encoding="utf-8")


class TestEngineConfigFromDict:
    """Test EngineConfig.from_dict."""

    def test_defaults(self) -> None:
        """An empty mapping yields default settings."""
        config = EngineConfig.from_dict({})
        assert config.author == "rzmanager"
        assert config.workspace_id == "default"
        assert config.apply_timeout_seconds == DEFAULT_APPLY_TIMEOUT
        assert config.tables == {}

    def test_tables_keyed_by_entity_type(self) -> None:
        """Table overrides are keyed by entity type name."""
        config = EngineConfig.from_dict({"tables": {"NPC": "game.Npc", "Item": "game.Item"}})
        assert config.tables == {EntityType.NPC: "game.Npc", EntityType.ITEM: "game.Item"}

    def test_unknown_entity_type(self) -> None:
        """Unknown entity types in tables are rejected."""
        with pytest.raises(ValueError, match="Unknown entity type 'Dragon'"):
            EngineConfig.from_dict({"tables": {"Dragon": "x"}})

    def test_zero_timeout_disables_deadline(self) -> None:
        """A non-positive timeout means no deadline."""
        assert EngineConfig.from_dict({"apply_timeout_seconds": 0}).apply_timeout_seconds is None

    def test_failure_rate_bounds(self) -> None:
        """The simulated failure rate is a probability."""
        with pytest.raises(ValueError, match="simulated_failure_rate"):
            EngineConfig.from_dict({"simulated_failure_rate": 1.5})

    def test_relative_db_path_resolves(self, tmp_path: Path) -> None:
        """Relative database paths resolve against the project directory."""
        config = EngineConfig.from_dict({"db_path": "data/rz.db"}, base_dir=tmp_path)
        assert config.db_path == tmp_path / "data" / "rz.db"


class TestLoadConfig:
    """Test load_config."""

    def test_missing_file_uses_defaults(self, tmp_path: Path) -> None:
        """Without rzmanager.yaml the defaults apply."""
        config = load_config(tmp_path)
        assert config.db_path == tmp_path / DEFAULT_DB_PATH
        assert config.author == "rzmanager"

    def test_loads_yaml(self, tmp_path: Path) -> None:
        """Settings are read from rzmanager.yaml."""
        _write(
            tmp_path,
            "author: alice\n"
            "workspace_id: live\n"
            "apply_timeout_seconds: 2.5\n"
            "simulated_failure_rate: 0.5\n"
            "tables:\n"
            "  Monster: game.Monster\n",
        )

        config = load_config(tmp_path)

        assert config.author == "alice"
        assert config.workspace_id == "live"
        assert config.apply_timeout_seconds == 2.5
        assert config.simulated_failure_rate == 0.5
        assert config.tables == {EntityType.MONSTER: "game.Monster"}

    def test_empty_file(self, tmp_path: Path) -> None:
        """An empty file is the same as no settings."""
        _write(tmp_path, "")
        assert load_config(tmp_path).author == "rzmanager"

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        """Unparseable YAML raises ConfigError naming the file."""
        _write(tmp_path, "author: [unclosed\n")
        with pytest.raises(ConfigError) as exc_info:
            load_config(tmp_path)
        assert exc_info.value.path == tmp_path / CONFIG_FILENAME

    def test_non_mapping(self, tmp_path: Path) -> None:
        """The top level must be a mapping."""
        _write(tmp_path, "- a\n- b\n")
        with pytest.raises(ConfigError, match="mapping"):
            load_config(tmp_path)

    def test_bad_value_wrapped(self, tmp_path: Path) -> None:
        """Validation errors surface as ConfigError."""
        _write(tmp_path, "tables:\n  Dragon: x\n")
        with pytest.raises(ConfigError, match="Dragon"):
            load_config(tmp_path)


class TestEnvOverrides:
    """Test RZ_* environment overrides."""

    def test_env_wins_over_file(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """Environment variables take precedence over the file."""
        _write(tmp_path, "author: alice\napply_timeout_seconds: 5\n")
        monkeypatch.setenv("RZ_AUTHOR", "bob")
        monkeypatch.setenv("RZ_APPLY_TIMEOUT", "0")
        monkeypatch.setenv("RZ_DB_PATH", str(tmp_path / "env.db"))

        config = load_config(tmp_path)

        assert config.author == "bob"
        assert config.apply_timeout_seconds is None
        assert config.db_path == tmp_path / "env.db"

    def test_invalid_env_timeout_is_config_error(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """A non-numeric RZ_APPLY_TIMEOUT is reported as a ConfigError."""
        monkeypatch.setenv("RZ_APPLY_TIMEOUT", "soon")

        with pytest.raises(ConfigError, match="RZ_APPLY_TIMEOUT"):
            load_config(tmp_path)

    def test_invalid_env_timeout_with_file(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """The override is checked when a config file exists too."""
        _write(tmp_path, "author: alice\n")
        monkeypatch.setenv("RZ_APPLY_TIMEOUT", "soon")

        with pytest.raises(ConfigError, match="must be a number"):
            load_config(tmp_path)
