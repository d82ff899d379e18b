"""Engine configuration loading.

Configuration comes from ``rzmanager.yaml`` in the project directory, with
environment variables taking precedence:

- ``RZ_AUTHOR``: default commit author
- ``RZ_APPLY_TIMEOUT``: apply deadline in seconds (0 disables it)
- ``RZ_DB_PATH``: staging database path
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from ruamel.yaml import YAML

from rzmanager.errors import RZManagerError
from rzmanager.tracking.models import EntityType

CONFIG_FILENAME = "rzmanager.yaml"

DEFAULT_AUTHOR = "rzmanager"
DEFAULT_WORKSPACE = "default"
DEFAULT_PROFILE = "local"
DEFAULT_DB_PATH = ".rzmanager/staging.db"
DEFAULT_APPLY_TIMEOUT = 30.0


class ConfigError(RZManagerError):
    """Raised when configuration cannot be loaded."""

    def __init__(self, path: Path, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"Failed to load config at {path}: {reason}")


@dataclass
class EngineConfig:
    """Settings for the staging store, commit engine and simulated connection.

    Attributes:
        author: Author recorded on commits when none is given.
        workspace_id: Workspace the CLI operates on.
        profile_id: Server profile recorded on changes and commits.
        db_path: SQLite staging database. Relative paths resolve against
            the project directory.
        apply_timeout_seconds: Apply deadline; None disables it.
        simulated_latency_seconds: Latency of the simulated connection.
        simulated_failure_rate: Failure probability of the simulated connection.
        tables: Per entity type table name overrides.
    """

    author: str = DEFAULT_AUTHOR
    workspace_id: str = DEFAULT_WORKSPACE
    profile_id: str = DEFAULT_PROFILE
    db_path: Path = field(default_factory=lambda: Path(DEFAULT_DB_PATH))
    apply_timeout_seconds: float | None = DEFAULT_APPLY_TIMEOUT
    simulated_latency_seconds: float = 0.0
    simulated_failure_rate: float = 0.0
    tables: dict[EntityType, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any], base_dir: Path | None = None) -> EngineConfig:
        """Create config from a dictionary.

        Args:
            data: Parsed YAML mapping.
            base_dir: Directory relative ``db_path`` values resolve against.

        Raises:
            ValueError: If a value has the wrong type or an unknown entity type
                appears under ``tables``.
        """
        tables: dict[EntityType, str] = {}
        for name, table in dict(data.get("tables") or {}).items():
            try:
                tables[EntityType(str(name))] = str(table)
            except ValueError:
                known = ", ".join(t.value for t in EntityType)
                raise ValueError(f"Unknown entity type '{name}' in tables ({known})") from None

        db_path = Path(data.get("db_path", DEFAULT_DB_PATH))
        if base_dir is not None and not db_path.is_absolute():
            db_path = base_dir / db_path

        failure_rate = float(data.get("simulated_failure_rate", 0.0))
        if not 0.0 <= failure_rate <= 1.0:
            raise ValueError(f"simulated_failure_rate must be in [0, 1], got {failure_rate}")

        timeout = _timeout(data.get("apply_timeout_seconds", DEFAULT_APPLY_TIMEOUT))
        return cls(
            author=str(data.get("author", DEFAULT_AUTHOR)),
            workspace_id=str(data.get("workspace_id", DEFAULT_WORKSPACE)),
            profile_id=str(data.get("profile_id", DEFAULT_PROFILE)),
            db_path=db_path,
            apply_timeout_seconds=timeout,
            simulated_latency_seconds=float(data.get("simulated_latency_seconds", 0.0)),
            simulated_failure_rate=failure_rate,
            tables=tables,
        )

    def apply_env(self) -> EngineConfig:
        """Apply environment variable overrides in place and return self.

        Raises:
            ValueError: If ``RZ_APPLY_TIMEOUT`` is not a number.
        """
        if author := os.getenv("RZ_AUTHOR"):
            self.author = author
        if timeout := os.getenv("RZ_APPLY_TIMEOUT"):
            try:
                self.apply_timeout_seconds = _timeout(timeout)
            except ValueError:
                raise ValueError(f"RZ_APPLY_TIMEOUT must be a number, got {timeout!r}") from None
        if db_path := os.getenv("RZ_DB_PATH"):
            self.db_path = Path(db_path)
        return self


def _timeout(value: Any) -> float | None:
    if value is None:
        return None
    seconds = float(value)
    return seconds if seconds > 0 else None


def load_config(project_path: Path) -> EngineConfig:
    """Load configuration for a project directory.

    A missing ``rzmanager.yaml`` yields the defaults. Environment
    overrides are applied either way.

    Raises:
        ConfigError: If the file exists but cannot be parsed, or an
            environment override has an invalid value.
    """
    config_path = project_path / CONFIG_FILENAME
    if not config_path.exists():
        return _with_env(EngineConfig(db_path=project_path / DEFAULT_DB_PATH), config_path)

    yaml = YAML(typ="safe")
    try:
        with config_path.open("r", encoding="utf-8") as f:
            data = yaml.load(f)
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigError(config_path, "Top level must be a mapping")
        config = EngineConfig.from_dict(data, base_dir=project_path)
    except ConfigError:
        raise
    except Exception as e:
        raise ConfigError(config_path, str(e)) from e
    return _with_env(config, config_path)


def _with_env(config: EngineConfig, config_path: Path) -> EngineConfig:
    try:
        return config.apply_env()
    except ValueError as e:
        raise ConfigError(config_path, f"Invalid environment override: {e}") from e
