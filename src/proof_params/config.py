"""Configuration for the parameter cache and distribution endpoint.

Values come from ``~/.proof-params/config.toml`` (section ``[params]``),
overridden by environment variables.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Optional

import toml  # type: ignore[import-untyped]

from proof_params.catalog.store import MANIFEST_FILENAME
from proof_params.errors import ConfigError

DEFAULT_CACHE_DIR = Path("/var/tmp/proof-parameters")

CACHE_ENV_VAR = "PROOF_PARAMS_CACHE"
MANIFEST_ENV_VAR = "PROOF_PARAMS_MANIFEST"
BASE_URL_ENV_VAR = "PROOF_PARAMS_BASE_URL"
WORKERS_ENV_VAR = "PROOF_PARAMS_WORKERS"

SETTINGS_KEYS = ("cache_dir", "manifest_path", "base_url", "workers", "max_attempts", "timeout", "lock_timeout")


@dataclass(frozen=True)
class Settings:
    """Resolved configuration for one run."""

    cache_dir: Path = DEFAULT_CACHE_DIR
    manifest_path: Optional[Path] = None
    base_url: Optional[str] = None
    workers: int = 4
    max_attempts: int = 3
    timeout: float = 60.0
    lock_timeout: float = 30.0

    @property
    def resolved_manifest_path(self) -> Path:
        return self.manifest_path or self.cache_dir / MANIFEST_FILENAME

    def with_overrides(self, **overrides: Any) -> Settings:
        """Copy with the non-None ``overrides`` applied."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})

    def to_dict(self) -> dict[str, Any]:
        return {
            "cache_dir": str(self.cache_dir),
            "manifest_path": str(self.resolved_manifest_path),
            "base_url": self.base_url,
            "workers": self.workers,
            "max_attempts": self.max_attempts,
            "timeout": self.timeout,
            "lock_timeout": self.lock_timeout,
        }


def _coerce(key: str, value: Any) -> Any:
    try:
        if key in ("cache_dir", "manifest_path"):
            return Path(str(value)).expanduser()
        if key == "base_url":
            return str(value).rstrip("/") or None
        if key in ("workers", "max_attempts"):
            number = int(value)
            if number < 1:
                raise ValueError("must be >= 1")
            return number
        if key in ("timeout", "lock_timeout"):
            number = float(value)
            if number <= 0:
                raise ValueError("must be > 0")
            return number
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid value for {key}: {value!r} ({exc})") from exc
    raise ConfigError(f"Unknown configuration key: {key}")


class ParamsConfig:
    """Manage proof-params configuration"""

    def __init__(self, config_dir: Optional[Path] = None) -> None:
        self.config_dir = config_dir or Path.home() / ".proof-params"
        self.config_file = self.config_dir / "config.toml"

    def _read_file(self) -> dict[str, Any]:
        if not self.config_file.exists():
            return {}
        try:
            return toml.load(self.config_file)
        except (toml.TomlDecodeError, OSError) as exc:
            raise ConfigError(f"Cannot read {self.config_file}: {exc}") from exc

    def _read_section(self) -> dict[str, Any]:
        section = self._read_file().get("params")
        return section if isinstance(section, dict) else {}

    def load(self) -> Settings:
        """Resolve settings from the config file and environment."""
        values: dict[str, Any] = {}
        for key, value in self._read_section().items():
            if key in SETTINGS_KEYS:
                values[key] = _coerce(key, value)

        env_map = {
            CACHE_ENV_VAR: "cache_dir",
            MANIFEST_ENV_VAR: "manifest_path",
            BASE_URL_ENV_VAR: "base_url",
            WORKERS_ENV_VAR: "workers",
        }
        for env_var, key in env_map.items():
            raw = os.environ.get(env_var)
            if raw:
                values[key] = _coerce(key, raw)

        return Settings(**values)

    def set_value(self, key: str, value: str) -> None:
        """Persist one key in the config file."""
        if key not in SETTINGS_KEYS:
            raise ConfigError(f"Unknown configuration key: {key}")
        coerced = _coerce(key, value)

        self.config_dir.mkdir(parents=True, exist_ok=True)
        config = self._read_file()

        section = config.get("params")
        if not isinstance(section, dict):
            section = {}
            config["params"] = section
        section[key] = str(coerced) if isinstance(coerced, Path) else coerced

        try:
            with open(self.config_file, "w", encoding="utf-8") as f:
                toml.dump(config, f)
        except OSError as exc:
            raise ConfigError(f"Cannot write {self.config_file}: {exc}") from exc
