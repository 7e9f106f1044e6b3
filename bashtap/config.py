"""Run configuration file management.

Reads the ``.bashtap.yml`` file that stores default scheduling and output
settings.  Command-line flags override the file; ``BASHTAP_TEST_TIMEOUT``
overrides the file's timeout.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml

DEFAULT_CONFIG_PATH = Path(".bashtap.yml")

TIMEOUT_ENV_VAR = "BASHTAP_TEST_TIMEOUT"

# Default configuration values
DEFAULT_CONFIG: dict[str, Any] = {
    "jobs": 1,
    "parallelize_across_files": True,
    "parallelize_within_files": True,
    "timeout": None,
    "formatter": None,
    "report_formatter": None,
    "output": None,
    "shell": "bash",
}


class ConfigError(ValueError):
    """The configuration file exists but cannot be used."""


class RunConfig:
    """Manages the ``.bashtap.yml`` configuration file."""

    def __init__(self, path: Path | None = None, environ: dict[str, str] | None = None) -> None:
        self.path = path
        self._environ = os.environ if environ is None else environ
        self._data: dict[str, Any] = dict(DEFAULT_CONFIG)
        if path is not None and path.exists():
            self._load()

    def _load(self) -> None:
        """Load config from the file.

        Raises:
            ConfigError: If the file is not valid YAML or not a mapping.
        """
        assert self.path is not None
        try:
            data = yaml.safe_load(self.path.read_text())
        except (yaml.YAMLError, OSError) as e:
            raise ConfigError(f"cannot read {self.path}: {e}") from e
        if data is None:
            return
        if not isinstance(data, dict):
            raise ConfigError(f"{self.path}: expected a mapping at the top level")
        unknown = sorted(set(data) - set(DEFAULT_CONFIG))
        if unknown:
            raise ConfigError(f"{self.path}: unknown settings: {', '.join(unknown)}")
        self._data = {**DEFAULT_CONFIG, **data}

    @property
    def config(self) -> dict[str, Any]:
        """Get the full configuration dict."""
        return dict(self._data)

    @property
    def jobs(self) -> int:
        """Get the default job count."""
        val = self._data.get("jobs")
        return int(val) if val is not None else DEFAULT_CONFIG["jobs"]

    @property
    def parallelize_across_files(self) -> bool:
        return bool(self._data.get("parallelize_across_files", True))

    @property
    def parallelize_within_files(self) -> bool:
        return bool(self._data.get("parallelize_within_files", True))

    @property
    def timeout(self) -> float | None:
        """Get the per-test timeout in seconds (None = unlimited).

        Raises:
            ConfigError: If the environment override is not a number.
        """
        env_value = self._environ.get(TIMEOUT_ENV_VAR)
        if env_value:
            try:
                return float(env_value)
            except ValueError as e:
                raise ConfigError(f"{TIMEOUT_ENV_VAR} must be a number, got {env_value!r}") from e
        val = self._data.get("timeout")
        return float(val) if val is not None else None

    @property
    def formatter(self) -> str | None:
        return self._data.get("formatter")

    @property
    def report_formatter(self) -> str | None:
        return self._data.get("report_formatter")

    @property
    def output(self) -> Path | None:
        val = self._data.get("output")
        return Path(val) if val is not None else None

    @property
    def shell(self) -> str:
        return str(self._data.get("shell") or DEFAULT_CONFIG["shell"])
