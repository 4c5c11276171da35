from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

from .binary import BINARY_ENV_VAR, detect_binary
from .errors import ConfigError
from .log import get_logger

MIN_TIMEOUT_MS = 1_000
MAX_TIMEOUT_MS = 7_200_000
MIN_OUTPUT_MB = 1
MAX_OUTPUT_MB = 100

DEFAULT_TIMEOUT_MS = 1_800_000
DEFAULT_MAX_OUTPUT_MB = 10

CONFIG_FILE_ENV_VAR = "ARTILLERY_CONFIG"


@dataclass(frozen=True, slots=True)
class ExecutionConfig:
    """Validated, process-wide settings shared read-only by every component.

    Example:
        ```python
        config = ExecutionConfig(binary_path="artillery", work_dir=Path("/srv/tests"))
        ```
    """

    binary_path: str
    work_dir: Path = field(default_factory=Path.cwd)
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    max_output_mb: int = DEFAULT_MAX_OUTPUT_MB
    allow_quick: bool = False
    validate_with_binary: bool = False

    def __post_init__(self) -> None:
        """Normalize the work directory and enforce the numeric bounds.

        Example:
            ```python
            ExecutionConfig(binary_path="artillery", timeout_ms=500)  # raises ConfigError
            ```
        """
        if not self.binary_path:
            raise ConfigError("binary_path must not be empty")
        object.__setattr__(self, "work_dir", Path(self.work_dir).expanduser().resolve())
        if not MIN_TIMEOUT_MS <= self.timeout_ms <= MAX_TIMEOUT_MS:
            raise ConfigError("ARTILLERY_TIMEOUT_MS must be between 1 second and 2 hours")
        if not MIN_OUTPUT_MB <= self.max_output_mb <= MAX_OUTPUT_MB:
            raise ConfigError(
                f"ARTILLERY_MAX_OUTPUT_MB must be between {MIN_OUTPUT_MB} and {MAX_OUTPUT_MB}"
            )

    @property
    def max_output_bytes(self) -> int:
        """Per-stream capture cap in bytes.

        Example:
            ```python
            assert ExecutionConfig(binary_path="artillery", max_output_mb=1).max_output_bytes == 1048576
            ```
        """
        return self.max_output_mb * 1024 * 1024


def _read_config_toml(path: Path) -> dict[str, Any]:
    """Read a TOML config file and return its `[artillery]` table.

    Top-level keys are accepted when the table is absent.

    Example:
        ```python
        raw = _read_config_toml(Path("/etc/artillery-mcp.toml"))
        ```
    """
    if not path.is_file():
        raise ConfigError(f"Config file not found: {path}")
    try:
        raw = tomllib.loads(path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Invalid TOML in {path}: {exc}") from exc
    section = raw.get("artillery", raw)
    if not isinstance(section, dict):
        raise ConfigError("Config file section [artillery] must be a TOML table")
    return section


def _as_int(value: Any, name: str) -> int:
    """Coerce a config value to int or raise ConfigError naming the setting.

    Example:
        ```python
        timeout = _as_int("60000", "ARTILLERY_TIMEOUT_MS")
        ```
    """
    if isinstance(value, bool):
        raise ConfigError(f"{name} must be an integer, got: {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{name} must be an integer, got: {value!r}") from None


def _as_bool(value: Any) -> bool:
    """Interpret env-style booleans; only `true` (any case) enables.

    Example:
        ```python
        assert _as_bool("TRUE") and not _as_bool("1")
        ```
    """
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() == "true"


def load_config(
    environ: Mapping[str, str] | None = None,
    *,
    config_file: str | Path | None = None,
) -> ExecutionConfig:
    """Build the single ExecutionConfig from a TOML file and the environment.

    Environment variables override file values. The Artillery binary is
    auto-detected when neither source names one, and the work directory
    must already exist.

    Example:
        ```python
        config = load_config({"ARTILLERY_WORKDIR": "/srv/tests", "ARTILLERY_ALLOW_QUICK": "true"})
        ```
    """
    env = dict(os.environ if environ is None else environ)

    settings: dict[str, Any] = {}
    file_path = config_file or env.get(CONFIG_FILE_ENV_VAR)
    if file_path:
        settings.update(_read_config_toml(Path(file_path)))

    env_keys = {
        "binary_path": BINARY_ENV_VAR,
        "work_dir": "ARTILLERY_WORKDIR",
        "timeout_ms": "ARTILLERY_TIMEOUT_MS",
        "max_output_mb": "ARTILLERY_MAX_OUTPUT_MB",
        "allow_quick": "ARTILLERY_ALLOW_QUICK",
        "validate_with_binary": "ARTILLERY_VALIDATE_WITH_BINARY",
    }
    for key, var in env_keys.items():
        if env.get(var):
            settings[key] = env[var]

    binary = str(settings.get("binary_path", "")).strip()
    if binary:
        env[BINARY_ENV_VAR] = binary
    binary = detect_binary(env)

    work_dir = Path(str(settings.get("work_dir") or Path.cwd())).expanduser()
    if not work_dir.is_dir():
        raise ConfigError(f"Working directory not accessible: {work_dir}")

    config = ExecutionConfig(
        binary_path=binary,
        work_dir=work_dir,
        timeout_ms=_as_int(settings.get("timeout_ms", DEFAULT_TIMEOUT_MS), "ARTILLERY_TIMEOUT_MS"),
        max_output_mb=_as_int(
            settings.get("max_output_mb", DEFAULT_MAX_OUTPUT_MB), "ARTILLERY_MAX_OUTPUT_MB"
        ),
        allow_quick=_as_bool(settings.get("allow_quick", False)),
        validate_with_binary=_as_bool(settings.get("validate_with_binary", False)),
    )
    get_logger("config").debug("Loaded configuration: %s", config)
    return config
