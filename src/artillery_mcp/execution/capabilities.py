from __future__ import annotations

from dataclasses import dataclass, field

from ..config import ExecutionConfig

SUPPORTED_TRANSPORTS = ("stdio",)


@dataclass(frozen=True, slots=True)
class ServerLimits:
    """Effective execution limits advertised to clients.

    Example:
        ```python
        limits = ServerLimits(max_timeout_ms=1_800_000, max_output_mb=10, allow_quick=False)
        ```
    """

    max_timeout_ms: int
    max_output_mb: int
    allow_quick: bool


@dataclass(frozen=True, slots=True)
class ConfigPaths:
    """Filesystem locations the server was configured with.

    Example:
        ```python
        paths = ConfigPaths(work_dir="/srv/tests", artillery_bin="artillery")
        ```
    """

    work_dir: str
    artillery_bin: str


@dataclass(frozen=True, slots=True)
class ServerCapabilities:
    """Read-only diagnostic snapshot returned by `list_capabilities`.

    Example:
        ```python
        caps = build_capabilities(config, artillery_version="2.0.21", server_version="1.0.1")
        ```
    """

    artillery_version: str
    server_version: str
    limits: ServerLimits
    config_paths: ConfigPaths
    transports: tuple[str, ...] = field(default=SUPPORTED_TRANSPORTS)


def build_capabilities(
    config: ExecutionConfig,
    *,
    artillery_version: str,
    server_version: str,
) -> ServerCapabilities:
    """Assemble the capability report for a configured server.

    Example:
        ```python
        caps = build_capabilities(config, artillery_version=wrapper.get_version(), server_version=__version__)
        ```
    """
    return ServerCapabilities(
        artillery_version=artillery_version,
        server_version=server_version,
        limits=ServerLimits(
            max_timeout_ms=config.timeout_ms,
            max_output_mb=config.max_output_mb,
            allow_quick=config.allow_quick,
        ),
        config_paths=ConfigPaths(
            work_dir=str(config.work_dir),
            artillery_bin=config.binary_path,
        ),
    )
