from __future__ import annotations


class ArtilleryError(Exception):
    """Base class for every error raised by artillery-mcp.

    Example:
        ```python
        try:
            wrapper.quick_test(QuickTestRequest(target="http://localhost"))
        except ArtilleryError as exc:
            print(exc)
        ```
    """


class ConfigError(ArtilleryError):
    """Startup configuration is invalid or inaccessible."""


class BinaryNotFoundError(ConfigError):
    """The Artillery executable could not be located."""


class ValidationError(ArtilleryError):
    """A per-call request was rejected before anything ran."""


class PathEscapeError(ValidationError):
    """A user-supplied path resolves outside the work directory."""


class TargetNotFoundError(ValidationError, FileNotFoundError):
    """A user-supplied path does not exist."""


class QuickTestDisabledError(ValidationError):
    """Quick tests were requested while the capability is switched off."""


class InvalidArgumentError(ValidationError):
    """A tool argument is missing or has the wrong type."""


class ExecutionError(ArtilleryError):
    """The Artillery subprocess could not be run to completion."""


class ProcessTimeoutError(ExecutionError):
    """The subprocess outlived its timeout and was killed."""


class ProcessSpawnError(ExecutionError):
    """The subprocess could not be started at all."""


class ResultParseError(ArtilleryError):
    """A results file could not be read or is not valid JSON."""
