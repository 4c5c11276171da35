from .capabilities import ServerCapabilities, build_capabilities
from .launcher import PopenLauncher, ProcessLauncher
from .runner import ProcessRunner
from .types import ProcessOutcome

__all__ = [
    "PopenLauncher",
    "ProcessLauncher",
    "ProcessOutcome",
    "ProcessRunner",
    "ServerCapabilities",
    "build_capabilities",
]
