from __future__ import annotations

import os
import signal
import subprocess
from pathlib import Path
from typing import Mapping, Protocol, Sequence


class ProcessLauncher(Protocol):
    def start(
        self,
        cmd: Sequence[str],
        *,
        cwd: str | Path | None,
        env: Mapping[str, str] | None,
    ) -> subprocess.Popen[bytes]:
        """Spawn `cmd` with piped stdout/stderr and no stdin.

        Example:
            ```python
            proc = launcher.start(["artillery", "--version"], cwd=None, env=None)
            ```
        """
        ...

    def kill(self, proc: subprocess.Popen[bytes]) -> None:
        """Forcefully terminate a process started by this launcher.

        Example:
            ```python
            launcher.kill(proc)
            ```
        """
        ...


class PopenLauncher:
    """Default launcher backed by `subprocess.Popen`.

    On POSIX each child gets its own session so a kill also reaches the
    worker processes Artillery forks.

    Example:
        ```python
        runner = ProcessRunner(config, launcher=PopenLauncher())
        ```
    """

    def start(
        self,
        cmd: Sequence[str],
        *,
        cwd: str | Path | None,
        env: Mapping[str, str] | None,
    ) -> subprocess.Popen[bytes]:
        """Spawn the command in a new session with stdin closed.

        Example:
            ```python
            proc = PopenLauncher().start(["artillery", "--version"], cwd="/srv/tests", env=None)
            ```
        """
        return subprocess.Popen(
            list(cmd),
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            cwd=cwd,
            env=dict(env) if env is not None else None,
            start_new_session=os.name == "posix",
        )

    def kill(self, proc: subprocess.Popen[bytes]) -> None:
        """Send SIGKILL to the whole process group, or kill the child on Windows.

        Example:
            ```python
            PopenLauncher().kill(proc)
            ```
        """
        if os.name != "posix":
            proc.kill()
            return
        try:
            os.killpg(proc.pid, signal.SIGKILL)
        except ProcessLookupError:
            # Already reaped between the timeout firing and the kill.
            pass
