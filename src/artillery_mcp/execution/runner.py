from __future__ import annotations

import logging
import subprocess
import threading
import time
from pathlib import Path
from typing import IO, Mapping, Sequence

from ..config import ExecutionConfig
from ..errors import ProcessSpawnError, ProcessTimeoutError
from ..log import get_logger
from .launcher import PopenLauncher, ProcessLauncher
from .types import ProcessOutcome

_CHUNK_SIZE = 64 * 1024
_READER_JOIN_SECONDS = 5.0
_SIGNAL_EXIT_BASE = 128


class _CappedBuffer:
    """Byte sink that keeps the first `limit` bytes and drops the rest.

    Example:
        ```python
        sink = _CappedBuffer(limit=1024)
        ```
    """

    def __init__(self, limit: int) -> None:
        """Create an empty sink with a fixed capacity.

        Example:
            ```python
            sink = _CappedBuffer(limit=10 * 1024 * 1024)
            ```
        """
        self._limit = limit
        self._data = bytearray()
        self.dropped = 0

    def feed(self, chunk: bytes) -> None:
        """Append as much of `chunk` as still fits.

        Example:
            ```python
            sink.feed(b"http.codes.200: 10\\n")
            ```
        """
        room = self._limit - len(self._data)
        if room > 0:
            self._data.extend(chunk[:room])
        self.dropped += max(0, len(chunk) - max(room, 0))

    def getvalue(self) -> bytes:
        """Return the captured bytes.

        Example:
            ```python
            data = sink.getvalue()
            ```
        """
        return bytes(self._data)


def _drain(stream: IO[bytes], sink: _CappedBuffer) -> None:
    """Read a pipe to EOF so the child never blocks on a full pipe.

    Example:
        ```python
        threading.Thread(target=_drain, args=(proc.stdout, sink)).start()
        ```
    """
    with stream:
        for chunk in iter(lambda: stream.read1(_CHUNK_SIZE), b""):  # type: ignore[attr-defined]
            sink.feed(chunk)


def _normalize_exit_code(returncode: int | None) -> int:
    """Map Popen return codes onto plain integers.

    A missing code becomes 0; death by signal N becomes 128 + N.

    Example:
        ```python
        assert _normalize_exit_code(-9) == 137
        ```
    """
    if returncode is None:
        return 0
    if returncode < 0:
        return _SIGNAL_EXIT_BASE - returncode
    return returncode


class ProcessRunner:
    """Run the Artillery binary under a wall-clock timeout and output cap.

    Holds no per-call state, so concurrent `run` calls are independent.

    Example:
        ```python
        runner = ProcessRunner(config)
        outcome = runner.run(["--version"], timeout_ms=10_000)
        ```
    """

    def __init__(
        self,
        config: ExecutionConfig,
        *,
        launcher: ProcessLauncher | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        """Bind the runner to a config and a process launcher.

        Example:
            ```python
            runner = ProcessRunner(config, launcher=PopenLauncher())
            ```
        """
        self._config = config
        self._launcher = launcher or PopenLauncher()
        self._log = logger or get_logger("runner")

    def run(
        self,
        argv: Sequence[str],
        *,
        cwd: str | Path | None = None,
        env: Mapping[str, str] | None = None,
        timeout_ms: int | None = None,
    ) -> ProcessOutcome:
        """Execute the binary with `argv` and wait for it.

        Raises ProcessSpawnError when the binary cannot start and
        ProcessTimeoutError when it is still running after the timeout.
        A non-zero exit code is returned, not raised.

        Example:
            ```python
            outcome = runner.run(["run", "/srv/tests/smoke.yml"], cwd="/srv/tests")
            ```
        """
        timeout = timeout_ms or self._config.timeout_ms
        cmd = [self._config.binary_path, *argv]
        limit = self._config.max_output_bytes
        self._log.debug("Spawning %s (timeout %sms)", cmd, timeout)

        started = time.monotonic()
        try:
            proc = self._launcher.start(cmd, cwd=cwd, env=env)
        except OSError as exc:
            raise ProcessSpawnError(f"Failed to start {cmd[0]}: {exc}") from exc

        stdout = _CappedBuffer(limit)
        stderr = _CappedBuffer(limit)
        readers = [
            threading.Thread(target=_drain, args=(proc.stdout, stdout), daemon=True),
            threading.Thread(target=_drain, args=(proc.stderr, stderr), daemon=True),
        ]
        for reader in readers:
            reader.start()

        try:
            returncode = proc.wait(timeout=timeout / 1000)
        except subprocess.TimeoutExpired:
            self._launcher.kill(proc)
            proc.wait()
            self._join(readers)
            self._log.warning("Command timed out after %sms, killed pid %s", timeout, proc.pid)
            raise ProcessTimeoutError(f"Command timed out after {timeout}ms") from None

        self._join(readers)
        elapsed_ms = int((time.monotonic() - started) * 1000)
        exit_code = _normalize_exit_code(returncode)
        for name, sink in (("stdout", stdout), ("stderr", stderr)):
            if sink.dropped:
                self._log.info("Dropped %d bytes of %s past the %d byte cap", sink.dropped, name, limit)
        self._log.debug("Process %s exited with %s after %sms", proc.pid, exit_code, elapsed_ms)

        return ProcessOutcome(
            exit_code=exit_code,
            stdout=stdout.getvalue(),
            stderr=stderr.getvalue(),
            elapsed_ms=elapsed_ms,
            stdout_truncated=stdout.dropped > 0,
            stderr_truncated=stderr.dropped > 0,
        )

    def _join(self, readers: list[threading.Thread]) -> None:
        """Wait briefly for reader threads once the child has exited.

        Example:
            ```python
            runner._join(readers)
            ```
        """
        for reader in readers:
            reader.join(_READER_JOIN_SECONDS)
