from __future__ import annotations

from dataclasses import dataclass


@dataclass(slots=True)
class ProcessOutcome:
    """Normalized result of one completed Artillery subprocess.

    Example:
        ```python
        out = ProcessOutcome(exit_code=0, stdout=b"done\\n", stderr=b"", elapsed_ms=812)
        ```
    """

    exit_code: int
    stdout: bytes
    stderr: bytes
    elapsed_ms: int
    stdout_truncated: bool = False
    stderr_truncated: bool = False

    @property
    def stdout_text(self) -> str:
        """Decode captured stdout, replacing invalid UTF-8.

        Example:
            ```python
            print(outcome.stdout_text)
            ```
        """
        return self.stdout.decode("utf-8", errors="replace")

    @property
    def stderr_text(self) -> str:
        """Decode captured stderr, replacing invalid UTF-8.

        Example:
            ```python
            print(outcome.stderr_text)
            ```
        """
        return self.stderr.decode("utf-8", errors="replace")
