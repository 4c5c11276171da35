from __future__ import annotations

import os
import shutil
from pathlib import Path
from typing import Mapping

from .errors import BinaryNotFoundError

BINARY_ENV_VAR = "ARTILLERY_BIN"
BINARY_NAMES = ("artillery", "artillery.exe")


def detect_binary(environ: Mapping[str, str] | None = None) -> str:
    """Locate the Artillery executable once at startup.

    An explicit `ARTILLERY_BIN` wins. It must be an existing path or a
    bare command name found on PATH. Otherwise the conventional names are
    looked up on PATH and the first hit is returned as the bare name, so
    the subprocess resolves it the same way.

    Example:
        ```python
        binary = detect_binary({"ARTILLERY_BIN": "/usr/local/bin/artillery"})
        ```
    """
    env = os.environ if environ is None else environ
    explicit = env.get(BINARY_ENV_VAR, "").strip()
    search_path = env.get("PATH")
    if explicit:
        if Path(explicit).name == explicit and shutil.which(explicit, path=search_path):
            return explicit
        if not Path(explicit).exists():
            raise BinaryNotFoundError(
                f"{BINARY_ENV_VAR} specified but not accessible: {explicit}"
            )
        return explicit

    for name in BINARY_NAMES:
        if shutil.which(name, path=search_path) is not None:
            return name

    raise BinaryNotFoundError(
        "Artillery binary not found in PATH. "
        f"Please install Artillery or set {BINARY_ENV_VAR} environment variable."
    )
