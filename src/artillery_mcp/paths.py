from __future__ import annotations

from pathlib import Path

from .errors import PathEscapeError, TargetNotFoundError


def _contain(path: str | Path, work_dir: str | Path) -> Path:
    """Resolve `path` under `work_dir` and reject anything that escapes it.

    Both sides are fully resolved, symlinks included, before the
    component-wise containment check.

    Example:
        ```python
        target = _contain("tests/smoke.yml", "/srv/tests")
        ```
    """
    root = Path(work_dir).expanduser().resolve()
    resolved = (root / Path(path)).resolve()
    if not resolved.is_relative_to(root):
        raise PathEscapeError(f"Path {path} is outside allowed working directory")
    return resolved


def sanitize_path(path: str | Path, work_dir: str | Path) -> Path:
    """Return the absolute path of an existing file inside `work_dir`.

    Example:
        ```python
        config_file = sanitize_path("smoke.yml", config.work_dir)
        ```
    """
    resolved = _contain(path, work_dir)
    if not resolved.exists():
        raise TargetNotFoundError(f"File not found: {path}")
    return resolved


def resolve_output_path(path: str | Path, work_dir: str | Path) -> Path:
    """Return the absolute path of an output target inside `work_dir`.

    The target need not exist yet.

    Example:
        ```python
        report = resolve_output_path("reports/run.html", config.work_dir)
        ```
    """
    return _contain(path, work_dir)
