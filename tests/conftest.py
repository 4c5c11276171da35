from __future__ import annotations

import json
import logging
import stat
import sys
from pathlib import Path

import pytest

from artillery_mcp import ArtilleryWrapper, ExecutionConfig
from artillery_mcp.log import ROOT_LOGGER_NAME

REPORT = {
    "aggregate": {
        "counters": {"http.requests": 100, "errors.ETIMEDOUT": 2},
        "rates": {"http.request_rate": 10},
        "summaries": {"http.response_time": {"p50": 12, "p95": 40, "p99": 80}},
    }
}

# Stand-in for the artillery CLI. Every invocation is appended to calls.jsonl
# next to the script; config text drives the behaviour under test.
FAKE_ARTILLERY = """\
#!{python}
import json
import pathlib
import sys
import time

args = sys.argv[1:]
here = pathlib.Path(__file__).resolve().parent
with (here / "calls.jsonl").open("a", encoding="utf-8") as log:
    log.write(json.dumps(args) + "\\n")

if args == ["--version"]:
    print("Artillery: 2.0.21")
    sys.exit(0)

def flag(name):
    return args[args.index(name) + 1] if name in args else None

config = pathlib.Path(args[-1]).read_text(encoding="utf-8") if args[0] == "run" else ""
if "sleep" in config:
    time.sleep(30)
out = flag("--output") or flag("-o")
if "fail" in config:
    print("scenario failed")
    sys.exit(3)
if out:
    text = "not json" if "badjson" in config else {report}
    pathlib.Path(out).write_text(text, encoding="utf-8")
print("All VUs finished")
"""


@pytest.fixture(autouse=True)
def _reset_package_logger():
    yield
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.propagate = True
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def work_dir(tmp_path: Path) -> Path:
    path = tmp_path / "work"
    path.mkdir()
    return path


@pytest.fixture
def fake_artillery(tmp_path: Path) -> Path:
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir()
    script = bin_dir / "artillery"
    script.write_text(
        FAKE_ARTILLERY.format(python=sys.executable, report=repr(json.dumps(REPORT))),
        encoding="utf-8",
    )
    script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return script


@pytest.fixture
def fake_calls(fake_artillery: Path):
    log = fake_artillery.parent / "calls.jsonl"

    def _calls() -> list[list[str]]:
        if not log.exists():
            return []
        return [json.loads(line) for line in log.read_text(encoding="utf-8").splitlines()]

    return _calls


@pytest.fixture
def config(fake_artillery: Path, work_dir: Path) -> ExecutionConfig:
    return ExecutionConfig(
        binary_path=str(fake_artillery),
        work_dir=work_dir,
        timeout_ms=20_000,
        max_output_mb=1,
        allow_quick=True,
    )


@pytest.fixture
def wrapper(config: ExecutionConfig) -> ArtilleryWrapper:
    return ArtilleryWrapper(config)


@pytest.fixture
def report() -> dict:
    return json.loads(json.dumps(REPORT))
