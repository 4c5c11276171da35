from __future__ import annotations

import logging
import math
import os
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

from .binary import detect_binary
from .config import ExecutionConfig
from .duration import parse_duration
from .errors import (
    ExecutionError,
    InvalidArgumentError,
    QuickTestDisabledError,
    ResultParseError,
)
from .execution.runner import ProcessRunner
from .log import get_logger
from .paths import resolve_output_path, sanitize_path
from .summary import ParsedResults, ResultSummary, build_parsed_results, parse_results, summarize

VERSION_TIMEOUT_MS = 10_000
LOGS_TAIL_BYTES = 2048
TEMP_DIR_NAME = "temp"
DEFAULT_QUICK_VUS = 10
DEFAULT_QUICK_REQUESTS_PER_VU = 30
FILE_DRY_RUN_MESSAGE = "Configuration validated successfully (dry-run)"
INLINE_DRY_RUN_MESSAGE = "Inline configuration validated successfully (dry-run)"


@dataclass(slots=True)
class RunOptions:
    """Per-call options shared by file and inline runs.

    Example:
        ```python
        options = RunOptions(output_json="out/results.json", env={"TARGET": "http://localhost:8080"})
        ```
    """

    output_json: str | None = None
    report_html: str | None = None
    env: dict[str, str] = field(default_factory=dict)
    cwd: str | None = None
    validate_only: bool = False


@dataclass(slots=True)
class QuickTestRequest:
    """Parameters for an ad-hoc `artillery quick` run.

    `method`, `headers` and `body` are accepted for clients that send them
    but the quick command has no flags for them.

    Example:
        ```python
        request = QuickTestRequest(target="https://api.example.com/health", rate=5, duration="1m")
        ```
    """

    target: str
    rate: float | None = None
    duration: str | None = None
    count: int | None = None
    method: str | None = None
    headers: dict[str, str] = field(default_factory=dict)
    body: str | None = None


@dataclass(slots=True)
class ExecutionResult:
    """What a run returns to the caller.

    Example:
        ```python
        result = ExecutionResult(exit_code=0, elapsed_ms=5120, logs_tail="All VUs finished")
        ```
    """

    exit_code: int
    elapsed_ms: int
    logs_tail: str
    json_result_path: str | None = None
    html_report_path: str | None = None
    summary: ResultSummary | None = None


def build_run_args(
    config_path: Path,
    *,
    output_json: Path | None = None,
    report_html: Path | None = None,
    dry_run: bool = False,
) -> list[str]:
    """Build the `artillery run` argument vector.

    Example:
        ```python
        args = build_run_args(Path("/srv/tests/smoke.yml"), output_json=Path("/srv/tests/out.json"))
        ```
    """
    args = ["run"]
    if dry_run:
        args.append("--dry-run")
    if output_json is not None:
        args.extend(["--output", str(output_json)])
    if report_html is not None:
        args.extend(["--report", str(report_html)])
    args.append(str(config_path))
    return args


def build_quick_args(request: QuickTestRequest, output_file: Path) -> list[str]:
    """Build the `artillery quick` argument vector.

    Virtual users come from `count`, else rate x duration, else 10.
    Requests per user spread rate x duration over those users, or one
    request every two seconds when only a duration is given, else 30.

    Example:
        ```python
        args = build_quick_args(QuickTestRequest(target="http://localhost", count=5), Path("/srv/q.json"))
        ```
    """
    duration_s = parse_duration(request.duration) if request.duration else None
    planned = math.ceil(request.rate * duration_s) if request.rate and duration_s else None

    if request.count:
        vus = request.count
    elif planned is not None:
        vus = planned
    else:
        vus = DEFAULT_QUICK_VUS

    if planned is not None:
        per_vu = math.ceil(planned / (request.count or planned))
    elif duration_s is not None:
        per_vu = max(1, math.ceil(duration_s / 2))
    else:
        per_vu = DEFAULT_QUICK_REQUESTS_PER_VU

    args = ["quick", request.target, "-c", str(vus), "-n", str(per_vu), "-o", str(output_file)]
    if request.target.startswith("https://"):
        args.append("-k")
    return args


def _epoch_millis() -> int:
    """Current wall-clock time in milliseconds, used to name files.

    Example:
        ```python
        name = f"quick-test-{_epoch_millis()}.json"
        ```
    """
    return int(time.time() * 1000)


def _create_temp_config(temp_dir: Path, config_text: str) -> Path:
    """Exclusively create `config-<epochMillis>.yml` holding `config_text`.

    A numeric suffix is added when another call already owns the name.
    The file is removed again if writing to it fails.

    Example:
        ```python
        path = _create_temp_config(Path("/srv/tests/temp"), "config:\\n  target: http://localhost\\n")
        ```
    """
    stamp = _epoch_millis()
    attempt = 0
    while True:
        suffix = f"-{attempt}" if attempt else ""
        candidate = temp_dir / f"config-{stamp}{suffix}.yml"
        try:
            handle = candidate.open("x", encoding="utf-8")
        except FileExistsError:
            attempt += 1
            continue
        try:
            with handle:
                handle.write(config_text)
        except UnicodeEncodeError as exc:
            candidate.unlink(missing_ok=True)
            raise InvalidArgumentError(f"config_text is not encodable as UTF-8: {exc}") from exc
        except BaseException:
            candidate.unlink(missing_ok=True)
            raise
        return candidate


def _tail(data: bytes) -> str:
    """Decode the last 2 KB of captured output.

    Example:
        ```python
        logs = _tail(outcome.stdout)
        ```
    """
    return data[-LOGS_TAIL_BYTES:].decode("utf-8", errors="replace")


class ArtilleryWrapper:
    """Facade over the Artillery CLI: validate, run, summarize.

    Example:
        ```python
        wrapper = ArtilleryWrapper(load_config())
        result = wrapper.run_test_from_file("smoke.yml", RunOptions(output_json="out.json"))
        ```
    """

    detect_binary = staticmethod(detect_binary)

    def __init__(
        self,
        config: ExecutionConfig,
        *,
        runner: ProcessRunner | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        """Wire the facade to a config and a process runner.

        Example:
            ```python
            wrapper = ArtilleryWrapper(config, runner=ProcessRunner(config))
            ```
        """
        self._config = config
        self._log = logger or get_logger("artillery")
        self._runner = runner or ProcessRunner(config, logger=self._log.getChild("runner"))

    @property
    def config(self) -> ExecutionConfig:
        """The configuration this facade was built with.

        Example:
            ```python
            print(wrapper.config.work_dir)
            ```
        """
        return self._config

    def get_version(self) -> str:
        """Return the trimmed output of `artillery --version`.

        Example:
            ```python
            version = wrapper.get_version()
            ```
        """
        try:
            outcome = self._runner.run(["--version"], timeout_ms=VERSION_TIMEOUT_MS)
        except ExecutionError as exc:
            raise ExecutionError(f"Failed to get Artillery version: {exc}") from exc
        if outcome.exit_code != 0:
            raise ExecutionError(
                f"Failed to get Artillery version: exit code {outcome.exit_code}: "
                f"{outcome.stderr_text.strip()}"
            )
        return outcome.stdout_text.strip()

    def run_test_from_file(self, path: str, options: RunOptions | None = None) -> ExecutionResult:
        """Run an Artillery config file that lives inside the work directory.

        Example:
            ```python
            result = wrapper.run_test_from_file("tests/smoke.yml", RunOptions(report_html="smoke.html"))
            ```
        """
        options = options or RunOptions()
        base_dir = self._base_dir(options.cwd)
        config_path = sanitize_path(path, base_dir)
        return self._run(config_path, base_dir, options, FILE_DRY_RUN_MESSAGE)

    def run_test_inline(self, config_text: str, options: RunOptions | None = None) -> ExecutionResult:
        """Run config text by writing it to a temporary file that is always removed.

        Example:
            ```python
            result = wrapper.run_test_inline(Path("smoke.yml").read_text())
            ```
        """
        options = options or RunOptions()
        base_dir = self._base_dir(options.cwd)
        temp_dir = self._config.work_dir / TEMP_DIR_NAME
        temp_dir.mkdir(parents=True, exist_ok=True)
        temp_file = _create_temp_config(temp_dir, config_text)
        self._log.debug("Wrote inline config to %s", temp_file)
        try:
            config_path = sanitize_path(temp_file, self._config.work_dir)
            return self._run(config_path, base_dir, options, INLINE_DRY_RUN_MESSAGE)
        finally:
            temp_file.unlink(missing_ok=True)

    def quick_test(self, request: QuickTestRequest) -> ExecutionResult:
        """Fire an ad-hoc `artillery quick` run against a single URL.

        Example:
            ```python
            result = wrapper.quick_test(QuickTestRequest(target="http://localhost:8080", count=5))
            ```
        """
        if not self._config.allow_quick:
            raise QuickTestDisabledError(
                "Quick tests are disabled. Set ARTILLERY_ALLOW_QUICK=true to enable."
            )
        if not request.target:
            raise InvalidArgumentError("Quick test requires a target URL")

        ignored = [name for name in ("method", "headers", "body") if getattr(request, name)]
        if ignored:
            self._log.warning("artillery quick ignores %s", ", ".join(ignored))

        started = time.monotonic()
        output_file = self._config.work_dir / f"quick-test-{_epoch_millis()}.json"
        args = build_quick_args(request, output_file)
        outcome = self._runner.run(args, cwd=self._config.work_dir)
        summary = self._summarize(output_file) if outcome.exit_code == 0 else None

        return ExecutionResult(
            exit_code=outcome.exit_code,
            elapsed_ms=int((time.monotonic() - started) * 1000),
            logs_tail=_tail(outcome.stdout),
            json_result_path=str(output_file),
            summary=summary,
        )

    def parse_results(self, json_path: str) -> Any:
        """Return the raw content of a results file inside the work directory.

        Example:
            ```python
            raw = wrapper.parse_results("results.json")
            ```
        """
        return parse_results(sanitize_path(json_path, self._config.work_dir))

    def inspect_results(self, json_path: str) -> ParsedResults:
        """Summary, scenarios and metadata of a results file.

        Example:
            ```python
            parsed = wrapper.inspect_results("results.json")
            ```
        """
        return build_parsed_results(self.parse_results(json_path))

    def _run(
        self,
        config_path: Path,
        base_dir: Path,
        options: RunOptions,
        dry_run_message: str,
    ) -> ExecutionResult:
        """Shared run path once the config file is known to be safe.

        Example:
            ```python
            result = wrapper._run(config_path, wrapper.config.work_dir, RunOptions(), FILE_DRY_RUN_MESSAGE)
            ```
        """
        started = time.monotonic()
        output_json = resolve_output_path(options.output_json, base_dir) if options.output_json else None
        report_html = resolve_output_path(options.report_html, base_dir) if options.report_html else None
        args = build_run_args(
            config_path,
            output_json=output_json,
            report_html=report_html,
            dry_run=options.validate_only,
        )

        if options.validate_only and not self._config.validate_with_binary:
            self._log.info("Validated %s without running Artillery", config_path)
            return ExecutionResult(exit_code=0, elapsed_ms=0, logs_tail=dry_run_message)

        outcome = self._runner.run(args, cwd=base_dir, env=self._child_env(options.env))
        summary = None
        if output_json is not None and outcome.exit_code == 0 and not options.validate_only:
            summary = self._summarize(output_json)

        return ExecutionResult(
            exit_code=outcome.exit_code,
            elapsed_ms=int((time.monotonic() - started) * 1000),
            logs_tail=_tail(outcome.stdout),
            json_result_path=str(output_json) if output_json is not None else None,
            html_report_path=str(report_html) if report_html is not None else None,
            summary=summary,
        )

    def _base_dir(self, cwd: str | None) -> Path:
        """Resolve the directory a run is rooted at; overrides must stay in the work dir.

        Example:
            ```python
            base = wrapper._base_dir("suites/checkout")
            ```
        """
        if not cwd:
            return self._config.work_dir
        base = sanitize_path(cwd, self._config.work_dir)
        if not base.is_dir():
            raise InvalidArgumentError(f"cwd is not a directory: {cwd}")
        return base

    def _child_env(self, overrides: Mapping[str, str]) -> dict[str, str] | None:
        """Environment for the subprocess: inherited, plus caller overrides.

        Example:
            ```python
            env = wrapper._child_env({"TARGET": "http://localhost"})
            ```
        """
        if not overrides:
            return None
        return {**os.environ, **{str(k): str(v) for k, v in overrides.items()}}

    def _summarize(self, json_path: Path) -> ResultSummary | None:
        """Summarize a run's report, downgrading failures to a missing summary.

        Example:
            ```python
            summary = wrapper._summarize(Path("/srv/tests/out.json"))
            ```
        """
        try:
            return summarize(json_path)
        except ResultParseError as exc:
            self._log.warning("Failed to parse summary: %s", exc)
            return None
