from __future__ import annotations

import json
import math
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Callable, Mapping

from .errors import ResultParseError

_RESPONSE_TIME_KEY = "http.response_time"


@dataclass(frozen=True, slots=True)
class LatencyPercentiles:
    """Response-time percentiles in milliseconds.

    Example:
        ```python
        latency = LatencyPercentiles(p50=150, p95=300, p99=500)
        ```
    """

    p50: float = 0
    p95: float = 0
    p99: float = 0


@dataclass(frozen=True, slots=True)
class ResultSummary:
    """Normalized projection of an Artillery JSON report.

    Example:
        ```python
        summary = ResultSummary(requests_total=100, rps_avg=10.5)
        ```
    """

    requests_total: int = 0
    rps_avg: float = 0
    latency: LatencyPercentiles = field(default_factory=LatencyPercentiles)
    errors: dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class ScenarioBreakdown:
    """Per-scenario line of a parsed report.

    Example:
        ```python
        row = ScenarioBreakdown(name="browse", count=40, success_rate=0.98, avg_latency=120)
        ```
    """

    name: str
    count: int
    success_rate: float
    avg_latency: float


@dataclass(frozen=True, slots=True)
class ResultMetadata:
    """Report-level metadata of a parsed report.

    Example:
        ```python
        meta = ResultMetadata(timestamp="2024-05-01T10:00:00+00:00", duration="60s", total_requests=600)
        ```
    """

    timestamp: str
    duration: str
    total_requests: int


@dataclass(frozen=True, slots=True)
class ParsedResults:
    """Summary, scenario breakdown and metadata returned by `parse_results`.

    Example:
        ```python
        parsed = build_parsed_results(parse_results("/srv/tests/out.json"))
        ```
    """

    summary: ResultSummary
    scenarios: list[ScenarioBreakdown]
    metadata: ResultMetadata


def _mapping(value: Any) -> Mapping[str, Any]:
    """Return `value` when it is a mapping, else an empty one.

    Example:
        ```python
        counters = _mapping(aggregate.get("counters"))
        ```
    """
    return value if isinstance(value, Mapping) else {}


def _number(value: Any) -> float:
    """Return a non-negative number, or 0 for anything else.

    Example:
        ```python
        assert _number("12") == 0 and _number(12.5) == 12.5
        ```
    """
    return value if _is_count(value) else 0


def _is_count(value: Any) -> bool:
    """True for a finite, non-negative, non-boolean number.

    Example:
        ```python
        assert _is_count(3) and not _is_count(float("inf"))
        ```
    """
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    if isinstance(value, float) and not math.isfinite(value):
        return False
    return value >= 0


def _error_counts(value: Any) -> dict[str, int]:
    """Keep the numeric entries of an error-kind mapping.

    Example:
        ```python
        assert _error_counts({"ETIMEDOUT": 5, "bad": "x"}) == {"ETIMEDOUT": 5}
        ```
    """
    return {str(kind): int(count) for kind, count in _mapping(value).items() if _is_count(count)}


def _latency(section: Any) -> LatencyPercentiles:
    """Project p50/p95/p99 out of a response-time section.

    Example:
        ```python
        latency = _latency({"p50": 150, "p95": 300, "p99": 500})
        ```
    """
    values = _mapping(section)
    return LatencyPercentiles(
        p50=_number(values.get("p50")),
        p95=_number(values.get("p95")),
        p99=_number(values.get("p99")),
    )


def _from_metrics_http(data: Mapping[str, Any]) -> ResultSummary | None:
    """Newer layout: `metrics.http.{requests,response_time,errors}`.

    Example:
        ```python
        summary = _from_metrics_http({"metrics": {"http": {"requests": {"count": 1}}}})
        ```
    """
    metrics = _mapping(data.get("metrics"))
    if "http" not in metrics:
        return None
    http = _mapping(metrics.get("http"))
    requests = _mapping(http.get("requests"))
    return ResultSummary(
        requests_total=int(_number(requests.get("count"))),
        rps_avg=_number(requests.get("rate")),
        latency=_latency(http.get("response_time")),
        errors=_error_counts(http.get("errors")),
    )


def _from_aggregate(data: Mapping[str, Any]) -> ResultSummary | None:
    """Older layout: `aggregate.{counters,rates,summaries}` with dotted keys.

    Errors come from a `http.errors` mapping and from `errors.<KIND>` counters.

    Example:
        ```python
        summary = _from_aggregate({"aggregate": {"counters": {"http.requests": 10}}})
        ```
    """
    if "aggregate" not in data:
        return None
    aggregate = _mapping(data.get("aggregate"))
    counters = _mapping(aggregate.get("counters"))
    rates = _mapping(aggregate.get("rates"))
    summaries = _mapping(aggregate.get("summaries"))

    errors = _error_counts(counters.get("http.errors"))
    prefixed = {
        key.removeprefix("errors."): count
        for key, count in counters.items()
        if isinstance(key, str) and key.startswith("errors.")
    }
    errors.update(_error_counts(prefixed))

    return ResultSummary(
        requests_total=int(_number(counters.get("http.requests"))),
        rps_avg=_number(rates.get("http.request_rate")),
        latency=_latency(summaries.get(_RESPONSE_TIME_KEY)),
        errors=errors,
    )


SchemaVariant = Callable[[Mapping[str, Any]], "ResultSummary | None"]

# Tried in order; the first variant whose section is present wins.
SCHEMA_VARIANTS: tuple[tuple[str, SchemaVariant], ...] = (
    ("metrics.http", _from_metrics_http),
    ("aggregate", _from_aggregate),
)


def extract_summary(data: Any) -> ResultSummary:
    """Project raw report data onto a ResultSummary without ever raising.

    Example:
        ```python
        summary = extract_summary({"metrics": {"http": {"requests": {"count": 100, "rate": 10.5}}}})
        ```
    """
    document = _mapping(data)
    for _name, variant in SCHEMA_VARIANTS:
        summary = variant(document)
        if summary is not None:
            return summary
    return ResultSummary()


def parse_results(json_path: str | Path) -> Any:
    """Read and parse an Artillery JSON report, returning it unmodified.

    Example:
        ```python
        raw = parse_results("/srv/tests/results.json")
        ```
    """
    try:
        content = Path(json_path).read_text(encoding="utf-8")
        return json.loads(content)
    except (OSError, ValueError, RecursionError) as exc:
        raise ResultParseError(f"Failed to parse results file: {exc}") from exc


def summarize(json_path: str | Path) -> ResultSummary:
    """Parse a report file and extract its ResultSummary.

    Example:
        ```python
        summary = summarize("/srv/tests/results.json")
        ```
    """
    return extract_summary(parse_results(json_path))


def build_parsed_results(data: Any) -> ParsedResults:
    """Summary plus scenario breakdown and metadata for inspection tools.

    Example:
        ```python
        parsed = build_parsed_results(parse_results("/srv/tests/results.json"))
        ```
    """
    document = _mapping(data)
    summary = extract_summary(document)
    raw_scenarios = document.get("scenarios")
    scenarios = [
        ScenarioBreakdown(
            name=str(_mapping(item).get("name") or "Unknown"),
            count=int(_number(_mapping(item).get("count"))),
            success_rate=_number(_mapping(item).get("successRate")),
            avg_latency=_number(_mapping(item).get("avgLatency")),
        )
        for item in (raw_scenarios if isinstance(raw_scenarios, list) else [])
    ]
    metadata = ResultMetadata(
        timestamp=str(document.get("timestamp") or datetime.now(tz=UTC).isoformat()),
        duration=str(document.get("duration") or "Unknown"),
        total_requests=summary.requests_total,
    )
    return ParsedResults(summary=summary, scenarios=scenarios, metadata=metadata)
