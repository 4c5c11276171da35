from __future__ import annotations

import json
from dataclasses import asdict
from pathlib import Path

import pytest

from artillery_mcp.errors import ResultParseError
from artillery_mcp.summary import (
    LatencyPercentiles,
    ResultSummary,
    build_parsed_results,
    extract_summary,
    parse_results,
    summarize,
)


def _write(tmp_path: Path, data: object, name: str = "results.json") -> Path:
    path = tmp_path / name
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


def test_newer_metrics_http_layout(tmp_path: Path) -> None:
    path = _write(
        tmp_path,
        {
            "metrics": {
                "http": {
                    "requests": {"count": 100, "rate": 10.5},
                    "response_time": {"p50": 150, "p95": 300, "p99": 500},
                    "errors": {"ETIMEDOUT": 5},
                }
            }
        },
    )

    summary = summarize(path)

    assert summary == ResultSummary(
        requests_total=100,
        rps_avg=10.5,
        latency=LatencyPercentiles(p50=150, p95=300, p99=500),
        errors={"ETIMEDOUT": 5},
    )


def test_older_aggregate_layout_collects_error_counters() -> None:
    summary = extract_summary(
        {
            "aggregate": {
                "counters": {
                    "http.requests": 600,
                    "http.codes.200": 590,
                    "errors.ECONNREFUSED": 7,
                    "http.errors": {"ETIMEDOUT": 3},
                },
                "rates": {"http.request_rate": 20},
                "summaries": {"http.response_time": {"p50": 11.2, "p95": 48, "p99": 90.1}},
            }
        }
    )

    assert summary.requests_total == 600
    assert summary.rps_avg == 20
    assert summary.latency == LatencyPercentiles(p50=11.2, p95=48, p99=90.1)
    assert summary.errors == {"ETIMEDOUT": 3, "ECONNREFUSED": 7}


def test_newer_layout_wins_when_both_present() -> None:
    summary = extract_summary(
        {
            "aggregate": {"counters": {"http.requests": 1}},
            "metrics": {"http": {"requests": {"count": 2}}},
        }
    )
    assert summary.requests_total == 2


def test_missing_errors_field_defaults_to_empty(tmp_path: Path) -> None:
    path = _write(tmp_path, {"metrics": {"http": {"requests": {"count": 3, "rate": 1}}}})

    summary = summarize(path)

    assert summary.errors == {}
    assert summary.latency == LatencyPercentiles()


@pytest.mark.parametrize("data", [{}, [], "text", 42, None, {"aggregate": None}, {"metrics": {"http": 7}}])
def test_unknown_shapes_degrade_to_zero(data: object) -> None:
    assert extract_summary(data) == ResultSummary()


def test_non_numeric_fields_are_ignored() -> None:
    summary = extract_summary(
        {
            "metrics": {
                "http": {
                    "requests": {"count": "100", "rate": True},
                    "response_time": {"p50": None, "p95": -1, "p99": 9},
                    "errors": {"ETIMEDOUT": "5", "EPIPE": 1},
                }
            }
        }
    )
    assert summary.requests_total == 0
    assert summary.rps_avg == 0
    assert summary.latency == LatencyPercentiles(p50=0, p95=0, p99=9)
    assert summary.errors == {"EPIPE": 1}


def test_summarize_is_repeatable(tmp_path: Path) -> None:
    path = _write(
        tmp_path,
        {"aggregate": {"counters": {"http.requests": 5, "errors.EAI_AGAIN": 1}}},
    )

    first = json.dumps(asdict(summarize(path)), sort_keys=True)
    second = json.dumps(asdict(summarize(path)), sort_keys=True)

    assert first == second


def test_parse_results_returns_raw_content(tmp_path: Path) -> None:
    data = {"aggregate": {"counters": {"vusers.created": 10}}, "intermediate": []}
    assert parse_results(_write(tmp_path, data)) == data


def test_invalid_json_raises_parse_error(tmp_path: Path) -> None:
    path = tmp_path / "broken.json"
    path.write_text("{not json", encoding="utf-8")

    with pytest.raises(ResultParseError, match="Failed to parse results file"):
        summarize(path)


def test_missing_file_raises_parse_error(tmp_path: Path) -> None:
    with pytest.raises(ResultParseError):
        parse_results(tmp_path / "absent.json")


def test_parsed_results_include_scenarios_and_metadata() -> None:
    parsed = build_parsed_results(
        {
            "aggregate": {"counters": {"http.requests": 40}},
            "scenarios": [
                {"name": "browse", "count": 30, "successRate": 0.9, "avgLatency": 120},
                {"count": 10},
            ],
            "timestamp": "2024-05-01T10:00:00Z",
            "duration": "60s",
        }
    )

    assert [s.name for s in parsed.scenarios] == ["browse", "Unknown"]
    assert parsed.scenarios[0].success_rate == 0.9
    assert parsed.scenarios[1].avg_latency == 0
    assert parsed.metadata.timestamp == "2024-05-01T10:00:00Z"
    assert parsed.metadata.duration == "60s"
    assert parsed.metadata.total_requests == 40


def test_parsed_results_defaults() -> None:
    parsed = build_parsed_results({})

    assert parsed.scenarios == []
    assert parsed.metadata.duration == "Unknown"
    assert parsed.metadata.timestamp


def test_overflowing_numbers_are_ignored(tmp_path: Path) -> None:
    path = tmp_path / "huge.json"
    path.write_text(
        '{"metrics": {"http": {"requests": {"count": 1e400, "rate": 1e400},'
        ' "response_time": {"p95": -1e400}, "errors": {"ETIMEDOUT": 1e400, "EPIPE": 2}}}}',
        encoding="utf-8",
    )

    summary = summarize(path)

    assert summary.requests_total == 0
    assert summary.rps_avg == 0
    assert summary.latency == LatencyPercentiles()
    assert summary.errors == {"EPIPE": 2}
    json.dumps(asdict(summary), allow_nan=False)


def test_overflowing_aggregate_error_counter_is_ignored() -> None:
    summary = extract_summary(
        {"aggregate": {"counters": {"http.requests": float("inf"), "errors.ECONNRESET": float("nan")}}}
    )
    assert summary.requests_total == 0
    assert summary.errors == {}


def test_deeply_nested_json_raises_parse_error(tmp_path: Path) -> None:
    path = tmp_path / "deep.json"
    path.write_text("[" * 100_000 + "]" * 100_000, encoding="utf-8")

    with pytest.raises(ResultParseError):
        parse_results(path)


def test_integer_past_the_digit_limit_raises_parse_error(tmp_path: Path) -> None:
    path = tmp_path / "digits.json"
    path.write_text('{"count": ' + "9" * 5000 + "}", encoding="utf-8")

    with pytest.raises(ResultParseError):
        parse_results(path)
