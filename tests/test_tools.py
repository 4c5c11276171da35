from __future__ import annotations

import json
from dataclasses import replace
from pathlib import Path

import pytest

from artillery_mcp import ArtilleryTools, ArtilleryWrapper, ExecutionConfig
from artillery_mcp.tools import (
    CAPABILITIES_ERROR,
    EXECUTION_ERROR,
    INTERNAL_ERROR,
    PARSE_ERROR,
    TOOL_SPECS,
    ToolOutput,
)


@pytest.fixture
def tools(wrapper: ArtilleryWrapper) -> ArtilleryTools:
    return ArtilleryTools(wrapper, server_version="9.9.9")


def test_specs_cover_every_tool() -> None:
    names = [spec.name for spec in ArtilleryTools.specs()]
    assert names == [
        "run_test_from_file",
        "run_test_inline",
        "quick_test",
        "list_capabilities",
        "parse_results",
    ]
    assert TOOL_SPECS["run_test_from_file"].input_schema["required"] == ["path"]
    assert TOOL_SPECS["parse_results"].error_code == PARSE_ERROR


def test_run_test_from_file_ok(tools: ArtilleryTools, work_dir: Path) -> None:
    (work_dir / "smoke.yml").write_text("config: {}\n", encoding="utf-8")

    out = tools.call("run_test_from_file", {"path": "smoke.yml", "output_json": "r.json"})

    assert out.ok
    payload = out.to_dict()
    assert payload["status"] == "ok"
    assert payload["tool"] == "run_test_from_file"
    assert payload["data"]["exit_code"] == 0
    assert payload["data"]["summary"]["requests_total"] == 100
    json.dumps(payload)


def test_nonzero_exit_is_still_ok(tools: ArtilleryTools, work_dir: Path) -> None:
    (work_dir / "smoke.yml").write_text("# fail\n", encoding="utf-8")

    out = tools.call("run_test_from_file", {"path": "smoke.yml"})

    assert out.ok
    assert out.data.exit_code == 3


def test_path_escape_is_execution_error(tools: ArtilleryTools) -> None:
    out = tools.call("run_test_from_file", {"path": "../../etc/passwd"})

    assert out.status == "error"
    assert out.error is not None
    assert out.error["code"] == EXECUTION_ERROR
    assert "outside allowed working directory" in out.error["message"]
    assert out.error["details"] == {"tool": "run_test_from_file", "arguments": {"path": "../../etc/passwd"}}


def test_missing_required_argument(tools: ArtilleryTools) -> None:
    out = tools.call("run_test_inline", {})

    assert out.error is not None
    assert out.error["code"] == EXECUTION_ERROR
    assert "config_text" in out.error["message"]


@pytest.mark.parametrize(
    "arguments",
    [
        {"target": "http://localhost", "count": 0},
        {"target": "http://localhost", "rate": "fast"},
        {"target": "http://localhost", "count": True},
        {"target": "http://localhost", "headers": {"X-Id": 1}},
    ],
)
def test_quick_test_rejects_bad_arguments(tools: ArtilleryTools, arguments: dict) -> None:
    out = tools.call("quick_test", arguments)

    assert out.error is not None
    assert out.error["code"] == EXECUTION_ERROR


def test_quick_test_disabled(config: ExecutionConfig, fake_calls) -> None:
    tools = ArtilleryTools(ArtilleryWrapper(replace(config, allow_quick=False)))

    out = tools.call("quick_test", {"target": "http://localhost"})

    assert out.error is not None
    assert out.error["code"] == EXECUTION_ERROR
    assert "ARTILLERY_ALLOW_QUICK=true" in out.error["message"]
    assert fake_calls() == []


def test_quick_test_ok(tools: ArtilleryTools) -> None:
    out = tools.call("quick_test", {"target": "http://localhost", "rate": 2, "duration": "3s"})

    assert out.ok
    assert out.data.summary.requests_total == 100


def test_list_capabilities(tools: ArtilleryTools, config: ExecutionConfig) -> None:
    out = tools.call("list_capabilities")

    assert out.ok
    data = out.to_dict()["data"]
    assert data["artillery_version"] == "Artillery: 2.0.21"
    assert data["server_version"] == "9.9.9"
    assert data["limits"] == {"max_timeout_ms": 20_000, "max_output_mb": 1, "allow_quick": True}
    assert data["config_paths"]["work_dir"] == str(config.work_dir)
    assert data["transports"] == ("stdio",)


def test_list_capabilities_failure(work_dir: Path, tmp_path: Path) -> None:
    broken = ArtilleryWrapper(ExecutionConfig(binary_path=str(tmp_path / "missing"), work_dir=work_dir))

    out = ArtilleryTools(broken).call("list_capabilities", {})

    assert out.error is not None
    assert out.error["code"] == CAPABILITIES_ERROR


def test_parse_results_summary_and_raw(tools: ArtilleryTools, work_dir: Path, report: dict) -> None:
    (work_dir / "results.json").write_text(json.dumps(report), encoding="utf-8")

    parsed = tools.call("parse_results", {"json_path": "results.json"})
    raw = tools.call("parse_results", {"json_path": "results.json", "raw": True})

    assert parsed.ok and raw.ok
    assert parsed.to_dict()["data"]["summary"]["errors"] == {"ETIMEDOUT": 2}
    assert raw.data == report


def test_parse_results_invalid_json(tools: ArtilleryTools, work_dir: Path) -> None:
    (work_dir / "results.json").write_text("{broken", encoding="utf-8")

    out = tools.call("parse_results", {"json_path": "results.json"})

    assert out.error is not None
    assert out.error["code"] == PARSE_ERROR


def test_unknown_tool(tools: ArtilleryTools) -> None:
    out = tools.call("launch_rockets", {"n": 1})

    assert out.error is not None
    assert out.error["code"] == INTERNAL_ERROR
    assert out.error["message"] == "Unknown tool: launch_rockets"


def test_unexpected_exception_is_internal_error(
    tools: ArtilleryTools, monkeypatch: pytest.MonkeyPatch
) -> None:
    def _boom(self, path, options=None):
        raise RuntimeError("disk on fire")

    monkeypatch.setattr(ArtilleryWrapper, "run_test_from_file", _boom)

    out = tools.call("run_test_from_file", {"path": "smoke.yml"})

    assert out.error is not None
    assert out.error["code"] == INTERNAL_ERROR
    assert out.error["message"] == "disk on fire"


def test_error_envelope_has_no_data() -> None:
    out = ToolOutput(status="error", tool="x", error={"code": INTERNAL_ERROR, "message": "m", "details": {}})
    assert out.to_dict() == {
        "status": "error",
        "tool": "x",
        "error": {"code": INTERNAL_ERROR, "message": "m", "details": {}},
    }


def test_parse_results_with_overflowing_numbers_is_ok(tools: ArtilleryTools, work_dir: Path) -> None:
    (work_dir / "results.json").write_text(
        '{"aggregate": {"counters": {"http.requests": 1e400, "errors.ETIMEDOUT": 1e400}}}',
        encoding="utf-8",
    )

    out = tools.call("parse_results", {"json_path": "results.json"})

    assert out.ok
    summary = out.to_dict()["data"]["summary"]
    assert summary["requests_total"] == 0
    assert summary["errors"] == {}


def test_run_test_inline_unencodable_text_is_execution_error(tools: ArtilleryTools, work_dir: Path) -> None:
    out = tools.call("run_test_inline", {"config_text": "config: \ud800\n"})

    assert out.error is not None
    assert out.error["code"] == EXECUTION_ERROR
    assert list((work_dir / "temp").iterdir()) == []
