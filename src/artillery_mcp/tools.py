from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, is_dataclass
from typing import Any, Callable, Mapping

from . import __version__
from .artillery import ArtilleryWrapper, QuickTestRequest, RunOptions
from .errors import ArtilleryError, InvalidArgumentError
from .execution.capabilities import build_capabilities
from .log import get_logger

EXECUTION_ERROR = "EXECUTION_ERROR"
PARSE_ERROR = "PARSE_ERROR"
CAPABILITIES_ERROR = "CAPABILITIES_ERROR"
INTERNAL_ERROR = "INTERNAL_ERROR"

_STRING = {"type": "string"}
_STRING_MAP = {"type": "object", "additionalProperties": {"type": "string"}}
_RUN_OPTION_PROPERTIES: dict[str, Any] = {
    "output_json": {"type": "string", "description": "Path for JSON results output"},
    "report_html": {"type": "string", "description": "Path for HTML report output"},
    "env": {**_STRING_MAP, "description": "Environment variables"},
    "cwd": {"type": "string", "description": "Working directory inside the work dir"},
    "validate_only": {
        "type": "boolean",
        "default": False,
        "description": "Only validate config, do not run",
    },
}


@dataclass(slots=True)
class ToolOutput:
    """Uniform envelope returned by every tool.

    Example:
        ```python
        out = ToolOutput(status="ok", tool="quick_test", data={"exit_code": 0})
        ```
    """

    status: str
    tool: str
    data: Any = None
    error: dict[str, Any] | None = None

    @property
    def ok(self) -> bool:
        """True for `status == "ok"` envelopes.

        Example:
            ```python
            if not out.ok: print(out.error["code"])
            ```
        """
        return self.status == "ok"

    def to_dict(self) -> dict[str, Any]:
        """Render the envelope as JSON-ready data.

        Example:
            ```python
            json.dumps(out.to_dict())
            ```
        """
        payload: dict[str, Any] = {"status": self.status, "tool": self.tool}
        if self.ok:
            payload["data"] = to_jsonable(self.data)
        else:
            payload["error"] = self.error
        return payload


@dataclass(frozen=True, slots=True)
class ToolSpec:
    """Name, description, input schema and error code of one tool.

    Example:
        ```python
        spec = ToolSpec("parse_results", "Parse results", {"type": "object"}, PARSE_ERROR)
        ```
    """

    name: str
    description: str
    input_schema: dict[str, Any]
    error_code: str


TOOL_SPECS: dict[str, ToolSpec] = {
    spec.name: spec
    for spec in (
        ToolSpec(
            "run_test_from_file",
            "Run an Artillery test from a config file path.",
            {
                "type": "object",
                "properties": {
                    "path": {"type": "string", "description": "Path to Artillery config file"},
                    **_RUN_OPTION_PROPERTIES,
                },
                "required": ["path"],
            },
            EXECUTION_ERROR,
        ),
        ToolSpec(
            "run_test_inline",
            "Run an Artillery test from an inline config string.",
            {
                "type": "object",
                "properties": {
                    "config_text": {
                        "type": "string",
                        "description": "Artillery config as YAML/JSON string",
                    },
                    **_RUN_OPTION_PROPERTIES,
                },
                "required": ["config_text"],
            },
            EXECUTION_ERROR,
        ),
        ToolSpec(
            "quick_test",
            "Run a quick HTTP test (if supported by Artillery).",
            {
                "type": "object",
                "properties": {
                    "target": {"type": "string", "description": "URL to test"},
                    "rate": {"type": "number", "minimum": 1, "description": "Requests per second"},
                    "duration": {"type": "string", "description": 'Test duration, e.g. "1m"'},
                    "count": {"type": "number", "minimum": 1, "description": "Virtual users"},
                    "method": {"type": "string", "default": "GET"},
                    "headers": _STRING_MAP,
                    "body": _STRING,
                },
                "required": ["target"],
            },
            EXECUTION_ERROR,
        ),
        ToolSpec(
            "list_capabilities",
            "Report versions, detected features, and server limits.",
            {"type": "object", "properties": {}},
            CAPABILITIES_ERROR,
        ),
        ToolSpec(
            "parse_results",
            "Parse and summarize an Artillery JSON results file.",
            {
                "type": "object",
                "properties": {
                    "json_path": {
                        "type": "string",
                        "description": "Path to Artillery JSON results file",
                    },
                    "raw": {
                        "type": "boolean",
                        "default": False,
                        "description": "Return the file content unmodified",
                    },
                },
                "required": ["json_path"],
            },
            PARSE_ERROR,
        ),
    )
}


def to_jsonable(value: Any) -> Any:
    """Convert dataclass results into plain JSON-ready values.

    Example:
        ```python
        payload = to_jsonable(ExecutionResult(exit_code=0, elapsed_ms=10, logs_tail=""))
        ```
    """
    if not isinstance(value, type) and is_dataclass(value):
        return asdict(value)
    return value


def _require_str(arguments: Mapping[str, Any], key: str) -> str:
    """Fetch a required non-empty string argument.

    Example:
        ```python
        path = _require_str({"path": "smoke.yml"}, "path")
        ```
    """
    value = arguments.get(key)
    if not isinstance(value, str) or not value:
        raise InvalidArgumentError(f"'{key}' is required and must be a non-empty string")
    return value


def _optional(arguments: Mapping[str, Any], key: str, kinds: type | tuple[type, ...]) -> Any:
    """Fetch an optional argument, checking its type when present.

    Example:
        ```python
        rate = _optional({"rate": 5}, "rate", (int, float))
        ```
    """
    value = arguments.get(key)
    if value is None:
        return None
    if isinstance(value, bool) and bool not in (kinds if isinstance(kinds, tuple) else (kinds,)):
        raise InvalidArgumentError(f"'{key}' has an invalid type")
    if not isinstance(value, kinds):
        raise InvalidArgumentError(f"'{key}' has an invalid type")
    return value


def _string_map(arguments: Mapping[str, Any], key: str) -> dict[str, str]:
    """Fetch an optional string-to-string mapping argument.

    Example:
        ```python
        env = _string_map({"env": {"TARGET": "http://localhost"}}, "env")
        ```
    """
    value = _optional(arguments, key, dict) or {}
    if not all(isinstance(k, str) and isinstance(v, str) for k, v in value.items()):
        raise InvalidArgumentError(f"'{key}' must map strings to strings")
    return dict(value)


def _positive(arguments: Mapping[str, Any], key: str) -> float | None:
    """Fetch an optional number that must be at least 1.

    Example:
        ```python
        count = _positive({"count": 10}, "count")
        ```
    """
    value = _optional(arguments, key, (int, float))
    if value is not None and value < 1:
        raise InvalidArgumentError(f"'{key}' must be >= 1")
    return value


def _run_options(arguments: Mapping[str, Any]) -> RunOptions:
    """Map run tool arguments onto RunOptions.

    Example:
        ```python
        options = _run_options({"output_json": "out.json", "validate_only": True})
        ```
    """
    return RunOptions(
        output_json=_optional(arguments, "output_json", str),
        report_html=_optional(arguments, "report_html", str),
        env=_string_map(arguments, "env"),
        cwd=_optional(arguments, "cwd", str),
        validate_only=bool(_optional(arguments, "validate_only", bool)),
    )


class ArtilleryTools:
    """Dispatch tool calls to the facade and wrap every outcome in a ToolOutput.

    `call` is the outermost boundary: nothing raised below it escapes.

    Example:
        ```python
        tools = ArtilleryTools(ArtilleryWrapper(config))
        out = tools.call("quick_test", {"target": "http://localhost:8080"})
        ```
    """

    def __init__(
        self,
        wrapper: ArtilleryWrapper,
        *,
        server_version: str = __version__,
        logger: logging.Logger | None = None,
    ) -> None:
        """Bind the tool set to a facade.

        Example:
            ```python
            tools = ArtilleryTools(wrapper, server_version="1.0.1")
            ```
        """
        self._wrapper = wrapper
        self._server_version = server_version
        self._log = logger or get_logger("tools")
        self._handlers: dict[str, Callable[[Mapping[str, Any]], Any]] = {
            "run_test_from_file": self._run_test_from_file,
            "run_test_inline": self._run_test_inline,
            "quick_test": self._quick_test,
            "list_capabilities": self._list_capabilities,
            "parse_results": self._parse_results,
        }

    @staticmethod
    def specs() -> list[ToolSpec]:
        """Descriptors of every registered tool.

        Example:
            ```python
            names = [spec.name for spec in ArtilleryTools.specs()]
            ```
        """
        return list(TOOL_SPECS.values())

    def call(self, name: str, arguments: Mapping[str, Any] | None = None) -> ToolOutput:
        """Run one tool and return its envelope.

        Example:
            ```python
            out = tools.call("parse_results", {"json_path": "results.json"})
            ```
        """
        args = dict(arguments or {})
        handler = self._handlers.get(name)
        if handler is None:
            return self._error(name, INTERNAL_ERROR, f"Unknown tool: {name}", args)
        spec = TOOL_SPECS[name]
        try:
            data = handler(args)
        except ArtilleryError as exc:
            self._log.info("Tool %s failed: %s", name, exc)
            return self._error(name, spec.error_code, str(exc), args)
        except Exception as exc:
            self._log.exception("Unexpected failure in tool %s", name)
            return self._error(name, INTERNAL_ERROR, str(exc) or type(exc).__name__, args)
        return ToolOutput(status="ok", tool=name, data=data)

    def _error(self, name: str, code: str, message: str, arguments: dict[str, Any]) -> ToolOutput:
        """Build an error envelope carrying the tool name and arguments.

        Example:
            ```python
            out = tools._error("quick_test", EXECUTION_ERROR, "boom", {})
            ```
        """
        return ToolOutput(
            status="error",
            tool=name,
            error={
                "code": code,
                "message": message,
                "details": {"tool": name, "arguments": arguments},
            },
        )

    def _run_test_from_file(self, arguments: Mapping[str, Any]) -> Any:
        """Handler for `run_test_from_file`.

        Example:
            ```python
            result = tools._run_test_from_file({"path": "smoke.yml"})
            ```
        """
        return self._wrapper.run_test_from_file(
            _require_str(arguments, "path"), _run_options(arguments)
        )

    def _run_test_inline(self, arguments: Mapping[str, Any]) -> Any:
        """Handler for `run_test_inline`.

        Example:
            ```python
            result = tools._run_test_inline({"config_text": "config: {}"})
            ```
        """
        return self._wrapper.run_test_inline(
            _require_str(arguments, "config_text"), _run_options(arguments)
        )

    def _quick_test(self, arguments: Mapping[str, Any]) -> Any:
        """Handler for `quick_test`.

        Example:
            ```python
            result = tools._quick_test({"target": "http://localhost", "count": 2})
            ```
        """
        count = _positive(arguments, "count")
        request = QuickTestRequest(
            target=_require_str(arguments, "target"),
            rate=_positive(arguments, "rate"),
            duration=_optional(arguments, "duration", str),
            count=int(count) if count is not None else None,
            method=_optional(arguments, "method", str),
            headers=_string_map(arguments, "headers"),
            body=_optional(arguments, "body", str),
        )
        return self._wrapper.quick_test(request)

    def _list_capabilities(self, arguments: Mapping[str, Any]) -> Any:
        """Handler for `list_capabilities`.

        Example:
            ```python
            caps = tools._list_capabilities({})
            ```
        """
        return build_capabilities(
            self._wrapper.config,
            artillery_version=self._wrapper.get_version(),
            server_version=self._server_version,
        )

    def _parse_results(self, arguments: Mapping[str, Any]) -> Any:
        """Handler for `parse_results`.

        Example:
            ```python
            parsed = tools._parse_results({"json_path": "results.json"})
            ```
        """
        json_path = _require_str(arguments, "json_path")
        if _optional(arguments, "raw", bool):
            return self._wrapper.parse_results(json_path)
        return self._wrapper.inspect_results(json_path)
