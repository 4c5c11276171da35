from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from functools import partial
from typing import Any, Never, Sequence, TextIO

from rich.console import Console
from rich.panel import Panel
from rich.pretty import Pretty
from rich.table import Table
from rich_argparse import RawTextRichHelpFormatter

from artillery_mcp import ArtilleryTools, ArtilleryWrapper, ToolOutput, load_config
from artillery_mcp.config import ExecutionConfig
from artillery_mcp.errors import ConfigError
from artillery_mcp.log import setup_logging
from artillery_mcp.tools import INTERNAL_ERROR

_CONSOLE = Console(no_color=False)
_ERR_CONSOLE = Console(stderr=True)


class _CLIHelpFormatter(RawTextRichHelpFormatter):
    """Rich formatter with explicit high-contrast CLI styles.

    Example:
        ```python
        parser = argparse.ArgumentParser(formatter_class=_CLIHelpFormatter)
        ```
    """

    styles = {
        "argparse.args": "bold cyan",
        "argparse.groups": "bold magenta",
        "argparse.help": "white",
        "argparse.metavar": "bold yellow",
        "argparse.prog": "bold bright_blue",
        "argparse.syntax": "bold bright_white",
        "argparse.text": "bright_white",
    }


_HELP_FORMATTER = partial(
    _CLIHelpFormatter,
    max_help_position=34,
    width=120,
)


class _RichArgumentParser(argparse.ArgumentParser):
    """ArgumentParser that renders errors via Rich.

    Example:
        ```python
        parser = _RichArgumentParser(prog="amcp")
        ```
    """

    def error(self, message: str) -> Never:
        """Render parse errors with Rich and exit.

        Example:
            ```python
            # parser.error("invalid usage")
            ```
        """
        _ERR_CONSOLE.print(Panel.fit(f"[bold red]Error:[/bold red] {message}", border_style="red"))
        self.print_usage(sys.stderr)
        raise SystemExit(2)


def _key_value(raw: str) -> tuple[str, str]:
    """Parse a repeatable `KEY=VALUE` flag.

    Example:
        ```python
        assert _key_value("TARGET=http://localhost") == ("TARGET", "http://localhost")
        ```
    """
    key, sep, value = raw.partition("=")
    if not sep or not key:
        raise argparse.ArgumentTypeError(f"expected KEY=VALUE, got {raw!r}")
    return key, value


def _add_run_options(parser: argparse.ArgumentParser) -> None:
    """Add the options shared by `run` and `inline`.

    Example:
        ```python
        _add_run_options(sub.add_parser("run"))
        ```
    """
    parser.add_argument("--output-json", help="Write JSON results here (inside the work dir).")
    parser.add_argument("--report-html", help="Write an HTML report here (inside the work dir).")
    parser.add_argument(
        "--env",
        type=_key_value,
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Extra environment variable for Artillery (repeatable).",
    )
    parser.add_argument("--cwd", help="Run from this directory inside the work dir.")
    parser.add_argument(
        "--validate-only",
        action="store_true",
        help="Validate the config without running a load test.",
    )


def build_parser() -> argparse.ArgumentParser:
    """Build CLI parser for the Artillery tool server.

    Example:
        ```python
        parser = build_parser()
        ```
    """
    parser = _RichArgumentParser(
        prog="amcp",
        description=(
            "artillery-mcp CLI\n"
            "Run Artillery load tests through the same tools remote clients call.\n"
            "All file paths are confined to the configured work directory."
        ),
        epilog=(
            "Quick Examples:\n"
            "  amcp run smoke.yml --output-json out/smoke.json\n"
            "  amcp inline - < smoke.yml\n"
            "  amcp --allow-quick quick https://api.example.com/health --count 5\n"
            "  amcp parse out/smoke.json\n"
            "  amcp capabilities\n"
            "  amcp call list_capabilities\n"
            "  amcp serve"
        ),
        formatter_class=_HELP_FORMATTER,
    )
    parser.add_argument("--config", help="TOML config file ([artillery] table).")
    parser.add_argument("--workdir", help="Sandbox root for every path (default: cwd).")
    parser.add_argument("--binary", help="Artillery executable (default: auto-detect).")
    parser.add_argument("--timeout-ms", type=int, help="Per-run timeout, 1000-7200000.")
    parser.add_argument("--max-output-mb", type=int, help="Per-stream capture cap, 1-100.")
    parser.add_argument(
        "--allow-quick",
        action="store_true",
        default=None,
        help="Enable the quick_test tool.",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level for stderr logging (default: WARNING).",
    )
    parser.add_argument("--json-logs", action="store_true", help="Emit logs as JSON lines.")

    sub = parser.add_subparsers(
        dest="command",
        required=True,
        parser_class=_RichArgumentParser,
    )

    run_cmd = sub.add_parser(
        "run",
        help="Run a test from a config file.",
        description="Run `artillery run` on a config file inside the work directory.",
        formatter_class=_HELP_FORMATTER,
    )
    run_cmd.add_argument("path")
    _add_run_options(run_cmd)

    inline_cmd = sub.add_parser(
        "inline",
        help="Run a test from config text.",
        description=(
            "Copy config text into a temporary file and run it.\n"
            "Pass `-` to read the config from stdin."
        ),
        formatter_class=_HELP_FORMATTER,
    )
    inline_cmd.add_argument("source", help="Local file to read config text from, or `-`.")
    _add_run_options(inline_cmd)

    quick_cmd = sub.add_parser(
        "quick",
        help="Run a quick test against one URL.",
        description="Run `artillery quick`; requires --allow-quick or ARTILLERY_ALLOW_QUICK=true.",
        formatter_class=_HELP_FORMATTER,
    )
    quick_cmd.add_argument("target")
    quick_cmd.add_argument("--rate", type=float, help="Requests per second.")
    quick_cmd.add_argument("--duration", help='Duration such as "30s" or "2m".')
    quick_cmd.add_argument("--count", type=int, help="Number of virtual users.")

    parse_cmd = sub.add_parser(
        "parse",
        help="Summarize a JSON results file.",
        description="Print the summary, scenarios and metadata of an Artillery report.",
        formatter_class=_HELP_FORMATTER,
    )
    parse_cmd.add_argument("json_path")
    parse_cmd.add_argument("--raw", action="store_true", help="Print the file content unmodified.")

    sub.add_parser(
        "capabilities",
        help="Show versions and limits.",
        description="Show the Artillery version, server version and effective limits.",
        formatter_class=_HELP_FORMATTER,
    )
    sub.add_parser(
        "tools",
        help="List the available tools.",
        description="List tool names, descriptions and required arguments.",
        formatter_class=_HELP_FORMATTER,
    )

    call_cmd = sub.add_parser(
        "call",
        help="Call one tool and print its JSON envelope.",
        description="Call a tool by name with JSON arguments and print the raw envelope.",
        epilog=(
            "Example:\n"
            "  amcp call parse_results --arguments '{\"json_path\": \"out.json\"}'"
        ),
        formatter_class=_HELP_FORMATTER,
    )
    call_cmd.add_argument("tool")
    call_cmd.add_argument("--arguments", default="{}", help="JSON object of tool arguments.")

    sub.add_parser(
        "serve",
        help="Serve tool calls as JSON lines on stdin/stdout.",
        description=(
            "Read one request per line: {\"tool\": name, \"arguments\": {...}}.\n"
            "Write one envelope per line. Logs go to stderr."
        ),
        formatter_class=_HELP_FORMATTER,
    )

    return parser


def build_config(args: argparse.Namespace) -> ExecutionConfig:
    """Load configuration, letting global CLI flags override the environment.

    Example:
        ```python
        config = build_config(args)
        ```
    """
    environ = dict(os.environ)
    overrides = {
        "ARTILLERY_WORKDIR": args.workdir,
        "ARTILLERY_BIN": args.binary,
        "ARTILLERY_TIMEOUT_MS": args.timeout_ms,
        "ARTILLERY_MAX_OUTPUT_MB": args.max_output_mb,
        "ARTILLERY_ALLOW_QUICK": "true" if args.allow_quick else None,
    }
    environ.update({key: str(value) for key, value in overrides.items() if value is not None})
    return load_config(environ, config_file=args.config)


def _tool_arguments(args: argparse.Namespace) -> tuple[str, dict[str, Any]]:
    """Map a parsed subcommand onto a tool name and its arguments.

    Example:
        ```python
        name, arguments = _tool_arguments(build_parser().parse_args(["parse", "out.json"]))
        ```
    """
    if args.command in {"run", "inline"}:
        arguments: dict[str, Any] = {
            "output_json": args.output_json,
            "report_html": args.report_html,
            "env": dict(args.env),
            "cwd": args.cwd,
            "validate_only": args.validate_only,
        }
        if args.command == "run":
            return "run_test_from_file", {"path": args.path, **arguments}
        if args.source == "-":
            text = sys.stdin.read()
        else:
            with open(args.source, encoding="utf-8") as handle:
                text = handle.read()
        return "run_test_inline", {"config_text": text, **arguments}
    if args.command == "quick":
        return "quick_test", {
            "target": args.target,
            "rate": args.rate,
            "duration": args.duration,
            "count": args.count,
        }
    if args.command == "parse":
        return "parse_results", {"json_path": args.json_path, "raw": args.raw}
    return "list_capabilities", {}


def _print_envelope(out: ToolOutput) -> None:
    """Render a tool envelope as a rich table or panel.

    Example:
        ```python
        _print_envelope(tools.call("list_capabilities"))
        ```
    """
    payload = out.to_dict()
    if not out.ok:
        error = payload["error"]
        _CONSOLE.print(
            Panel.fit(
                f"[bold red]{error['code']}[/bold red]: {error['message']}",
                title=out.tool,
                border_style="red",
            )
        )
        return
    data = payload["data"]
    if isinstance(data, dict) and "exit_code" in data:
        _print_run_result(data)
        return
    _CONSOLE.print(Panel.fit(Pretty(data), title=out.tool, border_style="cyan"))


def _print_run_result(data: dict[str, Any]) -> None:
    """Print a run result table followed by the tail of the logs.

    Example:
        ```python
        _print_run_result({"exit_code": 0, "elapsed_ms": 12, "logs_tail": "All VUs finished"})
        ```
    """
    style = "green" if data["exit_code"] == 0 else "yellow"
    table = Table(title="Artillery Run", show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("Exit code", str(data["exit_code"]))
    table.add_row("Elapsed", f"{data['elapsed_ms']} ms")
    table.add_row("JSON results", data.get("json_result_path") or "-")
    table.add_row("HTML report", data.get("html_report_path") or "-")
    summary = data.get("summary")
    if summary:
        latency = summary["latency"]
        table.add_row("Requests", str(summary["requests_total"]))
        table.add_row("Avg RPS", str(summary["rps_avg"]))
        table.add_row(
            "Latency p50/p95/p99",
            f"{latency['p50']} / {latency['p95']} / {latency['p99']} ms",
        )
        errors = ", ".join(f"{kind}={count}" for kind, count in summary["errors"].items())
        table.add_row("Errors", errors or "none")
    _CONSOLE.print(table)
    if data.get("logs_tail"):
        _CONSOLE.print(Panel(data["logs_tail"], title="Logs (tail)", border_style=style))


def _print_tools() -> None:
    """Print every registered tool with its required arguments.

    Example:
        ```python
        _print_tools()
        ```
    """
    table = Table(title="Tools")
    table.add_column("Name", style="cyan")
    table.add_column("Description")
    table.add_column("Required", style="magenta")
    for spec in ArtilleryTools.specs():
        table.add_row(spec.name, spec.description, ", ".join(spec.input_schema.get("required", [])))
    _CONSOLE.print(table)


def serve(tools: ArtilleryTools, stdin: TextIO, stdout: TextIO) -> int:
    """Answer JSON-lines tool requests until stdin closes.

    Example:
        ```python
        serve(tools, sys.stdin, sys.stdout)
        ```
    """
    for line in stdin:
        if not line.strip():
            continue
        try:
            request = json.loads(line)
        except json.JSONDecodeError as exc:
            reply = ToolOutput(
                status="error",
                tool="",
                error={
                    "code": INTERNAL_ERROR,
                    "message": f"Invalid request line: {exc}",
                    "details": {},
                },
            ).to_dict()
        else:
            if not isinstance(request, dict):
                request = {}
            arguments = request.get("arguments")
            reply = tools.call(
                str(request.get("tool", "")),
                arguments if isinstance(arguments, dict) else {},
            ).to_dict()
        stdout.write(json.dumps(reply) + "\n")
        stdout.flush()
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    """Run the `amcp` CLI command handler.

    Example:
        ```python
        code = main(["capabilities"])
        ```
    """
    parser = build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)
    setup_logging(getattr(logging, args.log_level), json_format=args.json_logs)

    if args.command == "tools":
        _print_tools()
        return 0

    try:
        config = build_config(args)
    except ConfigError as exc:
        _ERR_CONSOLE.print(Panel.fit(f"[bold red]Configuration error:[/bold red] {exc}", border_style="red"))
        return 1
    tools = ArtilleryTools(ArtilleryWrapper(config))

    if args.command == "serve":
        return serve(tools, sys.stdin, sys.stdout)
    if args.command == "call":
        try:
            arguments = json.loads(args.arguments)
        except json.JSONDecodeError as exc:
            parser.error(f"--arguments is not valid JSON: {exc}")
        if not isinstance(arguments, dict):
            parser.error("--arguments must be a JSON object")
        out = tools.call(args.tool, arguments)
        print(json.dumps(out.to_dict(), indent=2))
        return 0 if out.ok else 1

    name, arguments = _tool_arguments(args)
    out = tools.call(name, arguments)
    _print_envelope(out)
    return 0 if out.ok else 1
