"""Operation-specific Rich renderers for ServiceResult.

Each renderer writes to a Rich Console (backed by StringIO). The caller
extracts the rendered text via ``get_output(console)``.

Renderers are dispatched by ``result.op`` in :func:`render_result`.
Unknown ops fall through to a generic key-value renderer.
"""

from __future__ import annotations

import json as _json
from typing import TYPE_CHECKING, Any

from rich.table import Table
from rich.text import Text

from pipectl.output.console import create_console, get_output, icon_for_status, style_for_status

if TYPE_CHECKING:
    from rich.console import Console

    from pipectl.services.result import ServiceResult


# ── Public API ────────────────────────────────────────────────────────


def render_result(result: ServiceResult, *, verbose: bool = False) -> str:
    """Render a ServiceResult to a styled string via Rich.

    Returns plain text (no ANSI) when Rich detects no terminal,
    which is the case inside Click's CliRunner and piped output.
    """
    console = create_console()

    if result.ok:
        renderer = _OP_RENDERERS.get(result.op, _render_generic)
        renderer(result, console, verbose=verbose)
    else:
        _render_error(result, console, verbose=verbose)

    return get_output(console).rstrip("\n")


def render_quiet(result: ServiceResult) -> str:
    """Render minimal output for ``--quiet`` mode."""
    if not result.ok:
        msg = result.error.message if result.error else "Unknown error"
        return f"ERROR: {result.op} — {msg}"
    return f"OK: {result.op}"


# ── Helpers ───────────────────────────────────────────────────────────


def _status_line(console: Console, result: ServiceResult) -> None:
    label = Text("OK", style="pipe.ok")
    op = Text(f"  {result.op}", style="pipe.op")
    console.print(label, op)


def _field(console: Console, key: str, value: Any) -> None:
    """Print a single indented key-value field."""
    if isinstance(value, (dict, list)):
        value = _json.dumps(value, separators=(",", ":"))
    console.print(Text.assemble((f"  {key}: ", "pipe.key"), str(value)))


def _hint(console: Console, remediation: str | None) -> None:
    if remediation:
        console.print(Text(f"  → {remediation}", style="pipe.hint"))


def _render_meta(console: Console, result: ServiceResult) -> None:
    """Print meta block including telemetry span tree (verbose only)."""
    if not result.meta:
        return

    console.print()
    console.print(Text("  meta:", style="dim"))
    for k, v in result.meta.items():
        if k == "telemetry":
            _render_telemetry_tree(console, v, indent=4)
        else:
            console.print(f"    {k}: {v}")


def _render_telemetry_tree(console: Console, span_data: dict[str, Any], indent: int = 4) -> None:
    """Render a hierarchical span tree with color-coded timing."""
    prefix = " " * indent
    name = span_data.get("name", "?")
    duration = span_data.get("duration_ms", 0.0)

    if duration > 5000:
        style = "bold red"
    elif duration > 500:
        style = "yellow"
    else:
        style = "dim"

    line = f"{prefix}[{style}]{duration:>10.2f}ms[/{style}]  {name}"
    annotations = span_data.get("annotations") or {}
    if annotations:
        line += "  (" + ", ".join(f"{k}={v}" for k, v in annotations.items()) + ")"
    console.print(line)

    for child in span_data.get("children", []):
        _render_telemetry_tree(console, child, indent=indent + 4)


def _report_table(report: dict[str, Any], *, verbose: bool = False) -> Table:
    table = Table(show_header=True, show_lines=False, pad_edge=False, expand=False)
    table.add_column("", no_wrap=True)
    table.add_column("Step", style="pipe.step", no_wrap=True)
    table.add_column("Status", no_wrap=True)
    table.add_column("Detail")
    if verbose:
        table.add_column("Hard", style="dim")

    for step in report.get("steps", []):
        status = str(step.get("status", ""))
        style = style_for_status(status)
        row = [
            Text(icon_for_status(status), style=style),
            Text(str(step.get("name", ""))),
            Text(status, style=style),
            Text(str(step.get("detail", ""))),
        ]
        if verbose:
            row.append(Text("yes" if step.get("hard") else "no"))
        table.add_row(*row)
    return table


def _report_hints(console: Console, report: dict[str, Any]) -> None:
    for step in report.get("steps", []):
        remediation = step.get("remediation")
        if remediation:
            console.print(Text(f"  {step['name']}: ", style="pipe.key"), end="")
            console.print(Text(remediation, style="pipe.hint"))


# ── Error renderer ────────────────────────────────────────────────────


def _render_error(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    err = result.error
    msg = err.message if err else "Unknown error"
    console.print(
        Text("ERROR", style="pipe.error"),
        Text(f"  {result.op}", style="pipe.op"),
        Text(" — "),
        Text(msg),
    )
    if err is None:
        return

    report = err.detail.get("report")
    if isinstance(report, dict):
        console.print(_report_table(report, verbose=verbose))
        _report_hints(console, report)
    else:
        _hint(console, err.remediation)

    if verbose and err.detail:
        console.print(Text("  detail:", style="dim"))
        for k, v in err.detail.items():
            if k not in ("report", "remediation"):
                console.print(f"    {k}: {v}")


# ── Operation renderers ───────────────────────────────────────────────


def _render_verify(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    report = result.data.get("report", {})
    _status_line(console, result)
    _field(console, "run_id", report.get("run_id", ""))
    _field(console, "environment_id", report.get("environment_id", ""))
    console.print(_report_table(report, verbose=verbose))
    _report_hints(console, report)
    if verbose:
        _render_meta(console, result)


def _render_setup(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    """Render setup/reset: completed stages, topics, and next steps."""
    _status_line(console, result)
    for stage in result.data.get("stages", []):
        console.print(Text("  ✔ ", style="pipe.ok"), Text(str(stage.get("stage", ""))))
    _field(console, "topics", ", ".join(result.data.get("topics", [])))
    _field(console, "api_url", result.data.get("api_url", ""))
    _hint(console, "run `pipectl verify` to check the pipeline end to end")
    if verbose:
        _render_meta(console, result)


def _render_topics(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    _status_line(console, result)
    if "credential" in result.data:
        cred = result.data["credential"]
        state = "added" if cred.get("changed") else "already present"
        _field(console, "credential", f"{cred.get('key', '')} {state} in {cred.get('path', '')}")
    for key in ("created", "existing", "topics", "missing"):
        if key in result.data:
            _field(console, key, ", ".join(result.data[key]) or "-")
    if verbose:
        _render_meta(console, result)


def _render_generic(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    """Fallback renderer: status line + all data as key-value pairs."""
    _status_line(console, result)
    for key, value in result.data.items():
        _field(console, key, value)
    if verbose:
        _render_meta(console, result)


# ── Dispatch table ────────────────────────────────────────────────────

_OP_RENDERERS: dict[str, Any] = {
    "verify": _render_verify,
    "setup": _render_setup,
    "reset": _render_setup,
    "ensure_topics": _render_topics,
    "list_topics": _render_topics,
    "provision": _render_topics,
}
