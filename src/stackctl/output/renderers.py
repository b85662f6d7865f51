"""Operation-specific Rich renderers for ServiceResult.

Each renderer writes to a Rich Console (backed by StringIO). The caller
extracts the rendered text via ``get_output(console)``.

Renderers are dispatched by ``result.op`` in :func:`render_result`.
Unknown ops fall through to a generic key-value renderer.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from rich.table import Table
from rich.text import Text

from stackctl.output.console import create_console, get_output, style_for_status

if TYPE_CHECKING:
    from rich.console import Console

    from stackctl.services.result import ServiceResult


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
    if result.op == "ports":
        ports = result.data.get("host_ports") or result.data.get("ports", {})
        return "\n".join(f"{k} {v}" for k, v in ports.items())
    return ""


# ── Helpers ───────────────────────────────────────────────────────────


def _status_line(console: Console, result: ServiceResult) -> None:
    label = Text("OK", style="stack.ok")
    op = Text(f"  {result.op}", style="stack.op")
    console.print(label, op, end="")
    project = result.data.get("project")
    if project:
        console.print(Text(f"  {project}", style="stack.project"), end="")
    console.print()


def _field(console: Console, key: str, value: Any) -> None:
    k = Text(f"  {key}: ", style="stack.key")
    if isinstance(value, (dict, list)):
        v = Text(json.dumps(value, separators=(",", ":")))
    elif key == "status":
        v = Text(str(value), style=style_for_status(str(value)))
    else:
        v = Text(str(value))
    console.print(k, v, end="")
    console.print()


def _services_table(services: list[dict[str, Any]]) -> Table:
    table = Table(show_header=True, show_lines=False, pad_edge=False, expand=False)
    table.add_column("Service", no_wrap=True)
    table.add_column("Container", style="stack.container", no_wrap=True)
    table.add_column("Status")
    for svc in services:
        status = str(svc.get("status", ""))
        table.add_row(
            str(svc.get("service", "")),
            str(svc.get("container", "")),
            Text(status, style=style_for_status(status)),
        )
    return table


# ── Operation renderers ───────────────────────────────────────────────


def _render_generic(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    _status_line(console, result)
    for key, value in result.data.items():
        if key == "project":
            continue
        _field(console, key, value)


def _render_project(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    """Shared by ``start`` and ``status``: summary fields plus a services table."""
    _status_line(console, result)
    data = result.data
    _field(console, "status", data.get("status", ""))
    _field(console, "mount_mode", data.get("mount_mode", ""))
    lock = data.get("lock")
    if lock:
        stale = " (stale)" if lock.get("stale") else ""
        _field(console, "lock", f"pid {lock['pid']} on {lock['host']}{stale}")
    if verbose and data.get("layers"):
        _field(console, "layers", data["layers"])
    console.print(_services_table(data.get("services", [])))


def _render_ports(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    _status_line(console, result)
    _field(console, "container", result.data.get("container", ""))
    ports = result.data.get("ports", {})
    if not ports:
        console.print(Text("  no published ports", style="dim"))
        return
    table = Table(show_header=True, pad_edge=False, expand=False)
    host_ports = result.data.get("host_ports", {})
    table.add_column("Container port")
    table.add_column("Host port")
    table.add_column("Host binding", style="dim")
    for container_port, binding in ports.items():
        table.add_row(container_port, host_ports.get(container_port, ""), binding)
    console.print(table)


# ── Error renderer ────────────────────────────────────────────────────


def _render_error(result: ServiceResult, console: Console, *, verbose: bool = False) -> None:
    err = result.error
    msg = err.message if err else "Unknown error"
    label = Text("ERROR", style="stack.error")
    op = Text(f"  {result.op}", style="stack.op")
    sep = Text(" — ")
    console.print(label, op, sep, Text(msg))
    if err is None:
        return
    console.print(Text(f"  code: {err.code}", style="dim"))
    if verbose:
        for key, value in err.detail.items():
            _field(console, key, value)
    else:
        reverted = err.detail.get("reverted")
        if reverted:
            _field(console, "reverted", reverted)


_OP_RENDERERS: dict[str, Callable[..., None]] = {
    "start": _render_project,
    "status": _render_project,
    "ports": _render_ports,
}
