"""Subprocess-backed handlers and host editor messages."""

from __future__ import annotations

import logging
import re
import shlex
import subprocess
from pathlib import Path
from typing import Any, Dict, List

from ...errors import ToolExecutionError
from ...planning.models import Step
from ..context import ToolContext
from .args import int_arg

logger = logging.getLogger(__name__)

MAX_OUTPUT_CHARS = 4000
_SHELL_META = re.compile(r"[;&|`$<>\n\r]|\$\(")


def is_command_allowed(command: str, prefixes: List[str]) -> bool:
    words = command.split()
    for prefix in prefixes:
        wanted = prefix.split()
        if wanted and words[:len(wanted)] == wanted:
            return True
    return False


def _clip(text: str) -> str:
    text = (text or "").strip()
    return text if len(text) <= MAX_OUTPUT_CHARS else "…" + text[-MAX_OUTPUT_CHARS:]


def run_process(argv: List[str], cwd: Path, timeout_s: float) -> str:
    try:
        proc = subprocess.run(argv, cwd=cwd, capture_output=True, text=True, timeout=timeout_s)
    except subprocess.TimeoutExpired as e:
        raise ToolExecutionError(f"Command timed out after {timeout_s:g}s: {' '.join(argv)}") from e
    except FileNotFoundError as e:
        raise ToolExecutionError(f"Command not found: {argv[0]}") from e
    parts = [f"exit code {proc.returncode}"]
    if proc.stdout.strip():
        parts.append("stdout:\n" + _clip(proc.stdout))
    if proc.stderr.strip():
        parts.append("stderr:\n" + _clip(proc.stderr))
    return "\n".join(parts)


def handle_run_command(ctx: ToolContext, args: Dict[str, Any], step: Step) -> str:
    command = str(args.get("command") or "").strip()
    if not command:
        return "run_command: empty command."
    if _SHELL_META.search(command):
        raise ToolExecutionError(f"Shell metacharacters are not allowed: {command}")
    opts = ctx.cfg.get("executor", {})
    if not is_command_allowed(command, list(opts.get("allowed_command_prefixes") or [])):
        raise ToolExecutionError(f"Command is not on the allowlist: {command}")

    cwd = ctx.workspace.resolve(str(args.get("cwd") or "."))
    timeout_ms = int_arg(args, "timeout_ms", int(opts.get("command_timeout_ms", 60000)), minimum=1)
    try:
        argv = shlex.split(command)
    except ValueError as e:
        raise ToolExecutionError(f"Cannot parse command: {e}") from e
    logger.info(f"run_command: {command} (cwd={ctx.workspace.rel(cwd)})")
    return f"run_command: {command}\n" + run_process(argv, cwd, timeout_ms / 1000.0)


def handle_format_file(ctx: ToolContext, args: Dict[str, Any], step: Step) -> str:
    raw_path = str(args.get("path") or "")
    target = ctx.workspace.resolve(raw_path)
    if not target.is_file():
        raise ToolExecutionError(f"File not found: {raw_path}")
    opts = ctx.cfg.get("executor", {})
    formatter = (opts.get("formatters") or {}).get(target.suffix.lower())
    if not formatter:
        return f"format_file: no formatter configured for {target.suffix or raw_path}."
    argv = (shlex.split(formatter) if isinstance(formatter, str) else list(formatter)) + [str(target)]
    timeout_ms = int(opts.get("command_timeout_ms", 60000))
    result = run_process(argv, ctx.workspace.root, timeout_ms / 1000.0)
    ctx.mark_changed(target)
    return f"format_file: {raw_path}\n{result}"


def handle_open_in_editor(ctx: ToolContext, args: Dict[str, Any], step: Step) -> str:
    target = ctx.workspace.resolve(str(args.get("path") or ""))
    if not target.exists():
        raise ToolExecutionError(f"File not found: {ctx.workspace.rel(target)}")
    payload = {
        "path": str(target),
        "line": int_arg(args, "line", 1, minimum=1),
        "column": int_arg(args, "column", 1, minimum=1),
    }
    ctx.channel.post_message("open_in_editor", payload)
    return f"open_in_editor: {ctx.workspace.rel(target)}:{payload['line']}"
