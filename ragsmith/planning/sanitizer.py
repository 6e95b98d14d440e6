"""Keep generated code out of plans.

Plans describe changes in natural language only; code is produced when a step
executes. Literal-code argument fields of the file-generating tools are moved
into ``*_spec`` fields, and any ``*_spec`` value that looks like code is dropped.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, Optional

from .models import Plan, Step

logger = logging.getLogger(__name__)

GENERATING_TOOLS = {"create_file", "edit_file", "append_file"}

SPEC_RENAMES = {
    "content": "content_spec",
    "snippet": "content_spec",
    "code": "content_spec",
    "replace": "change_spec",
    "find": "find_spec",
}

_CODE_SHAPES = [
    re.compile(r"```"),
    re.compile(r"\bdef\s+\w+\s*\("),
    re.compile(r"\bclass\s+\w+\s*[:({]"),
    re.compile(r"\bfunction\s*\w*\s*\([^)]*\)\s*\{"),
    re.compile(r"\b(?:const|let|var)\s+\w+\s*=\s*\S"),
    re.compile(r"\bimport\s+[\w{*][^\n]*\bfrom\s+['\"]"),
    re.compile(r"^\s*#include\s*[<\"]", re.MULTILINE),
    re.compile(r"\breturn\s+[^\n;]*;"),
    re.compile(r"=>\s*[{(\w]"),
]


def looks_like_code(text: str) -> bool:
    """Heuristic: fences, braces/semicolons spread over lines, or keyword-shaped code."""
    if not isinstance(text, str):
        return False
    if "\n" in text and any(ch in text for ch in "{};"):
        return True
    return any(p.search(text) for p in _CODE_SHAPES)


def sanitize_args(tool: Optional[str], args: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if args is None:
        return None
    out: Dict[str, Any] = {}
    for key, value in args.items():
        target = key
        if tool in GENERATING_TOOLS and key in SPEC_RENAMES:
            target = SPEC_RENAMES[key]
        if target.endswith("_spec"):
            if not isinstance(value, str) or looks_like_code(value):
                logger.debug(f"Dropped code-like {target} for {tool}")
                continue
            if target in out:
                out[target] = f"{out[target]} {value}".strip()
                continue
        out[target] = value
    return out


def sanitize_step(step: Step) -> Step:
    step.args = sanitize_args(step.tool, step.args)
    if step.tool_calls:
        for call in step.tool_calls:
            call.args = sanitize_args(call.tool, call.args) or {}
    return step


def sanitize_plan(plan: Plan) -> Plan:
    for step in plan.steps:
        sanitize_step(step)
    return plan
