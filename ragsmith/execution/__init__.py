"""Plan execution: tool selection, dispatch, range-aware editing."""

from .context import ToolContext
from .editing import EditRange, line_span_to_offsets, looks_like_replace_request, resolve_edit_range
from .executor import PlanExecutor
from .mutations import delete_step, insert_step, update_step
from .tool_selection import ToolSelector, heuristic_tool, parse_tool_reply

__all__ = [
    "ToolContext",
    "EditRange",
    "line_span_to_offsets",
    "looks_like_replace_request",
    "resolve_edit_range",
    "PlanExecutor",
    "delete_step",
    "insert_step",
    "update_step",
    "ToolSelector",
    "heuristic_tool",
    "parse_tool_reply",
]
