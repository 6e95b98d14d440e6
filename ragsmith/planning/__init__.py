"""Plan generation."""

from .models import AUTO_TOOL, Plan, Step, ToolCall
from .sanitizer import looks_like_code, sanitize_args, sanitize_plan
from .planner import (
    Planner,
    UiTextScanner,
    build_planner_context,
    extract_mentioned_files,
    parse_and_validate_plan,
)

__all__ = [
    "AUTO_TOOL",
    "Plan",
    "Step",
    "ToolCall",
    "looks_like_code",
    "sanitize_args",
    "sanitize_plan",
    "Planner",
    "UiTextScanner",
    "build_planner_context",
    "extract_mentioned_files",
    "parse_and_validate_plan",
]
