"""Builtin and custom tool definitions."""

from .builtin import BUILTIN_NAMES, BUILTIN_TOOLS
from .registry import (
    TOOLS_FILE,
    CustomToolContext,
    ToolRegistry,
    ToolSpec,
    register_tool,
    resolve_entrypoint,
)

__all__ = [
    "BUILTIN_NAMES",
    "BUILTIN_TOOLS",
    "TOOLS_FILE",
    "CustomToolContext",
    "ToolRegistry",
    "ToolSpec",
    "register_tool",
    "resolve_entrypoint",
]
