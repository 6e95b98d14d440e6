"""Schemas of the builtin tools."""

from __future__ import annotations

from typing import Any, Dict, List, Optional


def _schema(properties: Dict[str, Any], required: Optional[List[str]] = None) -> Dict[str, Any]:
    return {"type": "object", "properties": properties, "required": required or []}


_STR = {"type": "string"}
_INT = {"type": "integer"}
_BOOL = {"type": "boolean"}

BUILTIN_TOOLS: List[Dict[str, Any]] = [
    {
        "name": "check_index",
        "description": "Check which of the given files exist in the project architecture index.",
        "schema": _schema({"files": {"type": "array", "items": _STR}}, ["files"]),
    },
    {
        "name": "search",
        "description": "Semantic + keyword search over indexed code chunks.",
        "schema": _schema({"query": _STR, "top_k": _INT}, ["query"]),
    },
    {
        "name": "retrieve_chunks",
        "description": "Retrieve, rerank and expand the code chunks most relevant to a query.",
        "schema": _schema({"query": _STR, "top_k": _INT}, ["query"]),
    },
    {
        "name": "locate_code",
        "description": "Find a function/class by name or a regex pattern and save its block range.",
        "schema": _schema({"path": _STR, "name": _STR, "pattern": _STR, "save_as": _STR}),
    },
    {
        "name": "create_file",
        "description": "Create a new file. Describe the desired content in content_spec.",
        "schema": _schema({"path": _STR, "content_spec": _STR}, ["path"]),
    },
    {
        "name": "edit_file",
        "description": "Edit a file. Describe the change in change_spec; the target range is resolved automatically.",
        "schema": _schema(
            {
                "path": _STR,
                "change_spec": _STR,
                "find_spec": _STR,
                "use_saved_range": _STR,
                "range": _schema({"start": _INT, "end": _INT}),
            },
            ["change_spec"],
        ),
    },
    {
        "name": "append_file",
        "description": "Append or prepend generated code to a file.",
        "schema": _schema(
            {"path": _STR, "content_spec": _STR, "position": {"type": "string", "enum": ["end", "beginning"]}},
            ["path", "content_spec"],
        ),
    },
    {
        "name": "read_file",
        "description": "Read a file, optionally a line slice, and optionally save the range by name.",
        "schema": _schema({"path": _STR, "start_line": _INT, "end_line": _INT, "save_as": _STR}, ["path"]),
    },
    {
        "name": "list_dir",
        "description": "List directory entries.",
        "schema": _schema(
            {"path": _STR, "depth": _INT, "glob": _STR, "files_only": _BOOL, "dirs_only": _BOOL}
        ),
    },
    {
        "name": "delete_path",
        "description": "Delete a file or directory.",
        "schema": _schema({"path": _STR, "recursive": _BOOL}, ["path"]),
    },
    {
        "name": "move_path",
        "description": "Move or rename a file or directory.",
        "schema": _schema({"source": _STR, "target": _STR, "overwrite": _BOOL}, ["source", "target"]),
    },
    {
        "name": "copy_path",
        "description": "Copy a file or directory.",
        "schema": _schema({"source": _STR, "target": _STR, "overwrite": _BOOL}, ["source", "target"]),
    },
    {
        "name": "create_directory",
        "description": "Create a directory (and parents).",
        "schema": _schema({"path": _STR}, ["path"]),
    },
    {
        "name": "search_text",
        "description": "Plain or regex text search across project files.",
        "schema": _schema(
            {"query": _STR, "is_regex": _BOOL, "include": _STR, "exclude": _STR, "top_k": _INT},
            ["query"],
        ),
    },
    {
        "name": "replace_in_file",
        "description": "Literal or regex replace inside one file.",
        "schema": _schema(
            {"path": _STR, "find": _STR, "replace": _STR, "is_regex": _BOOL, "flags": _STR},
            ["path", "find", "replace"],
        ),
    },
    {
        "name": "update_json",
        "description": "Set values in a JSON file by dot path or /json/pointer.",
        "schema": _schema(
            {
                "path": _STR,
                "updates": {
                    "type": "array",
                    "items": _schema({"path": _STR, "value": {}}, ["path", "value"]),
                },
                "create_if_missing": _BOOL,
            },
            ["path", "updates"],
        ),
    },
    {
        "name": "run_command",
        "description": "Run an allow-listed shell command in the workspace.",
        "schema": _schema({"command": _STR, "cwd": _STR, "timeout_ms": _INT}, ["command"]),
    },
    {
        "name": "format_file",
        "description": "Run the configured formatter on a file.",
        "schema": _schema({"path": _STR}, ["path"]),
    },
    {
        "name": "open_in_editor",
        "description": "Ask the editor to open a file at a position.",
        "schema": _schema({"path": _STR, "line": _INT, "column": _INT}, ["path"]),
    },
]

BUILTIN_NAMES = [t["name"] for t in BUILTIN_TOOLS]
