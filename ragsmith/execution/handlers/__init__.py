"""Builtin tool handlers: ``fn(ctx, args, step) -> str``."""

from typing import Dict

from ..context import Handler
from .command_tools import handle_format_file, handle_open_in_editor, handle_run_command
from .file_tools import (
    handle_append_file,
    handle_copy_path,
    handle_create_directory,
    handle_create_file,
    handle_delete_path,
    handle_edit_file,
    handle_list_dir,
    handle_move_path,
    handle_read_file,
)
from .index_tools import handle_check_index, handle_locate_code, handle_retrieve_chunks, handle_search
from .text_tools import handle_replace_in_file, handle_search_text, handle_update_json

BUILTIN_HANDLERS: Dict[str, Handler] = {
    "check_index": handle_check_index,
    "search": handle_search,
    "retrieve_chunks": handle_retrieve_chunks,
    "locate_code": handle_locate_code,
    "create_file": handle_create_file,
    "edit_file": handle_edit_file,
    "append_file": handle_append_file,
    "read_file": handle_read_file,
    "list_dir": handle_list_dir,
    "delete_path": handle_delete_path,
    "move_path": handle_move_path,
    "copy_path": handle_copy_path,
    "create_directory": handle_create_directory,
    "search_text": handle_search_text,
    "replace_in_file": handle_replace_in_file,
    "update_json": handle_update_json,
    "run_command": handle_run_command,
    "format_file": handle_format_file,
    "open_in_editor": handle_open_in_editor,
}

__all__ = ["BUILTIN_HANDLERS"]
