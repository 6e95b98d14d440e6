import pytest

from ragsmith.errors import OperationCancelled, ToolResolutionError
from ragsmith.execution import ToolSelector, heuristic_tool, parse_tool_reply
from ragsmith.execution.tool_selection import missing_required, sanitize_spec_fields
from ragsmith.llm.base import CancelToken
from ragsmith.planning import Step, ToolCall
from ragsmith.tools import ToolRegistry

from .conftest import StubProvider


@pytest.fixture
def registry():
    return ToolRegistry()


class TestParseToolReply:
    def test_plain_reply(self):
        call = parse_tool_reply('Sure!\n{"tool": "read_file", "args": {"path": "a.ts"}}')
        assert call == ToolCall("read_file", {"path": "a.ts"})

    def test_alternate_keys_and_string_args(self):
        call = parse_tool_reply('{"tool_name": "list_dir", "parameters": "{\\"path\\": \\"src\\"}"}')
        assert call == ToolCall("list_dir", {"path": "src"})

    def test_function_call_envelope(self):
        call = parse_tool_reply('{"function_call": {"name": "search", "arguments": {"query": "add"}}}')
        assert call == ToolCall("search", {"query": "add"})

    def test_raw_newlines_and_quotes_in_specs(self):
        raw = '{"tool": "edit_file", "args": {"path": "a.ts", "change_spec": "Make it\nsay "hi""}}'
        call = parse_tool_reply(raw)
        assert call.tool == "edit_file"
        assert call.args["change_spec"] == 'Make it\nsay "hi"'

    def test_sanitize_spec_fields_strips_fences(self):
        fixed = sanitize_spec_fields('{"content_spec": "a ```b``` c", "path": "x"}')
        assert fixed == '{"content_spec": "a b c", "path": "x"}'

    def test_args_only_reply_uses_default_tool(self):
        assert parse_tool_reply('{"args": {"path": "a"}}') is None
        assert parse_tool_reply('{"args": {"path": "a"}}', default_tool="read_file") == ToolCall("read_file", {"path": "a"})

    def test_garbage(self):
        assert parse_tool_reply("") is None
        assert parse_tool_reply("no json here") is None


class TestHeuristics:
    @pytest.mark.parametrize("action,expected", [
        ("Create a new folder for assets", "create_directory"),
        ("Delete the old config file", "delete_path"),
        ("Remove src/legacy.ts", "delete_path"),
        ("Move the assets folder under public", "move_path"),
        ("Rename utils.ts to helpers.ts", "move_path"),
        ("Run the test suite", "run_command"),
        ("Locate the function parseArgs", "locate_code"),
        ("Find where tokens are refreshed", "search"),
        ("Read the README", "read_file"),
        ("Create a new file utils.ts", "create_file"),
        ("Refactor the parser", "edit_file"),
        ("Remove the debug log from util.ts", "edit_file"),
        ("Delete the unused import in app.ts", "edit_file"),
        ("Rename the variable count to total", "edit_file"),
        ("Move the helper into the utils module", "edit_file"),
        ("Ponder deeply", None),
    ])
    def test_keyword_priority(self, registry, action, expected):
        assert heuristic_tool(Step(1, action, ""), registry.names()) == expected

    def test_only_allowed_tools(self):
        assert heuristic_tool(Step(1, "Delete the old config file", ""), ["read_file"]) is None


class TestToolSelector:
    def test_model_choice(self, registry):
        provider = StubProvider(replies=['{"tool": "read_file", "args": {"path": "a.ts"}}'])
        call = ToolSelector(provider, registry).select(Step(1, "Look at a.ts", "t"), "Recent tool outputs: x")
        assert call == ToolCall("read_file", {"path": "a.ts"})
        assert "Recent tool outputs: x" in provider.chats[0][1]["content"]

    def test_unknown_model_tool_falls_back_to_heuristics(self, registry):
        provider = StubProvider(replies=['{"tool": "teleport", "args": {}}'])
        call = ToolSelector(provider, registry).select(Step(1, "Delete the dist folder", "t", args={"path": "dist"}))
        assert call == ToolCall("delete_path", {"path": "dist"})

    def test_unparsable_reply_edits_rather_than_deletes(self, registry):
        step = Step(1, "Remove the debug log from util.ts", "t", tool="auto", args={"path": "src/util.ts"})
        call = ToolSelector(StubProvider(replies=["garbage"]), registry).select(step)
        assert call.tool == "edit_file"
        assert call.args["path"] == "src/util.ts"

    def test_preselected_only_fills_args(self, registry):
        provider = StubProvider(replies=['{"args": {"change_spec": "Add a docstring"}}'])
        call = ToolSelector(provider, registry).select(
            Step(1, "Document add", "t"), preselected="edit_file", args={"path": "a.ts"}
        )
        assert call == ToolCall("edit_file", {"path": "a.ts", "change_spec": "Add a docstring"})
        assert 'fill in the arguments of the tool "edit_file"' in provider.chats[0][0]["content"]

    def test_model_args_are_sanitized(self, registry):
        provider = StubProvider(replies=['{"tool": "create_file", "args": {"path": "a.py", "content": "def a(): pass"}}'])
        call = ToolSelector(provider, registry).select(Step(1, "Create a.py", "t"))
        assert call == ToolCall("create_file", {"path": "a.py"})

    def test_no_provider_no_match(self, registry):
        with pytest.raises(ToolResolutionError):
            ToolSelector(None, registry).select(Step(1, "Ponder deeply", "t"))

    def test_cancelled(self, registry):
        token = CancelToken()
        token.cancel()
        with pytest.raises(OperationCancelled):
            ToolSelector(StubProvider(), registry).select(Step(1, "Read a", "t"), cancel_token=token)

    def test_missing_required(self, registry):
        assert missing_required(registry, ToolCall("edit_file", {"path": "a"})) == ["change_spec"]
        assert missing_required(registry, ToolCall("list_dir", {})) == []
