import json

import pytest

from ragsmith.host import Workspace
from ragsmith.tools import BUILTIN_NAMES, CustomToolContext, ToolRegistry, resolve_entrypoint
from ragsmith.tools.registry import _PLUGIN_FUNCS, _PLUGINS, register_tool

from . import plugin_tools


def write_manifest(path, custom_tools):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps({"custom_tools": custom_tools}), encoding="utf-8")


class TestBuiltins:
    def test_all_builtins_present(self):
        registry = ToolRegistry()
        assert registry.names()[:len(BUILTIN_NAMES)] == BUILTIN_NAMES
        assert not registry.is_custom("read_file")
        assert registry.get("edit_file").required == ["change_spec"]

    def test_describe(self):
        text = ToolRegistry().describe(["read_file", "nope"])
        assert text.startswith("- read_file: ")
        assert '"path"' in text
        assert "nope" not in text


class TestManifest:
    def test_missing_manifest_is_written(self, tmp_path):
        registry = ToolRegistry.for_state_dir(tmp_path / ".ragsmith")
        data = json.loads((tmp_path / ".ragsmith" / "tools.json").read_text(encoding="utf-8"))
        assert [t["name"] for t in data["builtin_tools"]] == BUILTIN_NAMES
        assert data["custom_tools"] == []
        assert registry.names() == BUILTIN_NAMES

    def test_entrypoints_are_loaded(self, tmp_path, project):
        state = tmp_path / ".ragsmith"
        write_manifest(state / "tools.json", [{
            "name": "word_count",
            "description": "Count words in a file",
            "schema": {"type": "object", "properties": {"path": {"type": "string"}}, "required": ["path"]},
            "entrypoint": "tests.plugin_tools:word_count",
        }])
        registry = ToolRegistry.for_state_dir(state)

        assert registry.is_custom("word_count")
        assert registry.get("word_count").required == ["path"]
        result = registry.run_custom("word_count", {"path": "README.md"}, CustomToolContext(Workspace(project)))
        assert json.loads(result) == {"path": "README.md", "words": 6}

    def test_bad_entries_are_skipped(self, tmp_path, caplog):
        state = tmp_path / ".ragsmith"
        write_manifest(state / "tools.json", [
            {"name": "inline", "code": "def run(args): return 1"},
            {"name": "missing", "entrypoint": "tests.no_such_module:run"},
            {"name": "constant", "entrypoint": "tests.plugin_tools:NOT_CALLABLE"},
            {"name": "read_file", "entrypoint": "tests.plugin_tools:touch"},
            {"name": "", "entrypoint": "tests.plugin_tools:touch"},
        ])
        registry = ToolRegistry.for_state_dir(state)
        assert registry.names() == BUILTIN_NAMES
        assert not registry.is_custom("read_file")
        assert "shadows a builtin" in caplog.text

    def test_invalid_manifest_keeps_builtins(self, tmp_path):
        state = tmp_path / ".ragsmith"
        state.mkdir()
        (state / "tools.json").write_text("{not json", encoding="utf-8")
        assert ToolRegistry.for_state_dir(state).names() == BUILTIN_NAMES

    def test_save_round_trip(self, tmp_path):
        registry = ToolRegistry(tmp_path / "tools.json")
        registry.register("touch", plugin_tools.touch, description="Create an empty file")
        registry.save()
        data = json.loads((tmp_path / "tools.json").read_text(encoding="utf-8"))
        assert data["custom_tools"] == [{
            "name": "touch",
            "description": "Create an empty file",
            "schema": {"type": "object", "properties": {}, "required": []},
            "entrypoint": "tests.plugin_tools:touch",
        }]

        reloaded = ToolRegistry(tmp_path / "tools.json")
        reloaded.load()
        assert reloaded.is_custom("touch")


class TestEntrypoints:
    def test_resolve(self):
        assert resolve_entrypoint("tests.plugin_tools:explode") is plugin_tools.explode

    @pytest.mark.parametrize("entrypoint", ["tests.plugin_tools", ":explode", "tests.plugin_tools:"])
    def test_malformed(self, entrypoint):
        with pytest.raises(ValueError):
            resolve_entrypoint(entrypoint)

    def test_not_callable(self):
        with pytest.raises(TypeError):
            resolve_entrypoint("tests.plugin_tools:NOT_CALLABLE")


class TestRegisterDecorator:
    def test_decorated_tool_joins_new_registries(self):
        @register_tool("echo_args")
        def echo_args(args, context):
            """Echo the arguments back."""
            return args

        try:
            registry = ToolRegistry()
            assert registry.get("echo_args").description == "Echo the arguments back."
            assert registry.run_custom("echo_args", {"a": 1}, None) == '{"a": 1}'
        finally:
            _PLUGINS.pop("echo_args", None)
            _PLUGIN_FUNCS.pop("echo_args", None)
