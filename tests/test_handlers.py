import asyncio
import json
import sys

import pytest

from ragsmith.errors import ToolExecutionError
from ragsmith.execution import ToolContext
from ragsmith.execution.handlers import BUILTIN_HANDLERS
from ragsmith.execution.handlers.args import int_arg
from ragsmith.execution.handlers.command_tools import is_command_allowed
from ragsmith.execution.handlers.text_tools import parse_flags, set_json_value, split_json_path
from ragsmith.host import RecordingChannel, Workspace
from ragsmith.indexing import ArchitectureIndexer
from ragsmith.planning import Step
from ragsmith.search import Retriever
from ragsmith.search.retrieval import RetrievedChunk
from ragsmith.session import Session
from ragsmith.storage import JsonChunkStore
from ragsmith.tools import BUILTIN_NAMES, ToolRegistry
from ragsmith.utils import normalize_path

from .conftest import StubProvider, make_chunk


def run(ctx, tool, args, action="do it", thought=""):
    return BUILTIN_HANDLERS[tool](ctx, args, Step(1, action, thought))


@pytest.fixture
def ctx(project, cfg):
    return ToolContext(
        workspace=Workspace(project),
        session=Session(),
        registry=ToolRegistry(),
        cfg=cfg,
        provider=StubProvider(),
        channel=RecordingChannel(),
    )


def test_every_builtin_has_a_handler():
    assert sorted(BUILTIN_HANDLERS) == sorted(BUILTIN_NAMES)


class TestEditFile:
    def test_cached_chunk_range_is_replaced(self, project, ctx):
        path = project / "src" / "big.ts"
        original = "".join(f"const v{i} = {i};\n" for i in range(1, 16))
        path.write_text(original, encoding="utf-8")
        ctx.session.last_retrieved = [RetrievedChunk(make_chunk(path, start_line=10, end_line=12))]
        ctx.provider = StubProvider(replies=["```ts\nconst w10 = 10;\nconst w11 = 11;\nconst w12 = 12;\n```"])

        result = run(ctx, "edit_file", {"path": "src/big.ts", "change_spec": "Use the w prefix"})

        updated = path.read_text(encoding="utf-8")
        old_lines, new_lines = original.split("\n"), updated.split("\n")
        assert result.startswith("Range updated: src/big.ts")
        assert result.endswith("(retrieved)")
        assert new_lines[:9] == old_lines[:9]
        assert new_lines[9:12] == ["const w10 = 10;", "const w11 = 11;", "const w12 = 12;"]
        assert new_lines[12:] == old_lines[12:]
        assert ctx.session.changed_files == {"src/big.ts"}

    def test_no_range_appends(self, project, ctx):
        ctx.provider = StubProvider(replies=["```ts\nexport function sub(a, b) { return a - b; }\n```"])
        result = run(ctx, "edit_file", {"path": "src/util.ts", "change_spec": "Add a subtract function"})
        text = (project / "src" / "util.ts").read_text(encoding="utf-8")
        assert result == "Appended to src/util.ts (no target range found)."
        assert text.startswith("export function add")
        assert text.endswith("export function sub(a, b) { return a - b; }\n")

    def test_replace_request_rewrites_whole_file(self, project, ctx):
        ctx.provider = StubProvider(replies=["```\nexport const add = (a, b) => a + b;\n```"])
        result = run(ctx, "edit_file", {"path": "src/util.ts", "change_spec": "Rewrite add as an arrow"})
        assert result == "File updated: src/util.ts"
        assert (project / "src" / "util.ts").read_text(encoding="utf-8") == "export const add = (a, b) => a + b;\n"

    def test_saved_location_from_locate_code(self, project, ctx):
        assert run(ctx, "locate_code", {"path": "pkg/helpers.py", "name": "shout", "save_as": "s"}) == (
            "locate_code done: pkg/helpers.py lines 5-6 (key: s)."
        )
        ctx.provider = StubProvider(replies=["```python\ndef shout(text):\n    return text.upper() + '!'\n```"])
        result = run(ctx, "edit_file", {"path": "pkg/helpers.py", "change_spec": "Add an exclamation mark",
                                        "use_saved_range": "s"})
        text = (project / "pkg" / "helpers.py").read_text(encoding="utf-8")
        assert result.endswith("(saved)")
        assert text.startswith("def slugify(text):")
        assert text.endswith("def shout(text):\n    return text.upper() + '!'\n")

    def test_edit_forgets_stale_ranges_of_the_file(self, project, ctx):
        util, app = project / "src" / "util.ts", project / "src" / "app.ts"
        run(ctx, "read_file", {"path": "src/util.ts", "start_line": 2, "end_line": 2, "save_as": "body"})
        run(ctx, "read_file", {"path": "src/app.ts", "start_line": 3, "end_line": 5, "save_as": "main"})
        ctx.session.last_retrieved = [
            RetrievedChunk(make_chunk(util, name="add", start_line=1, end_line=3)),
            RetrievedChunk(make_chunk(app, name="main", start_line=3, end_line=5)),
        ]
        ctx.provider = StubProvider(replies=["```ts\n  return b + a;\n```"])

        result = run(ctx, "edit_file", {"path": "src/util.ts", "change_spec": "Swap the operands",
                                        "use_saved_range": "body"})

        assert result.endswith("(saved)")
        assert list(ctx.session.saved_locations) == ["main"]
        assert [r.chunk.name for r in ctx.session.last_retrieved] == ["main"]


class TestFileTools:
    def test_create_file_generates_content(self, project, ctx):
        ctx.provider = StubProvider(replies=["```ts\nexport const X = 1;\n```"])
        result = run(ctx, "create_file", {"path": "src/consts.ts", "content_spec": "One exported constant"})
        assert result.startswith("File created: src/consts.ts")
        assert (project / "src" / "consts.ts").read_text(encoding="utf-8") == "export const X = 1;\n"

    def test_create_file_refuses_existing_and_allows_empty(self, project, ctx):
        assert run(ctx, "create_file", {"path": "src/util.ts"}) == "create_file: file already exists: src/util.ts"
        assert run(ctx, "create_file", {"path": "docs/empty.md"}) == "File created: docs/empty.md"
        assert (project / "docs" / "empty.md").read_text(encoding="utf-8") == ""

    def test_append_file_at_beginning(self, project, ctx):
        ctx.provider = StubProvider(replies=["```python\nimport re\n```"])
        run(ctx, "append_file", {"path": "pkg/helpers.py", "content_spec": "Import re", "position": "beginning"})
        assert (project / "pkg" / "helpers.py").read_text(encoding="utf-8").startswith("import re\ndef slugify")

    def test_read_file_slice_and_save(self, ctx):
        result = run(ctx, "read_file", {"path": "src/util.ts", "start_line": 2, "end_line": 2, "save_as": "body"})
        assert result == "read_file: src/util.ts lines 2-2\n  return a + b;"
        saved = ctx.session.saved_locations["body"]
        assert (saved.start_line, saved.end_line) == (2, 2)

    def test_read_missing_file_raises(self, ctx):
        with pytest.raises(ToolExecutionError):
            run(ctx, "read_file", {"path": "nope.ts"})

    def test_paths_outside_workspace_are_rejected(self, ctx):
        with pytest.raises(ToolExecutionError):
            run(ctx, "read_file", {"path": "../../etc/passwd"})

    def test_list_dir(self, project, ctx):
        (project / ".ragsmith").mkdir()
        listing = run(ctx, "list_dir", {"path": ".", "depth": 2})
        assert "src/" in listing and "src/util.ts" in listing
        assert ".ragsmith" not in listing
        only_ts = run(ctx, "list_dir", {"path": "src", "glob": "*.ts", "files_only": True})
        assert only_ts.split("\n")[1:] == ["src/app.ts", "src/util.ts"]

    def test_move_copy_delete_mkdir(self, project, ctx):
        assert run(ctx, "create_directory", {"path": "lib/deep"}) == "Directory ready: lib/deep"
        run(ctx, "copy_path", {"source": "src/util.ts", "target": "lib/util.ts"})
        run(ctx, "move_path", {"source": "lib/util.ts", "target": "lib/deep/math.ts"})
        assert (project / "lib" / "deep" / "math.ts").is_file()
        assert not (project / "lib" / "util.ts").exists()
        with pytest.raises(ToolExecutionError):
            run(ctx, "copy_path", {"source": "src/util.ts", "target": "lib/deep/math.ts"})
        run(ctx, "delete_path", {"path": "lib", "recursive": True})
        assert not (project / "lib").exists()
        assert {"lib/util.ts", "lib/deep/math.ts", "lib"} <= ctx.session.changed_files

    def test_read_file_ignores_non_numeric_lines(self, ctx):
        result = run(ctx, "read_file", {"path": "src/util.ts", "start_line": "two", "end_line": "end"})
        assert result.startswith("read_file: src/util.ts lines 1-4")

    def test_delete_forgets_ranges_under_the_directory(self, ctx):
        run(ctx, "read_file", {"path": "pkg/helpers.py", "save_as": "helpers"})
        run(ctx, "read_file", {"path": "src/util.ts", "save_as": "util"})
        run(ctx, "delete_path", {"path": "pkg", "recursive": True})
        assert list(ctx.session.saved_locations) == ["util"]


class TestTextTools:
    def test_search_text_literal(self, ctx):
        result = run(ctx, "search_text", {"query": "a + b"})
        assert "src/util.ts:2: return a + b;" in result

    def test_search_text_regex_and_include(self, ctx):
        result = run(ctx, "search_text", {"query": r"def \w+", "is_regex": True, "include": "*.py"})
        assert result.startswith("search_text: 2 matches")

    def test_search_text_bad_regex(self, ctx):
        with pytest.raises(ToolExecutionError):
            run(ctx, "search_text", {"query": "(", "is_regex": True})

    def test_search_text_non_numeric_top_k(self, ctx):
        result = run(ctx, "search_text", {"query": "a + b", "top_k": "all"})
        assert "src/util.ts:2: return a + b;" in result

    def test_replace_in_file(self, project, ctx):
        assert run(ctx, "replace_in_file", {"path": "src/util.ts", "find": "add", "replace": "plus"}) == (
            "replace_in_file: replaced 1 occurrence(s) in src/util.ts."
        )
        result = run(ctx, "replace_in_file", {"path": "src/app.ts", "find": "ADD", "replace": "plus",
                                              "is_regex": True, "flags": "gi"})
        assert result == "replace_in_file: replaced 2 occurrence(s) in src/app.ts."
        assert "plus(1, 2)" in (project / "src" / "app.ts").read_text(encoding="utf-8")
        assert run(ctx, "replace_in_file", {"path": "src/app.ts", "find": "zzz", "replace": "y"}).endswith(
            "no occurrences in src/app.ts."
        )

    def test_flags(self):
        assert parse_flags("im")
        with pytest.raises(ToolExecutionError):
            parse_flags("q")

    def test_json_paths(self):
        assert split_json_path("a.b.0") == ["a", "b", "0"]
        assert split_json_path("/a~1b/c~0d") == ["a/b", "c~d"]
        doc = set_json_value({"list": [1]}, "scripts.build", "tsc")
        doc = set_json_value(doc, "list.1", 2)
        doc = set_json_value(doc, "/list/-", 3)
        assert doc == {"list": [1, 2, 3], "scripts": {"build": "tsc"}}

    def test_update_json(self, project, ctx):
        result = run(ctx, "update_json", {
            "path": "package.json",
            "create_if_missing": True,
            "updates": [{"path": "name", "value": "demo"}, {"path": "scripts.test", "value": "jest"}],
        })
        assert result == "update_json: set name, scripts.test in package.json."
        data = json.loads((project / "package.json").read_text(encoding="utf-8"))
        assert data == {"name": "demo", "scripts": {"test": "jest"}}

    def test_update_json_missing_file(self, ctx):
        with pytest.raises(ToolExecutionError):
            run(ctx, "update_json", {"path": "nope.json", "updates": [{"path": "a", "value": 1}]})


class TestCommandTools:
    def test_allowlist_matches_whole_words(self):
        assert is_command_allowed("npm test", ["npm"])
        assert is_command_allowed("git status -s", ["git status"])
        assert not is_command_allowed("npmx test", ["npm"])
        assert not is_command_allowed("git push", ["git status"])

    def test_rejected_commands(self, ctx):
        with pytest.raises(ToolExecutionError, match="metacharacters"):
            run(ctx, "run_command", {"command": "npm test && rm -rf /"})
        with pytest.raises(ToolExecutionError, match="allowlist"):
            run(ctx, "run_command", {"command": "curl example.com"})

    def test_allowed_command_runs(self, ctx):
        ctx.cfg["executor"]["allowed_command_prefixes"] = [sys.executable]
        result = run(ctx, "run_command", {"command": f"{sys.executable} -c print(6*7)"})
        assert "exit code 0" in result
        assert "42" in result

    def test_open_in_editor_posts_message(self, project, ctx):
        result = run(ctx, "open_in_editor", {"path": "src/util.ts", "line": 2})
        assert result == "open_in_editor: src/util.ts:2"
        assert ctx.channel.messages == [{
            "type": "open_in_editor",
            "payload": {"path": str((project / "src" / "util.ts").resolve()), "line": 2, "column": 1},
        }]

    def test_open_in_editor_bad_position_defaults_to_start(self, project, ctx):
        assert run(ctx, "open_in_editor", {"path": "src/util.ts", "line": "x", "column": -3}) == (
            "open_in_editor: src/util.ts:1"
        )
        assert ctx.channel.messages[-1]["payload"]["column"] == 1

    def test_format_without_formatter(self, ctx):
        assert run(ctx, "format_file", {"path": "README.md"}) == "format_file: no formatter configured for .md."


class TestIndexTools:
    def test_retrieval_caches_hits(self, project, ctx, tmp_path):
        store = JsonChunkStore(tmp_path / "chunks.json")
        store.save_chunks([make_chunk(project / "src" / "util.ts", name="add", embedding=[1.0, 0.0, 0.0])])
        ctx.retriever = Retriever(store, StubProvider())

        result = run(ctx, "search", {"keywords": ["add", "numbers"]})

        assert result.startswith('search done. Query: "add numbers"')
        assert "1. src/util.ts" in result
        assert [r.chunk.name for r in ctx.session.last_retrieved] == ["add"]

    def test_retrieve_chunks_previews_the_best_hits(self, project, ctx, tmp_path):
        store = JsonChunkStore(tmp_path / "chunks.json")
        store.save_chunks([make_chunk(project / "src" / "util.ts", name="add", start_line=1, end_line=3,
                                      content="export function add(a, b) {\n  return a + b;\n}",
                                      embedding=[1.0, 0.0, 0.0])])
        ctx.retriever = Retriever(store, StubProvider())

        result = run(ctx, "retrieve_chunks", {"query": "add numbers", "top_k": "many"})

        assert result.startswith("retrieve_chunks done. Matching files:\n1. src/util.ts")
        assert "src/util.ts:1-3 (function add)\nexport function add(a, b) {" in result

    def test_retrieval_requires_an_index(self, ctx):
        with pytest.raises(ToolExecutionError):
            run(ctx, "retrieve_chunks", {"query": "add"})

    def test_check_index(self, project, cfg, ctx):
        ctx.index_store = ArchitectureIndexer(project, cfg).store
        assert run(ctx, "check_index", {"files": ["src/util.ts"]}).startswith("check_index: planner_index.json is missing")

        asyncio.run(ArchitectureIndexer(project, cfg).build_index())
        result = run(ctx, "check_index", {"files": ["./src/util.ts", "src/new.ts"]})
        assert result == "check_index: existing=[./src/util.ts] missing=[src/new.ts]"

        result = run(ctx, "check_index", {"files": ["src/new.ts"]}, action="Create src/new.ts if missing")
        assert result.endswith("File created: src/new.ts")
        assert (project / "src" / "new.ts").is_file()

    def test_locate_code_from_retrieved_chunk(self, project, ctx):
        ctx.session.last_retrieved = [RetrievedChunk(make_chunk(project / "src" / "util.ts", name="add"))]
        result = run(ctx, "locate_code", {"name": "add"})
        assert result == "locate_code done: src/util.ts lines 1-3 (key: default)."
        assert ctx.session.saved_locations["default"].path == normalize_path(project / "src" / "util.ts")

    def test_locate_code_miss(self, ctx):
        assert run(ctx, "locate_code", {"path": "src/util.ts", "name": "nothing"}) == "locate_code: no matching code found."


class TestIntArg:
    @pytest.mark.parametrize("value,expected", [
        (5, 5),
        ("12", 12),
        ("2.7", 2),
        (3.0, 3),
        ("all", 8),
        ("", 8),
        (None, 8),
        (True, 8),
        ([4], 8),
        (0, 8),
    ])
    def test_lenient_coercion(self, value, expected):
        assert int_arg({"top_k": value}, "top_k", 8, minimum=1) == expected

    def test_missing_without_default(self):
        assert int_arg({}, "depth") is None
