from ragsmith.execution.editing import (
    EditRange,
    find_block,
    line_span_to_offsets,
    looks_like_replace_request,
    offsets_to_lines,
    resolve_edit_range,
    splice,
)
from ragsmith.host import FocusHint
from ragsmith.search.retrieval import RetrievedChunk
from ragsmith.session import SavedLocation, Session
from ragsmith.utils import normalize_path

from .conftest import make_chunk

TEXT = "\n".join(f"line {i}" for i in range(1, 16)) + "\n"


class TestOffsets:
    def test_line_span(self):
        start, end = line_span_to_offsets(TEXT, 10, 12)
        assert TEXT[start:end] == "line 10\nline 11\nline 12"
        assert offsets_to_lines(TEXT, start, end) == (10, 12)

    def test_span_is_clamped(self):
        start, end = line_span_to_offsets("a\nb", 0, 9)
        assert (start, end) == (0, 3)

    def test_splice(self):
        assert splice("hello world", EditRange(6, 11, "explicit"), "there") == "hello there"


class TestResolveEditRange:
    def test_explicit_range_wins(self, tmp_path):
        session = Session()
        rng = resolve_edit_range(TEXT, tmp_path / "f.ts", {"range": {"start": 5, "end": 9000}}, session)
        assert rng == EditRange(5, len(TEXT), "explicit")

    def test_saved_location_on_same_file(self, tmp_path):
        path = tmp_path / "f.ts"
        session = Session()
        session.save_location("other", SavedLocation(normalize_path(tmp_path / "g.ts"), 0, 3, 1, 1))
        session.save_location("mine", SavedLocation(normalize_path(path), 8, 14, 2, 2))
        assert resolve_edit_range(TEXT, path, {}, session) == EditRange(8, 14, "saved")
        assert resolve_edit_range(TEXT, path, {"use_saved_range": "mine"}, session).source == "saved"

    def test_cached_chunk_lines(self, tmp_path):
        path = tmp_path / "f.ts"
        session = Session()
        session.last_retrieved = [
            RetrievedChunk(make_chunk(tmp_path / "g.ts", start_line=1, end_line=2)),
            RetrievedChunk(make_chunk(path, start_line=10, end_line=12)),
        ]
        rng = resolve_edit_range(TEXT, path, {}, session)
        assert rng.source == "retrieved"
        assert TEXT[rng.start:rng.end] == "line 10\nline 11\nline 12"

    def test_focus_then_find_spec(self, tmp_path):
        path = tmp_path / "f.ts"
        session = Session()
        session.focus = FocusHint(normalize_path(path), 0, 6)
        assert resolve_edit_range(TEXT, path, {"find_spec": "line 3"}, session) == EditRange(0, 6, "focus")

        session.focus = None
        rng = resolve_edit_range(TEXT, path, {"find_spec": "line 3"}, session)
        assert rng.source == "find_spec"
        assert TEXT[rng.start:rng.end] == "line 3"

    def test_append_unless_replace_requested(self, tmp_path):
        path = tmp_path / "f.ts"
        session = Session()
        assert resolve_edit_range(TEXT, path, {}, session, "add a helper") == EditRange(len(TEXT), len(TEXT), "append")
        assert resolve_edit_range(TEXT, path, {}, session, "Rewrite the file") == EditRange(0, len(TEXT), "whole_file")
        assert resolve_edit_range("", path, {}, session, "add a helper") == EditRange(0, 0, "whole_file")

    def test_replace_request_detection(self):
        assert looks_like_replace_request("please OVERWRITE it")
        assert not looks_like_replace_request("add a replacement helper")


class TestFindBlock:
    def test_python_function_by_name(self):
        text = "import os\n\ndef load(path):\n    return path\n\nX = 1\n"
        start, end = find_block(text, "python", name="load")
        assert text[start:end] == "def load(path):\n    return path"

    def test_brace_block_by_name(self):
        text = "const a = 1;\nexport function add(a, b) {\n  return a + b;\n}\nadd(1, 2);\n"
        start, end = find_block(text, "typescript", name="add")
        assert text[start:end] == "export function add(a, b) {\n  return a + b;\n}"

    def test_pattern_and_miss(self):
        text = "class Box {\n  open() {}\n}\n"
        start, end = find_block(text, "typescript", pattern=r"class\s+Box")
        assert text[start:end] == "class Box {\n  open() {}\n}"
        assert find_block(text, "typescript", name="missing") is None
