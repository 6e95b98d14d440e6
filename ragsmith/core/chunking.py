"""Chunk extraction strategies, one per language family.

JS/TS and CSS go through tree-sitter. Python, C-family and JSON use cheap
line/brace/key walks; those are best-effort heuristics and will miss blocks
written in unusual layouts.
"""

from __future__ import annotations

import json
import logging
import os
import re
from typing import Any, Dict, List, Optional, Tuple

import tree_sitter_language_pack

from .models import ChunkSpan

logger = logging.getLogger(__name__)

MAX_DEPENDENCIES = 50

EXT_TO_LANG = {
    ".ts": "typescript",
    ".tsx": "tsx",
    ".js": "javascript",
    ".jsx": "javascript",
    ".mjs": "javascript",
    ".cjs": "javascript",
    ".py": "python",
    ".css": "css",
    ".json": "json",
    ".c": "cpp",
    ".h": "cpp",
    ".cc": "cpp",
    ".cpp": "cpp",
    ".cxx": "cpp",
    ".hh": "cpp",
    ".hpp": "cpp",
    ".hxx": "cpp",
    ".java": "java",
    ".cs": "c_sharp",
}

_CALL_RE = re.compile(r"\b([A-Za-z_]\w*)\s*\(")


def get_language_for_file(filename: str) -> Optional[str]:
    """Get language name from file extension."""
    _, ext = os.path.splitext(filename)
    return EXT_TO_LANG.get(ext.lower())


def simple_dependencies(text: str, limit: int = MAX_DEPENDENCIES) -> List[str]:
    """Collect identifier-like tokens immediately followed by '('."""
    deps: List[str] = []
    seen = set()
    for m in _CALL_RE.finditer(text):
        name = m.group(1)
        if name in seen:
            continue
        seen.add(name)
        deps.append(name)
        if len(deps) >= limit:
            break
    return deps


def _slice(lines: List[str], start: int, end: int) -> str:
    """Join 1-based inclusive line range."""
    return "\n".join(lines[start - 1:end])


def _indent(line: str) -> int:
    return len(line) - len(line.lstrip())


# -----------------------------------------------------------------------------
# Interfaces
# -----------------------------------------------------------------------------

class ExtractionStrategy:
    """Abstract base class for per-language chunk extraction."""

    content_language: str = ""

    def extract(self, source: str, file_path: str) -> List[ChunkSpan]:
        """Split a file into named blocks.

        Args:
            source: Full file text
            file_path: Path to the file (for logging)

        Returns:
            List of ChunkSpan with 1-based inclusive line numbers
        """
        raise NotImplementedError


# -----------------------------------------------------------------------------
# JS / TS
# -----------------------------------------------------------------------------

_TS_FUNCTIONS = {"function_declaration", "generator_function_declaration"}
_TS_CLASSES = {"class_declaration", "abstract_class_declaration"}
_TS_VARIABLES = {"lexical_declaration", "variable_declaration"}
_TOP_LEVEL_PARENTS = {"program", "export_statement"}


class TreeSitterJsStrategy(ExtractionStrategy):
    """Walks the tree-sitter syntax tree of JS/TS sources."""

    def __init__(self, language: str) -> None:
        self.content_language = language

    def extract(self, source: str, file_path: str) -> List[ChunkSpan]:
        parser = tree_sitter_language_pack.get_parser(self.content_language)
        data = source.encode("utf-8")
        tree = parser.parse(data)
        if tree.root_node.has_error:
            logger.warning(f"Syntax errors in {file_path}, skipping structured extraction")
            return []
        out: List[ChunkSpan] = []
        self._walk(tree.root_node, data, out, None)
        return out

    def _walk(self, node, data: bytes, out: List[ChunkSpan], class_name: Optional[str]) -> None:
        for child in node.children:
            kind = child.type
            if kind in _TS_FUNCTIONS:
                name = _field_text(child, "name", data) or "anonymous_function"
                out.append(_ts_span(child, data, "function", name))
                self._walk(child, data, out, class_name)
            elif kind in _TS_CLASSES:
                name = _field_text(child, "name", data) or "anonymous_class"
                out.append(_ts_span(child, data, "class", name))
                self._walk(child, data, out, name)
            elif kind == "method_definition":
                method = _field_text(child, "name", data) or "anonymous_method"
                out.append(_ts_span(child, data, "method", f"{class_name or 'anonymous_class'}.{method}"))
                self._walk(child, data, out, class_name)
            elif kind == "interface_declaration":
                name = _field_text(child, "name", data) or "anonymous_interface"
                out.append(_ts_span(child, data, "interface", name))
            elif kind == "import_statement":
                src = (_field_text(child, "source", data) or "").strip("'\"`")
                out.append(_ts_span(child, data, "import", src or "import"))
            elif kind in _TS_VARIABLES and node.type in _TOP_LEVEL_PARENTS:
                out.append(_ts_span(child, data, "variable", _declarator_names(child, data)))
            else:
                self._walk(child, data, out, class_name)


def _node_text(node, data: bytes) -> str:
    return data[node.start_byte:node.end_byte].decode("utf-8", errors="replace")


def _field_text(node, field: str, data: bytes) -> Optional[str]:
    target = node.child_by_field_name(field)
    if target is None:
        return None
    return _node_text(target, data)


def _declarator_names(node, data: bytes) -> str:
    names: List[str] = []
    for child in node.children:
        if child.type != "variable_declarator":
            continue
        target = child.child_by_field_name("name")
        if target is None:
            continue
        if target.type == "identifier":
            names.append(_node_text(target, data))
        else:
            names.append("destructured")
    return ", ".join(names) or "anonymous_variable"


def _ts_span(node, data: bytes, content_type: str, name: str) -> ChunkSpan:
    return ChunkSpan(
        content_type=content_type,
        name=name,
        start_line=node.start_point[0] + 1,
        end_line=node.end_point[0] + 1,
        content=_node_text(node, data),
    )


# -----------------------------------------------------------------------------
# Python
# -----------------------------------------------------------------------------

_PY_DEF = re.compile(r"^(\s*)(?:async\s+)?def\s+([A-Za-z_]\w*)\s*\(")
_PY_CLASS = re.compile(r"^(\s*)class\s+([A-Za-z_]\w*)\s*[(:]")


def _python_header_end(lines: List[str], i: int) -> int:
    """Index of the line closing a (possibly multi-line) def/class header."""
    depth = 0
    for j in range(i, len(lines)):
        code = lines[j].split("#", 1)[0]
        depth += code.count("(") + code.count("[") - code.count(")") - code.count("]")
        if depth <= 0 and ":" in code:
            return j
    return i


def find_python_block_end(lines: List[str], i: int) -> int:
    """1-based last line of the indented block whose header starts at index i."""
    header_indent = _indent(lines[i])
    last = _python_header_end(lines, i)
    for j in range(last + 1, len(lines)):
        line = lines[j]
        if not line.strip():
            continue
        if _indent(line) <= header_indent:
            break
        last = j
    return last + 1


def _decorator_start(lines: List[str], i: int) -> int:
    indent = _indent(lines[i])
    start = i
    while start > 0 and lines[start - 1].strip().startswith("@") and _indent(lines[start - 1]) == indent:
        start -= 1
    return start


class PythonStrategy(ExtractionStrategy):
    """Indentation-based line scanner for def/class blocks."""

    content_language = "python"

    def extract(self, source: str, file_path: str) -> List[ChunkSpan]:
        lines = source.split("\n")
        out: List[ChunkSpan] = []
        i = 0
        while i < len(lines):
            line = lines[i]
            cls = _PY_CLASS.match(line)
            fn = _PY_DEF.match(line)
            if cls or fn:
                end = find_python_block_end(lines, i)
                start = _decorator_start(lines, i) + 1
                if cls:
                    name = cls.group(2)
                    out.append(ChunkSpan("class", name, start, end, _slice(lines, start, end)))
                    out.extend(self._methods(lines, i + 1, end, name))
                else:
                    name = fn.group(2)
                    out.append(ChunkSpan("function", name, start, end, _slice(lines, start, end)))
                i = end
                continue
            i += 1
        return out

    def _methods(self, lines: List[str], begin: int, end: int, class_name: str) -> List[ChunkSpan]:
        out: List[ChunkSpan] = []
        i = begin
        while i < end:
            m = _PY_DEF.match(lines[i])
            if m:
                m_end = min(find_python_block_end(lines, i), end)
                start = _decorator_start(lines, i) + 1
                out.append(
                    ChunkSpan("method", f"{class_name}.{m.group(2)}", start, m_end, _slice(lines, start, m_end))
                )
                i = m_end
                continue
            i += 1
        return out


# -----------------------------------------------------------------------------
# C-family
# -----------------------------------------------------------------------------

_C_CLASS = re.compile(r"^\s*(?:(?:public|private|protected|internal|static|abstract|final|sealed|partial)\s+)*(?:class|struct)\s+([A-Za-z_]\w*)\b[^;]*$")
_C_FUNC = re.compile(r"^\s*[\w:\*&<>~,\[\]\s]+\s+[~A-Za-z_][\w:]*\s*\([^;{]*\)\s*(?:const\s*)?(?:noexcept\s*)?(?:throws\s+[\w.,\s]+)?\{?\s*$")
_C_FUNC_NAME = re.compile(r"([~A-Za-z_][\w:]*)\s*\([^)]*\)?")
_C_KEYWORDS = {"if", "for", "while", "switch", "catch", "return", "else", "do", "sizeof", "new", "delete"}


def find_brace_block_end(lines: List[str], i: int) -> int:
    """1-based line that closes the first brace opened at or after index i."""
    depth = 0
    opened = False
    for j in range(i, len(lines)):
        for ch in lines[j]:
            if ch == "{":
                depth += 1
                opened = True
            elif ch == "}":
                depth -= 1
                if opened and depth == 0:
                    return j + 1
    return len(lines)


def _opens_block(lines: List[str], i: int) -> bool:
    if "{" in lines[i]:
        return True
    nxt = i + 1
    while nxt < len(lines) and not lines[nxt].strip():
        nxt += 1
    return nxt < len(lines) and lines[nxt].lstrip().startswith("{")


def _c_function_name(line: str) -> Optional[str]:
    for m in _C_FUNC_NAME.finditer(line):
        name = m.group(1)
        if name.split("::")[-1] not in _C_KEYWORDS:
            return name
    return None


class BraceStrategy(ExtractionStrategy):
    """Brace-depth matching for C, C++, Java and C#."""

    def __init__(self, language: str) -> None:
        self.content_language = language

    def extract(self, source: str, file_path: str) -> List[ChunkSpan]:
        lines = source.split("\n")
        out: List[ChunkSpan] = []
        classes: List[Tuple[int, int, str]] = []

        for i, line in enumerate(lines):
            m = _C_CLASS.match(line)
            if m and _opens_block(lines, i):
                end = find_brace_block_end(lines, i)
                classes.append((i + 1, end, m.group(1)))
                out.append(ChunkSpan("class", m.group(1), i + 1, end, _slice(lines, i + 1, end)))

        i = 0
        while i < len(lines):
            line = lines[i]
            if _C_FUNC.match(line) and not _C_CLASS.match(line) and _opens_block(lines, i):
                name = _c_function_name(line)
                if name and name.split("::")[-1] not in _C_KEYWORDS:
                    end = find_brace_block_end(lines, i)
                    owner = next((c for c in classes if c[0] < i + 1 <= c[1]), None)
                    if owner:
                        out.append(ChunkSpan("method", f"{owner[2]}.{name}", i + 1, end, _slice(lines, i + 1, end)))
                    else:
                        out.append(ChunkSpan("function", name, i + 1, end, _slice(lines, i + 1, end)))
                    i = end
                    continue
            i += 1
        return out


# -----------------------------------------------------------------------------
# JSON / CSS
# -----------------------------------------------------------------------------

class JsonStrategy(ExtractionStrategy):
    """One json_property chunk per leaf, named by its dotted key path."""

    content_language = "json"

    def extract(self, source: str, file_path: str) -> List[ChunkSpan]:
        try:
            data = json.loads(source)
        except json.JSONDecodeError as e:
            logger.warning(f"Invalid JSON in {file_path}: {e}")
            return []
        lines = source.split("\n")
        out: List[ChunkSpan] = []
        cursor = [0]
        self._walk(data, "", lines, cursor, out)
        return out

    def _walk(self, value: Any, path: str, lines: List[str], cursor: List[int], out: List[ChunkSpan]) -> None:
        if isinstance(value, dict):
            for key, child in value.items():
                self._seek(lines, cursor, json.dumps(key, ensure_ascii=False))
                self._walk(child, f"{path}.{key}" if path else str(key), lines, cursor, out)
            return
        if isinstance(value, list) and value:
            for idx, child in enumerate(value):
                self._walk(child, f"{path}.{idx}" if path else str(idx), lines, cursor, out)
            return
        if not isinstance(value, (dict, list)):
            self._seek(lines, cursor, json.dumps(value, ensure_ascii=False))
        line_no = cursor[0] + 1
        out.append(
            ChunkSpan("json_property", path or "root", line_no, line_no, json.dumps(value, ensure_ascii=False))
        )

    @staticmethod
    def _seek(lines: List[str], cursor: List[int], needle: str) -> None:
        for i in range(cursor[0], len(lines)):
            if needle in lines[i]:
                cursor[0] = i
                return


class TreeSitterCssStrategy(ExtractionStrategy):
    """One css_rule chunk per rule set, named by its selectors."""

    content_language = "css"

    def extract(self, source: str, file_path: str) -> List[ChunkSpan]:
        parser = tree_sitter_language_pack.get_parser("css")
        data = source.encode("utf-8")
        tree = parser.parse(data)
        out: List[ChunkSpan] = []
        self._walk(tree.root_node, data, out)
        return out

    def _walk(self, node, data: bytes, out: List[ChunkSpan]) -> None:
        for child in node.children:
            if child.type == "rule_set":
                selectors = next((c for c in child.children if c.type == "selectors"), None)
                raw = _node_text(selectors, data) if selectors is not None else ""
                name = ", ".join(s.strip() for s in raw.split(",") if s.strip()) or "rule"
                span = _ts_span(child, data, "css_rule", name)
                out.append(span)
            else:
                self._walk(child, data, out)


_STRATEGIES: Dict[str, ExtractionStrategy] = {
    "typescript": TreeSitterJsStrategy("typescript"),
    "tsx": TreeSitterJsStrategy("tsx"),
    "javascript": TreeSitterJsStrategy("javascript"),
    "python": PythonStrategy(),
    "cpp": BraceStrategy("cpp"),
    "java": BraceStrategy("java"),
    "c_sharp": BraceStrategy("c_sharp"),
    "json": JsonStrategy(),
    "css": TreeSitterCssStrategy(),
}


def get_strategy(language: str) -> Optional[ExtractionStrategy]:
    return _STRATEGIES.get(language)


def wants_dependencies(span: ChunkSpan) -> bool:
    """Imports, interfaces and CSS/JSON leaves carry no callee list."""
    return span.content_type not in ("json_property", "css_rule", "import", "interface")


def extract_spans(source: str, file_path: str) -> Tuple[str, List[ChunkSpan]]:
    """Run the strategy for a file, falling back to one whole-file span.

    Returns:
        (language, spans)
    """
    language = get_language_for_file(file_path) or "text"
    strategy = get_strategy(language)
    spans: List[ChunkSpan] = []
    if strategy is not None:
        try:
            spans = strategy.extract(source, file_path)
        except (ValueError, LookupError, RuntimeError) as e:
            logger.warning(f"Extraction failed for {file_path}, using whole file: {e}")
            spans = []
    if not spans:
        lines = source.split("\n")
        spans = [ChunkSpan("other", os.path.basename(file_path), 1, max(1, len(lines)), source)]
    logger.debug(f"{file_path}: {len(spans)} spans ({language})")
    return language, spans
