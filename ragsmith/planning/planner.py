"""Planner: architecture context, plan prompt, streaming ui_text, validation."""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Dict, Iterable, List, Optional, Tuple

from ..errors import OperationCancelled, StructuralError
from ..indexing.architecture import ROOT_FALLBACK_SUMMARY
from ..llm.base import CancelToken, ChatMessage, ModelProvider
from ..storage import PlannerIndexStore, make_planner_index_store
from ..tools import ToolRegistry
from ..core.chunking import get_language_for_file
from ..utils import clean_llm_json_block, normalize_path
from .models import AUTO_TOOL, Plan, Step, ToolCall
from .sanitizer import sanitize_plan

if TYPE_CHECKING:
    from ..session import Session

logger = logging.getLogger(__name__)

UiTextCallback = Callable[[Optional[int], str], None]

PLANNER_SYSTEM_PROMPT = """ROLE: You are a senior software engineer who plans code changes for an automated agent.

AVAILABLE TOOLS:
{tools}

INSTRUCTIONS:
- Break the user request into small, ordered steps. Each step uses at most one tool.
- Use "tool": "auto" when unsure; the executor will pick a tool.
- NEVER write code in the plan. Describe what code should do in *_spec fields
  (content_spec, change_spec, find_spec); code is written when the step runs.
- "ui_text" is a short, user-facing sentence describing the step.
- Respond with ONLY a JSON object of this shape:
{{"steps": [{{"step": 1, "action": "...", "thought": "...", "ui_text": "...", "tool": "<tool name>", "args": {{}}, "files_to_edit": ["..."], "notes": "..."}}]}}"""

PLANNER_USER_PROMPT = """CONTEXT:
{context}

USER REQUEST:
{query}"""

_QUOTED_FILE = re.compile(r"[`'\"]([\w./\\-]+\.[A-Za-z0-9]+)[`'\"]")
_BARE_FILE = re.compile(
    r"(?<![\w/.\\-])([\w\-./\\]+\.(?:tsx?|jsx?|mjs|cjs|py|json|css|scss|html|md|java|go|cs|cpp|cc|c|h|hpp|ya?ml|txt))\b"
)
_UI_TEXT = re.compile(r'"ui_text"\s*:\s*"((?:\\.|[^"\\])*)"')
_STEP_NO = re.compile(r'"step"\s*:\s*(\d+)')


def extract_mentioned_files(query: str) -> List[str]:
    found: List[str] = []
    for pattern in (_QUOTED_FILE, _BARE_FILE):
        for m in pattern.finditer(query):
            name = m.group(1).replace("\\", "/")
            if name not in found:
                found.append(name)
    return found


def match_index_files(index: Dict[str, str], mentioned: Iterable[str], root: str) -> List[str]:
    """Index keys (files under root) ending with each mentioned relative path."""
    matches: List[str] = []
    for name in mentioned:
        rel = name[2:] if name.startswith("./") else name.lstrip("/")
        for key in sorted(index):
            if not key.startswith(root + "/") or key in matches:
                continue
            if (key == f"{root}/{rel}" or key.endswith("/" + rel)) and Path(key).is_file():
                matches.append(key)
    return matches


def build_planner_context(
    repo: Path,
    index: Dict[str, str],
    query: str,
    summary_memory: Optional[str] = None,
    previous_plan: Optional[Plan] = None,
    completed_step_indices: Optional[List[int]] = None,
) -> str:
    root = normalize_path(repo)
    out: List[str] = ["# Project Architectural Overview", "", "## Project Summary",
                      index.get(root, ROOT_FALLBACK_SUMMARY), ""]

    if summary_memory:
        out += ["## Recent Conversation Memory", summary_memory.strip(), ""]
    if previous_plan is not None and previous_plan.steps:
        out += ["## Previous Plan", "```json", previous_plan.to_json(), "```", ""]
    if completed_step_indices:
        done = ", ".join(f"{i} (step {i + 1})" for i in sorted(completed_step_indices))
        out += ["## Already Completed Steps", f"Indices: {done}. Do not repeat them.", ""]

    out.append("## Key Directories and Their Responsibilities")
    top_dirs = [k for k in sorted(index) if Path(k).parent.as_posix() == root and Path(k).is_dir()]
    if top_dirs:
        out += [f"- `{Path(k).name}/`: {index[k]}" for k in top_dirs]
    else:
        out.append("- (no directories indexed)")
    out += ["", "---", "", "# Detailed Context for Current Request", ""]

    files = match_index_files(index, extract_mentioned_files(query), root)
    if not files:
        out.append("No specific files were detected in the user request.")
    for key in files:
        rel = Path(key).relative_to(root).as_posix()
        try:
            content = Path(key).read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            logger.warning(f"Cannot read mentioned file {rel}: {e}")
            continue
        lang = get_language_for_file(key) or ""
        out += [f"## File Content: `{rel}`", f"Summary: {index.get(key, '')}", f"```{lang}", content, "```", ""]
    return "\n".join(out).rstrip() + "\n"


class UiTextScanner:
    """Surfaces each step's ui_text from a still-accumulating JSON stream.

    Offsets of emitted matches are remembered so nothing is emitted twice.
    """

    MAX_BUFFER = 20000
    KEEP_BUFFER = 10000

    def __init__(self, emit: UiTextCallback) -> None:
        self._emit = emit
        self._buffer = ""
        self._base = 0
        self._pos = 0
        self._emitted: set[int] = set()

    def feed(self, chunk: str) -> List[Tuple[Optional[int], str]]:
        self._buffer += chunk
        found: List[Tuple[Optional[int], str]] = []
        for m in _UI_TEXT.finditer(self._buffer, self._pos):
            offset = self._base + m.start()
            self._pos = m.end()
            if offset in self._emitted:
                continue
            self._emitted.add(offset)
            text = _decode_json_string(m.group(1))
            step = _nearest_step(self._buffer[max(0, m.start() - 200):m.start()])
            found.append((step, text))
            self._emit(step, text)
        self._trim()
        return found

    def _trim(self) -> None:
        if len(self._buffer) <= self.MAX_BUFFER:
            return
        cut = min(len(self._buffer) - self.KEEP_BUFFER, max(self._pos - 200, 0))
        if cut <= 0:
            return
        self._buffer = self._buffer[cut:]
        self._base += cut
        self._pos -= cut


def _decode_json_string(raw: str) -> str:
    try:
        return json.loads(f'"{raw}"')
    except json.JSONDecodeError:
        return raw


def _nearest_step(window: str) -> Optional[int]:
    numbers = _STEP_NO.findall(window)
    return int(numbers[-1]) if numbers else None


def _clean_tool(value) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def parse_and_validate_plan(raw: str) -> Plan:
    """Parse model output into a Plan or raise StructuralError."""
    cleaned = clean_llm_json_block(raw or "")
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise StructuralError(f"Planner returned invalid JSON: {e}") from e
    if not isinstance(data, dict) or not isinstance(data.get("steps"), list):
        raise StructuralError("Planner response is missing a 'steps' array")

    steps: List[Step] = []
    for i, item in enumerate(data["steps"]):
        if not isinstance(item, dict):
            raise StructuralError(f"Step {i + 1} is not an object")
        number = item.get("step")
        if isinstance(number, bool) or not isinstance(number, (int, float)):
            raise StructuralError(f"Step {i + 1} must have a numeric 'step'")
        if not isinstance(item.get("action"), str) or not isinstance(item.get("thought"), str):
            raise StructuralError(f"Step {i + 1} must have string 'action' and 'thought'")

        calls: List[ToolCall] = []
        for raw_call in item.get("tool_calls") or []:
            if isinstance(raw_call, dict) and _clean_tool(raw_call.get("tool")):
                args = raw_call.get("args")
                calls.append(ToolCall(_clean_tool(raw_call["tool"]), args if isinstance(args, dict) else {}))

        files = item.get("files_to_edit")
        steps.append(Step(
            step=int(number),
            action=item["action"],
            thought=item["thought"],
            ui_text=item["ui_text"] if isinstance(item.get("ui_text"), str) else None,
            tool=_clean_tool(item.get("tool")),
            args=item["args"] if isinstance(item.get("args"), dict) else None,
            tool_calls=calls or None,
            files_to_edit=[f for f in files if isinstance(f, str)] if isinstance(files, list) else None,
            notes=item["notes"] if isinstance(item.get("notes"), str) else None,
        ))

    plan = Plan(steps)
    plan.renumber()
    return plan


class Planner:
    def __init__(
        self,
        repo: Path,
        cfg: Dict,
        provider: ModelProvider,
        registry: ToolRegistry,
        index_store: Optional[PlannerIndexStore] = None,
    ) -> None:
        self.repo = repo.resolve()
        self.cfg = cfg
        self.provider = provider
        self.registry = registry
        self.index_store = index_store or make_planner_index_store(cfg, self.repo)

    def build_messages(
        self,
        query: str,
        summary_memory: Optional[str] = None,
        previous_plan: Optional[Plan] = None,
        completed_step_indices: Optional[List[int]] = None,
    ) -> List[ChatMessage]:
        context = build_planner_context(
            self.repo, self.index_store.load(), query, summary_memory, previous_plan, completed_step_indices
        )
        tools = self.registry.describe() + f"\n- {AUTO_TOOL}: let the executor choose the tool"
        return [
            {"role": "system", "content": PLANNER_SYSTEM_PROMPT.format(tools=tools)},
            {"role": "user", "content": PLANNER_USER_PROMPT.format(context=context, query=query.strip())},
        ]

    def run_planner(
        self,
        session: Session,
        query: str,
        summary_memory: Optional[str] = None,
        previous_plan: Optional[Plan] = None,
        completed_step_indices: Optional[List[int]] = None,
        on_partial_ui_text: Optional[UiTextCallback] = None,
        cancel_token: Optional[CancelToken] = None,
    ) -> Plan:
        """Produce a validated, sanitized plan and install it on the session.

        Raises:
            StructuralError: the reply is not a valid plan
            OperationCancelled: cancel_token fired; nothing is committed
        """
        if summary_memory is None:
            summary_memory = session.latest_memory()
        messages = self.build_messages(query, summary_memory, previous_plan, completed_step_indices)

        if on_partial_ui_text is not None:
            scanner = UiTextScanner(on_partial_ui_text)
            raw = self.provider.generate_chat(messages, on_chunk=scanner.feed, cancel_token=cancel_token)
        else:
            raw = self.provider.generate_chat(messages, cancel_token=cancel_token)
        if raw is None or (cancel_token is not None and cancel_token.cancelled):
            raise OperationCancelled("Planning cancelled")

        plan = sanitize_plan(parse_and_validate_plan(raw))
        session.set_plan(plan)
        logger.info(f"Planned {len(plan.steps)} steps for session {session.id}")
        return plan
