"""Resolve a tool and its arguments for steps the planner left open."""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict, List, Optional, Tuple

from ..errors import OperationCancelled, ToolResolutionError
from ..llm.base import CancelToken, ChatMessage, ModelProvider
from ..planning.models import Step, ToolCall
from ..planning.sanitizer import sanitize_args
from ..tools import ToolRegistry
from ..utils import clean_llm_json_block

logger = logging.getLogger(__name__)

SELECT_TOOL_PROMPT = """You choose the tool that carries out one step of a coding plan.

AVAILABLE TOOLS:
{tools}

Reply with ONE line of JSON and nothing else:
{{"tool": "<tool name>", "args": {{...}}}}
Never put code in args; describe code in *_spec fields."""

FILL_ARGS_PROMPT = """You fill in the arguments of the tool "{tool}" for one step of a coding plan.

TOOL:
{tools}

Reply with ONE line of JSON and nothing else:
{{"tool": "{tool}", "args": {{...}}}}
Never put code in args; describe code in *_spec fields."""

_TOOL_KEYS = ("tool", "tool_name", "action", "name")
_ARGS_KEYS = ("args", "tool_args", "parameters", "arguments", "input")
_SPEC_FIELD = re.compile(r'"(\w*_spec)"\s*:\s*"')
_SPEC_VALUE_END = re.compile(r'"\s*(?=,\s*"\w+"\s*:|\}\s*\}|\}\s*$|\}\s*,)')

# Path-level wording: "the dist folder", "old config file", "src/a.ts". Phrases with
# "from"/"in"/"of" in between ("remove the log from util.ts") edit a file's contents.
_FS_NOUN = r"(?:files?|folders?|director(?:y|ies)|dirs?|paths?)\b"
_FS_WORDS = r"(?:\s+(?!(?:from|in|inside|of|within|into)\b)[\w.-]+){0,3}?\s+" + _FS_NOUN
_FS_TOKEN = r"\s+(?:the\s+)?[\w-]*(?:/[\w./-]*|\.\w+)(?![\w./-])(?!\s+(?:from|in|inside)\b)"

# first match wins
_HEURISTICS: List[Tuple[str, re.Pattern]] = [
    ("create_directory", re.compile(r"\b(create|make|add)\s+(a\s+|the\s+|new\s+)*(folder|directory)\b|\bmkdir\b", re.I)),
    ("delete_path", re.compile(rf"\b(?:delete|remove)(?:{_FS_WORDS}|{_FS_TOKEN})|\brm\s", re.I)),
    ("move_path", re.compile(rf"\b(?:move|rename)(?:{_FS_WORDS}|{_FS_TOKEN})|\bmv\s", re.I)),
    ("copy_path", re.compile(r"\b(copy|duplicate)\b", re.I)),
    ("run_command", re.compile(r"\b(run|execute|install|npm|pytest|build)\b", re.I)),
    ("format_file", re.compile(r"\b(format|prettier|black)\b", re.I)),
    ("locate_code", re.compile(r"\b(locate|find\s+the\s+(function|class|method))\b", re.I)),
    ("search", re.compile(r"\b(search|find|look\s+for|where)\b", re.I)),
    ("read_file", re.compile(r"\b(read|inspect|open|view|examine)\b", re.I)),
    ("list_dir", re.compile(r"\b(list|ls)\b", re.I)),
    ("append_file", re.compile(r"\b(append|prepend)\b", re.I)),
    ("create_file", re.compile(r"\b(create|new\s+file|add\s+a\s+file|scaffold)\b", re.I)),
    ("edit_file", re.compile(r"\b(edit|update|modify|change|fix|refactor|implement|add|rename|remove|delete|move)\b", re.I)),
]


def sanitize_spec_fields(raw: str) -> str:
    """Neutralize code fences, raw newlines and unescaped quotes inside *_spec string values."""
    out: List[str] = []
    pos = 0
    for m in _SPEC_FIELD.finditer(raw):
        if m.start() < pos:
            continue
        end = _SPEC_VALUE_END.search(raw, m.end())
        if end is None:
            continue
        value = raw[m.end():end.start()]
        value = value.replace("```", "")
        value = re.sub(r'(?<!\\)"', r'\\"', value)
        value = value.replace("\r", "").replace("\n", "\\n").replace("\t", "\\t")
        out.append(raw[pos:m.end()])
        out.append(value)
        pos = end.start()
    out.append(raw[pos:])
    return "".join(out)


def _load(text: str) -> Optional[Dict[str, Any]]:
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        return None
    return data if isinstance(data, dict) else None


def parse_tool_reply(raw: str, default_tool: Optional[str] = None) -> Optional[ToolCall]:
    """Read ``{"tool": ..., "args": {...}}`` from a reply, tolerating alternate keys.

    ``default_tool`` names the tool when the reply only carries arguments.
    """
    if not raw or not raw.strip():
        return None
    cleaned = clean_llm_json_block(raw)
    data = _load(cleaned)
    if data is None:
        data = _load(sanitize_spec_fields(cleaned))
    if data is None:
        return None

    tool: Optional[str] = None
    for key in _TOOL_KEYS:
        value = data.get(key)
        if isinstance(value, str) and value.strip():
            tool = value.strip()
            break
    call = data.get("function_call")
    if tool is None and isinstance(call, dict) and isinstance(call.get("name"), str):
        tool = call["name"].strip() or None

    args: Dict[str, Any] = {}
    sources = [data] + ([call] if isinstance(call, dict) else [])
    for source in sources:
        for key in _ARGS_KEYS:
            value = source.get(key)
            if isinstance(value, str):
                value = _load(value)
            if isinstance(value, dict):
                args = value
                break
        if args:
            break
    tool = tool or default_tool
    if tool is None:
        return None
    return ToolCall(tool, args)


def heuristic_tool(step: Step, allowed: List[str]) -> Optional[str]:
    text = step.text()
    for name, pattern in _HEURISTICS:
        if name in allowed and pattern.search(text):
            return name
    return None


def missing_required(registry: ToolRegistry, call: ToolCall) -> List[str]:
    spec = registry.get(call.tool)
    if spec is None:
        return []
    return [k for k in spec.required if call.args.get(k) in (None, "")]


class ToolSelector:
    def __init__(self, provider: Optional[ModelProvider], registry: ToolRegistry) -> None:
        self.provider = provider
        self.registry = registry

    def build_messages(self, step: Step, context_snippet: str = "", preselected: Optional[str] = None) -> List[ChatMessage]:
        if preselected:
            system = FILL_ARGS_PROMPT.format(tool=preselected, tools=self.registry.describe([preselected]))
        else:
            system = SELECT_TOOL_PROMPT.format(tools=self.registry.describe())
        user = ["STEP:", json.dumps(step.to_dict(), ensure_ascii=False)]
        if context_snippet:
            user += ["", "CONTEXT:", context_snippet]
        return [{"role": "system", "content": system}, {"role": "user", "content": "\n".join(user)}]

    def select(
        self,
        step: Step,
        context_snippet: str = "",
        preselected: Optional[str] = None,
        cancel_token: Optional[CancelToken] = None,
        args: Optional[Dict[str, Any]] = None,
    ) -> ToolCall:
        """Ask the model for the step's tool call, falling back to keyword heuristics.

        With ``preselected`` only the arguments are requested and the tool name
        is kept. ``args`` (default: the step's args) are merged under the
        model's. Raises ToolResolutionError when nothing can be resolved.
        """
        base_args = dict(args if args is not None else step.args or {})
        parsed: Optional[ToolCall] = None
        if self.provider is not None:
            messages = self.build_messages(step, context_snippet, preselected)
            raw = self.provider.generate_chat(messages, cancel_token=cancel_token)
            if raw is None:
                raise OperationCancelled("Tool selection cancelled")
            parsed = parse_tool_reply(raw, default_tool=preselected)
            if parsed is None:
                logger.warning(f"Unparsable tool selection for step {step.step}: {raw[:200]!r}")

        if preselected:
            merged = {**base_args, **(parsed.args if parsed else {})}
            return ToolCall(preselected, sanitize_args(preselected, merged))

        if parsed is not None and self.registry.has(parsed.tool):
            merged = {**base_args, **parsed.args}
            return ToolCall(parsed.tool, sanitize_args(parsed.tool, merged))
        if parsed is not None:
            logger.warning(f"Model chose unknown tool {parsed.tool!r} for step {step.step}")

        name = heuristic_tool(step, self.registry.names())
        if name is None:
            raise ToolResolutionError(f"No tool could be resolved for step {step.step}: {step.action}")
        logger.info(f"Heuristic tool {name} for step {step.step}")
        return ToolCall(name, sanitize_args(name, base_args))
