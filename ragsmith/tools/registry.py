"""Tool registry: builtin schemas plus custom tools loaded from ``tools.json``.

Custom tools are data records ``{name, description, schema, entrypoint}``
where ``entrypoint`` is ``"package.module:function"``. The function is
imported when the manifest is loaded and called as ``fn(args, context)``.
"""

from __future__ import annotations

import dataclasses
import importlib
import json
import logging
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from ..errors import ToolExecutionError
from ..host import Workspace
from ..utils.file_utils import write_json_atomic
from .builtin import BUILTIN_TOOLS

logger = logging.getLogger(__name__)

TOOLS_FILE = "tools.json"


@dataclasses.dataclass(frozen=True)
class CustomToolContext:
    """What a custom tool may touch: the workspace file system only."""

    workspace: Workspace


CustomToolFn = Callable[[Dict[str, Any], CustomToolContext], Any]


@dataclasses.dataclass
class ToolSpec:
    name: str
    description: str
    schema: Dict[str, Any]
    entrypoint: Optional[str] = None
    builtin: bool = True

    def to_dict(self) -> Dict[str, Any]:
        data = {"name": self.name, "description": self.description, "schema": self.schema}
        if self.entrypoint:
            data["entrypoint"] = self.entrypoint
        return data

    @property
    def required(self) -> List[str]:
        return list(self.schema.get("required") or [])


_PLUGINS: Dict[str, ToolSpec] = {}
_PLUGIN_FUNCS: Dict[str, CustomToolFn] = {}


def register_tool(name: str, description: str = "", schema: Optional[Dict[str, Any]] = None):
    """Decorator registering an in-process custom tool."""

    def deco(fn: CustomToolFn) -> CustomToolFn:
        _PLUGINS[name] = ToolSpec(
            name=name,
            description=description or (fn.__doc__ or "").strip(),
            schema=schema or {"type": "object", "properties": {}, "required": []},
            entrypoint=f"{fn.__module__}:{fn.__qualname__}",
            builtin=False,
        )
        _PLUGIN_FUNCS[name] = fn
        return fn

    return deco


def resolve_entrypoint(entrypoint: str) -> CustomToolFn:
    module_name, sep, attr = entrypoint.partition(":")
    if not sep or not module_name or not attr:
        raise ValueError(f"Entrypoint must look like 'module:function', got {entrypoint!r}")
    obj: Any = importlib.import_module(module_name)
    for part in attr.split("."):
        obj = getattr(obj, part)
    if not callable(obj):
        raise TypeError(f"Entrypoint {entrypoint!r} is not callable")
    return obj


class ToolRegistry:
    def __init__(self, tools_path: Optional[Path] = None) -> None:
        self.tools_path = tools_path
        self._specs: Dict[str, ToolSpec] = {}
        self._functions: Dict[str, CustomToolFn] = {}
        for raw in BUILTIN_TOOLS:
            self._specs[raw["name"]] = ToolSpec(raw["name"], raw["description"], raw["schema"])
        for name, spec in _PLUGINS.items():
            self._add_custom(spec, _PLUGIN_FUNCS[name])

    @classmethod
    def for_state_dir(cls, state_dir: Path) -> "ToolRegistry":
        registry = cls(state_dir / TOOLS_FILE)
        registry.load()
        return registry

    def _add_custom(self, spec: ToolSpec, fn: CustomToolFn) -> None:
        if spec.name in self._specs and self._specs[spec.name].builtin:
            logger.warning(f"Custom tool {spec.name} shadows a builtin, ignoring it")
            return
        self._specs[spec.name] = spec
        self._functions[spec.name] = fn

    def load(self) -> None:
        """Read custom tools from the manifest, writing a fresh one if missing."""
        if self.tools_path is None:
            return
        if not self.tools_path.is_file():
            self.save()
            return
        try:
            data = json.loads(self.tools_path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            logger.warning(f"Invalid tools manifest {self.tools_path}: {e}")
            return
        for raw in data.get("custom_tools", []):
            name = str(raw.get("name", "")).strip()
            if not name:
                continue
            entrypoint = raw.get("entrypoint")
            if not entrypoint:
                if raw.get("code"):
                    logger.warning(f"Custom tool {name} ships inline code; register an entrypoint instead")
                continue
            try:
                fn = resolve_entrypoint(entrypoint)
            except (ImportError, AttributeError, ValueError, TypeError) as e:
                logger.warning(f"Cannot load custom tool {name} from {entrypoint}: {e}")
                continue
            spec = ToolSpec(
                name=name,
                description=str(raw.get("description", "")),
                schema=raw.get("schema") or {"type": "object", "properties": {}, "required": []},
                entrypoint=entrypoint,
                builtin=False,
            )
            self._add_custom(spec, fn)
        logger.info(f"Loaded {len(self._functions)} custom tools")

    def save(self) -> None:
        if self.tools_path is None:
            return
        write_json_atomic(self.tools_path, {
            "builtin_tools": [s.to_dict() for s in self._specs.values() if s.builtin],
            "custom_tools": [s.to_dict() for s in self._specs.values() if not s.builtin],
        })

    def register(self, name: str, fn: CustomToolFn, description: str = "",
                 schema: Optional[Dict[str, Any]] = None) -> None:
        spec = ToolSpec(
            name=name,
            description=description,
            schema=schema or {"type": "object", "properties": {}, "required": []},
            entrypoint=f"{fn.__module__}:{fn.__qualname__}",
            builtin=False,
        )
        self._add_custom(spec, fn)

    def names(self) -> List[str]:
        return list(self._specs)

    def has(self, name: Optional[str]) -> bool:
        return bool(name) and name in self._specs

    def get(self, name: str) -> Optional[ToolSpec]:
        return self._specs.get(name)

    def is_custom(self, name: str) -> bool:
        return name in self._functions

    def describe(self, names: Optional[List[str]] = None) -> str:
        """Tool list for prompts: one line per tool with its JSON schema."""
        lines = []
        for name in names or self.names():
            spec = self._specs.get(name)
            if spec is None:
                continue
            lines.append(f"- {spec.name}: {spec.description}\n  schema: {json.dumps(spec.schema, ensure_ascii=False)}")
        return "\n".join(lines)

    def run_custom(self, name: str, args: Dict[str, Any], context: CustomToolContext) -> str:
        fn = self._functions.get(name)
        if fn is None:
            raise ToolExecutionError(f"Unknown custom tool: {name}")
        result = fn(args, context)
        if result is None:
            return f"{name} completed."
        return result if isinstance(result, str) else json.dumps(result, ensure_ascii=False, default=str)
