"""Plan and step records."""

from __future__ import annotations

import dataclasses
import json
from typing import Any, Dict, List, Optional

AUTO_TOOL = "auto"


@dataclasses.dataclass
class ToolCall:
    tool: str
    args: Dict[str, Any] = dataclasses.field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"tool": self.tool, "args": dict(self.args)}


@dataclasses.dataclass
class Step:
    step: int
    action: str
    thought: str
    ui_text: Optional[str] = None
    tool: Optional[str] = None
    args: Optional[Dict[str, Any]] = None
    tool_calls: Optional[List[ToolCall]] = None
    files_to_edit: Optional[List[str]] = None
    notes: Optional[str] = None

    def resolved_call(self) -> Optional[ToolCall]:
        """Normalize ``tool``/``tool_calls`` into one call; None when unresolved or 'auto'."""
        if self.tool and self.tool.strip() and self.tool.strip() != AUTO_TOOL:
            return ToolCall(self.tool.strip(), dict(self.args or {}))
        if self.tool_calls:
            first = self.tool_calls[0]
            if first.tool and first.tool != AUTO_TOOL:
                return ToolCall(first.tool, dict(first.args or {}))
        return None

    def preselected_tool(self) -> Optional[str]:
        call = self.resolved_call()
        return call.tool if call else None

    def text(self) -> str:
        return " ".join(p for p in (self.action, self.thought, self.ui_text or "") if p)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"step": self.step, "action": self.action, "thought": self.thought}
        for key in ("ui_text", "tool", "args", "files_to_edit", "notes"):
            value = getattr(self, key)
            if value is not None:
                data[key] = value
        if self.tool_calls is not None:
            data["tool_calls"] = [c.to_dict() for c in self.tool_calls]
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Step":
        calls = data.get("tool_calls")
        return cls(
            step=int(data.get("step", 0)),
            action=str(data.get("action", "")),
            thought=str(data.get("thought", "")),
            ui_text=data.get("ui_text"),
            tool=data.get("tool"),
            args=data.get("args"),
            tool_calls=[ToolCall(c["tool"], dict(c.get("args") or {})) for c in calls] if calls else None,
            files_to_edit=data.get("files_to_edit"),
            notes=data.get("notes"),
        )


@dataclasses.dataclass
class Plan:
    steps: List[Step] = dataclasses.field(default_factory=list)

    def renumber(self) -> None:
        for i, s in enumerate(self.steps):
            s.step = i + 1

    def to_dict(self) -> Dict[str, Any]:
        return {"steps": [s.to_dict() for s in self.steps]}

    def to_json(self, indent: Optional[int] = 2) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False, indent=indent)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Plan":
        plan = cls([Step.from_dict(s) for s in data.get("steps", [])])
        plan.renumber()
        return plan
