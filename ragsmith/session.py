"""Per-conversation state shared by the planner and the executor."""

from __future__ import annotations

import dataclasses
import uuid
from collections import deque
from typing import Deque, Dict, List, Optional, Set

from .host import FocusHint
from .planning.models import Plan
from .search.retrieval import RetrievedChunk
from .utils import normalize_path


@dataclasses.dataclass
class SavedLocation:
    """Named handle to a character range in one file."""

    path: str
    start_offset: int
    end_offset: int
    start_line: int
    end_line: int

    def to_dict(self) -> Dict[str, object]:
        return dataclasses.asdict(self)


@dataclasses.dataclass
class ExecutionRecord:
    index: int
    label: str
    elapsed_ms: int
    result: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, object]:
        return dataclasses.asdict(self)


class Session:
    """Mutable planning/execution state of one active conversation."""

    def __init__(self, session_id: Optional[str] = None, recent_outputs: int = 5) -> None:
        self.id = session_id or uuid.uuid4().hex
        self.plan: Optional[Plan] = None
        self.saved_locations: Dict[str, SavedLocation] = {}
        self.last_retrieved: List[RetrievedChunk] = []
        self.executed: Set[int] = set()
        self.recent_outputs: Deque[str] = deque(maxlen=recent_outputs)
        self.execution_log: List[ExecutionRecord] = []
        self.memory: List[str] = []
        self.focus: Optional[FocusHint] = None
        self.changed_files: Set[str] = set()
        self.summary_done = False

    def set_plan(self, plan: Plan) -> None:
        """Install a new plan. Revisions fully replace the previous one."""
        plan.renumber()
        self.plan = plan
        self.executed = set()
        self.execution_log = []
        self.changed_files = set()
        self.summary_done = False

    def save_location(self, name: str, location: SavedLocation) -> None:
        # re-inserted so iteration order reflects recency
        self.saved_locations.pop(name, None)
        self.saved_locations[name] = location

    def forget_ranges(self, path: str) -> None:
        """Drop saved locations and cached hits at or under ``path``.

        Their offsets and line numbers describe content that no longer exists.
        """
        target = normalize_path(path)
        prefix = target.rstrip("/") + "/"

        def stale(p: str) -> bool:
            p = normalize_path(p)
            return p == target or p.startswith(prefix)

        self.saved_locations = {k: v for k, v in self.saved_locations.items() if not stale(v.path)}
        self.last_retrieved = [r for r in self.last_retrieved if not stale(r.chunk.file_path)]

    def note_output(self, text: str) -> None:
        line = (text or "").strip().splitlines()
        if line:
            self.recent_outputs.append(line[0][:200])

    def latest_memory(self) -> Optional[str]:
        return self.memory[-1] if self.memory else None

    def completed_indices(self) -> List[int]:
        return sorted(self.executed)

    def context_snippet(self) -> str:
        """Recent retrieval and tool-output summaries for tool-selection prompts."""
        parts: List[str] = []
        if self.last_retrieved:
            hits = ", ".join(
                f"{r.chunk.name} ({r.chunk.file_path}:{r.chunk.start_line}-{r.chunk.end_line})"
                for r in self.last_retrieved[:5]
            )
            parts.append(f"Recently retrieved: {hits}")
        if self.saved_locations:
            locs = ", ".join(
                f"{name} -> {loc.path}:{loc.start_line}-{loc.end_line}"
                for name, loc in self.saved_locations.items()
            )
            parts.append(f"Saved locations: {locs}")
        if self.recent_outputs:
            parts.append("Recent tool outputs:\n" + "\n".join(f"- {o}" for o in self.recent_outputs))
        return "\n".join(parts)
