"""Data models for ragsmith."""

from __future__ import annotations

import dataclasses
import uuid
from typing import Any, Dict, List, Optional

CONTENT_TYPES = (
    "function",
    "class",
    "method",
    "interface",
    "import",
    "variable",
    "json_property",
    "css_rule",
    "other",
)


def new_chunk_id() -> str:
    return uuid.uuid4().hex


@dataclasses.dataclass
class ChunkSpan:
    """A block found by an extraction strategy, before it becomes a chunk."""

    content_type: str
    name: str
    start_line: int
    end_line: int
    content: str


@dataclasses.dataclass
class CodeChunk:
    """Represents a code chunk with metadata, optional summary and embedding."""

    id: str
    source: str
    file_path: str
    language: str
    content_type: str
    name: str
    start_line: int
    end_line: int
    content: str
    dependencies: List[str] = dataclasses.field(default_factory=list)
    summary: Optional[str] = None
    embedding: Optional[List[float]] = None

    def __post_init__(self) -> None:
        if self.content_type not in CONTENT_TYPES:
            raise ValueError(f"Unknown content type: {self.content_type!r}")
        if self.start_line > self.end_line:
            raise ValueError(
                f"start_line {self.start_line} > end_line {self.end_line} in {self.file_path}"
            )

    def to_dict(self) -> Dict[str, Any]:
        data = dataclasses.asdict(self)
        if self.summary is None:
            data.pop("summary")
        if self.embedding is None:
            data.pop("embedding")
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CodeChunk":
        return cls(
            id=str(data["id"]),
            source=str(data.get("source", "")),
            file_path=str(data["file_path"]),
            language=str(data.get("language", "")),
            content_type=str(data.get("content_type", "other")),
            name=str(data.get("name", "")),
            start_line=int(data["start_line"]),
            end_line=int(data["end_line"]),
            content=str(data.get("content", "")),
            dependencies=list(data.get("dependencies") or []),
            summary=data.get("summary"),
            embedding=data.get("embedding"),
        )
