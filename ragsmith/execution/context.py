"""Everything a tool handler can reach while executing one step."""

from __future__ import annotations

import dataclasses
from typing import Any, Callable, Dict, List, Optional

from ..errors import OperationCancelled, ToolExecutionError
from ..host import MessageChannel, Workspace
from ..llm.base import CancelToken, ChatMessage, ModelProvider
from ..planning.models import Step
from ..search.retrieval import Retriever
from ..session import Session
from ..storage import PlannerIndexStore
from ..tools import ToolRegistry


@dataclasses.dataclass
class ToolContext:
    workspace: Workspace
    session: Session
    registry: ToolRegistry
    cfg: Dict[str, Any]
    provider: Optional[ModelProvider] = None
    retriever: Optional[Retriever] = None
    index_store: Optional[PlannerIndexStore] = None
    channel: MessageChannel = dataclasses.field(default_factory=MessageChannel)
    cancel_token: Optional[CancelToken] = None

    def chat(self, messages: List[ChatMessage]) -> str:
        """Blocking model call; raises OperationCancelled when the token fires."""
        if self.provider is None:
            raise ToolExecutionError("No model provider configured")
        reply = self.provider.generate_chat(messages, cancel_token=self.cancel_token)
        if reply is None:
            raise OperationCancelled("Generation cancelled")
        return reply

    def mark_changed(self, path) -> None:
        self.session.changed_files.add(self.workspace.rel(path))
        self.session.forget_ranges(str(self.workspace.root / path))


Handler = Callable[[ToolContext, Dict[str, Any], Step], str]
