"""Per-project object graph shared by the API routes."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Dict, Optional

from fastapi import HTTPException

from ..config import load_config
from ..execution import PlanExecutor
from ..host import MessageChannel, Workspace
from ..indexing import ArchitectureIndexer, ProjectIndexer
from ..llm import make_provider
from ..llm.base import CancelToken, ModelProvider
from ..planning import Planner
from ..search import Retriever, make_reranker
from ..search.rerankers import Reranker
from ..session import Session
from ..storage import make_chunk_store, make_planner_index_store, state_dir
from ..tools import ToolRegistry

logger = logging.getLogger(__name__)

# Project directory served by the API
PROJECT_ROOT = os.getenv("RAGSMITH_PROJECT_ROOT", ".")


class AgentService:
    def __init__(
        self,
        repo: Path,
        cfg: Optional[Dict] = None,
        provider: Optional[ModelProvider] = None,
        reranker: Optional[Reranker] = None,
        channel: Optional[MessageChannel] = None,
    ) -> None:
        self.repo = repo.resolve()
        self.cfg = cfg if cfg is not None else load_config(self.repo)
        self.provider = provider if provider is not None else make_provider(self.cfg)
        self.channel = channel or MessageChannel()
        self.workspace = Workspace(self.repo)
        self.chunk_store = make_chunk_store(self.cfg, self.repo)
        self.index_store = make_planner_index_store(self.cfg, self.repo)
        self.registry = ToolRegistry.for_state_dir(state_dir(self.cfg, self.repo))
        self.indexer = ProjectIndexer(self.repo, self.cfg, self.provider, self.chunk_store)
        self.architecture = ArchitectureIndexer(self.repo, self.cfg, self.provider, self.index_store)
        self.retriever = Retriever(
            self.chunk_store, self.provider, reranker if reranker is not None else make_reranker(self.cfg), self.cfg
        )
        self.planner = Planner(self.repo, self.cfg, self.provider, self.registry, self.index_store)
        self.sessions: Dict[str, Session] = {}
        self._executors: Dict[str, PlanExecutor] = {}
        self._tokens: Dict[str, CancelToken] = {}

    def create_session(self) -> Session:
        recent = int(self.cfg.get("executor", {}).get("recent_outputs", 5))
        session = Session(recent_outputs=recent)
        self.sessions[session.id] = session
        logger.info(f"Created session {session.id}")
        return session

    def get_session(self, session_id: str) -> Session:
        session = self.sessions.get(session_id)
        if session is None:
            raise HTTPException(status_code=404, detail="Session not found")
        return session

    def executor(self, session_id: str) -> PlanExecutor:
        session = self.get_session(session_id)
        if session.plan is None:
            raise HTTPException(status_code=404, detail="Session has no plan")
        if session_id not in self._executors:
            self._executors[session_id] = PlanExecutor(
                self.workspace, session, self.registry, self.cfg,
                provider=self.provider, retriever=self.retriever,
                index_store=self.index_store, channel=self.channel,
            )
        return self._executors[session_id]

    def new_token(self, session_id: str) -> CancelToken:
        token = CancelToken()
        self._tokens[session_id] = token
        return token

    def cancel(self, session_id: str) -> bool:
        token = self._tokens.get(session_id)
        if token is None:
            return False
        token.cancel()
        return True


_service: Optional[AgentService] = None


def get_service() -> AgentService:
    global _service
    if _service is None:
        _service = AgentService(Path(PROJECT_ROOT))
    return _service
