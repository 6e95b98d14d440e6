"""Factory for the persisted stores under the project's state directory."""

from __future__ import annotations

from pathlib import Path
from typing import Dict

from ..config.manager import STATE_DIR_NAME
from .base import ChunkStore
from .json_store import CHUNKS_FILE, JsonChunkStore
from .planner_index import PLANNER_INDEX_FILE, PlannerIndexStore


def state_dir(cfg: Dict, repo_path: Path) -> Path:
    return repo_path / cfg.get("state_dir", STATE_DIR_NAME)


def make_chunk_store(cfg: Dict, repo_path: Path) -> ChunkStore:
    return JsonChunkStore(state_dir(cfg, repo_path) / CHUNKS_FILE)


def make_planner_index_store(cfg: Dict, repo_path: Path) -> PlannerIndexStore:
    return PlannerIndexStore(state_dir(cfg, repo_path) / PLANNER_INDEX_FILE)
