"""Persisted stores (flat JSON files)."""

from .base import ChunkStore
from .json_store import JsonChunkStore
from .planner_index import PlannerIndexStore
from .factory import make_chunk_store, make_planner_index_store, state_dir

__all__ = [
    "ChunkStore",
    "JsonChunkStore",
    "PlannerIndexStore",
    "make_chunk_store",
    "make_planner_index_store",
    "state_dir",
]
