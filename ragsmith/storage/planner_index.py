"""Planner index store (``planner_index.json``): absolute path -> summary."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Dict

from ..utils.file_utils import write_json_atomic

logger = logging.getLogger(__name__)

PLANNER_INDEX_FILE = "planner_index.json"


class PlannerIndexStore:
    def __init__(self, path: Path) -> None:
        self.path = path

    def exists(self) -> bool:
        return self.path.is_file()

    def load(self) -> Dict[str, str]:
        if not self.path.is_file():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            logger.warning(f"Corrupt planner index {self.path}: {e}")
            return {}
        return {str(k): str(v) for k, v in data.items() if isinstance(v, str)}

    def save(self, index: Dict[str, str]) -> None:
        write_json_atomic(self.path, dict(sorted(index.items())))
        logger.info(f"Saved planner index with {len(index)} entries to {self.path}")
