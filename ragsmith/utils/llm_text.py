"""Helpers for pulling JSON and code out of raw model output."""

from __future__ import annotations

import json
import re
from typing import Any, Dict, Optional

_JSON_FENCE = re.compile(r"```json\s*", re.IGNORECASE)
_CODE_FENCE = re.compile(r"```[\w+#.-]*[ \t]*\n(.*?)```", re.DOTALL)


def clean_llm_json_block(text: str) -> str:
    """Return the JSON payload of a model reply.

    Prefers a ```json fence (up to the last closing fence), then the span from
    the first '{' to the last '}', else the trimmed text.
    """
    m = _JSON_FENCE.search(text)
    if m:
        body = text[m.end():]
        end = body.rfind("```")
        return (body[:end] if end != -1 else body).strip()
    start = text.find("{")
    end = text.rfind("}")
    if start != -1 and end > start:
        return text[start:end + 1].strip()
    return text.strip()


def clean_llm_code_block(text: str) -> str:
    """Strip a leading ```lang line and a trailing ``` fence."""
    out = text.strip()
    out = re.sub(r"^```[\w+#.-]*[ \t]*\n?", "", out)
    out = re.sub(r"\n?```\s*$", "", out)
    return out


def extract_only_code(text: str) -> str:
    """Body of the first fenced block, else the text with stray fences removed."""
    m = _CODE_FENCE.search(text)
    if m:
        return m.group(1).rstrip("\n")
    return clean_llm_code_block(text)


def parse_json_object(text: str) -> Optional[Dict[str, Any]]:
    """Parse the JSON object embedded in text, or None."""
    cleaned = clean_llm_json_block(text)
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError:
        return None
    return data if isinstance(data, dict) else None


def parse_summary(text: str) -> Optional[str]:
    """Read ``{"summary": "..."}`` from a model reply; fall back to the first line."""
    data = parse_json_object(text)
    if data is not None:
        summary = data.get("summary")
        if isinstance(summary, str) and summary.strip():
            return summary.strip()
        return None
    line = text.strip().splitlines()[0].strip() if text.strip() else ""
    if line and not line.startswith("{"):
        return line
    return None
