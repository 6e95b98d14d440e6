"""Structural plan edits that keep step numbers and executed indices consistent."""

from __future__ import annotations

from typing import Any, Dict, Set

from ..planning.models import Plan, Step

_UPDATABLE = ("action", "thought", "ui_text", "tool", "args", "tool_calls", "files_to_edit", "notes")


def insert_step(plan: Plan, executed: Set[int], index: int, step: Step) -> Set[int]:
    """Insert step before position index (clamped). Returns the shifted executed set."""
    index = min(max(index, 0), len(plan.steps))
    plan.steps.insert(index, step)
    plan.renumber()
    return {i + 1 if i >= index else i for i in executed}


def delete_step(plan: Plan, executed: Set[int], index: int) -> Set[int]:
    if not 0 <= index < len(plan.steps):
        raise IndexError(f"Step index out of range: {index}")
    del plan.steps[index]
    plan.renumber()
    return {i - 1 if i > index else i for i in executed if i != index}


def update_step(plan: Plan, executed: Set[int], index: int, fields: Dict[str, Any]) -> Set[int]:
    """Replace step fields in place; the step number is kept and the step counts as not executed."""
    if not 0 <= index < len(plan.steps):
        raise IndexError(f"Step index out of range: {index}")
    patched = Step.from_dict({**plan.steps[index].to_dict(), **{k: v for k, v in fields.items() if k in _UPDATABLE}})
    patched.step = index + 1
    plan.steps[index] = patched
    return {i for i in executed if i != index}
