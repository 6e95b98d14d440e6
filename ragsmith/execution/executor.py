"""Sequential plan execution with per-step logging and a completion recap."""

from __future__ import annotations

import logging
import re
import time
from typing import Any, Dict, List, Optional

from ..errors import OperationCancelled, ProviderError, ToolExecutionError, ToolResolutionError
from ..host import MessageChannel, Workspace
from ..llm.base import CancelToken, ModelProvider
from ..planning.models import Plan, Step, ToolCall
from ..search.retrieval import Retriever
from ..session import ExecutionRecord, Session
from ..storage import PlannerIndexStore
from ..tools import CustomToolContext, ToolRegistry
from . import mutations
from .context import ToolContext
from .handlers import BUILTIN_HANDLERS
from .tool_selection import ToolSelector, missing_required

logger = logging.getLogger(__name__)

COMPLETION_SUMMARY_PROMPT = """Summarize in 2-4 sentences what was done for the user's plan.
Mention the files that changed and anything that failed. Plain text only.

EXECUTION LOG:
{log}

CHANGED FILES:
{files}"""

_HANDLED_TOOL_ERRORS = (ToolExecutionError, OSError, re.error, ValueError, TypeError)


def _log_line(record: ExecutionRecord) -> str:
    if record.error:
        return f"- {record.label}: ERROR {record.error}"
    lines = (record.result or "").strip().splitlines()
    return f"- {record.label}: {lines[0] if lines else 'done'}"


class PlanExecutor:
    """Runs the steps of ``session.plan`` one at a time.

    Tool failures become result strings. A step whose tool cannot be resolved
    is logged with an error and skipped. ProviderError is recorded and then
    re-raised. OperationCancelled is re-raised without a record.
    """

    def __init__(
        self,
        workspace: Workspace,
        session: Session,
        registry: ToolRegistry,
        cfg: Dict[str, Any],
        provider: Optional[ModelProvider] = None,
        retriever: Optional[Retriever] = None,
        index_store: Optional[PlannerIndexStore] = None,
        channel: Optional[MessageChannel] = None,
    ) -> None:
        self.workspace = workspace
        self.session = session
        self.registry = registry
        self.cfg = cfg
        self.provider = provider
        self.retriever = retriever
        self.index_store = index_store
        self.channel = channel or MessageChannel()
        self.selector = ToolSelector(provider, registry)

    @property
    def plan(self) -> Plan:
        if self.session.plan is None:
            raise IndexError("Session has no plan")
        return self.session.plan

    def _step(self, index: int) -> Step:
        steps = self.plan.steps
        if not 0 <= index < len(steps):
            raise IndexError(f"Invalid step index: {index}")
        return steps[index]

    def _context(self, cancel_token: Optional[CancelToken]) -> ToolContext:
        return ToolContext(
            workspace=self.workspace,
            session=self.session,
            registry=self.registry,
            cfg=self.cfg,
            provider=self.provider,
            retriever=self.retriever,
            index_store=self.index_store,
            channel=self.channel,
            cancel_token=cancel_token,
        )

    def resolve_call(self, step: Step, cancel_token: Optional[CancelToken] = None) -> ToolCall:
        call = step.resolved_call()
        snippet = self.session.context_snippet()
        if call is None:
            return self.selector.select(step, snippet, cancel_token=cancel_token)
        if not self.registry.has(call.tool):
            logger.warning(f"Step {step.step} names unknown tool {call.tool!r}, selecting one")
            return self.selector.select(step, snippet, cancel_token=cancel_token, args=call.args)
        missing = missing_required(self.registry, call)
        if missing:
            logger.info(f"Step {step.step}: {call.tool} lacks {', '.join(missing)}, asking for args")
            return self.selector.select(step, snippet, preselected=call.tool, cancel_token=cancel_token, args=call.args)
        return call

    def dispatch(self, call: ToolCall, step: Step, ctx: ToolContext) -> str:
        handler = BUILTIN_HANDLERS.get(call.tool)
        try:
            if handler is not None:
                return handler(ctx, call.args, step)
        except _HANDLED_TOOL_ERRORS as e:
            logger.warning(f"{call.tool} failed on step {step.step}: {e}")
            return f"{call.tool} failed: {e}"
        if self.registry.is_custom(call.tool):
            try:
                return self.registry.run_custom(call.tool, call.args, CustomToolContext(self.workspace))
            except (OperationCancelled, ProviderError):
                raise
            except Exception as e:
                logger.exception(f"Custom tool {call.tool} raised")
                return f"Error: custom tool '{call.tool}' failed: {e}"
        return f"Unknown tool: {call.tool} (step: {step.ui_text or step.action})"

    def execute_step(self, index: int, cancel_token: Optional[CancelToken] = None) -> str:
        step = self._step(index)
        label = step.ui_text or step.action
        self.channel.post_message("step_started", {"index": index, "step": step.step, "label": label})
        started = time.perf_counter()
        error: Optional[str] = None
        try:
            call = self.resolve_call(step, cancel_token)
            logger.info(f"Step {step.step}: {call.tool}")
            result = self.dispatch(call, step, self._context(cancel_token))
        except ToolResolutionError as e:
            error = str(e)
            result = f"Step {step.step} skipped: {e}"
        except ProviderError as e:
            logger.error(f"Provider failed on step {step.step}: {e}")
            self._finish(index, label, started, None, str(e))
            raise

        self._finish(index, label, started, result, error)
        return result

    def _finish(self, index: int, label: str, started: float, result: Optional[str], error: Optional[str]) -> None:
        elapsed_ms = int((time.perf_counter() - started) * 1000)
        record = ExecutionRecord(index=index, label=label, elapsed_ms=elapsed_ms, result=result, error=error)
        self.session.execution_log.append(record)
        self.session.executed.add(index)
        self.session.note_output(result or f"error: {error}")
        self.channel.post_message("step_finished", record.to_dict())
        self.maybe_summarize()

    def execute_all(self, cancel_token: Optional[CancelToken] = None) -> List[ExecutionRecord]:
        """Run every not-yet-executed step in order.

        A ProviderError ends only its own step. Cancellation stops the loop;
        completed steps are kept.
        """
        first = len(self.session.execution_log)
        for index in range(len(self.plan.steps)):
            if index in self.session.executed:
                continue
            if cancel_token is not None and cancel_token.cancelled:
                logger.info("Execution cancelled")
                break
            try:
                self.execute_step(index, cancel_token)
            except ProviderError:
                continue
            except OperationCancelled:
                logger.info(f"Execution cancelled during step {index + 1}")
                break
        return self.session.execution_log[first:]

    def maybe_summarize(self) -> Optional[str]:
        """Append a recap to session memory once every step has run."""
        session = self.session
        if session.plan is None or session.summary_done or not session.plan.steps:
            return None
        if not set(range(len(session.plan.steps))) <= session.executed:
            return None
        session.summary_done = True

        log = "\n".join(_log_line(r) for r in session.execution_log)
        files = "\n".join(f"- {f}" for f in sorted(session.changed_files)) or "(none)"
        if self.provider is None:
            recap = f"Executed {len(session.plan.steps)} steps. Changed files: {', '.join(sorted(session.changed_files)) or 'none'}."
        else:
            try:
                recap = self.provider.generate_chat(
                    [{"role": "user", "content": COMPLETION_SUMMARY_PROMPT.format(log=log, files=files)}]
                )
            except ProviderError as e:
                logger.warning(f"Completion summary failed: {e}")
                return None
        if not recap or not recap.strip():
            return None
        recap = recap.strip()
        session.memory.append(recap)
        self.channel.post_message("summary", {"text": recap})
        return recap

    # ------------------------------------------------------------------
    # Plan mutation
    # ------------------------------------------------------------------

    def _plan_changed(self) -> None:
        self.session.summary_done = False
        self.channel.post_message("plan_updated", self.plan.to_dict())

    def insert_step(self, index: int, step: Step) -> Plan:
        self.session.executed = mutations.insert_step(self.plan, self.session.executed, index, step)
        self._plan_changed()
        return self.plan

    def delete_step(self, index: int) -> Plan:
        self.session.executed = mutations.delete_step(self.plan, self.session.executed, index)
        self._plan_changed()
        return self.plan

    def update_step(self, index: int, fields: Dict[str, Any]) -> Plan:
        self.session.executed = mutations.update_step(self.plan, self.session.executed, index, fields)
        self._plan_changed()
        return self.plan
