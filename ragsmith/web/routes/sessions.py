"""Planning and execution routes, one Session per conversation."""

import asyncio
import json
import logging

from fastapi import APIRouter, Depends, HTTPException
from sse_starlette.sse import EventSourceResponse

from ...errors import OperationCancelled, ProviderError, StructuralError
from ...planning import Plan, Step
from ...session import Session
from ..schemas import (
    ExecuteAllResponse,
    ExecuteStepResponse,
    PlanRequest,
    PlanResponse,
    SessionResponse,
    StepInsertRequest,
    StepUpdate,
)
from ..service import AgentService, get_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sessions")


def plan_response(session: Session) -> PlanResponse:
    plan = session.plan or Plan()
    return PlanResponse(steps=[s.to_dict() for s in plan.steps], executed=session.completed_indices())


def _plan_kwargs(session: Session, request: PlanRequest) -> dict:
    if request.revise and session.plan is not None:
        return {"previous_plan": session.plan, "completed_step_indices": session.completed_indices()}
    return {}


@router.post("", response_model=SessionResponse)
def create_session(svc: AgentService = Depends(get_service)):
    return SessionResponse(session_id=svc.create_session().id)


@router.get("/{session_id}", response_model=SessionResponse)
def get_session(session_id: str, svc: AgentService = Depends(get_service)):
    session = svc.get_session(session_id)
    return SessionResponse(
        session_id=session.id,
        plan=plan_response(session) if session.plan else None,
        execution_log=[r.to_dict() for r in session.execution_log],
        memory=session.memory,
        changed_files=sorted(session.changed_files),
    )


@router.post("/{session_id}/cancel")
def cancel(session_id: str, svc: AgentService = Depends(get_service)):
    svc.get_session(session_id)
    return {"cancelled": svc.cancel(session_id)}


@router.post("/{session_id}/plan", response_model=PlanResponse)
def create_plan(session_id: str, request: PlanRequest, svc: AgentService = Depends(get_service)):
    session = svc.get_session(session_id)
    token = svc.new_token(session_id)
    try:
        svc.planner.run_planner(session, request.query, cancel_token=token, **_plan_kwargs(session, request))
    except OperationCancelled:
        raise HTTPException(status_code=409, detail="Planning cancelled")
    return plan_response(session)


@router.post("/{session_id}/plan/stream")
async def stream_plan(session_id: str, request: PlanRequest, svc: AgentService = Depends(get_service)):
    """Stream each step's ui_text as it is generated, then the validated plan."""
    session = svc.get_session(session_id)
    token = svc.new_token(session_id)
    kwargs = _plan_kwargs(session, request)
    loop = asyncio.get_running_loop()
    queue: asyncio.Queue = asyncio.Queue()

    def on_ui_text(step, text):
        event = {"event": "ui_text", "data": json.dumps({"step": step, "text": text})}
        loop.call_soon_threadsafe(queue.put_nowait, event)

    def run():
        try:
            svc.planner.run_planner(
                session, request.query, on_partial_ui_text=on_ui_text, cancel_token=token, **kwargs
            )
            event = {"event": "plan", "data": plan_response(session).model_dump_json()}
        except OperationCancelled:
            event = {"event": "cancelled", "data": "{}"}
        except (StructuralError, ProviderError) as e:
            event = {"event": "error", "data": json.dumps({"error": str(e), "kind": type(e).__name__})}
        loop.call_soon_threadsafe(queue.put_nowait, event)

    async def event_generator():
        task = asyncio.create_task(asyncio.to_thread(run))
        try:
            while True:
                event = await queue.get()
                yield event
                if event["event"] in ("plan", "cancelled", "error"):
                    break
        finally:
            if not task.done():
                token.cancel()
            await task

    return EventSourceResponse(event_generator())


@router.post("/{session_id}/steps/{index}/execute", response_model=ExecuteStepResponse)
def execute_step(session_id: str, index: int, svc: AgentService = Depends(get_service)):
    executor = svc.executor(session_id)
    token = svc.new_token(session_id)
    try:
        result = executor.execute_step(index, cancel_token=token)
    except OperationCancelled:
        raise HTTPException(status_code=409, detail="Execution cancelled")
    record = svc.get_session(session_id).execution_log[-1]
    return ExecuteStepResponse(result=result, record=record.to_dict())


@router.post("/{session_id}/execute", response_model=ExecuteAllResponse)
def execute_all(session_id: str, svc: AgentService = Depends(get_service)):
    executor = svc.executor(session_id)
    records = executor.execute_all(cancel_token=svc.new_token(session_id))
    return ExecuteAllResponse(records=[r.to_dict() for r in records], memory=executor.session.memory)


@router.post("/{session_id}/steps", response_model=PlanResponse)
def insert_step(session_id: str, request: StepInsertRequest, svc: AgentService = Depends(get_service)):
    executor = svc.executor(session_id)
    step = Step.from_dict(request.step.model_dump(exclude_none=True))
    executor.insert_step(request.index, step)
    return plan_response(executor.session)


@router.patch("/{session_id}/steps/{index}", response_model=PlanResponse)
def update_step(session_id: str, index: int, request: StepUpdate, svc: AgentService = Depends(get_service)):
    executor = svc.executor(session_id)
    executor.update_step(index, request.model_dump(exclude_unset=True))
    return plan_response(executor.session)


@router.delete("/{session_id}/steps/{index}", response_model=PlanResponse)
def delete_step(session_id: str, index: int, svc: AgentService = Depends(get_service)):
    executor = svc.executor(session_id)
    executor.delete_step(index)
    return plan_response(executor.session)
