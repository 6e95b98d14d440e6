"""Indexing routes with SSE support."""

import asyncio
import json
import logging
from typing import Optional

from fastapi import APIRouter, Depends
from sse_starlette.sse import EventSourceResponse

from ...host import ProgressReporter
from ..schemas import FilesRequest, FilesResponse, IndexRequest
from ..service import AgentService, get_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/index")


class QueueProgress(ProgressReporter):
    """Forwards progress reports to an SSE event queue."""

    def __init__(self, queue: asyncio.Queue, stage: str, start: float, span: float) -> None:
        self.queue = queue
        self.stage = stage
        self.start = start
        self.span = span

    def report(self, message: Optional[str] = None, percent: Optional[float] = None) -> None:
        overall = None if percent is None else round(self.start + percent * self.span / 100.0, 1)
        self.queue.put_nowait({
            "event": "progress",
            "data": json.dumps({"stage": self.stage, "message": message, "percent": overall}),
        })


@router.post("")
async def build_indexes(request: IndexRequest, svc: AgentService = Depends(get_service)):
    """Build the chunk store and then the architecture index, streaming progress."""
    queue: asyncio.Queue = asyncio.Queue()
    chunk_span = 50.0 if request.architecture else 100.0

    async def run() -> None:
        try:
            result = await svc.indexer.index_workspace(
                request.include_globs, request.exclude_globs,
                progress=QueueProgress(queue, "chunks", 0.0, chunk_span),
            )
            entries = 0
            if request.architecture:
                index = await svc.architecture.build_index(
                    progress=QueueProgress(queue, "architecture", chunk_span, 100.0 - chunk_span)
                )
                entries = len(index)
            queue.put_nowait({"event": "done", "data": json.dumps({
                "chunks": len(result.chunks),
                "files_indexed": result.files_indexed,
                "files_skipped": result.files_skipped,
                "planner_entries": entries,
            })})
        except Exception as e:
            logger.exception("Indexing failed")
            queue.put_nowait({"event": "error", "data": json.dumps({"error": str(e)})})

    async def event_generator():
        task = asyncio.create_task(run())
        try:
            while True:
                event = await queue.get()
                yield event
                if event["event"] in ("done", "error"):
                    break
        finally:
            if not task.done():
                task.cancel()

    return EventSourceResponse(event_generator())


@router.post("/files", response_model=FilesResponse)
async def update_files(request: FilesRequest, svc: AgentService = Depends(get_service)):
    """Re-index changed files in both indexes."""
    chunks = await svc.indexer.update_for_files(request.paths)
    index = await svc.architecture.update_for_files(request.paths)
    return FilesResponse(chunks=len(chunks), planner_entries=len(index))


@router.delete("/files", response_model=FilesResponse)
async def remove_files(request: FilesRequest, svc: AgentService = Depends(get_service)):
    """Drop deleted files from both indexes."""
    removed = sum(svc.indexer.remove_file(p) for p in request.paths)
    index = {}
    for path in request.paths:
        index = await svc.architecture.remove_file(path)
    return FilesResponse(chunks=removed, planner_entries=len(index))
