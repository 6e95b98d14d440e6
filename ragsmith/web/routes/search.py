"""Search routes."""

from fastapi import APIRouter, Depends
from starlette.concurrency import run_in_threadpool

from ...search import assemble_context, count_tokens
from ..schemas import SearchRequest, SearchResponse, SearchResult
from ..service import AgentService, get_service

router = APIRouter()


@router.post("/search", response_model=SearchResponse)
async def search(request: SearchRequest, svc: AgentService = Depends(get_service)):
    hits = await run_in_threadpool(svc.retriever.retrieve, request.query, request.top_k, request.top_n)
    max_tokens = request.max_tokens or int(svc.cfg.get("retrieval", {}).get("max_context_tokens", 10000))
    context = assemble_context(hits, max_tokens=max_tokens)

    results = [
        SearchResult(
            file_path=h.chunk.file_path,
            name=h.chunk.name,
            content_type=h.chunk.content_type,
            start_line=h.chunk.start_line,
            end_line=h.chunk.end_line,
            score=h.score,
            rerank_score=h.rerank_score,
            priority=h.priority,
        )
        for h in hits
    ]
    return SearchResponse(results=results, context=context, total_tokens=count_tokens(context) if context else 0)
