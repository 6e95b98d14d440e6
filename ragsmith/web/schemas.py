from pydantic import BaseModel, Field
from typing import Any, Dict, Optional, List


class IndexRequest(BaseModel):
    include_globs: Optional[List[str]] = None
    exclude_globs: Optional[List[str]] = None
    architecture: bool = True


class FilesRequest(BaseModel):
    paths: List[str]


class FilesResponse(BaseModel):
    chunks: int
    planner_entries: int


class SearchRequest(BaseModel):
    query: str
    top_k: Optional[int] = None
    top_n: Optional[int] = None
    max_tokens: Optional[int] = None


class SearchResult(BaseModel):
    file_path: str
    name: str
    content_type: str
    start_line: int
    end_line: int
    score: float
    rerank_score: Optional[float] = None
    priority: float


class SearchResponse(BaseModel):
    results: List[SearchResult]
    context: str
    total_tokens: int


class ToolCallModel(BaseModel):
    tool: str
    args: Dict[str, Any] = Field(default_factory=dict)


class StepModel(BaseModel):
    step: Optional[int] = None
    action: str
    thought: str = ""
    ui_text: Optional[str] = None
    tool: Optional[str] = None
    args: Optional[Dict[str, Any]] = None
    tool_calls: Optional[List[ToolCallModel]] = None
    files_to_edit: Optional[List[str]] = None
    notes: Optional[str] = None


class StepUpdate(BaseModel):
    action: Optional[str] = None
    thought: Optional[str] = None
    ui_text: Optional[str] = None
    tool: Optional[str] = None
    args: Optional[Dict[str, Any]] = None
    tool_calls: Optional[List[ToolCallModel]] = None
    files_to_edit: Optional[List[str]] = None
    notes: Optional[str] = None


class StepInsertRequest(BaseModel):
    index: int
    step: StepModel


class PlanRequest(BaseModel):
    query: str
    # keep the current plan and completed steps in the planner context
    revise: bool = False


class PlanResponse(BaseModel):
    steps: List[StepModel]
    executed: List[int] = Field(default_factory=list)


class ExecutionRecordModel(BaseModel):
    index: int
    label: str
    elapsed_ms: int
    result: Optional[str] = None
    error: Optional[str] = None


class ExecuteStepResponse(BaseModel):
    result: str
    record: ExecutionRecordModel


class ExecuteAllResponse(BaseModel):
    records: List[ExecutionRecordModel]
    memory: List[str]


class SessionResponse(BaseModel):
    session_id: str
    plan: Optional[PlanResponse] = None
    execution_log: List[ExecutionRecordModel] = Field(default_factory=list)
    memory: List[str] = Field(default_factory=list)
    changed_files: List[str] = Field(default_factory=list)
