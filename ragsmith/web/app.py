"""Main FastAPI application."""

import logging
import os

from fastapi import FastAPI, APIRouter, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ..errors import OperationCancelled, ProviderError, StructuralError
from .routes import indexing, search, sessions

logging.basicConfig(
    level=os.getenv("RAGSMITH_LOG_LEVEL", "INFO"),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(title="ragsmith")

# Setup CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

api_router = APIRouter(prefix="/api")

api_router.include_router(indexing.router)
api_router.include_router(search.router)
api_router.include_router(sessions.router)

app.include_router(api_router)


@app.exception_handler(StructuralError)
async def structural_error_handler(request: Request, exc: StructuralError):
    return JSONResponse(status_code=422, content={"detail": str(exc)})


@app.exception_handler(ProviderError)
async def provider_error_handler(request: Request, exc: ProviderError):
    return JSONResponse(status_code=502, content={"detail": str(exc)})


@app.exception_handler(OperationCancelled)
async def cancelled_handler(request: Request, exc: OperationCancelled):
    return JSONResponse(status_code=409, content={"detail": "Operation cancelled"})


@app.exception_handler(IndexError)
async def step_index_handler(request: Request, exc: IndexError):
    return JSONResponse(status_code=404, content={"detail": str(exc) or "Step not found"})
