"""
HTTP API for workspace replication.

This module provides a small REST API over ReplicationService:
- Trigger a replication between two upstreams
- Read replication logs
- Create and list workspaces

Invariants:
    - Replication errors map to stable status codes and error codes
    - JSON request/response format

How to change safely:
    - Add endpoints, don't change existing response shapes
    - Keep the error mapping in sync with errors.py
"""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from ..errors import (
    InvalidIdentifierError,
    NoApplicableReplicatorError,
    NotFoundError,
    ReplicationConflictError,
    ReplicationError,
)
from ..main import ReplicationService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Workspace Replication"])


# --- Request/Response Models ---


class ReplicationRequest(BaseModel):
    """Request to replicate between two upstreams."""

    source: str = Field(..., description="Source upstream id, e.g. workspace:live")
    target: str = Field(..., description="Target upstream id, e.g. workspace:stage")


class HistoryEntryResponse(BaseModel):
    """One replication run."""

    recorded_seq: int
    start_time: str
    session_id: str
    end_time: str = ""
    missing_checked: int = 0
    missing_found: int = 0
    docs_read: int = 0
    docs_written: int = 0


class ReplicationLogResponse(BaseModel):
    """Replication log."""

    replication_id: str
    source_workspace_id: str
    target_workspace_id: str
    session_id: str | None = None
    source_last_seq: int = 0
    version: int = 0
    history: list[HistoryEntryResponse]


class WorkspaceCreateRequest(BaseModel):
    """Request to create a workspace."""

    workspace_id: str = Field(..., description="Workspace id ([A-Za-z0-9_-]+)")
    label: str | None = Field(None, description="Human-readable name")


class WorkspaceResponse(BaseModel):
    """Workspace."""

    workspace_id: str
    label: str
    created_at: int


# --- Dependencies ---


def get_service(request: Request) -> ReplicationService:
    """Get the replication service from app state."""
    return request.app.state.service


# --- Routes ---


@router.post("/replications", response_model=ReplicationLogResponse)
async def replicate(
    body: ReplicationRequest,
    service: ReplicationService = Depends(get_service),
) -> dict[str, Any]:
    """Replicate missing revisions from source to target."""
    log = await service.replicate(body.source, body.target)
    return log.to_dict()


@router.get("/replications", response_model=list[ReplicationLogResponse])
async def list_replications(
    service: ReplicationService = Depends(get_service),
) -> list[dict[str, Any]]:
    """List stored replication logs."""
    return [log.to_dict() for log in await service.list_logs()]


@router.get("/replications/{replication_id}", response_model=ReplicationLogResponse)
async def get_replication(
    replication_id: str,
    service: ReplicationService = Depends(get_service),
) -> dict[str, Any]:
    """Get a replication log by id."""
    log = await service.get_log(replication_id)
    return log.to_dict()


@router.get("/workspaces", response_model=list[WorkspaceResponse])
async def list_workspaces(
    service: ReplicationService = Depends(get_service),
) -> list[dict[str, Any]]:
    """List workspaces."""
    return [ws.to_dict() for ws in await service.list_workspaces()]


@router.post("/workspaces", response_model=WorkspaceResponse, status_code=201)
async def create_workspace(
    body: WorkspaceCreateRequest,
    service: ReplicationService = Depends(get_service),
) -> dict[str, Any]:
    """Create a workspace."""
    workspace = await service.create_workspace(body.workspace_id, label=body.label)
    return workspace.to_dict()


# --- App factory ---


def _status_for(error: ReplicationError) -> int:
    if isinstance(error, InvalidIdentifierError):
        return 400
    if isinstance(error, NotFoundError):
        return 404
    if isinstance(error, ReplicationConflictError):
        return 409
    if isinstance(error, NoApplicableReplicatorError):
        return 422
    return 500


def create_app(service: ReplicationService | None = None) -> FastAPI:
    """Create the FastAPI application.

    Args:
        service: Replication service (built from environment if omitted)
    """
    service = service or ReplicationService()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        await service.start()
        yield

    app = FastAPI(
        title="Workspace Replication",
        description="Replicates content revisions between workspaces on one site.",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.service = service

    @app.exception_handler(ReplicationError)
    async def replication_error_handler(request: Request, exc: ReplicationError) -> JSONResponse:
        status = _status_for(exc)
        if status >= 500:
            logger.error(f"HTTP handler error: {exc}", extra={"path": request.url.path})
        return JSONResponse(
            status_code=status,
            content={"error": exc.message, "error_code": exc.code, "details": exc.details},
        )

    app.include_router(router, prefix="/api/v1")

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "healthy", "service": "wsrepl"}

    return app
