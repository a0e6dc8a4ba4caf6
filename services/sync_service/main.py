"""Sync Service - FastAPI application."""

import asyncio
import logging
import os
import sys
from contextlib import asynccontextmanager
from typing import Dict, Optional
from uuid import UUID, uuid4

from fastapi import BackgroundTasks, FastAPI, HTTPException, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from services.sync_service.orchestrator import create_orchestrator
from shared.config import get_sync_settings
from shared.models import PipelineState, SyncRunResult

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)]
)

logger = logging.getLogger(__name__)

# One run at a time: runs share the mapping cache file
sync_lock = asyncio.Lock()
jobs: Dict[str, SyncRunResult] = {}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup and shutdown events."""
    logger.info("Sync Service starting up...")
    yield
    logger.info("Sync Service shutting down...")


app = FastAPI(
    title="Sync Service",
    description="Synchronizes a Roam graph with Notion databases",
    version="0.1.0",
    lifespan=lifespan
)


@app.middleware("http")
async def error_handling_middleware(request: Request, call_next):
    """Global error handling middleware."""
    try:
        return await call_next(request)
    except Exception as exc:
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": "Internal server error",
                "detail": str(exc)
            }
        )


@app.get("/health", status_code=status.HTTP_200_OK)
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "service": "sync_service",
        "version": "0.1.0",
        "sync_running": sync_lock.locked()
    }


class SyncExecuteRequest(BaseModel):
    """Request model for sync execution."""
    job_id: Optional[str] = None


class SyncExecuteResponse(BaseModel):
    """Response model for sync execution."""
    job_id: str
    status: str
    summary: Optional[dict] = None
    error: Optional[str] = None


class SyncStatusResponse(BaseModel):
    """Response model for sync status."""
    job_id: str
    status: str
    error_kind: Optional[str] = None
    error: Optional[str] = None
    failed_stage: Optional[str] = None
    summary: dict


async def run_sync_job(job_id: str) -> None:
    """
    Run a sync in the background and record its result.

    The caller must hold sync_lock; it is released here once the run ends.
    """
    try:
        orchestrator = create_orchestrator(get_sync_settings())
        try:
            jobs[job_id] = await orchestrator.execute_sync(job_id)
        finally:
            await orchestrator.aclose()
    except Exception as e:
        logger.error(f"Sync job {job_id} failed: {e}", exc_info=True)
        jobs[job_id] = SyncRunResult(
            job_id=job_id,
            state=PipelineState.ABORTED,
            error_kind=getattr(e, "kind", "unexpected_error"),
            error=str(e),
            failed_stage=PipelineState.INIT
        )
    finally:
        sync_lock.release()


@app.post("/internal/sync/execute", response_model=SyncExecuteResponse, status_code=status.HTTP_202_ACCEPTED)
async def execute_sync(background_tasks: BackgroundTasks, request: Optional[SyncExecuteRequest] = None):
    """
    Queue a sync run and return immediately with its job_id.

    Settings come from the ROAM_API_* environment. Poll
    /internal/sync/status/{job_id} for the outcome.

    Raises:
        HTTPException: 400 for a malformed job_id or invalid configuration,
            409 while another run is in progress
    """
    if request is not None and request.job_id:
        try:
            job_id = str(UUID(request.job_id))
        except ValueError:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Invalid job_id format"
            )
    else:
        job_id = str(uuid4())

    if sync_lock.locked():
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="A sync is already running"
        )

    try:
        get_sync_settings()
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    # Released by run_sync_job
    await sync_lock.acquire()
    logger.info(f"Received sync execute request for job {job_id}")
    jobs[job_id] = SyncRunResult(job_id=job_id)
    background_tasks.add_task(run_sync_job, job_id)

    return SyncExecuteResponse(
        job_id=job_id,
        status="queued",
        summary={"message": "Sync job queued successfully"}
    )


@app.get("/internal/sync/status/{job_id}", response_model=SyncStatusResponse, status_code=status.HTTP_200_OK)
async def get_sync_status(job_id: str):
    """
    Get the status of a sync job.

    Raises:
        HTTPException: If the job is unknown
    """
    result = jobs.get(job_id)
    if result is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Sync job {job_id} not found"
        )

    data = result.to_dict()
    return SyncStatusResponse(
        job_id=data["job_id"],
        status=data["status"],
        error_kind=data["error_kind"],
        error=data["error"],
        failed_stage=data["failed_stage"],
        summary=data["summary"]
    )


if __name__ == "__main__":
    import uvicorn

    port = int(os.getenv("SYNC_SERVICE_PORT", 8005))
    uvicorn.run(app, host="0.0.0.0", port=port)
