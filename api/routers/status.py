import logging
import uuid

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel

logger = logging.getLogger(__name__)
router = APIRouter()

MAX_WAIT_S = 10.0


def _job_id(job_id: str | None) -> str:
    if not job_id:
        raise HTTPException(400, "Missing jobId")
    try:
        return str(uuid.UUID(job_id))
    except ValueError:
        raise HTTPException(400, "Invalid jobId")


@router.get("/job-result")
def get_job_result(request: Request, jobId: str | None = None):
    """Terminal record for a job, or pending while it is still running."""
    job_id = _job_id(jobId)
    raw = request.app.state.results.read_raw(job_id)
    if raw is None:
        return JSONResponse({"status": "pending"}, status_code=202)
    return Response(content=raw, media_type="application/json")


class ProgressResponse(BaseModel):
    currentFrame: int
    totalFrames: int


@router.get("/progress", response_model=ProgressResponse)
def get_progress(request: Request, jobId: str | None = None):
    job_id = _job_id(jobId)
    record = request.app.state.tracker.read(job_id)
    if record is None:
        raise HTTPException(404, "No progress found")
    return ProgressResponse(currentFrame=record.current, totalFrames=record.total)


@router.get("/jobs/{job_id}")
def get_job(request: Request, job_id: str, since: int = -1, wait: float = 0.0):
    """Job state from the in-memory registry.

    With `wait` > 0 this long-polls until the job changes past version
    `since`; running out of time reports an unknown status, not a failure.
    """
    job_id = _job_id(job_id)
    registry = request.app.state.registry
    current = registry.snapshot(job_id)
    if current is None:
        raise HTTPException(404, "Job not found")

    if wait <= 0:
        return current

    snapshot = registry.wait(job_id, since_version=since, timeout=min(wait, MAX_WAIT_S))
    if snapshot is None:
        return {"jobId": job_id, "status": "unknown"}
    return snapshot
