# mockups.py
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel

from mockup_service import JobStatusOut, MockupService, PipelineBusyError, service

# --- Configuration & Setup ---
logger = logging.getLogger(__name__)
router = APIRouter(prefix="/mockups", tags=["Mockups"])


# --- Pydantic Schemas ---

class StartRunResponse(BaseModel):
    job_id: str


class PendingCountResponse(BaseModel):
    pending: int


class CancelResponse(BaseModel):
    cancelled: bool


def get_mockup_service() -> MockupService:
    """FastAPI dependency returning the process-wide pipeline service."""
    return service


# --- API Endpoints ---

@router.post(
    "/generate",
    response_model=StartRunResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Start a mockup generation run",
)
async def start_generation(mockup_service: MockupService = Depends(get_mockup_service)):
    """
    Starts a background run that renders and measures templates for every
    variant still missing one. Returns immediately with the job id to poll.
    """
    try:
        job_id = await mockup_service.start_run()
    except PipelineBusyError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    return StartRunResponse(job_id=job_id)


@router.get("/status", response_model=Optional[JobStatusOut], summary="Get generation job status")
async def generation_status(
    job_id: Optional[str] = None,
    mockup_service: MockupService = Depends(get_mockup_service),
):
    """Status of `job_id`, or of the most recent run when omitted (null if none exists)."""
    job_status = await mockup_service.get_status(job_id)
    if job_status is None and job_id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Job {job_id} not found.")
    return job_status


@router.get("/pending", response_model=PendingCountResponse, summary="Count variants without a template")
async def pending_count(mockup_service: MockupService = Depends(get_mockup_service)):
    return PendingCountResponse(pending=await mockup_service.count_pending())


@router.post("/cancel", response_model=CancelResponse, summary="Cancel the active run")
async def cancel_generation(mockup_service: MockupService = Depends(get_mockup_service)):
    """The active run stops before its next product group."""
    return CancelResponse(cancelled=mockup_service.cancel_run())
