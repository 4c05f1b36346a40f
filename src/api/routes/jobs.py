"""
Send-to-parliament job API routes
"""

import logging
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException

from models.job import JobContext, JobCreateRequest, JobResponse
from services.jobs_service import JobQueue, JobRunner, get_job_queue, get_job_runner

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("", status_code=201, response_model=JobResponse)
async def create_job(
    request: JobCreateRequest,
    background_tasks: BackgroundTasks,
    job_queue: JobQueue = Depends(get_job_queue),
    job_runner: JobRunner = Depends(get_job_runner),
):
    """Schedule sending the pieces of an agenda item's case to the parliament"""
    if not request.pieces:
        raise HTTPException(status_code=400, detail="At least one piece must be sent to the parliament")

    context = JobContext(
        agendaitem_id=request.agendaitem,
        piece_ids=request.pieces,
        comment=request.comment,
        user_id=request.user,
        is_complete=request.is_complete,
    )
    job = await job_queue.submit(context)

    # Kick the runner; it returns immediately when a drain is already going on
    background_tasks.add_task(job_runner.run)
    return JobResponse.from_job(job)


@router.get("/{job_id}", response_model=JobResponse)
async def get_job(
    job_id: str,
    job_queue: JobQueue = Depends(get_job_queue),
):
    """Status of a job, with the error message when it failed"""
    job = await job_queue.get(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail=f"Could not find job {job_id}")
    return JobResponse.from_job(job)
