"""
Send-to-parliament job Pydantic models
"""

from typing import List, Optional
from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field, field_validator
from models.enums import JobStatus


class JobContext(BaseModel):
    """What a job has to submit. Never changes once the job is persisted."""
    model_config = ConfigDict(frozen=True)

    agendaitem_id: str
    piece_ids: List[str]
    comment: Optional[str] = None
    user_id: str
    is_complete: bool = False

    @field_validator('piece_ids')
    def validate_piece_ids(cls, v):
        if not v:
            raise ValueError('piece_ids cannot be empty')
        # keep the requested order, drop repeats
        return list(dict.fromkeys(v))


class Job(BaseModel):
    job_id: str
    status: JobStatus = JobStatus.SCHEDULED
    created_at: datetime
    modified_at: datetime
    error_message: Optional[str] = None
    context: JobContext


class JobCreateRequest(BaseModel):
    agendaitem: str = Field(..., description="Agenda item whose case is sent to parliament")
    pieces: List[str] = Field(..., description="Pieces to send")
    comment: Optional[str] = None
    is_complete: bool = Field(False, alias="isComplete")
    user: str = Field(..., description="User submitting the case")

    model_config = ConfigDict(populate_by_name=True)


class JobResponse(BaseModel):
    job_id: str
    status: JobStatus
    created_at: datetime
    modified_at: datetime
    error_message: Optional[str] = None
    agendaitem: str
    pieces: List[str]
    comment: Optional[str] = None
    is_complete: bool
    user: str

    @classmethod
    def from_job(cls, job: Job) -> "JobResponse":
        return cls(
            job_id=job.job_id,
            status=job.status,
            created_at=job.created_at,
            modified_at=job.modified_at,
            error_message=job.error_message,
            agendaitem=job.context.agendaitem_id,
            pieces=job.context.piece_ids,
            comment=job.context.comment,
            is_complete=job.context.is_complete,
            user=job.context.user_id,
        )
