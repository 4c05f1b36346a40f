"""
Enum definitions for the Parliament Sync Service
"""

from enum import Enum


class JobStatus(str, Enum):
    """
    Lifecycle of a send-to-parliament job.

    - SCHEDULED: Job persisted, waiting for the runner
    - BUSY: Job is being executed (at most one at a time)
    - SUCCESS: Submission was accepted by the parliament
    - FAILED: Submission failed, error message is stored on the job
    """
    SCHEDULED = "SCHEDULED"
    BUSY = "BUSY"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


class ParliamentFlowStatus(str, Enum):
    INCOMPLETE = "INCOMPLETE"
    COMPLETE = "COMPLETE"
    BEING_HANDLED = "BEING_HANDLED"
    RECEIVED = "RECEIVED"
    ERROR = "ERROR"


class RunnerState(str, Enum):
    IDLE = "IDLE"
    RUNNING = "RUNNING"


class DocumentType(str, Enum):
    DECREE = "DECREE"
    RESOLUTION = "RESOLUTION"
    MOTION = "MOTION"
    REFERRAL_SHEET = "REFERRAL_SHEET"
    ATTACHMENT = "ATTACHMENT"


class SubcaseType(str, Enum):
    FINAL_APPROVAL = "FINAL_APPROVAL"
    RATIFICATION = "RATIFICATION"


class AgendaItemType(str, Enum):
    NOTE = "NOTE"
    ANNOUNCEMENT = "ANNOUNCEMENT"


class AccessLevel(str, Enum):
    INTERNAL_GOVERNMENT = "INTERNAL_GOVERNMENT"
    PUBLIC = "PUBLIC"
