"""
Parliament Sync Service
Keeps the case-management store and the parliament's intake API consistent:
outbound submissions, incoming documents and status follow-up
"""

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config import settings
from config.settings import ALLOWED_ORIGINS, validate_settings
from database.connection import init_database, close_database
from api.routes import health, jobs, sync
from services.jobs_service import get_job_runner
from services.parliament_client import get_parliament_client
from services.reconciliation_service import get_reconciliation_service
from services.scheduler import PeriodicTask, Scheduler
from services.status_sync_service import get_status_sync_service
from utils.error_handling import setup_error_handling

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def build_scheduler() -> Scheduler:
    status_sync = get_status_sync_service()
    reconciliation = get_reconciliation_service()
    job_runner = get_job_runner()
    return Scheduler([
        PeriodicTask(
            "sync_submitted_flows",
            settings.STATUS_POLLING_INTERVAL,
            lambda: status_sync.sync_submitted_flows(settings.SUBMITTED_SYNC_SINCE_DAYS),
        ),
        PeriodicTask(
            "sync_pending_flows",
            settings.STATUS_POLLING_INTERVAL,
            lambda: status_sync.sync_flows_by_status(settings.PENDING_FLOW_STATUSES),
        ),
        PeriodicTask(
            "sync_incoming_flows",
            settings.INCOMING_POLLING_INTERVAL,
            reconciliation.sync_incoming_flows,
        ),
        PeriodicTask(
            "run_jobs",
            settings.JOB_POLLING_INTERVAL,
            job_runner.run,
            run_immediately=True,
        ),
    ])


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager"""
    validate_settings()
    await init_database()

    # Jobs interrupted by a previous shutdown would block the queue forever
    await get_job_runner().recover()

    scheduler = build_scheduler()
    scheduler.start()
    yield
    await scheduler.stop()
    await get_parliament_client().close()
    await close_database()


# FastAPI app initialization
app = FastAPI(
    title="Parliament Sync Service",
    description="Synchronizes cases, documents and statuses with the parliament",
    version="1.0.0",
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)

# Setup centralized error handling
setup_error_handling(app)

# Include API routes
app.include_router(health.router, tags=["Health"])
app.include_router(jobs.router, prefix="/jobs", tags=["Jobs"])
app.include_router(sync.router, tags=["Sync"])

# FastAPI app instance is exported for use by uvicorn
# Server startup is handled by main.py at the project root
