"""
Configuration settings for the Parliament Sync Service
"""

import os
import logging
from dotenv import load_dotenv

from models.enums import ParliamentFlowStatus

load_dotenv()

logger = logging.getLogger(__name__)


def _flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


def _list(name: str, default: str = "") -> list:
    return [item.strip() for item in os.getenv(name, default).split(",") if item.strip()]


# Environment configuration
ENV = os.getenv("ENV", "PROD")  # PROD or QA
DATABASE_URL = os.getenv("DATABASE_URL")
PORT = int(os.getenv("PORT", 8080))

# Parliament API
PARLIAMENT_API_URL = os.getenv("PARLIAMENT_API_URL", "https://ws-acc.vlpar.be/")
PARLIAMENT_API_CLIENT_ID = os.getenv("PARLIAMENT_API_CLIENT_ID")
PARLIAMENT_API_CLIENT_SECRET = os.getenv("PARLIAMENT_API_CLIENT_SECRET")
PARLIAMENT_API_TIMEOUT = float(os.getenv("PARLIAMENT_API_TIMEOUT", 60))

# Access token cache (seconds)
TOKEN_EXPIRY_MARGIN = int(os.getenv("TOKEN_EXPIRY_MARGIN", 30))
TOKEN_ERROR_EXPIRE_TIME = int(os.getenv("TOKEN_ERROR_EXPIRE_TIME", 60))

# Background schedules (seconds)
STATUS_POLLING_INTERVAL = int(os.getenv("STATUS_POLLING_INTERVAL", 24 * 60 * 60))
INCOMING_POLLING_INTERVAL = int(os.getenv("INCOMING_POLLING_INTERVAL", 24 * 60 * 60))
JOB_POLLING_INTERVAL = int(os.getenv("JOB_POLLING_INTERVAL", 60))
SUBMITTED_SYNC_SINCE_DAYS = int(os.getenv("SUBMITTED_SYNC_SINCE_DAYS", 7))

# Wait for the store's caches to settle before a job is marked successful
JOB_SETTLE_DELAY = float(os.getenv("JOB_SETTLE_DELAY", 3))

# File storage
SHARE_DIRECTORY = os.getenv("SHARE_DIRECTORY", "/share")
DEBUG_DIRECTORY = os.getenv("DEBUG_DIRECTORY", "/debug")
MOCK_FILES_DIRECTORY = os.getenv("MOCK_FILES_DIRECTORY", "/app/files")

# Feature flags
ENABLE_SENDING_TO_PARLIAMENT_API = _flag("ENABLE_SENDING_TO_PARLIAMENT_API", "true")
ENABLE_ALWAYS_CREATE_PARLIAMENT_FLOW = _flag("ENABLE_ALWAYS_CREATE_PARLIAMENT_FLOW")
ENABLE_MOCK_RECEIVED_NOTIFICATIONS = _flag("ENABLE_MOCK_RECEIVED_NOTIFICATIONS")
ENABLE_MOCK_INCOMING_FLOWS = _flag("ENABLE_MOCK_INCOMING_FLOWS")
ENABLE_DEBUG_FILE_WRITING = _flag("ENABLE_DEBUG_FILE_WRITING")

# E-mail via Resend
RESEND_API_KEY = os.getenv("RESEND_API_KEY")
FROM_EMAIL = os.getenv("FROM_EMAIL")
NOTIFICATION_EMAILS = _list("NOTIFICATION_EMAILS")
ADMIN_ALERT_EMAILS = _list("ADMIN_ALERT_EMAILS")

# Status vocabulary of the parliament API, per local flow status it maps onto
PARLIAMENT_STATUS_MAPPING = {
    ParliamentFlowStatus.BEING_HANDLED: os.getenv(
        "PARLIAMENT_STATUS_BEING_HANDLED", "Ingediend voor behandeling in commissie"
    ),
}

# Flow statuses that are still waiting on the parliament
PENDING_FLOW_STATUSES = [
    ParliamentFlowStatus.INCOMPLETE,
    ParliamentFlowStatus.COMPLETE,
    ParliamentFlowStatus.ERROR,
]

# CORS settings
ALLOWED_ORIGINS = _list("ALLOWED_ORIGINS")


def validate_status_mapping(mapping: dict) -> None:
    """Reject an external status table that is empty, ambiguous or keyed on unknown statuses"""
    if not mapping:
        raise ValueError("PARLIAMENT_STATUS_MAPPING must not be empty")
    seen = set()
    for status, external in mapping.items():
        if not isinstance(status, ParliamentFlowStatus):
            raise ValueError(f"Unknown flow status in status mapping: {status!r}")
        if not external or not external.strip():
            raise ValueError(f"Empty external status for {status.value}")
        if external in seen:
            raise ValueError(f"External status {external!r} is mapped more than once")
        seen.add(external)


def validate_settings() -> None:
    """Validate required environment variables, called once at application startup"""
    logger.info(f"Environment: {ENV}")

    if not DATABASE_URL:
        raise ValueError("DATABASE_URL environment variable is required")
    if ENABLE_SENDING_TO_PARLIAMENT_API and not (PARLIAMENT_API_CLIENT_ID and PARLIAMENT_API_CLIENT_SECRET):
        raise ValueError("PARLIAMENT_API_CLIENT_ID and PARLIAMENT_API_CLIENT_SECRET are required when sending is enabled")
    if not RESEND_API_KEY:
        logger.warning("RESEND_API_KEY not set - notification e-mails will not be sent")
    if not ENABLE_SENDING_TO_PARLIAMENT_API:
        logger.warning("Sending to the parliament API is disabled")
    if ENABLE_MOCK_INCOMING_FLOWS:
        logger.warning(f"Incoming flows are mocked with the sample listing from {MOCK_FILES_DIRECTORY}")

    validate_status_mapping(PARLIAMENT_STATUS_MAPPING)
