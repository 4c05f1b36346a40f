"""
Error taxonomy of the synchronization engine
"""

from typing import Optional


class SyncError(Exception):
    """Base class for failures of one unit of work (a job, an incoming document, a status check)"""


class AuthenticationFailure(SyncError):
    """No access token could be obtained for the parliament API. Retryable."""

    def __init__(self, message: str = "Error getting access token for the parliament API"):
        super().__init__(message)


class RemoteSubmissionFailure(SyncError):
    """The parliament API refused a submission. Not retried automatically."""

    def __init__(self, status: int, message: Optional[str] = None):
        self.status = status
        self.remote_message = message
        super().__init__(
            f"Parliament API responded with status {status} and the following message: \"{message or ''}\""
        )


class TransientIOFailure(SyncError):
    """Network failure or timeout talking to the parliament API"""


class SubmissionPreconditionError(SyncError):
    """The case, its subcase or its files could not be resolved for submission"""
