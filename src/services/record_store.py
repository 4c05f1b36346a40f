"""
Record store interface - the case-management graph as seen by the sync engine
"""

from abc import ABC, abstractmethod
from typing import Dict, List, NamedTuple, Optional

from models.case import DecisionmakingFlow, Subcase, Submitter, User
from models.enums import JobStatus, ParliamentFlowStatus
from models.job import Job
from models.parliament import (
    IncomingDocument, ParliamentFlow, ParliamentSubcase, RetrievedFile, RetrievedPiece,
)
from models.piece import Piece, PreviousSubmission


class CreatedCase(NamedTuple):
    case_id: str
    decisionmaking_flow_id: str
    subcase_id: str
    parliament_flow_id: str
    parliament_subcase_id: str


class RecordStore(ABC):
    """
    Read/write access to cases, flows, subcases, pieces, files, activities and jobs.

    No transaction spans several calls. Each ingestion write is all or nothing,
    and the retrieval ledger tells which follow-up steps are still due.
    """

    # Jobs

    @abstractmethod
    async def insert_job(self, job: Job) -> None:
        """Persist a new job with its context."""

    @abstractmethod
    async def get_job(self, job_id: str) -> Optional[Job]:
        """Job by id, or None."""

    @abstractmethod
    async def get_next_scheduled_job(self) -> Optional[Job]:
        """Oldest SCHEDULED job, or None while any job is BUSY."""

    @abstractmethod
    async def update_job_status(
        self, job_id: str, status: JobStatus, error_message: Optional[str] = None
    ) -> None:
        """Set status (and error message) and bump the modified timestamp."""

    @abstractmethod
    async def fail_busy_jobs(self) -> int:
        """Mark every BUSY job FAILED. Returns how many were changed."""

    # Case management

    @abstractmethod
    async def get_decisionmaking_flow_for_agendaitem(self, agendaitem_id: str) -> Optional[str]:
        """Id of the decisionmaking flow the agenda item belongs to."""

    @abstractmethod
    async def get_decisionmaking_flow(self, decisionmaking_flow_id: str) -> Optional[DecisionmakingFlow]:
        """Decisionmaking flow with its case and, when present, its parliament flow."""

    @abstractmethod
    async def get_latest_subcase(self, decisionmaking_flow_id: str) -> Optional[Subcase]:
        """Most recently created subcase of the flow."""

    @abstractmethod
    async def get_submitter_for_subcase(self, subcase_id: str) -> Optional[Submitter]:
        """Mandatee that submitted the subcase."""

    @abstractmethod
    async def get_user(self, user_id: str) -> Optional[User]:
        """User by id."""

    @abstractmethod
    async def get_piece_metadata(self, piece_ids: List[str]) -> List[Piece]:
        """Pieces with the files that were not submitted yet. Pieces without such files are left out."""

    @abstractmethod
    async def get_submitted_pieces(self, piece_ids: List[str]) -> List[Piece]:
        """Pieces with the files that were already submitted."""

    @abstractmethod
    async def get_previous_submissions(
        self, parliament_flow_id: str, piece_ids: List[str]
    ) -> Dict[str, PreviousSubmission]:
        """For every piece whose previous version was submitted in the flow, that submission."""

    # Parliament flows

    @abstractmethod
    async def get_parliament_flow_for_case(self, case_id: str) -> Optional[ParliamentFlow]:
        """Parliament flow handling the case."""

    @abstractmethod
    async def get_parliament_flow_by_parliament_id(self, parliament_id: str) -> Optional[ParliamentFlow]:
        """Parliament flow carrying the external case id."""

    @abstractmethod
    async def create_parliament_flow(
        self, parliament_id: str, case_id: str, status: Optional[ParliamentFlowStatus] = None
    ) -> ParliamentFlow:
        """New parliament flow for the case."""

    @abstractmethod
    async def get_open_parliament_subcase(self, parliament_flow_id: str) -> Optional[ParliamentSubcase]:
        """The flow's subcase that has not ended yet."""

    @abstractmethod
    async def create_parliament_subcase(self, parliament_flow_id: str) -> ParliamentSubcase:
        """New subcase under the flow."""

    @abstractmethod
    async def create_submission_activity(
        self,
        parliament_subcase_id: str,
        piece_ids: List[str],
        submitter_id: str,
        comment: Optional[str] = None,
    ) -> str:
        """New submission activity for the pieces. Returns its id."""

    @abstractmethod
    async def create_submitted_piece(self, activity_id: str, piece: Piece) -> str:
        """Ledger row with the external id of every submitted file of the piece."""

    @abstractmethod
    async def update_parliament_flow_status(
        self, parliament_flow_id: str, status: ParliamentFlowStatus
    ) -> None:
        """Set the flow's status."""

    @abstractmethod
    async def update_parliament_id(self, parliament_flow_id: str, parliament_id: str) -> None:
        """Set the flow's external case id."""

    @abstractmethod
    async def get_flows_by_status(self, statuses: List[ParliamentFlowStatus]) -> List[ParliamentFlow]:
        """Flows in any of the statuses."""

    @abstractmethod
    async def get_flows_by_parliament_ids(self, parliament_ids: List[str]) -> List[ParliamentFlow]:
        """Flows carrying any of the external case ids."""

    @abstractmethod
    async def replace_parliament_id(self, old_parliament_id: str, new_parliament_id: str) -> int:
        """Rewrite an external case id on every flow carrying it. Returns the number of flows changed."""

    # Ingestion

    @abstractmethod
    async def create_incoming_case(self, document: IncomingDocument) -> CreatedCase:
        """
        New case for a document the parliament started.

        Creates the case, its decisionmaking flow and subcase, and a RECEIVED
        parliament flow with an open subcase, all or nothing.
        """

    @abstractmethod
    async def create_subcase(self, decisionmaking_flow_id: str, document: IncomingDocument) -> str:
        """New subcase in an existing decisionmaking flow."""

    @abstractmethod
    async def is_external_file_processed(self, external_file_id: str) -> bool:
        """Whether a submitted or retrieved piece already records the external file id."""

    @abstractmethod
    async def file_exists(self, file_id: str) -> bool:
        """Whether the file is known locally."""

    @abstractmethod
    async def get_piece_for_file(self, file_id: str) -> Optional[str]:
        """Piece owning the file."""

    @abstractmethod
    async def piece_is_on_final_meeting(self, piece_id: str) -> bool:
        """Whether an approved decision on a finalized meeting covers the piece."""

    @abstractmethod
    async def create_retrieved_piece(
        self,
        parliament_subcase_id: str,
        title: str,
        document_type: Optional[str],
        access_level: Optional[str],
        files: List[RetrievedFile],
        derived_pdf: bool = False,
    ) -> str:
        """
        New document container and piece holding the files, with a ledger row per file.

        With derived_pdf the second file is recorded as a rendering of the first.
        Returns the piece id.
        """

    @abstractmethod
    async def replace_retrieved_file(
        self, old_file_id: str, piece_id: str, parliament_subcase_id: str, file: RetrievedFile
    ) -> Optional[str]:
        """
        Swap a local file for a retrieved one on the same piece and record the ledger row.

        Derivation links of the old file move to the new one. Returns the share
        uri of the old file's content.
        """

    @abstractmethod
    async def get_pending_retrievals(self, parliament_flow_id: str) -> List[RetrievedPiece]:
        """Ledger rows of the flow that still need a retrieval activity or an acknowledgement."""

    @abstractmethod
    async def create_retrieval_activity(
        self, parliament_subcase_id: str, piece_ids: List[str], subcase_id: Optional[str] = None
    ) -> str:
        """
        New retrieval activity for the pieces. Returns its id.

        The pieces' ledger rows point at the activity afterwards. With a subcase
        the pieces become part of it too.
        """

    @abstractmethod
    async def mark_retrievals_acknowledged(self, external_file_ids: List[str]) -> None:
        """Record that the parliament was told about the files."""
