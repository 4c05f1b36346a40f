"""
Outbound submission pipeline - sends a case with its pieces to the parliament
"""

import json
import logging
import random
from pathlib import Path
from typing import Any, Dict, List, Optional

from config import settings
from database.postgres_store import get_record_store
from models.case import DecisionmakingFlow, Subcase
from models.enums import ParliamentFlowStatus
from models.job import JobContext
from models.parliament import SubmissionResponse, SubmittedFile
from models.piece import Piece, PieceFile, PreviousSubmission
from services.file_storage import FileShare, get_file_share
from services.parliament_client import ParliamentClient, get_parliament_client
from services.payload_builder import build_submission_payload
from services.record_store import RecordStore
from utils.errors import SubmissionPreconditionError

logger = logging.getLogger(__name__)


def filter_redundant_files(pieces: List[Piece], submitted_pieces: List[Piece]) -> List[Piece]:
    """
    Drop unsigned PDFs that a signed version supersedes

    A piece's unsigned PDF is left out when the piece has a signed file, or
    when a signed file of the piece was submitted before. Pieces without any
    file left are dropped.
    """
    signed_before = {
        piece.piece_id for piece in submitted_pieces if any(file.is_signed for file in piece.files)
    }

    filtered = []
    for piece in pieces:
        files = piece.files
        if piece.piece_id in signed_before or any(file.is_signed for file in files):
            files = [file for file in files if not (file.is_pdf and not file.is_signed)]
        if files:
            filtered.append(piece.model_copy(update={"files": files}))
    return filtered


def _previous_version(file: PieceFile, previous: PreviousSubmission) -> Dict[str, Optional[str]]:
    if file.is_signed:
        file_id, external_id = previous.signed_file_id, previous.signed_file_external_id
    elif file.is_word:
        file_id, external_id = previous.word_file_id, previous.word_file_external_id
    else:
        file_id, external_id = previous.unsigned_file_id, previous.unsigned_file_external_id
    return {"previous_version_file_id": file_id, "previous_version_external_id": external_id}


def enrich_with_previous_submissions(
    pieces: List[Piece], previous_submissions: Dict[str, PreviousSubmission]
) -> List[Piece]:
    """Attach the ids the parliament knows the previous version of every file under"""
    enriched = []
    for piece in pieces:
        previous = previous_submissions.get(piece.piece_id)
        if previous is None:
            enriched.append(piece)
            continue
        files = [file.model_copy(update=_previous_version(file, previous)) for file in piece.files]
        enriched.append(piece.model_copy(update={"files": files}))
    return enriched


def mock_submission_response(pieces: List[Piece]) -> SubmissionResponse:
    """Successful response with random external ids, used when sending is disabled"""
    return SubmissionResponse(
        parliament_id=str(random.randint(100, 999)),
        files=[
            SubmittedFile(file_id=file.file_id, external_id=str(random.randint(1000, 9999)))
            for piece in pieces
            for file in piece.files
        ],
        mocked=True,
    )


class SubmissionService:
    def __init__(
        self,
        store: RecordStore,
        client: ParliamentClient,
        file_share: FileShare,
        sending_enabled: bool = settings.ENABLE_SENDING_TO_PARLIAMENT_API,
        always_create_flow: bool = settings.ENABLE_ALWAYS_CREATE_PARLIAMENT_FLOW,
        debug_directory: Optional[str] = settings.DEBUG_DIRECTORY if settings.ENABLE_DEBUG_FILE_WRITING else None,
    ):
        self.store = store
        self.client = client
        self.file_share = file_share
        self.sending_enabled = sending_enabled
        self.always_create_flow = always_create_flow
        self.debug_directory = Path(debug_directory) if debug_directory else None

    async def execute(self, context: JobContext):
        await self.submit(
            context.agendaitem_id,
            context.piece_ids,
            context.comment,
            context.user_id,
            context.is_complete,
        )

    async def submit(
        self,
        agendaitem_id: str,
        piece_ids: List[str],
        comment: Optional[str],
        user_id: str,
        is_complete: bool,
    ):
        """
        Send the pieces of the agenda item's case to the parliament and record the submission

        Raises:
            SubmissionPreconditionError: when the case, its subcase or its files can't be resolved
            RemoteSubmissionFailure: when the parliament refuses the document
        """
        decisionmaking_flow_id = await self.store.get_decisionmaking_flow_for_agendaitem(agendaitem_id)
        flow = await self.store.get_decisionmaking_flow(decisionmaking_flow_id) if decisionmaking_flow_id else None
        if flow is None:
            raise SubmissionPreconditionError(f"Could not find decisionmaking flow for agenda item {agendaitem_id}")

        subcase = await self.store.get_latest_subcase(flow.decisionmaking_flow_id)
        if subcase is None:
            raise SubmissionPreconditionError(
                f"Could not find a subcase for decisionmaking flow {flow.decisionmaking_flow_id}"
            )

        pieces = await self.store.get_piece_metadata(piece_ids)
        if not pieces:
            raise SubmissionPreconditionError("None of the requested pieces have files to send")

        submitted_pieces = await self.store.get_submitted_pieces(piece_ids)
        pieces = filter_redundant_files(pieces, submitted_pieces)
        if not pieces:
            raise SubmissionPreconditionError("All files of the requested pieces were already sent")

        if flow.parliament_flow_id:
            previous = await self.store.get_previous_submissions(
                flow.parliament_flow_id, [piece.piece_id for piece in pieces]
            )
            pieces = enrich_with_previous_submissions(pieces, previous)

        user = await self.store.get_user(user_id)
        contact = user.contact if user else {"name": "", "email": ""}
        submitter = await self.store.get_submitter_for_subcase(subcase.subcase_id)

        try:
            payload = build_submission_payload(
                flow, pieces, comment, contact, subcase, submitter, self.file_share.read_base64
            )
        except Exception as e:
            raise SubmissionPreconditionError(f"An error occurred while creating the payload: \"{e}\"") from e
        self._write_debug_file("payload.json", payload)

        if self.sending_enabled:
            response = await self.client.submit(payload)
        elif self.always_create_flow:
            logger.info("Sending to the parliament API is disabled, mocking a successful response")
            response = mock_submission_response(pieces)
        else:
            logger.info(f"Sending to the parliament API is disabled, not sending {flow.decisionmaking_flow_id}")
            return

        self._write_debug_file("response.json", response.model_dump(by_alias=True))
        await self.record_submission(flow, subcase, pieces, response, user_id, comment, is_complete)

    async def record_submission(
        self,
        flow: DecisionmakingFlow,
        subcase: Subcase,
        pieces: List[Piece],
        response: SubmissionResponse,
        user_id: str,
        comment: Optional[str],
        is_complete: bool,
    ):
        """Register the accepted submission: flow, subcase, activity, ledger rows and status"""
        external_ids = {file.file_id: file.external_id for file in response.files}

        submitted = []
        for piece in pieces:
            files = [
                file.model_copy(update={"external_id": external_ids[file.file_id]})
                for file in piece.files
                if file.file_id in external_ids
            ]
            if files:
                submitted.append(piece.model_copy(update={"files": files}))
            else:
                logger.warning(f"The parliament returned no file ids for piece {piece.piece_id}")

        parliament_flow = await self.store.get_parliament_flow_for_case(flow.case_id)
        if parliament_flow is None:
            parliament_flow = await self.store.create_parliament_flow(response.parliament_id, flow.case_id)
        elif parliament_flow.parliament_id != response.parliament_id:
            logger.info(
                f"Parliament id of flow {parliament_flow.parliament_flow_id} changed "
                f"from {parliament_flow.parliament_id} to {response.parliament_id}"
            )
            await self.store.update_parliament_id(parliament_flow.parliament_flow_id, response.parliament_id)

        parliament_subcase = await self.store.get_open_parliament_subcase(parliament_flow.parliament_flow_id)
        if parliament_subcase is None:
            parliament_subcase = await self.store.create_parliament_subcase(parliament_flow.parliament_flow_id)

        activity_id = await self.store.create_submission_activity(
            parliament_subcase.parliament_subcase_id,
            [piece.piece_id for piece in submitted],
            user_id,
            comment,
        )
        for piece in submitted:
            await self.store.create_submitted_piece(activity_id, piece)

        status = ParliamentFlowStatus.COMPLETE if is_complete else ParliamentFlowStatus.INCOMPLETE
        await self.store.update_parliament_flow_status(parliament_flow.parliament_flow_id, status)
        logger.info(
            f"Submitted {len(submitted)} piece(s) of {subcase.title or flow.decisionmaking_flow_id} "
            f"as {response.parliament_id}, flow is {status.value}"
        )

    def _write_debug_file(self, name: str, content: Dict[str, Any]):
        if self.debug_directory is None:
            return
        self.debug_directory.mkdir(parents=True, exist_ok=True)
        (self.debug_directory / name).write_text(json.dumps(content, indent=2, default=str))


_submission_service: Optional[SubmissionService] = None


def get_submission_service() -> SubmissionService:
    """Get the global submission service instance"""
    global _submission_service
    if _submission_service is None:
        _submission_service = SubmissionService(get_record_store(), get_parliament_client(), get_file_share())
    return _submission_service
