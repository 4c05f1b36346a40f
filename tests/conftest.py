"""
pytest fixtures: an in-memory record store, a fake parliament client and a temporary file share
"""

import base64
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import pytest

from models.case import DecisionmakingFlow, GovernmentField, Subcase, Submitter, User
from models.enums import JobStatus, ParliamentFlowStatus
from models.job import Job
from models.parliament import (
    IncomingDocument,
    ParliamentFlow,
    ParliamentSubcase,
    RetrievedPiece,
    StatusHistory,
    SubmissionResponse,
    SubmittedFile,
    SubmittedFlowEntry,
)
from models.piece import Piece, PieceFile, PreviousSubmission
from services.file_storage import FileShare
from services.record_store import CreatedCase, RecordStore

BASE_TIME = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)

PDF = "application/pdf"
DOCX = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"


def _id() -> str:
    return str(uuid.uuid4())


class InMemoryRecordStore(RecordStore):
    """RecordStore keeping everything in dicts, with helpers to seed case data"""

    def __init__(self):
        self._tick = 0
        self.jobs: Dict[str, Job] = {}
        self.cases: Dict[str, Dict[str, Any]] = {}
        self.decisionmaking_flows: Dict[str, DecisionmakingFlow] = {}
        self.agendaitems: Dict[str, str] = {}
        self.subcases: Dict[str, Dict[str, Any]] = {}
        self.submitters: Dict[str, Submitter] = {}
        self.users: Dict[str, User] = {}
        self.pieces: Dict[str, Dict[str, Any]] = {}
        self.files: Dict[str, Dict[str, Any]] = {}
        self.final_pieces = set()
        self.subcase_pieces = set()
        self.parliament_flows: Dict[str, ParliamentFlow] = {}
        self.parliament_subcases: Dict[str, ParliamentSubcase] = {}
        self.submission_activities: Dict[str, Dict[str, Any]] = {}
        self.submitted_pieces: List[Dict[str, Any]] = []
        self.retrieval_activities: Dict[str, Dict[str, Any]] = {}
        self.retrieved_pieces: Dict[str, Dict[str, Any]] = {}

    def _now(self) -> datetime:
        # strictly increasing so "latest" is well defined
        self._tick += 1
        return BASE_TIME + timedelta(seconds=self._tick)

    # Seeding helpers

    def add_case(self, case_id="case-1", decisionmaking_flow_id="dmf-1", agendaitem_id="ai-1",
                 subcase_id="subcase-1", title="Ontwerpdecreet betreffende de ruimtelijke ordening"):
        self.cases[case_id] = {"title": title}
        self.decisionmaking_flows[decisionmaking_flow_id] = DecisionmakingFlow(
            decisionmaking_flow_id=decisionmaking_flow_id,
            case_id=case_id,
            alt_name=title,
            government_fields=[GovernmentField(uri="http://themis/field/1", label="Omgeving")],
        )
        self.agendaitems[agendaitem_id] = decisionmaking_flow_id
        self.subcases[subcase_id] = {
            "decisionmaking_flow_id": decisionmaking_flow_id, "title": title, "created_at": self._now(),
        }
        self.submitters[subcase_id] = Submitter(title="Vlaams minister", first_name="Jan", last_name="Peeters")
        self.users["user-1"] = User(user_id="user-1", first_name="An", family_name="Janssens",
                                    email="mailto:an.janssens@example.org")

    def add_piece(self, piece_id: str, name: Optional[str] = None, previous_piece_id: Optional[str] = None,
                  signed_copy_of: Optional[str] = None):
        self.pieces[piece_id] = {
            "name": name or piece_id,
            "created_at": self._now(),
            "document_type": "http://themis/document-type/decreet",
            "document_type_label": "Decreet",
            "access_level": "INTERNAL_GOVERNMENT",
            "previous_piece_id": previous_piece_id,
            "signed_copy_of": signed_copy_of,
        }

    def add_file(self, file_id: str, piece_id: str, extension: str, share_uri: Optional[str] = None,
                 source_file_id: Optional[str] = None):
        self.files[file_id] = {
            "piece_id": piece_id,
            "source_file_id": source_file_id,
            "file_name": f"{file_id}.{extension}",
            "format": PDF if extension == "pdf" else DOCX,
            "extension": extension,
            "size": 0,
            "share_uri": share_uri or f"share://{file_id}.{extension}",
        }

    def add_parliament_flow(self, parliament_id: str, case_id="case-1", decisionmaking_flow_id="dmf-1",
                            status=ParliamentFlowStatus.COMPLETE) -> ParliamentFlow:
        flow = ParliamentFlow(
            parliament_flow_id=_id(), parliament_id=parliament_id, status=status,
            case_id=case_id, decisionmaking_flow_id=decisionmaking_flow_id, opened_at=self._now(),
        )
        self.parliament_flows[flow.parliament_flow_id] = flow
        return flow

    def flow_for(self, parliament_id: str) -> Optional[ParliamentFlow]:
        return next((f for f in self.parliament_flows.values() if f.parliament_id == parliament_id), None)

    # Jobs

    async def insert_job(self, job: Job) -> None:
        self.jobs[job.job_id] = job

    async def get_job(self, job_id: str) -> Optional[Job]:
        return self.jobs.get(job_id)

    async def get_next_scheduled_job(self) -> Optional[Job]:
        if any(job.status == JobStatus.BUSY for job in self.jobs.values()):
            return None
        scheduled = [job for job in self.jobs.values() if job.status == JobStatus.SCHEDULED]
        return min(scheduled, key=lambda job: job.created_at) if scheduled else None

    async def update_job_status(self, job_id, status, error_message=None) -> None:
        job = self.jobs[job_id]
        self.jobs[job_id] = job.model_copy(update={
            "status": status,
            "modified_at": datetime.now(timezone.utc),
            "error_message": error_message if error_message is not None else job.error_message,
        })

    async def fail_busy_jobs(self) -> int:
        busy = [job_id for job_id, job in self.jobs.items() if job.status == JobStatus.BUSY]
        for job_id in busy:
            await self.update_job_status(job_id, JobStatus.FAILED, "Interrupted by a service restart")
        return len(busy)

    # Case management

    async def get_decisionmaking_flow_for_agendaitem(self, agendaitem_id):
        return self.agendaitems.get(agendaitem_id)

    async def get_decisionmaking_flow(self, decisionmaking_flow_id):
        flow = self.decisionmaking_flows.get(decisionmaking_flow_id)
        if flow is None:
            return None
        parliament_flow = next(
            (f for f in self.parliament_flows.values() if f.case_id == flow.case_id), None
        )
        if parliament_flow:
            flow = flow.model_copy(update={
                "parliament_flow_id": parliament_flow.parliament_flow_id,
                "parliament_id": parliament_flow.parliament_id,
            })
        return flow

    async def get_latest_subcase(self, decisionmaking_flow_id):
        subcases = [
            Subcase(subcase_id=subcase_id, title=data["title"], created_at=data["created_at"])
            for subcase_id, data in self.subcases.items()
            if data["decisionmaking_flow_id"] == decisionmaking_flow_id
        ]
        return max(subcases, key=lambda s: s.created_at) if subcases else None

    async def get_submitter_for_subcase(self, subcase_id):
        return self.submitters.get(subcase_id)

    async def get_user(self, user_id):
        return self.users.get(user_id)

    def _is_submitted(self, file_id: str) -> bool:
        return any(
            file_id in (row["unsigned_file_id"], row["word_file_id"], row["signed_file_id"])
            for row in self.submitted_pieces
        )

    def _load_pieces(self, piece_ids: List[str], submitted: bool) -> List[Piece]:
        result = []
        for piece_id in piece_ids:
            data = self.pieces.get(piece_id)
            if data is None:
                continue
            signed_copies = {pid for pid, p in self.pieces.items() if p["signed_copy_of"] == piece_id}
            files = []
            for file_id, file in self.files.items():
                if file["piece_id"] == piece_id:
                    is_signed = False
                elif file["piece_id"] in signed_copies:
                    is_signed = True
                else:
                    continue
                if self._is_submitted(file_id) != submitted:
                    continue
                has_derived = any(f["source_file_id"] == file_id for f in self.files.values())
                files.append(PieceFile(
                    file_id=file_id,
                    format=file["format"],
                    extension=file["extension"],
                    share_uri=file["share_uri"],
                    is_signed=is_signed,
                    is_word=has_derived and not is_signed,
                    is_pdf=not has_derived and not is_signed,
                ))
            if files:
                result.append(Piece(
                    piece_id=piece_id,
                    name=data["name"],
                    created_at=data["created_at"],
                    document_type=data["document_type"],
                    document_type_label=data["document_type_label"],
                    access_level=data["access_level"],
                    files=files,
                ))
        return result

    async def get_piece_metadata(self, piece_ids):
        return self._load_pieces(piece_ids, submitted=False)

    async def get_submitted_pieces(self, piece_ids):
        return self._load_pieces(piece_ids, submitted=True)

    async def get_previous_submissions(self, parliament_flow_id, piece_ids):
        previous = {}
        for piece_id in piece_ids:
            previous_piece_id = self.pieces.get(piece_id, {}).get("previous_piece_id")
            if not previous_piece_id:
                continue
            rows = [
                row for row in self.submitted_pieces
                if row["piece_id"] == previous_piece_id
                and self.parliament_subcases[
                    self.submission_activities[row["activity_id"]]["parliament_subcase_id"]
                ].parliament_flow_id == parliament_flow_id
            ]
            if rows:
                row = rows[-1]
                previous[piece_id] = PreviousSubmission(
                    piece_id=piece_id,
                    previous_piece_id=previous_piece_id,
                    **{k: v for k, v in row.items() if k.endswith("_file_id") or k.endswith("_external_id")},
                )
        return previous

    # Parliament flows

    async def get_parliament_flow_for_case(self, case_id):
        return next((f for f in self.parliament_flows.values() if f.case_id == case_id), None)

    async def get_parliament_flow_by_parliament_id(self, parliament_id):
        return self.flow_for(parliament_id)

    async def create_parliament_flow(self, parliament_id, case_id, status=None):
        decisionmaking_flow_id = next(
            (d.decisionmaking_flow_id for d in self.decisionmaking_flows.values() if d.case_id == case_id), None
        )
        flow = ParliamentFlow(
            parliament_flow_id=_id(), parliament_id=parliament_id, status=status,
            case_id=case_id, decisionmaking_flow_id=decisionmaking_flow_id, opened_at=self._now(),
        )
        self.parliament_flows[flow.parliament_flow_id] = flow
        return flow

    async def get_open_parliament_subcase(self, parliament_flow_id):
        return next(
            (s for s in self.parliament_subcases.values() if s.parliament_flow_id == parliament_flow_id), None
        )

    async def create_parliament_subcase(self, parliament_flow_id):
        subcase = ParliamentSubcase(
            parliament_subcase_id=_id(), parliament_flow_id=parliament_flow_id, started_at=self._now()
        )
        self.parliament_subcases[subcase.parliament_subcase_id] = subcase
        return subcase

    async def create_submission_activity(self, parliament_subcase_id, piece_ids, submitter_id, comment=None):
        activity_id = _id()
        self.submission_activities[activity_id] = {
            "parliament_subcase_id": parliament_subcase_id,
            "piece_ids": list(piece_ids),
            "submitter_id": submitter_id,
            "comment": comment,
        }
        return activity_id

    async def create_submitted_piece(self, activity_id, piece):
        unsigned = next((f for f in piece.files if f.is_pdf and not f.is_signed), None)
        word = next((f for f in piece.files if f.is_word), None)
        signed = next((f for f in piece.files if f.is_signed), None)
        row_id = _id()
        self.submitted_pieces.append({
            "submitted_piece_id": row_id,
            "activity_id": activity_id,
            "piece_id": piece.piece_id,
            "unsigned_file_id": unsigned.file_id if unsigned else None,
            "unsigned_file_external_id": unsigned.external_id if unsigned else None,
            "word_file_id": word.file_id if word else None,
            "word_file_external_id": word.external_id if word else None,
            "signed_file_id": signed.file_id if signed else None,
            "signed_file_external_id": signed.external_id if signed else None,
        })
        return row_id

    async def update_parliament_flow_status(self, parliament_flow_id, status):
        flow = self.parliament_flows[parliament_flow_id]
        self.parliament_flows[parliament_flow_id] = flow.model_copy(update={"status": status})

    async def update_parliament_id(self, parliament_flow_id, parliament_id):
        flow = self.parliament_flows[parliament_flow_id]
        self.parliament_flows[parliament_flow_id] = flow.model_copy(update={"parliament_id": parliament_id})

    async def get_flows_by_status(self, statuses):
        return [f for f in self.parliament_flows.values() if f.status in statuses]

    async def get_flows_by_parliament_ids(self, parliament_ids):
        return [f for f in self.parliament_flows.values() if f.parliament_id in parliament_ids]

    async def replace_parliament_id(self, old_parliament_id, new_parliament_id):
        count = 0
        for flow in list(self.parliament_flows.values()):
            if flow.parliament_id == old_parliament_id:
                await self.update_parliament_id(flow.parliament_flow_id, new_parliament_id)
                count += 1
        return count

    # Ingestion

    async def create_incoming_case(self, document: IncomingDocument):
        created = CreatedCase(_id(), _id(), _id(), _id(), _id())
        self.cases[created.case_id] = {"title": document.short_title}
        self.decisionmaking_flows[created.decisionmaking_flow_id] = DecisionmakingFlow(
            decisionmaking_flow_id=created.decisionmaking_flow_id,
            case_id=created.case_id,
            alt_name=document.short_title,
        )
        self.subcases[created.subcase_id] = {
            "decisionmaking_flow_id": created.decisionmaking_flow_id,
            "title": document.short_title,
            "created_at": self._now(),
        }
        self.parliament_flows[created.parliament_flow_id] = ParliamentFlow(
            parliament_flow_id=created.parliament_flow_id, parliament_id=document.parliament_id,
            status=ParliamentFlowStatus.RECEIVED, case_id=created.case_id,
            decisionmaking_flow_id=created.decisionmaking_flow_id, opened_at=self._now(),
        )
        self.parliament_subcases[created.parliament_subcase_id] = ParliamentSubcase(
            parliament_subcase_id=created.parliament_subcase_id,
            parliament_flow_id=created.parliament_flow_id,
            started_at=self._now(),
        )
        return created

    async def create_subcase(self, decisionmaking_flow_id, document):
        subcase_id = _id()
        self.subcases[subcase_id] = {
            "decisionmaking_flow_id": decisionmaking_flow_id,
            "title": document.short_title,
            "created_at": self._now(),
        }
        return subcase_id

    async def is_external_file_processed(self, external_file_id):
        if external_file_id in self.retrieved_pieces:
            return True
        return any(
            external_file_id in (
                row["unsigned_file_external_id"], row["word_file_external_id"], row["signed_file_external_id"]
            )
            for row in self.submitted_pieces
        )

    async def file_exists(self, file_id):
        return file_id in self.files

    async def get_piece_for_file(self, file_id):
        file = self.files.get(file_id)
        if file is None:
            return None
        if file["piece_id"]:
            return file["piece_id"]
        source = self.files.get(file["source_file_id"] or "")
        return source["piece_id"] if source else None

    async def piece_is_on_final_meeting(self, piece_id):
        signed_copy_of = self.pieces.get(piece_id, {}).get("signed_copy_of")
        return piece_id in self.final_pieces or signed_copy_of in self.final_pieces

    def _insert_file(self, file, piece_id, source_file_id=None):
        file_id = _id()
        self.files[file_id] = {
            "piece_id": piece_id,
            "source_file_id": source_file_id,
            "file_name": file.file_name,
            "format": file.mime_type,
            "extension": file.extension,
            "size": file.size,
            "share_uri": file.share_uri,
        }
        return file_id

    def _insert_retrieved(self, parliament_subcase_id, piece_id, file_id, file, is_new_piece):
        if file.external_id in self.retrieved_pieces:
            raise ValueError(f"duplicate external file id {file.external_id}")
        self.retrieved_pieces[file.external_id] = {
            "retrieved_piece_id": _id(),
            "parliament_subcase_id": parliament_subcase_id,
            "piece_id": piece_id,
            "file_id": file_id,
            "file_name": file.file_name,
            "is_new_piece": is_new_piece,
            "retrieval_activity_id": None,
            "acknowledged": False,
        }

    async def create_retrieved_piece(self, parliament_subcase_id, title, document_type, access_level, files,
                                     derived_pdf=False):
        piece_id = _id()
        self.pieces[piece_id] = {
            "name": title,
            "created_at": self._now(),
            "document_type": document_type,
            "document_type_label": None,
            "access_level": access_level,
            "previous_piece_id": None,
            "signed_copy_of": None,
        }
        file_ids = []
        for index, file in enumerate(files):
            source_file_id = file_ids[0] if derived_pdf and index == 1 else None
            file_ids.append(self._insert_file(file, piece_id, source_file_id))
            self._insert_retrieved(parliament_subcase_id, piece_id, file_ids[-1], file, True)
        return piece_id

    async def replace_retrieved_file(self, old_file_id, piece_id, parliament_subcase_id, file):
        old = self.files.get(old_file_id)
        new_file_id = self._insert_file(
            file, old["piece_id"] if old else piece_id, old["source_file_id"] if old else None
        )
        for other in self.files.values():
            if other["source_file_id"] == old_file_id:
                other["source_file_id"] = new_file_id
        self.files.pop(old_file_id, None)
        self._insert_retrieved(parliament_subcase_id, piece_id, new_file_id, file, False)
        return old["share_uri"] if old else None

    async def get_pending_retrievals(self, parliament_flow_id):
        rows = []
        for external_id, row in self.retrieved_pieces.items():
            subcase = self.parliament_subcases.get(row["parliament_subcase_id"])
            if subcase is None or subcase.parliament_flow_id != parliament_flow_id:
                continue
            retrieved = RetrievedPiece(external_file_id=external_id, **row)
            if retrieved.needs_activity or not retrieved.acknowledged:
                rows.append(retrieved)
        return rows

    async def create_retrieval_activity(self, parliament_subcase_id, piece_ids, subcase_id=None):
        activity_id = _id()
        self.retrieval_activities[activity_id] = {
            "parliament_subcase_id": parliament_subcase_id,
            "piece_ids": list(piece_ids),
        }
        for row in self.retrieved_pieces.values():
            if row["piece_id"] in piece_ids and row["is_new_piece"] and row["retrieval_activity_id"] is None:
                row["retrieval_activity_id"] = activity_id
        if subcase_id:
            for piece_id in piece_ids:
                self.subcase_pieces.add((subcase_id, piece_id))
        return activity_id

    async def mark_retrievals_acknowledged(self, external_file_ids):
        for external_id in external_file_ids:
            self.retrieved_pieces[external_id]["acknowledged"] = True


class FakeParliamentClient:
    """Stands in for ParliamentClient, recording every call"""

    def __init__(self, parliament_id: str = "4321"):
        self.parliament_id = parliament_id
        self.submitted: List[Dict[str, Any]] = []
        self.acknowledged: List[Dict[str, Any]] = []
        self.submit_error: Optional[Exception] = None
        self.acknowledge_error: Optional[Exception] = None
        self.histories: Dict[str, Any] = {}
        self.submitted_list: List[SubmittedFlowEntry] = []
        self.incoming: List[IncomingDocument] = []

    async def submit(self, document):
        self.submitted.append(document)
        if self.submit_error:
            raise self.submit_error
        pieces = document["@reverse"]["Dossier.isNeerslagVan"]["Dossier.bestaatUit"]
        return SubmissionResponse(
            parliament_id=self.parliament_id,
            files=[
                SubmittedFile(file_id=file["@id"], external_id=f"pfls-{file['@id']}")
                for piece in pieces
                for file in piece["Stuk.isVoorgesteldDoor"]
            ],
        )

    async def fetch_status_history(self, parliament_id):
        history = self.histories.get(parliament_id)
        if isinstance(history, Exception):
            raise history
        if history is None:
            return None
        return StatusHistory(statussen=[{"status": status} for status in history])

    async def fetch_submitted_list(self, since_days=None):
        if isinstance(self.submitted_list, Exception):
            raise self.submitted_list
        return self.submitted_list

    async def fetch_incoming_list(self):
        return self.incoming

    async def acknowledge_received(self, payload):
        self.acknowledged.append(payload)
        if self.acknowledge_error:
            raise self.acknowledge_error


def encode(content: bytes) -> str:
    return base64.b64encode(content).decode("ascii")


@pytest.fixture
def store():
    return InMemoryRecordStore()


@pytest.fixture
def client():
    return FakeParliamentClient()


@pytest.fixture
def file_share(tmp_path):
    return FileShare(str(tmp_path / "share"))


def put_on_share(file_share: FileShare, share_uri: str, content: bytes = b"%PDF-1.4 test"):
    path = file_share.path_for(share_uri)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(content)
