"""
Postgres implementation of the record store
"""

import json
import logging
import uuid
from datetime import datetime, timezone
from typing import Dict, List, Optional

from database.connection import get_db_pool
from models.case import DecisionmakingFlow, GovernmentField, Subcase, Submitter, User
from models.enums import AccessLevel, JobStatus, ParliamentFlowStatus
from models.job import Job, JobContext
from models.parliament import (
    IncomingDocument, ParliamentFlow, ParliamentSubcase, RetrievedFile, RetrievedPiece,
)
from models.piece import Piece, PieceFile, PreviousSubmission
from services.record_store import CreatedCase, RecordStore

logger = logging.getLogger(__name__)

APPROVED = "APPROVED"

PIECE_FILES_SQL = """
    WITH piece_files AS (
        SELECT p.piece_id, f.file_id, FALSE AS is_signed, f.format, f.extension, f.share_uri
        FROM pieces p
        JOIN files f ON f.piece_id = p.piece_id
        WHERE p.piece_id = ANY($1::text[])
        UNION ALL
        SELECT s.signed_copy_of AS piece_id, f.file_id, TRUE AS is_signed, f.format, f.extension, f.share_uri
        FROM pieces s
        JOIN files f ON f.piece_id = s.piece_id
        WHERE s.signed_copy_of = ANY($1::text[])
    )
    SELECT
        pf.piece_id, pf.file_id, pf.is_signed, pf.format, pf.extension, pf.share_uri,
        p.title, p.created_at, p.access_level,
        dc.document_type, dc.document_type_label,
        EXISTS (SELECT 1 FROM files d WHERE d.source_file_id = pf.file_id) AS has_derived,
        EXISTS (
            SELECT 1 FROM submitted_pieces sp
            WHERE pf.file_id IN (sp.unsigned_file_id, sp.word_file_id, sp.signed_file_id)
        ) AS is_submitted
    FROM piece_files pf
    JOIN pieces p ON p.piece_id = pf.piece_id
    JOIN document_containers dc ON dc.container_id = p.container_id
    ORDER BY pf.file_id
"""

FLOW_COLUMNS = """
    parliament_flow_id, parliament_id, status, case_id, opened_at,
    (SELECT d.decisionmaking_flow_id FROM decisionmaking_flows d
     WHERE d.case_id = parliament_flows.case_id ORDER BY d.opened_at LIMIT 1) AS decisionmaking_flow_id
"""


def _new_id() -> str:
    return str(uuid.uuid4())


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _row_to_job(row) -> Job:
    return Job(
        job_id=row["job_id"],
        status=JobStatus(row["status"]),
        created_at=row["created_at"],
        modified_at=row["modified_at"],
        error_message=row["error_message"],
        context=JobContext(
            agendaitem_id=row["agendaitem_id"],
            piece_ids=list(row["piece_ids"]),
            comment=row["comment"],
            user_id=row["user_id"],
            is_complete=row["is_complete"],
        ),
    )


def _row_to_flow(row) -> ParliamentFlow:
    return ParliamentFlow(
        parliament_flow_id=row["parliament_flow_id"],
        parliament_id=row["parliament_id"],
        status=ParliamentFlowStatus(row["status"]) if row["status"] else None,
        case_id=row["case_id"],
        decisionmaking_flow_id=row["decisionmaking_flow_id"],
        opened_at=row["opened_at"],
    )


class PostgresRecordStore(RecordStore):
    """Record store backed by the asyncpg pool"""

    def __init__(self, pool=None):
        self._pool = pool

    @property
    def pool(self):
        return self._pool or get_db_pool()

    # Jobs

    async def insert_job(self, job: Job) -> None:
        async with self.pool.acquire() as conn:
            await conn.execute("""
                INSERT INTO send_to_parliament_jobs
                (job_id, status, created_at, modified_at, agendaitem_id, piece_ids, comment, user_id, is_complete)
                VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9)
            """,
            job.job_id, job.status.value, job.created_at, job.modified_at,
            job.context.agendaitem_id, job.context.piece_ids, job.context.comment,
            job.context.user_id, job.context.is_complete)

    async def get_job(self, job_id: str) -> Optional[Job]:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow("SELECT * FROM send_to_parliament_jobs WHERE job_id = $1", job_id)
        return _row_to_job(row) if row else None

    async def get_next_scheduled_job(self) -> Optional[Job]:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow("""
                SELECT * FROM send_to_parliament_jobs
                WHERE status = $1
                  AND NOT EXISTS (SELECT 1 FROM send_to_parliament_jobs WHERE status = $2)
                ORDER BY created_at ASC
                LIMIT 1
            """, JobStatus.SCHEDULED.value, JobStatus.BUSY.value)
        return _row_to_job(row) if row else None

    async def update_job_status(
        self, job_id: str, status: JobStatus, error_message: Optional[str] = None
    ) -> None:
        async with self.pool.acquire() as conn:
            await conn.execute("""
                UPDATE send_to_parliament_jobs
                SET status = $2, modified_at = $3, error_message = COALESCE($4, error_message)
                WHERE job_id = $1
            """, job_id, status.value, _now(), error_message)

    async def fail_busy_jobs(self) -> int:
        async with self.pool.acquire() as conn:
            result = await conn.execute("""
                UPDATE send_to_parliament_jobs
                SET status = $1, modified_at = $3, error_message = COALESCE(error_message, 'Interrupted by a service restart')
                WHERE status = $2
            """, JobStatus.FAILED.value, JobStatus.BUSY.value, _now())
        # asyncpg returns the command tag, e.g. "UPDATE 3"
        return int(result.split()[-1])

    # Case management

    async def get_decisionmaking_flow_for_agendaitem(self, agendaitem_id: str) -> Optional[str]:
        async with self.pool.acquire() as conn:
            return await conn.fetchval("""
                SELECT s.decisionmaking_flow_id
                FROM agendaitems a
                JOIN subcases s ON s.subcase_id = a.subcase_id
                WHERE a.agendaitem_id = $1
            """, agendaitem_id)

    async def get_decisionmaking_flow(self, decisionmaking_flow_id: str) -> Optional[DecisionmakingFlow]:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow("""
                SELECT d.decisionmaking_flow_id, d.case_id, d.name, d.government_fields,
                       c.short_title AS alt_name, pf.parliament_flow_id, pf.parliament_id
                FROM decisionmaking_flows d
                JOIN cases c ON c.case_id = d.case_id
                LEFT JOIN parliament_flows pf ON pf.case_id = d.case_id
                WHERE d.decisionmaking_flow_id = $1
                ORDER BY pf.opened_at DESC NULLS LAST
                LIMIT 1
            """, decisionmaking_flow_id)
        if not row:
            return None

        fields = row["government_fields"]
        if isinstance(fields, str):
            fields = json.loads(fields)
        return DecisionmakingFlow(
            decisionmaking_flow_id=row["decisionmaking_flow_id"],
            case_id=row["case_id"],
            name=row["name"],
            alt_name=row["alt_name"],
            government_fields=[GovernmentField(**field) for field in fields or []],
            parliament_flow_id=row["parliament_flow_id"],
            parliament_id=row["parliament_id"],
        )

    async def get_latest_subcase(self, decisionmaking_flow_id: str) -> Optional[Subcase]:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow("""
                SELECT subcase_id, COALESCE(title, short_title) AS title, created_at
                FROM subcases
                WHERE decisionmaking_flow_id = $1
                ORDER BY created_at DESC
                LIMIT 1
            """, decisionmaking_flow_id)
        return Subcase(**dict(row)) if row else None

    async def get_submitter_for_subcase(self, subcase_id: str) -> Optional[Submitter]:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow("""
                SELECT submitter_title, submitter_first_name, submitter_last_name
                FROM subcases WHERE subcase_id = $1
            """, subcase_id)
        if not row or not row["submitter_last_name"]:
            return None
        return Submitter(
            title=row["submitter_title"],
            first_name=row["submitter_first_name"],
            last_name=row["submitter_last_name"],
        )

    async def get_user(self, user_id: str) -> Optional[User]:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                "SELECT user_id, first_name, family_name, email FROM users WHERE user_id = $1", user_id
            )
        return User(**dict(row)) if row else None

    async def _load_pieces(self, piece_ids: List[str], submitted: bool) -> List[Piece]:
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(PIECE_FILES_SQL, piece_ids)

        pieces: Dict[str, Piece] = {}
        for row in rows:
            if row["is_submitted"] != submitted:
                continue
            piece = pieces.get(row["piece_id"])
            if piece is None:
                piece = Piece(
                    piece_id=row["piece_id"],
                    name=row["title"],
                    created_at=row["created_at"],
                    document_type=row["document_type"],
                    document_type_label=row["document_type_label"],
                    access_level=row["access_level"],
                )
                pieces[row["piece_id"]] = piece
            piece.files.append(PieceFile(
                file_id=row["file_id"],
                format=row["format"],
                extension=row["extension"],
                share_uri=row["share_uri"],
                is_signed=row["is_signed"],
                is_word=row["has_derived"] and not row["is_signed"],
                is_pdf=not row["has_derived"] and not row["is_signed"],
            ))
        return [pieces[piece_id] for piece_id in piece_ids if piece_id in pieces]

    async def get_piece_metadata(self, piece_ids: List[str]) -> List[Piece]:
        return await self._load_pieces(piece_ids, submitted=False)

    async def get_submitted_pieces(self, piece_ids: List[str]) -> List[Piece]:
        return await self._load_pieces(piece_ids, submitted=True)

    async def get_previous_submissions(
        self, parliament_flow_id: str, piece_ids: List[str]
    ) -> Dict[str, PreviousSubmission]:
        async with self.pool.acquire() as conn:
            rows = await conn.fetch("""
                SELECT p.piece_id, p.previous_piece_id,
                       sp.unsigned_file_id, sp.unsigned_file_external_id,
                       sp.word_file_id, sp.word_file_external_id,
                       sp.signed_file_id, sp.signed_file_external_id
                FROM pieces p
                JOIN submitted_pieces sp ON sp.piece_id = p.previous_piece_id
                JOIN submission_activities sa ON sa.activity_id = sp.activity_id
                JOIN parliament_subcases ps ON ps.parliament_subcase_id = sa.parliament_subcase_id
                WHERE p.piece_id = ANY($1::text[]) AND ps.parliament_flow_id = $2
                ORDER BY sa.started_at DESC
            """, piece_ids, parliament_flow_id)

        previous: Dict[str, PreviousSubmission] = {}
        for row in rows:
            # latest submission of the previous version wins
            previous.setdefault(row["piece_id"], PreviousSubmission(**dict(row)))
        return previous

    # Parliament flows

    async def get_parliament_flow_for_case(self, case_id: str) -> Optional[ParliamentFlow]:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f"SELECT {FLOW_COLUMNS} FROM parliament_flows WHERE case_id = $1 ORDER BY opened_at DESC LIMIT 1",
                case_id,
            )
        return _row_to_flow(row) if row else None

    async def get_parliament_flow_by_parliament_id(self, parliament_id: str) -> Optional[ParliamentFlow]:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f"SELECT {FLOW_COLUMNS} FROM parliament_flows WHERE parliament_id = $1 ORDER BY opened_at DESC LIMIT 1",
                parliament_id,
            )
        return _row_to_flow(row) if row else None

    async def create_parliament_flow(
        self, parliament_id: str, case_id: str, status: Optional[ParliamentFlowStatus] = None
    ) -> ParliamentFlow:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(f"""
                INSERT INTO parliament_flows (parliament_flow_id, case_id, parliament_id, status, opened_at)
                VALUES ($1, $2, $3, $4, $5)
                RETURNING {FLOW_COLUMNS}
            """, _new_id(), case_id, parliament_id, status.value if status else None, _now())
        logger.info(f"Created parliament flow {row['parliament_flow_id']} for {parliament_id}")
        return _row_to_flow(row)

    async def get_open_parliament_subcase(self, parliament_flow_id: str) -> Optional[ParliamentSubcase]:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow("""
                SELECT parliament_subcase_id, parliament_flow_id, started_at
                FROM parliament_subcases
                WHERE parliament_flow_id = $1 AND ended_at IS NULL
                ORDER BY started_at DESC
                LIMIT 1
            """, parliament_flow_id)
        return ParliamentSubcase(**dict(row)) if row else None

    async def create_parliament_subcase(self, parliament_flow_id: str) -> ParliamentSubcase:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow("""
                INSERT INTO parliament_subcases (parliament_subcase_id, parliament_flow_id, started_at)
                VALUES ($1, $2, $3)
                RETURNING parliament_subcase_id, parliament_flow_id, started_at
            """, _new_id(), parliament_flow_id, _now())
        return ParliamentSubcase(**dict(row))

    async def create_submission_activity(
        self,
        parliament_subcase_id: str,
        piece_ids: List[str],
        submitter_id: str,
        comment: Optional[str] = None,
    ) -> str:
        activity_id = _new_id()
        async with self.pool.acquire() as conn:
            await conn.execute("""
                INSERT INTO submission_activities (activity_id, parliament_subcase_id, submitter_id, comment, started_at)
                VALUES ($1, $2, $3, $4, $5)
            """, activity_id, parliament_subcase_id, submitter_id, comment, _now())
        return activity_id

    async def create_submitted_piece(self, activity_id: str, piece: Piece) -> str:
        unsigned = next((f for f in piece.files if f.is_pdf and not f.is_signed), None)
        word = next((f for f in piece.files if f.is_word), None)
        signed = next((f for f in piece.files if f.is_signed), None)
        submitted_piece_id = _new_id()
        async with self.pool.acquire() as conn:
            await conn.execute("""
                INSERT INTO submitted_pieces (
                    submitted_piece_id, activity_id, piece_id,
                    unsigned_file_id, unsigned_file_external_id,
                    word_file_id, word_file_external_id,
                    signed_file_id, signed_file_external_id
                ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9)
            """,
            submitted_piece_id, activity_id, piece.piece_id,
            unsigned.file_id if unsigned else None, unsigned.external_id if unsigned else None,
            word.file_id if word else None, word.external_id if word else None,
            signed.file_id if signed else None, signed.external_id if signed else None)
        return submitted_piece_id

    async def update_parliament_flow_status(
        self, parliament_flow_id: str, status: ParliamentFlowStatus
    ) -> None:
        async with self.pool.acquire() as conn:
            await conn.execute(
                "UPDATE parliament_flows SET status = $2 WHERE parliament_flow_id = $1",
                parliament_flow_id, status.value,
            )

    async def update_parliament_id(self, parliament_flow_id: str, parliament_id: str) -> None:
        async with self.pool.acquire() as conn:
            await conn.execute(
                "UPDATE parliament_flows SET parliament_id = $2 WHERE parliament_flow_id = $1",
                parliament_flow_id, parliament_id,
            )

    async def get_flows_by_status(self, statuses: List[ParliamentFlowStatus]) -> List[ParliamentFlow]:
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                f"SELECT {FLOW_COLUMNS} FROM parliament_flows WHERE status = ANY($1::text[]) ORDER BY opened_at",
                [status.value for status in statuses],
            )
        return [_row_to_flow(row) for row in rows]

    async def get_flows_by_parliament_ids(self, parliament_ids: List[str]) -> List[ParliamentFlow]:
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                f"SELECT {FLOW_COLUMNS} FROM parliament_flows WHERE parliament_id = ANY($1::text[]) ORDER BY opened_at",
                parliament_ids,
            )
        return [_row_to_flow(row) for row in rows]

    async def replace_parliament_id(self, old_parliament_id: str, new_parliament_id: str) -> int:
        async with self.pool.acquire() as conn:
            result = await conn.execute(
                "UPDATE parliament_flows SET parliament_id = $2 WHERE parliament_id = $1",
                old_parliament_id, new_parliament_id,
            )
        return int(result.split()[-1])

    # Ingestion

    async def create_incoming_case(self, document: IncomingDocument) -> CreatedCase:
        case_id, decisionmaking_flow_id, subcase_id = _new_id(), _new_id(), _new_id()
        parliament_flow_id, parliament_subcase_id = _new_id(), _new_id()
        now = _now()
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                await conn.execute("""
                    INSERT INTO cases (case_id, title, short_title, created_at) VALUES ($1, $2, $3, $4)
                """, case_id, document.title, document.short_title, now)
                await conn.execute("""
                    INSERT INTO decisionmaking_flows (decisionmaking_flow_id, case_id, opened_at)
                    VALUES ($1, $2, $3)
                """, decisionmaking_flow_id, case_id, document.opening_date)
                await self._insert_subcase(conn, subcase_id, decisionmaking_flow_id, document, now)
                await conn.execute("""
                    INSERT INTO parliament_flows (parliament_flow_id, case_id, parliament_id, status, opened_at)
                    VALUES ($1, $2, $3, $4, $5)
                """, parliament_flow_id, case_id, document.parliament_id, ParliamentFlowStatus.RECEIVED.value, now)
                await conn.execute("""
                    INSERT INTO parliament_subcases (parliament_subcase_id, parliament_flow_id, started_at)
                    VALUES ($1, $2, $3)
                """, parliament_subcase_id, parliament_flow_id, now)
        logger.info(f"Created case {case_id} and parliament flow {parliament_flow_id} "
                    f"for incoming document {document.parliament_id}")
        return CreatedCase(case_id, decisionmaking_flow_id, subcase_id, parliament_flow_id, parliament_subcase_id)

    async def create_subcase(self, decisionmaking_flow_id: str, document: IncomingDocument) -> str:
        subcase_id = _new_id()
        async with self.pool.acquire() as conn:
            await self._insert_subcase(conn, subcase_id, decisionmaking_flow_id, document, _now())
        return subcase_id

    @staticmethod
    async def _insert_subcase(conn, subcase_id, decisionmaking_flow_id, document: IncomingDocument, now):
        await conn.execute("""
            INSERT INTO subcases
            (subcase_id, decisionmaking_flow_id, title, short_title, subcase_type, agenda_item_type, created_at)
            VALUES ($1, $2, $3, $4, $5, $6, $7)
        """,
        subcase_id, decisionmaking_flow_id, document.title, document.short_title,
        document.subcase_type.value, document.agenda_item_type.value, now)

    async def is_external_file_processed(self, external_file_id: str) -> bool:
        async with self.pool.acquire() as conn:
            return await conn.fetchval("""
                SELECT EXISTS (SELECT 1 FROM retrieved_pieces WHERE external_file_id = $1)
                    OR EXISTS (
                        SELECT 1 FROM submitted_pieces
                        WHERE $1 IN (unsigned_file_external_id, word_file_external_id, signed_file_external_id)
                    )
            """, external_file_id)

    async def file_exists(self, file_id: str) -> bool:
        async with self.pool.acquire() as conn:
            return await conn.fetchval("SELECT EXISTS (SELECT 1 FROM files WHERE file_id = $1)", file_id)

    async def get_piece_for_file(self, file_id: str) -> Optional[str]:
        async with self.pool.acquire() as conn:
            return await conn.fetchval("""
                SELECT COALESCE(f.piece_id, s.piece_id)
                FROM files f
                LEFT JOIN files s ON s.file_id = f.source_file_id
                WHERE f.file_id = $1
            """, file_id)

    async def piece_is_on_final_meeting(self, piece_id: str) -> bool:
        async with self.pool.acquire() as conn:
            return await conn.fetchval("""
                SELECT EXISTS (
                    SELECT 1
                    FROM agendaitem_pieces ap
                    JOIN agendaitems a ON a.agendaitem_id = ap.agendaitem_id
                    JOIN meetings m ON m.meeting_id = a.meeting_id
                    WHERE (ap.piece_id = $1 OR ap.piece_id = (SELECT signed_copy_of FROM pieces WHERE piece_id = $1))
                      AND a.decision_result = $2
                      AND m.is_final
                )
            """, piece_id, APPROVED)

    @staticmethod
    async def _insert_file(conn, file: RetrievedFile, piece_id: str, source_file_id: Optional[str], now) -> str:
        file_id = _new_id()
        await conn.execute("""
            INSERT INTO files
            (file_id, piece_id, source_file_id, file_name, format, extension, size, share_uri, created_at, modified_at)
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $9)
        """,
        file_id, piece_id, source_file_id, file.file_name, file.mime_type, file.extension,
        file.size, file.share_uri, now)
        return file_id

    @staticmethod
    async def _insert_retrieved(conn, parliament_subcase_id, piece_id, file_id, file: RetrievedFile, is_new_piece):
        await conn.execute("""
            INSERT INTO retrieved_pieces (
                retrieved_piece_id, parliament_subcase_id, piece_id, file_id,
                external_file_id, file_name, is_new_piece
            ) VALUES ($1, $2, $3, $4, $5, $6, $7)
        """, _new_id(), parliament_subcase_id, piece_id, file_id, file.external_id, file.file_name, is_new_piece)

    async def create_retrieved_piece(
        self,
        parliament_subcase_id: str,
        title: str,
        document_type: Optional[str],
        access_level: Optional[str],
        files: List[RetrievedFile],
        derived_pdf: bool = False,
    ) -> str:
        container_id, piece_id = _new_id(), _new_id()
        now = _now()
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                await conn.execute("""
                    INSERT INTO document_containers (container_id, document_type, created_at)
                    VALUES ($1, $2, $3)
                """, container_id, document_type, now)
                await conn.execute("""
                    INSERT INTO pieces (piece_id, container_id, title, access_level, created_at)
                    VALUES ($1, $2, $3, $4, $5)
                """, piece_id, container_id, title, access_level or AccessLevel.INTERNAL_GOVERNMENT.value, now)
                file_ids = []
                for index, file in enumerate(files):
                    source_file_id = file_ids[0] if derived_pdf and index == 1 else None
                    file_id = await self._insert_file(conn, file, piece_id, source_file_id, now)
                    file_ids.append(file_id)
                    await self._insert_retrieved(conn, parliament_subcase_id, piece_id, file_id, file, True)
        return piece_id

    async def replace_retrieved_file(
        self, old_file_id: str, piece_id: str, parliament_subcase_id: str, file: RetrievedFile
    ) -> Optional[str]:
        now = _now()
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                old = await conn.fetchrow(
                    "SELECT piece_id, source_file_id FROM files WHERE file_id = $1 FOR UPDATE", old_file_id
                )
                new_file_id = await self._insert_file(
                    conn, file, old["piece_id"] if old else piece_id, old["source_file_id"] if old else None, now
                )
                await conn.execute(
                    "UPDATE files SET source_file_id = $2 WHERE source_file_id = $1", old_file_id, new_file_id
                )
                old_share_uri = await conn.fetchval(
                    "DELETE FROM files WHERE file_id = $1 RETURNING share_uri", old_file_id
                )
                await self._insert_retrieved(conn, parliament_subcase_id, piece_id, new_file_id, file, False)
        return old_share_uri

    async def get_pending_retrievals(self, parliament_flow_id: str) -> List[RetrievedPiece]:
        async with self.pool.acquire() as conn:
            rows = await conn.fetch("""
                SELECT rp.retrieved_piece_id, rp.parliament_subcase_id, rp.piece_id, rp.file_id,
                       rp.external_file_id, rp.file_name, rp.is_new_piece,
                       rp.retrieval_activity_id, rp.acknowledged
                FROM retrieved_pieces rp
                JOIN parliament_subcases ps ON ps.parliament_subcase_id = rp.parliament_subcase_id
                WHERE ps.parliament_flow_id = $1
                  AND (NOT rp.acknowledged OR (rp.is_new_piece AND rp.retrieval_activity_id IS NULL))
                ORDER BY rp.created_at, rp.retrieved_piece_id
            """, parliament_flow_id)
        return [RetrievedPiece(**dict(row)) for row in rows]

    async def create_retrieval_activity(
        self, parliament_subcase_id: str, piece_ids: List[str], subcase_id: Optional[str] = None
    ) -> str:
        activity_id = _new_id()
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                await conn.execute("""
                    INSERT INTO retrieval_activities (activity_id, parliament_subcase_id, started_at)
                    VALUES ($1, $2, $3)
                """, activity_id, parliament_subcase_id, _now())
                await conn.executemany("""
                    INSERT INTO retrieval_activity_pieces (activity_id, piece_id) VALUES ($1, $2)
                """, [(activity_id, piece_id) for piece_id in piece_ids])
                await conn.execute("""
                    UPDATE retrieved_pieces SET retrieval_activity_id = $1
                    WHERE piece_id = ANY($2::text[]) AND is_new_piece AND retrieval_activity_id IS NULL
                """, activity_id, piece_ids)
                if subcase_id:
                    await conn.executemany("""
                        INSERT INTO subcase_pieces (subcase_id, piece_id) VALUES ($1, $2)
                        ON CONFLICT DO NOTHING
                    """, [(subcase_id, piece_id) for piece_id in piece_ids])
        return activity_id

    async def mark_retrievals_acknowledged(self, external_file_ids: List[str]) -> None:
        async with self.pool.acquire() as conn:
            await conn.execute(
                "UPDATE retrieved_pieces SET acknowledged = TRUE WHERE external_file_id = ANY($1::text[])",
                external_file_ids,
            )


_record_store: Optional[PostgresRecordStore] = None


def get_record_store() -> PostgresRecordStore:
    """Get the global record store instance"""
    global _record_store
    if _record_store is None:
        _record_store = PostgresRecordStore()
    return _record_store
