"""
Inbound reconciliation - merges documents the parliament sends us into the case-management store
"""

import logging
from typing import Callable, Dict, List, Optional, Set

from database.postgres_store import get_record_store
from models.enums import AccessLevel
from models.parliament import (
    IncomingDocument, IncomingFileGroup, IncomingRepresentation, RetrievedFile, RetrievedPiece,
)
from services import email_service
from services.file_storage import FileShare, get_file_share
from services.parliament_client import ParliamentClient, get_parliament_client
from services.payload_builder import build_received_notification
from services.record_store import RecordStore

logger = logging.getLogger(__name__)


class _DocumentTarget:
    """Where the files of one incoming document end up"""

    def __init__(self, case_id: str, decisionmaking_flow_id: Optional[str], parliament_flow_id: str,
                 parliament_subcase_id: str, subcase_id: Optional[str] = None):
        self.case_id = case_id
        self.decisionmaking_flow_id = decisionmaking_flow_id
        self.parliament_flow_id = parliament_flow_id
        self.parliament_subcase_id = parliament_subcase_id
        self.subcase_id = subcase_id
        # external ids of the files stored during this run
        self.stored: Set[str] = set()


class ReconciliationService:
    def __init__(
        self,
        store: RecordStore,
        client: ParliamentClient,
        file_share: FileShare,
        notify: Callable[[str, str], bool] = email_service.send_notification,
        alert: Callable[[str, str], bool] = email_service.send_operator_alert,
    ):
        self.store = store
        self.client = client
        self.file_share = file_share
        self.notify = notify
        self.alert = alert

    async def sync_incoming_flows(self):
        """Fetch the parliament's incoming documents and reconcile them"""
        documents = await self.client.fetch_incoming_list()
        logger.info(f"Received {len(documents)} incoming document(s) from the parliament")
        await self.reconcile(documents)

    async def reconcile(self, documents: List[IncomingDocument]):
        """Process the documents in order; a failing document doesn't stop the others"""
        for document in documents:
            try:
                await self.reconcile_document(document)
            except Exception as e:
                logger.error(f"Reconciling incoming document {document.parliament_id} failed: {e}", exc_info=True)

    async def reconcile_document(self, document: IncomingDocument):
        """
        Store the document's new files, then finish whatever the flow still has pending.

        Every piece is written together with its files and ledger rows. The
        retrieval activity, subcase link and acknowledgement follow from the
        ledger, so a run that stopped halfway is completed by the next one.
        """
        target = await self._resolve_target(document)

        for group in document.file_groups:
            try:
                await self._process_group(group, target)
            except Exception as e:
                logger.error(
                    f"Processing {group.base_name} of incoming document {document.parliament_id} failed: {e}",
                    exc_info=True,
                )

        await self._finish_pending(document, target)

    async def _resolve_target(self, document: IncomingDocument) -> _DocumentTarget:
        parliament_flow = await self.store.get_parliament_flow_by_parliament_id(document.parliament_id)
        if parliament_flow is None:
            created = await self.store.create_incoming_case(document)
            return _DocumentTarget(
                created.case_id,
                created.decisionmaking_flow_id,
                created.parliament_flow_id,
                created.parliament_subcase_id,
                subcase_id=created.subcase_id,
            )

        parliament_subcase = await self.store.get_open_parliament_subcase(parliament_flow.parliament_flow_id)
        if parliament_subcase is None:
            parliament_subcase = await self.store.create_parliament_subcase(parliament_flow.parliament_flow_id)
        return _DocumentTarget(
            parliament_flow.case_id,
            parliament_flow.decisionmaking_flow_id,
            parliament_flow.parliament_flow_id,
            parliament_subcase.parliament_subcase_id,
        )

    async def _finish_pending(self, document: IncomingDocument, target: _DocumentTarget):
        pending = await self.store.get_pending_retrievals(target.parliament_flow_id)
        if not pending:
            logger.info(f"Nothing new in incoming document {document.parliament_id}")
            return

        piece_ids = list(dict.fromkeys(row.piece_id for row in pending if row.needs_activity))
        if piece_ids:
            await self._create_retrieval_activity(document, target, piece_ids)

        unacknowledged = [row for row in pending if not row.acknowledged]
        if unacknowledged and await self._acknowledge(document, target, unacknowledged):
            await self.store.mark_retrievals_acknowledged([row.external_file_id for row in unacknowledged])

        file_names = [
            row.file_name for row in pending
            if row.external_file_id in target.stored or row.piece_id in piece_ids
        ]
        if file_names:
            self.notify(
                f"Nieuwe documenten van het Vlaams Parlement: {document.short_title or document.parliament_id}",
                "De volgende documenten werden ontvangen van het Vlaams Parlement:\n"
                + "\n".join(f"- {name}" for name in file_names),
            )

    async def _create_retrieval_activity(
        self, document: IncomingDocument, target: _DocumentTarget, piece_ids: List[str]
    ):
        subcase_id = target.subcase_id
        if subcase_id is None:
            if target.decisionmaking_flow_id is None:
                logger.warning(f"No decisionmaking flow for case {target.case_id}, pieces are not linked to a subcase")
            else:
                subcase_id = await self.store.create_subcase(target.decisionmaking_flow_id, document)
                target.subcase_id = subcase_id
        activity_id = await self.store.create_retrieval_activity(target.parliament_subcase_id, piece_ids, subcase_id)
        logger.info(f"Created retrieval activity {activity_id} for {len(piece_ids)} piece(s) of {document.parliament_id}")

    async def _process_group(self, group: IncomingFileGroup, target: _DocumentTarget):
        new_representations = []
        for representation in group.representations:
            if await self.store.is_external_file_processed(representation.external_id):
                logger.info(f"File {representation.external_id} ({representation.file_name}) was already processed, skipping")
                continue

            piece_id = None
            if representation.file_id and await self.store.file_exists(representation.file_id):
                piece_id = await self.store.get_piece_for_file(representation.file_id)

            if piece_id is None:
                new_representations.append(representation)
            elif await self.store.piece_is_on_final_meeting(piece_id):
                logger.warning(
                    f"Conflict: file {representation.external_id} replaces {representation.file_id} "
                    f"of piece {piece_id}, which is on a finalized meeting. Skipping"
                )
            else:
                await self._replace_file(representation, piece_id, target)

        if new_representations:
            await self._create_pieces(group, new_representations, target)

    def _write_to_share(self, representation: IncomingRepresentation) -> RetrievedFile:
        share_uri, size = self.file_share.write(representation.extension, representation.content)
        return RetrievedFile(
            file_name=representation.file_name,
            extension=representation.extension,
            mime_type=representation.mime_type,
            size=size,
            share_uri=share_uri,
            external_id=representation.external_id,
        )

    async def _replace_file(self, representation: IncomingRepresentation, piece_id: str, target: _DocumentTarget):
        file = self._write_to_share(representation)
        try:
            old_share_uri = await self.store.replace_retrieved_file(
                representation.file_id, piece_id, target.parliament_subcase_id, file
            )
        except Exception:
            self.file_share.remove(file.share_uri)
            raise
        if old_share_uri:
            self.file_share.remove(old_share_uri)
        target.stored.add(file.external_id)
        logger.info(f"Replaced file {representation.file_id} of piece {piece_id} with {file.external_id}")

    async def _create_pieces(
        self,
        group: IncomingFileGroup,
        representations: List[IncomingRepresentation],
        target: _DocumentTarget,
    ):
        remaining = list(representations)
        pdfs = [r for r in remaining if r.is_pdf]
        words = [r for r in remaining if r.is_word]

        if len(pdfs) == 1 and len(words) == 1:
            await self._create_piece(group, [words[0], pdfs[0]], target, derived_pdf=True)
            remaining = [r for r in remaining if r is not pdfs[0] and r is not words[0]]
        elif len(pdfs) == 1:
            await self._create_piece(group, [pdfs[0]], target)
            remaining = [r for r in remaining if r is not pdfs[0]]

        for representation in remaining:
            await self._create_piece(group, [representation], target)

    async def _create_piece(
        self,
        group: IncomingFileGroup,
        representations: List[IncomingRepresentation],
        target: _DocumentTarget,
        derived_pdf: bool = False,
    ):
        files: List[RetrievedFile] = []
        try:
            for representation in representations:
                files.append(self._write_to_share(representation))
            # with derived_pdf the files are [word, pdf]
            piece_id = await self.store.create_retrieved_piece(
                target.parliament_subcase_id,
                group.base_name,
                group.document_type,
                AccessLevel.INTERNAL_GOVERNMENT.value,
                files,
                derived_pdf=derived_pdf,
            )
        except Exception:
            for file in files:
                self.file_share.remove(file.share_uri)
            raise

        target.stored.update(file.external_id for file in files)
        logger.info(f"Created piece {piece_id} with {len(files)} file(s) for {group.base_name}")

    async def _acknowledge(
        self, document: IncomingDocument, target: _DocumentTarget, rows: List[RetrievedPiece]
    ) -> bool:
        processed: Dict[str, List[Dict[str, str]]] = {}
        for row in rows:
            processed.setdefault(row.piece_id, []).append({"file_id": row.file_id, "external_id": row.external_file_id})
        payload = build_received_notification(
            document.parliament_id,
            target.decisionmaking_flow_id,
            target.case_id,
            processed,
        )
        try:
            await self.client.acknowledge_received(payload)
        except Exception as e:
            logger.error(f"Error notifying the parliament about received documents of {document.parliament_id}: {e}")
            self.alert(
                "Ontvangstbevestiging aan het Vlaams Parlement mislukt",
                f"Documenten van {document.parliament_id} werden verwerkt, "
                f"maar de ontvangstbevestiging kon niet verstuurd worden: {e}. "
                "Ze wordt bij de volgende synchronisatie opnieuw verstuurd.",
            )
            return False
        return True


_reconciliation_service: Optional[ReconciliationService] = None


def get_reconciliation_service() -> ReconciliationService:
    """Get the global reconciliation service instance"""
    global _reconciliation_service
    if _reconciliation_service is None:
        _reconciliation_service = ReconciliationService(get_record_store(), get_parliament_client(), get_file_share())
    return _reconciliation_service
