"""
Outbound submission pipeline
"""

from datetime import datetime, timezone

import pytest

from conftest import put_on_share
from models.enums import ParliamentFlowStatus
from models.piece import Piece, PieceFile, PreviousSubmission
from services.submission_service import (
    SubmissionService,
    enrich_with_previous_submissions,
    filter_redundant_files,
)
from utils.errors import RemoteSubmissionFailure, SubmissionPreconditionError

CREATED = datetime(2024, 3, 1, tzinfo=timezone.utc)


def piece_file(file_id, is_pdf=False, is_word=False, is_signed=False, extension="pdf"):
    return PieceFile(
        file_id=file_id, format="application/pdf", extension=extension, share_uri=f"share://{file_id}",
        is_pdf=is_pdf, is_word=is_word, is_signed=is_signed,
    )


def make_piece(piece_id, files):
    return Piece(piece_id=piece_id, name=piece_id, created_at=CREATED, files=files)


def seed_piece_a(store, file_share):
    """Piece A: a Word original with its PDF rendering, plus a signed copy"""
    store.add_case()
    store.add_piece("A", name="Ontwerpdecreet")
    store.add_file("A-word", "A", "docx")
    store.add_file("A-pdf", "A", "pdf", source_file_id="A-word")
    store.add_piece("A-signed", signed_copy_of="A")
    store.add_file("A-signed-pdf", "A-signed", "pdf")
    for file in store.files.values():
        put_on_share(file_share, file["share_uri"])


@pytest.fixture
def service(store, client, file_share):
    return SubmissionService(store, client, file_share, sending_enabled=True, always_create_flow=False,
                             debug_directory=None)


class TestFilterRedundantFiles:

    def test_unsigned_pdf_dropped_when_signed_present(self):
        piece = make_piece("A", [
            piece_file("pdf", is_pdf=True),
            piece_file("word", is_word=True, extension="docx"),
            piece_file("signed", is_signed=True),
        ])

        filtered = filter_redundant_files([piece], [])

        assert [f.file_id for f in filtered[0].files] == ["word", "signed"]

    def test_unsigned_pdf_kept_without_signed_version(self):
        piece = make_piece("A", [piece_file("pdf", is_pdf=True), piece_file("word", is_word=True)])

        filtered = filter_redundant_files([piece], [])

        assert [f.file_id for f in filtered[0].files] == ["pdf", "word"]

    def test_signed_file_submitted_before_supersedes_unsigned_pdf(self):
        piece = make_piece("A", [piece_file("pdf", is_pdf=True)])
        already_submitted = make_piece("A", [piece_file("signed", is_signed=True)])

        assert filter_redundant_files([piece], [already_submitted]) == []


class TestEnrichWithPreviousSubmissions:

    def test_previous_ids_attached_per_representation(self):
        piece = make_piece("B", [
            piece_file("b-pdf", is_pdf=True),
            piece_file("b-word", is_word=True),
            piece_file("b-signed", is_signed=True),
        ])
        previous = PreviousSubmission(
            piece_id="B", previous_piece_id="A",
            unsigned_file_id="a-pdf", unsigned_file_external_id="100",
            word_file_id="a-word", word_file_external_id="101",
            signed_file_id="a-signed", signed_file_external_id="102",
        )

        enriched = enrich_with_previous_submissions([piece], {"B": previous})

        ids = {f.file_id: (f.previous_version_file_id, f.previous_version_external_id) for f in enriched[0].files}
        assert ids == {
            "b-pdf": ("a-pdf", "100"),
            "b-word": ("a-word", "101"),
            "b-signed": ("a-signed", "102"),
        }

    def test_pieces_without_previous_version_unchanged(self):
        piece = make_piece("C", [piece_file("c-pdf", is_pdf=True)])

        assert enrich_with_previous_submissions([piece], {}) == [piece]


class TestSubmissionService:

    @pytest.mark.asyncio
    async def test_complete_submission_of_signed_piece(self, store, client, file_share, service):
        seed_piece_a(store, file_share)

        await service.submit("ai-1", ["A"], "ok", "user-1", True)

        flow = store.flow_for("4321")
        assert flow.status == ParliamentFlowStatus.COMPLETE
        assert flow.case_id == "case-1"
        assert len(store.submission_activities) == 1
        activity = next(iter(store.submission_activities.values()))
        assert activity["comment"] == "ok"
        assert activity["submitter_id"] == "user-1"

        assert len(store.submitted_pieces) == 1
        row = store.submitted_pieces[0]
        assert row["piece_id"] == "A"
        assert row["unsigned_file_id"] is None
        assert row["word_file_id"] == "A-word"
        assert row["word_file_external_id"] == "pfls-A-word"
        assert row["signed_file_id"] == "A-signed-pdf"
        assert row["signed_file_external_id"] == "pfls-A-signed-pdf"

    @pytest.mark.asyncio
    async def test_payload_content(self, store, client, file_share, service):
        seed_piece_a(store, file_share)

        await service.submit("ai-1", ["A"], "ok", "user-1", True)

        payload = client.submitted[0]
        assert payload["pobj"] is None
        assert payload["comment"] == "ok"
        assert payload["contact"] == {"name": "An Janssens", "email": "an.janssens@example.org"}
        assert payload["indiener"] == {"titel": "Vlaams minister", "naam": "Peeters", "voornaam": "Jan"}
        files = payload["@reverse"]["Dossier.isNeerslagVan"]["Dossier.bestaatUit"][0]["Stuk.isVoorgesteldDoor"]
        assert {f["filename"] for f in files} == {"Ontwerpdecreet.docx", "Ontwerpdecreet (ondertekend).pdf"}
        assert all(f["content"] for f in files)

    @pytest.mark.asyncio
    async def test_incomplete_submission(self, store, client, file_share, service):
        seed_piece_a(store, file_share)

        await service.submit("ai-1", ["A"], None, "user-1", False)

        assert store.flow_for("4321").status == ParliamentFlowStatus.INCOMPLETE

    @pytest.mark.asyncio
    async def test_new_version_reuses_flow_and_references_previous_files(self, store, client, file_share, service):
        seed_piece_a(store, file_share)
        await service.submit("ai-1", ["A"], None, "user-1", False)

        store.add_piece("B", name="Ontwerpdecreet", previous_piece_id="A")
        store.add_file("B-word", "B", "docx")
        store.add_file("B-pdf", "B", "pdf", source_file_id="B-word")
        put_on_share(file_share, store.files["B-word"]["share_uri"])
        put_on_share(file_share, store.files["B-pdf"]["share_uri"])

        await service.submit("ai-1", ["B"], None, "user-1", True)

        assert len(store.parliament_flows) == 1
        assert len(store.parliament_subcases) == 1
        assert len(store.submission_activities) == 2
        assert store.flow_for("4321").status == ParliamentFlowStatus.COMPLETE

        payload = client.submitted[1]
        assert payload["pobj"] == "4321"
        files = payload["@reverse"]["Dossier.isNeerslagVan"]["Dossier.bestaatUit"][0]["Stuk.isVoorgesteldDoor"]
        word = next(f for f in files if f["@id"] == "B-word")
        assert word["previousId"] == "A-word"
        assert word["previousPfls"] == "pfls-A-word"

    @pytest.mark.asyncio
    async def test_reissued_parliament_id_is_stored(self, store, client, file_share, service):
        seed_piece_a(store, file_share)
        await service.submit("ai-1", ["A"], None, "user-1", False)

        store.add_piece("C")
        store.add_file("C-pdf", "C", "pdf")
        put_on_share(file_share, store.files["C-pdf"]["share_uri"])
        client.parliament_id = "9999"

        await service.submit("ai-1", ["C"], None, "user-1", True)

        assert store.flow_for("4321") is None
        assert store.flow_for("9999").status == ParliamentFlowStatus.COMPLETE

    @pytest.mark.asyncio
    async def test_already_submitted_files_are_not_sent_again(self, store, client, file_share, service):
        seed_piece_a(store, file_share)
        await service.submit("ai-1", ["A"], None, "user-1", True)

        with pytest.raises(SubmissionPreconditionError):
            await service.submit("ai-1", ["A"], None, "user-1", True)
        assert len(client.submitted) == 1

    @pytest.mark.asyncio
    async def test_remote_failure_leaves_no_flow(self, store, client, file_share, service):
        seed_piece_a(store, file_share)
        client.submit_error = RemoteSubmissionFailure(400, "Invalid document")

        with pytest.raises(RemoteSubmissionFailure) as exc_info:
            await service.submit("ai-1", ["A"], None, "user-1", True)

        assert "status 400" in str(exc_info.value)
        assert "Invalid document" in str(exc_info.value)
        assert store.parliament_flows == {}
        assert store.submitted_pieces == []

    @pytest.mark.asyncio
    async def test_unknown_agendaitem_fails(self, store, service):
        with pytest.raises(SubmissionPreconditionError):
            await service.submit("ai-unknown", ["A"], None, "user-1", True)

    @pytest.mark.asyncio
    async def test_pieces_without_files_fail(self, store, service):
        store.add_case()
        store.add_piece("empty")

        with pytest.raises(SubmissionPreconditionError):
            await service.submit("ai-1", ["empty"], None, "user-1", True)

    @pytest.mark.asyncio
    async def test_mocked_response_when_sending_disabled(self, store, client, file_share):
        seed_piece_a(store, file_share)
        service = SubmissionService(store, client, file_share, sending_enabled=False, always_create_flow=True,
                                    debug_directory=None)

        await service.submit("ai-1", ["A"], None, "user-1", True)

        assert client.submitted == []
        assert len(store.parliament_flows) == 1
        assert store.submitted_pieces[0]["signed_file_external_id"] is not None

    @pytest.mark.asyncio
    async def test_nothing_recorded_when_sending_disabled(self, store, client, file_share):
        seed_piece_a(store, file_share)
        service = SubmissionService(store, client, file_share, sending_enabled=False, always_create_flow=False,
                                    debug_directory=None)

        await service.submit("ai-1", ["A"], None, "user-1", True)

        assert client.submitted == []
        assert store.parliament_flows == {}

    @pytest.mark.asyncio
    async def test_debug_files_written(self, store, client, file_share, tmp_path):
        seed_piece_a(store, file_share)
        debug_directory = tmp_path / "debug"
        service = SubmissionService(store, client, file_share, sending_enabled=True, always_create_flow=False,
                                    debug_directory=str(debug_directory))

        await service.submit("ai-1", ["A"], None, "user-1", True)

        assert (debug_directory / "payload.json").exists()
        assert (debug_directory / "response.json").exists()
