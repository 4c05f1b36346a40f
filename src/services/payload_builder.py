"""
JSON-LD documents exchanged with the parliament API
"""

from typing import Any, Callable, Dict, List, Optional

from models.case import DecisionmakingFlow, Subcase, Submitter
from models.piece import Piece

JSONLD_CONTEXT = [
    "https://data.vlaanderen.be/doc/applicatieprofiel/besluitvorming/erkendestandaard/2021-02-04/context/besluitvorming-ap.jsonld",
    {
        "Stuk.isVoorgesteldDoor": "https://data.vlaanderen.be/ns/dossier#isVoorgesteldDoor",
        "Concept": "http://www.w3.org/2004/02/skos/core#Concept",
        "format": "http://purl.org/dc/terms/format",
        "content": "http://www.w3.org/ns/prov#value",
        "prefLabel": "http://www.w3.org/2004/02/skos/core#prefLabel",
        "filename": "http://www.semanticdesktop.org/ontologies/2007/03/22/nfo#fileName",
    },
]

DISTRIBUTION_TYPE = "http://www.w3.org/ns/dcat#Distribution"


def _file_entries(piece: Piece, read_content: Callable[[str], Optional[str]]) -> List[Dict[str, Any]]:
    entries = []
    for file in piece.files:
        content = read_content(file.share_uri)
        if content is None:
            continue

        filename = piece.name
        if file.is_signed:
            filename += " (ondertekend)"
        filename += f".{file.extension}"
        entries.append({
            "@id": file.file_id,
            "@type": DISTRIBUTION_TYPE,
            "format": file.format,
            "filename": filename,
            "signed": file.is_signed,
            "previousId": file.previous_version_file_id,
            "previousPfls": file.previous_version_external_id,
            "content": content,
        })
    return entries


def build_submission_payload(
    flow: DecisionmakingFlow,
    pieces: List[Piece],
    comment: Optional[str],
    contact: Dict[str, str],
    subcase: Subcase,
    submitter: Optional[Submitter],
    read_content: Callable[[str], Optional[str]],
) -> Dict[str, Any]:
    """
    Document sent to the parliament for a case and its pieces

    File contents are embedded as base64 through read_content; files it
    can't find are left out.
    """
    return {
        "@context": JSONLD_CONTEXT,
        "pobj": flow.parliament_id,
        "comment": comment,
        "indiener": {
            "titel": submitter.title,
            "naam": submitter.last_name,
            "voornaam": submitter.first_name,
        } if submitter else None,
        "contact": contact,
        "@id": flow.decisionmaking_flow_id,
        "@type": "Besluitvormingsaangelegenheid",
        "Besluitvormingsaangelegenheid.naam": flow.display_name,
        "Besluitvormingsaangelegenheid.alternatieveNaam": subcase.title,
        "Besluitvormingsaangelegenheid.beleidsveld": [
            {"@id": field.uri, "@type": "Concept", "prefLabel": field.label}
            for field in flow.government_fields
        ],
        "@reverse": {
            "Dossier.isNeerslagVan": {
                "@id": flow.case_id,
                "@type": "Dossier",
                "Dossier.bestaatUit": [
                    {
                        "@id": piece.piece_id,
                        "@type": "Stuk",
                        "Stuk.naam": piece.name,
                        "Stuk.creatiedatum": piece.created_at.isoformat(),
                        "Stuk.type": {
                            "@id": piece.document_type,
                            "@type": "Concept",
                            "prefLabel": piece.document_type_label,
                        },
                        "Stuk.isVoorgesteldDoor": _file_entries(piece, read_content),
                    }
                    for piece in pieces
                ],
            }
        },
    }


def build_received_notification(
    parliament_id: str,
    decisionmaking_flow_id: str,
    case_id: str,
    pieces: Dict[str, List[Dict[str, str]]],
) -> Dict[str, Any]:
    """
    Acknowledgement of processed incoming files

    pieces maps a local piece id onto its files, each {"file_id", "external_id"}.
    """
    return {
        "pobj": parliament_id,
        "@id": decisionmaking_flow_id,
        "@reverse": {
            "Dossier.isNeerslagVan": {
                "@id": case_id,
                "@type": "Dossier",
                "Dossier.bestaatUit": [
                    {
                        "@id": piece_id,
                        "Stuk.isVoorgesteldDoor": [
                            {"pfls": file["external_id"], "@id": file["file_id"]} for file in files
                        ],
                    }
                    for piece_id, files in pieces.items()
                ],
            }
        },
    }
