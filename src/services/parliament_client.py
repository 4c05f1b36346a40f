"""
Parliament API client - typed calls against the parliamentary intake service
"""

import base64
import logging
from datetime import datetime, timezone
from pathlib import Path, PurePosixPath
from typing import Any, Dict, List, Optional

import httpx

from config import settings
from models.enums import AgendaItemType, DocumentType, SubcaseType
from models.parliament import (
    AccessToken,
    IncomingDocument,
    IncomingFileGroup,
    IncomingRepresentation,
    StatusHistory,
    SubmissionResponse,
    SubmittedFlowEntry,
)
from services.token_cache import AccessTokenCache
from utils.errors import RemoteSubmissionFailure, TransientIOFailure

logger = logging.getLogger(__name__)

DOCUMENT_TYPE_MAPPING = {
    "perkament decreet": DocumentType.DECREE,
    "perkament resolutie": DocumentType.RESOLUTION,
    "perkament motie": DocumentType.MOTION,
    "verwijzingsblad": DocumentType.REFERRAL_SHEET,
    "bijlage": DocumentType.ATTACHMENT,
}


class ParliamentClient:
    """Client for the parliament API. Every call carries the cached bearer token."""

    def __init__(
        self,
        base_url: str,
        client_id: Optional[str],
        client_secret: Optional[str],
        timeout: float = 60.0,
        token_cache: Optional[AccessTokenCache] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        mock_received_notifications: bool = False,
        mock_incoming_flows: bool = False,
        mock_files_directory: str = "/app/files",
    ):
        self.base_url = base_url if base_url.endswith("/") else f"{base_url}/"
        self.client_id = client_id
        self.client_secret = client_secret
        self.timeout = timeout
        self.mock_received_notifications = mock_received_notifications
        self.mock_incoming_flows = mock_incoming_flows
        self.mock_files_directory = mock_files_directory
        self._http = http_client
        self.token_cache = token_cache or AccessTokenCache(
            self.fetch_token,
            expiry_margin=settings.TOKEN_EXPIRY_MARGIN,
            error_expire_time=settings.TOKEN_ERROR_EXPIRE_TIME,
        )

    def _client(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(timeout=self.timeout)
        return self._http

    async def close(self):
        if self._http is not None:
            await self._http.aclose()
            self._http = None

    async def fetch_token(self) -> Optional[AccessToken]:
        """Request a new access token with the client credentials grant"""
        logger.info("Requesting new access token...")
        try:
            response = await self._client().post(
                f"{self.base_url}api/kaleidos/oauth/token",
                auth=(self.client_id or "", self.client_secret or ""),
                data={"grant_type": "client_credentials"},
            )
        except httpx.HTTPError as e:
            logger.error(f"Failed to retrieve access token: {e}")
            return None

        if not response.is_success:
            logger.error(f"Failed to retrieve access token: {response.status_code} {response.reason_phrase}")
            return None
        return AccessToken.model_validate(response.json())

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        token = await self.token_cache.get_token()
        headers = {**kwargs.pop("headers", {}), "Authorization": f"Bearer {token}"}
        try:
            response = await self._client().request(method, f"{self.base_url}{path}", headers=headers, **kwargs)
        except httpx.HTTPError as e:
            raise TransientIOFailure(f"{method} {path} failed: {e}") from e

        if response.status_code == 401:
            self.token_cache.invalidate()
        return response

    async def ping(self) -> bool:
        """Check that the API is online and accepts our credentials"""
        response = await self._request("GET", "api/kaleidos/v1/ping")
        return response.is_success

    async def submit(self, document: Dict[str, Any]) -> SubmissionResponse:
        """
        Send a case with its pieces to the parliament

        Raises:
            RemoteSubmissionFailure: when the API does not accept the document
        """
        response = await self._request("POST", "api/kaleidos/v1/document", json=document)
        if not response.is_success:
            message = _error_message(response)
            logger.error(f"Error sending dossier: {response.status_code} {message}")
            raise RemoteSubmissionFailure(response.status_code, message)

        logger.info("Dossier successfully sent")
        return SubmissionResponse.model_validate(response.json())

    async def fetch_status_history(self, parliament_id: str) -> Optional[StatusHistory]:
        """Status history of one flow, None when the parliament has none (yet)"""
        response = await self._request("GET", f"api/kaleidos/v1/status/{parliament_id}")
        if not response.is_success:
            logger.warning(f"Fetching status of {parliament_id} returned {response.status_code}")
            return None

        body = response.json()
        if not body or not body.get("statussen"):
            return None
        return StatusHistory.model_validate(body)

    async def fetch_submitted_list(self, since_days: Optional[int] = None) -> List[SubmittedFlowEntry]:
        params = {"dagen": since_days} if since_days else None
        response = await self._request("GET", "api/kaleidos/v1/status/ingediend", params=params)
        if not response.is_success:
            raise TransientIOFailure(
                f"Fetching submitted flows failed: {response.status_code} {response.reason_phrase}"
            )
        documents = (response.json() or {}).get("documenten") or []
        return [SubmittedFlowEntry.model_validate(entry) for entry in documents]

    async def fetch_incoming_list(self) -> List[IncomingDocument]:
        if self.mock_incoming_flows:
            logger.info(f"Mocking enabled, using the sample incoming listing from {self.mock_files_directory}")
            return transform_incoming_documents(mock_incoming_listing(self.mock_files_directory)["documenten"])

        response = await self._request("GET", "api/kaleidos/v1/kanselarij")
        if not response.is_success:
            raise TransientIOFailure(
                f"Fetching incoming flows failed: {response.status_code} {response.reason_phrase}"
            )
        documents = (response.json() or {}).get("documenten") or []
        return transform_incoming_documents(documents)

    async def acknowledge_received(self, payload: Dict[str, Any]):
        """Tell the parliament which of its documents we processed"""
        if self.mock_received_notifications:
            logger.info(f"Mocking enabled, not acknowledging received documents for {payload.get('pobj')}")
            return

        response = await self._request("POST", "api/kaleidos/v1/verwerkt", json=payload)
        if not response.is_success:
            raise TransientIOFailure(
                f"Acknowledging received documents failed: {response.status_code} {response.reason_phrase}"
            )
        logger.info("Notification about received documents successfully sent")


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.reason_phrase
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return error["message"]
        if body.get("message"):
            return body["message"]
    return response.reason_phrase


def transform_incoming_documents(documents: List[Dict[str, Any]]) -> List[IncomingDocument]:
    """
    Turn the parliament's listing into incoming documents

    Files without content are skipped, files sharing a base name are grouped
    as representations of one document, and documents without any file are
    dropped. A malformed entry is logged and left out.
    """
    transformed = []
    for doc in documents:
        try:
            document = _transform_document(doc)
        except (KeyError, TypeError, ValueError) as e:
            pobj = doc.get("pobj") if isinstance(doc, dict) else None
            logger.error(f"Skipping malformed incoming document {pobj}: {e!r}")
            continue
        if document is not None:
            transformed.append(document)
    return transformed


def _transform_document(doc: Dict[str, Any]) -> Optional[IncomingDocument]:
    subcase_type = SubcaseType.FINAL_APPROVAL
    agenda_item_type = AgendaItemType.ANNOUNCEMENT
    groups: Dict[str, IncomingFileGroup] = {}

    for file in doc.get("bestanden") or []:
        content = file.get("base64")
        if not content:
            continue

        file_name = file["bestandsnaam"]
        path = PurePosixPath(file_name)
        extension = path.suffix[1:]
        file_type = file.get("type") or ""
        document_type = DOCUMENT_TYPE_MAPPING.get(file_type.lower())
        comment = f"[{file_type} ({extension})] {file['opmerking']}" if file.get("opmerking") else ""

        if document_type == DocumentType.DECREE:
            subcase_type = SubcaseType.RATIFICATION
            agenda_item_type = AgendaItemType.NOTE

        group = groups.get(path.stem)
        if group is None:
            group = IncomingFileGroup(
                base_name=path.stem,
                document_type=document_type.value if document_type else None,
            )
            groups[path.stem] = group
        group.representations.append(IncomingRepresentation(
            external_id=str(file["pfls"]),
            file_id=file.get("kaleidos-id"),
            file_name=file_name,
            extension=extension,
            mime_type=file.get("mimetype") or "",
            content=content,
            comment=comment,
        ))

    if not groups:
        return None

    if doc.get("datum"):
        opening_date = datetime.fromisoformat(doc["datum"].replace("Z", "+00:00"))
    else:
        opening_date = datetime.now(timezone.utc)
    # 'onderwerp' holds the subject, which serves as our short title
    return IncomingDocument(
        parliament_id=str(doc["pobj"]),
        case_id=doc.get("kaleidos-id"),
        title=None,
        short_title=doc.get("onderwerp") or doc.get("titel"),
        opening_date=opening_date,
        themes=doc.get("themas") or [],
        subcase_type=subcase_type,
        agenda_item_type=agenda_item_type,
        file_groups=list(groups.values()),
    )


def mock_incoming_listing(files_directory: str) -> Dict[str, Any]:
    """
    A fixed incoming listing for test environments without access to the parliament

    File content is read from files_directory. Files that are not there are
    listed without content.
    """
    directory = Path(files_directory)

    def sample(pfls: str, file_type: str, mime_type: str, file_name: str, source: str, remark=None):
        file = {"pfls": pfls, "type": file_type, "mimetype": mime_type, "bestandsnaam": file_name}
        if remark:
            file["opmerking"] = remark
        path = directory / source
        if path.is_file():
            file["base64"] = base64.b64encode(path.read_bytes()).decode("ascii")
        else:
            logger.warning(f"Sample file {path} not found, listing {file_name} without content")
        return file

    return {
        "documenten": [{
            "pobj": "1234",
            "type": "Ontwerp van decreet",
            "onderwerp": "over open scholen",
            "titel": "Ontwerp van decreet over open scholen",
            "citeertitel": "Open scholen",
            "datum": "2024-03-07T10:00:00Z",
            "bevoegdheidsdomein": "Onderwijs",
            "themas": ["Onderwijs en Vorming", "Media"],
            "bevoegdheid": "gewest",
            "bestanden": [
                sample("11", "Perkament decreet", "application/pdf", "1746_Perkament.pdf",
                       "Open scholen decreet.pdf", "een typfoutje in het document"),
                sample("2", "Perkament decreet",
                       "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
                       "1746_Perkament.docx", "Open scholen decreet.docx", "Deze word is scheef gescand"),
                sample("3", "Verwijzingsblad", "application/pdf", "1746_Verwijzingsfiche.pdf",
                       "ander test bestand.pdf", "Dit document is ter vervanging van het vorige"),
                sample("4", "Bijlage", "application/pdf", "Bijlage1.pdf", "ander test bestand.pdf"),
                sample("5", "Bijlage", "application/pdf", "Bijlage2.pdf", "ander test bestand.pdf"),
            ],
        }]
    }



_parliament_client: Optional[ParliamentClient] = None


def get_parliament_client() -> ParliamentClient:
    """Get the global parliament client instance"""
    global _parliament_client
    if _parliament_client is None:
        _parliament_client = ParliamentClient(
            base_url=settings.PARLIAMENT_API_URL,
            client_id=settings.PARLIAMENT_API_CLIENT_ID,
            client_secret=settings.PARLIAMENT_API_CLIENT_SECRET,
            timeout=settings.PARLIAMENT_API_TIMEOUT,
            mock_received_notifications=settings.ENABLE_MOCK_RECEIVED_NOTIFICATIONS,
            mock_incoming_flows=settings.ENABLE_MOCK_INCOMING_FLOWS,
            mock_files_directory=settings.MOCK_FILES_DIRECTORY,
        )
    return _parliament_client
