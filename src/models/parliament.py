"""
Parliament-side Pydantic models: local flow records and the API's response shapes
"""

from typing import List, Optional
from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field
from models.enums import ParliamentFlowStatus, SubcaseType, AgendaItemType

PDF_MIME_TYPE = "application/pdf"
WORD_MIME_TYPES = (
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "application/msword",
)


class ParliamentFlow(BaseModel):
    parliament_flow_id: str
    parliament_id: Optional[str] = None
    status: Optional[ParliamentFlowStatus] = None
    case_id: str
    decisionmaking_flow_id: Optional[str] = None
    opened_at: Optional[datetime] = None


class ParliamentSubcase(BaseModel):
    parliament_subcase_id: str
    parliament_flow_id: str
    started_at: datetime


class RetrievedFile(BaseModel):
    """An incoming representation once its content is on the share"""
    file_name: str
    extension: str
    mime_type: str
    size: int
    share_uri: str
    external_id: str


class RetrievedPiece(BaseModel):
    """
    Ledger row of one retrieved file

    A row is finished once it is acknowledged and, when it created a new
    piece, that piece belongs to a retrieval activity.
    """
    retrieved_piece_id: str
    parliament_subcase_id: str
    piece_id: str
    file_id: str
    external_file_id: str
    file_name: str
    is_new_piece: bool = True
    retrieval_activity_id: Optional[str] = None
    acknowledged: bool = False

    @property
    def needs_activity(self) -> bool:
        return self.is_new_piece and self.retrieval_activity_id is None


# Parliament API responses

class AccessToken(BaseModel):
    access_token: str
    expires_in: int


class SubmittedFile(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    file_id: str = Field(..., alias="id")
    external_id: str = Field(..., alias="pfls")


class SubmissionResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    parliament_id: str = Field(..., alias="pobj")
    files: List[SubmittedFile] = []
    mocked: bool = Field(False, alias="MOCKED")


class StatusEvent(BaseModel):
    status: str
    date: Optional[datetime] = Field(None, alias="datum")

    model_config = ConfigDict(populate_by_name=True)


class StatusHistory(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    events: List[StatusEvent] = Field(default_factory=list, alias="statussen")

    def has_status(self, external_status: str) -> bool:
        return any(event.status == external_status for event in self.events)


class SubmittedFlowEntry(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    parliament_id: str = Field(..., alias="pobj")
    previous_parliament_id: Optional[str] = Field(None, alias="vorig-pobj")


# Incoming documents, after grouping their files on base name

class IncomingRepresentation(BaseModel):
    external_id: str
    file_id: Optional[str] = None
    file_name: str
    extension: str
    mime_type: str
    content: str
    comment: str = ""

    @property
    def is_pdf(self) -> bool:
        return self.mime_type == PDF_MIME_TYPE or self.extension.lower() == "pdf"

    @property
    def is_word(self) -> bool:
        return self.mime_type in WORD_MIME_TYPES or self.extension.lower() in ("doc", "docx")


class IncomingFileGroup(BaseModel):
    base_name: str
    document_type: Optional[str] = None
    representations: List[IncomingRepresentation] = []


class IncomingDocument(BaseModel):
    parliament_id: str
    case_id: Optional[str] = None
    title: Optional[str] = None
    short_title: Optional[str] = None
    opening_date: datetime
    themes: List[str] = []
    subcase_type: SubcaseType = SubcaseType.FINAL_APPROVAL
    agenda_item_type: AgendaItemType = AgendaItemType.ANNOUNCEMENT
    file_groups: List[IncomingFileGroup] = []
