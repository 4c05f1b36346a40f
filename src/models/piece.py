"""
Piece and file Pydantic models
"""

from typing import List, Optional
from datetime import datetime
from pydantic import BaseModel


class PieceFile(BaseModel):
    """One physical representation of a piece"""
    file_id: str
    format: str
    extension: str
    share_uri: str
    is_pdf: bool = False
    is_word: bool = False
    is_signed: bool = False
    previous_version_file_id: Optional[str] = None
    previous_version_external_id: Optional[str] = None
    external_id: Optional[str] = None


class Piece(BaseModel):
    piece_id: str
    name: str
    created_at: datetime
    document_type: Optional[str] = None
    document_type_label: Optional[str] = None
    access_level: Optional[str] = None
    files: List[PieceFile] = []


class PreviousSubmission(BaseModel):
    """Ledger entry of the already-submitted previous version of a piece"""
    piece_id: str
    previous_piece_id: str
    unsigned_file_id: Optional[str] = None
    unsigned_file_external_id: Optional[str] = None
    word_file_id: Optional[str] = None
    word_file_external_id: Optional[str] = None
    signed_file_id: Optional[str] = None
    signed_file_external_id: Optional[str] = None
