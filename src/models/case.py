"""
Case-management Pydantic models
"""

from typing import List, Optional
from datetime import datetime
from pydantic import BaseModel


class GovernmentField(BaseModel):
    uri: str
    label: str


class DecisionmakingFlow(BaseModel):
    decisionmaking_flow_id: str
    case_id: str
    name: Optional[str] = None
    alt_name: Optional[str] = None
    government_fields: List[GovernmentField] = []
    parliament_flow_id: Optional[str] = None
    parliament_id: Optional[str] = None

    @property
    def display_name(self) -> Optional[str]:
        # name is usually left empty by the frontend
        return self.name or self.alt_name


class Subcase(BaseModel):
    subcase_id: str
    title: Optional[str] = None
    created_at: datetime


class Submitter(BaseModel):
    title: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None


class User(BaseModel):
    user_id: str
    first_name: Optional[str] = None
    family_name: Optional[str] = None
    email: Optional[str] = None

    @property
    def contact(self) -> dict:
        return {
            "name": f"{self.first_name or ''} {self.family_name or ''}".strip(),
            "email": (self.email or "").replace("mailto:", ""),
        }
