"""SurveyMail — Survey, Audience & Response Models.

Surveys and audience members are maintained by plain CRUD; the campaign
subsystem only reads them and bumps the survey's rolling counters.
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import JSON, Column, Text
from sqlmodel import SQLModel, Field

from surveymail.core.status import SurveyStatus


def _new_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AudienceMember(SQLModel, table=True):
    """A contact that can be invited to surveys."""

    __tablename__ = "audience_members"

    id: str = Field(default_factory=_new_id, primary_key=True)
    user_id: str = Field(default="default-user", index=True)
    first_name: str = ""
    last_name: str = ""
    email: str = Field(index=True)
    phone: str = ""
    age_group: str = Field(default="", index=True)
    gender: str = Field(default="", index=True)
    city: str = ""
    state: str = ""
    country: str = Field(default="", index=True)
    industry: str = Field(default="", index=True)
    job_title: str = ""
    education: str = ""
    income: str = ""
    is_active: bool = True
    tags: List[str] = Field(default_factory=list, sa_column=Column(JSON))
    joined_date: datetime = Field(default_factory=_utcnow)
    last_activity: Optional[datetime] = None
    created_at: datetime = Field(default_factory=_utcnow)

    @property
    def display_name(self) -> str:
        name = f"{self.first_name} {self.last_name}".strip()
        return name or "Valued Participant"


class Survey(SQLModel, table=True):
    """A survey definition plus its rolling email/response counters."""

    __tablename__ = "surveys"

    id: str = Field(default_factory=_new_id, primary_key=True)
    user_id: str = Field(default="default-user", index=True)
    title: str
    description: str = ""
    category: str = Field(index=True)
    status: SurveyStatus = Field(default=SurveyStatus.DRAFT)
    questions: List[Dict[str, Any]] = Field(
        default_factory=list, sa_column=Column(JSON)
    )
    audience_criteria: Dict[str, Any] = Field(
        default_factory=dict, sa_column=Column(JSON)
    )
    target_count: Optional[int] = None
    html_content: Optional[str] = Field(default=None, sa_column=Column(Text))
    public_url: Optional[str] = None
    emails_sent: int = 0
    emails_opened: int = 0
    response_count: int = 0
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


class SurveyResponse(SQLModel, table=True):
    """One submission. Immutable after insert."""

    __tablename__ = "survey_responses"

    id: str = Field(default_factory=_new_id, primary_key=True)
    survey_id: str = Field(foreign_key="surveys.id", index=True)
    audience_member_id: Optional[str] = Field(
        default=None, foreign_key="audience_members.id"
    )
    answers: List[Any] = Field(default_factory=list, sa_column=Column(JSON))
    completion_time: int = 0
    ip_address: Optional[str] = None
    respondent_info: Dict[str, Any] = Field(
        default_factory=dict, sa_column=Column(JSON)
    )
    submitted_at: datetime = Field(default_factory=_utcnow)
