"""SurveyMail — Campaign, Recipient & Tracking Models.

One EmailRecipient row per (campaign, audience member). The tracking_id
is the correlation key for every pixel hit and page visit; it is unique
across all campaigns and never reassigned.
"""

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlmodel import SQLModel, Field, UniqueConstraint

from surveymail.core.status import CampaignStatus, RecipientStatus


def _new_id() -> str:
    return str(uuid.uuid4())


def new_tracking_id() -> str:
    """Opaque, globally unique tracking token."""
    return uuid.uuid4().hex


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EmailCampaign(SQLModel, table=True):
    """One batch send of a survey."""

    __tablename__ = "email_campaigns"

    id: str = Field(default_factory=_new_id, primary_key=True)
    survey_id: str = Field(foreign_key="surveys.id", index=True)
    user_id: str = Field(default="default-user")
    campaign_name: str
    recipient_count: int = 0
    sent_count: int = 0
    failed_count: int = 0
    opened_count: int = 0
    responded_count: int = 0
    status: CampaignStatus = Field(default=CampaignStatus.DRAFT)
    created_at: datetime = Field(default_factory=_utcnow)
    sent_at: Optional[datetime] = None


class EmailRecipient(SQLModel, table=True):
    """An audience member's participation in one campaign."""

    __tablename__ = "email_recipients"
    __table_args__ = (
        UniqueConstraint(
            "campaign_id", "audience_member_id", name="uq_recipient_campaign_member"
        ),
    )

    id: str = Field(default_factory=_new_id, primary_key=True)
    campaign_id: str = Field(foreign_key="email_campaigns.id", index=True)
    audience_member_id: str = Field(foreign_key="audience_members.id", index=True)
    email: str
    tracking_id: str = Field(
        default_factory=new_tracking_id, unique=True, index=True
    )
    status: RecipientStatus = Field(default=RecipientStatus.PENDING)
    sent_at: Optional[datetime] = None
    opened_at: Optional[datetime] = None
    responded_at: Optional[datetime] = None
    error_message: Optional[str] = None


class SurveyTracking(SQLModel, table=True):
    """Append-only log of pixel opens and survey page visits."""

    __tablename__ = "survey_tracking"

    id: str = Field(default_factory=_new_id, primary_key=True)
    survey_id: str = Field(foreign_key="surveys.id", index=True)
    recipient_id: Optional[str] = Field(
        default=None, foreign_key="email_recipients.id", index=True
    )
    tracking_id: str = Field(index=True)
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    opened_at: datetime = Field(default_factory=_utcnow)
