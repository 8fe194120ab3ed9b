"""SurveyMail — Campaign & Survey Analytics Schemas."""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from surveymail.core.status import CampaignStatus, RecipientStatus


# ─────────────────────────────────────────────
# SEND RESULTS
# ─────────────────────────────────────────────


class SendResult(BaseModel):
    """Outcome of one pass of the send loop."""

    sent: int = 0
    failed: int = 0
    errors: List[str] = []


class CampaignSendResult(SendResult):
    """Send loop outcome plus the campaign it belongs to."""

    campaign_id: str
    status: CampaignStatus


# ─────────────────────────────────────────────
# CAMPAIGN ANALYTICS
# ─────────────────────────────────────────────


class CampaignSummary(BaseModel):
    """Campaign row as exposed over the API."""

    id: str
    survey_id: str
    user_id: str
    campaign_name: str
    recipient_count: int
    sent_count: int
    failed_count: int
    opened_count: int
    responded_count: int
    status: CampaignStatus
    created_at: datetime
    sent_at: Optional[datetime] = None


class RecipientDetail(BaseModel):
    """Recipient row joined with the member's name."""

    id: str
    audience_member_id: str
    email: str
    tracking_id: str
    status: RecipientStatus
    first_name: str = ""
    last_name: str = ""
    sent_at: Optional[datetime] = None
    opened_at: Optional[datetime] = None
    responded_at: Optional[datetime] = None
    error_message: Optional[str] = None


class CampaignStats(BaseModel):
    """Recipient-status rollup. Rates are integer percentages of `sent`."""

    total: int = 0
    sent: int = 0
    failed: int = 0
    opened: int = 0
    responded: int = 0
    open_rate: int = 0
    response_rate: int = 0


class CampaignAnalytics(BaseModel):
    campaign: CampaignSummary
    recipients: List[RecipientDetail] = []
    stats: CampaignStats = CampaignStats()


# ─────────────────────────────────────────────
# SURVEY ROLLUPS
# ─────────────────────────────────────────────


class SurveyEmailStats(BaseModel):
    """Campaign counters summed across every campaign of a survey."""

    total_sent: int = 0
    total_opened: int = 0
    total_failed: int = 0
    total_responded: int = 0
    open_rate: int = 0
    response_rate: int = 0
    campaign_count: int = 0


class QuestionSummary(BaseModel):
    """Answer distribution for one question."""

    id: str
    prompt: str = ""
    type: str = ""
    answer_count: int = 0
    distribution: Dict[str, int] = {}


class SurveyResults(BaseModel):
    """Aggregates computed from stored responses only."""

    survey_id: str
    title: str
    total_responses: int = 0
    average_completion_time: float = 0.0
    questions: List[QuestionSummary] = []
    email_stats: SurveyEmailStats = SurveyEmailStats()
