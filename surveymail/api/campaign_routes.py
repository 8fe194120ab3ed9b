"""SurveyMail — Campaign API Routes."""

from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from pydantic import BaseModel
from sqlmodel import Session

from surveymail.analyzer.campaign_analytics import (
    campaign_analytics,
    get_campaign,
    list_campaigns,
)
from surveymail.api.deps import get_campaign_config, get_transport, http_error
from surveymail.campaigns.orchestrator import CampaignOrchestrator
from surveymail.campaigns.resolver import resolve
from surveymail.config import CampaignConfig, settings
from surveymail.connectors.mail.base_transport import MailTransport
from surveymail.core.errors import SurveyMailError
from surveymail.core.logging import get_logger
from surveymail.database import get_session
from surveymail.scheduler.jobs import campaign_send_job, enqueue_campaign_send
from surveymail.surveys.catalog import get_survey

logger = get_logger("api.campaigns")

router = APIRouter(tags=["Campaigns"])


# ── Request / Response Models ──


class SendSurveyRequest(BaseModel):
    """Request body for POST /api/surveys/{survey_id}/send."""

    campaign_name: Optional[str] = None
    selected_audience: List[str] = []
    """Explicit audience-member ids. Empty → use the survey's targeting criteria."""
    background: bool = False
    """Queue the send and return immediately."""

    model_config = {
        "json_schema_extra": {
            "examples": [
                {"campaign_name": "Q3 pulse", "selected_audience": []},
                {"selected_audience": ["<member-id>"], "background": True},
            ]
        }
    }


class SendSurveyResponse(BaseModel):
    status: str = "success"
    campaign_id: str
    campaign_status: str
    sent_count: int = 0
    failed_count: int = 0
    total_recipients: int = 0
    errors: List[str] = []
    message: str = ""


# ── Endpoints ──


@router.post("/api/surveys/{survey_id}/send", response_model=SendSurveyResponse)
async def send_survey(
    survey_id: str,
    request: SendSurveyRequest,
    background_tasks: BackgroundTasks,
    session: Session = Depends(get_session),
    transport: MailTransport = Depends(get_transport),
    config: CampaignConfig = Depends(get_campaign_config),
):
    """Create a campaign for a survey and send the invitations.

    Per-recipient delivery failures do not fail the request; they are
    reported in `failed_count` and `errors`.
    """
    try:
        survey = get_survey(session, survey_id)
        recipients = resolve(session, survey, request.selected_audience)
        orchestrator = CampaignOrchestrator(session, transport, config)
        name = request.campaign_name or f"Campaign for {survey.title}"

        if request.background:
            campaign, _ = orchestrator.create_campaign(
                survey, recipients, name, settings.default_user_id
            )
            if not enqueue_campaign_send(campaign.id):
                background_tasks.add_task(campaign_send_job, campaign.id)
            return SendSurveyResponse(
                campaign_id=campaign.id,
                campaign_status="queued",
                total_recipients=len(recipients),
                message=f"Survey campaign queued for {len(recipients)} recipients",
            )

        result = await orchestrator.create_campaign_and_send(
            survey, recipients, name, settings.default_user_id
        )
    except SurveyMailError as e:
        raise http_error(e)

    return SendSurveyResponse(
        campaign_id=result.campaign_id,
        campaign_status=result.status.value,
        sent_count=result.sent,
        failed_count=result.failed,
        total_recipients=len(recipients),
        errors=result.errors,
        message=f"Survey campaign created and sent to {result.sent} recipients",
    )


@router.get("/api/campaigns")
async def get_all_campaigns(session: Session = Depends(get_session)):
    """List every campaign, newest first."""
    campaigns = list_campaigns(session)
    return {"status": "success", "count": len(campaigns), "campaigns": campaigns}


@router.get("/api/surveys/{survey_id}/campaigns")
async def get_survey_campaigns(survey_id: str, session: Session = Depends(get_session)):
    """List a survey's campaigns, newest first."""
    campaigns = list_campaigns(session, survey_id)
    return {"status": "success", "count": len(campaigns), "campaigns": campaigns}


@router.get("/api/campaigns/{campaign_id}")
async def get_campaign_detail(campaign_id: str, session: Session = Depends(get_session)):
    try:
        campaign = get_campaign(session, campaign_id)
    except SurveyMailError as e:
        raise http_error(e)
    return {"status": "success", "campaign": campaign}


@router.get("/api/campaigns/{campaign_id}/analytics")
async def get_campaign_analytics(campaign_id: str, session: Session = Depends(get_session)):
    """Campaign row, recipient rows and open/response stats."""
    try:
        analytics = campaign_analytics(session, campaign_id)
    except SurveyMailError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Analytics failed: {e}", extra={"campaign_id": campaign_id})
        raise HTTPException(status_code=500, detail=f"Analytics failed: {str(e)}")
    return {"status": "success", **analytics.model_dump(mode="json")}
