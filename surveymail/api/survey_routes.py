"""SurveyMail — Survey API Routes."""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from fastapi.responses import Response
from pydantic import BaseModel
from sqlmodel import Session

from surveymail.analyzer.campaign_analytics import (
    list_campaigns,
    survey_email_stats,
    survey_results,
)
from surveymail.api.deps import get_campaign_config, get_transport, http_error
from surveymail.campaigns.orchestrator import CampaignOrchestrator
from surveymail.campaigns.resolver import resolve
from surveymail.config import CampaignConfig, settings
from surveymail.connectors.mail.base_transport import MailTransport
from surveymail.core.errors import SurveyMailError
from surveymail.core.logging import get_logger
from surveymail.database import get_session
from surveymail.models.survey_models import Survey
from surveymail.renderer.survey_renderer import render_survey_page
from surveymail.scheduler.jobs import campaign_send_job, enqueue_campaign_send
from surveymail.surveys.catalog import (
    create_survey,
    delete_survey,
    duplicate_survey,
    get_survey,
    get_survey_html,
    html_filename,
    list_responses,
    list_surveys,
    store_survey_html,
    update_survey,
)

logger = get_logger("api.surveys")

router = APIRouter(prefix="/api/surveys", tags=["Surveys"])


# ── Request Models ──


class SurveyPayload(BaseModel):
    """Create / update body. On update, omitted fields are left unchanged."""

    title: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    status: Optional[str] = None
    questions: Optional[List[Dict[str, Any]]] = None
    audience_criteria: Optional[Dict[str, Any]] = None
    target_count: Optional[int] = None


class CreateHtmlRequest(BaseModel):
    """Request body for POST /api/surveys/{survey_id}/create-html."""

    campaign_name: Optional[str] = None
    selected_audience: List[str] = []
    auto_send_emails: bool = True


def _survey_out(survey: Survey) -> Dict[str, Any]:
    data = survey.model_dump(mode="json", exclude={"html_content"})
    data["has_html"] = bool(survey.html_content)
    return data


# ── Endpoints ──


@router.post("")
async def create(payload: SurveyPayload, session: Session = Depends(get_session)):
    try:
        survey = create_survey(
            session, payload.model_dump(exclude_none=True), settings.default_user_id
        )
    except SurveyMailError as e:
        raise http_error(e)
    return {"status": "success", "survey": _survey_out(survey)}


@router.get("")
async def index(
    status: Optional[str] = Query(None),
    category: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    session: Session = Depends(get_session),
):
    try:
        surveys, total = list_surveys(session, status, category, page, limit)
    except SurveyMailError as e:
        raise http_error(e)
    return {
        "status": "success",
        "total": total,
        "page": page,
        "surveys": [_survey_out(s) for s in surveys],
    }


@router.get("/{survey_id}")
async def show(survey_id: str, session: Session = Depends(get_session)):
    try:
        survey = get_survey(session, survey_id)
    except SurveyMailError as e:
        raise http_error(e)
    return {"status": "success", "survey": _survey_out(survey)}


@router.put("/{survey_id}")
async def update(
    survey_id: str, payload: SurveyPayload, session: Session = Depends(get_session)
):
    try:
        survey = update_survey(session, survey_id, payload.model_dump(exclude_none=True))
    except SurveyMailError as e:
        raise http_error(e)
    return {"status": "success", "survey": _survey_out(survey)}


@router.delete("/{survey_id}")
async def destroy(survey_id: str, session: Session = Depends(get_session)):
    """Delete a survey with its responses, tracking rows, recipients and campaigns."""
    try:
        delete_survey(session, survey_id)
    except SurveyMailError as e:
        raise http_error(e)
    return {"status": "success", "message": "Survey deleted"}


@router.post("/{survey_id}/duplicate")
async def duplicate(survey_id: str, session: Session = Depends(get_session)):
    """Copy a survey into a new draft titled "<title> (Copy)"."""
    try:
        survey = duplicate_survey(session, survey_id)
    except SurveyMailError as e:
        raise http_error(e)
    return {"status": "success", "survey": _survey_out(survey)}


@router.post("/{survey_id}/create-html")
async def create_html(
    survey_id: str,
    request: CreateHtmlRequest,
    background_tasks: BackgroundTasks,
    session: Session = Depends(get_session),
    transport: MailTransport = Depends(get_transport),
    config: CampaignConfig = Depends(get_campaign_config),
):
    """Render and store the public page; optionally queue a campaign.

    A campaign is only queued for an explicit `selected_audience`.
    """
    try:
        survey = get_survey(session, survey_id)
        survey = store_survey_html(
            session, survey_id, render_survey_page(survey, config.base_url), config.base_url
        )

        campaign_id = None
        if request.auto_send_emails and request.selected_audience:
            recipients = resolve(session, survey, request.selected_audience)
            orchestrator = CampaignOrchestrator(session, transport, config)
            campaign, _ = orchestrator.create_campaign(
                survey,
                recipients,
                request.campaign_name or f"{survey.title} Campaign",
                settings.default_user_id,
            )
            campaign_id = campaign.id
            if not enqueue_campaign_send(campaign_id):
                background_tasks.add_task(campaign_send_job, campaign_id)
    except SurveyMailError as e:
        raise http_error(e)

    message = "HTML survey created successfully"
    if campaign_id:
        message += " and invitations queued"
    return {
        "status": "success",
        "survey_id": survey.id,
        "public_url": survey.public_url,
        "campaign_id": campaign_id,
        "message": message,
    }


@router.get("/{survey_id}/details")
async def details(survey_id: str, session: Session = Depends(get_session)):
    """Survey plus email statistics summed over its campaigns."""
    try:
        survey = get_survey(session, survey_id)
    except SurveyMailError as e:
        raise http_error(e)

    campaigns = list_campaigns(session, survey_id)
    return {
        "status": "success",
        "survey": _survey_out(survey),
        "public_url": survey.public_url if survey.html_content else None,
        "email_stats": survey_email_stats(session, survey_id),
        "campaigns": [
            {
                "id": c.id,
                "name": c.campaign_name,
                "sent_count": c.sent_count,
                "opened_count": c.opened_count,
                "status": c.status.value,
                "sent_at": c.sent_at,
            }
            for c in campaigns
        ],
    }


@router.get("/{survey_id}/results")
async def results(survey_id: str, session: Session = Depends(get_session)):
    """Answer distributions computed from stored responses."""
    try:
        summary = survey_results(session, survey_id)
    except SurveyMailError as e:
        raise http_error(e)
    return {"status": "success", "results": summary}


@router.get("/{survey_id}/responses")
async def responses(
    survey_id: str,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    session: Session = Depends(get_session),
):
    """Stored submissions, newest first."""
    try:
        rows, total = list_responses(session, survey_id, page, limit)
    except SurveyMailError as e:
        raise http_error(e)
    return {
        "status": "success",
        "total": total,
        "page": page,
        "pages": (total + limit - 1) // limit,
        "responses": [
            {
                "id": r.id,
                "submitted_at": r.submitted_at,
                "completion_time": r.completion_time,
                "answers": r.answers,
                "audience_member_id": r.audience_member_id,
            }
            for r in rows
        ],
    }


@router.get("/{survey_id}/download-html")
async def download_html(survey_id: str, session: Session = Depends(get_session)):
    """The stored public page as a file attachment."""
    try:
        survey, html = get_survey_html(session, survey_id)
    except SurveyMailError as e:
        raise http_error(e)
    return Response(
        content=html,
        media_type="text/html",
        headers={
            "Content-Disposition": f'attachment; filename="{html_filename(survey.title)}"'
        },
    )
