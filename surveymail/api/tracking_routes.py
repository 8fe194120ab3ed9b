"""SurveyMail — Tracking & Public Survey Routes.

These endpoints are hit by mail clients and anonymous browsers. Tracking
side effects never turn into an error response.
"""

import base64
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import HTMLResponse, Response
from pydantic import BaseModel
from sqlmodel import Session

from surveymail.api.deps import client_info, get_campaign_config, http_error
from surveymail.config import CampaignConfig
from surveymail.core.errors import SurveyMailError, SurveyNotFoundError, ValidationError
from surveymail.core.logging import get_logger
from surveymail.database import get_session
from surveymail.renderer.survey_renderer import render_survey_page
from surveymail.surveys.catalog import get_survey, record_response
from surveymail.tracking.correlator import (
    track_email_open,
    track_response,
    track_survey_access,
)

logger = get_logger("api.tracking")

router = APIRouter(tags=["Tracking"])

TRANSPARENT_PIXEL = base64.b64decode(
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNkYPhfDwAChwGA60e6kgAAAABJRU5ErkJggg=="
)
NO_CACHE_HEADERS = {
    "Cache-Control": "no-cache, no-store, must-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}
NOT_FOUND_PAGE = "<h1>Survey not found</h1><p>The requested survey could not be found.</p>"


# ── Request Models ──


class SubmitResponseRequest(BaseModel):
    """Request body for POST /api/public/survey/{survey_id}/submit."""

    answers: Optional[List[Any]] = None
    completion_time: int = 0
    respondent_info: Dict[str, Any] = {}
    tracking_id: Optional[str] = None


# ── Helpers ──


def _safe_access(
    session: Session,
    survey_id: str,
    tracking_id: Optional[str],
    request: Request,
) -> None:
    ip, user_agent = client_info(request)
    try:
        track_survey_access(session, survey_id, tracking_id, ip, user_agent)
    except Exception as e:
        session.rollback()
        logger.warning(
            f"Survey access tracking failed: {e}",
            extra={"survey_id": survey_id, "tracking_id": tracking_id},
        )


# ── Endpoints ──


@router.get("/api/track/open/{tracking_id}", include_in_schema=False)
async def track_open(
    tracking_id: str, request: Request, session: Session = Depends(get_session)
):
    """Open-tracking pixel. Always a 1x1 PNG."""
    ip, user_agent = client_info(request)
    try:
        track_email_open(session, tracking_id, ip, user_agent)
    except Exception as e:
        session.rollback()
        logger.warning(f"Open tracking failed: {e}", extra={"tracking_id": tracking_id})
    return Response(
        content=TRANSPARENT_PIXEL, media_type="image/png", headers=NO_CACHE_HEADERS
    )


@router.get("/survey/{survey_id}", response_class=HTMLResponse, include_in_schema=False)
async def public_survey_page(
    survey_id: str,
    request: Request,
    t: Optional[str] = Query(None, description="Tracking token"),
    session: Session = Depends(get_session),
    config: CampaignConfig = Depends(get_campaign_config),
):
    """Serve the public survey page and record the visit."""
    try:
        survey = get_survey(session, survey_id)
    except SurveyNotFoundError:
        return HTMLResponse(NOT_FOUND_PAGE, status_code=404)

    html = survey.html_content or render_survey_page(survey, config.base_url)
    _safe_access(session, survey_id, t, request)
    return HTMLResponse(html)


@router.get("/api/public/survey/{survey_id}")
async def public_survey_data(
    survey_id: str,
    request: Request,
    t: Optional[str] = Query(None, description="Tracking token"),
    session: Session = Depends(get_session),
):
    """Public form data for a survey; records the visit."""
    try:
        survey = get_survey(session, survey_id)
    except SurveyMailError as e:
        raise http_error(e)

    public = {
        "id": survey.id,
        "title": survey.title,
        "description": survey.description,
        "category": survey.category,
        "questions": survey.questions,
        "status": survey.status.value,
    }
    _safe_access(session, survey_id, t, request)
    return {"status": "success", "survey": public}


@router.post("/api/public/survey/{survey_id}/submit")
async def submit_survey_response(
    survey_id: str,
    body: SubmitResponseRequest,
    request: Request,
    session: Session = Depends(get_session),
):
    """Store a submission; tie it to the invitation when a token is present."""
    try:
        get_survey(session, survey_id)
    except SurveyMailError as e:
        raise http_error(e)
    if not isinstance(body.answers, list):
        raise http_error(ValidationError("Answers are required"))

    member_id = None
    if body.tracking_id:
        try:
            recipient = track_response(session, survey_id, body.tracking_id)
            member_id = recipient.audience_member_id if recipient else None
        except Exception as e:
            session.rollback()
            logger.warning(
                f"Response correlation failed: {e}",
                extra={"survey_id": survey_id, "tracking_id": body.tracking_id},
            )

    ip, _ = client_info(request)
    try:
        response = record_response(
            session,
            survey_id,
            body.answers,
            completion_time=body.completion_time,
            ip_address=ip,
            respondent_info=body.respondent_info,
            audience_member_id=member_id,
        )
    except SurveyMailError as e:
        raise http_error(e)

    return {
        "status": "success",
        "id": response.id,
        "message": "Survey response submitted successfully",
        "submitted_at": response.submitted_at.isoformat(),
    }


@router.get("/api/public/survey/{survey_id}/thank-you")
async def thank_you(survey_id: str, session: Session = Depends(get_session)):
    try:
        survey = get_survey(session, survey_id)
    except SurveyMailError as e:
        raise http_error(e)
    return {
        "status": "success",
        "title": survey.title,
        "message": "Thank you for completing the survey!",
        "category": survey.category,
    }
