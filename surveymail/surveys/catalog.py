"""SurveyMail — Survey Catalog.

Survey CRUD, public page storage and response intake. Deleting a survey
removes its dependants in FK order inside one transaction.
"""

import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import delete, func, update
from sqlmodel import Session, select

from surveymail.core.errors import NotFoundError, SurveyNotFoundError, ValidationError
from surveymail.core.logging import get_logger
from surveymail.core.status import SurveyStatus
from surveymail.database import persistence_errors
from surveymail.models.campaign_models import EmailCampaign, EmailRecipient, SurveyTracking
from surveymail.models.survey_models import Survey, SurveyResponse

logger = get_logger("surveys.catalog")

EDITABLE_FIELDS = (
    "title",
    "description",
    "category",
    "status",
    "questions",
    "audience_criteria",
    "target_count",
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_status(value: Any) -> SurveyStatus:
    try:
        return SurveyStatus(value)
    except ValueError:
        raise ValidationError(f"Unknown survey status: {value}")


def get_survey(session: Session, survey_id: str) -> Survey:
    survey = session.get(Survey, survey_id)
    if survey is None:
        raise SurveyNotFoundError(survey_id)
    return survey


def list_surveys(
    session: Session,
    status: Optional[str] = None,
    category: Optional[str] = None,
    page: int = 1,
    limit: int = 10,
) -> Tuple[List[Survey], int]:
    query = select(Survey)
    count_query = select(func.count()).select_from(Survey)
    if status:
        query = query.where(Survey.status == _parse_status(status))
        count_query = count_query.where(Survey.status == _parse_status(status))
    if category:
        query = query.where(Survey.category == category)
        count_query = count_query.where(Survey.category == category)

    total = session.exec(count_query).one()
    page = max(page, 1)
    surveys = session.exec(
        query.order_by(Survey.created_at.desc())  # type: ignore
        .offset((page - 1) * limit)
        .limit(limit)
    ).all()
    return list(surveys), total


def create_survey(
    session: Session, data: Dict[str, Any], user_id: str = "default-user"
) -> Survey:
    if not data.get("title"):
        raise ValidationError("Title is required")
    if not data.get("category"):
        raise ValidationError("Category is required")

    survey = Survey(
        user_id=user_id,
        title=data["title"],
        description=data.get("description") or "",
        category=data["category"],
        status=_parse_status(data.get("status") or SurveyStatus.DRAFT),
        questions=list(data.get("questions") or []),
        audience_criteria=dict(data.get("audience_criteria") or {}),
        target_count=data.get("target_count"),
    )
    session.add(survey)
    session.commit()
    session.refresh(survey)
    logger.info(f"Created survey '{survey.title}'", extra={"survey_id": survey.id})
    return survey


def duplicate_survey(session: Session, survey_id: str) -> Survey:
    """Copy a survey's definition into a new draft. Counters and page start empty."""
    original = get_survey(session, survey_id)
    copy = Survey(
        user_id=original.user_id,
        title=f"{original.title} (Copy)",
        description=original.description,
        category=original.category,
        status=SurveyStatus.DRAFT,
        questions=list(original.questions or []),
        audience_criteria=dict(original.audience_criteria or {}),
        target_count=original.target_count,
    )
    session.add(copy)
    session.commit()
    session.refresh(copy)
    logger.info(f"Duplicated survey {survey_id}", extra={"survey_id": copy.id})
    return copy


def update_survey(session: Session, survey_id: str, updates: Dict[str, Any]) -> Survey:
    survey = get_survey(session, survey_id)
    for field in EDITABLE_FIELDS:
        if field not in updates or updates[field] is None:
            continue
        value = updates[field]
        if field == "status":
            value = _parse_status(value)
        setattr(survey, field, value)
    survey.updated_at = _utcnow()
    session.add(survey)
    session.commit()
    session.refresh(survey)
    return survey


def delete_survey(session: Session, survey_id: str) -> None:
    """Delete a survey and everything hanging off it, children first."""
    get_survey(session, survey_id)
    campaign_ids = select(EmailCampaign.id).where(EmailCampaign.survey_id == survey_id)
    recipient_ids = select(EmailRecipient.id).where(
        EmailRecipient.campaign_id.in_(campaign_ids)  # type: ignore
    )

    statements = [
        delete(SurveyTracking).where(
            (SurveyTracking.survey_id == survey_id)
            | SurveyTracking.recipient_id.in_(recipient_ids)  # type: ignore
        ),
        delete(SurveyResponse).where(SurveyResponse.survey_id == survey_id),
        delete(EmailRecipient).where(EmailRecipient.campaign_id.in_(campaign_ids)),  # type: ignore
        delete(EmailCampaign).where(EmailCampaign.survey_id == survey_id),
        delete(Survey).where(Survey.id == survey_id),
    ]

    with persistence_errors(session, "Deleting survey"):
        for stmt in statements:
            session.exec(stmt.execution_options(synchronize_session=False))  # type: ignore[call-overload]
        session.commit()
    session.expunge_all()
    logger.info("Survey deleted with dependants", extra={"survey_id": survey_id})


# ── Public Page ──


def store_survey_html(session: Session, survey_id: str, html: str, base_url: str) -> Survey:
    survey = get_survey(session, survey_id)
    survey.html_content = html
    survey.public_url = f"{base_url}/survey/{survey_id}"
    survey.updated_at = _utcnow()
    session.add(survey)
    session.commit()
    session.refresh(survey)
    return survey


def get_survey_html(session: Session, survey_id: str) -> Tuple[Survey, str]:
    """The survey and its stored page. NotFoundError until create-html has run."""
    survey = get_survey(session, survey_id)
    if not survey.html_content:
        raise NotFoundError("HTML content not found. Please create HTML version first.")
    return survey, survey.html_content


def html_filename(title: str) -> str:
    return re.sub(r"[^a-zA-Z0-9]", "_", title) + "_survey.html"


# ── Responses ──


def record_response(
    session: Session,
    survey_id: str,
    answers: List[Any],
    completion_time: int = 0,
    ip_address: Optional[str] = None,
    respondent_info: Optional[Dict[str, Any]] = None,
    audience_member_id: Optional[str] = None,
) -> SurveyResponse:
    """Store one submission and bump the survey's response counter."""
    get_survey(session, survey_id)
    if not isinstance(answers, list):
        raise ValidationError("Answers are required")

    response = SurveyResponse(
        survey_id=survey_id,
        audience_member_id=audience_member_id,
        answers=answers,
        completion_time=completion_time or 0,
        ip_address=ip_address,
        respondent_info=respondent_info or {},
    )
    session.add(response)
    session.exec(  # type: ignore[call-overload]
        update(Survey)
        .where(Survey.id == survey_id)
        .values(response_count=Survey.response_count + 1)
        .execution_options(synchronize_session=False)
    )
    session.commit()
    session.refresh(response)
    return response


def list_responses(
    session: Session, survey_id: str, page: int = 1, limit: int = 10
) -> Tuple[List[SurveyResponse], int]:
    """One page of a survey's responses, newest first, and the total count."""
    get_survey(session, survey_id)
    total = session.exec(
        select(func.count())
        .select_from(SurveyResponse)
        .where(SurveyResponse.survey_id == survey_id)
    ).one()

    page = max(page, 1)
    responses = session.exec(
        select(SurveyResponse)
        .where(SurveyResponse.survey_id == survey_id)
        .order_by(SurveyResponse.submitted_at.desc())  # type: ignore
        .offset((page - 1) * limit)
        .limit(limit)
    ).all()
    return list(responses), total
