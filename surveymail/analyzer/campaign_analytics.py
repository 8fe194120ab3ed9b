"""SurveyMail — Campaign & Survey Analytics.

Computes campaign statistics from per-recipient rows and survey-level
rollups from campaign counters and stored responses. Read-only.
"""

import math
from collections import Counter, defaultdict
from typing import Any, Dict, Iterable, List, Optional

from sqlmodel import Session, select

from surveymail.core.errors import CampaignNotFoundError, SurveyNotFoundError
from surveymail.core.logging import get_logger
from surveymail.core.status import DELIVERED_STATUSES, OPENED_STATUSES, RecipientStatus
from surveymail.models.analytics_models import (
    CampaignAnalytics,
    CampaignStats,
    CampaignSummary,
    QuestionSummary,
    RecipientDetail,
    SurveyEmailStats,
    SurveyResults,
)
from surveymail.models.campaign_models import EmailCampaign, EmailRecipient
from surveymail.models.survey_models import AudienceMember, Survey, SurveyResponse

logger = get_logger("analyzer.campaign")


def rate(part: int, whole: int) -> int:
    """Integer percentage, half rounded up, 0 when whole is 0."""
    if whole <= 0:
        return 0
    return max(0, min(100, math.floor(part / whole * 100 + 0.5)))


def compute_stats(statuses: Iterable[RecipientStatus]) -> CampaignStats:
    """Roll recipient statuses up into counts and rates.

    `sent` includes opened and responded recipients; `opened` includes
    responded ones.
    """
    counts = Counter(statuses)
    total = sum(counts.values())
    sent = sum(counts[s] for s in DELIVERED_STATUSES)
    opened = sum(counts[s] for s in OPENED_STATUSES)
    responded = counts[RecipientStatus.RESPONDED]

    return CampaignStats(
        total=total,
        sent=sent,
        failed=counts[RecipientStatus.FAILED],
        opened=opened,
        responded=responded,
        open_rate=rate(opened, sent),
        response_rate=rate(responded, sent),
    )


# ── Campaigns ──


def list_campaigns(session: Session, survey_id: Optional[str] = None) -> List[CampaignSummary]:
    """All campaigns, or one survey's, newest first."""
    query = select(EmailCampaign)
    if survey_id:
        query = query.where(EmailCampaign.survey_id == survey_id)
    query = query.order_by(EmailCampaign.created_at.desc())  # type: ignore
    return [CampaignSummary.model_validate(c, from_attributes=True) for c in session.exec(query).all()]


def get_campaign(session: Session, campaign_id: str) -> CampaignSummary:
    campaign = session.get(EmailCampaign, campaign_id)
    if campaign is None:
        raise CampaignNotFoundError(campaign_id)
    session.refresh(campaign)
    return CampaignSummary.model_validate(campaign, from_attributes=True)


def campaign_analytics(session: Session, campaign_id: str) -> CampaignAnalytics:
    """Campaign row, its recipients (most recently sent first) and stats."""
    campaign = get_campaign(session, campaign_id)

    rows = session.exec(
        select(EmailRecipient, AudienceMember)
        .join(
            AudienceMember,
            EmailRecipient.audience_member_id == AudienceMember.id,
            isouter=True,
        )
        .where(EmailRecipient.campaign_id == campaign_id)
    ).all()

    recipients = [
        RecipientDetail(
            id=r.id,
            audience_member_id=r.audience_member_id,
            email=r.email,
            tracking_id=r.tracking_id,
            status=r.status,
            first_name=m.first_name if m else "",
            last_name=m.last_name if m else "",
            sent_at=r.sent_at,
            opened_at=r.opened_at,
            responded_at=r.responded_at,
            error_message=r.error_message,
        )
        for r, m in rows
    ]
    # Unsent rows last
    recipients.sort(key=lambda r: (r.sent_at is not None, r.sent_at or 0), reverse=True)

    stats = compute_stats(r.status for r in recipients)
    logger.info(
        f"Analytics computed for {stats.total} recipients",
        extra={"campaign_id": campaign_id},
    )
    return CampaignAnalytics(campaign=campaign, recipients=recipients, stats=stats)


# ── Surveys ──


def survey_email_stats(session: Session, survey_id: str) -> SurveyEmailStats:
    """Sum campaign counters across every campaign of a survey."""
    campaigns = session.exec(
        select(EmailCampaign).where(EmailCampaign.survey_id == survey_id)
    ).all()

    sent = sum(c.sent_count for c in campaigns)
    opened = sum(c.opened_count for c in campaigns)
    responded = sum(c.responded_count for c in campaigns)
    return SurveyEmailStats(
        total_sent=sent,
        total_opened=opened,
        total_failed=sum(c.failed_count for c in campaigns),
        total_responded=responded,
        open_rate=rate(opened, sent),
        response_rate=rate(responded, sent),
        campaign_count=len(campaigns),
    )


def _answer_pairs(answers: Any) -> Iterable[tuple[str, Any]]:
    """Yield (question_id, value) from either a list of answer objects or a mapping."""
    if isinstance(answers, dict):
        yield from answers.items()
        return
    for item in answers or []:
        if isinstance(item, dict):
            qid = item.get("question_id") or item.get("questionId") or item.get("id")
            if qid is not None:
                yield str(qid), item.get("answer", item.get("value"))


def survey_results(session: Session, survey_id: str) -> SurveyResults:
    """Per-question answer distributions from stored responses."""
    survey = session.get(Survey, survey_id)
    if survey is None:
        raise SurveyNotFoundError(survey_id)

    responses = session.exec(
        select(SurveyResponse).where(SurveyResponse.survey_id == survey_id)
    ).all()

    distributions: Dict[str, Counter] = defaultdict(Counter)
    answered: Dict[str, int] = defaultdict(int)
    for response in responses:
        for qid, value in _answer_pairs(response.answers):
            if value is None or value == "":
                continue
            answered[qid] += 1
            values = value if isinstance(value, list) else [value]
            for v in values:
                distributions[qid][str(v)] += 1

    questions = []
    for index, q in enumerate(survey.questions or [], 1):
        qid = str(q.get("id", f"q{index}"))
        questions.append(
            QuestionSummary(
                id=qid,
                prompt=str(q.get("question") or q.get("prompt") or ""),
                type=str(q.get("type", "")),
                answer_count=answered.get(qid, 0),
                distribution=dict(distributions.get(qid, {})),
            )
        )

    total = len(responses)
    avg_time = sum(r.completion_time or 0 for r in responses) / total if total else 0.0

    return SurveyResults(
        survey_id=survey.id,
        title=survey.title,
        total_responses=total,
        average_completion_time=round(avg_time, 2),
        questions=questions,
        email_stats=survey_email_stats(session, survey_id),
    )
