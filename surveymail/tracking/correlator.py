"""SurveyMail — Tracking Correlator.

Maps inbound pixel hits, survey-page visits and submissions back to the
recipient that holds the tracking token. Counter increments only follow a
successful compare-and-set on the recipient row, so repeated or concurrent
hits on one token count once. The status change, its counter increments
and the tracking event are committed together.
"""

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import update
from sqlmodel import Session

from surveymail.campaigns.recipients import get_by_tracking_id, mark_opened, mark_responded
from surveymail.core.logging import get_logger
from surveymail.core.status import RecipientStatus
from surveymail.models.campaign_models import EmailCampaign, EmailRecipient, SurveyTracking
from surveymail.models.survey_models import Survey

logger = get_logger("tracking.correlator")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _record_event(
    session: Session,
    survey_id: str,
    tracking_id: str,
    recipient_id: Optional[str],
    ip_address: Optional[str],
    user_agent: Optional[str],
) -> SurveyTracking:
    event = SurveyTracking(
        survey_id=survey_id,
        recipient_id=recipient_id,
        tracking_id=tracking_id,
        ip_address=ip_address,
        user_agent=user_agent,
        opened_at=_utcnow(),
    )
    session.add(event)
    return event


def _count_open(session: Session, campaign_id: str) -> Optional[str]:
    """Bump campaign opened_count and the survey's emails_opened. Returns survey id."""
    campaign = session.get(EmailCampaign, campaign_id)
    if campaign is None:
        return None
    session.exec(  # type: ignore[call-overload]
        update(EmailCampaign)
        .where(EmailCampaign.id == campaign_id)
        .values(opened_count=EmailCampaign.opened_count + 1)
        .execution_options(synchronize_session=False)
    )
    session.exec(  # type: ignore[call-overload]
        update(Survey)
        .where(Survey.id == campaign.survey_id)
        .values(emails_opened=Survey.emails_opened + 1)
        .execution_options(synchronize_session=False)
    )
    return campaign.survey_id


# ── Entry Points ──


def track_email_open(
    session: Session,
    tracking_id: str,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> bool:
    """Open-pixel hit. True when this hit moved the recipient sent → opened.

    Hits on unknown tokens or recipients not currently `sent` change nothing.
    """
    recipient = get_by_tracking_id(session, tracking_id)
    if recipient is None:
        return False
    if not mark_opened(session, tracking_id, commit=False):
        session.rollback()
        return False

    survey_id = _count_open(session, recipient.campaign_id)
    if survey_id:
        _record_event(session, survey_id, tracking_id, recipient.id, ip_address, user_agent)
    session.commit()

    logger.info(
        "Email open recorded",
        extra={"tracking_id": tracking_id, "campaign_id": recipient.campaign_id},
    )
    return True


def track_survey_access(
    session: Session,
    survey_id: str,
    tracking_id: Optional[str] = None,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> SurveyTracking:
    """Survey-page visit. Always logs an event; opens the recipient if still `sent`."""
    recipient: Optional[EmailRecipient] = None
    if tracking_id:
        recipient = get_by_tracking_id(session, tracking_id)
        if recipient is not None and mark_opened(session, tracking_id, commit=False):
            _count_open(session, recipient.campaign_id)
            logger.info(
                "Email open recorded via survey page",
                extra={"tracking_id": tracking_id, "campaign_id": recipient.campaign_id},
            )

    event = _record_event(
        session,
        survey_id,
        tracking_id or uuid.uuid4().hex,
        recipient.id if recipient else None,
        ip_address,
        user_agent,
    )
    session.commit()
    return event


def track_response(
    session: Session,
    survey_id: str,
    tracking_id: str,
) -> Optional[EmailRecipient]:
    """Tie a submission to its invitation: recipient → responded, counted once.

    A recipient still at `sent` passes through `opened` first. Returns the
    recipient when the token belongs to a campaign of this survey.
    """
    recipient = get_by_tracking_id(session, tracking_id)
    if recipient is None:
        return None
    campaign = session.get(EmailCampaign, recipient.campaign_id)
    if campaign is None or campaign.survey_id != survey_id:
        return None

    if recipient.status == RecipientStatus.SENT and mark_opened(
        session, tracking_id, commit=False
    ):
        _count_open(session, campaign.id)

    if mark_responded(session, tracking_id, commit=False):
        session.exec(  # type: ignore[call-overload]
            update(EmailCampaign)
            .where(EmailCampaign.id == campaign.id)
            .values(responded_count=EmailCampaign.responded_count + 1)
            .execution_options(synchronize_session=False)
        )
        logger.info(
            "Response correlated to invitation",
            extra={"tracking_id": tracking_id, "campaign_id": campaign.id},
        )
    session.commit()
    session.refresh(recipient)
    return recipient
