"""SurveyMail — Send Loop.

Renders and dispatches one invitation per recipient. Each recipient is
failure-isolated: a transport error is written to that recipient's row
and the loop moves on. Store errors are not caught here.
"""

import asyncio
from dataclasses import dataclass
from typing import List

from sqlmodel import Session

from surveymail.campaigns.recipients import mark_failed, mark_sent
from surveymail.config import CampaignConfig
from surveymail.connectors.mail.base_transport import MailTransport
from surveymail.core.errors import TransportError
from surveymail.core.logging import get_logger
from surveymail.database import persistence_errors
from surveymail.models.analytics_models import SendResult
from surveymail.models.survey_models import Survey
from surveymail.renderer.survey_renderer import (
    DEFAULT_RECIPIENT_NAME,
    invitation_subject,
    render_invitation_email,
)

logger = get_logger("campaigns.send_loop")


@dataclass(frozen=True)
class RecipientRecord:
    """What the loop needs to know about one materialised recipient."""

    id: str
    email: str
    tracking_id: str
    name: str = DEFAULT_RECIPIENT_NAME


async def _send_one(
    session: Session,
    survey: Survey,
    record: RecipientRecord,
    campaign_id: str,
    transport: MailTransport,
    config: CampaignConfig,
    result: SendResult,
) -> None:
    html_body = render_invitation_email(
        survey, record.tracking_id, record.name, config.base_url
    )
    subject = invitation_subject(survey, config.subject_prefix)

    try:
        await transport.send(record.email, subject, html_body)
    except TransportError as e:
        logger.warning(
            f"Failed to send email to {record.email}: {e.message}",
            extra={"campaign_id": campaign_id, "recipient_id": record.id},
        )
        with persistence_errors(session, "Recording send failure"):
            recorded = mark_failed(session, record.id, e.message)
        if recorded:
            result.failed += 1
            result.errors.append(f"{record.email}: {e.message}")
        return

    with persistence_errors(session, "Recording send success"):
        recorded = mark_sent(session, record.id)
    if recorded:
        result.sent += 1
    else:
        logger.warning(
            f"Recipient {record.id} was no longer pending after send",
            extra={"campaign_id": campaign_id, "recipient_id": record.id},
        )


async def send_tracked(
    session: Session,
    survey: Survey,
    records: List[RecipientRecord],
    campaign_id: str,
    transport: MailTransport,
    config: CampaignConfig,
) -> SendResult:
    """Send to every record and return the aggregate counts.

    With send_concurrency > 1 messages go out through a bounded pool; the
    per-row writes stay atomic, only the order of `errors` may differ.
    """
    result = SendResult()

    if config.send_concurrency <= 1:
        for record in records:
            await _send_one(session, survey, record, campaign_id, transport, config, result)
    else:
        semaphore = asyncio.Semaphore(config.send_concurrency)

        async def bounded(record: RecipientRecord) -> None:
            async with semaphore:
                await _send_one(
                    session, survey, record, campaign_id, transport, config, result
                )

        await asyncio.gather(*(bounded(r) for r in records))

    logger.info(
        f"Send loop finished: {result.sent} sent, {result.failed} failed",
        extra={"campaign_id": campaign_id},
    )
    return result
