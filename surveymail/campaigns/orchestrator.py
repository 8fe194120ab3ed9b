"""SurveyMail — Campaign Orchestrator.

Runs the campaign flow:
  create campaign (sending) → materialise pending recipients → send loop → finalise

Recipient rows are committed before the first send so every attempt has a
durable, trackable row. There is no campaign-wide rollback.
"""

from datetime import datetime, timezone
from typing import List, Sequence, Tuple

from sqlalchemy import func, update
from sqlmodel import Session, select

from surveymail.campaigns.send_loop import RecipientRecord, send_tracked
from surveymail.config import CampaignConfig
from surveymail.connectors.mail.base_transport import MailTransport
from surveymail.core.errors import (
    CampaignNotFoundError,
    NoRecipientsError,
    SurveyNotFoundError,
    ValidationError,
)
from surveymail.core.logging import get_logger
from surveymail.core.status import (
    DELIVERED_STATUSES,
    CampaignStatus,
    RecipientStatus,
    require_transition,
)
from surveymail.database import persistence_errors
from surveymail.models.analytics_models import CampaignSendResult, SendResult
from surveymail.models.campaign_models import EmailCampaign, EmailRecipient
from surveymail.models.survey_models import AudienceMember, Survey

logger = get_logger("campaigns.orchestrator")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def final_status(result: SendResult) -> CampaignStatus:
    """completed when nothing failed, otherwise partially_failed (even if 0 sent)."""
    return (
        CampaignStatus.COMPLETED if result.failed == 0 else CampaignStatus.PARTIALLY_FAILED
    )


class CampaignOrchestrator:
    """Creates campaigns and drives their send loop.

    Everything environment-specific (transport, base URL, concurrency) is
    injected at construction.
    """

    def __init__(self, session: Session, transport: MailTransport, config: CampaignConfig):
        self.session = session
        self.transport = transport
        self.config = config

    # ── Creation ──

    def create_campaign(
        self,
        survey: Survey,
        recipients: Sequence[AudienceMember],
        campaign_name: str,
        user_id: str,
    ) -> Tuple[EmailCampaign, List[RecipientRecord]]:
        """Insert the campaign (status sending) and one pending row per recipient."""
        if not recipients:
            raise NoRecipientsError()

        with persistence_errors(self.session, "Creating campaign"):
            campaign = EmailCampaign(
                survey_id=survey.id,
                user_id=user_id,
                campaign_name=campaign_name,
                recipient_count=len(recipients),
                status=CampaignStatus.DRAFT,
            )
            require_transition(campaign.status, CampaignStatus.SENDING)
            campaign.status = CampaignStatus.SENDING
            self.session.add(campaign)

            records: List[RecipientRecord] = []
            for member in recipients:
                row = EmailRecipient(
                    campaign_id=campaign.id,
                    audience_member_id=member.id,
                    email=member.email,
                    status=RecipientStatus.PENDING,
                )
                self.session.add(row)
                records.append(
                    RecipientRecord(
                        id=row.id,
                        email=row.email,
                        tracking_id=row.tracking_id,
                        name=member.display_name,
                    )
                )
            self.session.commit()
            self.session.refresh(campaign)

        logger.info(
            f"Created campaign '{campaign_name}' with {len(records)} recipients",
            extra={"campaign_id": campaign.id, "survey_id": survey.id},
        )
        return campaign, records

    # ── Sending ──

    def pending_records(self, campaign_id: str) -> List[RecipientRecord]:
        """Rebuild send records for a campaign's still-pending recipients."""
        rows = self.session.exec(
            select(EmailRecipient, AudienceMember)
            .join(AudienceMember, EmailRecipient.audience_member_id == AudienceMember.id)
            .where(
                EmailRecipient.campaign_id == campaign_id,
                EmailRecipient.status == RecipientStatus.PENDING,
            )
        ).all()
        return [
            RecipientRecord(
                id=r.id, email=r.email, tracking_id=r.tracking_id, name=m.display_name
            )
            for r, m in rows
        ]

    def stored_totals(self, campaign_id: str) -> SendResult:
        """Sent and failed counts read back from the campaign's recipient rows."""
        rows = self.session.exec(
            select(EmailRecipient.status, func.count())
            .where(EmailRecipient.campaign_id == campaign_id)
            .group_by(EmailRecipient.status)
        ).all()
        counts = {status: n for status, n in rows}
        return SendResult(
            sent=sum(counts.get(s, 0) for s in DELIVERED_STATUSES),
            failed=counts.get(RecipientStatus.FAILED, 0),
        )

    def _finalize(self, campaign: EmailCampaign) -> CampaignStatus:
        """Close the campaign from its stored recipient rows."""
        totals = self.stored_totals(campaign.id)
        status = final_status(totals)
        require_transition(CampaignStatus.SENDING, status)

        with persistence_errors(self.session, "Finalising campaign"):
            closed = self.session.exec(  # type: ignore[call-overload]
                update(EmailCampaign)
                .where(
                    EmailCampaign.id == campaign.id,
                    EmailCampaign.status == CampaignStatus.SENDING,
                )
                .values(
                    sent_count=totals.sent,
                    failed_count=totals.failed,
                    status=status,
                    sent_at=_utcnow(),
                )
                .execution_options(synchronize_session=False)
            )
            # Survey totals move once, with the run that closes the campaign
            if closed.rowcount:
                self.session.exec(  # type: ignore[call-overload]
                    update(Survey)
                    .where(Survey.id == campaign.survey_id)
                    .values(
                        emails_sent=Survey.emails_sent + totals.sent,
                        updated_at=_utcnow(),
                    )
                    .execution_options(synchronize_session=False)
                )
            self.session.commit()
            self.session.refresh(campaign)

        logger.info(
            f"Campaign finalised as {status.value}: {totals.sent} sent, {totals.failed} failed",
            extra={"campaign_id": campaign.id, "survey_id": campaign.survey_id},
        )
        return status

    async def send(
        self,
        survey: Survey,
        campaign: EmailCampaign,
        records: List[RecipientRecord],
    ) -> CampaignSendResult:
        """Run the send loop for an already-created campaign and finalise it."""
        result = await send_tracked(
            self.session, survey, records, campaign.id, self.transport, self.config
        )
        status = self._finalize(campaign)
        return CampaignSendResult(
            campaign_id=campaign.id,
            status=status,
            sent=result.sent,
            failed=result.failed,
            errors=result.errors,
        )

    async def send_campaign(self, campaign_id: str) -> CampaignSendResult:
        """Send a stored campaign by id (used by queued jobs)."""
        campaign = self.session.get(EmailCampaign, campaign_id)
        if campaign is None:
            raise CampaignNotFoundError(campaign_id)
        survey = self.session.get(Survey, campaign.survey_id)
        if survey is None:
            raise SurveyNotFoundError(campaign.survey_id)
        if campaign.status.is_terminal:
            raise ValidationError(f"Campaign already {campaign.status.value}")
        return await self.send(survey, campaign, self.pending_records(campaign_id))

    async def create_campaign_and_send(
        self,
        survey: Survey,
        recipients: Sequence[AudienceMember],
        campaign_name: str,
        user_id: str,
    ) -> CampaignSendResult:
        """Create the campaign with its recipients, send, and finalise."""
        campaign, records = self.create_campaign(survey, recipients, campaign_name, user_id)
        return await self.send(survey, campaign, records)
