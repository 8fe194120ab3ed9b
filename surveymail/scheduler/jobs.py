"""SurveyMail — Scheduler Jobs.

APScheduler hosts queued campaign sends so the HTTP request that creates a
campaign can return before the send loop finishes.
"""

from datetime import datetime, timezone

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from sqlmodel import Session

from surveymail.campaigns.orchestrator import CampaignOrchestrator
from surveymail.config import settings
from surveymail.connectors.mail.factory import select_transport
from surveymail.core.logging import get_logger
from surveymail.database import engine

logger = get_logger("scheduler")

scheduler = AsyncIOScheduler()


async def campaign_send_job(campaign_id: str) -> None:
    """Send a created campaign's pending recipients and finalise it."""
    logger.info("Queued campaign send starting...", extra={"campaign_id": campaign_id})
    transport = select_transport(settings.mail_config())
    try:
        with Session(engine) as session:
            orchestrator = CampaignOrchestrator(
                session, transport, settings.campaign_config()
            )
            result = await orchestrator.send_campaign(campaign_id)
        logger.info(
            f"Queued campaign send complete: {result.sent} sent, {result.failed} failed",
            extra={"campaign_id": campaign_id},
        )
    except Exception as e:
        logger.error(f"Queued campaign send failed: {e}", extra={"campaign_id": campaign_id})
    finally:
        await transport.close()


def enqueue_campaign_send(campaign_id: str) -> bool:
    """Queue a one-shot send job. False when the scheduler is not running."""
    if not scheduler.running:
        return False

    scheduler.add_job(
        campaign_send_job,
        "date",
        run_date=datetime.now(timezone.utc),
        args=[campaign_id],
        id=f"campaign-send:{campaign_id}",
        replace_existing=True,
        misfire_grace_time=3600,
    )
    logger.info("Campaign send queued", extra={"campaign_id": campaign_id})
    return True


def start_scheduler():
    """Configure and start the scheduler."""
    if not settings.scheduler_enabled:
        logger.info("Scheduler disabled via config")
        return

    scheduler.start()
    logger.info("Scheduler started. Campaign sends will be queued")


def stop_scheduler():
    """Shutdown the scheduler gracefully."""
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")
