"""SurveyMail — Shared Route Dependencies."""

from fastapi import HTTPException, Request

from surveymail.config import CampaignConfig, settings
from surveymail.connectors.mail.factory import select_transport
from surveymail.core.errors import SurveyMailError


async def get_transport():
    """Dependency — yields the configured mail transport."""
    transport = select_transport(settings.mail_config())
    try:
        yield transport
    finally:
        await transport.close()


def get_campaign_config() -> CampaignConfig:
    """Dependency — campaign settings snapshot."""
    return settings.campaign_config()


def http_error(error: SurveyMailError) -> HTTPException:
    """Translate a domain error into an HTTPException."""
    return HTTPException(
        status_code=error.status_code,
        detail={"code": error.code, "message": error.message},
    )


def client_info(request: Request) -> tuple[str | None, str | None]:
    """(ip, user agent) of the caller."""
    ip = request.client.host if request.client else None
    return ip, request.headers.get("user-agent")
