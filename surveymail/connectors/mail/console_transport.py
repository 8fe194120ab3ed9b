"""SurveyMail — Console Transport (development)."""

from surveymail.config import MailConfig
from surveymail.connectors.mail.base_transport import MailTransport
from surveymail.core.logging import get_logger

logger = get_logger("mail.console")


class ConsoleTransport(MailTransport):
    """Logs the message instead of delivering it. Always succeeds."""

    name = "console"

    def __init__(self, config: MailConfig):
        self.config = config

    def is_available(self) -> bool:
        return True

    async def send(self, to: str, subject: str, html_body: str) -> None:
        logger.info(
            f"[DEV] Would send '{subject}' from {self.config.from_email} to {to} "
            f"({len(html_body)} bytes)"
        )
