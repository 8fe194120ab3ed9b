"""SurveyMail — Mail Transport Selection."""

from surveymail.config import MailConfig
from surveymail.connectors.mail.base_transport import MailTransport
from surveymail.connectors.mail.console_transport import ConsoleTransport
from surveymail.connectors.mail.http_transport import HTTPMailTransport
from surveymail.connectors.mail.smtp_transport import SMTPTransport
from surveymail.core.errors import ValidationError
from surveymail.core.logging import get_logger

logger = get_logger("mail.factory")

TRANSPORTS = {
    "console": ConsoleTransport,
    "smtp": SMTPTransport,
    "http": HTTPMailTransport,
}


def select_transport(config: MailConfig) -> MailTransport:
    """Build the transport named in the config.

    An unconfigured smtp/http transport still gets built; its sends will
    fail per recipient and be recorded as such.
    """
    name = config.transport.lower()
    if name not in TRANSPORTS:
        raise ValidationError(f"Unknown mail transport: {config.transport}")

    transport = TRANSPORTS[name](config)
    if not transport.is_available():
        logger.warning(f"Mail transport '{name}' is not fully configured")
    return transport
