"""SurveyMail — SMTP Transport.

Opens a fresh smtplib connection per message in a worker thread so the
event loop is never blocked. STARTTLS for submission ports, implicit SSL
when requested or on 465.
"""

import asyncio
import smtplib
import ssl
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from surveymail.config import MailConfig
from surveymail.connectors.mail.base_transport import MailTransport
from surveymail.core.errors import TransportError
from surveymail.core.logging import get_logger

logger = get_logger("mail.smtp")


class SMTPTransport(MailTransport):
    """Delivers through any SMTP server."""

    name = "smtp"

    def __init__(self, config: MailConfig):
        self.config = config

    def is_available(self) -> bool:
        return bool(self.config.smtp_host and self.config.smtp_user)

    def _connect(self) -> smtplib.SMTP:
        host = self.config.smtp_host.strip()
        port = self.config.smtp_port
        context = ssl.create_default_context()

        # Port 465 is almost always implicit SSL
        if self.config.smtp_use_ssl or port == 465:
            server: smtplib.SMTP = smtplib.SMTP_SSL(
                host, port, timeout=self.config.smtp_timeout, context=context
            )
        else:
            server = smtplib.SMTP(host, port, timeout=self.config.smtp_timeout)
            server.ehlo()
            if self.config.smtp_use_tls:
                if server.has_extn("STARTTLS"):
                    server.starttls(context=context)
                    server.ehlo()
                else:
                    logger.warning("STARTTLS requested but not supported by server")

        if self.config.smtp_user:
            server.login(self.config.smtp_user, self.config.smtp_password)
        return server

    def _build_message(self, to: str, subject: str, html_body: str) -> MIMEMultipart:
        msg = MIMEMultipart("alternative")
        msg["From"] = self.config.from_email
        msg["To"] = to
        msg["Subject"] = subject
        msg.attach(MIMEText(html_body, "html", "utf-8"))
        return msg

    def _send_sync(self, to: str, subject: str, html_body: str) -> None:
        msg = self._build_message(to, subject, html_body)
        server = self._connect()
        try:
            server.sendmail(self.config.from_email, [to], msg.as_string())
        finally:
            try:
                server.quit()
            except smtplib.SMTPException:
                server.close()

    async def send(self, to: str, subject: str, html_body: str) -> None:
        try:
            await asyncio.to_thread(self._send_sync, to, subject, html_body)
        except (smtplib.SMTPException, OSError) as e:
            raise TransportError(str(e) or e.__class__.__name__, recipient=to) from e
