"""SurveyMail — Central Configuration via Pydantic Settings."""

import os
from typing import Optional

from pydantic import BaseModel
from pydantic_settings import BaseSettings


class MailConfig(BaseModel):
    """Transport configuration handed to a MailTransport at construction."""

    transport: str = "console"  # console | smtp | http
    from_email: str = "noreply@surveys.com"
    smtp_host: str = "smtp.gmail.com"
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_password: str = ""
    smtp_use_tls: bool = True
    smtp_use_ssl: bool = False
    smtp_timeout: int = 30
    api_url: str = ""
    api_key: str = ""

    model_config = {"frozen": True}


class CampaignConfig(BaseModel):
    """Settings the Campaign Orchestrator needs; no global lookups at send time."""

    base_url: str = "http://localhost:5000"
    subject_prefix: str = "Survey Invitation"
    send_concurrency: int = 1

    model_config = {"frozen": True}


class Settings(BaseSettings):
    """Application settings loaded from environment variables / .env file."""

    # ── Database ──
    database_url: str = ""

    # ── Mail Transport ──
    mail_transport: str = "console"
    from_email: str = "noreply@surveys.com"
    smtp_host: str = "smtp.gmail.com"
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_pass: str = ""
    smtp_use_tls: bool = True
    smtp_use_ssl: bool = False
    mail_api_url: str = ""
    mail_api_key: Optional[str] = None

    # ── Campaigns ──
    base_url: str = "http://localhost:5000"
    send_concurrency: int = 1  # 1 = strictly sequential send loop
    default_user_id: str = "default-user"

    # ── App ──
    log_level: str = "INFO"
    scheduler_enabled: bool = True

    @property
    def effective_database_url(self) -> str:
        """Return PostgreSQL URL if set, otherwise fall back to SQLite."""
        if self.database_url:
            return self.database_url
        # Vercel has a read-only filesystem; use /tmp for SQLite
        if os.environ.get("VERCEL"):
            return "sqlite:////tmp/surveymail.db"
        return "sqlite:///./surveymail.db"

    def mail_config(self) -> MailConfig:
        return MailConfig(
            transport=self.mail_transport,
            from_email=self.from_email,
            smtp_host=self.smtp_host,
            smtp_port=self.smtp_port,
            smtp_user=self.smtp_user,
            smtp_password=self.smtp_pass,
            smtp_use_tls=self.smtp_use_tls,
            smtp_use_ssl=self.smtp_use_ssl,
            api_url=self.mail_api_url,
            api_key=self.mail_api_key or "",
        )

    def campaign_config(self) -> CampaignConfig:
        return CampaignConfig(
            base_url=self.base_url.rstrip("/"),
            send_concurrency=max(self.send_concurrency, 1),
        )

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
