"""SurveyMail — HTTP Mail API Transport.

Posts messages as JSON to a provider endpoint. Handles auth, retry on
rate limits / server errors, and maps everything else to TransportError.
"""

import asyncio
from typing import Any, Dict, Optional

import httpx

from surveymail.config import MailConfig
from surveymail.connectors.mail.base_transport import MailTransport
from surveymail.core.errors import TransportError
from surveymail.core.logging import get_logger

logger = get_logger("mail.http")

MAX_RETRIES = 3
RETRY_BASE_DELAY = 2  # seconds


class HTTPMailTransport(MailTransport):
    """Async HTTP client for API-based mail providers."""

    name = "http"

    def __init__(self, config: MailConfig, client: Optional[httpx.AsyncClient] = None):
        self.config = config
        self._client = client

    def is_available(self) -> bool:
        return bool(self.config.api_url and self.config.api_key)

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=30.0)
        return self._client

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    def _payload(self, to: str, subject: str, html_body: str) -> Dict[str, Any]:
        return {
            "from": self.config.from_email,
            "to": [to],
            "subject": subject,
            "html": html_body,
        }

    async def send(self, to: str, subject: str, html_body: str) -> None:
        client = await self._get_client()
        headers = {"Authorization": f"Bearer {self.config.api_key}"}
        payload = self._payload(to, subject, html_body)

        for attempt in range(1, MAX_RETRIES + 1):
            try:
                resp = await client.post(
                    self.config.api_url, json=payload, headers=headers
                )

                # Rate limited
                if resp.status_code == 429 and attempt < MAX_RETRIES:
                    wait = RETRY_BASE_DELAY * (2 ** (attempt - 1))
                    logger.warning(
                        f"Rate limited (429). Retrying in {wait}s (attempt {attempt}/{MAX_RETRIES})"
                    )
                    await asyncio.sleep(wait)
                    continue

                resp.raise_for_status()
                return

            except httpx.HTTPStatusError as e:
                if attempt < MAX_RETRIES and e.response.status_code >= 500:
                    wait = RETRY_BASE_DELAY * (2 ** (attempt - 1))
                    logger.warning(
                        f"Server error {e.response.status_code}. Retrying in {wait}s"
                    )
                    await asyncio.sleep(wait)
                    continue
                raise TransportError(
                    f"Mail API rejected message ({e.response.status_code})",
                    recipient=to,
                ) from e

            except httpx.RequestError as e:
                if attempt < MAX_RETRIES:
                    wait = RETRY_BASE_DELAY * (2 ** (attempt - 1))
                    logger.warning(f"Request error: {e}. Retrying in {wait}s")
                    await asyncio.sleep(wait)
                    continue
                raise TransportError(
                    f"Connection failed after {MAX_RETRIES} retries: {e}",
                    recipient=to,
                ) from e

        raise TransportError("Max retries exhausted", recipient=to)
