from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from app.utils.email_templates import EmailRenderer, RenderedEmail

logger = logging.getLogger("survey_rewards.notify")


@dataclass(frozen=True, slots=True)
class NotificationResult:
    success: bool
    message_id: str | None = None
    error: str | None = None


class Notifier:
    """Sends the reward and abuse emails through the Mailgun HTTP API.

    Never raises: configuration, transport and API failures come back as
    ``NotificationResult(success=False, error=...)``.
    """

    def __init__(
        self,
        *,
        api_key: str,
        domain: str,
        from_email: str,
        renderer: EmailRenderer,
        api_base: str = "https://api.mailgun.net/v3",
        timeout: float = 10.0,
        client: httpx.Client | None = None,
    ):
        self.api_key = api_key
        self.domain = domain
        self.from_email = from_email
        self.renderer = renderer
        self.api_base = api_base.rstrip("/")
        self.timeout = timeout
        self._client: Optional[httpx.Client] = client

    def _get_client(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(timeout=self.timeout)
        return self._client

    def send_reward(self, email: str, promo_code: str) -> NotificationResult:
        return self._send("reward", email, self.renderer.reward(promo_code))

    def send_abuse(self, email: str) -> NotificationResult:
        return self._send("abuse", email, self.renderer.abuse())

    def _send(self, kind: str, email: str, message: RenderedEmail) -> NotificationResult:
        if not (self.api_key and self.domain and self.from_email):
            logger.error("Mailgun is not configured; %s email to %s not sent", kind, email)
            return NotificationResult(success=False, error="Mailgun is not configured")

        try:
            resp = self._get_client().post(
                f"{self.api_base}/{self.domain}/messages",
                auth=("api", self.api_key),
                data={
                    "from": self.from_email,
                    "to": [email],
                    "subject": message.subject,
                    "html": message.html,
                    "text": message.text,
                },
            )
            resp.raise_for_status()
            message_id = resp.json().get("id")
        except httpx.HTTPStatusError as exc:
            logger.error(
                "Mailgun rejected %s email to %s: %s %s",
                kind, email, exc.response.status_code, exc.response.text[:200],
            )
            return NotificationResult(success=False, error=f"Mailgun responded {exc.response.status_code}")
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("Sending %s email to %s failed: %s", kind, email, exc)
            return NotificationResult(success=False, error=str(exc) or exc.__class__.__name__)

        logger.info("%s email sent to %s message_id=%s", kind.capitalize(), email, message_id)
        return NotificationResult(success=True, message_id=message_id)
