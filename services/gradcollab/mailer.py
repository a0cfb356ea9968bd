"""
Mail dispatch abstraction for the SendGrid v3 API and in-memory testing.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Protocol

import requests

from gradcollab.errors import MailDispatchError

logger = logging.getLogger(__name__)

SENDGRID_SEND_URL = "https://api.sendgrid.com/v3/mail/send"
REQUEST_TIMEOUT = 30  # seconds


@dataclass
class MailMessage:
    to: str
    from_: str
    subject: str
    text: str
    html: str


class Mailer(Protocol):
    """Defines the operation the API needs from an email provider."""

    def send(self, message: MailMessage) -> None:
        ...


@dataclass
class InMemoryMailer:
    """Test double that records messages instead of sending them."""

    sent: list[MailMessage] = field(default_factory=list)

    def send(self, message: MailMessage) -> None:
        self.sent.append(message)
        logger.info("Recorded email to %s (%s)", message.to, message.subject)


@dataclass
class SendGridMailer:
    """
    Transactional email through SendGrid's v3 `mail/send` endpoint.
    """

    api_key: str
    url: str = SENDGRID_SEND_URL
    timeout: float = REQUEST_TIMEOUT

    def _payload(self, message: MailMessage) -> dict:
        return {
            "personalizations": [{"to": [{"email": message.to}]}],
            "from": {"email": message.from_},
            "subject": message.subject,
            # SendGrid requires text/plain before text/html.
            "content": [
                {"type": "text/plain", "value": message.text},
                {"type": "text/html", "value": message.html},
            ],
        }

    def send(self, message: MailMessage) -> None:
        try:
            response = requests.post(
                self.url,
                json=self._payload(message),
                headers={"Authorization": f"Bearer {self.api_key}"},
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.RequestException as exc:
            logger.error("SendGrid rejected email to %s: %s", message.to, exc)
            raise MailDispatchError() from exc
        logger.info("Sent email to %s (%s)", message.to, message.subject)
