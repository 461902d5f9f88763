"""
Notification Channels
=====================

One client per delivery channel. Every client accepts the same rendered
payload and either returns normally or raises DispatchException; the
dispatcher turns that into a log status.

HTTP channels (Slack, Teams, generic webhooks) share an httpx client and a
per-channel circuit breaker. Failed sends are not retried here.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from email.message import EmailMessage
from typing import Any, Dict, Optional, Tuple

import aiosmtplib
import httpx

from supportwatch.config import NotificationChannel, Priority
from supportwatch.core.exceptions import DispatchException
from supportwatch.notifications.infrastructure.realtime import ConnectionManager
from supportwatch.shared.infrastructure.circuit_breaker import CircuitBreaker
from supportwatch.shared.infrastructure.logging import get_logger
from supportwatch.shared.time import utcnow

logger = get_logger(__name__)

_PRIORITY_COLORS = {
    Priority.URGENT: "D32F2F",
    Priority.HIGH: "F57C00",
    Priority.MEDIUM: "1976D2",
    Priority.LOW: "757575",
}


@dataclass(frozen=True)
class OutboundMessage:
    """Rendered payload handed to a channel client."""
    recipients: Tuple[str, ...]
    subject: str
    body: str
    priority: str
    ticket_id: Optional[str] = None
    webhook_url: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


class NotificationChannelClient(ABC):
    """Interface shared by every delivery channel."""

    name: str

    @abstractmethod
    async def send(self, message: OutboundMessage) -> None:
        """Deliver the message or raise DispatchException."""

    async def close(self) -> None:
        """Release network resources."""


class EmailChannel(NotificationChannelClient):
    """SMTP delivery via aiosmtplib. Without an SMTP host sends are a no-op."""

    name = NotificationChannel.EMAIL

    def __init__(
        self,
        host: str = "",
        port: int = 587,
        username: Optional[str] = None,
        password: Optional[str] = None,
        from_email: str = "noreply@example.com",
        from_name: str = "Support Desk",
        use_tls: bool = True
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.from_email = from_email
        self.from_name = from_name
        self.use_tls = use_tls

    def build_message(self, message: OutboundMessage) -> EmailMessage:
        email = EmailMessage()
        email["From"] = f"{self.from_name} <{self.from_email}>"
        email["To"] = ", ".join(message.recipients)
        email["Subject"] = message.subject
        if message.priority in (Priority.URGENT, Priority.HIGH):
            email["X-Priority"] = "1"
        email.set_content(message.body)
        return email

    async def send(self, message: OutboundMessage) -> None:
        if not self.host:
            logger.info(
                "SMTP not configured, skipping email",
                extra={"recipients": list(message.recipients), "subject": message.subject}
            )
            return

        try:
            await aiosmtplib.send(
                self.build_message(message),
                hostname=self.host,
                port=self.port,
                username=self.username or None,
                password=self.password or None,
                start_tls=self.use_tls,
            )
        except aiosmtplib.SMTPException as e:
            raise DispatchException(self.name, str(e)) from e
        except OSError as e:
            raise DispatchException(self.name, f"SMTP connection failed: {e}") from e


class HttpChannel(NotificationChannelClient):
    """Base for channels that POST JSON to a URL."""

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        timeout_seconds: float = 10.0,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0
    ):
        self._client = client
        self._owns_client = client is None
        self._timeout_seconds = timeout_seconds
        self.breaker = CircuitBreaker(
            name=self.name,
            failure_threshold=failure_threshold,
            recovery_timeout=recovery_timeout,
        )

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout_seconds)
        return self._client

    async def _post(self, url: str, payload: Dict[str, Any]) -> None:
        if not self.breaker.allow_request():
            raise DispatchException(self.name, "circuit breaker open", {"url": url})

        try:
            response = await self._get_client().post(url, json=payload)
        except httpx.HTTPError as e:
            self.breaker.record_failure()
            raise DispatchException(self.name, f"request failed: {e}", {"url": url}) from e

        if response.status_code >= 300:
            self.breaker.record_failure()
            raise DispatchException(
                self.name,
                f"endpoint returned {response.status_code}",
                {"url": url, "status_code": response.status_code}
            )
        self.breaker.record_success()

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
        self._client = None


class SlackChannel(HttpChannel):
    """
    Slack incoming webhook with Block Kit payloads.

    Recipients are Slack channels or member ids; one post per recipient.
    A recipient that is itself a URL is used as the webhook.
    """

    name = NotificationChannel.SLACK

    def __init__(self, webhook_url: Optional[str] = None, default_channel: str = "#support-alerts", **kwargs: Any):
        self.webhook_url = webhook_url
        self.default_channel = default_channel
        super().__init__(**kwargs)

    def build_payload(self, message: OutboundMessage, channel: Optional[str]) -> Dict[str, Any]:
        fields = [{"type": "mrkdwn", "text": f"*Priority:*\n{message.priority.title()}"}]
        if message.ticket_id:
            fields.append({"type": "mrkdwn", "text": f"*Ticket:*\n{message.ticket_id}"})

        payload: Dict[str, Any] = {
            "text": message.subject or message.body,
            "blocks": [
                {
                    "type": "header",
                    "text": {"type": "plain_text", "text": message.subject or "Notification", "emoji": True}
                },
                {"type": "section", "text": {"type": "mrkdwn", "text": message.body}},
                {"type": "section", "fields": fields},
                {
                    "type": "context",
                    "elements": [{"type": "mrkdwn", "text": f"Sent: {utcnow().isoformat()}"}]
                },
            ],
        }
        if channel:
            payload["channel"] = channel
        return payload

    async def send(self, message: OutboundMessage) -> None:
        default_url = message.webhook_url or self.webhook_url
        targets = message.recipients or (self.default_channel,)
        for target in targets:
            if target.startswith(("http://", "https://")):
                await self._post(target, self.build_payload(message, None))
                continue
            if not default_url:
                raise DispatchException(self.name, "Slack webhook URL not configured")
            await self._post(default_url, self.build_payload(message, target))


class TeamsChannel(HttpChannel):
    """
    Microsoft Teams incoming webhook with MessageCard payloads.

    URL recipients are webhooks; other recipients are listed in the card.
    """

    name = NotificationChannel.TEAMS

    def __init__(self, webhook_url: Optional[str] = None, **kwargs: Any):
        self.webhook_url = webhook_url
        super().__init__(**kwargs)

    def build_payload(self, message: OutboundMessage, mentions: Tuple[str, ...] = ()) -> Dict[str, Any]:
        facts = [{"name": "Priority", "value": message.priority.title()}]
        if message.ticket_id:
            facts.append({"name": "Ticket", "value": message.ticket_id})
        if mentions:
            facts.append({"name": "Recipients", "value": ", ".join(mentions)})

        return {
            "@type": "MessageCard",
            "@context": "https://schema.org/extensions",
            "summary": message.subject or "Notification",
            "themeColor": _PRIORITY_COLORS.get(message.priority, _PRIORITY_COLORS[Priority.MEDIUM]),
            "title": message.subject,
            "sections": [{"text": message.body, "facts": facts}],
        }

    async def send(self, message: OutboundMessage) -> None:
        urls = [r for r in message.recipients if r.startswith(("http://", "https://"))]
        mentions = tuple(r for r in message.recipients if r not in urls)
        if not urls:
            url = message.webhook_url or self.webhook_url
            if not url:
                raise DispatchException(self.name, "Teams webhook URL not configured")
            urls = [url]

        payload = self.build_payload(message, mentions)
        for url in urls:
            await self._post(url, payload)


class WebhookChannel(HttpChannel):
    """Generic JSON webhook. Recipients are target URLs."""

    name = NotificationChannel.WEBHOOK

    def build_payload(self, message: OutboundMessage) -> Dict[str, Any]:
        return {
            "subject": message.subject,
            "body": message.body,
            "priority": message.priority,
            "ticket_id": message.ticket_id,
            "metadata": message.metadata,
            "sent_at": utcnow().isoformat(),
        }

    async def send(self, message: OutboundMessage) -> None:
        urls = [r for r in message.recipients if r.startswith(("http://", "https://"))]
        if message.webhook_url and message.webhook_url not in urls:
            urls.append(message.webhook_url)
        if not urls:
            raise DispatchException(self.name, "no webhook URL to deliver to")

        payload = self.build_payload(message)
        for url in urls:
            await self._post(url, payload)


class RealtimeChannel(NotificationChannelClient):
    """
    In-app delivery over WebSockets. Recipients are user ids.

    Users without an open connection simply miss the push; the
    notification log still records the send.
    """

    name = NotificationChannel.REALTIME

    def __init__(self, manager: ConnectionManager):
        self.manager = manager

    async def send(self, message: OutboundMessage) -> None:
        payload = {
            "type": "notification",
            "subject": message.subject,
            "body": message.body,
            "priority": message.priority,
            "ticket_id": message.ticket_id,
            "sent_at": utcnow().isoformat(),
        }
        delivered = 0
        for user_id in message.recipients:
            delivered += await self.manager.send_to_user(user_id, payload)
        logger.debug(
            "Realtime notification pushed",
            extra={"recipients": list(message.recipients), "connections": delivered}
        )
