"""Notification Service - Outbox enqueueing and email sending via Graph API

Producers (the workflow engine, invitations) only enqueue outbox rows.
The scheduler picks them up and calls send_notification.
"""
from typing import Any, Dict, Iterable, List, Optional
from datetime import datetime, timedelta
import httpx

from ..domain.models import NotificationIntent, NotificationOutbox, SideEffectReport
from ..domain.enums import NotificationStatus, NotificationTemplateKey
from ..domain.errors import EmailSendError
from ..repositories.notification_repo import NotificationRepository
from ..templates import get_email_template
from ..config.settings import settings
from ..utils.idgen import generate_notification_id
from ..utils.time import utc_now
from ..utils.logger import get_logger

logger = get_logger(__name__)


class NotificationService:
    """Service for queueing and sending notifications"""

    GRAPH_BASE_URL = "https://graph.microsoft.com/v1.0"
    TOKEN_URL = "https://login.microsoftonline.com/{tenant_id}/oauth2/v2.0/token"

    def __init__(
        self,
        repo: Optional[NotificationRepository] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.repo = repo or NotificationRepository()
        self._transport = transport
        self._access_token: Optional[str] = None
        self._token_expiry: Optional[datetime] = None

    # =========================================================================
    # Outbox Creation
    # =========================================================================

    def enqueue_notification(
        self,
        template_key: NotificationTemplateKey,
        recipients: List[str],
        payload: Dict[str, Any],
        expense_id: Optional[str] = None
    ) -> NotificationOutbox:
        """
        Enqueue a notification for sending

        Notifications are stored in outbox and sent asynchronously.
        """
        notification = NotificationOutbox(
            notification_id=generate_notification_id(),
            expense_id=expense_id,
            template_key=template_key,
            recipients=recipients,
            payload=payload,
            status=NotificationStatus.PENDING,
            created_at=utc_now()
        )
        return self.repo.create_notification(notification)

    def enqueue_intents(
        self,
        intents: Iterable[NotificationIntent],
        expense_id: Optional[str] = None
    ) -> SideEffectReport:
        """
        Enqueue one outbox row per routed recipient.

        Best-effort: a failing insert is logged and reported, never raised,
        so the caller's state change stands.
        """
        report = SideEffectReport()
        for intent in intents:
            try:
                self.enqueue_notification(
                    template_key=intent.template_key,
                    recipients=[intent.recipient_email],
                    payload=intent.payload,
                    expense_id=expense_id,
                )
                report.enqueued.append(intent.recipient_email)
            except Exception as e:
                logger.warning(
                    f"Failed to enqueue {intent.template_key.value} for {intent.recipient_email}: {e}",
                    extra={"expense_id": expense_id}
                )
                report.failures.append(f"{intent.template_key.value} -> {intent.recipient_email}: {e}")
        return report

    # =========================================================================
    # Email Sending
    # =========================================================================

    async def send_notification(self, notification: NotificationOutbox) -> bool:
        """
        Send a single notification via email.

        Locking is handled by the scheduler before calling this method.

        Returns True if sent successfully, False otherwise.
        """
        start_time = utc_now()

        try:
            email_content = get_email_template(
                template_key=notification.template_key.value,
                payload=notification.payload,
                app_url=settings.frontend_url
            )

            if settings.mail_enabled:
                await self._send_email_via_graph(
                    recipients=notification.recipients,
                    subject=email_content["subject"],
                    body=email_content["body"]
                )
            else:
                logger.info(
                    f"Mail disabled, not sending: {email_content['subject']}",
                    extra={"notification_id": notification.notification_id}
                )

            self.repo.mark_sent(notification.notification_id)

            processing_time_ms = (utc_now() - start_time).total_seconds() * 1000
            logger.info(
                f"Sent notification: {notification.notification_id} in {processing_time_ms:.0f}ms",
                extra={
                    "notification_id": notification.notification_id,
                    "expense_id": notification.expense_id,
                }
            )
            return True

        except Exception as e:
            # Exponential backoff is handled in repo
            self.repo.mark_failed(notification.notification_id, str(e))
            logger.error(
                f"Failed to send notification {notification.notification_id}: {e}",
                extra={"notification_id": notification.notification_id, "expense_id": notification.expense_id}
            )
            return False

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self._transport, timeout=30.0)

    async def _send_email_via_graph(
        self,
        recipients: List[str],
        subject: str,
        body: str
    ) -> None:
        """Send email from the configured sender mailbox using Microsoft Graph"""
        access_token = await self._get_access_token()

        message = {
            "message": {
                "subject": subject,
                "body": {
                    "contentType": "HTML",
                    "content": body
                },
                "toRecipients": [
                    {"emailAddress": {"address": email}}
                    for email in recipients
                ]
            },
            "saveToSentItems": False
        }

        async with self._client() as client:
            response = await client.post(
                f"{self.GRAPH_BASE_URL}/users/{settings.mail_sender}/sendMail",
                headers={
                    "Authorization": f"Bearer {access_token}",
                    "Content-Type": "application/json"
                },
                json=message
            )

        if response.status_code not in [200, 202]:
            raise EmailSendError(
                f"Graph API error: {response.status_code}",
                details={"response": response.text}
            )

    async def _get_access_token(self) -> str:
        """
        Get an app-only access token (client credentials).

        Token is cached until shortly before expiry.
        """
        if self._access_token and self._token_expiry and utc_now() < self._token_expiry:
            return self._access_token

        async with self._client() as client:
            response = await client.post(
                self.TOKEN_URL.format(tenant_id=settings.mail_tenant_id),
                data={
                    "client_id": settings.mail_client_id,
                    "client_secret": settings.mail_client_secret,
                    "scope": "https://graph.microsoft.com/.default",
                    "grant_type": "client_credentials"
                }
            )

        if response.status_code != 200:
            raise EmailSendError(
                f"Failed to get access token: {response.status_code}",
                details={"response": response.text}
            )

        token_data = response.json()
        self._access_token = token_data["access_token"]
        expires_in = token_data.get("expires_in", 3600)
        self._token_expiry = utc_now() + timedelta(seconds=expires_in - 300)
        return self._access_token
