"""
Email service for distributing printable tests.

Provides an abstracted email interface with a Gmail API implementation and
a multi-recipient distribution helper that reports a per-recipient tally.
"""
import base64
import html
import json
import logging
import asyncio
from abc import ABC, abstractmethod
from typing import Optional, List, Sequence
from dataclasses import dataclass, field
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart

from ..config import settings

logger = logging.getLogger(__name__)


@dataclass
class EmailResult:
    """Result of an email send operation."""
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None


@dataclass
class Attachment:
    """Email attachment."""
    filename: str
    content: bytes
    content_type: str = "application/pdf"


@dataclass
class RecipientResult:
    recipient: str
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None


@dataclass
class DistributionReport:
    """Tally of a multi-recipient send. Failures never undo successful sends."""
    sent: int = 0
    failed: int = 0
    results: List[RecipientResult] = field(default_factory=list)


class EmailProvider(ABC):
    """Abstract base class for email providers."""

    @abstractmethod
    async def send_email(
        self,
        to: str,
        subject: str,
        html_body: str,
        attachments: Optional[List[Attachment]] = None,
    ) -> EmailResult:
        """Send an email."""
        pass


class GmailEmailService(EmailProvider):
    """
    Gmail API email service.

    Uses a service account with domain-wide delegation to send emails.
    Includes retry logic with exponential backoff.
    """

    MAX_RETRIES = 3
    RETRY_DELAYS = [1, 2, 4]  # Exponential backoff in seconds

    def __init__(self):
        """Initialize Gmail service from settings."""
        self._service = None
        self._sender_email = settings.gmail_sender_email
        self._sender_name = settings.gmail_sender_name

        # Credentials come as base64-encoded service account JSON
        creds_b64 = settings.gmail_service_account_json
        if creds_b64:
            try:
                self._credentials_info = json.loads(base64.b64decode(creds_b64))
                logger.info("Gmail credentials loaded from settings")
            except Exception as e:
                logger.warning(f"Failed to load Gmail credentials: {e}")
                self._credentials_info = None
        else:
            self._credentials_info = None
            logger.warning("GMAIL_SERVICE_ACCOUNT_JSON not set - email sending disabled")

    def _get_service(self):
        """Get or create the Gmail API service."""
        if self._service is not None:
            return self._service

        if not self._credentials_info:
            raise RuntimeError("Gmail credentials not configured")

        from google.oauth2 import service_account
        from googleapiclient.discovery import build

        credentials = service_account.Credentials.from_service_account_info(
            self._credentials_info,
            scopes=['https://www.googleapis.com/auth/gmail.send']
        )
        delegated_credentials = credentials.with_subject(self._sender_email)

        self._service = build('gmail', 'v1', credentials=delegated_credentials)
        logger.info(f"Gmail service initialized for {self._sender_email}")
        return self._service

    async def send_email(
        self,
        to: str,
        subject: str,
        html_body: str,
        attachments: Optional[List[Attachment]] = None,
    ) -> EmailResult:
        """
        Send an email via Gmail API.

        Args:
            to: Recipient email address
            subject: Email subject
            html_body: HTML body content
            attachments: Optional list of attachments

        Returns:
            EmailResult with success status and message ID or error
        """
        last_error = None

        for attempt in range(self.MAX_RETRIES):
            try:
                return await self._send_email_once(to, subject, html_body, attachments)
            except Exception as e:
                last_error = str(e)
                logger.warning(f"Email send attempt {attempt + 1} to {to} failed: {e}")

                if attempt < self.MAX_RETRIES - 1:
                    await asyncio.sleep(self.RETRY_DELAYS[attempt])

        logger.error(f"Email send to {to} failed after {self.MAX_RETRIES} attempts: {last_error}")
        return EmailResult(success=False, error=f"Email delivery failed: {last_error}")

    async def _send_email_once(
        self,
        to: str,
        subject: str,
        html_body: str,
        attachments: Optional[List[Attachment]] = None,
    ) -> EmailResult:
        """Single attempt to send email."""
        service = self._get_service()

        message = MIMEMultipart('mixed')
        message['to'] = to
        message['from'] = f"{self._sender_name} <{self._sender_email}>"
        message['subject'] = subject
        message.attach(MIMEText(html_body, 'html', 'utf-8'))

        if attachments:
            from email.mime.base import MIMEBase
            from email import encoders

            for attachment in attachments:
                maintype, _, subtype = attachment.content_type.partition('/')
                part = MIMEBase(maintype or 'application', subtype or 'octet-stream')
                part.set_payload(attachment.content)
                encoders.encode_base64(part)
                part.add_header(
                    'Content-Disposition',
                    f'attachment; filename="{attachment.filename}"'
                )
                message.attach(part)

        raw_message = base64.urlsafe_b64encode(message.as_bytes()).decode('utf-8')

        # The Gmail client is blocking; keep it off the event loop
        def send():
            return service.users().messages().send(
                userId='me',
                body={'raw': raw_message}
            ).execute()

        result = await asyncio.get_running_loop().run_in_executor(None, send)

        message_id = result.get('id')
        logger.info(f"Email sent to {to}, message_id={message_id}")
        return EmailResult(success=True, message_id=message_id)

    def is_configured(self) -> bool:
        """Check if Gmail is properly configured."""
        return self._credentials_info is not None


# =============================================================================
# Templates
# =============================================================================

def create_test_distribution_subject(test_title: str) -> str:
    return f"Printable test: {test_title}"


def create_test_distribution_email_html(
    test_title: str,
    subject_name: str,
    variant_count: int,
    links: Optional[Sequence] = None,
    message: Optional[str] = None,
) -> str:
    """
    Create the HTML body for a test distribution email.

    Args:
        test_title: Title of the generated test
        subject_name: Subject the test was drawn from
        variant_count: Number of variants
        links: Optional PrintableLink-like objects (kind, url, variant_number);
            when omitted the PDF is expected as an attachment
        message: Optional note from the sender

    Returns:
        HTML email body
    """
    rows = ""
    for link in links or []:
        label = (
            "Answer key" if link.kind == "answer_key"
            else f"Variant {link.variant_number} (#{link.unique_number})"
        )
        rows += (
            f'<li style="margin: 6px 0;"><a href="{html.escape(link.url)}" '
            f'style="color: #2563eb;">{html.escape(label)}</a></li>'
        )
    body = (
        f'<ul style="padding-left: 20px;">{rows}</ul>' if rows
        else '<p style="color: #4b5563;">The printable PDF is attached.</p>'
    )
    note = (
        f'<p style="color: #1f2937; font-size: 15px;">{html.escape(message)}</p>' if message else ""
    )

    return f'''<!DOCTYPE html>
<html lang="en">
<head><meta charset="UTF-8"></head>
<body style="margin: 0; padding: 24px; font-family: Arial, sans-serif; background-color: #f5f5f5;">
    <div style="max-width: 600px; margin: 0 auto; background-color: #ffffff; border-radius: 12px; padding: 32px;">
        <h1 style="margin: 0 0 8px; color: #1f2937; font-size: 22px;">{html.escape(test_title)}</h1>
        <p style="margin: 0 0 24px; color: #64748b;">{html.escape(subject_name)} &middot; {variant_count} variant(s)</p>
        {note}
        {body}
        <p style="margin-top: 32px; color: #9ca3af; font-size: 13px;">{html.escape(settings.brand_name)}</p>
    </div>
</body>
</html>'''


# =============================================================================
# Service Factory
# =============================================================================

_email_service: Optional[EmailProvider] = None


def get_email_service() -> EmailProvider:
    """Get or create the global email service instance."""
    global _email_service
    if _email_service is None:
        _email_service = GmailEmailService()
    return _email_service


async def distribute(
    recipients: Sequence[str],
    subject: str,
    html_body: str,
    attachments: Optional[List[Attachment]] = None,
    provider: Optional[EmailProvider] = None,
) -> DistributionReport:
    """
    Send the same message to each recipient independently.

    A failure for one recipient is recorded in the report and does not stop
    or undo delivery to the others.
    """
    provider = provider or get_email_service()
    report = DistributionReport()

    for recipient in recipients:
        try:
            outcome = await provider.send_email(
                to=recipient,
                subject=subject,
                html_body=html_body,
                attachments=attachments,
            )
        except Exception as e:
            logger.error(f"Delivery to {recipient} raised: {e}")
            outcome = EmailResult(success=False, error=str(e))

        report.results.append(RecipientResult(
            recipient=recipient,
            success=outcome.success,
            message_id=outcome.message_id,
            error=outcome.error,
        ))
        if outcome.success:
            report.sent += 1
        else:
            report.failed += 1

    logger.info(f"Distribution finished: {report.sent} sent, {report.failed} failed")
    return report
