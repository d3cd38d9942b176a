"""Email Service - Resend integration for transactional emails.

Features:
- Send transactional emails via the Resend HTTP API
- HTML and plain text support
- No external SDK required (uses httpx)
"""

from servicegrid_portal.config import settings
import logging
from typing import Optional, Dict, Any, List
import uuid
import httpx

logger = logging.getLogger(__name__)

# Resend API endpoint
RESEND_API_URL = "https://api.resend.com/emails"


class EmailService:
    """Service for sending emails via Resend API."""

    def __init__(self):
        self.api_key = settings.RESEND_API_KEY
        self.from_address = settings.EMAIL_FROM_ADDRESS
        self.from_name = settings.EMAIL_FROM_NAME

    @property
    def is_configured(self) -> bool:
        """Check if email service is properly configured."""
        return bool(self.api_key) and bool(self.from_address)

    @property
    def sender(self) -> str:
        return f"{self.from_name} <{self.from_address}>"

    def get_status(self) -> Dict[str, Any]:
        """Get email service configuration status."""
        if not self.api_key:
            return {
                "connected": False,
                "configured": False,
                "provider": "resend",
                "message": "Resend API key not configured. Set RESEND_API_KEY environment variable.",
            }

        return {
            "connected": True,
            "configured": True,
            "provider": "resend",
            "from_address": self.from_address,
            "from_name": self.from_name,
            "message": "Resend email service configured",
        }

    @staticmethod
    def _failure(error: str, status_code: Optional[int] = None) -> Dict[str, Any]:
        return {
            "success": False,
            "error": error,
            "status_code": status_code,
            "message_id": None,
        }

    async def send_email(
        self,
        to: str,
        subject: str,
        body: str,
        html_body: Optional[str] = None,
        reply_to: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Send an email via Resend API.

        Args:
            to: Recipient email address
            subject: Email subject line
            body: Plain text body
            html_body: Optional HTML body (if not provided, plain text wrapped in basic HTML)
            reply_to: Optional reply-to address

        Returns:
            Dict with status_code, message_id, and success status
        """
        if not self.api_key:
            error_msg = "Resend API key not configured"
            logger.error(error_msg)
            return self._failure(error_msg)

        payload: Dict[str, Any] = {
            "from": self.sender,
            "to": [to],
            "subject": subject,
            "text": body,
            "html": html_body or f"<html><body><p>{body.replace(chr(10), '<br>')}</p></body></html>",
        }

        if reply_to:
            payload["reply_to"] = reply_to

        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

        try:
            async with httpx.AsyncClient() as client:
                response = await client.post(
                    RESEND_API_URL,
                    json=payload,
                    headers=headers,
                    timeout=30.0,
                )

            if response.status_code in (200, 201, 202):
                message_id = response.json().get("id")

                logger.info(
                    "Email sent successfully via Resend",
                    extra={
                        "subject": subject[:50],
                        "status_code": response.status_code,
                        "message_id": message_id,
                    },
                )

                return {
                    "success": True,
                    "status_code": response.status_code,
                    "message_id": message_id,
                }

            logger.error(
                "Resend API error",
                extra={
                    "status_code": response.status_code,
                    "error": response.text[:500],
                },
            )
            return self._failure(f"Resend API error: {response.status_code}", response.status_code)

        except httpx.TimeoutException:
            error_msg = "Resend API request timed out"
            logger.error(error_msg)
            return self._failure(error_msg)
        except httpx.HTTPError as e:
            logger.error(
                "Failed to send email via Resend",
                extra={"error": str(e)},
            )
            return self._failure(str(e))


class MockEmailService(EmailService):
    """Mock email service for testing and development."""

    def __init__(self, configured: bool = True, fail_sends: bool = False):
        self.api_key = "mock-key" if configured else None
        self.from_address = "test@example.com"
        self.from_name = "Test Sender"
        self.fail_sends = fail_sends
        self._sent_emails: List[Dict[str, Any]] = []

    def get_status(self) -> Dict[str, Any]:
        """Mock status."""
        return {
            "connected": self.is_configured,
            "configured": self.is_configured,
            "provider": "mock",
            "message": "Mock email service (emails not actually sent)",
        }

    async def send_email(
        self,
        to: str,
        subject: str,
        body: str,
        html_body: Optional[str] = None,
        reply_to: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Record the email instead of sending it."""
        if not self.is_configured:
            return self._failure("Resend API key not configured")
        if self.fail_sends:
            return self._failure("Mock send failure", 500)

        message_id = f"mock-{uuid.uuid4().hex[:12]}"
        self._sent_emails.append({
            "to": to,
            "subject": subject,
            "body": body,
            "html_body": html_body,
            "reply_to": reply_to,
            "message_id": message_id,
        })
        logger.info("Mock email recorded", extra={"subject": subject[:50]})
        return {
            "success": True,
            "status_code": 202,
            "message_id": message_id,
        }

    def get_sent_emails(self) -> List[Dict[str, Any]]:
        return list(self._sent_emails)

    def clear_sent_emails(self) -> None:
        self._sent_emails.clear()


_email_service: Optional[EmailService] = None


def get_email_service() -> EmailService:
    """Get or create the process-wide email service."""
    global _email_service
    if _email_service is None:
        _email_service = EmailService()
    return _email_service
