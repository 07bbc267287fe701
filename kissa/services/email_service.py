"""
Email service using SendGrid for sending notifications.
"""

import asyncio
import logging
from typing import Optional

from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Mail, Email, To, Content

from kissa import config

logger = logging.getLogger(__name__)


class EmailDeliveryError(Exception):
    """SendGrid rejected or failed to deliver a message."""


class SendGridEmailNotifier:
    """
    Sends editor invitation emails through SendGrid.

    When email is disabled (``ENABLE_EMAIL=false``) or no API key is
    configured, sends are skipped with a warning and reported as not sent.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        from_email: Optional[str] = None,
        public_url: Optional[str] = None,
        enabled: Optional[bool] = None,
    ):
        self.api_key = api_key if api_key is not None else config.SENDGRID_API_KEY
        self.from_email = from_email or config.SENDGRID_FROM_EMAIL
        self.public_url = (public_url or config.PUBLIC_URL).rstrip("/")
        self.enabled = config.ENABLE_EMAIL if enabled is None else enabled

    def _build_invitation(
        self,
        to_email: str,
        inviter_name: str,
        place_name: str,
        permission_id: str,
        custom_message: Optional[str] = None,
    ) -> Mail:
        accept_url = f"{self.public_url}/editor/permissions?invitation={permission_id}"
        body_lines = [
            f"{inviter_name} has invited you to help edit \"{place_name}\".",
            "",
        ]
        if custom_message:
            body_lines.extend(["Message:", custom_message, ""])
        body_lines.extend([
            "Accept the invitation here:",
            accept_url,
            "",
            "---",
            "If you weren't expecting this invitation, you can ignore this email.",
        ])
        return Mail(
            from_email=Email(self.from_email),
            to_emails=To(to_email),
            subject=f"You're invited to edit {place_name}",
            plain_text_content=Content("text/plain", "\n".join(body_lines)),
        )

    async def send_editor_invitation(
        self,
        to_email: str,
        inviter_name: str,
        place_name: str,
        permission_id: str,
        custom_message: Optional[str] = None,
    ) -> bool:
        """
        Send an editor invitation email.

        Args:
            to_email: Invitee's email address
            inviter_name: Display name of the inviting user
            place_name: Name of the place being shared
            permission_id: Permission row the invitee should accept
            custom_message: Optional note from the inviter

        Returns:
            bool: True if the email was sent, False if sending is disabled

        Raises:
            EmailDeliveryError: If SendGrid returns a non-2xx status
        """
        if not self.enabled:
            logger.info(f"Email disabled, skipping editor invitation to {to_email}")
            return False
        if not self.api_key:
            logger.warning("SENDGRID_API_KEY not configured. Email notification skipped.")
            return False

        message = self._build_invitation(
            to_email, inviter_name, place_name, permission_id, custom_message
        )
        client = SendGridAPIClient(self.api_key)
        # The SendGrid client is blocking
        response = await asyncio.to_thread(client.send, message)

        if 200 <= response.status_code < 300:
            logger.info(f"Editor invitation email sent successfully to {to_email}")
            return True
        raise EmailDeliveryError(f"SendGrid returned status {response.status_code}: {response.body}")
