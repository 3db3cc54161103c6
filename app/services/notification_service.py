"""Notification Service for booking emails.

Sends transactional email through the Resend HTTP API:
- Approval (payment required) with a payment link
- Payment confirmed with the on-chain transaction link

Failures raise NotificationError; callers treat them as soft and never
undo a transition because an email could not be sent.
"""

import logging
from dataclasses import dataclass
from datetime import UTC, date, datetime
from decimal import Decimal
from typing import Any

import httpx

from app.config import settings
from app.core.chains import CHAIN_REGISTRY
from app.core.exceptions import NotificationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ApprovalEmail:
    recipient_email: str
    recipient_name: str
    booking_id: str
    stay_title: str
    stay_location: str
    start_date: date
    end_date: date
    payment_amount: Decimal | None
    payment_token: str
    payment_url: str
    expires_at: datetime


@dataclass(frozen=True)
class ConfirmationEmail:
    recipient_email: str
    recipient_name: str
    booking_id: str
    stay_title: str
    stay_location: str
    start_date: date
    end_date: date
    paid_amount: Decimal
    paid_token: str
    tx_hash: str
    chain_id: int


def explorer_tx_url(chain_id: int, tx_hash: str) -> str:
    """Block explorer link for a transaction on a registered chain."""
    chain = CHAIN_REGISTRY.chains.get(chain_id)
    base = chain.block_explorer if chain else "https://etherscan.io"
    return f"{base}/tx/{tx_hash}"


def _format_amount(amount: Decimal | None) -> str:
    if amount is None:
        return "-"
    return f"{amount.normalize():f}"


class NotificationService:
    """Service for sending booking emails."""

    def __init__(self, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._transport = transport
        self._http_client: httpx.AsyncClient | None = None

    @property
    def http_client(self) -> httpx.AsyncClient:
        """Lazy-load HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=30.0, transport=self._transport)
        return self._http_client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

    async def send_email(self, to_email: str, subject: str, html_content: str) -> str | None:
        """Send an email via Resend.

        Returns:
            The provider message id, if any

        Raises:
            NotificationError: If the key is missing or delivery fails
        """
        if not settings.resend_api_key:
            raise NotificationError("RESEND_API_KEY is not configured")

        payload: dict[str, Any] = {
            "from": f"{settings.email_from_name} <{settings.email_from_address}>",
            "to": [to_email],
            "subject": subject,
            "html": html_content,
        }
        try:
            response = await self.http_client.post(
                settings.resend_api_url,
                headers={"Authorization": f"Bearer {settings.resend_api_key}"},
                json=payload,
            )
        except httpx.HTTPError as e:
            logger.warning(f"Email to {to_email} failed: {e}")
            raise NotificationError(str(e)) from e

        if response.status_code not in (200, 201, 202):
            logger.warning(
                f"Email to {to_email} rejected: {response.status_code} {response.text}"
            )
            raise NotificationError(f"Email provider returned {response.status_code}")

        message_id = response.json().get("id") if response.content else None
        logger.info(f"Email '{subject}' sent to {to_email} (id={message_id})")
        return message_id

    async def send_approval_email(self, email: ApprovalEmail) -> str | None:
        subject = f"Your booking for {email.stay_title} is approved!"
        expiry = email.expires_at.astimezone(UTC).strftime("%d %b %Y, %H:%M UTC")
        body = f"""
            <h2>Congratulations, {email.recipient_name}!</h2>
            <p>Your application for <strong>{email.stay_title}</strong>
               ({email.stay_location}, {email.start_date:%d %b} - {email.end_date:%d %b %Y})
               has been approved.</p>
            <p>To confirm your spot, complete your payment. Your payment link expires on
               <strong>{expiry}</strong>.</p>
            <p>Amount due: <strong>${_format_amount(email.payment_amount)} {email.payment_token}</strong></p>
            {self._button(email.payment_url, "Complete Payment")}
            <p style="font-size: 13px;">{email.payment_url}</p>
            <p>Booking ID: {email.booking_id}</p>
        """
        return await self.send_email(
            email.recipient_email, subject, self._generate_email_html(subject, body)
        )

    async def send_confirmation_email(self, email: ConfirmationEmail) -> str | None:
        subject = f"Payment Confirmed! You're all set for {email.stay_title}"
        tx_url = explorer_tx_url(email.chain_id, email.tx_hash)
        body = f"""
            <p>Hi {email.recipient_name},</p>
            <p>We've received your payment. Your spot for <strong>{email.stay_title}</strong>
               ({email.stay_location}, {email.start_date:%d %b} - {email.end_date:%d %b %Y})
               is confirmed.</p>
            <ul>
              <li><strong>Amount Paid:</strong> ${_format_amount(email.paid_amount)} {email.paid_token}</li>
              <li><strong>Booking ID:</strong> {email.booking_id}</li>
              <li><strong>Transaction:</strong> <a href="{tx_url}">{email.tx_hash}</a></li>
            </ul>
        """
        return await self.send_email(
            email.recipient_email, subject, self._generate_email_html(subject, body)
        )

    @staticmethod
    def _button(url: str, label: str) -> str:
        return f"""
            <p style="margin-top: 24px;">
                <a href="{url}"
                   style="background-color: #0070f3; color: white; padding: 14px 28px;
                          text-decoration: none; border-radius: 6px; display: inline-block;">
                    {label}
                </a>
            </p>
        """

    def _generate_email_html(self, title: str, body_html: str) -> str:
        return f"""
        <!DOCTYPE html>
        <html>
        <head>
            <meta charset="utf-8">
            <title>{title}</title>
        </head>
        <body style="font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif;
                     max-width: 600px; margin: 0 auto; padding: 20px; color: #333;">
            <div style="background-color: #f9fafb; border-radius: 8px; padding: 24px;">
                {body_html}
                <p>Questions? Contact
                   <a href="mailto:{settings.email_from_address}">{settings.email_from_address}</a>.</p>
            </div>
            <p style="color: #9ca3af; font-size: 12px; margin-top: 24px; text-align: center;">
                &copy; {datetime.now(UTC).year} {settings.app_name}.
            </p>
        </body>
        </html>
        """


notification_service = NotificationService()
