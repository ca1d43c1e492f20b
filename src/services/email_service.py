import asyncio
import logging
import os
import smtplib
from datetime import datetime
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional

logger = logging.getLogger(__name__)


class EmailConfig:
    """Email configuration from environment variables."""

    SMTP_HOST = os.getenv("SMTP_HOST", "smtp.mailgun.org")
    SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
    SMTP_USERNAME = os.getenv("SMTP_USERNAME", "")
    SMTP_PASSWORD = os.getenv("SMTP_PASSWORD", "")
    FROM_EMAIL = os.getenv("EMAIL_FROM", "noreply@streamvault.tv")
    FROM_NAME = "StreamVault"

    WEB_BASE_URL = os.getenv("WEB_BASE_URL", "https://streamvault.tv")
    USE_MOCK_EMAIL = os.getenv("USE_MOCK_EMAIL", "true").lower() == "true"


def _format_date(value: datetime) -> str:
    return value.strftime("%B %d, %Y")


def _wrap_html(title: str, body: str) -> str:
    return f"""
        <!DOCTYPE html>
        <html>
        <head>
            <meta charset="utf-8">
            <title>{title}</title>
        </head>
        <body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333;">
            <div style="max-width: 600px; margin: 0 auto; padding: 20px;">
                <div style="text-align: center; margin-bottom: 30px;">
                    <h1 style="color: #e50914;">{EmailConfig.FROM_NAME}</h1>
                </div>
                <h2>{title}</h2>
                {body}
                <hr style="margin: 30px 0; border: none; border-top: 1px solid #eee;">
                <p style="font-size: 14px; color: #666;">
                    Manage your plan at <a href="{EmailConfig.WEB_BASE_URL}/account">{EmailConfig.WEB_BASE_URL}/account</a>.
                </p>
            </div>
        </body>
        </html>
        """


class EmailService:
    """Delivers notifications to an email address."""

    def __init__(self):
        self.config = EmailConfig()

    async def send_email(self, to_email: str, subject: str, html_body: str, text_body: Optional[str] = None) -> bool:
        """Send an email."""
        if self.config.USE_MOCK_EMAIL:
            return await self._send_mock_email(to_email, subject, text_body or html_body)
        else:
            return await self._send_smtp_email(to_email, subject, html_body, text_body)

    async def _send_mock_email(self, to_email: str, subject: str, body: str) -> bool:
        """Mock email sending for development."""
        logger.info(f"MOCK EMAIL to={to_email} subject={subject!r}")
        logger.debug(body)
        return True

    async def _send_smtp_email(
        self, to_email: str, subject: str, html_body: str, text_body: Optional[str] = None
    ) -> bool:
        """Send email via SMTP."""
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = f"{self.config.FROM_NAME} <{self.config.FROM_EMAIL}>"
        msg["To"] = to_email

        if text_body:
            msg.attach(MIMEText(text_body, "plain"))
        msg.attach(MIMEText(html_body, "html"))

        await asyncio.to_thread(self._deliver, msg)
        return True

    def _deliver(self, msg: MIMEMultipart) -> None:
        with smtplib.SMTP(self.config.SMTP_HOST, self.config.SMTP_PORT) as server:
            server.starttls()
            server.login(self.config.SMTP_USERNAME, self.config.SMTP_PASSWORD)
            server.send_message(msg)

    async def send_subscription_confirmation(
        self,
        to_email: str,
        name: str,
        plan_name: str,
        start_date: datetime,
        end_date: datetime,
        amount: float,
        currency: str,
    ) -> bool:
        subject = f"Welcome to {plan_name}"
        text_body = (
            f"Hi {name},\n\n"
            f"Your {plan_name} subscription is active from {_format_date(start_date)} "
            f"until {_format_date(end_date)}.\n"
            f"Amount charged: {amount:.2f} {currency}.\n\nEnjoy watching!"
        )
        html_body = _wrap_html(
            "Your subscription is active",
            f"<p>Hi {name},</p>"
            f"<p>Your <strong>{plan_name}</strong> subscription is active from "
            f"{_format_date(start_date)} until {_format_date(end_date)}.</p>"
            f"<p>Amount charged: {amount:.2f} {currency}.</p>",
        )
        return await self.send_email(to_email, subject, html_body, text_body)

    async def send_subscription_cancellation(self, to_email: str, name: str, end_date: datetime) -> bool:
        subject = "Your subscription has been cancelled"
        text_body = (
            f"Hi {name},\n\n"
            f"Your subscription has been cancelled. You can keep watching until "
            f"{_format_date(end_date)}."
        )
        html_body = _wrap_html(
            "Subscription cancelled",
            f"<p>Hi {name},</p>"
            f"<p>Your subscription has been cancelled. You can keep watching until "
            f"<strong>{_format_date(end_date)}</strong>.</p>",
        )
        return await self.send_email(to_email, subject, html_body, text_body)

    async def send_subscription_renewal(
        self,
        to_email: str,
        name: str,
        plan_name: str,
        start_date: datetime,
        end_date: datetime,
        amount: float,
        currency: str,
    ) -> bool:
        subject = f"Your {plan_name} subscription was renewed"
        text_body = (
            f"Hi {name},\n\n"
            f"Your {plan_name} subscription has been renewed for the period "
            f"{_format_date(start_date)} - {_format_date(end_date)} ({amount:.2f} {currency})."
        )
        html_body = _wrap_html(
            "Subscription renewed",
            f"<p>Hi {name},</p>"
            f"<p>Your <strong>{plan_name}</strong> subscription has been renewed for the period "
            f"{_format_date(start_date)} - {_format_date(end_date)} ({amount:.2f} {currency}).</p>",
        )
        return await self.send_email(to_email, subject, html_body, text_body)

    async def send_subscription_expiring(
        self, to_email: str, name: str, end_date: datetime, days_left: int
    ) -> bool:
        day_word = "day" if days_left == 1 else "days"
        subject = f"Your subscription expires in {days_left} {day_word}"
        text_body = (
            f"Hi {name},\n\n"
            f"Your subscription ends on {_format_date(end_date)}. "
            f"Renew now to keep streaming without interruption."
        )
        html_body = _wrap_html(
            "Your subscription is about to expire",
            f"<p>Hi {name},</p>"
            f"<p>Your subscription ends on <strong>{_format_date(end_date)}</strong> "
            f"({days_left} {day_word} left).</p>"
            f'<p><a href="{self.config.WEB_BASE_URL}/plans">Renew now</a> to keep streaming.</p>',
        )
        return await self.send_email(to_email, subject, html_body, text_body)
