"""
Email service using SendGrid for support, billing and match notifications.
"""

import os
import logging
from typing import Dict, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Mail, Email, To, Content, Header, ReplyTo
from dotenv import load_dotenv

from padelxp.services import settings_service
from padelxp.services.settings_service import get_bool_env

load_dotenv()

logger = logging.getLogger(__name__)

# SendGrid Configuration
SENDGRID_API_KEY = os.getenv("SENDGRID_API_KEY")
SENDGRID_FROM_EMAIL = os.getenv("SENDGRID_FROM_EMAIL", "noreply@padelxp.eu")
SUPPORT_INBOUND_EMAIL = os.getenv("SUPPORT_INBOUND_EMAIL", "support@padelxp.eu")
APP_URL = os.getenv("APP_URL", "https://padelxp.eu")
ENABLE_EMAIL = get_bool_env("ENABLE_EMAIL", default=True)


async def is_enabled(session: Optional[AsyncSession] = None) -> bool:
    """
    Check if email is enabled, checking database first.

    Args:
        session: Optional database session for checking database settings

    Returns:
        True if email is enabled, False otherwise
    """
    try:
        return await settings_service.get_bool_setting(session, "enable_email", default=True)
    except Exception as e:
        logger.warning(f"Error getting ENABLE_EMAIL from settings, using default: {e}")
        return ENABLE_EMAIL


async def send_email(
    to_email: str,
    subject: str,
    body: str,
    session: Optional[AsyncSession] = None,
    headers: Optional[Dict[str, str]] = None,
    reply_to: Optional[str] = None,
) -> Dict:
    """
    Send a plain-text email via SendGrid.

    Returns:
        {"sent": bool, "skipped": bool, "message_id": Optional[str]}
        Failures are logged and reported, never raised.
    """
    if not await is_enabled(session):
        logger.info("Email sending is disabled. Email skipped.")
        return {"sent": False, "skipped": True, "message_id": None}

    if not SENDGRID_API_KEY:
        logger.warning("SENDGRID_API_KEY not configured. Email skipped.")
        return {"sent": False, "skipped": True, "message_id": None}

    try:
        message = Mail(
            from_email=Email(SENDGRID_FROM_EMAIL),
            to_emails=To(to_email),
            subject=subject,
            plain_text_content=Content("text/plain", body),
        )
        for name, value in (headers or {}).items():
            message.header = Header(name, value)
        if reply_to:
            message.reply_to = ReplyTo(reply_to)

        sg = SendGridAPIClient(SENDGRID_API_KEY)
        response = sg.send(message)

        if 200 <= response.status_code < 300:
            message_id = None
            if response.headers:
                message_id = response.headers.get("X-Message-Id")
            logger.info(f"Email '{subject}' sent to {to_email}")
            return {"sent": True, "skipped": False, "message_id": message_id}

        logger.error(f"SendGrid returned status {response.status_code}: {response.body}")
        return {"sent": False, "skipped": False, "message_id": None}
    except Exception as e:
        logger.error(f"Failed to send email '{subject}' to {to_email}: {str(e)}")
        return {"sent": False, "skipped": False, "message_id": None}


async def send_support_email(
    conversation_id: int,
    message: str,
    club_name: Optional[str],
    sender_email: Optional[str],
    subject: Optional[str] = None,
    session: Optional[AsyncSession] = None,
) -> Dict:
    """Forward a club's contact message to the support inbox."""
    lines = [
        f"Club: {club_name or 'Unknown club'}",
        f"From: {sender_email or 'Unknown sender'}",
        f"Conversation: #{conversation_id}",
        "",
        "=" * 60,
        message,
        "=" * 60,
    ]
    return await send_email(
        to_email=SUPPORT_INBOUND_EMAIL,
        subject=subject or f"[PadelXP] Message from {club_name or 'a club'}",
        body="\n".join(lines),
        session=session,
        headers={"X-Conversation-ID": str(conversation_id)},
        reply_to=sender_email,
    )


async def send_trial_reminder_email(
    to_email: str,
    club_name: str,
    days_remaining: int,
    session: Optional[AsyncSession] = None,
) -> Dict:
    """Remind a club admin that the free trial ends soon."""
    plural = "s" if days_remaining > 1 else ""
    body = "\n".join(
        [
            f"Hello {club_name},",
            "",
            f"Your PadelXP free trial ends in {days_remaining} day{plural}.",
            "Choose a plan to keep your leaderboard, challenges and match history running:",
            f"{APP_URL}/dashboard/facturation",
            "",
            "---",
            "This is an automated message from PadelXP.",
        ]
    )
    return await send_email(
        to_email=to_email,
        subject=f"Your PadelXP trial ends in {days_remaining} day{plural}",
        body=body,
        session=session,
    )


async def send_match_confirmation_email(
    to_email: str,
    player_name: str,
    submitted_by: str,
    confirmation_token: str,
    session: Optional[AsyncSession] = None,
) -> Dict:
    """Ask a match participant to confirm the submitted result."""
    body = "\n".join(
        [
            f"Hello {player_name},",
            "",
            f"{submitted_by} recorded a match you played in.",
            "Confirm the result so it counts on the leaderboard:",
            f"{APP_URL}/match/confirm?token={confirmation_token}",
        ]
    )
    return await send_email(
        to_email=to_email,
        subject="Confirm your PadelXP match",
        body=body,
        session=session,
    )
