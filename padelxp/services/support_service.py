"""
Support conversations between clubs and the PadelXP team.
"""

import logging
from typing import Dict, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from padelxp.database.models import (
    SupportConversation,
    SupportConversationStatus,
    SupportMessage,
)
from padelxp.services import data_service, email_service
from padelxp.utils.datetime_utils import isoformat, utcnow

logger = logging.getLogger(__name__)

MAX_MESSAGE_LENGTH = 5000


async def resolve_user_club_id(session: AsyncSession, user_id: int) -> Optional[int]:
    """Club of a user: the profile's club, else the first club they administer."""
    profile = await data_service.get_profile_by_user_id(session, user_id)
    if profile and profile.get("club_id"):
        return profile["club_id"]
    admin_club_ids = await data_service.get_admin_club_ids(session, user_id)
    return admin_club_ids[0] if admin_club_ids else None


async def get_or_create_conversation(
    session: AsyncSession, club_id: int, user_id: int, subject: Optional[str] = None
) -> SupportConversation:
    result = await session.execute(
        select(SupportConversation)
        .where(
            SupportConversation.club_id == club_id,
            SupportConversation.user_id == user_id,
            SupportConversation.status == SupportConversationStatus.OPEN.value,
        )
        .order_by(SupportConversation.id.desc())
    )
    conversation = result.scalars().first()
    if conversation is not None:
        return conversation

    conversation = SupportConversation(
        club_id=club_id,
        user_id=user_id,
        status=SupportConversationStatus.OPEN.value,
        subject=subject or "Contact",
        last_message_at=utcnow(),
    )
    session.add(conversation)
    await session.flush()
    return conversation


async def send_contact_message(
    session: AsyncSession, user: Dict, message: str, subject: Optional[str] = None
) -> Dict:
    """
    Record a club's message and forward it to the support inbox.

    The message is stored even when the email cannot be sent.

    Raises:
        ValueError: If the message is blank or the user has no club
    """
    content = (message or "").strip()
    if not content:
        raise ValueError("Message is required")
    if len(content) > MAX_MESSAGE_LENGTH:
        raise ValueError(f"Message is too long (max {MAX_MESSAGE_LENGTH} characters)")

    club_id = await resolve_user_club_id(session, user["id"])
    if club_id is None:
        raise ValueError("Could not find your club. Check that your account is set up.")
    club = await data_service.get_club(session, club_id)

    conversation = await get_or_create_conversation(session, club_id, user["id"], subject)
    email_result = await email_service.send_support_email(
        conversation_id=conversation.id,
        message=content,
        club_name=club["name"] if club else None,
        sender_email=user.get("email"),
        subject=subject,
        session=session,
    )
    if not email_result["sent"] and not email_result["skipped"]:
        logger.error(f"Support email for conversation {conversation.id} was not delivered")

    support_message = SupportMessage(
        conversation_id=conversation.id,
        sender_type="club",
        sender_id=user["id"],
        content=content,
        email_message_id=email_result.get("message_id"),
    )
    session.add(support_message)
    conversation.last_message_at = utcnow()
    await session.flush()

    return {
        "success": True,
        "conversation_id": conversation.id,
        "message_id": support_message.id,
        "email_sent": email_result["sent"],
    }


async def get_open_conversation(session: AsyncSession, user_id: int) -> Optional[Dict]:
    """The user's open support conversation with its messages, oldest first."""
    result = await session.execute(
        select(SupportConversation)
        .where(
            SupportConversation.user_id == user_id,
            SupportConversation.status == SupportConversationStatus.OPEN.value,
        )
        .order_by(SupportConversation.id.desc())
    )
    conversation = result.scalars().first()
    if conversation is None:
        return None

    messages_result = await session.execute(
        select(SupportMessage)
        .where(SupportMessage.conversation_id == conversation.id)
        .order_by(SupportMessage.id)
    )
    return {
        "id": conversation.id,
        "club_id": conversation.club_id,
        "status": conversation.status,
        "subject": conversation.subject,
        "last_message_at": isoformat(conversation.last_message_at),
        "messages": [
            {
                "id": m.id,
                "sender_type": m.sender_type,
                "content": m.content,
                "created_at": isoformat(m.created_at),
            }
            for m in messages_result.scalars().all()
        ],
    }
