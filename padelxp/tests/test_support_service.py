"""
Tests for support contact messages.
"""
import pytest
import pytest_asyncio

from padelxp.services import data_service, email_service, support_service, user_service


@pytest_asyncio.fixture
async def club_admin(db_session):
    user_id = await user_service.create_user(db_session, "gerant@club.fr", "hash")
    club = await data_service.create_club(db_session, "Padel Sud", user_id)
    return {"id": user_id, "email": "gerant@club.fr"}, club


@pytest.fixture
def sent_emails(monkeypatch):
    sent = []

    async def fake_send_support_email(conversation_id, message, club_name, sender_email, subject=None, session=None):
        sent.append({"conversation_id": conversation_id, "club_name": club_name, "sender_email": sender_email})
        return {"sent": True, "skipped": False, "message_id": "msg-42"}

    monkeypatch.setattr(email_service, "send_support_email", fake_send_support_email)
    return sent


@pytest.mark.asyncio
async def test_resolve_user_club_id(db_session, club_admin):
    user, club = club_admin
    assert await support_service.resolve_user_club_id(db_session, user["id"]) == club["id"]

    stranger = await user_service.create_user(db_session, "stranger@mail.fr", "hash")
    assert await support_service.resolve_user_club_id(db_session, stranger) is None


@pytest.mark.asyncio
async def test_messages_share_one_open_conversation(db_session, club_admin, sent_emails):
    user, club = club_admin
    first = await support_service.send_contact_message(db_session, user, "Bonjour, une question sur la facture", "Facturation")
    second = await support_service.send_contact_message(db_session, user, "Merci !")

    assert first["conversation_id"] == second["conversation_id"]
    assert first["email_sent"] is True
    assert sent_emails[0]["club_name"] == "Padel Sud"

    conversation = await support_service.get_open_conversation(db_session, user["id"])
    assert conversation["subject"] == "Facturation"
    assert [m["content"] for m in conversation["messages"]] == ["Bonjour, une question sur la facture", "Merci !"]


@pytest.mark.asyncio
async def test_blank_message_is_rejected(db_session, club_admin):
    user, _ = club_admin
    with pytest.raises(ValueError, match="required"):
        await support_service.send_contact_message(db_session, user, "   ")


@pytest.mark.asyncio
async def test_user_without_club(db_session, sent_emails):
    user_id = await user_service.create_user(db_session, "solo@mail.fr", "hash")
    with pytest.raises(ValueError, match="club"):
        await support_service.send_contact_message(db_session, {"id": user_id, "email": "solo@mail.fr"}, "Allo ?")
    assert sent_emails == []
