"""
Chat tests: one conversation per client and unread accounting.
"""

import pytest

from app.core.exceptions import NotFoundError, PermissionDeniedError, ValidationError
from app.models.chat import ChatConversation, ChatMessage
from app.services import chat_service


def _conversation(client_id="cliente-001"):
    return ChatConversation.query.filter_by(client_id=client_id).one()


class TestSendMessage:
    def test_first_message_creates_conversation(self, admin):
        result = chat_service.send_message(admin, "cliente-001", "Bom dia!")
        assert result["message"]["sender"] == "admin"
        assert result["conversation"]["client_name"] == "Empresa ABC Ltda"
        assert result["conversation"]["unread_count"] == 0
        assert ChatConversation.query.count() == 1

    def test_one_conversation_per_client(self, admin, reader):
        chat_service.send_message(admin, "cliente-001", "Olá")
        chat_service.send_message(reader, "cliente-001", "Oi, tudo bem?")
        chat_service.send_message(reader, "cliente-002", "Pedido atrasado?")
        assert ChatConversation.query.filter_by(client_id="cliente-001").count() == 1
        assert ChatConversation.query.count() == 2

    def test_reader_always_sends_as_client(self, reader):
        result = chat_service.send_message(reader, "cliente-001", "Pergunta", sender="admin")
        assert result["message"]["sender"] == "client"
        assert result["conversation"]["unread_count"] == 1

    def test_conversation_tracks_last_message(self, admin, reader):
        chat_service.send_message(reader, "cliente-002", "primeira")
        chat_service.send_message(admin, "cliente-002", "resposta")
        assert _conversation("cliente-002").last_message == "resposta"

    def test_empty_body_rejected(self, admin):
        with pytest.raises(ValidationError):
            chat_service.send_message(admin, "cliente-001", "   ")
        assert ChatMessage.query.count() == 0

    def test_invalid_sender_rejected(self, admin):
        with pytest.raises(ValidationError):
            chat_service.send_message(admin, "cliente-001", "x", sender="bot")

    def test_reader_cannot_reach_unlinked_client(self, reader):
        with pytest.raises(NotFoundError):
            chat_service.send_message(reader, "cliente-003", "oi")
        with pytest.raises(NotFoundError):
            chat_service.list_messages(reader, "cliente-003")

    def test_unknown_role_denied(self, admin):
        admin.role = "guest"
        with pytest.raises(PermissionDeniedError):
            chat_service.send_message(admin, "cliente-001", "oi")


class TestUnreadAccounting:
    def test_counter_matches_unread_client_messages(self, admin, reader):
        for body in ("um", "dois", "três"):
            chat_service.send_message(reader, "cliente-001", body)
        chat_service.send_message(admin, "cliente-001", "resposta")

        conv = _conversation()
        assert conv.unread_count == 3
        assert chat_service.unread_client_messages(admin.tenant_id, "cliente-001") == 3

    def test_mark_message_read_decrements_once(self, admin, reader):
        sent = chat_service.send_message(reader, "cliente-001", "olá")
        chat_service.send_message(reader, "cliente-001", "alguém?")
        message_id = sent["message"]["id"]

        chat_service.mark_message_read(admin, message_id)
        chat_service.mark_message_read(admin, message_id)
        assert _conversation().unread_count == 1
        assert chat_service.unread_client_messages(admin.tenant_id, "cliente-001") == 1

    def test_reading_admin_message_leaves_counter(self, admin, reader):
        chat_service.send_message(reader, "cliente-001", "olá")
        reply = chat_service.send_message(admin, "cliente-001", "oi")
        chat_service.mark_message_read(reader, reply["message"]["id"])
        assert _conversation().unread_count == 1

    def test_mark_conversation_read(self, admin, reader):
        for body in ("a", "b"):
            chat_service.send_message(reader, "cliente-001", body)
        conv = chat_service.mark_conversation_read(admin, _conversation().id)
        assert conv["unread_count"] == 0
        assert chat_service.unread_client_messages(admin.tenant_id, "cliente-001") == 0

    def test_unknown_message(self, admin):
        with pytest.raises(NotFoundError):
            chat_service.mark_message_read(admin, "missing")


class TestListing:
    def test_reader_lists_only_linked_conversations(self, admin, reader):
        chat_service.send_message(admin, "cliente-001", "a")
        chat_service.send_message(admin, "cliente-003", "b")
        assert {c["client_id"] for c in chat_service.list_conversations(admin)} == {"cliente-001", "cliente-003"}
        assert [c["client_id"] for c in chat_service.list_conversations(reader)] == ["cliente-001"]

    def test_messages_in_chronological_order(self, admin, reader):
        chat_service.send_message(reader, "cliente-001", "primeira")
        chat_service.send_message(admin, "cliente-001", "segunda")
        bodies = [m["body"] for m in chat_service.list_messages(admin, "cliente-001")]
        assert bodies == ["primeira", "segunda"]
