from unittest.mock import patch

import pytest
from sqlalchemy.exc import IntegrityError

from app.models import Conversation, Customer, Message, MessageSender
from app.services import conversation_service
from app.services.conversation_service import (
    OPEN_STATUS_VALUES,
    get_or_create_conversation,
    get_or_create_customer,
    normalize_phone,
    set_conversation_status,
)
from app.services.message_service import rebuild_context, save_inbound_message, save_message
from app.services.state_machine import ConversationStatus


class TestNormalizePhone:
    def test_digits_with_plus(self):
        assert normalize_phone("233241234567") == "+233241234567"

    def test_strips_formatting(self):
        assert normalize_phone("whatsapp:+233 24-123-4567") == "+233241234567"

    def test_rejects_empty(self):
        with pytest.raises(ValueError):
            normalize_phone("abc")


class TestGetOrCreateCustomer:
    def test_creates_once(self, db):
        first, created = get_or_create_customer(db, "+233241234567", "Ama")
        second, created_again = get_or_create_customer(db, "+233241234567", "Someone Else")
        db.commit()

        assert created is True
        assert created_again is False
        assert first.id == second.id
        assert second.name == "Ama"

    def test_fills_missing_name(self, db):
        customer, _ = get_or_create_customer(db, "+233241234567")
        get_or_create_customer(db, "+233241234567", "Ama")
        assert customer.name == "Ama"


class TestOneOpenConversation:
    def test_find_or_create_reuses_open(self, db, customer):
        first, created = get_or_create_conversation(db, customer.id)
        second, created_again = get_or_create_conversation(db, customer.id)
        db.commit()

        assert created is True
        assert created_again is False
        assert first.id == second.id
        assert db.query(Conversation).filter(Conversation.customer_id == customer.id).count() == 1

    def test_storage_rejects_second_open_conversation(self, db, customer):
        get_or_create_conversation(db, customer.id)
        db.commit()

        db.add(Conversation(customer_id=customer.id, status="WAITING_FOR_AGENT"))
        with pytest.raises(IntegrityError):
            db.flush()
        db.rollback()

    def test_new_conversation_after_close(self, db, customer):
        first, _ = get_or_create_conversation(db, customer.id)
        set_conversation_status(db, first, ConversationStatus.CLOSED)
        db.commit()

        second, created = get_or_create_conversation(db, customer.id)
        db.commit()

        assert created is True
        assert second.id != first.id
        assert first.closed_at is not None


class TestSetConversationStatus:
    def test_escalation_records_reason(self, db, customer):
        conversation, _ = get_or_create_conversation(db, customer.id)
        set_conversation_status(db, conversation, ConversationStatus.WAITING_FOR_AGENT, reason="asked for agent")
        assert conversation.escalated_at is not None
        assert conversation.escalation_reason == "asked for agent"

    def test_return_to_active_clears_assignment(self, db, customer):
        conversation, _ = get_or_create_conversation(db, customer.id)
        set_conversation_status(db, conversation, ConversationStatus.WITH_AGENT, assigned_to="agent-1")
        set_conversation_status(db, conversation, ConversationStatus.ACTIVE)
        assert conversation.assigned_to is None


class TestInboundMessages:
    def test_duplicate_provider_id_is_ignored(self, db, customer):
        conversation, _ = get_or_create_conversation(db, customer.id)
        first = save_inbound_message(db, conversation, "hi", "wamid.1")
        second = save_inbound_message(db, conversation, "hi", "wamid.1")
        db.commit()

        assert first is not None
        assert second is None
        assert db.query(Message).filter(Message.provider_message_id == "wamid.1").count() == 1

    def test_rebuild_context_from_log(self, db, customer):
        conversation, _ = get_or_create_conversation(db, customer.id)
        save_inbound_message(db, conversation, "hello", "wamid.1")
        save_message(db, conversation.id, MessageSender.AI, "Hi Ama!")
        save_message(db, conversation.id, MessageSender.SYSTEM, "internal note")
        db.commit()

        context = rebuild_context(db, conversation, customer)

        assert context.customer_name == "Ama"
        assert [(t.role, t.content) for t in context.turns] == [("user", "hello"), ("assistant", "Hi Ama!")]


class TestConcurrentCreation:
    """A request that loses the insert race falls back to the row the winner created."""

    def miss_once(self, real):
        calls = {"n": 0}

        def lookup(*args):
            calls["n"] += 1
            return None if calls["n"] == 1 else real(*args)

        return lookup

    def test_conversation_race_returns_existing(self, db, customer):
        existing, _ = get_or_create_conversation(db, customer.id)
        db.commit()

        lookup = self.miss_once(conversation_service.find_open_conversation)
        with patch.object(conversation_service, "find_open_conversation", side_effect=lookup):
            conversation, created = get_or_create_conversation(db, customer.id)
        db.commit()

        assert (conversation.id, created) == (existing.id, False)
        open_count = (
            db.query(Conversation)
            .filter(Conversation.customer_id == customer.id, Conversation.status.in_(OPEN_STATUS_VALUES))
            .count()
        )
        assert open_count == 1

    def test_customer_race_returns_existing(self, db, customer):
        lookup = self.miss_once(conversation_service.find_customer)
        with patch.object(conversation_service, "find_customer", side_effect=lookup):
            found, created = get_or_create_customer(db, customer.phone_number, "Ama")
        db.commit()

        assert (found.id, created) == (customer.id, False)
        assert db.query(Customer).count() == 1
