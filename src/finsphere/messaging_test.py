import pytest

from finsphere import messaging, models
from finsphere.errors import NotFound, PermissionDenied, ValidationFailed
from finsphere.presence import InMemoryPresenceRegistry


class TestSendMessage:
    """Outgoing message validation"""

    def test_self_send_rejected_before_lookup(self, session):
        with pytest.raises(ValidationFailed) as exc:
            messaging.send_message(session, 42, 42, "hello me")
        assert exc.value.message == "You cannot send a message to yourself"
        assert exc.value.status_code == 400
        assert session.query(models.Message).count() == 0

    def test_self_send_rejected_with_string_id(self):
        with pytest.raises(ValidationFailed):
            messaging.validate_outgoing(7, "7", "hi")

    @pytest.mark.parametrize("recipient_id,content,message", [
        (None, "hi", "Recipient is required"),
        ("abc", "hi", "Invalid recipient"),
        (2, "   ", "Message content is required"),
        (2, "x" * 1001, "Message cannot exceed 1000 characters"),
    ])
    def test_field_checks(self, recipient_id, content, message):
        with pytest.raises(ValidationFailed) as exc:
            messaging.validate_outgoing(1, recipient_id, content)
        assert exc.value.message == message

    def test_unknown_recipient(self, session, make_user):
        sender = make_user("Sender")
        with pytest.raises(NotFound):
            messaging.send_message(session, sender.user_id, 999, "hello")

    def test_content_trimmed_and_stored_unread(self, session, make_user):
        a, b = make_user("A"), make_user("B")
        message = messaging.send_message(session, a.user_id, b.user_id, "  hello  ")
        assert message.content == "hello"
        assert message.is_read is False


class TestConversations:
    """Threads, read state and deletion"""

    def test_conversation_chronological_and_marks_read(self, session, make_user):
        a, b = make_user("A"), make_user("B")
        first = messaging.send_message(session, a.user_id, b.user_id, "one")
        second = messaging.send_message(session, b.user_id, a.user_id, "two")
        third = messaging.send_message(session, a.user_id, b.user_id, "three")

        other, messages, total = messaging.conversation(session, b.user_id, a.user_id)

        assert other.user_id == a.user_id
        assert total == 3
        assert [m.message_id for m in messages] == [first.message_id, second.message_id, third.message_id]
        session.refresh(first)
        session.refresh(second)
        assert first.is_read is True
        assert second.is_read is False

    def test_conversations_list_latest_and_unread(self, session, make_user):
        a, b, c = make_user("A"), make_user("B"), make_user("C")
        messaging.send_message(session, b.user_id, a.user_id, "from b")
        messaging.send_message(session, b.user_id, a.user_id, "again from b")
        latest = messaging.send_message(session, c.user_id, a.user_id, "from c")

        threads = messaging.conversations(session, a.user_id)

        assert [t["other_user"].user_id for t in threads] == [c.user_id, b.user_id]
        assert threads[0]["last_message"].message_id == latest.message_id
        assert [t["unread_count"] for t in threads] == [1, 2]

    def test_only_recipient_marks_read(self, session, make_user):
        a, b = make_user("A"), make_user("B")
        message = messaging.send_message(session, a.user_id, b.user_id, "hi")

        with pytest.raises(PermissionDenied):
            messaging.mark_read(session, message.message_id, a.user_id)
        assert messaging.mark_read(session, message.message_id, b.user_id).read_at is not None

    def test_only_sender_deletes(self, session, make_user):
        a, b = make_user("A"), make_user("B")
        message = messaging.send_message(session, a.user_id, b.user_id, "oops")

        with pytest.raises(PermissionDenied):
            messaging.delete_message(session, message.message_id, b.user_id)
        messaging.delete_message(session, message.message_id, a.user_id)
        with pytest.raises(NotFound):
            messaging.get_message(session, message.message_id)

    def test_search_is_case_insensitive(self, session, make_user):
        a, b = make_user("A"), make_user("B")
        messaging.send_message(session, a.user_id, b.user_id, "Loan payment tomorrow")
        messaging.send_message(session, b.user_id, a.user_id, "ok 100% sure")

        found, total = messaging.search(session, a.user_id, "LOAN")
        assert total == 1 and found[0].content == "Loan payment tomorrow"

        found, _ = messaging.search(session, a.user_id, "0%")
        assert [m.content for m in found] == ["ok 100% sure"]

        with pytest.raises(ValidationFailed):
            messaging.search(session, a.user_id, "x")

    def test_stats(self, session, make_user):
        a, b, c = make_user("A"), make_user("B"), make_user("C")
        messaging.send_message(session, a.user_id, b.user_id, "1")
        messaging.send_message(session, b.user_id, a.user_id, "2")
        messaging.send_message(session, c.user_id, a.user_id, "3")

        assert messaging.stats(session, a.user_id) == {
            "total_conversations": 2,
            "unread_messages": 2,
            "messages_sent": 1,
            "messages_received": 2,
            "total_messages": 3,
        }


class TestPresenceLookups:

    def test_online_users_and_status(self, session, make_user):
        a, b = make_user("A"), make_user("B")
        registry = InMemoryPresenceRegistry()
        registry.add(a.user_id, "conn-a")

        assert [u.user_id for u in messaging.online_users(session, registry)] == [a.user_id]
        assert messaging.user_status(registry, a.user_id)["status"] == "online"
        assert messaging.user_status(registry, b.user_id) == {
            "user_id": b.user_id, "is_online": False, "status": "offline"
        }
