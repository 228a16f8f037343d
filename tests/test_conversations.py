"""
Tests for the conversation view built from the message log.

Tests cover:
- One conversation per distinct sender
- Unread counting over the whole group, independent of order
- Latest message selection (and equal-timestamp ties)
- Empty input
"""

import random
from datetime import datetime, timedelta, timezone

from storefront.conversations import aggregate_conversations, list_conversations
from storefront.models import WhatsAppMessage

T0 = datetime(2025, 1, 15, 10, 0, tzinfo=timezone.utc)


def msg(number, minutes, text="hi", name=None, kind="incoming", read=False):
    return WhatsAppMessage(
        from_number=number,
        customer_name=name,
        message_text=text,
        message_type=kind,
        is_read=read,
        created_at=T0 + timedelta(minutes=minutes),
    )


def sample_log():
    return [
        msg("+201000000001", 0, "Hello", name="Omar"),
        msg("+201000000001", 1, "Any news?", name="Omar"),
        msg("+201000000001", 2, "Your order shipped", name="Test Store", kind="outgoing"),
        msg("+201000000002", 3, "Price?", name="Sara", read=True),
        msg("+201000000002", 5, "Still there?", name="Sara M."),
        msg("+201000000003", 4, "Thanks", name="Ali", read=True),
    ]


class TestAggregateConversations:
    """Test grouping of the flat log."""

    def test_empty_log(self):
        assert aggregate_conversations([]) == {}
        assert list_conversations([]) == []

    def test_one_conversation_per_sender(self):
        log = sample_log()
        conversations = aggregate_conversations(log)

        assert set(conversations) == {m.from_number for m in log}
        assert len(conversations) == 3

    def test_single_unread_incoming_message(self):
        conversations = aggregate_conversations([msg("+1", 0, "Hey", name="Bob")])

        conv = conversations["+1"]
        assert conv.phone_number == "+1"
        assert conv.customer_name == "Bob"
        assert conv.last_message == "Hey"
        assert conv.last_message_time == T0
        assert conv.unread_count == 1

    def test_single_read_or_outgoing_message_has_no_unread(self):
        assert aggregate_conversations([msg("+1", 0, read=True)])["+1"].unread_count == 0
        assert aggregate_conversations([msg("+1", 0, kind="outgoing")])["+1"].unread_count == 0

    def test_unread_counts_every_unread_incoming(self):
        conversations = aggregate_conversations(sample_log())

        # two unread incoming, then an outgoing reply as the latest message
        assert conversations["+201000000001"].unread_count == 2
        assert conversations["+201000000002"].unread_count == 1
        assert conversations["+201000000003"].unread_count == 0

    def test_latest_message_wins(self):
        conversations = aggregate_conversations(sample_log())

        omar = conversations["+201000000001"]
        assert omar.last_message == "Your order shipped"
        assert omar.customer_name == "Test Store"
        assert omar.last_message_time == T0 + timedelta(minutes=2)

        sara = conversations["+201000000002"]
        assert sara.last_message == "Still there?"
        assert sara.customer_name == "Sara M."

    def test_result_independent_of_input_order(self):
        log = sample_log()
        expected = {
            number: (c.unread_count, c.last_message, c.last_message_time, c.customer_name)
            for number, c in aggregate_conversations(log).items()
        }

        rng = random.Random(1234)
        for _ in range(20):
            shuffled = log[:]
            rng.shuffle(shuffled)
            got = {
                number: (c.unread_count, c.last_message, c.last_message_time, c.customer_name)
                for number, c in aggregate_conversations(shuffled).items()
            }
            assert got == expected

    def test_last_message_time_is_group_maximum(self):
        log = sample_log()
        for number, conv in aggregate_conversations(log).items():
            group = [m for m in log if m.from_number == number]
            assert conv.last_message_time == max(m.created_at for m in group)

    def test_equal_timestamps_keep_first_seen(self):
        log = [msg("+1", 0, "first"), msg("+1", 0, "second")]

        conv = aggregate_conversations(log)["+1"]
        assert conv.last_message == "first"
        assert conv.unread_count == 2


class TestListConversations:

    def test_most_recent_first(self):
        conversations = list_conversations(sample_log())

        assert [c.phone_number for c in conversations] == [
            "+201000000002",
            "+201000000003",
            "+201000000001",
        ]
