"""
Conversation view over the WhatsApp message log.

A conversation is never stored: it is rebuilt from the messages on every
read, one per distinct from_number.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

INCOMING = "incoming"
OUTGOING = "outgoing"


@dataclass
class Conversation:
    phone_number: str
    customer_name: Optional[str]
    last_message: str
    last_message_time: datetime
    unread_count: int = 0


def is_unread(message: Any) -> bool:
    return message.message_type == INCOMING and not message.is_read


def aggregate_conversations(messages: Iterable[Any]) -> Dict[str, Conversation]:
    """
    Group messages by sender number.

    The newest message (strictly greater created_at) of each group provides
    customer_name, last_message and last_message_time; on equal timestamps
    the first one seen is kept. unread_count sums every unread incoming
    message of the group, so the result does not depend on input order
    except for that tie.

    Args:
        messages: objects exposing from_number, customer_name, message_text,
            message_type, is_read and created_at (ORM rows or equivalents)

    Returns:
        Mapping of from_number to its Conversation; empty for empty input.
    """
    conversations: Dict[str, Conversation] = {}

    for msg in messages:
        entry = conversations.get(msg.from_number)
        if entry is None:
            entry = Conversation(
                phone_number=msg.from_number,
                customer_name=msg.customer_name,
                last_message=msg.message_text,
                last_message_time=msg.created_at,
            )
            conversations[msg.from_number] = entry
        elif msg.created_at > entry.last_message_time:
            entry.customer_name = msg.customer_name
            entry.last_message = msg.message_text
            entry.last_message_time = msg.created_at

        if is_unread(msg):
            entry.unread_count += 1

    return conversations


def list_conversations(messages: Iterable[Any]) -> List[Conversation]:
    """Conversations ordered most recent first, for display."""
    conversations = aggregate_conversations(messages).values()
    return sorted(conversations, key=lambda c: c.last_message_time, reverse=True)
