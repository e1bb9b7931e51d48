"""Global enums — must match DB CHECK constraints exactly (alembic 001-004)."""

from enum import Enum


class NegotiationStatus(str, Enum):
    ACTIVE = "active"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    EXPIRED = "expired"
    COMPLETED = "completed"


class MessageType(str, Enum):
    TEMPLATE = "template"
    PRICE_OFFER = "price_offer"
    COUNTER_OFFER = "counter_offer"
    ACCEPTANCE = "acceptance"
    REJECTION = "rejection"
    SYSTEM = "system"


# Types a participant may post; the rest are written by the core itself.
CALLER_MESSAGE_TYPES: frozenset[str] = frozenset(
    {MessageType.TEMPLATE.value, MessageType.PRICE_OFFER.value, MessageType.COUNTER_OFFER.value}
)

OFFER_MESSAGE_TYPES: frozenset[str] = frozenset(
    {MessageType.PRICE_OFFER.value, MessageType.COUNTER_OFFER.value}
)


class MessageTemplate(str, Enum):
    INTERESTED = "interested"
    LOWER_PRICE = "lower_price"
    BEST_OFFER = "best_offer"
    CUSTOM_REQUEST = "custom_request"
    TIMELINE_QUESTION = "timeline_question"
    FEATURE_QUESTION = "feature_question"
