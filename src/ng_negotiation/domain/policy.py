"""Negotiation policy knobs, snapshotted from settings.

Kept separate from `config.settings` so command functions stay pure and
tests can pass a tweaked policy without patching globals.
"""

from dataclasses import dataclass
from datetime import timedelta

from config.settings import settings


@dataclass(frozen=True)
class NegotiationPolicy:
    session_ttl: timedelta
    price_floor_bps: int
    message_max_length: int
    report_reason_max_length: int
    reject_reason_max_length: int

    @classmethod
    def from_settings(cls) -> "NegotiationPolicy":
        return cls(
            session_ttl=timedelta(days=settings.NEGOTIATION_TTL_DAYS),
            price_floor_bps=settings.PRICE_FLOOR_BPS,
            message_max_length=settings.MESSAGE_MAX_LENGTH,
            report_reason_max_length=settings.REPORT_REASON_MAX_LENGTH,
            reject_reason_max_length=settings.REJECT_REASON_MAX_LENGTH,
        )
