"""Per-user message cap inside a single negotiation.

Counted from the session's own message log, so no external counter store is
needed. The log read is not isolated from concurrent writers: two requests
from the same user landing at the same instant can both pass. The cap is
advisory-strength under that race.
"""

from datetime import datetime, timedelta

from config.settings import settings
from src.ng_common.datetime_utils import utc_now
from src.ng_negotiation.domain.models import NegotiationSession


def count_recent_messages(
    session: NegotiationSession, user_id: str, now: datetime, window: timedelta
) -> int:
    return sum(
        1
        for msg in session.messages
        if msg.sender_id == user_id and (now - msg.timestamp) < window
    )


class RateLimiter:
    def __init__(
        self,
        max_messages: int | None = None,
        window: timedelta | None = None,
    ) -> None:
        self.max_messages = (
            settings.RATE_LIMIT_MAX_MESSAGES if max_messages is None else max_messages
        )
        self.window = window or timedelta(minutes=settings.RATE_LIMIT_WINDOW_MINUTES)

    def check(
        self, session: NegotiationSession, user_id: str, now: datetime | None = None
    ) -> bool:
        """True if `user_id` may post one more message into `session`."""
        now = now or utc_now()
        return count_recent_messages(session, user_id, now, self.window) < self.max_messages
