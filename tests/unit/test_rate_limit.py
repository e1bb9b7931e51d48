"""Unit tests for the per-user message cap."""

from datetime import UTC, datetime, timedelta

from src.ng_moderation.rules.rate_limit import RateLimiter, count_recent_messages
from src.ng_negotiation.domain.models import Message, NegotiationSession

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


def _session_with(timestamps_by_sender: list[tuple[str, datetime]]) -> NegotiationSession:
    messages = tuple(
        Message(
            id=f"msg_{i}", seq=i, type="template", content="hi",
            sender_id=sender, timestamp=ts,
        )
        for i, (sender, ts) in enumerate(timestamps_by_sender, start=1)
    )
    return NegotiationSession(
        id="neg_1", item_id="item_1", buyer_id="buyer_1", seller_id="seller_1",
        status="active", original_price=1000, minimum_price=700,
        created_at=NOW - timedelta(days=1), expires_at=NOW + timedelta(days=6),
        last_activity=NOW, messages=messages,
    )


class TestCountRecentMessages:
    def test_counts_only_sender(self) -> None:
        s = _session_with([("buyer_1", NOW), ("seller_1", NOW), ("buyer_1", NOW)])
        assert count_recent_messages(s, "buyer_1", NOW, timedelta(hours=1)) == 2

    def test_window_is_strict(self) -> None:
        # exactly 60 minutes old is outside the trailing window
        s = _session_with([("buyer_1", NOW - timedelta(minutes=60))])
        assert count_recent_messages(s, "buyer_1", NOW, timedelta(hours=1)) == 0
        s = _session_with([("buyer_1", NOW - timedelta(minutes=59, seconds=59))])
        assert count_recent_messages(s, "buyer_1", NOW, timedelta(hours=1)) == 1


class TestRateLimiter:
    def test_tenth_message_allowed_eleventh_refused(self) -> None:
        limiter = RateLimiter(max_messages=10, window=timedelta(minutes=60))
        nine = _session_with([("buyer_1", NOW - timedelta(minutes=i)) for i in range(9)])
        ten = _session_with([("buyer_1", NOW - timedelta(minutes=i)) for i in range(10)])
        assert limiter.check(nine, "buyer_1", NOW) is True
        assert limiter.check(ten, "buyer_1", NOW) is False

    def test_old_message_frees_a_slot(self) -> None:
        limiter = RateLimiter(max_messages=10, window=timedelta(minutes=60))
        history = [("buyer_1", NOW - timedelta(minutes=61))]
        history += [("buyer_1", NOW - timedelta(minutes=i)) for i in range(9)]
        assert limiter.check(_session_with(history), "buyer_1", NOW) is True

    def test_other_participant_unaffected(self) -> None:
        limiter = RateLimiter(max_messages=10, window=timedelta(minutes=60))
        s = _session_with([("buyer_1", NOW)] * 10)
        assert limiter.check(s, "seller_1", NOW) is True

    def test_defaults_from_settings(self) -> None:
        limiter = RateLimiter()
        assert limiter.max_messages == 10
        assert limiter.window == timedelta(minutes=60)
