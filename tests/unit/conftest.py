"""In-memory repositories conforming to the repository Protocols.

Each async method yields to the event loop once before touching state, so
`asyncio.gather` interleaves racing callers the way concurrent requests
would interleave on a real connection pool. The check-and-set inside each
method runs without a further await, mirroring a single SQL statement.
"""

import asyncio
from dataclasses import replace
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock

import pytest

from src.ng_moderation.content_filter.pipeline import ContentFilter
from src.ng_moderation.rules.rate_limit import RateLimiter
from src.ng_negotiation.application.service import NegotiationApplicationService
from src.ng_negotiation.domain.models import NegotiationSession, Report
from src.ng_negotiation.domain.policy import NegotiationPolicy
from src.ng_settlement.application.issuer import SettlementTokenIssuer
from src.ng_settlement.application.service import SettlementApplicationService
from src.ng_settlement.application.validator import SettlementTokenValidator
from src.ng_settlement.domain.models import SettlementToken

T0 = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


class InMemoryNegotiationRepository:
    def __init__(self) -> None:
        self.sessions: dict[str, NegotiationSession] = {}

    async def get_by_id(self, db, negotiation_id):
        await asyncio.sleep(0)
        return self.sessions.get(negotiation_id)

    async def find_active(self, db, item_id, buyer_id):
        await asyncio.sleep(0)
        for s in self.sessions.values():
            if s.item_id == item_id and s.buyer_id == buyer_id and s.is_active:
                return s
        return None

    async def insert(self, db, session, messages):
        await asyncio.sleep(0)
        for s in self.sessions.values():
            if s.item_id == session.item_id and s.buyer_id == session.buyer_id and s.is_active:
                return False
        self.sessions[session.id] = replace(session, version=0)
        return True

    async def save(self, db, session, new_messages, require_status=None):
        await asyncio.sleep(0)
        stored = self.sessions.get(session.id)
        if stored is None or stored.version != session.version:
            return None
        if require_status is not None and stored.status != require_status:
            return None
        new_version = stored.version + 1
        self.sessions[session.id] = replace(
            session, reports=stored.reports, version=new_version
        )
        return new_version

    async def add_report(self, db, negotiation_id, report: Report):
        await asyncio.sleep(0)
        stored = self.sessions[negotiation_id]
        if stored.has_reported(report.user_id):
            return False
        self.sessions[negotiation_id] = replace(stored, reports=stored.reports + (report,))
        return True

    async def list_for_user(self, db, user_id, status, cursor_ts, cursor_id, limit, now):
        await asyncio.sleep(0)
        rows = [
            replace(s, messages=(), reports=())
            for s in self.sessions.values()
            if user_id in (s.buyer_id, s.seller_id)
            and (status is None or s.effective_status(now) == status)
        ]
        rows.sort(key=lambda s: (s.last_activity, s.id), reverse=True)
        if cursor_ts is not None:
            rows = [s for s in rows if (s.last_activity, s.id) < (cursor_ts, cursor_id)]
        return rows[:limit]


class InMemoryTokenRepository:
    def __init__(self) -> None:
        self.tokens: dict[str, SettlementToken] = {}

    async def get_by_code(self, db, code):
        await asyncio.sleep(0)
        return self.tokens.get(code)

    async def get_active_for_negotiation(self, db, negotiation_id):
        await asyncio.sleep(0)
        for t in self.tokens.values():
            if t.negotiation_id == negotiation_id and t.is_active:
                return t
        return None

    async def code_exists(self, db, code):
        await asyncio.sleep(0)
        return code in self.tokens

    async def insert(self, db, token):
        await asyncio.sleep(0)
        if token.code in self.tokens:
            return False
        if any(
            t.negotiation_id == token.negotiation_id and t.is_active
            for t in self.tokens.values()
        ):
            return False
        self.tokens[token.code] = token
        return True

    async def mark_used(self, db, code, purchase_ref, now, buyer_id=None, item_id=None):
        await asyncio.sleep(0)
        token = self.tokens.get(code)
        if token is None or not token.is_valid(now):
            return None
        if buyer_id is not None and token.buyer_id != buyer_id:
            return None
        if item_id is not None and token.item_id != item_id:
            return None
        used = replace(token, is_used=True, used_at=now, purchase_ref=purchase_ref)
        self.tokens[code] = used
        return used

    async def list_for_buyer(self, db, buyer_id):
        await asyncio.sleep(0)
        return sorted(
            (t for t in self.tokens.values() if t.buyer_id == buyer_id),
            key=lambda t: t.created_at,
            reverse=True,
        )


class FakeClock:
    """Callable clock the tests can move forward."""

    def __init__(self, start: datetime = T0) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def db():
    return AsyncMock()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def policy():
    return NegotiationPolicy.from_settings()


@pytest.fixture
def content_filter():
    return ContentFilter()


@pytest.fixture
def rate_limiter():
    return RateLimiter(max_messages=10, window=timedelta(minutes=60))


@pytest.fixture
def neg_repo():
    return InMemoryNegotiationRepository()


@pytest.fixture
def token_repo():
    return InMemoryTokenRepository()


@pytest.fixture
def issuer(token_repo):
    return SettlementTokenIssuer(repo=token_repo)


@pytest.fixture
def negotiation_service(neg_repo, issuer, content_filter, rate_limiter, policy, clock):
    return NegotiationApplicationService(
        repo=neg_repo,
        issuer=issuer,
        content_filter=content_filter,
        rate_limiter=rate_limiter,
        policy=policy,
        clock=clock,
    )


@pytest.fixture
def settlement_service(token_repo, clock):
    return SettlementApplicationService(
        repo=token_repo, validator=SettlementTokenValidator(token_repo), clock=clock
    )
