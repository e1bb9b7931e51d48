"""NegotiationApplicationService against in-memory repositories.

Fixtures (neg_repo, token_repo, negotiation_service, clock, db) come from
tests/unit/conftest.py.
"""

import asyncio
from datetime import timedelta

import pytest

from src.ng_common.errors import (
    AlreadyReportedError,
    ConcurrentModificationError,
    DuplicateActiveSessionError,
    NegotiationNotFoundError,
    NotAuthorizedError,
    SessionExpiredError,
    SessionTerminalError,
    TokenGenerationError,
)
from src.ng_negotiation.application.service import NegotiationApplicationService
from src.ng_settlement.application.issuer import SettlementTokenIssuer
from src.ng_settlement.domain.models import SettlementToken

BUYER, SELLER = "buyer_1", "seller_1"


async def _open(service, db, **kwargs):
    params = dict(buyer_id=BUYER, item_id="item_1", seller_id=SELLER, original_price=1000)
    params.update(kwargs)
    out = await service.open_negotiation(db, **params)
    assert out.ok, out.error
    return out.value


async def _offer(service, db, negotiation_id, price, sender=BUYER):
    out = await service.post_message(
        db, negotiation_id, sender, "price_offer", content=f"{price}?", price_offer=price
    )
    assert out.ok, out.error
    return out.value


class TestOpenNegotiation:
    @pytest.mark.asyncio
    async def test_open_persists_and_commits(self, negotiation_service, neg_repo, db) -> None:
        detail = await _open(negotiation_service, db)
        assert detail.status == "active"
        assert detail.minimum_price == 700
        assert detail.id in neg_repo.sessions
        db.commit.assert_awaited()

    @pytest.mark.asyncio
    async def test_opening_template_is_first_message(self, negotiation_service, db) -> None:
        detail = await _open(negotiation_service, db, template_id="interested")
        assert len(detail.messages) == 1
        assert detail.messages[0].type == "template"
        assert detail.messages[0].sender_id == BUYER
        assert detail.buyer_message_count == 1

    @pytest.mark.asyncio
    async def test_duplicate_active_refused(self, negotiation_service, db) -> None:
        await _open(negotiation_service, db)
        out = await negotiation_service.open_negotiation(
            db, buyer_id=BUYER, item_id="item_1", seller_id=SELLER, original_price=1000
        )
        assert isinstance(out.error, DuplicateActiveSessionError)
        db.rollback.assert_awaited()

    @pytest.mark.asyncio
    async def test_other_buyer_same_item_allowed(self, negotiation_service, db) -> None:
        await _open(negotiation_service, db)
        await _open(negotiation_service, db, buyer_id="buyer_2")

    @pytest.mark.asyncio
    async def test_reopen_after_expiry(self, negotiation_service, neg_repo, clock, db) -> None:
        first = await _open(negotiation_service, db)
        clock.advance(days=7, seconds=1)
        second = await _open(negotiation_service, db)
        assert second.id != first.id
        assert neg_repo.sessions[first.id].status == "expired"

    @pytest.mark.asyncio
    async def test_concurrent_open_one_wins(self, negotiation_service, neg_repo, db) -> None:
        results = await asyncio.gather(
            *[
                negotiation_service.open_negotiation(
                    db, buyer_id=BUYER, item_id="item_1", seller_id=SELLER, original_price=1000
                )
                for _ in range(5)
            ]
        )
        assert sum(1 for r in results if r.ok) == 1
        assert all(
            isinstance(r.error, DuplicateActiveSessionError) for r in results if not r.ok
        )
        assert len(neg_repo.sessions) == 1


class TestPostMessage:
    @pytest.mark.asyncio
    async def test_unknown_negotiation(self, negotiation_service, db) -> None:
        out = await negotiation_service.post_message(db, "neg_missing", BUYER, "template", "hi")
        assert isinstance(out.error, NegotiationNotFoundError)

    @pytest.mark.asyncio
    async def test_outsider(self, negotiation_service, db) -> None:
        detail = await _open(negotiation_service, db)
        out = await negotiation_service.post_message(db, detail.id, "stranger", "template", "hi")
        assert isinstance(out.error, NotAuthorizedError)

    @pytest.mark.asyncio
    async def test_offer_updates_stored_session(self, negotiation_service, neg_repo, db) -> None:
        detail = await _open(negotiation_service, db)
        msg = await _offer(negotiation_service, db, detail.id, 800)
        assert msg.price_offer == 800
        stored = neg_repo.sessions[detail.id]
        assert stored.current_offer == 800
        assert stored.version == 1

    @pytest.mark.asyncio
    async def test_stale_version_is_concurrent_modification(
        self, negotiation_service, neg_repo, db
    ) -> None:
        detail = await _open(negotiation_service, db)
        results = await asyncio.gather(
            negotiation_service.post_message(db, detail.id, BUYER, "template", "one"),
            negotiation_service.post_message(db, detail.id, SELLER, "template", "two"),
        )
        assert sum(1 for r in results if r.ok) == 1
        loser = next(r for r in results if not r.ok)
        assert isinstance(loser.error, ConcurrentModificationError)
        assert len(neg_repo.sessions[detail.id].messages) == 1


class TestAcceptOffer:
    @pytest.mark.asyncio
    async def test_end_to_end_scenario(self, negotiation_service, token_repo, clock, db) -> None:
        detail = await _open(negotiation_service, db)
        await _offer(negotiation_service, db, detail.id, 700)
        accepted_at = clock.advance(minutes=5)

        out = await negotiation_service.accept_offer(db, detail.id, SELLER)

        assert out.ok
        assert out.already_processed is False
        resp = out.value
        assert resp.negotiation.status == "accepted"
        assert resp.negotiation.final_price == 700
        assert resp.negotiation.minimum_price == 700
        assert resp.token.discounted_price == 700
        assert resp.token.discount_amount == 300
        assert resp.token.discount_percentage == 30
        assert resp.token.expires_at == (accepted_at + timedelta(hours=48)).isoformat()
        assert resp.token.code.startswith("NEGO-")
        assert len(token_repo.tokens) == 1
        # the code never lands in the shared message log
        assert all(resp.token.code not in m.content for m in resp.negotiation.messages)

    @pytest.mark.asyncio
    async def test_second_accept_returns_same_token(
        self, negotiation_service, token_repo, db
    ) -> None:
        detail = await _open(negotiation_service, db)
        await _offer(negotiation_service, db, detail.id, 850)
        first = await negotiation_service.accept_offer(db, detail.id, SELLER)
        second = await negotiation_service.accept_offer(db, detail.id, SELLER)
        assert second.ok
        assert second.already_processed is True
        assert second.value.token.code == first.value.token.code
        assert len(token_repo.tokens) == 1

    @pytest.mark.asyncio
    async def test_concurrent_accepts_issue_one_token(
        self, negotiation_service, neg_repo, token_repo, db
    ) -> None:
        detail = await _open(negotiation_service, db)
        await _offer(negotiation_service, db, detail.id, 900)

        results = await asyncio.gather(
            *[negotiation_service.accept_offer(db, detail.id, SELLER) for _ in range(4)]
        )

        assert all(r.ok for r in results)
        assert len(token_repo.tokens) == 1
        assert len({r.value.token.code for r in results}) == 1
        assert sum(1 for r in results if r.already_processed) >= 3
        stored = neg_repo.sessions[detail.id]
        assert stored.status == "accepted"
        assert sum(1 for m in stored.messages if m.type == "acceptance") == 1

    @pytest.mark.asyncio
    async def test_buyer_cannot_accept(self, negotiation_service, token_repo, db) -> None:
        detail = await _open(negotiation_service, db)
        await _offer(negotiation_service, db, detail.id, 800)
        out = await negotiation_service.accept_offer(db, detail.id, BUYER)
        assert isinstance(out.error, NotAuthorizedError)
        assert token_repo.tokens == {}

    @pytest.mark.asyncio
    async def test_expired_session(self, negotiation_service, clock, db) -> None:
        detail = await _open(negotiation_service, db)
        await _offer(negotiation_service, db, detail.id, 800)
        clock.advance(days=8)
        out = await negotiation_service.accept_offer(db, detail.id, SELLER)
        assert isinstance(out.error, SessionExpiredError)

    @pytest.mark.asyncio
    async def test_issuance_failure_leaves_nothing_committed(
        self, neg_repo, token_repo, policy, clock, db
    ) -> None:
        token_repo.tokens["NEGO-TAKEN000"] = SettlementToken(
            id="tok_other", code="NEGO-TAKEN000", negotiation_id="neg_other",
            item_id="item_9", buyer_id="buyer_9", seller_id=SELLER, original_price=500,
            discounted_price=400, discount_amount=100, discount_percentage=20,
            expires_at=clock() + timedelta(hours=48), created_at=clock(),
        )  # every attempt collides with this code
        issuer = SettlementTokenIssuer(
            repo=token_repo, code_factory=lambda: "NEGO-TAKEN000", max_attempts=3
        )
        service = NegotiationApplicationService(
            repo=neg_repo, issuer=issuer, policy=policy, clock=clock
        )
        detail = await _open(service, db)
        await _offer(service, db, detail.id, 800)
        db.reset_mock()

        out = await service.accept_offer(db, detail.id, SELLER)

        assert isinstance(out.error, TokenGenerationError)
        db.rollback.assert_awaited()
        db.commit.assert_not_awaited()


class TestRejectAndReport:
    @pytest.mark.asyncio
    async def test_reject_then_post_refused(self, negotiation_service, db) -> None:
        detail = await _open(negotiation_service, db)
        out = await negotiation_service.reject_offer(db, detail.id, SELLER, "Not this time")
        assert out.value.status == "rejected"
        post = await negotiation_service.post_message(db, detail.id, BUYER, "template", "pls")
        assert isinstance(post.error, SessionTerminalError)

    @pytest.mark.asyncio
    async def test_reject_after_accept_refused(self, negotiation_service, db) -> None:
        detail = await _open(negotiation_service, db)
        await _offer(negotiation_service, db, detail.id, 800)
        await negotiation_service.accept_offer(db, detail.id, SELLER)
        out = await negotiation_service.reject_offer(db, detail.id, BUYER)
        assert isinstance(out.error, SessionTerminalError)

    @pytest.mark.asyncio
    async def test_report_once(self, negotiation_service, neg_repo, db) -> None:
        detail = await _open(negotiation_service, db)
        first = await negotiation_service.report_negotiation(db, detail.id, SELLER, "spam")
        again = await negotiation_service.report_negotiation(db, detail.id, SELLER, "spam")
        assert first.ok
        assert isinstance(again.error, AlreadyReportedError)
        assert len(neg_repo.sessions[detail.id].reports) == 1


class TestComplete:
    @pytest.mark.asyncio
    async def test_accepted_to_completed(self, negotiation_service, db) -> None:
        detail = await _open(negotiation_service, db)
        await _offer(negotiation_service, db, detail.id, 800)
        await negotiation_service.accept_offer(db, detail.id, SELLER)
        out = await negotiation_service.complete_negotiation(db, detail.id)
        assert out.value.status == "completed"

    @pytest.mark.asyncio
    async def test_active_cannot_complete(self, negotiation_service, db) -> None:
        detail = await _open(negotiation_service, db)
        out = await negotiation_service.complete_negotiation(db, detail.id)
        assert isinstance(out.error, SessionTerminalError)


class TestQueries:
    @pytest.mark.asyncio
    async def test_get_reports_effective_status(self, negotiation_service, clock, db) -> None:
        detail = await _open(negotiation_service, db)
        clock.advance(days=7, seconds=1)
        out = await negotiation_service.get_negotiation(db, detail.id, BUYER)
        assert out.value.status == "expired"
        assert out.value.is_expired is True

    @pytest.mark.asyncio
    async def test_get_outsider(self, negotiation_service, db) -> None:
        detail = await _open(negotiation_service, db)
        out = await negotiation_service.get_negotiation(db, detail.id, "stranger")
        assert isinstance(out.error, NotAuthorizedError)

    @pytest.mark.asyncio
    async def test_list_paginates_by_last_activity(self, negotiation_service, clock, db) -> None:
        ids = []
        for i in range(5):
            clock.advance(minutes=1)
            ids.append((await _open(negotiation_service, db, item_id=f"item_{i}")).id)

        page1 = await negotiation_service.list_negotiations(db, BUYER, None, None, 2)
        assert [s.id for s in page1.items] == [ids[4], ids[3]]
        assert page1.has_more is True

        page2 = await negotiation_service.list_negotiations(
            db, BUYER, None, page1.next_cursor, 2
        )
        assert [s.id for s in page2.items] == [ids[2], ids[1]]

        page3 = await negotiation_service.list_negotiations(
            db, BUYER, None, page2.next_cursor, 2
        )
        assert [s.id for s in page3.items] == [ids[0]]
        assert page3.has_more is False
        assert page3.next_cursor is None

    @pytest.mark.asyncio
    async def test_list_status_filter_follows_lazy_expiry(
        self, negotiation_service, clock, db
    ) -> None:
        stale = await _open(negotiation_service, db, item_id="item_old")
        clock.advance(days=7, seconds=1)
        fresh = await _open(negotiation_service, db, item_id="item_new")

        active = await negotiation_service.list_negotiations(db, BUYER, "active", None, 20)
        assert [s.id for s in active.items] == [fresh.id]

        expired = await negotiation_service.list_negotiations(db, BUYER, "expired", None, 20)
        assert [(s.id, s.status, s.is_expired) for s in expired.items] == [
            (stale.id, "expired", True)
        ]

    @pytest.mark.asyncio
    async def test_list_seller_side(self, negotiation_service, db) -> None:
        await _open(negotiation_service, db)
        resp = await negotiation_service.list_negotiations(db, SELLER, None, None, 20)
        assert len(resp.items) == 1

    def test_templates(self, negotiation_service) -> None:
        ids = [t.id for t in negotiation_service.list_templates()]
        assert ids == [
            "interested", "lower_price", "best_offer",
            "custom_request", "timeline_question", "feature_question",
        ]
