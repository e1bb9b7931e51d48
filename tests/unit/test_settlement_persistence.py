"""Unit tests for SettlementTokenRepository using MagicMock AsyncSession."""
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.ng_settlement.domain.models import SettlementToken
from src.ng_settlement.infrastructure.persistence import SettlementTokenRepository

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


def _make_token_row(**kwargs):
    row = MagicMock()
    row.id = "tok_1"
    row.code = kwargs.get("code", "NEGO-ABCD1234")
    row.negotiation_id = "neg_1"
    row.item_id = "item_1"
    row.buyer_id = "buyer_1"
    row.seller_id = "seller_1"
    row.original_price = 1000
    row.discounted_price = 700
    row.discount_amount = 300
    row.discount_percentage = 30
    row.is_active = True
    row.is_used = kwargs.get("is_used", False)
    row.used_at = kwargs.get("used_at")
    row.purchase_ref = kwargs.get("purchase_ref")
    row.expires_at = NOW + timedelta(hours=48)
    row.created_at = NOW
    return row


def _result(fetchone=None, fetchall=None):
    result = MagicMock()
    result.fetchone.return_value = fetchone
    result.fetchall.return_value = fetchall or []
    return result


@pytest.fixture
def db():
    return MagicMock()


class TestLookups:
    @pytest.mark.asyncio
    async def test_get_by_code(self, db):
        db.execute = AsyncMock(return_value=_result(fetchone=_make_token_row()))

        token = await SettlementTokenRepository().get_by_code(db, "NEGO-ABCD1234")

        assert token is not None
        assert token.discounted_price == 700
        assert token.expires_at == NOW + timedelta(hours=48)

    @pytest.mark.asyncio
    async def test_get_by_code_missing(self, db):
        db.execute = AsyncMock(return_value=_result(fetchone=None))

        assert await SettlementTokenRepository().get_by_code(db, "NEGO-NOPE") is None

    @pytest.mark.asyncio
    async def test_code_exists(self, db):
        db.execute = AsyncMock(return_value=_result(fetchone=(1,)))
        assert await SettlementTokenRepository().code_exists(db, "NEGO-ABCD1234") is True

        db.execute = AsyncMock(return_value=_result(fetchone=None))
        assert await SettlementTokenRepository().code_exists(db, "NEGO-ABCD1234") is False


class TestInsert:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("returned, expected", [(MagicMock(id="tok_1"), True), (None, False)])
    async def test_insert(self, db, returned, expected):
        db.execute = AsyncMock(return_value=_result(fetchone=returned))
        token = SettlementToken(
            id="tok_1", code="NEGO-ABCD1234", negotiation_id="neg_1", item_id="item_1",
            buyer_id="buyer_1", seller_id="seller_1", original_price=1000,
            discounted_price=700, discount_amount=300, discount_percentage=30,
            expires_at=NOW + timedelta(hours=48), created_at=NOW,
        )

        assert await SettlementTokenRepository().insert(db, token) is expected
        params = db.execute.await_args.args[1]
        assert params["code"] == "NEGO-ABCD1234"
        assert params["negotiation_id"] == "neg_1"


class TestMarkUsed:
    @pytest.mark.asyncio
    async def test_winner_gets_used_row(self, db):
        row = _make_token_row(is_used=True, used_at=NOW, purchase_ref="pay_1")
        db.execute = AsyncMock(return_value=_result(fetchone=row))

        token = await SettlementTokenRepository().mark_used(
            db, "NEGO-ABCD1234", "pay_1", NOW, buyer_id="buyer_1"
        )

        assert token.is_used is True
        assert token.purchase_ref == "pay_1"
        params = db.execute.await_args.args[1]
        assert params["buyer_id"] == "buyer_1"
        assert params["item_id"] is None
        assert params["now"] == NOW

    @pytest.mark.asyncio
    async def test_guard_failure_returns_none(self, db):
        db.execute = AsyncMock(return_value=_result(fetchone=None))

        token = await SettlementTokenRepository().mark_used(db, "NEGO-ABCD1234", "pay_1", NOW)

        assert token is None


class TestListForBuyer:
    @pytest.mark.asyncio
    async def test_maps_all_rows(self, db):
        rows = [_make_token_row(code=f"NEGO-0000000{i}") for i in range(2)]
        db.execute = AsyncMock(return_value=_result(fetchall=rows))

        tokens = await SettlementTokenRepository().list_for_buyer(db, "buyer_1")

        assert [t.code for t in tokens] == ["NEGO-00000000", "NEGO-00000001"]
