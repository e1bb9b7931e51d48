# src/ng_settlement/domain/repository.py
"""SettlementTokenRepository Protocol — interface contract for persistence layer."""

from datetime import datetime
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.ng_settlement.domain.models import SettlementToken


class SettlementTokenRepositoryProtocol(Protocol):
    async def get_by_code(self, db: AsyncSession, code: str) -> SettlementToken | None: ...

    async def get_active_for_negotiation(
        self, db: AsyncSession, negotiation_id: str
    ) -> SettlementToken | None: ...

    async def code_exists(self, db: AsyncSession, code: str) -> bool: ...

    async def insert(self, db: AsyncSession, token: SettlementToken) -> bool:
        """False if the code or the negotiation's active slot is already taken."""
        ...

    async def mark_used(
        self,
        db: AsyncSession,
        code: str,
        purchase_ref: str,
        now: datetime,
        buyer_id: str | None = None,
        item_id: str | None = None,
    ) -> SettlementToken | None:
        """Atomic unused -> used. None if the guard failed (used, expired, inactive, unbound)."""
        ...

    async def list_for_buyer(
        self, db: AsyncSession, buyer_id: str
    ) -> list[SettlementToken]: ...
