# src/ng_negotiation/domain/repository.py
"""Repository Protocol — dependency inversion for testability.

Unit tests inject an in-memory fake that conforms to this Protocol.
Infrastructure layer provides the real implementation.
"""

from datetime import datetime
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.ng_negotiation.domain.models import Message, NegotiationSession, Report


class NegotiationRepositoryProtocol(Protocol):
    async def get_by_id(
        self, db: AsyncSession, negotiation_id: str
    ) -> NegotiationSession | None: ...

    async def find_active(
        self, db: AsyncSession, item_id: str, buyer_id: str
    ) -> NegotiationSession | None: ...

    async def insert(
        self, db: AsyncSession, session: NegotiationSession, messages: list[Message]
    ) -> bool:
        """False when another active session already holds (item_id, buyer_id)."""
        ...

    async def save(
        self,
        db: AsyncSession,
        session: NegotiationSession,
        new_messages: list[Message],
        require_status: str | None = None,
    ) -> int | None:
        """Write `session` if its stored version still equals `session.version`.

        Returns the new version, or None when the guard failed.
        """
        ...

    async def add_report(
        self, db: AsyncSession, negotiation_id: str, report: Report
    ) -> bool: ...

    async def list_for_user(
        self,
        db: AsyncSession,
        user_id: str,
        status: str | None,
        cursor_ts: datetime | None,
        cursor_id: str | None,
        limit: int,
        now: datetime,
    ) -> list[NegotiationSession]: ...
