"""Repository for the caller block list."""

from __future__ import annotations

import logging

from sqlalchemy import desc, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from db.base import AsyncSessionFactory
from db.models import BlockedNumber

LOGGER = logging.getLogger(__name__)


class BlockListRepository:
    """Async repository encapsulating block-list storage."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession] | None = None) -> None:
        self._session_factory = session_factory or AsyncSessionFactory

    async def is_blocked(self, phone_number: str) -> bool:
        async with self._session_factory() as session:
            return await self._find(session, phone_number) is not None

    async def _find(self, session: AsyncSession, phone_number: str) -> BlockedNumber | None:
        query = select(BlockedNumber).where(BlockedNumber.phone_number == phone_number)
        result = await session.execute(query)
        return result.scalar_one_or_none()

    async def block(
        self,
        phone_number: str,
        *,
        caller_name: str | None = None,
        call_sid: str | None = None,
    ) -> BlockedNumber:
        """Add ``phone_number`` to the block list; blocking twice returns the existing row."""

        async with self._session_factory() as session:
            existing = await self._find(session, phone_number)
            if existing is not None:
                return existing

            entry = BlockedNumber(phone_number=phone_number, caller_name=caller_name, call_sid=call_sid)
            session.add(entry)
            try:
                await session.commit()
            except IntegrityError:
                # Lost a race with a concurrent insert of the same number.
                await session.rollback()
                existing = await self._find(session, phone_number)
                if existing is None:
                    raise
                return existing
            await session.refresh(entry)
            LOGGER.info("Blocked %s (%s)", phone_number, caller_name or "unknown caller")
            return entry

    async def list_blocked(self, *, limit: int = 100) -> list[BlockedNumber]:
        async with self._session_factory() as session:
            query = (
                select(BlockedNumber)
                .order_by(desc(BlockedNumber.blocked_at), desc(BlockedNumber.id))
                .limit(limit)
            )
            result = await session.execute(query)
            return list(result.scalars().all())
