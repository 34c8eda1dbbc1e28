import logging

from sqlalchemy import insert, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.domain.errors import SequenceUnavailable
from storefront.infrastructure.database import counters

logger = logging.getLogger(__name__)


class SequenceRepository:
    """
    Sequence Generator - monotonically increasing integers per named sequence.

    Increment happens in a single UPDATE ... RETURNING, so two callers can
    never read the same value. It runs inside the caller's transaction: the
    counter row stays locked until commit and a rollback returns the value.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def next_value(self, sequence_name: str, max_attempts: int = 3) -> int:
        """
        Increment-and-get, creating the counter on first use.

        Raises:
            SequenceUnavailable: if the counter can't be incremented
        """
        try:
            for _ in range(max_attempts):
                value = await self._increment(sequence_name)
                if value is not None:
                    return value

                if await self._create(sequence_name):
                    return 1
                # Someone else created the row first - increment theirs
        except SQLAlchemyError as e:
            logger.error(f"Sequence '{sequence_name}' increment failed: {e}")
            raise SequenceUnavailable(sequence_name) from e

        raise SequenceUnavailable(sequence_name)

    async def _increment(self, sequence_name: str) -> int | None:
        stmt = (
            update(counters)
            .where(counters.c.name == sequence_name)
            .values(value=counters.c.value + 1)
            .returning(counters.c.value)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def _create(self, sequence_name: str) -> bool:
        """Insert the counter at 1; False if a concurrent caller won the race"""
        try:
            async with self.session.begin_nested():
                await self.session.execute(
                    insert(counters).values(name=sequence_name, value=1)
                )
            return True
        except IntegrityError:
            return False
