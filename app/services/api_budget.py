"""
Daily SWUSH request budget.

SWUSH allows 100 requests per day. Every worker process and API instance
shares one counter row per UTC day in the ``api_budget`` table, so the
quota survives restarts and is enforced across instances.
"""
import logging
from datetime import date

from sqlalchemy import select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.models import ApiBudget
from app.utils.timestamps import utc_today, utcnow

logger = logging.getLogger(__name__)

_UPSERT_DIALECTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


class ApiBudgetGovernor:
    """
    Gate for outbound SWUSH requests.

    ``consume()`` counts every attempted call, whatever its outcome, and
    denies once the day's count exceeds ``daily_limit - reserve``. Storage
    errors never block syncing: the governor fails open and logs.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        daily_limit: int = 100,
        reserve: int = 10,
        warn_threshold: int = 75,
        atomic: bool = True,
    ):
        self.session_factory = session_factory
        self.daily_limit = daily_limit
        self.reserve = reserve
        self.warn_threshold = warn_threshold
        self.atomic = atomic

    @property
    def cap(self) -> int:
        return max(0, self.daily_limit - self.reserve)

    async def consume(self) -> bool:
        """Count one request. Returns False once today's budget is exhausted."""
        today = utc_today()
        try:
            if self.atomic:
                try:
                    count = await self._increment_atomic(today)
                except SQLAlchemyError as e:
                    logger.warning(f"Atomic budget increment failed, using fallback: {e}")
                    count = await self._increment_fallback(today)
            else:
                count = await self._increment_fallback(today)
        except Exception as e:
            logger.error(f"Budget tracking error, allowing request: {e}")
            return True

        if count is None:
            logger.warning("Budget counter unreadable, allowing request")
            return True
        return self._check(count)

    async def get_used(self) -> int:
        async with self.session_factory() as session:
            result = await session.execute(
                select(ApiBudget.count).where(ApiBudget.date == utc_today())
            )
            return result.scalar_one_or_none() or 0

    async def get_remaining(self) -> int:
        """Remaining requests today; assumes a full budget when unreadable."""
        try:
            used = await self.get_used()
        except Exception as e:
            logger.warning(f"Could not read API budget, assuming full budget: {e}")
            return self.cap
        return max(0, self.cap - used)

    def _check(self, count: int) -> bool:
        if count > self.cap:
            logger.error(f"SWUSH daily budget exhausted: {count}/{self.cap} requests")
            return False
        if count >= self.warn_threshold:
            logger.warning(f"SWUSH daily budget running low: {count}/{self.cap} requests")
        return True

    async def _increment_atomic(self, today: date) -> int | None:
        async with self.session_factory() as session:
            dialect = session.get_bind().dialect.name
            insert = _UPSERT_DIALECTS.get(dialect)
            if insert is None:
                raise _UnsupportedDialect(f"No atomic upsert for dialect {dialect!r}")

            now = utcnow()
            stmt = insert(ApiBudget).values(date=today, count=1, updated_at=now)
            stmt = stmt.on_conflict_do_update(
                index_elements=["date"],
                set_={"count": ApiBudget.count + 1, "updated_at": now},
            ).returning(ApiBudget.count)

            try:
                result = await session.execute(stmt)
                count = result.scalar_one()
                await session.commit()
            except SQLAlchemyError:
                await session.rollback()
                raise
            return count

    async def _increment_fallback(self, today: date) -> int | None:
        """
        Insert-ignore, read, write. Not atomic: two instances racing here can
        both write the same value and under-count by one.
        """
        async with self.session_factory() as session:
            dialect = session.get_bind().dialect.name
            insert = _UPSERT_DIALECTS.get(dialect)
            if insert is not None:
                await session.execute(
                    insert(ApiBudget)
                    .values(date=today, count=0, updated_at=utcnow())
                    .on_conflict_do_nothing(index_elements=["date"])
                )
            elif await session.get(ApiBudget, today) is None:
                session.add(ApiBudget(date=today, count=0))
                await session.flush()

            result = await session.execute(
                select(ApiBudget.count).where(ApiBudget.date == today)
            )
            current = result.scalar_one_or_none()
            if current is None:
                await session.rollback()
                return None

            new_count = current + 1
            await session.execute(
                update(ApiBudget)
                .where(ApiBudget.date == today)
                .values(count=new_count, updated_at=utcnow())
            )
            await session.commit()
            return new_count


class _UnsupportedDialect(SQLAlchemyError):
    pass
