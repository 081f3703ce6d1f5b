import logging
from datetime import date

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from repocraft import config
from repocraft.database import Usage, upsert_insert
from repocraft.models import UsageDecision, UsageResponse

logger = logging.getLogger(__name__)


class UsageLimitError(Exception):
    def __init__(self, remaining: int = 0):
        self.remaining = remaining
        super().__init__("Daily free limit reached")


def today() -> str:
    return date.today().isoformat()


async def check_and_consume(
    db: AsyncSession,
    user_id: str,
    limit: int | None = None,
    day: str | None = None,
) -> UsageDecision:
    """Count one generation for ``user_id`` today unless the limit is reached.

    The increment and the ceiling check happen in one INSERT .. ON CONFLICT
    statement, so concurrent requests can never push the count past
    ``limit``. A denied call leaves the stored count untouched.
    """
    if limit is None:
        limit = config.get_config().usage.daily_limit
    day = day or today()
    if limit <= 0:
        return UsageDecision(allowed=False, remaining=0)

    stmt = upsert_insert(db, Usage).values(user_id=user_id, date=day, count=1)
    stmt = stmt.on_conflict_do_update(
        index_elements=["user_id", "date"],
        set_={"count": Usage.count + 1, "updated_at": func.now()},
        where=Usage.count < limit,
    ).returning(Usage.count)

    result = await db.execute(stmt)
    count = result.scalar_one_or_none()
    await db.commit()

    if count is None:
        logger.info(f"User {user_id} reached the daily limit of {limit}")
        return UsageDecision(allowed=False, remaining=0)
    return UsageDecision(allowed=True, remaining=limit - count)


async def get_usage(db: AsyncSession, user_id: str, day: str | None = None) -> UsageResponse:
    limit = config.get_config().usage.daily_limit
    result = await db.execute(
        select(Usage.count).where(Usage.user_id == user_id, Usage.date == (day or today()))
    )
    used = result.scalar_one_or_none() or 0
    return UsageResponse(used=used, remaining=max(0, limit - used), limit=limit)
