from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from repocraft.database import User, upsert_insert
from repocraft.models import UserProfile


async def upsert_user(
    db: AsyncSession,
    provider_id: str,
    email: str | None,
    name: str | None,
    avatar: str | None,
) -> User:
    # api_key and llm_provider are left alone on conflict.
    profile = {"email": email, "name": name, "avatar": avatar}
    stmt = upsert_insert(db, User).values(provider_id=provider_id, **profile)
    stmt = stmt.on_conflict_do_update(
        index_elements=["provider_id"],
        set_={**profile, "updated_at": func.now()},
    )
    await db.execute(stmt)
    await db.commit()
    return await get_user_by_provider_id(db, provider_id)


async def get_user_by_provider_id(db: AsyncSession, provider_id: str) -> User | None:
    result = await db.execute(
        select(User).where(User.provider_id == provider_id).execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


def to_profile(user: User) -> UserProfile:
    return UserProfile(
        provider_id=user.provider_id,
        email=user.email,
        name=user.name,
        avatar=user.avatar,
        llm_provider=user.llm_provider,
        has_api_key=bool(user.api_key),
    )
