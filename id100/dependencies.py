"""Shared FastAPI dependencies: database engine, session factory, get_db."""

from collections.abc import AsyncIterator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from id100.config import settings
from id100.core.errors import Id100Error

engine = create_async_engine(settings.database_url, pool_pre_ping=True)
async_session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def get_db() -> AsyncIterator[AsyncSession]:
    """Yield one session per request.

    Commits on success and on admission outcomes (name entry, conflict,
    cooldown) so bookkeeping done before the refusal is kept. Any other
    failure rolls the request back.
    """
    async with async_session_factory() as session:
        try:
            yield session
        except Id100Error as exc:
            if exc.commit_on_raise:
                await session.commit()
            else:
                await session.rollback()
            raise
        except Exception:
            await session.rollback()
            raise
        else:
            await session.commit()
