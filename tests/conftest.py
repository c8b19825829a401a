from __future__ import annotations

import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from src.db import Base
from src.db.seed import seed_base_data
from src.db.users import upsert_user


LEARNER_CHAT_ID = 101


@pytest_asyncio.fixture
async def session_factory() -> async_sessionmaker:
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", future=True)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, expire_on_commit=False)
    try:
        yield factory
    finally:
        await engine.dispose()


@pytest_asyncio.fixture
async def seeded_factory(session_factory: async_sessionmaker) -> async_sessionmaker:
    """Session factory with the bundled catalogue and one registered learner."""
    async with session_factory() as session:
        async with session.begin():
            await seed_base_data(session)
            await upsert_user(session, LEARNER_CHAT_ID, "Minji", "Kim")
    return session_factory
