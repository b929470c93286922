import os
import sys
from pathlib import Path

os.environ.setdefault("TRACING_ENABLED", "false")
os.environ.setdefault("OPERATOR_API_KEY", "operator-test-key")

import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine


def _configure_path() -> None:
    src_path = Path(__file__).resolve().parents[1] / "src"
    if src_path.exists():
        sys.path.insert(0, str(src_path))


_configure_path()

from placeclub_api import models  # noqa: E402,F401
from placeclub_api.app import create_app  # noqa: E402
from placeclub_api.db.base import Base  # noqa: E402
from placeclub_api.db.session import get_session  # noqa: E402
from placeclub_api.observability.rewards import get_reward_store  # noqa: E402


async def _reward_store_factory(database_url: str):
    engine = create_async_engine(database_url, future=True)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    get_reward_store().reset()
    return engine, async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


@pytest_asyncio.fixture
async def session_factory():
    engine, factory = await _reward_store_factory("sqlite+aiosqlite:///:memory:")

    try:
        yield factory
    finally:
        await engine.dispose()


@pytest_asyncio.fixture
async def shared_session_factory(tmp_path):
    """File-backed store so concurrently running sessions see each other's commits."""

    engine, factory = await _reward_store_factory(f"sqlite+aiosqlite:///{tmp_path / 'rewards.db'}")

    try:
        yield factory
    finally:
        await engine.dispose()


@pytest_asyncio.fixture
async def app_with_db(session_factory):
    app = create_app()

    async def override_get_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session

    try:
        yield app, session_factory
    finally:
        app.dependency_overrides.clear()
