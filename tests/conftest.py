import os

# Settings are cached on first import; pin them before the package loads
os.environ["ENV_MODE"] = "development"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["SEED_CATALOG"] = "false"
os.environ["EXECUTOR_TOKEN"] = "test-executor-token"

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from order_manager.database import DEMO_USERNAME, get_db, init_db, seed_catalog
from order_manager.main import app
from order_manager.models import Order, OrderDetail, OrderPlace, User
from order_manager.services.channel import InMemoryExecutionChannel, get_execution_channel

EXECUTOR_TOKEN = "test-executor-token"


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'orders.db'}", poolclass=NullPool)
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_maker(engine):
    maker = async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)
    await seed_catalog(maker)
    return maker


@pytest_asyncio.fixture
async def session(session_maker):
    async with session_maker() as session:
        yield session


@pytest_asyncio.fixture
async def user_id(session_maker):
    async with session_maker() as session:
        return await session.scalar(select(User.id).where(User.username == DEMO_USERNAME))


@pytest.fixture
def channel():
    return InMemoryExecutionChannel()


@pytest_asyncio.fixture
async def client(session_maker, channel):
    async def override_get_db():
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_execution_channel] = lambda: channel

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


async def count_rows(session_maker, model) -> int:
    async with session_maker() as session:
        return await session.scalar(select(func.count()).select_from(model))


async def count_order_rows(session_maker) -> dict[str, int]:
    return {
        "orders": await count_rows(session_maker, Order),
        "details": await count_rows(session_maker, OrderDetail),
        "places": await count_rows(session_maker, OrderPlace),
    }
