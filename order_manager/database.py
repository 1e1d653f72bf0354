"""
Database Connection Module
Handles the SQLAlchemy async engine, session factory and catalog seeding.
"""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from order_manager.core.config import get_settings

logger = logging.getLogger(__name__)
settings = get_settings()


def build_engine(url: str, echo: bool = False) -> AsyncEngine:
    """Create an async engine; SQLite URLs do not take pool sizing."""
    if url.startswith("sqlite"):
        return create_async_engine(url, echo=echo)
    return create_async_engine(
        url,
        echo=echo,
        pool_size=5,  # Connection pool size
        max_overflow=10,  # Extra connections when pool is full
    )


engine = build_engine(settings.database_url, echo=settings.database_echo)

# Session factory - creates new database sessions
async_session_maker = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False  # Objects remain accessible after commit
)


# Base class for all our models
class Base(DeclarativeBase):
    pass


async def get_db() -> AsyncSession:
    """
    Dependency injection for FastAPI routes.
    Yields a database session and ensures cleanup.
    """
    async with async_session_maker() as session:
        try:
            yield session
        finally:
            await session.close()


async def init_db(bind: AsyncEngine = engine) -> None:
    """
    Create all tables in database.
    Called once at application startup.
    """
    # Models must be registered on Base.metadata before create_all
    from order_manager import models  # noqa: F401

    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables created")


DEMO_USERNAME = "demo"
DEMO_FOODS = ["bread", "water", "apple", "pasta"]
DEMO_PLACES = ["table1", "table2", "table3", "kitchen"]


async def seed_catalog(session_maker: async_sessionmaker = async_session_maker) -> None:
    """
    Insert the demo user and catalog rows that are not present yet.

    Only used in development; the catalog is read-only for the order
    workflow, so production data is loaded out of band.
    """
    from order_manager.models import Food, Place, User

    async with session_maker() as session:
        async with session.begin():
            if await session.scalar(select(User).where(User.username == DEMO_USERNAME)) is None:
                session.add(User(username=DEMO_USERNAME))

            existing_foods = set((await session.scalars(select(Food.name))).all())
            session.add_all(Food(name=n) for n in DEMO_FOODS if n not in existing_foods)

            existing_places = set((await session.scalars(select(Place.name))).all())
            session.add_all(Place(name=n) for n in DEMO_PLACES if n not in existing_places)

    logger.info(f"Catalog seeded: {len(DEMO_FOODS)} foods, {len(DEMO_PLACES)} places")
