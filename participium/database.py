from typing import AsyncGenerator
import logging

from sqlmodel import SQLModel, select
from sqlalchemy.ext.asyncio import create_async_engine
from sqlmodel.ext.asyncio.session import AsyncSession
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import NullPool, StaticPool

from .config import get_settings

logger = logging.getLogger("participium.database")

# Tests set DATABASE_URL in os.environ before this module is imported.
DATABASE_URL = get_settings().database_url

# Ensure we use the async driver for postgres
if DATABASE_URL.startswith("postgresql://"):
    DATABASE_URL = DATABASE_URL.replace("postgresql://", "postgresql+asyncpg://")
elif DATABASE_URL.startswith("postgresql+psycopg2://"):
    DATABASE_URL = DATABASE_URL.replace("postgresql+psycopg2://", "postgresql+asyncpg://")
elif DATABASE_URL.startswith("sqlite:///"):
    DATABASE_URL = DATABASE_URL.replace("sqlite:///", "sqlite+aiosqlite:///")

engine_kwargs = {"echo": False, "future": True}
if DATABASE_URL.startswith("sqlite"):
    engine_kwargs["connect_args"] = {"check_same_thread": False}

    if (
        ":memory:" in DATABASE_URL
        or "mode=memory" in DATABASE_URL
        or DATABASE_URL == "sqlite+aiosqlite://"
    ):
        # In-memory DBs must keep a single connection or the schema disappears.
        engine_kwargs["poolclass"] = StaticPool
    else:
        engine_kwargs["poolclass"] = NullPool
elif "asyncpg" in DATABASE_URL:
    engine_kwargs["poolclass"] = NullPool

engine = create_async_engine(DATABASE_URL, **engine_kwargs)

async_session_factory = sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    async with async_session_factory() as session:
        yield session


async def seed_reference_data(session: AsyncSession) -> None:
    """Create the departments and department roles named by the routing table."""
    from .models import Department, DepartmentRole
    from .routing_table import ROUTING_TABLE

    for route in ROUTING_TABLE.values():
        result = await session.exec(select(Department).where(Department.name == route.department))
        department = result.first()
        if department is None:
            department = Department(name=route.department)
            session.add(department)
            await session.flush()

        result = await session.exec(
            select(DepartmentRole).where(
                DepartmentRole.department_id == department.id,
                DepartmentRole.name == route.role,
            )
        )
        if result.first() is None:
            session.add(DepartmentRole(department_id=department.id, name=route.role))
            await session.flush()
    await session.commit()


async def init_db() -> None:
    # Postgres deployments are expected to manage the schema externally;
    # create_all is idempotent and good enough for SQLite and fresh databases.
    from . import models  # noqa: F401  registers the tables on SQLModel.metadata

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    async with async_session_factory() as session:
        await seed_reference_data(session)
    logger.info("Database initialized (%s)", engine.dialect.name)
