from typing import Optional

import httpx
import pytest
import pytest_asyncio
from sqlmodel import SQLModel

import participium.database as database
import participium.auth as auth
from participium.assignment import RoundRobinSelector
from participium.permissions import UserRole
from participium.users import find_department_role

from factories import data_uri, image_bytes


@pytest.fixture
def png_uri():
    return data_uri("PNG")


@pytest.fixture
def jpeg_bytes():
    return image_bytes("JPEG")


@pytest_asyncio.fixture(scope="function")
async def db():
    """Fresh schema and reference data for every test."""
    async with database.engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.drop_all)
        await conn.run_sync(SQLModel.metadata.create_all)
    async with database.async_session_factory() as session:
        await database.seed_reference_data(session)
    RoundRobinSelector.reset()
    yield database.engine


@pytest_asyncio.fixture(scope="function")
async def session(db):
    async with database.async_session_factory() as session:
        yield session


@pytest_asyncio.fixture(scope="function")
async def make_user(db):
    """Return a factory that creates a user directly in the DB and returns (user, token)."""

    async def _create(
        username: str,
        role: UserRole = UserRole.CITIZEN,
        department: Optional[str] = None,
        department_role: Optional[str] = None,
        telegram_username: Optional[str] = None,
        telegram_chat_id: Optional[int] = None,
    ):
        async with database.async_session_factory() as session:
            department_role_id = None
            if department:
                dept_role = await find_department_role(session, department, department_role)
                department_role_id = dept_role.id
            user = await auth.create_user(
                session,
                username=username,
                password="testpass123",
                role=role,
                department_role_id=department_role_id,
            )
            if telegram_username:
                user.telegram_username = telegram_username
                user.telegram_chat_id = telegram_chat_id
                session.add(user)
                await session.commit()
                await session.refresh(user)
            token = auth.create_access_token(subject=user.id, role=user.role)
            return user, token

    return _create


@pytest_asyncio.fixture(scope="function")
async def make_staff(make_user):
    """Technical staff member holding the given department role."""

    async def _create(username: str, department: str, role: str):
        return await make_user(
            username,
            role=UserRole.TECHNICAL_STAFF,
            department=department,
            department_role=role,
        )

    return _create


@pytest_asyncio.fixture(scope="function")
async def client(db):
    from participium.main import app

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
