import os

# Tokens in tests are signed with this secret
os.environ.setdefault("JWT_SECRET", "test-secret")

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from letter_studio.main import app
from letter_studio.db import get_db
from letter_studio.dependencies import get_current_active_user
from letter_studio.models_db import Base, User

# Use a separate in-memory SQLite database for testing; StaticPool keeps the one connection alive
DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture(scope="function")
async def db_session():
    """Fixture to create a new database session for each test."""
    engine = create_async_engine(
        DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    TestingSessionLocal = sessionmaker(
        autoflush=False, bind=engine, class_=AsyncSession, expire_on_commit=False
    )
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        await session.close()
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
        await engine.dispose()


@pytest.fixture(scope="function")
async def user(db_session: AsyncSession) -> User:
    db_user = User(
        id="user-1",
        external_id="ext-user-1",
        name="Jordan Smith",
        email="jordan@example.com",
        location="Austin, TX",
        active=True,
    )
    db_session.add(db_user)
    await db_session.commit()
    await db_session.refresh(db_user)
    return db_user


@pytest.fixture(scope="function")
async def anon_client(db_session: AsyncSession):
    """Test client with the real authentication dependency."""

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
async def client(anon_client: AsyncClient, user: User):
    """Test client authenticated as ``user``."""
    app.dependency_overrides[get_current_active_user] = lambda: user
    yield anon_client
