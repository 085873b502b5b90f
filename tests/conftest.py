import os

# Settings are read at import time; point them at SQLite and switch AI off
# before anything from quicknote is imported.
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["APP_ENV"] = "test"
os.environ["SECRET_KEY"] = "test-secret"
os.environ["GROQ_API_KEY"] = ""
os.environ["AI_BASE_URL"] = ""
os.environ["AI_API_KEY"] = ""

from datetime import date

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

from quicknote.api.deps import get_session_factory, get_today
from quicknote.core.security import create_access_token, hash_password
from quicknote.db.session import Base, get_db
from quicknote.main import app
from quicknote.models.daily_questions import DailyQuestion
from quicknote.models.user import User
from quicknote.utils import redis_client

TODAY = date(2024, 3, 13)   # a Wednesday


@pytest.fixture
def today():
    return TODAY


@pytest.fixture(autouse=True)
def no_redis(monkeypatch):
    monkeypatch.setattr(redis_client, "_redis_available", False)
    monkeypatch.setattr(redis_client, "_redis", None)


@pytest_asyncio.fixture
async def engine(tmp_path):
    # A file database so the request session and background-task sessions
    # get their own connections.
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'quicknote.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def user(db):
    u = User(email="ada@example.com", username="ada", hashed_password=hash_password("password123"))
    db.add(u)
    await db.commit()
    return u


@pytest_asyncio.fixture
async def questions(db):
    """Three growth, two gratitude and one reflection question, committed."""
    rows = [
        DailyQuestion(question="What would you try if you could not fail?", category="growth", tag="possibilities"),
        DailyQuestion(question="What did your last failure teach you?", category="growth", tag="learning"),
        DailyQuestion(question="Which habit would change your life?", category="growth", tag="optimization"),
        DailyQuestion(question="What small thing are you grateful for?", category="gratitude", tag="values"),
        DailyQuestion(question="Who should you thank?", category="gratitude", tag="social"),
        DailyQuestion(question="What made you feel accomplished today?", category="reflection", tag="introspection"),
    ]
    db.add_all(rows)
    await db.commit()
    return rows


@pytest_asyncio.fixture
async def client(session_factory, user):
    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_today] = lambda: TODAY
    app.dependency_overrides[get_session_factory] = lambda: session_factory

    token = create_access_token(user.id)
    transport = ASGITransport(app=app)
    async with AsyncClient(
        transport=transport,
        base_url="http://test",
        headers={"Authorization": f"Bearer {token}"},
    ) as ac:
        yield ac
    app.dependency_overrides.clear()
