"""
Pytest configuration and fixtures for testing
"""
import asyncio
import os

# Settings are read at import time; configure them before the app is imported
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-with-enough-length-for-hs256")
os.environ.setdefault("RATE_LIMIT_PER_MINUTE", "100000")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool

from auth_utils import create_jwt
from crud.credits import CreditLedgerRepository
from crud.profile import ProfileRepository
from database import Base, engine_options, get_db
from services.conversation_service import get_conversation_service
from services.tts_service import get_tts_service
from utils.rate_limit import demo_limiter


def make_session_factory(db_path):
    """File-backed SQLite so separate sessions (and event loops) see the same data."""
    url = f"sqlite+aiosqlite:///{db_path}"
    engine = create_async_engine(
        url,
        echo=False,
        future=True,
        poolclass=NullPool,
        **engine_options(url),
    )
    factory = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )
    return engine, factory


async def create_tables(engine):
    # Import models to ensure they're registered with Base
    import database_models  # noqa: F401
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


@pytest.fixture
async def session_factory(tmp_path):
    """Session factory bound to a fresh database for one test."""
    engine, factory = make_session_factory(tmp_path / "test.db")
    await create_tables(engine)
    yield factory
    await engine.dispose()


@pytest.fixture
async def test_db(session_factory):
    """
    Fixture that provides an isolated database session for each test.
    """
    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


async def seed_profile(session_factory, user_id: str, plan: str = "free_trial"):
    async with session_factory() as session:
        await ProfileRepository(session).create_profile({"user_id": user_id, "plan": plan, "name": "Test"})
        await session.commit()


async def fetch_ledger(session_factory, user_id: str):
    async with session_factory() as session:
        return await CreditLedgerRepository(session).get_by_user_id(user_id)


def auth_headers(user_id: str) -> dict:
    return {"Authorization": f"Bearer {create_jwt(user_id)}"}


class FakeConversationService:
    """Test double for the AI gateway; records every call."""

    def __init__(self):
        self.chat_calls = []
        self.transcribe_calls = []
        self.analyze_calls = []
        self.chunks = [b'data: {"choices":[{"delta":{"content":"Hello"}}]}\n\n',
                       b'data: {"choices":[{"delta":{"content":" there"}}]}\n\n',
                       b"data: [DONE]\n\n"]
        self.transcript = "I would like a table for two"
        self.error = None

    async def open_chat_stream(self, system_prompt, messages):
        self.chat_calls.append({"system_prompt": system_prompt, "messages": messages})
        if self.error:
            raise self.error
        chunks = list(self.chunks)

        async def relay():
            for chunk in chunks:
                yield chunk
        return relay()

    async def transcribe(self, audio_base64, audio_format):
        self.transcribe_calls.append({"audio": audio_base64, "format": audio_format})
        if self.error:
            raise self.error
        return self.transcript

    async def analyze(self, messages, scenario_id, user_level, user_language):
        self.analyze_calls.append({"scenario_id": scenario_id, "messages": messages})
        if self.error:
            raise self.error
        return {"overallScore": 88, "errors": [], "estimatedLevel": "B2"}


class FakeTTSService:
    def __init__(self):
        self.calls = []
        self.audio = b"ID3fake-mp3-bytes"
        self.error = None

    async def synthesize(self, text, language="english"):
        self.calls.append({"text": text, "language": language})
        if self.error:
            raise self.error
        return self.audio


@pytest.fixture
def fake_conversation():
    return FakeConversationService()


@pytest.fixture
def fake_tts():
    return FakeTTSService()


class ApiHarness:
    """TestClient plus helpers to seed and inspect the test database."""

    def __init__(self, client, factory):
        self.client = client
        self.factory = factory

    def seed_profile(self, user_id: str, plan: str = "free_trial"):
        asyncio.run(seed_profile(self.factory, user_id, plan))

    def ledger(self, user_id: str):
        return asyncio.run(fetch_ledger(self.factory, user_id))

    def run(self, coro_fn):
        async def _run():
            async with self.factory() as session:
                result = await coro_fn(session)
                await session.commit()
                return result
        return asyncio.run(_run())


@pytest.fixture
def api(tmp_path, fake_conversation, fake_tts):
    """FastAPI TestClient fixture with test database and vendor overrides"""
    from main import app

    engine, factory = make_session_factory(tmp_path / "api.db")
    asyncio.run(create_tables(engine))

    async def override_get_db():
        async with factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise
            finally:
                await session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_conversation_service] = lambda: fake_conversation
    app.dependency_overrides[get_tts_service] = lambda: fake_tts
    demo_limiter.reset()

    yield ApiHarness(TestClient(app), factory)

    app.dependency_overrides.clear()
    demo_limiter.reset()
    asyncio.run(engine.dispose())

