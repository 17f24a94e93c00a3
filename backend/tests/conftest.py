"""
Pytest fixtures for the therapy chat API.

Every test gets its own SQLite file, a fake chat model and a recording
event bus, wired into the app through dependency overrides. The app's
lifespan (Kafka producer, OpenAI client) is never started.
"""
import asyncio
import json
from types import SimpleNamespace

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from openai import OpenAIError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import NullPool

from therapy_api.db import Base, get_db, get_session_factory
from therapy_api.main import app
from therapy_api.models import User
from therapy_api.services.auth_service import hash_password
from therapy_api.services.events import get_event_bus
from therapy_api.services.openai_chat import get_chat_model


ANXIOUS_ANALYSIS = {
    "emotionalState": "anxious",
    "themes": ["work", "sleep"],
    "riskLevel": 3,
    "recommendedApproach": "grounding",
    "progressIndicators": ["seeking support"],
}

DEFAULT_REPLY = "That sounds really heavy. Let's take a slow breath together."


class FakeChatModel:
    """Stands in for ChatModel: JSON-mode calls get `analysis`, others get `reply`."""

    def __init__(self, analysis=None, reply=DEFAULT_REPLY, fail=False):
        self.analysis = json.dumps(ANXIOUS_ANALYSIS) if analysis is None else analysis
        self.reply = reply
        self.fail = fail
        self.calls = []

    async def complete(self, messages, *, json_mode=False):
        self.calls.append({"messages": messages, "json_mode": json_mode})
        if self.fail:
            raise OpenAIError("model backend unreachable")
        return self.analysis if json_mode else self.reply


def stub_openai_client(choices):
    """SDK-shaped client whose completions always come back with `choices`."""
    def create(**kwargs):
        return SimpleNamespace(choices=choices)
    return SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create)))


class RecordingEventBus:
    def __init__(self):
        self.sent = []
        self.fail = False

    async def publish(self, name, data):
        if self.fail:
            raise ConnectionError("broker unavailable")
        self.sent.append((name, data))

    def named(self, name):
        return [data for n, data in self.sent if n == name]


def _make_factory(url):
    engine = create_async_engine(url, poolclass=NullPool)
    return engine, async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


@pytest.fixture
def chat_model():
    return FakeChatModel()


@pytest.fixture
def event_bus():
    return RecordingEventBus()


@pytest.fixture
def session_factory(tmp_path):
    """File-backed database for synchronous (TestClient) tests."""
    engine, factory = _make_factory(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")

    async def _create():
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    asyncio.run(_create())
    yield factory
    asyncio.run(engine.dispose())


@pytest_asyncio.fixture
async def async_session_factory(tmp_path):
    """Same database setup for async tests, created on the test's own loop."""
    engine, factory = _make_factory(f"sqlite+aiosqlite:///{tmp_path / 'async.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield factory
    await engine.dispose()


@pytest.fixture
def client(session_factory, chat_model, event_bus):
    async def _get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_chat_model] = lambda: chat_model
    app.dependency_overrides[get_event_bus] = lambda: event_bus
    yield TestClient(app)
    app.dependency_overrides.clear()


def run_db(session_factory, fn):
    """Run `await fn(session)` against the test database from sync code."""
    async def _run():
        async with session_factory() as session:
            return await fn(session)
    return asyncio.run(_run())


def register_and_login(client, name="Alice", email="a@x.com", password="secret123"):
    """Register a user, log in and return (auth headers, user dict)."""
    r = client.post("/auth/register", json={"name": name, "email": email, "password": password})
    assert r.status_code == 201, r.text
    r = client.post("/auth/login", json={"email": email, "password": password})
    assert r.status_code == 200, r.text
    body = r.json()
    return {"Authorization": f"Bearer {body['token']}"}, body["user"]


async def seed_user(factory, name="Alice", email="a@x.com"):
    async with factory() as db:
        user = User(name=name, email=email, password_hash=hash_password("secret123"))
        db.add(user)
        await db.commit()
        return user.id


async def count_rows(session, model):
    return len((await session.execute(select(model))).scalars().all())
