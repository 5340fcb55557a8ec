import os

# Settings are read at import time; configure before importing project modules
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("NOTIFIER_BACKEND", "memory")
os.environ.setdefault("IDENTITY_SECRET", "test-identity-secret")
os.environ.setdefault("ENVIRONMENT", "test")

import pytest

import models  # noqa: F401  registers tables on Base.metadata
from core.db import Base, build_engine, build_sessionmaker
from services.engine import MatchingEngine
from services.notifier import MemoryNotifier


@pytest.fixture
async def session_factory(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'pairly.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield build_sessionmaker(engine)
    await engine.dispose()


@pytest.fixture
def notifier():
    return MemoryNotifier()


@pytest.fixture
def engine(session_factory, notifier):
    return MatchingEngine(session_factory, notifier)


@pytest.fixture
def make_match(engine):
    async def _make(a: str, b: str) -> int:
        await engine.submit_like(a, b)
        result = await engine.submit_like(b, a)
        assert result.matched
        return result.match_id

    return _make
