import os
import tempfile

# Settings are read at import time; configure before importing the app
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("CLEANUP_INTERVAL_MINUTES", "0")
os.environ.setdefault("LOG_DIR", tempfile.mkdtemp(prefix="brand-share-logs-"))

from datetime import timedelta

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

import app.middlewares.rate_limit_middleware as rate_limit_module
import app.services.rate_limiter as rate_limiter_module
import app.services.storage as storage_module
from app.database import Base, build_engine, get_db
from app.main import app
from app.models import GeneratedLogo, GenerationStatus, LogoGeneration, User
from app.services.rate_limiter import FixedWindowCounter
from app.services.storage import LocalArtifactStorage
from app.utils.clock import utcnow
from app.utils.security import create_access_token, hash_password


@pytest_asyncio.fixture
async def session_maker(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest_asyncio.fixture
async def db(session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture
def storage(tmp_path):
    return LocalArtifactStorage(str(tmp_path / "artifacts"))


@pytest.fixture
def counter():
    return FixedWindowCounter(max_attempts=10, window_minutes=60)


async def _make_user(db, email: str, username: str) -> User:
    user = User(email=email, username=username, hashed_password=hash_password("password123"))
    db.add(user)
    await db.commit()
    return user


@pytest_asyncio.fixture
async def owner(db):
    return await _make_user(db, "owner@example.com", "owner")


@pytest_asyncio.fixture
async def other_user(db):
    return await _make_user(db, "other@example.com", "other")


@pytest_asyncio.fixture
async def generation(db, owner):
    generation = LogoGeneration(
        user_id=owner.id,
        business_name="TechFlow Solutions",
        business_description="Workflow automation for small teams",
        status=GenerationStatus.COMPLETED.value,
        domain_available=True,
        domain_checked_at=utcnow() - timedelta(days=1),
    )
    generation.generated_logos = [
        GeneratedLogo(style="minimalist", variation_number=1, file_size=20480),
        GeneratedLogo(style="modern", variation_number=2, file_size=30720),
    ]
    db.add(generation)
    await db.commit()
    return generation


@pytest_asyncio.fixture
async def pending_generation(db, owner):
    generation = LogoGeneration(
        user_id=owner.id,
        business_name="Pending Co",
        status=GenerationStatus.PENDING.value,
    )
    db.add(generation)
    await db.commit()
    return generation


def auth_headers(user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user.id)}"}


@pytest_asyncio.fixture
async def client(session_maker, storage, monkeypatch):
    async def override_get_db():
        async with session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    monkeypatch.setattr(storage_module, "_storage_service", storage)
    monkeypatch.setattr(rate_limiter_module, "_share_creation_counter", None)
    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as http:
        yield http
    app.dependency_overrides.pop(get_db, None)


@pytest.fixture
def public_rate_limit(monkeypatch):
    """Turn the per-IP limit on for the public routes at 3 requests per minute."""
    monkeypatch.setattr(rate_limit_module.limiter, "enabled", True)
    monkeypatch.setattr(rate_limit_module.settings, "rate_limit_share_per_minute", 3)
    rate_limit_module.limiter.reset()
    yield 3
    rate_limit_module.limiter.reset()
