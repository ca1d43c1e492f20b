import os
import tempfile

# Configure the app before anything from src is imported.
_db_dir = tempfile.mkdtemp(prefix="streamvault-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{os.path.join(_db_dir, 'test.db')}"
os.environ["DB_CREATE_TABLES"] = "false"
os.environ["JWT_SECRET_KEY"] = "test-secret-key"
os.environ["USE_MOCK_EMAIL"] = "true"

from typing import Any  # noqa: E402
from uuid import uuid4  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from fakeredis import aioredis as fake_aioredis  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402

from app import app  # noqa: E402
from src.api.dependencies import get_notification_dispatcher, get_redis_client  # noqa: E402
from src.database.base import Base  # noqa: E402
from src.database.content import Content  # noqa: E402
from src.database.plans import AccessLevel, QualityLevel, SubscriptionPlan  # noqa: E402
from src.database.session import get_async_engine, get_session, init_models  # noqa: E402
from src.database.users import User, UserRole  # noqa: E402
from src.services.auth_service import PasswordService, TokenService  # noqa: E402
from src.services.notification_dispatcher import NotificationDispatcher  # noqa: E402

TEST_PASSWORD = "Passw0rdTest"


class RecordingPublisher:
    def __init__(self):
        self.events = []

    def publish(self, event) -> None:
        self.events.append(event)

    def types(self) -> list[str]:
        return [event.type.value for event in self.events]


@pytest_asyncio.fixture
async def db():
    await init_models()
    yield
    async with get_async_engine().begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest_asyncio.fixture
async def redis():
    client = fake_aioredis.FakeRedis(decode_responses=True)
    yield client
    await client.flushall()
    await client.aclose()


@pytest.fixture
def publisher() -> RecordingPublisher:
    return RecordingPublisher()


@pytest_asyncio.fixture
async def dispatcher():
    dispatcher = NotificationDispatcher()
    yield dispatcher
    await dispatcher.stop(timeout=1)


@pytest_asyncio.fixture
async def client(db, redis, dispatcher):
    app.dependency_overrides[get_redis_client] = lambda: redis
    app.dependency_overrides[get_notification_dispatcher] = lambda: dispatcher
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(db):
    async def _make_user(email: str | None = None, role: str = UserRole.USER.value, **fields: Any) -> User:
        user = User(
            name=fields.pop("name", "Test User"),
            email=email or f"user-{uuid4().hex[:8]}@example.com",
            password_hash=PasswordService.hash_password(TEST_PASSWORD),
            role=role,
            **fields,
        )
        async with get_session() as session:
            session.add(user)
            await session.commit()
        return user

    return _make_user


@pytest.fixture
def make_plan(db):
    async def _make_plan(**fields: Any) -> SubscriptionPlan:
        values = {
            "name": "Premium",
            "description": "Full HD on two screens",
            "price": 12.99,
            "duration_days": 30,
            "quality_level": QualityLevel.HD,
            "access_level": AccessLevel.PREMIUM,
            "max_devices": 4,
            "max_concurrent_streams": 2,
        }
        values.update(fields)
        plan = SubscriptionPlan(**values)
        async with get_session() as session:
            session.add(plan)
            await session.commit()
        return plan

    return _make_plan


@pytest.fixture
def make_content(db):
    async def _make_content(**fields: Any) -> Content:
        values = {
            "title": "The Long Night",
            "description": "A city loses its power for a week.",
            "type": "movie",
            "release_year": 2021,
            "duration": 100,
            "rating": "PG-13",
            "director": "A. Director",
            "language": "English",
            "thumbnail_url": "https://cdn.example.com/thumbs/long-night.jpg",
            "video_url": "videos/long-night/master.m3u8",
            "genres": ["drama", "thriller"],
            "quality_levels": ["SD", "HD", "4K"],
            "access_level": AccessLevel.BASIC,
        }
        values.update(fields)
        content = Content(**values)
        async with get_session() as session:
            session.add(content)
            await session.commit()
        return content

    return _make_content


@pytest.fixture
def auth_headers():
    def _auth_headers(user: User) -> dict[str, str]:
        token, _ = TokenService.create_access_token(user.id, user.email, user.role)
        return {"Authorization": f"Bearer {token}"}

    return _auth_headers
