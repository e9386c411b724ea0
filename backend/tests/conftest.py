"""
DeskWatch 测试基础配置

提供 SQLite in-memory 异步数据库、内存级指标数据源、FastAPI 测试客户端等通用 fixture。
所有测试使用隔离的数据库与数据源，不依赖外部 PostgreSQL/InfluxDB。
"""
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

# 必须在导入 app 之前设置环境变量，避免真实连接
import os
os.environ["POSTGRES_HOST"] = "localhost"
os.environ["INFLUX_URL"] = "http://localhost:8086"
os.environ["JWT_SECRET_KEY"] = "test-secret-key"
os.environ["BCRYPT_ROUNDS"] = "4"

from deskwatch.core.database import Base, get_db
from deskwatch.core.influx import get_sample_source
from deskwatch.core.security import create_access_token, hash_password, new_session_token
from deskwatch.models.user import User
from deskwatch.models.user_session import UserSession

from factories import FakeSampleSource

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

# 固定的查询结束时间，服务层测试使用 (Fixed query end time for service-level tests)
NOW = datetime(2026, 5, 1, 12, 0, 30, tzinfo=timezone.utc)


# ── Fixtures ──────────────────────────────────────────────────────────

@pytest_asyncio.fixture
async def engine():
    """每个测试一个内存数据库，StaticPool 保证所有会话共享同一连接。"""
    engine = create_async_engine(TEST_DATABASE_URL, echo=False, poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(engine) -> AsyncGenerator[AsyncSession, None]:
    """提供一个干净的数据库会话。"""
    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session


@pytest.fixture
def sample_source() -> FakeSampleSource:
    """空的内存数据源，测试中按需填充样本。"""
    return FakeSampleSource()


@pytest_asyncio.fixture
async def client(db_session: AsyncSession, sample_source: FakeSampleSource) -> AsyncGenerator[AsyncClient, None]:
    """提供配置好依赖覆盖的异步 HTTP 测试客户端。"""
    from deskwatch.main import app

    async def override_get_db():
        yield db_session

    async def override_get_sample_source():
        return sample_source

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_sample_source] = override_get_sample_source

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def admin_user(db_session: AsyncSession) -> User:
    """创建一个管理员用户。"""
    user = User(
        email="admin@test.com",
        name="Admin",
        hashed_password=hash_password("admin123"),
        role="admin",
        is_active=True,
    )
    db_session.add(user)
    await db_session.commit()
    await db_session.refresh(user)
    return user


async def _session_headers(db_session: AsyncSession, user: User, expires_at: datetime) -> dict:
    session = UserSession(session_token=new_session_token(), user_id=user.id, expires_at=expires_at)
    db_session.add(session)
    await db_session.commit()
    token = create_access_token(str(user.id), session.session_token, datetime.now(timezone.utc) + timedelta(hours=1))
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture
async def auth_headers(db_session: AsyncSession, admin_user: User) -> dict:
    """有效会话的认证头。"""
    return await _session_headers(db_session, admin_user, datetime.now(timezone.utc) + timedelta(hours=1))


@pytest_asyncio.fixture
async def expired_headers(db_session: AsyncSession, admin_user: User) -> dict:
    """会话已过期（但 JWT 本身未过期）的认证头。"""
    return await _session_headers(db_session, admin_user, datetime.now(timezone.utc) - timedelta(minutes=1))
