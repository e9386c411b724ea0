"""
FastAPI 依赖项模块 (FastAPI Dependencies Module)

提供会话鉴权依赖：解析 Bearer JWT，按其中的会话令牌查询数据库会话，
校验会话存在、未过期且所属用户处于激活状态。指标接口以路由级依赖的方式挂载此校验。

Provides the session guard dependency: parse the Bearer JWT, look up the
database session named by it, and check that the session exists, has not
expired and belongs to an active user. The metrics routers mount this check
as a router-level dependency.
"""
from datetime import datetime, timezone

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from deskwatch.core.database import get_db
from deskwatch.core.exceptions import AuthenticationError
from deskwatch.core.security import decode_token
from deskwatch.models.user import User
from deskwatch.models.user_session import UserSession

# Bearer Token 认证方案；缺少凭证时由本模块返回 401 (Bearer scheme; missing credentials become 401 here)
security = HTTPBearer(auto_error=False)


def _as_utc(value: datetime) -> datetime:
    # SQLite 返回不带时区的时间，统一按 UTC 处理 (SQLite returns naive datetimes; treat them as UTC)
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


async def get_current_session(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    db: AsyncSession = Depends(get_db),
) -> UserSession:
    """
    从请求头中提取 JWT 并返回对应的有效会话 (Extract JWT from header and return its live session)

    Raises:
        AuthenticationError: 缺少令牌、令牌无效、会话不存在或已过期、用户被禁用
    """
    if credentials is None:
        raise AuthenticationError("Not authenticated")

    payload = decode_token(credentials.credentials)
    if payload is None or payload.get("type") != "access" or not payload.get("sid"):
        raise AuthenticationError("Invalid token")

    result = await db.execute(
        select(UserSession).where(UserSession.session_token == payload["sid"])
    )
    session = result.scalar_one_or_none()
    if session is None or _as_utc(session.expires_at) <= datetime.now(timezone.utc):
        raise AuthenticationError("Session expired")

    # 令牌中的用户必须与会话一致 (Token subject must match the session owner)
    if str(session.user_id) != str(payload.get("sub")):
        raise AuthenticationError("Invalid token")

    user = await db.get(User, session.user_id)
    if user is None or not user.is_active:
        raise AuthenticationError("User not found or inactive")

    return session


async def get_current_user(
    session: UserSession = Depends(get_current_session),
    db: AsyncSession = Depends(get_db),
) -> User:
    """返回当前会话所属的用户 (Return the user owning the current session)"""
    return await db.get(User, session.user_id)


def client_address(request: Request) -> str | None:
    """获取客户端 IP，优先使用反向代理头 (Client IP, preferring the reverse proxy header)"""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None
