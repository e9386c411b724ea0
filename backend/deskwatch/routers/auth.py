"""
用户认证路由模块 (User Authentication Router)

功能说明：提供用户注册、凭证登录、注销和当前用户查询接口
核心职责：
  - 用户注册（首个用户自动设为管理员）
  - 凭证登录：校验密码后写入数据库会话，并签发携带会话令牌的 JWT
  - 注销：删除数据库会话，已签发的令牌随即失效
  - 获取当前用户信息
依赖关系：依赖 SQLAlchemy、bcrypt 密码哈希、JWT
API端点：POST /register, POST /login, POST /logout, GET /me
"""
import logging

from fastapi import APIRouter, Depends, Request, Response, status
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from deskwatch.core.database import get_db
from deskwatch.core.deps import client_address, get_current_session, get_current_user
from deskwatch.core.exceptions import (
    AuthenticationError,
    ConflictError,
    MissingParameterError,
    PermissionDeniedError,
)
from deskwatch.core.security import (
    create_access_token,
    hash_password,
    new_session_token,
    session_expiry,
    verify_password,
)
from deskwatch.models.user import User
from deskwatch.models.user_session import UserSession
from deskwatch.schemas.auth import TokenResponse, UserLogin, UserRegister, UserResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.post("/register", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def register(data: UserRegister, db: AsyncSession = Depends(get_db)):
    """
    用户注册接口 (User Registration)

    系统中第一个注册的用户自动成为管理员，之后的用户为普通用户。

    Raises:
        ConflictError 409: 邮箱已被注册
    """
    existing = await db.execute(select(User).where(User.email == data.email))
    if existing.scalar_one_or_none():
        raise ConflictError("Email already registered")

    user_count = (await db.execute(select(func.count()).select_from(User))).scalar()
    user = User(
        email=data.email,
        name=data.name,
        hashed_password=hash_password(data.password),
        role="admin" if user_count == 0 else "user",
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


@router.post("/login", response_model=TokenResponse)
async def login(data: UserLogin, request: Request, db: AsyncSession = Depends(get_db)):
    """
    凭证登录接口 (Credentials Login)

    流程：
        1. 校验邮箱与密码均已提供
        2. 按邮箱查找用户，确认账户已设置密码
        3. 校验密码与账户状态
        4. 写入会话记录（令牌、User-Agent、IP、过期时间）
        5. 签发与会话同时过期的 JWT
    Raises:
        MissingParameterError 400: 缺少邮箱或密码
        AuthenticationError 401: 用户不存在或密码错误
        PermissionDeniedError 403: 账户未完成设置或已禁用
    """
    if not data.email or not data.password:
        raise MissingParameterError("Missing credentials")

    result = await db.execute(select(User).where(User.email == data.email))
    user = result.scalar_one_or_none()
    if user is None:
        logger.warning("Login failed for unknown account %s", data.email)
        raise AuthenticationError("Invalid credentials")
    if not user.hashed_password:
        raise PermissionDeniedError("Account setup incomplete")
    if not verify_password(data.password, user.hashed_password):
        logger.warning("Login failed for %s: wrong password", data.email)
        raise AuthenticationError("Invalid credentials")
    if not user.is_active:
        raise PermissionDeniedError("Account disabled")

    expires_at = session_expiry()
    session = UserSession(
        session_token=new_session_token(),
        user_id=user.id,
        user_agent=request.headers.get("user-agent"),
        ip_address=client_address(request),
        expires_at=expires_at,
    )
    db.add(session)
    await db.commit()
    logger.info("User %s logged in", user.email)

    return TokenResponse(
        access_token=create_access_token(str(user.id), session.session_token, expires_at),
        expires_at=expires_at,
    )


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout(
    session: UserSession = Depends(get_current_session),
    db: AsyncSession = Depends(get_db),
):
    """注销接口：删除当前会话 (Logout: delete the current session)"""
    await db.execute(delete(UserSession).where(UserSession.id == session.id))
    await db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/me", response_model=UserResponse)
async def me(user: User = Depends(get_current_user)):
    """获取当前登录用户信息 (Get current user)"""
    return user
