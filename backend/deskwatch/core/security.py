"""
安全工具模块 (Security Tools Module)

提供密码哈希、会话令牌生成以及携带会话标识的 JWT 编解码。
JWT 只是会话的载体：真正的有效性以数据库中的会话记录为准，注销后令牌随即失效。

Provides password hashing, session token generation and JWT encoding that
carries the session identifier. The JWT is only a carrier: validity is decided
by the session row in the database, so logging out revokes the token.
"""
import secrets
from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt
from passlib.context import CryptContext

from deskwatch.core.config import settings

# 密码哈希上下文，使用 bcrypt 算法，成本因子可配置 (bcrypt hash context with configurable rounds)
pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=settings.bcrypt_rounds,
)


def hash_password(password: str) -> str:
    """
    对明文密码进行哈希加密 (Hash plain text password)

    Args:
        password (str): 用户输入的明文密码 (User's plain text password)

    Returns:
        str: bcrypt 哈希后的密码字符串 (bcrypt hashed password string)
    """
    return pwd_context.hash(password)


def verify_password(plain: str, hashed: str) -> bool:
    """验证明文密码是否与哈希值匹配 (Verify if plain text password matches hash)"""
    return pwd_context.verify(plain, hashed)


def new_session_token() -> str:
    """生成 64 位十六进制的随机会话令牌 (Generate a random 64-hex-char session token)"""
    return secrets.token_hex(32)


def session_expiry(now: datetime | None = None) -> datetime:
    """计算会话过期时间 (Compute session expiry time)"""
    now = now or datetime.now(timezone.utc)
    return now + timedelta(seconds=settings.session_max_age_seconds)


def create_access_token(subject: str, session_token: str, expires_at: datetime) -> str:
    """
    生成携带会话标识的访问令牌 (Generate access token carrying the session id)

    令牌过期时间与会话过期时间一致。
    The token expires together with its session.

    Args:
        subject (str): 用户 ID (User id)
        session_token (str): 会话令牌 (Session token)
        expires_at (datetime): 会话过期时间 (Session expiry)

    Returns:
        str: JWT 访问令牌字符串 (JWT access token string)
    """
    return jwt.encode(
        {"sub": subject, "sid": session_token, "exp": expires_at, "type": "access"},
        settings.jwt_secret_key,
        algorithm=settings.jwt_algorithm,
    )


def decode_token(token: str) -> dict | None:
    """
    解析 JWT 令牌，失败返回 None (Decode JWT token, return None on failure)

    令牌格式错误、签名无效或已过期时返回 None。
    Returns None if the token is malformed, badly signed or expired.
    """
    try:
        return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError:
        return None
