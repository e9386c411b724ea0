"""
登录会话模型 (Login Session Model)

每次成功登录都会写入一条会话记录，JWT 中只携带会话令牌；
请求鉴权时按令牌查询会话并检查过期时间，注销即删除记录。

Every successful login writes a session row and the JWT only carries its token.
Requests are authorized by looking the session up and checking its expiry;
logging out deletes the row.
"""
from datetime import datetime

from sqlalchemy import String, DateTime, ForeignKey, Integer, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from deskwatch.core.database import Base


class UserSession(Base):
    """用户会话表 (User Session Table)"""
    __tablename__ = "user_sessions"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)  # 主键 ID (Primary Key ID)
    session_token: Mapped[str] = mapped_column(String(64), unique=True, index=True, nullable=False)  # 会话令牌 (Session Token)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False
    )  # 所属用户 (Owning User)
    user_agent: Mapped[str | None] = mapped_column(String(512), nullable=True)  # 客户端 User-Agent (Client User-Agent)
    ip_address: Mapped[str | None] = mapped_column(String(45), nullable=True)  # 客户端 IP（支持 IPv6） (Client IP)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)  # 过期时间 (Expiry Time)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )  # 创建时间 (Creation Time)

    user = relationship("User", back_populates="sessions")
