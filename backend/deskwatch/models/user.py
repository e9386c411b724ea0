"""
用户模型 (User Model)

定义面板登录用户表结构，包括邮箱、密码哈希和角色字段。

Defines the dashboard user table: email, password hash and role.
"""
from datetime import datetime

from sqlalchemy import String, Boolean, DateTime, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from deskwatch.core.database import Base


class User(Base):
    """
    用户表 (User Table)

    hashed_password 允许为空：账户可以先被创建，稍后再设置密码（此时无法登录）。
    hashed_password may be empty for accounts whose setup is incomplete; such accounts cannot log in.
    """
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)  # 主键 ID (Primary Key ID)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)  # 用户邮箱（登录名） (User Email, Login Name)
    name: Mapped[str] = mapped_column(String(100), nullable=False)  # 用户姓名 (User Name)
    hashed_password: Mapped[str | None] = mapped_column(String(255), nullable=True)  # 哈希后的密码 (Hashed Password)
    role: Mapped[str] = mapped_column(String(20), nullable=False, default="user")  # 用户角色：admin/user (User Role)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)  # 账户是否激活 (Account Active Status)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )  # 账户创建时间 (Account Creation Time)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )  # 账户更新时间 (Account Update Time)

    # 关联关系 (Relationships)
    sessions = relationship("UserSession", back_populates="user", cascade="all, delete-orphan")
