"""
数据模型包 (Data Models Package)

集中导出所有 SQLAlchemy ORM 模型。指标数据不落库，只有账户与会话需要持久化。

Exports all SQLAlchemy ORM models. Metrics are never persisted here;
only accounts and sessions are.
"""
from deskwatch.models.user import User
from deskwatch.models.user_session import UserSession

__all__ = ["User", "UserSession"]
