"""
DeskWatch 后端应用入口模块 (DeskWatch Backend Application Entry Module)

虚拟桌面主机监控面板的 FastAPI 应用入口，负责应用生命周期、中间件、路由注册与健康检查。

FastAPI entry point of the virtual desktop host monitoring dashboard:
application lifecycle, middleware, route registration and health checks.

主要功能 (Main Features):
- 数据库表自动创建 (Automatic database table creation)
- InfluxDB 客户端的创建与释放 (InfluxDB client setup and teardown)
- 主机快照与历史指标接口 (Host snapshot and metric history endpoints)
- 基于数据库会话的登录鉴权 (Database-backed session authentication)
"""
import os
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from deskwatch.core.config import settings as app_settings
from deskwatch.core.database import Base, engine
from deskwatch.core.exceptions import register_exception_handlers
from deskwatch.core.influx import close_influx, get_influx
# 导入所有模型以确保 SQLAlchemy 表注册 (Import all models to ensure SQLAlchemy table registration)
from deskwatch.models import User, UserSession  # noqa: F401
from deskwatch.routers import auth, instances


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    应用生命周期管理器 (Application Lifecycle Manager)

    启动时创建数据库表，关闭时释放 InfluxDB 客户端与数据库连接池。
    Creates database tables at startup; releases the InfluxDB client and the
    database pool at shutdown.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield

    await close_influx()
    await engine.dispose()


# 创建 FastAPI 应用实例 (Create FastAPI application instance)
app = FastAPI(
    title="DeskWatch",
    description="Virtual desktop host monitoring dashboard API | 虚拟桌面主机监控面板",
    version="0.1.0",
    lifespan=lifespan,
)

# 注册全局异常处理器 (Register global exception handlers)
register_exception_handlers(app)

# 配置 CORS 中间件，生产环境只允许前端域名 (CORS; production only allows the frontend origin)
is_production = app_settings.environment.lower() == "production"
allowed_origins = ["*"] if not is_production else [
    os.getenv("FRONTEND_URL", app_settings.frontend_url)
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)

# 注册所有 API 路由模块 (Register all API router modules)
app.include_router(auth.router)  # 用户认证 (User authentication)
app.include_router(instances.router)  # 主机快照与历史指标 (Host snapshot and history)


@app.get("/health")
async def health():
    """
    健康检查接口 (Health Check Endpoint)

    检查 API、PostgreSQL 与 InfluxDB 的连通性，任一组件异常时整体状态为 degraded。
    Checks API, PostgreSQL and InfluxDB connectivity; any failing component
    makes the overall status "degraded".
    """
    checks = {"api": "ok"}

    # 数据库连通性检查 (Database connectivity check)
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        checks["database"] = "ok"
    except Exception:
        checks["database"] = "error"

    # InfluxDB 连通性检查 (InfluxDB connectivity check)
    try:
        client = await get_influx()
        checks["influxdb"] = "ok" if await client.ping() else "error"
    except Exception:
        checks["influxdb"] = "error"

    status = "ok" if all(v == "ok" for v in checks.values()) else "degraded"
    return {
        "status": status,
        "checks": checks,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
