"""
应用配置模块 (Application Configuration Module)

使用 Pydantic Settings 管理 DeskWatch 的所有配置项，支持从 .env 文件和环境变量读取。
涵盖 PostgreSQL 会话存储、InfluxDB 指标存储、JWT 会话认证以及指标聚合策略。

Uses Pydantic Settings to manage all DeskWatch configuration items, read from
.env files and environment variables. Covers the PostgreSQL session store,
the InfluxDB metrics store, JWT session authentication and aggregation policies.
"""
import logging
import secrets

from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """
    应用全局配置类 (Application Global Configuration Class)

    字段名自动映射同名环境变量（不区分大小写），支持 .env 文件加载。

    Field names map to same-named environment variables (case insensitive),
    with .env file loading.
    """

    # 数据库配置 (Database Configuration)
    postgres_host: str = "localhost"  # PostgreSQL 主机地址 (PostgreSQL Host)
    postgres_port: int = 5432  # PostgreSQL 端口号 (PostgreSQL Port)
    postgres_db: str = "deskwatch"  # 数据库名称 (Database Name)
    postgres_user: str = "deskwatch"  # 数据库用户名 (Database Username)
    postgres_password: str = "deskwatch_dev_password"  # 数据库密码 (Database Password)

    # InfluxDB 配置 (InfluxDB Configuration)
    influx_url: str = "http://localhost:8086"  # InfluxDB 地址 (InfluxDB URL)
    influx_token: str = ""  # InfluxDB API 令牌 (InfluxDB API Token)
    influx_org: str = "deskwatch"  # InfluxDB 组织 (InfluxDB Organization)
    influx_bucket: str = "telegraf"  # 指标所在 bucket (Metrics Bucket)
    influx_timeout_ms: int = 10_000  # 查询超时（毫秒） (Query Timeout in ms)

    # JWT 会话认证配置 (JWT Session Authentication Configuration)
    # ⚠️ 生产环境必须通过环境变量 JWT_SECRET_KEY 设置！
    # ⚠️ MUST set JWT_SECRET_KEY env var in production!
    jwt_secret_key: str = ""  # JWT 签名密钥 (JWT Secret Key)
    jwt_algorithm: str = "HS256"  # JWT 算法 (JWT Algorithm)
    session_max_age_seconds: int = 24 * 60 * 60  # 会话有效期（秒），默认 24 小时 (Session Max Age)
    bcrypt_rounds: int = 12  # bcrypt 成本因子 (bcrypt Cost Factor)

    # 指标聚合策略 (Metric Aggregation Policy)
    # 内存已用缺失时按总量比例估算；设为 none 则禁用估算 (Estimate missing RAM used as a share of RAM total; "none" disables)
    ram_used_fallback_ratio: float | None = 0.5

    # 运行环境 (Runtime Environment)
    environment: str = "development"  # 运行环境：development/production (Runtime Environment)
    frontend_url: str = "http://localhost:3000"  # 前端 URL (Frontend URL)

    @property
    def database_url(self) -> str:
        """
        构造 PostgreSQL 异步连接 URL (Build PostgreSQL Async Connection URL)

        生成适用于 asyncpg 驱动的连接字符串。
        Generates a connection string for the asyncpg driver.
        """
        return (
            f"postgresql+asyncpg://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "env_parse_none_str": "none"}  # 自动加载 .env 文件 (Auto-load .env file)


# 全局配置实例 (Global Configuration Instance)
settings = Settings()

# JWT 密钥安全检查：未设置时生成随机密钥并警告
if not settings.jwt_secret_key or settings.jwt_secret_key == "change-me-in-production":
    settings.jwt_secret_key = secrets.token_urlsafe(64)
    logger.warning(
        "JWT_SECRET_KEY 未设置，已自动生成随机密钥，重启后所有会话令牌将失效。"
        " | JWT_SECRET_KEY not set, using auto-generated random key. "
        "All issued session tokens will be invalidated on restart."
    )
