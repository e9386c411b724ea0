"""
InfluxDB 连接模块

管理 InfluxDB 异步客户端的创建和关闭，提供全局单例访问，
并向路由提供绑定到配置 bucket 的指标数据源。
"""
from influxdb_client.client.influxdb_client_async import InfluxDBClientAsync

from deskwatch.core.config import settings
from deskwatch.services.metric_source import InfluxSampleSource, SampleSource

# 全局 InfluxDB 客户端实例
influx_client: InfluxDBClientAsync | None = None


async def get_influx() -> InfluxDBClientAsync:
    """获取 InfluxDB 客户端实例，首次调用时自动创建连接。"""
    global influx_client
    if influx_client is None:
        influx_client = InfluxDBClientAsync(
            url=settings.influx_url,
            token=settings.influx_token,
            org=settings.influx_org,
            timeout=settings.influx_timeout_ms,
        )
    return influx_client


async def close_influx() -> None:
    """关闭 InfluxDB 连接，释放资源。"""
    global influx_client
    if influx_client is not None:
        await influx_client.close()
        influx_client = None


async def get_sample_source() -> SampleSource:
    """FastAPI 依赖项：返回查询配置 bucket 的数据源。"""
    client = await get_influx()
    return InfluxSampleSource(client.query_api(), bucket=settings.influx_bucket, org=settings.influx_org)
