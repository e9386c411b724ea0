"""
主机实例路由模块 (Host Instance Router)

功能说明：提供主机快照与主机历史指标两个只读接口
核心职责：
  - 查询所有已知主机的当前状态（元数据、实时指标、网络速率、在线状态）
  - 查询单台主机最近 1 小时、1 分钟粒度的指标序列
依赖关系：依赖 InfluxDB 数据源、会话鉴权
API端点：GET /api/instances, GET /api/instances/{host_id}/metrics

鉴权以路由级依赖挂载，所有端点都要求有效会话。
"""
import logging

from fastapi import APIRouter, Depends

from deskwatch.core.deps import get_current_session
from deskwatch.core.exceptions import MissingParameterError, UpstreamQueryError
from deskwatch.core.influx import get_sample_source
from deskwatch.schemas.instance import InstanceRow, MetricRow
from deskwatch.services.instance_history import build_history
from deskwatch.services.instance_snapshot import build_snapshot
from deskwatch.services.metric_source import MetricStoreError, SampleSource

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/instances",
    tags=["instances"],
    dependencies=[Depends(get_current_session)],
)


@router.get("", response_model=list[InstanceRow])
async def list_instances(source: SampleSource = Depends(get_sample_source)):
    """
    主机快照接口 (Host Snapshot)

    Returns:
        list[InstanceRow]: 每台已知主机一行
    Raises:
        UpstreamQueryError 500: 指标存储不可达或查询被拒绝，error 字段透传上游信息
    """
    try:
        return await build_snapshot(source)
    except MetricStoreError as exc:
        logger.error("InfluxDB query failed: %s", exc)
        raise UpstreamQueryError("Error querying InfluxDB", detail=str(exc)) from exc


@router.get("/{host_id}/metrics", response_model=list[MetricRow])
async def get_instance_metrics(host_id: str, source: SampleSource = Depends(get_sample_source)):
    """
    主机历史指标接口 (Host Metric History)

    Args:
        host_id: 主机标识（InfluxDB host 标签值）
    Returns:
        list[MetricRow]: 最近 1 小时、按 1 分钟时间桶升序排列的指标
    Raises:
        MissingParameterError 400: 主机标识为空
        UpstreamQueryError 500: 指标存储查询失败
    """
    host_id = host_id.strip()
    if not host_id:
        raise MissingParameterError("Host ID is required")

    try:
        return await build_history(source, host_id)
    except MetricStoreError as exc:
        logger.error("InfluxDB metrics query failed: %s", exc)
        raise UpstreamQueryError("Error querying InfluxDB for metrics", detail=str(exc)) from exc
