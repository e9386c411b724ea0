"""
主机历史指标聚合服务 (Host History Aggregator)

功能描述 (Description):
    针对单台主机，在固定的回看窗口（1 小时）内按 1 分钟时间桶生成有序的指标序列，
    供趋势图使用。

    For one named host, produce an ordered sequence of 1-minute buckets over a
    fixed one-hour look-back, used to render trend charts.

流水线 (Pipeline):
    1. 选取：CPU / 内存 / 磁盘 / 网络五个来源并发查询
    2. 整形：窗口平均、空闲率转繁忙率、计数器转速率
    3. 对齐：按时间戳透视，升序排列
    4. 补默认值与单位换算：缺失列 0.0，字节 → MiB / GiB

不变量 (Invariants):
    - 每个出现过的时间桶恰好一行，时间戳不重复且升序
    - 所有数值字段都存在且有限；cpu_usage ∈ [0, 100]；网络速率非负
"""
import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Mapping

from deskwatch.schemas.instance import MetricRow
from deskwatch.services.metric_alignment import pivot_by_time
from deskwatch.services.metric_shaping import (
    CPU_IDLE,
    NET_RECV,
    NET_SENT,
    RAM_USED,
    STORAGE_USED,
    cpu_usage_series,
    gauge_series,
    network_rate_series,
)
from deskwatch.services.metric_source import SampleSource
from deskwatch.services.serialization import bytes_to_gib, bytes_to_mib, to_rfc3339

logger = logging.getLogger(__name__)

HISTORY_RANGE = timedelta(hours=1)  # 回看窗口 (Look-back window)
HISTORY_WINDOW = timedelta(minutes=1)  # 时间桶宽度 (Bucket width)


def to_metric_row(time: datetime, columns: Mapping[str, float]) -> MetricRow:
    """缺失列补 0.0 并换算单位 (Default absent columns to 0.0 and convert units)"""
    return MetricRow(
        recorded_at=to_rfc3339(time),
        cpu_usage=columns.get("cpu_usage", 0.0),
        ram_used=bytes_to_mib(columns.get("ram_used", 0.0)),
        storage_used=bytes_to_gib(columns.get("storage_used", 0.0)),
        network_in=bytes_to_mib(columns.get("network_in", 0.0)),
        network_out=bytes_to_mib(columns.get("network_out", 0.0)),
    )


async def build_history(
    source: SampleSource,
    host: str,
    now: datetime | None = None,
    look_back: timedelta = HISTORY_RANGE,
    every: timedelta = HISTORY_WINDOW,
) -> list[MetricRow]:
    """
    生成单台主机的历史指标序列 (Build the metric history of one host)

    Args:
        source: 指标数据源
        host: 主机标识（host 标签值），以绑定参数方式传入查询
        now: 查询范围结束时间，默认当前 UTC 时间；同一 now 与相同数据产生相同结果
        look_back: 回看窗口
        every: 时间桶宽度

    Returns:
        list[MetricRow]: 按 recorded_at 升序排列的指标行

    Raises:
        MetricStoreError: 任一来源查询失败时整个请求失败，不返回部分结果
    """
    stop = now or datetime.now(timezone.utc)
    start = stop - look_back

    cpu, ram, storage, net_in, net_out = await asyncio.gather(
        *(source.fetch(selector, start, stop, host=host)
          for selector in (CPU_IDLE, RAM_USED, STORAGE_USED, NET_RECV, NET_SENT))
    )

    def own(samples):
        return [s for s in samples if s.host == host]

    streams = {
        "cpu_usage": cpu_usage_series(own(cpu), start, stop, every),
        "ram_used": gauge_series(own(ram), RAM_USED, start, stop, every),
        "storage_used": gauge_series(own(storage), STORAGE_USED, start, stop, every),
        "network_in": network_rate_series(own(net_in), NET_RECV, start, stop, every),
        "network_out": network_rate_series(own(net_out), NET_SENT, start, stop, every),
    }
    rows = [to_metric_row(time, columns) for time, columns in pivot_by_time(streams)]
    logger.debug("History for %s: %d buckets", host, len(rows))
    return rows
