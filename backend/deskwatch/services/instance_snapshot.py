"""
主机快照聚合服务 (Host Snapshot Aggregator)

功能描述 (Description):
    为每台已知主机生成一行当前状态：身份与元数据、实时资源指标、网络速率，
    以及根据近期样本计算出的在线/离线状态。

    Produce one row of current state per known host: identity and metadata,
    live resource gauges, derived network rates and an online/offline status
    computed from the presence of recent samples.

时间范围 (Ranges):
    - 主机发现与元数据：30 天（曾经上报过的主机都会列出，即使当前离线）
    - 实时指标（CPU / 内存 / 磁盘）：5 分钟
    - 网络速率：2 分钟

在线判定 (Liveness):
    status = online 当且仅当 cpu_usage、ram_used、storage_used、network_in、network_out
    中至少一项在各自的实时窗口内有真实样本；估算出的 ram_used 不计入。

元数据与创建时间 (Metadata & creation time):
    os_type / ip_address / cpu_cores / ram_total / storage_total 取 30 天内最后一次上报值；
    created_at 取第一条 os_type 元数据样本的时间，作为“首次观测到该主机”的近似值，
    按主机左连接，缺失时为空字符串。
"""
import asyncio
import dataclasses
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Mapping

from deskwatch.core.config import settings
from deskwatch.schemas.instance import InstanceRow
from deskwatch.services.metric_alignment import left_join, pivot_by_host
from deskwatch.services.metric_shaping import (
    CPU_IDLE,
    NET_RECV,
    NET_SENT,
    RAM_USED,
    STORAGE_USED,
    busy_percent,
    first_time_per_host,
    last_per_host,
    last_text_per_host,
    network_rate_per_host,
)
from deskwatch.services.metric_source import SampleSelector, SampleSource
from deskwatch.services.serialization import bytes_to_gib, bytes_to_mib, finite, to_rfc3339

logger = logging.getLogger(__name__)

DISCOVERY_RANGE = timedelta(days=30)  # 主机发现窗口 (Host discovery window)
LIVE_GAUGE_RANGE = timedelta(minutes=5)  # 实时指标窗口 (Live gauge window)
NETWORK_RANGE = timedelta(minutes=2)  # 网络速率窗口 (Network rate window)

# 元数据选择条件 (Metadata selectors)
OS_TYPE = SampleSelector("system_meta", ("os_type",))
IP_ADDRESS = SampleSelector("system_meta", ("ip_address",))
META_STRINGS = SampleSelector("system_meta", ("os_type", "ip_address"), reduce="last")
CPU_COUNT = SampleSelector("system", ("n_cpus",), reduce="last")
RAM_TOTAL = SampleSelector("mem", ("total",), reduce="last")
STORAGE_TOTAL = SampleSelector("disk", ("total",), tags=(("path", "/"),), reduce="last")
FIRST_SEEN = SampleSelector("system_meta", ("os_type",), reduce="first")
NET_COUNTERS = SampleSelector("net", ("bytes_recv", "bytes_sent"))

# 判定在线所依据的实时列 (Live columns that decide liveness)
LIVE_COLUMNS = ("cpu_usage", "ram_used", "storage_used", "network_in", "network_out")


@dataclass(frozen=True)
class RamUsedFallback:
    """
    内存已用量缺失时的估算策略 (Estimate for a missing RAM-used gauge)

    这是占位性的启发式规则而非测量值：ram_used 缺失且 ram_total > 0 时，
    估算为 ratio × ram_total。ratio 为 None 时禁用估算，缺失值按 0 处理。
    估算值从不影响在线状态。
    """
    ratio: float | None = 0.5

    @classmethod
    def from_settings(cls) -> "RamUsedFallback":
        return cls(ratio=settings.ram_used_fallback_ratio)

    def estimate(self, ram_total_bytes: float) -> float:
        if self.ratio is None or ram_total_bytes <= 0:
            return 0.0
        return ram_total_bytes * self.ratio


def _number(columns: Mapping[str, Any], key: str) -> float | None:
    return finite(columns.get(key))


def to_instance_row(host: str, columns: Mapping[str, Any], fallback: RamUsedFallback) -> InstanceRow:
    """
    补默认值、换算单位并计算在线状态 (Apply defaults, convert units and derive status)

    非有限数值（NaN / inf）视为缺失。
    """
    live = any(_number(columns, key) is not None for key in LIVE_COLUMNS)

    ram_total = _number(columns, "ram_total") or 0.0
    storage_total = _number(columns, "storage_total") or 0.0
    ram_used = _number(columns, "ram_used")
    if ram_used is None:
        ram_used = fallback.estimate(ram_total)
    cpu_cores = _number(columns, "cpu_cores") or 0.0
    created_at = columns.get("created_at")

    return InstanceRow(
        id=host,
        name=host,
        status="online" if live else "offline",
        os_type=columns.get("os_type") or "unknown",
        ip_address=columns.get("ip_address") or "unknown",
        cpu_cores=max(0, round(cpu_cores)),
        cpu_usage=_number(columns, "cpu_usage") or 0.0,
        ram_total=bytes_to_mib(ram_total),
        ram_used=bytes_to_mib(ram_used),
        storage_total=bytes_to_gib(storage_total),
        storage_used=bytes_to_gib(_number(columns, "storage_used") or 0.0),
        network_in=bytes_to_mib(_number(columns, "network_in") or 0.0),
        network_out=bytes_to_mib(_number(columns, "network_out") or 0.0),
        created_at=to_rfc3339(created_at) if isinstance(created_at, datetime) else "",
    )


async def build_snapshot(
    source: SampleSource,
    now: datetime | None = None,
    fallback: RamUsedFallback | None = None,
) -> list[InstanceRow]:
    """
    生成所有已知主机的当前状态 (Build the current state of every known host)

    Args:
        source: 指标数据源
        now: 各时间范围的结束时间，默认当前 UTC 时间
        fallback: 内存已用量估算策略，默认读取配置

    Returns:
        list[InstanceRow]: 每台主机一行，id 唯一，按主机标识排序

    Raises:
        MetricStoreError: 任一来源查询失败时整个请求失败，不返回部分结果
    """
    stop = now or datetime.now(timezone.utc)
    fallback = fallback or RamUsedFallback.from_settings()
    discovery_start = stop - DISCOVERY_RANGE
    live_start = stop - LIVE_GAUGE_RANGE
    net_start = stop - NETWORK_RANGE

    def latest(selector: SampleSelector) -> SampleSelector:
        return dataclasses.replace(selector, reduce="last")

    (
        hosts,
        meta_strings,
        cpu_count,
        ram_total,
        storage_total,
        first_seen,
        cpu_idle,
        ram_used,
        storage_used,
        net_counters,
    ) = await asyncio.gather(
        source.discover_hosts(discovery_start, stop),
        source.fetch(META_STRINGS, discovery_start, stop),
        source.fetch(CPU_COUNT, discovery_start, stop),
        source.fetch(RAM_TOTAL, discovery_start, stop),
        source.fetch(STORAGE_TOTAL, discovery_start, stop),
        source.fetch(FIRST_SEEN, discovery_start, stop),
        source.fetch(latest(CPU_IDLE), live_start, stop),
        source.fetch(latest(RAM_USED), live_start, stop),
        source.fetch(latest(STORAGE_USED), live_start, stop),
        source.fetch(NET_COUNTERS, net_start, stop),
    )

    columns = {
        "os_type": last_text_per_host(meta_strings, OS_TYPE),
        "ip_address": last_text_per_host(meta_strings, IP_ADDRESS),
        "cpu_cores": last_per_host(cpu_count, CPU_COUNT),
        "ram_total": last_per_host(ram_total, RAM_TOTAL),
        "storage_total": last_per_host(storage_total, STORAGE_TOTAL),
        "cpu_usage": last_per_host(cpu_idle, CPU_IDLE, transform=busy_percent),
        "ram_used": last_per_host(ram_used, RAM_USED),
        "storage_used": last_per_host(storage_used, STORAGE_USED),
        "network_in": network_rate_per_host(net_counters, NET_RECV),
        "network_out": network_rate_per_host(net_counters, NET_SENT),
    }
    rows = pivot_by_host(sorted(set(hosts)), columns)
    left_join(rows, first_time_per_host(first_seen, OS_TYPE), "created_at")

    instances = [to_instance_row(host, host_columns, fallback) for host, host_columns in rows.items()]
    logger.debug(
        "Snapshot: %d hosts, %d online",
        len(instances),
        sum(1 for i in instances if i.status == "online"),
    )
    return instances
