"""
时间对齐（透视）服务 (Temporal Alignment / Pivot Service)

聚合流水线的第三阶段：把多个指标流合并，按时间戳（历史）或按主机（快照）重新分组，
使每一行携带该键下的全部指标列。某行缺失的列在透视后保持缺失（而不是 0），
默认值由第四阶段统一填充。

Stage three of the aggregation pipeline: union the metric streams and regroup
them by timestamp (History) or by host (Snapshot). A column absent for a key
stays absent after the pivot; stage four applies the defaults.
"""
from datetime import datetime
from typing import Any, Iterable, Mapping

from deskwatch.services.metric_shaping import Point


def pivot_by_time(streams: Mapping[str, Iterable[Point]]) -> list[tuple[datetime, dict[str, float]]]:
    """
    按时间戳透视 (Pivot by timestamp)

    Args:
        streams: {列名: [(time, value), ...]}

    Returns:
        按时间升序排列的 (time, {列名: 值}) 列表，每个时间戳恰好一行。
        同一流内重复的时间戳以后出现的值为准。
    """
    rows: dict[datetime, dict[str, float]] = {}
    for column, points in streams.items():
        for time, value in points:
            rows.setdefault(time, {})[column] = value
    return sorted(rows.items(), key=lambda item: item[0])


def pivot_by_host(
    hosts: Iterable[str],
    columns: Mapping[str, Mapping[str, Any]],
) -> dict[str, dict[str, Any]]:
    """
    按主机透视 (Pivot by host)

    Args:
        hosts: 已知主机，决定输出行集合与顺序（重复的主机只保留一行）
        columns: {列名: {主机: 值}}

    Returns:
        {主机: {列名: 值}}，只包含该主机实际存在的列。
    """
    rows: dict[str, dict[str, Any]] = {}
    for host in hosts:
        rows.setdefault(host, {})
    for column, values in columns.items():
        for host, value in values.items():
            if host in rows:
                rows[host][column] = value
    return rows


def left_join(
    rows: dict[str, dict[str, Any]],
    right: Mapping[str, Any],
    column: str,
) -> dict[str, dict[str, Any]]:
    """按主机左连接：右表存在该主机时写入 column 列，否则保持缺失。"""
    for host, row in rows.items():
        if host in right:
            row[column] = right[host]
    return rows
