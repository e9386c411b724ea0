"""
指标整形服务 (Per-Metric Shaping Service)

功能描述 (Description):
    聚合流水线的第二阶段：按指标族把原始样本归约为规范化的 (time, value) 序列。
    Stage two of the aggregation pipeline: reduce raw samples, per metric
    family, to a normalized (time, value) stream.

整形规则 (Shaping rules):
    | 指标           | 来源                                  | 变换                                   |
    |----------------|---------------------------------------|----------------------------------------|
    | cpu_usage      | cpu.usage_idle（cpu == "cpu-total"）  | 100 - idle，限制在 [0, 100]            |
    | ram_used       | mem.used（字节）                      | 原样透传，最后再换算单位               |
    | storage_used   | disk.used（字节，仅 path == "/"）     | 原样透传                               |
    | network_in/out | net.bytes_recv / net.bytes_sent       | 排除 lo，按时间戳跨网卡求和，非负一阶差分 |

    计数器回绕（数值下降）时速率记为 0，而不是负值，也不视为错误。
    A counter reset (decreasing value) yields a rate of 0, never a negative
    rate and never an error.

窗口聚合 (Window aggregation):
    样本按纪元对齐的窗口 [k·w, (k+1)·w) 分桶，每个非空窗口输出算术平均值，
    时间戳取窗口结束边界（不超过查询范围结束时间）；空窗口直接丢弃，
    补零留给第四阶段决定。

    Samples are bucketed into epoch-aligned windows; every non-empty window
    emits its arithmetic mean stamped at the window stop (capped at the range
    stop). Empty windows are dropped; zero-filling is left to stage four.
"""
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable

from deskwatch.services.metric_source import Sample, SampleSelector
from deskwatch.services.serialization import finite

# 各指标族的选择条件 (Selectors per metric family)
CPU_IDLE = SampleSelector("cpu", ("usage_idle",), tags=(("cpu", "cpu-total"),))
RAM_USED = SampleSelector("mem", ("used",))
STORAGE_USED = SampleSelector("disk", ("used",), tags=(("path", "/"),))
NET_RECV = SampleSelector("net", ("bytes_recv",))
NET_SENT = SampleSelector("net", ("bytes_sent",))

LOOPBACK_INTERFACE = "lo"
RATE_UNIT = timedelta(seconds=1)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_MICROSECOND = timedelta(microseconds=1)

Point = tuple[datetime, float]


def _utc(value: datetime) -> datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


def numeric_points(samples: Iterable[Sample], selector: SampleSelector) -> list[Point]:
    """
    选出满足条件且数值有限的样本，按时间升序排列 (Matching, finite samples sorted by time)

    排序是稳定的：同一时间戳的样本保持输入顺序。
    """
    points = []
    for sample in samples:
        if not selector.matches(sample):
            continue
        value = finite(sample.value)
        if value is not None:
            points.append((_utc(sample.time), value))
    points.sort(key=lambda p: p[0])
    return points


def busy_percent(idle: float) -> float:
    """空闲百分比转换为繁忙百分比，并限制在 [0, 100]。"""
    return min(100.0, max(0.0, 100.0 - idle))


def sum_across_interfaces(samples: Iterable[Sample], selector: SampleSelector) -> list[Point]:
    """
    排除回环网卡后，按时间戳对各网卡的累计计数求和 (Sum counters across non-loopback interfaces per timestamp)
    """
    totals: dict[datetime, float] = defaultdict(float)
    for sample in samples:
        if not selector.matches(sample):
            continue
        if sample.tags.get("interface") == LOOPBACK_INTERFACE:
            continue
        value = finite(sample.value)
        if value is not None:
            totals[_utc(sample.time)] += value
    return sorted(totals.items())


def non_negative_derivative(points: list[Point], unit: timedelta = RATE_UNIT) -> list[Point]:
    """
    单调计数器转速率 (Monotonic counter to rate)

    rate[t_i] = max(0, v[i] - v[i-1]) / ((t_i - t_{i-1}) / unit)，时间戳取 t_i。
    时间间隔不为正的相邻点被跳过。

    >>> t = [datetime(2024, 1, 1, 0, 0, s, tzinfo=timezone.utc) for s in range(4)]
    >>> [v for _, v in non_negative_derivative(list(zip(t, [1000, 1500, 1200, 1800])))]
    [500.0, 0.0, 600.0]
    """
    rates = []
    for (t0, v0), (t1, v1) in zip(points, points[1:]):
        elapsed = (t1 - t0) / unit
        if elapsed <= 0:
            continue
        rates.append((t1, max(0.0, v1 - v0) / elapsed))
    return rates


def window_mean(
    points: Iterable[Point],
    every: timedelta,
    start: datetime,
    stop: datetime,
) -> list[Point]:
    """
    纪元对齐的窗口平均 (Epoch-aligned window mean)

    只统计 [start, stop) 内的点；输出时间为 min(窗口结束, stop)，按时间升序。
    """
    width = every // _MICROSECOND
    if width <= 0:
        raise ValueError("Window width must be positive")
    start, stop = _utc(start), _utc(stop)

    buckets: dict[int, list[float]] = defaultdict(list)
    for time, value in points:
        time = _utc(time)
        if time < start or time >= stop:
            continue
        index = ((time - _EPOCH) // _MICROSECOND) // width
        buckets[index].append(value)

    result = []
    for index in sorted(buckets):
        values = buckets[index]
        window_stop = _EPOCH + timedelta(microseconds=(index + 1) * width)
        result.append((min(window_stop, stop), sum(values) / len(values)))
    return result


# ── 历史序列（单主机） (History series, single host) ────────────────

def cpu_usage_series(samples: Iterable[Sample], start: datetime, stop: datetime, every: timedelta) -> list[Point]:
    """先对空闲率做窗口平均，再转换为繁忙率 (Average idle per window, then convert to busy)"""
    windows = window_mean(numeric_points(samples, CPU_IDLE), every, start, stop)
    return [(time, busy_percent(idle)) for time, idle in windows]


def gauge_series(
    samples: Iterable[Sample],
    selector: SampleSelector,
    start: datetime,
    stop: datetime,
    every: timedelta,
) -> list[Point]:
    return window_mean(numeric_points(samples, selector), every, start, stop)


def network_rate_series(
    samples: Iterable[Sample],
    selector: SampleSelector,
    start: datetime,
    stop: datetime,
    every: timedelta,
) -> list[Point]:
    """跨网卡求和 → 非负差分 → 窗口平均 (Sum → non-negative derivative → window mean)"""
    rates = non_negative_derivative(sum_across_interfaces(samples, selector))
    return window_mean(rates, every, start, stop)


# ── 快照归约（按主机） (Snapshot reductions, per host) ──────────────

def group_by_host(samples: Iterable[Sample]) -> dict[str, list[Sample]]:
    groups: dict[str, list[Sample]] = defaultdict(list)
    for sample in samples:
        groups[sample.host].append(sample)
    return groups


def last_per_host(
    samples: Iterable[Sample],
    selector: SampleSelector,
    transform: Callable[[float], float] | None = None,
) -> dict[str, float]:
    """每台主机最新的数值样本；同一时间戳取输入中靠后的一个。"""
    result = {}
    for host, host_samples in group_by_host(samples).items():
        points = numeric_points(host_samples, selector)
        if points:
            value = points[-1][1]
            result[host] = transform(value) if transform else value
    return result


def last_text_per_host(samples: Iterable[Sample], selector: SampleSelector) -> dict[str, str]:
    """每台主机最新的字符串样本 (Latest string value per host)"""
    latest: dict[str, tuple[datetime, str]] = {}
    for sample in samples:
        if not selector.matches(sample) or sample.value is None:
            continue
        time = _utc(sample.time)
        current = latest.get(sample.host)
        if current is None or time >= current[0]:
            latest[sample.host] = (time, str(sample.value))
    return {host: value for host, (_, value) in latest.items()}


def first_time_per_host(samples: Iterable[Sample], selector: SampleSelector) -> dict[str, datetime]:
    """每台主机最早一条匹配样本的时间 (Earliest matching sample time per host)"""
    first: dict[str, datetime] = {}
    for sample in samples:
        if not selector.matches(sample):
            continue
        time = _utc(sample.time)
        if sample.host not in first or time < first[sample.host]:
            first[sample.host] = time
    return first


def network_rate_per_host(samples: Iterable[Sample], selector: SampleSelector) -> dict[str, float]:
    """每台主机最近一个速率值；不足两个时间点的主机没有速率。"""
    result = {}
    for host, host_samples in group_by_host(samples).items():
        rates = non_negative_derivative(sum_across_interfaces(host_samples, selector))
        if rates:
            result[host] = rates[-1][1]
    return result
