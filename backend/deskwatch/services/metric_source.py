"""
指标数据源服务 (Metric Sample Source Service)

功能描述 (Description):
    聚合流水线的第一阶段：从时序存储中按时间范围、主机、measurement/field
    以及标签等值条件选取原始样本。只有带 host 标签的样本会被返回，
    缺少 host 标签的样本被静默过滤（这是筛选条件，不是错误）。

    Stage one of the aggregation pipeline: select raw samples from the
    time-series store by time range, host, measurement/field identity and tag
    equality. Only samples carrying a host tag are returned; tag-less samples
    are filtered out silently.

安全说明 (Security):
    所有调用方提供的值（bucket、主机名、时间范围、measurement、field、标签值）
    都通过 Flux 绑定参数（extern 中的 option 语句，名字以 "_" 开头）传递，绝不拼接进查询文本。
    标签键来自代码中的常量，并经过标识符白名单校验。

    Every caller-provided value is passed as a Flux bind parameter (an extern
    `option` statement with a "_"-prefixed name),
    never spliced into the query text. Tag keys come from code constants and
    are checked against an identifier whitelist.
"""
import asyncio
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Mapping, Protocol

import aiohttp
from influxdb_client.client.exceptions import InfluxDBError
from influxdb_client.client.flux_csv_parser import FluxQueryException
from influxdb_client.rest import ApiException

logger = logging.getLogger(__name__)

# Flux 标签键白名单 (Flux tag key whitelist)
_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

# Flux 记录中非标签的内部列 (Internal, non-tag columns of a Flux record)
_RESERVED_COLUMNS = {"result", "table", "host"}

REDUCERS = ("last", "first")


class MetricStoreError(Exception):
    """时序存储不可达或查询被拒绝，消息为上游原始错误 (Store unreachable or query rejected; message is the upstream error)"""


@dataclass(frozen=True)
class Sample:
    """时序存储中的一个不可变数据点 (An immutable point from the time-series store)"""
    time: datetime
    measurement: str
    field: str
    host: str
    value: float | str
    tags: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class SampleSelector:
    """
    样本选择条件 (Sample selection predicate)

    Attributes:
        measurement: 指标族名称，如 cpu / mem / disk / net
        fields: 允许的 field 名称
        tags: 标签等值条件 ((key, value), ...)
        reduce: 可选的存储端归约，"last" 或 "first"，按 host + field 分组
    """
    measurement: str
    fields: tuple[str, ...]
    tags: tuple[tuple[str, str], ...] = ()
    reduce: str | None = None

    def __post_init__(self):
        for key, _ in self.tags:
            if not _IDENTIFIER.match(key):
                raise ValueError(f"Invalid tag key: {key!r}")
        if self.reduce is not None and self.reduce not in REDUCERS:
            raise ValueError(f"Invalid reducer: {self.reduce!r}")
        if not self.fields:
            raise ValueError("Selector needs at least one field")

    def matches(self, sample: Sample) -> bool:
        """判断样本是否满足 measurement/field/标签条件 (Whether a sample satisfies the predicate)"""
        if sample.measurement != self.measurement or sample.field not in self.fields:
            return False
        return all(sample.tags.get(key) == value for key, value in self.tags)


class SampleSource(Protocol):
    """聚合流水线依赖的数据源接口 (Source interface consumed by the aggregation pipelines)"""

    async def discover_hosts(self, start: datetime, stop: datetime) -> list[str]:
        ...

    async def fetch(
        self,
        selector: SampleSelector,
        start: datetime,
        stop: datetime,
        host: str | None = None,
    ) -> list[Sample]:
        ...


def build_selection_query(
    selector: SampleSelector, host: str | None = None
) -> tuple[str, dict]:
    """
    构建参数化的 Flux 选取查询 (Build a parameterized Flux selection query)

    客户端把每个参数作为 extern 中的 option 语句发送，查询文本直接引用这些名字；
    名字统一加 "_" 前缀，避免与 Flux 内置标识符冲突。
    返回查询文本和除 _bucket/_start/_stop 以外的绑定参数。

    The client sends every parameter as an `option` statement in the extern
    block and the text refers to those names directly. Names carry a "_" prefix
    so they never shadow Flux builtins. _bucket/_start/_stop are added by the caller.
    """
    params: dict = {"_measurement": selector.measurement}
    field_terms = []
    for i, name in enumerate(selector.fields):
        params[f"_field{i}"] = name
        field_terms.append(f"r._field == _field{i}")

    lines = [
        "from(bucket: _bucket)",
        "  |> range(start: _start, stop: _stop)",
        f"  |> filter(fn: (r) => r._measurement == _measurement and ({' or '.join(field_terms)}))",
        "  |> filter(fn: (r) => exists r.host)",
    ]
    if host is not None:
        params["_host"] = host
        lines.append("  |> filter(fn: (r) => r.host == _host)")
    for i, (key, value) in enumerate(selector.tags):
        params[f"_tag{i}"] = value
        lines.append(f"  |> filter(fn: (r) => r.{key} == _tag{i})")
    if selector.reduce is not None:
        lines.append('  |> group(columns: ["host", "_measurement", "_field"])')
        lines.append(f"  |> {selector.reduce}()")
    return "\n".join(lines), params


HOST_DISCOVERY_QUERY = "\n".join([
    "from(bucket: _bucket)",
    "  |> range(start: _start, stop: _stop)",
    "  |> filter(fn: (r) => exists r.host)",
    '  |> keep(columns: ["host"])',
    "  |> group()",
    '  |> distinct(column: "host")',
])


def _record_to_sample(record) -> Sample | None:
    values = record.values
    host = values.get("host")
    if host is None:
        return None
    tags = {
        key: str(value)
        for key, value in values.items()
        if not key.startswith("_") and key not in _RESERVED_COLUMNS and value is not None
    }
    return Sample(
        time=record.get_time(),
        measurement=record.get_measurement(),
        field=record.get_field(),
        host=str(host),
        value=record.get_value(),
        tags=tags,
    )


def _describe(exc: Exception) -> str:
    message = getattr(exc, "message", None)
    if isinstance(message, str) and message:
        return message
    return str(exc) or exc.__class__.__name__


class InfluxSampleSource:
    """
    基于 InfluxDB 2.x 异步查询 API 的数据源 (Sample source backed by the InfluxDB 2.x async query API)

    每次调用是一次独立的查询往返；失败（连接、HTTP、Flux 运行时错误）统一转换为 MetricStoreError，不做重试，由调用方记录日志。
    Each call is one independent round trip; failures (connection, HTTP, Flux runtime) become
    MetricStoreError with no retry, and the caller logs them.
    """

    def __init__(self, query_api, bucket: str, org: str | None = None):
        self._query_api = query_api
        self._bucket = bucket
        self._org = org

    async def _query(self, query: str, params: dict):
        bound = {"_bucket": self._bucket, **params}
        try:
            return await self._query_api.query(query, org=self._org, params=bound)
        except (ApiException, InfluxDBError, FluxQueryException, aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise MetricStoreError(_describe(exc)) from exc

    async def discover_hosts(self, start: datetime, stop: datetime) -> list[str]:
        tables = await self._query(HOST_DISCOVERY_QUERY, {"_start": start, "_stop": stop})
        hosts = {str(record.get_value()) for table in tables for record in table.records}
        return sorted(hosts)

    async def fetch(
        self,
        selector: SampleSelector,
        start: datetime,
        stop: datetime,
        host: str | None = None,
    ) -> list[Sample]:
        query, params = build_selection_query(selector, host)
        tables = await self._query(query, {**params, "_start": start, "_stop": stop})
        samples = []
        for table in tables:
            for record in table.records:
                sample = _record_to_sample(record)
                if sample is not None:
                    samples.append(sample)
        logger.debug("Fetched %d samples for %s/%s", len(samples), selector.measurement, ",".join(selector.fields))
        return samples
