"""测试用样本工厂、内存数据源与查询 API 替身。"""
from datetime import datetime

from deskwatch.services.metric_source import MetricStoreError, Sample, SampleSelector

MIB = 1024 * 1024
GIB = 1024 * 1024 * 1024


def sample(measurement: str, field: str, value, at: datetime, host: str = "vm-01", **tags) -> Sample:
    """构造一个样本，额外关键字参数作为标签。"""
    return Sample(time=at, measurement=measurement, field=field, host=host, value=value, tags=tags)


class FakeSampleSource:
    """内存级 InfluxDB 模拟：按选择条件、时间范围 [start, stop)、主机过滤，并支持 last/first 归约。"""

    def __init__(self, samples=(), error: str | None = None):
        self.samples = list(samples)
        self.error = error
        self.calls: list[tuple] = []

    def _check(self):
        if self.error is not None:
            raise MetricStoreError(self.error)

    async def discover_hosts(self, start: datetime, stop: datetime) -> list[str]:
        self.calls.append(("discover", start, stop))
        self._check()
        return sorted({s.host for s in self.samples if start <= s.time < stop})

    async def fetch(self, selector: SampleSelector, start: datetime, stop: datetime, host: str | None = None):
        self.calls.append((selector, start, stop, host))
        self._check()
        matched = [
            s for s in self.samples
            if selector.matches(s) and start <= s.time < stop and (host is None or s.host == host)
        ]
        if selector.reduce is None:
            return matched
        reduced: dict[tuple, Sample] = {}
        for s in sorted(matched, key=lambda s: s.time):
            key = (s.host, s.measurement, s.field)
            if selector.reduce == "first":
                reduced.setdefault(key, s)
            else:
                reduced[key] = s
        return list(reduced.values())


class FakeQueryApi:
    """记录收到的查询与参数，返回预置结果或抛出预置异常。"""

    def __init__(self, tables=(), error: Exception | None = None):
        self.tables = list(tables)
        self.error = error
        self.calls = []

    async def query(self, query, org=None, params=None):
        self.calls.append((query, org, params))
        if self.error is not None:
            raise self.error
        return self.tables
