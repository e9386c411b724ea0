"""指标数据源测试：参数化查询、记录转换、上游错误包装。"""
import asyncio
import re
from datetime import datetime, timezone

import aiohttp
import pytest
from influxdb_client import InfluxDBClient
from influxdb_client.client.exceptions import InfluxDBError
from influxdb_client.client.flux_csv_parser import FluxQueryException
from influxdb_client.client.flux_table import FluxRecord, FluxTable
from influxdb_client.rest import ApiException

from deskwatch.services.metric_source import (
    HOST_DISCOVERY_QUERY,
    InfluxSampleSource,
    MetricStoreError,
    SampleSelector,
    build_selection_query,
)

from factories import FakeQueryApi, sample

START = datetime(2026, 5, 1, 11, 0, tzinfo=timezone.utc)
STOP = datetime(2026, 5, 1, 12, 0, tzinfo=timezone.utc)
DISK_USED = SampleSelector("disk", ("used", "total"), tags=(("path", "/"),))


def table(*values: dict) -> FluxTable:
    t = FluxTable()
    t.records = [FluxRecord(table=0, values=v) for v in values]
    return t


class TestSampleSelector:
    def test_rejects_unsafe_tag_key(self):
        with pytest.raises(ValueError):
            SampleSelector("disk", ("used",), tags=(('path == "/" or true', "/"),))

    def test_rejects_unknown_reducer(self):
        with pytest.raises(ValueError):
            SampleSelector("disk", ("used",), reduce="mean")

    def test_matches_measurement_field_and_tags(self):
        at = START
        assert DISK_USED.matches(sample("disk", "used", 1, at, path="/"))
        assert not DISK_USED.matches(sample("disk", "used", 1, at, path="/boot"))
        assert not DISK_USED.matches(sample("disk", "free", 1, at, path="/"))
        assert not DISK_USED.matches(sample("mem", "used", 1, at, path="/"))


class TestBuildSelectionQuery:
    def test_values_are_bound_not_inlined(self):
        host = 'evil") |> drop(columns: ["_value"]) //'
        query, params = build_selection_query(DISK_USED, host)
        assert host not in query
        assert "disk" not in query
        assert params == {"_measurement": "disk", "_field0": "used", "_field1": "total", "_host": host, "_tag0": "/"}
        assert "r.host == _host" in query
        assert "r.path == _tag0" in query

    def test_no_host_filter_without_host(self):
        query, params = build_selection_query(DISK_USED)
        assert "_host" not in query
        assert "_host" not in params
        assert "exists r.host" in query

    def test_reducer_groups_per_host_and_field(self):
        query, _ = build_selection_query(SampleSelector("mem", ("total",), reduce="last"))
        assert query.rstrip().endswith("|> last()")
        assert 'group(columns: ["host", "_measurement", "_field"])' in query


# 查询文本中引用的绑定名（排除 r._field 这类列访问与字符串里的列名）
_BOUND_NAME = re.compile(r'(?<![\w."])(_[A-Za-z]\w*)')


class TestRequestBody:
    """用真实客户端构建请求体，确认查询引用的每个名字都在 extern 中以 option 定义。"""

    @pytest.fixture
    def query_api(self):
        client = InfluxDBClient(url="http://localhost:8086", token="token", org="acme")
        yield client.query_api()
        client.close()

    @staticmethod
    def defined_names(query_api, query, params):
        body = query_api._create_query(query, params=params)
        return {statement.assignment.id.name for statement in body.extern.body}

    async def test_selection_names_are_defined(self, query_api):
        api = FakeQueryApi()
        selector = SampleSelector("disk", ("used", "total"), tags=(("path", "/"),), reduce="last")
        await InfluxSampleSource(api, bucket="telegraf", org="acme").fetch(selector, START, STOP, host="vm-01")

        query, _, params = api.calls[0]
        used = set(_BOUND_NAME.findall(query))
        assert "params" not in query
        assert used == {"_bucket", "_start", "_stop", "_measurement", "_field0", "_field1", "_host", "_tag0"}
        assert used <= self.defined_names(query_api, query, params)

    async def test_discovery_names_are_defined(self, query_api):
        api = FakeQueryApi()
        await InfluxSampleSource(api, bucket="telegraf").discover_hosts(START, STOP)

        query, _, params = api.calls[0]
        used = set(_BOUND_NAME.findall(query))
        assert used == {"_bucket", "_start", "_stop"}
        assert used <= self.defined_names(query_api, query, params)


class TestInfluxSampleSource:
    async def test_fetch_converts_records(self):
        api = FakeQueryApi([table(
            {"result": "_result", "table": 0, "_start": START, "_stop": STOP, "_time": START,
             "_measurement": "disk", "_field": "used", "_value": 42.0, "host": "vm-01", "path": "/"},
            {"_time": START, "_measurement": "disk", "_field": "used", "_value": 1.0, "path": "/"},
        )])
        source = InfluxSampleSource(api, bucket="telegraf", org="acme")

        samples = await source.fetch(DISK_USED, START, STOP, host="vm-01")

        assert len(samples) == 1
        s = samples[0]
        assert (s.host, s.measurement, s.field, s.value, s.time) == ("vm-01", "disk", "used", 42.0, START)
        assert dict(s.tags) == {"path": "/"}
        _, org, params = api.calls[0]
        assert org == "acme"
        assert params["_bucket"] == "telegraf"
        assert (params["_start"], params["_stop"], params["_host"]) == (START, STOP, "vm-01")

    async def test_discover_hosts_sorted_and_unique(self):
        api = FakeQueryApi([table({"_value": "vm-02"}, {"_value": "vm-01"}), table({"_value": "vm-02"})])
        hosts = await InfluxSampleSource(api, bucket="telegraf").discover_hosts(START, STOP)
        assert hosts == ["vm-01", "vm-02"]
        assert api.calls[0][0] == HOST_DISCOVERY_QUERY

    @pytest.mark.parametrize("error", [
        ApiException(status=401, reason="Unauthorized"),
        InfluxDBError(message="bucket not found"),
        FluxQueryException("runtime error @1:1-1:20: undefined identifier x", "897"),
        aiohttp.ClientConnectionError("connection refused"),
        asyncio.TimeoutError(),
    ])
    async def test_upstream_errors_are_wrapped(self, error):
        source = InfluxSampleSource(FakeQueryApi(error=error), bucket="telegraf")
        with pytest.raises(MetricStoreError) as exc_info:
            await source.fetch(DISK_USED, START, STOP)
        assert str(exc_info.value)
        assert exc_info.value.__cause__ is error

    async def test_flux_runtime_error_message_is_kept(self):
        error = FluxQueryException("runtime error: bucket \"telegraf\" not found", "897")
        source = InfluxSampleSource(FakeQueryApi(error=error), bucket="telegraf")
        with pytest.raises(MetricStoreError) as exc_info:
            await source.fetch(DISK_USED, START, STOP)
        assert str(exc_info.value) == 'runtime error: bucket "telegraf" not found'

    async def test_connection_error_message_is_kept(self):
        source = InfluxSampleSource(FakeQueryApi(error=aiohttp.ClientConnectionError("connection refused")), bucket="b")
        with pytest.raises(MetricStoreError, match="connection refused"):
            await source.discover_hosts(START, STOP)
