"""主机接口测试：鉴权、快照、历史指标、错误响应体。"""
import logging
from datetime import datetime, timedelta, timezone

from httpx import AsyncClient
from influxdb_client.client.flux_csv_parser import FluxQueryException

from deskwatch.core.influx import get_sample_source
from deskwatch.main import app
from deskwatch.services.metric_source import InfluxSampleSource

from factories import MIB, FakeQueryApi, sample


def recent(**kwargs):
    return datetime.now(timezone.utc) - timedelta(**kwargs)


class TestAuthGuard:
    async def test_snapshot_requires_token(self, client: AsyncClient):
        resp = await client.get("/api/instances")
        assert resp.status_code == 401
        assert resp.json() == {"message": "Not authenticated"}

    async def test_history_requires_token(self, client: AsyncClient):
        resp = await client.get("/api/instances/vm-01/metrics")
        assert resp.status_code == 401

    async def test_garbage_token(self, client: AsyncClient):
        resp = await client.get("/api/instances", headers={"Authorization": "Bearer not-a-jwt"})
        assert resp.status_code == 401
        assert resp.json()["message"] == "Invalid token"

    async def test_expired_session(self, client: AsyncClient, expired_headers):
        resp = await client.get("/api/instances", headers=expired_headers)
        assert resp.status_code == 401
        assert resp.json()["message"] == "Session expired"


class TestListInstances:
    async def test_empty_store(self, client: AsyncClient, auth_headers):
        resp = await client.get("/api/instances", headers=auth_headers)
        assert resp.status_code == 200
        assert resp.json() == []

    async def test_snapshot_row(self, client: AsyncClient, auth_headers, sample_source):
        sample_source.samples += [
            sample("system_meta", "os_type", "linux", recent(days=3)),
            sample("mem", "total", 8192 * MIB, recent(minutes=1)),
            sample("mem", "used", 4096 * MIB, recent(minutes=1)),
            sample("cpu", "usage_idle", 75.0, recent(seconds=30), cpu="cpu-total"),
        ]
        resp = await client.get("/api/instances", headers=auth_headers)
        assert resp.status_code == 200
        (row,) = resp.json()
        assert row["id"] == row["name"] == "vm-01"
        assert row["status"] == "online"
        assert row["cpu_usage"] == 25.0
        assert row["ram_used"] == 4096.0
        assert row["ram_total"] == 8192.0
        assert row["os_type"] == "linux"
        assert row["created_at"].endswith("Z")
        assert set(row) == {
            "id", "name", "status", "os_type", "ip_address", "cpu_cores", "cpu_usage",
            "ram_total", "ram_used", "storage_total", "storage_used",
            "network_in", "network_out", "created_at",
        }

    async def test_store_failure(self, client: AsyncClient, auth_headers, sample_source):
        sample_source.error = "failed to connect to influxdb"
        resp = await client.get("/api/instances", headers=auth_headers)
        assert resp.status_code == 500
        assert resp.json() == {"message": "Error querying InfluxDB", "error": "failed to connect to influxdb"}


class TestInstanceMetrics:
    async def test_history_rows(self, client: AsyncClient, auth_headers, sample_source):
        sample_source.samples += [
            sample("cpu", "usage_idle", 60.0, recent(minutes=5), cpu="cpu-total"),
            sample("cpu", "usage_idle", 90.0, recent(minutes=5), host="vm-02", cpu="cpu-total"),
        ]
        resp = await client.get("/api/instances/vm-01/metrics", headers=auth_headers)
        assert resp.status_code == 200
        (row,) = resp.json()
        assert row["cpu_usage"] == 40.0
        assert row["recorded_at"].endswith("Z")
        assert set(row) == {"recorded_at", "cpu_usage", "ram_used", "storage_used", "network_in", "network_out"}
        _, _, _, host = sample_source.calls[-1]
        assert host == "vm-01"

    async def test_unknown_host_is_empty(self, client: AsyncClient, auth_headers):
        resp = await client.get("/api/instances/nowhere/metrics", headers=auth_headers)
        assert resp.status_code == 200
        assert resp.json() == []

    async def test_blank_host_id(self, client: AsyncClient, auth_headers):
        resp = await client.get("/api/instances/%20/metrics", headers=auth_headers)
        assert resp.status_code == 400
        assert resp.json() == {"message": "Host ID is required"}

    async def test_store_failure(self, client: AsyncClient, auth_headers, sample_source):
        sample_source.error = "unauthorized access"
        resp = await client.get("/api/instances/vm-01/metrics", headers=auth_headers)
        assert resp.status_code == 500
        assert resp.json() == {"message": "Error querying InfluxDB for metrics", "error": "unauthorized access"}


class TestInfluxFailures:
    """经真实 InfluxSampleSource 的失败路径：Flux 运行时错误也按 {message, error} 返回，并只记录一次。"""

    async def test_flux_runtime_error(self, client: AsyncClient, auth_headers, caplog):
        error = FluxQueryException("runtime error @1:1-1:20: undefined identifier x", "897")
        source = InfluxSampleSource(FakeQueryApi(error=error), bucket="telegraf")
        app.dependency_overrides[get_sample_source] = lambda: source

        with caplog.at_level(logging.ERROR):
            resp = await client.get("/api/instances/vm-01/metrics", headers=auth_headers)

        assert resp.status_code == 500
        assert resp.json() == {
            "message": "Error querying InfluxDB for metrics",
            "error": "runtime error @1:1-1:20: undefined identifier x",
        }
        errors = [r for r in caplog.records if r.name.startswith("deskwatch") and r.levelno >= logging.ERROR]
        assert len(errors) == 1
