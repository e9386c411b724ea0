"""
DeskWatch 命令行入口模块。

提供 CLI 命令：serve（运行 API 服务）、login（获取访问令牌）、
watch（轮询主机快照并打印）和 history（打印单台主机最近 1 小时指标，可持续轮询）。
"""
import asyncio
import logging
import sys
from urllib.parse import quote

import click
import httpx

from deskwatch import __version__
from deskwatch.poller import HISTORY_INTERVAL, SNAPSHOT_INTERVAL, SequencedPoller


def _client(url: str, token: str | None) -> httpx.AsyncClient:
    headers = {"Authorization": f"Bearer {token}"} if token else {}
    return httpx.AsyncClient(base_url=url, headers=headers, timeout=30)


def render_instances(rows: list[dict]) -> str:
    """把主机快照渲染为文本表格。"""
    header = f"{'HOST':<24} {'STATUS':<8} {'CPU%':>6} {'RAM MiB':>17} {'DISK GiB':>15} {'IN MiB/s':>9} {'OUT MiB/s':>9}"
    lines = [header]
    for r in rows:
        lines.append(
            f"{r['name']:<24} {r['status']:<8} {r['cpu_usage']:>6.1f} "
            f"{r['ram_used']:>8.0f}/{r['ram_total']:<8.0f} "
            f"{r['storage_used']:>7.1f}/{r['storage_total']:<7.1f} "
            f"{r['network_in']:>9.3f} {r['network_out']:>9.3f}"
        )
    return "\n".join(lines)


def render_history(rows: list[dict]) -> str:
    """把历史指标渲染为文本表格。"""
    lines = [f"{'TIME':<22} {'CPU%':>6} {'RAM MiB':>9} {'DISK GiB':>9} {'IN MiB/s':>9} {'OUT MiB/s':>9}"]
    for r in rows:
        lines.append(
            f"{r['recorded_at']:<22} {r['cpu_usage']:>6.1f} {r['ram_used']:>9.0f} "
            f"{r['storage_used']:>9.1f} {r['network_in']:>9.3f} {r['network_out']:>9.3f}"
        )
    return "\n".join(lines)


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Verbose output")
@click.version_option(version=__version__)
def cli(verbose):
    """DeskWatch - 虚拟桌面主机监控面板。"""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


@cli.command()
@click.option("--host", default="0.0.0.0", help="Bind address")
@click.option("--port", default=8000, type=int, help="Bind port")
@click.option("--reload", is_flag=True, help="Reload on code changes")
def serve(host, port, reload):
    """运行 API 服务。"""
    import uvicorn

    uvicorn.run("deskwatch.main:app", host=host, port=port, reload=reload)


@cli.command()
@click.option("--url", default="http://localhost:8000", envvar="DESKWATCH_URL", help="API base URL")
@click.option("--email", prompt=True)
@click.option("--password", prompt=True, hide_input=True)
def login(url, email, password):
    """登录并打印访问令牌。"""
    resp = httpx.post(f"{url}/api/auth/login", json={"email": email, "password": password}, timeout=30)
    if resp.status_code != 200:
        click.echo(f"Error: {resp.json().get('message', resp.text)}", err=True)
        sys.exit(1)
    click.echo(resp.json()["access_token"])


@cli.command()
@click.option("--url", default="http://localhost:8000", envvar="DESKWATCH_URL", help="API base URL")
@click.option("--token", envvar="DESKWATCH_TOKEN", help="Access token")
@click.option("--interval", default=SNAPSHOT_INTERVAL, type=float, help="Poll interval in seconds")
def watch(url, token, interval):
    """持续轮询主机快照并打印。"""
    logger = logging.getLogger("deskwatch.watch")

    async def _run():
        async with _client(url, token) as client:
            poller = SequencedPoller(
                client,
                "/api/instances",
                on_update=lambda rows: click.echo(render_instances(rows) + "\n"),
            )
            await poller.poll_forever(interval)

    try:
        asyncio.run(_run())
    except KeyboardInterrupt:
        logger.info("Stopped")


@cli.command()
@click.argument("host_id")
@click.option("--url", default="http://localhost:8000", envvar="DESKWATCH_URL", help="API base URL")
@click.option("--token", envvar="DESKWATCH_TOKEN", help="Access token")
@click.option("--follow", "-f", is_flag=True, help="Keep polling and reprint on every update")
@click.option("--interval", default=HISTORY_INTERVAL, type=float, help="Poll interval in seconds (with --follow)")
def history(host_id, url, token, follow, interval):
    """打印单台主机最近 1 小时的指标；--follow 时持续轮询。"""
    path = f"/api/instances/{quote(host_id, safe='')}/metrics"

    async def _run():
        async with _client(url, token) as client:
            if follow:
                poller = SequencedPoller(client, path, on_update=lambda rows: click.echo(render_history(rows) + "\n"))
                await poller.poll_forever(interval)
                return
            resp = await client.get(path)
            if resp.status_code != 200:
                click.echo(f"Error: {resp.json().get('message', resp.text)}", err=True)
                sys.exit(1)
            click.echo(render_history(resp.json()))

    try:
        asyncio.run(_run())
    except KeyboardInterrupt:
        logging.getLogger("deskwatch.history").info("Stopped")


if __name__ == "__main__":
    cli()
