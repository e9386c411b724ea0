"""Sequenced polling client for the instance endpoints.

Every poll is an independent, cancellable request tagged with a monotonic
sequence number. Polls may overlap; a response is applied only when its
sequence number is newer than the last applied one, so a slow, older response
can never overwrite fresher data.
"""
import asyncio
import itertools
import logging
from typing import Any, Callable, Optional

import httpx

logger = logging.getLogger(__name__)

SNAPSHOT_INTERVAL = 10.0  # seconds
HISTORY_INTERVAL = 5.0  # seconds


class SequencedPoller:
    def __init__(
        self,
        client: httpx.AsyncClient,
        path: str,
        on_update: Optional[Callable[[Any], None]] = None,
    ):
        self._client = client
        self._path = path
        self._on_update = on_update
        self._issued = itertools.count(1)
        self._inflight: set[asyncio.Task] = set()
        self.applied_seq = 0
        self.discarded = 0
        self.latest: Any = None

    async def poll_once(self) -> bool:
        """Issue one request; returns True if its response was applied."""
        seq = next(self._issued)
        resp = await self._client.get(self._path)
        resp.raise_for_status()
        return self._apply(seq, resp.json())

    def _apply(self, seq: int, payload: Any) -> bool:
        if seq <= self.applied_seq:
            self.discarded += 1
            logger.debug(f"Discarding stale response #{seq} for {self._path} (applied #{self.applied_seq})")
            return False
        self.applied_seq = seq
        self.latest = payload
        if self._on_update is not None:
            self._on_update(payload)
        return True

    async def _guarded_poll(self):
        # 非 JSON 响应体（如代理错误页）与 HTTP 错误一样只记录警告
        try:
            await self.poll_once()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Poll {self._path} failed: {e}")

    def start_poll(self) -> asyncio.Task:
        """Start a poll without waiting for earlier ones to finish."""
        task = asyncio.create_task(self._guarded_poll())
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)
        return task

    async def cancel(self):
        """Cancel every in-flight poll."""
        tasks = list(self._inflight)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    async def poll_forever(self, interval: float, stop: Optional[asyncio.Event] = None):
        """Start a poll every `interval` seconds until `stop` is set."""
        stop = stop or asyncio.Event()
        try:
            while not stop.is_set():
                self.start_poll()
                try:
                    await asyncio.wait_for(stop.wait(), timeout=interval)
                except asyncio.TimeoutError:
                    pass
        finally:
            await self.cancel()
