"""Periodic self-ping that keeps a hosted instance from idling out."""
from __future__ import annotations

import asyncio
import logging
from contextlib import suppress
from typing import Callable, Optional

import httpx

logger = logging.getLogger("showcase.keepalive")


class KeepAliveJob:
    """Issue a ``GET`` against ``url`` every ``interval`` seconds.

    The first request is sent one interval after :meth:`start`. Failures are
    logged and the loop carries on.
    """

    def __init__(
        self,
        url: str,
        *,
        interval: float = 14 * 60.0,
        timeout: float = 10.0,
        client_factory: Optional[Callable[[], httpx.AsyncClient]] = None,
    ) -> None:
        cleaned = (url or "").strip()
        if not cleaned:
            raise ValueError("Keep-alive URL must not be empty")
        if interval <= 0:
            raise ValueError("Keep-alive interval must be greater than zero")
        self._url = cleaned
        self._interval = interval
        self._timeout = timeout
        self._client_factory = client_factory or (lambda: httpx.AsyncClient(timeout=self._timeout))
        self._task: Optional[asyncio.Task[None]] = None

    @property
    def url(self) -> str:
        return self._url

    @property
    def interval(self) -> float:
        return self._interval

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Schedule the job on the running event loop."""

        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())
        logger.info("Keep-alive job started for %s (every %.0fs)", self._url, self._interval)

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        with suppress(asyncio.CancelledError):
            await task
        logger.info("Keep-alive job stopped")

    async def ping(self) -> bool:
        """Send a single request and report whether it succeeded."""

        try:
            async with self._client_factory() as client:
                response = await client.get(self._url)
        except httpx.HTTPError as exc:
            logger.warning("Keep-alive request to %s failed: %s", self._url, exc)
            return False

        if response.status_code != 200:
            logger.warning(
                "Keep-alive request to %s returned status %s", self._url, response.status_code
            )
            return False

        logger.info("Keep-alive request to %s succeeded", self._url)
        return True

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            await self.ping()


__all__ = ["KeepAliveJob"]
