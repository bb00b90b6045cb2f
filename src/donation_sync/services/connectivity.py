"""Connectivity monitoring with debounced, edge-triggered events.

The monitor polls a reachability probe and publishes a ``ConnectivityEvent``
only when the debounced state flips. Without a probe the device is
considered offline.
"""

from __future__ import annotations

import asyncio
import contextlib
import inspect
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

import httpx

from donation_sync.core.settings import Settings, settings
from donation_sync.db.time import utcnow

logger = logging.getLogger(__name__)

HTTP_REACHABLE_MAX = 399


@dataclass(frozen=True)
class ConnectivityEvent:
    """Reachability flip published to listeners."""

    online: bool
    changed_at: datetime


ConnectivityListener = Callable[[ConnectivityEvent], Awaitable[None] | None]


class ConnectivityProbe(Protocol):
    async def probe(self) -> bool: ...

    async def close(self) -> None: ...


class HttpHealthProbe:
    """Reachable when a GET on the health URL answers below 400."""

    def __init__(
        self,
        url: str,
        *,
        timeout_seconds: float = 3.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.url = url
        self._timeout = httpx.Timeout(timeout_seconds)
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def probe(self) -> bool:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout, transport=self._transport)
        try:
            response = await self._client.get(self.url)
        except httpx.HTTPError as exc:
            logger.debug("Health probe %s failed: %s", self.url, exc)
            return False
        return response.status_code <= HTTP_REACHABLE_MAX

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


class TcpProbe:
    """Reachable when a TCP connection to host:port opens within the timeout."""

    def __init__(self, host: str, port: int, *, timeout_seconds: float = 3.0) -> None:
        self.host = host
        self.port = port
        self.timeout_seconds = timeout_seconds

    async def probe(self) -> bool:
        try:
            _, writer = await asyncio.wait_for(
                asyncio.open_connection(self.host, self.port),
                timeout=self.timeout_seconds,
            )
        except (OSError, asyncio.TimeoutError) as exc:
            logger.debug("TCP probe %s:%s failed: %s", self.host, self.port, exc)
            return False
        writer.close()
        with contextlib.suppress(OSError):
            await writer.wait_closed()
        return True

    async def close(self) -> None:
        return None


def build_probe(source: Settings | None = None) -> ConnectivityProbe | None:
    """Create the probe selected by ``CONNECTIVITY_PROBE``; None for ``none``."""

    source = source or settings
    mode = source.connectivity_probe.strip().lower()
    timeout = float(source.connectivity_probe_timeout_seconds)

    if mode == "http":
        return HttpHealthProbe(source.effective_probe_url, timeout_seconds=timeout)
    if mode == "tcp":
        if not source.connectivity_probe_host:
            logger.warning("CONNECTIVITY_PROBE=tcp without CONNECTIVITY_PROBE_HOST; staying offline")
            return None
        return TcpProbe(
            source.connectivity_probe_host,
            source.connectivity_probe_port,
            timeout_seconds=timeout,
        )
    if mode != "none":
        logger.warning("Unknown CONNECTIVITY_PROBE %r; staying offline", source.connectivity_probe)
    return None


class ConnectivityMonitor:
    """Polls a probe and publishes debounced reachability flips."""

    def __init__(
        self,
        probe: ConnectivityProbe | None,
        *,
        poll_interval_seconds: float = 5.0,
        stable_samples: int = 2,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        """Initialize the monitor.

        Args:
            probe: Reachability probe. None means the device is always offline.
            poll_interval_seconds: Delay between samples of the background loop.
            stable_samples: Consecutive identical readings needed to commit a flip.
            clock: Source of event timestamps.
        """
        self.probe = probe
        self.poll_interval_seconds = max(0.05, float(poll_interval_seconds))
        self.stable_samples = max(1, int(stable_samples))
        self._clock = clock
        self._online = False
        self._candidate: bool | None = None
        self._candidate_count = 0
        self._listeners: list[ConnectivityListener] = []
        self._task: asyncio.Task[None] | None = None
        self._stopping = asyncio.Event()

    @property
    def is_online(self) -> bool:
        return self._online

    def subscribe(self, listener: ConnectivityListener) -> Callable[[], None]:
        """Register ``listener`` for flips; returns a callable that unsubscribes it."""
        self._listeners.append(listener)
        return lambda: self.unsubscribe(listener)

    def unsubscribe(self, listener: ConnectivityListener) -> None:
        with contextlib.suppress(ValueError):
            self._listeners.remove(listener)

    async def _sample(self) -> bool:
        if self.probe is None:
            return False
        try:
            return bool(await self.probe.probe())
        except Exception as exc:
            logger.warning("Connectivity probe raised %s: %s", type(exc).__name__, exc)
            return False

    async def check_now(self) -> ConnectivityEvent | None:
        """Take one sample and publish an event if the debounced state flips."""
        reading = await self._sample()

        if reading == self._online:
            self._candidate = None
            self._candidate_count = 0
            return None

        if reading == self._candidate:
            self._candidate_count += 1
        else:
            self._candidate = reading
            self._candidate_count = 1

        if self._candidate_count < self.stable_samples:
            return None

        self._online = reading
        self._candidate = None
        self._candidate_count = 0
        event = ConnectivityEvent(online=reading, changed_at=self._clock())
        logger.info("Connectivity changed: %s", "online" if reading else "offline")
        await self._publish(event)
        return event

    async def _publish(self, event: ConnectivityEvent) -> None:
        for listener in list(self._listeners):
            try:
                result = listener(event)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Connectivity listener %r failed", listener)

    async def start(self) -> None:
        """Start the background polling loop."""

        if self._task is None or self._task.done():
            self._stopping.clear()
            self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        """Stop the background polling loop and release the probe."""

        if self._task is not None:
            self._stopping.set()
            await self._task
            self._task = None
        if self.probe is not None:
            await self.probe.close()

    async def _run(self) -> None:
        while not self._stopping.is_set():
            await self.check_now()
            with contextlib.suppress(asyncio.TimeoutError):
                await asyncio.wait_for(self._stopping.wait(), timeout=self.poll_interval_seconds)
