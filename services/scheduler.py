from __future__ import annotations

import asyncio
import time
from typing import Awaitable, Callable

from loguru import logger

from engine.errors import ApiError, TransportError

MAX_BACKOFF = 300.0
RATE_LIMIT_BACKOFF = 10.0


class TickScheduler:
    """Runs ``handler`` repeatedly, the next tick scheduled only after the
    previous one completed. ``stop()`` sets the cancellation event; an
    in-flight handler is allowed to finish.
    """

    def __init__(
        self,
        handler: Callable[[], Awaitable[None]],
        interval: float = 10.0,
        min_interval: float = 5.0,
        max_interval: float = 60.0,
        on_error: Callable[[Exception], Awaitable[None]] | None = None,
    ) -> None:
        self.handler = handler
        self.interval = interval
        self.min_interval = min_interval
        self.max_interval = max_interval
        self.on_error = on_error
        self.consecutive_errors = 0
        self.backoff_until = 0.0
        self.last_error: Exception | None = None
        self._stop = asyncio.Event()
        self._task: asyncio.Task | None = None
        self._in_flight = False

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        self._stop.set()
        if self._task:
            await self._task
            self._task = None

    async def _run(self) -> None:
        while not self._stop.is_set():
            await self.run_once()
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                continue

    async def run_once(self) -> bool:
        if self._in_flight:
            return False
        remaining = self.backoff_until - time.monotonic()
        if remaining > 0:
            logger.info("Backing off, {:.0f}s remaining", remaining)
            return False
        self._in_flight = True
        try:
            await self.handler()
        except Exception as exc:
            self._on_failure(exc)
            if self.on_error:
                try:
                    await self.on_error(exc)
                except Exception as cb_exc:
                    logger.exception("Tick error callback failed: {}", cb_exc)
            return False
        finally:
            self._in_flight = False
        self.consecutive_errors = 0
        self.interval = max(self.min_interval, self.interval - 1)
        return True

    def _on_failure(self, exc: Exception) -> None:
        self.consecutive_errors += 1
        self.last_error = exc
        if isinstance(exc, ApiError) and exc.is_rate_limit:
            backoff = min(RATE_LIMIT_BACKOFF * 2 ** (self.consecutive_errors - 1), MAX_BACKOFF)
            self.backoff_until = time.monotonic() + backoff
            self.interval = min(self.max_interval, self.interval + 5)
            logger.warning("Rate limited, backing off {:.0f}s (interval {:.0f}s)", backoff, self.interval)
        elif isinstance(exc, TransportError) and exc.kind == "TIMEOUT":
            self.interval = min(self.max_interval, self.interval + 3)
            logger.warning("Market data timeout, interval now {:.0f}s", self.interval)
        else:
            logger.error("Tick failed: {}", exc)
