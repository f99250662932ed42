from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from loguru import logger

Subscriber = Callable[[str, dict[str, Any]], Awaitable[None]]


@dataclass
class Event:
    name: str
    payload: dict[str, Any]


class Notifier:
    def __init__(self) -> None:
        self.queue: asyncio.Queue[Event] = asyncio.Queue()
        self._task: Optional[asyncio.Task] = None
        self._subscribers: list[Subscriber] = []

    def subscribe(self, subscriber: Subscriber) -> None:
        self._subscribers.append(subscriber)

    async def start(self) -> None:
        if self._task and not self._task.done():
            return
        self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        if not self._task:
            return
        await self.queue.join()
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    async def _run(self) -> None:
        while True:
            event = await self.queue.get()
            try:
                await self.deliver(event)
            finally:
                self.queue.task_done()

    async def deliver(self, event: Event) -> None:
        for subscriber in list(self._subscribers):
            try:
                await subscriber(event.name, event.payload)
            except Exception as exc:
                logger.exception("Failed to deliver {}: {}", event.name, exc)

    async def publish(self, name: str, payload: dict[str, Any]) -> None:
        await self.queue.put(Event(name=name, payload=payload))
