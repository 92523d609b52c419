# worker/scheduler.py
"""
Tick loop: every poll interval run each registered task once, in order,
each bounded by its own deadline. Owns the stop event that shutdown sets.
"""
from __future__ import annotations

import asyncio
import logging
import signal
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from services.metrics import METRICS, WorkerMetrics

logger = logging.getLogger(__name__)


@dataclass
class ScheduledTask:
    name: str
    run: Callable[[], Awaitable[object]]
    timeout: float | None = None  # falls back to the scheduler's task timeout


class Scheduler:
    def __init__(
        self,
        tasks: list[ScheduledTask],
        poll_interval: float,
        task_timeout: float,
        metrics: WorkerMetrics = METRICS,
    ):
        self.tasks = list(tasks)
        self.poll_interval = poll_interval
        self.task_timeout = task_timeout
        self.metrics = metrics
        self.stop_event = asyncio.Event()

    @property
    def stopping(self) -> bool:
        return self.stop_event.is_set()

    def stop(self) -> None:
        if not self.stop_event.is_set():
            logger.info("Scheduler stop requested")
            self.stop_event.set()

    def install_signal_handlers(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        loop = loop or asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, self.stop)

    async def run_task(self, task: ScheduledTask) -> bool:
        """Run one task under its deadline. Failures are logged and counted, never raised."""
        timeout = task.timeout if task.timeout is not None else self.task_timeout
        try:
            await asyncio.wait_for(task.run(), timeout=timeout)
            return True
        except asyncio.TimeoutError:
            logger.error("Task %s exceeded %.1fs deadline", task.name, timeout)
        except Exception:
            logger.exception("Task %s failed", task.name)
        self.metrics.record_task_failure(task.name)
        return False

    async def tick(self) -> None:
        for task in self.tasks:
            if self.stopping:
                break
            await self.run_task(task)

    async def run(self) -> None:
        logger.info(
            "Scheduler starting (poll=%.1fs, tasks=%s)",
            self.poll_interval,
            ", ".join(t.name for t in self.tasks),
        )
        while not self.stopping:
            await self.tick()
            try:
                await asyncio.wait_for(self.stop_event.wait(), timeout=self.poll_interval)
            except asyncio.TimeoutError:
                pass
        logger.info("Scheduler stopped")
