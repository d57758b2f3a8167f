"""
Monitoring utilities for ingestion tasks and query stages.
"""

from collections import deque
from contextlib import contextmanager
import time
import asyncio
import logging
from typing import Deque, Dict, Iterator

logger = logging.getLogger(__name__)


class ProcessingMonitor:
    """Monitors document processing tasks.

    Start times are held only while a task runs; finished tasks keep just their
    duration, and only the most recent ``max_history`` of those.
    """

    def __init__(self, max_history: int = 1000):
        self.start_times: Dict[str, float] = {}
        self.durations: Deque[float] = deque(maxlen=max_history)
        self.total_documents = 0
        self.active_tasks = 0
        self._lock = asyncio.Lock()

    async def start_task(self, document_id: str):
        """Record task start time."""
        async with self._lock:
            self.start_times[document_id] = time.time()
            self.active_tasks += 1
            logger.info(
                f"Started processing document {document_id}. "
                f"Active tasks: {self.active_tasks}"
            )

    async def end_task(self, document_id: str, status: str = "processed"):
        """Record task end time."""
        async with self._lock:
            started = self.start_times.pop(document_id, None)
            self.active_tasks = max(0, self.active_tasks - 1)
            duration = time.time() - started if started is not None else 0.0
            self.durations.append(duration)
            self.total_documents += 1
            logger.info(
                f"Finished document {document_id} ({status}) in {duration:.2f}s. "
                f"Active tasks: {self.active_tasks}"
            )

    def get_statistics(self) -> Dict:
        """Get processing statistics."""
        if not self.durations:
            return {
                "total_documents": 0,
                "avg_duration": 0.0,
                "max_duration": 0.0,
                "min_duration": 0.0,
                "active_tasks": self.active_tasks
            }

        durations = list(self.durations)
        return {
            "total_documents": self.total_documents,
            "avg_duration": sum(durations) / len(durations),
            "max_duration": max(durations),
            "min_duration": min(durations),
            "active_tasks": self.active_tasks
        }


class StageTimer:
    """Wall-clock timings in milliseconds, one entry per named stage."""

    def __init__(self):
        self.timings: Dict[str, float] = {}
        self._started = time.perf_counter()

    @contextmanager
    def stage(self, name: str) -> Iterator[None]:
        start = time.perf_counter()
        try:
            yield
        finally:
            self.timings[name] = (time.perf_counter() - start) * 1000

    def elapsed_ms(self) -> float:
        return (time.perf_counter() - self._started) * 1000
