"""
livecheck — Task Registry

Per-document map from statement index to the in-flight check for it.
At most one live handle exists per index; cancellation is best-effort.
"""

from __future__ import annotations

import asyncio
import contextlib
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from pathlib import Path

logger = structlog.get_logger().bind(system="livecheck.registry")


class TaskHandle:
    """
    One in-flight verification of one statement.

    Wraps the asyncio task running the two-phase check and, while a
    verifier phase is running, the process serving it.
    """

    def __init__(self, index: int, generation: int, source_path: Path) -> None:
        self.index = index
        self.generation = generation
        self.source_path = source_path
        self.task: asyncio.Task[None] | None = None
        self._process: asyncio.subprocess.Process | None = None
        self.cancelled = False

    def attach(self, process: asyncio.subprocess.Process) -> None:
        self._process = process
        if self.cancelled:
            # Cancelled between launch and attach
            self._terminate()

    def detach(self) -> None:
        self._process = None

    @property
    def process(self) -> asyncio.subprocess.Process | None:
        return self._process

    @property
    def done(self) -> bool:
        return self.task is not None and self.task.done()

    def cancel(self) -> None:
        """Signal the verifier process and cancel the task. Never raises."""
        self.cancelled = True
        self._terminate()
        if self.task is not None and not self.task.done():
            self.task.cancel()

    def _terminate(self) -> None:
        proc = self._process
        if proc is None or proc.returncode is not None:
            return
        with contextlib.suppress(ProcessLookupError, OSError):
            proc.terminate()

    def __repr__(self) -> str:
        return f"TaskHandle(index={self.index}, generation={self.generation})"


class TaskRegistry:
    """In-flight checks for one document session, keyed by statement index."""

    def __init__(self, uri: str) -> None:
        self._uri = uri
        self._handles: dict[int, TaskHandle] = {}

    def register(self, handle: TaskHandle) -> None:
        existing = self._handles.get(handle.index)
        if existing is not None and existing is not handle:
            logger.warning(
                "replacing_live_task",
                uri=self._uri,
                index=handle.index,
                previous_generation=existing.generation,
            )
            existing.cancel()
        self._handles[handle.index] = handle

    def release(self, handle: TaskHandle) -> bool:
        """Remove `handle` if it is still the registered one for its index."""
        if self._handles.get(handle.index) is handle:
            del self._handles[handle.index]
            return True
        return False

    def get(self, index: int) -> TaskHandle | None:
        return self._handles.get(index)

    def cancel_from(self, start: int) -> list[TaskHandle]:
        """Cancel and remove every handle with index >= start."""
        victims = [h for i, h in self._handles.items() if i >= start]
        for handle in victims:
            del self._handles[handle.index]
            handle.cancel()
        if victims:
            logger.debug(
                "tasks_cancelled",
                uri=self._uri,
                from_index=start,
                count=len(victims),
            )
        return victims

    def cancel_all(self) -> list[TaskHandle]:
        return self.cancel_from(0)

    def indices(self) -> list[int]:
        return sorted(self._handles)

    def handles(self) -> list[TaskHandle]:
        return [self._handles[i] for i in sorted(self._handles)]

    def __len__(self) -> int:
        return len(self._handles)

    def __contains__(self, index: object) -> bool:
        return index in self._handles
