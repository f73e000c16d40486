"""
livecheck — Document File Watcher

Watches one source file on disk and feeds every saved change to the
verification scheduler as a full-text edit. The affected statement is then
located by comparing the previous and current text.

Usage:
    watcher = DocumentWatcher(path=Path("main.bjy"), scheduler=scheduler)
    await watcher.start()
    ...
    await watcher.stop()

Design notes:
- Pure asyncio polling (no watchdog dependency).
- A change is detected by mtime and size, then confirmed by content.
- Read errors (file mid-write, briefly missing) are logged and retried on
  the next tick.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog

if TYPE_CHECKING:
    from livecheck.verification.scheduler import VerificationScheduler

logger = structlog.get_logger("livecheck.file_watcher")

_POLL_INTERVAL = 1.0  # seconds


class DocumentWatcher:
    """
    Background asyncio task that polls a file and re-verifies it on change.

    Parameters
    ----------
    path:
        File to watch. Its resolved `file://` URI identifies the document.
    scheduler:
        VerificationScheduler that owns the document session.
    poll_interval:
        How often to stat the file (seconds). Default 1.0.
    """

    def __init__(
        self,
        path: Path,
        scheduler: VerificationScheduler,
        poll_interval: float = _POLL_INTERVAL,
    ) -> None:
        self._path = path
        self._scheduler = scheduler
        self._interval = poll_interval
        self._uri = path.resolve().as_uri()
        self._task: asyncio.Task[None] | None = None
        self._signature: tuple[float, int] | None = None
        self._text: str | None = None
        self._edits = 0

    @property
    def uri(self) -> str:
        return self._uri

    # ── Public API ────────────────────────────────────────────────

    async def start(self) -> None:
        """Open the document and launch background polling."""
        self._text = self._path.read_text(encoding="utf-8")
        self._signature = self._stat()
        await self._scheduler.open(self._uri, self._text)
        self._task = asyncio.create_task(self._poll_loop(), name="document_watcher")
        logger.info("document_watcher_started", path=str(self._path))

    async def stop(self) -> None:
        """Cancel polling and close the document."""
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        await self._scheduler.close(self._uri)
        logger.info("document_watcher_stopped", path=str(self._path), edits=self._edits)

    @property
    def stats(self) -> dict[str, Any]:
        return {
            "path": str(self._path),
            "edits": self._edits,
            "running": self._task is not None and not self._task.done(),
        }

    # ── Internals ─────────────────────────────────────────────────

    async def _poll_loop(self) -> None:
        while True:
            try:
                await asyncio.sleep(self._interval)
                await self.poll()
            except asyncio.CancelledError:
                logger.debug("document_watcher_poll_cancelled")
                return
            except Exception as exc:
                logger.warning("document_watcher_poll_error", error=str(exc))

    async def poll(self) -> bool:
        """Check the file once. Returns True if an edit was submitted."""
        signature = self._stat()
        if signature is None or signature == self._signature:
            return False

        try:
            text = self._path.read_text(encoding="utf-8")
        except OSError as exc:
            logger.warning("document_watcher_read_error", path=str(self._path), error=str(exc))
            return False

        self._signature = signature
        if text == self._text:
            return False

        self._text = text
        self._edits += 1
        await self._scheduler.edit(self._uri, text=text)
        return True

    def _stat(self) -> tuple[float, int] | None:
        try:
            st = self._path.stat()
        except OSError:
            return None
        return (st.st_mtime, st.st_size)
