"""
livecheck — Document Session

Everything the engine knows about one open document: its text, the latest
parse, the status store, the task registry, and the snapshot files the
external tools read.
"""

from __future__ import annotations

import asyncio
import contextlib
import uuid
from pathlib import Path

import structlog

from livecheck.primitives.common import short_digest
from livecheck.verification.registry import TaskRegistry
from livecheck.verification.store import VerificationStateStore
from livecheck.verification.types import Statement

logger = structlog.get_logger().bind(system="livecheck.session")


class DocumentSession:
    """
    State owned by one open document.

    The store and registry are only touched from the event loop, between
    awaits. `lock` serialises edit handling so edits are applied in
    arrival order even though each waits on the parser.
    """

    def __init__(
        self,
        uri: str,
        snapshot_dir: Path,
        snapshot_suffix: str = ".bjy",
        reject_stale: bool = True,
    ) -> None:
        self.uri = uri
        self.text: str | None = None
        self.version = 0
        self.statements: list[Statement] = []
        self.parse_failed = False
        self.source_path: Path | None = None
        self.store = VerificationStateStore(uri, reject_stale=reject_stale)
        self.registry = TaskRegistry(uri)
        self.lock = asyncio.Lock()
        self.closed = False

        self._snapshot_dir = snapshot_dir
        self._snapshot_suffix = snapshot_suffix
        # Unique per session: other sessions may share the directory and the uri
        self._snapshot_stem = f"{short_digest(uri)}-{uuid.uuid4().hex[:8]}"
        self._writes = 0
        self._snapshots: set[Path] = set()

    # ─── Snapshot Files ──────────────────────────────────────────────────────

    def write_snapshot(self, text: str, version: int) -> Path:
        """
        Write `text` to a new file; tasks on earlier writes keep theirs.

        Every write gets its own file, even when the caller repeats a version.
        """
        self._snapshot_dir.mkdir(parents=True, exist_ok=True)
        self._writes += 1
        name = f"{self._snapshot_stem}.{self._writes}.v{version}{self._snapshot_suffix}"
        path = self._snapshot_dir / name
        path.write_text(text, encoding="utf-8")
        self._snapshots.add(path)
        return path

    def prune_snapshots(self) -> int:
        """Delete snapshot files that are neither current nor read by a live task."""
        keep = {h.source_path for h in self.registry.handles()}
        if self.source_path is not None:
            keep.add(self.source_path)
        stale = self._snapshots - keep
        for path in stale:
            with contextlib.suppress(OSError):
                path.unlink(missing_ok=True)
        self._snapshots -= stale
        return len(stale)

    def discard_snapshots(self) -> None:
        for path in self._snapshots:
            with contextlib.suppress(OSError):
                path.unlink(missing_ok=True)
        self._snapshots.clear()

    @property
    def snapshot_files(self) -> set[Path]:
        return set(self._snapshots)
