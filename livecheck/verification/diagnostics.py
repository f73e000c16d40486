"""
livecheck — Diagnostic Projector

Derives the externally visible diagnostics from a session's status store,
and fans published snapshots out to subscribers.

Pending and running statements produce no diagnostic, so the editor does
not flicker on every keystroke.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from typing import TYPE_CHECKING

import structlog

from livecheck.verification.types import (
    Diagnostic,
    DiagnosticRange,
    DiagnosticSeverity,
    DiagnosticSnapshot,
    Statement,
    VerificationStatus,
)

if TYPE_CHECKING:
    from livecheck.verification.store import VerificationStateStore

logger = structlog.get_logger().bind(system="livecheck.diagnostics")

_SEVERITY: dict[VerificationStatus, DiagnosticSeverity] = {
    VerificationStatus.VALID: DiagnosticSeverity.INFORMATION,
    VerificationStatus.INVALID: DiagnosticSeverity.ERROR,
    VerificationStatus.ERROR: DiagnosticSeverity.ERROR,
    VerificationStatus.TIMEOUT: DiagnosticSeverity.WARNING,
    VerificationStatus.PRUNED: DiagnosticSeverity.WARNING,
}


def project_diagnostics(
    store: VerificationStateStore,
    statements: Sequence[Statement],
) -> list[Diagnostic]:
    diagnostics: list[Diagnostic] = []
    for stmt in statements:
        record = store.get(stmt.index)
        if record is None:
            continue
        severity = _SEVERITY.get(record.status)
        if severity is None:
            continue
        diagnostics.append(
            Diagnostic(
                range=DiagnosticRange(start=stmt.start, end=stmt.end),
                severity=severity,
                message=f"Statement {stmt.index}: {record.status}",
                statement_index=stmt.index,
                status=record.status,
            )
        )
    return diagnostics


class DiagnosticHub:
    """
    In-process fanout of diagnostic snapshots.

    Keeps the latest snapshot per open document and pushes every published
    snapshot into each subscriber queue. A full queue drops its oldest
    entry so a slow consumer never blocks publishing.
    """

    def __init__(self, queue_size: int = 500) -> None:
        self._queue_size = queue_size
        self._latest: dict[str, DiagnosticSnapshot] = {}
        self._subscribers: list[asyncio.Queue[DiagnosticSnapshot]] = []
        self._published = 0

    def subscribe(self) -> asyncio.Queue[DiagnosticSnapshot]:
        q: asyncio.Queue[DiagnosticSnapshot] = asyncio.Queue(maxsize=self._queue_size)
        self._subscribers.append(q)
        return q

    def unsubscribe(self, q: asyncio.Queue[DiagnosticSnapshot]) -> None:
        try:
            self._subscribers.remove(q)
        except ValueError:
            pass

    def latest(self, uri: str) -> DiagnosticSnapshot | None:
        return self._latest.get(uri)

    def forget(self, uri: str) -> None:
        """Drop the retained snapshot for a closed document."""
        self._latest.pop(uri, None)

    @property
    def published(self) -> int:
        return self._published

    def publish(self, snapshot: DiagnosticSnapshot) -> None:
        self._latest[snapshot.uri] = snapshot
        self._published += 1
        for q in list(self._subscribers):
            try:
                q.put_nowait(snapshot)
            except asyncio.QueueFull:
                q.get_nowait()
                q.put_nowait(snapshot)
                logger.debug("subscriber_queue_overflow", uri=snapshot.uri)
