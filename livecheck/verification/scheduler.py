"""
livecheck — Verification Scheduler

Orchestrates incremental verification of open documents.

On every edit:
  1. Reparse the full text via the statement parser
  2. Locate the earliest statement the edit could have invalidated (m)
  3. Cancel in-flight checks for statements >= m
  4. Reset their status records to pending and publish
  5. Launch one two-phase check per statement >= m, publishing as each
     one starts and again as each one finishes

Statements before m keep their results. Every publish is recomputed over
the whole status store, so a partial recheck never hides earlier
diagnostics.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from pathlib import Path
from typing import Any, Protocol

import structlog

from livecheck.config import SchedulerConfig
from livecheck.verification.diagnostics import DiagnosticHub, project_diagnostics
from livecheck.verification.locator import locate_edits
from livecheck.verification.positions import apply_edits
from livecheck.verification.registry import TaskHandle
from livecheck.verification.session import DocumentSession
from livecheck.verification.types import (
    DiagnosticSnapshot,
    EditDescription,
    FullEdit,
    ParseOutcome,
    VerificationStatus,
)

logger = structlog.get_logger().bind(system="livecheck.scheduler")


class StatementParser(Protocol):
    async def parse(self, source_path: Path) -> ParseOutcome: ...


class StatementVerifier(Protocol):
    async def verify(
        self,
        source_path: Path,
        index: int,
        handle: TaskHandle | None = None,
    ) -> VerificationStatus: ...


class DocumentNotOpenError(LookupError):
    """An edit or query referenced a document that is not open."""


class VerificationScheduler:
    """
    Per-document incremental verification.

    All store and registry mutation happens on the event loop between
    awaits; concurrency comes only from the verifier processes running
    side by side.
    """

    def __init__(
        self,
        parser: StatementParser,
        verifier: StatementVerifier,
        config: SchedulerConfig | None = None,
        hub: DiagnosticHub | None = None,
    ) -> None:
        self._config = config or SchedulerConfig()
        self._parser = parser
        self._verifier = verifier
        self._hub = hub or DiagnosticHub(queue_size=self._config.subscriber_queue_size)
        self._sessions: dict[str, DocumentSession] = {}
        self._log = logger

        self._total_edits = 0
        self._total_launched = 0
        self._total_cancelled = 0
        self._total_stale_rejected = 0

    @property
    def hub(self) -> DiagnosticHub:
        return self._hub

    # ─── Public API ──────────────────────────────────────────────────────────

    async def open(self, uri: str, text: str, version: int | None = None) -> DiagnosticSnapshot:
        """Start a session for `uri` and verify every statement."""
        if uri in self._sessions:
            self._log.warning("document_reopened", uri=uri)
            await self.close(uri)

        session = DocumentSession(
            uri,
            snapshot_dir=self._config.snapshot_path,
            snapshot_suffix=self._config.snapshot_suffix,
            reject_stale=self._config.reject_stale_results,
        )
        self._sessions[uri] = session
        self._log.info("document_opened", uri=uri, length=len(text))

        await self._reverify(session, text, edits=None, version=version)
        return self.snapshot(uri)

    async def edit(
        self,
        uri: str,
        edits: Sequence[EditDescription] | None = None,
        text: str | None = None,
        version: int | None = None,
    ) -> DiagnosticSnapshot:
        """
        Apply one editor change event.

        `text` is the full post-edit document if the caller has it; otherwise
        `edits` are applied to the session's current text. Without `edits`
        the affected region is derived by comparing old and new text.
        Returns once re-verification has been scheduled, not once it has
        finished.
        """
        session = self._sessions.get(uri)
        if session is None:
            raise DocumentNotOpenError(uri)

        if text is None and not edits:
            return self.snapshot(uri)

        self._total_edits += 1
        await self._reverify(session, text, edits=edits, version=version)
        return self.snapshot(uri)

    async def close(self, uri: str) -> None:
        """Cancel everything for `uri`, clear its state and publish an empty snapshot."""
        session = self._sessions.pop(uri, None)
        if session is None:
            return

        session.closed = True
        cancelled = session.registry.cancel_all()
        self._total_cancelled += len(cancelled)
        session.store.clear()
        self._hub.publish(DiagnosticSnapshot(uri=uri, version=session.version))
        self._hub.forget(uri)

        tasks = [h.task for h in cancelled if h.task is not None]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        session.discard_snapshots()

        self._log.info("document_closed", uri=uri, cancelled=len(cancelled))

    async def shutdown(self) -> None:
        for uri in list(self._sessions):
            await self.close(uri)

    async def wait_idle(self, uri: str) -> None:
        """Wait until no verification is in flight for `uri`."""
        while True:
            session = self._sessions.get(uri)
            if session is None:
                return
            async with session.lock:
                pending = [
                    h.task for h in session.registry.handles()
                    if h.task is not None and not h.task.done()
                ]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    def snapshot(self, uri: str) -> DiagnosticSnapshot:
        session = self._sessions.get(uri)
        if session is None:
            return DiagnosticSnapshot(uri=uri)
        return DiagnosticSnapshot(
            uri=uri,
            version=session.version,
            diagnostics=project_diagnostics(session.store, session.statements),
        )

    def session(self, uri: str) -> DocumentSession:
        session = self._sessions.get(uri)
        if session is None:
            raise DocumentNotOpenError(uri)
        return session

    def is_open(self, uri: str) -> bool:
        return uri in self._sessions

    def get_stats(self) -> dict[str, Any]:
        return {
            "open_documents": len(self._sessions),
            "in_flight": sum(len(s.registry) for s in self._sessions.values()),
            "total_edits": self._total_edits,
            "total_launched": self._total_launched,
            "total_cancelled": self._total_cancelled,
            "total_stale_rejected": self._total_stale_rejected,
        }

    # ─── Re-verification ─────────────────────────────────────────────────────

    async def _reverify(
        self,
        session: DocumentSession,
        text: str | None,
        edits: Sequence[EditDescription] | None,
        version: int | None,
    ) -> None:
        async with session.lock:
            if session.closed:
                return

            previous = session.text
            if text is None:
                # Edits are relative to the text as of the previous edit
                text = apply_edits(previous or "", edits or ())
            if previous is not None and previous == text:
                self._log.debug("edit_without_change", uri=session.uri)
                return

            new_version = version if version is not None else session.version + 1
            path = session.write_snapshot(text, new_version)
            outcome = await self._parser.parse(path)

            # Closed while we were parsing
            if session.closed:
                return

            session.text = text
            session.version = new_version
            session.source_path = path
            session.statements = outcome.statements
            session.parse_failed = outcome.failed

            if not outcome.statements:
                self._clear(session, reason=outcome.error or "no_statements")
                return

            full = previous is None or (
                edits is not None and any(isinstance(e, FullEdit) for e in edits)
            )
            start = 0 if full else locate_edits(edits, outcome.statements, previous, text)
            if start is None:
                start = 0
            # Statements never verified (e.g. after a failed parse) are always due
            start = next((i for i in range(start) if i not in session.store), start)

            self._log.info(
                "reverify_scheduled",
                uri=session.uri,
                version=new_version,
                statements=len(outcome.statements),
                from_index=start,
            )

            cancelled = session.registry.cancel_from(start)
            self._total_cancelled += len(cancelled)
            generation = session.store.reset_from(start, len(outcome.statements))
            self._publish(session)

            for stmt in outcome.statements[start:]:
                self._launch(session, stmt.index, generation, path)

            session.prune_snapshots()

    def _clear(self, session: DocumentSession, reason: str) -> None:
        cancelled = session.registry.cancel_all()
        self._total_cancelled += len(cancelled)
        session.store.clear()
        self._publish(session)
        session.prune_snapshots()
        self._log.info(
            "document_has_no_statements",
            uri=session.uri,
            parse_failed=session.parse_failed,
            reason=reason,
        )

    def _launch(
        self,
        session: DocumentSession,
        index: int,
        generation: int,
        source_path: Path,
    ) -> None:
        handle = TaskHandle(index=index, generation=generation, source_path=source_path)
        session.store.mark(index, VerificationStatus.RUNNING, generation)
        handle.task = asyncio.create_task(
            self._run_check(session, handle),
            name=f"livecheck:{session.uri}:{index}",
        )
        session.registry.register(handle)
        self._total_launched += 1
        self._publish(session)

    async def _run_check(self, session: DocumentSession, handle: TaskHandle) -> None:
        try:
            try:
                status = await self._verifier.verify(handle.source_path, handle.index, handle)
            except Exception as exc:
                self._log.warning(
                    "statement_check_failed",
                    uri=session.uri,
                    index=handle.index,
                    error=str(exc),
                )
                status = VerificationStatus.ERROR
        finally:
            session.registry.release(handle)

        if session.closed:
            return

        if session.store.mark(handle.index, status, handle.generation):
            self._log.debug(
                "statement_checked",
                uri=session.uri,
                index=handle.index,
                status=str(status),
            )
        else:
            self._total_stale_rejected += 1

        self._publish(session)
        session.prune_snapshots()

    def _publish(self, session: DocumentSession) -> None:
        self._hub.publish(
            DiagnosticSnapshot(
                uri=session.uri,
                version=session.version,
                diagnostics=project_diagnostics(session.store, session.statements),
            )
        )

