"""
Unit tests for the diagnostic projector and DiagnosticHub.
"""

from __future__ import annotations

import asyncio

import pytest

from livecheck.verification.diagnostics import DiagnosticHub, project_diagnostics
from livecheck.verification.store import VerificationStateStore
from livecheck.verification.types import (
    DiagnosticSeverity,
    DiagnosticSnapshot,
    Position,
    Statement,
    VerificationStatus,
)

URI = "file:///doc.bjy"


def make_statements(count: int) -> list[Statement]:
    return [
        Statement(
            index=i,
            start=Position(line=i + 1, column=0),
            end=Position(line=i + 1, column=9),
        )
        for i in range(count)
    ]


class TestProjectDiagnostics:
    def test_severity_mapping(self):
        statuses = [
            VerificationStatus.VALID,
            VerificationStatus.INVALID,
            VerificationStatus.ERROR,
            VerificationStatus.TIMEOUT,
            VerificationStatus.PRUNED,
        ]
        store = VerificationStateStore(URI)
        gen = store.reset_from(0, len(statuses))
        for i, status in enumerate(statuses):
            store.mark(i, status, gen)

        diagnostics = project_diagnostics(store, make_statements(len(statuses)))

        assert [d.severity for d in diagnostics] == [
            DiagnosticSeverity.INFORMATION,
            DiagnosticSeverity.ERROR,
            DiagnosticSeverity.ERROR,
            DiagnosticSeverity.WARNING,
            DiagnosticSeverity.WARNING,
        ]
        assert [d.status for d in diagnostics] == statuses

    def test_pending_and_running_are_suppressed(self):
        store = VerificationStateStore(URI)
        gen = store.reset_from(0, 3)
        store.mark(1, VerificationStatus.RUNNING, gen)
        store.mark(2, VerificationStatus.INVALID, gen)

        diagnostics = project_diagnostics(store, make_statements(3))

        assert [d.statement_index for d in diagnostics] == [2]

    def test_statements_without_records_are_suppressed(self):
        store = VerificationStateStore(URI)
        gen = store.reset_from(0, 1)
        store.mark(0, VerificationStatus.VALID, gen)

        diagnostics = project_diagnostics(store, make_statements(3))

        assert len(diagnostics) == 1

    def test_range_and_message(self):
        store = VerificationStateStore(URI)
        gen = store.reset_from(0, 2)
        store.mark(1, VerificationStatus.TIMEOUT, gen)

        (diag,) = project_diagnostics(store, make_statements(2))

        assert diag.range.start.as_tuple() == (2, 0)
        assert diag.range.end.as_tuple() == (2, 9)
        assert diag.message == "Statement 1: timeout"
        assert diag.source == "livecheck"

    def test_empty(self):
        assert project_diagnostics(VerificationStateStore(URI), []) == []


class TestDiagnosticHub:
    @pytest.mark.asyncio
    async def test_publish_reaches_every_subscriber(self):
        hub = DiagnosticHub()
        first, second = hub.subscribe(), hub.subscribe()
        snapshot = DiagnosticSnapshot(uri=URI, version=3)

        hub.publish(snapshot)

        assert await asyncio.wait_for(first.get(), 1) is snapshot
        assert await asyncio.wait_for(second.get(), 1) is snapshot
        assert hub.latest(URI) is snapshot
        assert hub.published == 1

    def test_unsubscribe(self):
        hub = DiagnosticHub()
        q = hub.subscribe()
        hub.unsubscribe(q)
        hub.unsubscribe(q)

        hub.publish(DiagnosticSnapshot(uri=URI))

        assert q.empty()

    def test_full_queue_drops_oldest(self):
        hub = DiagnosticHub(queue_size=2)
        q = hub.subscribe()
        for version in range(1, 4):
            hub.publish(DiagnosticSnapshot(uri=URI, version=version))

        assert [q.get_nowait().version, q.get_nowait().version] == [2, 3]

    def test_forget_closed_document(self):
        hub = DiagnosticHub()
        other = "file:///other.bjy"
        hub.publish(DiagnosticSnapshot(uri=URI, version=1))
        hub.publish(DiagnosticSnapshot(uri=other, version=1))

        hub.forget(URI)
        hub.forget(URI)

        assert hub.latest(URI) is None
        assert hub.latest(other) is not None
