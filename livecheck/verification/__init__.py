"""
livecheck — Verification Engine

Incremental, cancellable, per-statement verification of live documents:
statement model and edit locator, status store and task registry, the
parser and two-phase verifier bridges, the scheduler, and the diagnostic
projector.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

from livecheck.verification.diagnostics import DiagnosticHub, project_diagnostics
from livecheck.verification.locator import (
    locate_affected_index,
    locate_edits,
    region_for_edit,
    region_from_divergence,
)
from livecheck.verification.parser_bridge import StatementParserBridge
from livecheck.verification.registry import TaskHandle, TaskRegistry
from livecheck.verification.scheduler import DocumentNotOpenError, VerificationScheduler
from livecheck.verification.session import DocumentSession
from livecheck.verification.store import VerificationStateStore
from livecheck.verification.types import (
    Diagnostic,
    DiagnosticSeverity,
    DiagnosticSnapshot,
    EditRegion,
    FullEdit,
    ParseOutcome,
    Position,
    RangeEdit,
    Statement,
    StatusRecord,
    VerificationStatus,
    VerifierOutcome,
)
from livecheck.verification.verifier_bridge import (
    TwoPhaseVerifier,
    classify_output,
    final_status,
)

if TYPE_CHECKING:
    from livecheck.config import LiveCheckConfig

__all__ = [
    "Diagnostic",
    "DiagnosticHub",
    "DiagnosticSeverity",
    "DiagnosticSnapshot",
    "DocumentNotOpenError",
    "DocumentSession",
    "EditRegion",
    "FullEdit",
    "ParseOutcome",
    "Position",
    "RangeEdit",
    "Statement",
    "StatementParserBridge",
    "StatusRecord",
    "TaskHandle",
    "TaskRegistry",
    "TwoPhaseVerifier",
    "VerificationScheduler",
    "VerificationStateStore",
    "VerificationStatus",
    "VerifierOutcome",
    "build_scheduler",
    "classify_output",
    "final_status",
    "locate_affected_index",
    "locate_edits",
    "project_diagnostics",
    "region_for_edit",
    "region_from_divergence",
]


def build_scheduler(config: LiveCheckConfig) -> VerificationScheduler:
    """Wire the subprocess bridges into a scheduler from a root config."""
    root = Path(config.workspace_root)
    return VerificationScheduler(
        parser=StatementParserBridge(config.parser, workspace_root=root),
        verifier=TwoPhaseVerifier(config.verifier, workspace_root=root),
        config=config.scheduler,
    )
