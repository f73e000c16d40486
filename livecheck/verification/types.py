"""
livecheck — Verification Types

Data model for the incremental verification engine: statements and
positions produced by the external parser, edit descriptions supplied by
the editor, per-statement status records, and the diagnostic snapshots
handed back to the caller.

Positions use 1-based lines and 0-based columns throughout.
"""

from __future__ import annotations

import enum

from pydantic import Field

from livecheck.primitives.common import LiveCheckModel, monotonic_now

# ─── Statement Model ─────────────────────────────────────────────────────────


class Position(LiveCheckModel):
    line: int
    column: int = Field(alias="col")
    offset: int = 0

    def as_tuple(self) -> tuple[int, int]:
        return (self.line, self.column)


class Statement(LiveCheckModel):
    """
    One top-level parsed unit of the document.

    `index` is only meaningful within the parse that produced it. There is
    no identity across reparses.
    """

    index: int
    kind: str = ""
    identifiers: list[str] = Field(default_factory=list, alias="ids")
    start: Position
    end: Position


class ParseOutcome(LiveCheckModel):
    """
    Tagged parser result.

    `failed=False` with no statements means the document is empty of
    statements; `failed=True` means the parser itself failed and the
    engine degraded to "no statements".
    """

    statements: list[Statement] = Field(default_factory=list)
    failed: bool = False
    error: str = ""

    @classmethod
    def failure(cls, error: str) -> ParseOutcome:
        return cls(statements=[], failed=True, error=error)


# ─── Edits ───────────────────────────────────────────────────────────────────


class RangeEdit(LiveCheckModel):
    """Replace the pre-edit span [start, end) with `text`."""

    start: Position
    end: Position
    text: str = ""


class FullEdit(LiveCheckModel):
    """Replace the whole document."""

    text: str


EditDescription = RangeEdit | FullEdit


class EditRegion(LiveCheckModel):
    """Lower bound of the text an edit could have touched, in post-edit coordinates."""

    line: int
    column: int
    length: int = 0


# ─── Verification Status ─────────────────────────────────────────────────────


class VerificationStatus(enum.StrEnum):
    PENDING = "pending"
    RUNNING = "running"
    VALID = "valid"
    INVALID = "invalid"
    ERROR = "error"
    TIMEOUT = "timeout"
    PRUNED = "pruned"


class VerifierOutcome(enum.StrEnum):
    """Classification of one verifier run's output."""

    FOUND_ABORT = "FOUND_ABORT"
    TYPE_MISMATCH = "TYPE_MISMATCH"
    UNBOUND_VARIABLE = "UNBOUND_VARIABLE"
    TIMEOUT = "TIMEOUT"
    EXHAUSTED_PRUNED_TREE = "EXHAUSTED_PRUNED_TREE"
    EXHAUSTED = "EXHAUSTED"
    UNKNOWN_DUE_TO_SOLVER_TIMEOUT = "UNKNOWN_DUE_TO_SOLVER_TIMEOUT"
    ERROR = "ERROR"
    UNFINISHED = "UNFINISHED"


class VerifierMode(enum.StrEnum):
    FAST = "fast"  # sound, incomplete
    EXHAUSTIVE = "exhaustive"


class PhaseResult(LiveCheckModel):
    """One verifier invocation."""

    index: int
    mode: VerifierMode
    outcome: VerifierOutcome
    exit_code: int = -1
    output: str = ""
    duration_ms: int = 0
    timed_out: bool = False


class StatusRecord(LiveCheckModel):
    statement_index: int
    status: VerificationStatus = VerificationStatus.PENDING
    last_updated: float = Field(default_factory=monotonic_now)
    # Reset generation this record belongs to; task results carry the
    # generation they were launched with.
    generation: int = 0


# ─── Diagnostics ─────────────────────────────────────────────────────────────


class DiagnosticSeverity(enum.IntEnum):
    """LSP severity numbering."""

    ERROR = 1
    WARNING = 2
    INFORMATION = 3
    HINT = 4


class DiagnosticRange(LiveCheckModel):
    start: Position
    end: Position


class Diagnostic(LiveCheckModel):
    range: DiagnosticRange
    severity: DiagnosticSeverity
    message: str
    statement_index: int
    status: VerificationStatus
    source: str = "livecheck"


class DiagnosticSnapshot(LiveCheckModel):
    """Complete replacement view of a document's diagnostics. Not a delta."""

    uri: str
    version: int = 0
    diagnostics: list[Diagnostic] = Field(default_factory=list)
