"""
livecheck — Two-Phase Verifier Adapter

Subprocess runner for the external statement verifier:

    <command> <path> --check-index <i> [--fast]

Each statement is checked in up to two phases:
  1. fast mode (sound, incomplete). If it exhausts the state space without
     finding an error state, the statement is valid and we stop.
  2. exhaustive mode. Its output decides the final status.

The verifier's output is unstructured; it is classified by scanning for a
fixed, prioritised list of tokens.
"""

from __future__ import annotations

import asyncio
import contextlib
import re
import time
from pathlib import Path
from typing import TYPE_CHECKING

import structlog

from livecheck.config import VerifierConfig
from livecheck.verification.types import (
    PhaseResult,
    VerificationStatus,
    VerifierMode,
    VerifierOutcome,
)

if TYPE_CHECKING:
    from livecheck.verification.registry import TaskHandle

logger = structlog.get_logger().bind(system="livecheck.verifier")


# ── Output Classification ────────────────────────────────────────────────────

# First match wins
_TOKEN_PRIORITY: tuple[VerifierOutcome, ...] = (
    VerifierOutcome.FOUND_ABORT,
    VerifierOutcome.TYPE_MISMATCH,
    VerifierOutcome.UNBOUND_VARIABLE,
    VerifierOutcome.TIMEOUT,
    VerifierOutcome.EXHAUSTED_PRUNED_TREE,
    VerifierOutcome.EXHAUSTED,
    VerifierOutcome.UNKNOWN_DUE_TO_SOLVER_TIMEOUT,
)

# A token must not be embedded in a longer token: TIMEOUT inside
# UNKNOWN_DUE_TO_SOLVER_TIMEOUT, EXHAUSTED inside EXHAUSTED_PRUNED_TREE.
_TOKEN_PATTERNS: tuple[tuple[VerifierOutcome, re.Pattern[str]], ...] = tuple(
    (token, re.compile(rf"(?<![A-Za-z_]){token.value}(?![A-Za-z_])", re.IGNORECASE))
    for token in _TOKEN_PRIORITY
)

_FINAL_STATUS: dict[VerifierOutcome, VerificationStatus] = {
    VerifierOutcome.EXHAUSTED: VerificationStatus.VALID,
    VerifierOutcome.EXHAUSTED_PRUNED_TREE: VerificationStatus.PRUNED,
    VerifierOutcome.UNFINISHED: VerificationStatus.PENDING,
    VerifierOutcome.FOUND_ABORT: VerificationStatus.INVALID,
    VerifierOutcome.TYPE_MISMATCH: VerificationStatus.INVALID,
    VerifierOutcome.UNBOUND_VARIABLE: VerificationStatus.INVALID,
    VerifierOutcome.TIMEOUT: VerificationStatus.TIMEOUT,
}


def classify_output(output: str, exit_code: int) -> VerifierOutcome:
    """
    Classify one verifier run.

    Known tokens take precedence over the exit code. Without a token, a
    non-zero exit is an ERROR and a clean exit is UNFINISHED.
    """
    for token, pattern in _TOKEN_PATTERNS:
        if pattern.search(output):
            return token
    if exit_code != 0:
        return VerifierOutcome.ERROR
    return VerifierOutcome.UNFINISHED


def final_status(outcome: VerifierOutcome) -> VerificationStatus:
    return _FINAL_STATUS.get(outcome, VerificationStatus.ERROR)


# ── TwoPhaseVerifier ─────────────────────────────────────────────────────────


class TwoPhaseVerifier:
    """
    Runs the verifier for one statement, fast phase first.

    Launch failures are absorbed into an `error` status so one statement's
    failure never reaches its siblings. Cancellation is not absorbed: the
    running process is terminated and CancelledError propagates.
    """

    def __init__(
        self,
        config: VerifierConfig | None = None,
        workspace_root: Path | None = None,
    ) -> None:
        self._config = config or VerifierConfig()
        self._root = workspace_root
        self._log = logger

    async def verify(
        self,
        source_path: Path,
        index: int,
        handle: TaskHandle | None = None,
    ) -> VerificationStatus:
        try:
            fast = await self.run_phase(source_path, index, VerifierMode.FAST, handle)
        except OSError as exc:
            self._log.warning("verifier_launch_failed", index=index, mode="fast", error=str(exc))
            return VerificationStatus.ERROR

        if fast.outcome == VerifierOutcome.EXHAUSTED:
            self._log.debug("fast_phase_proved_valid", index=index, time_ms=fast.duration_ms)
            return VerificationStatus.VALID

        try:
            full = await self.run_phase(source_path, index, VerifierMode.EXHAUSTIVE, handle)
        except OSError as exc:
            self._log.warning(
                "verifier_launch_failed", index=index, mode="exhaustive", error=str(exc),
            )
            return VerificationStatus.ERROR

        status = final_status(full.outcome)
        self._log.debug(
            "exhaustive_phase_complete",
            index=index,
            fast_outcome=str(fast.outcome),
            outcome=str(full.outcome),
            status=str(status),
            time_ms=fast.duration_ms + full.duration_ms,
        )
        return status

    async def run_phase(
        self,
        source_path: Path,
        index: int,
        mode: VerifierMode,
        handle: TaskHandle | None = None,
    ) -> PhaseResult:
        """
        Run one verifier invocation and classify it.

        Raises OSError if the process cannot be started.
        """
        args = [
            *self._config.command,
            str(source_path),
            self._config.index_flag,
            str(index),
        ]
        if mode == VerifierMode.FAST:
            args.append(self._config.fast_flag)

        start = time.monotonic()
        proc = await asyncio.create_subprocess_exec(
            *args,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=str(self._root) if self._root else None,
        )
        if handle is not None:
            handle.attach(proc)

        try:
            try:
                stdout, stderr = await asyncio.wait_for(
                    proc.communicate(), timeout=self._config.timeout_s,
                )
            except TimeoutError:
                if proc.returncode is None:
                    with contextlib.suppress(ProcessLookupError):
                        proc.kill()
                await proc.communicate()
                self._log.warning(
                    "verifier_timeout",
                    index=index,
                    mode=str(mode),
                    timeout_s=self._config.timeout_s,
                )
                return PhaseResult(
                    index=index,
                    mode=mode,
                    outcome=VerifierOutcome.TIMEOUT,
                    duration_ms=int((time.monotonic() - start) * 1000),
                    timed_out=True,
                )
            except asyncio.CancelledError:
                if proc.returncode is None:
                    with contextlib.suppress(ProcessLookupError):
                        proc.kill()
                raise
        finally:
            if handle is not None:
                handle.detach()

        output = (
            stdout.decode("utf-8", errors="replace")
            + stderr.decode("utf-8", errors="replace")
        )
        exit_code = proc.returncode if proc.returncode is not None else -1
        outcome = classify_output(output, exit_code)
        if outcome == VerifierOutcome.ERROR:
            self._log.info(
                "verifier_output_unrecognised",
                index=index,
                mode=str(mode),
                exit_code=exit_code,
                output=output[:200],
            )

        return PhaseResult(
            index=index,
            mode=mode,
            outcome=outcome,
            exit_code=exit_code,
            output=output,
            duration_ms=int((time.monotonic() - start) * 1000),
        )
