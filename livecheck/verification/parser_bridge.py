"""
livecheck — Statement Parser Bridge

Subprocess runner for the external statement parser. The parser is given a
file path and prints a JSON array of statements:

    [{"index": 0, "kind": "let", "ids": ["x"],
      "start": {"line": 1, "col": 0, "offset": 0},
      "end": {"line": 1, "col": 9, "offset": 9}}, ...]

Parsing fails open: any failure yields an empty statement list, tagged as a
failure so callers can tell it apart from a document with no statements.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import time
from pathlib import Path

import structlog
from pydantic import TypeAdapter, ValidationError

from livecheck.config import ParserConfig
from livecheck.verification.types import ParseOutcome, Statement

logger = structlog.get_logger().bind(system="livecheck.parser")

_STATEMENTS = TypeAdapter(list[Statement])


class StatementParserBridge:
    """Runs the parser executable and decodes its output."""

    def __init__(
        self,
        config: ParserConfig | None = None,
        workspace_root: Path | None = None,
    ) -> None:
        self._config = config or ParserConfig()
        self._root = workspace_root
        self._log = logger

    async def parse(self, source_path: Path) -> ParseOutcome:
        """Parse the file at `source_path`. Never raises."""
        start = time.monotonic()
        try:
            proc = await asyncio.create_subprocess_exec(
                *self._config.command, str(source_path),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=str(self._root) if self._root else None,
            )
        except OSError as exc:
            self._log.warning("parser_launch_failed", error=str(exc))
            return ParseOutcome.failure(f"parser launch failed: {exc}")

        try:
            stdout, stderr = await asyncio.wait_for(
                proc.communicate(), timeout=self._config.timeout_s,
            )
        except TimeoutError:
            if proc.returncode is None:
                with contextlib.suppress(ProcessLookupError):
                    proc.kill()
            await proc.communicate()
            self._log.warning("parser_timeout", timeout_s=self._config.timeout_s)
            return ParseOutcome.failure(
                f"parser timed out after {self._config.timeout_s}s"
            )
        except asyncio.CancelledError:
            if proc.returncode is None:
                with contextlib.suppress(ProcessLookupError):
                    proc.kill()
            raise

        if proc.returncode != 0:
            message = stderr.decode("utf-8", errors="replace").strip()
            self._log.warning(
                "parser_failed",
                exit_code=proc.returncode,
                stderr=message[:200],
            )
            return ParseOutcome.failure(f"parser exited with {proc.returncode}: {message}")

        output = stdout.decode("utf-8", errors="replace")
        try:
            statements = _STATEMENTS.validate_python(json.loads(output))
        except (json.JSONDecodeError, ValidationError) as exc:
            self._log.warning("parser_output_invalid", error=str(exc)[:200], output=output[:200])
            return ParseOutcome.failure(f"unparsable parser output: {exc}")

        ordered = sorted(statements, key=lambda s: (s.start.line, s.start.column))
        statements = [s.model_copy(update={"index": i}) for i, s in enumerate(ordered)]

        self._log.debug(
            "parse_complete",
            path=str(source_path),
            statements=len(statements),
            time_ms=int((time.monotonic() - start) * 1000),
        )
        return ParseOutcome(statements=statements)
