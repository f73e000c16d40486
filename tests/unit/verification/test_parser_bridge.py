"""
Unit tests for StatementParserBridge.
"""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path

import pytest

from livecheck.config import ParserConfig
from livecheck.verification.parser_bridge import StatementParserBridge


class GoneAtDeadline:
    """Outlives the timeout, then exits before it can be killed."""

    def __init__(self) -> None:
        self.returncode: int | None = None
        self.kill_attempts = 0
        self._communicated = 0

    def kill(self) -> None:
        self.kill_attempts += 1
        raise ProcessLookupError()

    async def communicate(self) -> tuple[bytes, bytes]:
        self._communicated += 1
        if self._communicated == 1:
            await asyncio.sleep(30)
        self.returncode = -9
        return b"", b""


def make_parser(command: list[str], timeout_s: float = 20.0) -> StatementParserBridge:
    return StatementParserBridge(ParserConfig(command=command, timeout_s=timeout_s))


def script(tmp_path: Path, body: str) -> list[str]:
    path = tmp_path / "parser_stub.py"
    path.write_text(body)
    return [sys.executable, str(path)]


class TestParse:
    @pytest.mark.asyncio
    async def test_statements_decoded(self, toolchain, tmp_path: Path):
        source = tmp_path / "doc.bjy"
        source.write_text("let x = 1\n\nlet y = 2")

        outcome = await make_parser(toolchain.parser_command).parse(source)

        assert outcome.failed is False
        assert [s.index for s in outcome.statements] == [0, 1]
        second = outcome.statements[1]
        assert second.kind == "let"
        assert second.identifiers == ["y"]
        assert second.start.as_tuple() == (3, 0)
        assert second.end.as_tuple() == (3, 9)
        assert second.end.offset == 20

    @pytest.mark.asyncio
    async def test_empty_document(self, toolchain, tmp_path: Path):
        source = tmp_path / "doc.bjy"
        source.write_text("")

        outcome = await make_parser(toolchain.parser_command).parse(source)

        assert outcome.failed is False
        assert outcome.statements == []

    @pytest.mark.asyncio
    async def test_statements_ordered_and_renumbered(self, tmp_path: Path):
        command = script(tmp_path, (
            "import json\n"
            "print(json.dumps([\n"
            "  {'index': 7, 'start': {'line': 2, 'col': 0}, 'end': {'line': 2, 'col': 3}},\n"
            "  {'index': 3, 'start': {'line': 1, 'col': 0}, 'end': {'line': 1, 'col': 3}},\n"
            "]))\n"
        ))
        source = tmp_path / "doc.bjy"
        source.write_text("abc\ndef")

        outcome = await make_parser(command).parse(source)

        assert [s.index for s in outcome.statements] == [0, 1]
        assert [s.start.line for s in outcome.statements] == [1, 2]


class TestParseFailsOpen:
    @pytest.mark.asyncio
    async def test_nonzero_exit(self, toolchain, tmp_path: Path):
        source = tmp_path / "doc.bjy"
        source.write_text("let x = PARSE_FAIL")

        outcome = await make_parser(toolchain.parser_command).parse(source)

        assert outcome.failed is True
        assert outcome.statements == []
        assert "syntax error" in outcome.error

    @pytest.mark.asyncio
    async def test_unparsable_output(self, tmp_path: Path):
        command = script(tmp_path, "print('not json')\n")
        source = tmp_path / "doc.bjy"
        source.write_text("let x = 1")

        outcome = await make_parser(command).parse(source)

        assert outcome.failed is True
        assert outcome.statements == []

    @pytest.mark.asyncio
    async def test_wrong_shape(self, tmp_path: Path):
        command = script(tmp_path, "print('[{\"index\": 0}]')\n")
        source = tmp_path / "doc.bjy"
        source.write_text("let x = 1")

        outcome = await make_parser(command).parse(source)

        assert outcome.failed is True

    @pytest.mark.asyncio
    async def test_missing_executable(self, tmp_path: Path):
        source = tmp_path / "doc.bjy"
        source.write_text("let x = 1")

        outcome = await make_parser([str(tmp_path / "no-such-parser")]).parse(source)

        assert outcome.failed is True
        assert "launch failed" in outcome.error

    @pytest.mark.asyncio
    async def test_timeout(self, tmp_path: Path):
        command = script(tmp_path, "import time\ntime.sleep(30)\n")
        source = tmp_path / "doc.bjy"
        source.write_text("let x = 1")

        outcome = await make_parser(command, timeout_s=0.5).parse(source)

        assert outcome.failed is True
        assert "timed out" in outcome.error

    @pytest.mark.asyncio
    async def test_timeout_when_process_already_gone(self, tmp_path: Path, monkeypatch):
        proc = GoneAtDeadline()

        async def fake_exec(*args, **kwargs):
            return proc

        monkeypatch.setattr(asyncio, "create_subprocess_exec", fake_exec)
        source = tmp_path / "doc.bjy"
        source.write_text("let x = 1")

        outcome = await make_parser(["parser"], timeout_s=0.05).parse(source)

        assert outcome.failed is True
        assert "timed out" in outcome.error
        assert proc.kill_attempts == 1
