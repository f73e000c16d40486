"""
Shared fixtures: a scripted parser and verifier standing in for the real
executables.

The fake parser treats every line starting with ``let `` as one statement
spanning the whole line. The fake verifier looks up the statement's line
and obeys ``key=value`` directives in its trailing comment:

    let x = 1                          # fast phase prints EXHAUSTED
    let y = 2 # fast=TIMEOUT full=FOUND_ABORT
    let z = 3 # sleep=5                # hold the process open
    let w = 4 # fast=- full=- exit=3   # print nothing, exit 3

Every verifier invocation is appended to ``calls.log`` as ``<index> <mode>``.
"""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

from livecheck.config import (
    LiveCheckConfig,
    ParserConfig,
    SchedulerConfig,
    VerifierConfig,
)

PARSER_SCRIPT = '''
import json
import sys
from pathlib import Path

text = Path(sys.argv[1]).read_text()
if "PARSE_FAIL" in text:
    print("syntax error", file=sys.stderr)
    sys.exit(1)

statements = []
offset = 0
for lineno, line in enumerate(text.split("\\n"), start=1):
    if line.startswith("let "):
        statements.append({
            "index": len(statements),
            "kind": "let",
            "ids": [line.split()[1]],
            "start": {"line": lineno, "col": 0, "offset": offset},
            "end": {"line": lineno, "col": len(line), "offset": offset + len(line)},
        })
    offset += len(line) + 1
print(json.dumps(statements))
'''

VERIFIER_SCRIPT = '''
import re
import sys
import time
from pathlib import Path

args = sys.argv[1:]
index = int(args[args.index("--check-index") + 1])
mode = "fast" if "--fast" in args else "full"
with open(Path(__file__).with_name("calls.log"), "a") as log:
    log.write(f"{index} {mode}\\n")

lines = [l for l in Path(args[0]).read_text().split("\\n") if l.startswith("let ")]
line = lines[index] if index < len(lines) else ""
directives = dict(re.findall(r"(\\w+)=(\\S+)", line.partition("#")[2]))

if "sleep" in directives:
    time.sleep(float(directives["sleep"]))
out = directives.get(mode, "EXHAUSTED" if mode == "fast" else "")
if out != "-":
    print(out)
sys.exit(int(directives.get("exit", 0)))
'''


class FakeToolchain:
    def __init__(self, root: Path) -> None:
        self.root = root
        self.parser_script = root / "fake_parser.py"
        self.verifier_script = root / "fake_verifier.py"
        self.parser_script.write_text(PARSER_SCRIPT)
        self.verifier_script.write_text(VERIFIER_SCRIPT)
        self.call_log = root / "calls.log"

    @property
    def parser_command(self) -> list[str]:
        return [sys.executable, str(self.parser_script)]

    @property
    def verifier_command(self) -> list[str]:
        return [sys.executable, str(self.verifier_script)]

    def calls(self) -> list[tuple[int, str]]:
        if not self.call_log.exists():
            return []
        result = []
        for line in self.call_log.read_text().splitlines():
            index, mode = line.split()
            result.append((int(index), mode))
        return result

    def reset_calls(self) -> None:
        self.call_log.unlink(missing_ok=True)

    def config(self, **scheduler: object) -> LiveCheckConfig:
        return LiveCheckConfig(
            workspace_root=str(self.root),
            parser=ParserConfig(command=self.parser_command, timeout_s=20.0),
            verifier=VerifierConfig(command=self.verifier_command, timeout_s=20.0),
            scheduler=SchedulerConfig(
                snapshot_dir=str(self.root / "snapshots"),
                **scheduler,
            ),
        )


@pytest.fixture
def toolchain(tmp_path: Path) -> FakeToolchain:
    root = tmp_path / "toolchain"
    root.mkdir()
    return FakeToolchain(root)
