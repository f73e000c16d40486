"""
livecheck — Command Line Entry Point

    livecheck check FILE [--config livecheck.yaml] [--json]
        Verify every statement of FILE once and print the diagnostics.
        Exit code 1 if any statement is invalid or errored.

    livecheck watch FILE [--config livecheck.yaml] [--json]
        Verify FILE, then re-verify incrementally on every save and print
        each settled diagnostic snapshot. Stop with Ctrl-C.
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import sys
from pathlib import Path

import structlog

from livecheck.config import LiveCheckConfig, load_config
from livecheck.telemetry.logging import setup_logging
from livecheck.verification import build_scheduler
from livecheck.verification.scheduler import VerificationScheduler
from livecheck.verification.types import DiagnosticSeverity, DiagnosticSnapshot

logger = structlog.get_logger().bind(system="livecheck.main")

_SEVERITY_LABEL: dict[DiagnosticSeverity, str] = {
    DiagnosticSeverity.ERROR: "ERROR",
    DiagnosticSeverity.WARNING: "WARN ",
    DiagnosticSeverity.INFORMATION: "INFO ",
    DiagnosticSeverity.HINT: "HINT ",
}


def format_snapshot(snapshot: DiagnosticSnapshot, as_json: bool = False) -> str:
    if as_json:
        return snapshot.model_dump_json()

    if not snapshot.diagnostics:
        return f"{snapshot.uri} (v{snapshot.version}): no diagnostics"

    lines = [f"{snapshot.uri} (v{snapshot.version}):"]
    for d in snapshot.diagnostics:
        lines.append(
            f"  [{_SEVERITY_LABEL.get(d.severity, '     ')}] "
            f"{d.range.start.line}:{d.range.start.column}-"
            f"{d.range.end.line}:{d.range.end.column} {d.message}"
        )
    return "\n".join(lines)


def has_errors(snapshot: DiagnosticSnapshot) -> bool:
    return any(d.severity == DiagnosticSeverity.ERROR for d in snapshot.diagnostics)


def is_settled(scheduler: VerificationScheduler, snapshot: DiagnosticSnapshot) -> bool:
    """
    True when `snapshot` is the newest one published for its document and
    nothing is still being verified for it.

    A queued snapshot can be read after later ones were published; those
    are never settled, even if the document has gone idle since.
    """
    if scheduler.hub.latest(snapshot.uri) is not snapshot:
        return False
    if not scheduler.is_open(snapshot.uri):
        return False
    return not scheduler.session(snapshot.uri).registry.indices()


async def run_check(config: LiveCheckConfig, path: Path, as_json: bool = False) -> int:
    scheduler = build_scheduler(config)
    uri = path.resolve().as_uri()

    await scheduler.open(uri, path.read_text(encoding="utf-8"))
    await scheduler.wait_idle(uri)
    snapshot = scheduler.snapshot(uri)
    await scheduler.shutdown()
    logger.info("check_complete", uri=uri, diagnostics=len(snapshot.diagnostics))

    print(format_snapshot(snapshot, as_json=as_json))
    return 1 if has_errors(snapshot) else 0


async def run_watch(config: LiveCheckConfig, path: Path, as_json: bool = False) -> int:
    from livecheck.clients.file_watcher import DocumentWatcher

    scheduler = build_scheduler(config)
    watcher = DocumentWatcher(path, scheduler, poll_interval=config.watcher.poll_interval_s)
    updates = scheduler.hub.subscribe()

    await watcher.start()
    last_printed: str | None = None
    try:
        while True:
            snapshot = await updates.get()
            if snapshot.uri != watcher.uri:
                continue
            if not is_settled(scheduler, snapshot):
                continue
            rendered = format_snapshot(snapshot, as_json=as_json)
            if rendered != last_printed:
                print(rendered, flush=True)
                last_printed = rendered
    finally:
        scheduler.hub.unsubscribe(updates)
        await watcher.stop()
        await scheduler.shutdown()


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="livecheck",
        description="Incremental per-statement verification",
    )
    parser.add_argument("--config", default=None, help="Path to a livecheck YAML config")
    sub = parser.add_subparsers(dest="command", required=True)

    for name, help_text in (
        ("check", "Verify a file once and print its diagnostics"),
        ("watch", "Verify a file and re-verify it on every save"),
    ):
        cmd = sub.add_parser(name, help=help_text)
        cmd.add_argument("file", type=Path)
        cmd.add_argument("--json", action="store_true", help="Print snapshots as JSON")

    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    config = load_config(args.config)
    setup_logging(config.logging)

    if not args.file.is_file():
        print(f"[ERROR] Not a file: {args.file}", file=sys.stderr)
        return 2

    if args.command == "check":
        return asyncio.run(run_check(config, args.file, as_json=args.json))

    with contextlib.suppress(KeyboardInterrupt):
        asyncio.run(run_watch(config, args.file, as_json=args.json))
    return 0


if __name__ == "__main__":
    sys.exit(main())
