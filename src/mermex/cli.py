"""CLI entry point — ``mermex export``, ``mermex batch`` and ``mermex backends``."""

from __future__ import annotations

import argparse
import asyncio
import signal
import sys
import uuid
from contextlib import suppress
from pathlib import Path
from typing import Any

from mermex import __version__
from mermex.config import Settings
from mermex.constants import (
    RUN_ID_HEX_LENGTH,
    ExportFormat,
    JobStatus,
    NamingMode,
    RunState,
)
from mermex.errors import ExportError
from mermex.logger import ExportLogger
from mermex.logging_config import setup_logging
from mermex.services import BatchOrchestrator, BatchResult, ProgressEvent

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CANCELLED = 130


def main(argv: list[str] | None = None) -> None:
    """Main CLI entry point."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.version:
        print(f"mermex {__version__}")
        return

    if args.command is None:
        parser.print_help()
        return

    try:
        settings = _settings_from_args(args)
    except ValueError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(EXIT_FAILED)

    setup_logging("DEBUG" if args.verbose else settings.log_level)

    if args.command == "export":
        code = _run_export(args, settings)
    elif args.command == "batch":
        code = _run_batch(args, settings)
    else:
        code = _run_backends(settings)

    if code != EXIT_OK:
        sys.exit(code)


def _build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="mermex",
        description=(
            "Export Mermaid diagrams from Markdown documents "
            "and .mmd files to SVG, PNG, PDF and more."
        ),
    )
    parser.add_argument(
        "--version",
        action="store_true",
        help="Print version and exit",
    )

    sub = parser.add_subparsers(dest="command")

    export = sub.add_parser(
        "export",
        help="Export one .mmd file or every diagram in one Markdown file",
    )
    export.add_argument(
        "path",
        type=str,
        help="Path to a .md, .markdown, .mmd or .mermaid file",
    )
    _add_common_options(export)
    export.add_argument(
        "--backend",
        "-b",
        default=None,
        help="Preferred backend name (default: mmdc, then kroki)",
    )

    batch = sub.add_parser(
        "batch",
        help="Export every diagram found under a folder",
    )
    batch.add_argument(
        "root",
        type=str,
        help="Folder to scan",
    )
    _add_common_options(batch)
    batch.add_argument(
        "--max-depth",
        type=int,
        default=None,
        help="Folder levels to scan, root counts as 1 (min 1, default: 5)",
    )
    batch.add_argument(
        "--organize-by-format",
        action="store_true",
        help="Write each format into its own subfolder",
    )
    batch.add_argument(
        "--concurrency",
        "-j",
        type=int,
        default=None,
        help="Jobs to run at once (default: 1)",
    )
    batch.add_argument(
        "--log-dir",
        default=None,
        help="Write a JSON-lines export.log to this folder",
    )

    backends = sub.add_parser(
        "backends",
        help="Show which render backends are available",
    )
    backends.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose output",
    )

    return parser


def _add_common_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--format",
        "-f",
        dest="formats",
        type=str,
        default=None,
        help=(
            "Comma-separated formats: "
            f"{','.join(ExportFormat)} (default: svg)"
        ),
    )
    parser.add_argument(
        "--naming-mode",
        "-n",
        choices=[m.value for m in NamingMode],
        default=None,
        help="versioned (content-addressed) or overwrite (default: versioned)",
    )
    parser.add_argument(
        "--output-dir",
        "-o",
        default=None,
        help="Output folder; relative paths resolve against each source",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose output",
    )


def _settings_from_args(args: argparse.Namespace) -> Settings:
    """Layer CLI flags over environment / .env settings."""
    overrides: dict[str, Any] = {}
    if getattr(args, "formats", None):
        overrides["formats"] = args.formats
    if getattr(args, "naming_mode", None):
        overrides["naming_mode"] = args.naming_mode
    if getattr(args, "output_dir", None):
        overrides["output_directory"] = Path(args.output_dir)
    if getattr(args, "backend", None):
        overrides["preferred_backend"] = args.backend
    if getattr(args, "max_depth", None) is not None:
        overrides["max_depth"] = args.max_depth
    if getattr(args, "organize_by_format", False):
        overrides["organize_by_format"] = True
    if getattr(args, "concurrency", None) is not None:
        overrides["max_concurrency"] = args.concurrency
    if getattr(args, "log_dir", None):
        overrides["log_dir"] = Path(args.log_dir)
    return Settings(**overrides)


def _run_export(args: argparse.Namespace, settings: Settings) -> int:
    """Execute the export command."""
    path = Path(args.path).resolve()
    if not path.is_file():
        print(f"Error: {path} is not a file", file=sys.stderr)
        return EXIT_FAILED

    orchestrator = BatchOrchestrator(
        settings, on_progress=_progress_printer(args.verbose)
    )
    print(f"Exporting: {path}")
    try:
        result = asyncio.run(orchestrator.export_document(path))
    except ExportError as exc:
        print(f"Error: {exc.reason}", file=sys.stderr)
        return EXIT_FAILED

    if result.total == 0:
        print("No Mermaid diagrams found.")
        return EXIT_OK
    return _report(result)


def _run_batch(args: argparse.Namespace, settings: Settings) -> int:
    """Execute the batch command; Ctrl-C cancels between jobs."""
    root = Path(args.root).resolve()
    export_logger = ExportLogger(settings.log_dir) if settings.log_dir else None
    orchestrator = BatchOrchestrator(
        settings,
        on_progress=_progress_printer(args.verbose),
        export_logger=export_logger,
    )

    print(f"Scanning: {root} (max depth {settings.max_depth})")
    try:
        result = asyncio.run(_batch(orchestrator, root))
    except ExportError as exc:
        print(f"Error: {exc.reason}", file=sys.stderr)
        return EXIT_FAILED
    finally:
        if export_logger:
            export_logger.close()

    if result.total == 0:
        print("No Mermaid diagrams found.")
        return EXIT_OK
    return _report(result)


async def _batch(orchestrator: BatchOrchestrator, root: Path) -> BatchResult:
    run_id = uuid.uuid4().hex[:RUN_ID_HEX_LENGTH]
    loop = asyncio.get_running_loop()
    # Not available on Windows event loops
    with suppress(NotImplementedError):
        loop.add_signal_handler(signal.SIGINT, orchestrator.cancel, run_id)
    try:
        return await orchestrator.export_batch(root, run_id=run_id)
    finally:
        with suppress(NotImplementedError):
            loop.remove_signal_handler(signal.SIGINT)


def _run_backends(settings: Settings) -> int:
    """Probe every configured backend and print its status."""
    orchestrator = BatchOrchestrator(settings)
    selector = orchestrator.selector
    available = asyncio.run(selector.available())
    for backend in selector.backends:
        status = "available" if backend.name in available else "unavailable"
        print(f"  {backend.name:<8} {backend.role:<9} {status}")
    if not available:
        print("No render backend available.", file=sys.stderr)
        return EXIT_FAILED
    return EXIT_OK


def _progress_printer(verbose: bool) -> Any:
    def on_progress(event: ProgressEvent) -> None:
        if not verbose or event.outcome is None:
            return
        outcome = event.outcome
        line = f"  [{event.completed}/{event.total}] {event.message}"
        if outcome.status == JobStatus.FAILED:
            line += " FAILED"
        elif outcome.status == JobStatus.SKIPPED:
            line += " (unchanged)"
        print(line)

    return on_progress


def _report(result: BatchResult) -> int:
    """Print the run summary and return the exit code."""
    for path in result.outputs:
        print(f"  {path}")
    if result.failures:
        print("\nFailures:")
        for failure in result.failures:
            fmt = f" [{failure.format}]" if failure.format else ""
            print(f"  {failure.source}{fmt}: {failure.reason}")

    print(
        f"\nDone! {result.succeeded} exported, {result.skipped} unchanged, "
        f"{result.failed} failed (of {result.total})"
    )
    if result.state == RunState.CANCELLED:
        print("Cancelled before all diagrams were exported.")
        return EXIT_CANCELLED
    return EXIT_OK if result.failed == 0 else EXIT_FAILED


if __name__ == "__main__":
    main()
