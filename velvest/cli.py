#!/usr/bin/env python3
"""
Velvest CLI - Command Line Interface

Replays a capture file through the analysis pipeline and prints the
resulting counters, top talkers and activity log.

Usage:
    velvest capture.pcap
    velvest capture.pcap --filter tcp --detail 0
    velvest capture.pcap --json snapshot.json
"""

import argparse
import json
import sys
from pathlib import Path

import structlog

from velvest.analysis.engine import AnalysisEngine, EngineConfig
from velvest.analysis.models import EngineSnapshot
from velvest.analysis.pipeline import IngestPipeline
from velvest.capture.decoder import read_capture
from velvest.config import get_settings
from velvest.exceptions import CaptureError
from velvest.logging_config import configure_logging
from velvest.output.console import VelvestConsole, get_console

logger = structlog.get_logger(__name__)

# Spinner refresh interval, in records
PROGRESS_EVERY = 1000


def replay(file_path: Path, pipeline: IngestPipeline, console: VelvestConsole) -> int:
    """
    Feed every record of a capture file into the pipeline.

    Returns:
        Number of records submitted.
    """
    submitted = 0
    progress = console.create_progress()

    with progress:
        task = progress.add_task("[cyan]Replaying capture...", total=None, packets=0)
        for record in read_capture(file_path):
            pipeline.submit(record)
            submitted += 1
            if submitted % PROGRESS_EVERY == 0:
                progress.update(task, packets=submitted)
        progress.update(task, packets=submitted)

    pipeline.join()
    return submitted


def analyze_capture(
    file_path: Path,
    config: EngineConfig,
    console: VelvestConsole,
    queue_size: int,
) -> EngineSnapshot:
    """Run a capture file through a fresh engine and return the final snapshot."""
    engine = AnalysisEngine(config)

    with IngestPipeline(engine, queue_size=queue_size) as pipeline:
        submitted = replay(file_path, pipeline, console)
        logger.info("capture_analyzed", file_path=str(file_path), records=submitted, **pipeline.stats)
        return pipeline.snapshot()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="velvest",
        description="Velvest - network traffic counters, top talkers and anomaly log",
    )
    parser.add_argument(
        "capture",
        help="Path to a pcap/pcapng file",
    )
    parser.add_argument(
        "-f", "--filter",
        default=None,
        help="Only log packets whose summary contains this text (case-insensitive)",
    )
    parser.add_argument(
        "-n", "--top",
        type=int,
        default=None,
        help="Number of top sources to show",
    )
    parser.add_argument(
        "-d", "--detail",
        type=int,
        default=None,
        help="Show the detail block for this log position",
    )
    parser.add_argument(
        "--json",
        dest="json_output",
        default=None,
        help="Write the final snapshot as JSON to this file",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose output",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    settings = get_settings()
    if args.verbose:
        settings = settings.model_copy(update={"log_level": "DEBUG"})
    configure_logging(settings)

    config = EngineConfig.from_settings(settings)
    overrides = {}
    if args.filter is not None:
        overrides["default_filter"] = args.filter
    if args.top is not None:
        if args.top < 1:
            get_console().print_error("--top must be at least 1")
            return 2
        overrides["top_n"] = args.top
    if overrides:
        config = config.model_copy(update=overrides)

    console = get_console()
    capture_path = Path(args.capture).expanduser().resolve()
    console.print_header(capture_path.name)

    try:
        snapshot = analyze_capture(capture_path, config, console, settings.queue_size)
    except CaptureError as e:
        console.print_error(str(e))
        return 1
    except KeyboardInterrupt:
        console.console.print("\n\n[yellow]Analysis interrupted by user[/yellow]")
        return 130

    console.print_snapshot(snapshot)
    console.print_detail(snapshot, args.detail)

    if args.json_output:
        output_path = Path(args.json_output)
        with open(output_path, "w") as f:
            json.dump(snapshot.to_dict(), f, indent=2)
        console.print_info(f"Snapshot saved to {output_path}")

    return 0


if __name__ == "__main__":
    sys.exit(main())
