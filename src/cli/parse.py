# =============================================================================
# src/cli/parse.py: CLI Parse Command (seed URL -> staged schedule)
# =============================================================================
#
# Runs one discovery + extraction run from the command line, without the
# API server, and writes the result to the staging database just like
# POST /api/v1/parse does.  The record then shows up in the review queue.
#
# Typical usage:
#   python -m src.cli.parse https://example-karaoke.com
#   python -m src.cli.parse https://www.facebook.com/groups/123/media --mode social
#   python -m src.cli.parse https://example.com --max-units 10 --json
#
# Exit codes: 0 when the record reached pending review (even with zero
# shows), 1 when the run failed, 2 on bad arguments.
# =============================================================================

"""Standalone CLI for running the schedule parsing pipeline on one URL.

Usage::

    python -m src.cli.parse https://example.com
    python -m src.cli.parse https://example.com --json
    python -m src.cli.parse https://example.com --max-depth 0 --output run.json
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
import time
from pathlib import Path
from typing import Any

from src.models.content import DiscoveryMode, DiscoveryOptions
from src.models.schedule import ParsedSchedule, ParseStatus

# ---------------------------------------------------------------------------
# Formatting helpers
# ---------------------------------------------------------------------------


def format_text_output(record: ParsedSchedule) -> str:
    """Human-readable report of a staged run."""
    lines: list[str] = []
    sep = "=" * 60

    lines.append(sep)
    lines.append("  karaoke-scout parse report")
    lines.append(sep)
    lines.append(f"Record:  {record.id}")
    lines.append(f"URL:     {record.url}")
    lines.append(f"Status:  {record.status.value}  ({record.outcome.value})")
    if record.error:
        lines.append(f"Error:   {record.error}")
    lines.append("")

    result = record.ai_analysis
    if result is not None:
        if result.vendors:
            lines.append("VENDORS")
            lines.append("-" * 40)
            for vendor in result.vendors:
                website = f"  <{vendor.website}>" if vendor.website else ""
                lines.append(f"  {vendor.name}{website}  ({vendor.confidence:.0%})")
            lines.append("")

        if result.djs:
            lines.append("DJs")
            lines.append("-" * 40)
            for dj in result.djs:
                lines.append(f"  {dj.name}  ({dj.confidence:.0%})")
            lines.append("")

        lines.append(f"SHOWS ({len(result.shows)})")
        lines.append("-" * 40)
        for show in result.shows:
            when = " ".join(p for p in (show.day, show.start_time) if p) or "unscheduled"
            host = f" with {show.dj_name}" if show.dj_name else ""
            lines.append(f"  {show.venue}: {when}{host}")
            lines.append(f"      source: {show.source}")
        lines.append("")

    if record.parsing_logs:
        lines.append("PARSING LOG")
        lines.append("-" * 40)
        lines.extend(f"  {line}" for line in record.parsing_logs)

    return "\n".join(lines)


def format_json_output(record: ParsedSchedule) -> str:
    output = record.model_dump(mode="json", by_alias=True)
    output["outcome"] = record.outcome.value
    return json.dumps(output, indent=2, default=str)


# ---------------------------------------------------------------------------
# Pipeline runner
# ---------------------------------------------------------------------------


def _suppress_logs() -> None:
    """Send log output to stderr at WARNING+ so stdout holds only the report."""
    import structlog

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(colors=False),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(logging.WARNING),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )

    root = logging.getLogger()
    root.handlers.clear()
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(logging.WARNING)
    root.addHandler(handler)
    root.setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


async def _run(
    url: str,
    overrides: dict[str, Any],
    json_output: bool,
    output_file: str | None,
    quiet: bool,
) -> int:
    # Deferred: src.main builds settings and logging at import.
    from src.main import build_pipeline

    if quiet:
        _suppress_logs()

    components = build_pipeline()
    pipeline = components["pipeline"]
    fetcher = components["fetcher"]
    options = DiscoveryOptions(**{**pipeline.default_options().model_dump(), **overrides})
    await components["staging_store"].initialize()

    print(f"Parsing: {url}", file=sys.stderr)
    start = time.monotonic()
    try:
        record = await pipeline.parse(url, options)
    finally:
        await fetcher.close()
    print(f"Done in {time.monotonic() - start:.1f}s", file=sys.stderr)

    text = format_json_output(record) if json_output else format_text_output(record)
    if output_file:
        Path(output_file).write_text(text, encoding="utf-8")
        print(f"Results written to: {output_file}", file=sys.stderr)
    else:
        print(text)

    return 0 if record.status is ParseStatus.PENDING_REVIEW else 1


# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python -m src.cli.parse",
        description=(
            "Discover karaoke schedules at a URL, extract them with the configured "
            "AI model, and stage the result for review."
        ),
    )
    parser.add_argument("url", type=str, help="Seed website or social-media group URL.")
    parser.add_argument(
        "--mode",
        choices=[m.value for m in DiscoveryMode],
        default=DiscoveryMode.AUTO.value,
        help="Discovery mode (default: auto-detect from the URL).",
    )
    parser.add_argument(
        "--max-units", type=int, default=None, help="Cap on discovered content units."
    )
    parser.add_argument(
        "--max-depth", type=int, default=None, help="Link hops to follow from the seed (0-3)."
    )
    parser.add_argument(
        "--include-subdomains",
        action="store_true",
        default=None,
        help="Treat subdomains of the seed host as the same site.",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        dest="json_output",
        help="Output the staged record as JSON.",
    )
    parser.add_argument(
        "--output", "-o",
        type=str,
        default=None,
        help="Write results to a file instead of stdout.",
    )
    parser.add_argument(
        "--quiet", "-q",
        action="store_true",
        help="Suppress log output (implied by --json).",
    )
    return parser


def overrides_from_args(args: argparse.Namespace) -> dict[str, Any]:
    """Discovery option overrides given on the command line."""
    overrides = {
        "mode": DiscoveryMode(args.mode),
        "max_units": args.max_units,
        "max_depth": args.max_depth,
        "include_subdomains": args.include_subdomains,
    }
    return {k: v for k, v in overrides.items() if v is not None}


def main() -> None:
    parser = build_parser()
    args = parser.parse_args()

    quiet = args.quiet or args.json_output
    if quiet:
        os.environ["LOG_LEVEL"] = "WARNING"

    overrides = overrides_from_args(args)
    try:
        DiscoveryOptions(**overrides)
    except ValueError as exc:
        parser.error(str(exc))
    exit_code = asyncio.run(_run(args.url, overrides, args.json_output, args.output, quiet))
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
