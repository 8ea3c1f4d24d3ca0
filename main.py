#!/usr/bin/env python3
"""
CoralHydro2k Explorer - Main Entry Point

Loads the CoralHydro2k LiPD archive, filters it, and renders the walkthrough
figures (global map, record dashboard, spatiotemporal summaries, stack plot).

Usage:
    python main.py                          # Default lipdverse archive, open figures
    python main.py --source ch2k.zip        # Local .zip / .lpd / directory
    python main.py --output-dir figures     # Also export HTML (+ PNG stack plot)
    python main.py --no-show --output-dir figures
    python main.py --refresh                # Re-download and re-parse
    python main.py -f "geo_ocean == Indian Ocean" -f "minYear <= 1900"
    python main.py --verbose                # Show debug logging
"""

import argparse
import sys


def _record_arg(value: str):
    """Record given as an integer index or a dataset name."""
    try:
        return int(value)
    except ValueError:
        return value


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="CoralHydro2k Explorer")
    parser.add_argument(
        "--source",
        default=None,
        help="Archive URL or local path (default: ARCHIVE_URL from config)",
    )
    parser.add_argument(
        "--record", "-r",
        type=_record_arg,
        default=122,
        help="Record for the single-record dashboard: 0-based index or dataset name (default: 122)",
    )
    parser.add_argument(
        "--output-dir", "-o",
        default=None,
        help="Directory to export figures to (HTML, plus the stack plot as PNG)",
    )
    parser.add_argument(
        "--no-show",
        dest="show",
        action="store_false",
        help="Do not open figures on the display",
    )
    parser.add_argument(
        "--filter", "-f",
        dest="filters",
        action="append",
        default=None,
        metavar="EXPR",
        help="Extra filter '<column> <op> <value>' over the primary series (repeatable, ANDed)",
    )
    parser.add_argument(
        "--refresh",
        action="store_true",
        help="Ignore cached downloads and tables",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Show debug logging on the console",
    )
    return parser


def main(argv=None) -> int:
    """Run the walkthrough. Returns the process exit status."""
    args = build_parser().parse_args(argv)

    from explorer.logging import get_current_log_file, log_error, setup_logging

    logger = setup_logging(verbose=args.verbose)

    try:
        from explorer.pipeline import run_walkthrough
        figures = run_walkthrough(
            source=args.source,
            record=args.record,
            show=args.show,
            output_dir=args.output_dir,
            refresh=args.refresh,
            filters=args.filters,
        )
    except Exception as e:
        log_error(
            "Walkthrough failed",
            exc=e,
            context={"source": args.source, "record": args.record, "filters": args.filters},
        )
        print(f"Error: {e}", file=sys.stderr)
        print(f"Details in {get_current_log_file()}", file=sys.stderr)
        return 1

    logger.info(f"Built {len(figures)} figures: {', '.join(figures)}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
