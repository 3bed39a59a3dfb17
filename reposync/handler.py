"""
Command line entrypoints for reposync

`reposync-sync` fetches README and repository details for every project in
the dataset that links a GitHub repository and writes the sync snapshot.
`reposync-report` reads that snapshot back and prints recommendations.
"""

import argparse
import asyncio
import logging
import sys
from typing import Optional, Sequence

from reposync.config.settings import settings
from reposync.jobs.sync import run_sync, run_sync_report

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    logging.basicConfig(
        level=logging.DEBUG if settings.DEBUG else settings.LOG_LEVEL,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


def _build_parser(prog: str, description: str, *, output_help: str) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog=prog, description=description)
    parser.add_argument(
        "--source",
        default=None,
        help=f"Project dataset to read (default: {settings.SYNC_SOURCE_PATH})",
    )
    parser.add_argument(
        "--output",
        default=None,
        help=f"{output_help} (default: {settings.SYNC_OUTPUT_PATH})",
    )
    return parser


def sync_main(argv: Optional[Sequence[str]] = None) -> int:
    """
    Run one sync and return the process exit code.

    Per-repository failures are reported in the summary and still exit 0.
    An unreadable dataset or an unwritable snapshot path exits 1.
    """
    parser = _build_parser(
        "reposync-sync",
        "Sync repository README and metadata into a snapshot file.",
        output_help="Snapshot file to write",
    )
    args = parser.parse_args(argv)
    configure_logging()

    print("Syncing projects from GitHub...\n")
    try:
        result = asyncio.run(run_sync(source_path=args.source, output_path=args.output))
    except Exception as e:
        logger.error(f"Sync failed: {e}", exc_info=True)
        print(f"Sync failed: {e}", file=sys.stderr)
        return 1

    if not result.get("skipped"):
        print("\nYou can now update project descriptions in the dataset based on the fetched README content.")
    return 0


def report_main(argv: Optional[Sequence[str]] = None) -> int:
    """Print the advisory report for the last snapshot."""
    parser = _build_parser(
        "reposync-report",
        "Compare the last sync snapshot with the project dataset.",
        output_help="Snapshot file to read",
    )
    args = parser.parse_args(argv)
    configure_logging()

    print("Checking project descriptions...\n")
    return run_sync_report(snapshot_path=args.output, source_path=args.source)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = list(sys.argv[1:] if argv is None else argv)
    command = args.pop(0) if args and args[0] in ("sync", "report") else "sync"
    if command == "report":
        return report_main(args)
    return sync_main(args)


# Allow local runs via `python -m reposync.handler [sync|report]`
if __name__ == "__main__":
    sys.exit(main())
