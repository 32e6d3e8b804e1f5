"""Command-line interface for dedup merger."""

import argparse
import enum
import logging
import shutil
import sys
import tempfile
from pathlib import Path
from typing import Optional, Sequence

from tqdm.contrib.logging import logging_redirect_tqdm

from .db import SQLiteStore, StoreError
from .hasher import DEFAULT_ALGORITHM, HASH_ALGORITHMS
from .merger import merge_trees
from .models import MergeOptions, MergeStats, TransferMode

PROG_NAME = "dedup-merge"


class ExitStatus(enum.IntFlag):
    """Process exit statuses, one bit per failure class."""
    OK = 0
    INVALID_PARAMS = 1
    CREATE_TMP_DIR_FAILED = 2
    OPEN_DB_FAILED = 4
    INTERRUPTED = 8
    STAGE_FAILED = 16


class ArgumentParser(argparse.ArgumentParser):
    """ArgumentParser that exits with INVALID_PARAMS on usage errors."""

    def error(self, message: str) -> None:
        self.print_usage(sys.stderr)
        self.exit(int(ExitStatus.INVALID_PARAMS), f"{self.prog}: error: {message}\n")


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = ArgumentParser(
        prog=PROG_NAME,
        description="Merge folders into a destination folder, keeping one copy of each file content.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s /path/to/merged /path/to/backup1 /path/to/backup2
  %(prog)s --move --sort merged_photos dump1 dump2 dump3
        """
    )

    parser.add_argument("destination", type=Path, help="Destination folder for merged content")
    parser.add_argument("sources", type=Path, nargs="+", help="Source folders, merged in this order")

    parser.add_argument(
        "--move", "-m",
        action="store_true",
        help="Move files to the destination instead of copying"
    )

    parser.add_argument(
        "--strict-move",
        action="store_true",
        help="With --move, delete the source even when it had to be copied instead of renamed"
    )

    parser.add_argument(
        "--hash",
        choices=sorted(HASH_ALGORITHMS),
        default=DEFAULT_ALGORITHM,
        help=f"Content hash algorithm (default: {DEFAULT_ALGORITHM}). xxh128 is faster but not "
             "cryptographic, so crafted files could collide and be skipped as duplicates"
    )

    parser.add_argument(
        "--sort",
        action="store_true",
        help="Walk directories in lexical order so the first copy kept is deterministic"
    )

    parser.add_argument(
        "--no-progress",
        action="store_true",
        help="Don't show a progress bar"
    )

    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Log every transfer and skipped duplicate"
    )

    return parser.parse_args(argv)


def validate_args(args: argparse.Namespace) -> None:
    """Validate command-line arguments."""
    for source in args.sources:
        if not source.exists():
            print(f"Error: Source folder does not exist: {source}")
            sys.exit(ExitStatus.INVALID_PARAMS)
        if not source.is_dir():
            print(f"Error: Source is not a directory: {source}")
            sys.exit(ExitStatus.INVALID_PARAMS)
    if args.destination.exists() and not args.destination.is_dir():
        print(f"Error: Destination is not a directory: {args.destination}")
        sys.exit(ExitStatus.INVALID_PARAMS)
    if args.strict_move and not args.move:
        print("Error: --strict-move requires --move")
        sys.exit(ExitStatus.INVALID_PARAMS)


def build_options(args: argparse.Namespace) -> MergeOptions:
    """Translate parsed arguments into run settings."""
    return MergeOptions(
        mode=TransferMode.MOVE if args.move else TransferMode.COPY,
        hash_algorithm=args.hash,
        sort_entries=args.sort,
        remove_source_after_fallback=args.strict_move,
        show_progress=not args.no_progress,
    )


def setup_logging(verbose: bool = False) -> logging.Logger:
    """Configure the dedup_merger logger for console output."""
    logger = logging.getLogger("dedup_merger")
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    logger.propagate = False

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
    logger.addHandler(handler)

    return logger


def cleanup_index_dir(index_dir: Path, logger: logging.Logger) -> None:
    """Remove the temporary index directory, reporting but not raising on failure."""
    try:
        shutil.rmtree(index_dir)
    except OSError as e:
        logger.error("Unable to clean up temporary files in %s: %s", index_dir, e)


def print_summary(stats: MergeStats, destination: Path) -> None:
    print("\n" + "=" * 60)
    print("MERGE COMPLETE!")
    print("=" * 60)
    print(f"Destination folder: {destination}")
    print(f"Files found: {stats.discovered}")
    print(f"  - Transferred: {stats.transferred}")
    print(f"  - Duplicates skipped: {stats.duplicates}")
    if stats.total_errors:
        print(f"  - Errors (skipped): {stats.total_errors}")


def main(argv: Optional[Sequence[str]] = None) -> None:
    """Main entry point."""
    args = parse_args(argv)
    validate_args(args)

    logger = setup_logging(args.verbose)
    options = build_options(args)
    sources = [source.absolute() for source in args.sources]
    destination = args.destination.absolute()

    try:
        index_dir = Path(tempfile.mkdtemp(prefix=f"{PROG_NAME}-"))
    except OSError as e:
        logger.error("Creation of temporary directory failed: %s", e)
        sys.exit(ExitStatus.CREATE_TMP_DIR_FAILED)

    try:
        try:
            store = SQLiteStore(index_dir / "digests.db")
        except StoreError as e:
            logger.error("Temporary working DB initialization failed: %s", e)
            sys.exit(ExitStatus.OPEN_DB_FAILED)

        print("=" * 60)
        print("DEDUP MERGER")
        print("=" * 60)
        for source in sources:
            print(f"Source: {source}")
        print(f"Destination: {destination}")
        print(f"Mode: {options.mode.value}, hash: {options.hash_algorithm}")

        try:
            with store, logging_redirect_tqdm(loggers=[logger]):
                stats = merge_trees(sources, destination, store, options, logger)
        except KeyboardInterrupt:
            print("\n\nInterrupted! Files placed so far are complete; the rest were not visited.")
            sys.exit(ExitStatus.INTERRUPTED)
        except Exception as e:
            logger.exception("Merge aborted by an unexpected error: %s", e)
            sys.exit(ExitStatus.STAGE_FAILED)

        print_summary(stats, destination)
    finally:
        cleanup_index_dir(index_dir, logger)
