"""Source tree walking."""

import logging
import os
import queue
import stat
from pathlib import Path
from typing import Iterable, Iterator, Optional, Sequence

from .models import MergeStats, WorkItem
from .pipeline import close


def iter_work_items(
    root: Path,
    dest_root: Path,
    logger: logging.Logger,
    sort_entries: bool = False,
    exclude: Iterable[Path] = (),
    stats: Optional[MergeStats] = None
) -> Iterator[WorkItem]:
    """
    Yield a WorkItem for every regular file under root.

    Args:
        root: Absolute source root
        dest_root: Destination root the relative paths are re-rooted under
        logger: Receives per-entry traversal errors
        sort_entries: Visit directory entries in lexical order
        exclude: Directories to prune from the walk
        stats: Optional counters for discovered files and walk errors
    """
    excluded = {os.path.normcase(str(p)) for p in exclude}

    def on_error(error: OSError) -> None:
        logger.error("Cannot read directory %s: %s", error.filename, error.strerror or error)
        if stats is not None:
            stats.walk_errors += 1

    for dirpath, dirnames, filenames in os.walk(root, onerror=on_error):
        if excluded:
            dirnames[:] = [
                d for d in dirnames
                if os.path.normcase(os.path.join(dirpath, d)) not in excluded
            ]
        if sort_entries:
            dirnames.sort()
            filenames.sort()

        for filename in filenames:
            abs_path = Path(dirpath) / filename
            try:
                mode = os.lstat(abs_path).st_mode
            except OSError as e:
                logger.error("Cannot stat %s: %s", abs_path, e)
                if stats is not None:
                    stats.walk_errors += 1
                continue
            # Symlinks, sockets, fifos and devices are never emitted.
            if not stat.S_ISREG(mode):
                logger.debug("Skipping non-regular file %s", abs_path)
                continue

            if stats is not None:
                stats.discovered += 1
            yield WorkItem(
                source_path=abs_path,
                dest_path=dest_root / abs_path.relative_to(root)
            )


def walk_sources(
    roots: Sequence[Path],
    dest_root: Path,
    outbox: "queue.Queue[object]",
    stats: MergeStats,
    logger: logging.Logger,
    sort_entries: bool = False
) -> None:
    """Walk each root in turn, handing every file to outbox, then close it."""
    try:
        for root in roots:
            logger.debug("Walking %s", root)
            items = iter_work_items(
                root, dest_root, logger,
                sort_entries=sort_entries,
                exclude=[dest_root],
                stats=stats
            )
            for item in items:
                outbox.put(item)
    finally:
        close(outbox)
