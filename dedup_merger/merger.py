"""Core merge logic."""

import logging
import os
import shutil
import threading
from pathlib import Path
from typing import Optional, Sequence

from tqdm import tqdm

from .db import DigestIndex, KeyValueStore, StoreError
from .hasher import Fingerprinter
from .models import MergeOptions, MergeStats, TransferMode, WorkItem
from .pipeline import Stage, make_handoff
from .walker import walk_sources

# Seconds to wait for workers to finish their current item after Ctrl-C.
SHUTDOWN_TIMEOUT = 10.0


def copy_file(
    src: Path,
    dst: Path,
    logger: logging.Logger,
    chunk_size: int = 65536,
    preserve_metadata: bool = True
) -> None:
    """
    Copy src to a new file at dst, creating parent directories if needed.

    The destination is created exclusively: if dst already exists the copy
    fails with FileExistsError and the existing file is left untouched.
    A partially written destination is removed when streaming fails.
    """
    with open(src, 'rb') as fsrc:
        os.makedirs(dst.parent, exist_ok=True)
        fdst = open(dst, 'xb')
        try:
            with fdst:
                shutil.copyfileobj(fsrc, fdst, chunk_size)
        except OSError:
            try:
                os.remove(dst)
            except OSError as e:
                logger.error("Couldn't remove partial copy %s: %s", dst, e)
            raise

    if preserve_metadata:
        try:
            shutil.copystat(src, dst)
        except OSError as e:
            logger.warning("Couldn't copy metadata from %s to %s: %s", src, dst, e)


def move_file(
    src: Path,
    dst: Path,
    logger: logging.Logger,
    chunk_size: int = 65536,
    preserve_metadata: bool = True,
    remove_source_after_copy: bool = False
) -> None:
    """
    Move src to dst, falling back to a copy when renaming fails.

    After a fallback copy the source is kept, unless remove_source_after_copy
    is set.
    """
    os.makedirs(dst.parent, exist_ok=True)
    # os.rename silently replaces an existing file on POSIX.
    if os.path.lexists(dst):
        raise FileExistsError(f"Destination already exists: {dst}")

    try:
        os.rename(src, dst)
        return
    except OSError as e:
        logger.warning("Renaming %s to %s failed (%s), trying to copy instead", src, dst, e)

    copy_file(src, dst, logger, chunk_size, preserve_metadata)

    if remove_source_after_copy:
        try:
            os.remove(src)
        except OSError as e:
            logger.warning("Copied %s but couldn't remove the source: %s", src, e)


class MergeEngine(Stage):
    """
    Places each new content digest in the destination exactly once.

    The engine is the only reader and writer of the digest index, and the
    only writer of the destination tree.
    """

    name = "merge engine"

    def __init__(
        self,
        index: DigestIndex,
        options: MergeOptions,
        stats: MergeStats,
        logger: logging.Logger,
        progress: Optional[tqdm] = None
    ):
        super().__init__(logger)
        self.index = index
        self.options = options
        self.stats = stats
        self.progress = progress

    def transfer(self, item: WorkItem) -> None:
        """Materialize item at its destination according to the run's mode."""
        if self.options.mode is TransferMode.MOVE:
            self.logger.debug("Moving file %s to %s", item.source_path, item.dest_path)
            move_file(
                item.source_path, item.dest_path, self.logger,
                chunk_size=self.options.chunk_size,
                preserve_metadata=self.options.preserve_metadata,
                remove_source_after_copy=self.options.remove_source_after_fallback
            )
        else:
            self.logger.debug("Copying file %s to %s", item.source_path, item.dest_path)
            copy_file(
                item.source_path, item.dest_path, self.logger,
                chunk_size=self.options.chunk_size,
                preserve_metadata=self.options.preserve_metadata
            )

    def merge(self, item: WorkItem) -> None:
        """Apply the check-then-act dedup rule to a fingerprinted item."""
        try:
            seen = self.index.contains(item.digest)
        except StoreError as e:
            self.logger.error(
                "Unable to check whether %s was already placed: %s. Skipping.",
                item.source_path, e
            )
            self.stats.index_errors += 1
            return

        if seen:
            self.logger.debug("Skipping file %s since its content already exists.", item.source_path)
            self.stats.duplicates += 1
            return

        try:
            self.transfer(item)
        except OSError as e:
            self.logger.error(
                "Couldn't transfer file %s to %s: %s", item.source_path, item.dest_path, e
            )
            self.stats.transfer_errors += 1
            return

        self.stats.transferred += 1
        try:
            self.index.record(item.digest, item.source_path)
        except StoreError as e:
            self.logger.error("Couldn't record digest of %s: %s", item.source_path, e)
            self.stats.index_errors += 1

    def handle(self, item: WorkItem) -> None:
        self.merge(item)
        if self.progress is not None:
            self.progress.update(1)
        return None


def merge_trees(
    sources: Sequence[Path],
    dest_root: Path,
    store: KeyValueStore,
    options: MergeOptions,
    logger: logging.Logger
) -> MergeStats:
    """
    Merge the source trees into dest_root, placing each unique content once.

    The walk runs on the calling thread while one fingerprinter and one
    merge engine thread hash and transfer, connected by handoff queues.
    Returns once every discovered file has been processed. On Ctrl-C the
    workers are stopped and joined before KeyboardInterrupt propagates, so
    the store is no longer in use when the caller closes it.

    Args:
        sources: Absolute source roots, walked one after the other
        dest_root: Absolute destination root
        store: Fresh, empty store backing the digest index
        options: Run settings
        logger: Logger handed to every stage

    Returns:
        Counters for the run
    """
    stats = MergeStats()
    hashing = make_handoff()
    merging = make_handoff()

    fingerprinter = Fingerprinter(options.hash_algorithm, options.chunk_size, stats, logger)

    with tqdm(desc="Merging", unit="file", disable=not options.show_progress) as pbar:
        engine = MergeEngine(DigestIndex(store), options, stats, logger, progress=pbar)

        workers = [
            threading.Thread(
                target=fingerprinter.run, args=(hashing, merging),
                name="fingerprinter", daemon=True
            ),
            threading.Thread(
                target=engine.run, args=(merging,),
                name="merge-engine", daemon=True
            ),
        ]
        for worker in workers:
            worker.start()

        try:
            walk_sources(
                sources, dest_root, hashing, stats, logger,
                sort_entries=options.sort_entries
            )
        except KeyboardInterrupt:
            # In-flight items finish, queued ones are skipped.
            for stage in (fingerprinter, engine):
                stage.stop()
            for worker in workers:
                worker.join(timeout=SHUTDOWN_TIMEOUT)
            raise

        for worker in workers:
            worker.join()

    for stage in (fingerprinter, engine):
        if stage.error is not None:
            raise stage.error

    return stats
