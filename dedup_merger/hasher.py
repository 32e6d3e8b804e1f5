"""Content fingerprinting."""

import hashlib
import logging
from pathlib import Path
from typing import Optional

import xxhash

from .models import MergeStats, WorkItem
from .pipeline import Stage

HASH_ALGORITHMS = {
    "sha256": hashlib.sha256,
    "blake2b": hashlib.blake2b,
    # Fast but not cryptographic; accidental collisions are very unlikely, forged ones are not.
    "xxh128": xxhash.xxh128,
}

DEFAULT_ALGORITHM = "sha256"


def compute_file_hash(
    file_path: Path,
    algorithm: str = DEFAULT_ALGORITHM,
    chunk_size: int = 65536
) -> str:
    """Compute the hex digest of a file's full content."""
    hasher = HASH_ALGORITHMS[algorithm]()
    with open(file_path, 'rb') as f:
        while chunk := f.read(chunk_size):
            hasher.update(chunk)
    return hasher.hexdigest()


class Fingerprinter(Stage):
    """Attaches a content digest to each item; unreadable files are dropped."""

    name = "fingerprinter"

    def __init__(
        self,
        algorithm: str,
        chunk_size: int,
        stats: MergeStats,
        logger: logging.Logger
    ):
        super().__init__(logger)
        if algorithm not in HASH_ALGORITHMS:
            raise ValueError(f"Unknown hash algorithm: {algorithm}")
        self.algorithm = algorithm
        self.chunk_size = chunk_size
        self.stats = stats

    def handle(self, item: WorkItem) -> Optional[WorkItem]:
        try:
            digest = compute_file_hash(item.source_path, self.algorithm, self.chunk_size)
        except OSError as e:
            self.logger.error("Couldn't calculate checksum for file %s: %s", item.source_path, e)
            self.stats.hash_errors += 1
            return None
        return item.with_digest(digest)
