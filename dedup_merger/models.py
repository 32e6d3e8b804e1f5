"""Data models for dedup merger."""

from dataclasses import dataclass, replace
from enum import Enum
from pathlib import Path
from typing import Optional


class TransferMode(Enum):
    """How a new file is materialized in the destination."""
    COPY = "copy"
    MOVE = "move"


@dataclass(frozen=True)
class WorkItem:
    """A source file on its way to the destination tree."""
    source_path: Path
    dest_path: Path
    digest: Optional[str] = None

    def with_digest(self, digest: str) -> "WorkItem":
        return replace(self, digest=digest)


@dataclass
class MergeOptions:
    """Settings for a single merge run."""
    mode: TransferMode = TransferMode.COPY
    hash_algorithm: str = "sha256"
    chunk_size: int = 65536
    sort_entries: bool = False
    remove_source_after_fallback: bool = False
    preserve_metadata: bool = True
    show_progress: bool = True


@dataclass
class MergeStats:
    """Counters for a merge run. Each field is written by one stage only."""
    discovered: int = 0
    walk_errors: int = 0
    hash_errors: int = 0
    transferred: int = 0
    duplicates: int = 0
    transfer_errors: int = 0
    index_errors: int = 0

    @property
    def total_errors(self) -> int:
        return self.walk_errors + self.hash_errors + self.transfer_errors + self.index_errors
