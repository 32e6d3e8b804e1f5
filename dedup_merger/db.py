"""SQLite-backed digest index for the current merge run."""

import os
import sqlite3
from abc import ABC, abstractmethod
from pathlib import Path


class StoreError(Exception):
    """The key-value store failed for a reason other than a missing key."""


class KeyNotFoundError(KeyError):
    """The requested key is not in the store."""


class KeyValueStore(ABC):
    """Minimal key-value store the digest index is built on.

    Keys are text, values are raw bytes.
    """

    @abstractmethod
    def get(self, key: str) -> bytes:
        """Return the value for key, raising KeyNotFoundError if absent."""

    @abstractmethod
    def set(self, key: str, value: bytes) -> None:
        """Store a value under key."""

    def close(self) -> None:
        pass

    def __enter__(self) -> "KeyValueStore":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class SQLiteStore(KeyValueStore):
    """Append-only key-value store in a single SQLite table."""

    def __init__(self, db_path: Path):
        self.db_path = db_path
        try:
            # Created on the control thread, used by the merge worker only.
            self.conn = sqlite3.connect(
                str(db_path), isolation_level=None, check_same_thread=False
            )
            self.conn.execute("PRAGMA journal_mode=WAL")
            self._init_schema()
        except sqlite3.Error as e:
            raise StoreError(f"cannot open digest store at {db_path}: {e}") from e

    def _init_schema(self) -> None:
        """Initialize database schema."""
        self.conn.executescript("""
            CREATE TABLE IF NOT EXISTS digests (
                digest TEXT PRIMARY KEY,
                source_path BLOB NOT NULL
            );
        """)

    def get(self, key: str) -> bytes:
        try:
            cursor = self.conn.execute(
                "SELECT source_path FROM digests WHERE digest = ?", (key,)
            )
            row = cursor.fetchone()
        # ValueError covers keys sqlite3 cannot encode.
        except (sqlite3.Error, ValueError) as e:
            raise StoreError(f"lookup of {key!r} failed: {e}") from e
        if row is None:
            raise KeyNotFoundError(key)
        return bytes(row[0])

    def set(self, key: str, value: bytes) -> None:
        try:
            self.conn.execute(
                "INSERT INTO digests (digest, source_path) VALUES (?, ?)",
                (key, sqlite3.Binary(value))
            )
        except (sqlite3.Error, ValueError) as e:
            raise StoreError(f"cannot record {key!r}: {e}") from e

    def close(self) -> None:
        """Close the database connection."""
        self.conn.close()


class DigestIndex:
    """Set of content digests already placed in the destination this run.

    The stored value (first source path) is informational; only presence
    of a digest matters.
    """

    def __init__(self, store: KeyValueStore):
        self.store = store

    def contains(self, digest: str) -> bool:
        try:
            self.store.get(digest)
        except KeyNotFoundError:
            return False
        return True

    def record(self, digest: str, source_path: Path) -> None:
        # fsencode round-trips file names that are not valid UTF-8.
        self.store.set(digest, os.fsencode(source_path))
