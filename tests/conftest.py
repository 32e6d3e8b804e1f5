"""Shared test fixtures."""

import logging
import tempfile
from pathlib import Path

import pytest

from dedup_merger.db import DigestIndex, SQLiteStore
from dedup_merger.models import MergeOptions, MergeStats, WorkItem


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def logger():
    """Logger handed to components under test; propagates so caplog sees it."""
    return logging.getLogger("tests.dedup_merger")


@pytest.fixture
def sample_folders(temp_dir):
    """Create two source folders with duplicates inside and across them."""
    folder1 = temp_dir / "folder1"
    folder2 = temp_dir / "folder2"
    output = temp_dir / "output"

    folder1.mkdir()
    folder2.mkdir()

    (folder1 / "only_in_1.txt").write_text("only in folder 1")
    (folder1 / "subdir").mkdir()
    (folder1 / "subdir" / "nested.txt").write_text("nested in folder 1")

    (folder2 / "only_in_2.txt").write_text("only in folder 2")

    # Same content under a different name in the second folder
    (folder1 / "photo.jpg").write_bytes(b"\xff\xd8 jpeg bytes")
    (folder2 / "photo_copy.jpg").write_bytes(b"\xff\xd8 jpeg bytes")

    # Same name, different content
    (folder1 / "conflict.txt").write_text("content from folder 1")
    (folder2 / "conflict.txt").write_text("content from folder 2")

    return folder1, folder2, output


@pytest.fixture
def db_path(temp_dir):
    """Create a temporary database path."""
    return temp_dir / "test_digests.db"


@pytest.fixture
def store(db_path):
    """Create a SQLiteStore instance."""
    s = SQLiteStore(db_path)
    yield s
    try:
        s.close()
    except Exception:
        pass


@pytest.fixture
def digest_index(store):
    return DigestIndex(store)


@pytest.fixture
def stats():
    return MergeStats()


@pytest.fixture
def quiet_options():
    """Default options without a progress bar."""
    return MergeOptions(show_progress=False)


@pytest.fixture
def sample_work_item():
    """Create a sample WorkItem for testing."""
    return WorkItem(
        source_path=Path("/absolute/src/test/file.txt"),
        dest_path=Path("/absolute/dst/test/file.txt"),
    )
