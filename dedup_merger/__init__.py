"""
Dedup Merger - A CLI tool to merge folders into a destination without duplicate content.

Features:
- Merges any number of source folders into one destination tree
- Each unique file content is placed exactly once (first one found wins)
- Copy or move mode, with a copy fallback when a rename is not possible
- Streaming walk -> hash -> merge pipeline on worker threads
- Temporary SQLite-backed digest index, removed at the end of the run
- Progress visualization
"""

__version__ = "1.0.0"
