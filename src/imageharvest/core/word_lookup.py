"""Word-lookup collaborators used to resolve ``${word}`` template variables.

A word lookup maps a category name (``color``, ``animal``, ``lighting``) to a
list of candidate replacements. An empty list is a valid, non-error outcome:
the resolver then falls back to the bare word.

Implementations
---------------
- **InMemoryWordLookup**: Static mapping, used for tests and warmup data
- **DirectoryWordLookup**: One text file per category, one candidate per line
- **SqliteWordLookup**: ``word_types`` table with JSON candidate lists and
  add/delete management
- **CachedWordLookup**: Bounded cache in front of any of the above

File Organization
-----------------
DirectoryWordLookup expects a directory laid out like this:
    words/
    ├── color.txt
    ├── animal.txt
    └── styles/
        └── painter.txt

Each file contains one candidate per line:
    # color.txt
    crimson
    teal
    ochre

Nested files are addressed by their relative path without the suffix
(``styles/painter``). Spaces in multi-word category names map to underscores,
so ``${eye color}`` reads ``eye_color.txt``.

Usage Example
-------------
    >>> lookup = CachedWordLookup(DirectoryWordLookup(Path("data/words")), max_size=100)
    >>> await lookup.lookup("color")
    ['crimson', 'teal', 'ochre']
"""

from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
from collections.abc import Iterable, Mapping
from datetime import datetime
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

logger = logging.getLogger(__name__)


@runtime_checkable
class WordLookup(Protocol):
    """Anything that can list candidate replacements for a category word."""

    async def lookup(self, word: str) -> list[str]:
        """Return candidates for ``word``; an empty list means no match."""
        ...


class InMemoryWordLookup:
    """Word lookup backed by a plain mapping (case-insensitive keys)."""

    def __init__(self, words: Mapping[str, Iterable[str]] | None = None) -> None:
        self._words: dict[str, list[str]] = {
            key.lower(): list(values) for key, values in (words or {}).items()
        }

    async def lookup(self, word: str) -> list[str]:
        return list(self._words.get(word.lower(), []))


class DirectoryWordLookup:
    """Read category candidates from text files in a directory.

    File contents are cached in memory after first read. Call clear_cache()
    if files are modified during runtime.

    Attributes
    ----------
    words_dir : Path
        Directory containing category text files
    _file_cache : dict
        Cache of file contents (category -> list of lines)

    Notes
    -----
    - Empty lines and lines starting with ``#`` are skipped
    - All lines are trimmed of whitespace
    - Category names that would escape ``words_dir`` resolve to no candidates
    """

    def __init__(self, words_dir: Path):
        """
        Initialize the directory lookup.

        Args:
            words_dir: Directory containing category text files
        """
        self.words_dir = Path(words_dir)
        self._file_cache: dict[str, list[str]] = {}

    def scan_categories(self) -> list[str]:
        """
        Scan the words directory for category files.

        Returns:
            Sorted category names (relative paths without the .txt suffix)
        """
        if not self.words_dir.exists():
            logger.warning(f"Words directory does not exist: {self.words_dir}")
            return []

        categories = []
        for txt_file in self.words_dir.rglob("*.txt"):
            relative_path = txt_file.relative_to(self.words_dir).with_suffix("")
            categories.append(relative_path.as_posix())

        return sorted(categories)

    def _category_path(self, word: str) -> Path | None:
        """Map a category name to its file, refusing paths outside words_dir."""
        name = word.strip().lower().replace(" ", "_")
        if not name:
            return None

        try:
            full_path = (self.words_dir / f"{name}.txt").resolve()
            base_resolved = self.words_dir.resolve()
        except (ValueError, OSError) as e:
            logger.warning(f"Invalid category name {word!r}: {e}")
            return None

        if not full_path.is_relative_to(base_resolved):
            logger.warning(f"Path traversal attempt detected in category: {word!r}")
            return None

        return full_path

    def read_category(self, word: str) -> list[str]:
        """Read candidates for a category with caching.

        Args:
            word: Category name, e.g. ``color`` or ``styles/painter``

        Returns:
            List of non-empty, stripped lines (empty if the file is missing)
        """
        key = word.strip().lower()
        if key in self._file_cache:
            return self._file_cache[key]

        full_path = self._category_path(word)
        if full_path is None or not full_path.exists():
            return []

        try:
            with open(full_path, encoding="utf-8") as f:
                lines = [
                    line.strip()
                    for line in f.readlines()
                    if line.strip() and not line.lstrip().startswith("#")
                ]
        except OSError as e:
            logger.error(f"Error reading category file {full_path}: {e}")
            return []

        self._file_cache[key] = lines
        return lines

    async def lookup(self, word: str) -> list[str]:
        return list(self.read_category(word))

    def clear_cache(self) -> None:
        """Clear the file content cache."""
        self._file_cache.clear()


class SqliteWordLookup:
    """Word types stored in SQLite.

    Each row maps a lower-cased word to a JSON array of candidate types.
    Supports lookup plus add/update and delete of word types.
    """

    def __init__(self, db_path: Path):
        """Initialize the word-type database.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._initialize_db()
        logger.info(f"Initialized word-type database at {self.db_path}")

    def _initialize_db(self) -> None:
        """Create database schema if it doesn't exist."""
        with sqlite3.connect(self.db_path) as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS word_types (
                    word TEXT PRIMARY KEY,
                    types TEXT NOT NULL,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
                """)
            conn.commit()

    async def lookup(self, word: str) -> list[str]:
        return await asyncio.to_thread(self.get_types, word)

    def get_types(self, word: str) -> list[str]:
        """Blocking read of the candidate list for ``word``."""
        with sqlite3.connect(self.db_path) as conn:
            row = conn.execute(
                "SELECT types FROM word_types WHERE word = ?", (word.lower(),)
            ).fetchone()

        if row is None:
            return []

        try:
            types = json.loads(row[0])
        except json.JSONDecodeError:
            logger.error(f"Corrupt types column for word: {word}")
            return []

        return [str(t) for t in types] if isinstance(types, list) else []

    def add_word_type(self, word: str, types: list[str]) -> None:
        """Insert or replace the candidate list for a word.

        Args:
            word: Category word (stored lower-cased)
            types: Non-empty list of candidates

        Raises:
            ValueError: If word is empty or types is not a non-empty list
        """
        if not word or not isinstance(word, str):
            raise ValueError("Invalid word parameter")
        if not isinstance(types, list) or not types:
            raise ValueError("Invalid types parameter - must be non-empty array")

        with sqlite3.connect(self.db_path) as conn:
            conn.execute(
                """
                INSERT INTO word_types (word, types, updated_at) VALUES (?, ?, ?)
                ON CONFLICT(word) DO UPDATE SET types = excluded.types,
                                                updated_at = excluded.updated_at
                """,
                (word.lower(), json.dumps(types), datetime.now().isoformat()),
            )
            conn.commit()

        logger.info(f"Stored {len(types)} types for word: {word.lower()}")

    def delete_word_type(self, word: str) -> bool:
        """Delete a word.

        Returns:
            True if a row was removed, False if the word was not present
        """
        with sqlite3.connect(self.db_path) as conn:
            cursor = conn.execute("DELETE FROM word_types WHERE word = ?", (word.lower(),))
            conn.commit()
            return cursor.rowcount > 0


class CachedWordLookup:
    """Bounded cache in front of another word lookup.

    When the cache is full the entry with the fewest hits is evicted. Empty
    results are cached too, so repeated misses do not hit the backing store.
    """

    DEFAULT_WARMUP = ("cat", "dog", "color", "style", "art", "lighting", "background")

    def __init__(self, inner: WordLookup, max_size: int = 100) -> None:
        self._inner = inner
        self.max_size = max_size
        self._cache: dict[str, list[str]] = {}
        self._hits: dict[str, int] = {}
        self._reset_stats()

    def _reset_stats(self) -> None:
        self.stats = {"cache_hits": 0, "cache_misses": 0, "lookups": 0}

    async def lookup(self, word: str) -> list[str]:
        key = word.lower()
        self.stats["lookups"] += 1

        if key in self._cache:
            self.stats["cache_hits"] += 1
            self._hits[key] += 1
            return list(self._cache[key])

        self.stats["cache_misses"] += 1
        candidates = await self._inner.lookup(word)
        self._store(key, candidates)
        return list(candidates)

    def _store(self, key: str, candidates: list[str]) -> None:
        if len(self._cache) >= self.max_size:
            self._evict()
        self._cache[key] = list(candidates)
        self._hits[key] = 1

    def _evict(self) -> None:
        victim = min(self._hits, key=self._hits.__getitem__, default=None)
        if victim is not None:
            del self._cache[victim]
            del self._hits[victim]

    async def warmup(self, words: Iterable[str] | None = None) -> int:
        """Pre-load common words. Returns the number of words that had candidates."""
        loaded = 0
        for word in words or self.DEFAULT_WARMUP:
            if word.lower() in self._cache:
                continue
            candidates = await self._inner.lookup(word)
            self._store(word.lower(), candidates)
            loaded += bool(candidates)
        logger.info(f"Word cache warmed: {loaded} words with candidates")
        return loaded

    def get_cache_stats(self) -> dict[str, Any]:
        lookups = self.stats["lookups"]
        hit_rate = (self.stats["cache_hits"] / lookups * 100) if lookups else 0.0
        return {
            "cache_size": len(self._cache),
            "max_cache_size": self.max_size,
            **self.stats,
            "hit_rate": f"{hit_rate:.2f}%",
        }

    def clear_cache(self) -> None:
        self._cache.clear()
        self._hits.clear()
        self._reset_stats()


def build_word_lookup(
    words_dir: Path, word_db_path: Path | None, cache_size: int
) -> CachedWordLookup:
    """Create the configured word lookup: SQLite when a database is set, else files."""
    inner: WordLookup
    if word_db_path is not None:
        inner = SqliteWordLookup(word_db_path)
    else:
        inner = DirectoryWordLookup(words_dir)
    return CachedWordLookup(inner, max_size=cache_size)
