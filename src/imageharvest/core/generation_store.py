"""SQLite persistence collaborator for finished generations.

Records request metadata and the outcome of each generation. Image bytes are
not stored; only the prompt, provider, outcome and timing.
"""

from __future__ import annotations

import logging
import sqlite3
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any, Protocol

from .results import GenerationRequest, GenerationResult

logger = logging.getLogger(__name__)


class GenerationStore(Protocol):
    def save(self, request: GenerationRequest, result: GenerationResult) -> str:
        """Store a finished generation and return its record id."""
        ...


class SqliteGenerationStore:
    """Manage generation records using SQLite."""

    def __init__(self, db_path: Path):
        """Initialize the generation database.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._initialize_db()
        logger.info(f"Initialized generation database at {self.db_path}")

    def _initialize_db(self) -> None:
        """Create database schema if it doesn't exist."""
        with sqlite3.connect(self.db_path) as conn:
            cursor = conn.cursor()

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS generations (
                    id TEXT PRIMARY KEY,
                    request_id TEXT NOT NULL,
                    provider_id TEXT,
                    user_id TEXT,
                    prompt TEXT NOT NULL,
                    original_prompt TEXT,
                    guidance REAL,
                    success INTEGER NOT NULL,
                    error_kind TEXT,
                    error_message TEXT,
                    attempts INTEGER NOT NULL DEFAULT 0,
                    duration_ms INTEGER NOT NULL DEFAULT 0,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
                """)

            cursor.execute("""
                CREATE INDEX IF NOT EXISTS idx_generations_created_at
                ON generations(created_at DESC)
                """)

            conn.commit()

    def save(self, request: GenerationRequest, result: GenerationResult) -> str:
        """Insert one generation record.

        Args:
            request: The queued request
            result: Its outcome

        Returns:
            The new record id
        """
        record_id = uuid.uuid4().hex
        error = result.error

        with sqlite3.connect(self.db_path) as conn:
            conn.execute(
                """
                INSERT INTO generations (
                    id, request_id, provider_id, user_id, prompt, original_prompt,
                    guidance, success, error_kind, error_message, attempts,
                    duration_ms, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    record_id,
                    result.request_id,
                    result.provider_id,
                    request.user_id,
                    request.prompt,
                    request.original_prompt,
                    request.guidance,
                    int(result.success),
                    error.kind.value if error else None,
                    error.message if error else None,
                    result.attempts,
                    result.duration_ms,
                    datetime.now().isoformat(),
                ),
            )
            conn.commit()

        logger.debug(f"Stored generation record {record_id} ({result.provider_id})")
        return record_id

    def get(self, record_id: str) -> dict[str, Any] | None:
        with sqlite3.connect(self.db_path) as conn:
            conn.row_factory = sqlite3.Row
            row = conn.execute("SELECT * FROM generations WHERE id = ?", (record_id,)).fetchone()
        return dict(row) if row else None

    def list_recent(self, limit: int = 20) -> list[dict[str, Any]]:
        """Most recent records first."""
        with sqlite3.connect(self.db_path) as conn:
            conn.row_factory = sqlite3.Row
            rows = conn.execute(
                "SELECT * FROM generations ORDER BY created_at DESC LIMIT ?", (limit,)
            ).fetchall()
        return [dict(row) for row in rows]

    def get_count(self) -> int:
        with sqlite3.connect(self.db_path) as conn:
            return conn.execute("SELECT COUNT(*) FROM generations").fetchone()[0]
