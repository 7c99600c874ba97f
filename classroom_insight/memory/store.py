"""
EmbeddingMemoryStore: SQLite-backed per-student memory of tutoring exchanges,
searched by embedding similarity.
"""

import sqlite3
import json
import hashlib
from pathlib import Path
from typing import Optional, List
from contextlib import contextmanager

from classroom_insight.memory.base import MemoryExcerpt
from classroom_insight.shared.config import MemoryConfig, settings
from classroom_insight.shared.embeddings import EmbeddingClient, cosine_similarity
from classroom_insight.shared.exceptions import EnrichmentError
from classroom_insight.shared.logging import get_logger

logger = get_logger(__name__)


class EmbeddingMemoryStore:
    """Memory store with WAL mode and content-hash deduplication."""

    def __init__(
        self,
        db_path: Optional[Path] = None,
        embedder: Optional[EmbeddingClient] = None,
        config: Optional[MemoryConfig] = None
    ):
        self.config = config or settings.memory
        self.db_path = Path(db_path or self.config.db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._embedder = embedder

        self._init_database()

    @property
    def embedder(self) -> EmbeddingClient:
        # Built on first use so a store without credentials can still be opened
        if self._embedder is None:
            self._embedder = EmbeddingClient()
        return self._embedder

    def _init_database(self):
        """Initialize database schema."""
        with self._get_connection() as conn:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.executescript("""
                CREATE TABLE IF NOT EXISTS memories (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    student_id TEXT NOT NULL,
                    question TEXT NOT NULL,
                    answer TEXT NOT NULL,
                    topic TEXT,
                    content_hash TEXT NOT NULL,
                    embedding_json TEXT NOT NULL,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                );

                CREATE INDEX IF NOT EXISTS idx_memories_student ON memories(student_id);
                CREATE UNIQUE INDEX IF NOT EXISTS idx_memories_student_hash
                    ON memories(student_id, content_hash);
            """)

    @contextmanager
    def _get_connection(self):
        """Get database connection with proper error handling."""
        conn = sqlite3.connect(str(self.db_path), timeout=30.0)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise EnrichmentError(f"Memory store operation failed: {str(e)}") from e
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def is_available(self) -> bool:
        return self.config.enabled

    async def remember(
        self,
        student_id: str,
        question: str,
        answer: str,
        topic: Optional[str] = None
    ) -> int:
        """
        Store a tutoring exchange for a student.

        Returns:
            Row id; the existing id when the same exchange was already stored
        """
        content_hash = hashlib.sha256(f"{question}\n{answer}".encode()).hexdigest()

        with self._get_connection() as conn:
            existing = conn.execute(
                "SELECT id FROM memories WHERE student_id = ? AND content_hash = ?",
                (student_id, content_hash)
            ).fetchone()
            if existing:
                logger.debug(f"Duplicate exchange detected, skipping: {content_hash[:8]}")
                return existing["id"]

        embedding = await self.embedder.embed(f"{question}\n{answer}")

        with self._get_connection() as conn:
            cursor = conn.execute(
                """INSERT OR IGNORE INTO memories
                       (student_id, question, answer, topic, content_hash, embedding_json)
                   VALUES (?, ?, ?, ?, ?, ?)""",
                (student_id, question, answer, topic, content_hash, json.dumps(embedding))
            )
            if cursor.rowcount:
                return cursor.lastrowid
            row = conn.execute(
                "SELECT id FROM memories WHERE student_id = ? AND content_hash = ?",
                (student_id, content_hash)
            ).fetchone()
            return row["id"]

    async def retrieve_relevant(
        self,
        student_id: str,
        query: str,
        limit: int = 3
    ) -> List[MemoryExcerpt]:
        """
        Rank a student's stored exchanges by similarity to the query.

        Exchanges below the configured similarity floor are dropped.
        """
        if not self.is_available() or limit <= 0:
            return []

        with self._get_connection() as conn:
            rows = conn.execute(
                """SELECT question, answer, topic, embedding_json, created_at
                   FROM memories
                   WHERE student_id = ?
                   ORDER BY created_at DESC, id DESC
                   LIMIT ?""",
                (student_id, self.config.max_candidates)
            ).fetchall()

        if not rows:
            return []

        query_embedding = await self.embedder.embed(query)

        scored = []
        for row in rows:
            similarity = cosine_similarity(query_embedding, json.loads(row["embedding_json"]))
            if similarity < self.config.min_similarity:
                continue
            scored.append(MemoryExcerpt(
                question=row["question"],
                answer=row["answer"],
                topic=row["topic"],
                similarity=similarity,
                created_at=row["created_at"],
            ))

        scored.sort(key=lambda excerpt: excerpt.similarity, reverse=True)
        return scored[:limit]
