"""
SQLiteInsightStore: SQLite + WAL mode store for classroom analytics data.
"""

import sqlite3
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

from classroom_insight.analytics.models import (
    ConversationTurn,
    StruggleDimensions,
    TurnRole,
)
from classroom_insight.shared.config import settings
from classroom_insight.shared.exceptions import SessionNotFoundError, StorageError
from classroom_insight.shared.logging import get_logger
from classroom_insight.storage.models import (
    ClassroomRecord,
    GradedSubmission,
    LessonActivity,
    LessonRecord,
    RubricScores,
    StruggleRecord,
    StudentRecord,
)

logger = get_logger(__name__)

SCHEMA = """
    CREATE TABLE IF NOT EXISTS classrooms (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        owner_id TEXT NOT NULL,
        subject TEXT,
        grade_level TEXT,
        created_at TEXT NOT NULL
    );

    CREATE TABLE IF NOT EXISTS students (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        grade_level TEXT,
        age INTEGER,
        created_at TEXT NOT NULL
    );

    CREATE TABLE IF NOT EXISTS classroom_students (
        classroom_id TEXT NOT NULL,
        student_id TEXT NOT NULL,
        PRIMARY KEY (classroom_id, student_id),
        FOREIGN KEY (classroom_id) REFERENCES classrooms(id) ON DELETE CASCADE,
        FOREIGN KEY (student_id) REFERENCES students(id) ON DELETE CASCADE
    );

    -- classroom_id NULL means the lesson applies to every classroom of its owner
    CREATE TABLE IF NOT EXISTS lessons (
        id TEXT PRIMARY KEY,
        owner_id TEXT NOT NULL,
        classroom_id TEXT,
        title TEXT NOT NULL,
        topic TEXT NOT NULL,
        subject TEXT,
        created_at TEXT NOT NULL,
        FOREIGN KEY (classroom_id) REFERENCES classrooms(id) ON DELETE SET NULL
    );

    CREATE TABLE IF NOT EXISTS personalized_lessons (
        id TEXT PRIMARY KEY,
        lesson_id TEXT NOT NULL,
        student_id TEXT NOT NULL,
        created_at TEXT NOT NULL,
        UNIQUE (lesson_id, student_id),
        FOREIGN KEY (lesson_id) REFERENCES lessons(id) ON DELETE CASCADE,
        FOREIGN KEY (student_id) REFERENCES students(id) ON DELETE CASCADE
    );

    CREATE TABLE IF NOT EXISTS lesson_chat_sessions (
        id TEXT PRIMARY KEY,
        personalized_lesson_id TEXT NOT NULL,
        student_id TEXT NOT NULL,
        created_at TEXT NOT NULL,
        FOREIGN KEY (personalized_lesson_id) REFERENCES personalized_lessons(id) ON DELETE CASCADE
    );

    CREATE TABLE IF NOT EXISTS lesson_chat_messages (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        session_id TEXT NOT NULL,
        role TEXT NOT NULL CHECK (role IN ('user', 'assistant')),
        content TEXT NOT NULL,
        created_at TEXT NOT NULL,
        FOREIGN KEY (session_id) REFERENCES lesson_chat_sessions(id) ON DELETE CASCADE
    );

    CREATE TABLE IF NOT EXISTS learning_analytics (
        session_id TEXT PRIMARY KEY,
        student_id TEXT NOT NULL,
        struggle_score REAL,
        struggle_dimensions TEXT,
        comprehension_score REAL,
        exit_ticket_passed INTEGER,
        updated_at TEXT NOT NULL,
        FOREIGN KEY (session_id) REFERENCES lesson_chat_sessions(id) ON DELETE CASCADE
    );

    CREATE TABLE IF NOT EXISTS homework_submissions (
        id TEXT PRIMARY KEY,
        student_id TEXT NOT NULL,
        topic TEXT NOT NULL,
        rubric_scores TEXT,
        grade REAL,
        submitted_at TEXT NOT NULL,
        FOREIGN KEY (student_id) REFERENCES students(id) ON DELETE CASCADE
    );

    CREATE INDEX IF NOT EXISTS idx_classrooms_owner ON classrooms(owner_id);
    CREATE INDEX IF NOT EXISTS idx_lessons_owner ON lessons(owner_id);
    CREATE INDEX IF NOT EXISTS idx_messages_session ON lesson_chat_messages(session_id);
    CREATE INDEX IF NOT EXISTS idx_sessions_student ON lesson_chat_sessions(student_id);
    CREATE INDEX IF NOT EXISTS idx_analytics_struggle ON learning_analytics(struggle_score DESC);
    CREATE INDEX IF NOT EXISTS idx_submissions_student_topic ON homework_submissions(student_id, topic);
"""

# Students and lessons visible in one classroom
ROSTER_CTE = """
    WITH roster_students AS (
        SELECT student_id FROM classroom_students WHERE classroom_id = :classroom_id
    ),
    roster_lessons AS (
        SELECT l.id
        FROM lessons l
        JOIN classrooms c ON c.id = :classroom_id
        WHERE l.owner_id = c.owner_id
          AND (l.classroom_id = c.id OR l.classroom_id IS NULL)
    )
"""

_ROLE_TO_STORAGE = {TurnRole.STUDENT: "user", TurnRole.TUTOR: "assistant"}


def _now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


def _new_id() -> str:
    return str(uuid.uuid4())


class SQLiteInsightStore:
    """Classroom store backed by SQLite in WAL mode."""

    def __init__(self, db_path: Optional[Path] = None):
        self.db_path = Path(db_path or settings.storage.db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.timeout = settings.storage.busy_timeout_seconds

        self._init_database()

    def _init_database(self):
        """Initialize database schema."""
        with self._get_connection() as conn:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.executescript(SCHEMA)

    @contextmanager
    def _get_connection(self):
        """Get database connection with proper error handling."""
        conn = sqlite3.connect(str(self.db_path), timeout=self.timeout)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys=ON")
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise StorageError(f"Classroom store operation failed: {str(e)}") from e
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    # ------------------------------------------------------------------
    # Session reads and the struggle write
    # ------------------------------------------------------------------

    def get_session_turns(self, session_id: str) -> List[ConversationTurn]:
        with self._get_connection() as conn:
            rows = conn.execute(
                """SELECT role, content, created_at
                   FROM lesson_chat_messages
                   WHERE session_id = ?
                   ORDER BY created_at ASC, id ASC""",
                (session_id,)
            ).fetchall()

        return [
            ConversationTurn(role=row["role"], content=row["content"], timestamp=row["created_at"])
            for row in rows
        ]

    def get_session_student(self, session_id: str) -> Optional[StudentRecord]:
        with self._get_connection() as conn:
            row = conn.execute(
                """SELECT s.id, s.name, s.grade_level, s.age
                   FROM lesson_chat_sessions lcs
                   JOIN students s ON s.id = lcs.student_id
                   WHERE lcs.id = ?""",
                (session_id,)
            ).fetchone()

        return StudentRecord(**dict(row)) if row else None

    def write_struggle_record(self, session_id: str, dimensions: StruggleDimensions) -> None:
        """
        Overwrite the session's struggle record (last write wins).

        Raises:
            SessionNotFoundError if the session does not exist
            StorageError on any database failure
        """
        with self._get_connection() as conn:
            cursor = conn.execute(
                """INSERT INTO learning_analytics
                       (session_id, student_id, struggle_score, struggle_dimensions, updated_at)
                   SELECT id, student_id, ?, ?, ?
                   FROM lesson_chat_sessions
                   WHERE id = ?
                   ON CONFLICT(session_id) DO UPDATE SET
                       struggle_score = excluded.struggle_score,
                       struggle_dimensions = excluded.struggle_dimensions,
                       updated_at = excluded.updated_at""",
                (dimensions.composite, dimensions.to_storage_json(), _now(), session_id)
            )
            if cursor.rowcount == 0:
                raise SessionNotFoundError(f"Session {session_id} not found")

    def get_struggle_record(self, session_id: str) -> Optional[StruggleDimensions]:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT struggle_dimensions FROM learning_analytics WHERE session_id = ?",
                (session_id,)
            ).fetchone()

        return StruggleDimensions.from_storage_json(row["struggle_dimensions"]) if row else None

    # ------------------------------------------------------------------
    # Classroom reads
    # ------------------------------------------------------------------

    def get_classroom(self, classroom_id: str, owner_id: str) -> Optional[ClassroomRecord]:
        with self._get_connection() as conn:
            row = conn.execute(
                """SELECT id, name, owner_id, subject, grade_level
                   FROM classrooms
                   WHERE id = ? AND owner_id = ?""",
                (classroom_id, owner_id)
            ).fetchone()

        return ClassroomRecord(**dict(row)) if row else None

    def list_students(self, classroom_id: str) -> List[StudentRecord]:
        with self._get_connection() as conn:
            rows = conn.execute(
                """SELECT s.id, s.name, s.grade_level, s.age
                   FROM students s
                   JOIN classroom_students cs ON cs.student_id = s.id
                   WHERE cs.classroom_id = ?
                   ORDER BY s.name, s.id""",
                (classroom_id,)
            ).fetchall()

        return [StudentRecord(**dict(row)) for row in rows]

    def list_lessons(self, classroom_id: str) -> List[LessonRecord]:
        with self._get_connection() as conn:
            rows = conn.execute(
                ROSTER_CTE + """
                    SELECT l.id, l.title, l.topic, l.subject
                    FROM lessons l
                    WHERE l.id IN (SELECT id FROM roster_lessons)
                    ORDER BY l.created_at, l.id""",
                {"classroom_id": classroom_id}
            ).fetchall()

        return [LessonRecord(**dict(row)) for row in rows]

    def list_lesson_activity(self, classroom_id: str) -> List[LessonActivity]:
        with self._get_connection() as conn:
            rows = conn.execute(
                ROSTER_CTE + """,
                    ranked AS (
                        SELECT
                            lcs.student_id,
                            pl.lesson_id,
                            la.session_id,
                            la.struggle_score,
                            la.struggle_dimensions,
                            la.comprehension_score,
                            la.exit_ticket_passed,
                            ROW_NUMBER() OVER (
                                PARTITION BY lcs.student_id, pl.lesson_id
                                ORDER BY lcs.created_at DESC, la.updated_at DESC
                            ) AS rn
                        FROM learning_analytics la
                        JOIN lesson_chat_sessions lcs ON lcs.id = la.session_id
                        JOIN personalized_lessons pl ON pl.id = lcs.personalized_lesson_id
                        WHERE lcs.student_id IN (SELECT student_id FROM roster_students)
                          AND pl.lesson_id IN (SELECT id FROM roster_lessons)
                    )
                    SELECT * FROM ranked WHERE rn = 1""",
                {"classroom_id": classroom_id}
            ).fetchall()

        return [
            LessonActivity(
                student_id=row["student_id"],
                lesson_id=row["lesson_id"],
                session_id=row["session_id"],
                struggle_score=row["struggle_score"],
                struggle_dimensions=StruggleDimensions.from_storage_json(row["struggle_dimensions"]),
                comprehension_score=row["comprehension_score"],
                exit_ticket_passed=(
                    None if row["exit_ticket_passed"] is None else row["exit_ticket_passed"] == 1
                ),
            )
            for row in rows
        ]

    def list_latest_graded_submissions(self, student_ids: Sequence[str]) -> List[GradedSubmission]:
        if not student_ids:
            return []

        placeholders = ", ".join("?" for _ in student_ids)
        with self._get_connection() as conn:
            rows = conn.execute(
                f"""SELECT student_id, topic, rubric_scores, grade, submitted_at
                    FROM (
                        SELECT
                            student_id, topic, rubric_scores, grade, submitted_at,
                            ROW_NUMBER() OVER (
                                PARTITION BY student_id, topic
                                ORDER BY submitted_at DESC, rowid DESC
                            ) AS rn
                        FROM homework_submissions
                        WHERE rubric_scores IS NOT NULL
                          AND student_id IN ({placeholders})
                    )
                    WHERE rn = 1""",
                tuple(student_ids)
            ).fetchall()

        return [
            GradedSubmission(
                student_id=row["student_id"],
                topic=row["topic"],
                rubric_scores=RubricScores.from_storage_json(row["rubric_scores"]),
                grade=row["grade"],
                submitted_at=row["submitted_at"],
            )
            for row in rows
        ]

    def list_struggle_records(self, classroom_id: str, min_composite: float) -> List[StruggleRecord]:
        with self._get_connection() as conn:
            rows = conn.execute(
                ROSTER_CTE + """
                    SELECT
                        la.session_id,
                        lcs.student_id,
                        l.id AS lesson_id,
                        l.topic,
                        l.subject,
                        la.struggle_score AS composite,
                        la.struggle_dimensions
                    FROM learning_analytics la
                    JOIN lesson_chat_sessions lcs ON lcs.id = la.session_id
                    JOIN personalized_lessons pl ON pl.id = lcs.personalized_lesson_id
                    JOIN lessons l ON l.id = pl.lesson_id
                    WHERE lcs.student_id IN (SELECT student_id FROM roster_students)
                      AND l.id IN (SELECT id FROM roster_lessons)
                      AND la.struggle_score > :min_composite
                    ORDER BY la.updated_at ASC, la.session_id ASC""",
                {"classroom_id": classroom_id, "min_composite": min_composite}
            ).fetchall()

        return [
            StruggleRecord(
                session_id=row["session_id"],
                student_id=row["student_id"],
                lesson_id=row["lesson_id"],
                topic=row["topic"],
                subject=row["subject"],
                composite=row["composite"],
                dimensions=StruggleDimensions.from_storage_json(row["struggle_dimensions"]),
            )
            for row in rows
        ]

    def list_classroom_sessions(self, classroom_id: str) -> List[str]:
        with self._get_connection() as conn:
            rows = conn.execute(
                ROSTER_CTE + """
                    SELECT lcs.id
                    FROM lesson_chat_sessions lcs
                    JOIN personalized_lessons pl ON pl.id = lcs.personalized_lesson_id
                    WHERE lcs.student_id IN (SELECT student_id FROM roster_students)
                      AND pl.lesson_id IN (SELECT id FROM roster_lessons)
                    ORDER BY lcs.created_at, lcs.id""",
                {"classroom_id": classroom_id}
            ).fetchall()

        return [row["id"] for row in rows]

    # ------------------------------------------------------------------
    # Write helpers used to populate the store
    # ------------------------------------------------------------------

    def create_classroom(
        self,
        name: str,
        owner_id: str,
        subject: Optional[str] = None,
        grade_level: Optional[str] = None,
        classroom_id: Optional[str] = None
    ) -> str:
        classroom_id = classroom_id or _new_id()
        with self._get_connection() as conn:
            conn.execute(
                """INSERT INTO classrooms (id, name, owner_id, subject, grade_level, created_at)
                   VALUES (?, ?, ?, ?, ?, ?)""",
                (classroom_id, name, owner_id, subject, grade_level, _now())
            )
        return classroom_id

    def add_student(
        self,
        classroom_id: str,
        name: str,
        grade_level: Optional[str] = None,
        age: Optional[int] = None,
        student_id: Optional[str] = None
    ) -> str:
        """Create the student if needed and enroll them in the classroom."""
        student_id = student_id or _new_id()
        with self._get_connection() as conn:
            conn.execute(
                """INSERT OR IGNORE INTO students (id, name, grade_level, age, created_at)
                   VALUES (?, ?, ?, ?, ?)""",
                (student_id, name, grade_level, age, _now())
            )
            conn.execute(
                """INSERT OR IGNORE INTO classroom_students (classroom_id, student_id)
                   VALUES (?, ?)""",
                (classroom_id, student_id)
            )
        return student_id

    def add_lesson(
        self,
        owner_id: str,
        title: str,
        topic: str,
        subject: Optional[str] = None,
        classroom_id: Optional[str] = None,
        lesson_id: Optional[str] = None
    ) -> str:
        lesson_id = lesson_id or _new_id()
        with self._get_connection() as conn:
            conn.execute(
                """INSERT INTO lessons (id, owner_id, classroom_id, title, topic, subject, created_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?)""",
                (lesson_id, owner_id, classroom_id, title, topic, subject, _now())
            )
        return lesson_id

    def personalize_lesson(self, lesson_id: str, student_id: str) -> str:
        """Return the student's personalized copy of a lesson, creating it if needed."""
        with self._get_connection() as conn:
            existing = conn.execute(
                "SELECT id FROM personalized_lessons WHERE lesson_id = ? AND student_id = ?",
                (lesson_id, student_id)
            ).fetchone()
            if existing:
                return existing["id"]

            personalized_id = _new_id()
            conn.execute(
                """INSERT INTO personalized_lessons (id, lesson_id, student_id, created_at)
                   VALUES (?, ?, ?, ?)""",
                (personalized_id, lesson_id, student_id, _now())
            )
        return personalized_id

    def open_session(self, student_id: str, lesson_id: str, session_id: Optional[str] = None) -> str:
        """Start a lesson-chat session for a student."""
        personalized_id = self.personalize_lesson(lesson_id, student_id)
        session_id = session_id or _new_id()
        with self._get_connection() as conn:
            conn.execute(
                """INSERT INTO lesson_chat_sessions (id, personalized_lesson_id, student_id, created_at)
                   VALUES (?, ?, ?, ?)""",
                (session_id, personalized_id, student_id, _now())
            )
        return session_id

    def append_turn(
        self,
        session_id: str,
        role: Union[TurnRole, str],
        content: str,
        timestamp: Optional[datetime] = None
    ) -> int:
        role = ConversationTurn(role=role, content=content).role
        created_at = timestamp.isoformat() if timestamp else _now()
        with self._get_connection() as conn:
            cursor = conn.execute(
                """INSERT INTO lesson_chat_messages (session_id, role, content, created_at)
                   VALUES (?, ?, ?, ?)""",
                (session_id, _ROLE_TO_STORAGE[role], content, created_at)
            )
            return cursor.lastrowid

    def record_exit_ticket(self, session_id: str, comprehension_score: float, passed: bool) -> None:
        with self._get_connection() as conn:
            cursor = conn.execute(
                """INSERT INTO learning_analytics
                       (session_id, student_id, comprehension_score, exit_ticket_passed, updated_at)
                   SELECT id, student_id, ?, ?, ?
                   FROM lesson_chat_sessions
                   WHERE id = ?
                   ON CONFLICT(session_id) DO UPDATE SET
                       comprehension_score = excluded.comprehension_score,
                       exit_ticket_passed = excluded.exit_ticket_passed,
                       updated_at = excluded.updated_at""",
                (comprehension_score, 1 if passed else 0, _now(), session_id)
            )
            if cursor.rowcount == 0:
                raise SessionNotFoundError(f"Session {session_id} not found")

    def record_submission(
        self,
        student_id: str,
        topic: str,
        rubric_scores: Optional[Union[RubricScores, Dict[str, Any]]] = None,
        grade: Optional[float] = None,
        submitted_at: Optional[datetime] = None
    ) -> str:
        if isinstance(rubric_scores, dict):
            rubric_scores = RubricScores(**rubric_scores)

        submission_id = _new_id()
        with self._get_connection() as conn:
            conn.execute(
                """INSERT INTO homework_submissions
                       (id, student_id, topic, rubric_scores, grade, submitted_at)
                   VALUES (?, ?, ?, ?, ?, ?)""",
                (
                    submission_id,
                    student_id,
                    topic,
                    rubric_scores.model_dump_json() if rubric_scores else None,
                    grade,
                    submitted_at.isoformat() if submitted_at else _now(),
                )
            )
        return submission_id
