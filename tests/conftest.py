"""
Pytest fixtures for classroom insight tests.
"""

import pytest
from typing import Dict, List
from unittest.mock import AsyncMock

from classroom_insight.analytics.lexicon import load_lexicon
from classroom_insight.analytics.models import ConversationTurn, TurnRole
from classroom_insight.storage.sqlite_store import SQLiteInsightStore


TEACHER_ID = "teacher_1"

VALID_AUDIT_JSON = """{
  "rootCause": "Students confuse the numerator with the denominator.",
  "failureType": "conceptual",
  "severity": "high",
  "bridgeActivity": "## Bridge Activity (10 minutes)\\n\\n1. Fold paper strips.",
  "recommendations": ["Use fraction strips", "Review part-whole language", "Pair students"]
}"""


def student(content: str) -> ConversationTurn:
    return ConversationTurn(role=TurnRole.STUDENT, content=content)


def tutor(content: str) -> ConversationTurn:
    return ConversationTurn(role=TurnRole.TUTOR, content=content)


@pytest.fixture
def lexicon():
    """Bundled Spanish lexicon."""
    return load_lexicon("es")


@pytest.fixture
def store(tmp_path):
    """Empty SQLite classroom store."""
    return SQLiteInsightStore(tmp_path / "classroom.sqlite")


@pytest.fixture
def seeded_classroom(store) -> Dict[str, object]:
    """
    Classroom with two students and three lessons.

    Only the first student has opened the first lesson.
    """
    classroom_id = store.create_classroom("5°A Matemáticas", TEACHER_ID, subject="math")
    ana = store.add_student(classroom_id, "Ana", grade_level="preparatoria2", age=17)
    beto = store.add_student(classroom_id, "Beto", grade_level="preparatoria2", age=16)
    lessons: List[str] = [
        store.add_lesson(TEACHER_ID, "Fracciones", "fracciones", subject="math", classroom_id=classroom_id),
        store.add_lesson(TEACHER_ID, "Decimales", "decimales", subject="math", classroom_id=classroom_id),
        store.add_lesson(TEACHER_ID, "Porcentajes", "porcentajes", subject="math"),
    ]
    session_id = store.open_session(ana, lessons[0])
    store.append_turn(session_id, "user", "¿Qué es una fracción impropia?")
    store.append_turn(session_id, "assistant", "¿Qué crees que pasa si el numerador es mayor?")
    store.append_turn(session_id, "user", "No entiendo qué es el numerador")

    return {
        "classroom_id": classroom_id,
        "owner_id": TEACHER_ID,
        "students": [ana, beto],
        "lessons": lessons,
        "session_id": session_id,
    }


@pytest.fixture
def mock_llm():
    """Mock LLM client that returns a canned diagnostic."""
    mock = AsyncMock()

    def set_response(response_text: str):
        """Set the response text for the mock."""
        mock.get_completion.return_value = response_text

    mock.get_completion.return_value = VALID_AUDIT_JSON
    mock.set_response = set_response

    return mock


@pytest.fixture
def mock_embedding():
    """Mock embedding client."""
    mock = AsyncMock()
    mock.embed.return_value = [0.1] * 8
    return mock
