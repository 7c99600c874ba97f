"""
Storage collaborator interface consumed by the scorer and the snapshot builder.
"""

from typing import List, Optional, Protocol, Sequence

from classroom_insight.analytics.models import ConversationTurn, StruggleDimensions
from classroom_insight.storage.models import (
    ClassroomRecord,
    GradedSubmission,
    LessonActivity,
    LessonRecord,
    StruggleRecord,
    StudentRecord,
)


class InsightStore(Protocol):
    """Reads and the single struggle write the insight engine needs."""

    def get_session_turns(self, session_id: str) -> List[ConversationTurn]:
        """Ordered turns of a tutoring session."""
        ...

    def get_session_student(self, session_id: str) -> Optional[StudentRecord]:
        """Student who owns a tutoring session."""
        ...

    def write_struggle_record(self, session_id: str, dimensions: StruggleDimensions) -> None:
        """Overwrite the session's structured dimensions and flat struggle score."""
        ...

    def get_struggle_record(self, session_id: str) -> Optional[StruggleDimensions]:
        ...

    def get_classroom(self, classroom_id: str, owner_id: str) -> Optional[ClassroomRecord]:
        """Classroom if it exists and belongs to owner_id, else None."""
        ...

    def list_students(self, classroom_id: str) -> List[StudentRecord]:
        ...

    def list_lessons(self, classroom_id: str) -> List[LessonRecord]:
        ...

    def list_lesson_activity(self, classroom_id: str) -> List[LessonActivity]:
        """Latest analytics per (student, lesson) for the classroom rosters."""
        ...

    def list_latest_graded_submissions(self, student_ids: Sequence[str]) -> List[GradedSubmission]:
        """Latest rubric-graded submission per (student, topic)."""
        ...

    def list_struggle_records(self, classroom_id: str, min_composite: float) -> List[StruggleRecord]:
        """Scored sessions of the classroom rosters with composite strictly above min_composite."""
        ...

    def list_classroom_sessions(self, classroom_id: str) -> List[str]:
        """Ids of the lesson-chat sessions of the classroom rosters."""
        ...
