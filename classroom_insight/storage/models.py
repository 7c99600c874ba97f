"""
Pydantic models for rows read from the classroom store.
"""

import json
from pydantic import BaseModel, ConfigDict, ValidationError
from typing import Optional

from classroom_insight.analytics.models import StruggleDimensions


class ClassroomRecord(BaseModel):
    """Classroom row."""
    id: str
    name: str
    owner_id: str
    subject: Optional[str] = None
    grade_level: Optional[str] = None


class StudentRecord(BaseModel):
    """Student row."""
    id: str
    name: str
    grade_level: Optional[str] = None
    age: Optional[int] = None


class LessonRecord(BaseModel):
    """Master lesson row."""
    id: str
    title: str
    topic: str
    subject: Optional[str] = None


class RubricScores(BaseModel):
    """Externally computed homework rubric triple."""

    model_config = ConfigDict(frozen=True)

    accuracy: float
    reasoning: float
    effort: float

    @classmethod
    def from_storage_json(cls, raw: Optional[str]) -> Optional["RubricScores"]:
        if not raw:
            return None
        try:
            return cls.model_validate(json.loads(raw))
        except (TypeError, ValueError, ValidationError):
            return None


class LessonActivity(BaseModel):
    """Most recent analytics for one student on one lesson."""
    student_id: str
    lesson_id: str
    session_id: str
    struggle_score: Optional[float] = None
    struggle_dimensions: Optional[StruggleDimensions] = None
    comprehension_score: Optional[float] = None
    exit_ticket_passed: Optional[bool] = None


class GradedSubmission(BaseModel):
    """Most recent rubric-graded homework submission for one student on one topic."""
    student_id: str
    topic: str
    rubric_scores: Optional[RubricScores] = None
    grade: Optional[float] = None
    submitted_at: str


class StruggleRecord(BaseModel):
    """One scored session, joined to the lesson it belongs to."""
    session_id: str
    student_id: str
    lesson_id: str
    topic: str
    subject: Optional[str] = None
    composite: float
    dimensions: Optional[StruggleDimensions] = None
