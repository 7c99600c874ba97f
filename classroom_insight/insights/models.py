"""
Read models returned by the insight engine. Built fresh per request, never persisted.
"""

from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from classroom_insight.analytics.models import StruggleDimension, StruggleDimensions
from classroom_insight.storage.models import RubricScores


class LessonRef(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    topic: str
    subject: Optional[str] = None


class TopicCell(BaseModel):
    """One (student, lesson) intersection of the heatmap."""

    model_config = ConfigDict(frozen=True)

    lesson_id: str
    lesson_title: str
    lesson_topic: str
    lesson_subject: Optional[str] = None
    struggle_score: Optional[float] = None
    struggle_dimensions: Optional[StruggleDimensions] = None
    comprehension_score: Optional[float] = None
    exit_ticket_passed: Optional[bool] = None
    rubric_scores: Optional[RubricScores] = None
    submission_grade: Optional[float] = None
    has_data: bool = False  # False = student hasn't opened the lesson yet


class StudentSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    student_id: str
    student_name: str
    grade_level: Optional[str] = None
    age: Optional[int] = None
    cells: Dict[str, TopicCell] = Field(default_factory=dict)  # keyed by lesson id


class SemanticCluster(BaseModel):
    """Topic-level struggle rollup across several students."""

    model_config = ConfigDict(frozen=True)

    topic: str
    subject: Optional[str] = None
    avg_struggle_score: float
    student_count: int
    student_ids: List[str]
    dominant_dimension: StruggleDimension
    memory_insight: Optional[str] = None


class ClassroomSnapshot(BaseModel):
    """Student x lesson matrix for one classroom."""

    model_config = ConfigDict(frozen=True)

    classroom_id: str
    classroom_name: str
    generated_at: str
    lessons: List[LessonRef]
    students: List[StudentSnapshot]
    clusters: List[SemanticCluster]

    @property
    def cell_count(self) -> int:
        return sum(len(student.cells) for student in self.students)


class FailureType(str, Enum):
    CONCEPTUAL = "conceptual"
    PROCEDURAL = "procedural"
    MOTIVATIONAL = "motivational"
    PREREQUISITE = "prerequisite"
    LINGUISTIC = "linguistic"


class DiagnosticSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class DiagnosticAudit(BaseModel):
    """AI-generated root-cause report for a classroom snapshot."""

    model_config = ConfigDict(frozen=True)

    generated_at: str
    root_cause: str
    failure_type: FailureType
    severity: DiagnosticSeverity
    bridge_activity: str  # 10-minute classroom intervention, markdown
    recommendations: List[str]
