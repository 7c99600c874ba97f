"""
Classroom snapshot builder: the full student x lesson heatmap plus topic clusters.
"""

import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

from classroom_insight.insights.clusters import form_clusters
from classroom_insight.insights.models import (
    ClassroomSnapshot,
    LessonRef,
    SemanticCluster,
    StudentSnapshot,
    TopicCell,
)
from classroom_insight.memory.base import SemanticMemory
from classroom_insight.shared.config import AnalyticsConfig, settings
from classroom_insight.shared.exceptions import ClassroomNotFoundError
from classroom_insight.shared.logging import get_logger, log_with_context
from classroom_insight.storage.base import InsightStore
from classroom_insight.storage.models import (
    GradedSubmission,
    LessonActivity,
    LessonRecord,
    StudentRecord,
)

logger = get_logger(__name__)


def build_cell(
    lesson: LessonRecord,
    activity: Optional[LessonActivity],
    submission: Optional[GradedSubmission]
) -> TopicCell:
    """
    Populate one heatmap cell; every field stays None when there was no activity.

    A graded submission marks the cell as having data even when its stored
    rubric could not be parsed.
    """
    values = {
        "struggle_score": activity.struggle_score if activity else None,
        "struggle_dimensions": activity.struggle_dimensions if activity else None,
        "comprehension_score": activity.comprehension_score if activity else None,
        "exit_ticket_passed": activity.exit_ticket_passed if activity else None,
        "rubric_scores": submission.rubric_scores if submission else None,
        "submission_grade": submission.grade if submission else None,
    }

    return TopicCell(
        lesson_id=lesson.id,
        lesson_title=lesson.title,
        lesson_topic=lesson.topic,
        lesson_subject=lesson.subject,
        has_data=submission is not None or any(value is not None for value in values.values()),
        **values
    )


class SnapshotBuilder:
    """Build classroom snapshots from the store, optionally enriched from semantic memory."""

    def __init__(
        self,
        store: InsightStore,
        memory: Optional[SemanticMemory] = None,
        config: Optional[AnalyticsConfig] = None
    ):
        self.store = store
        self.memory = memory
        self.config = config or settings.analytics

    async def build_snapshot(self, classroom_id: str, requester_id: str) -> ClassroomSnapshot:
        """
        Build the full heatmap for a classroom.

        Every (student, lesson) pair gets a cell, including pairs with no
        activity, so callers can render a complete grid.

        Raises:
            ClassroomNotFoundError if the classroom is not owned by requester_id
        """
        classroom = self.store.get_classroom(classroom_id, requester_id)
        if classroom is None:
            raise ClassroomNotFoundError(classroom_id, requester_id)

        students = self.store.list_students(classroom_id)
        lessons = self.store.list_lessons(classroom_id)

        activity: Dict[Tuple[str, str], LessonActivity] = {
            (row.student_id, row.lesson_id): row
            for row in self.store.list_lesson_activity(classroom_id)
        }
        submissions: Dict[Tuple[str, str], GradedSubmission] = {
            (row.student_id, row.topic): row
            for row in self.store.list_latest_graded_submissions([s.id for s in students])
        }

        student_snapshots = [
            self._build_student(student, lessons, activity, submissions)
            for student in students
        ]

        records = self.store.list_struggle_records(
            classroom_id, self.config.cluster_activation_threshold
        )
        clusters = form_clusters(
            records,
            activation_threshold=self.config.cluster_activation_threshold,
            min_students=self.config.cluster_min_students,
        )
        clusters = await self._enrich_clusters(clusters, classroom_id)

        log_with_context(
            logger, logging.INFO,
            f"Built snapshot: {len(students)} students x {len(lessons)} lessons, {len(clusters)} clusters",
            classroom_id=classroom_id, action="build_snapshot",
        )

        return ClassroomSnapshot(
            classroom_id=classroom.id,
            classroom_name=classroom.name,
            generated_at=datetime.now(timezone.utc).isoformat(),
            lessons=[
                LessonRef(id=lesson.id, title=lesson.title, topic=lesson.topic, subject=lesson.subject)
                for lesson in lessons
            ],
            students=student_snapshots,
            clusters=clusters,
        )

    def _build_student(
        self,
        student: StudentRecord,
        lessons: List[LessonRecord],
        activity: Dict[Tuple[str, str], LessonActivity],
        submissions: Dict[Tuple[str, str], GradedSubmission]
    ) -> StudentSnapshot:
        cells = {
            lesson.id: build_cell(
                lesson,
                activity.get((student.id, lesson.id)),
                submissions.get((student.id, lesson.topic)),
            )
            for lesson in lessons
        }
        return StudentSnapshot(
            student_id=student.id,
            student_name=student.name,
            grade_level=student.grade_level,
            age=student.age,
            cells=cells,
        )

    async def _enrich_clusters(
        self,
        clusters: List[SemanticCluster],
        classroom_id: str
    ) -> List[SemanticCluster]:
        """Attach memory excerpts to the top clusters. Best effort: failures are logged and skipped."""
        if self.memory is None or not clusters:
            return clusters

        try:
            if not self.memory.is_available():
                return clusters
        except Exception as e:
            logger.warning(f"Semantic memory availability check failed: {str(e)}")
            return clusters

        enriched = list(clusters)
        for index, cluster in enumerate(clusters[:self.config.enrichment_cluster_limit]):
            try:
                excerpts = await self._retrieve_cluster_memories(cluster)
            except Exception as e:
                log_with_context(
                    logger, logging.WARNING,
                    f"Memory enrichment failed for topic '{cluster.topic}': {str(e)}",
                    classroom_id=classroom_id, action="enrich_cluster",
                )
                continue

            if excerpts:
                enriched[index] = cluster.model_copy(update={"memory_insight": " | ".join(excerpts)})

        return enriched

    async def _retrieve_cluster_memories(self, cluster: SemanticCluster) -> List[str]:
        """Merge representative questions across the cluster's first students."""
        questions: List[str] = []
        for student_id in cluster.student_ids[:self.config.enrichment_students_per_cluster]:
            try:
                excerpts = await self.memory.retrieve_relevant(
                    student_id, cluster.topic, self.config.enrichment_excerpts_per_student
                )
            except Exception as e:
                log_with_context(
                    logger, logging.DEBUG,
                    f"Memory lookup failed for topic '{cluster.topic}': {str(e)}",
                    student_id=student_id, action="enrich_cluster",
                )
                continue
            questions.extend(excerpt.question for excerpt in excerpts if excerpt.question)

        return questions[:self.config.enrichment_max_excerpts]
