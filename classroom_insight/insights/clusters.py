"""
Topic cluster formation from scored sessions.
"""

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from classroom_insight.analytics.models import StruggleDimension
from classroom_insight.insights.models import SemanticCluster
from classroom_insight.storage.models import StruggleRecord


def dominant_dimension(
    socratic_depth: float,
    error_persistence: float,
    frustration_sentiment: float
) -> StruggleDimension:
    """
    Pick the dimension driving a cluster.

    Ties resolve in the order errorPersistence, frustrationSentiment, then
    socraticDepth as the default.
    """
    if error_persistence >= socratic_depth and error_persistence >= frustration_sentiment:
        return StruggleDimension.ERROR_PERSISTENCE
    if frustration_sentiment >= socratic_depth and frustration_sentiment >= error_persistence:
        return StruggleDimension.FRUSTRATION_SENTIMENT
    return StruggleDimension.SOCRATIC_DEPTH


@dataclass
class _TopicGroup:
    topic: str
    subject: Optional[str] = None
    composites: List[float] = field(default_factory=list)
    student_ids: List[str] = field(default_factory=list)
    socratic: List[float] = field(default_factory=list)
    persistence: List[float] = field(default_factory=list)
    frustration: List[float] = field(default_factory=list)

    def add(self, record: StruggleRecord):
        if self.subject is None:
            self.subject = record.subject
        if record.student_id not in self.student_ids:
            self.student_ids.append(record.student_id)
        self.composites.append(record.composite)

        # Records scored before dimensions were stored count as zero
        dims = record.dimensions
        self.socratic.append(dims.socratic_depth if dims else 0.0)
        self.persistence.append(dims.error_persistence if dims else 0.0)
        self.frustration.append(dims.frustration_sentiment if dims else 0.0)


def _mean(values: List[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def form_clusters(
    records: Iterable[StruggleRecord],
    activation_threshold: float = 0.4,
    min_students: int = 2
) -> List[SemanticCluster]:
    """
    Group struggling sessions by lesson topic.

    Only records with composite strictly above the activation threshold count,
    and a topic becomes a cluster only when at least min_students distinct
    students struggled on it. Sorted by average struggle, highest first.
    """
    groups: Dict[str, _TopicGroup] = {}
    for record in records:
        if record.composite <= activation_threshold:
            continue
        group = groups.setdefault(record.topic, _TopicGroup(topic=record.topic))
        group.add(record)

    clusters = []
    for group in groups.values():
        if len(group.student_ids) < min_students:
            continue
        clusters.append(SemanticCluster(
            topic=group.topic,
            subject=group.subject,
            avg_struggle_score=_mean(group.composites),
            student_count=len(group.student_ids),
            student_ids=list(group.student_ids),
            dominant_dimension=dominant_dimension(
                _mean(group.socratic),
                _mean(group.persistence),
                _mean(group.frustration),
            ),
        ))

    clusters.sort(key=lambda cluster: cluster.avg_struggle_score, reverse=True)
    return clusters
