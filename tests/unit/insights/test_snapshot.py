"""
Tests for SnapshotBuilder: full heatmap, ownership, clusters, best-effort enrichment.
"""

import pytest
from unittest.mock import AsyncMock, MagicMock

from classroom_insight.analytics.models import StruggleDimension, StruggleDimensions
from classroom_insight.insights.snapshot import SnapshotBuilder
from classroom_insight.memory.base import MemoryExcerpt
from classroom_insight.shared.exceptions import ClassroomNotFoundError, EnrichmentError

SCORE_FIELDS = (
    "struggle_score",
    "struggle_dimensions",
    "comprehension_score",
    "exit_ticket_passed",
    "rubric_scores",
    "submission_grade",
)


def _dims(composite, ep=0.8):
    return StruggleDimensions(
        socratic_depth=0.2, error_persistence=ep, frustration_sentiment=0.3, composite=composite
    )


def _struggling_class(store, seeded_classroom, extra_students=0):
    """Every student struggles on the first lesson's topic."""
    classroom_id = seeded_classroom["classroom_id"]
    lesson_id = seeded_classroom["lessons"][0]
    student_ids = list(seeded_classroom["students"])
    for i in range(extra_students):
        student_ids.append(store.add_student(classroom_id, f"Estudiante {i}", age=15))

    store.write_struggle_record(seeded_classroom["session_id"], _dims(0.7))
    for student_id in student_ids[1:]:
        session_id = store.open_session(student_id, lesson_id)
        store.write_struggle_record(session_id, _dims(0.5))
    return student_ids


def _memory(side_effect=None, available=True):
    memory = MagicMock()
    memory.is_available.return_value = available
    memory.retrieve_relevant = AsyncMock(side_effect=side_effect)
    return memory


@pytest.mark.asyncio
async def test_every_pair_gets_a_cell(store, seeded_classroom):
    builder = SnapshotBuilder(store)

    snapshot = await builder.build_snapshot(seeded_classroom["classroom_id"], seeded_classroom["owner_id"])

    assert len(snapshot.students) == 2
    assert len(snapshot.lessons) == 3
    assert snapshot.cell_count == 6
    assert snapshot.classroom_name == "5°A Matemáticas"
    for student in snapshot.students:
        assert set(student.cells) == set(seeded_classroom["lessons"])


@pytest.mark.asyncio
async def test_cells_without_activity_are_empty(store, seeded_classroom):
    snapshot = await SnapshotBuilder(store).build_snapshot(
        seeded_classroom["classroom_id"], seeded_classroom["owner_id"]
    )

    for student in snapshot.students:
        for cell in student.cells.values():
            assert cell.has_data is False
            for field in SCORE_FIELDS:
                assert getattr(cell, field) is None


@pytest.mark.asyncio
async def test_cells_carry_activity_and_homework(store, seeded_classroom):
    ana, beto = seeded_classroom["students"]
    fracciones, decimales, _ = seeded_classroom["lessons"]
    session_id = seeded_classroom["session_id"]
    store.write_struggle_record(session_id, _dims(0.65))
    store.record_exit_ticket(session_id, comprehension_score=0.4, passed=False)
    store.record_submission(beto, "decimales", {"accuracy": 0.9, "reasoning": 0.8, "effort": 1.0}, grade=92)

    snapshot = await SnapshotBuilder(store).build_snapshot(
        seeded_classroom["classroom_id"], seeded_classroom["owner_id"]
    )
    cells = {s.student_id: s.cells for s in snapshot.students}

    ana_cell = cells[ana][fracciones]
    assert ana_cell.has_data is True
    assert ana_cell.struggle_score == 0.65
    assert ana_cell.struggle_dimensions == _dims(0.65)
    assert ana_cell.comprehension_score == 0.4
    assert ana_cell.exit_ticket_passed is False
    assert ana_cell.lesson_topic == "fracciones"

    beto_cell = cells[beto][decimales]
    assert beto_cell.has_data is True
    assert beto_cell.struggle_score is None
    assert beto_cell.submission_grade == 92
    assert beto_cell.rubric_scores.accuracy == 0.9

    assert cells[ana][decimales].has_data is False


@pytest.mark.asyncio
async def test_requester_must_own_classroom(store, seeded_classroom):
    with pytest.raises(ClassroomNotFoundError):
        await SnapshotBuilder(store).build_snapshot(seeded_classroom["classroom_id"], "someone_else")

    with pytest.raises(ClassroomNotFoundError):
        await SnapshotBuilder(store).build_snapshot("missing", seeded_classroom["owner_id"])


@pytest.mark.asyncio
async def test_clusters_from_classroom_records(store, seeded_classroom):
    _struggling_class(store, seeded_classroom)

    snapshot = await SnapshotBuilder(store).build_snapshot(
        seeded_classroom["classroom_id"], seeded_classroom["owner_id"]
    )

    [cluster] = snapshot.clusters
    assert cluster.topic == "fracciones"
    assert cluster.student_count == 2
    assert cluster.avg_struggle_score == pytest.approx(0.6)
    assert cluster.dominant_dimension == StruggleDimension.ERROR_PERSISTENCE
    assert cluster.memory_insight is None


@pytest.mark.asyncio
async def test_single_struggling_student_forms_no_cluster(store, seeded_classroom):
    store.write_struggle_record(seeded_classroom["session_id"], _dims(0.95))

    snapshot = await SnapshotBuilder(store).build_snapshot(
        seeded_classroom["classroom_id"], seeded_classroom["owner_id"]
    )

    assert snapshot.clusters == []


@pytest.mark.asyncio
async def test_enrichment_attaches_memory_insight(store, seeded_classroom):
    _struggling_class(store, seeded_classroom)
    memory = _memory(side_effect=lambda student_id, topic, limit: [
        MemoryExcerpt(question=f"{student_id[:4]} pregunta {i}") for i in range(limit)
    ])

    snapshot = await SnapshotBuilder(store, memory=memory).build_snapshot(
        seeded_classroom["classroom_id"], seeded_classroom["owner_id"]
    )

    insight = snapshot.clusters[0].memory_insight
    assert insight is not None
    assert len(insight.split(" | ")) == 4
    for call in memory.retrieve_relevant.await_args_list:
        assert call.args[1] == "fracciones"
        assert call.args[2] == 2


@pytest.mark.asyncio
async def test_enrichment_caps_students_and_excerpts(store, seeded_classroom):
    _struggling_class(store, seeded_classroom, extra_students=5)
    memory = _memory(side_effect=lambda student_id, topic, limit: [
        MemoryExcerpt(question="¿Qué es el numerador?"),
        MemoryExcerpt(question="¿Por qué se multiplica cruzado?"),
    ])

    snapshot = await SnapshotBuilder(store, memory=memory).build_snapshot(
        seeded_classroom["classroom_id"], seeded_classroom["owner_id"]
    )

    assert snapshot.clusters[0].student_count == 7
    assert memory.retrieve_relevant.await_count == 5
    assert len(snapshot.clusters[0].memory_insight.split(" | ")) == 4


@pytest.mark.asyncio
async def test_enrichment_failure_is_swallowed(store, seeded_classroom):
    _struggling_class(store, seeded_classroom)
    memory = _memory(side_effect=EnrichmentError("memory store offline"))

    snapshot = await SnapshotBuilder(store, memory=memory).build_snapshot(
        seeded_classroom["classroom_id"], seeded_classroom["owner_id"]
    )

    assert len(snapshot.clusters) == 1
    assert snapshot.clusters[0].memory_insight is None


@pytest.mark.asyncio
async def test_unavailable_memory_is_skipped(store, seeded_classroom):
    _struggling_class(store, seeded_classroom)
    memory = _memory(available=False)

    snapshot = await SnapshotBuilder(store, memory=memory).build_snapshot(
        seeded_classroom["classroom_id"], seeded_classroom["owner_id"]
    )

    memory.retrieve_relevant.assert_not_called()
    assert snapshot.clusters[0].memory_insight is None


@pytest.mark.asyncio
async def test_availability_check_failure_is_swallowed(store, seeded_classroom):
    _struggling_class(store, seeded_classroom)
    memory = _memory()
    memory.is_available.side_effect = RuntimeError("connection refused")

    snapshot = await SnapshotBuilder(store, memory=memory).build_snapshot(
        seeded_classroom["classroom_id"], seeded_classroom["owner_id"]
    )

    assert snapshot.clusters[0].memory_insight is None


@pytest.mark.asyncio
async def test_unreadable_rubric_still_marks_cell(store, seeded_classroom):
    """A graded submission row counts as data even if its rubric cannot be parsed."""
    beto = seeded_classroom["students"][1]
    decimales = seeded_classroom["lessons"][1]
    store.record_submission(beto, "decimales", {"accuracy": 0.9, "reasoning": 0.8, "effort": 1.0})
    with store._get_connection() as conn:
        conn.execute("UPDATE homework_submissions SET rubric_scores = ?", ("{broken",))

    snapshot = await SnapshotBuilder(store).build_snapshot(
        seeded_classroom["classroom_id"], seeded_classroom["owner_id"]
    )
    cell = {s.student_id: s.cells for s in snapshot.students}[beto][decimales]

    assert cell.has_data is True
    assert cell.rubric_scores is None
    assert cell.submission_grade is None
