"""
Tests for batch rescoring and the progress store.
"""

import threading

import pytest
from unittest.mock import MagicMock

from classroom_insight.analytics.batch import (
    BatchRescorer,
    JobStatus,
    ProgressStore,
    RescoreProgress,
)
from classroom_insight.analytics.models import StruggleDimensions
from classroom_insight.analytics.scorer import StruggleScorer
from classroom_insight.shared.exceptions import ClassroomNotFoundError, StorageError


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def _progress(job_id: str) -> RescoreProgress:
    return RescoreProgress(
        job_id=job_id, classroom_id="c1",
        started_at="2026-01-01T00:00:00+00:00", updated_at="2026-01-01T00:00:00+00:00",
    )


def test_progress_store_expires_entries():
    clock = FakeClock()
    progress = ProgressStore(ttl_seconds=60, clock=clock)
    progress.put(_progress("job_1"))

    clock.now += 59
    assert progress.get("job_1") is not None

    clock.now += 1
    assert progress.get("job_1") is None
    assert len(progress) == 0


def test_progress_store_refreshes_on_put():
    clock = FakeClock()
    progress = ProgressStore(ttl_seconds=60, clock=clock)
    progress.put(_progress("job_1"))
    clock.now += 50
    progress.put(_progress("job_1"))
    clock.now += 50

    assert progress.get("job_1") is not None


def test_rescore_classroom(store, seeded_classroom, lexicon):
    ana = seeded_classroom["students"][0]
    second_session = store.open_session(ana, seeded_classroom["lessons"][1])
    store.append_turn(second_session, "user", "me rindo, esto es imposible")

    rescorer = BatchRescorer(StruggleScorer(store=store, lexicon=lexicon), store)
    state = rescorer.rescore_classroom(
        seeded_classroom["classroom_id"], seeded_classroom["owner_id"], job_id="job_1"
    )

    assert state.status == JobStatus.COMPLETED
    assert state.total == 2
    assert state.completed == 2
    assert state.failed == 0
    assert rescorer.get_progress("job_1") == state
    assert store.get_struggle_record(second_session).frustration_sentiment > 0


def test_rescore_requires_ownership(store, seeded_classroom, lexicon):
    rescorer = BatchRescorer(StruggleScorer(store=store, lexicon=lexicon), store)
    with pytest.raises(ClassroomNotFoundError):
        rescorer.rescore_classroom(seeded_classroom["classroom_id"], "someone_else")


def test_rescore_counts_failures_and_continues():
    store = MagicMock()
    store.list_classroom_sessions.return_value = ["s1", "s2", "s3"]
    scorer = MagicMock()
    scorer.score_session.side_effect = [
        StruggleDimensions.zero(),
        RuntimeError("boom"),
        StruggleDimensions.zero(),
    ]

    state = BatchRescorer(scorer, store).rescore_classroom("c1", "t1")

    assert state.completed == 2
    assert state.failed == 1
    assert state.processed == 3
    assert state.status == JobStatus.COMPLETED


def test_rescore_all_failed():
    store = MagicMock()
    store.list_classroom_sessions.return_value = ["s1"]
    scorer = MagicMock()
    scorer.score_session.side_effect = RuntimeError("boom")

    state = BatchRescorer(scorer, store).rescore_classroom("c1", "t1")

    assert state.status == JobStatus.FAILED


def test_failed_write_counts_as_failed_session(store, seeded_classroom, lexicon):
    """A session whose struggle record cannot be saved is not counted as scored."""
    store.write_struggle_record = MagicMock(side_effect=StorageError("disk full"))
    rescorer = BatchRescorer(StruggleScorer(store=store, lexicon=lexicon), store)

    state = rescorer.rescore_classroom(seeded_classroom["classroom_id"], seeded_classroom["owner_id"])

    assert state.total == 1
    assert state.completed == 0
    assert state.failed == state.total
    assert state.status == JobStatus.FAILED
    store.write_struggle_record.assert_called_once()


def test_live_scoring_stays_fail_open(store, seeded_classroom, lexicon):
    """Outside the batch job a failed write is still swallowed."""
    store.write_struggle_record = MagicMock(side_effect=StorageError("disk full"))
    scorer = StruggleScorer(store=store, lexicon=lexicon)

    dims = scorer.score_session(seeded_classroom["session_id"])

    assert dims.socratic_depth == 1.0


def test_running_progress_visible_from_another_thread():
    store = MagicMock()
    store.list_classroom_sessions.return_value = ["s1"]
    started = threading.Event()
    release = threading.Event()

    def slow_score(session_id, fail_open=True):
        started.set()
        release.wait(timeout=5)
        return StruggleDimensions.zero()

    scorer = MagicMock()
    scorer.score_session.side_effect = slow_score
    rescorer = BatchRescorer(scorer, store)

    worker = threading.Thread(target=rescorer.rescore_classroom, args=("c1", "t1"), kwargs={"job_id": "job_1"})
    worker.start()
    try:
        assert started.wait(timeout=5)
        assert rescorer.get_progress("job_1").status == JobStatus.RUNNING
    finally:
        release.set()
        worker.join(timeout=5)

    assert rescorer.get_progress("job_1").status == JobStatus.COMPLETED
    scorer.score_session.assert_called_once_with("s1", fail_open=False)
