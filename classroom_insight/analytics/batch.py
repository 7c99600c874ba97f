"""
Batch rescoring of every lesson-chat session in a classroom, with progress
tracked in a keyed TTL store.
"""

import time
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Dict, Optional, Tuple

from pydantic import BaseModel

from classroom_insight.analytics.scorer import StruggleScorer
from classroom_insight.shared.config import settings
from classroom_insight.shared.exceptions import ClassroomNotFoundError
from classroom_insight.shared.logging import get_logger
from classroom_insight.storage.base import InsightStore

logger = get_logger(__name__)


class JobStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class RescoreProgress(BaseModel):
    """Progress of one rescoring job."""
    job_id: str
    classroom_id: str
    total: int = 0
    completed: int = 0
    failed: int = 0
    status: JobStatus = JobStatus.RUNNING
    started_at: str
    updated_at: str

    @property
    def processed(self) -> int:
        return self.completed + self.failed


class ProgressStore:
    """Job progress keyed by job id; entries expire ttl_seconds after their last update."""

    def __init__(self, ttl_seconds: Optional[int] = None, clock: Callable[[], float] = time.time):
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else settings.analytics.progress_ttl_seconds
        self._clock = clock
        self._entries: Dict[str, Tuple[RescoreProgress, float]] = {}  # job_id -> (progress, timestamp)

    def put(self, progress: RescoreProgress):
        self._evict_expired()
        self._entries[progress.job_id] = (progress, self._clock())

    def get(self, job_id: str) -> Optional[RescoreProgress]:
        self._evict_expired()
        entry = self._entries.get(job_id)
        return entry[0] if entry else None

    def __len__(self) -> int:
        self._evict_expired()
        return len(self._entries)

    def _evict_expired(self):
        now = self._clock()
        expired = [
            job_id for job_id, (_, timestamp) in self._entries.items()
            if now - timestamp >= self.ttl_seconds
        ]
        for job_id in expired:
            del self._entries[job_id]


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class BatchRescorer:
    """Recompute and persist struggle scores for a whole classroom."""

    def __init__(
        self,
        scorer: StruggleScorer,
        store: InsightStore,
        progress: Optional[ProgressStore] = None
    ):
        self.scorer = scorer
        self.store = store
        self.progress = progress or ProgressStore()

    def rescore_classroom(
        self,
        classroom_id: str,
        requester_id: str,
        job_id: Optional[str] = None
    ) -> RescoreProgress:
        """
        Rescore every session of the classroom's students on its lessons.

        A session that fails to score or to persist is counted in `failed`
        and skipped. The call blocks until every session is processed; the
        running state is visible through get_progress only from another thread.

        Raises:
            ClassroomNotFoundError if the requester does not own the classroom
        """
        if self.store.get_classroom(classroom_id, requester_id) is None:
            raise ClassroomNotFoundError(classroom_id, requester_id)

        session_ids = self.store.list_classroom_sessions(classroom_id)
        started_at = _now()
        state = RescoreProgress(
            job_id=job_id or str(uuid.uuid4()),
            classroom_id=classroom_id,
            total=len(session_ids),
            started_at=started_at,
            updated_at=started_at,
        )
        self.progress.put(state)
        logger.info(f"Rescoring {state.total} sessions for classroom {classroom_id} (job {state.job_id})")

        for session_id in session_ids:
            try:
                self.scorer.score_session(session_id, fail_open=False)
                state.completed += 1
            except Exception as e:
                state.failed += 1
                logger.warning(f"Rescoring session {session_id} failed: {str(e)}")
            state.updated_at = _now()
            self.progress.put(state)

        if state.total and state.failed == state.total:
            state.status = JobStatus.FAILED
        else:
            state.status = JobStatus.COMPLETED
        state.updated_at = _now()
        self.progress.put(state)

        logger.info(
            f"Rescoring job {state.job_id} {state.status.value}: "
            f"{state.completed} scored, {state.failed} failed"
        )
        return state

    def get_progress(self, job_id: str) -> Optional[RescoreProgress]:
        return self.progress.get(job_id)
