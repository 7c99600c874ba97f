"""
Struggle scorer: combines the three dimensions into a calibrated composite
and persists it for the session.
"""

import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional, Sequence

from classroom_insight.analytics.calibration import developmental_multiplier
from classroom_insight.analytics.dimensions import (
    calc_error_persistence,
    calc_frustration_sentiment,
    calc_socratic_depth,
    student_turns,
)
from classroom_insight.analytics.lexicon import Lexicon, load_lexicon
from classroom_insight.analytics.models import (
    ConversationTurn,
    StruggleCheck,
    StruggleDimensions,
)
from classroom_insight.shared.config import AnalyticsConfig, settings
from classroom_insight.shared.exceptions import SessionNotFoundError
from classroom_insight.shared.logging import get_logger, log_with_context
from classroom_insight.storage.base import InsightStore

logger = get_logger(__name__)

PRECISION = Decimal("0.001")


def round_score(value: float) -> float:
    """Round to 3 decimals, halves away from zero."""
    return float(Decimal(str(value)).quantize(PRECISION, rounding=ROUND_HALF_UP))


class StruggleScorer:
    """Score tutoring sessions on the multi-dimensional struggle matrix."""

    def __init__(
        self,
        store: Optional[InsightStore] = None,
        lexicon: Optional[Lexicon] = None,
        config: Optional[AnalyticsConfig] = None
    ):
        self.store = store
        self.lexicon = lexicon or load_lexicon()
        self.config = config or settings.analytics

    def score(
        self,
        turns: Sequence[ConversationTurn],
        age: Optional[int] = None,
        grade_level: Optional[str] = None
    ) -> StruggleDimensions:
        """
        Calculate the struggle matrix for a conversation. Does not write.

        Args:
            turns: Ordered session turns; tutor turns are ignored
            age: Student age, used for developmental calibration
            grade_level: Student grade level, used when age is unknown

        Returns:
            Dimensions and composite, each rounded to 3 decimals
        """
        turns = student_turns(turns)

        socratic_depth = calc_socratic_depth(turns, self.lexicon)
        error_persistence = calc_error_persistence(turns, self.lexicon)
        frustration_sentiment = calc_frustration_sentiment(turns, self.lexicon)

        raw_composite = (
            socratic_depth * self.config.socratic_weight
            + error_persistence * self.config.persistence_weight
            + frustration_sentiment * self.config.frustration_weight
        )
        multiplier = developmental_multiplier(age, grade_level)
        composite = min(1.0, max(0.0, raw_composite * multiplier))

        return StruggleDimensions(
            socratic_depth=round_score(socratic_depth),
            error_persistence=round_score(error_persistence),
            frustration_sentiment=round_score(frustration_sentiment),
            composite=round_score(composite),
        )

    def score_and_persist(
        self,
        session_id: str,
        turns: Sequence[ConversationTurn],
        age: Optional[int] = None,
        grade_level: Optional[str] = None
    ) -> StruggleDimensions:
        """
        Calculate the struggle matrix and overwrite the session's stored record.

        A failed write is logged and swallowed: the score is advisory and must
        never break the tutoring turn that triggered it.
        """
        dimensions = self.score(turns, age, grade_level)

        if self.store is None:
            log_with_context(
                logger, logging.WARNING,
                "No store configured, struggle dimensions not persisted",
                session_id=session_id, action="persist_struggle",
            )
            return dimensions

        try:
            self.store.write_struggle_record(session_id, dimensions)
        except Exception as e:
            log_with_context(
                logger, logging.WARNING,
                f"Failed to persist struggle dimensions: {str(e)}",
                session_id=session_id, action="persist_struggle",
            )
        else:
            log_with_context(
                logger, logging.DEBUG,
                f"Persisted struggle composite {dimensions.composite}",
                session_id=session_id, action="persist_struggle",
            )

        return dimensions

    def quick_check(
        self,
        turns: Sequence[ConversationTurn],
        age: Optional[int] = None,
        grade_level: Optional[str] = None
    ) -> StruggleCheck:
        """In-the-moment struggle signal for prompt building; no write."""
        dimensions = self.score(turns, age, grade_level)
        return StruggleCheck(
            is_struggling=dimensions.composite >= self.config.struggling_threshold,
            score=dimensions.composite,
        )

    def score_session(self, session_id: str, fail_open: bool = True) -> StruggleDimensions:
        """
        Load a session's transcript and student from the store, then score and persist.

        Args:
            session_id: Session to rescore
            fail_open: Log and swallow a failed write like score_and_persist.
                When False the write error propagates to the caller.

        Raises:
            SessionNotFoundError if the session has no owning student
            StorageError on a failed write when fail_open is False
        """
        if self.store is None:
            raise SessionNotFoundError(f"No store configured to load session {session_id}")

        student = self.store.get_session_student(session_id)
        if student is None:
            raise SessionNotFoundError(f"Session {session_id} not found")

        turns = self.store.get_session_turns(session_id)
        if fail_open:
            return self.score_and_persist(session_id, turns, student.age, student.grade_level)

        dimensions = self.score(turns, student.age, student.grade_level)
        self.store.write_struggle_record(session_id, dimensions)
        return dimensions
