"""
Struggle dimension calculators.

Each calculator is a pure function over a session's student-authored turns
and returns a score in [0, 1] where 1 is the strongest struggle signal.
"""

from typing import Iterable, List, Sequence

from classroom_insight.analytics.lexicon import Lexicon, MarkerCategory
from classroom_insight.analytics.models import ConversationTurn

# Error persistence
RUN_PENALTY_STEP = 0.1
RUN_PENALTY_CAP = 0.3

# Frustration sentiment
RECENT_WINDOW = 3
TERSE_WINDOW = 2
TERSE_MAX_CHARS = 15
TERSE_WEIGHT = 0.3


def student_turns(turns: Iterable[ConversationTurn]) -> List[ConversationTurn]:
    """Keep only student-authored turns, preserving order."""
    return [turn for turn in turns if turn.is_student]


def calc_socratic_depth(turns: Sequence[ConversationTurn], lexicon: Lexicon) -> float:
    """
    Ratio of surface (definitional) questions to all signalled questions.

    A student stuck on "what is X" is further from insight than one asking
    why or how. Surface and deep matches are counted independently.
    """
    surface_count = 0
    deep_count = 0

    for turn in turns:
        if lexicon.matches(MarkerCategory.SURFACE, turn.content):
            surface_count += 1
        if lexicon.matches(MarkerCategory.DEEP, turn.content):
            deep_count += 1

    total_signaled = surface_count + deep_count
    if total_signaled == 0:
        return 0.0

    return min(1.0, surface_count / total_signaled)


def calc_error_persistence(turns: Sequence[ConversationTurn], lexicon: Lexicon) -> float:
    """
    Confusion rate plus a penalty for back-to-back confused turns.

    Sessions with fewer than two student turns score 0.
    """
    if len(turns) < 2:
        return 0.0

    confused_count = 0
    consecutive_runs = 0
    prev_was_confused = False

    for turn in turns:
        is_confused = lexicon.matches(MarkerCategory.CONFUSION, turn.content)
        if is_confused:
            confused_count += 1
            if prev_was_confused:
                consecutive_runs += 1
        prev_was_confused = is_confused

    raw_rate = confused_count / len(turns)
    run_penalty = min(RUN_PENALTY_CAP, consecutive_runs * RUN_PENALTY_STEP)

    return min(1.0, raw_rate + run_penalty)


def calc_frustration_sentiment(turns: Sequence[ConversationTurn], lexicon: Lexicon) -> float:
    """
    Recency-weighted frustration over the last three student turns.

    A frustration marker counts 1.0. A terse reply in the last two turns that
    carries no marker counts 0.3.
    """
    if not turns:
        return 0.0

    recent = list(turns)[-RECENT_WINDOW:]
    terse_from = len(recent) - TERSE_WINDOW
    signals = 0.0

    for i, turn in enumerate(recent):
        if lexicon.matches(MarkerCategory.FRUSTRATION, turn.content):
            signals += 1.0
        elif i >= terse_from and len(turn.content.strip()) < TERSE_MAX_CHARS:
            signals += TERSE_WEIGHT

    return min(1.0, signals / RECENT_WINDOW)
