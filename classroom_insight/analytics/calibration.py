"""
Developmental calibration of struggle scores.

Younger students verbalize confusion as a normal part of learning, so the same
raw signal over-counts struggle for them; older students tend to go quiet, so
their explicit confusion is a stronger signal. The persona table maps an
age/grade bracket to the multiplier applied to the raw composite.
"""

import re
import unicodedata
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from classroom_insight.shared.logging import get_logger

logger = get_logger(__name__)

DEFAULT_MULTIPLIER = 1.00


class PersonaType(str, Enum):
    """Developmental brackets."""
    STORYTELLER = "the-storyteller"
    FRIENDLY_GUIDE = "the-friendly-guide"
    STRUCTURED_MENTOR = "the-structured-mentor"
    ACADEMIC_CHALLENGER = "the-academic-challenger"
    RESEARCH_COLLEAGUE = "the-research-colleague"


@dataclass(frozen=True)
class DevelopmentalPersona:
    """Immutable reference record for one developmental bracket."""
    type: PersonaType
    name: str
    age_range: str
    grade_range: str
    multiplier: float


PERSONAS = {
    PersonaType.STORYTELLER: DevelopmentalPersona(
        type=PersonaType.STORYTELLER,
        name="The Storyteller",
        age_range="7-9",
        grade_range="primaria 1-3",
        multiplier=0.70,
    ),
    PersonaType.FRIENDLY_GUIDE: DevelopmentalPersona(
        type=PersonaType.FRIENDLY_GUIDE,
        name="The Friendly Guide",
        age_range="10-12",
        grade_range="primaria 4-6",
        multiplier=0.85,
    ),
    PersonaType.STRUCTURED_MENTOR: DevelopmentalPersona(
        type=PersonaType.STRUCTURED_MENTOR,
        name="The Structured Mentor",
        age_range="13-15",
        grade_range="secundaria 1-3",
        multiplier=1.00,
    ),
    PersonaType.ACADEMIC_CHALLENGER: DevelopmentalPersona(
        type=PersonaType.ACADEMIC_CHALLENGER,
        name="The Academic Challenger",
        age_range="16-18",
        grade_range="preparatoria 1-3",
        multiplier=1.20,
    ),
    PersonaType.RESEARCH_COLLEAGUE: DevelopmentalPersona(
        type=PersonaType.RESEARCH_COLLEAGUE,
        name="The Research Colleague",
        age_range="19+",
        grade_range="universidad",
        multiplier=1.20,
    ),
}

# Level keywords, checked in order; the first hit wins
_LEVEL_KEYWORDS = [
    (("universidad", "licenciatura", "university", "college", "undergrad"), PersonaType.RESEARCH_COLLEAGUE),
    (("preparatoria", "bachillerato", "prepa", "high school", "highschool"), PersonaType.ACADEMIC_CHALLENGER),
    (("secundaria", "middle school"), PersonaType.STRUCTURED_MENTOR),
    (("primaria", "elementary", "primary"), None),
    (("kindergarten", "preescolar"), PersonaType.STORYTELLER),
]

_NUMBER_RE = re.compile(r"(\d+)")


def _normalize(text: str) -> str:
    decomposed = unicodedata.normalize("NFKD", text)
    stripped = "".join(c for c in decomposed if not unicodedata.combining(c))
    return re.sub(r"[_\-]+", " ", stripped.lower()).strip()


def _persona_for_age(age: int) -> Optional[PersonaType]:
    if age <= 0:
        return None
    if age <= 9:
        return PersonaType.STORYTELLER
    if age <= 12:
        return PersonaType.FRIENDLY_GUIDE
    if age <= 15:
        return PersonaType.STRUCTURED_MENTOR
    if age <= 18:
        return PersonaType.ACADEMIC_CHALLENGER
    return PersonaType.RESEARCH_COLLEAGUE


def _persona_for_us_grade(grade: int) -> Optional[PersonaType]:
    if 1 <= grade <= 3:
        return PersonaType.STORYTELLER
    if 4 <= grade <= 6:
        return PersonaType.FRIENDLY_GUIDE
    if 7 <= grade <= 9:
        return PersonaType.STRUCTURED_MENTOR
    if 10 <= grade <= 12:
        return PersonaType.ACADEMIC_CHALLENGER
    return None


def _persona_for_grade(grade_level: str) -> Optional[PersonaType]:
    text = _normalize(grade_level)
    if not text:
        return None

    number_match = _NUMBER_RE.search(text)
    number = int(number_match.group(1)) if number_match else None

    for keywords, persona_type in _LEVEL_KEYWORDS:
        if any(keyword in text for keyword in keywords):
            if persona_type is not None:
                return persona_type
            # Primary school splits at third grade
            if number is not None and number <= 3:
                return PersonaType.STORYTELLER
            return PersonaType.FRIENDLY_GUIDE

    if number is not None and ("grade" in text or "grado" in text or text.isdigit()):
        return _persona_for_us_grade(number)

    return None


def resolve_persona(
    age: Optional[int] = None,
    grade_level: Optional[str] = None
) -> Optional[DevelopmentalPersona]:
    """
    Resolve the developmental persona for a student.

    Age wins over grade level when both resolve.

    Returns:
        The persona, or None when neither input is recognized
    """
    persona_type = None
    if age is not None:
        try:
            persona_type = _persona_for_age(int(age))
        except (TypeError, ValueError):
            logger.debug(f"Ignoring non-numeric age: {age!r}")
    if persona_type is None and grade_level:
        persona_type = _persona_for_grade(grade_level)

    if persona_type is None:
        if age is not None or grade_level:
            logger.debug(f"Unrecognized developmental bracket: age={age!r} grade_level={grade_level!r}")
        return None

    return PERSONAS[persona_type]


def developmental_multiplier(
    age: Optional[int] = None,
    grade_level: Optional[str] = None
) -> float:
    """Multiplier applied to the raw composite; 1.00 when the bracket is unknown."""
    persona = resolve_persona(age, grade_level)
    return persona.multiplier if persona else DEFAULT_MULTIPLIER
