"""
Phrase lexicons for the struggle dimension calculators.

Lexicons are tagged YAML data, one file per locale, so that tone- and
locale-specific phrasing can be tuned without touching the calculators.
"""

from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import List, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from classroom_insight.shared.config import settings
from classroom_insight.shared.exceptions import LexiconError
from classroom_insight.shared.logging import get_logger

logger = get_logger(__name__)

LEXICON_DIR = Path(__file__).parent / "lexicons"


class MarkerCategory(str, Enum):
    """Lexicon categories consumed by the dimension calculators."""
    SURFACE = "surface"
    DEEP = "deep"
    CONFUSION = "confusion"
    FRUSTRATION = "frustration"


class Lexicon(BaseModel):
    """Lower-cased phrase lists keyed by marker category."""

    model_config = ConfigDict(frozen=True)

    locale: str = "custom"
    surface: List[str] = Field(default_factory=list)
    deep: List[str] = Field(default_factory=list)
    confusion: List[str] = Field(default_factory=list)
    frustration: List[str] = Field(default_factory=list)

    @field_validator("surface", "deep", "confusion", "frustration")
    @classmethod
    def _lowercase_phrases(cls, phrases: List[str]) -> List[str]:
        return [p.lower() for p in phrases if p]

    def phrases(self, category: MarkerCategory) -> List[str]:
        return getattr(self, MarkerCategory(category).value)

    def matches(self, category: MarkerCategory, text: str) -> bool:
        """True if any phrase of the category occurs in the lower-cased text."""
        content = text.lower()
        return any(phrase in content for phrase in self.phrases(category))


@lru_cache(maxsize=16)
def _load_lexicon_file(path: Path) -> Lexicon:
    if not path.exists():
        raise LexiconError(f"Lexicon file not found: {path}")

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        lexicon = Lexicon(**data)
    except (yaml.YAMLError, ValidationError, TypeError) as e:
        raise LexiconError(f"Invalid lexicon file {path}: {str(e)}") from e

    logger.debug(f"Loaded lexicon '{lexicon.locale}' from {path}")
    return lexicon


def load_lexicon(locale: Optional[str] = None, path: Optional[Path] = None) -> Lexicon:
    """
    Load a lexicon by locale or explicit path.

    Args:
        locale: Locale code of a bundled lexicon (e.g. "es", "en")
        path: Path to a custom YAML lexicon; wins over locale

    Returns:
        Cached Lexicon instance

    Raises:
        LexiconError: if the file is missing or malformed
    """
    if path is None and locale is None:
        path = settings.analytics.lexicon_path
        locale = settings.analytics.lexicon_locale

    if path is None:
        path = LEXICON_DIR / f"{locale}.yaml"

    return _load_lexicon_file(Path(path).resolve())


def available_locales() -> List[str]:
    """Locales of the lexicons bundled with the package."""
    return sorted(p.stem for p in LEXICON_DIR.glob("*.yaml"))
