"""
Pydantic models for struggle analytics.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class TurnRole(str, Enum):
    """Author of a conversational turn."""
    STUDENT = "student"
    TUTOR = "tutor"


# Role names used by the chat tables
_ROLE_ALIASES = {"user": TurnRole.STUDENT, "assistant": TurnRole.TUTOR}


class ConversationTurn(BaseModel):
    """One message in a tutoring session."""
    role: TurnRole
    content: str
    timestamp: Optional[datetime] = None

    @field_validator("role", mode="before")
    @classmethod
    def _accept_storage_roles(cls, value: Any) -> Any:
        if isinstance(value, str):
            return _ROLE_ALIASES.get(value.lower(), value.lower())
        return value

    @property
    def is_student(self) -> bool:
        return self.role == TurnRole.STUDENT


class StruggleDimension(str, Enum):
    """Raw struggle dimensions, named as they are stored."""
    SOCRATIC_DEPTH = "socraticDepth"
    ERROR_PERSISTENCE = "errorPersistence"
    FRUSTRATION_SENTIMENT = "frustrationSentiment"


class StruggleDimensions(BaseModel):
    """Per-session struggle record: three raw dimensions plus the calibrated composite."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    socratic_depth: float = Field(ge=0.0, le=1.0, alias="socraticDepth")
    error_persistence: float = Field(ge=0.0, le=1.0, alias="errorPersistence")
    frustration_sentiment: float = Field(ge=0.0, le=1.0, alias="frustrationSentiment")
    composite: float = Field(ge=0.0, le=1.0)

    @classmethod
    def zero(cls) -> "StruggleDimensions":
        return cls(socratic_depth=0.0, error_persistence=0.0, frustration_sentiment=0.0, composite=0.0)

    def to_storage_json(self) -> str:
        """Serialize with the camelCase keys the analytics table stores."""
        return json.dumps(self.model_dump(by_alias=True))

    @classmethod
    def from_storage_json(cls, raw: Optional[str]) -> Optional["StruggleDimensions"]:
        """Parse a stored record; None for missing or unreadable JSON."""
        if not raw:
            return None
        try:
            data = json.loads(raw)
        except (TypeError, ValueError):
            return None
        if not isinstance(data, dict):
            return None
        # Older rows may lack a composite; the flat score column carries it
        data.setdefault("composite", 0.0)
        try:
            return cls.model_validate(data)
        except ValueError:
            return None


class StruggleCheck(BaseModel):
    """In-the-moment struggle signal without a persisted write."""
    is_struggling: bool
    score: float
