"""
Semantic memory collaborator interface used for cluster enrichment.
"""

from typing import List, Optional, Protocol

from pydantic import BaseModel


class MemoryExcerpt(BaseModel):
    """One remembered tutoring exchange."""
    question: str
    answer: str = ""
    topic: Optional[str] = None
    similarity: float = 0.0
    created_at: Optional[str] = None


class SemanticMemory(Protocol):
    """Per-student memory of past tutoring exchanges."""

    def is_available(self) -> bool:
        ...

    async def retrieve_relevant(self, student_id: str, query: str, limit: int = 3) -> List[MemoryExcerpt]:
        ...
