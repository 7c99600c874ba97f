"""
Embeddings for semantic memory: one vector per stored exchange or query.
OpenAI by default; a local sentence-transformers model when configured.
"""

from typing import List, Optional
import numpy as np
from openai import AsyncOpenAI

from classroom_insight.shared.config import settings
from classroom_insight.shared.exceptions import EmbeddingError


class EmbeddingClient:
    """Embed memory exchanges and lookup queries."""

    def __init__(
        self,
        provider: Optional[str] = None,
        model: Optional[str] = None,
        api_key: Optional[str] = None
    ):
        self.provider = provider or settings.embedding.provider
        self.model = model or settings.embedding.model
        self.client = None
        self._local_model = None

        if self.provider == "openai":
            api_key = api_key or settings.llm.openai_api_key
            if not api_key:
                raise EmbeddingError("OpenAI API key not configured")
            self.client = AsyncOpenAI(api_key=api_key)
        elif self.provider != "local":
            raise EmbeddingError(f"Unsupported embedding provider: {self.provider}")

    async def embed(self, text: str) -> List[float]:
        """
        Embed one text.

        Raises:
            EmbeddingError: the provider call or local model failed
        """
        if self.provider == "openai":
            try:
                response = await self.client.embeddings.create(model=self.model, input=[text])
            except Exception as e:
                raise EmbeddingError(f"OpenAI embedding failed: {str(e)}") from e
            return list(response.data[0].embedding)

        model = self._load_local_model()
        try:
            vector = model.encode([text], show_progress_bar=False, convert_to_numpy=True)[0]
        except Exception as e:
            raise EmbeddingError(f"Local embedding failed: {str(e)}") from e
        return vector.tolist()

    def _load_local_model(self):
        # sentence-transformers is an optional extra; import on first use
        if self._local_model is None:
            from sentence_transformers import SentenceTransformer

            try:
                self._local_model = SentenceTransformer(self.model)
            except Exception as e:
                raise EmbeddingError(f"Failed to load local model {self.model}: {str(e)}") from e
        return self._local_model


def cosine_similarity(vec1: List[float], vec2: List[float]) -> float:
    """Cosine similarity; 0.0 when either vector is all zeros."""
    v1 = np.asarray(vec1, dtype=float)
    v2 = np.asarray(vec2, dtype=float)

    norm1 = np.linalg.norm(v1)
    norm2 = np.linalg.norm(v2)
    if norm1 == 0 or norm2 == 0:
        return 0.0

    return float(np.dot(v1, v2) / (norm1 * norm2))
