"""
Tests for the text-generation client and embedding helpers.
"""

import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from classroom_insight.shared.config import settings
from classroom_insight.shared.embeddings import EmbeddingClient, cosine_similarity
from classroom_insight.shared.exceptions import EmbeddingError, UpstreamGenerationError
from classroom_insight.shared.llm import LLMClient, LLMProvider


def _openai_response(text):
    response = MagicMock()
    response.choices = [MagicMock(message=MagicMock(content=text))]
    return response


@pytest.mark.asyncio
async def test_ollama_completion():
    client = LLMClient(provider=LLMProvider.OLLAMA, model="llama3")
    client.client.chat.completions.create = AsyncMock(return_value=_openai_response('{"ok": true}'))

    result = await client.get_completion("prompt", system_prompt="system")

    assert result == '{"ok": true}'
    kwargs = client.client.chat.completions.create.await_args.kwargs
    assert kwargs["model"] == "llama3"
    assert kwargs["messages"][0] == {"role": "system", "content": "system"}


@pytest.mark.asyncio
async def test_anthropic_completion_uses_system_parameter():
    client = LLMClient(provider=LLMProvider.ANTHROPIC, api_key="test-key", model="claude-test")
    response = MagicMock()
    response.content = [MagicMock(type="text", text="hola")]
    client.client.messages.create = AsyncMock(return_value=response)

    result = await client.get_completion("prompt", system_prompt="system")

    assert result == "hola"
    assert client.client.messages.create.await_args.kwargs["system"] == "system"


@pytest.mark.asyncio
async def test_provider_failure_becomes_upstream_error():
    client = LLMClient(provider=LLMProvider.OLLAMA)
    client.client.chat.completions.create = AsyncMock(side_effect=ConnectionError("refused"))

    with pytest.raises(UpstreamGenerationError):
        await client.get_completion("prompt")


def test_missing_api_key(monkeypatch):
    monkeypatch.setattr(settings.llm, "openai_api_key", None)
    with pytest.raises(UpstreamGenerationError):
        LLMClient(provider=LLMProvider.OPENAI)


def test_unsupported_provider():
    with pytest.raises(UpstreamGenerationError):
        LLMClient(provider="carrier-pigeon")


def test_cosine_similarity():
    assert cosine_similarity([1.0, 0.0], [1.0, 0.0]) == pytest.approx(1.0)
    assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)
    assert cosine_similarity([0.8, 0.6], [1.0, 0.0]) == pytest.approx(0.8)
    assert cosine_similarity([0.0, 0.0], [1.0, 0.0]) == 0.0


@pytest.mark.asyncio
async def test_openai_embedding():
    client = EmbeddingClient(provider="openai", api_key="test-key", model="text-embedding-3-small")
    response = MagicMock()
    response.data = [MagicMock(embedding=[0.1, 0.2, 0.3])]
    client.client.embeddings.create = AsyncMock(return_value=response)

    vector = await client.embed("¿Qué es una fracción?")

    assert vector == [0.1, 0.2, 0.3]
    assert client.client.embeddings.create.await_args.kwargs["input"] == ["¿Qué es una fracción?"]


@pytest.mark.asyncio
async def test_embedding_failure_is_typed():
    client = EmbeddingClient(provider="openai", api_key="test-key")
    client.client.embeddings.create = AsyncMock(side_effect=ConnectionError("refused"))

    with pytest.raises(EmbeddingError):
        await client.embed("hola")


@pytest.mark.asyncio
async def test_local_embedding_uses_loaded_model():
    client = EmbeddingClient(provider="local", model="all-MiniLM-L6-v2")
    local_model = MagicMock()
    local_model.encode.return_value = [MagicMock(tolist=MagicMock(return_value=[1.0, 0.0]))]

    with patch.object(client, "_load_local_model", return_value=local_model):
        vector = await client.embed("hola")

    assert vector == [1.0, 0.0]


def test_unsupported_embedding_provider():
    with pytest.raises(EmbeddingError):
        EmbeddingClient(provider="carrier-pigeon")
