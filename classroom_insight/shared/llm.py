"""
Text-generation client abstraction supporting OpenAI, Anthropic and Ollama.
The diagnostic generator treats the provider as a black box: prompt in, text out.
"""

from typing import Optional
from enum import Enum

from openai import AsyncOpenAI
from anthropic import AsyncAnthropic

from classroom_insight.shared.config import settings
from classroom_insight.shared.exceptions import UpstreamGenerationError


class LLMProvider(str, Enum):
    """Supported text-generation providers."""
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    OLLAMA = "ollama"


class LLMClient:
    """Unified text-generation client supporting multiple providers."""

    def __init__(
        self,
        provider: Optional[str] = None,
        model: Optional[str] = None,
        api_key: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None
    ):
        self.provider = provider or settings.llm.provider
        self.model = model or settings.llm.default_model
        self.temperature = temperature if temperature is not None else settings.llm.temperature
        self.max_tokens = max_tokens or settings.llm.max_tokens

        if self.provider == LLMProvider.OPENAI:
            api_key = api_key or settings.llm.openai_api_key
            if not api_key:
                raise UpstreamGenerationError("OpenAI API key not configured")
            self.client = AsyncOpenAI(api_key=api_key)
        elif self.provider == LLMProvider.ANTHROPIC:
            api_key = api_key or settings.llm.anthropic_api_key
            if not api_key:
                raise UpstreamGenerationError("Anthropic API key not configured")
            self.client = AsyncAnthropic(api_key=api_key)
        elif self.provider == LLMProvider.OLLAMA:
            # Ollama serves an OpenAI-compatible API and ignores the key
            self.client = AsyncOpenAI(
                base_url=settings.llm.ollama_base_url,
                api_key=api_key or "ollama",
            )
        else:
            raise UpstreamGenerationError(f"Unsupported provider: {self.provider}")

    async def get_completion(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        **kwargs
    ) -> str:
        """
        Get text completion.

        Args:
            prompt: User prompt
            system_prompt: Optional system instructions
            model: Override default model
            temperature: Override default temperature
            max_tokens: Override default max_tokens
            **kwargs: Additional provider-specific parameters

        Returns:
            Completion text

        Raises:
            UpstreamGenerationError: on any network or protocol failure
        """
        model = model or self.model
        temperature = temperature if temperature is not None else self.temperature
        max_tokens = max_tokens or self.max_tokens

        try:
            if self.provider == LLMProvider.ANTHROPIC:
                return await self._anthropic_completion(
                    prompt=prompt,
                    system_prompt=system_prompt,
                    model=model,
                    temperature=temperature,
                    max_tokens=max_tokens,
                    **kwargs
                )
            return await self._openai_completion(
                prompt=prompt,
                system_prompt=system_prompt,
                model=model,
                temperature=temperature,
                max_tokens=max_tokens,
                **kwargs
            )
        except Exception as e:
            raise UpstreamGenerationError(f"Text generation failed: {str(e)}") from e

    async def _openai_completion(
        self,
        prompt: str,
        system_prompt: Optional[str],
        model: str,
        temperature: float,
        max_tokens: int,
        **kwargs
    ) -> str:
        """OpenAI-compatible completion (OpenAI and Ollama)."""
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})

        response = await self.client.chat.completions.create(
            model=model,
            messages=messages,
            temperature=temperature,
            max_tokens=max_tokens,
            **kwargs
        )
        return response.choices[0].message.content or ""

    async def _anthropic_completion(
        self,
        prompt: str,
        system_prompt: Optional[str],
        model: str,
        temperature: float,
        max_tokens: int,
        **kwargs
    ) -> str:
        """Anthropic-specific completion."""
        # Anthropic uses system parameter, not system message
        completion_kwargs = {
            "model": model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": [{"role": "user", "content": prompt}],
            **kwargs
        }
        if system_prompt:
            completion_kwargs["system"] = system_prompt

        response = await self.client.messages.create(**completion_kwargs)
        return "".join(
            block.text for block in response.content if getattr(block, "type", "text") == "text"
        )

