"""Chat completion clients (OpenAI by default, Gemini optional).

Behavior:
- ``complete`` sends the role-tagged messages with a fixed model and a
  low temperature and returns the first choice's text, stripped.
- Provider failures (timeouts, auth errors, rate limits, empty
  candidates) never propagate: they are logged and traced, and the
  caller receives an empty string so it can fall back to a deterministic
  answer built from the retrieved snippets.
"""

from __future__ import annotations

from typing import List, Optional

import google.generativeai as genai
from openai import AsyncOpenAI

from shared.models import ChatMessage
from shared.settings import Settings
from shared.tracing import estimate_tokens, log_event, span


class CompletionClient:
    """Base class: subclasses implement ``_create`` for one provider."""

    provider = "none"

    def __init__(self, model: str, temperature: float = 0.2) -> None:
        self.model = model
        self.temperature = temperature

    async def _create(self, messages: List[ChatMessage], temperature: float) -> str:
        raise NotImplementedError

    async def complete(
        self, messages: List[ChatMessage], *, temperature: Optional[float] = None
    ) -> str:
        temp = self.temperature if temperature is None else temperature
        prompt_tokens = estimate_tokens("".join(m.content for m in messages))
        try:
            with span(
                "llm.generate.call",
                provider=self.provider,
                model=self.model,
                temperature=temp,
                prompt_tokens=prompt_tokens,
            ):
                text = await self._create(messages, temp)
        except Exception as e:
            status = getattr(e, "status_code", "") or ""
            print(f"[llm] error {self.provider} {status} {e}")
            log_event(
                "GenerationError",
                payload={"provider": self.provider, "model": self.model, "error": str(e)[:300]},
            )
            return ""
        answer = (text or "").strip()
        print(f"[llm] answerPreview: {answer[:160]!r}")
        log_event(
            "Generation",
            payload={
                "provider": self.provider,
                "model": self.model,
                "prompt_tokens": prompt_tokens,
                "output_tokens": estimate_tokens(answer),
            },
        )
        return answer


class OpenAICompletionClient(CompletionClient):
    provider = "openai"

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o-mini",
        temperature: float = 0.2,
        timeout: float = 25.0,
        client: Optional[AsyncOpenAI] = None,
    ) -> None:
        super().__init__(model, temperature)
        self._client = client or AsyncOpenAI(api_key=api_key, timeout=timeout, max_retries=0)

    async def _create(self, messages: List[ChatMessage], temperature: float) -> str:
        completion = await self._client.chat.completions.create(
            model=self.model,
            messages=[m.model_dump() for m in messages],
            temperature=temperature,
        )
        if not completion.choices:
            return ""
        return completion.choices[0].message.content or ""


class GeminiCompletionClient(CompletionClient):
    """Gemini has no multi-system-message chat; system messages are joined,
    in order, into the model's system instruction."""

    provider = "gemini"

    def __init__(
        self,
        api_key: str,
        model: str = "gemini-2.5-flash",
        temperature: float = 0.2,
        timeout: float = 25.0,
    ) -> None:
        super().__init__(model, temperature)
        genai.configure(api_key=api_key)
        self._timeout = timeout

    async def _create(self, messages: List[ChatMessage], temperature: float) -> str:
        system = "\n\n".join(m.content for m in messages if m.role == "system")
        contents = [
            {"role": "model" if m.role == "assistant" else "user", "parts": [{"text": m.content}]}
            for m in messages
            if m.role != "system"
        ]
        model = genai.GenerativeModel(self.model, system_instruction=system or None)
        resp = await model.generate_content_async(
            contents,
            generation_config=genai.GenerationConfig(temperature=temperature),
            request_options={"timeout": self._timeout},
        )
        # resp.text raises when the first candidate has no text parts
        return resp.text


def build_completion_client(settings: Settings) -> CompletionClient:
    if settings.llm_provider.strip().lower() == "gemini":
        return GeminiCompletionClient(
            api_key=settings.gemini_api_key or "",
            model=settings.gemini_model,
            temperature=settings.temperature,
            timeout=settings.llm_timeout_seconds,
        )
    return OpenAICompletionClient(
        api_key=settings.openai_api_key or "",
        model=settings.openai_model,
        temperature=settings.temperature,
        timeout=settings.llm_timeout_seconds,
    )
