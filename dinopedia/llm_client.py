"""OpenAI-compatible chat-completion client used by the extraction tools."""
from __future__ import annotations

import time
from typing import Any

from dinopedia.services import logger as log_service


def get_client(api_key: str, base_url: str | None = None, timeout: float | None = None) -> Any:
    """Build an AsyncOpenAI client; `base_url` points it at a compatible gateway."""
    from openai import AsyncOpenAI

    kwargs: dict[str, Any] = {"api_key": api_key}
    if base_url and base_url.strip():
        kwargs["base_url"] = base_url.strip()
    if timeout:
        kwargs["timeout"] = timeout
    return AsyncOpenAI(**kwargs)


def temperature_for_model(model: str, preferred: float) -> float:
    # Some GPT-5-compatible gateways only accept the default temperature.
    if "gpt-5" in (model or "").lower():
        return 1
    return preferred


class ChatClient:
    """Single-prompt JSON-oriented completions at near-deterministic temperature."""

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o-mini",
        base_url: str | None = None,
        *,
        temperature: float = 0.1,
        max_tokens: int = 4096,
        timeout: float | None = None,
        client: Any | None = None,
    ):
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self._client = client or get_client(api_key, base_url, timeout)

    async def complete(self, prompt: str, *, system: str = "", caller: str = "extractor") -> str:
        messages: list[dict[str, str]] = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})

        t0 = time.monotonic()
        try:
            response = await self._client.chat.completions.create(
                model=self.model,
                messages=messages,
                max_tokens=self.max_tokens,
                temperature=temperature_for_model(self.model, self.temperature),
            )
        except Exception as e:
            log_service.log_llm_call(
                model=self.model,
                caller=caller,
                duration_ms=int((time.monotonic() - t0) * 1000),
                status="error",
                error=str(e),
            )
            raise

        usage = getattr(response, "usage", None)
        log_service.log_llm_call(
            model=self.model,
            caller=caller,
            input_tokens=getattr(usage, "prompt_tokens", 0) or 0,
            output_tokens=getattr(usage, "completion_tokens", 0) or 0,
            duration_ms=int((time.monotonic() - t0) * 1000),
        )
        return response.choices[0].message.content or ""
