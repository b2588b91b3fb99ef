from __future__ import annotations

import importlib
import logging
from typing import Any

from ..config import Settings
from ..courses import course_context_json
from ..errors import ConfigurationError, DownstreamProviderError, DownstreamTimeout
from .base import ChatReply, ChatTurn

log = logging.getLogger(__name__)


def system_prompt(brand: str) -> str:
    return f"You are {brand.upper()} Learner Hub course assistant.\nAnswer ONLY using this data:\n{course_context_json()}"


class OpenRouterChat:
    """Chat completions against an OpenAI-compatible endpoint (OpenRouter by default)."""

    name = "openrouter"

    def __init__(self, settings: Settings) -> None:
        self.api_key = settings.chat_api_key
        self.base_url = settings.chat_base_url
        self.model = settings.chat_model
        self.temperature = settings.chat_temperature
        self.max_tokens = settings.chat_max_tokens
        self.timeout_s = settings.side_effect_timeout_s
        self.system = system_prompt(settings.brand_name)
        self._client: Any = None
        self._errors: Any = None

    def _openai(self) -> Any:
        if not self.api_key:
            raise ConfigurationError("OPENROUTER_API_KEY is not set")
        if self._client is None:
            try:
                mod = importlib.import_module("openai")
            except Exception as e:  # pragma: no cover
                raise ConfigurationError("Chat provider requires the 'openai' package (`pip install openai`).") from e
            self._errors = mod
            self._client = mod.OpenAI(api_key=self.api_key, base_url=self.base_url, timeout=self.timeout_s)
        return self._client

    def build_messages(self, message: str, history: list[ChatTurn]) -> list[dict[str, str]]:
        messages = [{"role": "system", "content": self.system}]
        messages.extend({"role": t.role, "content": t.content} for t in history)
        messages.append({"role": "user", "content": message})
        return messages

    def complete(self, message: str, history: list[ChatTurn]) -> ChatReply:
        client = self._openai()
        errors = self._errors
        try:
            completion = client.chat.completions.create(
                model=self.model,
                messages=self.build_messages(message, history),
                temperature=self.temperature,
                max_tokens=self.max_tokens,
            )
        except errors.AuthenticationError as e:
            raise ConfigurationError(f"Chat provider rejected credentials: {e}") from e
        except errors.RateLimitError as e:
            raise DownstreamProviderError(
                f"Chat provider rate limited: {e}",
                status_code=429,
                public_message="The assistant is busy right now. Please try again shortly.",
            ) from e
        except errors.APITimeoutError as e:
            raise DownstreamTimeout(f"Chat provider timed out after {self.timeout_s}s") from e
        except errors.APIError as e:
            raise DownstreamProviderError(f"Chat provider error: {type(e).__name__}: {e}") from e

        choices = getattr(completion, "choices", None) or []
        text = getattr(getattr(choices[0], "message", None), "content", None) if choices else None
        if not isinstance(text, str) or not text.strip():
            raise DownstreamProviderError("Chat provider returned an empty completion")

        log.debug("[chat] completion model=%s chars=%d", self.model, len(text))
        return ChatReply(text=text.strip(), provider=self.name, model=self.model)
