"""Chat and transcription calls to the model provider (OpenRouter through the OpenAI SDK)."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import PurePath
from typing import Any

from openai import OpenAI, OpenAIError

from ..errors import ConfigurationError, ModelRequestError

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://openrouter.ai/api/v1"
DEFAULT_HEADERS = {
    "HTTP-Referer": "https://github.com/finance-bot/finance-bot",
    "X-Title": "Finance Bot",
}
DEFAULT_MODELS = {
    "text": "anthropic/claude-haiku-4.5",
    "text-fast": "openai/gpt-4o-mini",
    "vision": "anthropic/claude-sonnet-4.5",
    "vision-fast": "openai/gpt-4o-mini",
    "audio": "openai/whisper-1",
}
JSON_OBJECT_FORMAT: dict[str, Any] = {"type": "json_object"}

_AUDIO_MIME_TYPES = {
    "mp3": "audio/mpeg",
    "mp4": "audio/mp4",
    "m4a": "audio/mp4",
    "wav": "audio/wav",
    "webm": "audio/webm",
    "ogg": "audio/ogg",
}
_LEADING_FENCE = re.compile(r"^\s*```[a-zA-Z]*\s*\n?")
_TRAILING_FENCE = re.compile(r"\n?\s*```\s*$")

Message = dict[str, Any]


@dataclass(slots=True)
class ModelResponse:
    content: str
    model: str
    usage: dict[str, int] | None = None


def json_schema_format(name: str, schema: dict[str, Any], strict: bool = True) -> dict[str, Any]:
    return {"type": "json_schema", "json_schema": {"name": name, "strict": strict, "schema": schema}}


def strip_code_fences(text: str) -> str:
    """Remove a surrounding markdown code fence, e.g. ```json ... ```."""
    return _TRAILING_FENCE.sub("", _LEADING_FENCE.sub("", text)).strip()


def audio_mime_type(filename: str) -> str:
    extension = PurePath(filename).suffix.lstrip(".").lower()
    return _AUDIO_MIME_TYPES.get(extension, "audio/mpeg")


class ModelGateway:
    def __init__(
        self,
        api_key: str | None,
        models: dict[str, str] | None = None,
        base_url: str = DEFAULT_BASE_URL,
        client: OpenAI | None = None,
    ) -> None:
        if not api_key:
            raise ConfigurationError("OPENROUTER_API_KEY is not set")
        self._models = {**DEFAULT_MODELS, **(models or {})}
        self._client = client or OpenAI(api_key=api_key, base_url=base_url, default_headers=DEFAULT_HEADERS)

    def get_model(self, capability: str) -> str:
        try:
            return self._models[capability]
        except KeyError as exc:
            raise ConfigurationError(f"No model configured for '{capability}'") from exc

    def chat(
        self,
        messages: list[Message],
        model: str | None = None,
        *,
        temperature: float = 0.7,
        max_tokens: int = 2000,
        response_format: dict[str, Any] | None = None,
    ) -> ModelResponse:
        params: dict[str, Any] = {
            "model": model or self._models["text"],
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        if response_format:
            params["response_format"] = response_format

        try:
            response = self._client.chat.completions.create(**params)
        except OpenAIError as exc:
            logger.error("Model request to %s failed: %s", params["model"], exc)
            raise ModelRequestError(f"AI request failed: {exc}") from exc

        if not response.choices or response.choices[0].message is None:
            raise ModelRequestError("AI request failed: No response from AI model")

        content = response.choices[0].message.content or ""
        if response_format:
            content = strip_code_fences(content)

        usage = None
        if response.usage is not None:
            usage = {
                "prompt_tokens": response.usage.prompt_tokens,
                "completion_tokens": response.usage.completion_tokens,
                "total_tokens": response.usage.total_tokens,
            }
        return ModelResponse(content=content, model=response.model, usage=usage)

    def complete(
        self,
        user_message: str,
        system_prompt: str | None = None,
        model: str | None = None,
        *,
        temperature: float = 0.7,
        max_tokens: int = 2000,
    ) -> ModelResponse:
        messages: list[Message] = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": user_message})
        return self.chat(messages, model, temperature=temperature, max_tokens=max_tokens)

    def transcribe_audio(self, data: bytes, filename: str) -> str:
        try:
            response = self._client.audio.transcriptions.create(
                file=(filename, data, audio_mime_type(filename)),
                model=self._models["audio"],
            )
        except OpenAIError as exc:
            logger.error("Audio transcription of %s failed: %s", filename, exc)
            raise ModelRequestError(f"Audio transcription failed: {exc}") from exc
        return response.text
