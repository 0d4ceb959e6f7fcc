"""Named prompt templates fetched from Langfuse and cached in process memory."""

from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Protocol

from langfuse import Langfuse

from ..errors import PromptNotFoundError

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 300.0


@dataclass(slots=True, frozen=True)
class StoredPrompt:
    text: str
    config: dict[str, Any] | None = None


@dataclass(slots=True, frozen=True)
class CachedPrompt:
    text: str
    config: dict[str, Any] | None
    fetched_at: float


@dataclass(slots=True, frozen=True)
class ResolvedPrompt:
    prompt: str
    config: dict[str, Any] = field(default_factory=dict)

    @property
    def schema(self) -> dict[str, Any] | None:
        return self.config.get("schema")


class PromptStore(Protocol):
    @property
    def enabled(self) -> bool: ...

    def get_prompt(self, name: str, version: int | None = None) -> StoredPrompt | None: ...


class LangfusePromptStore:
    """Prompt store backed by the Langfuse prompt management API."""

    def __init__(
        self,
        public_key: str | None,
        secret_key: str | None,
        host: str = "https://cloud.langfuse.com",
        client: Langfuse | None = None,
    ) -> None:
        self._enabled = bool(public_key and secret_key) or client is not None
        self._client = client
        if self._client is None and self._enabled:
            self._client = Langfuse(public_key=public_key, secret_key=secret_key, host=host)
        if self._enabled:
            logger.info("Langfuse prompt store initialised (%s)", host)
        else:
            logger.warning("Langfuse credentials missing; prompt store is disabled.")

    @property
    def enabled(self) -> bool:
        return self._enabled

    def get_prompt(self, name: str, version: int | None = None) -> StoredPrompt | None:
        if not self._enabled or self._client is None:
            return None
        try:
            if version is not None:
                prompt = self._client.get_prompt(name, version=version)
            else:
                prompt = self._client.get_prompt(name)
        except Exception as exc:  # noqa: BLE001
            logger.error("Error fetching prompt %s: %s", name, exc)
            raise PromptNotFoundError(name, str(exc)) from exc

        if prompt is None:
            return None
        config = getattr(prompt, "config", None) or None
        return StoredPrompt(text=prompt.prompt, config=config)


def is_expired(now: float, fetched_at: float, ttl: float) -> bool:
    return now - fetched_at >= ttl


def first_present(*candidates: Any) -> Any:
    """Return the first candidate that is neither None nor empty."""
    for candidate in candidates:
        if candidate:
            return candidate
    return None


def compile_prompt(template: str, variables: dict[str, Any]) -> str:
    compiled = template
    for key, value in variables.items():
        pattern = re.compile(r"\{\{\s*" + re.escape(key) + r"\s*\}\}")
        compiled = pattern.sub(lambda _match: str(value), compiled)
    return compiled


class PromptManager:
    def __init__(
        self,
        store: PromptStore,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._store = store
        self._ttl = ttl_seconds
        self._clock = clock
        self._cache: dict[str, CachedPrompt] = {}

    @staticmethod
    def _cache_key(name: str, version: int | None) -> str:
        return name if version is None else f"{name}@{version}"

    def get_prompt(self, name: str, version: int | None = None) -> str:
        return self.get_prompt_with_config(name, version=version).prompt

    def get_prompt_with_config(
        self,
        name: str,
        fallback_config: dict[str, Any] | None = None,
        version: int | None = None,
    ) -> ResolvedPrompt:
        """Return prompt text and config, hitting the store only on a cache miss.

        The store's config wins; ``fallback_config`` is used only when the store
        has none. There is no fallback for the prompt text itself.
        """
        key = self._cache_key(name, version)
        cached = self._cache.get(key)
        if cached is not None and not is_expired(self._clock(), cached.fetched_at, self._ttl):
            return ResolvedPrompt(prompt=cached.text, config=cached.config or {})

        if not self._store.enabled:
            raise PromptNotFoundError(name, "prompt store is disabled")

        stored = self._store.get_prompt(name, version)
        if stored is None or not stored.text:
            raise PromptNotFoundError(name)

        config = first_present(stored.config, fallback_config)
        self._cache[key] = CachedPrompt(text=stored.text, config=config, fetched_at=self._clock())
        logger.debug("Prompt %s fetched and cached", key)
        return ResolvedPrompt(prompt=stored.text, config=config or {})

    def evict(self, name: str, version: int | None = None) -> None:
        self._cache.pop(self._cache_key(name, version), None)

    def clear(self) -> None:
        self._cache.clear()
