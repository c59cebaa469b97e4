"""Async AI client wrapper built around OpenAI-compatible endpoints."""

from __future__ import annotations

import inspect
import json
import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator, Callable, Dict, List, Mapping

import httpx
from openai import (
    APIConnectionError,
    APIError,
    APIStatusError,
    AsyncOpenAI,
    AuthenticationError,
    InternalServerError,
    PermissionDeniedError,
    RateLimitError,
)
from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt, wait_exponential

from .errors import (
    CredentialInvalidError,
    CredentialMissingError,
    GenerationError,
    TransportError,
    UpstreamError,
)

LOGGER = logging.getLogger(__name__)

_RETRYABLE_ERRORS: tuple[type[BaseException], ...] = (
    APIConnectionError,
    RateLimitError,
    InternalServerError,
    httpx.TransportError,
)


@dataclass(slots=True)
class ClientSettings:
    """Subset of settings required to configure the AI client."""

    base_url: str
    api_key: str
    model: str
    organization: str | None = None
    request_timeout: float | None = 90.0
    max_retries: int = 3
    retry_min_seconds: float = 0.5
    retry_max_seconds: float = 6.0
    temperature: float | None = 0.7
    top_p: float | None = 0.95
    max_output_tokens: int | None = 65_536
    default_headers: Mapping[str, str] | None = None
    debug_logging: bool = False


class _StreamProgress:
    __slots__ = ("started",)

    def __init__(self) -> None:
        self.started = False


class AIClient:
    """Async client streaming plain text deltas with retry on connect."""

    def __init__(self, settings: ClientSettings, *, client: AsyncOpenAI | None = None) -> None:
        self._settings = settings
        self._client = client
        self._models_cache: List[str] | None = None

    @property
    def settings(self) -> ClientSettings:
        return self._settings

    async def stream_text(
        self,
        system_instruction: str,
        user_prompt: str,
        *,
        model: str | None = None,
        api_key: str | None = None,
    ) -> AsyncIterator[str]:
        """Stream the completion for one system/user exchange as text deltas.

        ``api_key`` replaces the configured key for this call only. Opening
        the stream is retried on transient failures. Once the first delta has
        been yielded a failure is raised immediately, since the caller has
        already consumed part of the output.
        """

        configured_key = (self._settings.api_key or "").strip()
        key = (api_key or "").strip() or configured_key
        if not key:
            raise CredentialMissingError()

        payload = self._build_chat_payload(system_instruction, user_prompt, model=model)
        LOGGER.debug(
            "Starting streamed completion via %s (system=%d chars, prompt=%d chars)",
            payload["model"],
            len(system_instruction),
            len(user_prompt),
        )
        if self._settings.debug_logging:
            self._log_prompt_payload(payload)

        progress = _StreamProgress()
        client = self._ensure_client()
        if key != configured_key:
            client = client.with_options(api_key=key)
        try:
            async for attempt in self._retrying(lambda exc: _should_retry(exc, progress)):
                with attempt:
                    async with client.chat.completions.stream(**payload) as stream:
                        async for event in stream:
                            delta = _content_delta(event)
                            if delta:
                                progress.started = True
                                yield delta
                    break
        except GenerationError:
            raise
        except (APIError, httpx.HTTPError) as exc:
            raise map_provider_error(exc) from exc

    async def list_models(self, *, force_refresh: bool = False) -> List[str]:
        """Return a list of supported model identifiers."""

        if self._models_cache is not None and not force_refresh:
            return list(self._models_cache)
        try:
            response = await self._ensure_client().models.list()
        except (APIError, httpx.HTTPError) as exc:
            raise map_provider_error(exc) from exc
        models = [item.id for item in response.data if getattr(item, "id", None)]
        self._models_cache = models
        return list(models)

    def _ensure_client(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = self._build_client(self._settings)
        return self._client

    def _build_client(self, settings: ClientSettings) -> AsyncOpenAI:
        headers = dict(settings.default_headers) if settings.default_headers else None
        return AsyncOpenAI(
            api_key=settings.api_key,
            base_url=settings.base_url,
            organization=settings.organization,
            timeout=settings.request_timeout,
            default_headers=headers,
            max_retries=0,
        )

    def _retrying(self, predicate: Callable[[BaseException], bool]) -> AsyncRetrying:
        return AsyncRetrying(
            reraise=True,
            stop=stop_after_attempt(max(1, self._settings.max_retries)),
            wait=wait_exponential(
                multiplier=self._settings.retry_min_seconds,
                max=self._settings.retry_max_seconds,
            ),
            retry=retry_if_exception(predicate),
        )

    def _build_chat_payload(
        self,
        system_instruction: str,
        user_prompt: str,
        *,
        model: str | None,
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "model": model or self._settings.model,
            "messages": [
                {"role": "system", "content": system_instruction},
                {"role": "user", "content": user_prompt},
            ],
        }
        if self._settings.temperature is not None:
            payload["temperature"] = self._settings.temperature
        if self._settings.top_p is not None:
            payload["top_p"] = self._settings.top_p
        if self._settings.max_output_tokens is not None:
            payload["max_tokens"] = self._settings.max_output_tokens
        return payload

    def _log_prompt_payload(self, payload: Mapping[str, Any]) -> None:
        try:
            serialized = json.dumps(payload, ensure_ascii=False, indent=2)
        except (TypeError, ValueError):
            LOGGER.debug("AI prompt payload (unserializable): %s", payload)
        else:
            LOGGER.debug("AI prompt payload:\n%s", serialized)

    async def aclose(self) -> None:
        """Close the underlying OpenAI client to release network resources."""

        if self._client is None:
            return
        close = getattr(self._client, "close", None)
        if close is None:
            return
        result = close()
        if inspect.isawaitable(result):
            await result


def map_provider_error(exc: BaseException) -> GenerationError:
    """Translate an OpenAI/httpx exception into the generation taxonomy."""

    if isinstance(exc, GenerationError):
        return exc
    if isinstance(exc, (AuthenticationError, PermissionDeniedError)):
        return CredentialInvalidError(str(exc), status_code=exc.status_code)
    if isinstance(exc, (APIConnectionError, httpx.TransportError)):
        return TransportError(str(exc))
    if isinstance(exc, APIStatusError):
        return UpstreamError(str(exc), status_code=exc.status_code)
    return UpstreamError(str(exc))


def _should_retry(exc: BaseException, progress: _StreamProgress) -> bool:
    if progress.started:
        return False
    return isinstance(exc, _RETRYABLE_ERRORS)


def _content_delta(event: Any) -> str | None:
    if getattr(event, "type", None) != "content.delta":
        return None
    delta = getattr(event, "delta", None)
    return str(delta) if delta else None
