"""Generation backends producing a lazy stream of text chunks."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator, Mapping, Protocol

import httpx

from .client import AIClient
from .decoding import StreamDecoder
from .errors import (
    CredentialInvalidError,
    CredentialMissingError,
    GenerationError,
    TransportError,
    UpstreamError,
)

__all__ = [
    "GenerationBackend",
    "GenerationRequest",
    "OpenAIBackend",
    "RelayBackend",
    "RELAY_ERROR_MARKER",
]

LOGGER = logging.getLogger(__name__)

RELAY_ERROR_MARKER = "\n[Error generating content]"
_MISSING_KEY_HINTS = ("not configured", "missing api key", "no api key")


@dataclass(slots=True, frozen=True)
class GenerationRequest:
    """One prompt sent to a generation backend."""

    system_instruction: str
    user_prompt: str
    model: str = ""
    credential: str = ""

    def redacted(self) -> dict[str, Any]:
        return {
            "model": self.model,
            "system_chars": len(self.system_instruction),
            "prompt_chars": len(self.user_prompt),
            "credential": "set" if self.credential else "missing",
        }


class GenerationBackend(Protocol):
    """Produces the generated text for a request as a finite chunk stream."""

    def stream(self, request: GenerationRequest) -> AsyncIterator[str]:
        ...


class OpenAIBackend:
    """Backend talking to an OpenAI-compatible chat completions endpoint."""

    def __init__(self, client: AIClient) -> None:
        self._client = client

    @property
    def client(self) -> AIClient:
        return self._client

    async def stream(self, request: GenerationRequest) -> AsyncIterator[str]:
        async for delta in self._client.stream_text(
            request.system_instruction,
            request.user_prompt,
            model=request.model or None,
            api_key=request.credential or None,
        ):
            yield delta


class RelayBackend:
    """Backend POSTing to an HTTP relay that streams raw generated bytes.

    The relay answers ``{"systemInstruction", "userPrompt"}`` with an
    unframed UTF-8 body; chunk boundaries carry no meaning and may split
    multi-byte characters.
    """

    def __init__(
        self,
        url: str,
        *,
        credential: str = "",
        timeout: float | None = 90.0,
        client: httpx.AsyncClient | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> None:
        self._url = url
        self._credential = credential
        self._timeout = timeout
        self._client = client
        self._headers = dict(headers or {})

    async def stream(self, request: GenerationRequest) -> AsyncIterator[str]:
        body = {
            "systemInstruction": request.system_instruction,
            "userPrompt": request.user_prompt,
        }
        if request.model:
            body["model"] = request.model
        headers = {"Content-Type": "application/json", **self._headers}
        credential = request.credential or self._credential
        if credential:
            headers["Authorization"] = f"Bearer {credential}"

        LOGGER.debug("Opening relay stream to %s (%s)", self._url, request.redacted())
        owns_client = self._client is None
        client = self._client or httpx.AsyncClient(timeout=self._timeout)
        decoder = StreamDecoder()
        pending = ""
        try:
            async with client.stream("POST", self._url, json=body, headers=headers) as response:
                if response.status_code >= 400:
                    detail = (await response.aread()).decode("utf-8", errors="replace")
                    raise _status_error(response.status_code, detail)
                async for raw in response.aiter_bytes():
                    text = decoder.feed(raw)
                    if not text:
                        continue
                    # Hold back a tail that could be the start of the error marker.
                    pending += text
                    emit, pending = _split_safe_prefix(pending)
                    if emit:
                        yield emit
            pending += decoder.flush()
        except GenerationError:
            raise
        except httpx.TransportError as exc:
            raise TransportError(str(exc)) from exc
        except httpx.HTTPError as exc:
            raise UpstreamError(str(exc)) from exc
        finally:
            if owns_client:
                await client.aclose()

        if pending.endswith(RELAY_ERROR_MARKER):
            head = pending[: -len(RELAY_ERROR_MARKER)]
            if head:
                yield head
            raise UpstreamError("Relay reported a generation failure")
        if pending:
            yield pending


def _split_safe_prefix(text: str) -> tuple[str, str]:
    """Split ``text`` so the held-back suffix could still grow into the marker."""

    limit = min(len(text), len(RELAY_ERROR_MARKER))
    for size in range(limit, 0, -1):
        if RELAY_ERROR_MARKER.startswith(text[-size:]):
            return text[:-size], text[-size:]
    return text, ""


def _status_error(status_code: int, detail: str) -> GenerationError:
    message = _extract_error_message(detail)
    lowered = message.lower()
    if any(hint in lowered for hint in _MISSING_KEY_HINTS):
        return CredentialMissingError(message, status_code=status_code)
    if status_code in (401, 403):
        return CredentialInvalidError(message, status_code=status_code)
    return UpstreamError(message, status_code=status_code)


def _extract_error_message(detail: str) -> str:
    try:
        payload = json.loads(detail)
    except (TypeError, ValueError):
        return detail.strip() or "Relay request failed"
    if isinstance(payload, Mapping) and payload.get("error"):
        return str(payload["error"])
    return detail.strip() or "Relay request failed"
