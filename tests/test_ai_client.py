"""Tests for the OpenAI-compatible AI client."""

from __future__ import annotations

from dataclasses import dataclass
from types import SimpleNamespace
from typing import Any, Iterable, cast

import httpx
import pytest

from openai import (
    APIConnectionError,
    AsyncOpenAI,
    AuthenticationError,
    InternalServerError,
    RateLimitError,
)

from quillstream.ai.backends import GenerationRequest, OpenAIBackend
from quillstream.ai.client import AIClient, ClientSettings, map_provider_error
from quillstream.ai.errors import (
    CredentialInvalidError,
    CredentialMissingError,
    TransportError,
    UpstreamError,
)

_REQUEST = httpx.Request("POST", "http://local/chat/completions")


@dataclass
class _FakeEvent:
    """Simple structure emulating ChatCompletionStreamEvent attributes."""

    type: str
    delta: str | None = None
    content: str | None = None


class _FakeStream:
    def __init__(self, events: Iterable[Any]):
        self._iterator = iter(list(events))

    def __aiter__(self) -> "_FakeStream":
        return self

    async def __anext__(self) -> Any:
        try:
            item = next(self._iterator)
        except StopIteration as exc:  # pragma: no cover - exhaust iterator
            raise StopAsyncIteration from exc
        if isinstance(item, BaseException):
            raise item
        return item


class _FakeStreamContext:
    def __init__(self, events: Iterable[Any], open_error: BaseException | None = None):
        self._events = list(events)
        self._open_error = open_error

    async def __aenter__(self) -> _FakeStream:
        if self._open_error is not None:
            raise self._open_error
        return _FakeStream(self._events)

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        return False


class _FakeCompletions:
    """Serves ``events`` on every call after raising each of ``open_errors`` once."""

    def __init__(self, events: Iterable[Any], *, open_errors: Iterable[BaseException] = ()):
        self._events = list(events)
        self._open_errors = list(open_errors)
        self.calls: list[dict[str, Any]] = []

    def stream(self, **kwargs: Any) -> _FakeStreamContext:
        self.calls.append(kwargs)
        error = self._open_errors.pop(0) if self._open_errors else None
        return _FakeStreamContext(self._events, error)


class _FakeModels:
    def __init__(self, payload: list[SimpleNamespace]):
        self._payload = payload
        self.calls = 0

    async def list(self) -> SimpleNamespace:
        self.calls += 1
        return SimpleNamespace(data=self._payload)


def _make_client(events: Iterable[Any], **kwargs: Any) -> SimpleNamespace:
    completions = _FakeCompletions(events, **kwargs)
    models = _FakeModels([SimpleNamespace(id="test-model")])
    client = SimpleNamespace(chat=SimpleNamespace(completions=completions), models=models, option_calls=[])

    def with_options(**options: Any) -> SimpleNamespace:
        client.option_calls.append(options)
        return client

    client.with_options = with_options
    return client


def _settings(**overrides: Any) -> ClientSettings:
    values: dict[str, Any] = {
        "base_url": "http://local",
        "api_key": "test",
        "model": "gpt-4o-mini",
        "retry_min_seconds": 0.0,
        "retry_max_seconds": 0.0,
    }
    values.update(overrides)
    return ClientSettings(**values)


def _status_error(cls: type, status: int) -> Exception:
    response = httpx.Response(status, request=_REQUEST)
    return cls(f"status {status}", response=response, body=None)


async def _collect(client: AIClient, collected: list[str]) -> None:
    async for delta in client.stream_text("system", "prompt"):
        collected.append(delta)


@pytest.mark.asyncio
async def test_stream_text_yields_content_deltas_only() -> None:
    events = [
        _FakeEvent(type="content.delta", delta="Hel"),
        _FakeEvent(type="chunk"),
        _FakeEvent(type="content.delta", delta=""),
        _FakeEvent(type="content.delta", delta="lo"),
        _FakeEvent(type="content.done", content="Hello"),
    ]
    fake_client = _make_client(events)
    client = AIClient(_settings(), client=cast(AsyncOpenAI, fake_client))

    collected: list[str] = []
    await _collect(client, collected)

    assert collected == ["Hel", "lo"]
    payload = fake_client.chat.completions.calls[0]
    assert payload["model"] == "gpt-4o-mini"
    assert payload["messages"] == [
        {"role": "system", "content": "system"},
        {"role": "user", "content": "prompt"},
    ]
    assert payload["temperature"] == 0.7
    assert payload["top_p"] == 0.95
    assert payload["max_tokens"] == 65_536


@pytest.mark.asyncio
async def test_stream_text_model_override_and_optional_sampling() -> None:
    fake_client = _make_client([])
    client = AIClient(
        _settings(temperature=None, top_p=None, max_output_tokens=None),
        client=cast(AsyncOpenAI, fake_client),
    )

    async for _delta in client.stream_text("s", "p", model="other-model"):
        pass

    payload = fake_client.chat.completions.calls[0]
    assert payload["model"] == "other-model"
    assert "temperature" not in payload
    assert "top_p" not in payload
    assert "max_tokens" not in payload


@pytest.mark.asyncio
async def test_stream_text_requires_credential() -> None:
    fake_client = _make_client([_FakeEvent(type="content.delta", delta="x")])
    client = AIClient(_settings(api_key="  "), client=cast(AsyncOpenAI, fake_client))

    with pytest.raises(CredentialMissingError):
        await _collect(client, [])

    assert fake_client.chat.completions.calls == []


@pytest.mark.asyncio
async def test_opening_the_stream_is_retried_on_transient_errors() -> None:
    fake_client = _make_client(
        [_FakeEvent(type="content.delta", delta="ok")],
        open_errors=[APIConnectionError(request=_REQUEST), _status_error(RateLimitError, 429)],
    )
    client = AIClient(_settings(max_retries=3), client=cast(AsyncOpenAI, fake_client))

    collected: list[str] = []
    await _collect(client, collected)

    assert collected == ["ok"]
    assert len(fake_client.chat.completions.calls) == 3


@pytest.mark.asyncio
async def test_retries_are_bounded() -> None:
    fake_client = _make_client(
        [],
        open_errors=[_status_error(InternalServerError, 500) for _ in range(3)],
    )
    client = AIClient(_settings(max_retries=2), client=cast(AsyncOpenAI, fake_client))

    with pytest.raises(UpstreamError) as excinfo:
        await _collect(client, [])

    assert excinfo.value.status_code == 500
    assert len(fake_client.chat.completions.calls) == 2


@pytest.mark.asyncio
async def test_failure_after_first_delta_is_not_retried() -> None:
    fake_client = _make_client(
        [_FakeEvent(type="content.delta", delta="partial"), APIConnectionError(request=_REQUEST)]
    )
    client = AIClient(_settings(max_retries=3), client=cast(AsyncOpenAI, fake_client))

    collected: list[str] = []
    with pytest.raises(TransportError):
        await _collect(client, collected)

    assert collected == ["partial"]
    assert len(fake_client.chat.completions.calls) == 1


@pytest.mark.asyncio
async def test_rejected_credential_is_not_retried() -> None:
    fake_client = _make_client([], open_errors=[_status_error(AuthenticationError, 401)])
    client = AIClient(_settings(max_retries=3), client=cast(AsyncOpenAI, fake_client))

    with pytest.raises(CredentialInvalidError) as excinfo:
        await _collect(client, [])

    assert excinfo.value.status_code == 401
    assert len(fake_client.chat.completions.calls) == 1


@pytest.mark.parametrize(
    ("error", "expected", "status"),
    [
        (_status_error(AuthenticationError, 401), CredentialInvalidError, 401),
        (_status_error(RateLimitError, 429), UpstreamError, 429),
        (_status_error(InternalServerError, 503), UpstreamError, 503),
        (APIConnectionError(request=_REQUEST), TransportError, None),
        (httpx.ConnectError("refused", request=_REQUEST), TransportError, None),
        (httpx.DecodingError("garbled", request=_REQUEST), UpstreamError, None),
    ],
)
def test_map_provider_error(error: Exception, expected: type, status: int | None) -> None:
    mapped = map_provider_error(error)

    assert type(mapped) is expected
    assert mapped.status_code == status


def test_map_provider_error_passes_generation_errors_through() -> None:
    error = TransportError("already mapped")

    assert map_provider_error(error) is error


@pytest.mark.asyncio
async def test_list_models_caches_results() -> None:
    payload = [SimpleNamespace(id="gpt-4o"), SimpleNamespace(id="gpt-4o-mini")]
    fake_models = _FakeModels(payload)
    fake_client = SimpleNamespace(
        chat=SimpleNamespace(completions=_FakeCompletions([])),
        models=fake_models,
    )
    client = AIClient(_settings(), client=cast(AsyncOpenAI, fake_client))

    first = await client.list_models()
    second = await client.list_models()
    refreshed = await client.list_models(force_refresh=True)

    assert first == ["gpt-4o", "gpt-4o-mini"]
    assert second == first  # cached result
    assert refreshed == first
    assert fake_models.calls == 2


@pytest.mark.asyncio
async def test_debug_logging_captures_prompt_payload(monkeypatch: pytest.MonkeyPatch) -> None:
    fake_client = _make_client([_FakeEvent(type="content.done", content="done")])
    client = AIClient(_settings(debug_logging=True), client=cast(AsyncOpenAI, fake_client))
    captured: dict[str, Any] = {}

    def _capture(payload: Any) -> None:
        captured["payload"] = payload

    monkeypatch.setattr(client, "_log_prompt_payload", _capture)

    await _collect(client, [])

    assert captured["payload"]["messages"][1]["content"] == "prompt"


@pytest.mark.asyncio
async def test_aclose_closes_underlying_client() -> None:
    class _StubAsyncOpenAI:
        def __init__(self) -> None:
            self.closed = False

        async def close(self) -> None:
            self.closed = True

    stub = _StubAsyncOpenAI()
    client = AIClient(_settings(), client=cast(AsyncOpenAI, stub))

    await client.aclose()

    assert stub.closed is True


@pytest.mark.asyncio
async def test_openai_backend_streams_through_client() -> None:
    fake_client = _make_client([_FakeEvent(type="content.delta", delta="text")])
    backend = OpenAIBackend(AIClient(_settings(), client=cast(AsyncOpenAI, fake_client)))
    request = GenerationRequest("system", "prompt", model="gpt-4o", credential="test")

    chunks = [chunk async for chunk in backend.stream(request)]

    assert chunks == ["text"]
    assert fake_client.chat.completions.calls[0]["model"] == "gpt-4o"


@pytest.mark.asyncio
async def test_openai_backend_without_any_credential() -> None:
    fake_client = _make_client([])
    backend = OpenAIBackend(AIClient(_settings(api_key=""), client=cast(AsyncOpenAI, fake_client)))

    with pytest.raises(CredentialMissingError):
        async for _chunk in backend.stream(GenerationRequest("s", "p")):
            pass


@pytest.mark.asyncio
async def test_openai_backend_uses_request_credential() -> None:
    fake_client = _make_client([_FakeEvent(type="content.delta", delta="live")])
    backend = OpenAIBackend(AIClient(_settings(api_key=""), client=cast(AsyncOpenAI, fake_client)))
    request = GenerationRequest("system", "prompt", credential="sk-live")

    chunks = [chunk async for chunk in backend.stream(request)]

    assert chunks == ["live"]
    assert fake_client.option_calls == [{"api_key": "sk-live"}]


@pytest.mark.asyncio
async def test_configured_key_does_not_rebuild_client() -> None:
    fake_client = _make_client([_FakeEvent(type="content.delta", delta="x")])
    client = AIClient(_settings(api_key="test"), client=cast(AsyncOpenAI, fake_client))

    chunks = [chunk async for chunk in client.stream_text("s", "p", api_key="test")]

    assert chunks == ["x"]
    assert fake_client.option_calls == []
