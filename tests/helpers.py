"""Shared test helpers and stub classes.

Import from here instead of redefining fake backends and document owners in
each test module.
"""

from __future__ import annotations

from typing import AsyncIterator, Callable, Iterable, List

from quillstream.ai.backends import GenerationRequest


class RecordingOwner:
    """Document owner recording every whole-document push."""

    def __init__(self, text: str = "") -> None:
        self.text = text
        self.pushes: List[str] = []

    def get_current_text(self) -> str:
        return self.text

    def replace_all_text(self, new_text: str) -> None:
        self.text = new_text
        self.pushes.append(new_text)


class ScriptedBackend:
    """Backend yielding a fixed list of chunks, optionally failing afterwards.

    ``on_chunk`` runs after each chunk is yielded, which lets a test act at a
    suspension point of the driver (for example to start a second session).
    """

    def __init__(
        self,
        chunks: Iterable[str],
        *,
        error: BaseException | None = None,
        on_chunk: Callable[[int], object] | None = None,
    ) -> None:
        self._chunks = list(chunks)
        self._error = error
        self._on_chunk = on_chunk
        self.requests: List[GenerationRequest] = []

    async def stream(self, request: GenerationRequest) -> AsyncIterator[str]:
        self.requests.append(request)
        for index, chunk in enumerate(self._chunks):
            yield chunk
            if self._on_chunk is not None:
                result = self._on_chunk(index)
                if hasattr(result, "__await__"):
                    await result
        if self._error is not None:
            raise self._error
