"""Failure taxonomy for the generation backends."""

from __future__ import annotations

__all__ = [
    "CredentialInvalidError",
    "CredentialMissingError",
    "GenerationError",
    "TransportError",
    "UpstreamError",
    "describe_failure",
]


class GenerationError(RuntimeError):
    """Base class for failures raised while producing generated text."""

    user_message = "Failed to process AI request. Please try again."

    def __init__(self, message: str | None = None, *, status_code: int | None = None) -> None:
        super().__init__(message or self.user_message)
        self.status_code = status_code


class CredentialMissingError(GenerationError):
    """No API credential is configured."""

    user_message = "No API key is configured. Add one in the settings to use AI generation."


class CredentialInvalidError(GenerationError):
    """The configured credential was rejected by the provider."""

    user_message = "The AI provider rejected the request. Please check your API key."


class TransportError(GenerationError):
    """The connection to the provider failed or dropped mid-stream."""

    user_message = "Could not reach the AI provider. Check your connection and try again."


class UpstreamError(GenerationError):
    """The provider returned an error or a malformed response."""

    user_message = "The AI provider failed to generate content. Please try again."


def describe_failure(exc: BaseException) -> str:
    """Return the single user-facing message for ``exc``."""

    if isinstance(exc, GenerationError):
        return type(exc).user_message
    return GenerationError.user_message
